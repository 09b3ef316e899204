'''
Estimation of sensor lag and thermal lag parameters.

The lag parameters are found by bounded minimisation of a cost
function that measures how badly the corrected data behave:

* the (negative) correlation between the time derivatives of a
  reference signal and the corrected signal. Applicable to any
  stretch of data.
* the area enclosed by a down and up cast pair, in the
  temperature-salinity plane (thermal lag) or the value-pressure plane
  (sensor lag).
* the length of the salinity profiles of a cast pair, which is
  minimal when the salinity spikes caused by a temperature sensor
  lag are removed.

Provides:
      OptimizerContext
      find_sensor_lag_params()
      find_thermal_lag_params()
      find_sensor_lag_params_area()
      find_sensor_lag_params_length()
      find_thermal_lag_params_ts()
      DeploymentCalibrator

lucas.merckelbach@hereon.de
'''

from collections import namedtuple
import concurrent.futures
from functools import partial
import logging

import numpy as np
from scipy.optimize import minimize, Bounds, BFGS

from .errors import InvalidConfigurationError
from .lag import (correct_sensor_lag, correct_thermal_lag, sensor_lag_parameters,
                  thermal_lag_parameters, CONVENTIONS)
from .metrics import profile_area, profile_length, salinity
from .options import LagFitOptions
from .series import as_series, check_lengths, valid_timestamps, gradient, nancorr

logger = logging.getLogger(__name__)

LagFitResult = namedtuple("LagFitResult", "params success residual message iterations")
CalibrationResult = namedtuple("CalibrationResult", "params pair_results number_of_pairs")
CTDCast = namedtuple("CTDCast", "time cond temp pres flow", defaults=(None,))

# initial guess, lower bound and upper bound, for constant (False) and
# flow dependent (True) parameters.
SENSOR_LAG_DEFAULTS = {False: ((0.5,), (-16.,), (16.,)),
                       True: ((0.3568, 0.07), (-16., -7.5), (16., 7.5))}
SENSOR_LAG_AREA_DEFAULTS = {False: ((0.5,), (0.,), (16.,)),
                            True: ((0.3568, 0.07), (0., 0.), (16., 7.5))}


def thermal_lag_defaults(flow_dependent, time_span):
    ''' Default initial guess and bounds for the thermal lag parameters

    Parameters
    ----------
    flow_dependent : bool
        selects the flow dependent parameterisation
    time_span : float
        time span (s) of the data to be fitted, limiting the time constants

    Returns
    -------
    tuple of tuples
        initial guess, lower bound and upper bound
    '''
    if flow_dependent:
        return ((0.0135, 0.0264, 7.1499, 2.7858), (0., 0., 0., 0.),
                (2., 1., time_span, time_span/2))
    return (0.0677, 11.1431), (0., 0.), (4., 2.5*time_span)


class OptimizerContext(object):
    '''Bounded minimisation of a lag parameter cost function

    Parameters
    ----------
    objective : callable
        function of the parameter vector returning the cost. Any state
        the objective keeps (corrected series etc.) is recomputed from
        the parameter vector on each call.
    observer : callable or None
        called once per iteration as observer(iteration, params, cost).
        Its return value is ignored.

    Example
    -------
    >>> context = OptimizerContext(objective, observer=lambda i, p, f: print(i, p, f))
    >>> result = context.minimize(x0, lower, upper, LagFitOptions())
    '''
    def __init__(self, objective, observer=None):
        self.objective = objective
        self.observer = observer
        self.iteration = 0
        self.evaluations = 0

    def evaluate(self, x):
        self.evaluations += 1
        return self.objective(x)

    def callback(self, intermediate_result):
        self.iteration += 1
        logger.debug("Iteration {}: params={} cost={}".format(self.iteration, intermediate_result.x,
                                                             intermediate_result.fun))
        if self.observer is not None:
            self.observer(self.iteration, np.array(intermediate_result.x), float(intermediate_result.fun))

    def minimize(self, x0, lower, upper, options):
        ''' Minimises the objective within bounds

        Parameters
        ----------
        x0 : np.array
            initial guess
        lower, upper : np.array
            parameter bounds
        options : LagFitOptions
            minimisation settings

        Returns
        -------
        LagFitResult
            fitted parameter vector, convergence flag, final cost, the
            optimiser's message and number of iterations.
        '''
        self.iteration = 0
        self.evaluations = 0
        if options.method == "trust-constr":
            # interior point method; central differences for the gradient.
            kwds = dict(jac='3-point', hess=BFGS(),
                        options=dict(xtol=options.xtol, gtol=options.gtol,
                                     barrier_tol=options.barrier_tol, maxiter=options.maxiter))
        else:
            kwds = dict(options=dict(ftol=options.gtol, gtol=options.gtol, maxiter=options.maxiter))
        result = minimize(self.evaluate, x0, method=options.method, bounds=Bounds(lower, upper),
                          callback=self.callback, **kwds)
        if not result.success:
            logger.warning("Minimisation did not converge: {}".format(result.message))
        return LagFitResult(np.asarray(result.x, float), bool(result.success), float(result.fun),
                            str(result.message), self.iteration)


class GradientCorrelation(object):
    '''Negative correlation of the time derivatives of a reference and a corrected signal

    Parameters
    ----------
    t : np.array
        time (s)
    reference : np.array
        reference signal
    correct : callable
        function of the parameter vector returning the corrected signal

    After each call, the attributes corrected and corrected_gradient
    hold the corrected signal and its time derivative.
    '''
    def __init__(self, t, reference, correct):
        self.t = t
        self.correct = correct
        valid = valid_timestamps(t) & np.isfinite(reference)
        self.reference_gradient = np.full(t.shape, np.nan)
        with np.errstate(divide='ignore', invalid='ignore'):
            self.reference_gradient[valid] = gradient(reference[valid], t[valid])
        self.corrected = None
        self.corrected_gradient = None

    def __call__(self, params):
        self.corrected = self.correct(params)
        valid = valid_timestamps(self.t) & np.isfinite(self.corrected)
        self.corrected_gradient = np.full(self.t.shape, np.nan)
        with np.errstate(divide='ignore', invalid='ignore'):
            self.corrected_gradient[valid] = gradient(self.corrected[valid], self.t[valid])
        r = nancorr(self.reference_gradient, self.corrected_gradient)
        if not np.isfinite(r):
            logger.debug("No correlation for params={}.".format(params))
            return 0.
        return -r


class CastPairMismatch(object):
    '''Mismatch between two casts after correction

    Parameters
    ----------
    cast1, cast2 : CTDCast
        the two casts
    curve : callable
        function curve(cast, params) returning the x and y coordinates
        of the corrected cast
    measure : str {"area", "length"}
        "area" measures the area enclosed by both curves, "length" the
        summed length of the curves.

    After each call, the attribute curves holds the coordinates of the
    corrected casts.
    '''
    def __init__(self, cast1, cast2, curve, measure="area"):
        if measure not in ("area", "length"):
            raise InvalidConfigurationError("Unknown measure {!r}.".format(measure))
        self.casts = (cast1, cast2)
        self.curve = curve
        self.measure = measure
        self.curves = None

    def __call__(self, params):
        self.curves = [self.curve(cast, params) for cast in self.casts]
        (x1, y1), (x2, y2) = self.curves
        if self.measure == "area":
            return profile_area(x1, y1, x2, y2)
        return profile_length(x1, y1) + profile_length(x2, y2)


def _ts_curve(cast, params, convention, conductivity_factor):
    params = thermal_lag_parameters(params, cast.flow is not None)
    temp_inside, cond_outside = correct_thermal_lag(cast.time, cast.cond, cast.temp, params, cast.flow, convention)
    return salinity(cast.cond, temp_inside, cast.pres, conductivity_factor), cast.temp


def _value_pressure_curve(cast, params, parameter, pres_range):
    params = sensor_lag_parameters(params, cast.flow is not None)
    x = correct_sensor_lag(cast.time, getattr(cast, parameter), params, cast.flow)
    s = _pressure_slice(cast.pres, pres_range)
    return x[s], np.asarray(cast.pres, float)[s]


def _common_pressure_range(cast1, cast2):
    p1 = as_series(cast1.pres, "pres")
    p2 = as_series(cast2.pres, "pres")
    if not (np.any(np.isfinite(p1)) and np.any(np.isfinite(p2))):
        return None
    return max(np.nanmin(p1), np.nanmin(p2)), min(np.nanmax(p1), np.nanmax(p2))


def _pressure_slice(pres, pres_range):
    ''' Slice from the first to the last sample within the pressure range'''
    if pres_range is None:
        return slice(None)
    pres = np.asarray(pres, float)
    with np.errstate(invalid='ignore'):
        idx = np.flatnonzero((pres >= pres_range[0]) & (pres <= pres_range[1]))
    if not idx.shape[0]:
        return slice(0, 0)
    return slice(idx[0], idx[-1]+1)


def _salinity_pressure_curve(cast, params, conductivity_factor):
    params = sensor_lag_parameters(params, cast.flow is not None)
    temp = correct_sensor_lag(cast.time, cast.temp, params, cast.flow)
    return salinity(cast.cond, temp, cast.pres, conductivity_factor), cast.pres


def _check_cast_pair(cast1, cast2):
    ''' Returns whether the cast pair carries flow speed

    Raises InvalidConfigurationError if only one cast does, or a cast
    lacks pressure or has series of unequal length.
    '''
    has_flow = [c.flow is not None for c in (cast1, cast2)]
    if has_flow[0] != has_flow[1]:
        raise InvalidConfigurationError("Either both or none of the casts should carry a flow speed.")
    for c in (cast1, cast2):
        if c.pres is None:
            raise InvalidConfigurationError("Casts require a pressure series.")
        fields = dict((k, as_series(v, k)) for k, v in c._asdict().items() if v is not None)
        check_lengths(**fields)
    return has_flow[0]


def _time_span(*timestamps):
    t = np.hstack([as_series(x, "timestamp") for x in timestamps])
    t = t[valid_timestamps(t)]
    if not t.shape[0]:
        return 0.
    return t.max() - t.min()


def find_sensor_lag_params(timestamp, data1, data2, flow=None, options=None, observer=None, **kwds):
    ''' Finds the sensor lag of a signal with respect to a reference signal

    The lag parameters maximise the correlation between the time
    derivatives of the reference signal and the corrected signal.

    Parameters
    ----------
    timestamp : array-like
        time (s)
    data1 : array-like
        reference signal
    data2 : array-like
        signal to be corrected, measured by a sensor that lags data1
    flow : array-like or None
        flow speed (m/s). If given, the lag is fitted as offset + slope/flow.
    options : LagFitOptions, dict or None
        fitting settings. Defaults: initial guess 0.5 s within [-16, 16]
        s, or (0.3568, 0.07) within [(-16, -7.5), (16, 7.5)] when flow
        is given.
    observer : callable or None
        called per iteration with (iteration, params, cost)
    kwds : dict
        option overrides

    Returns
    -------
    LagFitResult
        params is a ConstantLag or FlowDependentLag

    Example
    -------
    >>> result = find_sensor_lag_params(t, C, T)
    >>> T_cor = correct_sensor_lag(t, T, result.params)
    '''
    options = LagFitOptions.from_arguments(options, **kwds)
    t = as_series(timestamp, "timestamp")
    d1 = as_series(data1, "data1")
    d2 = as_series(data2, "data2")
    check_lengths(timestamp=t, data1=d1, data2=d2)
    flow_dependent = flow is not None
    if flow_dependent:
        flow = as_series(flow, "flow")
        check_lengths(timestamp=t, flow=flow)
    x0, lb, ub = options.resolve(1 + flow_dependent, *SENSOR_LAG_DEFAULTS[flow_dependent])

    def correct(params):
        return correct_sensor_lag(t, d2, sensor_lag_parameters(params, flow_dependent), flow)

    context = OptimizerContext(GradientCorrelation(t, d1, correct), observer)
    result = context.minimize(x0, lb, ub, options)
    logger.debug("Sensor lag fit: {}".format(result))
    return result._replace(params=sensor_lag_parameters(result.params, flow_dependent))


def find_thermal_lag_params(timestamp, temp_outside, cond_inside, flow=None, options=None, observer=None,
                            convention="nyquist", **kwds):
    ''' Finds thermal lag parameters from the temperature and conductivity time series

    The parameters maximise the correlation between the time
    derivatives of the temperature and of the corrected (outside)
    conductivity.

    Parameters
    ----------
    timestamp : array-like
        time (s)
    temp_outside : array-like
        temperature (degC)
    cond_inside : array-like
        conductivity (S/m)
    flow : array-like or None
        flow speed (m/s). If given, the flow dependent parameterisation is fitted.
    options : LagFitOptions, dict or None
        fitting settings. Defaults depend on the parameterisation and
        the time span of the data, see :func:`thermal_lag_defaults`.
    observer : callable or None
        called per iteration with (iteration, params, cost)
    convention : str {"nyquist", "sampling"}
        thermal lag coefficient convention
    kwds : dict
        option overrides

    Returns
    -------
    LagFitResult
        params is a ConstantThermalLag or FlowDependentThermalLag
    '''
    options = LagFitOptions.from_arguments(options, **kwds)
    if convention not in CONVENTIONS:
        raise InvalidConfigurationError("convention should be one of {}.".format(", ".join(CONVENTIONS)))
    t = as_series(timestamp, "timestamp")
    temp = as_series(temp_outside, "temp_outside")
    cond = as_series(cond_inside, "cond_inside")
    check_lengths(timestamp=t, temp_outside=temp, cond_inside=cond)
    flow_dependent = flow is not None
    if flow_dependent:
        flow = as_series(flow, "flow")
        check_lengths(timestamp=t, flow=flow)
    valid = np.isfinite(temp) & np.isfinite(cond)
    defaults = thermal_lag_defaults(flow_dependent, _time_span(t[valid]))
    x0, lb, ub = options.resolve(2 + 2*flow_dependent, *defaults)

    def correct(params):
        params = thermal_lag_parameters(params, flow_dependent)
        return correct_thermal_lag(t, cond, temp, params, flow, convention)[1]

    context = OptimizerContext(GradientCorrelation(t, temp, correct), observer)
    result = context.minimize(x0, lb, ub, options)
    logger.debug("Thermal lag fit: {}".format(result))
    return result._replace(params=thermal_lag_parameters(result.params, flow_dependent))


def find_thermal_lag_params_ts(cast1, cast2, options=None, observer=None, convention="nyquist",
                               conductivity_factor=10., **kwds):
    ''' Finds thermal lag parameters from a cast pair in the temperature-salinity plane

    The parameters minimise the area between the two casts in the
    temperature-salinity diagram, where salinity is computed from the
    measured conductivity and the corrected temperature inside the
    conductivity cell.

    Parameters
    ----------
    cast1, cast2 : CTDCast
        consecutive casts of opposite direction. Either both or none
        carry a flow speed, selecting the parameterisation.
    options : LagFitOptions, dict or None
        fitting settings. Defaults depend on the parameterisation and
        the time span of both casts, see :func:`thermal_lag_defaults`.
    observer : callable or None
        called per iteration with (iteration, params, cost)
    convention : str {"nyquist", "sampling"}
        thermal lag coefficient convention
    conductivity_factor : float {10}
        factor converting conductivity to mS/cm
    kwds : dict
        option overrides

    Returns
    -------
    LagFitResult
        params is a ConstantThermalLag or FlowDependentThermalLag
    '''
    options = LagFitOptions.from_arguments(options, **kwds)
    if convention not in CONVENTIONS:
        raise InvalidConfigurationError("convention should be one of {}.".format(", ".join(CONVENTIONS)))
    flow_dependent = _check_cast_pair(cast1, cast2)
    defaults = thermal_lag_defaults(flow_dependent, _time_span(cast1.time, cast2.time))
    x0, lb, ub = options.resolve(2 + 2*flow_dependent, *defaults)
    curve = partial(_ts_curve, convention=convention, conductivity_factor=conductivity_factor)
    context = OptimizerContext(CastPairMismatch(cast1, cast2, curve, "area"), observer)
    result = context.minimize(x0, lb, ub, options)
    return result._replace(params=thermal_lag_parameters(result.params, flow_dependent))


def find_sensor_lag_params_area(cast1, cast2, parameter="temp", options=None, observer=None, **kwds):
    ''' Finds the sensor lag from a cast pair in the value-pressure plane

    The parameters minimise the area between the two corrected casts
    in a plot of the parameter against pressure. Both casts are cut to
    the pressure range they have in common.

    Parameters
    ----------
    cast1, cast2 : CTDCast
        consecutive casts of opposite direction
    parameter : str {"temp", "cond"}
        the lagging parameter
    options : LagFitOptions, dict or None
        fitting settings. Defaults: initial guess 0.5 s within [0, 16]
        s, or (0.3568, 0.07) within [(0, 0), (16, 7.5)] when the casts
        carry a flow speed.
    observer : callable or None
        called per iteration with (iteration, params, cost)
    kwds : dict
        option overrides

    Returns
    -------
    LagFitResult
        params is a ConstantLag or FlowDependentLag
    '''
    options = LagFitOptions.from_arguments(options, **kwds)
    if parameter not in ("temp", "cond"):
        raise InvalidConfigurationError("parameter should be 'temp' or 'cond' (got {!r}).".format(parameter))
    flow_dependent = _check_cast_pair(cast1, cast2)
    x0, lb, ub = options.resolve(1 + flow_dependent, *SENSOR_LAG_AREA_DEFAULTS[flow_dependent])
    curve = partial(_value_pressure_curve, parameter=parameter, pres_range=_common_pressure_range(cast1, cast2))
    context = OptimizerContext(CastPairMismatch(cast1, cast2, curve, "area"), observer)
    result = context.minimize(x0, lb, ub, options)
    return result._replace(params=sensor_lag_parameters(result.params, flow_dependent))


def find_sensor_lag_params_length(cast1, cast2, options=None, observer=None, conductivity_factor=10., **kwds):
    ''' Finds the temperature sensor lag from the salinity profiles of a cast pair

    A temperature sensor lagging the conductivity sensor causes
    salinity spikes at temperature gradients. The lag parameters
    minimise the summed length of both salinity profiles.

    Parameters
    ----------
    cast1, cast2 : CTDCast
        casts, typically consecutive casts of opposite direction
    options : LagFitOptions, dict or None
        fitting settings. Defaults are those of :func:`find_sensor_lag_params`.
    observer : callable or None
        called per iteration with (iteration, params, cost)
    conductivity_factor : float {10}
        factor converting conductivity to mS/cm
    kwds : dict
        option overrides

    Returns
    -------
    LagFitResult
        params is a ConstantLag or FlowDependentLag
    '''
    options = LagFitOptions.from_arguments(options, **kwds)
    flow_dependent = _check_cast_pair(cast1, cast2)
    x0, lb, ub = options.resolve(1 + flow_dependent, *SENSOR_LAG_DEFAULTS[flow_dependent])
    curve = partial(_salinity_pressure_curve, conductivity_factor=conductivity_factor)
    context = OptimizerContext(CastPairMismatch(cast1, cast2, curve, "length"), observer)
    result = context.minimize(x0, lb, ub, options)
    return result._replace(params=sensor_lag_parameters(result.params, flow_dependent))


def fit_cast_pair(job):
    ''' Fits thermal lag parameters to a single cast pair

    Parameters
    ----------
    job : tuple
        (method, cast1, cast2, options, convention, conductivity_factor)

    Returns
    -------
    LagFitResult
    '''
    method, cast1, cast2, options, convention, conductivity_factor = job
    if method == "ts-area":
        return find_thermal_lag_params_ts(cast1, cast2, options=options, convention=convention,
                                          conductivity_factor=conductivity_factor)
    t = np.hstack([cast1.time, cast2.time])
    temp = np.hstack([cast1.temp, cast2.temp])
    cond = np.hstack([cast1.cond, cast2.cond])
    if cast1.flow is None or cast2.flow is None:
        flow = None
    else:
        flow = np.hstack([cast1.flow, cast2.flow])
    return find_thermal_lag_params(t, temp, cond, flow, options=options, convention=convention)


class DeploymentCalibrator(object):
    '''Thermal lag parameters for a whole deployment

    Every pair of consecutive casts of opposite direction is fitted
    separately. The deployment parameters are the median of the
    parameters of all pairs for which the minimisation converged.

    Parameters
    ----------
    splitter : ProfileSplitter
        splitter holding the data, with at least the keys for time,
        depth, conductivity and temperature, and pressure for the
        "ts-area" method.
    method : str {"ts-area", "gradient"}
        "ts-area" uses :func:`find_thermal_lag_params_ts`, "gradient"
        uses :func:`find_thermal_lag_params` on the data of each pair.
    flow_dependent : bool {False}
        fit the flow dependent parameterisation, using the flow speed
        stored in the data.
    options : LagFitOptions, dict or None
        fitting settings
    convention : str {"nyquist", "sampling"}
        thermal lag coefficient convention
    conductivity_factor : float {10}
        factor converting conductivity to mS/cm
    max_workers : int or None
        if larger than 1, cast pairs are fitted in parallel using this
        many processes.
    kwds : dict
        option overrides

    Example
    -------
    >>> splitter = ProfileSplitter(data, min_range=10)
    >>> result = DeploymentCalibrator(splitter, max_workers=4).calibrate()
    >>> result.params
    ConstantThermalLag(alpha=0.05..., tau=9.8...)
    '''
    METHODS = ("ts-area", "gradient")
    C_str = 'cond'
    T_str = 'temp'
    P_str = 'pres'
    U_str = 'flow'

    def __init__(self, splitter, method="ts-area", flow_dependent=False, options=None, convention="nyquist",
                 conductivity_factor=10., max_workers=None, **kwds):
        if method not in self.METHODS:
            raise InvalidConfigurationError("method should be one of {} (got {!r}).".format(", ".join(self.METHODS),
                                                                                          method))
        if convention not in CONVENTIONS:
            raise InvalidConfigurationError("convention should be one of {}.".format(", ".join(CONVENTIONS)))
        self.splitter = splitter
        self.method = method
        self.flow_dependent = flow_dependent
        self.options = LagFitOptions.from_arguments(options, **kwds)
        self.convention = convention
        self.conductivity_factor = conductivity_factor
        self.max_workers = max_workers
        self._check_data()

    def _check_data(self):
        required = [self.splitter.T_str, self.C_str, self.T_str]
        if self.method == "ts-area":
            required.append(self.P_str)
        if self.flow_dependent:
            required.append(self.U_str)
        missing = [k for k in required if k not in self.splitter.data]
        if missing:
            raise InvalidConfigurationError("Data lack the key(s): {}.".format(", ".join(missing)))

    def get_cast_pairs(self):
        ''' Returns the cast pairs to be fitted

        Returns
        -------
        list of (CTDCast, CTDCast)
        '''
        pairs = []
        for p1, p2 in self.splitter.get_cast_pairs():
            pairs.append((self._as_ctdcast(p1), self._as_ctdcast(p2)))
        return pairs

    def _as_ctdcast(self, profile):
        t = getattr(profile, self.splitter.T_str)
        pres = getattr(profile, self.P_str, None)
        if self.flow_dependent:
            flow = getattr(profile, self.U_str)
        else:
            flow = None
        return CTDCast(t, getattr(profile, self.C_str), getattr(profile, self.T_str), pres, flow)

    def calibrate(self):
        ''' Fits all cast pairs and combines the results

        Returns
        -------
        CalibrationResult
            params : median parameters, None if no pair could be fitted
            pair_results : list of LagFitResult, one per cast pair
            number_of_pairs : number of pairs contributing to the median
        '''
        pairs = self.get_cast_pairs()
        jobs = [(self.method, c1, c2, self.options, self.convention, self.conductivity_factor)
                for c1, c2 in pairs]
        if self.max_workers is not None and self.max_workers > 1 and len(jobs) > 1:
            logger.info("Parallel execution using {} processes.".format(self.max_workers))
            with concurrent.futures.ProcessPoolExecutor(self.max_workers) as p:
                results = list(p.map(fit_cast_pair, jobs))
        else:
            results = []
            for i, job in enumerate(jobs):
                logger.info("Finding correction parameters (cast pair {} of {})...".format(i+1, len(jobs)))
                results.append(fit_cast_pair(job))
        accepted = []
        for i, r in enumerate(results):
            if r.success:
                accepted.append(r.params)
            else:
                logger.warning("Dismissing cast pair {}: {}".format(i+1, r.message))
        if not accepted:
            logger.warning("Could not find any suitable correction parameters.")
            params = None
        else:
            params = thermal_lag_parameters(np.median(np.array(accepted), axis=0), self.flow_dependent)
            logger.info("Thermal lag parameters from {} cast pairs: {}".format(len(accepted), params))
        return CalibrationResult(params, results, len(accepted))
