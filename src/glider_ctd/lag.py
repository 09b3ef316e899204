'''
Sensor lag and thermal lag corrections.

Sensor lag
    a sensor responding late is corrected by evaluating its signal at
    a later time, t + tau. The delay tau is either constant, or depends
    on the flow speed past the sensor: tau = offset + slope/U.

Thermal lag
    the conductivity cell exchanges heat with the water flowing
    through it, so that the water inside the cell is at a different
    temperature than the water measured by the thermistor. The
    correction follows the recursive filter of Lueck and Picklo (1990),
    as modified by Morison et al. (1994) and Garau et al. (2011) for
    variable flow speeds:

        alpha = alpha_offset + alpha_slope/U
        tau   = tau_offset + tau_slope/sqrt(U)

Provides:
      ConstantLag, FlowDependentLag
      ConstantThermalLag, FlowDependentThermalLag
      correct_sensor_lag()
      correct_thermal_lag()

lucas.merckelbach@hereon.de
'''

from collections import namedtuple
import logging

import numpy as np
from scipy.interpolate import interp1d

from .errors import InvalidConfigurationError
from .series import as_series, check_lengths, valid_timestamps, unique_samples

logger = logging.getLogger(__name__)

ConstantLag = namedtuple("ConstantLag", "tau")
FlowDependentLag = namedtuple("FlowDependentLag", "offset slope")
ConstantThermalLag = namedtuple("ConstantThermalLag", "alpha tau")
FlowDependentThermalLag = namedtuple("FlowDependentThermalLag", "alpha_offset alpha_slope tau_offset tau_slope")

ThermalLagState = namedtuple("ThermalLagState", "cond_correction temp_correction")

CONVENTIONS = ("nyquist", "sampling")


def _make_parameters(values, flow_dependent, constant_type, flow_type):
    if isinstance(values, (constant_type, flow_type)):
        expected = flow_type if flow_dependent else constant_type
        if not isinstance(values, expected):
            raise InvalidConfigurationError("{} given, but a flow speed series was{} supplied.".format(
                type(values).__name__, "" if flow_dependent else " not"))
        return values
    cls = flow_type if flow_dependent else constant_type
    v = np.atleast_1d(np.asarray(values, float))
    if v.ndim != 1 or v.shape[0] != len(cls._fields):
        raise InvalidConfigurationError("{} requires {} parameter(s), got {}.".format(cls.__name__,
                                                                                  len(cls._fields), v.size))
    return cls(*[float(x) for x in v])


def sensor_lag_parameters(values, flow_dependent):
    ''' Returns sensor lag parameters as ConstantLag or FlowDependentLag

    Parameters
    ----------
    values : float, sequence of floats, ConstantLag or FlowDependentLag
        parameter values: tau, or (offset, slope)
    flow_dependent : bool
        whether a flow speed series is supplied

    Returns
    -------
    ConstantLag or FlowDependentLag

    Raises
    ------
    InvalidConfigurationError
        if the number of values or the variant does not match flow_dependent
    '''
    return _make_parameters(values, flow_dependent, ConstantLag, FlowDependentLag)


def thermal_lag_parameters(values, flow_dependent):
    ''' Returns thermal lag parameters as ConstantThermalLag or FlowDependentThermalLag

    Parameters
    ----------
    values : sequence of floats, ConstantThermalLag or FlowDependentThermalLag
        parameter values: (alpha, tau), or (alpha_offset, alpha_slope, tau_offset, tau_slope)
    flow_dependent : bool
        whether a flow speed series is supplied

    Returns
    -------
    ConstantThermalLag or FlowDependentThermalLag

    Raises
    ------
    InvalidConfigurationError
        if the number of values or the variant does not match flow_dependent
    '''
    return _make_parameters(values, flow_dependent, ConstantThermalLag, FlowDependentThermalLag)


def correct_sensor_lag(timestamp, raw, params, flow=None):
    ''' Corrects a signal for the response delay of its sensor

    Parameters
    ----------
    timestamp : array-like
        time (s)
    raw : array-like
        signal, NaN for missing samples
    params : float, sequence of floats, ConstantLag or FlowDependentLag
        tau (s) if flow is None, (offset (s), slope (m)) otherwise.
    flow : array-like or None
        flow speed past the sensor (m/s)

    Returns
    -------
    np.array
        corrected signal, NaN where the input sample was not valid, or
        everywhere if fewer than two distinct valid samples exist.

    Raises
    ------
    DataInconsistencyError
        if samples sharing a timestamp have different values.
    InvalidConfigurationError
        if the parameters do not match the presence of flow, or the series differ in length.

    Notes
    -----
    The signal is evaluated at t+tau by linear interpolation, with
    linear extrapolation beyond the first and last sample.
    '''
    t = as_series(timestamp, "timestamp")
    x = as_series(raw, "raw")
    check_lengths(timestamp=t, raw=x)
    params = sensor_lag_parameters(params, flow is not None)
    valid = valid_timestamps(t) & np.isfinite(x)
    if flow is not None:
        U = as_series(flow, "flow")
        check_lengths(timestamp=t, flow=U)
        with np.errstate(invalid='ignore'):
            valid &= np.isfinite(U) & (U > 0)
    corrected = np.full(x.shape, np.nan)
    tu, xu = unique_samples(t[valid], x[valid])
    if tu.shape[0] < 2:
        logger.debug("Fewer than two distinct valid samples; no sensor lag correction.")
        return corrected
    if flow is None:
        tau = params.tau
    else:
        tau = params.offset + params.slope/U[valid]
    fun = interp1d(tu, xu, kind='linear', bounds_error=False, fill_value='extrapolate', assume_sorted=True)
    corrected[valid] = fun(t[valid] + tau)
    return corrected


def thermal_lag_coefficients(dt, alpha, tau, convention="nyquist"):
    ''' Coefficients of the recursive thermal lag filter

    Parameters
    ----------
    dt : float or np.array
        time step (s)
    alpha : float or np.array
        error magnitude
    tau : float or np.array
        error time constant (s)
    convention : str {"nyquist", "sampling"}
        "nyquist" is the discretisation of Lueck and Picklo (1990).
        "sampling" reproduces the historical implementation which used
        the sampling frequency where the Nyquist frequency belongs,
        which doubles the effective time constant.

    Returns
    -------
    (coef_a, coef_b)
    '''
    if convention == "nyquist":
        r = dt/tau
    elif convention == "sampling":
        r = dt/(2*tau)
    else:
        raise InvalidConfigurationError("convention should be one of {} (got {!r}).".format(", ".join(CONVENTIONS),
                                                                                          convention))
    coef_a = 2*alpha/(2 + r)
    coef_b = 1 - 4/(2 + r)
    return coef_a, coef_b


def thermal_lag_step(state, coef_a, coef_b, dCdT, dtemp):
    ''' Advances the thermal lag corrections by one sample

    Parameters
    ----------
    state : ThermalLagState
        corrections at the current sample
    coef_a, coef_b : float
        filter coefficients for this time step
    dCdT : float
        sensitivity of conductivity to temperature at the current sample
    dtemp : float
        temperature change to the next sample

    Returns
    -------
    ThermalLagState
        corrections at the next sample
    '''
    return ThermalLagState(-coef_b*state.cond_correction + coef_a*dCdT*dtemp,
                           -coef_b*state.temp_correction + coef_a*dtemp)


def correct_thermal_lag(timestamp, cond_inside, temp_outside, params, flow=None, convention="nyquist"):
    ''' Corrects conductivity and temperature for the thermal lag of the conductivity cell

    Parameters
    ----------
    timestamp : array-like
        time (s)
    cond_inside : array-like
        measured conductivity (S/m), representative of the water inside the cell
    temp_outside : array-like
        measured temperature (degC), representative of the water outside the cell
    params : sequence of floats, ConstantThermalLag or FlowDependentThermalLag
        (alpha, tau) if flow is None, (alpha_offset, alpha_slope,
        tau_offset, tau_slope) otherwise.
    flow : array-like or None
        flow speed through the cell (m/s)
    convention : str {"nyquist", "sampling"}
        coefficient convention, see :func:`thermal_lag_coefficients`

    Returns
    -------
    temp_inside : np.array
        temperature of the water inside the cell (degC)
    cond_outside : np.array
        conductivity of the water outside the cell (S/m)

    Both outputs are NaN where any input sample is not valid.

    Example
    -------
    >>> temp_inside, cond_outside = correct_thermal_lag(t, C, T, (0.0677, 11.1431))
    '''
    t = as_series(timestamp, "timestamp")
    cond = as_series(cond_inside, "cond_inside")
    temp = as_series(temp_outside, "temp_outside")
    check_lengths(timestamp=t, cond_inside=cond, temp_outside=temp)
    params = thermal_lag_parameters(params, flow is not None)
    if convention not in CONVENTIONS:
        raise InvalidConfigurationError("convention should be one of {} (got {!r}).".format(", ".join(CONVENTIONS),
                                                                                          convention))
    valid = valid_timestamps(t) & np.isfinite(cond) & np.isfinite(temp)
    if flow is not None:
        U = as_series(flow, "flow")
        check_lengths(timestamp=t, flow=U)
        with np.errstate(invalid='ignore'):
            valid &= np.isfinite(U) & (U > 0)
    temp_inside = np.full(temp.shape, np.nan)
    cond_outside = np.full(cond.shape, np.nan)
    idx = np.flatnonzero(valid)
    if not idx.shape[0]:
        logger.debug("No valid samples; no thermal lag correction.")
        return temp_inside, cond_outside
    tv = t[idx]
    Tv = temp[idx]
    dt = np.diff(tv)
    if flow is None:
        alpha = params.alpha
        tau = params.tau
    else:
        U = U[idx][:-1]
        alpha = params.alpha_offset + params.alpha_slope/U
        tau = params.tau_offset + params.tau_slope/np.sqrt(U)
    with np.errstate(divide='ignore', invalid='ignore'):
        coef_a, coef_b = thermal_lag_coefficients(dt, alpha, tau, convention)
    coef_a = np.broadcast_to(coef_a, dt.shape)
    coef_b = np.broadcast_to(coef_b, dt.shape)
    dCdT = 0.088 + 0.0006*Tv
    dtemp = np.diff(Tv)
    cond_correction = np.zeros(tv.shape, float)
    temp_correction = np.zeros(tv.shape, float)
    state = ThermalLagState(0., 0.)
    for n in range(dt.shape[0]):
        state = thermal_lag_step(state, coef_a[n], coef_b[n], dCdT[n], dtemp[n])
        cond_correction[n+1], temp_correction[n+1] = state
    temp_inside[idx] = Tv - temp_correction
    cond_outside[idx] = cond[idx] + cond_correction
    return temp_inside, cond_outside
