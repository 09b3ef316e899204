'''
Option sets for the processing steps.

Each processing step takes its settings from an options object. An
options object knows its parameter names and their default values, and
refuses to be given parameters it does not know about.

Provides:
      Options
      ProfileOptions
      FlowSpeedOptions
      LowPassOptions
      LagFitOptions

lucas.merckelbach@hereon.de
'''

import numpy as np

from .errors import InvalidConfigurationError


class Options(object):
    '''Base class for option sets

    Subclasses define the class attribute DEFAULTS, a dictionary with
    the parameter names and their default values. Parameters are
    accessible as attributes.

    Parameters
    ----------
    kw : dict
        keywords with parameter name and values, overriding the defaults.

    Methods defined in this class:

    * define(): set one or more parameters
    * get_settings(): returns the current settings as a dictionary
    * validate(): checks the current settings, called by define()
    '''
    DEFAULTS = {}

    def __init__(self, **kw):
        for k, v in self.DEFAULTS.items():
            self.__dict__[k] = v
        self.define(**kw)

    def __repr__(self):
        s = ", ".join("{}={!r}".format(k, v) for k, v in self.get_settings().items())
        return "{}({})".format(self.__class__.__name__, s)

    def define(self, **kw):
        ''' Define (set) one or more parameters.

        Parameters
        ----------
        kw : dict
            keywords with parameter name and values

        Raises
        ------
        InvalidConfigurationError
            if a parameter name is not known, or a value is out of range.

        Examples
        --------
        >>> options = FlowSpeedOptions()
        >>> options.define(min_pitch=0.1)
        '''
        unknown = [k for k in kw if k not in self.DEFAULTS]
        if unknown:
            raise InvalidConfigurationError("Unknown option(s) for {}: {}.".format(self.__class__.__name__,
                                                                                  ", ".join(sorted(unknown))))
        previous = dict((k, self.__dict__[k]) for k in kw)
        for k, v in kw.items():
            self.__dict__[k] = v
        try:
            self.validate()
        except InvalidConfigurationError:
            self.__dict__.update(previous)
            raise

    def validate(self):
        ''' Checks the current settings. Subclasses raise InvalidConfigurationError on failure.'''
        pass

    def get_settings(self):
        ''' Get settings

        Returns
        -------
        settings : dict
            a dictionary with the current parameter settings
        '''
        return dict((k, self.__dict__[k]) for k in self.DEFAULTS)

    @classmethod
    def from_arguments(cls, options=None, **kwds):
        ''' Creates an options object from an options object or dictionary, and keyword overrides

        Parameters
        ----------
        options : Options, dict or None
            base settings. An options object is copied, not modified.
        kwds : dict
            parameters overriding the base settings

        Returns
        -------
        Options
            a new instance of cls
        '''
        if options is None:
            settings = {}
        elif isinstance(options, cls):
            settings = options.get_settings()
        elif isinstance(options, dict):
            settings = dict(options)
        else:
            raise InvalidConfigurationError("Expected {} or dict, got {}.".format(cls.__name__,
                                                                                 type(options).__name__))
        settings.update(kwds)
        return cls(**settings)

    def _check_non_negative(self, *names, allow_inf=False):
        for name in names:
            value = self.__dict__[name]
            try:
                ok = value >= 0 and (allow_inf or np.isfinite(value))
            except (TypeError, ValueError):
                ok = False
            if not ok:
                raise InvalidConfigurationError("Option {} should be a non-negative number (got {!r}).".format(name, value))


class ProfileOptions(Options):
    '''Options for splitting a trajectory into casts

    A trajectory is first cut into segments of constant vertical
    direction. Segments that are too short in depth (stalls) or in time
    (shakes) are not cast segments. Consecutive cast segments with the
    same direction are joined if they are separated by a small depth
    inversion and a short lapse. The resulting casts are numbered if
    they are long enough in depth and in time.

    Parameters
    ----------
    min_range : float {0}
        minimum vertical extent (m) a cast must have to be numbered.
    period : float {0}
        minimum duration (s) a cast must have to be numbered.
    stall : float {0}
        segments with a vertical extent (m) smaller than this are stalls.
    shake : float {0}
        segments with a duration (s) shorter than this are shakes.
    inversion : float {0}
        largest depth inversion (m) across which cast segments are joined.
    interrupt : float {0}
        largest lapse (s) across which cast segments are joined.

    Durations are measured in samples when no timestamps are given. The
    joining thresholds may be infinite.
    '''
    DEFAULTS = dict(min_range=0., period=0., stall=0., shake=0., inversion=0., interrupt=0.)

    def validate(self):
        self._check_non_negative("min_range", "period", "stall", "shake")
        self._check_non_negative("inversion", "interrupt", allow_inf=True)


class FlowSpeedOptions(Options):
    '''Options for estimating the flow speed past the CTD

    Parameters
    ----------
    factor_polynomial : sequence of floats or None {(1.15, 0.03, 0.0)}
        coefficients, ordered by ascending degree, of the polynomial
        in surge speed that scales the surge speed to flow speed. None
        leaves the surge speed unscaled.
    min_velocity : float {0}
        vertical velocities (m/s) smaller than this in magnitude yield no flow speed
    min_pitch : float {0}
        pitch angles (rad) smaller than this in magnitude yield no flow speed
    '''
    DEFAULTS = dict(factor_polynomial=(1.15, 0.03, 0.0), min_velocity=0., min_pitch=0.)

    def validate(self):
        self._check_non_negative("min_velocity", "min_pitch")
        p = self.factor_polynomial
        if p is not None:
            p = np.asarray(p, float)
            if p.ndim != 1 or p.shape[0] == 0 or not np.all(np.isfinite(p)):
                raise InvalidConfigurationError("factor_polynomial should be a non-empty sequence of finite numbers.")


class LowPassOptions(Options):
    '''Options for the low-pass resampler

    Parameters
    ----------
    time_constant : float {4}
        time constant (s) of the single-pole filter
    zero_phase : bool {False}
        if True, the filter is run forward and backward, which removes
        the phase lag at the cost of being non-causal.
    '''
    DEFAULTS = dict(time_constant=4., zero_phase=False)

    def validate(self):
        tc = self.time_constant
        try:
            ok = np.isfinite(tc) and tc > 0
        except TypeError:
            ok = False
        if not ok:
            raise InvalidConfigurationError("time_constant should be a positive number (got {!r}).".format(tc))


class LagFitOptions(Options):
    '''Options for fitting lag parameters

    Parameters
    ----------
    initial_guess : float, sequence of floats or None
        starting point of the minimisation. None selects the default for the fitting mode.
    lower_bound : float, sequence of floats or None
        lower bound of the parameters. None selects the default for the fitting mode.
    upper_bound : float, sequence of floats or None
        upper bound of the parameters. None selects the default for the fitting mode.
    method : str {"trust-constr", "L-BFGS-B"}
        minimisation method of scipy.optimize.minimize
    maxiter : int {1000}
        maximum number of iterations
    xtol : float {1e-8}
        tolerance on the parameter change
    gtol : float {1e-6}
        tolerance on the objective function gradient
    barrier_tol : float {1e-5}
        tolerance on the barrier parameter (trust-constr only)
    '''
    DEFAULTS = dict(initial_guess=None, lower_bound=None, upper_bound=None,
                    method="trust-constr", maxiter=1000, xtol=1e-8, gtol=1e-6, barrier_tol=1e-5)
    METHODS = ("trust-constr", "L-BFGS-B")

    def validate(self):
        if self.method not in self.METHODS:
            raise InvalidConfigurationError("method should be one of {} (got {!r}).".format(", ".join(self.METHODS),
                                                                                          self.method))
        try:
            ok = int(self.maxiter) == self.maxiter and self.maxiter >= 1
        except (TypeError, ValueError, OverflowError):
            ok = False
        if not ok:
            raise InvalidConfigurationError("maxiter should be a positive integer (got {!r}).".format(self.maxiter))
        for name in ("xtol", "gtol", "barrier_tol"):
            value = self.__dict__[name]
            try:
                ok = value > 0
            except TypeError:
                ok = False
            if not ok:
                raise InvalidConfigurationError("Option {} should be positive (got {!r}).".format(name, value))

    def resolve(self, number_of_parameters, guess, lower, upper):
        ''' Returns initial guess and bounds for a fitting mode

        Settings that are None are replaced by the given defaults. A
        default initial guess is clipped to the bounds.

        Parameters
        ----------
        number_of_parameters : int
            number of parameters of the fitting mode
        guess, lower, upper : sequence of floats
            default initial guess and bounds of the fitting mode

        Returns
        -------
        tuple of np.array
            initial guess, lower bound and upper bound

        Raises
        ------
        InvalidConfigurationError
            if any of the vectors does not have number_of_parameters
            elements, the lower bound exceeds the upper bound, or the
            initial guess lies outside the bounds.
        '''
        vectors = []
        for name, default in zip(("initial_guess", "lower_bound", "upper_bound"), (guess, lower, upper)):
            value = self.__dict__[name]
            if value is None:
                value = default
            v = np.atleast_1d(np.asarray(value, float))
            if v.ndim != 1 or v.shape[0] != number_of_parameters:
                raise InvalidConfigurationError("{} should have {} element(s), got {}.".format(name,
                                                                                           number_of_parameters,
                                                                                           v.size))
            vectors.append(v)
        x0, lb, ub = vectors
        if np.any(lb > ub):
            raise InvalidConfigurationError("lower_bound exceeds upper_bound.")
        if self.initial_guess is None:
            x0 = np.clip(x0, lb, ub)
        if np.any(x0 < lb) or np.any(x0 > ub):
            raise InvalidConfigurationError("initial_guess lies outside the bounds.")
        return x0, lb, ub
