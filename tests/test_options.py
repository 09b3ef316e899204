from pytest import raises

import numpy as np

from glider_ctd import options
from glider_ctd.errors import InvalidConfigurationError, GliderCTDError


# Defaults and overrides
def test_defaults():
    o = options.FlowSpeedOptions()
    assert o.factor_polynomial == (1.15, 0.03, 0.0)
    o.define(min_pitch=0.2)
    assert o.get_settings()['min_pitch'] == 0.2


# Unknown parameters are refused
def test_unknown_option():
    with raises(InvalidConfigurationError):
        options.ProfileOptions(length=3)
    # also a ValueError
    with raises(ValueError):
        options.LowPassOptions().define(cutoff=3)
    with raises(GliderCTDError):
        options.LowPassOptions(time_constant=-1)


# Options from an options object, a dictionary and keywords
def test_from_arguments():
    base = options.LowPassOptions(time_constant=2)
    o = options.LowPassOptions.from_arguments(base, zero_phase=True)
    assert o.time_constant == 2 and o.zero_phase
    assert not base.zero_phase
    o = options.LowPassOptions.from_arguments(dict(time_constant=8))
    assert o.time_constant == 8
    with raises(InvalidConfigurationError):
        options.LowPassOptions.from_arguments(options.ProfileOptions())


# Initial guess and bounds for a fitting mode
def test_resolve():
    o = options.LagFitOptions()
    x0, lb, ub = o.resolve(2, (0.3568, 0.07), (-16, -7.5), (16, 7.5))
    assert np.allclose(x0, [0.3568, 0.07])
    o = options.LagFitOptions(initial_guess=1.0)
    x0, lb, ub = o.resolve(1, 0.5, -16, 16)
    assert x0[0] == 1


# Default initial guesses are clipped to the bounds, given ones are checked
def test_resolve_bounds():
    o = options.LagFitOptions(upper_bound=(4, 5))
    x0, lb, ub = o.resolve(2, (0.0677, 11.1431), (0, 0), (4, 100))
    assert x0[1] == 5
    o = options.LagFitOptions(initial_guess=(0.1, 20), upper_bound=(4, 5))
    with raises(InvalidConfigurationError):
        o.resolve(2, (0.0677, 11.1431), (0, 0), (4, 100))
    o = options.LagFitOptions(lower_bound=(5, 0))
    with raises(InvalidConfigurationError):
        o.resolve(2, (0.0677, 11.1431), (0, 0), (4, 100))


# Arity of the fitting mode
def test_resolve_arity():
    o = options.LagFitOptions(initial_guess=(0.5, 0.1))
    with raises(InvalidConfigurationError):
        o.resolve(1, 0.5, -16, 16)


# Only supported minimisation methods
def test_lag_fit_method():
    with raises(InvalidConfigurationError):
        options.LagFitOptions(method="Nelder-Mead")
    assert options.LagFitOptions(method="L-BFGS-B").method == "L-BFGS-B"


# A rejected value leaves the settings unchanged
def test_define_rejected_value():
    o = options.ProfileOptions(min_range=5)
    with raises(InvalidConfigurationError):
        o.define(min_range=-1)
    assert o.min_range == 5
    with raises(InvalidConfigurationError):
        o.define(min_range=10, stall=-1)
    assert o.min_range == 5 and o.stall == 0


# Wrongly typed fitting options are configuration errors
def test_lag_fit_option_types():
    for kw in (dict(maxiter=None), dict(maxiter="x"), dict(maxiter=2.5), dict(maxiter=np.inf),
               dict(xtol=None), dict(gtol="1e-6"), dict(barrier_tol=np.nan)):
        with raises(InvalidConfigurationError):
            options.LagFitOptions(**kw)


# Segmentation thresholds are non-negative; the joining thresholds may be infinite
def test_profile_options():
    o = options.ProfileOptions(inversion=np.inf, interrupt=np.inf, stall=1.5)
    assert o.inversion == np.inf
    with raises(InvalidConfigurationError):
        options.ProfileOptions(stall=np.inf)
    with raises(InvalidConfigurationError):
        options.ProfileOptions(shake=-1)
    with raises(InvalidConfigurationError):
        options.ProfileOptions(period=None)
