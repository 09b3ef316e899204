from pytest import fixture, raises

import numpy as np

from glider_ctd import lag
from glider_ctd.errors import DataInconsistencyError, InvalidConfigurationError


@fixture
def ctd_data():
    t = 1000. + np.arange(0, 600, 2.)
    depth = 40*(1 - np.abs(((t - 1000.)/300.) % 2 - 1))
    temp = 12 - 4*np.tanh((depth - 20)/3)
    cond = 3.5 + 0.09*(temp - 12)
    return t, temp, cond


# Zero lag leaves the signal unchanged
def test_sensor_lag_identity(ctd_data):
    t, temp, cond = ctd_data
    assert np.allclose(lag.correct_sensor_lag(t, temp, 0), temp)


# A linear signal is shifted exactly, including extrapolation
def test_sensor_lag_linear_signal():
    t = np.arange(1., 21.)
    x = 2*t + 1
    assert np.allclose(lag.correct_sensor_lag(t, x, 3), 2*(t+3) + 1)
    assert np.allclose(lag.correct_sensor_lag(t, x, lag.ConstantLag(-1.5)), 2*(t-1.5) + 1)


# Flow dependent lag: tau = offset + slope/flow
def test_sensor_lag_flow_dependent():
    t = np.arange(1., 21.)
    x = 2*t + 1
    U = np.full(20, 2.)
    U[4] = np.nan
    y = lag.correct_sensor_lag(t, x, (1, 2), U)
    assert np.isnan(y[4])
    m = np.isfinite(U)
    assert np.allclose(y[m], 2*(t[m]+2) + 1)


# Invalid samples are not used, and stay invalid
def test_sensor_lag_invalid_samples():
    t = np.arange(1., 11.)
    t[0] = 0
    x = 2*t + 1
    x[5] = np.nan
    y = lag.correct_sensor_lag(t, x, 1)
    assert np.isnan(y[0]) and np.isnan(y[5])
    m = np.isfinite(y)
    assert np.allclose(y[m], 2*(t[m]+1) + 1)


# Conflicting duplicates raise an error
def test_sensor_lag_inconsistent_data():
    t = np.array([1, 2, 3, 3, 4], float)
    x = np.array([1, 2, 3, 4, 5], float)
    with raises(DataInconsistencyError):
        lag.correct_sensor_lag(t, x, 1)


# Fewer than two distinct samples give no result
def test_sensor_lag_degenerate():
    y = lag.correct_sensor_lag([1, 1, 2], [3, 3, np.nan], 0.5)
    assert np.all(np.isnan(y))


# The parameter variant must match the presence of flow speed
def test_sensor_lag_parameter_mismatch():
    t = np.arange(1., 11.)
    with raises(InvalidConfigurationError):
        lag.correct_sensor_lag(t, t, lag.ConstantLag(1), np.ones(10))
    with raises(InvalidConfigurationError):
        lag.correct_sensor_lag(t, t, lag.FlowDependentLag(1, 1))
    with raises(InvalidConfigurationError):
        lag.correct_sensor_lag(t, t, (1, 2, 3), np.ones(10))


# Two samples: a single step of the recursion
def test_thermal_lag_two_samples():
    alpha, tau = 0.1, 5.
    temp_inside, cond_outside = lag.correct_thermal_lag([1, 2], [3, 3], [10, 11], (alpha, tau))
    coef_a = 2*alpha/(2 + 1/tau)
    dCdT = 0.088 + 0.0006*10
    assert np.allclose(cond_outside, [3, 3 + coef_a*dCdT])
    assert np.allclose(temp_inside, [10, 11 - coef_a])


# Three samples: the second step feeds back the first correction
def test_thermal_lag_recursion():
    alpha, tau = 0.1, 5.
    t = [1, 2, 4]
    temp = [10, 11, 11.5]
    temp_inside, cond_outside = lag.correct_thermal_lag(t, [3, 3, 3], temp, (alpha, tau))
    a0, b0 = lag.thermal_lag_coefficients(1, alpha, tau)
    a1, b1 = lag.thermal_lag_coefficients(2, alpha, tau)
    c1 = a0*(0.088 + 0.0006*10)*1
    c2 = -b1*c1 + a1*(0.088 + 0.0006*11)*0.5
    assert np.allclose(cond_outside, [3, 3 + c1, 3 + c2])


# No thermal lag error: no correction
def test_thermal_lag_zero_alpha(ctd_data):
    t, temp, cond = ctd_data
    temp_inside, cond_outside = lag.correct_thermal_lag(t, cond, temp, (0, 10))
    assert np.all(temp_inside == temp)
    assert np.all(cond_outside == cond)
    U = np.full(t.shape, 0.4)
    temp_inside, cond_outside = lag.correct_thermal_lag(t, cond, temp, (0, 0, 7, 3), U)
    assert np.all(cond_outside == cond)


# Invalid samples are skipped and stay invalid
def test_thermal_lag_invalid_samples(ctd_data):
    t, temp, cond = ctd_data
    cond = cond.copy()
    cond[10] = np.nan
    temp_inside, cond_outside = lag.correct_thermal_lag(t, cond, temp, (0.05, 10))
    assert np.isnan(temp_inside[10]) and np.isnan(cond_outside[10])
    assert np.sum(np.isnan(cond_outside)) == 1


# The historical convention corresponds to a doubled time constant
def test_thermal_lag_sampling_convention(ctd_data):
    t, temp, cond = ctd_data
    r0 = lag.correct_thermal_lag(t, cond, temp, (0.05, 5), convention="sampling")
    r1 = lag.correct_thermal_lag(t, cond, temp, (0.05, 10), convention="nyquist")
    assert np.allclose(r0, r1)
    with raises(InvalidConfigurationError):
        lag.correct_thermal_lag(t, cond, temp, (0.05, 5), convention="toolbox")


# Thermal lag correction removes a simulated thermal lag error
def test_thermal_lag_round_trip(ctd_data):
    t, temp, cond = ctd_data
    params = lag.ConstantThermalLag(0.03, 9)
    _, correction = lag.correct_thermal_lag(t, np.zeros_like(cond), temp, params)
    cond_measured = cond - correction
    _, cond_outside = lag.correct_thermal_lag(t, cond_measured, temp, params)
    assert np.allclose(cond_outside, cond)
    assert not np.allclose(cond_measured, cond)
