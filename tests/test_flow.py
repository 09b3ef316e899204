from pytest import raises

import numpy as np

from glider_ctd import flow
from glider_ctd.errors import InvalidConfigurationError

T = np.array([1, 2, 3, 5], float)
DEPTH = np.array([0, 1, 3, 4], float)


# Vertical velocity for irregular time steps
def test_vertical_velocity():
    w = flow.vertical_velocity(T, DEPTH)
    assert np.allclose(w, [1, 1.5, 1.5, 0.5])


# Without pitch and scaling, flow speed is the vertical speed
def test_flow_speed_unscaled():
    U = flow.compute_flow_speed(T, -DEPTH, factor_polynomial=None)
    assert np.allclose(U, [1, 1.5, 1.5, 0.5])


# Default scaling polynomial, ordered by ascending degree
def test_flow_speed_default_polynomial():
    U = flow.compute_flow_speed(T, DEPTH)
    w = np.array([1, 1.5, 1.5, 0.5])
    assert np.allclose(U, (1.15 + 0.03*w)*w)


# Pitch converts vertical speed into surge speed
def test_flow_speed_pitch():
    pitch = np.radians(26)
    U = flow.compute_flow_speed(T, DEPTH, pitch, factor_polynomial=None)
    assert np.allclose(U, np.array([1, 1.5, 1.5, 0.5])/np.sin(pitch))
    U = flow.compute_flow_speed(T, DEPTH, np.full(4, pitch), factor_polynomial=None)
    assert np.allclose(U, np.array([1, 1.5, 1.5, 0.5])/np.sin(pitch))


# Small pitch and small vertical speeds give no flow speed
def test_flow_speed_thresholds():
    pitch = np.radians([26, 26, 5, 26])
    U = flow.compute_flow_speed(T, DEPTH, pitch, min_pitch=np.radians(10), min_velocity=0.8)
    assert np.isfinite(U[0]) and np.isfinite(U[1])
    assert np.isnan(U[2])
    assert np.isnan(U[3])


# Flow speed is never negative, and invalid samples stay invalid
def test_flow_speed_non_negative():
    rng = np.random.default_rng(1)
    t = 1000. + np.cumsum(rng.uniform(0.5, 4, 200))
    depth = 20*np.sin((t - t[0])/300.)
    depth[[5, 50]] = np.nan
    t[70] = -1
    U = flow.compute_flow_speed(t, depth, factor_polynomial=(1.0, -10.0))
    assert np.all(U[np.isfinite(U)] >= 0)
    assert np.isnan(U[5]) and np.isnan(U[50]) and np.isnan(U[70])


# Options are validated
def test_flow_speed_options():
    with raises(InvalidConfigurationError):
        flow.compute_flow_speed(T, DEPTH, min_velocity=-1)
    with raises(InvalidConfigurationError):
        flow.compute_flow_speed(T, DEPTH, factor_polynomial=[])
    with raises(InvalidConfigurationError):
        flow.compute_flow_speed(T, DEPTH[:3])
