from pytest import fixture, raises

import numpy as np
import gsw

from glider_ctd import calibrate, ctd, lag
from glider_ctd.errors import InvalidConfigurationError


@fixture
def glider_data():
    t = 1000. + np.arange(0, 800, 1.)
    depth = 40*(1 - np.abs(((t - 1000.)/200.) % 2 - 1))
    temp = 12 - 4*np.tanh((depth - 20)/3)
    cond = gsw.C_from_SP(34., temp, depth)/10
    pitch = np.where(np.gradient(depth) > 0, -1, 1)*np.radians(26)
    return dict(time=t, depth=depth, pres=depth, temp=temp, cond=cond, pitch=pitch)


# The data are split on construction
def test_thermal_lag_casts(glider_data):
    tl = ctd.ThermalLag(glider_data)
    assert tl.nop == 4
    assert len(tl.get_cast_pairs()) == 3


# Low-pass filtering the depth keeps the raw depth and splits again
def test_lowpass_depth(glider_data):
    tl = ctd.ThermalLag(glider_data)
    depth = tl.data["depth"].copy()
    tl.lowpass_depth(time_constant=2)
    assert np.all(tl.data["depth_raw"] == depth)
    assert not np.allclose(tl.data["depth"], depth)
    assert tl.nop == 4


# Flow speed is stored in the data
def test_compute_flow_speed(glider_data):
    tl = ctd.ThermalLag(glider_data)
    U = tl.compute_flow_speed()
    assert tl.data["flow"] is U
    w = 0.2/np.sin(np.radians(26))
    assert np.isclose(np.nanmedian(U), (1.15 + 0.03*w)*w)


# Sensor lag is always applied to the raw series
def test_apply_sensor_lag(glider_data):
    tl = ctd.ThermalLag(glider_data)
    temp = tl.data["temp"].copy()
    tl.apply_sensor_lag("temp", 2.)
    tl.apply_sensor_lag("temp", lag.ConstantLag(2.))
    assert np.all(tl.data["temp_raw"] == temp)
    assert np.allclose(tl.data["temp"], lag.correct_sensor_lag(tl.data["time"], temp, 2.), equal_nan=True)
    tl.apply_sensor_lag("temp", 0)
    assert np.allclose(tl.data["temp"], temp)


# Flow dependent corrections require the flow speed
def test_flow_required(glider_data):
    tl = ctd.ThermalLag(glider_data)
    with raises(InvalidConfigurationError):
        tl.apply_sensor_lag("temp", lag.FlowDependentLag(0.3, 0.07))
    with raises(InvalidConfigurationError):
        tl.apply_thermal_lag_correction((0.01, 0.03, 7, 3), flow_dependent=True)
    tl.compute_flow_speed()
    tl.apply_thermal_lag_correction(lag.FlowDependentThermalLag(0.01, 0.03, 7, 3))
    assert np.any(np.isfinite(tl.data["cond_outside"]))


# The variant follows the parameter type or the flag, not the number of values
def test_flow_dependent_flag(glider_data):
    tl = ctd.ThermalLag(glider_data)
    tl.compute_flow_speed()
    with raises(InvalidConfigurationError):
        tl.apply_sensor_lag("temp", [0.3, 0.07])
    with raises(InvalidConfigurationError):
        tl.apply_sensor_lag("temp", lag.FlowDependentLag(0.3, 0.07), flow_dependent=False)
    tl.apply_sensor_lag("temp", [0.3, 0.07], flow_dependent=True)
    expected = lag.correct_sensor_lag(tl.data["time"], tl.data["temp_raw"], lag.FlowDependentLag(0.3, 0.07),
                                      tl.data["flow"])
    assert np.allclose(tl.data["temp"], expected, equal_nan=True)
    with raises(InvalidConfigurationError):
        tl.apply_thermal_lag_correction((0.01, 0.03, 7, 3))
    tl.apply_thermal_lag_correction((0.01, 0.03, 7, 3), flow_dependent=True)
    assert np.any(np.isfinite(tl.data["cond_outside"]))


# Thermal lag correction adds inside temperature, outside conductivity and salinity
def test_apply_thermal_lag_correction(glider_data):
    tl = ctd.ThermalLag(glider_data)
    tl.apply_thermal_lag_correction((0.03, 9.))
    for k in ("temp_inside", "cond_outside", "salinity"):
        assert tl.data[k].shape == tl.data["time"].shape
    tl.apply_thermal_lag_correction((0., 9.))
    assert np.allclose(tl.data["salinity"], 34, atol=1e-3)


# The fitted deployment parameters are applied
def test_calibrate_thermal_lag(glider_data, monkeypatch):
    monkeypatch.setattr(calibrate, "fit_cast_pair",
                        lambda job: calibrate.LagFitResult(np.array([0.03, 9.]), True, 0., "", 3))
    tl = ctd.ThermalLag(glider_data)
    result = tl.calibrate_thermal_lag()
    assert result.params == lag.ConstantThermalLag(0.03, 9.)
    temp_inside, _ = lag.correct_thermal_lag(tl.data["time"], tl.data["cond"], tl.data["temp"], result.params)
    assert np.allclose(tl.data["temp_inside"], temp_inside)


# Unknown conventions are refused
def test_convention(glider_data):
    with raises(InvalidConfigurationError):
        ctd.ThermalLag(glider_data, convention="seabird")
