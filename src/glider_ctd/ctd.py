'''
Sensor lag and thermal lag correction of glider CTD data.

Provides:
      ThermalLag()

lucas.merckelbach@hereon.de
'''

import logging

from . import profiles, filters, flow, lag, calibrate
from .errors import InvalidConfigurationError
from .metrics import salinity

logger = logging.getLogger(__name__)


class ThermalLag(profiles.ProfileSplitter):
    '''Class to correct CTD data for sensor lag and thermal lag.

    The steps to take are:

    * create data in a similar way as ProfileSplitter(), with keys
      time, depth, cond (S/m), temp (degC), and optionally pres (dbar)
      and pitch (rad)

    * optional: lowpass_depth() to remove the noise of the pressure sensor

    * optional: compute_flow_speed(), required for flow dependent corrections

    * calibrate_sensor_lag() or apply_sensor_lag()

    * calibrate_thermal_lag() or apply_thermal_lag_correction()

    Parameters
    ----------
    data : dictionary of np.arrays
        a data dictionary as usual for ProfileSplitter
    conductivity_factor : float {10}
        factor converting conductivity to mS/cm
    convention : str {"nyquist", "sampling"}
        thermal lag coefficient convention
    kwds : keywords passed on to :obj:`ProfileSplitter`

    Example
    -------
    >>> tl = ThermalLag(data, min_range=10)
    >>> tl.compute_flow_speed()
    >>> result = tl.calibrate_thermal_lag(flow_dependent=True)
    >>> tl.data["salinity"]
    '''
    C_str = 'cond'
    TEMP_str = 'temp'
    P_str = 'pres'
    PITCH_str = 'pitch'
    U_str = 'flow'

    def __init__(self, data, conductivity_factor=10., convention="nyquist", **kwds):
        if convention not in lag.CONVENTIONS:
            raise InvalidConfigurationError("convention should be one of {}.".format(", ".join(lag.CONVENTIONS)))
        self.conductivity_factor = conductivity_factor
        self.convention = convention
        super().__init__(data, **kwds)

    def lowpass_depth(self, options=None, **kwds):
        ''' Low-pass filters the depth and splits the data again.

        Parameters
        ----------
        options : LowPassOptions, dict or None
            filter settings
        kwds : dict
            option overrides
        '''
        t = self.data[self.T_str]
        if not 'depth_raw' in self.data.keys():
            self.data['depth_raw'] = self.data[self.D_str].copy()
        self.data[self.D_str] = filters.lowpass_resample(t, self.data['depth_raw'], options, **kwds)
        self.split_profiles()

    def compute_flow_speed(self, options=None, use_pitch=True, **kwds):
        ''' Computes the flow speed and stores it in the data dictionary

        Parameters
        ----------
        options : FlowSpeedOptions, dict or None
            flow speed settings
        use_pitch : bool {True}
            use the pitch, if present in the data
        kwds : dict
            option overrides

        Returns
        -------
        np.array
            flow speed (m/s)
        '''
        pitch = None
        if use_pitch and self.PITCH_str in self.data:
            pitch = self.data[self.PITCH_str]
        U = flow.compute_flow_speed(self.data[self.T_str], self.data[self.D_str], pitch, options, **kwds)
        self.data[self.U_str] = U
        return U

    def _flow(self, flow_dependent):
        if not flow_dependent:
            return None
        try:
            return self.data[self.U_str]
        except KeyError:
            raise InvalidConfigurationError("No flow speed available. Run compute_flow_speed() first.")

    def apply_sensor_lag(self, parameter, params, flow_dependent=None):
        ''' Corrects a parameter for sensor lag

        The uncorrected series is kept under the key <parameter>_raw.

        Parameters
        ----------
        parameter : str
            key of the series to correct
        params : float, sequence of floats, ConstantLag or FlowDependentLag
            lag parameters. Flow dependent parameters use the stored flow speed.
        flow_dependent : bool or None
            whether params are flow dependent. If None, only a
            FlowDependentLag is taken as flow dependent.

        Returns
        -------
        np.array
            corrected series
        '''
        raw_key = "{}_raw".format(parameter)
        if not raw_key in self.data.keys():
            self.data[raw_key] = self.data[parameter].copy()
        if flow_dependent is None:
            flow_dependent = isinstance(params, lag.FlowDependentLag)
        U = self._flow(flow_dependent)
        self.data[parameter] = lag.correct_sensor_lag(self.data[self.T_str], self.data[raw_key], params, U)
        return self.data[parameter]

    def apply_thermal_lag_correction(self, params, flow_dependent=None):
        ''' Corrects the conductivity and temperature for thermal lag

        Adds to the data dictionary the temperature inside the
        conductivity cell (temp_inside), the conductivity outside the
        cell (cond_outside) and, if pressure is available, the salinity
        computed from the measured conductivity and temp_inside.

        Parameters
        ----------
        params : sequence of floats, ConstantThermalLag or FlowDependentThermalLag
            thermal lag parameters. Flow dependent parameters use the stored flow speed.
        flow_dependent : bool or None
            whether params are flow dependent. If None, only a
            FlowDependentThermalLag is taken as flow dependent.
        '''
        if flow_dependent is None:
            flow_dependent = isinstance(params, lag.FlowDependentThermalLag)
        U = self._flow(flow_dependent)
        temp_inside, cond_outside = lag.correct_thermal_lag(self.data[self.T_str], self.data[self.C_str],
                                                            self.data[self.TEMP_str], params, U,
                                                            self.convention)
        self.data['temp_inside'] = temp_inside
        self.data['cond_outside'] = cond_outside
        if self.P_str in self.data:
            self.data['salinity'] = salinity(self.data[self.C_str], temp_inside, self.data[self.P_str],
                                             self.conductivity_factor)

    def calibrate_sensor_lag(self, reference, parameter, flow_dependent=False, options=None, observer=None, **kwds):
        ''' Fits and applies the sensor lag of a parameter with respect to a reference

        Parameters
        ----------
        reference : str
            key of the reference series, for example "cond"
        parameter : str
            key of the lagging series, for example "temp"
        flow_dependent : bool {False}
            fit the flow dependent parameterisation
        options : LagFitOptions, dict or None
            fitting settings
        observer : callable or None
            called per iteration with (iteration, params, cost)
        kwds : dict
            option overrides

        Returns
        -------
        LagFitResult
        '''
        raw_key = "{}_raw".format(parameter)
        x = self.data.get(raw_key, self.data[parameter])
        result = calibrate.find_sensor_lag_params(self.data[self.T_str], self.data[reference], x,
                                                  self._flow(flow_dependent), options, observer, **kwds)
        if result.success:
            self.apply_sensor_lag(parameter, result.params)
        else:
            logger.warning("Sensor lag of {} not applied.".format(parameter))
        return result

    def calibrate_thermal_lag(self, method="ts-area", flow_dependent=False, options=None, max_workers=None,
                              **kwds):
        ''' Fits and applies thermal lag parameters for all cast pairs

        Parameters
        ----------
        method : str {"ts-area", "gradient"}
            cost function, see :class:`DeploymentCalibrator`
        flow_dependent : bool {False}
            fit the flow dependent parameterisation
        options : LagFitOptions, dict or None
            fitting settings
        max_workers : int or None
            number of processes to fit cast pairs in parallel
        kwds : dict
            option overrides

        Returns
        -------
        CalibrationResult
        '''
        calibrator = calibrate.DeploymentCalibrator(self, method=method, flow_dependent=flow_dependent,
                                                    options=options, convention=self.convention,
                                                    conductivity_factor=self.conductivity_factor,
                                                    max_workers=max_workers, **kwds)
        result = calibrator.calibrate()
        if result.params is not None:
            self.apply_thermal_lag_correction(result.params)
        return result
