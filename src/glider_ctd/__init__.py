'''
glider_ctd

Sensor lag and thermal lag corrections for CTD data collected by
ocean gliders.

lucas.merckelbach@hereon.de
'''

__version__ = "0.3.0"

from .errors import GliderCTDError, DataInconsistencyError, InvalidConfigurationError
from .options import ProfileOptions, FlowSpeedOptions, LowPassOptions, LagFitOptions
from .profiles import find_profiles, find_transects, cumulative_distance, ProfileSplitter
from .filters import lowpass_resample
from .flow import compute_flow_speed
from .lag import (ConstantLag, FlowDependentLag, ConstantThermalLag, FlowDependentThermalLag,
                  correct_sensor_lag, correct_thermal_lag)
from .metrics import salinity, profile_area, profile_length
from .calibrate import (CTDCast, LagFitResult, CalibrationResult, find_sensor_lag_params,
                        find_thermal_lag_params, find_thermal_lag_params_ts,
                        find_sensor_lag_params_area, find_sensor_lag_params_length,
                        DeploymentCalibrator)
from .ctd import ThermalLag
