'''
Flow speed past the CTD sensor.

The speed of the water flowing through the conductivity cell sets the
time response of the sensors. It is estimated from the vertical
velocity of the glider and its pitch angle, assuming the glider moves
along its longitudinal axis.

lucas.merckelbach@hereon.de
'''

import logging

import numpy as np
from numpy.polynomial import polynomial

from .options import FlowSpeedOptions
from .series import as_series, check_lengths, valid_timestamps

logger = logging.getLogger(__name__)


def vertical_velocity(t, depth):
    ''' Rate of change of depth for irregularly sampled data

    Interior points average the rates of the neighbouring intervals,
    each weighted by the length of the other interval. End points use
    the rate of the adjacent interval.

    Parameters
    ----------
    t : np.array
        time (s), at least two samples
    depth : np.array
        depth (m)

    Returns
    -------
    np.array
        vertical velocity (m/s), positive downward
    '''
    dt = np.diff(t)
    dd_dt = np.diff(depth)/dt
    w = np.empty(t.shape, float)
    w[0] = dd_dt[0]
    w[-1] = dd_dt[-1]
    w[1:-1] = (dt[1:]*dd_dt[:-1] + dt[:-1]*dd_dt[1:]) / (t[2:] - t[:-2])
    return w


def compute_flow_speed(timestamp, depth, pitch=None, options=None, **kwds):
    ''' Computes the flow speed past the CTD

    Parameters
    ----------
    timestamp : array-like
        time (s)
    depth : array-like
        depth (m), NaN for missing samples
    pitch : array-like, float or None
        pitch angle (rad), per sample or constant. If None, the
        magnitude of the vertical velocity is used as surge speed.
    options : FlowSpeedOptions, dict or None
        flow speed settings (factor_polynomial, min_velocity, min_pitch)
    kwds : dict
        option overrides

    Returns
    -------
    np.array
        flow speed (m/s), NaN where it cannot be estimated.

    Notes
    -----
    The surge speed is scaled by a polynomial in the surge speed
    itself, flow = P(surge)*surge, with the coefficients of P ordered
    by ascending degree.

    Example
    -------
    >>> U = compute_flow_speed(data["time"], data["depth"], data["pitch"], min_pitch=np.radians(10))
    '''
    options = FlowSpeedOptions.from_arguments(options, **kwds)
    t = as_series(timestamp, "timestamp")
    depth = as_series(depth, "depth")
    check_lengths(timestamp=t, depth=depth)
    valid = valid_timestamps(t) & np.isfinite(depth)
    if pitch is not None:
        pitch = np.asarray(pitch, float)
        if pitch.ndim == 0:
            if not np.isfinite(pitch):
                valid[:] = False
        else:
            pitch = as_series(pitch, "pitch")
            check_lengths(timestamp=t, pitch=pitch)
            valid &= np.isfinite(pitch)
    flow = np.full(t.shape, np.nan)
    if np.count_nonzero(valid) < 2:
        logger.debug("Fewer than two valid samples; no flow speed computed.")
        return flow
    with np.errstate(divide='ignore', invalid='ignore'):
        w = vertical_velocity(t[valid], depth[valid])
        if pitch is None:
            surge = np.abs(w)
        else:
            p = pitch if pitch.ndim == 0 else pitch[valid]
            surge = np.abs(w / np.sin(p))
            surge[np.abs(np.broadcast_to(p, w.shape)) < options.min_pitch] = np.nan
    surge[np.abs(w) < options.min_velocity] = np.nan
    surge[~np.isfinite(surge)] = np.nan
    if options.factor_polynomial is None:
        u = surge
    else:
        u = polynomial.polyval(surge, np.asarray(options.factor_polynomial, float)) * surge
    with np.errstate(invalid='ignore'):
        u[u < 0] = np.nan
    flow[valid] = u
    return flow
