'''
Helpers for time series with missing values.

Missing or invalid samples are marked by NaN. The functions in this
module select valid samples, collapse duplicate timestamps, and
compute gradients and correlations over valid samples only.

lucas.merckelbach@hereon.de
'''

import numpy as np

from .errors import DataInconsistencyError, InvalidConfigurationError


def as_series(x, name="series"):
    ''' Returns x as a one dimensional float array

    Parameters
    ----------
    x : array-like
        input data
    name : str
        name used in error messages

    Returns
    -------
    np.array
        one dimensional array of floats

    Raises
    ------
    InvalidConfigurationError
        if x is not one dimensional
    '''
    x = np.asarray(x, dtype=float)
    if x.ndim != 1:
        raise InvalidConfigurationError("{} should be one dimensional (got shape {}).".format(name, x.shape))
    return x


def check_lengths(**series):
    ''' Raises InvalidConfigurationError if the given series are not of equal length.'''
    lengths = dict((k, v.shape[0]) for k, v in series.items())
    if len(set(lengths.values())) > 1:
        s = ", ".join("{}={}".format(k, n) for k, n in sorted(lengths.items()))
        raise InvalidConfigurationError("Input series differ in length ({}).".format(s))


def valid_timestamps(t):
    ''' Returns a mask of usable timestamps (finite and positive)'''
    with np.errstate(invalid='ignore'):
        return np.isfinite(t) & (t > 0)


def unique_samples(t, x):
    ''' Collapses samples with equal timestamps

    Parameters
    ----------
    t : np.array
        timestamps, not necessarily sorted
    x : np.array
        sample values

    Returns
    -------
    (np.array, np.array)
        sorted unique timestamps and their sample values

    Raises
    ------
    DataInconsistencyError
        if samples sharing a timestamp have different values
    '''
    tu, first, inverse = np.unique(t, return_index=True, return_inverse=True)
    xu = x[first]
    conflicting = x != xu[inverse.ravel()]
    if np.any(conflicting):
        i = np.flatnonzero(conflicting)[0]
        raise DataInconsistencyError("Inconsistent sensor data: conflicting values at timestamp {}.".format(t[i]))
    return tu, xu


def gradient(x, t):
    ''' Derivative of x with respect to t for irregularly spaced samples

    Interior points use the centred difference weighted by the spacing
    on either side. The first and last points use one-sided differences.

    Parameters
    ----------
    x : np.array
        sample values
    t : np.array
        sample coordinates (timestamps)

    Returns
    -------
    np.array
        dx/dt, zero if only a single sample is given.
    '''
    if x.shape[0] < 2:
        return np.zeros_like(x)
    return np.gradient(x, t)


def nancorr(x, y):
    ''' Pearson correlation coefficient over the pairs where both x and y are finite

    Returns
    -------
    float
        correlation coefficient, or NaN if fewer than two complete
        pairs exist or either series has no variance.
    '''
    m = np.isfinite(x) & np.isfinite(y)
    if np.count_nonzero(m) < 2:
        return np.nan
    xm = x[m] - x[m].mean()
    ym = y[m] - y[m].mean()
    denom = np.sqrt(np.sum(xm**2) * np.sum(ym**2))
    if denom == 0:
        return np.nan
    return np.sum(xm*ym)/denom
