'''
Discrete first order filters and the low-pass resampler.

The filters are discretisations, using the bilinear transform, of the
transfer function

            c1 + c2*s
    H(s) = -----------
            d1 + d2*s

Provides:
      GeneralFilter()
      LagFilter()
      lowpass_resample()

lucas.merckelbach@hereon.de
'''

import logging

import numpy as np

from .options import LowPassOptions
from .series import as_series, check_lengths, valid_timestamps, unique_samples

logger = logging.getLogger(__name__)


class GeneralFilter(object):
    ''' General discrete filter of the transfer function
                c1 + c2*s
        H(s) = -----------
                d1 + d2*s

        d1+d2*2/Dt <> 0.

    The filter state is initialised with the steady state response to
    the first sample, so that a constant input yields a constant output.
    '''
    def __init__(self, c1, c2, d1, d2):
        self.set_parameters(c1, c2, d1, d2)

    def set_parameters(self, c1, c2, d1, d2):
        self.c1 = c1
        self.c2 = c2
        self.d1 = d1
        self.d2 = d2

    def calculate_coefs(self, DT):
        c1 = self.c1
        c2 = self.c2
        d1 = self.d1
        d2 = self.d2
        denom = (d1+d2*2./DT)
        a0 = (c1+c2*2./DT)/denom
        a1 = (c1-c2*2./DT)/denom
        b1 = (d1-d2*2./DT)/denom
        return a0, a1, b1

    def filter(self, t, x):
        ''' Filters the signal x

        Parameters
        ----------
        t : np.array
            time (s). The time step is taken as the median time step.
        x : np.array
            signal

        Returns
        -------
        np.array
            filtered signal
        '''
        DT = np.median(np.diff(t))
        a0, a1, b1 = self.calculate_coefs(DT)
        return self.__filter(x, a0, a1, b1)

    def filtfilt(self, t, x):
        ''' Filters the signal x forward and backward, which cancels the phase lag.

        Parameters
        ----------
        t : np.array
            time (s)
        x : np.array
            signal

        Returns
        -------
        np.array
            filtered signal
        '''
        y = self.filter(t, x)
        return self.filter(t, y[::-1])[::-1]

    def __filter(self, x, a0, a1, b1):
        y = np.zeros(x.shape, float)
        if not x.shape[0]:
            return y
        y[0] = self.c1/self.d1 * x[0]
        for i in range(1, len(x)):
            y[i] = a0*x[i] + a1*x[i-1] - b1*y[i-1]
        return y


class LagFilter(GeneralFilter):
    ''' First order lag (single-pole low-pass) filter

              gain
    H(s) = -----------
            1 + delay*s

    With gain 1 this is the Sea-Bird pressure filter.
    '''
    def __init__(self, gain, delay):
        super().__init__(gain, 0., 1.0, delay)


def lowpass_resample(timestamp, values, options=None, **kwds):
    ''' Low-pass filters an irregularly sampled series

    The valid samples are interpolated onto a regular time grid with a
    one second spacing, filtered with a single-pole lag filter, and
    interpolated back onto the original timestamps.

    Parameters
    ----------
    timestamp : array-like
        time (s). Samples with non-positive or NaN timestamps are excluded.
    values : array-like
        signal, NaN for missing samples
    options : LowPassOptions, dict or None
        filter settings (time_constant, zero_phase)
    kwds : dict
        option overrides

    Returns
    -------
    np.array
        filtered signal, NaN where a sample was excluded, or everywhere
        if fewer than two distinct valid timestamps exist.

    Raises
    ------
    DataInconsistencyError
        if samples sharing a timestamp have different values.
    InvalidConfigurationError
        for unknown or invalid options, or series of unequal length.
    '''
    options = LowPassOptions.from_arguments(options, **kwds)
    t = as_series(timestamp, "timestamp")
    x = as_series(values, "values")
    check_lengths(timestamp=t, values=x)
    result = np.full(x.shape, np.nan)
    valid = valid_timestamps(t) & np.isfinite(x)
    tu, xu = unique_samples(t[valid], x[valid])
    if tu.shape[0] < 2:
        logger.debug("Fewer than two distinct valid samples; returning no data.")
        return result
    ti = np.arange(tu[0], tu[-1] + 1., 1.)
    xi = np.interp(ti, tu, xu)
    lagfilter = LagFilter(1, options.time_constant)
    if options.zero_phase:
        yi = lagfilter.filtfilt(ti, xi)
    else:
        yi = lagfilter.filter(ti, xi)
    result[valid] = np.interp(t[valid], ti, yi)
    return result
