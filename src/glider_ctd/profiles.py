'''
Splits glider data time series into profiles (casts) and transects.

Glider data time series can be split in
1) casts, using the depth reversals of the glider's yo motion
2) transects, using changes in the waypoint the glider steers to

Provides:
      find_profiles()
      find_transects()
      cumulative_distance()
      ProfileSplitter()

lucas.merckelbach@hereon.de
'''

import logging

import numpy as np
import gsw

from .options import ProfileOptions
from .series import as_series, check_lengths

logger = logging.getLogger(__name__)


def find_profiles(depth, timestamp=None, options=None, **kwds):
    '''Identifies casts in a depth time series

    Depth reversals are detected from the sign of the depth change
    between consecutive valid samples. Steps without depth change
    continue the trend of the preceding step, so that a glider
    hovering at constant depth does not end a cast. The stretch between
    two reversals is a segment. Stalls and shakes are discarded, and
    segments of equal direction separated by a small inversion are
    joined, see :class:`ProfileOptions`. A cast is numbered if its
    vertical extent is at least min_range and its duration at least
    period.

    Parameters
    ----------
    depth : array-like
        depth (m, positive down), NaN for missing samples
    timestamp : array-like or None
        time (s). If given, samples with a NaN timestamp are ignored.
        If None, durations are counted in samples.
    options : ProfileOptions, dict or None
        segmentation settings (min_range, period, stall, shake,
        inversion, interrupt)
    kwds : dict
        option overrides

    Returns
    -------
    profile_index : np.array
        cast number for in-cast samples (1, 2, ...); samples at
        reversal peaks, in rejected casts, or between casts get the
        number of the preceding cast plus 0.5.
    profile_direction : np.array
        +1 descending, -1 ascending, 0 no depth change, NaN before the
        first valid sample.

    Notes
    -----
    If fewer than two valid samples are available, all samples are
    considered to belong to a single cast without direction.

    Example
    -------
    >>> index, direction = find_profiles(data["depth"], data["time"], min_range=10)
    '''
    options = ProfileOptions.from_arguments(options, **kwds)
    depth = as_series(depth, "depth")
    n = depth.shape[0]
    valid = np.isfinite(depth)
    if timestamp is not None:
        t = as_series(timestamp, "timestamp")
        check_lengths(depth=depth, timestamp=t)
        valid &= np.isfinite(t)
    valid_index = np.flatnonzero(valid)
    if valid_index.shape[0] < 2:
        logger.debug("Fewer than two valid depth samples. Treating all data as a single cast.")
        return np.ones(n, float), np.zeros(n, float)
    z = depth[valid_index]
    sdz = np.sign(np.diff(z))
    profile_direction = np.full(n, np.nan)
    profile_direction[valid_index[0]:valid_index[-1]] = np.repeat(sdz, np.diff(valid_index))
    profile_direction[valid_index[-1]:] = sdz[-1]

    trend = _continue_trend(sdz)
    peaks = np.hstack([[0], np.flatnonzero(np.diff(trend)) + 1, [valid_index.shape[0]-1]])
    if timestamp is None:
        stamp = valid_index.astype(float)
    else:
        stamp = t[valid_index]
    heads, tails = _join_segments(z, stamp, peaks, options)
    # in-cast samples exclude reversal peaks, but not the ends of the data.
    start = valid_index[heads] + 1
    start[heads == 0] = valid_index[0]
    stop = valid_index[tails] - 1
    stop[tails == valid_index.shape[0]-1] = valid_index[-1]
    cast_range = np.abs(z[tails] - z[heads])
    cast_period = stamp[tails] - stamp[heads]
    accepted = (cast_range >= options.min_range) & (cast_period >= options.period) & (start <= stop)
    logger.debug("Found {} candidate casts, {} accepted.".format(heads.shape[0], np.count_nonzero(accepted)))
    marks = np.zeros(n+1, float)
    np.add.at(marks, start[accepted], 0.5)
    np.add.at(marks, stop[accepted] + 1, 0.5)
    profile_index = 0.5 + np.cumsum(marks[:n])
    return profile_index, profile_direction


def _continue_trend(sdz):
    ''' Replaces zero steps by the sign of the preceding non-zero step

    Leading zero steps take the sign of the first non-zero step. If all
    steps are zero, the input is returned unchanged.
    '''
    nonzero = np.flatnonzero(sdz)
    if not nonzero.shape[0]:
        return sdz
    i = np.where(sdz != 0, np.arange(sdz.shape[0]), 0)
    i = np.maximum.accumulate(i)
    i[:nonzero[0]] = nonzero[0]
    return sdz[i]


def _join_segments(z, stamp, peaks, options):
    ''' Returns the first and last valid sample of each candidate cast

    Segments between consecutive peaks that are stalls or shakes are
    dropped. Consecutive remaining segments of equal direction are
    joined if the depth inversion and the lapse between them do not
    exceed the inversion and interrupt thresholds.
    '''
    heads = peaks[:-1]
    tails = peaks[1:]
    cast_segment = (np.abs(z[tails] - z[heads]) >= options.stall) & (stamp[tails] - stamp[heads] >= options.shake)
    heads = heads[cast_segment]
    tails = tails[cast_segment]
    if heads.shape[0] < 2:
        return heads, tails
    direction = np.sign(z[tails] - z[heads])
    lapse = stamp[heads[1:]] - stamp[tails[:-1]]
    inversion = -direction[:-1]*(z[heads[1:]] - z[tails[:-1]])
    joined = (np.diff(direction) == 0) & (lapse <= options.interrupt) & (inversion <= options.inversion)
    return heads[np.hstack([[True], ~joined])], tails[np.hstack([~joined, [True]])]


def find_transects(waypoint_latitude, waypoint_longitude):
    '''Identifies transects from the waypoint the glider is heading to

    A new transect starts whenever the waypoint latitude or longitude
    changes with respect to its previous valid value.

    Parameters
    ----------
    waypoint_latitude : array-like
        latitude of the current waypoint, NaN when not reported
    waypoint_longitude : array-like
        longitude of the current waypoint, NaN when not reported

    Returns
    -------
    np.array
        transect number, starting at 1
    '''
    lat = as_series(waypoint_latitude, "waypoint_latitude")
    lon = as_series(waypoint_longitude, "waypoint_longitude")
    check_lengths(waypoint_latitude=lat, waypoint_longitude=lon)
    change = np.zeros(lat.shape, bool)
    for x in (lat, lon):
        valid = np.isfinite(x)
        idx = np.flatnonzero(valid)
        change[idx[1:]] |= np.diff(x[idx]) != 0
    return 1. + np.cumsum(change)


def cumulative_distance(latitude, longitude):
    '''Along-track distance from the first valid position

    Parameters
    ----------
    latitude : array-like
        latitude (decimal degrees), NaN for missing positions
    longitude : array-like
        longitude (decimal degrees), NaN for missing positions

    Returns
    -------
    np.array
        cumulative distance (m), NaN where the position is missing
    '''
    lat = as_series(latitude, "latitude")
    lon = as_series(longitude, "longitude")
    check_lengths(latitude=lat, longitude=lon)
    distance = np.full(lat.shape, np.nan)
    valid = np.isfinite(lat) & np.isfinite(lon)
    n = np.count_nonzero(valid)
    if n == 1:
        distance[valid] = 0.
    elif n > 1:
        ds = gsw.distance(lon[valid], lat[valid])
        distance[valid] = np.hstack([[0.], np.cumsum(ds)])
    return distance


class SimpleProfile(object):
    '''A data class holding a single cast

    Parameters
    ----------

    data : dict
        dictionary with data
    s : slice
        slice object to select a specific subset of the data
    direction : int
        +1 for a down cast, -1 for an up cast


    The data members can be accessed using a key in the data
    dictionary attribute. Alternatively, data can be accessed as an
    attribute of this class.

    Example
    -------

    >>> p = SimpleProfile(data, s, 1)
    >>> p.data["temp"][p.s]
    >>> p.temp

    '''
    def __init__(self, data, s, direction=0):
        self.data = data
        self.s = s
        self.direction = direction
        self.cache = {}

    def __getattr__(self, parameter):
        if parameter in ("data", "cache"):
            # not yet set, for example while unpickling.
            raise AttributeError(parameter)
        try:
            data = self.cache[parameter]
        except KeyError:
            try:
                d = self.data[parameter]
            except KeyError:
                raise AttributeError("'{}' object has no attribute '{}'.".format(self.__class__.__name__, parameter))
            data = d[self.s]
            self.cache[parameter] = data
        return data

    def keys(self):
        '''Returns the available parameter names

        Returns
        -------
        dict_keys
            list of available parameter names
        '''
        return self.data.keys()


class ProfileList(object):
    '''Container class holding a list of casts

    This class contains the raw data and information on how these data
    arrays are to be sliced in single casts. The slicing happens on
    demand, and returns a SimpleProfile object or any of its
    subclassed objects. The type of profile object can be selected by
    setting a profile_factory.

    Parameters
    ----------
    data : dict
        dictionary with time series

    profile_factory : class or None {None}
        profile_factory

    The default profile_factory is SimpleProfile.

    Note
    ----

    The class ProfileList is not intended to be called directly, but
    set by ProfileSplitter.
    '''

    def __init__(self, data, profile_factory=None):
        self.data = data
        self.slices = []
        self.directions = []
        self.profile_factory = profile_factory or SimpleProfile

    def __iter__(self):
        for i in range(len(self.slices)):
            yield self[i]

    def __len__(self):
        return len(self.slices)

    def __getitem__(self, index):
        if 0 <= index < len(self.slices):
            return self.profile_factory(self.data, self.slices[index], self.directions[index])
        else:
            raise IndexError(f"Index {index} is out of range for Data")

    def append(self, s, direction=0):
        self.slices.append(s)
        self.directions.append(direction)

    def __getattr__(self, parameter):
        if parameter in ("data", "slices"):
            raise AttributeError(parameter)
        try:
            d = self.data[parameter]
        except KeyError:
            raise AttributeError("'{}' object has no attribute '{}'.".format(self.__class__.__name__, parameter))
        return tuple([d[s] for s in self.slices])

    @property
    def parameters(self):
        return tuple(self.data.keys())


class ProfileSplitter(object):

    ''' A class to split glider data into casts

    Main class that accepts glider data in time series, and splits the
    data in down and up casts, using :func:`find_profiles`.

    Parameters
    ----------

    data : dictionary
        data to be split in casts. The dictionary is expected to contain key/value pairs for
        T_str (default "time") and D_str (default "depth"), as well as other data time series.

    min_range : float
        minimum vertical extent (m) of a cast

    profile_factory : object or None
        a class definition to create single casts. If None, SimpleProfile is used.

    kwds : dict
        further segmentation options (period, stall, shake, inversion,
        interrupt), see :class:`ProfileOptions`.

    Example
    -------
        >>> data = dict(time=t, depth=depth, temp=T, cond=C)
        >>> splitter = ProfileSplitter(data=data, min_range=10)
        >>> for cast in splitter.get_downcasts():
        ...     print(cast.temp.mean())
    '''

    T_str = 'time'
    D_str = 'depth'

    def __init__(self, data=None, min_range=0., profile_factory=None, **kwds):
        self.options = ProfileOptions(**kwds)
        self.set_min_range(min_range)
        self.data = data or {}
        self.summary = {}
        self.indices = []
        self.profile_index = None
        self.profile_direction = None
        self.profile_factory = profile_factory
        if data:
            self.split_profiles()

    def set_min_range(self, min_range):
        '''Sets the vertical extent a cast minimally should have

        Parameters
        ----------
        min_range : float
            minimum vertical extent (m)
        '''
        self.options.define(min_range=min_range)

    def get_min_range(self):
        '''Gets the vertical extent a cast minimally should have

        Returns
        -------
        float
            minimum vertical extent (m)
        '''
        return self.options.min_range

    def split_profiles(self, data=None):
        ''' Splits data into separate casts.

        Parameters
        ----------
        data : data dictionary or None
            a dictionary with data, and at least "time" and "depth" fields. If None, then
            the data dictionary supplied to the constructor is used.

        This method should be called before this object can do anything useful.'''
        self.data = data or self.data
        t = self.data[self.T_str]
        depth = self.data[self.D_str]
        self.profile_index, self.profile_direction = find_profiles(depth, t, self.options)
        self.indices = []
        pi = self.profile_index
        for k in np.unique(pi[pi == np.floor(pi)]):
            idx = np.flatnonzero(pi == k)
            s = slice(idx[0], idx[-1]+1)
            direction = int(np.sign(np.nansum(self.profile_direction[s])))
            self.indices.append((s, direction))
        self.summary['number_of_casts'] = len(self.indices)
        self.summary['number_of_downcasts'] = sum(1 for s, d in self.indices if d > 0)
        self.summary['number_of_upcasts'] = sum(1 for s, d in self.indices if d < 0)
        logger.debug("Split data in {} casts.".format(self.nop))

    @property
    def nop(self):
        '''Number of casts'''
        return len(self.indices)

    def get_downcasts(self):
        '''Get down casts only

        Returns
        -------
        :class:ProfileList
            Iterable container structure holding all down casts
        '''
        return self._get_casts_worker(lambda d: d > 0)

    def get_upcasts(self):
        '''Get up casts only

        Returns
        -------
        :class:ProfileList
            Iterable container structure holding all up casts
        '''
        return self._get_casts_worker(lambda d: d < 0)

    def get_casts(self):
        '''Get all casts

        Returns
        -------
        :class:ProfileList
            Iterable container structure holding all casts
        '''
        return self._get_casts_worker(lambda d: True)

    def get_cast_pairs(self):
        '''Get pairs of consecutive casts of opposite direction

        Returns
        -------
        list of (SimpleProfile, SimpleProfile)
            consecutive down/up or up/down casts
        '''
        casts = self.get_casts()
        pairs = []
        for i in range(len(casts)-1):
            if casts.directions[i] * casts.directions[i+1] == -1:
                pairs.append((casts[i], casts[i+1]))
            else:
                logger.debug("Dismissing cast pair {} (same direction).".format(i+1))
        return pairs

    # Private methods

    def _get_casts_worker(self, selector):
        pl = ProfileList(data=self.data, profile_factory=self.profile_factory)
        for s, direction in self.indices:
            if selector(direction):
                pl.append(s, direction)
        return pl
