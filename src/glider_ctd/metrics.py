'''
Measures of the mismatch between casts.

A lag in the CTD sensors shows up as a separation between the down
and up cast of a yo, or as spikes in the salinity profile. The
functions in this module quantify these effects, so that lag
parameters can be found by minimising them.

lucas.merckelbach@hereon.de
'''

import numpy as np
import gsw
from shapely.geometry import Polygon
from shapely.validation import make_valid


def salinity(cond, temp, pres, conductivity_factor=10.):
    ''' Practical salinity from conductivity, temperature and pressure

    Parameters
    ----------
    cond : array-like
        conductivity, in units that turn into mS/cm when multiplied by conductivity_factor
    temp : array-like
        in-situ temperature (degC)
    pres : array-like
        sea pressure (dbar)
    conductivity_factor : float {10}
        conversion factor to mS/cm. The default converts S/m.

    Returns
    -------
    np.array
        practical salinity
    '''
    return gsw.SP_from_C(np.asarray(cond, float)*conductivity_factor, temp, pres)


def profile_area(x1, y1, x2, y2):
    ''' Area enclosed by two joined profiles

    The first profile is followed by the second one, and the resulting
    curve is closed. Where the curve intersects itself, the areas of
    all enclosed lobes are added.

    Parameters
    ----------
    x1, y1 : array-like
        coordinates of the first profile
    x2, y2 : array-like
        coordinates of the second profile

    Returns
    -------
    float
        enclosed area. Points with a NaN coordinate are ignored; fewer
        than three points enclose no area.
    '''
    xy = np.vstack([np.column_stack([np.ravel(x1), np.ravel(y1)]),
                    np.column_stack([np.ravel(x2), np.ravel(y2)])]).astype(float)
    xy = xy[np.all(np.isfinite(xy), axis=1)]
    if xy.shape[0] < 3:
        return 0.
    polygon = Polygon(xy)
    if not polygon.is_valid:
        polygon = make_valid(polygon)
    return polygon.area


def profile_length(x, y):
    ''' Length of the curve through the points (x, y), ignoring points with a NaN coordinate.'''
    xy = np.column_stack([np.ravel(x), np.ravel(y)]).astype(float)
    xy = xy[np.all(np.isfinite(xy), axis=1)]
    if xy.shape[0] < 2:
        return 0.
    return np.sum(np.hypot(*np.diff(xy, axis=0).T))
