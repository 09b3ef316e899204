import numpy as np

import gsw

from glider_ctd import metrics


# Two halves of a unit square
def test_profile_area_square():
    assert np.isclose(metrics.profile_area([0, 1], [0, 0], [1, 0], [1, 1]), 1)


# A self-intersecting curve adds the areas of both lobes
def test_profile_area_bow_tie():
    assert np.isclose(metrics.profile_area([0, 1], [0, 1], [1, 0], [0, 1]), 0.5)


# NaN coordinates are ignored; too few points enclose nothing
def test_profile_area_invalid_points():
    area = metrics.profile_area([0, np.nan, 1], [0, 5, 0], [1, 0], [1, 1])
    assert np.isclose(area, 1)
    assert metrics.profile_area([0, np.nan], [0, 1], [1], [np.nan]) == 0


# Identical casts enclose no area
def test_profile_area_identical_casts():
    z = np.linspace(0, 40, 41)
    s = 34 + 0.01*z
    assert np.isclose(metrics.profile_area(s, z, s[::-1], z[::-1]), 0)


# Length of a polyline
def test_profile_length():
    assert np.isclose(metrics.profile_length([0, 3, np.nan, 3], [0, 4, 1, 5]), 6)
    assert metrics.profile_length([1], [1]) == 0


# Salinity from conductivity in S/m
def test_salinity():
    C = gsw.C_from_SP(35, 15, 10)
    assert np.isclose(metrics.salinity(C/10, 15, 10), 35)
