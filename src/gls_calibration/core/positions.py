from __future__ import annotations

"""
positions.py
============
Threshold-method inversion of twilight pairs into positions.

Each pair of consecutive twilights (``tFirst``, ``tSecond``) yields one
position. Longitude follows from the mean apparent solar time of the rise and
the set (local noon or midnight is halfway between them); latitude is then
solved independently from each event with the zenith-distance equation

    sin(h) = sin(phi) * sin(dec) + cos(phi) * cos(dec) * cos(H)

rewritten as ``sin(h) = R * sin(phi + atan2(b, a))`` with ``a = sin(dec)``,
``b = cos(dec) * cos(H)`` and ``R = hypot(a, b)``. The two estimates are
averaged; an event whose ``R`` falls below ``tol`` (or whose solution is
outside [-90, 90]) contributes NaN instead. Pairs without any usable
latitude are dropped.
"""

from typing import Any, Tuple

import numpy as np

from .ephemeris import RAD, EphemerisState, solar_parameters
from .model import PositionSequence, TwilightList


def _wrap_lon_deg(lon: np.ndarray) -> np.ndarray:
    return np.mod(lon + 180.0, 360.0) - 180.0


def _latitude_from_event(
    sun: EphemerisState, lon_deg: np.ndarray, sin_h: np.ndarray, tol: float
) -> np.ndarray:
    hour_angle = RAD * (np.asarray(sun.solar_time_deg) + lon_deg - 180.0)
    a = np.asarray(sun.sin_dec)
    b = np.asarray(sun.cos_dec) * np.cos(hour_angle)
    r = np.hypot(a, b)
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = sin_h / r
    ratio = np.where(np.isfinite(ratio), np.clip(ratio, -1.0, 1.0), np.nan)
    phi = np.degrees(np.arcsin(ratio) - np.arctan2(b, a))
    bad = (r < tol) | (np.abs(phi) > 90.0)
    return np.where(bad, np.nan, phi)


def threshold_coordinates(
    t_first: Any,
    t_second: Any,
    first_is_rise: Any,
    sun_elevation_deg: Any,
    tol: float = 1e-6,
) -> Tuple[np.ndarray, np.ndarray]:
    """Invert twilight pairs into ``(longitude_deg, latitude_deg)`` arrays.

    Parameters
    ----------
    t_first, t_second : array-like
        POSIX instants of the first and second event of each pair.
    first_is_rise : array-like of bool
        True when ``t_first`` is the sunrise of the pair.
    sun_elevation_deg : float or array-like
        Calibrated sun elevation at the crossing.
    tol : float
        Numerical-stability tolerance on the triangle magnitude.

    Returns
    -------
    (lon, lat) : (numpy.ndarray, numpy.ndarray)
        Longitude wrapped to [-180, 180); latitude NaN where unusable.
    """
    t1 = np.asarray(t_first, dtype=float).reshape(-1)
    t2 = np.asarray(t_second, dtype=float).reshape(-1)
    if t1.size == 0:
        return np.empty(0), np.empty(0)
    first_rise = np.broadcast_to(np.asarray(first_is_rise, dtype=bool), t1.shape)
    elev = np.broadcast_to(np.asarray(sun_elevation_deg, dtype=float), t1.shape)

    rise_time = np.where(first_rise, t1, t2)
    set_time = np.where(first_rise, t2, t1)

    sun_rise = solar_parameters(rise_time)
    sun_set = solar_parameters(set_time)
    sin_h = np.cos(RAD * (90.0 - elev))

    st_rise = sun_rise.solar_time_deg
    st_set = sun_set.solar_time_deg
    lon = -(st_rise + st_set + np.where(st_rise < st_set, 360.0, 0.0)) / 2.0
    lon = _wrap_lon_deg(lon)

    lat1 = _latitude_from_event(sun_rise, lon, sin_h, tol)
    lat2 = _latitude_from_event(sun_set, lon, sin_h, tol)
    both = np.vstack([lat1, lat2])
    n_ok = np.count_nonzero(np.isfinite(both), axis=0)
    total = np.nansum(both, axis=0)
    with np.errstate(divide="ignore", invalid="ignore"):
        lat = np.where(n_ok > 0, total / n_ok, np.nan)

    return lon, lat


def threshold_positions(
    twilights: TwilightList,
    sun_elevation_deg: float,
    tol: float = 1e-6,
) -> PositionSequence:
    """Positions for every consecutive twilight pair of ``twilights``.

    The last event has no successor and yields no pair. Each position is
    stamped with the first event of its pair; pairs with no usable latitude
    are left out.
    """
    if len(twilights) < 2:
        return PositionSequence.empty()
    t_first = twilights.times[:-1]
    t_second = twilights.times[1:]
    lon, lat = threshold_coordinates(
        t_first, t_second, twilights.rise[:-1], sun_elevation_deg, tol=tol
    )
    ok = np.isfinite(lat)
    return PositionSequence(t_first[ok], lon[ok], lat[ok])


__all__ = ["threshold_coordinates", "threshold_positions"]
