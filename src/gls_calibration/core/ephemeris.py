from __future__ import annotations

"""
ephemeris.py
============
Low-precision solar ephemeris (NOAA solar position formulas).

``solar_parameters`` is the model the whole pipeline relies on: it returns,
for each instant, the apparent solar time at Greenwich, the equation of time
and the sine/cosine of the solar declination. All trigonometry is done in
radians and angles are reduced modulo 360 degrees where the formulas ask for
it. The function is total for finite instants and vectorized over arrays.

``get_sun_altaz`` is a small facade returning the sun's azimuth/elevation at
a site. The ``"noaa"`` backend uses ``solar_parameters``; ``"astropy"`` and
``"pysolar"`` call the respective libraries directly (optional dependencies)
so the NOAA model can be checked against a reference.
"""

from datetime import datetime, timezone
from typing import Any, Tuple

import numpy as np

from .model import EphemerisState, SiteCoordinate, iso_utc, to_posix

RAD = np.pi / 180.0

# Julian day of the POSIX epoch and of J2000.0.
JD_UNIX_EPOCH = 2440587.5
JD_J2000 = 2451545.0


def julian_day(t: Any) -> np.ndarray:
    """Julian Day for POSIX seconds."""
    return np.asarray(t, dtype=float) / 86400.0 + JD_UNIX_EPOCH


def julian_century(jd: Any) -> np.ndarray:
    return (np.asarray(jd, dtype=float) - JD_J2000) / 36525.0


def solar_parameters(t: Any) -> EphemerisState:
    """Return the sun parameters at POSIX instant(s) ``t``.

    Parameters
    ----------
    t : float or array-like
        POSIX seconds (UTC).

    Returns
    -------
    EphemerisState
        ``solar_time_deg`` (apparent solar time at Greenwich, as degrees of
        hour angle), ``equation_of_time_min``, ``sin_dec``, ``cos_dec``. Array
        fields when ``t`` is an array, floats when it is a scalar.
    """
    scalar = np.ndim(t) == 0
    jd = julian_day(t)
    jc = julian_century(jd)

    geom_mean_long = np.mod(280.46646 + jc * (36000.76983 + 0.0003032 * jc), 360.0)
    geom_mean_anom = np.mod(357.52911 + jc * (35999.05029 - 0.0001537 * jc), 360.0)
    ecc = 0.016708634 - jc * (0.000042037 + 0.0000001267 * jc)

    m = RAD * geom_mean_anom
    eq_center = (
        np.sin(m) * (1.914602 - jc * (0.004817 + 0.000014 * jc))
        + np.sin(2.0 * m) * (0.019993 - 0.000101 * jc)
        + np.sin(3.0 * m) * 0.000289
    )

    true_long = geom_mean_long + eq_center
    # Longitude of the ascending node of the Moon's orbit (nutation term).
    omega = RAD * np.mod(125.04 - 1934.136 * jc, 360.0)
    apparent_long = true_long - 0.00569 - 0.00478 * np.sin(omega)

    seconds = 21.448 - jc * (46.815 + jc * (0.00059 - jc * 0.001813))
    mean_obliq = 23.0 + (26.0 + seconds / 60.0) / 60.0
    obliq_corr = mean_obliq + 0.00256 * np.cos(omega)

    y = np.tan(RAD * obliq_corr / 2.0) ** 2
    l0 = RAD * geom_mean_long
    eq_time = (4.0 / RAD) * (
        y * np.sin(2.0 * l0)
        - 2.0 * ecc * np.sin(m)
        + 4.0 * ecc * y * np.sin(m) * np.cos(2.0 * l0)
        - 0.5 * y**2 * np.sin(4.0 * l0)
        - 1.25 * ecc**2 * np.sin(2.0 * m)
    )

    dec = np.arcsin(np.sin(RAD * obliq_corr) * np.sin(RAD * apparent_long))
    solar_time = (np.mod(jd - 0.5, 1.0) * 1440.0 + eq_time) / 4.0

    if scalar:
        return EphemerisState(
            solar_time_deg=float(solar_time),
            equation_of_time_min=float(eq_time),
            sin_dec=float(np.sin(dec)),
            cos_dec=float(np.cos(dec)),
        )
    return EphemerisState(
        solar_time_deg=solar_time,
        equation_of_time_min=eq_time,
        sin_dec=np.sin(dec),
        cos_dec=np.cos(dec),
    )


def hour_angle_deg(state: EphemerisState, longitude_deg: Any) -> np.ndarray:
    """Local hour angle of the sun (degrees, 0 at local apparent noon)."""
    return np.asarray(state.solar_time_deg) + np.asarray(longitude_deg) - 180.0


def sun_elevation_deg(t: Any, latitude_deg: float, longitude_deg: float) -> np.ndarray:
    """Geometric sun elevation (degrees) at POSIX instant(s) ``t``."""
    state = solar_parameters(np.asarray(t, dtype=float))
    h = RAD * hour_angle_deg(state, longitude_deg)
    lat = RAD * latitude_deg
    sin_el = np.sin(lat) * state.sin_dec + np.cos(lat) * state.cos_dec * np.cos(h)
    return np.degrees(np.arcsin(np.clip(sin_el, -1.0, 1.0)))


def _sun_noaa(t: float, site: SiteCoordinate) -> Tuple[float, float]:
    state = solar_parameters(float(t))
    h = RAD * float(hour_angle_deg(state, site.longitude_deg))
    lat = RAD * site.latitude_deg
    sin_el = np.sin(lat) * state.sin_dec + np.cos(lat) * state.cos_dec * np.cos(h)
    el = float(np.degrees(np.arcsin(np.clip(sin_el, -1.0, 1.0))))
    az = np.degrees(
        np.arctan2(
            -state.cos_dec * np.sin(h),
            state.sin_dec * np.cos(lat) - state.cos_dec * np.sin(lat) * np.cos(h),
        )
    )
    return float(np.mod(az, 360.0)), el


def _sun_astropy(t: float, site: SiteCoordinate) -> Tuple[float, float]:
    try:
        from astropy.time import Time
        from astropy.coordinates import EarthLocation, AltAz, get_sun
        import astropy.units as u
    except ImportError as e:
        raise NotImplementedError(
            "Astropy backend requested but astropy is not available."
        ) from e

    obstime = Time(iso_utc(t), format="isot", scale="utc")
    loc = EarthLocation(lon=site.longitude_deg * u.deg, lat=site.latitude_deg * u.deg)
    # No refraction: compare against the geometric NOAA elevation.
    frame = AltAz(obstime=obstime, location=loc, pressure=0 * u.hPa)
    sun = get_sun(obstime).transform_to(frame)
    return float(np.mod(sun.az.to(u.deg).value, 360.0)), float(sun.alt.to(u.deg).value)


def _sun_pysolar(t: float, site: SiteCoordinate) -> Tuple[float, float]:
    try:
        from pysolar.solar import get_azimuth, get_altitude_fast
    except ImportError as e:
        raise NotImplementedError(
            "PySolar backend requested but pysolar is not available."
        ) from e

    dt = datetime.fromtimestamp(float(t), tz=timezone.utc)
    az = float(get_azimuth(site.latitude_deg, site.longitude_deg, dt))
    el = float(get_altitude_fast(site.latitude_deg, site.longitude_deg, dt))
    return float(np.mod(az, 360.0)), el


def get_sun_altaz(t: Any, site: SiteCoordinate, backend: str = "noaa") -> Tuple[float, float]:
    """Return (az_deg, el_deg) of the Sun at ``site`` for one instant.

    ``t`` may be POSIX seconds or anything ``to_posix`` accepts.
    """
    ts = float(to_posix(t)[0])
    be = (backend or "noaa").lower()
    if be == "noaa":
        return _sun_noaa(ts, site)
    if be == "astropy":
        return _sun_astropy(ts, site)
    if be == "pysolar":
        return _sun_pysolar(ts, site)
    raise ValueError(f"Unsupported ephemeris backend: {backend}")


__all__ = [
    "julian_day",
    "julian_century",
    "solar_parameters",
    "hour_angle_deg",
    "sun_elevation_deg",
    "get_sun_altaz",
]
