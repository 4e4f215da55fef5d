from __future__ import annotations

"""
prediction.py
=============
Iterative prediction of twilight instants for a given sun elevation.

For each observed event the crossing instant of the requested sun elevation
is found by fixed-point iteration, starting from the observed instant:

  1) evaluate the ephemeris at the current guess;
  2) solve the spherical-triangle cosine rule for the hour angle at which the
     sun reaches zenith distance ``90 - elevation`` (the cosine is clamped to
     [-1, 1] where the elevation is never reached, e.g. polar day/night);
  3) convert the hour angle to minutes (4 min per degree) and subtract it
     from (rise) or add it to (set) the solar noon of the guess's UTC day;
  4) shift by whole days so the candidate stays closest to the observed
     instant.

After the last iteration, events whose final update still exceeds
``tolerance_s`` are considered not converged and returned as NaN.
"""

import logging
from typing import Any, Optional

import numpy as np

from .ephemeris import RAD, solar_parameters
from .model import SECONDS_PER_DAY, SiteCoordinate, TwilightList

log = logging.getLogger(__name__)


def predict_twilight_times(
    times: Any,
    rise: Any,
    site: SiteCoordinate,
    sun_elevation_deg: float,
    iterations: int = 4,
    tolerance_s: Optional[float] = 60.0,
) -> np.ndarray:
    """Predict the instants at which the sun crosses ``sun_elevation_deg``.

    Parameters
    ----------
    times : array-like
        Observed (or approximate) twilight instants, POSIX seconds.
    rise : array-like of bool
        True for sunrise events, False for sunsets. Broadcast against
        ``times``.
    site : SiteCoordinate
        Location of the logger.
    sun_elevation_deg : float
        Sun elevation at the crossing (negative below the horizon).
    iterations : int
        Number of fixed-point iterations (>= 1).
    tolerance_s : float or None
        Convergence tolerance on the last update, in seconds. ``None``
        disables the check. The check needs at least two iterations.

    Returns
    -------
    numpy.ndarray
        Predicted POSIX instants, NaN where the iteration did not converge.
    """
    if iterations < 1:
        raise ValueError(f"iterations must be >= 1, got {iterations}")

    observed = np.asarray(times, dtype=float).reshape(-1)
    if observed.size == 0:
        return observed.copy()
    is_rise = np.broadcast_to(np.asarray(rise, dtype=bool), observed.shape)

    lat = RAD * site.latitude_deg
    cos_z = np.cos(RAD * (90.0 - sun_elevation_deg))

    guess = observed.copy()
    previous = guess
    for _ in range(iterations):
        sun = solar_parameters(guess)
        with np.errstate(divide="ignore", invalid="ignore"):
            cos_hour = (cos_z - np.sin(lat) * sun.sin_dec) / (np.cos(lat) * sun.cos_dec)
        cos_hour = np.clip(cos_hour, -1.0, 1.0)
        delta_min = np.degrees(np.arccos(cos_hour)) * 4.0

        solar_noon_min = 720.0 - 4.0 * site.longitude_deg - sun.equation_of_time_min
        target_min = solar_noon_min + np.where(is_rise, -delta_min, delta_min)

        midnight = np.floor(guess / SECONDS_PER_DAY) * SECONDS_PER_DAY
        candidate = midnight + target_min * 60.0
        day_adjust = np.round((observed - candidate) / SECONDS_PER_DAY)
        previous, guess = guess, candidate + day_adjust * SECONDS_PER_DAY

    if tolerance_s is not None and iterations > 1:
        unconverged = ~(np.abs(guess - previous) <= tolerance_s)
        if np.any(unconverged):
            log.debug(
                "Twilight prediction did not converge for %d of %d events "
                "(elevation %.3f deg)",
                int(np.count_nonzero(unconverged)),
                guess.size,
                sun_elevation_deg,
            )
            guess = np.where(unconverged, np.nan, guess)

    return guess


def predict_twilights(
    twilights: TwilightList,
    site: SiteCoordinate,
    sun_elevation_deg: float,
    iterations: int = 4,
    tolerance_s: Optional[float] = 60.0,
) -> np.ndarray:
    """``predict_twilight_times`` for the events of a ``TwilightList``."""
    return predict_twilight_times(
        twilights.times,
        twilights.rise,
        site,
        sun_elevation_deg,
        iterations=iterations,
        tolerance_s=tolerance_s,
    )


__all__ = ["predict_twilight_times", "predict_twilights"]
