from __future__ import annotations

"""
synthetic.py
============
Idealised light series and twilight lists for examples and tests.

The light model is a smooth function of the modelled sun elevation:
``threshold * 10 ** ((h - h0) / deg_per_decade)`` clipped to
``[night_lux, day_lux]``, where ``h0`` is the requested crossing elevation.
The curve crosses the detection threshold exactly when the sun passes
``h0``, so a calibration on this data should recover ``h0``.
"""

from typing import Any, Optional

import numpy as np

from .core import ephemeris
from .core.model import (
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
    LightSeries,
    SiteCoordinate,
    TwilightList,
    to_posix,
)
from .core.prediction import predict_twilight_times


def synthetic_light_series(
    site: SiteCoordinate,
    start: Any,
    days: float,
    step_s: float = 120.0,
    sun_elevation_deg: float = -6.0,
    threshold: float = 2.0,
    day_lux: float = 1000.0,
    night_lux: float = 0.0,
    deg_per_decade: float = 4.0,
    noise_lux: float = 0.0,
    seed: Optional[int] = None,
) -> LightSeries:
    """Light samples a stationary logger at ``site`` would record.

    Parameters
    ----------
    site : SiteCoordinate
        Logger location.
    start : timestamp-like
        First sample (POSIX seconds, ISO string or datetime).
    days : float
        Length of the series.
    step_s : float
        Sampling interval in seconds.
    sun_elevation_deg : float
        Sun elevation at which the light crosses ``threshold``.
    noise_lux : float
        Standard deviation of additive Gaussian noise (0 for none). Noisy
        values are clipped at 0.
    seed : int, optional
        Seed of the noise generator.
    """
    if step_s <= 0:
        raise ValueError(f"step_s must be positive, got {step_s}")
    t0 = float(to_posix(start)[0])
    times = t0 + np.arange(0.0, days * SECONDS_PER_DAY + 1e-9, step_s)

    h = ephemeris.sun_elevation_deg(times, site.latitude_deg, site.longitude_deg)
    light = threshold * np.power(10.0, (h - sun_elevation_deg) / deg_per_decade)
    light = np.clip(light, night_lux, day_lux)
    if noise_lux > 0:
        rng = np.random.default_rng(seed)
        light = np.clip(light + rng.normal(0.0, noise_lux, light.size), 0.0, None)
    return LightSeries(times, light)


def synthetic_twilights(
    site: SiteCoordinate,
    start: Any,
    count: int,
    sun_elevation_deg: float = -6.0,
    iterations: int = 4,
) -> TwilightList:
    """Twilights predicted at ``site`` from ``count`` seeds 12 h apart.

    Seeds alternate rise/set starting with a rise. Events the predictor
    cannot place (elevation never reached) are left out; the result is
    sorted by time.
    """
    t0 = float(to_posix(start)[0])
    seeds = t0 + 12.0 * SECONDS_PER_HOUR * np.arange(count)
    rise = np.arange(count) % 2 == 0
    predicted = predict_twilight_times(
        seeds, rise, site, sun_elevation_deg, iterations=iterations, tolerance_s=None
    )
    ok = np.isfinite(predicted)
    return TwilightList(predicted[ok], rise[ok])


__all__ = ["synthetic_light_series", "synthetic_twilights"]
