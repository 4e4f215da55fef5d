from __future__ import annotations

"""
calibration.py
==============
Sun-elevation ("gamma") calibration at a site of known location.

The objective is the median absolute difference, in minutes, between the
observed twilight instants and the instants predicted for a trial sun
elevation. Non-finite residuals (non-converged predictions) are left out of
the median; when none remain the objective returns ``PENALTY_MIN``. The
objective is not smooth (median, clamped hour angles), so it is minimized
with scipy's bounded scalar minimizer, which needs no derivatives and stops
after ``maxiter`` evaluations at most.
"""

import logging
from typing import Callable, Optional, Sequence

import numpy as np
from scipy.optimize import minimize_scalar

from .errors import InsufficientCalibrationDataError
from .model import CalibrationResult, SiteCoordinate, TwilightList
from .prediction import predict_twilights

log = logging.getLogger(__name__)

PENALTY_MIN = 1e6
MIN_CALIBRATION_EVENTS = 4


def timing_residuals_min(
    twilights: TwilightList,
    site: SiteCoordinate,
    sun_elevation_deg: float,
    iterations: int = 4,
    tolerance_s: Optional[float] = 60.0,
) -> np.ndarray:
    """Observed minus predicted twilight instants, in minutes."""
    predicted = predict_twilights(
        twilights, site, sun_elevation_deg, iterations=iterations, tolerance_s=tolerance_s
    )
    return (twilights.times - predicted) / 60.0


def make_objective(
    twilights: TwilightList,
    site: SiteCoordinate,
    iterations: int = 4,
    tolerance_s: Optional[float] = 60.0,
) -> Callable[[float], float]:
    """Return ``f(elevation) -> median |residual|`` in minutes."""

    def objective(elevation: float) -> float:
        res = timing_residuals_min(
            twilights, site, float(elevation), iterations=iterations, tolerance_s=tolerance_s
        )
        res = res[np.isfinite(res)]
        if res.size == 0:
            return PENALTY_MIN
        return float(np.median(np.abs(res)))

    return objective


def estimate_sun_elevation(
    twilights: TwilightList,
    site: SiteCoordinate,
    interval: Sequence[float] = (-12.0, 2.0),
    iterations: int = 4,
    tolerance_s: Optional[float] = 60.0,
    maxiter: int = 500,
    xatol: float = 1e-5,
) -> CalibrationResult:
    """Estimate the sun elevation that best reproduces the observed twilights.

    Parameters
    ----------
    twilights : TwilightList
        Calibration-window twilights (at least four).
    site : SiteCoordinate
        Known location of the logger during calibration.
    interval : (float, float)
        Search bounds for the sun elevation in degrees.
    iterations, tolerance_s
        Passed to the twilight predictor.
    maxiter, xatol
        Iteration cap and absolute tolerance (degrees) of the minimizer.

    Returns
    -------
    CalibrationResult
        ``zenith_deg = 90 - elevation``, the elevation itself, and the median
        absolute residual (minutes) at the optimum.

    Raises
    ------
    InsufficientCalibrationDataError
        Fewer than four twilight events.
    """
    n = len(twilights)
    if n < MIN_CALIBRATION_EVENTS:
        raise InsufficientCalibrationDataError(
            f"Need at least {MIN_CALIBRATION_EVENTS} twilight events to estimate "
            f"sun elevation, got {n}",
            stage="calibration",
            n_input=n,
        )
    lo, hi = (float(v) for v in interval)
    if not lo < hi:
        raise ValueError(f"interval must satisfy lower < upper, got {interval}")

    objective = make_objective(twilights, site, iterations=iterations, tolerance_s=tolerance_s)
    opt = minimize_scalar(
        objective,
        bounds=(lo, hi),
        method="bounded",
        options={"maxiter": int(maxiter), "xatol": float(xatol)},
    )
    elevation = float(opt.x)
    log.debug(
        "Optimizer: success=%s nfev=%s message=%s", opt.success, opt.nfev, opt.message
    )

    result = CalibrationResult(
        zenith_deg=90.0 - elevation,
        sun_elevation_deg=elevation,
        fit_residual_min=float(opt.fun),
        n_events=n,
        n_evaluations=int(opt.nfev),
    )
    log.info(
        "Calibration: zenith %.3f deg (sun elevation %.3f deg), residual %.2f min, "
        "n=%d",
        result.zenith_deg,
        result.sun_elevation_deg,
        result.fit_residual_min,
        n,
    )
    return result


__all__ = [
    "PENALTY_MIN",
    "MIN_CALIBRATION_EVENTS",
    "timing_residuals_min",
    "make_objective",
    "estimate_sun_elevation",
]
