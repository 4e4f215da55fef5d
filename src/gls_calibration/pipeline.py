from __future__ import annotations

"""
pipeline.py
===========
Calibration and position inversion for a single individual.

Stages, in order (names are reported on failure):

  calibration_window     pick the window at the known site
  calibration_twilights  detect and strictly filter its twilights
  calibration            fit the sun elevation
  deployment_twilights   detect and loosely filter twilights after the window
  positions              solve positions and apply the post-filters

``process_individual`` is a pure function of its inputs. Expected failures
(``GLSCalibrationError``) come back as a failed ``IndividualResult`` carrying
the stage and input size; any other exception propagates.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd

from .core.calibration import estimate_sun_elevation
from .core.detection import LightInput, as_light_series, detect_twilights
from .core.errors import GLSCalibrationError, InsufficientDataError
from .core.filtering import FilterReport, filter_twilights_detailed
from .core.model import (
    SECONDS_PER_DAY,
    CalibrationResult,
    CalibrationWindow,
    PipelineConfig,
    PositionConfig,
    PositionSequence,
    SiteCoordinate,
    TwilightList,
    iso_utc,
    to_posix,
)
from .core.positions import threshold_positions
from .core.window import select_calibration_window
from .io.export import convert_to_glsmerge, positions_to_frame

log = logging.getLogger(__name__)

HEMISPHERE_CONSISTENT = "consistent"
HEMISPHERE_INCONSISTENT = "inconsistent"
HEMISPHERE_UNDETERMINED = "undetermined"


@dataclass(frozen=True)
class CalibrationSummary:
    """One row of ``calibration_summary.csv``."""

    individual_id: str
    zenith: float
    sun_elevation: float
    fit_residual_min: float
    n_twilights_calib: int
    n_twilights_full: int
    n_positions: int
    lat_median: float
    lon_median: float
    hemisphere_check: str
    calib_start: str
    calib_end: str
    calib_days: int

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass(frozen=True, eq=False)
class IndividualResult:
    """Outcome of ``process_individual``: success, or failure with context."""

    individual_id: str
    ok: bool
    summary: Optional[CalibrationSummary] = None
    calibration: Optional[CalibrationResult] = None
    window: Optional[CalibrationWindow] = None
    calibration_twilights: TwilightList = field(default_factory=TwilightList.empty)
    deployment_twilights: TwilightList = field(default_factory=TwilightList.empty)
    positions: PositionSequence = field(default_factory=PositionSequence.empty)
    filter_reports: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    # Failure context
    stage: Optional[str] = None
    error_type: Optional[str] = None
    message: Optional[str] = None
    n_input: Optional[int] = None

    @classmethod
    def failure(cls, individual_id: str, err: GLSCalibrationError) -> "IndividualResult":
        return cls(
            individual_id=individual_id,
            ok=False,
            stage=err.stage,
            error_type=type(err).__name__,
            message=err.message,
            n_input=err.n_input,
        )

    def positions_frame(self) -> pd.DataFrame:
        if self.calibration is None:
            raise ValueError(f"{self.individual_id}: no calibration available")
        return positions_to_frame(self.positions, self.individual_id, self.calibration)

    def glsmerge_frame(self) -> pd.DataFrame:
        return convert_to_glsmerge(
            self.positions_frame(), self.individual_id, self.calibration.zenith_deg
        )

    def to_log_entry(self) -> Dict[str, Any]:
        """Row of ``processing_log.csv``."""
        entry: Dict[str, Any] = {
            "individual_id": self.individual_id,
            "status": "SUCCESS" if self.ok else "FAILED",
            "stage": self.stage,
            "error_type": self.error_type,
            "error": self.message,
            "n_input": self.n_input,
            "n_calibration_twilights": len(self.calibration_twilights),
            "n_deployment_twilights": len(self.deployment_twilights),
            "n_positions": len(self.positions),
            "zenith": None,
            "hemisphere": None,
        }
        if self.summary is not None:
            entry["zenith"] = self.summary.zenith
            entry["hemisphere"] = self.summary.hemisphere_check
        return entry


# ----- Post-filters -----


def _utc_day(t: np.ndarray) -> np.ndarray:
    return np.floor(np.asarray(t, dtype=float) / SECONDS_PER_DAY)


def exclusion_mask(positions: PositionSequence, periods) -> np.ndarray:
    """True for positions whose UTC date lies in one of ``periods`` (inclusive)."""
    drop = np.zeros(len(positions), dtype=bool)
    days = _utc_day(positions.times)
    for start, end in periods:
        d0 = _utc_day(to_posix(start))[0]
        d1 = _utc_day(to_posix(end))[0]
        drop |= (days >= d0) & (days <= d1)
    return drop


def apply_position_filters(
    positions: PositionSequence, cfg: PositionConfig
) -> Tuple[PositionSequence, Dict[str, int]]:
    """Drop excluded periods, then positions outside the lat/lon bounds."""
    counts = {"n_input": len(positions)}
    out = positions.select(~exclusion_mask(positions, cfg.exclude_periods))
    counts["n_after_exclusions"] = len(out)

    lat_lo, lat_hi = cfg.lat_range_deg
    lon_lo, lon_hi = cfg.lon_range_deg
    lat, lon = out.latitude_deg, out.longitude_deg
    inside = (lat >= lat_lo) & (lat <= lat_hi) & (lon >= lon_lo) & (lon <= lon_hi)
    out = out.select(inside)
    counts["n_final"] = len(out)
    return out, counts


def hemisphere_check(positions: PositionSequence, site: SiteCoordinate) -> str:
    """Compare the sign of the median longitude with the site's."""
    if len(positions) == 0:
        return HEMISPHERE_UNDETERMINED
    median_lon = float(np.median(positions.longitude_deg))
    same = (median_lon < 0) == (site.longitude_deg < 0)
    return HEMISPHERE_CONSISTENT if same else HEMISPHERE_INCONSISTENT


def _median_2dp(x: np.ndarray) -> float:
    return round(float(np.median(x)), 2) if len(x) else float("nan")


# ----- Pipeline -----


def _detect_and_filter(
    light, cfg: PipelineConfig, strict: bool
) -> Tuple[TwilightList, FilterReport]:
    threshold = cfg.detection.threshold
    raw = detect_twilights(light, threshold)
    return filter_twilights_detailed(
        raw, light, threshold=threshold, strict=strict, config=cfg.filter
    )


def _run_stages(
    light_data: LightInput,
    site: SiteCoordinate,
    individual_id: str,
    cfg: PipelineConfig,
) -> IndividualResult:
    ccfg = cfg.calibration
    threshold = cfg.detection.threshold

    stage = "input"
    try:
        light = as_light_series(light_data)

        stage = "calibration_window"
        window = select_calibration_window(
            light,
            site,
            threshold=threshold,
            min_twilights=ccfg.min_twilights,
            durations_days=ccfg.durations_days,
            search_days=ccfg.search_days,
            min_samples=ccfg.min_samples,
        )

        stage = "calibration_twilights"
        calib_light = light.between(window.start, window.end)
        twl_calib, calib_report = _detect_and_filter(calib_light, cfg, strict=True)

        stage = "calibration"
        calibration = estimate_sun_elevation(
            twl_calib,
            site,
            interval=ccfg.elevation_interval_deg,
            iterations=ccfg.iterations,
            tolerance_s=ccfg.tolerance_s,
            maxiter=ccfg.maxiter,
            xatol=ccfg.xatol_deg,
        )

        stage = "deployment_twilights"
        deploy_light = light.between(window.end)
        twl_deploy, deploy_report = _detect_and_filter(deploy_light, cfg, strict=False)
        if len(twl_deploy) < 2:
            raise InsufficientDataError(
                "Need at least 2 deployment twilights to form a position, "
                f"got {len(twl_deploy)}",
                n_input=len(deploy_light),
            )

        stage = "positions"
        raw_positions = threshold_positions(
            twl_deploy, calibration.sun_elevation_deg, tol=cfg.positions.tol
        )
        positions, counts = apply_position_filters(raw_positions, cfg.positions)
    except GLSCalibrationError as e:
        raise e.with_context(stage=stage, individual_id=individual_id)

    counts["n_solved"] = len(raw_positions)
    if len(positions) < cfg.positions.min_positions:
        log.warning(
            "%s: only %d positions after filtering (minimum %d)",
            individual_id,
            len(positions),
            cfg.positions.min_positions,
            extra={"individual_id": individual_id, "stage": "positions"},
        )
    log.info(
        "%s: %d positions (%d solved)",
        individual_id,
        len(positions),
        len(raw_positions),
        extra={"individual_id": individual_id, "stage": "positions", "counts": counts},
    )

    hemisphere = hemisphere_check(positions, site)
    summary = CalibrationSummary(
        individual_id=individual_id,
        zenith=calibration.zenith_deg,
        sun_elevation=calibration.sun_elevation_deg,
        fit_residual_min=calibration.fit_residual_min,
        n_twilights_calib=len(twl_calib),
        n_twilights_full=len(twl_deploy),
        n_positions=len(positions),
        lat_median=_median_2dp(positions.latitude_deg),
        lon_median=_median_2dp(positions.longitude_deg),
        hemisphere_check=hemisphere,
        calib_start=iso_utc(window.start),
        calib_end=iso_utc(window.end),
        calib_days=window.duration_days,
    )
    return IndividualResult(
        individual_id=individual_id,
        ok=True,
        summary=summary,
        calibration=calibration,
        window=window,
        calibration_twilights=twl_calib,
        deployment_twilights=twl_deploy,
        positions=positions,
        filter_reports={
            "calibration": calib_report.to_dict(),
            "deployment": deploy_report.to_dict(),
            "positions": counts,
        },
    )


def process_individual(
    light_data: LightInput,
    site: SiteCoordinate,
    individual_id: str = "individual",
    config: Optional[PipelineConfig] = None,
) -> IndividualResult:
    """Calibrate one logger at ``site`` and invert its deployment twilights.

    Parameters
    ----------
    light_data : LightSeries or pandas.DataFrame
        Full-deployment light samples, calibration period first.
    site : SiteCoordinate
        Known location during the calibration window.
    individual_id : str
        Identifier used in logs, failure context and outputs.
    config : PipelineConfig, optional
        Settings; defaults apply when omitted.

    Returns
    -------
    IndividualResult
        ``ok`` is False when a stage failed with a ``GLSCalibrationError``;
        ``stage``, ``error_type``, ``message`` and ``n_input`` describe it.
    """
    cfg = config or PipelineConfig()
    try:
        result = _run_stages(light_data, site, individual_id, cfg)
    except GLSCalibrationError as e:
        log.warning(
            "%s failed: %s",
            individual_id,
            e,
            extra={
                "individual_id": individual_id,
                "stage": e.stage,
                "n_input": e.n_input,
            },
        )
        return IndividualResult.failure(individual_id, e)

    s = result.summary
    log.info(
        "%s: zenith %.2f deg, %d positions, hemisphere %s",
        individual_id,
        s.zenith,
        s.n_positions,
        s.hemisphere_check,
        extra={"individual_id": individual_id, "stage": "done"},
    )
    return result


__all__ = [
    "HEMISPHERE_CONSISTENT",
    "HEMISPHERE_INCONSISTENT",
    "HEMISPHERE_UNDETERMINED",
    "CalibrationSummary",
    "IndividualResult",
    "exclusion_mask",
    "apply_position_filters",
    "hemisphere_check",
    "process_individual",
]
