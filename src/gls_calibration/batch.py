from __future__ import annotations

"""
batch.py
========
Batch calibration of every ``.lux`` file below a directory.

Each file is one individual (id = file stem). Individuals are processed
independently, in parallel with joblib when ``n_jobs != 1``; a failure is
recorded in the processing log and never stops the batch.

Output layout::

    <output_dir>/data/<id>_calibrated.csv
    <output_dir>/data/<id>_GLSmergedata.csv
    <output_dir>/data/calibration_summary.csv
    <output_dir>/data/all_individuals_calibrated.csv
    <output_dir>/data/GLSmergedata.csv
    <output_dir>/data/processing_log.csv
    <output_dir>/data/calibrations.joblib
    <output_dir>/figures/<id>_calibration.png   (with create_plots)
    <output_dir>/figures/<id>_track.png         (with create_plots)
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import joblib
import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .core.errors import GLSCalibrationError
from .core.model import PipelineConfig, PositionSequence, SiteCoordinate
from .io.export import (
    GLSMERGE_COLUMNS,
    POSITION_COLUMNS,
    write_combined_outputs,
    write_individual_outputs,
)
from .io.lux import read_lux_file
from .logging_config import StepTimer
from .pipeline import IndividualResult, process_individual

log = logging.getLogger(__name__)

BUNDLE_FORMAT = 1


@dataclass
class BatchResult:
    summary: pd.DataFrame
    positions: Dict[str, pd.DataFrame]
    processing_log: pd.DataFrame
    results: Dict[str, IndividualResult] = field(default_factory=dict)
    outputs: Dict[str, Path] = field(default_factory=dict)

    @property
    def n_success(self) -> int:
        return sum(1 for r in self.results.values() if r.ok)

    @property
    def n_failed(self) -> int:
        return len(self.results) - self.n_success


def discover_lux_files(data_dir: str | os.PathLike) -> List[Tuple[str, Path]]:
    """``(individual_id, path)`` for every ``*.lux`` file below ``data_dir``.

    Drift-adjusted copies (``driftadj`` in the name) are skipped. The list is
    sorted by path.
    """
    root = Path(data_dir)
    files = sorted(
        p for p in root.rglob("*.lux") if p.is_file() and "driftadj" not in p.name
    )
    return [(p.stem, p) for p in files]


def _process_file(
    path: Path,
    individual_id: str,
    site: SiteCoordinate,
    config: PipelineConfig,
    figures_dir: Optional[Path],
) -> Tuple[IndividualResult, float]:
    with StepTimer() as timer:
        try:
            light = read_lux_file(path)
        except GLSCalibrationError as e:
            e.with_context(stage="read", individual_id=individual_id)
            log.warning("%s failed: %s", individual_id, e)
            return IndividualResult.failure(individual_id, e), 0.0

        result = process_individual(light, site, individual_id, config)

        if figures_dir is not None and result.ok:
            from .plotting import plot_calibration, plot_track

            window = result.window
            plot_calibration(
                light.between(window.start, window.end),
                result.calibration_twilights,
                config.detection.threshold,
                individual_id,
                figures_dir,
            )
            plot_track(
                result.positions,
                site,
                individual_id,
                figures_dir,
                result.summary.hemisphere_check,
            )
    return result, timer.elapsed


def calibrate_batch(
    data_dir: str | os.PathLike,
    output_dir: str | os.PathLike,
    site: SiteCoordinate,
    config: Optional[PipelineConfig] = None,
    n_jobs: int = 1,
    create_plots: bool = False,
) -> BatchResult:
    """Calibrate every individual found in ``data_dir``.

    Parameters
    ----------
    data_dir : path
        Directory searched recursively for ``.lux`` files.
    output_dir : path
        Root of the output tree (created if needed).
    site : SiteCoordinate
        Known location of all loggers during their calibration window.
    config : PipelineConfig, optional
        Pipeline settings.
    n_jobs : int
        joblib worker count (1 runs in-process, -1 uses all cores).
    create_plots : bool
        Also write diagnostic PNG figures.

    Raises
    ------
    FileNotFoundError
        ``data_dir`` holds no ``.lux`` file.
    """
    cfg = config or PipelineConfig()
    files = discover_lux_files(data_dir)
    if not files:
        raise FileNotFoundError(f"No .lux files found in {data_dir}")

    out = Path(output_dir)
    data_out = out / "data"
    data_out.mkdir(parents=True, exist_ok=True)
    figures_dir = out / "figures" if create_plots else None
    if figures_dir is not None:
        figures_dir.mkdir(parents=True, exist_ok=True)

    log.info(
        "Batch: %d individual(s), site %s (%.5f, %.5f), threshold %g, n_jobs=%d",
        len(files),
        site.name,
        site.latitude_deg,
        site.longitude_deg,
        cfg.detection.threshold,
        n_jobs,
    )

    if n_jobs == 1:
        outcomes = [
            _process_file(path, ind, site, cfg, figures_dir) for ind, path in files
        ]
    else:
        outcomes = Parallel(n_jobs=n_jobs)(
            delayed(_process_file)(path, ind, site, cfg, figures_dir)
            for ind, path in files
        )

    results: Dict[str, IndividualResult] = {}
    positions: Dict[str, pd.DataFrame] = {}
    summaries: List[Dict[str, Any]] = []
    gls_frames: List[pd.DataFrame] = []
    log_rows: List[Dict[str, Any]] = []

    for (ind, path), (result, elapsed) in zip(files, outcomes):
        results[ind] = result
        entry = result.to_log_entry()
        entry["file_path"] = str(path)
        entry["timing_seconds"] = round(elapsed, 3)
        log_rows.append(entry)
        if not result.ok:
            continue
        pos_df = result.positions_frame()
        gls_df = result.glsmerge_frame()
        write_individual_outputs(data_out, ind, pos_df, gls_df)
        positions[ind] = pos_df
        gls_frames.append(gls_df)
        summaries.append(result.summary.to_dict())

    summary_df = pd.DataFrame(summaries)
    all_positions = (
        pd.concat(list(positions.values()), ignore_index=True)
        if positions
        else pd.DataFrame(columns=POSITION_COLUMNS)
    )
    all_gls = (
        pd.concat(gls_frames, ignore_index=True)
        if gls_frames
        else pd.DataFrame(columns=GLSMERGE_COLUMNS)
    )
    log_df = pd.DataFrame(log_rows)

    outputs = write_combined_outputs(data_out, summary_df, all_positions, all_gls, log_df)
    if results:
        bundle_path = data_out / "calibrations.joblib"
        save_calibrations(results, bundle_path)
        outputs["bundle"] = bundle_path

    batch = BatchResult(
        summary=summary_df,
        positions=positions,
        processing_log=log_df,
        results=results,
        outputs=outputs,
    )
    log.info(
        "Batch finished: %d processed, %d succeeded, %d failed",
        len(results),
        batch.n_success,
        batch.n_failed,
        extra={
            "counts": {
                "total": len(results),
                "success": batch.n_success,
                "failed": batch.n_failed,
            }
        },
    )
    return batch


# -------------------------
# Persistence
# -------------------------


def save_calibrations(results: Dict[str, IndividualResult], path: str | os.PathLike) -> None:
    """Save calibrations and positions of successful individuals with joblib.

    Only plain Python containers are stored, so the file stays loadable
    across refactors of the result classes.
    """
    individuals = {}
    for ind, r in results.items():
        if not r.ok:
            continue
        individuals[ind] = {
            "summary": r.summary.to_dict(),
            "calibration": asdict(r.calibration),
            "positions": {
                "times": np.asarray(r.positions.times, float).tolist(),
                "longitude_deg": np.asarray(r.positions.longitude_deg, float).tolist(),
                "latitude_deg": np.asarray(r.positions.latitude_deg, float).tolist(),
            },
        }
    joblib.dump({"format": BUNDLE_FORMAT, "individuals": individuals}, path)


def load_calibrations(path: str | os.PathLike) -> Dict[str, Dict[str, Any]]:
    """Inverse of ``save_calibrations``; positions come back as ``PositionSequence``."""
    d = joblib.load(path)
    fmt = int(d.get("format", BUNDLE_FORMAT))
    if fmt != BUNDLE_FORMAT:
        raise ValueError(f"Unsupported calibration bundle format: {fmt}")
    out: Dict[str, Dict[str, Any]] = {}
    for ind, item in d.get("individuals", {}).items():
        p = item["positions"]
        out[ind] = {
            "summary": item["summary"],
            "calibration": item["calibration"],
            "positions": PositionSequence(
                p["times"], p["longitude_deg"], p["latitude_deg"]
            ),
        }
    return out


__all__ = [
    "BatchResult",
    "discover_lux_files",
    "calibrate_batch",
    "save_calibrations",
    "load_calibrations",
]
