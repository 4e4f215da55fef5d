from __future__ import annotations

"""
export.py
=========
Tabular outputs of a calibration run.

Per individual
  ``<id>_calibrated.csv``      positions with calibration context
  ``<id>_GLSmergedata.csv``    the same positions in GLSmerge layout

Combined (written by the batch driver)
  ``calibration_summary.csv``, ``all_individuals_calibrated.csv``,
  ``GLSmergedata.csv``, ``processing_log.csv``

All CSV files are written to ``<path>.tmp`` first and then moved into place
with ``os.replace``. Missing values are written as ``NA``.
"""

import os
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd

from ..core.model import (
    CalibrationResult,
    PositionSequence,
    TwilightList,
    from_posix,
)

POSITION_METHOD = "threshold_crossing_gamma"

POSITION_COLUMNS = [
    "individual_id",
    "datetime",
    "date",
    "Longitude",
    "Latitude",
    "zenith",
    "sun_elevation",
    "method",
]

GLSMERGE_COLUMNS = [
    "Index",
    "ID",
    "sex",
    "sexn",
    "GLS",
    "First",
    "mese",
    "Quality_1",
    "Second",
    "Quality_2",
    "Type",
    "Longitude",
    "Latitude",
    "ElevAngle",
]

# Placeholder quality flag for both twilights of a GLSmerge row.
GLSMERGE_QUALITY = 9


def twilights_to_frame(twilights: TwilightList) -> pd.DataFrame:
    return twilights.to_frame()


def positions_to_frame(
    positions: PositionSequence,
    individual_id: str,
    calibration: CalibrationResult,
) -> pd.DataFrame:
    """Positions as rows carrying the calibration they were computed with."""
    stamps = from_posix(positions.times)
    return pd.DataFrame(
        {
            "individual_id": individual_id,
            "datetime": stamps,
            "date": stamps.strftime("%Y-%m-%d"),
            "Longitude": np.asarray(positions.longitude_deg, dtype=float),
            "Latitude": np.asarray(positions.latitude_deg, dtype=float),
            "zenith": calibration.zenith_deg,
            "sun_elevation": calibration.sun_elevation_deg,
            "method": POSITION_METHOD,
        },
        columns=POSITION_COLUMNS,
    )


def gls_id_from_individual(individual_id: str) -> str:
    """Logger id: the individual id up to the first underscore."""
    return str(individual_id).split("_", 1)[0]


def convert_to_glsmerge(
    positions: pd.DataFrame,
    individual_id: str,
    zenith: Optional[float] = None,
) -> pd.DataFrame:
    """Reformat a positions frame into the GLSmerge column layout.

    Parameters
    ----------
    positions : pandas.DataFrame
        Frame as produced by ``positions_to_frame`` (``datetime``,
        ``Longitude``, ``Latitude`` and, optionally, ``sun_elevation``).
    individual_id : str
        Used for the ``GLS`` column.
    zenith : float, optional
        Used for ``ElevAngle`` when ``positions`` has no ``sun_elevation``.
    """
    n = len(positions)
    stamps = pd.DatetimeIndex(pd.to_datetime(positions["datetime"], utc=True))
    if "sun_elevation" in positions.columns:
        elev = positions["sun_elevation"].to_numpy(dtype=float)
    elif zenith is not None:
        elev = np.full(n, 90.0 - float(zenith))
    else:
        raise ValueError("positions has no 'sun_elevation' column and no zenith given")

    out = pd.DataFrame(
        {
            "Index": np.arange(1, n + 1),
            "ID": pd.NA,
            "sex": pd.NA,
            "sexn": pd.NA,
            "GLS": gls_id_from_individual(individual_id),
            "First": stamps.strftime("%m/%d/%Y"),
            "mese": stamps.month.astype(int),
            "Quality_1": GLSMERGE_QUALITY,
            "Second": stamps.strftime("%d/%m/%Y %H:%M"),
            "Quality_2": GLSMERGE_QUALITY,
            "Type": np.where(stamps.hour < 12, "Midnight", "Midday"),
            "Longitude": positions["Longitude"].to_numpy(dtype=float),
            "Latitude": positions["Latitude"].to_numpy(dtype=float),
            "ElevAngle": np.round(elev, 1),
        },
        columns=GLSMERGE_COLUMNS,
    )
    return out


def write_csv_atomic(df: pd.DataFrame, path: str | os.PathLike) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = f"{p}.tmp"
    df.to_csv(
        tmp_path,
        index=False,
        na_rep="NA",
        date_format="%Y-%m-%d %H:%M:%S",
    )
    os.replace(tmp_path, p)
    return p


def write_individual_outputs(
    data_dir: str | os.PathLike,
    individual_id: str,
    positions: pd.DataFrame,
    glsmerge: pd.DataFrame,
) -> Dict[str, Path]:
    d = Path(data_dir)
    return {
        "calibrated": write_csv_atomic(positions, d / f"{individual_id}_calibrated.csv"),
        "glsmerge": write_csv_atomic(glsmerge, d / f"{individual_id}_GLSmergedata.csv"),
    }


def write_combined_outputs(
    data_dir: str | os.PathLike,
    summary: pd.DataFrame,
    positions: pd.DataFrame,
    glsmerge: pd.DataFrame,
    processing_log: pd.DataFrame,
) -> Dict[str, Path]:
    """Write the run-level tables.

    The processing log is always written; the other three only when at
    least one individual succeeded.
    """
    d = Path(data_dir)
    paths = {"processing_log": write_csv_atomic(processing_log, d / "processing_log.csv")}
    if len(summary):
        paths["summary"] = write_csv_atomic(summary, d / "calibration_summary.csv")
        paths["positions"] = write_csv_atomic(
            positions, d / "all_individuals_calibrated.csv"
        )
        paths["glsmerge"] = write_csv_atomic(glsmerge, d / "GLSmergedata.csv")
    return paths


__all__ = [
    "POSITION_METHOD",
    "POSITION_COLUMNS",
    "GLSMERGE_COLUMNS",
    "twilights_to_frame",
    "positions_to_frame",
    "gls_id_from_individual",
    "convert_to_glsmerge",
    "write_csv_atomic",
    "write_individual_outputs",
    "write_combined_outputs",
]
