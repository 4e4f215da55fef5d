from __future__ import annotations

"""
lux.py
======
Readers and writer for raw light-logger data.

``.lux`` files (Migrate Technology exports) start with a free-form header.
The data section begins after a column-title line containing ``light(lux)``;
each data row is ``DD/MM/YYYY HH:MM:SS<TAB>lux`` in UTC.

Generic CSV/TSV light tables are read with pandas, delimiter auto-detected
and ``#`` lines ignored.
"""

import os
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from ..core.errors import InvalidInputError
from ..core.model import LightSeries, from_posix

LUX_TIME_FORMAT = "%d/%m/%Y %H:%M:%S"
LUX_DATA_MARKER = "light(lux)"


def _find_data_start(path: Path) -> int:
    """Return the 0-based index of the first data row."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        for i, line in enumerate(f):
            if LUX_DATA_MARKER in line.lower():
                return i + 1
    raise InvalidInputError(
        f"No '{LUX_DATA_MARKER}' column header found in {path}", stage="read"
    )


def read_lux_file(path: str | os.PathLike) -> LightSeries:
    """Read a ``.lux`` export into a ``LightSeries``.

    Rows whose timestamp or light value cannot be parsed are dropped.

    Raises
    ------
    FileNotFoundError
        ``path`` does not exist.
    InvalidInputError
        No data section, an unparseable one, or no valid row.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"File does not exist: {p}")

    skip = _find_data_start(p)
    try:
        df = pd.read_csv(
            p,
            sep="\t",
            skiprows=skip,
            header=None,
            names=["Date", "Light"],
            usecols=[0, 1],
            dtype=str,
            skip_blank_lines=True,
            encoding_errors="replace",
        )
    except ValueError as e:
        # ParserError, EmptyDataError and UnicodeDecodeError are ValueErrors
        raise InvalidInputError(f"Cannot parse {p}: {e}", stage="read") from e
    times = pd.to_datetime(
        df["Date"].str.strip(), format=LUX_TIME_FORMAT, errors="coerce", utc=True
    )
    light = pd.to_numeric(df["Light"].str.strip(), errors="coerce")
    ok = times.notna() & light.notna()
    if not ok.any():
        raise InvalidInputError(f"No valid light rows in {p}", stage="read")

    return LightSeries(times[ok], light[ok].to_numpy(dtype=float))


def read_light_csv(
    path: str | os.PathLike,
    time_col: str = "Date",
    light_col: str = "Light",
) -> LightSeries:
    """Read a delimited light table with a time and a light column."""
    try:
        df = pd.read_csv(path, sep="\t", comment="#")
        if time_col not in df.columns:
            raise ValueError("not tab-separated")
    except (ValueError, pd.errors.ParserError):
        df = pd.read_csv(path, sep=None, engine="python", comment="#")

    df.columns = [str(c).strip() for c in df.columns]
    return LightSeries.from_frame(df, time_col=time_col, light_col=light_col)


def _format_light(x: float) -> str:
    return f"{x:.2f}"


def write_lux_file(
    path: str | os.PathLike,
    series: LightSeries,
    header_lines: Optional[Sequence[str]] = None,
) -> None:
    """Write ``series`` as a ``.lux``-shaped text file.

    The file is written to ``<path>.tmp`` and then moved into place.
    """
    p = Path(path)
    if header_lines is None:
        header_lines = [
            "Type: synthetic light series",
            f"Samples: {len(series)}",
        ]

    stamps = from_posix(series.times).strftime(LUX_TIME_FORMAT)
    lines: List[str] = list(header_lines)
    lines.append("")
    lines.append(f"DD/MM/YYYY HH:MM:SS\t{LUX_DATA_MARKER}")
    lines.extend(
        f"{t}\t{_format_light(v)}" for t, v in zip(stamps, np.asarray(series.light))
    )

    tmp_path = f"{p}.tmp"
    with open(tmp_path, "w", newline="\n", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")
    os.replace(tmp_path, p)


__all__ = ["read_lux_file", "read_light_csv", "write_lux_file"]
