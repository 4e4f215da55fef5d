from __future__ import annotations

"""
model.py
========
Data models shared across the calibration and inversion pipeline.

Instants are absolute UTC times carried as POSIX seconds (float64). Records
are immutable: every transformation returns a new object and numpy arrays
held by the records are flagged read-only.
"""

import logging
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import InvalidInputError

log = logging.getLogger(__name__)


SECONDS_PER_DAY = 86400.0
SECONDS_PER_HOUR = 3600.0


# ----- Time helpers -----


def to_posix(values: Any) -> np.ndarray:
    """Convert instants to POSIX seconds (float64 array, NaN for missing).

    Accepts numbers (already POSIX seconds), ``datetime64`` arrays, pandas
    Timestamps/Series/Index, ISO strings and ``datetime`` objects. Naive
    datetimes are taken as UTC.
    """
    if isinstance(values, (pd.Series, pd.Index)):
        values = values.to_numpy()
    arr = np.atleast_1d(np.asarray(values))
    if arr.dtype.kind in "iuf":
        return arr.astype(float)
    if arr.dtype.kind == "b":
        raise InvalidInputError("Boolean values cannot be used as timestamps")
    try:
        ts = pd.to_datetime(arr, utc=True)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Cannot interpret timestamps: {e}") from e
    epoch = pd.Timestamp("1970-01-01", tz="UTC")
    return np.asarray((ts - epoch) / pd.Timedelta(seconds=1), dtype=float)


def from_posix(t: Any) -> pd.DatetimeIndex:
    """Return a UTC ``DatetimeIndex`` for POSIX seconds (NaN becomes NaT)."""
    return pd.to_datetime(np.atleast_1d(np.asarray(t, dtype=float)), unit="s", utc=True)


def iso_utc(t: float) -> str:
    return datetime.fromtimestamp(float(t), tz=timezone.utc).strftime(
        "%Y-%m-%dT%H:%M:%SZ"
    )


def _frozen(a: np.ndarray) -> np.ndarray:
    a.setflags(write=False)
    return a


# ----- Site -----


# A location where the logger is known to be (e.g. a breeding colony).
@dataclass(frozen=True)
class SiteCoordinate:
    # Latitude in decimal degrees (south negative).
    latitude_deg: float
    # Longitude in decimal degrees (east positive).
    longitude_deg: float
    # Human readable site name.
    name: str = "site"

    def __post_init__(self) -> None:
        lat = float(self.latitude_deg)
        lon = float(self.longitude_deg)
        if not np.isfinite(lat) or not -90.0 <= lat <= 90.0:
            raise ValueError(f"latitude_deg must be in [-90, 90], got {lat}")
        if not np.isfinite(lon) or not -180.0 <= lon <= 180.0:
            raise ValueError(f"longitude_deg must be in [-180, 180], got {lon}")
        object.__setattr__(self, "latitude_deg", lat)
        object.__setattr__(self, "longitude_deg", lon)


# ----- Light series -----


@dataclass(frozen=True, eq=False)
class LightSeries:
    """Chronologically ordered (timestamp, intensity) samples.

    Construction sanitizes the input: samples with a missing timestamp or
    intensity are dropped and the remainder is sorted by time (stable, so
    samples sharing a timestamp keep their input order).
    """

    times: np.ndarray
    light: np.ndarray

    def __post_init__(self) -> None:
        t = to_posix(self.times)
        x = np.atleast_1d(np.asarray(self.light, dtype=float))
        if t.shape != x.shape:
            raise InvalidInputError(
                f"times and light must have the same length ({t.size} != {x.size})"
            )
        ok = np.isfinite(t) & ~np.isnan(x)
        t, x = t[ok], x[ok]
        order = np.argsort(t, kind="mergesort")
        object.__setattr__(self, "times", _frozen(t[order]))
        object.__setattr__(self, "light", _frozen(x[order]))

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        time_col: str = "Date",
        light_col: str = "Light",
    ) -> "LightSeries":
        missing = [c for c in (time_col, light_col) if c not in df.columns]
        if missing:
            raise InvalidInputError(
                f"light data must have '{time_col}' and '{light_col}' columns; "
                f"missing {missing}, found {list(df.columns)}"
            )
        light = pd.to_numeric(df[light_col], errors="coerce").to_numpy(dtype=float)
        return cls(to_posix(df[time_col]), light)

    def __len__(self) -> int:
        return int(self.times.size)

    @property
    def start(self) -> float:
        return float(self.times[0]) if len(self) else float("nan")

    @property
    def end(self) -> float:
        return float(self.times[-1]) if len(self) else float("nan")

    def between(self, start: float, end: Optional[float] = None) -> "LightSeries":
        """Samples with ``start <= t <= end`` (no upper bound if ``end`` is None)."""
        m = self.times >= start
        if end is not None:
            m &= self.times <= end
        return LightSeries(self.times[m], self.light[m])

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"Date": from_posix(self.times), "Light": self.light})


# ----- Twilights -----


@dataclass(frozen=True)
class TwilightEvent:
    # Instant of the threshold crossing (POSIX seconds, UTC).
    time: float
    # True for a night->day transition (sunrise), False for day->night.
    rise: bool

    @property
    def timestamp(self) -> pd.Timestamp:
        return from_posix(self.time)[0]


@dataclass(frozen=True, eq=False)
class TwilightList:
    """Ordered sequence of twilight events stored column-wise."""

    times: np.ndarray
    rise: np.ndarray

    def __post_init__(self) -> None:
        t = to_posix(self.times) if np.size(self.times) else np.empty(0, float)
        r = np.atleast_1d(np.asarray(self.rise, dtype=bool))
        if t.shape != r.shape:
            raise InvalidInputError(
                f"times and rise must have the same length ({t.size} != {r.size})"
            )
        if t.size and not np.all(np.isfinite(t)):
            raise InvalidInputError("twilight instants must be finite")
        order = np.argsort(t, kind="mergesort")
        object.__setattr__(self, "times", _frozen(t[order]))
        object.__setattr__(self, "rise", _frozen(r[order]))

    @classmethod
    def empty(cls) -> "TwilightList":
        return cls(np.empty(0, float), np.empty(0, bool))

    @classmethod
    def from_events(cls, events: Iterable[TwilightEvent]) -> "TwilightList":
        ev = list(events)
        return cls(
            np.array([e.time for e in ev], dtype=float),
            np.array([e.rise for e in ev], dtype=bool),
        )

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        time_col: str = "Twilight",
        rise_col: str = "Rise",
    ) -> "TwilightList":
        missing = [c for c in (time_col, rise_col) if c not in df.columns]
        if missing:
            raise InvalidInputError(
                f"twilight table must have '{time_col}' and '{rise_col}' columns"
            )
        return cls(to_posix(df[time_col]), df[rise_col].to_numpy(dtype=bool))

    def __len__(self) -> int:
        return int(self.times.size)

    def __iter__(self) -> Iterator[TwilightEvent]:
        for t, r in zip(self.times, self.rise):
            yield TwilightEvent(float(t), bool(r))

    def __getitem__(self, i: int) -> TwilightEvent:
        return TwilightEvent(float(self.times[i]), bool(self.rise[i]))

    @property
    def n_rise(self) -> int:
        return int(np.count_nonzero(self.rise))

    @property
    def n_set(self) -> int:
        return len(self) - self.n_rise

    def has_both_directions(self) -> bool:
        return self.n_rise > 0 and self.n_set > 0

    def select(self, mask: np.ndarray) -> "TwilightList":
        mask = np.asarray(mask, dtype=bool)
        return TwilightList(self.times[mask], self.rise[mask])

    def gaps_hours(self) -> np.ndarray:
        """Gap to the predecessor in hours (NaN for the first event)."""
        out = np.full(len(self), np.nan)
        if len(self) > 1:
            out[1:] = np.diff(self.times) / SECONDS_PER_HOUR
        return out

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"Twilight": from_posix(self.times), "Rise": self.rise})


# ----- Calibration and position records -----


@dataclass(frozen=True)
class CalibrationWindow:
    # Window start and end (POSIX seconds, both inclusive).
    start: float
    end: float
    # Number of twilights detected inside the window.
    event_count: int
    # Window length in days.
    duration_days: int


@dataclass(frozen=True, eq=False)
class EphemerisState:
    """Sun parameters at one instant (or element-wise for an array of instants).

    ``solar_time_deg`` is the Greenwich apparent solar time expressed as an
    hour angle in degrees (1 degree = 4 minutes).
    """

    solar_time_deg: Any
    equation_of_time_min: Any
    sin_dec: Any
    cos_dec: Any

    @property
    def solar_time_min(self) -> Any:
        return np.asarray(self.solar_time_deg) * 4.0

    @property
    def declination_deg(self) -> Any:
        return np.degrees(np.arctan2(self.sin_dec, self.cos_dec))


@dataclass(frozen=True)
class CalibrationResult:
    zenith_deg: float
    sun_elevation_deg: float
    # Median absolute timing residual at the optimum (minutes).
    fit_residual_min: float
    n_events: int = 0
    n_evaluations: int = 0


@dataclass(frozen=True)
class PositionEstimate:
    time: float
    longitude_deg: float
    latitude_deg: float

    @property
    def timestamp(self) -> pd.Timestamp:
        return from_posix(self.time)[0]


@dataclass(frozen=True, eq=False)
class PositionSequence:
    """Ordered position estimates stored column-wise."""

    times: np.ndarray
    longitude_deg: np.ndarray
    latitude_deg: np.ndarray

    def __post_init__(self) -> None:
        t = np.asarray(self.times, dtype=float).reshape(-1)
        lon = np.asarray(self.longitude_deg, dtype=float).reshape(-1)
        lat = np.asarray(self.latitude_deg, dtype=float).reshape(-1)
        if not (t.shape == lon.shape == lat.shape):
            raise InvalidInputError("position columns must have the same length")
        object.__setattr__(self, "times", _frozen(t))
        object.__setattr__(self, "longitude_deg", _frozen(lon))
        object.__setattr__(self, "latitude_deg", _frozen(lat))

    @classmethod
    def empty(cls) -> "PositionSequence":
        return cls(np.empty(0), np.empty(0), np.empty(0))

    def __len__(self) -> int:
        return int(self.times.size)

    def __iter__(self) -> Iterator[PositionEstimate]:
        for t, lon, lat in zip(self.times, self.longitude_deg, self.latitude_deg):
            yield PositionEstimate(float(t), float(lon), float(lat))

    def select(self, mask: np.ndarray) -> "PositionSequence":
        mask = np.asarray(mask, dtype=bool)
        return PositionSequence(
            self.times[mask], self.longitude_deg[mask], self.latitude_deg[mask]
        )

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "datetime": from_posix(self.times),
                "Longitude": self.longitude_deg,
                "Latitude": self.latitude_deg,
            }
        )


# ----- Configuration records -----


# Twilight detection settings.
@dataclass(frozen=True)
class DetectionConfig:
    # Light level separating night (<= threshold) from day (> threshold).
    threshold: float = 2.0


# Quality filter settings. The light-stability constants are tuned to
# specific logger hardware.
@dataclass(frozen=True)
class FilterConfig:
    min_gap_strict_h: float = 1.0
    min_gap_loose_h: float = 2.0
    max_interval_deviation_h: float = 8.0
    # Interval check runs only when more than this many events remain.
    interval_check_min_events: int = 4
    # Light stability check runs only when more than this many events remain.
    stability_check_min_events: int = 20
    stability_window_min: float = 30.0
    stability_max_jump: float = 300.0
    stability_min_samples: int = 5


# Calibration window search and sun-elevation fit settings.
@dataclass(frozen=True)
class CalibrationConfig:
    min_twilights: int = 2
    search_days: float = 10.0
    min_samples: int = 100
    durations_days: Tuple[int, ...] = (2, 3, 1, 4, 5)
    elevation_interval_deg: Tuple[float, float] = (-12.0, 2.0)
    iterations: int = 4
    tolerance_s: float = 60.0
    maxiter: int = 500
    xatol_deg: float = 1e-5


# Threshold position solver and post-filter settings.
@dataclass(frozen=True)
class PositionConfig:
    tol: float = 1e-6
    lat_range_deg: Tuple[float, float] = (-60.0, 60.0)
    lon_range_deg: Tuple[float, float] = (-180.0, 180.0)
    # Inclusive (start_date, end_date) ISO pairs to drop, e.g. equinoxes.
    exclude_periods: Tuple[Tuple[str, str], ...] = ()
    min_positions: int = 10


@dataclass(frozen=True)
class PipelineConfig:
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    positions: PositionConfig = field(default_factory=PositionConfig)

    @classmethod
    def from_dict(cls, cfg: Mapping[str, Any]) -> "PipelineConfig":
        """Build typed settings from a nested config dict.

        Only the ``detection``, ``filter``, ``calibration`` and ``positions``
        sections are read; other sections (``site``, ``output``) belong to
        the drivers. Unknown keys are logged and ignored; values of the wrong
        type raise ``ValueError``.
        """
        kwargs = {}
        for f in fields(cls):
            section = cfg.get(f.name) or {}
            if not isinstance(section, Mapping):
                raise ValueError(f"[{f.name}] must be a table, got {section!r}")
            kwargs[f.name] = _section_from_dict(f.default_factory, section, f.name)
        return cls(**kwargs)


# ----- Config coercion -----


def _coerce_scalar(value: Any, default: Any, key: str) -> Any:
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    if isinstance(default, int):
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if not isinstance(value, int):
            raise ValueError(f"{key}: expected an integer, got {value!r}")
        return value
    if not isinstance(value, (int, float)):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    return float(value)


def _coerce_periods(value: Any, key: str) -> Tuple[Tuple[str, str], ...]:
    out = []
    for item in value:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise ValueError(f"{key}: expected [start, end] pairs, got {item!r}")
        out.append((str(item[0]), str(item[1])))
    return tuple(out)


def _coerce_value(value: Any, default: Any, key: str) -> Any:
    if not isinstance(default, tuple):
        return _coerce_scalar(value, default, key)
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{key}: expected a list, got {value!r}")
    if key.endswith("exclude_periods"):
        return _coerce_periods(value, key)
    # Ranges are (lower, upper) pairs.
    if len(default) == 2 and not key.endswith("durations_days"):
        if len(value) != 2:
            raise ValueError(f"{key}: expected two values, got {value!r}")
    return tuple(_coerce_scalar(v, default[0], key) for v in value)


def _section_from_dict(cls: Any, section: Mapping[str, Any], name: str) -> Any:
    defaults = cls()
    known = {f.name for f in fields(cls)}
    kwargs: Dict[str, Any] = {}
    for key, value in section.items():
        if key not in known:
            log.warning("Ignoring unknown config key [%s] %s", name, key)
            continue
        kwargs[key] = _coerce_value(value, getattr(defaults, key), f"{name}.{key}")
    return cls(**kwargs)


__all__ = [
    "SECONDS_PER_DAY",
    "SECONDS_PER_HOUR",
    "to_posix",
    "from_posix",
    "iso_utc",
    "SiteCoordinate",
    "LightSeries",
    "TwilightEvent",
    "TwilightList",
    "CalibrationWindow",
    "EphemerisState",
    "CalibrationResult",
    "PositionEstimate",
    "PositionSequence",
    "DetectionConfig",
    "FilterConfig",
    "CalibrationConfig",
    "PositionConfig",
    "PipelineConfig",
]
