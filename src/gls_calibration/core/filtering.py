"""Quality filtering of detected twilights.

Spurious twilights come from shading, logger malfunction, or artificial light.
Three stages are applied in order, each on the survivors of the previous one:

1) Minimum separation. An event closer than ``min_gap`` hours to the last
   kept event is dropped (1 h in strict mode, 2 h otherwise). The first event
   has no predecessor and is always kept.
2) Expected interval. When more than ``interval_check_min_events`` events
   remain, an event whose gap to its predecessor deviates from the expected
   value (24 h between same-direction events, 12 h otherwise) by more than
   ``max_interval_deviation_h`` is dropped. The check is repeated on the
   survivors until it removes nothing.
3) Light stability (non-strict mode only, with raw light data and more than
   ``stability_check_min_events`` events). An event is dropped when the
   largest absolute jump between consecutive light samples within
   ``±stability_window_min`` minutes exceeds ``stability_max_jump``. Windows
   with fewer than ``stability_min_samples`` samples count as stable. When
   this removes events, the interval check runs again on the survivors.

Filtering never fails: it only removes events. Counts per stage are logged
and returned in a ``FilterReport`` by ``filter_twilights_detailed``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional, Tuple

import numpy as np

from .detection import LightInput, as_light_series
from .model import SECONDS_PER_HOUR, FilterConfig, LightSeries, TwilightList

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterReport:
    """Event counts after each stage."""

    n_input: int
    n_after_min_gap: int
    n_after_interval: int
    n_final: int
    strict: bool

    @property
    def n_removed(self) -> int:
        return self.n_input - self.n_final

    def to_dict(self) -> dict:
        d = asdict(self)
        d["n_removed"] = self.n_removed
        return d


def _min_gap_mask(times: np.ndarray, min_gap_h: float) -> np.ndarray:
    keep = np.zeros(times.size, dtype=bool)
    if times.size == 0:
        return keep
    keep[0] = True
    last = times[0]
    min_gap_s = min_gap_h * SECONDS_PER_HOUR
    for i in range(1, times.size):
        if times[i] - last >= min_gap_s:
            keep[i] = True
            last = times[i]
    return keep


def _interval_mask(twl: TwilightList, max_dev_h: float) -> np.ndarray:
    gaps = twl.gaps_hours()
    expected = np.full(len(twl), np.nan)
    if len(twl) > 1:
        expected[1:] = np.where(twl.rise[1:] == twl.rise[:-1], 24.0, 12.0)
    keep = np.abs(gaps - expected) <= max_dev_h
    keep[0] = True
    return keep


def _interval_pass(twl: TwilightList, cfg: FilterConfig) -> TwilightList:
    """Repeat the interval check until it removes nothing.

    A removal changes the gap of the next survivor, so a single pass can
    leave a new violation behind. Each repeat removes at least one event.
    """
    while len(twl) > cfg.interval_check_min_events:
        keep = _interval_mask(twl, cfg.max_interval_deviation_h)
        if keep.all():
            break
        twl = twl.select(keep)
    return twl


def _stability_mask(
    twl: TwilightList, series: LightSeries, cfg: FilterConfig
) -> np.ndarray:
    half = cfg.stability_window_min * 60.0
    lo = np.searchsorted(series.times, twl.times - half, side="left")
    hi = np.searchsorted(series.times, twl.times + half, side="right")
    keep = np.ones(len(twl), dtype=bool)
    for i, (a, b) in enumerate(zip(lo, hi)):
        if b - a < cfg.stability_min_samples:
            continue
        max_jump = np.max(np.abs(np.diff(series.light[a:b])))
        keep[i] = max_jump <= cfg.stability_max_jump
    return keep


def filter_twilights_detailed(
    twilights: TwilightList,
    light_data: Optional[LightInput] = None,
    threshold: float = 2.0,
    strict: bool = True,
    config: Optional[FilterConfig] = None,
) -> Tuple[TwilightList, FilterReport]:
    """Filter twilights and return ``(filtered, report)``.

    ``threshold`` is the detection threshold the events were produced with; it
    is recorded for context only since the stability check works on raw jumps.
    """
    cfg = config or FilterConfig()
    n_original = len(twilights)

    min_gap = cfg.min_gap_strict_h if strict else cfg.min_gap_loose_h
    twl = twilights.select(_min_gap_mask(twilights.times, min_gap))
    n_after_close = len(twl)

    twl = _interval_pass(twl, cfg)
    n_after_interval = len(twl)

    if (
        not strict
        and light_data is not None
        and len(twl) > cfg.stability_check_min_events
    ):
        series = as_light_series(light_data)
        stable = _stability_mask(twl, series, cfg)
        if not stable.all():
            twl = _interval_pass(twl.select(stable), cfg)

    report = FilterReport(
        n_input=n_original,
        n_after_min_gap=n_after_close,
        n_after_interval=n_after_interval,
        n_final=len(twl),
        strict=strict,
    )
    log.info(
        "Twilight filtering: %d -> %d (removed %d)",
        report.n_input,
        report.n_final,
        report.n_removed,
        extra={"counts": report.to_dict(), "threshold": threshold},
    )
    return twl, report


def filter_twilights(
    twilights: TwilightList,
    light_data: Optional[LightInput] = None,
    threshold: float = 2.0,
    strict: bool = True,
    config: Optional[FilterConfig] = None,
) -> TwilightList:
    """Remove implausible twilights; see the module docstring for the stages."""
    filtered, _ = filter_twilights_detailed(
        twilights, light_data, threshold=threshold, strict=strict, config=config
    )
    return filtered


__all__ = ["FilterReport", "filter_twilights", "filter_twilights_detailed"]
