from __future__ import annotations

"""
window.py
=========
Automatic selection of the calibration window.

The logger is assumed to sit at a known site (typically the colony) at the
start of the deployment. Starting at the first sample, windows of 2, 3, 1, 4
and 5 days are tried in this order and the first one whose detected
twilights reach the minimum count and contain both a rise and a set wins.
The order is kept as is: changing it changes which window, and therefore
which calibration angle, is selected.
"""

import logging
from typing import Optional, Sequence

from .detection import LightInput, as_light_series, detect_twilights
from .errors import InsufficientDataError, NoValidWindowError
from .model import SECONDS_PER_DAY, CalibrationWindow, SiteCoordinate

log = logging.getLogger(__name__)

DEFAULT_DURATIONS_DAYS = (2, 3, 1, 4, 5)


def select_calibration_window(
    light_data: LightInput,
    site: Optional[SiteCoordinate] = None,
    threshold: float = 2.0,
    min_twilights: int = 2,
    durations_days: Sequence[int] = DEFAULT_DURATIONS_DAYS,
    search_days: float = 10.0,
    min_samples: int = 100,
) -> CalibrationWindow:
    """Pick the calibration window at the start of the deployment.

    Parameters
    ----------
    light_data : LightSeries or pandas.DataFrame
        Full-deployment light samples.
    site : SiteCoordinate, optional
        Known location during the window. Not used to choose the window; it
        is accepted so callers can pass the same arguments as to the
        calibrator.
    threshold : float
        Detection threshold.
    min_twilights : int
        Minimum number of twilights the window must contain.
    durations_days : sequence of int
        Candidate window lengths, tried in order.
    search_days : float
        Only the first ``search_days`` of data are considered.
    min_samples : int
        Minimum number of samples required in the search span.

    Raises
    ------
    InsufficientDataError
        Fewer than ``min_samples`` samples in the first ``search_days``.
    NoValidWindowError
        No candidate duration qualifies.
    """
    series = as_light_series(light_data)
    if len(series) == 0:
        raise InsufficientDataError(
            "No valid light samples", stage="calibration_window", n_input=0
        )

    start = series.start
    head = series.between(start, start + search_days * SECONDS_PER_DAY)
    if len(head) < min_samples:
        raise InsufficientDataError(
            f"Insufficient data in first {search_days:g} days "
            f"({len(head)} < {min_samples} samples)",
            stage="calibration_window",
            n_input=len(head),
        )

    for duration in durations_days:
        end = start + duration * SECONDS_PER_DAY
        twl = detect_twilights(series.between(start, end), threshold)
        if len(twl) >= min_twilights and twl.has_both_directions():
            log.info(
                "Calibration window: %d day(s), %d twilights", duration, len(twl)
            )
            return CalibrationWindow(
                start=start,
                end=end,
                event_count=len(twl),
                duration_days=int(duration),
            )
        log.debug(
            "Rejected %d-day window: %d twilights (rise=%d, set=%d)",
            duration,
            len(twl),
            twl.n_rise,
            twl.n_set,
        )

    raise NoValidWindowError(
        "Could not detect valid calibration period "
        f"(tried durations {list(durations_days)} days)",
        stage="calibration_window",
        n_input=len(head),
    )


__all__ = ["DEFAULT_DURATIONS_DAYS", "select_calibration_window"]
