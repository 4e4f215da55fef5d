from __future__ import annotations

"""
detection.py
============
Threshold-crossing twilight detector.

Each sample is classified as day when its light level is strictly above the
threshold. Every change in that classification yields one event, stamped
with the time of the *later* sample of the transition, and flagged as a rise
when the post-transition state is day.

This is an edge detector, not a model: the only guarantee is that events
come out in the same order as the samples.
"""

import logging
from typing import Union

import numpy as np
import pandas as pd

from .model import LightSeries, TwilightList

log = logging.getLogger(__name__)

LightInput = Union[LightSeries, pd.DataFrame]


def as_light_series(light_data: LightInput) -> LightSeries:
    """Accept a ``LightSeries`` or a frame with ``Date``/``Light`` columns."""
    if isinstance(light_data, LightSeries):
        return light_data
    if isinstance(light_data, pd.DataFrame):
        return LightSeries.from_frame(light_data)
    raise TypeError(
        f"light_data must be a LightSeries or a DataFrame, got {type(light_data)!r}"
    )


def _drop_zero_length_flips(times: np.ndarray) -> np.ndarray:
    """Return a keep-mask that cancels pairs of transitions at the same instant.

    Samples sharing a timestamp may flip the state and flip it back without
    any time passing; such a pair carries no information and would break the
    strict ordering of the output.
    """
    keep = np.ones(times.size, dtype=bool)
    stack = []
    for i in range(times.size):
        if stack and times[stack[-1]] == times[i]:
            keep[stack.pop()] = False
            keep[i] = False
        else:
            stack.append(i)
    return keep


def detect_twilights(light_data: LightInput, threshold: float = 2.0) -> TwilightList:
    """Detect sunrise/sunset events as light-threshold crossings.

    Parameters
    ----------
    light_data : LightSeries or pandas.DataFrame
        Light samples. A DataFrame must carry ``Date`` and ``Light`` columns.
    threshold : float
        Light level separating night (<= threshold) from day (> threshold).

    Returns
    -------
    TwilightList
        Strictly time-ordered events; empty (with a logged warning) when fewer
        than two valid samples remain or the state never changes.

    Raises
    ------
    InvalidInputError
        If a DataFrame input lacks the required columns.
    """
    series = as_light_series(light_data)

    if len(series) < 2:
        log.warning("Insufficient data points for twilight detection (n=%d)", len(series))
        return TwilightList.empty()

    is_day = series.light > threshold
    transitions = np.flatnonzero(np.diff(is_day.astype(np.int8)) != 0)

    if transitions.size == 0:
        log.warning("No twilight transitions detected (n=%d samples)", len(series))
        return TwilightList.empty()

    times = series.times[transitions + 1]
    rise = is_day[transitions + 1]

    keep = _drop_zero_length_flips(times)
    if not np.all(keep):
        log.debug("Dropped %d zero-length transitions", int(np.count_nonzero(~keep)))
        times, rise = times[keep], rise[keep]

    return TwilightList(times, rise)


__all__ = ["as_light_series", "detect_twilights"]
