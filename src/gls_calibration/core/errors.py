from __future__ import annotations

"""
errors.py
=========
Exception taxonomy for the calibration and inversion engine.

Every failure that aborts a single individual's pipeline derives from
``GLSCalibrationError``. The batch driver catches this base class only, so
programming errors keep propagating as usual.

Numerical degeneracy (unreachable sun elevation, near-zero geometry in the
position inversion) is not an error: it yields NaN for the affected event.
"""

from typing import Optional


__all__ = [
    "GLSCalibrationError",
    "InvalidInputError",
    "InsufficientDataError",
    "InsufficientCalibrationDataError",
    "NoValidWindowError",
]


class GLSCalibrationError(RuntimeError):
    """Base class for expected, per-individual pipeline failures.

    Parameters
    ----------
    message : str
        Human readable description.
    stage : str, optional
        Pipeline stage that failed (e.g. ``"calibration_window"``).
    individual_id : str, optional
        Identifier of the logger/individual being processed.
    n_input : int, optional
        Size of the input handed to the failing stage.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        individual_id: Optional[str] = None,
        n_input: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.individual_id = individual_id
        self.n_input = n_input

    def with_context(
        self,
        *,
        stage: Optional[str] = None,
        individual_id: Optional[str] = None,
        n_input: Optional[int] = None,
    ) -> "GLSCalibrationError":
        """Fill in missing context fields in place and return ``self``."""
        if self.stage is None:
            self.stage = stage
        if self.individual_id is None:
            self.individual_id = individual_id
        if self.n_input is None:
            self.n_input = n_input
        return self

    def __str__(self) -> str:
        ctx = []
        if self.individual_id is not None:
            ctx.append(f"individual={self.individual_id}")
        if self.stage is not None:
            ctx.append(f"stage={self.stage}")
        if self.n_input is not None:
            ctx.append(f"n_input={self.n_input}")
        if not ctx:
            return self.message
        return f"{self.message} [{', '.join(ctx)}]"


class InvalidInputError(GLSCalibrationError, ValueError):
    """Malformed input (e.g. a light table without time or light columns)."""


class InsufficientDataError(GLSCalibrationError):
    """Too few valid samples or events for the requested stage."""


class InsufficientCalibrationDataError(InsufficientDataError):
    """Fewer twilight events than the sun-elevation calibration requires."""


class NoValidWindowError(GLSCalibrationError):
    """No candidate calibration window holds enough rise and set events."""
