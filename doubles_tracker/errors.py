"""
Exception taxonomy for the doubles tracker.
Usage and validation errors are raised before any state mutation.
"""
from __future__ import annotations

from dataclasses import dataclass


class TrackerError(Exception):
    """Base class for all tracker errors."""


class UsageError(TrackerError):
    """Command issued while the interaction mode forbids it."""

    def __init__(self, command: str, mode: str, detail: str | None = None) -> None:
        self.command = command
        self.mode = mode
        msg = f"{command} not allowed in mode {mode}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ValidationError(TrackerError, ValueError):
    """Malformed input (roster, seat id, CSV header, ...)."""


class RecordNotFoundError(TrackerError, LookupError):
    """No stored match record or profile with that id."""


@dataclass(frozen=True)
class ReconstructionWarning:
    """One best-effort guess made while rebuilding a match from tabular rows."""
    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}
