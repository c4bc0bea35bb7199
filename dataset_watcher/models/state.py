"""
Models for the persisted sequence state and the transient values that flow
through a check cycle.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError

DEFAULT_NEXT_INDEX = 9
DEFAULT_INTERVAL_MINUTES = 5.0


class SequenceState(BaseModel):
    """
    The durable record of which index is being watched for, whether a download is
    in flight, and the diagnostics of the most recent probe.
    """

    enabled: bool = True
    next_index: int = Field(DEFAULT_NEXT_INDEX, ge=1)
    interval_minutes: float = Field(DEFAULT_INTERVAL_MINUTES, ge=1)

    # Internal state
    is_downloading: bool = False
    current_download_id: str | None = None

    # Diagnostics
    last_found_index: int | None = None
    last_found_at: datetime | None = None
    last_checked_at: datetime | None = None
    last_checked_url: str | None = None
    last_status: int | None = None

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True

    @classmethod
    def from_stored(
        cls, stored: dict[str, Any], defaults: dict[str, Any] | None = None
    ) -> tuple["SequenceState", set[str]]:
        """
        Builds a state from raw stored values, field by field.

        A stored value that fails validation is replaced by its default rather than
        rejecting the whole record, and its field name is reported so the caller
        can repair the store.

        Returns:
            A tuple of (state, names of fields whose stored value was invalid).
        """
        values = dict(defaults or {})
        invalid: set[str] = set()
        for name in cls.model_fields:
            if name not in stored:
                continue
            try:
                cls(**{**values, name: stored[name]})
            except ValidationError:
                invalid.add(name)
                continue
            values[name] = stored[name]
        return cls(**values), invalid

    def to_stored(self) -> dict[str, Any]:
        """Returns a JSON-serializable mapping suitable for the state store."""
        return self.model_dump(mode="json")


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single existence probe."""

    exists: bool
    status: int | None = None


class DownloadState(str, Enum):
    """States reported by the download requester."""

    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class DownloadEvent:
    """A download state change, correlated to its transfer by handle."""

    handle: str
    state: DownloadState


def coerce_positive_number(value: Any, integral: bool = False) -> float | int | None:
    """
    Coerces a user-supplied value to a finite number >= 1.

    Booleans and anything that does not parse as a number are rejected. With
    `integral` set, only whole numbers are accepted and an int is returned.

    Returns:
        The coerced number, or None if the value is not acceptable.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 1:
        return None
    if integral:
        if not number.is_integer():
            return None
        return int(number)
    return number
