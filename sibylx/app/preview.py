"""Data model of the ``/preview`` payload.

The service sends a complete snapshot on every call: moments due today and
this week, the open top-level moments grouped by category, and the calendar
entries of the current week.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

# Category name the service uses for moments that live outside any category.
NO_CATEGORY = "_none"


class PreviewFormatError(ValueError):
    """Raised when a preview payload does not have the expected shape."""


class WorkState(str, Enum):
    NEW = "new"
    WAITING = "waiting"
    IN_PROGRESS = "inProgress"

    @classmethod
    def parse(cls, value: Any) -> Optional["WorkState"]:
        """Return the work state for ``value`` or None if it is not a known state."""
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def title(self) -> str:
        return _WORK_STATE_TITLES[self]


_WORK_STATE_TITLES = {
    WorkState.NEW: "New",
    WorkState.WAITING: "Waiting",
    WorkState.IN_PROGRESS: "In Progress",
}


def _line_number(coords: Any) -> int:
    if not isinstance(coords, dict):
        raise PreviewFormatError(f"Expected document coordinates, got {coords!r}")
    try:
        return int(coords.get("lineNumber", 0))
    except (TypeError, ValueError) as exc:
        raise PreviewFormatError(f"Invalid line number in {coords!r}") from exc


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as written by the service."""
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Go writes fractional seconds with up to nine digits; fromisoformat takes six.
    if "." in text:
        head, _, tail = text.partition(".")
        digits = ""
        rest = ""
        for idx, ch in enumerate(tail):
            if not ch.isdigit():
                rest = tail[idx:]
                break
            digits += ch
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}" if digits else head + rest
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


@dataclass
class Instance:
    """One occurrence of a moment that is due in the preview window."""

    name: str
    end: Optional[datetime]
    line_number: int

    @classmethod
    def from_json(cls, data: Any) -> "Instance":
        if not isinstance(data, dict):
            raise PreviewFormatError(f"Expected an instance object, got {data!r}")
        return cls(
            name=str(data.get("name", "")),
            end=parse_timestamp(data.get("end")),
            line_number=_line_number(data.get("originDocCoords")),
        )


@dataclass
class Moment:
    name: str
    work_state: Optional[WorkState]
    line_number: int
    raw_work_state: Any = None

    @classmethod
    def from_json(cls, data: Any) -> "Moment":
        if not isinstance(data, dict):
            raise PreviewFormatError(f"Expected a moment object, got {data!r}")
        raw_state = data.get("workState")
        return cls(
            name=str(data.get("name", "")),
            work_state=WorkState.parse(raw_state),
            line_number=_line_number(data.get("docCoords")),
            raw_work_state=raw_state,
        )


@dataclass
class Category:
    name: str
    moments: list[Moment] = field(default_factory=list)

    @property
    def has_heading(self) -> bool:
        return self.name != NO_CATEGORY

    @classmethod
    def from_json(cls, data: Any) -> "Category":
        if not isinstance(data, dict):
            raise PreviewFormatError(f"Expected a category object, got {data!r}")
        return cls(
            name=str(data.get("name", NO_CATEGORY)),
            moments=[Moment.from_json(m) for m in _as_list(data.get("moments"), "moments")],
        )


@dataclass
class Overview:
    categories: list[Category] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> "Overview":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise PreviewFormatError(f"Expected an overview object, got {data!r}")
        return cls(categories=[Category.from_json(c) for c in _as_list(data.get("categories"), "categories")])


@dataclass
class CalendarEvent:
    """Calendar entry handed to the calendar view as-is."""

    raw: dict

    @property
    def title(self) -> str:
        return str(self.raw.get("title", ""))

    @property
    def start(self) -> Optional[datetime]:
        return parse_timestamp(self.raw.get("start"))

    @property
    def end(self) -> Optional[datetime]:
        return parse_timestamp(self.raw.get("end"))

    @classmethod
    def from_json(cls, data: Any) -> "CalendarEvent":
        if not isinstance(data, dict):
            raise PreviewFormatError(f"Expected a calendar entry, got {data!r}")
        return cls(raw=dict(data))


@dataclass
class PreviewPayload:
    today: list[Instance] = field(default_factory=list)
    week: list[Instance] = field(default_factory=list)
    overview: Overview = field(default_factory=Overview)
    calendar: list[CalendarEvent] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> "PreviewPayload":
        if not isinstance(data, dict):
            raise PreviewFormatError(f"Expected a preview object, got {type(data).__name__}")
        return cls(
            today=[Instance.from_json(i) for i in _as_list(data.get("today"), "today")],
            week=[Instance.from_json(i) for i in _as_list(data.get("week"), "week")],
            overview=Overview.from_json(data.get("overview")),
            calendar=[CalendarEvent.from_json(e) for e in _as_list(data.get("calendar"), "calendar")],
        )


def _as_list(value: Any, name: str) -> list:
    # The service encodes empty slices as null.
    if value is None:
        return []
    if not isinstance(value, list):
        raise PreviewFormatError(f"Expected '{name}' to be a list, got {type(value).__name__}")
    return value
