"""Data models for calendar import."""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Optional, Tuple, Union

YMD = Tuple[int, int, int]

NO_TITLE = "(no title)"


@dataclass
class RawCalendarRecord:
    """Raw component record from the ICS feed."""
    type: str
    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start: Optional[Union[datetime, date]] = None
    end: Optional[Union[datetime, date]] = None
    datetype: Optional[str] = None
    uid: Optional[str] = None


@dataclass(frozen=True)
class NormalizedEvent:
    """Validated and normalized event, ready for a calendar sink."""
    summary: str
    description: str
    location: str
    is_all_day: bool
    start_ms: int
    end_ms: int
    start_ymd: Optional[YMD] = None
    end_ymd: Optional[YMD] = None

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary."""
        return {
            'summary': self.summary,
            'description': self.description,
            'location': self.location,
            'is_all_day': self.is_all_day,
            'start_ms': self.start_ms,
            'end_ms': self.end_ms,
            'start_ymd': list(self.start_ymd) if self.start_ymd else None,
            'end_ymd': list(self.end_ymd) if self.end_ymd else None,
        }


@dataclass(frozen=True)
class EventGroup:
    """Events sharing a case-insensitive title."""
    key: str
    label: str
    events: Tuple[NormalizedEvent, ...] = field(default_factory=tuple)


SelectionState = Dict[str, bool]


@dataclass
class ImportResult:
    """Result of committing events to a calendar sink."""
    created: int
    calendar_name: str
    container: str
