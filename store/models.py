"""Data models for calendar events."""
from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class EventInput:
    """User-supplied event fields, before an id is assigned."""
    name: str
    date: date
    start_time: str
    end_time: str
    description: str = ''


@dataclass(frozen=True)
class Event:
    """Stored calendar event."""
    id: int
    date: date
    name: str
    start_time: str
    end_time: str
    description: str = ''


@dataclass(frozen=True)
class CalendarCell:
    """One day's display state within a month grid."""
    date: date
    is_selected: bool
    is_today: bool
    has_event: bool
    in_month: bool = True
