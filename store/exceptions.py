"""Error types raised by the calendar store and its collaborators."""
from typing import List, Optional


class CalendarError(Exception):
    """Base class for calendar errors."""


class PersistenceError(CalendarError):
    """Durable slot access failed."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class PersistenceReadError(PersistenceError):
    """Reading the durable slot failed."""


class PersistenceWriteError(PersistenceError):
    """
    Writing the durable slot failed.

    The mutation that triggered the write is still applied in memory, but it
    may not survive a reload.
    """


class DuplicateEventIdError(CalendarError):
    """Generated event id is already present in the store."""

    def __init__(self, event_id: int):
        super().__init__(f"Event id {event_id} already exists")
        self.event_id = event_id


class InvalidEventInput(CalendarError):
    """Event form input failed validation."""

    def __init__(self, errors: List[str]):
        super().__init__('; '.join(errors))
        self.errors = errors
