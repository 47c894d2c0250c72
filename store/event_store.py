"""Event store backed by a single durable key-value slot."""
import json
import logging
import math
import time
from datetime import date, datetime, time as dt_time
from typing import Callable, Iterator, List, Optional, Set, Tuple, Union

from store.exceptions import (
    DuplicateEventIdError,
    PersistenceReadError,
    PersistenceWriteError,
)
from store.models import Event, EventInput
from storage.slots import DurableSlot

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


def timestamp_id() -> int:
    """
    Generate an event id from the current time in milliseconds.

    Two ids generated within the same millisecond collide; the store reports
    that as DuplicateEventIdError instead of resolving it.
    """
    return int(time.time() * 1000)


def as_day(value: DateLike) -> date:
    """Reduce a date or datetime to its calendar day."""
    if isinstance(value, datetime):
        return value.date()
    return value


def parse_event_date(value: str) -> date:
    """
    Parse the calendar day from an ISO-8601 date or date-time string.

    The date component is taken as written; no time zone conversion is done.

    Raises:
        ValueError: If the value is not an ISO-8601 date
    """
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO-8601 string, got {type(value).__name__}")
    return date.fromisoformat(value.strip()[:10])


class EventStore:
    """Single source of truth for calendar events."""

    def __init__(
        self,
        slot: DurableSlot,
        id_factory: Callable[[], int] = timestamp_id
    ):
        """
        Initialize the store with an empty collection.

        Args:
            slot: Durable slot holding the serialized collection
            id_factory: Callable returning a fresh event id
        """
        self.slot = slot
        self.id_factory = id_factory
        self._events: List[Event] = []

    @property
    def events(self) -> Tuple[Event, ...]:
        """Snapshot of the collection in insertion order."""
        return tuple(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(tuple(self._events))

    def load(self) -> List[Event]:
        """
        Replace the in-memory collection with the durable slot contents.

        A missing, unreadable or malformed slot yields an empty collection.
        Individual malformed records are skipped.

        Returns:
            List of loaded Event objects
        """
        try:
            raw = self.slot.read()
        except PersistenceReadError as e:
            logger.warning(f"Could not read events, starting empty: {e}")
            self._events = []
            return []

        if raw is None:
            logger.info("No saved events found")
            self._events = []
            return []

        self._events = self._deserialize(raw)
        logger.info(f"Loaded {len(self._events)} events")
        return list(self._events)

    def add(self, event_input: EventInput) -> Event:
        """
        Store a new event and persist the collection.

        Args:
            event_input: Event fields supplied by the host

        Returns:
            The stored Event with its assigned id

        Raises:
            DuplicateEventIdError: If the generated id is already in use
            PersistenceWriteError: If the slot write fails; the event stays
                in memory
        """
        event_id = self.id_factory()
        if any(existing.id == event_id for existing in self._events):
            raise DuplicateEventIdError(event_id)

        event = Event(
            id=event_id,
            date=as_day(event_input.date),
            name=event_input.name,
            start_time=event_input.start_time,
            end_time=event_input.end_time,
            description=event_input.description
        )
        self._events.append(event)
        logger.info(f"Added event {event.id} on {event.date.isoformat()}")
        self._persist()
        return event

    def remove(self, event_id: int) -> bool:
        """
        Remove the event with the given id and persist the collection.

        Args:
            event_id: Id of the event to remove

        Returns:
            True if an event was removed, False if the id was unknown

        Raises:
            PersistenceWriteError: If the slot write fails; the removal stays
                applied in memory
        """
        remaining = [event for event in self._events if event.id != event_id]
        if len(remaining) == len(self._events):
            logger.info(f"No event with id {event_id} to remove")
            return False

        self._events = remaining
        logger.info(f"Removed event {event_id}")
        self._persist()
        return True

    def find_by_date(self, day: DateLike) -> List[Event]:
        """
        Return events on the given calendar day in insertion order.

        Args:
            day: Date or datetime; time of day is ignored

        Returns:
            List of matching Event objects
        """
        target = as_day(day)
        return [event for event in self._events if event.date == target]

    def get(self, event_id: int) -> Optional[Event]:
        """Return the event with the given id, or None."""
        for event in self._events:
            if event.id == event_id:
                return event
        return None

    def dates_with_events(self) -> Set[date]:
        """Return the distinct calendar days that have at least one event."""
        return {event.date for event in self._events}

    def _persist(self) -> None:
        """Serialize the whole collection and overwrite the slot."""
        payload = self._serialize(self._events)
        try:
            self.slot.write(payload)
        except PersistenceWriteError:
            logger.error(
                f"Failed to persist {len(self._events)} events; "
                f"changes may not survive a reload"
            )
            raise
        logger.debug(f"Persisted {len(self._events)} events")

    def _serialize(self, events: List[Event]) -> str:
        return json.dumps([self._event_to_record(event) for event in events])

    def _deserialize(self, raw: str) -> List[Event]:
        """
        Parse the slot value into events.

        Args:
            raw: JSON text read from the slot

        Returns:
            List of Event objects, empty if the value is unusable
        """
        try:
            records = json.loads(raw)
        except (TypeError, ValueError, RecursionError) as e:
            logger.warning(f"Saved events are not valid JSON, starting empty: {e}")
            return []

        if not isinstance(records, list):
            logger.warning(
                f"Saved events are a {type(records).__name__}, not a list; "
                f"starting empty"
            )
            return []

        events = []
        seen_ids = set()
        for record in records:
            event = self._record_to_event(record)
            if event is None:
                continue
            if event.id in seen_ids:
                logger.warning(f"Skipping duplicate event id {event.id}")
                continue
            seen_ids.add(event.id)
            events.append(event)
        return events

    def _record_to_event(self, record: dict) -> Optional[Event]:
        """
        Convert a serialized record to an Event.

        Args:
            record: Dictionary from the slot's JSON array

        Returns:
            Event object or None if conversion fails
        """
        try:
            event_id = record['id']
            if isinstance(event_id, bool) or not isinstance(event_id, (int, float)):
                raise ValueError(f"id must be a number, got {event_id!r}")
            if isinstance(event_id, float) and not (
                math.isfinite(event_id) and event_id.is_integer()
            ):
                raise ValueError(f"id must be a whole number, got {event_id!r}")
            name = record['name']
            if not isinstance(name, str) or not name.strip():
                raise ValueError("name must be a non-empty string")
            return Event(
                id=int(event_id),
                date=parse_event_date(record['date']),
                name=name,
                start_time=str(record.get('startTime', '')),
                end_time=str(record.get('endTime', '')),
                description=str(record.get('description') or '')
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            logger.warning(f"Skipping malformed event record: {e}")
            return None

    def _event_to_record(self, event: Event) -> dict:
        """
        Convert an Event to its serialized record.

        Args:
            event: Event object

        Returns:
            Dictionary for the slot's JSON array
        """
        return {
            'id': event.id,
            'date': datetime.combine(event.date, dt_time.min).isoformat(),
            'name': event.name,
            'startTime': event.start_time,
            'endTime': event.end_time,
            'description': event.description
        }
