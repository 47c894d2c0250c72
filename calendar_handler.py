"""Host layer for the calendar: session state and request handler."""
import json
import logging
import os
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from grid.month_grid import WEEKDAYS, MonthGridProjector, month_title, weeks
from processor.event_input import EventInputProcessor
from store.event_store import EventStore, as_day, parse_event_date
from store.exceptions import (
    DuplicateEventIdError,
    InvalidEventInput,
    PersistenceWriteError,
)
from store.models import CalendarCell, Event
from storage.dynamodb_slot import DynamoDBSlot
from storage.slots import DurableSlot, FileSlot, MemorySlot

logger = logging.getLogger(__name__)


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


@dataclass
class CalendarConfig:
    """Settings read from the environment."""
    storage_backend: str = 'file'
    events_file: str = 'events.json'
    table_name: str = 'calendar-events'
    storage_key: str = 'events'
    week_start: int = WEEKDAYS['sunday']
    pad_grid: bool = False
    log_level: str = 'INFO'


def load_config() -> CalendarConfig:
    """
    Read calendar settings from environment variables.

    Raises:
        ValueError: If WEEK_START or STORAGE_BACKEND has an unknown value
    """
    week_start_name = os.environ.get('WEEK_START', 'sunday').strip().lower()
    if week_start_name not in WEEKDAYS:
        raise ValueError(f"Unknown WEEK_START: {week_start_name}")

    backend = os.environ.get('STORAGE_BACKEND', 'file').strip().lower()
    if backend not in ('file', 'dynamodb', 'memory'):
        raise ValueError(f"Unknown STORAGE_BACKEND: {backend}")

    return CalendarConfig(
        storage_backend=backend,
        events_file=os.environ.get('EVENTS_FILE', 'events.json'),
        table_name=os.environ.get('TABLE_NAME', 'calendar-events'),
        storage_key=os.environ.get('STORAGE_KEY', 'events'),
        week_start=WEEKDAYS[week_start_name],
        pad_grid=os.environ.get('PAD_GRID', 'false').strip().lower() in ('1', 'true', 'yes'),
        log_level=os.environ.get('LOG_LEVEL', 'INFO')
    )


def build_slot(config: CalendarConfig) -> DurableSlot:
    """Create the durable slot selected by the configuration."""
    if config.storage_backend == 'dynamodb':
        return DynamoDBSlot(table_name=config.table_name, key=config.storage_key)
    if config.storage_backend == 'memory':
        return MemorySlot(key=config.storage_key)
    return FileSlot(config.events_file, key=config.storage_key)


class CalendarSession:
    """
    Current month and selected day for one calendar view.

    The store and projector are passed in; the session only owns the view
    state and routes user actions to them.
    """

    def __init__(
        self,
        store: EventStore,
        projector: MonthGridProjector,
        today: Optional[date] = None,
        input_processor: Optional[EventInputProcessor] = None
    ):
        self.store = store
        self.projector = projector
        self.input_processor = input_processor or EventInputProcessor()
        self.today = as_day(today) if today else date.today()
        self.current_month = self.today
        self.selected_date = self.today

    @property
    def title(self) -> str:
        return month_title(self.current_month)

    def grid(self) -> List[CalendarCell]:
        return self.projector.project(
            self.current_month, self.today, self.selected_date, self.store
        )

    def select(self, day: date) -> None:
        self.selected_date = as_day(day)

    def next_month(self) -> date:
        self.current_month = self.projector.next_month(self.current_month)
        return self.current_month

    def prev_month(self) -> date:
        self.current_month = self.projector.prev_month(self.current_month)
        return self.current_month

    def selected_events(self) -> List[Event]:
        return self.store.find_by_date(self.selected_date)

    def add_event(self, raw: Dict[str, Any]) -> Event:
        """
        Validate form fields and store the event.

        The event is dated to the selected day unless the form has a date.

        Raises:
            InvalidEventInput: If the form fields are invalid
            PersistenceWriteError: If the event could not be persisted
        """
        event_input = self.input_processor.process(raw, default_date=self.selected_date)
        return self.store.add(event_input)

    def delete_event(self, event_id: int) -> bool:
        return self.store.remove(event_id)


def cell_to_dict(cell: CalendarCell) -> Dict[str, Any]:
    return {
        'date': cell.date.isoformat(),
        'day': cell.date.day,
        'isSelected': cell.is_selected,
        'isToday': cell.is_today,
        'hasEvent': cell.has_event,
        'inMonth': cell.in_month
    }


def event_to_dict(event: Event) -> Dict[str, Any]:
    return {
        'id': event.id,
        'date': event.date.isoformat(),
        'name': event.name,
        'startTime': event.start_time,
        'endTime': event.end_time,
        'description': event.description
    }


def render_view(session: CalendarSession) -> Dict[str, Any]:
    """Plain-data view of the session for a renderer."""
    return {
        'title': session.title,
        'month': session.current_month.replace(day=1).isoformat(),
        'selectedDate': session.selected_date.isoformat(),
        'weeks': [
            [cell_to_dict(cell) for cell in row]
            for row in weeks(session.grid())
        ],
        'events': [event_to_dict(event) for event in session.selected_events()]
    }


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def _request_date(request: Dict[str, Any], field: str) -> Optional[date]:
    value = request.get(field)
    if not value:
        return None
    try:
        return parse_event_date(value)
    except ValueError as e:
        raise InvalidEventInput([f"{field} is not an ISO-8601 date: {value!r}"]) from e


def _apply_action(session: CalendarSession, request: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Run one user action against the session.

    Returns:
        Error response, or None if the view should be rendered
    """
    action = request.get('action', 'view')

    if action == 'view':
        return None
    if action == 'select':
        day = _request_date(request, 'date')
        if day is None:
            raise InvalidEventInput(["date is required"])
        session.select(day)
        return None
    if action == 'next':
        session.next_month()
        return None
    if action == 'prev':
        session.prev_month()
        return None
    if action == 'add':
        session.add_event(request.get('event') or {})
        return None
    if action == 'delete':
        event_id = request.get('id')
        if isinstance(event_id, bool) or not isinstance(event_id, int):
            raise InvalidEventInput([f"id must be an integer: {event_id!r}"])
        if not session.delete_event(event_id):
            return _response(404, {
                'message': 'Event not found',
                'id': event_id
            })
        return None

    return _response(400, {'message': f"Unknown action: {action}"})


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Handle one calendar request.

    The request carries the view state (``today``, ``month``,
    ``selectedDate``), an ``action`` (view, select, next, prev, add, delete)
    and the action's arguments (``date``, ``event``, ``id``).

    Args:
        event: Request payload
        context: Invocation context object

    Returns:
        Response dict with statusCode and JSON body
    """
    config = load_config()
    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action = event.get('action', 'view')
    logger.info(
        f"Calendar request started",
        extra={'action': action, 'storage_backend': config.storage_backend}
    )

    try:
        store = EventStore(build_slot(config))
        store.load()
        projector = MonthGridProjector(
            week_start=config.week_start,
            pad_to_week=config.pad_grid
        )

        session = CalendarSession(store, projector, today=_request_date(event, 'today'))
        session.current_month = _request_date(event, 'month') or session.today
        session.selected_date = _request_date(event, 'selectedDate') or session.today

        error_response = _apply_action(session, event)
        if error_response is not None:
            return error_response

        duration = time.time() - start_time
        logger.info(
            f"Calendar request completed",
            extra={'action': action, 'duration_seconds': round(duration, 2)}
        )
        return _response(200, render_view(session))

    except InvalidEventInput as e:
        return _response(400, {
            'message': 'Invalid event input',
            'errors': e.errors
        })

    except PersistenceWriteError as e:
        logger.error(
            f"Change applied but not saved: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(507, {
            'message': 'Change applied but could not be saved',
            'error': str(e),
            'note': 'The change may not survive a reload'
        })

    except DuplicateEventIdError as e:
        return _response(409, {
            'message': 'Event id collision, retry the request',
            'error': str(e)
        })

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Calendar request failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Request failed',
            'error': str(e),
            'error_type': type(e).__name__
        })
