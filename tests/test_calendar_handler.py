"""Integration tests for the calendar session and request handler."""
import json
import logging
from datetime import date
from itertools import count
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from calendar_handler import (
    CalendarSession,
    JsonFormatter,
    build_slot,
    lambda_handler,
    load_config,
    setup_logging,
)
from grid.month_grid import MonthGridProjector
from store.event_store import EventStore
from store.exceptions import InvalidEventInput, PersistenceWriteError
from storage.slots import FileSlot, MemorySlot


@pytest.fixture
def mock_env(tmp_path, monkeypatch):
    """Set up environment variables for testing."""
    env_vars = {
        'STORAGE_BACKEND': 'file',
        'EVENTS_FILE': str(tmp_path / 'events.json'),
        'WEEK_START': 'sunday',
        'PAD_GRID': 'false',
        'LOG_LEVEL': 'INFO'
    }
    for name, value in env_vars.items():
        monkeypatch.setenv(name, value)
    return env_vars


@pytest.fixture
def mock_context():
    """Create a mock invocation context."""
    context = Mock()
    context.function_name = 'test-calendar'
    context.aws_request_id = 'test-request-id'
    return context


@pytest.fixture
def session():
    ids = count(1)
    store = EventStore(MemorySlot(), id_factory=lambda: next(ids))
    return CalendarSession(store, MonthGridProjector(), today=date(2024, 3, 10))


def body_of(response):
    return json.loads(response['body'])


class TestCalendarSession:
    """Test cases for CalendarSession."""

    def test_defaults_to_today(self, session):
        assert session.current_month == date(2024, 3, 10)
        assert session.selected_date == date(2024, 3, 10)
        assert session.title == 'March 2024'

    def test_navigation(self, session):
        """Test moving between months."""
        assert session.next_month() == date(2024, 4, 10)
        assert session.title == 'April 2024'
        session.prev_month()
        session.prev_month()
        assert session.title == 'February 2024'

    def test_add_event_on_selected_day(self, session):
        """Test that form input without a date lands on the selected day."""
        session.select(date(2024, 3, 15))

        event = session.add_event({
            'name': 'Review',
            'startTime': '10:00',
            'endTime': '11:00'
        })

        assert event.date == date(2024, 3, 15)
        assert session.selected_events() == [event]
        flagged = [cell.date for cell in session.grid() if cell.has_event]
        assert flagged == [date(2024, 3, 15)]

    def test_add_invalid_event(self, session):
        with pytest.raises(InvalidEventInput):
            session.add_event({'name': 'No times'})
        assert len(session.store) == 0

    def test_delete_event(self, session):
        event = session.add_event({
            'name': 'Review',
            'startTime': '10:00',
            'endTime': '11:00'
        })

        assert session.delete_event(event.id) is True
        assert session.delete_event(event.id) is False
        assert session.selected_events() == []

    def test_grid_flags(self, session):
        session.select(date(2024, 3, 20))

        cells = session.grid()

        assert [c.date for c in cells if c.is_today] == [date(2024, 3, 10)]
        assert [c.date for c in cells if c.is_selected] == [date(2024, 3, 20)]


class TestConfig:
    """Test cases for environment configuration."""

    def test_defaults(self, monkeypatch):
        for name in ('STORAGE_BACKEND', 'EVENTS_FILE', 'TABLE_NAME', 'STORAGE_KEY',
                     'WEEK_START', 'PAD_GRID', 'LOG_LEVEL'):
            monkeypatch.delenv(name, raising=False)

        config = load_config()

        assert config.storage_backend == 'file'
        assert config.events_file == 'events.json'
        assert config.table_name == 'calendar-events'
        assert config.week_start == 6
        assert config.pad_grid is False

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv('STORAGE_BACKEND', 'memory')
        monkeypatch.setenv('WEEK_START', 'Monday')
        monkeypatch.setenv('PAD_GRID', 'true')
        monkeypatch.setenv('STORAGE_KEY', 'calendar')

        config = load_config()

        assert config.storage_backend == 'memory'
        assert config.week_start == 0
        assert config.pad_grid is True
        assert isinstance(build_slot(config), MemorySlot)
        assert build_slot(config).key == 'calendar'

    @pytest.mark.parametrize('name,value', [
        ('WEEK_START', 'someday'),
        ('STORAGE_BACKEND', 'redis'),
    ])
    def test_invalid_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ValueError):
            load_config()

    def test_build_file_slot(self, mock_env):
        slot = build_slot(load_config())

        assert isinstance(slot, FileSlot)
        assert str(slot.path) == mock_env['EVENTS_FILE']

    @patch('calendar_handler.DynamoDBSlot')
    def test_build_dynamodb_slot(self, mock_slot_class, monkeypatch):
        monkeypatch.setenv('STORAGE_BACKEND', 'dynamodb')
        monkeypatch.setenv('TABLE_NAME', 'prod-calendar')

        build_slot(load_config())

        mock_slot_class.assert_called_once_with(table_name='prod-calendar', key='events')


class TestLambdaHandler:
    """Test cases for the request handler."""

    def test_view_month(self, mock_env, mock_context):
        """Test rendering March 2024 with no events."""
        response = lambda_handler(
            {'today': '2024-03-10', 'month': '2024-03-01', 'selectedDate': '2024-03-10'},
            mock_context
        )

        assert response['statusCode'] == 200
        body = body_of(response)
        assert body['title'] == 'March 2024'
        assert body['weeks'][0][0]['date'] == '2024-02-25'
        assert body['weeks'][-1][-1]['date'] == '2024-03-31'
        assert body['events'] == []

    def test_add_and_list_events(self, mock_env, mock_context):
        """Test adding an event, then viewing its day from a fresh request."""
        response = lambda_handler({
            'action': 'add',
            'today': '2024-03-10',
            'selectedDate': '2024-03-15',
            'event': {'name': 'Dentist', 'startTime': '2:00 PM', 'endTime': '15:00'}
        }, mock_context)

        assert response['statusCode'] == 200
        added = body_of(response)['events']
        assert [e['name'] for e in added] == ['Dentist']
        assert added[0]['startTime'] == '14:00'

        response = lambda_handler({
            'today': '2024-03-10',
            'selectedDate': '2024-03-15'
        }, mock_context)
        body = body_of(response)
        assert body['events'] == added
        flagged = [c['date'] for row in body['weeks'] for c in row if c['hasEvent']]
        assert flagged == ['2024-03-15']

        saved = json.loads(Path(mock_env['EVENTS_FILE']).read_text(encoding='utf-8'))
        assert saved[0]['date'] == '2024-03-15T00:00:00'

    def test_delete_event(self, mock_env, mock_context):
        lambda_handler({
            'action': 'add',
            'selectedDate': '2024-03-15',
            'event': {'name': 'Gym', 'startTime': '07:00', 'endTime': '08:00'}
        }, mock_context)
        saved = json.loads(Path(mock_env['EVENTS_FILE']).read_text(encoding='utf-8'))

        response = lambda_handler({
            'action': 'delete',
            'selectedDate': '2024-03-15',
            'id': saved[0]['id']
        }, mock_context)

        assert response['statusCode'] == 200
        assert body_of(response)['events'] == []

    def test_delete_unknown_event(self, mock_env, mock_context):
        response = lambda_handler({'action': 'delete', 'id': 12345}, mock_context)

        assert response['statusCode'] == 404
        assert body_of(response)['id'] == 12345

    def test_navigation_actions(self, mock_env, mock_context):
        response = lambda_handler(
            {'action': 'next', 'month': '2024-01-31'}, mock_context
        )
        body = body_of(response)
        assert body['title'] == 'February 2024'
        assert body['month'] == '2024-02-01'

        response = lambda_handler(
            {'action': 'prev', 'month': '2024-01-15'}, mock_context
        )
        assert body_of(response)['title'] == 'December 2023'

    def test_select_action(self, mock_env, mock_context):
        response = lambda_handler({
            'action': 'select',
            'today': '2024-03-10',
            'month': '2024-03-01',
            'date': '2024-03-22'
        }, mock_context)

        body = body_of(response)
        assert body['selectedDate'] == '2024-03-22'
        selected = [c['date'] for row in body['weeks'] for c in row if c['isSelected']]
        assert selected == ['2024-03-22']

    def test_invalid_event_input(self, mock_env, mock_context):
        response = lambda_handler({
            'action': 'add',
            'selectedDate': '2024-03-15',
            'event': {'name': '', 'startTime': '10:00'}
        }, mock_context)

        assert response['statusCode'] == 400
        body = body_of(response)
        assert body['message'] == 'Invalid event input'
        assert 'name is required' in body['errors']

    def test_invalid_request_date(self, mock_env, mock_context):
        response = lambda_handler({'month': 'March'}, mock_context)

        assert response['statusCode'] == 400

    def test_unknown_action(self, mock_env, mock_context):
        response = lambda_handler({'action': 'share'}, mock_context)

        assert response['statusCode'] == 400
        assert 'share' in body_of(response)['message']

    def test_corrupted_storage_renders_empty(self, mock_env, mock_context):
        with open(mock_env['EVENTS_FILE'], 'w', encoding='utf-8') as f:
            f.write('{not json')

        response = lambda_handler({'month': '2024-03-01'}, mock_context)

        assert response['statusCode'] == 200
        assert body_of(response)['events'] == []

    def test_non_integral_ids_in_storage_are_skipped(self, mock_env, mock_context):
        """Test that unusable stored ids do not fail the request."""
        Path(mock_env['EVENTS_FILE']).write_text(
            '[{"id": Infinity, "date": "2024-03-15", "name": "Broken"},'
            ' {"id": 7, "date": "2024-03-15", "name": "Kept",'
            ' "startTime": "09:00", "endTime": "10:00"}]',
            encoding='utf-8'
        )

        response = lambda_handler({'selectedDate': '2024-03-15'}, mock_context)

        assert response['statusCode'] == 200
        assert [e['name'] for e in body_of(response)['events']] == ['Kept']

    @patch('calendar_handler.EventStore')
    def test_duplicate_event_id(self, mock_store_class, mock_env, mock_context):
        """Test that an id collision on add returns 409 and keeps the first event."""
        mock_store_class.side_effect = lambda slot: EventStore(slot, id_factory=lambda: 42)
        request = {
            'action': 'add',
            'selectedDate': '2024-03-15',
            'event': {'name': 'Standup', 'startTime': '09:00', 'endTime': '09:15'}
        }

        first = lambda_handler(request, mock_context)
        second = lambda_handler(request, mock_context)

        assert first['statusCode'] == 200
        assert second['statusCode'] == 409
        body = body_of(second)
        assert body['message'] == 'Event id collision, retry the request'
        assert '42' in body['error']
        saved = json.loads(Path(mock_env['EVENTS_FILE']).read_text(encoding='utf-8'))
        assert [record['id'] for record in saved] == [42]

    @patch('calendar_handler.build_slot')
    def test_write_failure(self, mock_build_slot, mock_env, mock_context):
        """Test that failed persistence is reported with a warning note."""
        slot = Mock()
        slot.read.return_value = None
        slot.write.side_effect = PersistenceWriteError('quota exceeded', key='events')
        mock_build_slot.return_value = slot

        response = lambda_handler({
            'action': 'add',
            'selectedDate': '2024-03-15',
            'event': {'name': 'Big', 'startTime': '10:00', 'endTime': '11:00'}
        }, mock_context)

        assert response['statusCode'] == 507
        body = body_of(response)
        assert 'quota exceeded' in body['error']
        assert body['note'] == 'The change may not survive a reload'

    @patch('calendar_handler.EventStore')
    def test_unexpected_error(self, mock_store_class, mock_env, mock_context):
        mock_store_class.side_effect = RuntimeError('boom')

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 500
        body = body_of(response)
        assert body['error'] == 'boom'
        assert body['error_type'] == 'RuntimeError'


class TestLogging:
    """Test cases for logging configuration."""

    def test_setup_logging(self):
        setup_logging('DEBUG')

        root_logger = logging.getLogger()
        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, JsonFormatter)

    def test_json_formatter(self):
        record = logging.LogRecord(
            name='store.event_store',
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg='Skipping %s',
            args=('record',),
            exc_info=None
        )

        data = json.loads(JsonFormatter().format(record))

        assert data['level'] == 'WARNING'
        assert data['message'] == 'Skipping record'
        assert data['logger'] == 'store.event_store'
        assert 'exception' not in data
