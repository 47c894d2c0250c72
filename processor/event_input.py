"""Validation and normalization of event form input."""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from store.exceptions import InvalidEventInput
from store.models import EventInput

logger = logging.getLogger(__name__)


class EventInputProcessor:
    """Turns raw form fields into a validated EventInput."""

    MAX_NAME_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 2000

    DATE_FORMATS = [
        '%Y-%m-%d',      # ISO 8601
        '%m/%d/%Y',      # US format
        '%m-%d-%Y',      # US format with dashes
        '%B %d, %Y',     # Full month name
        '%b %d, %Y',     # Abbreviated month name
        '%Y/%m/%d',      # Alternative ISO format
    ]

    TIME_FORMATS = [
        '%H:%M',         # 24-hour format
        '%H:%M:%S',      # 24-hour with seconds
        '%I:%M %p',      # 12-hour format with AM/PM
        '%I:%M%p',       # 12-hour format without space
        '%I:%M:%S %p',   # 12-hour with seconds and AM/PM
    ]

    def process(
        self,
        raw: Dict[str, Any],
        default_date: Optional[date] = None
    ) -> EventInput:
        """
        Validate and normalize submitted form fields.

        Accepts both the serialized field names (``startTime``) and their
        snake_case forms (``start_time``).

        Args:
            raw: Submitted form fields
            default_date: Date to use when the form carries none

        Returns:
            EventInput ready for EventStore.add

        Raises:
            InvalidEventInput: If any required field is missing or malformed
        """
        errors = []

        name = self._text(raw.get('name'))
        if not name:
            errors.append("name is required")

        raw_date = raw.get('date')
        event_date = default_date
        if raw_date not in (None, ''):
            event_date = self._normalize_date(raw_date)
            if event_date is None:
                errors.append(f"date is not a recognized date: {raw_date!r}")
        elif event_date is None:
            errors.append("date is required")

        start_time = self._required_time(raw, 'startTime', 'start_time', errors)
        end_time = self._required_time(raw, 'endTime', 'end_time', errors)

        if errors:
            logger.warning(f"Rejected event input: {'; '.join(errors)}")
            raise InvalidEventInput(errors)

        description = self._text(raw.get('description'))

        return EventInput(
            name=name[:self.MAX_NAME_LENGTH],
            date=event_date,
            start_time=start_time,
            end_time=end_time,
            description=description[:self.MAX_DESCRIPTION_LENGTH]
        )

    def _required_time(
        self,
        raw: Dict[str, Any],
        field: str,
        alias: str,
        errors: List[str]
    ) -> Optional[str]:
        value = raw.get(field, raw.get(alias))
        text = self._text(value)
        if not text:
            errors.append(f"{field} is required")
            return None

        normalized = self._normalize_time(text)
        if normalized is None:
            errors.append(f"{field} is not a recognized time: {text!r}")
        return normalized

    def _text(self, value: Any) -> str:
        if value is None:
            return ''
        return str(value).strip()

    def _normalize_date(self, value: Any) -> Optional[date]:
        """
        Normalize a submitted date to a calendar day.

        Args:
            value: date, datetime or string in one of DATE_FORMATS or ISO-8601

        Returns:
            Calendar day or None if parsing fails
        """
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            return None

        text = value.strip()
        for fmt in self.DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue

        # Browser date-times such as 2024-03-15T00:00:00.000Z
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None

    def _normalize_time(self, time_str: str) -> Optional[str]:
        """
        Normalize time to 24-hour format (HH:MM).

        Args:
            time_str: Time string in various formats

        Returns:
            24-hour formatted time string or None if parsing fails
        """
        for fmt in self.TIME_FORMATS:
            try:
                time_obj = datetime.strptime(time_str, fmt)
                return time_obj.strftime('%H:%M')
            except ValueError:
                continue

        return None
