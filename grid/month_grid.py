"""Month grid projection for the calendar view."""
import calendar
from datetime import MAXYEAR, MINYEAR, date
from typing import Iterable, List, Union

from store.event_store import DateLike, EventStore, as_day
from store.models import CalendarCell, Event

WEEKDAYS = {
    'monday': calendar.MONDAY,
    'tuesday': calendar.TUESDAY,
    'wednesday': calendar.WEDNESDAY,
    'thursday': calendar.THURSDAY,
    'friday': calendar.FRIDAY,
    'saturday': calendar.SATURDAY,
    'sunday': calendar.SUNDAY,
}


def add_months(value: DateLike, months: int) -> date:
    """
    Shift a date by whole calendar months.

    The day of month is clamped to the length of the target month, so
    January 31 plus one month is the last day of February. Results before
    year 1 or after year 9999 are clamped to date.min and date.max.

    Args:
        value: Starting date
        months: Number of months to add, may be negative

    Returns:
        Shifted date
    """
    day = as_day(value)
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    if year < MINYEAR:
        return date.min
    if year > MAXYEAR:
        return date.max
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def next_month(value: DateLike) -> date:
    """Return the same day one month later, clamped to the month length."""
    return add_months(value, 1)


def prev_month(value: DateLike) -> date:
    """Return the same day one month earlier, clamped to the month length."""
    return add_months(value, -1)


def month_title(value: DateLike) -> str:
    """Format a month heading such as 'March 2024'."""
    day = as_day(value)
    return f"{calendar.month_name[day.month]} {day.year}"


def weeks(cells: List[CalendarCell]) -> List[List[CalendarCell]]:
    """Split projected cells into week rows; the last row may be short."""
    return [cells[i:i + 7] for i in range(0, len(cells), 7)]


class MonthGridProjector:
    """Projects a month and an event collection onto calendar cells."""

    def __init__(self, week_start: int = calendar.SUNDAY, pad_to_week: bool = False):
        """
        Initialize the projector.

        Args:
            week_start: First weekday of each row (calendar.MONDAY..SUNDAY)
            pad_to_week: Continue past the month end to complete the last row
        """
        if week_start not in range(7):
            raise ValueError(f"week_start must be 0-6, got {week_start!r}")
        self.week_start = week_start
        self.pad_to_week = pad_to_week

    def grid_start(self, reference_month: DateLike) -> date:
        """
        Return the first day of the week containing the 1st of the month.

        Clamped to date.min for January of year 1.
        """
        first = as_day(reference_month).replace(day=1)
        offset = (first.weekday() - self.week_start) % 7
        return date.fromordinal(max(first.toordinal() - offset, 1))

    def grid_end(self, reference_month: DateLike) -> date:
        """
        Return the last displayed day for the month.

        Padding is clamped to date.max for December of year 9999.
        """
        day = as_day(reference_month)
        month_end = day.replace(day=calendar.monthrange(day.year, day.month)[1])
        if not self.pad_to_week:
            return month_end
        week_end = (self.week_start - 1) % 7
        padding = (week_end - month_end.weekday()) % 7
        return date.fromordinal(
            min(month_end.toordinal() + padding, date.max.toordinal())
        )

    def dates(self, reference_month: DateLike) -> List[date]:
        """Return the ordered dates shown for the month."""
        start = self.grid_start(reference_month).toordinal()
        end = self.grid_end(reference_month).toordinal()
        return [date.fromordinal(ordinal) for ordinal in range(start, end + 1)]

    def project(
        self,
        reference_month: DateLike,
        today: DateLike,
        selected_date: DateLike,
        events: Union[EventStore, Iterable[Event]]
    ) -> List[CalendarCell]:
        """
        Build the calendar cells for a month.

        Args:
            reference_month: Any day within the month to display
            today: Current date for the is_today flag
            selected_date: Date for the is_selected flag
            events: Event store or iterable of events for the has_event flag

        Returns:
            Ordered list of CalendarCell objects
        """
        month = as_day(reference_month)
        today = as_day(today)
        selected = as_day(selected_date)
        if isinstance(events, EventStore):
            event_dates = events.dates_with_events()
        else:
            event_dates = {event.date for event in events}

        return [
            CalendarCell(
                date=day,
                is_selected=day == selected,
                is_today=day == today,
                has_event=day in event_dates,
                in_month=(day.year, day.month) == (month.year, month.month)
            )
            for day in self.dates(month)
        ]

    next_month = staticmethod(next_month)
    prev_month = staticmethod(prev_month)
