"""Human-readable date ranges for events and event groups."""
from datetime import date, datetime, timedelta, timezone
from typing import Sequence

from processor.event_normalizer import from_epoch_ms
from processor.models import NormalizedEvent

ALL_DAY_SUFFIX = '(all day)'


def format_date(day: date) -> str:
    """Render a date as M/D/YYYY."""
    return f"{day.month}/{day.day}/{day.year}"


def format_datetime(instant: datetime) -> str:
    """Render a datetime as M/D/YYYY, H:MM:SS AM."""
    hour = instant.hour % 12 or 12
    meridiem = 'AM' if instant.hour < 12 else 'PM'
    return (
        f"{format_date(instant.date())}, "
        f"{hour}:{instant.minute:02d}:{instant.second:02d} {meridiem}"
    )


def format_event_dates(event: NormalizedEvent, tz=None) -> str:
    """
    Format the date range of a single event.

    All-day events are rendered from their stored calendar dates with an
    inclusive last day; timed events show both instants in ``tz``.

    Args:
        event: Normalized event
        tz: Display timezone for timed events (default: UTC)

    Returns:
        Display string
    """
    tz = tz or timezone.utc

    if event.is_all_day:
        start_day = date(*event.start_ymd)
        last_day = date(*event.end_ymd) - timedelta(days=1)
        if last_day <= start_day:
            return f"{format_date(start_day)} {ALL_DAY_SUFFIX}"
        return f"{format_date(start_day)} - {format_date(last_day)} {ALL_DAY_SUFFIX}"

    start = from_epoch_ms(event.start_ms, tz)
    end = from_epoch_ms(event.end_ms, tz)
    return f"{format_datetime(start)} - {format_datetime(end)}"


def format_group_dates(events: Sequence[NormalizedEvent], tz=None) -> str:
    """
    Summarize the dates of a group of events sharing a title.

    Args:
        events: Non-empty sequence of events in the group
        tz: Display timezone (default: UTC)

    Returns:
        Display string such as "3 occurrences on 3/1/2024"
    """
    tz = tz or timezone.utc

    if len(events) == 1:
        return format_event_dates(events[0], tz)

    starts = [_effective_start(event, tz) for event in events]
    first_day = min(starts).date()
    last_day = max(starts).date()

    if first_day == last_day:
        return f"{len(events)} occurrences on {format_date(first_day)}"
    return (
        f"{len(events)} occurrences from {format_date(first_day)} "
        f"to {format_date(last_day)}"
    )


def _effective_start(event: NormalizedEvent, tz) -> datetime:
    if event.is_all_day:
        return datetime(*event.start_ymd, tzinfo=tz)
    return from_epoch_ms(event.start_ms, tz)
