"""Event normalizer for converting raw ICS records into calendar events."""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from processor.models import NO_TITLE, NormalizedEvent, RawCalendarRecord

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_DAY = timedelta(days=1)
ONE_HOUR = timedelta(hours=1)
DAY_MS = 24 * 60 * 60 * 1000
RANGE_MARGIN = timedelta(days=2)


def to_epoch_ms(instant: datetime) -> int:
    """Convert an aware datetime to integer epoch milliseconds."""
    return (instant - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(epoch_ms: int, tz=timezone.utc) -> datetime:
    """Convert epoch milliseconds to an aware datetime in ``tz``."""
    return (EPOCH + timedelta(milliseconds=epoch_ms)).astimezone(tz)


class EventNormalizer:
    """Normalizer for raw VEVENT records from an ICS feed."""

    EVENT_TYPE = 'VEVENT'
    DATE_ONLY = 'date'

    def __init__(self, tz=None, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the normalizer.

        Args:
            tz: Calendar-local tzinfo used for midnight checks and
                calendar dates (default: UTC)
            clock: Callable returning the current aware datetime, used when
                a record has no valid start
        """
        self.timezone = tz or timezone.utc
        self.clock = clock or (lambda: datetime.now(self.timezone))

    def normalize_events(self, records: Iterable[RawCalendarRecord]) -> List[NormalizedEvent]:
        """
        Normalize every VEVENT record, preserving input order.

        Args:
            records: Raw records from the ICS feed

        Returns:
            List of NormalizedEvent objects (possibly empty)
        """
        records = list(records)
        events = [
            self.normalize_event(record)
            for record in records
            if getattr(record, 'type', None) == self.EVENT_TYPE
        ]

        logger.info(
            f"Normalized {len(events)} events out of {len(records)} records"
        )
        return events

    def normalize_event(self, record: RawCalendarRecord) -> NormalizedEvent:
        """
        Normalize a single record.

        Missing or invalid fields degrade to defaults; this never raises
        for malformed data.

        Args:
            record: Raw VEVENT record

        Returns:
            NormalizedEvent object
        """
        summary = _text(record.summary)
        if not summary.strip():
            summary = NO_TITLE

        all_day = self.is_all_day(record)

        start = self._coerce_instant(record.start)
        if start is None:
            logger.warning(
                f"Event '{summary}' has no valid start; using current time"
            )
            start = self.clock().astimezone(self.timezone)

        end = self._coerce_instant(record.end)
        if end is not None and not all_day and end < start:
            logger.warning(
                f"Event '{summary}' ends before it starts; ignoring end"
            )
            end = None

        if end is None:
            end = self._next_day(start) if all_day else self._add_elapsed(start, ONE_HOUR)

        # All-day end dates are exclusive and at least one day later
        if all_day and end <= start:
            end = self._next_day(start)

        start_ymd = None
        end_ymd = None
        if all_day:
            start_ymd = _ymd(start.date())
            end_ymd = _ymd(end.date())
            if end_ymd <= start_ymd:
                end_ymd = _ymd(start.date() + ONE_DAY)

        return NormalizedEvent(
            summary=summary,
            description=_text(record.description),
            location=_text(record.location),
            is_all_day=all_day,
            start_ms=to_epoch_ms(start),
            end_ms=to_epoch_ms(end),
            start_ymd=start_ymd,
            end_ymd=end_ymd,
        )

    def is_all_day(self, record: RawCalendarRecord) -> bool:
        """
        Classify a record as all-day or timed.

        An explicit date-only marker wins. Otherwise a record whose start
        and end both sit on local midnight, a whole number of days apart,
        is treated as all-day.
        """
        if record.datetype == self.DATE_ONLY:
            return True

        start = self._coerce_instant(record.start)
        if start is None:
            return False

        end = self._coerce_instant(record.end)
        if end is None:
            return False

        at_midnight = _is_midnight(start) and _is_midnight(end)
        duration_ms = to_epoch_ms(end) - to_epoch_ms(start)

        return at_midnight and duration_ms >= 0 and duration_ms % DAY_MS == 0

    def _coerce_instant(self, value) -> Optional[datetime]:
        """
        Resolve a date or datetime to an aware datetime in the local zone.

        Naive datetimes are read as local time and bare dates as local
        midnight. Values too close to the ends of the supported date
        range to shift by a day are invalid, as is anything else.
        """
        try:
            if isinstance(value, datetime):
                if value.tzinfo is None:
                    instant = value.replace(tzinfo=self.timezone)
                else:
                    instant = value.astimezone(self.timezone)
            elif isinstance(value, date):
                instant = datetime(value.year, value.month, value.day, tzinfo=self.timezone)
            else:
                return None

            # End synthesis and display conversion need room on both sides
            utc = instant.astimezone(timezone.utc)
            utc - RANGE_MARGIN
            utc + RANGE_MARGIN
        except OverflowError:
            logger.warning(f"Date value out of supported range: {value!r}")
            return None

        return instant

    def _next_day(self, instant: datetime) -> datetime:
        # Same wall-clock time on the next calendar day
        return (instant.replace(tzinfo=None) + ONE_DAY).replace(tzinfo=self.timezone)

    def _add_elapsed(self, instant: datetime, delta: timedelta) -> datetime:
        return (instant.astimezone(timezone.utc) + delta).astimezone(self.timezone)


def _text(value) -> str:
    return str(value) if value is not None else ''


def _ymd(day: date):
    return (day.year, day.month, day.day)


def _is_midnight(instant: datetime) -> bool:
    return instant.hour == 0 and instant.minute == 0 and instant.second == 0
