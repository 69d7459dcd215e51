"""ICS feed source for remote calendar subscriptions."""
import logging
import re
import time
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

import recurring_ical_events
import requests
from icalendar import Calendar

from processor.models import RawCalendarRecord

logger = logging.getLogger(__name__)

WEBCAL_PATTERN = re.compile(r'^webcal://', re.IGNORECASE)


class IcsParseError(Exception):
    """Raised when a feed body is not a readable iCalendar document."""


def normalize_ics_url(url: str) -> str:
    """Rewrite webcal:// subscription links to https://."""
    return WEBCAL_PATTERN.sub('https://', url.strip())


class IcsFeedSource:
    """Fetches an ICS feed and yields raw VEVENT records."""

    USER_AGENT = 'CalendarImport/0.1'
    MAX_RETRIES = 3
    BASE_DELAY = 1  # seconds

    def __init__(self, timeout: int = 30, expand_days: int = 365):
        """
        Initialize the feed source.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            expand_days: Days before and after today to expand recurring
                events over (default: 365)
        """
        self.timeout = timeout
        self.expand_days = expand_days

    def fetch_records(self, url: str) -> List[RawCalendarRecord]:
        """
        Fetch and parse a calendar feed.

        Args:
            url: http(s) or webcal URL of the feed

        Returns:
            List of RawCalendarRecord objects in feed order

        Raises:
            requests.RequestException: If all retry attempts fail
            IcsParseError: If the body cannot be parsed
        """
        feed_url = normalize_ics_url(url)
        logger.info(f"Fetching calendar feed: {feed_url}")

        content = self._fetch_feed(feed_url)
        records = self.parse_records(content)

        logger.info(f"Parsed {len(records)} event records from feed")
        return records

    def _fetch_feed(self, url: str) -> bytes:
        """
        Fetch feed content with retry logic.

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        for attempt in range(self.MAX_RETRIES):
            try:
                logger.info(f"Fetching feed (attempt {attempt + 1}/{self.MAX_RETRIES})")
                response = requests.get(
                    url,
                    headers={'User-Agent': self.USER_AGENT},
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response.content

            except requests.RequestException as e:
                if attempt < self.MAX_RETRIES - 1:
                    delay = self.BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.MAX_RETRIES}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.MAX_RETRIES} retry attempts failed. Last error: {e}"
                    )
                    raise

    def parse_records(self, content) -> List[RawCalendarRecord]:
        """
        Parse ICS content into raw records.

        Recurring series are replaced by their occurrences inside the
        expansion window, at the position of the series in the feed.

        Args:
            content: ICS document as bytes or str

        Returns:
            List of RawCalendarRecord objects

        Raises:
            IcsParseError: If the content is not valid iCalendar data
        """
        try:
            calendar = Calendar.from_ical(content)
        except ValueError as e:
            raise IcsParseError(f"Invalid iCalendar data: {e}") from e

        occurrences = self._expand_recurring(calendar)
        records = []

        for component in calendar.walk('VEVENT'):
            if component.get('RECURRENCE-ID') is not None:
                # Overrides are emitted by the expansion of their series
                continue
            if _is_recurring(component):
                uid = str(component.get('UID', ''))
                for occurrence in occurrences.pop(uid, []):
                    records.append(self._component_to_record(occurrence))
                continue
            records.append(self._component_to_record(component))

        return records

    def _expand_recurring(self, calendar: Calendar) -> Dict[str, list]:
        if not any(_is_recurring(c) for c in calendar.walk('VEVENT')):
            return {}

        today = date.today()
        window_start = today - timedelta(days=self.expand_days)
        window_end = today + timedelta(days=self.expand_days)

        occurrences: Dict[str, list] = {}
        for component in recurring_ical_events.of(calendar).between(window_start, window_end):
            occurrences.setdefault(str(component.get('UID', '')), []).append(component)

        logger.debug(
            f"Expanded {sum(len(v) for v in occurrences.values())} occurrences "
            f"between {window_start} and {window_end}"
        )
        return occurrences

    def _component_to_record(self, component) -> RawCalendarRecord:
        """
        Convert an icalendar VEVENT into a RawCalendarRecord.

        DATE values are flagged with datetype "date"; a missing DTEND is
        derived from DURATION when one is present.
        """
        start = _decoded_dt(component, 'DTSTART')
        end = _decoded_dt(component, 'DTEND')

        if end is None and start is not None:
            duration = component.get('DURATION')
            if duration is not None and isinstance(getattr(duration, 'dt', None), timedelta):
                end = start + duration.dt

        is_date_only = isinstance(start, date) and not isinstance(start, datetime)

        return RawCalendarRecord(
            type=component.name,
            summary=_optional_text(component.get('SUMMARY')),
            description=_optional_text(component.get('DESCRIPTION')),
            location=_optional_text(component.get('LOCATION')),
            start=start,
            end=end,
            datetype='date' if is_date_only else 'date-time',
            uid=_optional_text(component.get('UID')),
        )


def _is_recurring(component) -> bool:
    return component.get('RRULE') is not None or component.get('RDATE') is not None


def _decoded_dt(component, name: str):
    prop = component.get(name)
    if prop is None:
        return None
    value = getattr(prop, 'dt', None)
    if isinstance(value, (date, datetime)):
        return value
    return None


def _optional_text(value) -> Optional[str]:
    return str(value) if value is not None else None
