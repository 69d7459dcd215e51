"""DynamoDB-backed calendar sink for imported events."""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence

import boto3
from botocore.exceptions import ClientError

from processor.models import ImportResult, NormalizedEvent

logger = logging.getLogger(__name__)


class CalendarSinkError(Exception):
    """Base error for calendar sink failures."""


class CalendarAccountError(CalendarSinkError):
    """Raised when no destination matches the requested container."""


class CalendarAccessDeniedError(CalendarSinkError):
    """Raised when the store refuses access to the calendar table."""


class DynamoDBCalendarSink:
    """Calendar store that writes imported events to DynamoDB."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    CONTAINERS = ('local', 'icloud')
    CALENDAR_ITEM_ID = '#calendar'
    EVENT_PREFIX = 'event#'
    ACCESS_DENIED_CODES = (
        'AccessDeniedException',
        'UnrecognizedClientException',
        'AccessDenied',
    )

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBCalendarSink for table: {table_name}")

    def commit(
        self,
        target_name: str,
        container_hint: str,
        color_hint: Optional[str],
        events: Sequence[NormalizedEvent]
    ) -> ImportResult:
        """
        Create events in the named calendar, creating the calendar if needed.

        Events are always created; nothing is compared with or merged into
        events already stored in the calendar.

        Args:
            target_name: Calendar name
            container_hint: Destination account, "local" or "icloud"
            color_hint: Optional calendar colour, stored on creation
            events: Normalized events to create

        Returns:
            ImportResult with the count of created events

        Raises:
            CalendarAccountError: If the container does not exist
            CalendarAccessDeniedError: If the table refuses access
            ClientError: For any other DynamoDB failure
        """
        calendar_id = self._resolve_calendar_id(target_name, container_hint)
        logger.info(
            f"Importing {len(events)} events into calendar '{target_name}' "
            f"({container_hint})"
        )

        try:
            self._ensure_calendar(calendar_id, target_name, container_hint, color_hint)
            created = self._write_events(calendar_id, events)
        except ClientError as e:
            self._raise_for_client_error(e)

        logger.info(f"Created {created} events in calendar '{target_name}'")
        return ImportResult(
            created=created,
            calendar_name=target_name,
            container=container_hint
        )

    def get_calendar_events(self, target_name: str, container_hint: str) -> List[dict]:
        """
        Read back every event stored in a calendar.

        Args:
            target_name: Calendar name
            container_hint: Destination account, "local" or "icloud"

        Returns:
            List of stored event items
        """
        calendar_id = self._resolve_calendar_id(target_name, container_hint)
        query_args = {
            'KeyConditionExpression': 'calendar_id = :cid AND begins_with(item_id, :prefix)',
            'ExpressionAttributeValues': {
                ':cid': calendar_id,
                ':prefix': self.EVENT_PREFIX,
            },
        }

        try:
            response = self.table.query(**query_args)
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **query_args
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            self._raise_for_client_error(e)

        logger.info(f"Retrieved {len(items)} events from calendar '{target_name}'")
        return items

    def _resolve_calendar_id(self, target_name: str, container_hint: str) -> str:
        if container_hint not in self.CONTAINERS:
            raise CalendarAccountError(
                f'No matching calendar account found for "{container_hint}". '
                f"Available sources: {', '.join(self.CONTAINERS)}"
            )
        return f"{container_hint}#{target_name}"

    def _ensure_calendar(
        self,
        calendar_id: str,
        target_name: str,
        container_hint: str,
        color_hint: Optional[str]
    ) -> None:
        """Create the calendar item unless it already exists."""
        item = {
            'calendar_id': calendar_id,
            'item_id': self.CALENDAR_ITEM_ID,
            'name': target_name,
            'container': container_hint,
            'created_at': datetime.now(timezone.utc).isoformat(),
        }
        if color_hint:
            item['color'] = color_hint

        try:
            self.table.put_item(
                Item=item,
                ConditionExpression='attribute_not_exists(calendar_id)'
            )
            logger.info(f"Created calendar '{target_name}' ({container_hint})")
        except ClientError as e:
            if e.response['Error']['Code'] != 'ConditionalCheckFailedException':
                raise
            logger.info(f"Using existing calendar '{target_name}' ({container_hint})")

    def _write_events(self, calendar_id: str, events: Sequence[NormalizedEvent]) -> int:
        """
        Write events in batches of 25 items.

        Returns:
            Count of written events
        """
        created = 0

        for i in range(0, len(events), self.BATCH_SIZE):
            batch = events[i:i + self.BATCH_SIZE]
            with self.table.batch_writer() as writer:
                for event in batch:
                    writer.put_item(Item=self._event_to_item(calendar_id, event))
                    created += 1
            logger.debug(f"Wrote batch {i // self.BATCH_SIZE + 1} ({len(batch)} events)")

        return created

    def _event_to_item(self, calendar_id: str, event: NormalizedEvent) -> dict:
        """
        Convert a NormalizedEvent to a DynamoDB item.

        All-day events keep their calendar dates as ISO strings so they
        never shift with the reader's timezone.
        """
        item = {
            'calendar_id': calendar_id,
            'item_id': f"{self.EVENT_PREFIX}{uuid.uuid4().hex}",
            'summary': event.summary,
            'description': event.description,
            'location': event.location,
            'is_all_day': event.is_all_day,
            'start_ms': event.start_ms,
            'end_ms': event.end_ms,
        }

        if event.is_all_day:
            item['start_date'] = date(*event.start_ymd).isoformat()
            item['end_date'] = date(*event.end_ymd).isoformat()

        return item

    def _raise_for_client_error(self, error: ClientError) -> None:
        code = error.response.get('Error', {}).get('Code', '')
        if code in self.ACCESS_DENIED_CODES:
            logger.error(f"Calendar access denied for table {self.table_name}: {error}")
            raise CalendarAccessDeniedError(
                f"Calendar access denied: {error}"
            ) from error
        logger.error(f"Error writing to DynamoDB table {self.table_name}: {error}")
        raise error
