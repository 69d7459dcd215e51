"""AWS Lambda handler for ICS calendar preview and import."""
import json
import logging
import os
import time
from typing import Any, Dict
from zoneinfo import ZoneInfo

from feed.ics_feed import IcsFeedSource
from processor.date_formatter import format_group_dates
from processor.event_normalizer import EventNormalizer
from processor.grouping import group_events
from processor.selection import filter_selected_events, select_all_groups
from storage.dynamodb_calendar_sink import (
    CalendarAccessDeniedError,
    CalendarAccountError,
    DynamoDBCalendarSink,
)


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


def load_config() -> Dict[str, Any]:
    """Read handler configuration from environment variables."""
    return {
        'table_name': os.environ.get('TABLE_NAME', 'imported-calendars'),
        'log_level': os.environ.get('LOG_LEVEL', 'INFO'),
        'timeout_seconds': int(os.environ.get('TIMEOUT_SECONDS', '30')),
        'local_timezone': os.environ.get('LOCAL_TIMEZONE', 'UTC'),
        'default_container': os.environ.get('DEFAULT_CONTAINER', 'icloud'),
        'expand_days': int(os.environ.get('EXPAND_DAYS', '365')),
    }


def _response(status_code: int, body: Dict[str, Any], start_time: float) -> Dict[str, Any]:
    body['duration_seconds'] = round(time.time() - start_time, 2)
    return {
        'statusCode': status_code,
        'body': json.dumps(body)
    }


def _error_response(
    status_code: int,
    message: str,
    error: Exception,
    start_time: float
) -> Dict[str, Any]:
    return _response(status_code, {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__
    }, start_time)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler for calendar preview and import.

    Args:
        event: Request payload with an "action" of "preview" or "import"
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    config = load_config()

    setup_logging(config['log_level'])
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action = (event or {}).get('action')
    logger.info(
        "Lambda execution started",
        extra={'action': action, 'table_name': config['table_name']}
    )

    if action not in ('preview', 'import'):
        logger.warning(f"Unknown action: {action!r}")
        return _response(400, {
            'message': 'Unknown action',
            'error': f"action must be 'preview' or 'import', got {action!r}"
        }, start_time)

    ics_url = event.get('ics_url')
    if not ics_url:
        return _response(400, {
            'message': 'Missing required field: ics_url'
        }, start_time)

    if action == 'import' and not event.get('target_calendar_name'):
        return _response(400, {
            'message': 'Missing required field: target_calendar_name'
        }, start_time)

    if event.get('selection') is not None and not isinstance(event['selection'], dict):
        return _response(400, {
            'message': 'Invalid field: selection must be an object of group keys'
        }, start_time)

    try:
        tz = ZoneInfo(config['local_timezone'])
        feed = IcsFeedSource(
            timeout=config['timeout_seconds'],
            expand_days=config['expand_days']
        )
        normalizer = EventNormalizer(tz=tz)

        # Fetch and parse the feed
        try:
            logger.info("Fetching events from calendar feed")
            records = feed.fetch_records(ics_url)
        except Exception as e:
            logger.error(
                f"Failed to fetch calendar feed: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response(502, 'Failed to fetch calendar feed', e, start_time)

        logger.info("Normalizing events")
        events = normalizer.normalize_events(records)
        groups = group_events(events)

        if action == 'preview':
            logger.info(
                "Preview completed successfully",
                extra={'events': len(events), 'groups': len(groups)}
            )
            return _response(200, {
                'message': 'Preview ready',
                'statistics': {
                    'records_fetched': len(records),
                    'events_normalized': len(events),
                    'groups': len(groups)
                },
                'groups': [
                    {
                        'key': group.key,
                        'label': group.label,
                        'count': len(group.events),
                        'dates': format_group_dates(group.events, tz)
                    }
                    for group in groups
                ],
                'selection': select_all_groups(groups),
                'events': [e.to_dict() for e in events]
            }, start_time)

        selection = event.get('selection')
        if selection is None:
            selection = select_all_groups(groups)
        chosen = filter_selected_events(events, selection)

        if not chosen:
            logger.warning("Import requested with no selected events")
            return _response(400, {
                'message': 'No events selected for import'
            }, start_time)

        target_name = event['target_calendar_name']
        container = event.get('container') or config['default_container']
        sink = DynamoDBCalendarSink(table_name=config['table_name'])

        try:
            logger.info("Importing selected events into calendar store")
            result = sink.commit(target_name, container, event.get('color'), chosen)
        except CalendarAccountError as e:
            logger.error(f"Calendar account not found: {str(e)}")
            return _error_response(404, 'No matching calendar account', e, start_time)
        except CalendarAccessDeniedError as e:
            logger.error(f"Calendar access denied: {str(e)}")
            return _error_response(403, 'Calendar access denied', e, start_time)
        except Exception as e:
            logger.error(
                f"Error during calendar import: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response(500, 'Failed to import events', e, start_time)

        logger.info(
            "Lambda execution completed successfully",
            extra={'events_created': result.created, 'calendar': result.calendar_name}
        )
        return _response(200, {
            'message': 'Import completed successfully',
            'created': result.created,
            'calendar_name': result.calendar_name,
            'container': result.container,
            'statistics': {
                'events_normalized': len(events),
                'events_selected': len(chosen)
            }
        }, start_time)

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response(500, 'Request failed', e, start_time)
