"""Unit tests for the DynamoDB calendar sink."""
from unittest.mock import patch

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from processor.models import ImportResult, NormalizedEvent
from storage.dynamodb_calendar_sink import (
    CalendarAccessDeniedError,
    CalendarAccountError,
    DynamoDBCalendarSink,
)

TABLE_NAME = 'test-imported-calendars'


@pytest.fixture
def aws_env(monkeypatch):
    """Point boto3 at a fake region and credentials."""
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')


@pytest.fixture
def dynamodb_table(aws_env):
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'calendar_id', 'KeyType': 'HASH'},
                {'AttributeName': 'item_id', 'KeyType': 'RANGE'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'calendar_id', 'AttributeType': 'S'},
                {'AttributeName': 'item_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield table


@pytest.fixture
def sink(dynamodb_table):
    """Create DynamoDBCalendarSink instance with mock table."""
    return DynamoDBCalendarSink(TABLE_NAME)


@pytest.fixture
def timed_event():
    """Create a timed NormalizedEvent."""
    return NormalizedEvent(
        summary='Quarterly Review',
        description='Bring numbers',
        location='Room 4',
        is_all_day=False,
        start_ms=1709650800000,
        end_ms=1709656200000
    )


@pytest.fixture
def all_day_event():
    """Create an all-day NormalizedEvent."""
    return NormalizedEvent(
        summary='Company Holiday',
        description='',
        location='',
        is_all_day=True,
        start_ms=1709251200000,
        end_ms=1709337600000,
        start_ymd=(2024, 3, 1),
        end_ymd=(2024, 3, 2)
    )


def test_commit_creates_events(sink, timed_event, all_day_event):
    """Test that commit writes every event and reports the count."""
    result = sink.commit('Team', 'icloud', '#ff0000', [timed_event, all_day_event])

    assert result == ImportResult(created=2, calendar_name='Team', container='icloud')

    items = sink.get_calendar_events('Team', 'icloud')
    assert sorted(item['summary'] for item in items) == ['Company Holiday', 'Quarterly Review']


def test_commit_stores_all_day_dates(sink, all_day_event):
    """Test that all-day events keep their calendar dates."""
    sink.commit('Team', 'local', None, [all_day_event])

    item = sink.get_calendar_events('Team', 'local')[0]
    assert item['is_all_day'] is True
    assert item['start_date'] == '2024-03-01'
    assert item['end_date'] == '2024-03-02'
    assert int(item['start_ms']) == all_day_event.start_ms


def test_commit_timed_event_has_no_dates(sink, timed_event):
    """Test that timed events store only instants."""
    sink.commit('Team', 'local', None, [timed_event])

    item = sink.get_calendar_events('Team', 'local')[0]
    assert item['is_all_day'] is False
    assert 'start_date' not in item
    assert int(item['end_ms']) == timed_event.end_ms


def test_commit_creates_calendar_record(sink, dynamodb_table, timed_event):
    """Test that the calendar item is created with its colour."""
    sink.commit('Team', 'icloud', '#00ff00', [timed_event])

    item = dynamodb_table.get_item(
        Key={'calendar_id': 'icloud#Team', 'item_id': '#calendar'}
    )['Item']
    assert item['name'] == 'Team'
    assert item['container'] == 'icloud'
    assert item['color'] == '#00ff00'


def test_commit_reuses_existing_calendar(sink, dynamodb_table, timed_event):
    """Test that a second import keeps the original calendar record."""
    sink.commit('Team', 'icloud', '#00ff00', [timed_event])
    sink.commit('Team', 'icloud', '#0000ff', [timed_event])

    item = dynamodb_table.get_item(
        Key={'calendar_id': 'icloud#Team', 'item_id': '#calendar'}
    )['Item']
    assert item['color'] == '#00ff00'

    # Events are always created, never deduplicated
    assert len(sink.get_calendar_events('Team', 'icloud')) == 2


def test_commit_large_batch(sink, timed_event):
    """Test writing more than 25 events (batch limit)."""
    events = [timed_event] * 30

    result = sink.commit('Big', 'local', None, events)

    assert result.created == 30
    assert len(sink.get_calendar_events('Big', 'local')) == 30


def test_commit_empty_batch(sink):
    """Test that an empty batch creates nothing."""
    result = sink.commit('Empty', 'local', None, [])

    assert result.created == 0
    assert sink.get_calendar_events('Empty', 'local') == []


def test_calendars_are_separated_by_container(sink, timed_event):
    """Test that the same name in two containers is two calendars."""
    sink.commit('Team', 'local', None, [timed_event])

    assert sink.get_calendar_events('Team', 'icloud') == []
    assert len(sink.get_calendar_events('Team', 'local')) == 1


def test_unknown_container_raises(sink, timed_event):
    """Test that an unknown container is an account-resolution error."""
    with pytest.raises(CalendarAccountError) as exc_info:
        sink.commit('Team', 'exchange', None, [timed_event])

    assert 'exchange' in str(exc_info.value)
    assert 'local, icloud' in str(exc_info.value)


def test_access_denied_raises(sink, timed_event):
    """Test that access errors become CalendarAccessDeniedError."""
    error = ClientError(
        {'Error': {'Code': 'AccessDeniedException', 'Message': 'denied'}},
        'PutItem'
    )

    with patch.object(sink.table, 'put_item', side_effect=error):
        with pytest.raises(CalendarAccessDeniedError):
            sink.commit('Team', 'icloud', None, [timed_event])


def test_other_client_errors_propagate(sink, timed_event):
    """Test that unrelated DynamoDB errors are re-raised."""
    error = ClientError(
        {'Error': {'Code': 'ProvisionedThroughputExceededException', 'Message': 'slow down'}},
        'PutItem'
    )

    with patch.object(sink.table, 'put_item', side_effect=error):
        with pytest.raises(ClientError):
            sink.commit('Team', 'icloud', None, [timed_event])
