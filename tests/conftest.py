"""Shared fixtures: mocked DynamoDB tables and sample records."""
from datetime import datetime
from typing import Optional

import boto3
import pytest
from moto import mock_aws

from processor.models import CalendarEvent, CanonicalEventDefinition
from storage.dynamodb_event_store import DynamoDBEventStore
from storage.intent_log import DynamoDBIntentLog
from storage.read_cache import get_read_cache

EVENTS_TABLE = 'test-family-calendar-events'
INTENT_TABLE = 'test-family-calendar-sync-intents'


@pytest.fixture(autouse=True)
def aws_env(monkeypatch):
    """Fake credentials so boto3 never reaches real AWS."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_tables():
    """Create mock events and intent tables."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        events_table = dynamodb.create_table(
            TableName=EVENTS_TABLE,
            KeySchema=[{'AttributeName': 'event_id', 'KeyType': 'HASH'}],
            AttributeDefinitions=[
                {'AttributeName': 'event_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )
        intent_table = dynamodb.create_table(
            TableName=INTENT_TABLE,
            KeySchema=[{'AttributeName': 'definition_id', 'KeyType': 'HASH'}],
            AttributeDefinitions=[
                {'AttributeName': 'definition_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield events_table, intent_table


@pytest.fixture
def event_store(dynamodb_tables):
    return DynamoDBEventStore(EVENTS_TABLE, region_name='us-east-1')


@pytest.fixture
def intent_log(dynamodb_tables):
    return DynamoDBIntentLog(INTENT_TABLE, region_name='us-east-1')


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2025, 6, 1, 12, 0, 0)


@pytest.fixture
def holiday_definition():
    return CanonicalEventDefinition(
        id='holiday-june-23-2025',
        title='Holiday',
        start_date='2025-06-23T00:00:00',
        end_date='2025-06-23T00:00:00',
        all_day=True,
        assigned_to='borja',
        description='School holiday - no classes',
        source='Official school calendar PDF',
        category='holiday'
    )


@pytest.fixture
def prekinder_definition():
    return CanonicalEventDefinition(
        id='prekinder-meeting-june-24-2025',
        title='Prekinder & Kinder Academic Meeting with Parents',
        start_date='2025-06-24T08:30:00',
        end_date='2025-06-24T09:30:00',
        all_day=False,
        assigned_to='borja',
        description='M/S Dining Hall - Taller de Apoderados',
        source='Official school calendar PDF',
        category='prekinder',
        location='M/S Dining Hall'
    )


@pytest.fixture
def year_definition():
    return CanonicalEventDefinition(
        id='year-meeting-july-2-2025',
        title='Year 1, 2, 3, 4 Academic Meeting with Parents',
        start_date='2025-07-02T08:30:00',
        end_date='2025-07-02T09:30:00',
        all_day=False,
        assigned_to='borja',
        description='M/S Dining Hall - Taller de Apoderados',
        source='Official school calendar PDF',
        category='year',
        location='M/S Dining Hall'
    )


def make_event(event_id='event-1', title='Dentist', start_date='2025-06-10T10:00:00',
               end_date=None, **kwargs) -> CalendarEvent:
    """Build a CalendarEvent with sensible defaults."""
    if end_date is None and start_date:
        end_date = start_date
    return CalendarEvent(
        event_id=event_id,
        title=title,
        start_date=start_date,
        end_date=end_date,
        **kwargs
    )


@pytest.fixture(autouse=True)
def clear_read_cache():
    """The read cache is process-wide; start every test with it empty."""
    get_read_cache().invalidate()
    yield
    get_read_cache().invalidate()


def stored_event(store, event_id) -> Optional[CalendarEvent]:
    """Read one event straight from the store's table."""
    item = store.table.get_item(Key={'event_id': event_id}).get('Item')
    return store._item_to_event(item) if item else None
