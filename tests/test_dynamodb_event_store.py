"""Unit tests for DynamoDB event store."""
import threading
from datetime import datetime

import pytest
from botocore.exceptions import ClientError

from conftest import EVENTS_TABLE, stored_event
from storage.dynamodb_event_store import DynamoDBEventStore


@pytest.fixture
def sample_data():
    return {
        'title': 'Swim class',
        'description': 'Bring goggles',
        'start_date': '2025-06-10T17:00:00',
        'end_date': datetime(2025, 6, 10, 18, 0),
        'all_day': False,
        'assigned_to': 'melody',
        'created_by': 'user-1',
        'reminder': 15,
    }


def test_get_all_events_empty_table(event_store):
    """Test get_all_events returns empty list for empty table."""
    assert event_store.get_all_events() == []


def test_create_event(event_store, sample_data):
    event_id = event_store.create(sample_data)

    event = stored_event(event_store, event_id)
    assert event.title == 'Swim class'
    assert event.description == 'Bring goggles'
    assert event.start_date == '2025-06-10T17:00:00'
    assert event.end_date == '2025-06-10T18:00:00'
    assert event.assigned_to == 'melody'
    assert event.created_by == 'user-1'
    assert event.reminder == 15
    assert event.color == '#3b82f6'
    assert event.recurring == 'none'
    assert event.created_at is not None
    assert event.created_at == event.updated_at


def test_create_rejects_unparsable_dates(event_store, sample_data):
    sample_data['start_date'] = 'someday'

    with pytest.raises(ValueError):
        event_store.create(sample_data)


def test_create_generates_unique_ids(event_store, sample_data):
    ids = {event_store.create(sample_data) for _ in range(5)}

    assert len(ids) == 5
    assert len(event_store.get_all_events()) == 5


def test_update_event(event_store, sample_data):
    event_id = event_store.create(sample_data)

    event_store.update(event_id, {
        'title': 'Swim gala',
        'start_date': '2025-06-11T09:00:00',
        'assigned_to': None,
        'category': 'sports',
    })

    event = stored_event(event_store, event_id)
    assert event.title == 'Swim gala'
    assert event.start_date == '2025-06-11T09:00:00'
    assert event.assigned_to is None
    assert event.category == 'sports'
    # Untouched fields survive
    assert event.description == 'Bring goggles'


def test_update_ignores_unknown_fields(event_store, sample_data):
    event_id = event_store.create(sample_data)

    event_store.update(event_id, {'event_id': 'hijacked', 'title': 'Renamed'})

    assert stored_event(event_store, event_id).title == 'Renamed'
    assert stored_event(event_store, 'hijacked') is None


def test_update_missing_event_raises(event_store):
    with pytest.raises(ClientError):
        event_store.update('does-not-exist', {'title': 'Nope'})


def test_delete_event(event_store, sample_data):
    event_id = event_store.create(sample_data)

    event_store.delete(event_id)

    assert stored_event(event_store, event_id) is None
    assert event_store.get_all_events() == []


def test_query_filters_and_orders_by_start_date(event_store):
    for title, start in [
        ('Late', '2025-06-20T10:00:00'),
        ('Early', '2025-06-05T10:00:00'),
        ('Outside', '2025-07-15T10:00:00'),
        ('Middle', '2025-06-12T10:00:00'),
    ]:
        event_store.create({'title': title, 'start_date': start, 'end_date': start})

    events = event_store.query(datetime(2025, 6, 1), '2025-06-30T23:59:59')

    assert [e.title for e in events] == ['Early', 'Middle', 'Late']


def test_query_includes_events_overlapping_the_range(event_store, dynamodb_tables):
    events_table, _ = dynamodb_tables
    event_store.create({'title': 'Camp', 'start_date': '2025-05-28T00:00:00',
                        'end_date': '2025-06-03T00:00:00'})
    event_store.create({'title': 'May trip', 'start_date': '2025-05-20T00:00:00',
                        'end_date': '2025-05-25T00:00:00'})
    events_table.put_item(Item={
        'event_id': 'raw-1', 'title': 'No end', 'start_date': '2025-06-02T10:00:00'
    })
    events_table.put_item(Item={
        'event_id': 'raw-2', 'title': 'No end, earlier', 'start_date': '2025-05-02T10:00:00'
    })

    events = event_store.query('2025-06-01T00:00:00', '2025-06-30T23:59:59')

    assert [e.title for e in events] == ['Camp', 'No end']


def test_get_all_events_puts_undated_last(event_store, dynamodb_tables):
    events_table, _ = dynamodb_tables
    events_table.put_item(Item={'event_id': 'raw-1', 'title': 'Undated'})
    event_store.create({'title': 'Dated', 'start_date': '2025-06-01T10:00:00'})

    events = event_store.get_all_events()

    assert [e.title for e in events] == ['Dated', 'Undated']
    assert events[1].start_date is None


def test_get_all_events_keeps_raw_invalid_dates(event_store, dynamodb_tables):
    """Test that malformed stored dates are surfaced, not dropped."""
    events_table, _ = dynamodb_tables
    events_table.put_item(Item={
        'event_id': 'raw-1', 'title': 'Broken', 'start_date': 'not-a-date'
    })

    events = event_store.get_all_events()

    assert len(events) == 1
    assert events[0].start_date == 'not-a-date'


def test_get_all_events_handles_pagination(event_store, dynamodb_tables):
    events_table, _ = dynamodb_tables
    padding = 'x' * 20000
    for i in range(80):
        events_table.put_item(Item={
            'event_id': f'event-{i:03d}',
            'title': f'Event {i}',
            'start_date': f'2025-06-{(i % 28) + 1:02d}T10:00:00',
            'description': padding,
        })

    assert len(event_store.get_all_events()) == 80


def test_subscribe_delivers_initial_snapshot(event_store):
    event_store.create({'title': 'Holiday', 'start_date': '2025-06-23T00:00:00'})
    received = []
    delivered = threading.Event()

    def callback(events):
        received.append(events)
        delivered.set()

    unsubscribe = event_store.subscribe(
        '2025-06-01T00:00:00', '2025-06-30T00:00:00', callback, poll_interval=0.05
    )
    try:
        assert delivered.wait(timeout=5)
    finally:
        unsubscribe()

    assert [e.title for e in received[0]] == ['Holiday']


def test_store_uses_named_table(dynamodb_tables):
    store = DynamoDBEventStore(EVENTS_TABLE)

    assert store.table.name == EVENTS_TABLE
