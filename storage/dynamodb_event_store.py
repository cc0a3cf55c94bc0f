"""DynamoDB-backed event store for calendar events."""
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from processor.dates import EVENT_DATETIME_FORMAT, format_event_datetime
from processor.models import CalendarEvent

logger = logging.getLogger(__name__)

DateLike = Union[str, datetime]

# Fields callers may set through create/update, mapped to item attributes
WRITABLE_FIELDS = (
    'title',
    'description',
    'start_date',
    'end_date',
    'all_day',
    'assigned_to',
    'color',
    'recurring',
    'category',
    'reminder',
    'created_by',
)
DATE_FIELDS = ('start_date', 'end_date')


class DynamoDBEventStore:
    """Event store over a DynamoDB table keyed by event_id."""

    DEFAULT_COLOR = '#3b82f6'
    DEFAULT_POLL_INTERVAL = 30  # seconds
    UNSUBSCRIBE_TIMEOUT = 10  # seconds

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region; boto3's default resolution when None
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def create(self, data: Dict[str, Any]) -> str:
        """
        Create a new event.

        Args:
            data: Event fields (title, start_date, end_date, ...)

        Returns:
            Generated event_id
        """
        event_id = uuid.uuid4().hex
        now = self._now()

        item = {
            'event_id': event_id,
            'all_day': False,
            'recurring': 'none',
            'color': self.DEFAULT_COLOR,
            'created_by': '',
        }
        for name, value in self._clean_fields(data).items():
            if value is not None:
                item[name] = value
        item['created_at'] = now
        item['updated_at'] = now

        try:
            self.table.put_item(
                Item=item,
                ConditionExpression='attribute_not_exists(event_id)'
            )
        except ClientError as e:
            logger.error(f"Error creating event '{data.get('title')}': {e}")
            raise

        logger.info(f"Created event {event_id}: {item.get('title')}")
        return event_id

    def update(self, event_id: str, data: Dict[str, Any]) -> None:
        """
        Update fields of an existing event.

        Fields set to None are removed from the item.

        Raises:
            ClientError: If the event does not exist or the write fails
        """
        fields = self._clean_fields(data)
        fields['updated_at'] = self._now()

        set_parts = []
        remove_parts = []
        names = {}
        values = {}
        for index, (name, value) in enumerate(sorted(fields.items())):
            names[f'#f{index}'] = name
            if value is None:
                remove_parts.append(f'#f{index}')
            else:
                set_parts.append(f'#f{index} = :v{index}')
                values[f':v{index}'] = value

        expression = 'SET ' + ', '.join(set_parts)
        if remove_parts:
            expression += ' REMOVE ' + ', '.join(remove_parts)

        try:
            self.table.update_item(
                Key={'event_id': event_id},
                UpdateExpression=expression,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ConditionExpression='attribute_exists(event_id)'
            )
        except ClientError as e:
            logger.error(f"Error updating event {event_id}: {e}")
            raise

        logger.info(f"Updated event {event_id}")

    def delete(self, event_id: str) -> None:
        """Delete an event by id. Deleting a missing event is a no-op."""
        try:
            self.table.delete_item(Key={'event_id': event_id})
        except ClientError as e:
            logger.error(f"Error deleting event {event_id}: {e}")
            raise

        logger.info(f"Deleted event {event_id}")

    def query(self, start_date: DateLike, end_date: DateLike) -> List[CalendarEvent]:
        """
        Retrieve events whose date range overlaps [start_date, end_date].

        An event without an end date occupies its start date only, so a
        multi-day event that starts before the range but ends inside it is
        still returned.

        Returns:
            Events ordered by start date
        """
        start = format_event_datetime(start_date)
        end = format_event_datetime(end_date)
        overlaps = Attr('start_date').lte(end) & (
            Attr('end_date').gte(start) |
            (Attr('end_date').not_exists() & Attr('start_date').gte(start))
        )
        items = self._scan(FilterExpression=overlaps)
        events = self._to_events(items)
        logger.info(f"Query {start}..{end} returned {len(events)} events")
        return events

    def get_all_events(self) -> List[CalendarEvent]:
        """
        Retrieve every event using Scan.

        Returns:
            Events ordered by start date, undated events last
        """
        logger.info("Scanning DynamoDB table for all events")
        events = self._to_events(self._scan())
        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def subscribe(
        self,
        start_date: DateLike,
        end_date: DateLike,
        callback: Callable[[List[CalendarEvent]], None],
        poll_interval: float = DEFAULT_POLL_INTERVAL
    ) -> Callable[[], None]:
        """
        Watch a date range for changes.

        DynamoDB has no push channel here, so a daemon thread polls the
        range and calls back with the full event list initially and
        whenever it changes.

        Returns:
            Function that stops the subscription
        """
        stop = threading.Event()

        def poll():
            last_snapshot = None
            while not stop.is_set():
                try:
                    events = self.query(start_date, end_date)
                    if events != last_snapshot:
                        last_snapshot = events
                        callback(events)
                except ClientError as e:
                    logger.error(f"Error polling subscription: {e}")
                stop.wait(poll_interval)

        thread = threading.Thread(target=poll, name='event-store-subscription', daemon=True)
        thread.start()
        logger.info(f"Subscribed to events {start_date}..{end_date}")

        def unsubscribe():
            stop.set()
            if thread is not threading.current_thread():
                thread.join(timeout=self.UNSUBSCRIBE_TIMEOUT)

        return unsubscribe

    def _scan(self, **kwargs) -> List[dict]:
        try:
            response = self.table.scan(**kwargs)
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **kwargs
                )
                items.extend(response.get('Items', []))

            return items

        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

    def _to_events(self, items: List[dict]) -> List[CalendarEvent]:
        events = [self._item_to_event(item) for item in items]
        events = [event for event in events if event]
        events.sort(key=lambda e: (not e.start_date, e.start_date or '', e.event_id))
        return events

    def _clean_fields(self, data: Dict[str, Any]) -> Dict[str, Any]:
        fields = {}
        for name in WRITABLE_FIELDS:
            if name not in data:
                continue
            value = data[name]
            if name in DATE_FIELDS and value is not None:
                value = format_event_datetime(value)
            if name == 'description' and value == '':
                value = None
            fields[name] = value
        return fields

    def _item_to_event(self, item: dict) -> Optional[CalendarEvent]:
        """
        Convert DynamoDB item to CalendarEvent object.

        Returns:
            CalendarEvent or None if the item lacks an id
        """
        try:
            reminder = item.get('reminder')
            return CalendarEvent(
                event_id=item['event_id'],
                title=item.get('title', ''),
                description=item.get('description'),
                start_date=item.get('start_date'),
                end_date=item.get('end_date'),
                all_day=bool(item.get('all_day', False)),
                assigned_to=item.get('assigned_to'),
                created_by=item.get('created_by', ''),
                created_at=item.get('created_at'),
                updated_at=item.get('updated_at'),
                color=item.get('color', self.DEFAULT_COLOR),
                recurring=item.get('recurring', 'none'),
                category=item.get('category'),
                reminder=int(reminder) if reminder is not None else None
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item to CalendarEvent: {e}")
            return None

    @staticmethod
    def _now() -> str:
        return datetime.now().strftime(EVENT_DATETIME_FORMAT)
