"""DynamoDB log of in-flight destructive reconciliations."""
import logging
from datetime import datetime
from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

from processor.dates import EVENT_DATETIME_FORMAT
from processor.models import ReconciliationIntent

logger = logging.getLogger(__name__)

PHASE_DELETING = 'deleting'
PHASE_CREATING = 'creating'


class DynamoDBIntentLog:
    """
    Records a marker before conflicting events are deleted and clears it
    once the canonical replacement exists. A marker still present at the
    start of a run means the previous run stopped between the two phases.
    """

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBIntentLog for table: {table_name}")

    def record(self, definition_id: str, event_ids: List[str]) -> ReconciliationIntent:
        intent = ReconciliationIntent(
            definition_id=definition_id,
            event_ids=list(event_ids),
            phase=PHASE_DELETING,
            created_at=datetime.now().strftime(EVENT_DATETIME_FORMAT)
        )
        try:
            self.table.put_item(Item={
                'definition_id': intent.definition_id,
                'event_ids': intent.event_ids,
                'phase': intent.phase,
                'created_at': intent.created_at,
            })
        except ClientError as e:
            logger.error(f"Error recording intent for {definition_id}: {e}")
            raise

        logger.info(
            f"Recorded replace intent for {definition_id} "
            f"({len(event_ids)} events)"
        )
        return intent

    def mark_phase(self, definition_id: str, phase: str) -> None:
        try:
            self.table.update_item(
                Key={'definition_id': definition_id},
                UpdateExpression='SET #phase = :phase',
                ExpressionAttributeNames={'#phase': 'phase'},
                ExpressionAttributeValues={':phase': phase}
            )
        except ClientError as e:
            logger.error(f"Error updating intent for {definition_id}: {e}")
            raise

    def clear(self, definition_id: str) -> None:
        try:
            self.table.delete_item(Key={'definition_id': definition_id})
        except ClientError as e:
            logger.error(f"Error clearing intent for {definition_id}: {e}")
            raise

        logger.info(f"Cleared replace intent for {definition_id}")

    def pending(self) -> List[ReconciliationIntent]:
        """Return every intent left behind, oldest first."""
        try:
            response = self.table.scan()
            items = response.get('Items', [])
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error scanning intent table: {e}")
            raise

        intents = [
            ReconciliationIntent(
                definition_id=item['definition_id'],
                event_ids=list(item.get('event_ids', [])),
                phase=item.get('phase', PHASE_DELETING),
                created_at=item.get('created_at', '')
            )
            for item in items
        ]
        intents.sort(key=lambda intent: (intent.created_at, intent.definition_id))
        return intents
