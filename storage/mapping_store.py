"""DynamoDB-backed store for source-to-merged event mappings."""
import json
import logging
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from processor.models import SyncRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MappingKey:
    """Identifies a source event within a source calendar."""
    calendar_id: str
    event_id: str

    def to_string(self, prefix: str) -> str:
        return f"{prefix}{self.calendar_id}::{self.event_id}"


def parse_record(raw: Optional[str]) -> Optional[SyncRecord]:
    """
    Parse a stored mapping value.

    A missing, malformed or wrongly shaped value is reported as absent so
    the reconciler falls back to a fresh insert.

    Args:
        raw: JSON string as stored, or None

    Returns:
        SyncRecord or None if no usable record is stored
    """
    if raw is None:
        return None

    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring unparseable mapping value")
        return None

    if not isinstance(data, dict):
        logger.warning("Ignoring mapping value that is not an object")
        return None

    destination_event_id = data.get('destination_event_id')
    last_source_updated = data.get('last_source_updated')
    if not isinstance(destination_event_id, str) or not destination_event_id:
        logger.warning("Ignoring mapping value without destination_event_id")
        return None
    if not isinstance(last_source_updated, str):
        logger.warning("Ignoring mapping value without last_source_updated")
        return None

    return SyncRecord(
        destination_event_id=destination_event_id,
        last_source_updated=last_source_updated
    )


def serialize_record(record: SyncRecord) -> str:
    return json.dumps({
        'destination_event_id': record.destination_event_id,
        'last_source_updated': record.last_source_updated
    }, sort_keys=True)


class DynamoDBMappingStore:
    """
    Durable key/value store for SyncRecords.

    Items have a string hash key ``key`` and a string attribute ``value``
    holding the serialized record. There is no locking: callers must ensure
    only one sync run uses a key prefix at a time.
    """

    def __init__(self, table_name: str, key_prefix: str = 'sync:'):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            key_prefix: Prefix scoping keys to one account
        """
        self.table_name = table_name
        self.key_prefix = key_prefix
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBMappingStore for table: {table_name}")

    def get(self, key: MappingKey) -> Optional[SyncRecord]:
        """
        Look up the mapping for a source event.

        Args:
            key: Source calendar and event identifiers

        Returns:
            SyncRecord, or None when absent or unparseable

        Raises:
            ClientError: If DynamoDB cannot be read
        """
        item_key = key.to_string(self.key_prefix)
        try:
            response = self.table.get_item(Key={'key': item_key})
        except ClientError as e:
            logger.error(f"Error reading mapping {item_key}: {e}")
            raise

        item = response.get('Item')
        if item is None:
            return None
        return parse_record(item.get('value'))

    def put(self, key: MappingKey, record: SyncRecord) -> None:
        """
        Create or overwrite the mapping for a source event.

        Raises:
            ClientError: If DynamoDB cannot be written
        """
        item_key = key.to_string(self.key_prefix)
        try:
            self.table.put_item(Item={
                'key': item_key,
                'value': serialize_record(record)
            })
        except ClientError as e:
            logger.error(f"Error writing mapping {item_key}: {e}")
            raise

    def delete(self, key: MappingKey) -> None:
        """
        Remove the mapping for a source event. Missing keys are ignored.

        Raises:
            ClientError: If DynamoDB cannot be written
        """
        item_key = key.to_string(self.key_prefix)
        try:
            self.table.delete_item(Key={'key': item_key})
        except ClientError as e:
            logger.error(f"Error deleting mapping {item_key}: {e}")
            raise
