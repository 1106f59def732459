"""Unit tests for the DynamoDB mapping store."""
import json

import pytest

from processor.models import SyncRecord
from storage.mapping_store import MappingKey, parse_record, serialize_record


@pytest.fixture
def key():
    return MappingKey(calendar_id='team@example.com', event_id='abc123_20240115T100000Z')


@pytest.fixture
def record():
    return SyncRecord(
        destination_event_id='merged-1',
        last_source_updated='2024-01-10T12:00:00.000Z'
    )


def test_get_missing_key_returns_none(mapping_store, key):
    """Test get returns None for a key that was never written."""
    assert mapping_store.get(key) is None


def test_put_then_get(mapping_store, key, record):
    """Test a stored record is read back unchanged."""
    mapping_store.put(key, record)

    assert mapping_store.get(key) == record


def test_put_overwrites(mapping_store, key, record):
    """Test put replaces an existing record."""
    mapping_store.put(key, record)
    mapping_store.put(key, SyncRecord('merged-2', '2024-01-11T08:00:00.000Z'))

    stored = mapping_store.get(key)
    assert stored.destination_event_id == 'merged-2'
    assert stored.last_source_updated == '2024-01-11T08:00:00.000Z'


def test_delete_removes_record(mapping_store, key, record):
    """Test delete forgets the mapping."""
    mapping_store.put(key, record)
    mapping_store.delete(key)

    assert mapping_store.get(key) is None


def test_delete_missing_key_is_ignored(mapping_store, key):
    """Test deleting an unknown key does not raise."""
    mapping_store.delete(key)

    assert mapping_store.get(key) is None


def test_keys_embed_calendar_id(mapping_store, record):
    """Test the same event id in two calendars maps to separate records."""
    first = MappingKey('cal-a', 'shared-id')
    second = MappingKey('cal-b', 'shared-id')

    mapping_store.put(first, record)

    assert mapping_store.get(first) == record
    assert mapping_store.get(second) is None


def test_stored_item_layout(mapping_store, mapping_table, key, record):
    """Test items are stored as prefixed key and JSON string value."""
    mapping_store.put(key, record)

    item = mapping_table.get_item(
        Key={'key': 'sync:team@example.com::abc123_20240115T100000Z'}
    )['Item']
    assert json.loads(item['value']) == {
        'destination_event_id': 'merged-1',
        'last_source_updated': '2024-01-10T12:00:00.000Z'
    }


def test_corrupt_value_treated_as_absent(mapping_store, mapping_table, key):
    """Test an unparseable stored value reads as no mapping."""
    mapping_table.put_item(Item={
        'key': key.to_string('sync:'),
        'value': '{not json'
    })

    assert mapping_store.get(key) is None


def test_item_without_value_treated_as_absent(mapping_store, mapping_table, key):
    """Test an item missing its value attribute reads as no mapping."""
    mapping_table.put_item(Item={'key': key.to_string('sync:')})

    assert mapping_store.get(key) is None


class TestParseRecord:
    """Test cases for parse_record."""

    def test_valid_value(self, record):
        assert parse_record(serialize_record(record)) == record

    def test_none(self):
        assert parse_record(None) is None

    def test_not_an_object(self):
        assert parse_record('["merged-1", "stamp"]') is None

    def test_missing_destination_id(self):
        assert parse_record('{"last_source_updated": "stamp"}') is None

    def test_empty_destination_id(self):
        raw = '{"destination_event_id": "", "last_source_updated": "stamp"}'
        assert parse_record(raw) is None

    def test_missing_stamp(self):
        assert parse_record('{"destination_event_id": "merged-1"}') is None

    def test_non_string_stamp(self):
        raw = '{"destination_event_id": "merged-1", "last_source_updated": 17}'
        assert parse_record(raw) is None
