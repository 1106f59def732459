"""Shared fixtures for the calendar sync tests."""
import boto3
import pytest
from moto import mock_aws

from storage.mapping_store import DynamoDBMappingStore

TABLE_NAME = 'test-calendar-sync-mappings'


@pytest.fixture
def aws_environment(monkeypatch):
    """Point boto3 at a fake region and credentials."""
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')


@pytest.fixture
def mapping_table(aws_environment):
    """Create a mock DynamoDB mapping table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'key', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'key', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield table


@pytest.fixture
def mapping_store(mapping_table):
    """Create DynamoDBMappingStore instance with mock table."""
    return DynamoDBMappingStore(TABLE_NAME, key_prefix='sync:')


def make_event(event_id='evt-1', updated='2024-01-10T12:00:00.000Z', status='confirmed', **fields):
    """Build a source event resource as returned by the events list call."""
    event = {
        'id': event_id,
        'updated': updated,
        'status': status,
        'summary': f'Event {event_id}',
        'start': {'dateTime': '2024-01-15T10:00:00Z'},
        'end': {'dateTime': '2024-01-15T11:00:00Z'}
    }
    event.update(fields)
    return event
