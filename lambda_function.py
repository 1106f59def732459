"""AWS Lambda handler for merged calendar sync."""
import json
import logging
import os
import time
from typing import Dict, Any, Optional

from calendar_api.google_calendar import GoogleCalendarClient, build_authorized_session
from processor.models import ConfigurationError, SyncConfig, read_int_setting
from storage.mapping_store import DynamoDBMappingStore
from sync.orchestrator import SyncOrchestrator


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

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def run_deadline(context: Any, margin_seconds: int) -> Optional[float]:
    """
    Compute a time.monotonic() deadline from the Lambda's remaining time.

    Args:
        context: Lambda context object
        margin_seconds: Time reserved for wrapping up before the hard timeout

    Returns:
        Monotonic deadline, or None when the context has no time budget
    """
    get_remaining = getattr(context, 'get_remaining_time_in_millis', None)
    if not callable(get_remaining):
        return None
    remaining_seconds = get_remaining() / 1000.0
    return time.monotonic() + max(remaining_seconds - margin_seconds, 0)


def _error_response(message: str, error: Exception, start_time: float) -> Dict[str, Any]:
    return {
        'statusCode': 500,
        'body': json.dumps({
            'message': message,
            'error': str(error),
            'error_type': type(error).__name__,
            'duration_seconds': round(time.time() - start_time, 2)
        })
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for merged calendar sync.

    The function must run with reserved concurrency 1: overlapping runs
    would race on the mapping table.

    Args:
        event: EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    table_name = os.environ.get('TABLE_NAME', 'calendar-sync-mappings')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    credentials_file = os.environ.get('GOOGLE_CREDENTIALS_FILE', 'credentials.json')
    delegated_user = os.environ.get('GOOGLE_DELEGATED_USER') or None

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()

    try:
        config = SyncConfig.from_env()
        timeout_seconds = read_int_setting('REQUEST_TIMEOUT_SECONDS', 30, minimum=1)
        margin_seconds = read_int_setting('RUN_DEADLINE_MARGIN_SECONDS', 10)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}", exc_info=True)
        return _error_response('Invalid configuration', e, start_time)

    logger.info(
        "Lambda execution started",
        extra={
            'table_name': table_name,
            'destination_calendar_name': config.destination_calendar_name,
            'lookback_days': config.lookback_days,
            'lookahead_days': config.lookahead_days
        }
    )

    try:
        session = build_authorized_session(credentials_file, delegated_user)
        client = GoogleCalendarClient(session, timeout=timeout_seconds)
        store = DynamoDBMappingStore(table_name=table_name, key_prefix=config.key_prefix)
        orchestrator = SyncOrchestrator(client, store, config)

        logger.info("Synchronizing source calendars into merged calendar")
        run_result = orchestrator.run(deadline=run_deadline(context, margin_seconds))

    except ConfigurationError as e:
        logger.error(
            f"Destination calendar could not be resolved: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response('Destination calendar could not be resolved', e, start_time)

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response('Sync failed', e, start_time)

    duration = time.time() - start_time
    statistics = run_result.totals()
    statistics['duration_seconds'] = round(duration, 2)
    errors = run_result.all_errors()

    logger.info(
        "Lambda execution completed successfully",
        extra={
            'destination_calendar_id': run_result.destination_calendar_id,
            'timed_out': run_result.timed_out,
            'error_count': len(errors),
            **statistics
        }
    )

    return {
        'statusCode': 200,
        'body': json.dumps({
            'message': 'Sync stopped at deadline' if run_result.timed_out else 'Sync completed successfully',
            'destination_calendar_id': run_result.destination_calendar_id,
            'timed_out': run_result.timed_out,
            'statistics': statistics,
            'errors': errors
        })
    }
