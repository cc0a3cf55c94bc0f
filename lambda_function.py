"""AWS Lambda handler for Family Calendar validation and sync."""
import json
import logging
import os
import time
from dataclasses import asdict
from typing import Any, Dict

from processor.canonical import DEFAULT_CATEGORY_KEYWORDS, load_canonical_calendar
from processor.dates import parse_event_datetime
from processor.event_validator import DEFAULT_FAMILY_MEMBERS, CalendarValidator
from storage.dynamodb_event_store import DynamoDBEventStore
from storage.intent_log import DynamoDBIntentLog
from storage.read_cache import get_read_cache
from sync.canonical_reconciler import CanonicalReconciler
from sync.orchestrator import SyncOrchestrator
from sync.report import format_validation_report

# LogRecord attributes that are not user-supplied extras
_RESERVED_LOG_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {
    'message', 'asctime'
}

ACTIONS = ('sync', 'validate', 'health_check', 'report', 'events')


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any extra= fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_LOG_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


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


def _split_env_list(name: str, default) -> tuple:
    raw = os.environ.get(name)
    if not raw:
        return tuple(default)
    return tuple(part.strip() for part in raw.split(',') if part.strip())


def load_config() -> Dict[str, Any]:
    """Read configuration from environment variables."""
    return {
        'table_name': os.environ.get('TABLE_NAME', 'family-calendar-events'),
        'intent_table_name': os.environ.get(
            'INTENT_TABLE_NAME', 'family-calendar-sync-intents'
        ),
        'log_level': os.environ.get('LOG_LEVEL', 'INFO'),
        'canonical_source': os.environ.get('CANONICAL_EVENTS_SOURCE') or None,
        'family_members': _split_env_list('FAMILY_MEMBERS', DEFAULT_FAMILY_MEMBERS),
        'category_keywords': _split_env_list('CATEGORY_KEYWORDS', DEFAULT_CATEGORY_KEYWORDS),
        'sync_actor': os.environ.get('SYNC_ACTOR', 'calendar-sync'),
        'timeout_seconds': int(os.environ.get('TIMEOUT_SECONDS', '30')),
    }


def build_orchestrator(config: Dict[str, Any]) -> SyncOrchestrator:
    """Wire the store, validator, reconciler and cache together."""
    canonical_calendar = load_canonical_calendar(
        config['canonical_source'],
        keywords=config['category_keywords'],
        timeout=config['timeout_seconds']
    )
    store = DynamoDBEventStore(table_name=config['table_name'])
    intent_log = DynamoDBIntentLog(table_name=config['intent_table_name'])

    validator = CalendarValidator(
        store,
        canonical_definitions=canonical_calendar.definitions,
        family_members=config['family_members'],
        category_keywords=config['category_keywords']
    )
    reconciler = CanonicalReconciler(
        store,
        canonical_calendar.definitions,
        intent_log=intent_log,
        category_keywords=config['category_keywords'],
        sync_actor=config['sync_actor']
    )
    return SyncOrchestrator(validator, reconciler, get_read_cache())


def list_events(config: Dict[str, Any], start_date: str, end_date: str) -> Dict[str, Any]:
    """Serve a date range through the process-wide read cache."""
    store = DynamoDBEventStore(table_name=config['table_name'])
    events = get_read_cache().query(store, start_date, end_date)
    return {'events': [asdict(e) for e in events], 'count': len(events)}


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body, default=str)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    Args:
        event: Payload; event["action"] is one of sync (default), validate,
            health_check, report, events (with start_date and end_date)
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    config = load_config()

    setup_logging(config['log_level'])
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action = (event or {}).get('action', 'sync')
    logger.info(
        "Lambda execution started",
        extra={
            'action': action,
            'table_name': config['table_name'],
            'intent_table_name': config['intent_table_name']
        }
    )

    if action not in ACTIONS:
        logger.warning(f"Unknown action requested: {action}")
        return _response(400, {
            'message': f'Unknown action: {action}',
            'allowed_actions': list(ACTIONS)
        })

    if action == 'events':
        start_date = event.get('start_date')
        end_date = event.get('end_date')
        if parse_event_datetime(start_date) is None or parse_event_datetime(end_date) is None:
            logger.warning(f"Invalid range requested: {start_date}..{end_date}")
            return _response(400, {
                'message': 'events requires start_date and end_date (YYYY-MM-DD[THH:MM:SS])'
            })

    try:
        # Reads never need the canonical definitions
        orchestrator = None if action == 'events' else build_orchestrator(config)

        if action == 'events':
            status_code = 200
            body = list_events(config, start_date, end_date)

        elif action == 'sync':
            result = orchestrator.sync_with_canonical_source()
            status_code = 200 if result.success else 500
            body = asdict(result)

        elif action == 'validate':
            result = orchestrator.validator.validate_all_events()
            status_code = 200
            body = asdict(result)
            body['report'] = format_validation_report(result)

        elif action == 'health_check':
            result = orchestrator.perform_health_check()
            status_code = 200
            body = asdict(result)

        else:
            status_code = 200
            body = {'report': orchestrator.get_sync_status_report()}

        duration = time.time() - start_time
        body['duration_seconds'] = round(duration, 2)

        logger.info(
            "Lambda execution completed",
            extra={'action': action, 'status_code': status_code,
                   'duration_seconds': round(duration, 2)}
        )
        return _response(status_code, body)

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': f'{action} failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
