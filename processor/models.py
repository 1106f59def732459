"""Data models for calendar reconciliation."""
import os
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


READ_ONLY_ACCESS_ROLES = frozenset({'reader', 'freeBusyReader'})


class ConfigurationError(Exception):
    """Raised when the run cannot start because of bad or unreachable configuration."""


@dataclass
class CalendarRef:
    """Calendar as listed in the account's calendar list."""
    calendar_id: str
    access_role: str
    summary: Optional[str] = None

    @property
    def is_read_only(self) -> bool:
        return self.access_role in READ_ONLY_ACCESS_ROLES


@dataclass
class SyncRecord:
    """Stored link between a source event and its mirrored destination event."""
    destination_event_id: str
    last_source_updated: str


class SyncAction(Enum):
    """Outcome of reconciling one source event."""
    INSERT = 'insert'
    PATCH = 'patch'
    SKIP = 'skip'
    DELETE = 'delete'
    NOOP = 'noop'


@dataclass
class TimeWindow:
    """Inclusive time range that source events must overlap to be mirrored."""
    time_min: datetime
    time_max: datetime

    @classmethod
    def around(cls, now: datetime, lookback_days: int, lookahead_days: int) -> 'TimeWindow':
        return cls(
            time_min=now - timedelta(days=lookback_days),
            time_max=now + timedelta(days=lookahead_days)
        )

    def includes(self, event: Dict[str, Any]) -> bool:
        """
        Check whether an event overlaps the window, edges included.

        Args:
            event: Event resource with ``start`` and ``end`` blocks

        Returns:
            True if start <= time_max and end >= time_min. Events without a
            parseable start (e.g. cancelled instances) are always included.
        """
        start = parse_event_time(event.get('start'))
        if start is None:
            return True
        end = parse_event_time(event.get('end')) or start
        return start <= self.time_max and end >= self.time_min


def parse_event_time(block: Optional[Dict[str, Any]]) -> Optional[datetime]:
    """
    Convert an event ``start``/``end`` block to an aware datetime.

    All-day ``date`` values are taken as midnight UTC.

    Args:
        block: Dict holding either ``dateTime`` or ``date``

    Returns:
        Aware datetime or None if the block is missing or unparseable
    """
    if not block:
        return None

    try:
        if block.get('dateTime'):
            value = block['dateTime']
            if value.endswith('Z'):
                value = value[:-1] + '+00:00'
            parsed = datetime.fromisoformat(value)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        if block.get('date'):
            day = date.fromisoformat(block['date'])
            return datetime.combine(day, time.min, tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None

    return None


@dataclass
class SyncConfig:
    """Run configuration passed explicitly into the orchestrator."""
    destination_calendar_name: str = 'Merged Calendar'
    lookback_days: int = 30
    lookahead_days: int = 365
    key_prefix: str = 'sync:'

    @classmethod
    def from_env(cls) -> 'SyncConfig':
        """
        Build configuration from environment variables.

        Raises:
            ConfigurationError: If a window size is not a non-negative integer
        """
        return cls(
            destination_calendar_name=os.environ.get(
                'DESTINATION_CALENDAR_NAME', cls.destination_calendar_name
            ),
            lookback_days=read_int_setting('LOOKBACK_DAYS', cls.lookback_days),
            lookahead_days=read_int_setting('LOOKAHEAD_DAYS', cls.lookahead_days),
            key_prefix=os.environ.get('KEY_PREFIX', cls.key_prefix)
        )


def read_int_setting(name: str, default: int, minimum: int = 0) -> int:
    """
    Read an integer setting from the environment.

    Raises:
        ConfigurationError: If the value is not an integer or is below
            ``minimum``
    """
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {value}")
    return value


@dataclass
class CalendarSyncResult:
    """Result of syncing one source calendar."""
    calendar_id: str
    inserted: int = 0
    patched: int = 0
    skipped: int = 0
    deleted: int = 0
    failed: int = 0
    timed_out: bool = False
    errors: List[str] = field(default_factory=list)

    def record(self, action: SyncAction) -> None:
        if action is SyncAction.INSERT:
            self.inserted += 1
        elif action is SyncAction.PATCH:
            self.patched += 1
        elif action is SyncAction.DELETE:
            self.deleted += 1
        else:
            self.skipped += 1

    @property
    def processed(self) -> int:
        return self.inserted + self.patched + self.skipped + self.deleted + self.failed


@dataclass
class RunResult:
    """Result of a full run across all source calendars."""
    destination_calendar_id: str
    calendars: List[CalendarSyncResult] = field(default_factory=list)
    timed_out: bool = False
    errors: List[str] = field(default_factory=list)

    def totals(self) -> Dict[str, int]:
        return {
            'calendars_synced': len(self.calendars),
            'events_inserted': sum(c.inserted for c in self.calendars),
            'events_patched': sum(c.patched for c in self.calendars),
            'events_skipped': sum(c.skipped for c in self.calendars),
            'events_deleted': sum(c.deleted for c in self.calendars),
            'events_failed': sum(c.failed for c in self.calendars)
        }

    def all_errors(self) -> List[str]:
        errors = list(self.errors)
        for calendar in self.calendars:
            errors.extend(calendar.errors)
        return errors
