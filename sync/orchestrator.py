"""Run orchestration across all subscribed read-only calendars."""
import logging
from datetime import datetime, timezone
from time import monotonic
from typing import List, Optional, Tuple

from calendar_api.google_calendar import CalendarApiError, GoogleCalendarClient
from processor.models import CalendarRef, RunResult, SyncConfig, TimeWindow
from storage.mapping_store import DynamoDBMappingStore
from sync.calendar_sync import CalendarSync

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    Mirrors every eligible source calendar into the merged calendar.

    Precondition: at most one run per account is in flight at a time. The
    mapping store has no locking, so the scheduler must serialize runs.
    """

    def __init__(
        self,
        client: GoogleCalendarClient,
        store: DynamoDBMappingStore,
        config: SyncConfig,
        calendar_sync: Optional[CalendarSync] = None
    ):
        self.client = client
        self.store = store
        self.config = config
        self.calendar_sync = calendar_sync or CalendarSync(client, store)

    def run(
        self,
        now: Optional[datetime] = None,
        deadline: Optional[float] = None
    ) -> RunResult:
        """
        Execute one sync run.

        Args:
            now: Reference time for the window (default: current UTC time)
            deadline: Optional time.monotonic() value; calendars not started
                by then are left for the next run

        Returns:
            RunResult with per-calendar results

        Raises:
            ConfigurationError: If the destination calendar cannot be resolved
        """
        destination_id = self.client.find_or_create_calendar(
            self.config.destination_calendar_name
        )
        result = RunResult(destination_calendar_id=destination_id)

        window = TimeWindow.around(
            now or datetime.now(timezone.utc),
            self.config.lookback_days,
            self.config.lookahead_days
        )

        sources, listing_error = self._eligible_sources(destination_id)
        if listing_error:
            result.errors.append(listing_error)

        logger.info(f"Found {len(sources)} source calendars to sync into {destination_id}")

        for index, source in enumerate(sources):
            if deadline is not None and monotonic() >= deadline:
                logger.warning(
                    f"Run deadline reached, leaving {len(sources) - index} "
                    f"calendars for the next run"
                )
                result.timed_out = True
                break

            try:
                calendar_result = self.calendar_sync.sync_calendar(
                    source.calendar_id, destination_id, window, deadline=deadline
                )
            except Exception as e:
                error_msg = f"Error syncing calendar {source.calendar_id}: {e}"
                logger.error(error_msg, exc_info=True)
                result.errors.append(error_msg)
                continue

            result.calendars.append(calendar_result)
            if calendar_result.timed_out:
                result.timed_out = True
                break

        return result

    def _eligible_sources(self, destination_id: str) -> Tuple[List[CalendarRef], Optional[str]]:
        """
        List read-only calendars other than the destination.

        A listing failure keeps the calendars gathered so far.

        Returns:
            Tuple of (eligible calendars, error message or None)
        """
        sources = []
        page_token = None

        while True:
            try:
                page = self.client.list_calendars(page_token)
            except CalendarApiError as e:
                error_msg = f"Error listing calendars: {e}"
                logger.error(error_msg)
                return sources, error_msg

            for ref in page.items:
                if ref.calendar_id == destination_id:
                    continue
                if not ref.is_read_only:
                    logger.debug(f"Skipping calendar {ref.calendar_id} ({ref.access_role})")
                    continue
                sources.append(ref)

            page_token = page.next_page_token
            if not page_token:
                return sources, None
