"""Sync of one source calendar into the merged calendar."""
import logging
from time import monotonic
from typing import Optional

from calendar_api.google_calendar import CalendarApiError, GoogleCalendarClient
from processor.event_translator import EventTranslator
from processor.models import CalendarSyncResult, TimeWindow
from processor.reconciler import Reconciler
from storage.mapping_store import DynamoDBMappingStore

logger = logging.getLogger(__name__)


class CalendarSync:
    """Pages through a source calendar and reconciles every event instance."""

    def __init__(
        self,
        client: GoogleCalendarClient,
        store: DynamoDBMappingStore,
        translator: Optional[EventTranslator] = None
    ):
        self.client = client
        self.store = store
        self.translator = translator or EventTranslator()

    def sync_calendar(
        self,
        source_calendar_id: str,
        destination_calendar_id: str,
        window: TimeWindow,
        deadline: Optional[float] = None
    ) -> CalendarSyncResult:
        """
        Reconcile every event instance of a source calendar within a window.

        Recurring events are expanded so each occurrence is reconciled on
        its own. A failing event is counted and logged and the rest of the
        page continues. A failing page fetch ends this calendar's sync.

        Args:
            source_calendar_id: Calendar to read
            destination_calendar_id: Merged calendar being written
            window: Inclusive time window events must overlap
            deadline: Optional time.monotonic() value after which no more
                pages are fetched and no more events are reconciled

        Returns:
            CalendarSyncResult with per-action counts
        """
        logger.info(
            f"Syncing calendar {source_calendar_id} from "
            f"{window.time_min.isoformat()} to {window.time_max.isoformat()}"
        )
        reconciler = Reconciler(
            self.client, self.store, destination_calendar_id, self.translator
        )
        result = CalendarSyncResult(calendar_id=source_calendar_id)
        page_token = None

        while True:
            if self._deadline_passed(deadline):
                logger.warning(f"Run deadline reached while syncing {source_calendar_id}")
                result.timed_out = True
                break

            try:
                page = self.client.list_events(
                    source_calendar_id,
                    window.time_min,
                    window.time_max,
                    single_events=True,
                    page_token=page_token
                )
            except CalendarApiError as e:
                error_msg = f"Error listing events for {source_calendar_id}: {e}"
                logger.error(error_msg)
                result.errors.append(error_msg)
                break

            for event in page.items:
                if not window.includes(event):
                    continue
                if self._deadline_passed(deadline):
                    logger.warning(
                        f"Run deadline reached mid-page while syncing {source_calendar_id}"
                    )
                    result.timed_out = True
                    break
                try:
                    action = reconciler.reconcile(source_calendar_id, event)
                except Exception as e:
                    error_msg = (
                        f"Error reconciling event {event.get('id')} "
                        f"from {source_calendar_id}: {e}"
                    )
                    logger.error(error_msg, exc_info=True)
                    result.errors.append(error_msg)
                    result.failed += 1
                    continue
                result.record(action)

            page_token = page.next_page_token
            if result.timed_out or not page_token:
                break

        logger.info(
            f"Calendar {source_calendar_id} done: {result.inserted} inserted, "
            f"{result.patched} patched, {result.skipped} skipped, "
            f"{result.deleted} deleted, {result.failed} failed"
        )
        return result

    @staticmethod
    def _deadline_passed(deadline: Optional[float]) -> bool:
        return deadline is not None and monotonic() >= deadline
