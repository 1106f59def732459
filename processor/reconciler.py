"""Per-event reconciliation between a source calendar and the merged calendar."""
import logging
from typing import Any, Dict, Optional

from calendar_api.google_calendar import CalendarApiError, GoogleCalendarClient
from processor.event_translator import EventTranslator
from processor.models import SyncAction, SyncRecord
from storage.mapping_store import DynamoDBMappingStore, MappingKey

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Decides and applies the minimal write for one source event.

    Decisions use only the stored mapping and the source event's ``updated``
    stamp; the merged calendar is never read. A stamp that is not
    byte-equal to the stored one counts as a change.
    """

    CANCELLED = 'cancelled'

    def __init__(
        self,
        client: GoogleCalendarClient,
        store: DynamoDBMappingStore,
        destination_calendar_id: str,
        translator: Optional[EventTranslator] = None
    ):
        self.client = client
        self.store = store
        self.destination_calendar_id = destination_calendar_id
        self.translator = translator or EventTranslator()

    def decide(self, source_event: Dict[str, Any], record: Optional[SyncRecord]) -> SyncAction:
        """
        Pick the action for a source event given its stored mapping.

        Args:
            source_event: Event resource from the source calendar
            record: Stored mapping, or None if absent

        Returns:
            SyncAction to apply
        """
        if source_event.get('status') == self.CANCELLED:
            return SyncAction.DELETE if record else SyncAction.NOOP

        if record is None:
            return SyncAction.INSERT

        if record.last_source_updated == source_event.get('updated', ''):
            return SyncAction.SKIP

        return SyncAction.PATCH

    def reconcile(self, source_calendar_id: str, source_event: Dict[str, Any]) -> SyncAction:
        """
        Bring the merged copy of one source event up to date.

        Args:
            source_calendar_id: Calendar the event came from
            source_event: Event resource from the source calendar

        Returns:
            The action that took effect (INSERT when a patch fell back)

        Raises:
            ValueError: If the event has no id
            CalendarApiError: If inserting the merged event fails; no
                mapping is written so the next run retries
            ClientError: If the mapping store cannot be read or written
        """
        event_id = source_event.get('id')
        if not event_id:
            raise ValueError("Source event has no id")

        key = MappingKey(calendar_id=source_calendar_id, event_id=event_id)
        record = self.store.get(key)
        action = self.decide(source_event, record)

        logger.debug(f"Event {event_id} from {source_calendar_id}: {action.value}")

        if action is SyncAction.DELETE:
            self._delete(key, record)
        elif action is SyncAction.PATCH:
            action = self._patch(key, record, source_calendar_id, source_event)
        elif action is SyncAction.INSERT:
            self._insert(key, source_calendar_id, source_event)

        return action

    def _delete(self, key: MappingKey, record: SyncRecord) -> None:
        try:
            removed = self.client.remove_event(
                self.destination_calendar_id, record.destination_event_id
            )
            if not removed:
                logger.info(
                    f"Merged event {record.destination_event_id} was already gone"
                )
        except CalendarApiError as e:
            # Mapping is forgotten regardless
            logger.warning(
                f"Failed to delete merged event {record.destination_event_id}: {e}"
            )

        self.store.delete(key)

    def _patch(
        self,
        key: MappingKey,
        record: SyncRecord,
        source_calendar_id: str,
        source_event: Dict[str, Any]
    ) -> SyncAction:
        body = self.translator.translate_replacement(source_event, source_calendar_id)
        try:
            patched = self.client.patch_event(
                self.destination_calendar_id, record.destination_event_id, body
            )
        except CalendarApiError as e:
            logger.warning(
                f"Patch of merged event {record.destination_event_id} failed, "
                f"inserting instead: {e}"
            )
            patched = False
        else:
            if not patched:
                logger.warning(
                    f"Merged event {record.destination_event_id} not found, "
                    f"inserting instead"
                )

        if not patched:
            self._insert(key, source_calendar_id, source_event)
            return SyncAction.INSERT

        self.store.put(key, SyncRecord(
            destination_event_id=record.destination_event_id,
            last_source_updated=source_event.get('updated', '')
        ))
        return SyncAction.PATCH

    def _insert(
        self,
        key: MappingKey,
        source_calendar_id: str,
        source_event: Dict[str, Any]
    ) -> None:
        body = self.translator.translate(source_event, source_calendar_id)

        destination_event_id = self.client.insert_event(self.destination_calendar_id, body)

        self.store.put(key, SyncRecord(
            destination_event_id=destination_event_id,
            last_source_updated=source_event.get('updated', '')
        ))
