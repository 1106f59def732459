"""Translator from source calendar events to merged calendar event bodies."""
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventTranslator:
    """Builds destination event bodies from source events."""

    PROVENANCE_CALENDAR_KEY = 'syncedFromCalendarId'
    PROVENANCE_EVENT_KEY = 'syncedFromEventId'
    FOOTER_TEMPLATE = '[SyncedFrom] {calendar_id} | sourceEventId: {event_id}'

    COPIED_FIELDS = ('summary', 'location', 'recurrence', 'transparency', 'visibility', 'status')
    ATTENDEE_FIELDS = ('email', 'displayName', 'responseStatus')
    TIME_KEYS = ('date', 'dateTime', 'timeZone')

    def translate(self, source_event: Dict[str, Any], source_calendar_id: str) -> Dict[str, Any]:
        """
        Build the destination body for a source event.

        Organizer, conference data, attachments and any field not listed
        here are never copied.

        Args:
            source_event: Event resource from the source calendar
            source_calendar_id: ID of the calendar the event came from

        Returns:
            Event body suitable for insert or patch on the merged calendar
        """
        event_id = source_event['id']
        body = {}

        for name in self.COPIED_FIELDS:
            if name in source_event:
                body[name] = source_event[name]

        body['description'] = self._description_with_footer(
            source_event.get('description'), source_calendar_id, event_id
        )

        for name in ('start', 'end'):
            block = self._time_block(source_event.get(name))
            if block:
                body[name] = block

        if source_event.get('attendees'):
            body['attendees'] = self._project_attendees(source_event['attendees'])

        body['reminders'] = self._reminders(source_event.get('reminders'))

        body['extendedProperties'] = {
            'private': {
                self.PROVENANCE_CALENDAR_KEY: source_calendar_id,
                self.PROVENANCE_EVENT_KEY: event_id
            }
        }

        return body

    def translate_replacement(
        self,
        source_event: Dict[str, Any],
        source_calendar_id: str
    ) -> Dict[str, Any]:
        """
        Build a patch body that fully replaces the merged copy's content.

        A patch leaves unsent fields untouched, so every portable field the
        source no longer has is sent as null, as are the unused keys of the
        start/end blocks (an all-day event turned timed clears ``date``).

        Args:
            source_event: Event resource from the source calendar
            source_calendar_id: ID of the calendar the event came from

        Returns:
            Event body suitable for patching an existing merged event
        """
        body = self.translate(source_event, source_calendar_id)

        for name in self.COPIED_FIELDS + ('attendees',):
            body.setdefault(name, None)

        for name in ('start', 'end'):
            if name in body:
                block = body[name]
                body[name] = {key: block.get(key) for key in self.TIME_KEYS}

        return body

    def provenance_of(self, destination_event: Dict[str, Any]) -> Optional[Dict[str, str]]:
        """
        Read the provenance block back from a merged event.

        Args:
            destination_event: Event resource from the merged calendar

        Returns:
            Dict with ``calendar_id`` and ``event_id`` or None if the event
            was not created by this sync
        """
        private = destination_event.get('extendedProperties', {}).get('private', {})
        calendar_id = private.get(self.PROVENANCE_CALENDAR_KEY)
        event_id = private.get(self.PROVENANCE_EVENT_KEY)
        if not calendar_id or not event_id:
            return None
        return {'calendar_id': calendar_id, 'event_id': event_id}

    def _description_with_footer(
        self,
        description: Optional[str],
        calendar_id: str,
        event_id: str
    ) -> str:
        footer = self.FOOTER_TEMPLATE.format(calendar_id=calendar_id, event_id=event_id)
        if description:
            return f"{description}\n\n{footer}"
        return footer

    def _time_block(self, block: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Keep whichever of all-day date or dateTime/timeZone the source used."""
        if not block:
            return None
        if 'date' in block:
            return {'date': block['date']}
        if 'dateTime' in block:
            result = {'dateTime': block['dateTime']}
            if block.get('timeZone'):
                result['timeZone'] = block['timeZone']
            return result
        return None

    def _project_attendees(self, attendees: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        projected = []
        for attendee in attendees:
            entry = {
                name: attendee[name]
                for name in self.ATTENDEE_FIELDS
                if name in attendee
            }
            if entry.get('email'):
                projected.append(entry)
            else:
                logger.debug("Dropping attendee without email")
        return projected

    def _reminders(self, reminders: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        # Without overrides the merged calendar's own default applies
        if reminders and reminders.get('overrides'):
            return {'useDefault': False, 'overrides': reminders['overrides']}
        return {'useDefault': True}
