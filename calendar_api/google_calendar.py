"""Google Calendar v3 REST client for the calendars this sync reads and writes."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from processor.models import CalendarRef, ConfigurationError

logger = logging.getLogger(__name__)

CALENDAR_SCOPES = ['https://www.googleapis.com/auth/calendar']


class CalendarApiError(Exception):
    """Raised when a Google Calendar API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class CalendarListPage:
    """One page of the account's calendar list."""
    items: List[CalendarRef] = field(default_factory=list)
    next_page_token: Optional[str] = None


@dataclass
class EventPage:
    """One page of events from a calendar."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_page_token: Optional[str] = None


def build_authorized_session(
    credentials_file: str,
    delegated_user: Optional[str] = None
) -> requests.Session:
    """
    Build a requests session that signs calls with service account credentials.

    Args:
        credentials_file: Path to the service account JSON key
        delegated_user: Optional user to impersonate via domain-wide delegation

    Returns:
        google-auth AuthorizedSession (a requests.Session subclass)
    """
    credentials = service_account.Credentials.from_service_account_file(
        credentials_file,
        scopes=CALENDAR_SCOPES
    )
    if delegated_user:
        credentials = credentials.with_subject(delegated_user)
    return AuthorizedSession(credentials)


def format_rfc3339(value: datetime) -> str:
    """Format an aware datetime as RFC 3339 in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


class GoogleCalendarClient:
    """Thin wrapper around the Google Calendar v3 REST endpoints."""

    BASE_URL = 'https://www.googleapis.com/calendar/v3'
    PAGE_SIZE = 250
    NOT_FOUND_STATUSES = (404, 410)

    def __init__(self, session: requests.Session, timeout: int = 30):
        """
        Initialize the client.

        Args:
            session: Session carrying credentials, normally an AuthorizedSession
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.session = session
        self.timeout = timeout

    def list_calendars(self, page_token: Optional[str] = None) -> CalendarListPage:
        """
        Fetch one page of the account's calendar list.

        Args:
            page_token: Token from the previous page, if any

        Returns:
            CalendarListPage with calendar references and the next page token
        """
        params = {'maxResults': self.PAGE_SIZE}
        if page_token:
            params['pageToken'] = page_token

        payload = self._request('GET', '/users/me/calendarList', params=params)

        items = []
        for entry in payload.get('items', []):
            if not entry.get('id'):
                continue
            items.append(CalendarRef(
                calendar_id=entry['id'],
                access_role=entry.get('accessRole', ''),
                summary=entry.get('summary')
            ))

        return CalendarListPage(items=items, next_page_token=payload.get('nextPageToken'))

    def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
        single_events: bool = True,
        page_token: Optional[str] = None
    ) -> EventPage:
        """
        Fetch one page of events overlapping a time range.

        Both API bounds are exclusive, so each is widened by one second to
        return events starting exactly at ``time_max`` or ending exactly at
        ``time_min``. Cancelled events are requested too so their mirrors
        can be removed.

        Args:
            calendar_id: Calendar to read
            time_min: Lower bound of the range
            time_max: Upper bound of the range
            single_events: Expand recurring events into instances
            page_token: Token from the previous page, if any

        Returns:
            EventPage with raw event resources and the next page token
        """
        params = {
            'timeMin': format_rfc3339(time_min - timedelta(seconds=1)),
            'timeMax': format_rfc3339(time_max + timedelta(seconds=1)),
            'singleEvents': 'true' if single_events else 'false',
            'showDeleted': 'true',
            'maxResults': self.PAGE_SIZE
        }
        if page_token:
            params['pageToken'] = page_token

        payload = self._request('GET', f'/calendars/{_encode(calendar_id)}/events', params=params)
        return EventPage(
            items=list(payload.get('items', [])),
            next_page_token=payload.get('nextPageToken')
        )

    def insert_event(self, calendar_id: str, body: Dict[str, Any]) -> str:
        """
        Create an event.

        Returns:
            ID of the new event
        """
        payload = self._request('POST', f'/calendars/{_encode(calendar_id)}/events', json_body=body)
        event_id = payload.get('id')
        if not event_id:
            raise CalendarApiError("Insert response did not include an event id")
        return event_id

    def patch_event(self, calendar_id: str, event_id: str, body: Dict[str, Any]) -> bool:
        """
        Patch an event.

        Returns:
            True if patched, False if the event no longer exists
        """
        path = f'/calendars/{_encode(calendar_id)}/events/{_encode(event_id)}'
        return self._request_allowing_not_found('PATCH', path, json_body=body)

    def remove_event(self, calendar_id: str, event_id: str) -> bool:
        """
        Delete an event.

        Returns:
            True if deleted, False if the event no longer exists
        """
        path = f'/calendars/{_encode(calendar_id)}/events/{_encode(event_id)}'
        return self._request_allowing_not_found('DELETE', path)

    def find_or_create_calendar(self, name: str) -> str:
        """
        Resolve an owned calendar by name, creating it if missing.

        Args:
            name: Calendar summary to look for

        Returns:
            Calendar ID

        Raises:
            ConfigurationError: If the calendar is ambiguous or cannot be
                listed or created
        """
        matches = []
        page_token = None
        try:
            while True:
                page = self.list_calendars(page_token)
                matches.extend(
                    ref for ref in page.items
                    if ref.summary == name and ref.access_role == 'owner'
                )
                page_token = page.next_page_token
                if not page_token:
                    break
        except CalendarApiError as e:
            raise ConfigurationError(f"Unable to list calendars to resolve '{name}': {e}") from e

        if len(matches) > 1:
            ids = ', '.join(ref.calendar_id for ref in matches)
            raise ConfigurationError(f"Calendar name '{name}' is ambiguous: {ids}")
        if matches:
            logger.info(f"Using existing destination calendar {matches[0].calendar_id}")
            return matches[0].calendar_id

        logger.info(f"Destination calendar '{name}' not found, creating it")
        try:
            payload = self._request('POST', '/calendars', json_body={'summary': name})
        except CalendarApiError as e:
            raise ConfigurationError(f"Unable to create calendar '{name}': {e}") from e

        if not payload.get('id'):
            raise ConfigurationError(f"Create calendar response for '{name}' had no id")
        return payload['id']

    def _request_allowing_not_found(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None
    ) -> bool:
        try:
            self._request(method, path, json_body=json_body)
        except CalendarApiError as e:
            if e.status_code in self.NOT_FOUND_STATUSES:
                return False
            raise
        return True

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Perform one API call.

        Raises:
            CalendarApiError: On transport failure or non-2xx status
        """
        url = f'{self.BASE_URL}{path}'
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise CalendarApiError(f"{method} {path} failed: {e}") from e

        if not response.ok:
            raise CalendarApiError(
                f"{method} {path} returned {response.status_code}: {_error_message(response)}",
                status_code=response.status_code
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            payload = response.json()
        except ValueError as e:
            raise CalendarApiError(f"{method} {path} returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise CalendarApiError(f"{method} {path} returned an unexpected payload")
        return payload


def _encode(value: str) -> str:
    return quote(value, safe='')


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error = payload.get('error')
        if isinstance(error, dict) and error.get('message'):
            return str(error['message'])[:200]
        if isinstance(error, str) and error:
            return error[:200]

    return response.text.strip()[:200] or 'no error payload'
