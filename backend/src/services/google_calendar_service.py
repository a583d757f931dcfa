# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportMissingTypeStubs=false
"""
Google Calendar adapter for availability import, export and sync, and for
the Google Meet meetings of virtual appointments.

Implements the ``CalendarBridge`` contract on top of the Google Calendar
API: list the events of a date range, insert availability events, and
create, patch or delete meeting events. A fresh API client is built from the
doctor's refresh token on every call; nothing is held open across requests.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from core.config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET
from core.exceptions import ExternalServiceError
from shared_types.availability import CalendarEventSpec, Meeting, MeetingSpec, RemoteEvent
from shared_types.collaborators import CalendarBridge
from utils.datetime_utils import format_rfc3339, parse_rfc3339

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]


class GoogleCalendarError(ExternalServiceError):
    """Google Calendar API call failed."""
    pass


def _http_error_message(e: HttpError) -> str:
    try:
        error_details = json.loads(e.content.decode('utf-8')) if e.content else {}
    except (ValueError, UnicodeDecodeError):
        error_details = {}
    return error_details.get('error', {}).get('message', str(e))


def event_from_google(item: Dict[str, Any]) -> RemoteEvent:
    """
    Convert a Google Calendar event resource into a RemoteEvent.

    All-day events only carry ``date`` (not ``dateTime``) and come back with
    ``start``/``end`` set to None.
    """
    def _parse(part: Optional[Dict[str, Any]]) -> Optional[datetime]:
        value = (part or {}).get('dateTime')
        if not value:
            return None
        try:
            return parse_rfc3339(value)
        except ValueError:
            logger.warning(f"Unparseable dateTime on event {item.get('id')}: {value!r}")
            return None

    return RemoteEvent(
        id=item.get('id', ''),
        summary=item.get('summary') or '',
        start=_parse(item.get('start')),
        end=_parse(item.get('end')),
    )


class GoogleCalendarService(CalendarBridge):
    """
    Service for Google Calendar API operations.

    Attributes:
        calendar_id: Google Calendar ID (defaults to primary calendar)
    """

    # Default calendar ID (primary calendar)
    DEFAULT_CALENDAR_ID = 'primary'

    def __init__(
        self,
        calendar_id: str = DEFAULT_CALENDAR_ID,
        client_id: str = GOOGLE_CLIENT_ID,
        client_secret: str = GOOGLE_CLIENT_SECRET,
    ) -> None:
        self.calendar_id = calendar_id
        self.client_id = client_id
        self.client_secret = client_secret

    def _build_client(self, credential: str) -> Any:
        """
        Build a Calendar API client from a refresh token.

        Raises:
            GoogleCalendarError: If the credential is missing or the client cannot be built
        """
        if not credential:
            raise GoogleCalendarError("Google Calendar is not connected for this doctor")
        try:
            credentials = Credentials(
                token=None,
                refresh_token=credential,
                token_uri=GOOGLE_TOKEN_URI,
                client_id=self.client_id,
                client_secret=self.client_secret,
                scopes=CALENDAR_SCOPES,
            )
            return build('calendar', 'v3', credentials=credentials, cache_discovery=False)
        except Exception as e:
            raise GoogleCalendarError(f"Failed to initialize Google Calendar service: {e}")

    def list_events(self, credential: str, range_start: datetime, range_end: datetime) -> List[RemoteEvent]:
        """
        List single (expanded) events between ``range_start`` and ``range_end``.

        Args:
            credential: Doctor's Google refresh token
            range_start: Inclusive lower bound (timezone-aware)
            range_end: Exclusive upper bound (timezone-aware)

        Returns:
            Events ordered by start time, following pagination

        Raises:
            GoogleCalendarError: If listing fails
        """
        service = self._build_client(credential)
        events: List[RemoteEvent] = []
        page_token: Optional[str] = None
        try:
            while True:
                response = service.events().list(
                    calendarId=self.calendar_id,
                    timeMin=format_rfc3339(range_start),
                    timeMax=format_rfc3339(range_end),
                    singleEvents=True,
                    orderBy='startTime',
                    pageToken=page_token,
                ).execute()
                events.extend(event_from_google(item) for item in response.get('items', []))
                page_token = response.get('nextPageToken')
                if not page_token:
                    break
        except HttpError as e:
            error_message = _http_error_message(e)
            logger.error(f"Google Calendar API error listing events: {error_message} (status: {e.resp.status})")
            raise GoogleCalendarError(f"Failed to list calendar events: {error_message}")
        except Exception as e:
            logger.error(f"Unexpected error listing calendar events: {e}", exc_info=True)
            raise GoogleCalendarError(f"Unexpected error listing calendar events: {e}")

        logger.debug(f"Fetched {len(events)} events from calendar {self.calendar_id}")
        return events

    def insert_event(self, credential: str, event_spec: CalendarEventSpec) -> str:
        """
        Create an event and return its id.

        Raises:
            GoogleCalendarError: If event creation fails or the response has no id
        """
        service = self._build_client(credential)
        event_body = build_event_body(event_spec)
        try:
            event = service.events().insert(calendarId=self.calendar_id, body=event_body).execute()
        except HttpError as e:
            error_message = _http_error_message(e)
            logger.error(f"Google Calendar API error: {error_message} (status: {e.resp.status})")
            logger.error(f"Event body that was sent: {json.dumps(event_body, indent=2)}")
            raise GoogleCalendarError(f"Failed to create calendar event: {error_message}")
        except Exception as e:
            logger.error(f"Unexpected error creating calendar event: {e}", exc_info=True)
            raise GoogleCalendarError(f"Unexpected error creating calendar event: {e}")

        event_id = event.get('id') if isinstance(event, dict) else None
        if not event_id:
            raise GoogleCalendarError("Google Calendar did not return an event id")
        logger.info(f"Google Calendar event created successfully: {event_id}")
        return event_id

    def create_meeting(self, credential: str, meeting_spec: MeetingSpec) -> Meeting:
        """
        Create an event with a Google Meet conference for a virtual appointment.

        Raises:
            GoogleCalendarError: If the event cannot be created or Google returns no Meet link
        """
        service = self._build_client(credential)
        event_body = build_meeting_body(meeting_spec)
        event_body['conferenceData'] = {
            'createRequest': {
                'requestId': uuid.uuid4().hex,
                'conferenceSolutionKey': {'type': 'hangoutsMeet'},
            }
        }
        event = self._execute(
            service.events().insert(
                calendarId=self.calendar_id,
                body=event_body,
                conferenceDataVersion=1,
                sendUpdates='none',
            ),
            "create meeting",
        )
        meeting = meeting_from_google(event)
        logger.info(f"Google Meet event created: {meeting.event_id}")
        return meeting

    def update_meeting(self, credential: str, event_id: str, meeting_spec: MeetingSpec) -> Meeting:
        """
        Move a meeting event to the appointment's current time.

        The conference attached at creation is kept; only the event fields are patched.

        Raises:
            GoogleCalendarError: If the event cannot be updated
        """
        service = self._build_client(credential)
        event = self._execute(
            service.events().patch(
                calendarId=self.calendar_id,
                eventId=event_id,
                body=build_meeting_body(meeting_spec),
                conferenceDataVersion=1,
                sendUpdates='none',
            ),
            "update meeting",
        )
        meeting = meeting_from_google(event)
        logger.info(f"Google Meet event updated: {meeting.event_id}")
        return meeting

    def delete_meeting(self, credential: str, event_id: str) -> None:
        """
        Delete a meeting event. Events that no longer exist are ignored.

        Raises:
            GoogleCalendarError: If the event cannot be deleted
        """
        service = self._build_client(credential)
        try:
            self._execute(
                service.events().delete(calendarId=self.calendar_id, eventId=event_id, sendUpdates='none'),
                "delete meeting",
            )
        except GoogleCalendarError as e:
            if e.details.get('status') in (404, 410):
                logger.info(f"Google Meet event {event_id} already removed")
                return
            raise
        logger.info(f"Google Meet event deleted: {event_id}")

    @staticmethod
    def _execute(request: Any, action: str) -> Any:
        try:
            return request.execute()
        except HttpError as e:
            error_message = _http_error_message(e)
            logger.error(f"Google Calendar API error ({action}): {error_message} (status: {e.resp.status})")
            raise GoogleCalendarError(f"Failed to {action}: {error_message}", details={'status': e.resp.status})
        except Exception as e:
            logger.error(f"Unexpected error ({action}): {e}", exc_info=True)
            raise GoogleCalendarError(f"Unexpected error ({action}): {e}")


def build_event_body(event_spec: CalendarEventSpec) -> Dict[str, Any]:
    """Translate a CalendarEventSpec into a Google Calendar event resource."""
    body: Dict[str, Any] = {
        'summary': event_spec.summary,
        'description': event_spec.description,
        'colorId': event_spec.color_id,
        'start': {'dateTime': format_rfc3339(event_spec.start)},
        'end': {'dateTime': format_rfc3339(event_spec.end)},
        'transparency': 'transparent' if event_spec.transparent else 'opaque',
        'reminders': {'useDefault': event_spec.use_default_reminders},
    }
    timezone_name = getattr(event_spec.start.tzinfo, 'key', None)
    if timezone_name:
        body['start']['timeZone'] = timezone_name
        body['end']['timeZone'] = timezone_name
    return body


def build_meeting_body(meeting_spec: MeetingSpec) -> Dict[str, Any]:
    """Translate a MeetingSpec into Google Calendar event fields (without conference data)."""
    body: Dict[str, Any] = {
        'summary': meeting_spec.summary,
        'description': meeting_spec.description,
        'start': {'dateTime': format_rfc3339(meeting_spec.start)},
        'end': {'dateTime': format_rfc3339(meeting_spec.end)},
        'attendees': [{'email': email} for email in meeting_spec.attendees],
        'reminders': {
            'useDefault': False,
            'overrides': [
                {'method': 'email', 'minutes': 24 * 60},
                {'method': 'popup', 'minutes': 30},
            ],
        },
    }
    timezone_name = getattr(meeting_spec.start.tzinfo, 'key', None)
    if timezone_name:
        body['start']['timeZone'] = timezone_name
        body['end']['timeZone'] = timezone_name
    return body


def meeting_from_google(event: Dict[str, Any]) -> Meeting:
    """
    Read the event id and Meet join link from an event resource.

    Falls back to the conference's video entry point when ``hangoutLink`` is absent.

    Raises:
        GoogleCalendarError: If the event has no id or no video link
    """
    event_id = event.get('id') if isinstance(event, dict) else None
    if not event_id:
        raise GoogleCalendarError("Google Calendar did not return an event id")
    link = event.get('hangoutLink')
    if not link:
        entry_points = (event.get('conferenceData') or {}).get('entryPoints') or []
        link = next((ep.get('uri') for ep in entry_points if ep.get('entryPointType') == 'video'), None)
    if not link:
        raise GoogleCalendarError(
            "Google Calendar did not generate a Meet link; check that Google Meet is enabled for this account",
            details={'event_id': event_id},
        )
    return Meeting(event_id=event_id, link=link)
