"""
Unit tests for the Google Calendar adapter.

The Google API client is mocked; these tests check request parameters,
pagination, response mapping and error translation.
"""

from datetime import datetime, timezone
from unittest.mock import Mock, patch
from zoneinfo import ZoneInfo

import pytest
from googleapiclient.errors import HttpError

from core.exceptions import ExternalServiceError
from services.google_calendar_service import (
    GoogleCalendarError,
    GoogleCalendarService,
    build_event_body,
    event_from_google,
    meeting_from_google,
)
from shared_types.availability import CalendarEventSpec, Meeting, MeetingSpec

RANGE_START = datetime(2026, 1, 5, tzinfo=timezone.utc)
RANGE_END = datetime(2026, 1, 12, tzinfo=timezone.utc)


def _http_error(status: int, message: str) -> HttpError:
    resp = Mock(status=status, reason=message)
    content = ('{"error": {"message": "%s"}}' % message).encode("utf-8")
    return HttpError(resp, content)


@pytest.fixture
def mock_build():
    with patch("services.google_calendar_service.Credentials") as mock_credentials, \
         patch("services.google_calendar_service.build") as mock_build:
        mock_build.credentials_class = mock_credentials
        yield mock_build


@pytest.fixture
def calendar_service():
    return GoogleCalendarService(calendar_id="primary", client_id="client-id", client_secret="client-secret")


class TestEventMapping:
    def test_timed_event(self):
        event = event_from_google({
            "id": "abc",
            "summary": "Available",
            "start": {"dateTime": "2026-01-05T09:00:00Z"},
            "end": {"dateTime": "2026-01-05T09:30:00Z"},
        })
        assert event.id == "abc"
        assert event.summary == "Available"
        assert event.start == datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
        assert event.end == datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)

    def test_all_day_event_has_no_times(self):
        event = event_from_google({"id": "x", "start": {"date": "2026-01-05"}, "end": {"date": "2026-01-06"}})
        assert event.start is None
        assert event.end is None
        assert event.summary == ""

    def test_event_body(self):
        tz = ZoneInfo("Asia/Taipei")
        body = build_event_body(CalendarEventSpec(
            summary="Available: Dr. Jane Smith",
            description="Automatically created",
            start=datetime(2026, 1, 5, 9, 0, tzinfo=tz),
            end=datetime(2026, 1, 5, 9, 30, tzinfo=tz),
        ))
        assert body["summary"] == "Available: Dr. Jane Smith"
        assert body["colorId"] == "2"
        assert body["transparency"] == "transparent"
        assert body["reminders"] == {"useDefault": False}
        assert body["start"] == {"dateTime": "2026-01-05T09:00:00+08:00", "timeZone": "Asia/Taipei"}
        assert body["end"]["dateTime"] == "2026-01-05T09:30:00+08:00"


class TestListEvents:
    def test_follows_pagination(self, mock_build, calendar_service):
        events_resource = mock_build.return_value.events.return_value
        events_resource.list.return_value.execute.side_effect = [
            {"items": [{"id": "e1", "start": {"dateTime": "2026-01-05T09:00:00Z"},
                        "end": {"dateTime": "2026-01-05T09:30:00Z"}}], "nextPageToken": "page-2"},
            {"items": [{"id": "e2", "start": {"date": "2026-01-06"}, "end": {"date": "2026-01-07"}}]},
        ]

        events = calendar_service.list_events("refresh-token", RANGE_START, RANGE_END)

        assert [event.id for event in events] == ["e1", "e2"]
        first_call = events_resource.list.call_args_list[0].kwargs
        assert first_call["calendarId"] == "primary"
        assert first_call["timeMin"] == "2026-01-05T00:00:00Z"
        assert first_call["timeMax"] == "2026-01-12T00:00:00Z"
        assert first_call["singleEvents"] is True
        assert events_resource.list.call_args_list[1].kwargs["pageToken"] == "page-2"

    def test_builds_client_from_refresh_token(self, mock_build, calendar_service):
        mock_build.return_value.events.return_value.list.return_value.execute.return_value = {"items": []}

        calendar_service.list_events("refresh-token", RANGE_START, RANGE_END)

        credential_kwargs = mock_build.credentials_class.call_args.kwargs
        assert credential_kwargs["refresh_token"] == "refresh-token"
        assert credential_kwargs["client_id"] == "client-id"
        assert mock_build.call_args.args[:2] == ("calendar", "v3")

    def test_http_error_is_translated(self, mock_build, calendar_service):
        mock_build.return_value.events.return_value.list.return_value.execute.side_effect = _http_error(
            403, "Forbidden"
        )

        with pytest.raises(GoogleCalendarError) as exc_info:
            calendar_service.list_events("refresh-token", RANGE_START, RANGE_END)

        assert "Forbidden" in exc_info.value.message
        assert exc_info.value.status_code == 502
        assert isinstance(exc_info.value, ExternalServiceError)

    def test_missing_credential(self, mock_build, calendar_service):
        with pytest.raises(GoogleCalendarError, match="not connected"):
            calendar_service.list_events("", RANGE_START, RANGE_END)
        mock_build.assert_not_called()


class TestInsertEvent:
    def _spec(self):
        return CalendarEventSpec(
            summary="Available: Dr. Jane Smith",
            description="Automatically created",
            start=datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc),
            end=datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc),
        )

    def test_returns_event_id(self, mock_build, calendar_service):
        events_resource = mock_build.return_value.events.return_value
        events_resource.insert.return_value.execute.return_value = {"id": "new-event"}

        assert calendar_service.insert_event("refresh-token", self._spec()) == "new-event"
        body = events_resource.insert.call_args.kwargs["body"]
        assert body["start"]["dateTime"] == "2026-01-05T09:00:00Z"

    def test_missing_id_is_an_error(self, mock_build, calendar_service):
        mock_build.return_value.events.return_value.insert.return_value.execute.return_value = {}

        with pytest.raises(GoogleCalendarError, match="did not return an event id"):
            calendar_service.insert_event("refresh-token", self._spec())

    def test_http_error_is_translated(self, mock_build, calendar_service):
        mock_build.return_value.events.return_value.insert.return_value.execute.side_effect = _http_error(
            429, "Rate Limit Exceeded"
        )

        with pytest.raises(GoogleCalendarError, match="Rate Limit Exceeded"):
            calendar_service.insert_event("refresh-token", self._spec())


class TestMeetings:
    def _spec(self):
        return MeetingSpec(
            summary="Appointment: John Doe with Dr. Jane Smith",
            description="Headache",
            start=datetime(2026, 1, 6, 9, 0, tzinfo=timezone.utc),
            end=datetime(2026, 1, 6, 9, 30, tzinfo=timezone.utc),
            attendees=["doctor@example.com", "patient@example.com"],
        )

    def test_create_requests_meet_conference(self, mock_build, calendar_service):
        events_resource = mock_build.return_value.events.return_value
        events_resource.insert.return_value.execute.return_value = {
            "id": "meet-event",
            "hangoutLink": "https://meet.google.com/abc-defg-hij",
        }

        meeting = calendar_service.create_meeting("refresh-token", self._spec())

        assert meeting == Meeting(event_id="meet-event", link="https://meet.google.com/abc-defg-hij")
        kwargs = events_resource.insert.call_args.kwargs
        assert kwargs["conferenceDataVersion"] == 1
        assert kwargs["sendUpdates"] == "none"
        create_request = kwargs["body"]["conferenceData"]["createRequest"]
        assert create_request["conferenceSolutionKey"] == {"type": "hangoutsMeet"}
        assert create_request["requestId"]
        assert kwargs["body"]["attendees"] == [{"email": "doctor@example.com"}, {"email": "patient@example.com"}]

    def test_create_without_meet_link_is_an_error(self, mock_build, calendar_service):
        mock_build.return_value.events.return_value.insert.return_value.execute.return_value = {"id": "meet-event"}

        with pytest.raises(GoogleCalendarError, match="did not generate a Meet link"):
            calendar_service.create_meeting("refresh-token", self._spec())

    def test_update_patches_existing_event(self, mock_build, calendar_service):
        events_resource = mock_build.return_value.events.return_value
        events_resource.patch.return_value.execute.return_value = {
            "id": "meet-event",
            "hangoutLink": "https://meet.google.com/abc-defg-hij",
        }

        meeting = calendar_service.update_meeting("refresh-token", "meet-event", self._spec())

        assert meeting.event_id == "meet-event"
        kwargs = events_resource.patch.call_args.kwargs
        assert kwargs["eventId"] == "meet-event"
        assert kwargs["body"]["start"]["dateTime"] == "2026-01-06T09:00:00Z"
        assert "conferenceData" not in kwargs["body"]

    def test_delete(self, mock_build, calendar_service):
        events_resource = mock_build.return_value.events.return_value

        calendar_service.delete_meeting("refresh-token", "meet-event")

        assert events_resource.delete.call_args.kwargs["eventId"] == "meet-event"

    def test_delete_of_missing_event_is_ignored(self, mock_build, calendar_service):
        mock_build.return_value.events.return_value.delete.return_value.execute.side_effect = _http_error(
            410, "Resource has been deleted"
        )

        calendar_service.delete_meeting("refresh-token", "meet-event")

    def test_delete_failure_is_translated(self, mock_build, calendar_service):
        mock_build.return_value.events.return_value.delete.return_value.execute.side_effect = _http_error(
            403, "Forbidden"
        )

        with pytest.raises(GoogleCalendarError, match="Forbidden"):
            calendar_service.delete_meeting("refresh-token", "meet-event")


def test_meeting_link_from_conference_entry_point():
    meeting = meeting_from_google({
        "id": "meet-event",
        "conferenceData": {"entryPoints": [
            {"entryPointType": "phone", "uri": "tel:+1-555-0100"},
            {"entryPointType": "video", "uri": "https://meet.google.com/xyz-abcd-efg"},
        ]},
    })
    assert meeting.link == "https://meet.google.com/xyz-abcd-efg"
