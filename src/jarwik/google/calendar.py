"""Google Calendar event store.

Backs the scheduling engine and the dispatcher with per-account calendar
access: listing, free/busy lookup, creation, patching and deletion. Google
API calls are blocking, so each one runs in the default executor.

Failures surface as CalendarError so callers can turn them into a single
user-facing reply.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from jarwik.config import settings
from jarwik.google.auth import GoogleAuth

logger = logging.getLogger(__name__)

MAX_LIST_RESULTS = 250


class CalendarError(Exception):
    """Raised when the calendar cannot be read or written."""


@dataclass
class CalendarEvent:
    """Represents a Google Calendar event."""

    event_id: str
    title: str
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"
    attendees: list[str] = field(default_factory=list)
    location: str | None = None
    description: str | None = None
    html_link: str | None = None


@dataclass
class EventDraft:
    """An event that has not been written to the calendar yet."""

    title: str
    start_time: datetime
    end_time: datetime
    description: str | None = None
    attendees: list[str] = field(default_factory=list)
    location: str | None = None
    # (method, minutes before start), e.g. ("popup", 0)
    reminders: list[tuple[str, int]] = field(default_factory=list)


@dataclass(frozen=True)
class BusyPeriod:
    start: datetime
    end: datetime


def _parse_time(info: dict[str, Any], tz: ZoneInfo) -> datetime:
    if "dateTime" in info:
        parsed = datetime.fromisoformat(info["dateTime"].replace("Z", "+00:00"))
    else:
        # All-day events carry a bare date
        parsed = datetime.fromisoformat(info.get("date", ""))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def _error_reason(e: HttpError) -> str:
    return e.reason if hasattr(e, "reason") and e.reason else str(e)


class GoogleCalendarStore:
    """Per-account Google Calendar access."""

    def __init__(
        self,
        auth: GoogleAuth | None = None,
        calendar_id: str = "primary",
        timezone: str | None = None,
        service_factory: Callable[[Any], Any] | None = None,
    ):
        self.auth = auth or GoogleAuth()
        self.calendar_id = calendar_id
        self.timezone = timezone or settings.user_timezone
        self._tz = ZoneInfo(self.timezone)
        self._service_factory = service_factory or (
            lambda creds: build("calendar", "v3", credentials=creds, cache_discovery=False)
        )
        self._services: dict[str, Any] = {}

    def service(self, account_id: str) -> Any:
        if account_id not in self._services:
            creds = self.auth.credentials_for(account_id)
            if creds is None:
                raise CalendarError(
                    "Google Calendar not authenticated. Please connect your Google account."
                )
            self._services[account_id] = self._service_factory(creds)
        return self._services[account_id]

    async def _execute(self, account_id: str, action: str, call: Callable[[Any], Any]) -> Any:
        service = self.service(account_id)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, lambda: call(service).execute())
        except HttpError as e:
            logger.exception(f"Google Calendar API error while trying to {action}: {e}")
            raise CalendarError(f"Calendar API error: {_error_reason(e)}") from e

    def _parse_event(self, item: dict[str, Any]) -> CalendarEvent:
        start_info = item.get("start", {})
        return CalendarEvent(
            event_id=item.get("id", ""),
            title=item.get("summary", "(no title)"),
            start_time=_parse_time(start_info, self._tz),
            end_time=_parse_time(item.get("end", {}), self._tz),
            timezone=start_info.get("timeZone", self.timezone),
            attendees=[a["email"] for a in item.get("attendees", []) if a.get("email")],
            location=item.get("location"),
            description=item.get("description"),
            html_link=item.get("htmlLink"),
        )

    async def list_events(
        self, account_id: str, start: datetime, end: datetime
    ) -> list[CalendarEvent]:
        """Expanded (single) events overlapping [start, end], ordered by start."""
        result = await self._execute(
            account_id,
            "list events",
            lambda service: service.events().list(
                calendarId=self.calendar_id,
                timeMin=start.isoformat(),
                timeMax=end.isoformat(),
                singleEvents=True,
                orderBy="startTime",
                maxResults=MAX_LIST_RESULTS,
            ),
        )
        return [
            self._parse_event(item)
            for item in result.get("items", [])
            if item.get("status") != "cancelled"
        ]

    async def free_busy(self, account_id: str, start: datetime, end: datetime) -> list[BusyPeriod]:
        result = await self._execute(
            account_id,
            "query free/busy",
            lambda service: service.freebusy().query(
                body={
                    "timeMin": start.isoformat(),
                    "timeMax": end.isoformat(),
                    "timeZone": self.timezone,
                    "items": [{"id": self.calendar_id}],
                }
            ),
        )
        busy = result.get("calendars", {}).get(self.calendar_id, {}).get("busy", [])
        return [
            BusyPeriod(
                start=datetime.fromisoformat(b["start"].replace("Z", "+00:00")),
                end=datetime.fromisoformat(b["end"].replace("Z", "+00:00")),
            )
            for b in busy
        ]

    async def get_event(self, account_id: str, event_id: str) -> CalendarEvent | None:
        try:
            result = await self._execute(
                account_id,
                "get event",
                lambda service: service.events().get(calendarId=self.calendar_id, eventId=event_id),
            )
        except CalendarError as e:
            if isinstance(e.__cause__, HttpError) and e.__cause__.resp.status in (404, 410):
                return None
            raise
        return self._parse_event(result)

    async def create_event(self, account_id: str, draft: EventDraft) -> CalendarEvent:
        body: dict[str, Any] = {
            "summary": draft.title,
            "start": {"dateTime": draft.start_time.isoformat(), "timeZone": self.timezone},
            "end": {"dateTime": draft.end_time.isoformat(), "timeZone": self.timezone},
        }
        if draft.description:
            body["description"] = draft.description
        if draft.location:
            body["location"] = draft.location
        if draft.attendees:
            body["attendees"] = [{"email": email} for email in draft.attendees]
        if draft.reminders:
            body["reminders"] = {
                "useDefault": False,
                "overrides": [{"method": m, "minutes": mins} for m, mins in draft.reminders],
            }

        result = await self._execute(
            account_id,
            "create event",
            lambda service: service.events().insert(calendarId=self.calendar_id, body=body),
        )
        event = self._parse_event(result) if result.get("start") else CalendarEvent(
            event_id=result.get("id", ""),
            title=draft.title,
            start_time=draft.start_time,
            end_time=draft.end_time,
            timezone=self.timezone,
            attendees=list(draft.attendees),
            location=draft.location,
            description=draft.description,
            html_link=result.get("htmlLink"),
        )
        logger.info(f"Created calendar event: {event.event_id} - {draft.title}")
        return event

    async def update_event(
        self, account_id: str, event_id: str, *, start_time: datetime, end_time: datetime
    ) -> CalendarEvent:
        body = {
            "start": {"dateTime": start_time.isoformat(), "timeZone": self.timezone},
            "end": {"dateTime": end_time.isoformat(), "timeZone": self.timezone},
        }
        result = await self._execute(
            account_id,
            "update event",
            lambda service: service.events().patch(
                calendarId=self.calendar_id, eventId=event_id, body=body
            ),
        )
        logger.info(f"Moved calendar event {event_id} to {start_time.isoformat()}")
        return self._parse_event(result)

    async def delete_event(self, account_id: str, event_id: str) -> bool:
        try:
            await self._execute(
                account_id,
                "delete event",
                lambda service: service.events().delete(
                    calendarId=self.calendar_id, eventId=event_id
                ),
            )
        except CalendarError as e:
            # Already gone
            if isinstance(e.__cause__, HttpError) and e.__cause__.resp.status in (404, 410):
                return True
            raise
        logger.info(f"Deleted calendar event: {event_id}")
        return True
