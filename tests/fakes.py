"""In-memory stand-ins for the calendar, account and transport collaborators."""

from dataclasses import dataclass, replace
from datetime import datetime
from zoneinfo import ZoneInfo

from jarwik.google.calendar import BusyPeriod, CalendarEvent, EventDraft
from jarwik.services.permissions import Permissions

IST = ZoneInfo("Asia/Kolkata")

# Monday
NOW = datetime(2026, 10, 19, 10, 0, tzinfo=IST)

ALL_PERMISSIONS = Permissions(email=True, calendar=True, contacts=True, sms=True, calls=True)


class InMemoryEventStore:
    """EventStore backed by a dict, recording every write."""

    def __init__(self, events: list[CalendarEvent] | None = None):
        self.events = {e.event_id: e for e in events or []}
        self.drafts: list[EventDraft] = []
        self.updates: list[tuple[str, datetime, datetime]] = []
        self.free_busy_calls = 0
        self.list_calls = 0
        self.fail_with: Exception | None = None

    async def list_events(self, account_id, start, end):
        self.list_calls += 1
        found = [e for e in self.events.values() if e.start_time < end and e.end_time > start]
        return sorted(found, key=lambda e: e.start_time)

    async def free_busy(self, account_id, start, end):
        self.free_busy_calls += 1
        return [
            BusyPeriod(e.start_time, e.end_time)
            for e in self.events.values()
            if e.start_time < end and e.end_time > start
        ]

    async def get_event(self, account_id, event_id):
        return self.events.get(event_id)

    async def create_event(self, account_id, draft):
        if self.fail_with is not None:
            raise self.fail_with
        self.drafts.append(draft)
        event = CalendarEvent(
            event_id=f"created-{len(self.drafts)}",
            title=draft.title,
            start_time=draft.start_time,
            end_time=draft.end_time,
            attendees=list(draft.attendees),
            location=draft.location,
            description=draft.description,
        )
        self.events[event.event_id] = event
        return event

    async def update_event(self, account_id, event_id, *, start_time, end_time):
        self.updates.append((event_id, start_time, end_time))
        event = replace(self.events[event_id], start_time=start_time, end_time=end_time)
        self.events[event_id] = event
        return event

    async def delete_event(self, account_id, event_id):
        self.events.pop(event_id, None)
        return True


class FakeAccounts:
    def __init__(self, permissions=None, phones=None):
        self.permissions = permissions or {}
        self.phones = phones or {}
        self.lookups: list[str] = []

    async def get_permissions(self, account_id):
        self.lookups.append(account_id)
        return self.permissions.get(account_id)

    async def find_account_by_phone(self, phone_number):
        return self.phones.get(phone_number)


@dataclass
class FakeDelivery:
    success: bool = True
    error: str | None = None


class FakeTransport:
    """Email, SMS and call transport in one; records what it was asked to send."""

    def __init__(self, result: FakeDelivery | None = None, error: Exception | None = None):
        self.result = result or FakeDelivery()
        self.error = error
        self.emails: list[tuple[str, list[str], str, str]] = []
        self.texts: list[tuple[str, str]] = []
        self.calls: list[tuple[str, str]] = []

    async def send_email(self, account_id, to, subject, body):
        self.emails.append((account_id, to, subject, body))
        if self.error:
            raise self.error
        return self.result

    async def send_sms(self, to, body):
        self.texts.append((to, body))
        if self.error:
            raise self.error
        return self.result

    async def make_call(self, to, message):
        self.calls.append((to, message))
        if self.error:
            raise self.error
        return self.result


def make_event(event_id, title, start, end, **kwargs) -> CalendarEvent:
    return CalendarEvent(event_id=event_id, title=title, start_time=start, end_time=end, **kwargs)


