from jarwik.google.auth import GoogleAuth
from jarwik.google.calendar import (
    BusyPeriod,
    CalendarError,
    CalendarEvent,
    EventDraft,
    GoogleCalendarStore,
)
from jarwik.google.gmail import GmailTransport

__all__ = [
    "BusyPeriod",
    "CalendarError",
    "CalendarEvent",
    "EventDraft",
    "GmailTransport",
    "GoogleAuth",
    "GoogleCalendarStore",
]
