"""Turns a classified intent into a side effect and a one-line reply.

Every reply starts with a status marker the channels pass through verbatim:
✅ success, ❌ failure or missing input, ⚠️ conflicts found, 📅 schedule
listings. ``execute`` never raises; any error becomes a ❌ reply.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol, TypeVar

from pydantic import ValidationError

from jarwik.google.calendar import CalendarEvent, EventDraft
from jarwik.sentry import capture_exception
from jarwik.services.intent import Intent, IntentResult
from jarwik.services.params import (
    AvailabilityParams,
    CallParams,
    ConflictParams,
    EmailParams,
    EventParams,
    FindTimeParams,
    ReminderParams,
    RescheduleParams,
    ScheduleQueryParams,
    SmsParams,
)
from jarwik.services.permissions import AccountStore, Permissions
from jarwik.services.scheduling import (
    EventStore,
    SchedulingEngine,
    SchedulingPreferences,
    SmartScheduleRequest,
    TimeRange,
    WorkingHours,
    overlaps,
)
from jarwik.services.timezone import TimeResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TRANSPORT_TIMEOUT = 20.0

REMINDER_DURATION = timedelta(minutes=15)
SMART_SCHEDULE_HORIZON = timedelta(days=7)
SMART_SCHEDULE_BUFFER_MINUTES = 15
WORKING_HOURS = WorkingHours(start=9, end=17)
MAX_LISTED_ALTERNATIVES = 3

CONNECT_ACCOUNTS_MESSAGE = (
    "❌ Please connect your accounts first. Go to Settings > Connected Accounts "
    "to authorize Jarwik to access your Google services."
)

PERMISSION_MESSAGES = {
    "email": (
        "❌ Email permission not granted. Please connect your Gmail account in "
        "Settings > Connected Accounts."
    ),
    "calendar": (
        "❌ Calendar permission not granted. Please connect your Google Calendar in "
        "Settings > Connected Accounts."
    ),
    "sms": "❌ SMS permission not granted. Please enable SMS in Settings > Connected Accounts.",
    "calls": (
        "❌ Call permission not granted. Please enable phone calls in "
        "Settings > Connected Accounts."
    ),
}

REQUIRED_PERMISSION = {
    Intent.SEND_EMAIL.value: "email",
    Intent.SEND_SMS.value: "sms",
    Intent.MAKE_CALL.value: "calls",
    Intent.SET_REMINDER.value: "calendar",
    Intent.CREATE_EVENT.value: "calendar",
    Intent.RESCHEDULE.value: "calendar",
    Intent.CHECK_SCHEDULE.value: "calendar",
    Intent.CHECK_AVAILABILITY.value: "calendar",
    Intent.CHECK_CONFLICTS.value: "calendar",
    Intent.FIND_TIME.value: "calendar",
}

FAILURE_LABELS = {
    Intent.SEND_EMAIL.value: "send the email",
    Intent.SEND_SMS.value: "send the SMS",
    Intent.MAKE_CALL.value: "place the call",
    Intent.SET_REMINDER.value: "set the reminder",
    Intent.CREATE_EVENT.value: "create the calendar event",
    Intent.RESCHEDULE.value: "reschedule the event",
    Intent.CHECK_SCHEDULE.value: "check your schedule",
    Intent.CHECK_AVAILABILITY.value: "check your availability",
    Intent.CHECK_CONFLICTS.value: "check for conflicts",
    Intent.FIND_TIME.value: "find a meeting time",
}


class TransportTimeoutError(Exception):
    """Raised when an external service does not answer in time."""


class DeliveryResult(Protocol):
    success: bool
    error: str | None


class EmailTransport(Protocol):
    async def send_email(
        self, account_id: str, to: list[str], subject: str, body: str
    ) -> DeliveryResult: ...


class SmsTransport(Protocol):
    async def send_sms(self, to: str, body: str) -> DeliveryResult: ...


class CallTransport(Protocol):
    async def make_call(self, to: str, message: str) -> DeliveryResult: ...


def _unparseable_time(text: str, examples: str) -> str:
    return f'❌ I couldn\'t understand the time "{text}". Please try something like {examples}.'


class ActionDispatcher:
    """Executes intents against the calendar, mail, SMS and voice transports.

    Args:
        accounts: Permission lookup
        events: Calendar backend
        resolver: Resolves time expressions and formats replies
        scheduler: Defaults to a SchedulingEngine over ``events``
        email, sms, calls: Optional transports; a missing one yields a ❌ reply
        clock: Returns the current instant; defaults to the system clock
        transport_timeout: Seconds to wait for any single external call
    """

    def __init__(
        self,
        accounts: AccountStore,
        events: EventStore,
        resolver: TimeResolver,
        *,
        scheduler: SchedulingEngine | None = None,
        email: EmailTransport | None = None,
        sms: SmsTransport | None = None,
        calls: CallTransport | None = None,
        clock: Callable[[], datetime] | None = None,
        transport_timeout: float = DEFAULT_TRANSPORT_TIMEOUT,
        assistant_name: str = "Jarwik",
    ):
        self.accounts = accounts
        self.events = events
        self.resolver = resolver
        self._clock = clock or (lambda: datetime.now(UTC))
        self.scheduler = scheduler or SchedulingEngine(events, resolver.tz, self._clock)
        self.email = email
        self.sms = sms
        self.calls = calls
        self.transport_timeout = transport_timeout
        self.assistant_name = assistant_name

        self._handlers: dict[str, Callable[[IntentResult, str], Awaitable[str]]] = {
            Intent.SEND_EMAIL.value: self._send_email,
            Intent.SEND_SMS.value: self._send_sms,
            Intent.MAKE_CALL.value: self._make_call,
            Intent.SET_REMINDER.value: self._set_reminder,
            Intent.CREATE_EVENT.value: self._create_event,
            Intent.RESCHEDULE.value: self._reschedule,
            Intent.CHECK_SCHEDULE.value: self._check_schedule,
            Intent.CHECK_AVAILABILITY.value: self._check_availability,
            Intent.CHECK_CONFLICTS.value: self._check_conflicts,
            Intent.FIND_TIME.value: self._find_time,
        }

    def now(self) -> datetime:
        return self._clock()

    async def execute(self, intent: IntentResult, account_id: str) -> str:
        try:
            permissions = await self._call(self.accounts.get_permissions(account_id))
        except Exception as e:
            logger.exception(f"Permission lookup failed for {account_id}: {e}")
            capture_exception(e)
            return f"❌ I couldn't verify your account permissions. Error: {e}"

        if permissions is None or not permissions.any_granted:
            return CONNECT_ACCOUNTS_MESSAGE

        handler = self._handlers.get(intent.intent)
        if handler is None:
            return (
                f"🤔 I understood your request ({intent.intent}), but I'm not sure how to "
                "execute that action yet. I can help you with emails, SMS, calls, calendar "
                "events, and reminders."
            )

        family = REQUIRED_PERMISSION[intent.intent]
        if not self._allowed(permissions, family):
            return PERMISSION_MESSAGES[family]

        try:
            return await handler(intent, account_id)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "request"
            return f"❌ The {field} in your request doesn't look right: {first['msg']}."
        except Exception as e:
            logger.exception(f"Failed to execute {intent.intent} for {account_id}: {e}")
            capture_exception(e)
            return f"❌ Failed to {FAILURE_LABELS[intent.intent]}. Error: {e}"

    def _allowed(self, permissions: Permissions, family: str) -> bool:
        return bool(getattr(permissions, family))

    async def _call(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, self.transport_timeout)
        except TimeoutError as e:
            raise TransportTimeoutError(
                f"Request timed out after {self.transport_timeout:g} seconds"
            ) from e

    def _resolve(self, text: str, now: datetime) -> datetime | None:
        return self.resolver.resolve(text, now)

    def _format_event_line(self, event: CalendarEvent, prefix: str) -> str:
        start = self.resolver.format_clock(event.start_time)
        end = self.resolver.format_clock(event.end_time)
        return f"\n{prefix} {event.title} ({start} - {end})"

    def _format_alternatives(self, times: list[datetime], now: datetime, heading: str) -> str:
        if not times:
            return ""
        lines = [f"\n\n{heading}"]
        for i, slot in enumerate(times[:MAX_LISTED_ALTERNATIVES], 1):
            lines.append(f"\n{i}. {self.resolver.describe(slot, now)}")
        return "".join(lines)

    # Messaging

    async def _send_email(self, intent: IntentResult, account_id: str) -> str:
        if self.email is None:
            return "❌ Email functionality not available. Please check your Google connection."

        params = EmailParams.model_validate(intent.parameters)
        if not params.recipients:
            return "❌ Please specify who you want to send the email to."

        subject = params.subject or f"Message from {self.assistant_name}"
        body = params.body or f"Hello from {self.assistant_name}!"
        try:
            result = await self._call(
                self.email.send_email(account_id, params.recipients, subject, body)
            )
        except Exception as e:
            logger.exception(f"Email to {params.to} failed: {e}")
            return f"❌ Failed to send email to {params.to}. Error: {e}"

        if result.success:
            return f"✅ Email sent successfully to {params.to}!"
        return f"❌ Failed to send email to {params.to}. Error: {result.error or 'unknown error'}"

    async def _send_sms(self, intent: IntentResult, account_id: str) -> str:
        if self.sms is None:
            return "❌ SMS functionality not available. Please check the Twilio configuration."

        params = SmsParams.model_validate(intent.parameters)
        if not params.to:
            return "❌ Please specify the phone number to text."
        if not params.message:
            return "❌ Please specify the message to send."

        try:
            result = await self._call(self.sms.send_sms(params.to, params.message))
        except Exception as e:
            logger.exception(f"SMS to {params.to} failed: {e}")
            return f"❌ Failed to send SMS to {params.to}. Error: {e}"

        if result.success:
            return f"✅ SMS sent successfully to {params.to}!"
        return f"❌ Failed to send SMS to {params.to}. Error: {result.error or 'unknown error'}"

    async def _make_call(self, intent: IntentResult, account_id: str) -> str:
        if self.calls is None:
            return "❌ Calling functionality not available. Please check the Twilio configuration."

        params = CallParams.model_validate(intent.parameters)
        if not params.to:
            return "❌ Please specify the phone number to call."

        message = params.message or f"This is a call from {self.assistant_name} AI Assistant."
        try:
            result = await self._call(self.calls.make_call(params.to, message))
        except Exception as e:
            logger.exception(f"Call to {params.to} failed: {e}")
            return f"❌ Failed to call {params.to}. Error: {e}"

        if result.success:
            return f"✅ Call initiated to {params.to}!"
        return f"❌ Failed to call {params.to}. Error: {result.error or 'unknown error'}"

    # Calendar writes

    async def _set_reminder(self, intent: IntentResult, account_id: str) -> str:
        params = ReminderParams.model_validate(intent.parameters)
        if not params.time_text:
            return "❌ Please specify when you want to be reminded."

        now = self.now()
        when = self._resolve(params.time_text, now)
        if when is None:
            return _unparseable_time(
                params.time_text, '"in 20 minutes", "tomorrow at 3 PM", or "next Tuesday"'
            )
        if when <= now:
            return (
                f'❌ The reminder time "{params.time_text}" appears to be in the past. '
                "Please specify a future time."
            )

        draft = EventDraft(
            title=f"Reminder: {params.task}",
            start_time=when,
            end_time=when + REMINDER_DURATION,
            description=f"Reminder set by {self.assistant_name}: {params.task}",
            reminders=[("popup", 0), ("email", 0)],
        )
        await self._call(self.events.create_event(account_id, draft))
        return f'✅ Reminder set for "{params.task}" {self.resolver.format_for_user(when, now)}!'

    async def _create_event(self, intent: IntentResult, account_id: str) -> str:
        params = EventParams.model_validate(intent.parameters)
        if not params.start_text:
            return "❌ Please specify when you want to schedule the event."

        now = self.now()
        start = self._resolve(params.start_text, now)
        if start is None:
            return _unparseable_time(
                params.start_text, '"tomorrow at 3 PM", "next Monday at 10 AM", or "in 2 hours"'
            )
        if start <= now:
            return (
                f'❌ The event time "{params.start_text}" appears to be in the past. '
                "Please specify a future time."
            )

        duration = params.duration
        if params.end_text:
            end = self._resolve(params.end_text, now)
            if end is not None and end > start:
                duration = int((end - start).total_seconds() // 60)

        if not params.check_conflicts:
            event = await self._call(
                self.events.create_event(
                    account_id,
                    EventDraft(
                        title=params.title,
                        start_time=start,
                        end_time=start + timedelta(minutes=duration),
                        description=params.description,
                        attendees=params.attendees,
                        location=params.location,
                    ),
                )
            )
            return (
                f'✅ Calendar event "{params.title}" scheduled successfully '
                f"{self.resolver.format_for_user(start, now)}! Event ID: {event.event_id}"
            )

        request = SmartScheduleRequest(
            title=params.title,
            duration_minutes=duration,
            preferred_times=[start],
            time_range=TimeRange(start, start + SMART_SCHEDULE_HORIZON),
            working_hours=WORKING_HOURS,
            buffer_minutes=SMART_SCHEDULE_BUFFER_MINUTES,
            description=params.description,
            attendees=params.attendees,
            location=params.location,
        )
        result = await self._call(self.scheduler.smart_schedule(account_id, request))

        if result.success and result.event is not None:
            booked = result.event.start_time
            when = self.resolver.format_for_user(booked, now)
            if booked == start:
                return (
                    f'✅ Calendar event "{params.title}" scheduled successfully {when}! '
                    f"Event ID: {result.event.event_id}"
                )
            return (
                f'✅ You were busy at the requested time, so I scheduled "{params.title}" '
                f"{self.resolver.describe(booked, now)} instead. Event ID: {result.event.event_id}"
            )

        reply = f"❌ {result.message}"
        if result.alternative_times:
            reply += self._format_alternatives(
                result.alternative_times, now, "🕒 Alternative times available:"
            )
            reply += "\n\nWould you like me to schedule for one of these times instead?"
        return reply

    async def _reschedule(self, intent: IntentResult, account_id: str) -> str:
        params = RescheduleParams.model_validate(intent.parameters)
        if not params.event_id:
            return "❌ Please specify the event ID of the event you want to reschedule."
        if not params.new_time:
            return "❌ Please specify the new time for the event."

        now = self.now()
        new_start = self._resolve(params.new_time, now)
        if new_start is None:
            return _unparseable_time(params.new_time, '"tomorrow at 3 PM" or "next Friday at 10 AM"')
        if new_start <= now:
            return (
                f'❌ The new time "{params.new_time}" appears to be in the past. '
                "Please specify a future time."
            )

        result = await self._call(
            self.scheduler.reschedule_event(account_id, params.event_id, new_start)
        )
        if result.success and result.event is not None:
            return (
                f"✅ Event rescheduled successfully to "
                f"{self.resolver.describe(new_start, now)}! Event ID: {result.event.event_id}"
            )

        reply = f"❌ {result.message}"
        if result.conflicts:
            reply += "\n\n⚠️ Conflicting events:"
            reply += "".join(self._format_event_line(e, "•") for e in result.conflicts)
        return reply

    # Calendar reads

    async def _check_schedule(self, intent: IntentResult, account_id: str) -> str:
        params = ScheduleQueryParams.model_validate(intent.parameters)
        now = self.now()
        bounds = self.resolver.day_bounds(params.day, now)
        if bounds is None:
            return (
                f'❌ I couldn\'t understand the day "{params.day}". Please try "today", '
                '"tomorrow", or a specific day like "Monday".'
            )

        events = await self._call(self.events.list_events(account_id, *bounds))
        events = sorted(events, key=lambda e: e.start_time)
        label = params.day.lower() if params.day.lower() in ("today", "tomorrow") else params.day.capitalize()

        if not events:
            return f"📅 Your schedule for {label} is clear! No events scheduled."

        reply = f"📅 Your schedule for {label}:\n"
        for i, event in enumerate(events, 1):
            reply += self._format_event_line(event, f"{i}.")
            if event.location:
                reply += f" at {event.location}"
        return reply

    async def _check_availability(self, intent: IntentResult, account_id: str) -> str:
        params = AvailabilityParams.model_validate(intent.parameters)
        now = self.now()

        if params.start_text:
            start = self._resolve(params.start_text, now)
            if start is None:
                return _unparseable_time(params.start_text, '"today at 5 PM" or "tomorrow at 3 PM"')

            end = start + timedelta(minutes=params.duration)
            result = await self._call(self.scheduler.check_conflicts(account_id, start, end))
            when = self.resolver.describe(start, now)
            if not result.has_conflicts:
                return f"✅ Yes, you're free {when}! No conflicts found."

            reply = f"⚠️ No, you have a conflict {when}:"
            reply += "".join(self._format_event_line(e, "•") for e in result.conflicts)
            reply += self._format_alternatives(
                result.suggestions, now, "🕒 Alternative available times:"
            )
            return reply

        day = params.day or "today"
        bounds = self.resolver.day_bounds(day, now)
        if bounds is None:
            return (
                f'❌ I couldn\'t understand the day "{day}". Please try "today", '
                '"tomorrow", or a specific day like "Monday".'
            )

        day_start = bounds[0]
        window_start = day_start.replace(hour=WORKING_HOURS.start)
        window_end = day_start.replace(hour=WORKING_HOURS.end)
        events = await self._call(self.events.list_events(account_id, window_start, window_end))
        busy = [e for e in events if overlaps(window_start, window_end, e.start_time, e.end_time)]
        hours = (
            f"{self.resolver.format_clock(window_start)} - {self.resolver.format_clock(window_end)}"
        )

        if not busy:
            return f"✅ You're completely free {day} during working hours ({hours})."

        reply = f"⚠️ You have {len(busy)} event(s) {day} during working hours ({hours}):"
        reply += "".join(
            self._format_event_line(e, "•") for e in sorted(busy, key=lambda e: e.start_time)
        )
        return reply

    async def _check_conflicts(self, intent: IntentResult, account_id: str) -> str:
        params = ConflictParams.model_validate(intent.parameters)
        if not params.start_text:
            return "❌ Please specify the time you want me to check for conflicts."

        now = self.now()
        start = self._resolve(params.start_text, now)
        if start is None:
            return _unparseable_time(params.start_text, '"tomorrow at 3 PM" or "Friday at 10 AM"')

        end = start + timedelta(minutes=params.duration)
        if params.end_text:
            resolved_end = self._resolve(params.end_text, now)
            if resolved_end is not None and resolved_end > start:
                end = resolved_end

        result = await self._call(self.scheduler.check_conflicts(account_id, start, end))
        when = self.resolver.describe(start, now)
        if not result.has_conflicts:
            return f"✅ No conflicts found! The time slot {when} is available."

        reply = f"⚠️ Found {len(result.conflicts)} conflict(s) for {when}:\n"
        reply += "".join(self._format_event_line(e, "•") for e in result.conflicts)
        reply += self._format_alternatives(result.suggestions, now, "🕒 Alternative available times:")
        return reply

    async def _find_time(self, intent: IntentResult, account_id: str) -> str:
        params = FindTimeParams.model_validate(intent.parameters)
        preferences = SchedulingPreferences(
            working_hours=WORKING_HOURS,
            buffer_minutes=SMART_SCHEDULE_BUFFER_MINUTES,
            prefer_morning=params.prefer_morning,
            prefer_afternoon=params.prefer_afternoon,
        )
        result = await self._call(
            self.scheduler.find_optimal_time(
                account_id, params.attendees, params.duration, preferences
            )
        )
        if not result.success or result.optimal_time is None:
            return f"❌ {result.message}"

        now = self.now()
        reply = f"✅ Optimal time found: {self.resolver.describe(result.optimal_time, now)}"
        reply += self._format_alternatives(result.alternatives, now, "🕒 Alternative times:")
        if params.attendees:
            reply += (
                "\n\nNote: I checked your calendar only. "
                f"Please confirm availability with {', '.join(params.attendees)}."
            )
        return reply
