"""Calendar scheduling: conflict checks, free-slot search and smart booking.

All operations work against an EventStore (Google Calendar in production,
an in-memory fake in tests). Intervals are half-open: an event ending at
10:00 does not conflict with one starting at 10:00.

Working hours are evaluated in the engine's display timezone, so a 9-17
window means 9:00-17:00 local time regardless of the store's timezone.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Protocol

from jarwik.google.calendar import BusyPeriod, CalendarEvent, EventDraft

logger = logging.getLogger(__name__)

# Events are fetched with this margin around the checked interval
CONFLICT_FETCH_MARGIN = timedelta(minutes=30)

SLOT_STEP = timedelta(minutes=30)

MAX_FREE_SLOTS = 10
MAX_SUGGESTIONS = 5
SUGGESTION_HORIZON = timedelta(days=7)

MAX_SMART_ALTERNATIVES = 3
MAX_OPTIMAL_ALTERNATIVES = 4
OPTIMAL_HORIZON = timedelta(days=14)


class EventStore(Protocol):
    async def list_events(
        self, account_id: str, start: datetime, end: datetime
    ) -> list[CalendarEvent]: ...

    async def free_busy(
        self, account_id: str, start: datetime, end: datetime
    ) -> list[BusyPeriod]: ...

    async def get_event(self, account_id: str, event_id: str) -> CalendarEvent | None: ...

    async def create_event(self, account_id: str, draft: EventDraft) -> CalendarEvent: ...

    async def update_event(
        self, account_id: str, event_id: str, *, start_time: datetime, end_time: datetime
    ) -> CalendarEvent: ...

    async def delete_event(self, account_id: str, event_id: str) -> bool: ...


@dataclass(frozen=True)
class WorkingHours:
    start: int = 9
    end: int = 17

    def contains(self, slot_start: datetime, slot_end: datetime) -> bool:
        """True when the slot starts at or after ``start`` and ends by ``end`` the same day."""
        if slot_start.hour < self.start:
            return False
        day_end = slot_start.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(
            hours=self.end
        )
        return slot_end <= day_end


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime


@dataclass
class SchedulingPreferences:
    working_hours: WorkingHours = field(default_factory=WorkingHours)
    # 0 = Sunday ... 6 = Saturday
    working_days: tuple[int, ...] = (1, 2, 3, 4, 5)
    buffer_minutes: int = 0
    prefer_morning: bool = False
    prefer_afternoon: bool = False


@dataclass
class ConflictResult:
    has_conflicts: bool
    conflicts: list[CalendarEvent] = field(default_factory=list)
    suggestions: list[datetime] = field(default_factory=list)
    message: str = ""


@dataclass
class SmartScheduleRequest:
    title: str
    duration_minutes: int
    time_range: TimeRange
    preferred_times: list[datetime] = field(default_factory=list)
    working_hours: WorkingHours | None = None
    buffer_minutes: int = 0
    prefer_morning: bool = False
    prefer_afternoon: bool = False
    description: str | None = None
    attendees: list[str] = field(default_factory=list)
    location: str | None = None


@dataclass
class SmartScheduleResult:
    success: bool
    event: CalendarEvent | None = None
    alternative_times: list[datetime] = field(default_factory=list)
    message: str = ""


@dataclass
class OptimalTimeResult:
    success: bool
    optimal_time: datetime | None = None
    alternatives: list[datetime] = field(default_factory=list)
    message: str = ""
    # None means the attendee's calendar was not consulted
    attendee_availability: dict[str, bool | None] = field(default_factory=dict)


@dataclass
class RescheduleResult:
    success: bool
    event: CalendarEvent | None = None
    conflicts: list[CalendarEvent] = field(default_factory=list)
    message: str = ""


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return start < other_end and end > other_start


def _weekday_sunday_first(dt: datetime) -> int:
    return (dt.weekday() + 1) % 7


def preference_order(
    slots: list[datetime], prefer_morning: bool, prefer_afternoon: bool, tz: tzinfo
) -> list[datetime]:
    """Move morning (or afternoon) slots to the front, keeping time order within each group."""
    if prefer_morning:
        return sorted(slots, key=lambda s: (s.astimezone(tz).hour >= 12, s))
    if prefer_afternoon:
        return sorted(slots, key=lambda s: (s.astimezone(tz).hour < 12, s))
    return list(slots)


class SchedulingEngine:
    """Conflict detection and slot finding on top of an EventStore.

    Args:
        store: Calendar backend
        timezone: Display timezone used for working-hour and preference checks
        clock: Returns the current instant; defaults to the system clock
    """

    def __init__(
        self,
        store: EventStore,
        timezone: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.tz = timezone
        self._clock = clock or (lambda: datetime.now(UTC))

    def now(self) -> datetime:
        return self._clock()

    async def _conflicting_events(
        self, account_id: str, start: datetime, end: datetime
    ) -> list[CalendarEvent]:
        events = await self.store.list_events(
            account_id, start - CONFLICT_FETCH_MARGIN, end + CONFLICT_FETCH_MARGIN
        )
        return [e for e in events if overlaps(start, end, e.start_time, e.end_time)]

    async def check_conflicts(self, account_id: str, start: datetime, end: datetime) -> ConflictResult:
        conflicts = await self._conflicting_events(account_id, start, end)
        if not conflicts:
            return ConflictResult(has_conflicts=False, message="No conflicts found")

        duration = int((end - start).total_seconds() // 60)
        free = await self.find_free_time(account_id, duration, start, start + SUGGESTION_HORIZON)
        return ConflictResult(
            has_conflicts=True,
            conflicts=conflicts,
            suggestions=free[:MAX_SUGGESTIONS],
            message=f"Found {len(conflicts)} conflicting event(s)",
        )

    async def find_free_time(
        self,
        account_id: str,
        duration_minutes: int,
        search_start: datetime,
        search_end: datetime,
        *,
        limit: int | None = MAX_FREE_SLOTS,
        buffer_minutes: int = 0,
        slot_filter: Callable[[datetime, datetime], bool] | None = None,
    ) -> list[datetime]:
        """Start times in 30-minute steps from ``search_start`` that fit before ``search_end``.

        A candidate is free when [start - buffer, start + duration + buffer)
        overlaps no busy period. ``slot_filter`` rejects candidates before they
        count toward ``limit``.
        """
        duration = timedelta(minutes=duration_minutes)
        buffer = timedelta(minutes=buffer_minutes)
        busy = await self.store.free_busy(account_id, search_start - buffer, search_end + buffer)

        slots: list[datetime] = []
        candidate = search_start
        while candidate + duration <= search_end:
            slot_end = candidate + duration
            is_free = not any(
                overlaps(candidate - buffer, slot_end + buffer, b.start, b.end) for b in busy
            )
            if is_free and (slot_filter is None or slot_filter(candidate, slot_end)):
                slots.append(candidate)
                if limit is not None and len(slots) >= limit:
                    break
            candidate += SLOT_STEP
        return slots

    async def smart_schedule(
        self, account_id: str, request: SmartScheduleRequest
    ) -> SmartScheduleResult:
        """Book the first conflict-free preferred time, else the best free slot in range."""
        duration = timedelta(minutes=request.duration_minutes)

        for preferred in request.preferred_times:
            if not await self._conflicting_events(account_id, preferred, preferred + duration):
                event = await self._book(account_id, request, preferred)
                return SmartScheduleResult(
                    success=True, event=event, message="Event scheduled at the preferred time"
                )
            logger.info(f"Preferred time {preferred.isoformat()} is busy, searching for a free slot")

        hours = request.working_hours

        def within_hours(start: datetime, end: datetime) -> bool:
            return hours is None or hours.contains(start.astimezone(self.tz), end.astimezone(self.tz))

        free_slots = await self.find_free_time(
            account_id,
            request.duration_minutes,
            request.time_range.start,
            request.time_range.end,
            slot_filter=within_hours,
        )
        candidates = preference_order(
            free_slots, request.prefer_morning, request.prefer_afternoon, self.tz
        )

        buffer = timedelta(minutes=request.buffer_minutes)
        available = []
        for slot in candidates:
            if buffer and await self._conflicting_events(
                account_id, slot - buffer, slot + duration + buffer
            ):
                continue
            available.append(slot)

        if not available:
            return SmartScheduleResult(
                success=False,
                alternative_times=free_slots[:MAX_SUGGESTIONS],
                message="No available time slots found matching your preferences",
            )

        event = await self._book(account_id, request, available[0])
        return SmartScheduleResult(
            success=True,
            event=event,
            alternative_times=available[1 : 1 + MAX_SMART_ALTERNATIVES],
            message="Event scheduled at the next available time",
        )

    async def _book(
        self, account_id: str, request: SmartScheduleRequest, start: datetime
    ) -> CalendarEvent:
        draft = EventDraft(
            title=request.title,
            start_time=start,
            end_time=start + timedelta(minutes=request.duration_minutes),
            description=request.description,
            attendees=list(request.attendees),
            location=request.location,
        )
        event = await self.store.create_event(account_id, draft)
        logger.info(f"Booked '{request.title}' at {start.isoformat()} for {account_id}")
        return event

    async def find_optimal_time(
        self,
        account_id: str,
        attendee_emails: list[str],
        duration_minutes: int,
        preferences: SchedulingPreferences | None = None,
    ) -> OptimalTimeResult:
        """Best free slot over the next 14 days, judged from the organizer's calendar only."""
        preferences = preferences or SchedulingPreferences()
        start = self.now()
        hours = preferences.working_hours

        def slot_filter(slot_start: datetime, slot_end: datetime) -> bool:
            local_start = slot_start.astimezone(self.tz)
            return _weekday_sunday_first(local_start) in preferences.working_days and hours.contains(
                local_start, slot_end.astimezone(self.tz)
            )

        slots = await self.find_free_time(
            account_id,
            duration_minutes,
            self._next_half_hour(start),
            start + OPTIMAL_HORIZON,
            limit=None,
            buffer_minutes=preferences.buffer_minutes,
            slot_filter=slot_filter,
        )
        ordered = preference_order(
            slots, preferences.prefer_morning, preferences.prefer_afternoon, self.tz
        )
        availability: dict[str, bool | None] = {email: None for email in attendee_emails}

        if not ordered:
            return OptimalTimeResult(
                success=False,
                message="No available time slots found in the next 14 days",
                attendee_availability=availability,
            )

        return OptimalTimeResult(
            success=True,
            optimal_time=ordered[0],
            alternatives=ordered[1 : 1 + MAX_OPTIMAL_ALTERNATIVES],
            message="Found optimal meeting time",
            attendee_availability=availability,
        )

    def _next_half_hour(self, instant: datetime) -> datetime:
        local = instant.astimezone(self.tz)
        rounded = local.replace(second=0, microsecond=0)
        if rounded < local:
            rounded += timedelta(minutes=1)
        remainder = rounded.minute % 30
        if remainder:
            rounded += timedelta(minutes=30 - remainder)
        return rounded

    async def reschedule_event(
        self,
        account_id: str,
        event_id: str,
        new_start: datetime,
        check_conflicts: bool = True,
    ) -> RescheduleResult:
        """Move an event, keeping its duration. The event never conflicts with itself."""
        event = await self.store.get_event(account_id, event_id)
        if event is None:
            return RescheduleResult(success=False, message=f"Event {event_id} not found")

        new_end = new_start + (event.end_time - event.start_time)

        if check_conflicts:
            conflicts = [
                e
                for e in await self._conflicting_events(account_id, new_start, new_end)
                if e.event_id != event_id
            ]
            if conflicts:
                return RescheduleResult(
                    success=False,
                    conflicts=conflicts,
                    message="The new time conflicts with existing events",
                )

        updated = await self.store.update_event(
            account_id, event_id, start_time=new_start, end_time=new_end
        )
        return RescheduleResult(success=True, event=updated, message="Event rescheduled")
