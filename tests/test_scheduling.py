"""Tests for conflict detection, free-slot search and booking."""

from datetime import UTC, datetime, timedelta

import pytest

from fakes import InMemoryEventStore, make_event
from jarwik.services.scheduling import (
    SchedulingEngine,
    SchedulingPreferences,
    SmartScheduleRequest,
    TimeRange,
    WorkingHours,
    overlaps,
    preference_order,
)


def utc(day: int, hour: int, minute: int = 0) -> datetime:
    """October 2026 in UTC; the 19th is a Monday."""
    return datetime(2026, 10, day, hour, minute, tzinfo=UTC)


@pytest.fixture
def busy_store():
    return InMemoryEventStore([make_event("evt-1", "Standup", utc(19, 10), utc(19, 11))])


def engine_for(store, now=None):
    now = now or utc(19, 8)
    return SchedulingEngine(store, timezone=UTC, clock=lambda: now)


class TestOverlap:
    def test_touching_intervals_do_not_overlap(self):
        assert not overlaps(utc(19, 11), utc(19, 12), utc(19, 10), utc(19, 11))

    def test_partial_overlap(self):
        assert overlaps(utc(19, 10, 30), utc(19, 11, 30), utc(19, 10), utc(19, 11))


class TestCheckConflicts:
    @pytest.mark.asyncio
    async def test_overlapping_query_conflicts(self, busy_store):
        engine = engine_for(busy_store)

        result = await engine.check_conflicts("user-1", utc(19, 10, 30), utc(19, 11, 30))

        assert result.has_conflicts is True
        assert [e.event_id for e in result.conflicts] == ["evt-1"]
        assert result.suggestions[0] == utc(19, 11)
        assert len(result.suggestions) == 5
        assert result.message == "Found 1 conflicting event(s)"

    @pytest.mark.asyncio
    async def test_touching_boundary_is_free(self, busy_store):
        engine = engine_for(busy_store)

        result = await engine.check_conflicts("user-1", utc(19, 11), utc(19, 12))

        assert result.has_conflicts is False
        assert result.suggestions == []
        assert result.message == "No conflicts found"
        # Suggestions are only computed when something conflicts
        assert busy_store.free_busy_calls == 0


class TestFindFreeTime:
    @pytest.mark.asyncio
    async def test_two_half_hour_slots_in_an_hour(self, store):
        engine = engine_for(store)

        slots = await engine.find_free_time("user-1", 30, utc(19, 9), utc(19, 10))

        assert slots == [utc(19, 9), utc(19, 9, 30)]

    @pytest.mark.asyncio
    async def test_limited_to_ten(self, store):
        engine = engine_for(store)

        slots = await engine.find_free_time("user-1", 30, utc(19, 0), utc(20, 0))

        assert len(slots) == 10
        assert slots == sorted(slots)

    @pytest.mark.asyncio
    async def test_skips_busy_periods(self, busy_store):
        engine = engine_for(busy_store)

        slots = await engine.find_free_time("user-1", 60, utc(19, 9), utc(19, 13))

        assert slots == [utc(19, 9), utc(19, 11), utc(19, 11, 30), utc(19, 12)]

    @pytest.mark.asyncio
    async def test_buffer_applies_on_both_sides(self, busy_store):
        engine = engine_for(busy_store)

        slots = await engine.find_free_time(
            "user-1", 30, utc(19, 9), utc(19, 12), buffer_minutes=15
        )

        assert slots == [utc(19, 9), utc(19, 11, 30)]

    @pytest.mark.asyncio
    async def test_filter_runs_before_limit(self, store):
        engine = engine_for(store)
        hours = WorkingHours(9, 17)

        slots = await engine.find_free_time(
            "user-1", 60, utc(19, 0), utc(20, 0), slot_filter=hours.contains
        )

        assert slots[0] == utc(19, 9)
        assert slots[-1] == utc(19, 13, 30)


class TestSmartSchedule:
    @pytest.mark.asyncio
    async def test_free_preferred_time_books_without_search(self, store):
        engine = engine_for(store)
        request = SmartScheduleRequest(
            title="Design review",
            duration_minutes=60,
            time_range=TimeRange(utc(19, 9), utc(20, 9)),
            preferred_times=[utc(19, 14), utc(19, 16)],
            working_hours=WorkingHours(),
        )

        result = await engine.smart_schedule("user-1", request)

        assert result.success is True
        assert result.event.start_time == utc(19, 14)
        assert result.event.end_time == utc(19, 15)
        assert result.message == "Event scheduled at the preferred time"
        assert store.free_busy_calls == 0
        assert len(store.drafts) == 1

    @pytest.mark.asyncio
    async def test_busy_preferred_time_falls_back_to_next_slot(self, busy_store):
        engine = engine_for(busy_store)
        request = SmartScheduleRequest(
            title="Sync",
            duration_minutes=60,
            time_range=TimeRange(utc(19, 10), utc(20, 10)),
            preferred_times=[utc(19, 10)],
            working_hours=WorkingHours(9, 17),
        )

        result = await engine.smart_schedule("user-1", request)

        assert result.success is True
        assert result.event.start_time == utc(19, 11)
        assert result.alternative_times == [utc(19, 11, 30), utc(19, 12), utc(19, 12, 30)]
        assert result.message == "Event scheduled at the next available time"

    @pytest.mark.asyncio
    async def test_prefer_morning_reorders_candidates(self, store):
        engine = engine_for(store)
        request = SmartScheduleRequest(
            title="Planning",
            duration_minutes=60,
            time_range=TimeRange(utc(19, 12), utc(20, 12)),
            working_hours=WorkingHours(9, 17),
            prefer_morning=True,
        )

        result = await engine.smart_schedule("user-1", request)

        assert result.event.start_time == utc(20, 9)
        assert result.alternative_times == [utc(19, 12), utc(19, 12, 30), utc(19, 13)]

    @pytest.mark.asyncio
    async def test_buffer_revalidates_candidates(self, busy_store):
        engine = engine_for(busy_store)
        request = SmartScheduleRequest(
            title="Coffee",
            duration_minutes=30,
            time_range=TimeRange(utc(19, 9), utc(19, 12)),
            buffer_minutes=15,
        )

        result = await engine.smart_schedule("user-1", request)

        assert result.event.start_time == utc(19, 9)
        assert result.alternative_times == [utc(19, 11, 30)]

    @pytest.mark.asyncio
    async def test_no_slot_reports_failure(self):
        store = InMemoryEventStore([make_event("evt-1", "Offsite", utc(19, 0), utc(21, 0))])
        engine = engine_for(store)
        request = SmartScheduleRequest(
            title="Sync",
            duration_minutes=60,
            time_range=TimeRange(utc(19, 9), utc(20, 17)),
            preferred_times=[utc(19, 10)],
        )

        result = await engine.smart_schedule("user-1", request)

        assert result.success is False
        assert result.event is None
        assert result.message == "No available time slots found matching your preferences"
        assert store.drafts == []


class TestFindOptimalTime:
    @pytest.mark.asyncio
    async def test_next_half_hour_within_working_hours(self, store):
        engine = engine_for(store, now=utc(19, 10, 10))

        result = await engine.find_optimal_time("user-1", ["a@example.com"], 60)

        assert result.success is True
        assert result.optimal_time == utc(19, 10, 30)
        assert result.alternatives == [utc(19, 11), utc(19, 11, 30), utc(19, 12), utc(19, 12, 30)]
        # Attendee calendars are not consulted
        assert result.attendee_availability == {"a@example.com": None}

    @pytest.mark.asyncio
    async def test_prefer_afternoon(self, store):
        engine = engine_for(store, now=utc(19, 10, 10))

        result = await engine.find_optimal_time(
            "user-1", [], 60, SchedulingPreferences(prefer_afternoon=True)
        )

        assert result.optimal_time == utc(19, 12)

    @pytest.mark.asyncio
    async def test_skips_weekend(self, store):
        saturday = utc(24, 10)
        engine = engine_for(store, now=saturday)

        result = await engine.find_optimal_time("user-1", [], 30)

        assert result.optimal_time == utc(26, 9)

    @pytest.mark.asyncio
    async def test_fully_booked(self):
        store = InMemoryEventStore(
            [make_event("evt-1", "Sabbatical", utc(19, 0), utc(19, 0) + timedelta(days=30))]
        )
        engine = engine_for(store)

        result = await engine.find_optimal_time("user-1", [], 30)

        assert result.success is False
        assert result.message == "No available time slots found in the next 14 days"


class TestRescheduleEvent:
    @pytest.fixture
    def calendar(self):
        return InMemoryEventStore(
            [
                make_event("evt-1", "1:1", utc(19, 10), utc(19, 10, 45)),
                make_event("evt-2", "Lunch", utc(19, 14), utc(19, 15)),
            ]
        )

    @pytest.mark.asyncio
    async def test_preserves_duration(self, calendar):
        engine = engine_for(calendar)

        result = await engine.reschedule_event("user-1", "evt-1", utc(20, 16))

        assert result.success is True
        assert result.event.start_time == utc(20, 16)
        assert result.event.end_time - result.event.start_time == timedelta(minutes=45)
        assert result.message == "Event rescheduled"

    @pytest.mark.asyncio
    async def test_own_slot_is_not_a_conflict(self, calendar):
        engine = engine_for(calendar)

        result = await engine.reschedule_event("user-1", "evt-1", utc(19, 10, 15))

        assert result.success is True

    @pytest.mark.asyncio
    async def test_conflict_leaves_event_untouched(self, calendar):
        engine = engine_for(calendar)

        result = await engine.reschedule_event("user-1", "evt-1", utc(19, 14, 30))

        assert result.success is False
        assert [e.event_id for e in result.conflicts] == ["evt-2"]
        assert result.message == "The new time conflicts with existing events"
        assert calendar.updates == []
        assert calendar.events["evt-1"].start_time == utc(19, 10)

    @pytest.mark.asyncio
    async def test_conflict_check_can_be_skipped(self, calendar):
        engine = engine_for(calendar)

        result = await engine.reschedule_event(
            "user-1", "evt-1", utc(19, 14, 30), check_conflicts=False
        )

        assert result.success is True
        assert calendar.updates == [("evt-1", utc(19, 14, 30), utc(19, 15, 15))]

    @pytest.mark.asyncio
    async def test_missing_event(self, calendar):
        engine = engine_for(calendar)

        result = await engine.reschedule_event("user-1", "nope", utc(20, 9))

        assert result.success is False
        assert result.message == "Event nope not found"


def test_preference_order_keeps_time_order_within_groups():
    slots = [utc(19, 9), utc(19, 13), utc(19, 10), utc(19, 15)]

    ordered = preference_order(sorted(slots), False, True, UTC)

    assert ordered == [utc(19, 13), utc(19, 15), utc(19, 9), utc(19, 10)]
