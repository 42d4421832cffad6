"""Tests for the rule-based intent classifier."""

import pytest

from jarwik.services.intent import Intent
from jarwik.services.parser import (
    LightweightParser,
    extract_duration,
    extract_time_text,
    is_meaningful_title,
)


class TestSendEmail:
    def setup_method(self):
        self.parser = LightweightParser(assistant_name="Jarwik")

    def test_email_with_topic(self):
        result = self.parser.classify("Send email to john@example.com about the report")

        assert result.intent == Intent.SEND_EMAIL.value
        assert result.confidence == 0.95
        assert result.parameters["to"] == "john@example.com"
        assert result.parameters["recipient"] == "john@example.com"
        assert result.parameters["body"] == "the report"
        assert result.needs_ai is False
        assert result.action == "send_email"

    def test_long_body_truncates_subject(self):
        result = self.parser.classify(
            "email sarah@corp.io saying the quarterly numbers look great this time"
        )

        assert result.intent == Intent.SEND_EMAIL.value
        assert result.parameters["body"] == "the quarterly numbers look great this time"
        assert result.parameters["subject"] == "the quarterly numbers look gre..."

    def test_address_alone_is_not_an_email_request(self):
        result = self.parser.classify("my address is john@example.com")

        assert result.intent == Intent.GENERAL_CHAT.value
        assert result.needs_ai is True
        assert result.confidence == 0.3

    def test_domain_name_is_not_a_verb(self):
        result = self.parser.classify("john@gmail.com")

        assert result.intent == Intent.GENERAL_CHAT.value

    def test_defaults_when_nothing_follows_address(self):
        result = self.parser.classify("send an email to bob@example.com")

        assert result.parameters["subject"] == "Message from Jarwik"
        assert result.parameters["body"] == "Hello from Jarwik!"

    def test_email_wins_over_reminder(self):
        result = self.parser.classify("remind me to email john@example.com tomorrow")

        assert result.intent == Intent.SEND_EMAIL.value


class TestSetReminder:
    def setup_method(self):
        self.parser = LightweightParser()

    def test_relative_time_before_task(self):
        result = self.parser.classify("remind me in 20 minutes to call mom")

        assert result.intent == Intent.SET_REMINDER.value
        assert result.confidence == 0.9
        assert result.parameters["time"] == "in 20 minutes"
        assert "call mom" in result.parameters["reminder"]

    def test_task_before_time(self):
        result = self.parser.classify("Remind me to call the dentist tomorrow at 3pm")

        assert result.intent == Intent.SET_REMINDER.value
        assert result.parameters["time"] == "tomorrow at 3pm"
        assert result.parameters["reminder"] == "call the dentist"

    def test_from_now_phrasing(self):
        result = self.parser.classify("remind me to stretch 30 mins from now")

        assert result.parameters["time"] == "30 mins from now"
        assert result.parameters["task"] == "stretch"

    def test_set_reminder_without_time(self):
        result = self.parser.classify("set a reminder to buy milk")

        assert result.intent == Intent.SET_REMINDER.value
        assert result.parameters["reminder"] == "buy milk"
        assert "time" not in result.parameters


class TestCreateEvent:
    def setup_method(self):
        self.parser = LightweightParser()

    def test_create_beats_schedule_query(self):
        result = self.parser.classify("schedule meeting tomorrow at 5pm")

        assert result.intent == Intent.CREATE_EVENT.value
        assert result.confidence == 0.85
        assert result.parameters["startTime"] == "tomorrow at 5pm"
        assert result.parameters["title"] == "Meeting"

    def test_title_from_about_clause(self):
        result = self.parser.classify("Book a meeting about budget review on Friday at 2pm")

        assert result.intent == Intent.CREATE_EVENT.value
        assert result.parameters["title"] == "budget review"
        assert result.parameters["startTime"] == "on Friday at 2pm"

    def test_duration_and_attendees(self):
        result = self.parser.classify(
            "schedule a call with ann@example.com tomorrow at 10am for 45 minutes"
        )

        assert result.intent == Intent.CREATE_EVENT.value
        assert result.parameters["duration"] == 45
        assert result.parameters["attendees"] == ["ann@example.com"]


class TestReschedule:
    def setup_method(self):
        self.parser = LightweightParser()

    def test_event_number_and_new_time(self):
        result = self.parser.classify("Reschedule event 12345 to tomorrow at 3pm")

        assert result.intent == Intent.RESCHEDULE.value
        assert result.parameters["eventId"] == "12345"
        assert result.parameters["newTime"] == "tomorrow at 3pm"

    def test_uuid_identifier(self):
        event_id = "3f2b8c1e-1234-4abc-9def-0123456789ab"
        result = self.parser.classify(f"move meeting {event_id} to friday at 11am")

        assert result.intent == Intent.RESCHEDULE.value
        assert result.parameters["eventId"] == event_id
        assert result.parameters["newTime"] == "friday at 11am"

    def test_short_numeric_identifier(self):
        result = self.parser.classify("Reschedule event 12 to tomorrow at 4pm")

        assert result.parameters["eventId"] == "12"
        assert result.parameters["newTime"] == "tomorrow at 4pm"

    @pytest.mark.parametrize("text", ["move event 3pm to 5pm", "move event 10:30 to 5pm"])
    def test_clock_after_event_is_not_an_identifier(self, text):
        result = self.parser.classify(text)

        assert result.intent == Intent.RESCHEDULE.value
        assert "eventId" not in result.parameters

    def test_missing_identifier_is_left_out(self):
        result = self.parser.classify("reschedule my meeting to tomorrow at 4pm")

        assert result.intent == Intent.RESCHEDULE.value
        assert "eventId" not in result.parameters


class TestCalendarQueries:
    def setup_method(self):
        self.parser = LightweightParser()

    def test_schedule_for_tomorrow(self):
        result = self.parser.classify("What's my schedule for tomorrow?")

        assert result.intent == Intent.CHECK_SCHEDULE.value
        assert result.parameters["day"] == "tomorrow"

    def test_schedule_defaults_to_today(self):
        result = self.parser.classify("show me my calendar")

        assert result.intent == Intent.CHECK_SCHEDULE.value
        assert result.parameters["day"] == "today"

    def test_availability_day_and_time(self):
        result = self.parser.classify("Am I free tomorrow at 3pm?")

        assert result.intent == Intent.CHECK_AVAILABILITY.value
        assert result.confidence == 0.9
        assert result.parameters["day"] == "tomorrow"
        assert result.parameters["time"] == "3pm"
        assert result.parameters["startTime"] == "tomorrow at 3pm"

    def test_availability_day_only(self):
        result = self.parser.classify("am I free on friday")

        assert result.intent == Intent.CHECK_AVAILABILITY.value
        assert result.parameters["day"] == "friday"
        assert "startTime" not in result.parameters

    def test_conflict_check(self):
        result = self.parser.classify("check conflicts at 3pm tomorrow")

        assert result.intent == Intent.CHECK_CONFLICTS.value
        assert result.confidence == 0.85
        assert result.parameters["startTime"] == "at 3pm tomorrow"

    def test_find_time(self):
        result = self.parser.classify("find the best time for a 30 minute meeting in the morning")

        assert result.intent == Intent.FIND_TIME.value
        assert result.confidence == 0.8
        assert result.parameters["duration"] == 30
        assert result.parameters["preferMorning"] is True


class TestSmsAndCalls:
    def setup_method(self):
        self.parser = LightweightParser()

    def test_sms_with_message(self):
        result = self.parser.classify("Send SMS to +919876543210 saying hello there")

        assert result.intent == Intent.SEND_SMS.value
        assert result.parameters["to"] == "+919876543210"
        assert result.parameters["message"] == "hello there"

    def test_call_number(self):
        result = self.parser.classify("call +15551234567")

        assert result.intent == Intent.MAKE_CALL.value
        assert result.parameters["to"] == "+15551234567"
        assert "message" not in result.parameters


class TestGeneralChat:
    def setup_method(self):
        self.parser = LightweightParser()

    @pytest.mark.parametrize("message", ["hello there", "tell me a joke", ""])
    def test_falls_through_to_fallback(self, message):
        result = self.parser.classify(message)

        assert result.intent == Intent.GENERAL_CHAT.value
        assert result.confidence == 0.3
        assert result.needs_ai is True
        assert result.action is None

    def test_classification_is_deterministic(self):
        message = "remind me in 20 minutes to call mom"

        assert self.parser.classify(message) == self.parser.classify(message)


class TestHelpers:
    def test_extract_time_text_prefers_day_and_clock(self):
        assert extract_time_text("lunch tomorrow at 1:30pm with Sam") == "tomorrow at 1:30pm"

    def test_extract_time_text_none(self):
        assert extract_time_text("call mom") is None

    def test_duration_range_uses_difference(self):
        assert extract_duration("block from 2 to 4 hours") == 120

    def test_duration_clock_range(self):
        assert extract_duration("meeting from 2pm to 3:30pm") == 90

    def test_duration_half_hour(self):
        assert extract_duration("chat for half an hour") == 30

    def test_title_rejects_time_words(self):
        assert is_meaningful_title("tomorrow at 5") is False
        assert is_meaningful_title("budget review") is True
