"""Typed views over intent parameters.

The lightweight parser and the LLM fallback do not agree on key names
("startTime" vs "time", "to" vs "recipient"), so each model accepts every
spelling we have seen and normalizes it. Empty strings count as missing.
"""

import re
from typing import Annotated, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

DEFAULT_DURATION_MINUTES = 60

_DURATION_TEXT = re.compile(
    r"(\d+(?:\.\d+)?)\s*(h|hrs?|hours?|m|mins?|minutes?)?\b", re.IGNORECASE
)


def parse_duration(value: Any) -> Any:
    """Accept 45, "45", "45 minutes" or "1.5 hours"; pass anything else through."""
    if value is None or isinstance(value, bool) or isinstance(value, int | float):
        return value
    if isinstance(value, str):
        match = _DURATION_TEXT.search(value)
        if not match:
            return value
        amount = float(match.group(1))
        unit = (match.group(2) or "m").lower()
        return round(amount * 60) if unit.startswith("h") else round(amount)
    return value


def _as_list(value: Any) -> Any:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


DurationMinutes = Annotated[int, BeforeValidator(parse_duration)]
AddressList = Annotated[list[str], BeforeValidator(_as_list)]


class ActionParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_empty_values(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                key: value.strip() if isinstance(value, str) else value
                for key, value in data.items()
                if value is not None and not (isinstance(value, str) and not value.strip())
            }
        return data


class EmailParams(ActionParams):
    to: str | None = Field(default=None, validation_alias=AliasChoices("to", "recipient", "email"))
    subject: str | None = None
    body: str | None = Field(
        default=None, validation_alias=AliasChoices("body", "message", "content", "text")
    )

    @field_validator("to", mode="before")
    @classmethod
    def join_recipients(cls, value: Any) -> Any:
        if isinstance(value, list):
            return ", ".join(str(v) for v in value)
        return value

    @property
    def recipients(self) -> list[str]:
        return [part.strip() for part in (self.to or "").split(",") if part.strip()]


class SmsParams(ActionParams):
    to: str | None = Field(
        default=None, validation_alias=AliasChoices("to", "recipient", "phone", "phoneNumber")
    )
    message: str | None = Field(
        default=None, validation_alias=AliasChoices("message", "body", "text", "content")
    )


class CallParams(SmsParams):
    pass


class EventParams(ActionParams):
    title: str = Field(default="Meeting", validation_alias=AliasChoices("title", "summary", "name"))
    description: str | None = None
    start_text: str | None = Field(
        default=None,
        validation_alias=AliasChoices("startTime", "start_time", "time", "datetime", "when"),
    )
    end_text: str | None = Field(
        default=None, validation_alias=AliasChoices("endTime", "end_time")
    )
    duration: DurationMinutes = Field(
        default=DEFAULT_DURATION_MINUTES,
        gt=0,
        validation_alias=AliasChoices("duration", "durationMinutes", "duration_minutes"),
    )
    attendees: AddressList = Field(default_factory=list)
    location: str | None = None
    check_conflicts: bool = Field(
        default=True, validation_alias=AliasChoices("checkConflicts", "check_conflicts")
    )


class ReminderParams(ActionParams):
    task: str = Field(
        default="reminder", validation_alias=AliasChoices("task", "reminder", "title", "message")
    )
    time_text: str | None = Field(
        default=None,
        validation_alias=AliasChoices("time", "startTime", "start_time", "datetime", "when"),
    )


class RescheduleParams(ActionParams):
    event_id: str | None = Field(
        default=None, validation_alias=AliasChoices("eventId", "event_id", "id")
    )
    new_time: str | None = Field(
        default=None,
        validation_alias=AliasChoices("newTime", "new_time", "time", "startTime", "start_time"),
    )


class ScheduleQueryParams(ActionParams):
    day: str = Field(default="today", validation_alias=AliasChoices("day", "date"))


class AvailabilityParams(ActionParams):
    start_text: str | None = Field(
        default=None,
        validation_alias=AliasChoices("startTime", "start_time", "specificTime", "time"),
    )
    day: str | None = Field(default=None, validation_alias=AliasChoices("day", "date"))
    duration: DurationMinutes = Field(
        default=DEFAULT_DURATION_MINUTES,
        gt=0,
        validation_alias=AliasChoices("duration", "durationMinutes", "duration_minutes"),
    )


class ConflictParams(ActionParams):
    start_text: str | None = Field(
        default=None, validation_alias=AliasChoices("startTime", "start_time", "time")
    )
    end_text: str | None = Field(
        default=None, validation_alias=AliasChoices("endTime", "end_time")
    )
    duration: DurationMinutes = Field(
        default=DEFAULT_DURATION_MINUTES,
        gt=0,
        validation_alias=AliasChoices("duration", "durationMinutes", "duration_minutes"),
    )


class FindTimeParams(ActionParams):
    attendees: AddressList = Field(default_factory=list)
    duration: DurationMinutes = Field(
        default=DEFAULT_DURATION_MINUTES,
        gt=0,
        validation_alias=AliasChoices("duration", "durationMinutes", "duration_minutes"),
    )
    prefer_morning: bool = Field(
        default=False, validation_alias=AliasChoices("preferMorning", "prefer_morning")
    )
    prefer_afternoon: bool = Field(
        default=False, validation_alias=AliasChoices("preferAfternoon", "prefer_afternoon")
    )

