"""Natural-language time resolution for Jarwik.

Turns expressions such as "in 20 minutes", "tomorrow at 3pm" or "next
Wednesday" into timezone-aware datetimes, and formats datetimes back into
short user-facing phrases ("in 2 hours", "Monday, 20 October 2026 at
3:00 PM IST").

Every method takes the reference "now" explicitly, so resolution is a pure
function of (text, reference_now).
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

from jarwik.config import settings

# Common timezone abbreviations mapped to IANA timezone names
TIMEZONE_ABBREVIATIONS: dict[str, str] = {
    # US Timezones
    "EST": "America/New_York",
    "EDT": "America/New_York",
    "CST": "America/Chicago",
    "CDT": "America/Chicago",
    "MST": "America/Denver",
    "MDT": "America/Denver",
    "PST": "America/Los_Angeles",
    "PDT": "America/Los_Angeles",
    # European Timezones
    "GMT": "Europe/London",
    "BST": "Europe/London",
    "CET": "Europe/Paris",
    "CEST": "Europe/Paris",
    # Other common ones
    "UTC": "UTC",
    "IST": "Asia/Kolkata",  # India Standard Time
    "JST": "Asia/Tokyo",
    "AEST": "Australia/Sydney",
}

WEEKDAYS: dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

UNIT_MINUTES: dict[str, int] = {"minute": 1, "hour": 60, "day": 1440}

DEFAULT_HOUR = 9

_UNIT = r"(minutes?|mins?|hours?|hrs?|days?)"
_COUNT = r"(\d+|an?|one)"

RELATIVE_PATTERNS = [
    re.compile(rf"\b(?:in|after)\s+{_COUNT}\s*{_UNIT}\b", re.IGNORECASE),
    re.compile(rf"\b{_COUNT}\s*{_UNIT}\s+(?:from\s+now|later)\b", re.IGNORECASE),
    re.compile(rf"^\s*{_COUNT}\s*{_UNIT}\s*$", re.IGNORECASE),
]

# "3", "3pm", "3:30", "15:30", "3.30 pm". Never part of a date or ISO string.
CLOCK_PATTERN = re.compile(
    r"(?<![\w:/.+-])(\d{1,2})(?:[:.](\d{2}))?\s*(a\.?m\.?|p\.?m\.?)?(?![\w:/-])",
    re.IGNORECASE,
)

EXPLICIT_TZ_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(tz) for tz in TIMEZONE_ABBREVIATIONS) + r")\b"
)

WEEKDAY_PATTERN = re.compile(
    r"\b(?:next\s+|this\s+|on\s+)?(" + "|".join(WEEKDAYS) + r")\b", re.IGNORECASE
)


@dataclass
class ParsedTimezone:
    """Result of timezone parsing from text."""

    timezone_name: str  # IANA timezone name (e.g., "America/Los_Angeles")
    original_text: str  # The matched text (e.g., "EST")


@dataclass
class ClockTime:
    hour: int
    minute: int
    meridiem: str | None  # "am", "pm" or None when not stated


def _unit_key(unit: str) -> str:
    unit = unit.lower()
    if unit.startswith(("minute", "min")):
        return "minute"
    if unit.startswith(("hour", "hr")):
        return "hour"
    return "day"


def _count(value: str) -> int:
    return 1 if value.lower() in ("a", "an", "one") else int(value)


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def parse_clock(text: str) -> ClockTime | None:
    """Find the first clock time in text.

    A bare number only counts as a clock when it follows "at" or is the whole
    text, so durations and counts elsewhere in a phrase are not mistaken for
    times.
    """
    for match in CLOCK_PATTERN.finditer(text):
        hour = int(match.group(1))
        minute = int(match.group(2)) if match.group(2) else 0
        meridiem_raw = match.group(3)
        meridiem = meridiem_raw.lower().replace(".", "") if meridiem_raw else None

        if match.group(2) is None and meridiem is None:
            before = text[: match.start()].rstrip().lower()
            standalone = text.strip() == match.group(0).strip()
            if not standalone and not re.search(r"(?:\bat|\bby|@)$", before):
                continue

        if minute > 59 or hour > 23 or (meridiem and hour == 0):
            continue
        return ClockTime(hour=hour, minute=minute, meridiem=meridiem)
    return None


def to_24_hour(clock: ClockTime) -> int:
    hour = clock.hour
    if clock.meridiem == "pm" and hour < 12:
        hour += 12
    elif clock.meridiem == "am" and hour == 12:
        hour = 0
    return hour


class TimeResolver:
    """Resolves natural-language time expressions against a reference instant.

    Rules are tried in a fixed order and the first one that matches wins:

    1. relative units ("in 20 minutes", "2 hours from now")
    2. "tomorrow" with an optional clock time (default 9:00)
    3. "next week" (7 days ahead at 9:00; embedded times are ignored)
    4. weekday names ("next friday at 2pm"), next occurrence after today
    5. a bare clock time today, with AM/PM disambiguation and a one-day roll
    6. ISO-8601 or a general date string
    """

    def __init__(self, default_timezone: str | None = None):
        self._default_tz_name = default_timezone or settings.user_timezone
        try:
            self._default_tz = ZoneInfo(self._default_tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            # Fallback to UTC if invalid timezone
            self._default_tz_name = "UTC"
            self._default_tz = ZoneInfo("UTC")

    @property
    def default_timezone(self) -> str:
        return self._default_tz_name

    @property
    def tz(self) -> tzinfo:
        return self._default_tz

    def now(self) -> datetime:
        return datetime.now(self._default_tz)

    def localize(self, dt: datetime, timezone: str | None = None) -> datetime:
        """Attach the zone to a naive datetime or convert an aware one."""
        tz = ZoneInfo(timezone) if timezone else self._default_tz
        if dt.tzinfo is None:
            return dt.replace(tzinfo=tz)
        return dt.astimezone(tz)

    def parse_explicit_timezone(self, text: str) -> ParsedTimezone | None:
        """Extract an explicit timezone marker such as "EST" or "IST"."""
        match = EXPLICIT_TZ_PATTERN.search(text)
        if match:
            abbrev = match.group(1)
            return ParsedTimezone(timezone_name=TIMEZONE_ABBREVIATIONS[abbrev], original_text=abbrev)
        return None

    def resolve(self, text: str, reference_now: datetime) -> datetime | None:
        """Resolve text to an aware datetime, or None when unparseable."""
        if not text or not text.strip():
            return None

        explicit = self.parse_explicit_timezone(text)
        tz = ZoneInfo(explicit.timezone_name) if explicit else self._default_tz
        reference_now = self.localize(reference_now)
        local_now = reference_now.astimezone(tz)
        lowered = text.lower()

        relative = self._resolve_relative(lowered, reference_now)
        if relative is not None:
            return relative.astimezone(tz)

        if re.search(r"\btomorrow\b", lowered):
            clock = parse_clock(lowered)
            day = local_now + timedelta(days=1)
            return self._at(day, clock, tz)

        if re.search(r"\bnext\s+week\b", lowered):
            return self._at(local_now + timedelta(days=7), None, tz)

        weekday = WEEKDAY_PATTERN.search(lowered)
        if weekday:
            target = WEEKDAYS[weekday.group(1).lower()]
            days_ahead = (target - local_now.weekday()) % 7 or 7
            return self._at(local_now + timedelta(days=days_ahead), parse_clock(lowered), tz)

        clock = parse_clock(lowered)
        if clock is not None:
            return self._resolve_bare_clock(clock, local_now, reference_now, "tonight" in lowered)

        return self._resolve_fallback(text, local_now, tz)

    def _resolve_relative(self, lowered: str, reference_now: datetime) -> datetime | None:
        for pattern in RELATIVE_PATTERNS:
            match = pattern.search(lowered)
            if match:
                minutes = _count(match.group(1)) * UNIT_MINUTES[_unit_key(match.group(2))]
                return reference_now + timedelta(minutes=minutes)
        return None

    def _at(self, day: datetime, clock: ClockTime | None, tz: tzinfo) -> datetime:
        if clock is None:
            hour, minute = DEFAULT_HOUR, 0
        else:
            hour, minute = to_24_hour(clock), clock.minute
        return datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz)

    def _resolve_bare_clock(
        self,
        clock: ClockTime,
        local_now: datetime,
        reference_now: datetime,
        tonight: bool,
    ) -> datetime:
        hour = to_24_hour(clock)
        # Hour 0 only appears in 24-hour notation, so it never means PM
        if clock.meridiem is None and 0 < hour < 12:
            if tonight:
                hour += 12
            else:
                implied_am = local_now.replace(hour=hour, minute=clock.minute, second=0, microsecond=0)
                if implied_am <= local_now:
                    hour += 12

        resolved = datetime(
            local_now.year, local_now.month, local_now.day, hour, clock.minute, tzinfo=local_now.tzinfo
        )
        if resolved <= reference_now:
            resolved += timedelta(days=1)
        return resolved

    def _resolve_fallback(self, text: str, local_now: datetime, tz: tzinfo) -> datetime | None:
        candidate = text.strip()
        try:
            parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
        except ValueError:
            default = local_now.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
            try:
                parsed = date_parser.parse(candidate, default=default)
            except (ValueError, OverflowError):
                return None

        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=tz)
        return parsed.astimezone(tz)

    def day_bounds(self, day: str, reference_now: datetime) -> tuple[datetime, datetime] | None:
        """Local-midnight bounds for "today", "tomorrow" or a weekday name."""
        local_now = self.localize(reference_now)
        midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        key = day.strip().lower()

        if key in ("today", "tonight"):
            start = midnight
        elif key == "tomorrow":
            start = midnight + timedelta(days=1)
        elif key in WEEKDAYS:
            days_ahead = (WEEKDAYS[key] - local_now.weekday()) % 7 or 7
            start = midnight + timedelta(days=days_ahead)
        else:
            return None

        start = datetime(start.year, start.month, start.day, tzinfo=self._default_tz)
        end = start + timedelta(days=1) - timedelta(microseconds=1)
        return start, end

    def format_for_user(self, instant: datetime, reference_now: datetime) -> str:
        """Short relative phrase for near instants, full local date otherwise."""
        diff_seconds = (self.localize(instant) - self.localize(reference_now)).total_seconds()
        if diff_seconds >= 0:
            minutes = _round_half_up(diff_seconds / 60)
            hours = _round_half_up(diff_seconds / 3600)
            days = _round_half_up(diff_seconds / 86400)
            if minutes < 60:
                return f"in {_plural(minutes, 'minute')}"
            if hours < 24:
                return f"in {_plural(hours, 'hour')}"
            if days < 7:
                return f"in {_plural(days, 'day')}"

        local = self.localize(instant)
        label = local.strftime("%Z") or self._default_tz_name
        return f"{local:%A}, {local.day} {local:%B %Y} at {self.format_clock(local)} {label}"

    def describe(self, instant: datetime, reference_now: datetime) -> str:
        """Day-relative label such as "today at 3:00 PM" or "Friday at 9:30 AM"."""
        local = self.localize(instant)
        days_ahead = (local.date() - self.localize(reference_now).date()).days
        clock = self.format_clock(local)
        if days_ahead == 0:
            return f"today at {clock}"
        if days_ahead == 1:
            return f"tomorrow at {clock}"
        if 1 < days_ahead < 7:
            return f"{local:%A} at {clock}"
        return self.format_for_user(local, reference_now)

    def format_clock(self, dt: datetime) -> str:
        """Format as "3:05 PM" in the display timezone."""
        local = self.localize(dt)
        hour = local.hour % 12 or 12
        meridiem = "AM" if local.hour < 12 else "PM"
        return f"{hour}:{local.minute:02d} {meridiem}"
