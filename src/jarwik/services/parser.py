"""Rule-based intent classification.

The classifier walks an ordered list of rules and returns on the first match.
Most common requests ("send email to ...", "remind me in 20 minutes to ...",
"schedule a meeting tomorrow at 3pm") resolve here without an LLM call.
Anything no rule recognises comes back as ``general_chat`` with low
confidence and ``needs_ai`` set, which routes it to the fallback classifier.

Time expressions are extracted as text only; resolving them to datetimes is
the dispatcher's job (see ``jarwik.services.timezone``).
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from jarwik.config import settings
from jarwik.services.intent import Intent, IntentResult
from jarwik.services.timezone import WEEKDAYS

logger = logging.getLogger(__name__)

GENERAL_CHAT_CONFIDENCE = 0.3

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
UUID_PATTERN = re.compile(
    r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b", re.IGNORECASE
)

_WEEKDAY = "|".join(WEEKDAYS)
_DAY_SIMPLE = rf"(?:today|tomorrow|tonight|{_WEEKDAY})"
_DAY = rf"(?:today|tomorrow|tonight|next\s+week|(?:next\s+|this\s+|on\s+)?(?:{_WEEKDAY}))"
_CLOCK = r"\d{1,2}(?:[:.]\d{2})?\s*(?:[ap]\.?m\.?)?"
_CLOCK_MARKED = r"(?:\d{1,2}(?:[:.]\d{2})?\s*[ap]\.?m\.?|\d{1,2}[:.]\d{2})"
_TIME = rf"(?:(?:at|@)\s*{_CLOCK}|{_CLOCK_MARKED})(?![\w:])"
_UNIT = r"(?:minutes?|mins?|hours?|hrs?|days?)"
_COUNT = r"(?:\d+|an?|one)"

DAY_WORDS = {"today", "tomorrow", "tonight", *WEEKDAYS}

# Ordered: the first pattern that matches supplies the time text.
TIME_TEXT_PATTERNS = [
    re.compile(rf"\b{_DAY}\s+{_TIME}", re.IGNORECASE),
    re.compile(rf"{_TIME}\s+(?:on\s+)?{_DAY}\b", re.IGNORECASE),
    re.compile(rf"\b{_COUNT}\s*{_UNIT}\s+(?:from\s+now|later)\b", re.IGNORECASE),
    re.compile(rf"\b(?:in|after)\s+{_COUNT}\s*{_UNIT}\b", re.IGNORECASE),
    re.compile(rf"\b{_DAY}\b", re.IGNORECASE),
    re.compile(rf"(?<![\w:]){_TIME}", re.IGNORECASE),
]

UNIT_MINUTES = {"minute": 1, "hour": 60, "day": 1440}

DURATION_UNIT_RANGE = re.compile(
    r"\bfrom\s+(\d+)\s*(?:to|-|until)\s*(\d+)\s*(minutes?|mins?|hours?|hrs?)\b", re.IGNORECASE
)
DURATION_CLOCK_RANGE = re.compile(
    r"\bfrom\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\s*(?:to|-|until|till)\s*(\d{1,2})(?::(\d{2}))?\s*(am|pm)?",
    re.IGNORECASE,
)
DURATION_AMOUNT = re.compile(
    rf"\b(?:for|in|about|lasting)\s+({_COUNT})\s*({_UNIT})\b", re.IGNORECASE
)
DURATION_HALF_HOUR = re.compile(r"\b(?:for|about)\s+half\s+an?\s+hour\b", re.IGNORECASE)
DURATION_ADJECTIVE = re.compile(
    r"\b(\d+)[\s-]*(minutes?|mins?|hours?|hrs?)\s+(?:meeting|event|appointment|call|slot)\b",
    re.IGNORECASE,
)

STOPWORDS = {
    "a", "an", "the", "my", "our", "your", "me", "us", "with", "and", "some", "this",
    "that", "new", "it", "please", "quick",
}
TIME_WORDS = {
    "today", "tomorrow", "tonight", "next", "week", "morning", "afternoon", "evening",
    "noon", "midnight", "am", "pm", "minute", "minutes", "min", "mins", "hour", "hours",
    "hr", "hrs", "day", "days", "at", "on", "in", "for", "from", "to", "by", "later", "now",
    *WEEKDAYS,
}

QUESTION_PATTERN = re.compile(
    r"^\s*(?:what|whats|what's|how|hows|how's|when|is|am|are|do|does|did|show|check|list|tell|any)\b"
    r"|\?\s*$",
    re.IGNORECASE,
)

EMAIL_VERB = re.compile(r"\b(?:send|mail|e-?mail)\b", re.IGNORECASE)
EMAIL_TARGET = re.compile(rf"\b(?:to|at)\s+({EMAIL_PATTERN.pattern})", re.IGNORECASE)
EMAIL_LEAD = re.compile(
    r"^[\s,;:\-\"']*(?:(?:saying|about|that|regarding|re|with\s+message|message)\b)?[\s,;:\-\"']*",
    re.IGNORECASE,
)
EMAIL_SUBJECT = re.compile(
    r"\bsubject\b\s*(?:is\s+)?[:\-]?\s*[\"']?"
    r"([^,.\n;\"']+?)(?=\s+(?:and\s+)?(?:body|message|saying)\b|[,.\n;\"']|$)",
    re.IGNORECASE,
)
EMAIL_BODY_LEAD = re.compile(
    r"^[\s\"',.;:\-]*(?:and\s+)?(?:(?:with\s+)?(?:body|message|saying|text)\b)?[\s:\-\"']*",
    re.IGNORECASE,
)

REMINDER_TRIGGER = re.compile(
    r"\b(?:set|create|add|make)\b.{0,20}?\breminder\b|\bremind\s+me\b", re.IGNORECASE
)
REMINDER_TASK_PATTERNS = [
    re.compile(r"\bremind\s+me\b.*?\bto\s+([^\n.!?]+)", re.IGNORECASE),
    re.compile(r"\breminder\b.{0,20}?\b(?:to|for|about)\s+([^\n.!?]+)", re.IGNORECASE),
    re.compile(r"\breminder\s*[:\-\"]\s*([^\n.!?]+)", re.IGNORECASE),
    re.compile(r"\bremind\s+me\s+(?:about|of)\s+([^\n.!?]+)", re.IGNORECASE),
]

_EVENT_NOUN = r"(?:meeting|event|appointment|call)"
CREATE_EVENT_VERB = re.compile(
    r"(?<!my\s)(?<!the\s)(?<!your\s)(?<!our\s)"
    rf"\b(?:schedule|create|add|book|set\s+up|arrange|plan)\b.{{0,30}}?\b{_EVENT_NOUN}s?\b",
    re.IGNORECASE,
)
CREATE_EVENT_NOUN_TIME = re.compile(
    rf"\b(?:meeting|event|appointment)\b.{{0,40}}?(?:\b{_DAY}\b|{_TIME})", re.IGNORECASE
)
# Nouns followed by a time are not a create request in these phrasings
CREATE_EVENT_NOUN_EXCLUDE = re.compile(
    r"\b(?:reschedule|move|shift|push|postpone|change|cancel|delete|remove|conflicts?|free|"
    r"available|best\s+time|optimal)\b",
    re.IGNORECASE,
)
EVENT_TITLE_PATTERNS = [
    re.compile(
        rf"\b{_EVENT_NOUN}\b.{{0,20}}?\b(?:about|for|regarding|re|on)\s+([^,.\n!?]{{3,40}})",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:schedule|create|add|book|set\s+up|arrange)\s+(?:a\s+|an\s+|the\s+|my\s+)?"
        rf"([^,.\n!?]{{3,30}}?)\s+{_EVENT_NOUN}\b",
        re.IGNORECASE,
    ),
]

RESCHEDULE_TRIGGER = re.compile(
    r"\breschedule\b"
    rf"|\b(?:move|shift|push|postpone|change)\b.{{0,30}}?\b{_EVENT_NOUN}\b",
    re.IGNORECASE,
)
EVENT_ID_PATTERN = re.compile(
    r"\b(?:event|id)\s*(?:id\s*)?[:#]?\s*([A-Za-z0-9_-]*\d[A-Za-z0-9_-]*)\b", re.IGNORECASE
)
# "event 3pm", "event 10:30" and "event 4 pm" name a time, not an identifier
CLOCK_ID = re.compile(r"^\d{1,2}(?:am|pm)$", re.IGNORECASE)
CLOCK_TAIL = re.compile(r"^(?:[:.]\d{2}|\s*(?:am|pm)\b|\s*[ap]\.m\.)", re.IGNORECASE)

SCHEDULE_QUERY_PATTERNS = [
    re.compile(
        r"\b(?:how(?:'s|s|\s+is|\s+does)?|what(?:'s|s|\s+is|\s+does)?|show(?:\s+me)?|check|"
        r"tell\s+me|list|view|see|give\s+me)\b.{0,30}?"
        r"\b(?:schedule|calendar|agenda|plans?|events|meetings|day)\b"
        rf"(?:.{{0,20}}?\b(?P<day>{_DAY_SIMPLE})\b)?",
        re.IGNORECASE,
    ),
    re.compile(
        r"\bwhat(?:'s|s)?\s+(?:do\s+i\s+have|is\s+on|on)\b.{0,20}?"
        rf"\b(?P<day>{_DAY_SIMPLE})\b",
        re.IGNORECASE,
    ),
    re.compile(
        rf"\b(?P<day>{_DAY_SIMPLE})(?:'s)?\s+(?:schedule|calendar|agenda|plans)\b",
        re.IGNORECASE,
    ),
]
SCHEDULE_QUERY_EXCLUDE = re.compile(
    r"\bconflicts?\b|\bfree\b|\bavailable\b|\bbest\s+time\b", re.IGNORECASE
)

_SLOT = rf"(?:{_CLOCK_MARKED}|{_DAY_SIMPLE}|\d{{1,2}})"
AVAILABILITY_PATTERNS = [
    re.compile(
        rf"\b(?:is|am|are|will)\b.{{0,40}}?\b(?P<a>{_SLOT})\b.{{0,40}}?\b(?:free|available)\b"
        rf"(?:.{{0,30}}?\b(?P<b>{_SLOT})\b)?",
        re.IGNORECASE,
    ),
    re.compile(
        rf"\b(?:free|available)\s+(?:at|on|for)\s+(?P<a>{_SLOT})\b(?:.{{0,30}}?\b(?P<b>{_SLOT})\b)?",
        re.IGNORECASE,
    ),
    re.compile(
        rf"\b(?:is|am|are|will)\b.{{0,30}}?\b(?:free|available)\b.{{0,30}}?\b(?P<a>{_SLOT})\b"
        rf"(?:.{{0,30}}?\b(?P<b>{_SLOT})\b)?",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:am|are)\s+(?:i|we)\s+(?:free|available)\b", re.IGNORECASE),
]

CONFLICT_PATTERNS = [
    re.compile(
        r"\b(?:check|any|are\s+there|look\s+for|find)\b.{0,20}?\bconflicts?\b", re.IGNORECASE
    ),
    re.compile(r"\bconflicts?\b.{0,20}?\b(?:at|on|for|with)\b", re.IGNORECASE),
]

FIND_TIME_PATTERNS = [
    re.compile(
        r"\b(?:find|suggest|recommend|what(?:'s|s|\s+is)|when(?:'s|s|\s+is)?)\b.{0,25}?"
        r"\b(?:best|optimal|good|free|ideal|available)\s+(?:time|slot)s?\b",
        re.IGNORECASE,
    ),
    re.compile(r"\bwhen\s+(?:should|can|could)\s+(?:i|we)\s+(?:meet|schedule)\b", re.IGNORECASE),
]

SMS_PATTERNS = [
    re.compile(
        r"\b(?:send|text)\b.{0,20}?\b(?:sms|message|text)\b.{0,50}?\b(?:to|phone|number)\b"
        r".{0,10}?(\+?\d{10,15})\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:text|sms)\b.{0,10}?(\+?\d{10,15})\b", re.IGNORECASE),
]
CALL_PATTERN = re.compile(r"\b(?:call|phone|ring|dial)\s+(?:to\s+)?(\+?\d{10,15})\b", re.IGNORECASE)
MESSAGE_AFTER_NUMBER = re.compile(
    r"^[\s,;:\-]*(?:(?:saying|that\s+says|with\s+(?:the\s+)?(?:message|text)|message|text|and\s+say)\b)?"
    r"[\s:\-]*[\"']?(.*?)[\"']?\s*$",
    re.IGNORECASE | re.DOTALL,
)
MESSAGE_BEFORE_NUMBER = re.compile(
    r"\b(?:saying|message)\s*[:\-]?\s*[\"']?(.+?)[\"']?\s+(?:to|at)\b", re.IGNORECASE
)


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _squash(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _unit_minutes(unit: str) -> int:
    unit = unit.lower()
    if unit.startswith(("minute", "min")):
        return UNIT_MINUTES["minute"]
    if unit.startswith(("hour", "hr")):
        return UNIT_MINUTES["hour"]
    return UNIT_MINUTES["day"]


def _count(value: str) -> int:
    return 1 if value.lower() in ("a", "an", "one") else int(value)


def extract_time_text(text: str) -> str | None:
    """Return the first time expression found in text, as written."""
    for pattern in TIME_TEXT_PATTERNS:
        match = pattern.search(text)
        if match:
            return _squash(match.group(0))
    return None


def strip_time_references(text: str) -> str:
    for pattern in TIME_TEXT_PATTERNS:
        text = pattern.sub(" ", text)
    text = _squash(text)
    text = re.sub(r"(?:\s+(?:at|on|by|in|for|with|from|to))+$", "", text, flags=re.IGNORECASE)
    return text.strip(" ,.;:-\"'")


def extract_duration(text: str) -> int | None:
    """Duration in minutes from "for 2 hours", "from 2 to 4pm" and similar."""
    match = DURATION_UNIT_RANGE.search(text)
    if match:
        return abs(int(match.group(2)) - int(match.group(1))) * _unit_minutes(match.group(3))

    match = DURATION_CLOCK_RANGE.search(text)
    if match and (match.group(3) or match.group(6) or match.group(2) or match.group(5)):
        start_meridiem = (match.group(3) or match.group(6) or "").lower()
        end_meridiem = (match.group(6) or start_meridiem).lower()
        start = _minutes_of_day(int(match.group(1)), int(match.group(2) or 0), start_meridiem)
        end = _minutes_of_day(int(match.group(4)), int(match.group(5) or 0), end_meridiem)
        if start is not None and end is not None and start != end:
            return abs(end - start)

    if DURATION_HALF_HOUR.search(text):
        return 30

    match = DURATION_AMOUNT.search(text) or DURATION_ADJECTIVE.search(text)
    if match:
        return _count(match.group(1)) * _unit_minutes(match.group(2))
    return None


def _minutes_of_day(hour: int, minute: int, meridiem: str) -> int | None:
    if hour > 23 or minute > 59:
        return None
    if meridiem == "pm" and hour < 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    return hour * 60 + minute


def is_meaningful_title(candidate: str) -> bool:
    words = re.findall(r"[a-z0-9']+", candidate.lower())
    return any(
        word not in STOPWORDS and word not in TIME_WORDS and not word.isdigit() for word in words
    )


@dataclass(frozen=True)
class IntentRule:
    """One classifier rule: a cheap predicate plus the extractor it gates."""

    intent: Intent
    confidence: float
    predicate: Callable[[str, str], bool]
    extractor: Callable[[str, str], tuple[dict[str, Any], dict[str, Any]]]


class LightweightParser:
    """Deterministic intent classifier built from an ordered rule list."""

    def __init__(self, assistant_name: str | None = None):
        self.assistant_name = assistant_name or settings.assistant_name
        self.rules: list[IntentRule] = [
            IntentRule(Intent.SEND_EMAIL, 0.95, self._is_email, self._extract_email),
            IntentRule(Intent.SET_REMINDER, 0.9, self._is_reminder, self._extract_reminder),
            IntentRule(Intent.CREATE_EVENT, 0.85, self._is_create_event, self._extract_event),
            IntentRule(Intent.RESCHEDULE, 0.9, self._is_reschedule, self._extract_reschedule),
            IntentRule(
                Intent.CHECK_SCHEDULE, 0.9, self._is_schedule_query, self._extract_schedule_query
            ),
            IntentRule(
                Intent.CHECK_AVAILABILITY, 0.9, self._is_availability, self._extract_availability
            ),
            IntentRule(Intent.CHECK_CONFLICTS, 0.85, self._is_conflict_check, self._extract_conflict),
            IntentRule(Intent.FIND_TIME, 0.8, self._is_find_time, self._extract_find_time),
            IntentRule(Intent.SEND_SMS, 0.9, self._is_sms, self._extract_sms),
            IntentRule(Intent.MAKE_CALL, 0.9, self._is_call, self._extract_call),
        ]

    def classify(self, message: str) -> IntentResult:
        text = message.strip()
        lowered = text.lower()

        if text:
            for rule in self.rules:
                if not rule.predicate(text, lowered):
                    continue
                entities, parameters = rule.extractor(text, lowered)
                logger.debug("Rule %s matched with confidence %.2f", rule.intent.value, rule.confidence)
                return IntentResult(
                    intent=rule.intent.value,
                    confidence=rule.confidence,
                    entities=entities,
                    parameters=parameters,
                    action=rule.intent.value,
                )

        return IntentResult.general_chat(text, GENERAL_CHAT_CONFIDENCE, needs_ai=True)

    # send_email

    def _is_email(self, text: str, lowered: str) -> bool:
        if not EMAIL_PATTERN.search(text):
            return False
        # Verbs must appear outside the address itself ("gmail.com" is not "mail")
        return bool(EMAIL_VERB.search(EMAIL_PATTERN.sub(" ", text)))

    def _extract_email(self, text: str, lowered: str) -> tuple[dict[str, Any], dict[str, Any]]:
        target = EMAIL_TARGET.search(text)
        if target:
            address, address_end = target.group(1), target.end(1)
        else:
            match = EMAIL_PATTERN.search(text)
            assert match is not None
            address, address_end = match.group(0), match.end()

        after = text[address_end:]
        subject_match = EMAIL_SUBJECT.search(after)
        if subject_match:
            subject = subject_match.group(1).strip()
            body = EMAIL_BODY_LEAD.sub("", after[subject_match.end():]).strip().strip("\"'")
            if not body:
                body = EMAIL_LEAD.sub("", after[: subject_match.start()])
                body = re.sub(r"\s*\bwith\s*$", "", body, flags=re.IGNORECASE).strip()
        else:
            body = EMAIL_LEAD.sub("", after).strip().strip("\"'")
            subject = body if len(body) <= 30 else f"{body[:30]}..."

        subject = subject or f"Message from {self.assistant_name}"
        body = body or f"Hello from {self.assistant_name}!"

        entities = {"email": address}
        parameters = {"to": address, "recipient": address, "subject": subject, "body": body}
        return entities, parameters

    # set_reminder

    def _is_reminder(self, text: str, lowered: str) -> bool:
        return bool(REMINDER_TRIGGER.search(text))

    def _extract_reminder(self, text: str, lowered: str) -> tuple[dict[str, Any], dict[str, Any]]:
        time_text = extract_time_text(text)

        task = None
        for pattern in REMINDER_TASK_PATTERNS:
            match = pattern.search(text)
            if match:
                task = strip_time_references(match.group(1))
                task = re.sub(r"\s+please$", "", task, flags=re.IGNORECASE)
                if task:
                    break
        task = task or "reminder"

        entities = _compact({"task": task, "time": time_text})
        parameters = _compact({"reminder": task, "task": task, "time": time_text})
        return entities, parameters

    # create_event

    def _is_create_event(self, text: str, lowered: str) -> bool:
        if CREATE_EVENT_VERB.search(text):
            return True
        if QUESTION_PATTERN.search(text) or CREATE_EVENT_NOUN_EXCLUDE.search(text):
            return False
        return bool(CREATE_EVENT_NOUN_TIME.search(text))

    def _extract_event(self, text: str, lowered: str) -> tuple[dict[str, Any], dict[str, Any]]:
        attendees = EMAIL_PATTERN.findall(text)
        without_emails = EMAIL_PATTERN.sub(" ", text)
        time_text = extract_time_text(without_emails)
        duration_source = without_emails.replace(time_text, " ") if time_text else without_emails
        duration = extract_duration(duration_source)
        title = self._extract_title(without_emails) or "Meeting"

        entities = _compact({"title": title, "time": time_text, "attendees": attendees or None})
        parameters = _compact(
            {
                "title": title,
                "startTime": time_text,
                "time": time_text,
                "duration": duration,
                "attendees": attendees,
            }
        )
        return entities, parameters

    def _extract_title(self, text: str) -> str | None:
        for pattern in EVENT_TITLE_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            candidate = strip_time_references(match.group(1))
            candidate = re.sub(
                r"(?:\s+(?:with|and|at|on|for))+$", "", candidate, flags=re.IGNORECASE
            ).strip()
            if candidate and is_meaningful_title(candidate):
                return candidate
        return None

    # reschedule

    def _is_reschedule(self, text: str, lowered: str) -> bool:
        return bool(RESCHEDULE_TRIGGER.search(text))

    def _extract_reschedule(self, text: str, lowered: str) -> tuple[dict[str, Any], dict[str, Any]]:
        event_id = None
        remainder = text
        uuid_match = UUID_PATTERN.search(text)
        if uuid_match:
            event_id = uuid_match.group(0)
            remainder = text[: uuid_match.start()] + " " + text[uuid_match.end():]
        else:
            for match in EVENT_ID_PATTERN.finditer(text):
                candidate = match.group(1)
                if CLOCK_ID.match(candidate) or (
                    candidate.isdigit() and CLOCK_TAIL.match(text[match.end() :])
                ):
                    continue
                event_id = match.group(1)
                remainder = text[: match.start()] + " " + text[match.end():]
                break

        new_time = extract_time_text(remainder)
        entities = _compact({"event_id": event_id, "time": new_time})
        parameters = _compact({"eventId": event_id, "newTime": new_time, "time": new_time})
        return entities, parameters

    # check_schedule

    def _is_schedule_query(self, text: str, lowered: str) -> bool:
        if SCHEDULE_QUERY_EXCLUDE.search(text):
            return False
        return any(pattern.search(text) for pattern in SCHEDULE_QUERY_PATTERNS)

    def _extract_schedule_query(
        self, text: str, lowered: str
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        day = None
        for pattern in SCHEDULE_QUERY_PATTERNS:
            match = pattern.search(text)
            if match and match.group("day"):
                day = match.group("day").lower()
                break
        if day is None:
            found = re.search(rf"\b({_DAY_SIMPLE})\b", lowered)
            day = found.group(1) if found else "today"
        return {"day": day}, {"day": day}

    # check_availability

    def _is_availability(self, text: str, lowered: str) -> bool:
        return any(pattern.search(text) for pattern in AVAILABILITY_PATTERNS)

    def _extract_availability(
        self, text: str, lowered: str
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        time_value = None
        day = None
        for pattern in AVAILABILITY_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            for token in (match.groupdict().get("a"), match.groupdict().get("b")):
                if not token:
                    continue
                kind = self._slot_kind(token)
                if kind == "day" and day is None:
                    day = token.lower()
                elif kind == "time" and time_value is None:
                    time_value = _squash(token)
            break

        if day is None:
            found = re.search(rf"\b({_DAY_SIMPLE})\b", lowered)
            day = found.group(1) if found else None

        start_text = None
        if time_value:
            marked = re.search(r"[ap]\.?m|[:.]", time_value, re.IGNORECASE)
            clock = time_value if marked else f"at {time_value}"
            if day is None:
                start_text = clock
            elif clock.startswith("at "):
                start_text = f"{day} {clock}"
            else:
                start_text = f"{day} at {clock}"

        duration = extract_duration(text)
        entities = _compact({"time": time_value, "day": day})
        parameters = _compact(
            {
                "time": time_value,
                "specificTime": time_value,
                "day": day or "today",
                "startTime": start_text,
                "duration": duration,
            }
        )
        return entities, parameters

    def _slot_kind(self, token: str) -> str | None:
        """Tell a day capture from a time capture."""
        if token.lower() in DAY_WORDS:
            return "day"
        if re.search(r"\d", token):
            return "time"
        return None

    # check_conflicts / find_time

    def _is_conflict_check(self, text: str, lowered: str) -> bool:
        return any(pattern.search(text) for pattern in CONFLICT_PATTERNS)

    def _extract_conflict(self, text: str, lowered: str) -> tuple[dict[str, Any], dict[str, Any]]:
        time_text = extract_time_text(text)
        duration_source = text.replace(time_text, " ") if time_text else text
        duration = extract_duration(duration_source)
        entities = _compact({"time": time_text})
        parameters = _compact({"startTime": time_text, "time": time_text, "duration": duration})
        return entities, parameters

    def _is_find_time(self, text: str, lowered: str) -> bool:
        return any(pattern.search(text) for pattern in FIND_TIME_PATTERNS)

    def _extract_find_time(self, text: str, lowered: str) -> tuple[dict[str, Any], dict[str, Any]]:
        attendees = EMAIL_PATTERN.findall(text)
        parameters = _compact(
            {
                "attendees": attendees,
                "duration": extract_duration(text),
                "preferMorning": "morning" in lowered,
                "preferAfternoon": "afternoon" in lowered,
            }
        )
        return _compact({"attendees": attendees or None}), parameters

    # send_sms / make_call

    def _is_sms(self, text: str, lowered: str) -> bool:
        return any(pattern.search(text) for pattern in SMS_PATTERNS)

    def _extract_sms(self, text: str, lowered: str) -> tuple[dict[str, Any], dict[str, Any]]:
        match = next(m for m in (p.search(text) for p in SMS_PATTERNS) if m)
        phone = match.group(1)
        message = self._message_around_number(text, match.end(1))
        entities = {"phone": phone}
        parameters = _compact({"to": phone, "recipient": phone, "message": message})
        return entities, parameters

    def _is_call(self, text: str, lowered: str) -> bool:
        return bool(CALL_PATTERN.search(text))

    def _extract_call(self, text: str, lowered: str) -> tuple[dict[str, Any], dict[str, Any]]:
        match = CALL_PATTERN.search(text)
        assert match is not None
        phone = match.group(1)
        message = self._message_around_number(text, match.end(1))
        return {"phone": phone}, _compact({"to": phone, "recipient": phone, "message": message})

    def _message_around_number(self, text: str, number_end: int) -> str | None:
        after = MESSAGE_AFTER_NUMBER.match(text[number_end:])
        if after and after.group(1).strip():
            return after.group(1).strip()
        before = MESSAGE_BEFORE_NUMBER.search(text[:number_end])
        if before:
            return before.group(1).strip()
        return None
