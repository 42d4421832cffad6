from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class Intent(str, Enum):
    SEND_EMAIL = "send_email"
    SET_REMINDER = "set_reminder"
    CREATE_EVENT = "create_event"
    RESCHEDULE = "reschedule"
    CHECK_SCHEDULE = "check_schedule"
    CHECK_AVAILABILITY = "check_availability"
    CHECK_CONFLICTS = "check_conflicts"
    FIND_TIME = "find_time"
    SEND_SMS = "send_sms"
    MAKE_CALL = "make_call"
    GENERAL_CHAT = "general_chat"


class IntentSource(str, Enum):
    RULES = "rules"
    LLM = "llm"


@dataclass(frozen=True)
class IntentResult:
    """Parsed meaning of one user message.

    ``entities`` holds raw fragments as they appeared in the text, while
    ``parameters`` holds action-ready fields for the dispatcher. Both may
    carry the same value under different keys.
    """

    intent: str
    confidence: float
    entities: dict[str, Any] = field(default_factory=dict)
    parameters: dict[str, Any] = field(default_factory=dict)
    needs_ai: bool = False
    action: str | None = None
    source: IntentSource = IntentSource.RULES

    @property
    def is_general_chat(self) -> bool:
        return self.intent == Intent.GENERAL_CHAT.value

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["source"] = self.source.value
        return data

    @classmethod
    def general_chat(
        cls,
        message: str,
        confidence: float,
        *,
        needs_ai: bool = False,
        source: IntentSource = IntentSource.RULES,
    ) -> "IntentResult":
        return cls(
            intent=Intent.GENERAL_CHAT.value,
            confidence=confidence,
            parameters={"query": message},
            needs_ai=needs_ai,
            source=source,
        )
