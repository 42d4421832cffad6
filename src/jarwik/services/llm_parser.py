"""LLM-backed intent classification and free-form chat replies."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import TYPE_CHECKING, Any

from jarwik.services.intent import Intent, IntentResult, IntentSource
from jarwik.services.llm_client import ChatTurn

if TYPE_CHECKING:
    from jarwik.services.llm_client import LLMClient
    from jarwik.services.parser import LightweightParser

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0

# Confidence reported when the model could not be reached or made no sense
FAILURE_CONFIDENCE = 0.5

CHAT_HISTORY_TURNS = 2

CHAT_FAILURE_REPLY = "I'm having trouble processing your request right now. Please try again later."

_VALID_INTENTS = {intent.value for intent in Intent}

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def build_classifier_prompt(message: str) -> str:
    intents = "|".join(intent.value for intent in Intent)
    return (
        "Parse this message into JSON with intent, confidence, entities, parameters:\n"
        f'"{message}"\n\n'
        f'Return format: {{"intent":"{intents}","confidence":0.8,"entities":{{}},"parameters":{{}}}}\n\n'
        "Examples:\n"
        '- Email: {"intent":"send_email","confidence":0.9,"entities":{"email":"john@test.com"},'
        '"parameters":{"to":"john@test.com","subject":"Hello","body":"Hi there"}}\n'
        '- Reminder: {"intent":"set_reminder","confidence":0.9,"entities":{"time":"in 20 minutes"},'
        '"parameters":{"reminder":"call mom","time":"in 20 minutes"}}\n'
        '- Event: {"intent":"create_event","confidence":0.9,"entities":{},'
        '"parameters":{"title":"Team sync","startTime":"tomorrow at 3pm","duration":30}}\n'
        "Keep time expressions exactly as the user wrote them."
    )


def chat_system_prompt(assistant_name: str) -> str:
    return (
        f"You are {assistant_name}, an AI assistant. Be helpful, concise, and friendly. "
        "Keep responses under 50 words unless more detail is specifically requested."
    )


class FallbackClassifier:
    """Classify with an LLM when the rule-based parser is not confident.

    Without a configured LLM this returns the rule-based result unchanged.
    When the model fails or answers with something unusable the message is
    treated as general chat.
    """

    def __init__(
        self,
        *,
        llm: LLMClient | None = None,
        base_parser: LightweightParser | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.llm = llm
        if base_parser is None:
            from jarwik.services.parser import LightweightParser

            self.base_parser = LightweightParser()
        else:
            self.base_parser = base_parser
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return self.llm is not None and self.llm.is_available

    def classify(self, message: str) -> IntentResult:
        if not self.is_configured:
            return self.base_parser.classify(message)

        try:
            response = self.llm.complete(
                build_classifier_prompt(message),
                temperature=0.1,
                max_tokens=300,
                json_mode=True,
            )
            data = self._extract_payload(response.text)
            return self._to_result(data)
        except Exception as exc:
            logger.warning("LLM classifier failed; treating message as general chat: %s", exc)
            return IntentResult.general_chat(message, FAILURE_CONFIDENCE, source=IntentSource.LLM)

    async def classify_async(self, message: str) -> IntentResult:
        """Run ``classify`` off the event loop, giving up after ``timeout`` seconds."""
        if not self.is_configured:
            return self.base_parser.classify(message)

        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, self.classify, message), self.timeout
            )
        except TimeoutError:
            logger.warning("LLM classifier timed out after %.1fs", self.timeout)
            return IntentResult.general_chat(message, FAILURE_CONFIDENCE, source=IntentSource.LLM)

    def _extract_payload(self, text: str) -> dict[str, Any]:
        if not text or not text.strip():
            raise ValueError("No text payload returned from LLM")
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            # Some providers wrap the object in prose or code fences
            match = _JSON_OBJECT.search(text)
            if not match:
                raise
            data = json.loads(match.group(0))
        if not isinstance(data, dict):
            raise ValueError("Expected a JSON object")
        return data

    def _to_result(self, data: dict[str, Any]) -> IntentResult:
        intent = str(data.get("intent", "")).strip().lower()
        if intent not in _VALID_INTENTS:
            raise ValueError(f"Unknown intent: {intent!r}")

        entities = data.get("entities") or {}
        parameters = data.get("parameters") or {}
        if not isinstance(entities, dict) or not isinstance(parameters, dict):
            raise ValueError("entities and parameters must be objects")

        action = data.get("action")
        return IntentResult(
            intent=intent,
            confidence=self._coerce_confidence(data.get("confidence")),
            entities=entities,
            parameters=parameters,
            action=action if isinstance(action, str) and action else None,
            source=IntentSource.LLM,
        )

    def _coerce_confidence(self, value: Any) -> float:
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return FAILURE_CONFIDENCE
        # Some models answer on a 0-100 scale
        if confidence > 1:
            confidence /= 100
        return max(0.0, min(1.0, confidence))


class ChatResponder:
    """Short conversational replies for general chat."""

    def __init__(
        self,
        *,
        llm: LLMClient | None = None,
        assistant_name: str = "Jarwik",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.llm = llm
        self.assistant_name = assistant_name
        self.timeout = timeout

    def reply(self, message: str, history: list[ChatTurn] | None = None) -> str:
        if self.llm is None or not self.llm.is_available:
            return CHAT_FAILURE_REPLY

        try:
            response = self.llm.complete(
                message,
                system_prompt=chat_system_prompt(self.assistant_name),
                history=(history or [])[-CHAT_HISTORY_TURNS:],
                temperature=0.7,
                max_tokens=150,
            )
        except Exception as exc:
            logger.warning("Chat reply failed: %s", exc)
            return CHAT_FAILURE_REPLY
        return response.text.strip() or CHAT_FAILURE_REPLY

    async def reply_async(self, message: str, history: list[ChatTurn] | None = None) -> str:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, self.reply, message, history), self.timeout
            )
        except TimeoutError:
            logger.warning("Chat reply timed out after %.1fs", self.timeout)
            return CHAT_FAILURE_REPLY
