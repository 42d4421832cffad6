"""Tests for the shared chat, voice and SMS pipeline."""

import pytest

from jarwik.services.intent import IntentResult, IntentSource
from jarwik.services.llm_client import ChatTurn
from jarwik.services.processor import CLARIFY_REPLY, MessageProcessor


class FakeParser:
    def __init__(self, result: IntentResult) -> None:
        self.result = result

    def classify(self, message: str) -> IntentResult:
        return self.result


class FakeFallback:
    def __init__(self, result: IntentResult | None = None) -> None:
        self.result = result
        self.calls: list[str] = []

    async def classify_async(self, message: str) -> IntentResult:
        self.calls.append(message)
        return self.result


class FakeDispatcher:
    def __init__(self, reply: str = "✅ done") -> None:
        self.reply = reply
        self.executed: list[tuple[IntentResult, str]] = []

    async def execute(self, intent: IntentResult, account_id: str) -> str:
        self.executed.append((intent, account_id))
        return self.reply


class FakeResponder:
    def __init__(self) -> None:
        self.calls: list[tuple[str, list | None]] = []

    async def reply_async(self, message: str, history=None) -> str:
        self.calls.append((message, history))
        return "Happy to chat!"


def reminder(confidence: float, action: str | None = None) -> IntentResult:
    return IntentResult(
        intent="set_reminder",
        confidence=confidence,
        parameters={"reminder": "call mom", "time": "in 20 minutes"},
        action=action,
    )


def build(parsed: IntentResult, fallback_result: IntentResult | None = None):
    dispatcher = FakeDispatcher()
    fallback = FakeFallback(fallback_result)
    responder = FakeResponder()
    processor = MessageProcessor(
        dispatcher,
        parser=FakeParser(parsed),
        fallback=fallback,
        responder=responder,
    )
    return processor, dispatcher, fallback, responder


class TestThresholds:
    @pytest.mark.asyncio
    async def test_confident_chat_result_skips_fallback(self):
        processor, dispatcher, fallback, _ = build(reminder(0.9))

        result = await processor.process_chat("remind me in 20 minutes to call mom", "user-1")

        assert fallback.calls == []
        assert result.used_fallback is False
        assert result.response == "✅ done"
        assert result.action_taken == "set_reminder"
        assert dispatcher.executed[0][1] == "user-1"

    @pytest.mark.asyncio
    async def test_chat_threshold_is_exclusive(self):
        processor, _, fallback, _ = build(reminder(0.8), fallback_result=reminder(0.95))

        result = await processor.process_chat("remind me", "user-1")

        assert fallback.calls == ["remind me"]
        assert result.used_fallback is True
        assert result.intent.confidence == 0.95

    @pytest.mark.asyncio
    async def test_sms_uses_lower_threshold(self):
        processor, _, fallback, _ = build(reminder(0.7))

        result = await processor.process_sms("remind me", "user-1")

        assert fallback.calls == []
        assert result.action_taken == "set_reminder"

    @pytest.mark.asyncio
    async def test_voice_uses_chat_threshold(self):
        processor, _, fallback, _ = build(reminder(0.7), fallback_result=reminder(0.9))

        await processor.process_voice("remind me", "user-1")

        assert fallback.calls == ["remind me"]

    @pytest.mark.asyncio
    async def test_needs_ai_always_consults_fallback(self):
        parsed = IntentResult.general_chat("hi", 0.9, needs_ai=True)
        processor, _, fallback, _ = build(parsed, fallback_result=parsed)

        await processor.process_sms("hi", "user-1")

        assert fallback.calls == ["hi"]


class TestExecution:
    @pytest.mark.asyncio
    async def test_low_confidence_actionable_intent_asks_to_rephrase(self):
        low = reminder(0.6)
        processor, dispatcher, _, responder = build(low, fallback_result=low)

        result = await processor.process_chat("maybe remind", "user-1")

        assert result.response == CLARIFY_REPLY
        assert result.action_taken is None
        assert dispatcher.executed == []
        assert responder.calls == []

    @pytest.mark.asyncio
    async def test_sms_executes_above_its_own_gate(self):
        processor, dispatcher, fallback, _ = build(reminder(0.65))

        result = await processor.process_sms("remind me", "user-1")

        assert fallback.calls == []
        assert result.response == "✅ done"
        assert len(dispatcher.executed) == 1

    @pytest.mark.asyncio
    async def test_chat_keeps_execute_gate(self):
        low = reminder(0.65)
        processor, dispatcher, _, _ = build(low, fallback_result=low)

        result = await processor.process_chat("remind me", "user-1")

        assert result.response == CLARIFY_REPLY
        assert dispatcher.executed == []

    @pytest.mark.asyncio
    async def test_explicit_action_executes_regardless_of_confidence(self):
        low = reminder(0.55, action="set_reminder")
        processor, dispatcher, _, _ = build(low, fallback_result=low)

        result = await processor.process_chat("remind", "user-1")

        assert result.action_taken == "set_reminder"
        assert len(dispatcher.executed) == 1

    @pytest.mark.asyncio
    async def test_general_chat_goes_to_responder_with_history(self):
        chat = IntentResult.general_chat("hello", 0.5, source=IntentSource.LLM)
        processor, dispatcher, _, responder = build(
            IntentResult.general_chat("hello", 0.3, needs_ai=True), fallback_result=chat
        )
        history = [ChatTurn("user", "hey")]

        result = await processor.process_chat("hello", "user-1", history)

        assert result.response == "Happy to chat!"
        assert responder.calls == [("hello", history)]
        assert dispatcher.executed == []
        assert result.intent is chat
