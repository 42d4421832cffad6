"""Message processor for Jarwik.

Handles the pipeline shared by chat, voice and SMS:
1. Classify with the lightweight parser
2. Ask the LLM fallback when the parser is not confident enough
3. Execute actionable intents through the dispatcher
4. Answer everything else conversationally
"""

import logging
from dataclasses import dataclass

from jarwik.services.dispatcher import ActionDispatcher
from jarwik.services.intent import IntentResult
from jarwik.services.llm_client import ChatTurn
from jarwik.services.llm_parser import ChatResponder, FallbackClassifier
from jarwik.services.parser import LightweightParser

logger = logging.getLogger(__name__)

DEFAULT_CHAT_THRESHOLD = 0.8
DEFAULT_SMS_THRESHOLD = 0.6
DEFAULT_EXECUTE_THRESHOLD = 0.7

CLARIFY_REPLY = "I'm not quite sure what you'd like me to do. Could you rephrase that?"


@dataclass
class ProcessResult:
    response: str
    intent: IntentResult
    action_taken: str | None = None
    used_fallback: bool = False


class MessageProcessor:
    def __init__(
        self,
        dispatcher: ActionDispatcher,
        *,
        parser: LightweightParser | None = None,
        fallback: FallbackClassifier | None = None,
        responder: ChatResponder | None = None,
        chat_threshold: float = DEFAULT_CHAT_THRESHOLD,
        sms_threshold: float = DEFAULT_SMS_THRESHOLD,
        execute_threshold: float = DEFAULT_EXECUTE_THRESHOLD,
    ) -> None:
        self.dispatcher = dispatcher
        self.parser = parser or LightweightParser()
        self.fallback = fallback or FallbackClassifier(base_parser=self.parser)
        self.responder = responder or ChatResponder()
        self.chat_threshold = chat_threshold
        self.sms_threshold = sms_threshold
        self.execute_threshold = execute_threshold

    async def classify(self, message: str, threshold: float) -> tuple[IntentResult, bool]:
        """Return the intent and whether the LLM fallback produced it."""
        result = self.parser.classify(message)
        if not result.needs_ai and result.confidence > threshold:
            logger.info(
                "Lightweight parser: %s (%.2f), skipping fallback", result.intent, result.confidence
            )
            return result, False

        logger.info(
            "Lightweight parser unsure: %s (%.2f), using fallback", result.intent, result.confidence
        )
        fallback_result = await self.fallback.classify_async(message)
        logger.info(
            "Fallback classifier: %s (%.2f)", fallback_result.intent, fallback_result.confidence
        )
        return fallback_result, True

    def should_execute(self, intent: IntentResult, threshold: float | None = None) -> bool:
        if intent.action:
            return True
        if threshold is None:
            threshold = self.execute_threshold
        return not intent.is_general_chat and intent.confidence > threshold

    async def process_chat(
        self,
        message: str,
        account_id: str,
        history: list[ChatTurn] | None = None,
    ) -> ProcessResult:
        return await self._process(message, account_id, self.chat_threshold, history)

    async def process_voice(self, message: str, account_id: str) -> ProcessResult:
        return await self._process(message, account_id, self.chat_threshold, None)

    async def process_sms(self, message: str, account_id: str) -> ProcessResult:
        return await self._process(message, account_id, self.sms_threshold, None)

    async def _process(
        self,
        message: str,
        account_id: str,
        threshold: float,
        history: list[ChatTurn] | None,
    ) -> ProcessResult:
        intent, used_fallback = await self.classify(message, threshold)

        # A channel with a lower classification gate executes at that gate too
        if self.should_execute(intent, min(threshold, self.execute_threshold)):
            action = intent.action or intent.intent
            response = await self.dispatcher.execute(intent, account_id)
            return ProcessResult(
                response=response,
                intent=intent,
                action_taken=action,
                used_fallback=used_fallback,
            )

        if intent.is_general_chat:
            response = await self.responder.reply_async(message, history)
        else:
            response = CLARIFY_REPLY

        return ProcessResult(response=response, intent=intent, used_fallback=used_fallback)
