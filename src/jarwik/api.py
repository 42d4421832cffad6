"""FastAPI application for Jarwik.

Three entry points share one processing pipeline:

- ``POST /api/chat`` for the web chat
- ``POST /api/agent-webhook`` for the voice agent
- ``POST /api/sms-webhook`` for inbound Twilio SMS
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from jarwik.config import Settings, settings as default_settings
from jarwik.sentry import capture_exception, init_sentry, set_tag, set_user_context
from jarwik.services.dispatcher import SmsTransport
from jarwik.services.llm_client import ChatTurn
from jarwik.services.permissions import AccountStore
from jarwik.services.processor import MessageProcessor
from jarwik.twilio.webhook import (
    SIGNATURE_HEADER,
    TwilioWebhook,
    WebhookPayloadError,
    WebhookVerificationError,
)

logger = logging.getLogger(__name__)

CHAT_ERROR_REPLY = "I'm sorry, I encountered an error processing your request. Please try again."
VOICE_EMPTY_REPLY = "I didn't hear anything. Could you please try again?"
VOICE_ERROR_REPLY = "I'm sorry, I'm having trouble right now. Please try again in a moment."


class HistoryMessage(BaseModel):
    role: str
    content: str
    timestamp: str | None = None


class ChatRequest(BaseModel):
    message: str = ""
    userId: str = ""
    conversationHistory: list[HistoryMessage] = Field(default_factory=list)


class AgentMetadata(BaseModel):
    user_id: str | None = None


class AgentWebhookRequest(BaseModel):
    conversation_id: str = ""
    user_message: str = ""
    agent_id: str = ""
    timestamp: str | None = None
    metadata: AgentMetadata | None = None


@dataclass
class AppServices:
    processor: MessageProcessor
    accounts: AccountStore
    sms: SmsTransport | None
    webhook: TwilioWebhook
    settings: Settings


def onboarding_message(assistant_name: str, public_url: str, phone_number: str) -> str:
    return (
        f"👋 Hi! I'm {assistant_name}, your AI assistant.\n\n"
        "To get started:\n"
        f"1. Visit {public_url}/settings\n"
        "2. Create an account and connect your Google services\n"
        f"3. Add this phone number ({phone_number}) to your profile\n\n"
        "Then you can text me commands like:\n"
        '• "Send email to john@example.com about meeting"\n'
        '• "Remind me to call mom in 1 hour"\n'
        '• "Schedule meeting tomorrow at 3pm"\n\n'
        f"Visit: {public_url}"
    )


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def _history_turns(history: list[HistoryMessage]) -> list[ChatTurn]:
    return [
        ChatTurn(role=item.role, content=item.content)
        for item in history
        if item.role in ("user", "assistant") and item.content
    ]


def build_services(settings: Settings | None = None) -> AppServices:
    """Wire the production collaborators from settings."""
    from jarwik.google.auth import GoogleAuth
    from jarwik.google.calendar import GoogleCalendarStore
    from jarwik.google.gmail import GmailTransport
    from jarwik.services.cache import TTLCache
    from jarwik.services.dispatcher import ActionDispatcher
    from jarwik.services.llm_client import build_llm_client
    from jarwik.services.llm_parser import ChatResponder, FallbackClassifier
    from jarwik.services.parser import LightweightParser
    from jarwik.services.permissions import CachedAccountStore, JsonAccountStore
    from jarwik.services.timezone import TimeResolver
    from jarwik.twilio.client import TwilioClient

    settings = settings or default_settings
    data_dir = Path(settings.data_dir).expanduser()

    resolver = TimeResolver(settings.user_timezone)
    auth = GoogleAuth(data_dir / "tokens")
    accounts = CachedAccountStore(
        JsonAccountStore(data_dir / "accounts.json"),
        TTLCache(settings.permission_cache_ttl_seconds),
    )
    twilio = TwilioClient(timeout=settings.transport_timeout_seconds) if settings.has_twilio else None

    dispatcher = ActionDispatcher(
        accounts,
        GoogleCalendarStore(auth, timezone=resolver.default_timezone),
        resolver,
        email=GmailTransport(auth),
        sms=twilio,
        calls=twilio,
        transport_timeout=settings.transport_timeout_seconds,
        assistant_name=settings.assistant_name,
    )

    llm = build_llm_client(settings) if settings.has_llm else None
    parser = LightweightParser(settings.assistant_name)
    processor = MessageProcessor(
        dispatcher,
        parser=parser,
        fallback=FallbackClassifier(
            llm=llm, base_parser=parser, timeout=settings.fallback_timeout_seconds
        ),
        responder=ChatResponder(
            llm=llm,
            assistant_name=settings.assistant_name,
            timeout=settings.fallback_timeout_seconds,
        ),
        chat_threshold=settings.chat_confidence_threshold,
        sms_threshold=settings.sms_confidence_threshold,
        execute_threshold=settings.execute_confidence_threshold,
    )

    return AppServices(
        processor=processor,
        accounts=accounts,
        sms=twilio,
        webhook=TwilioWebhook(settings.twilio_auth_token),
        settings=settings,
    )


def create_app(services: AppServices) -> FastAPI:
    """Create the FastAPI app around already-built services."""
    app = FastAPI(title="Jarwik API", version="0.1.0")
    app.state.services = services
    config = services.settings

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": _timestamp(),
            "integrations": {
                "llm": config.has_llm,
                "google": config.has_google,
                "twilio": config.has_twilio,
                "sentry": config.has_sentry,
            },
        }

    @app.post("/api/chat")
    async def chat(payload: ChatRequest) -> Any:
        if not payload.message.strip() or not payload.userId.strip():
            raise HTTPException(status_code=400, detail="Message and userId are required")

        set_user_context(payload.userId, channel="chat")
        try:
            result = await services.processor.process_chat(
                payload.message.strip(),
                payload.userId,
                _history_turns(payload.conversationHistory),
            )
        except Exception as e:
            logger.exception(f"Chat processing failed: {e}")
            capture_exception(e)
            return JSONResponse(
                status_code=500,
                content={
                    "message": CHAT_ERROR_REPLY,
                    "action_taken": None,
                    "intent_detected": None,
                    "timestamp": _timestamp(),
                },
            )

        set_tag("intent", result.intent.intent)
        return {
            "message": result.response,
            "action_taken": result.action_taken,
            "intent_detected": result.intent.intent,
            "timestamp": _timestamp(),
        }

    @app.get("/api/agent-webhook")
    def agent_webhook_status() -> dict[str, str]:
        return {"status": "Voice agent webhook endpoint active", "timestamp": _timestamp()}

    @app.post("/api/agent-webhook")
    async def agent_webhook(payload: AgentWebhookRequest) -> Any:
        message = payload.user_message.strip()
        if not message:
            return {
                "response": VOICE_EMPTY_REPLY,
                "action_taken": None,
                "intent_detected": None,
                "timestamp": _timestamp(),
            }

        account_id = (
            payload.metadata.user_id
            if payload.metadata and payload.metadata.user_id
            else config.default_account_id
        )
        set_user_context(account_id, channel="voice")
        logger.info(f"Voice message in conversation {payload.conversation_id or '-'}")

        try:
            result = await services.processor.process_voice(message, account_id)
        except Exception as e:
            logger.exception(f"Voice processing failed: {e}")
            capture_exception(e)
            return JSONResponse(
                status_code=500,
                content={
                    "response": VOICE_ERROR_REPLY,
                    "action_taken": None,
                    "intent_detected": None,
                    "timestamp": _timestamp(),
                },
            )

        set_tag("intent", result.intent.intent)
        return {
            "response": result.response,
            "action_taken": result.action_taken,
            "intent_detected": result.intent.intent,
            "timestamp": _timestamp(),
        }

    @app.get("/api/sms-webhook")
    def sms_webhook_status() -> dict[str, str]:
        return {"status": "Twilio SMS webhook endpoint active", "timestamp": _timestamp()}

    @app.post("/api/sms-webhook")
    async def sms_webhook(request: Request) -> Any:
        form = await request.form()
        params = {key: str(value) for key, value in form.items()}

        try:
            sms = services.webhook.parse_sms(
                params, url=str(request.url), signature_header=request.headers.get(SIGNATURE_HEADER)
            )
        except WebhookVerificationError:
            logger.warning("Rejected SMS webhook with an invalid signature")
            return JSONResponse(status_code=403, content={"error": "Invalid signature"})
        except WebhookPayloadError:
            return JSONResponse(status_code=400, content={"error": "Invalid payload"})

        try:
            account_id = await services.accounts.find_account_by_phone(sms.from_number)
            if account_id is None:
                logger.info("SMS from an unregistered number, sending onboarding help")
                if services.sms is not None:
                    await services.sms.send_sms(
                        sms.from_number,
                        onboarding_message(config.assistant_name, config.public_url, sms.from_number),
                    )
                return {"message": "New user - registration help sent", "status": "unknown_user"}

            set_user_context(account_id, channel="sms")
            result = await services.processor.process_sms(sms.body, account_id)
            set_tag("intent", result.intent.intent)

            sent = False
            if services.sms is not None:
                delivery = await services.sms.send_sms(sms.from_number, result.response)
                sent = delivery.success
                if not sent:
                    logger.error(f"Failed to deliver SMS reply: {delivery.error}")
        except Exception as e:
            logger.exception(f"SMS processing failed: {e}")
            capture_exception(e)
            return JSONResponse(status_code=500, content={"error": "Internal server error"})

        if sent:
            return {
                "message": "SMS processed and response sent",
                "status": "success",
                "action": result.intent.intent,
            }
        return JSONResponse(
            status_code=500,
            content={
                "message": "SMS processed but failed to send response",
                "status": "partial_success",
                "action": result.intent.intent,
            },
        )

    return app


def build_app() -> FastAPI:
    """Application factory for ``uvicorn --factory``."""
    init_sentry(default_settings.sentry_dsn, environment=default_settings.sentry_environment)
    return create_app(build_services(default_settings))
