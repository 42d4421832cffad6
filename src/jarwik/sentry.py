"""Sentry error tracking for Jarwik.

Usage:
    from jarwik.sentry import init_sentry
    init_sentry(settings.sentry_dsn, environment=settings.sentry_environment)

    # Inside request handlers, tag events with the account
    from jarwik.sentry import set_user_context
    set_user_context(account_id, channel="sms")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, cast

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

if TYPE_CHECKING:
    from sentry_sdk._types import Event, Hint

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = {
    "token",
    "api_key",
    "apikey",
    "secret",
    "password",
    "authorization",
    "bearer",
    "auth_token",
    "openai_api_key",
    "gemini_api_key",
    "anthropic_api_key",
    "twilio_auth_token",
    "sentry_dsn",
    "google_client_secret",
    "x-twilio-signature",
}

# Twilio form fields and our own payloads carry end-user phone numbers
PHONE_KEYS = {"from", "to", "phone", "phone_number", "phonenumber"}

_initialized = False


def init_sentry(
    dsn: str | None,
    environment: str = "production",
    release: str | None = None,
    traces_sample_rate: float = 0.1,
) -> bool:
    """Initialize the Sentry SDK. An empty DSN disables tracking.

    Returns:
        True if Sentry was initialized.
    """
    global _initialized

    if _initialized:
        logger.debug("Sentry already initialized")
        return True

    if not dsn:
        logger.info("No SENTRY_DSN configured, error tracking disabled")
        return False

    if release is None:
        from importlib.metadata import PackageNotFoundError, version

        try:
            release = f"jarwik@{version('jarwik')}"
        except PackageNotFoundError:
            release = "jarwik@unknown"

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        traces_sample_rate=traces_sample_rate,
        integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
        send_default_pii=False,
        attach_stacktrace=True,
        before_send=_before_send,
    )

    _initialized = True
    logger.info(f"Sentry initialized: environment={environment}, release={release}")
    return True


def _before_send(event: Event, hint: Hint) -> Event | None:
    if "exc_info" in hint:
        exc_type, _, _ = hint["exc_info"]
        # Transport timeouts already produce a user-facing reply
        if exc_type.__name__ in ("TimeoutError", "ConnectionError"):
            return None

    if "request" in event:
        scrub(cast(dict[str, Any], event["request"]))

    if "breadcrumbs" in event:
        breadcrumbs = cast(dict[str, Any], event["breadcrumbs"])
        for breadcrumb in breadcrumbs.get("values", []):
            if "data" in breadcrumb:
                scrub(breadcrumb["data"])

    return event


def scrub(data: dict[str, Any]) -> None:
    """Redact secrets and phone numbers in place, recursing into nested dicts."""
    for key in list(data.keys()):
        if key.lower() in SENSITIVE_KEYS or key.lower() in PHONE_KEYS:
            data[key] = "[REDACTED]"
        elif isinstance(data[key], dict):
            scrub(data[key])


def set_user_context(account_id: str | None = None, channel: str | None = None) -> None:
    """Tag subsequent events with the account and the channel (chat, voice, sms)."""
    if not _initialized:
        return

    if account_id is not None:
        sentry_sdk.set_user({"id": account_id})
    if channel:
        sentry_sdk.set_tag("channel", channel)


def set_tag(key: str, value: str) -> None:
    if not _initialized:
        return

    sentry_sdk.set_tag(key, value)


def capture_exception(exception: BaseException | None = None) -> str | None:
    if not _initialized:
        return None

    return sentry_sdk.capture_exception(exception)


def flush(timeout: float = 2.0) -> None:
    if not _initialized:
        return

    sentry_sdk.flush(timeout=timeout)


def is_enabled() -> bool:
    return _initialized
