"""Tests for Sentry error tracking integration."""

from unittest.mock import patch

import pytest

import jarwik.sentry
from jarwik.sentry import (
    _before_send,
    capture_exception,
    flush,
    init_sentry,
    is_enabled,
    scrub,
    set_user_context,
)


@pytest.fixture(autouse=True)
def reset_sentry():
    jarwik.sentry._initialized = False
    yield
    jarwik.sentry._initialized = False


class TestInit:
    def test_empty_dsn_disables_tracking(self) -> None:
        assert init_sentry("") is False
        assert is_enabled() is False

    def test_init_with_dsn(self) -> None:
        with patch("jarwik.sentry.sentry_sdk.init") as mock_init:
            assert init_sentry("https://key@sentry.example/1", release="jarwik@test") is True

        kwargs = mock_init.call_args.kwargs
        assert kwargs["release"] == "jarwik@test"
        assert kwargs["send_default_pii"] is False
        assert kwargs["before_send"] is _before_send
        assert is_enabled() is True

    def test_init_is_idempotent(self) -> None:
        with patch("jarwik.sentry.sentry_sdk.init") as mock_init:
            init_sentry("https://key@sentry.example/1", release="jarwik@test")
            init_sentry("https://key@sentry.example/1", release="jarwik@test")

        assert mock_init.call_count == 1


class TestDisabledHelpers:
    def test_helpers_are_noops(self) -> None:
        with patch("jarwik.sentry.sentry_sdk") as mock_sdk:
            set_user_context("user-1", channel="sms")
            assert capture_exception(RuntimeError("boom")) is None
            flush()

        mock_sdk.set_user.assert_not_called()
        mock_sdk.capture_exception.assert_not_called()
        mock_sdk.flush.assert_not_called()

    def test_user_context_when_enabled(self) -> None:
        jarwik.sentry._initialized = True
        with patch("jarwik.sentry.sentry_sdk") as mock_sdk:
            set_user_context("user-1", channel="voice")

        mock_sdk.set_user.assert_called_once_with({"id": "user-1"})
        mock_sdk.set_tag.assert_called_once_with("channel", "voice")


class TestScrubbing:
    def test_redacts_secrets_and_phone_numbers(self) -> None:
        data = {
            "From": "+15551234567",
            "Body": "remind me",
            "headers": {"X-Twilio-Signature": "abc", "Accept": "*/*"},
            "twilio_auth_token": "secret",
        }

        scrub(data)

        assert data == {
            "From": "[REDACTED]",
            "Body": "remind me",
            "headers": {"X-Twilio-Signature": "[REDACTED]", "Accept": "*/*"},
            "twilio_auth_token": "[REDACTED]",
        }

    def test_drops_timeout_errors(self) -> None:
        hint = {"exc_info": (TimeoutError, TimeoutError(), None)}

        assert _before_send({"message": "x"}, hint) is None

    def test_scrubs_request_and_breadcrumbs(self) -> None:
        event = {
            "request": {"data": {"to": "+15550001111"}},
            "breadcrumbs": {"values": [{"data": {"api_key": "k", "path": "/api/chat"}}]},
        }

        result = _before_send(event, {})

        assert result["request"]["data"]["to"] == "[REDACTED]"
        assert result["breadcrumbs"]["values"][0]["data"] == {
            "api_key": "[REDACTED]",
            "path": "/api/chat",
        }
