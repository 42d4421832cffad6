"""Twilio inbound SMS webhook handling.

Twilio posts incoming messages as form data and signs each request with
HMAC-SHA1 over the full request URL followed by every POST parameter
(sorted by name, key and value concatenated), keyed by the auth token.
The base64 digest arrives in the X-Twilio-Signature header.

See: https://www.twilio.com/docs/usage/webhooks/webhooks-security
"""

import base64
import hashlib
import hmac
import logging
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Twilio-Signature"


class WebhookVerificationError(Exception):
    """Raised when a webhook request fails signature verification."""


class WebhookPayloadError(Exception):
    """Raised when a webhook payload is missing required fields."""


@dataclass
class IncomingSms:
    """An inbound SMS as delivered by Twilio."""

    from_number: str
    body: str
    to_number: str | None = None
    message_sid: str | None = None
    account_sid: str | None = None
    num_media: int = 0


def compute_signature(auth_token: str, url: str, params: Mapping[str, str]) -> str:
    data = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


class TwilioWebhook:
    def __init__(self, auth_token: str | None = None):
        from jarwik.config import settings

        self.auth_token = auth_token if auth_token is not None else settings.twilio_auth_token

    def verify_signature(
        self, url: str, params: Mapping[str, str], signature_header: str | None
    ) -> bool:
        if not self.auth_token:
            logger.warning("No Twilio auth token configured, skipping signature verification")
            return True

        if not signature_header:
            logger.warning("No signature header provided")
            return False

        expected = compute_signature(self.auth_token, url, params)
        return hmac.compare_digest(expected, signature_header)

    def parse_sms(
        self,
        params: Mapping[str, str],
        url: str | None = None,
        signature_header: str | None = None,
    ) -> IncomingSms:
        """Validate and parse an inbound SMS form payload.

        Raises:
            WebhookVerificationError: If a URL is given and the signature is invalid
            WebhookPayloadError: If From or Body is missing
        """
        if url is not None and not self.verify_signature(url, params, signature_header):
            raise WebhookVerificationError("Invalid signature")

        from_number = (params.get("From") or "").strip()
        body = (params.get("Body") or "").strip()
        if not from_number or not body:
            raise WebhookPayloadError("Invalid payload")

        try:
            num_media = int(params.get("NumMedia") or 0)
        except ValueError:
            num_media = 0

        return IncomingSms(
            from_number=from_number,
            body=body,
            to_number=params.get("To"),
            message_sid=params.get("MessageSid"),
            account_sid=params.get("AccountSid"),
            num_media=num_media,
        )
