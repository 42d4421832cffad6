"""Twilio REST client for outbound SMS and voice calls.

Talks to the Twilio 2010-04-01 REST API directly over httpx. Calls speak a
single message through an inline TwiML ``<Say>`` verb, so no callback URL is
needed.

See: https://www.twilio.com/docs/usage/api
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from xml.sax.saxutils import escape

import httpx

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"

DEFAULT_TIMEOUT = 20.0

# SMS bodies longer than this are split by Twilio into many segments
MAX_SMS_LENGTH = 1600

SMS_OK_STATUSES = {"queued", "accepted", "sending", "sent", "delivered"}
CALL_OK_STATUSES = {"queued", "initiated", "ringing", "in-progress"}


@dataclass
class SendResult:
    """Result of an SMS or call request."""

    success: bool
    sid: str | None = None
    status: str | None = None
    error_code: str | None = None
    error: str | None = None
    sent_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def build_say_twiml(message: str, voice: str = "alice") -> str:
    return f'<Response><Say voice="{voice}">{escape(message)}</Say></Response>'


class TwilioClient:
    """Sends SMS messages and places calls from the configured Twilio number.

    Args:
        account_sid: Twilio Account SID (also the basic-auth username)
        auth_token: Twilio auth token
        from_number: The Twilio phone number messages are sent from
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        from jarwik.config import settings

        self.account_sid = account_sid or settings.twilio_account_sid
        self.auth_token = auth_token or settings.twilio_auth_token
        self.from_number = from_number or settings.twilio_phone_number
        self.timeout = timeout or settings.transport_timeout_seconds or DEFAULT_TIMEOUT

        self._base_url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}"
        self._client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                auth=(self.account_sid, self.auth_token),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send_sms(self, to: str, body: str) -> SendResult:
        if len(body) > MAX_SMS_LENGTH:
            body = body[: MAX_SMS_LENGTH - 3] + "..."

        result = await self._post(
            "Messages.json", {"To": to, "From": self.from_number, "Body": body}, SMS_OK_STATUSES
        )
        if result.success:
            logger.info(f"SMS {result.sid} queued to {to}")
        return result

    async def make_call(self, to: str, message: str) -> SendResult:
        result = await self._post(
            "Calls.json",
            {"To": to, "From": self.from_number, "Twiml": build_say_twiml(message)},
            CALL_OK_STATUSES,
        )
        if result.success:
            logger.info(f"Call {result.sid} placed to {to}")
        return result

    async def _post(self, resource: str, data: dict[str, str], ok_statuses: set[str]) -> SendResult:
        if not self.is_configured:
            return SendResult(success=False, error="Twilio is not configured.")

        client = await self._get_client()

        try:
            response = await client.post(f"{self._base_url}/{resource}", data=data)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error_data = {}
            try:
                error_data = e.response.json()
            except ValueError:
                pass
            logger.error(f"Twilio API error: {error_data or e.response.text}")
            return SendResult(
                success=False,
                error_code=str(error_data.get("code", e.response.status_code)),
                error=error_data.get("message", e.response.text),
            )
        except httpx.HTTPError as e:
            logger.exception(f"Twilio request failed: {e}")
            return SendResult(success=False, error=str(e) or type(e).__name__)

        payload = response.json()
        status = payload.get("status")
        if status not in ok_statuses:
            return SendResult(
                success=False,
                sid=payload.get("sid"),
                status=status,
                error=f"Unexpected status: {status}",
            )
        return SendResult(success=True, sid=payload.get("sid"), status=status)
