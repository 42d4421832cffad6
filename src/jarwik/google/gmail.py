"""Gmail sending for Jarwik.

Only outbound mail is supported: the dispatcher sends a plain-text message
on behalf of the connected account.
"""

import asyncio
import base64
import logging
from collections.abc import Callable
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Any, cast

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from jarwik.google.auth import GoogleAuth

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    """Result of sending an email."""

    success: bool
    message_id: str | None = None
    thread_id: str | None = None
    error: str | None = None


def build_message(to: list[str], subject: str, body: str) -> str:
    """Encode a plain-text message as the base64url ``raw`` Gmail expects."""
    message = MIMEText(body)
    message["to"] = ", ".join(to)
    message["subject"] = subject
    return base64.urlsafe_b64encode(message.as_bytes()).decode("utf-8")


class GmailTransport:
    def __init__(
        self,
        auth: GoogleAuth | None = None,
        service_factory: Callable[[Any], Any] | None = None,
    ) -> None:
        self.auth = auth or GoogleAuth()
        self._service_factory = service_factory or (
            lambda creds: build("gmail", "v1", credentials=creds, cache_discovery=False)
        )
        self._services: dict[str, Any] = {}

    def service(self, account_id: str) -> Any | None:
        if account_id not in self._services:
            creds = self.auth.credentials_for(account_id)
            if creds is None:
                return None
            self._services[account_id] = self._service_factory(creds)
        return self._services[account_id]

    async def send_email(
        self, account_id: str, to: list[str], subject: str, body: str
    ) -> SendResult:
        service = self.service(account_id)
        if service is None:
            return SendResult(success=False, error="Gmail not authenticated.")

        if not to:
            return SendResult(success=False, error="At least one recipient is required.")

        send_body = {"raw": build_message(to, subject, body)}

        def do_send() -> dict[str, Any]:
            response = service.users().messages().send(userId="me", body=send_body).execute()
            return cast(dict[str, Any], response)

        try:
            result = await asyncio.get_running_loop().run_in_executor(None, do_send)
        except HttpError as e:
            logger.exception(f"Gmail API error sending email: {e}")
            return SendResult(
                success=False,
                error=f"Gmail API error: {e.reason if hasattr(e, 'reason') else str(e)}",
            )

        message_id = result.get("id", "")
        logger.info(f"Sent email {message_id} to {to}")
        return SendResult(success=True, message_id=message_id, thread_id=result.get("threadId", ""))
