from jarwik.twilio.client import SendResult, TwilioClient
from jarwik.twilio.webhook import (
    IncomingSms,
    TwilioWebhook,
    WebhookPayloadError,
    WebhookVerificationError,
)

__all__ = [
    "IncomingSms",
    "SendResult",
    "TwilioClient",
    "TwilioWebhook",
    "WebhookPayloadError",
    "WebhookVerificationError",
]
