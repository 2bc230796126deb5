"""
Notification senders

The rest of the app only talks to the ``NotificationSender`` interface.
``get_sender()`` picks the provider-backed sender when credentials are set
and otherwise a sender that only logs, so local runs never reach the network.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Sequence, Union

import httpx
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

import settings
from errors import NotificationError

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
TIMEOUT_SECONDS = 20.0

Recipients = Union[str, Sequence[str]]


def _as_list(value: Optional[Recipients]) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    return list(value)


class NotificationSender:
    def send_email(
        self,
        to: Recipients,
        subject: str,
        text: str,
        html: Optional[str] = None,
        cc: Optional[Recipients] = None,
        bcc: Optional[Recipients] = None,
    ) -> None:
        raise NotImplementedError

    def schedule_sms(self, to: str, body: str, send_at: Optional[datetime] = None) -> str:
        """Queue an SMS and return the provider's message id."""
        raise NotImplementedError

    def cancel_sms(self, message_id: str) -> None:
        raise NotImplementedError


class LoggingNotificationSender(NotificationSender):
    """Stand-in used when no provider is configured."""

    def __init__(self):
        self.outbox: List[dict] = []

    def send_email(self, to, subject, text, html=None, cc=None, bcc=None) -> None:
        message = {"channel": "email", "to": _as_list(to), "subject": subject, "text": text, "html": html, "cc": _as_list(cc), "bcc": _as_list(bcc)}
        self.outbox.append(message)
        logger.info("[email not sent] to=%s subject=%r", message["to"], subject)

    def schedule_sms(self, to, body, send_at=None) -> str:
        message_id = f"log-{uuid.uuid4().hex}"
        self.outbox.append({"channel": "sms", "id": message_id, "to": to, "body": body, "sendAt": send_at, "status": "scheduled"})
        logger.info("[sms not sent] to=%s send_at=%s", to, send_at)
        return message_id

    def cancel_sms(self, message_id) -> None:
        for message in self.outbox:
            if message.get("id") == message_id:
                message["status"] = "canceled"
        logger.info("[sms not sent] cancel %s", message_id)


class ProviderNotificationSender(NotificationSender):
    """E-mail through Resend over httpx, SMS through the Twilio client."""

    def __init__(self, client: Optional[httpx.Client] = None, twilio: Optional[TwilioClient] = None):
        self.client = client or httpx.Client(timeout=TIMEOUT_SECONDS)
        self.twilio = twilio

    def _post(self, url: str, **kwargs) -> dict:
        try:
            response = self.client.post(url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Notification provider request failed: {e}") from e
        return response.json() if response.content else {}

    def send_email(self, to, subject, text, html=None, cc=None, bcc=None) -> None:
        if not settings.RESEND_API_KEY:
            raise NotificationError("E-mail provider is not configured")
        payload = {"from": settings.EMAIL_FROM, "to": _as_list(to), "subject": subject, "text": text}
        if html:
            payload["html"] = html
        if cc:
            payload["cc"] = _as_list(cc)
        if bcc:
            payload["bcc"] = _as_list(bcc)
        self._post(RESEND_SEND_URL, json=payload, headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"})
        logger.info("Email sent to %s", payload["to"])

    def _twilio(self) -> TwilioClient:
        if self.twilio is None:
            if not settings.TWILIO_ACCOUNT_SID:
                raise NotificationError("SMS provider is not configured")
            self.twilio = TwilioClient(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        return self.twilio

    def schedule_sms(self, to, body, send_at=None) -> str:
        kwargs = {"to": to, "body": body}
        if settings.TWILIO_MESSAGING_SERVICE_SID:
            kwargs["messaging_service_sid"] = settings.TWILIO_MESSAGING_SERVICE_SID
        elif send_at is not None:
            # Twilio only schedules through a messaging service
            raise NotificationError("Scheduled SMS needs TWILIO_MESSAGING_SERVICE_SID")
        else:
            kwargs["from_"] = settings.TWILIO_PHONE_NUMBER
        if send_at is not None:
            kwargs["schedule_type"] = "fixed"
            kwargs["send_at"] = send_at
        try:
            message = self._twilio().messages.create(**kwargs)
        except TwilioException as e:
            raise NotificationError(f"SMS provider request failed: {e}") from e
        logger.info("SMS %s scheduled for %s", message.sid, send_at)
        return message.sid

    def cancel_sms(self, message_id) -> None:
        try:
            self._twilio().messages(message_id).update(status="canceled")
        except TwilioException as e:
            raise NotificationError(f"SMS provider request failed: {e}") from e
        logger.info("SMS %s canceled", message_id)


_sender: Optional[NotificationSender] = None


def get_sender() -> NotificationSender:
    """FastAPI dependency returning the process-wide sender."""
    global _sender
    if _sender is None:
        if settings.RESEND_API_KEY or settings.TWILIO_ACCOUNT_SID:
            _sender = ProviderNotificationSender()
        else:
            _sender = LoggingNotificationSender()
    return _sender
