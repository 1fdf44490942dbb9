"""
Notification channels.

A channel is one transport: it takes a recipient and a rendered message and
either returns the provider's message id or raises TransportError. The
dispatcher owns everything else (timeouts, delivery statuses, the log).

Implementations:
- WhatsAppChannel, SMSChannel, EmailChannel: mock transports that log the
  send and track it for test assertions, with simulated failures and latency
- WhatsAppCloudChannel: a real transport posting to the WhatsApp Cloud API

Design decisions:
- Channels are selected from a lookup table keyed by channel_type, never by
  branching on channel name strings in calling code
- Mock channels can simulate failures (fail_rate) and slow providers (delay)
"""

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from uuid import uuid4

import httpx

from shared.errors import TransportError

logger = logging.getLogger("notifications")


class ChannelType:
    """Channel identifiers."""
    WHATSAPP = "whatsapp"
    SMS = "sms"
    EMAIL = "email"


@dataclass
class SentMessage:
    """A message a mock channel accepted."""
    recipient: str
    body: str
    message_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def format_whatsapp_number(phone: str) -> str:
    """WhatsApp expects bare digits with the country code and no '+'."""
    return "".join(ch for ch in phone if ch.isdigit())


class NotificationChannel:
    """
    Base class for transports.

    Subclasses set `channel_type` and implement `deliver`.
    """

    channel_type: str = ""

    def deliver(self, recipient: str, message: str) -> str:
        """
        Deliver one message.

        Returns:
            The provider-assigned message id

        Raises:
            TransportError: If the provider rejected or never received it
        """
        raise NotImplementedError


# =============================================================================
# Mock channels
# =============================================================================

class MockChannel(NotificationChannel):
    """
    Shared behaviour for the mock transports.

    Logs each send, keeps sent messages for assertions, and can simulate a
    failing or slow provider.
    """

    def __init__(self, fail_rate: float = 0.0, delay: float = 0.0):
        """
        Args:
            fail_rate: Probability of send failure (0.0 to 1.0), for testing.
            delay: Seconds each send takes, for timeout testing.
        """
        self.fail_rate = fail_rate
        self.delay = delay
        self.sent_messages: list[SentMessage] = []
        self.failed_attempts = 0

    def _format_recipient(self, recipient: str) -> str:
        return recipient

    def deliver(self, recipient: str, message: str) -> str:
        if self.delay:
            time.sleep(self.delay)

        to = self._format_recipient(recipient)
        label = self.channel_type.upper()
        if random.random() < self.fail_rate:
            self.failed_attempts += 1
            logger.error(f"[{label} FAILED] To: {to}")
            raise TransportError(f"Simulated {self.channel_type} delivery failure")

        message_id = f"{self.channel_type}-{uuid4().hex[:12]}"
        self.sent_messages.append(SentMessage(recipient=to, body=message, message_id=message_id))
        logger.info(f"[{label}] To: {to} | Message: {message}")
        return message_id

    def get_sent_count(self) -> int:
        return len(self.sent_messages)

    def find_message_to(self, recipient: str) -> Optional[SentMessage]:
        """Find the first message sent to a specific recipient."""
        to = self._format_recipient(recipient)
        for msg in self.sent_messages:
            if msg.recipient == to:
                return msg
        return None

    def clear_history(self):
        self.sent_messages.clear()
        self.failed_attempts = 0


class WhatsAppChannel(MockChannel):
    """Mock WhatsApp transport, the default channel for ban notices."""

    channel_type = ChannelType.WHATSAPP

    def _format_recipient(self, recipient: str) -> str:
        return format_whatsapp_number(recipient)


class SMSChannel(MockChannel):
    """Mock SMS channel."""

    channel_type = ChannelType.SMS

    # SMS typically have character limits
    MAX_LENGTH = 160

    def deliver(self, recipient: str, message: str) -> str:
        if len(message) > self.MAX_LENGTH:
            logger.warning(
                f"[SMS] Message length ({len(message)}) exceeds {self.MAX_LENGTH} chars, "
                "may be split into multiple messages"
            )
        return super().deliver(recipient, message)


class EmailChannel(MockChannel):
    """Mock email channel. The subject line is fixed per channel instance."""

    channel_type = ChannelType.EMAIL

    def __init__(
        self,
        fail_rate: float = 0.0,
        delay: float = 0.0,
        subject: str = "Your reservation account",
        from_addr: str = "no-reply@fnbreservation.com",
    ):
        super().__init__(fail_rate=fail_rate, delay=delay)
        self.subject = subject
        self.from_addr = from_addr

    def deliver(self, recipient: str, message: str) -> str:
        if "@" not in recipient:
            raise TransportError(f"Not an email address: {recipient}")
        logger.debug(f"[EMAIL] From: {self.from_addr} | Subject: {self.subject}")
        return super().deliver(recipient, message)


# =============================================================================
# WhatsApp Cloud API
# =============================================================================

class WhatsAppCloudChannel(NotificationChannel):
    """
    WhatsApp transport backed by the Cloud API (graph.facebook.com).

    Sends plain text messages, or pre-approved template messages, from the
    configured business phone number.
    """

    channel_type = ChannelType.WHATSAPP

    def __init__(
        self,
        token: str,
        phone_number_id: str,
        base_url: str = "https://graph.facebook.com/v22.0",
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        if not token:
            raise ValueError("WhatsApp API token is not configured")
        if not phone_number_id:
            raise ValueError("WhatsApp phone number id is not configured")
        self.phone_number_id = phone_number_id
        self.client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
        )

    def deliver(self, recipient: str, message: str) -> str:
        to = format_whatsapp_number(recipient)
        return self._post(to, {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"preview_url": False, "body": message},
        })

    def send_template(
        self,
        recipient: str,
        template_name: str,
        parameters: Sequence[Any] = (),
        language_code: str = "en_US",
    ) -> str:
        """
        Send a pre-approved WhatsApp template message.

        Parameters fill the template body placeholders in order.

        Raises:
            TransportError: If the provider rejected or never received it
        """
        to = format_whatsapp_number(recipient)
        components = []
        if parameters:
            components.append({
                "type": "body",
                "parameters": [{"type": "text", "text": str(p)} for p in parameters],
            })
        logger.info(f"Sending WhatsApp template '{template_name}' to {to}")
        return self._post(to, {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "template",
            "template": {
                "name": template_name,
                "language": {"code": language_code},
                "components": components,
            },
        })

    def _post(self, to: str, payload: dict[str, Any]) -> str:
        try:
            response = self.client.post(f"/{self.phone_number_id}/messages", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Error sending WhatsApp message to {to}: {e}")
            raise TransportError(f"WhatsApp request failed: {e}") from e

        if response.is_error:
            logger.error(
                f"Failed to send WhatsApp message. Status: {response.status_code}, Error: {response.text}"
            )
            raise TransportError(f"WhatsApp API returned {response.status_code}: {response.text}")

        try:
            message_id = response.json()["messages"][0]["id"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise TransportError(f"Unexpected WhatsApp API response: {response.text}") from e

        logger.info(f"WhatsApp message sent to {to} ({message_id})")
        return message_id

    def close(self) -> None:
        self.client.close()
