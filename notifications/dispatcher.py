"""
Notification dispatcher.

Renders templates and sends messages over a channel picked from a lookup
table. Sending never raises for ordinary delivery problems: a provider
failure or a timeout comes back as an unsuccessful MessageDeliveryStatus. It
raises only when the caller is at fault (a channel that was never
registered). An unexpected exception from a channel is logged and also
becomes a failed status.

Every send attempt, successful or not, is appended to the delivery log.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Iterable, Mapping, Optional

from notifications.channels import NotificationChannel
from notifications.delivery_log import DeliveryLog
from notifications.templates import DEFAULT_TEMPLATES, NotificationTemplate, get_template
from shared.clock import Clock, SystemClock
from shared.errors import TransportError, UnsupportedChannelError
from shared.models import MessageDeliveryStatus

logger = logging.getLogger("notification_dispatcher")


class NotificationDispatcher:
    """
    Template rendering plus per-channel delivery with a timeout.

    Example:
        dispatcher = NotificationDispatcher([WhatsAppChannel(), SMSChannel()])
        message = dispatcher.render_named("unban-notice", {"customer_name": "Alice"})
        status = dispatcher.send("sms", "60123456789", message, customer_id="cust-001")
    """

    def __init__(
        self,
        channels: Iterable[NotificationChannel],
        templates: Optional[Mapping[str, NotificationTemplate]] = None,
        delivery_log: Optional[DeliveryLog] = None,
        timeout_seconds: float = 10.0,
        clock: Optional[Clock] = None,
        max_workers: int = 4,
    ):
        """
        Args:
            channels: One transport per channel type; a later one replaces an
                earlier one of the same type
            templates: Loaded templates (defaults to the built-in set)
            delivery_log: Where send attempts are recorded
            timeout_seconds: Limit for a single delivery attempt
        """
        self._channels: dict[str, NotificationChannel] = {}
        for channel in channels:
            self.register_channel(channel)
        self.templates = dict(templates if templates is not None else DEFAULT_TEMPLATES)
        self.delivery_log = delivery_log if delivery_log is not None else DeliveryLog()
        self.timeout_seconds = timeout_seconds
        self.clock = clock or SystemClock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="channel-send",
        )

    def register_channel(self, channel: NotificationChannel) -> None:
        if not channel.channel_type:
            raise ValueError(f"{type(channel).__name__} has no channel_type")
        self._channels[channel.channel_type] = channel

    @property
    def supported_channels(self) -> list[str]:
        return sorted(self._channels)

    def get_channel(self, channel: str) -> NotificationChannel:
        """
        Raises:
            UnsupportedChannelError: If no transport is registered for `channel`
        """
        transport = self._channels.get(channel)
        if transport is None:
            raise UnsupportedChannelError(
                f"Unknown channel: {channel} (supported: {', '.join(self.supported_channels)})"
            )
        return transport

    # =========================================================================
    # Rendering
    # =========================================================================

    def render(self, template: NotificationTemplate, parameters: Mapping[str, Any]) -> str:
        """
        Raises:
            MissingParameterError, UnknownParameterError
        """
        return template.render(parameters)

    def render_named(self, template_name: str, parameters: Mapping[str, Any]) -> str:
        """
        Raises:
            TemplateNotFoundError, MissingParameterError, UnknownParameterError
        """
        return self.render(get_template(self.templates, template_name), parameters)

    # =========================================================================
    # Sending
    # =========================================================================

    def send(
        self,
        channel: str,
        recipient: str,
        message: str,
        customer_id: Optional[str] = None,
    ) -> MessageDeliveryStatus:
        """
        Attempt one delivery and record the outcome.

        Returns:
            The delivery status; is_successful is False on transport failure
            or timeout

        Raises:
            UnsupportedChannelError: If `channel` is not registered
        """
        transport = self.get_channel(channel)
        future = self._executor.submit(transport.deliver, recipient, message)

        try:
            message_id = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            error = f"Timed out after {self.timeout_seconds:g}s"
            status = self._failed(channel, recipient, customer_id, error)
        except TransportError as e:
            status = self._failed(channel, recipient, customer_id, str(e))
        except Exception as e:
            logger.exception(f"Channel {channel} raised unexpectedly")
            status = self._failed(
                channel, recipient, customer_id, f"Unexpected {type(e).__name__}: {e}"
            )
        else:
            status = MessageDeliveryStatus(
                is_successful=True,
                channel=channel,
                recipient=recipient,
                customer_id=customer_id,
                message_id=message_id,
                sent_at=self.clock.now(),
            )
            logger.info(f"Delivered via {channel} to {recipient} ({message_id})")

        self.delivery_log.append(status)
        return status

    def _failed(
        self,
        channel: str,
        recipient: str,
        customer_id: Optional[str],
        error: str,
    ) -> MessageDeliveryStatus:
        logger.error(f"Delivery via {channel} to {recipient} failed: {error}")
        return MessageDeliveryStatus(
            is_successful=False,
            channel=channel,
            recipient=recipient,
            customer_id=customer_id,
            error_message=error,
            sent_at=self.clock.now(),
        )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
