"""
Notification rendering and delivery.

- Templates with strict parameter matching
- Channel transports (WhatsApp, SMS, email)
- NotificationDispatcher: render, send with timeout, record every attempt
- DeliveryLog: append-only audit trail of send attempts
"""

from notifications.templates import (
    NotificationTemplate,
    DEFAULT_TEMPLATES,
    BAN_NOTICE,
    UNBAN_NOTICE,
    BAN_EXPIRED,
    load_templates,
)
from notifications.channels import (
    ChannelType,
    NotificationChannel,
    WhatsAppChannel,
    SMSChannel,
    EmailChannel,
    WhatsAppCloudChannel,
)
from notifications.delivery_log import DeliveryLog
from notifications.dispatcher import NotificationDispatcher

__all__ = [
    "NotificationTemplate",
    "DEFAULT_TEMPLATES",
    "BAN_NOTICE",
    "UNBAN_NOTICE",
    "BAN_EXPIRED",
    "load_templates",
    "ChannelType",
    "NotificationChannel",
    "WhatsAppChannel",
    "SMSChannel",
    "EmailChannel",
    "WhatsAppCloudChannel",
    "DeliveryLog",
    "NotificationDispatcher",
]
