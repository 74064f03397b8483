# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push notification infrastructure.

Components:
- PushChannel: FCM HTTP v1 delivery
- PushDispatcher: entry filtering, cooldown de-duplication and token lookup
"""

from attendlink.infrastructure.notifications.channels import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    NotificationPayload,
    PushChannel,
)
from attendlink.infrastructure.notifications.dispatcher import PushDispatcher, PushTokenSource

__all__ = [
    "BaseChannel",
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "NotificationPayload",
    "PushChannel",
    "PushDispatcher",
    "PushTokenSource",
]
