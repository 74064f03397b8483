# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Best-effort push dispatch for inbox entries.

The inbox entry is the durable notice; push is an extra nudge. The
dispatcher refuses self notices and read entries, suppresses a repeat of
the same entry to the same recipient within a cooldown window, looks up
the recipient's device tokens and hands the notification to the channel.
"""

import logging
import time
from typing import Callable, Protocol

from attendlink.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    NotificationPayload,
)
from attendlink.models import InboxEntry, Role, normalize_id
from attendlink.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class PushTokenSource(Protocol):
    """Anything that can find the device tokens of an account."""

    async def push_tokens_for(self, identity_key: str, role: Role) -> list[str]:
        """Return device tokens for the account keyed by ``identity_key``."""
        ...


class PushDispatcher:
    """Sends push notifications for unread inbox entries."""

    def __init__(
        self,
        channel: BaseChannel,
        token_source: PushTokenSource,
        cooldown_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            channel: Delivery channel.
            token_source: Device token lookup.
            cooldown_seconds: Repeat suppression window.
            clock: Monotonic clock, injectable for tests.
        """
        self._channel = channel
        self._token_source = token_source
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._recently_sent: dict[str, float] = {}

    def _skipped(self, reason: str) -> ChannelResult:
        return ChannelResult(
            channel=ChannelType.PUSH,
            status=DeliveryStatus.SKIPPED,
            error_message=reason,
            sent_at=utc_now(),
        )

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, sent_at in self._recently_sent.items()
            if now - sent_at >= self._cooldown_seconds
        ]
        for key in expired:
            del self._recently_sent[key]

    async def dispatch(
        self,
        entry: InboxEntry,
        recipient_id: str,
        recipient_role: Role,
    ) -> ChannelResult:
        """Push one inbox entry to its recipient.

        Args:
            entry: The entry that was appended to the recipient's inbox.
            recipient_id: Recipient identity key (canonical or internal id).
            recipient_role: Recipient role.

        Returns:
            The channel result; SKIPPED for refused or suppressed entries.
        """
        if not entry.should_push:
            logger.debug("Not pushing entry %s (self notice, read or skip-push)", entry.id)
            return self._skipped("Entry is not pushable")

        now = self._clock()
        self._prune(now)

        dedup_key = f"{entry.id}_{normalize_id(recipient_id)}"
        if dedup_key in self._recently_sent:
            logger.debug("Push for %s already sent within cooldown", dedup_key)
            return self._skipped("Already notified recently")

        tokens = await self._token_source.push_tokens_for(recipient_id, recipient_role)
        if not tokens:
            logger.debug("No push tokens for %s %s", recipient_role.value, recipient_id)
            return self._skipped("No push tokens available")

        payload = NotificationPayload(
            notification_type=entry.type_name,
            title=entry.title,
            message=entry.message,
            recipient_id=recipient_id,
            entry_id=entry.id,
            link_key=entry.link_key,
            data={
                "status": entry.status.value,
                "role": recipient_role.value,
            },
            push_tokens=tokens,
        )
        result = await self._channel.send(payload)

        if result.succeeded:
            self._recently_sent[dedup_key] = now
            logger.info("Push sent: %s %s - %s", recipient_role.value, recipient_id, entry.title)
        elif result.status == DeliveryStatus.FAILED:
            logger.warning(
                "Push failed for %s %s: %s",
                recipient_role.value,
                recipient_id,
                result.error_message,
            )
        return result
