# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the push channel and dispatcher."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from attendlink.core.config.settings import PushSettings
from attendlink.infrastructure.notifications import (
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    NotificationPayload,
    PushChannel,
    PushDispatcher,
)
from attendlink.models import EntryStatus, InboxEntry, InboxEntryType, Role

VALID_TOKEN = "f" * 152


def _entry(**overrides) -> InboxEntry:
    data = {
        "id": "1001-00001-2024-00042_request_1",
        "type": InboxEntryType.LINK_REQUEST,
        "title": "Parent Link Request",
        "message": "Maria Santos requests to link.",
        "created_at": 1,
        "link_key": "1001-00001-2024-00042",
    }
    data.update(overrides)
    return InboxEntry(**data)


def _sent() -> ChannelResult:
    return ChannelResult(channel=ChannelType.PUSH, status=DeliveryStatus.SENT, message_id="m1")


@pytest.fixture
def channel():
    """Create a mock push channel."""
    mock = MagicMock()
    mock.send = AsyncMock(return_value=_sent())
    return mock


@pytest.fixture
def token_source():
    """Create a mock token source."""
    mock = MagicMock()
    mock.push_tokens_for = AsyncMock(return_value=[VALID_TOKEN])
    return mock


class TestPushDispatcher:
    """Tests for PushDispatcher."""

    @pytest.mark.asyncio
    async def test_sends_unread_entry(self, channel, token_source) -> None:
        """Test an unread entry is handed to the channel with its tokens."""
        dispatcher = PushDispatcher(channel, token_source)

        result = await dispatcher.dispatch(_entry(), "2024-00042", Role.STUDENT)

        assert result.succeeded
        payload = channel.send.await_args.args[0]
        assert payload.push_tokens == [VALID_TOKEN]
        assert payload.notification_type == "link_request"
        assert payload.data["role"] == "student"

    @pytest.mark.asyncio
    async def test_refuses_self_and_read_entries(self, channel, token_source) -> None:
        """Test self notices and read entries never reach the channel."""
        dispatcher = PushDispatcher(channel, token_source)

        self_notice = await dispatcher.dispatch(
            _entry(type=InboxEntryType.LINK_REQUEST_SELF), "1001-00001", Role.PARENT
        )
        read = await dispatcher.dispatch(_entry(status=EntryStatus.READ), "2024-00042", Role.STUDENT)

        assert self_notice.status == DeliveryStatus.SKIPPED
        assert read.status == DeliveryStatus.SKIPPED
        channel.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cooldown_suppresses_repeat_across_id_forms(self, channel, token_source) -> None:
        """Test the same entry to the same recipient is sent once per window."""
        now = [1000.0]
        dispatcher = PushDispatcher(channel, token_source, cooldown_seconds=300, clock=lambda: now[0])

        await dispatcher.dispatch(_entry(), "2024-00042", Role.STUDENT)
        repeat = await dispatcher.dispatch(_entry(), "202400042", Role.STUDENT)
        now[0] += 301
        later = await dispatcher.dispatch(_entry(), "2024-00042", Role.STUDENT)

        assert repeat.status == DeliveryStatus.SKIPPED
        assert later.succeeded
        assert channel.send.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_send_is_not_remembered(self, channel, token_source) -> None:
        """Test a failed send can be retried inside the window."""
        channel.send.side_effect = [
            ChannelResult(channel=ChannelType.PUSH, status=DeliveryStatus.FAILED, error_message="503"),
            _sent(),
        ]
        dispatcher = PushDispatcher(channel, token_source)

        first = await dispatcher.dispatch(_entry(), "2024-00042", Role.STUDENT)
        second = await dispatcher.dispatch(_entry(), "2024-00042", Role.STUDENT)

        assert first.status == DeliveryStatus.FAILED
        assert second.succeeded

    @pytest.mark.asyncio
    async def test_no_tokens_skips(self, channel, token_source) -> None:
        """Test recipients without devices are skipped."""
        token_source.push_tokens_for.return_value = []
        dispatcher = PushDispatcher(channel, token_source)

        result = await dispatcher.dispatch(_entry(), "2024-00042", Role.STUDENT)

        assert result.status == DeliveryStatus.SKIPPED
        channel.send.assert_not_awaited()


class TestPushChannel:
    """Tests for the FCM push channel."""

    def _payload(self, tokens: list[str]) -> NotificationPayload:
        return NotificationPayload(
            notification_type="link_request",
            title="Parent Link Request",
            message="Maria Santos requests to link.",
            recipient_id="2024-00042",
            entry_id="e1",
            link_key="1001-00001-2024-00042",
            data={"status": "unread"},
            push_tokens=tokens,
        )

    def test_token_validation(self) -> None:
        """Test FCM token length bounds."""
        assert PushChannel.is_valid_token(VALID_TOKEN) is True
        assert PushChannel.is_valid_token("short") is False
        assert PushChannel.is_valid_token(None) is False

    @pytest.mark.asyncio
    async def test_disabled_channel_skips(self) -> None:
        """Test a disabled channel skips without network access."""
        channel = PushChannel(PushSettings(enabled=False))

        result = await channel.send(self._payload([VALID_TOKEN]))

        assert result.status == DeliveryStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_missing_credentials_skips(self) -> None:
        """Test an unconfigured channel skips."""
        channel = PushChannel(PushSettings(enabled=True, firebase_credentials_path=None, firebase_project_id=None))

        result = await channel.send(self._payload([VALID_TOKEN]))

        assert result.status == DeliveryStatus.SKIPPED
        assert "not configured" in (result.error_message or "")

    def test_fcm_message_shape(self) -> None:
        """Test the FCM message carries string data and platform blocks."""
        channel = PushChannel(PushSettings(android_channel_id="alerts"))

        message = channel._build_fcm_message(VALID_TOKEN, self._payload([VALID_TOKEN]))

        assert message["token"] == VALID_TOKEN
        assert message["notification"]["title"] == "Parent Link Request"
        assert message["data"]["type"] == "link_request"
        assert message["data"]["alertId"] == "e1"
        assert message["data"]["linkKey"] == "1001-00001-2024-00042"
        assert message["android"]["notification"]["channel_id"] == "alerts"
        assert message["apns"]["headers"]["apns-priority"] == "10"

    @pytest.mark.asyncio
    async def test_send_posts_per_token(self) -> None:
        """Test one request per valid token and success if any succeeded."""
        channel = PushChannel(PushSettings(firebase_project_id="attendance-app"))
        channel._ensure_initialized = AsyncMock(return_value=True)
        channel._get_access_token = AsyncMock(return_value="access")

        response = MagicMock()
        response.status_code = 200
        response.json.return_value = {"name": "projects/attendance-app/messages/123"}
        client = MagicMock()
        client.post = AsyncMock(return_value=response)
        client.__aenter__ = AsyncMock(return_value=client)
        client.__aexit__ = AsyncMock(return_value=False)

        with patch(
            "attendlink.infrastructure.notifications.channels.push.httpx.AsyncClient",
            return_value=client,
        ):
            result = await channel.send(self._payload([VALID_TOKEN, "bad", "a" * 120]))

        assert result.succeeded
        assert result.message_id == "123"
        assert client.post.await_count == 2
        assert result.metadata["success_count"] == 2
