# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for service wiring."""

import pytest
import pytest_asyncio

from attendlink.container import ServiceContainer
from attendlink.core.config.settings import PushSettings, Settings
from attendlink.domains.conversation import messages_path
from attendlink.domains.offline import LoadSource
from attendlink.infrastructure.cache import MemoryLocalStorage
from attendlink.infrastructure.events import EventBus
from attendlink.infrastructure.store import MemoryDocumentStore
from attendlink.models import LinkDecision, Role, SnapshotKind


@pytest_asyncio.fixture
async def container():
    """Create a container on in-memory backends without push."""
    services = await ServiceContainer.create(
        Settings(push=PushSettings(enabled=False)),
        event_bus=EventBus(),
        configure_logging=False,
    )
    yield services
    await services.close()


class TestServiceContainer:
    """Tests for ServiceContainer."""

    @pytest.mark.asyncio
    async def test_memory_backends(self, container) -> None:
        """Test default settings wire in-memory backends and no push."""
        assert isinstance(container.store, MemoryDocumentStore)
        assert isinstance(container.storage, MemoryLocalStorage)
        assert container.dispatcher is None
        assert container.redis is None

    @pytest.mark.asyncio
    async def test_push_dispatcher_created_when_enabled(self) -> None:
        """Test enabling push wires a dispatcher into the inbox."""
        services = await ServiceContainer.create(Settings(), event_bus=EventBus(), configure_logging=False)

        assert services.dispatcher is not None
        await services.close()

    @pytest.mark.asyncio
    async def test_end_to_end(self, container, parent_account, student_account) -> None:
        """Test a link flows through to relationships, unread counts and the inbox cache."""
        reconciler = container.reconciler_for(parent_account)
        aggregator = container.track_unread(reconciler)
        reconciler.start()

        created = await container.links.request_link(parent_account, student_account, Role.PARENT)
        await container.links.respond_to_link(created.record.key, student_account, LinkDecision.ACCEPT)

        assert [r.link_key for r in reconciler.relationships] == [created.record.key]

        await container.store.set(
            messages_path("conversations", "2024-00042-1001-00001"),
            "m1",
            {"senderId": "uidStudentB2", "createdAt": 9_999_999_999_999},
        )
        assert aggregator.total == 1

        result = await container.load_inbox(parent_account)
        await container.task_queue.drain()

        assert result.source == LoadSource.LIVE
        assert {e.type_name for e in result.items} == {"link_request_self", "link_response"}
        assert await container.offline.read_snapshot(parent_account.internal_id, SnapshotKind.INBOX) is not None
        reconciler.stop()
