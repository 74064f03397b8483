# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

Behavioural tests run against the in-memory document store with a
ConnectivityMonitor attached, so going offline is a single call:
``connectivity.set_connected(False)``.
"""

from typing import Any

import pytest
import pytest_asyncio

from attendlink.domains.conversation import ConversationCleaner
from attendlink.domains.identity import AccountDirectory, IdentityResolver
from attendlink.domains.inbox import InboxService
from attendlink.domains.parent_relation import LinkLifecycleService
from attendlink.infrastructure.background import BackgroundTaskQueue
from attendlink.infrastructure.connectivity import ConnectivityMonitor
from attendlink.infrastructure.events import EventBus
from attendlink.infrastructure.store import MemoryDocumentStore
from attendlink.models import Account, Role

PARENT_CANONICAL_ID = "1001-00001"
STUDENT_CANONICAL_ID = "2024-00042"


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture
def connectivity() -> ConnectivityMonitor:
    """Provide an online connectivity monitor."""
    return ConnectivityMonitor()


@pytest_asyncio.fixture
async def task_queue():
    """Provide a background queue, drained and shut down after the test."""
    queue = BackgroundTaskQueue()
    yield queue
    await queue.shutdown()


@pytest.fixture
def event_bus() -> EventBus:
    """Provide a fresh event bus."""
    return EventBus()


@pytest.fixture
def store(connectivity: ConnectivityMonitor) -> MemoryDocumentStore:
    """Provide an in-memory document store gated by connectivity."""
    return MemoryDocumentStore(connectivity)


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def directory(store: MemoryDocumentStore) -> AccountDirectory:
    """Provide an account directory over the test store."""
    return AccountDirectory(store)


@pytest.fixture
def resolver(directory: AccountDirectory, store: MemoryDocumentStore) -> IdentityResolver:
    """Provide an identity resolver over the test store."""
    return IdentityResolver(directory, store)


@pytest.fixture
def inbox(store, task_queue, event_bus) -> InboxService:
    """Provide an inbox service without push."""
    return InboxService(store, task_queue, event_bus=event_bus)


@pytest.fixture
def cleaner(store: MemoryDocumentStore) -> ConversationCleaner:
    """Provide a conversation cleaner."""
    return ConversationCleaner(store)


@pytest.fixture
def link_service(store, resolver, inbox, connectivity, cleaner, task_queue, event_bus) -> LinkLifecycleService:
    """Provide a link lifecycle service with a fixed clock."""
    ticks = iter(range(1_700_000_000_000, 1_700_000_000_000 + 10_000_000, 1000))
    return LinkLifecycleService(
        store,
        resolver,
        inbox,
        connectivity,
        cleaner,
        task_queue,
        event_bus=event_bus,
        clock=lambda: next(ticks),
    )


# =============================================================================
# Account Fixtures
# =============================================================================


@pytest.fixture
def parent_account() -> Account:
    """Provide a parent with a canonical id."""
    return Account(
        internal_id="uidParentA1",
        role=Role.PARENT,
        canonical_id=PARENT_CANONICAL_ID,
        first_name="Maria",
        last_name="Santos",
        email="maria@example.com",
    )


@pytest.fixture
def student_account() -> Account:
    """Provide a student with a canonical id."""
    return Account(
        internal_id="uidStudentB2",
        role=Role.STUDENT,
        canonical_id=STUDENT_CANONICAL_ID,
        first_name="Luis",
        last_name="Santos",
    )


@pytest_asyncio.fixture
async def seeded_accounts(directory, parent_account, student_account) -> dict[str, Any]:
    """Save the parent and student accounts to the directory."""
    await directory.save(parent_account)
    await directory.save(student_account)
    return {"parent": parent_account, "student": student_account}
