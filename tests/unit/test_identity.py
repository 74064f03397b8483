# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for canonical id resolution and the account directory."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from attendlink.domains.identity import AccountDirectory, IdentityResolver, ResolutionSource
from attendlink.infrastructure.store import MemoryDocumentStore, StoreUnavailableError
from attendlink.models import Account, Role

PARENT_CANONICAL_ID = "1001-00001"
STUDENT_CANONICAL_ID = "2024-00042"


class TestIdentityResolver:
    """Tests for IdentityResolver."""

    @pytest.mark.asyncio
    async def test_known_canonical_id_wins(self, resolver: IdentityResolver) -> None:
        """Test a canonical id already held by the caller is used directly."""
        resolved = await resolver.resolve("uidStudentB2", Role.STUDENT, known_id=STUDENT_CANONICAL_ID)

        assert resolved.value == STUDENT_CANONICAL_ID
        assert resolved.source == ResolutionSource.KNOWN

    @pytest.mark.asyncio
    async def test_account_lookup(self, resolver: IdentityResolver, seeded_accounts) -> None:
        """Test the directory supplies the canonical id."""
        resolved = await resolver.resolve("uidStudentB2", Role.STUDENT)

        assert resolved.value == STUDENT_CANONICAL_ID
        assert resolved.source == ResolutionSource.ACCOUNT
        assert resolved.is_canonical is True

    @pytest.mark.asyncio
    async def test_link_record_fallback(self, resolver: IdentityResolver, store: MemoryDocumentStore) -> None:
        """Test the named link record supplies the canonical id."""
        await store.set(
            "parent_student_links",
            "uidParentA1-uidStudentB2",
            {"key": "uidParentA1-uidStudentB2", "parentInternalId": "uidParentA1",
             "studentInternalId": "uidStudentB2", "studentCanonicalId": STUDENT_CANONICAL_ID,
             "status": "active", "initiator": "parent", "requestedAt": 1},
        )

        resolved = await resolver.resolve(
            "uidStudentB2", Role.STUDENT, fallback_link_key="uidParentA1-uidStudentB2"
        )

        assert resolved.value == STUDENT_CANONICAL_ID
        assert resolved.source == ResolutionSource.LINK_RECORD

    @pytest.mark.asyncio
    async def test_canonical_link_key_is_parsed(self, resolver: IdentityResolver) -> None:
        """Test a canonical link key yields the id when no record exists."""
        key = f"{PARENT_CANONICAL_ID}-{STUDENT_CANONICAL_ID}"

        parent = await resolver.resolve("uidParentA1", Role.PARENT, fallback_link_key=key)
        student = await resolver.resolve("uidStudentB2", Role.STUDENT, fallback_link_key=key)

        assert parent.value == PARENT_CANONICAL_ID
        assert student.value == STUDENT_CANONICAL_ID

    @pytest.mark.asyncio
    async def test_degrades_to_internal_id(self, resolver: IdentityResolver) -> None:
        """Test an unknown account resolves to its internal id flagged degraded."""
        resolved = await resolver.resolve("uidNobody", Role.STUDENT)

        assert resolved.value == "uidNobody"
        assert resolved.source == ResolutionSource.FALLBACK
        assert resolved.is_canonical is False

    @pytest.mark.asyncio
    async def test_never_raises_when_offline(self, resolver: IdentityResolver, connectivity) -> None:
        """Test store failures degrade instead of raising."""
        connectivity.set_connected(False)

        resolved = await resolver.resolve("uidStudentB2", Role.STUDENT, fallback_link_key="a-b")

        assert resolved.value == "uidStudentB2"
        assert resolved.is_canonical is False

    @pytest.mark.asyncio
    async def test_malformed_account_document_falls_through(
        self, resolver: IdentityResolver, store: MemoryDocumentStore
    ) -> None:
        """Test an unreadable account document moves on to the next tier."""
        await store.set("users", "uidY", {"role": "student", "firstName": 7, "canonicalId": 2024})
        key = f"{PARENT_CANONICAL_ID}-{STUDENT_CANONICAL_ID}"

        degraded = await resolver.resolve("uidY", Role.STUDENT)
        from_key = await resolver.resolve("uidY", Role.STUDENT, fallback_link_key=key)

        assert degraded.source == ResolutionSource.FALLBACK
        assert degraded.value == "uidY"
        assert from_key.source == ResolutionSource.LINK_RECORD
        assert from_key.value == STUDENT_CANONICAL_ID

    @pytest.mark.asyncio
    async def test_cache_keeps_only_canonical_results(self) -> None:
        """Test degraded results are retried on the next call."""
        directory = MagicMock()
        directory.find_by_internal_id = AsyncMock(
            side_effect=[
                None,
                Account(internal_id="uidS", role=Role.STUDENT, canonical_id=STUDENT_CANONICAL_ID),
            ]
        )
        store = MagicMock()
        store.get = AsyncMock(return_value=None)
        resolver = IdentityResolver(directory, store)

        first = await resolver.resolve_cached("uidS", Role.STUDENT)
        second = await resolver.resolve_cached("uidS", Role.STUDENT)
        third = await resolver.resolve_cached("uidS", Role.STUDENT)

        assert first.is_canonical is False
        assert second.value == STUDENT_CANONICAL_ID
        assert third is second
        assert directory.find_by_internal_id.await_count == 2

    @pytest.mark.asyncio
    async def test_forget_clears_cache(self) -> None:
        """Test forgetting an account forces a fresh lookup."""
        directory = MagicMock()
        directory.find_by_internal_id = AsyncMock(
            return_value=Account(internal_id="uidS", role=Role.STUDENT, canonical_id=STUDENT_CANONICAL_ID)
        )
        resolver = IdentityResolver(directory, MagicMock())

        await resolver.resolve_cached("uidS", Role.STUDENT)
        resolver.forget("uidS")
        await resolver.resolve_cached("uidS", Role.STUDENT)

        assert directory.find_by_internal_id.await_count == 2


class TestAccountDirectory:
    """Tests for AccountDirectory."""

    @pytest.mark.asyncio
    async def test_save_writes_legacy_field(self, directory: AccountDirectory, store, student_account) -> None:
        """Test saved documents carry the canonical id under the legacy field too."""
        await directory.save(student_account)

        document = await store.get("users", "uidStudentB2")
        assert document["canonicalId"] == STUDENT_CANONICAL_ID
        assert document["studentId"] == STUDENT_CANONICAL_ID
        assert document["role"] == "student"

    @pytest.mark.asyncio
    async def test_find_by_either_id(self, directory: AccountDirectory, seeded_accounts) -> None:
        """Test lookups by internal and canonical id reach the same account."""
        by_internal = await directory.find("uidParentA1", Role.PARENT)
        by_canonical = await directory.find(PARENT_CANONICAL_ID, Role.PARENT)

        assert by_internal.internal_id == by_canonical.internal_id == "uidParentA1"

    @pytest.mark.asyncio
    async def test_role_mismatch_not_found(self, directory: AccountDirectory, seeded_accounts) -> None:
        """Test a parent id is not found as a student."""
        assert await directory.find("uidParentA1", Role.STUDENT) is None

    @pytest.mark.asyncio
    async def test_legacy_field_lookup(self, directory: AccountDirectory, store) -> None:
        """Test documents written by older clients are found by legacy field."""
        await store.set("users", "uidOld", {"role": "student", "studentIdNumber": "2023-00007"})

        account = await directory.find_by_canonical_id("2023-00007", Role.STUDENT)

        assert account is not None
        assert account.internal_id == "uidOld"

    @pytest.mark.asyncio
    async def test_push_tokens_for(self, directory: AccountDirectory, parent_account) -> None:
        """Test tokens are returned for known accounts only."""
        await directory.save(parent_account.model_copy(update={"push_tokens": ["tok1"]}))

        assert await directory.push_tokens_for(PARENT_CANONICAL_ID, Role.PARENT) == ["tok1"]
        assert await directory.push_tokens_for("9999-99999", Role.PARENT) == []

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self, directory: AccountDirectory, connectivity) -> None:
        """Test the directory does not hide store failures."""
        connectivity.set_connected(False)

        with pytest.raises(StoreUnavailableError):
            await directory.find("uidParentA1", Role.PARENT)
