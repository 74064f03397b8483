# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Canonical identity resolution.

Inboxes and link keys are keyed by the canonical id (``NNNN-NNNNN``), but
callers often only know the internal id issued by the auth provider. The
resolver walks a fixed chain of sources and never fails: when nothing
yields a canonical id it returns the internal id flagged as degraded, and
the caller re-resolves later.

Resolution order:
1. A known id that is already canonical
2. The account directory (internal id + role)
3. The link record named by the caller (its stored canonical id, or the
   one embedded in a canonical link key)
4. The internal id itself (degraded)
"""

import logging
from dataclasses import dataclass
from enum import Enum

from attendlink.domains.identity.directory import AccountDirectory
from attendlink.infrastructure.store import DocumentStore, StoreError
from attendlink.models import LinkRecord, Role, looks_canonical, parse_link_key

logger = logging.getLogger(__name__)


class ResolutionSource(str, Enum):
    """Where a resolved id came from."""

    KNOWN = "known"
    ACCOUNT = "account"
    LINK_RECORD = "link_record"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ResolvedId:
    """Result of a resolution.

    Attributes:
        value: The id to key data by.
        source: Which tier produced it.
    """

    value: str
    source: ResolutionSource

    @property
    def is_canonical(self) -> bool:
        """False when resolution degraded to the internal id."""
        return self.source is not ResolutionSource.FALLBACK

    def __str__(self) -> str:
        return self.value


class IdentityResolver:
    """Resolves canonical ids for accounts known by internal id."""

    def __init__(
        self,
        directory: AccountDirectory,
        store: DocumentStore,
        links_collection: str = "parent_student_links",
    ) -> None:
        """Initialize the resolver.

        Args:
            directory: Account lookup.
            store: Shared document store (for link records).
            links_collection: Collection holding link records.
        """
        self._directory = directory
        self._store = store
        self._links_collection = links_collection
        self._cache: dict[tuple[str, Role], ResolvedId] = {}

    async def resolve(
        self,
        internal_id: str,
        role: Role,
        fallback_link_key: str | None = None,
        known_id: str | None = None,
    ) -> ResolvedId:
        """Resolve the canonical id of an account.

        Args:
            internal_id: The account's internal id.
            role: The account's role.
            fallback_link_key: Link record that may carry the canonical id.
            known_id: An id the caller already holds, used as-is if canonical.

        Returns:
            The resolved id; ``is_canonical`` is False in degraded mode.
        """
        if looks_canonical(known_id):
            return ResolvedId(known_id, ResolutionSource.KNOWN)  # type: ignore[arg-type]

        if looks_canonical(internal_id):
            return ResolvedId(internal_id, ResolutionSource.KNOWN)

        try:
            account = await self._directory.find_by_internal_id(internal_id, role)
            if account is not None and looks_canonical(account.canonical_id):
                return ResolvedId(account.canonical_id, ResolutionSource.ACCOUNT)  # type: ignore[arg-type]
        except (StoreError, ValueError) as e:
            logger.warning("Account lookup failed for %s: %s", internal_id, str(e))

        if fallback_link_key:
            canonical = await self._from_link_record(fallback_link_key, role)
            if canonical:
                return ResolvedId(canonical, ResolutionSource.LINK_RECORD)

        logger.info("Could not resolve canonical id for %s %s, using internal id", role.value, internal_id)
        return ResolvedId(internal_id, ResolutionSource.FALLBACK)

    async def _from_link_record(self, link_key: str, role: Role) -> str | None:
        try:
            data = await self._store.get(self._links_collection, link_key)
        except StoreError as e:
            logger.warning("Link record lookup failed for %s: %s", link_key, str(e))
            data = None

        if data is not None:
            try:
                record = LinkRecord.from_document(data)
            except ValueError as e:
                logger.warning("Unreadable link record %s: %s", link_key, str(e))
            else:
                candidate = record.canonical_id_for(role)
                if looks_canonical(candidate):
                    return candidate

        parsed = parse_link_key(link_key)
        if parsed is not None:
            return parsed[0] if role is Role.PARENT else parsed[1]
        return None

    async def resolve_cached(
        self,
        internal_id: str,
        role: Role,
        fallback_link_key: str | None = None,
        known_id: str | None = None,
    ) -> ResolvedId:
        """Resolve, remembering canonical results for the session.

        Degraded results are not remembered, so the next call retries the
        whole chain.
        """
        cached = self._cache.get((internal_id, role))
        if cached is not None:
            return cached

        resolved = await self.resolve(internal_id, role, fallback_link_key, known_id)
        if resolved.is_canonical:
            self._cache[(internal_id, role)] = resolved
        return resolved

    def forget(self, internal_id: str | None = None) -> None:
        """Drop remembered results (all, or one account's)."""
        if internal_id is None:
            self._cache.clear()
            return
        for key in [k for k in self._cache if k[0] == internal_id]:
            del self._cache[key]
