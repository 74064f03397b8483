# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Account directory over the ``users`` collection."""

import logging
from typing import Any

from attendlink.infrastructure.store import DocumentStore, where
from attendlink.models import CANONICAL_ID_FIELDS, Account, Role, ids_match, looks_canonical

logger = logging.getLogger(__name__)


class AccountDirectory:
    """Looks up accounts by internal or canonical id.

    Store errors propagate; callers that must not fail (the resolver, the
    push dispatcher) catch them.
    """

    def __init__(self, store: DocumentStore, users_collection: str = "users") -> None:
        """Initialize the directory.

        Args:
            store: Shared document store.
            users_collection: Collection holding account documents.
        """
        self._store = store
        self._collection = users_collection

    async def find_by_internal_id(self, internal_id: str, role: Role) -> Account | None:
        """Find an account by internal id and role.

        Documents are normally keyed by internal id; older documents are
        only findable through their ``uid`` field.
        """
        data = await self._store.get(self._collection, internal_id)
        if data is not None and data.get("role", role.value) == role.value:
            return Account.from_user_document(internal_id, data, role)

        matches = await self._store.query(
            self._collection,
            [where("uid", internal_id), where("role", role.value)],
            limit=1,
        )
        if matches:
            return Account.from_user_document(matches[0].id, matches[0].data or {}, role)
        return None

    async def find_by_canonical_id(self, canonical_id: str, role: Role) -> Account | None:
        """Find an account by canonical id under any of its legacy field names."""
        for field_name in ("canonicalId", *CANONICAL_ID_FIELDS[role]):
            matches = await self._store.query(
                self._collection,
                [where(field_name, canonical_id), where("role", role.value)],
                limit=1,
            )
            if matches:
                return Account.from_user_document(matches[0].id, matches[0].data or {}, role)
        return None

    async def find(self, identity_key: str, role: Role) -> Account | None:
        """Find an account keyed by either id form."""
        if looks_canonical(identity_key):
            account = await self.find_by_canonical_id(identity_key, role)
            return account or await self.find_by_internal_id(identity_key, role)
        account = await self.find_by_internal_id(identity_key, role)
        return account or await self.find_by_canonical_id(identity_key, role)

    async def push_tokens_for(self, identity_key: str, role: Role) -> list[str]:
        """Return the device tokens of an account; empty if unknown."""
        account = await self.find(identity_key, role)
        if account is None:
            logger.debug("No %s account found for %s", role.value, identity_key)
            return []
        if not (
            ids_match(account.canonical_id, identity_key)
            or ids_match(account.internal_id, identity_key)
        ):
            logger.warning("Account lookup for %s returned a different account", identity_key)
            return []
        return account.push_tokens

    async def save(self, account: Account) -> None:
        """Write an account document in the shape the clients read."""
        document: dict[str, Any] = {
            "uid": account.internal_id,
            "role": account.role.value,
            "firstName": account.first_name,
            "lastName": account.last_name,
            "email": account.email,
            "pushTokens": account.push_tokens,
        }
        if account.canonical_id:
            document["canonicalId"] = account.canonical_id
            document[CANONICAL_ID_FIELDS[account.role][0]] = account.canonical_id
        await self._store.set(self._collection, account.internal_id, document)
        logger.debug("Saved %s account %s", account.role.value, account.internal_id)
