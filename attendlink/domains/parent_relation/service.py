# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Parent-student link lifecycle service.

This module provides the LinkLifecycleService class for:
- Requesting a link from either side
- Accepting or declining a pending request
- Cancelling an outgoing request
- Unlinking an active relationship, with conversation cleanup

Lifecycle::

    NONE --request--> PENDING --accept--> ACTIVE --unlink--> (deleted)
                         |  \\--decline--> DECLINED
                         \\--cancel--> (deleted)

Every mutation requires connectivity; nothing is queued for later.
Inbox fan-out happens after the record write has committed and never
rolls it back: fan-out failures are logged and reported on the result.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from attendlink.core.errors import (
    ErrorKind,
    InvalidLinkStateError,
    LinkNotFoundError,
    NoConnectivityError,
    NotAuthorizedError,
    is_connectivity_error,
)
from attendlink.domains.conversation import ConversationCleaner
from attendlink.domains.identity import IdentityResolver
from attendlink.domains.inbox import InboxService
from attendlink.domains.parent_relation.overlay import PendingOverlay
from attendlink.infrastructure.background import BackgroundTaskQueue
from attendlink.infrastructure.connectivity import ConnectivityMonitor
from attendlink.infrastructure.events import EventBus, EventTypes
from attendlink.infrastructure.store import (
    DocumentNotFoundError,
    DocumentStore,
    FieldFilter,
    StoreError,
    where,
)
from attendlink.models import (
    Account,
    EntryStatus,
    InboxEntry,
    InboxEntryType,
    LinkDecision,
    LinkRecord,
    LinkResponse,
    LinkStatus,
    Role,
    build_link_key,
    ids_match,
    normalize_id,
)
from attendlink.utils.datetime import now_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LinkOutcome(str, Enum):
    """What a lifecycle operation did."""

    CREATED = "created"
    ALREADY_PENDING = "already_pending"
    ALREADY_LINKED = "already_linked"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    UNLINKED = "unlinked"


@dataclass
class ActionNotice:
    """Non-fatal condition reported back to the caller.

    Attributes:
        kind: Condition classification.
        message: Human-readable description.
    """

    kind: ErrorKind
    message: str


@dataclass
class LinkActionResult:
    """Result of a lifecycle operation.

    Attributes:
        outcome: What happened.
        record: The link record after the operation (None once deleted).
        notices: Duplicate or degraded-identity notices.
        fanout_errors: Inbox or cleanup steps that failed after commit.
    """

    outcome: LinkOutcome
    record: LinkRecord | None = None
    notices: list[ActionNotice] = field(default_factory=list)
    fanout_errors: list[str] = field(default_factory=list)

    @property
    def is_duplicate(self) -> bool:
        """True when nothing was written because the request already existed."""
        return self.outcome in (LinkOutcome.ALREADY_PENDING, LinkOutcome.ALREADY_LINKED)


class LinkLifecycleService:
    """Service driving parent-student link records through their lifecycle.

    Attributes:
        overlay: Optimistic pending requests issued from this process.
    """

    def __init__(
        self,
        store: DocumentStore,
        resolver: IdentityResolver,
        inbox: InboxService,
        connectivity: ConnectivityMonitor,
        cleaner: ConversationCleaner,
        task_queue: BackgroundTaskQueue,
        event_bus: EventBus | None = None,
        overlay: PendingOverlay | None = None,
        links_collection: str = "parent_student_links",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the link lifecycle service.

        Args:
            store: Shared document store.
            resolver: Canonical id resolver.
            inbox: Inbox fan-out service.
            connectivity: Connectivity monitor gating mutations.
            cleaner: Conversation cleanup used on unlink.
            task_queue: Queue for detached event publication.
            event_bus: Optional bus for lifecycle events.
            overlay: Optimistic pending overlay.
            links_collection: Collection holding link records.
            clock: Epoch millisecond clock.
        """
        self._store = store
        self._resolver = resolver
        self._inbox = inbox
        self._connectivity = connectivity
        self._cleaner = cleaner
        self._task_queue = task_queue
        self._event_bus = event_bus
        self.overlay = overlay or PendingOverlay()
        self._collection = links_collection
        self._clock = clock
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._key_lock_users: dict[str, int] = {}

    # ========== Helpers ==========

    @asynccontextmanager
    async def _locked(self, key: str) -> AsyncIterator[None]:
        """Serialise requests for one link key; the lock is dropped when unused."""
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._key_lock_users[key] = self._key_lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._key_lock_users[key] -= 1
            if not self._key_lock_users[key]:
                del self._key_lock_users[key]
                del self._key_locks[key]

    def _require_connectivity(self, action: str) -> None:
        if not self._connectivity.is_connected:
            logger.info("Refusing to %s while offline", action)
            raise NoConnectivityError(f"Cannot {action} while offline")

    async def _commit(self, operation: Awaitable[T], action: str, link_key: str) -> T:
        """Await a primary store write, mapping store failures to typed errors."""
        try:
            return await operation
        except DocumentNotFoundError as e:
            raise LinkNotFoundError(f"Link {link_key} no longer exists") from e
        except StoreError as e:
            if is_connectivity_error(e):
                raise NoConnectivityError(f"Cannot {action}: store unavailable") from e
            raise

    async def _fanout(self, result: LinkActionResult, step: str, operation: Awaitable[object]) -> None:
        """Run a post-commit step; failures are logged and reported, never raised."""
        try:
            await operation
        except StoreError as e:
            logger.warning("Fan-out step '%s' failed: %s", step, str(e))
            result.fanout_errors.append(f"{step}: {e}")

    def _emit(self, event_type: str, record: LinkRecord, actor: Account) -> None:
        if self._event_bus is None:
            return
        self._task_queue.submit(
            self._event_bus.publish(
                event_type,
                {
                    "link_key": record.key,
                    "status": record.status.value,
                    "actor_id": actor.internal_id,
                    "actor_role": actor.role.value,
                },
                account_id=actor.internal_id,
            ),
            name=event_type,
        )

    async def _load(self, link_key: str) -> LinkRecord:
        try:
            data = await self._store.get(self._collection, link_key)
        except StoreError as e:
            if is_connectivity_error(e):
                raise NoConnectivityError("Cannot read link: store unavailable") from e
            raise
        if data is None:
            raise LinkNotFoundError(f"Link {link_key} not found")
        return LinkRecord.from_document(data)

    async def _query_records(self, filters: list[FieldFilter]) -> list[LinkRecord]:
        snapshots = await self._store.query(self._collection, filters)
        return [LinkRecord.from_document(snap.data) for snap in snapshots if snap.data]

    async def _find_live_record(self, key: str, parent: Account, student: Account) -> LinkRecord | None:
        """Find a pending or active record for the pair, by key or legacy ids."""
        data = await self._store.get(self._collection, key)
        if data is not None:
            record = LinkRecord.from_document(data)
            if not record.status.is_terminal:
                return record

        for record in await self._query_records(
            [
                where("parentInternalId", parent.internal_id),
                where("studentInternalId", student.internal_id),
            ]
        ):
            if not record.status.is_terminal:
                return record
        return None

    # ========== Request ==========

    async def request_link(
        self,
        parent: Account,
        student: Account,
        initiator: Role,
        relationship: str | None = None,
    ) -> LinkActionResult:
        """Send a link request from one side to the other.

        A repeat request for a pair that is already pending or active
        writes nothing and reports the duplicate on the result.

        Args:
            parent: The parent account.
            student: The student account.
            initiator: Which of the two is sending the request.
            relationship: Optional relationship label.

        Returns:
            Result with outcome CREATED, ALREADY_PENDING or ALREADY_LINKED.

        Raises:
            NoConnectivityError: If offline or the store is unreachable.
        """
        self._require_connectivity("request a link")

        notices: list[ActionNotice] = []
        parent_id = await self._resolver.resolve_cached(
            parent.internal_id, Role.PARENT, known_id=parent.canonical_id
        )
        student_id = await self._resolver.resolve_cached(
            student.internal_id, Role.STUDENT, known_id=student.canonical_id
        )
        for resolved, role in ((parent_id, Role.PARENT), (student_id, Role.STUDENT)):
            if not resolved.is_canonical:
                notices.append(
                    ActionNotice(
                        ErrorKind.AMBIGUITY,
                        f"No canonical id for {role.value} {resolved.value}; keyed by internal id",
                    )
                )

        key = build_link_key(
            parent.internal_id,
            student.internal_id,
            parent_id.value if parent_id.is_canonical else None,
            student_id.value if student_id.is_canonical else None,
        )

        async with self._locked(key):
            existing = await self._commit(
                self._find_live_record(key, parent, student), "request a link", key
            )
            if existing is not None:
                outcome = (
                    LinkOutcome.ALREADY_LINKED
                    if existing.status is LinkStatus.ACTIVE
                    else LinkOutcome.ALREADY_PENDING
                )
                logger.info("Link request for %s not sent: %s", existing.key, outcome.value)
                notices.append(
                    ActionNotice(ErrorKind.DUPLICATE, f"Link {existing.key} is already {existing.status.value}")
                )
                return LinkActionResult(outcome=outcome, record=existing, notices=notices)

            record = LinkRecord(
                key=key,
                parent_internal_id=parent.internal_id,
                student_internal_id=student.internal_id,
                parent_canonical_id=parent_id.value if parent_id.is_canonical else None,
                student_canonical_id=student_id.value if student_id.is_canonical else None,
                parent_name=parent.display_name,
                student_name=student.display_name,
                relationship=relationship,
                status=LinkStatus.PENDING,
                initiator=initiator,
                requested_at=self._clock(),
            )

            self.overlay.add(record)
            try:
                await self._commit(
                    self._store.set(self._collection, key, record.to_document()),
                    "request a link",
                    key,
                )
            except Exception:
                self.overlay.rollback(key)
                raise

        logger.info("Created link request %s (initiated by %s)", key, initiator.value)
        result = LinkActionResult(outcome=LinkOutcome.CREATED, record=record, notices=notices)

        sender_role = initiator
        recipient_role = initiator.counterpart
        sender_name = record.name_for(sender_role)
        title = "Parent Link Request" if sender_role is Role.PARENT else "Student Link Request"

        await self._fanout(
            result,
            "request entry",
            self._inbox.append_inbox_entry(
                recipient_role,
                record.identity_key_for(recipient_role),
                InboxEntry(
                    id=f"{key}_request_{record.requested_at}",
                    type=InboxEntryType.LINK_REQUEST,
                    title=title,
                    message=f"{sender_name} requests to link.",
                    created_at=record.requested_at,
                    link_key=key,
                    counterparty_id=record.identity_key_for(sender_role),
                    counterparty_name=sender_name,
                    student_id=record.identity_key_for(Role.STUDENT),
                ),
            ),
        )
        await self._fanout(
            result,
            "request self notice",
            self._inbox.append_inbox_entry(
                sender_role,
                record.identity_key_for(sender_role),
                InboxEntry(
                    id=f"{key}_request_self_{record.requested_at}",
                    type=InboxEntryType.LINK_REQUEST_SELF,
                    title="Link Request Sent",
                    message=f"You sent a link request to {record.name_for(recipient_role)}.",
                    status=EntryStatus.READ,
                    created_at=record.requested_at,
                    link_key=key,
                    counterparty_id=record.identity_key_for(recipient_role),
                    counterparty_name=record.name_for(recipient_role),
                    skip_push=True,
                ),
            ),
        )

        self._emit(EventTypes.Link.REQUESTED, record, parent if initiator is Role.PARENT else student)
        return result

    # ========== Respond ==========

    async def respond_to_link(
        self,
        link_key: str,
        responder: Account,
        decision: LinkDecision,
    ) -> LinkActionResult:
        """Accept or decline a pending request.

        On accept the record becomes ACTIVE and both sides' canonical ids
        are written onto it, so later queries by either id form find it.

        Args:
            link_key: Key of the pending record.
            responder: The recipient of the request.
            decision: Accept or decline.

        Returns:
            Result with outcome ACCEPTED or DECLINED.

        Raises:
            NoConnectivityError: If offline or the store is unreachable.
            LinkNotFoundError: If the record does not exist.
            InvalidLinkStateError: If the record is not pending.
            NotAuthorizedError: If the responder is not the recipient.
        """
        self._require_connectivity("respond to a link request")

        record = await self._load(link_key)
        if record.status is not LinkStatus.PENDING:
            raise InvalidLinkStateError(f"Link {link_key} is {record.status.value}, not pending")
        if responder.role is not record.recipient_role or not record.is_party(responder):
            raise NotAuthorizedError(f"{responder.internal_id} cannot respond to link {link_key}")

        now = self._clock()
        if decision is LinkDecision.ACCEPT:
            parent_id = await self._resolver.resolve_cached(
                record.parent_internal_id,
                Role.PARENT,
                fallback_link_key=link_key,
                known_id=record.parent_canonical_id,
            )
            student_id = await self._resolver.resolve_cached(
                record.student_internal_id,
                Role.STUDENT,
                fallback_link_key=link_key,
                known_id=record.student_canonical_id,
            )
            updates = {
                "status": LinkStatus.ACTIVE,
                "responded_at": now,
                "linked_at": now,
            }
            if parent_id.is_canonical:
                updates["parent_canonical_id"] = parent_id.value
            if student_id.is_canonical:
                updates["student_canonical_id"] = student_id.value
            response = LinkResponse.ACCEPTED
            outcome = LinkOutcome.ACCEPTED
        else:
            updates = {"status": LinkStatus.DECLINED, "responded_at": now}
            response = LinkResponse.DECLINED
            outcome = LinkOutcome.DECLINED

        updated = record.model_copy(update=updates)
        await self._commit(
            self._store.set(self._collection, link_key, updated.to_document()),
            "respond to a link request",
            link_key,
        )
        self.overlay.settle(link_key)
        logger.info("Link %s %s by %s", link_key, response.value, responder.internal_id)

        result = LinkActionResult(outcome=outcome, record=updated)
        requester_role = record.initiator
        responder_role = record.recipient_role
        verb = "accepted" if response is LinkResponse.ACCEPTED else "declined"
        title = f"Link Request {verb.capitalize()}"

        await self._fanout(
            result,
            "response entry",
            self._inbox.append_inbox_entry(
                requester_role,
                updated.identity_key_for(requester_role),
                InboxEntry(
                    id=f"{link_key}_{response.value}_{now}",
                    type=InboxEntryType.LINK_RESPONSE,
                    title=title,
                    message=f"{updated.name_for(responder_role)} {verb} your link request.",
                    created_at=now,
                    link_key=link_key,
                    counterparty_id=updated.identity_key_for(responder_role),
                    counterparty_name=updated.name_for(responder_role),
                    student_id=updated.identity_key_for(Role.STUDENT),
                    response=response,
                ),
            ),
        )
        await self._fanout(
            result,
            "response self notice",
            self._record_response_self_notice(record, updated, response, title, verb, now),
        )

        self._emit(
            EventTypes.Link.ACCEPTED if outcome is LinkOutcome.ACCEPTED else EventTypes.Link.DECLINED,
            updated,
            responder,
        )
        return result

    async def _record_response_self_notice(
        self,
        original: LinkRecord,
        updated: LinkRecord,
        response: LinkResponse,
        title: str,
        verb: str,
        now: int,
    ) -> None:
        """Turn the responder's request entry into a read self notice.

        The request entry was appended under the responder's identity key
        at request time, which may have been the internal id; both keys are
        checked. If no request entry is found a self notice is appended.
        """
        role = original.recipient_role
        message = f"You {verb} the link request."

        def to_self_notice(entry: InboxEntry) -> InboxEntry | None:
            if entry.type_name != InboxEntryType.LINK_REQUEST.value or entry.link_key != original.key:
                return None
            return entry.model_copy(
                update={
                    "type": InboxEntryType.LINK_RESPONSE_SELF,
                    "title": title,
                    "message": message,
                    "status": EntryStatus.READ,
                    "response": response,
                    "skip_push": True,
                }
            )

        replaced = 0
        for owner_id in dict.fromkeys([original.identity_key_for(role), updated.identity_key_for(role)]):
            replaced += await self._inbox.replace_entries(role, owner_id, to_self_notice)

        if not replaced:
            await self._inbox.append_inbox_entry(
                role,
                updated.identity_key_for(role),
                InboxEntry(
                    id=f"{original.key}_{response.value}_self_{now}",
                    type=InboxEntryType.LINK_RESPONSE_SELF,
                    title=title,
                    message=message,
                    status=EntryStatus.READ,
                    created_at=now,
                    link_key=original.key,
                    counterparty_id=updated.identity_key_for(original.initiator),
                    counterparty_name=updated.name_for(original.initiator),
                    response=response,
                    skip_push=True,
                ),
            )

    # ========== Cancel ==========

    async def cancel_pending_request(self, link_key: str, actor: Account) -> LinkActionResult:
        """Withdraw an outgoing request before it was answered.

        Args:
            link_key: Key of the pending record.
            actor: The account that sent the request.

        Returns:
            Result with outcome CANCELLED.

        Raises:
            NoConnectivityError: If offline or the store is unreachable.
            LinkNotFoundError: If the record does not exist.
            InvalidLinkStateError: If the record is not pending.
            NotAuthorizedError: If the actor did not send the request.
        """
        self._require_connectivity("cancel a link request")

        record = await self._load(link_key)
        if record.status is not LinkStatus.PENDING:
            raise InvalidLinkStateError(f"Link {link_key} is {record.status.value}, not pending")
        if actor.role is not record.initiator or not record.is_party(actor):
            raise NotAuthorizedError(f"{actor.internal_id} did not send link request {link_key}")

        await self._commit(self._store.delete(self._collection, link_key), "cancel a link request", link_key)
        self.overlay.rollback(link_key)
        logger.info("Cancelled link request %s", link_key)

        result = LinkActionResult(outcome=LinkOutcome.CANCELLED, record=None)
        await self._fanout(result, "duplicate pending records", self._delete_duplicate_pending(record))

        recipient_role = record.recipient_role
        await self._fanout(
            result,
            "request entry removal",
            self._inbox.remove_entries(
                recipient_role,
                record.identity_key_for(recipient_role),
                lambda entry: entry.type_name == InboxEntryType.LINK_REQUEST.value
                and entry.link_key == link_key,
            ),
        )
        await self._fanout(
            result,
            "request self notice removal",
            self._inbox.remove_entries(
                record.initiator,
                record.identity_key_for(record.initiator),
                lambda entry: entry.type_name == InboxEntryType.LINK_REQUEST_SELF.value
                and entry.link_key == link_key,
            ),
        )

        self._emit(EventTypes.Link.CANCELLED, record, actor)
        return result

    async def _delete_duplicate_pending(self, record: LinkRecord) -> None:
        """Delete other pending records for the same pair written by older clients."""
        for other in await self._query_records(
            [
                where("parentInternalId", record.parent_internal_id),
                where("studentInternalId", record.student_internal_id),
                where("status", LinkStatus.PENDING.value),
            ]
        ):
            if other.key != record.key:
                await self._store.delete(self._collection, other.key)
                logger.info("Deleted duplicate pending link %s", other.key)

    # ========== Unlink ==========

    async def unlink(self, link_key: str, actor: Account) -> LinkActionResult:
        """Remove an active link.

        Deletes the record, then cleans up derived state: the parent-student
        conversation, ongoing schedule alerts about the student in the
        parent's inbox, and student-student conversations whose
        participants no longer share a linked parent. The other side gets
        an unread notice and the actor a read self notice.

        Args:
            link_key: Key of the active record.
            actor: Either party.

        Returns:
            Result with outcome UNLINKED.

        Raises:
            NoConnectivityError: If offline or the store is unreachable.
            LinkNotFoundError: If the record does not exist.
            InvalidLinkStateError: If the record is not active.
            NotAuthorizedError: If the actor is not a party to the link.
        """
        self._require_connectivity("unlink")

        record = await self._load(link_key)
        if record.status is not LinkStatus.ACTIVE:
            raise InvalidLinkStateError(f"Link {link_key} is {record.status.value}, not active")
        if not record.is_party(actor):
            raise NotAuthorizedError(f"{actor.internal_id} is not a party to link {link_key}")

        await self._commit(self._store.delete(self._collection, link_key), "unlink", link_key)
        self.overlay.settle(link_key)
        logger.info("Unlinked %s (by %s)", link_key, actor.internal_id)

        result = LinkActionResult(outcome=LinkOutcome.UNLINKED, record=None)
        student_ids = [record.student_canonical_id, record.student_internal_id]
        parent_ids = [record.parent_canonical_id, record.parent_internal_id]

        await self._fanout(
            result,
            "parent-student conversation",
            self._cleaner.delete_parent_student_conversation(student_ids, parent_ids),
        )
        await self._fanout(
            result,
            "schedule alerts",
            self._inbox.remove_entries(
                Role.PARENT,
                record.identity_key_for(Role.PARENT),
                lambda entry: entry.type_name == InboxEntryType.SCHEDULE_CURRENT.value
                and any(ids_match(entry.student_id, sid) for sid in student_ids),
            ),
        )
        await self._fanout(
            result,
            "student conversations",
            self._delete_orphaned_student_threads(student_ids),
        )

        now = self._clock()
        other_role = actor.role.counterpart
        actor_name = record.name_for(actor.role)
        other_name = record.name_for(other_role)
        await self._fanout(
            result,
            "unlink entry",
            self._inbox.append_inbox_entry(
                other_role,
                record.identity_key_for(other_role),
                InboxEntry(
                    id=f"unlink_{link_key}_{now}",
                    type=InboxEntryType.LINK_UNLINKED,
                    title=f"{actor.role.value.capitalize()} Unlinked",
                    message=f"{actor_name} unlinked from you.",
                    created_at=now,
                    link_key=link_key,
                    counterparty_id=record.identity_key_for(actor.role),
                    counterparty_name=actor_name,
                    student_id=record.identity_key_for(Role.STUDENT),
                ),
            ),
        )
        await self._fanout(
            result,
            "unlink self notice",
            self._inbox.append_inbox_entry(
                actor.role,
                record.identity_key_for(actor.role),
                InboxEntry(
                    id=f"{link_key}_unlinked_self_{now}",
                    type=InboxEntryType.LINK_UNLINKED_SELF,
                    title=f"{other_role.value.capitalize()} Unlinked",
                    message=f"You unlinked {other_name}.",
                    status=EntryStatus.READ,
                    created_at=now,
                    link_key=link_key,
                    counterparty_id=record.identity_key_for(other_role),
                    counterparty_name=other_name,
                    skip_push=True,
                ),
            ),
        )

        self._emit(EventTypes.Link.UNLINKED, record, actor)
        return result

    async def _active_parent_ids(self, student_ids: list[str | None]) -> set[str]:
        """Normalized ids of every parent actively linked to one of the student ids."""
        ids = [sid for sid in dict.fromkeys(student_ids) if sid]
        if not ids:
            return set()

        parents: set[str] = set()
        for field_name in ("studentInternalId", "studentCanonicalId"):
            for record in await self._query_records(
                [FieldFilter(field_name, "in", ids), where("status", LinkStatus.ACTIVE.value)]
            ):
                parents.update(
                    normalize_id(pid)
                    for pid in (record.parent_internal_id, record.parent_canonical_id)
                    if pid
                )
        return parents

    async def _delete_orphaned_student_threads(self, student_ids: list[str | None]) -> None:
        remaining_parents = await self._active_parent_ids(student_ids)
        for thread in await self._cleaner.student_threads_for(student_ids):
            other_parents = await self._active_parent_ids(list(thread.other_student_ids))
            if remaining_parents & other_parents:
                continue
            await self._cleaner.delete_conversation(thread.conversation_id)

    # ========== Queries ==========

    async def list_links(self, account: Account, status: LinkStatus | None = None) -> list[LinkRecord]:
        """List records the account is party to, by either id form.

        Raises:
            NoConnectivityError: If the store is unreachable.
        """
        role = account.role
        prefix = "parent" if role is Role.PARENT else "student"
        queries = [[where(f"{prefix}InternalId", account.internal_id)]]
        if account.canonical_id:
            queries.append([where(f"{prefix}CanonicalId", account.canonical_id)])

        merged: dict[str, LinkRecord] = {}
        for filters in queries:
            if status is not None:
                filters.append(where("status", status.value))
            try:
                records = await self._query_records(filters)
            except StoreError as e:
                if is_connectivity_error(e):
                    raise NoConnectivityError("Cannot list links: store unavailable") from e
                raise
            for record in records:
                merged[record.key] = record
        return list(merged.values())

    async def list_pending_requests(self, account: Account) -> list[LinkRecord]:
        """Pending requests (incoming and outgoing) including optimistic ones.

        Optimistic requests the store already shows as answered are dropped
        from the overlay.
        """
        records = await self.list_links(account)
        confirmed = [record for record in records if record.status is LinkStatus.PENDING]
        settled = [record.key for record in records if record.status is not LinkStatus.PENDING]
        return self.overlay.merge(confirmed, account, settled=settled)
