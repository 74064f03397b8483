# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document store abstraction.

The linking services talk to a shared document store with realtime
listeners: documents live in named collections (nested collections use a
slash path such as ``conversations/{id}/messages``), queries are simple
field filters, and watches deliver the full current result set on every
change.

Watch callbacks are synchronous and run on the event loop thread. They
must not raise; implementations log and swallow listener errors.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Callable, Literal


class StoreError(Exception):
    """Exception raised for document store failures.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying error.
    """

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached."""

    code = "unavailable"


class DocumentNotFoundError(StoreError):
    """Raised when updating a document that does not exist."""


@dataclass(frozen=True)
class FieldFilter:
    """Equality or membership filter on a top-level field."""

    field: str
    op: Literal["==", "in"]
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        """Check whether a document satisfies the filter."""
        if self.field not in data:
            return False
        actual = data[self.field]
        if self.op == "in":
            return actual in self.value
        return actual == self.value


def where(field: str, value: Any) -> FieldFilter:
    """Shorthand for an equality filter."""
    return FieldFilter(field, "==", value)


@dataclass
class DocumentSnapshot:
    """A document as read from the store.

    Attributes:
        id: Document id.
        data: Document fields, or None if it does not exist.
    """

    id: str
    data: dict[str, Any] | None

    @property
    def exists(self) -> bool:
        """Whether the document exists."""
        return self.data is not None


QueryListener = Callable[[list[DocumentSnapshot]], None]
DocumentListener = Callable[[DocumentSnapshot], None]
ErrorListener = Callable[[Exception], None]


class WatchHandle:
    """Handle of a live watch. Closing is idempotent."""

    def __init__(self, on_close: Callable[[], None], description: str = "") -> None:
        self._on_close = on_close
        self._closed = False
        self.description = description

    @property
    def closed(self) -> bool:
        """Whether the watch has been released."""
        return self._closed

    def close(self) -> None:
        """Release the watch."""
        if self._closed:
            return
        self._closed = True
        self._on_close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<WatchHandle {self.description} ({state})>"


def apply_query(
    snapshots: list[DocumentSnapshot],
    filters: Sequence[FieldFilter] = (),
    order_by: str | None = None,
    descending: bool = False,
    limit: int | None = None,
) -> list[DocumentSnapshot]:
    """Filter, order and limit snapshots the way a store query would.

    Documents missing the ``order_by`` field sort first (ascending).
    """
    results = [
        snap
        for snap in snapshots
        if snap.data is not None and all(f.matches(snap.data) for f in filters)
    ]
    if order_by is not None:
        results.sort(
            key=lambda snap: (order_by in snap.data, snap.data.get(order_by, 0)),  # type: ignore[union-attr]
            reverse=descending,
        )
    else:
        results.sort(key=lambda snap: snap.id)
    if limit is not None:
        results = results[:limit]
    return results


class DocumentStore(ABC):
    """Abstract document store with realtime watches."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Read one document.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
        ...

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Create or overwrite a document (or merge fields into it)."""
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge fields into an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document.

        Returns:
            True if a document was deleted.
        """
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        """Run a one-shot query."""
        ...

    @abstractmethod
    def watch_query(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        on_next: QueryListener,
        on_error: ErrorListener,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> WatchHandle:
        """Attach a realtime query watch.

        ``on_next`` receives the full current result set once on attach and
        again whenever it changes.
        """
        ...

    @abstractmethod
    def watch_document(
        self,
        collection: str,
        doc_id: str,
        on_next: DocumentListener,
        on_error: ErrorListener,
    ) -> WatchHandle:
        """Attach a realtime watch on one document."""
        ...

    async def close(self) -> None:
        """Release store resources."""
        return None
