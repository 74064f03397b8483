# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bookkeeping for per-relationship child subscriptions."""

import logging
from collections.abc import Iterable
from typing import Protocol

logger = logging.getLogger(__name__)


class Releasable(Protocol):
    """Anything holding a live subscription."""

    def close(self) -> None: ...


class SubscriptionRegistry:
    """Tracks the handles attached for each relationship key.

    Detaching releases every handle of the key. Detaching a key that is
    not attached (or was already detached) does nothing.
    """

    def __init__(self) -> None:
        self._handles: dict[str, list[Releasable]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    @property
    def keys(self) -> set[str]:
        """Currently attached keys."""
        return set(self._handles)

    def attach(self, key: str, handles: Iterable[Releasable]) -> None:
        """Record the handles of a key, releasing any previously attached ones."""
        self.detach(key)
        self._handles[key] = list(handles)
        logger.debug("Attached %d child subscriptions for %s", len(self._handles[key]), key)

    def detach(self, key: str) -> bool:
        """Release the handles of a key.

        Returns:
            True if the key was attached.
        """
        handles = self._handles.pop(key, None)
        if handles is None:
            return False
        for handle in handles:
            try:
                handle.close()
            except Exception as e:
                logger.error("Failed to release subscription for %s: %s", key, str(e), exc_info=True)
        logger.debug("Detached child subscriptions for %s", key)
        return True

    def detach_all(self) -> int:
        """Release every handle.

        Returns:
            Number of keys detached.
        """
        keys = list(self._handles)
        for key in keys:
            self.detach(key)
        return len(keys)
