# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Optimistic overlay of locally issued link requests.

A request shows up as pending in the sender's UI before the store has
confirmed it. The overlay holds those optimistic records separately from
confirmed state: an entry is cleared once a server read contains the
record or shows it answered, and rolled back if the write is rejected or
the request is cancelled.
"""

import logging
from typing import Iterable

from attendlink.models import Account, LinkRecord

logger = logging.getLogger(__name__)


class PendingOverlay:
    """Locally issued pending requests not yet confirmed by the store."""

    def __init__(self) -> None:
        self._records: dict[str, LinkRecord] = {}

    def __contains__(self, link_key: object) -> bool:
        return link_key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def add(self, record: LinkRecord) -> None:
        """Show a request optimistically."""
        self._records[record.key] = record

    def rollback(self, link_key: str) -> bool:
        """Withdraw an optimistic request.

        Returns:
            True if the request was in the overlay.
        """
        removed = self._records.pop(link_key, None) is not None
        if removed:
            logger.debug("Rolled back optimistic request %s", link_key)
        return removed

    def settle(self, link_key: str) -> None:
        """Clear a request the store has answered (accepted, declined or unlinked)."""
        if self._records.pop(link_key, None) is not None:
            logger.debug("Cleared settled request %s", link_key)

    def merge(
        self,
        confirmed: list[LinkRecord],
        account: Account | None = None,
        settled: Iterable[str] = (),
    ) -> list[LinkRecord]:
        """Merge confirmed pending records with the overlay.

        Overlay entries present in ``confirmed`` or ``settled`` are cleared;
        the rest are appended after the confirmed records.

        Args:
            confirmed: Pending records read from the store.
            account: Only include overlay records this account is party to.
            settled: Keys the store shows as no longer pending.
        """
        confirmed_keys = {record.key for record in confirmed}.union(settled)
        for key in confirmed_keys.intersection(self._records):
            del self._records[key]
        optimistic = [
            record
            for record in self._records.values()
            if account is None or record.is_party(account)
        ]
        return [*confirmed, *optimistic]
