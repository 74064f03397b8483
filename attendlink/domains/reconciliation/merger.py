# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Merges relationship lists arriving from several sources.

The same relationship can be reached through a watch on the viewer's
internal id and through a watch on the viewer's canonical id, and on the
other side a counterpart may be recorded under either of its ids. All
sources feed one map:

- an emission from a source replaces everything that source contributed
  before, so a relationship removed from one source survives only while
  another source still reports it;
- entries are keyed by the counterpart's normalized identity, and every
  id form seen for a counterpart is an alias of the same entry;
- when two sources report the same counterpart the latest write wins.
"""

from collections.abc import Iterable

from attendlink.models import Relationship, normalize_id


class RelationshipMerger:
    """Single reducer over all relationship sources."""

    def __init__(self) -> None:
        self._values: dict[str, Relationship] = {}
        self._owners: dict[str, set[str]] = {}
        self._contributions: dict[str, set[str]] = {}
        self._aliases: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._values)

    def _aliases_of(self, relationship: Relationship) -> list[str]:
        return [
            normalize_id(candidate)
            for candidate in (
                relationship.counterpart_internal_id,
                relationship.counterpart_canonical_id,
            )
            if candidate
        ]

    def _key_for(self, relationship: Relationship) -> str:
        aliases = self._aliases_of(relationship)
        for alias in aliases:
            key = self._aliases.get(alias)
            if key is not None:
                return key
        return aliases[0] if aliases else normalize_id(relationship.link_key)

    def apply(self, source: str, relationships: Iterable[Relationship]) -> bool:
        """Replace one source's contribution.

        Args:
            source: Name of the emitting source.
            relationships: The source's complete current result.

        Returns:
            True if the merged view changed.
        """
        before = self.signature()

        incoming: dict[str, Relationship] = {}
        for relationship in relationships:
            key = self._key_for(relationship)
            incoming[key] = relationship
            for alias in self._aliases_of(relationship):
                self._aliases[alias] = key

        for key in self._contributions.get(source, set()) - set(incoming):
            self._release(source, key)

        for key, relationship in incoming.items():
            self._values[key] = relationship
            self._owners.setdefault(key, set()).add(source)
        self._contributions[source] = set(incoming)

        return self.signature() != before

    def _release(self, source: str, key: str) -> None:
        owners = self._owners.get(key)
        if owners is None:
            return
        owners.discard(source)
        if owners:
            return
        del self._owners[key]
        self._values.pop(key, None)
        for alias in [alias for alias, target in self._aliases.items() if target == key]:
            del self._aliases[alias]

    def clear(self) -> None:
        """Forget every source."""
        self._values.clear()
        self._owners.clear()
        self._contributions.clear()
        self._aliases.clear()

    @property
    def keys(self) -> set[str]:
        """Identity keys of the merged entries."""
        return set(self._values)

    def get(self, key: str) -> Relationship | None:
        """Look up an entry by any of its id forms."""
        normalized = normalize_id(key)
        return self._values.get(self._aliases.get(normalized, normalized))

    def items(self) -> list[tuple[str, Relationship]]:
        """Merged entries with their keys, most recently linked first."""
        return sorted(
            self._values.items(),
            key=lambda item: (-(item[1].linked_at or 0), item[1].display_name.lower(), item[0]),
        )

    def values(self) -> list[Relationship]:
        """Merged relationships, most recently linked first."""
        return [relationship for _, relationship in self.items()]

    def signature(self) -> list[tuple[str, dict]]:
        """Comparable form of the merged view."""
        return [(key, relationship.model_dump()) for key, relationship in self.items()]
