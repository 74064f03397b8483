# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identifier helpers shared by every linking component.

Accounts are known by two ids: the opaque internal id issued by the auth
provider and the human-visible canonical id (``NNNN-NNNNN``). Historical
records mix both forms, so comparisons must accept either.
"""

import re

CANONICAL_SEPARATOR = "-"
CANONICAL_ID_PATTERN = re.compile(r"^\d{4}-\d{5}$")
_LINK_KEY_PATTERN = re.compile(r"^(\d{4}-\d{5})-(\d{4}-\d{5})$")


def looks_canonical(value: str | None) -> bool:
    """Check whether a value is in canonical form.

    Internal ids never contain the separator, so its presence is what the
    clients have always used to tell the two forms apart.
    """
    return bool(value) and CANONICAL_SEPARATOR in value  # type: ignore[operator]


def is_canonical_format(value: str | None) -> bool:
    """Strictly validate the ``NNNN-NNNNN`` canonical format."""
    return bool(value) and CANONICAL_ID_PATTERN.match(value.strip()) is not None  # type: ignore[union-attr]


def normalize_id(value: str | None) -> str:
    """Strip whitespace and separators for form-insensitive comparison."""
    if not value:
        return ""
    return str(value).replace(CANONICAL_SEPARATOR, "").strip()


def ids_match(left: str | None, right: str | None) -> bool:
    """Compare two ids accepting either canonical or separator-free form.

    Args:
        left: First id.
        right: Second id.

    Returns:
        True if both are non-empty and equal exactly or after normalization.
    """
    if not left or not right:
        return False
    return left == right or normalize_id(left) == normalize_id(right)


def build_link_key(
    parent_internal_id: str,
    student_internal_id: str,
    parent_canonical_id: str | None = None,
    student_canonical_id: str | None = None,
) -> str:
    """Build the deterministic key of a parent-student link.

    Both canonical ids present gives ``parentCanonical-studentCanonical``;
    otherwise the internal ids are used.
    """
    if looks_canonical(parent_canonical_id) and looks_canonical(student_canonical_id):
        return f"{parent_canonical_id}{CANONICAL_SEPARATOR}{student_canonical_id}"
    return f"{parent_internal_id}{CANONICAL_SEPARATOR}{student_internal_id}"


def parse_link_key(link_key: str | None) -> tuple[str, str] | None:
    """Extract ``(parent_canonical, student_canonical)`` from a canonical link key.

    Returns:
        The two canonical ids, or None for internal-id keys.
    """
    if not link_key:
        return None
    match = _LINK_KEY_PATTERN.match(link_key)
    if match is None:
        return None
    return match.group(1), match.group(2)
