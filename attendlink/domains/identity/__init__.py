# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity domain package.

This package provides:
- Canonical id resolution with a degraded fallback
- Account lookup by either id form
- Form-insensitive id comparison
"""

from attendlink.domains.identity.directory import AccountDirectory
from attendlink.domains.identity.service import IdentityResolver, ResolutionSource, ResolvedId
from attendlink.models.identifiers import ids_match, is_canonical_format, looks_canonical

__all__ = [
    "AccountDirectory",
    "IdentityResolver",
    "ResolvedId",
    "ResolutionSource",
    "ids_match",
    "looks_canonical",
    "is_canonical_format",
]
