# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core configuration and error types for AttendLink."""

from attendlink.core.errors import (
    ErrorKind,
    InvalidLinkStateError,
    LinkingError,
    LinkNotFoundError,
    NoConnectivityError,
    NotAuthorizedError,
    is_connectivity_error,
)

__all__ = [
    "ErrorKind",
    "LinkingError",
    "NoConnectivityError",
    "NotAuthorizedError",
    "LinkNotFoundError",
    "InvalidLinkStateError",
    "is_connectivity_error",
]
