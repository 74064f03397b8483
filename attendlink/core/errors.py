# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Error taxonomy shared by the linking services.

Errors are typed by kind so callers (screens, background jobs) can decide
how to present them without parsing messages. Duplicate requests and
degraded identity resolution are not errors: they are reported back as
notices on the action result.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of linking failures."""

    CONNECTIVITY = "connectivity"
    AMBIGUITY = "ambiguity"
    DUPLICATE = "duplicate"
    NOT_AUTHORIZED = "not_authorized"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"


class LinkingError(Exception):
    """Base exception for linking subsystem errors.

    Attributes:
        message: Human-readable error description.
        kind: Error classification.
    """

    kind: ErrorKind = ErrorKind.INVALID_STATE

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class NoConnectivityError(LinkingError):
    """Raised when a mutation is attempted without connectivity."""

    kind = ErrorKind.CONNECTIVITY


class NotAuthorizedError(LinkingError):
    """Raised when the actor may not perform the operation."""

    kind = ErrorKind.NOT_AUTHORIZED


class LinkNotFoundError(LinkingError):
    """Raised when a link record does not exist."""

    kind = ErrorKind.NOT_FOUND


class InvalidLinkStateError(LinkingError):
    """Raised when the link record is not in the required state."""

    kind = ErrorKind.INVALID_STATE


_CONNECTIVITY_CODES = (
    "unavailable",
    "deadline-exceeded",
    "network-request-failed",
)


def is_connectivity_error(error: BaseException | None) -> bool:
    """Check whether an exception was caused by lost connectivity.

    Args:
        error: The exception to classify.

    Returns:
        True if the error looks like a transport or availability failure.
    """
    if error is None:
        return False

    # Imported lazily to keep this module free of infrastructure imports
    from attendlink.infrastructure.store.base import StoreUnavailableError

    if isinstance(error, (NoConnectivityError, StoreUnavailableError)):
        return True
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True

    code = str(getattr(error, "code", "") or "").lower()
    if any(marker in code for marker in _CONNECTIVITY_CODES):
        return True

    message = str(error).lower()
    return (
        "offline" in message
        or "unavailable" in message
        or ("network" in message and "error" in message)
        or ("connection" in message and "failed" in message)
    )
