# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Inbox domain package: de-duplicated inbox writes and push fan-out."""

from attendlink.domains.inbox.service import InboxService

__all__ = ["InboxService"]
