# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task infrastructure."""

from attendlink.infrastructure.background.queue import BackgroundTaskQueue

__all__ = ["BackgroundTaskQueue"]
