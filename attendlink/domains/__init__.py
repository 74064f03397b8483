# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services for AttendLink.

- identity: canonical id resolution and account lookup
- parent_relation: link lifecycle
- inbox: notification fan-out
- conversation: thread ids and cleanup
- reconciliation: merged realtime relationship view
- offline: cache-first loading
- unread: unread aggregation
"""
