"""AttendLink identity resolution and relationship linking.

Links parent and student accounts of an attendance app: canonical id
resolution, link lifecycle, inbox fan-out, realtime reconciliation,
offline fallback and unread counts.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
