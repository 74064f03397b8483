# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push notification channel using Firebase Cloud Messaging.

This channel sends push notifications to mobile devices using the FCM
HTTP v1 API. It requires valid Firebase service account credentials.

Configuration (via environment variables):
- FIREBASE_CREDENTIALS_PATH: Path to service account JSON file
- FIREBASE_PROJECT_ID: Firebase project ID
- PUSH_ENABLED, PUSH_TIMEOUT, PUSH_ANDROID_CHANNEL_ID
"""

import asyncio
import os
from typing import Any

import httpx
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from attendlink.core.config.settings import PushSettings
from attendlink.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    NotificationPayload,
)

# FCM HTTP v1 API endpoint template
FCM_API_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"

# FCM registration tokens are 100-200 characters long
MIN_TOKEN_LENGTH = 100
MAX_TOKEN_LENGTH = 200


class PushChannel(BaseChannel):
    """Push notification channel using Firebase Cloud Messaging.

    Tokens are taken from ``payload.push_tokens``. Each token gets its own
    request; the result is SENT if at least one request succeeded.
    """

    PRIORITY_MAP = {
        "low": "normal",
        "normal": "high",
        "high": "high",
    }

    def __init__(self, settings: PushSettings) -> None:
        """Initialize the push channel.

        Args:
            settings: Push configuration.
        """
        super().__init__()
        self._settings = settings
        self._credentials: Any = None
        self._initialized = False
        self._init_error: str | None = None

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.PUSH

    async def _ensure_initialized(self) -> bool:
        """Ensure Firebase credentials are loaded.

        Returns:
            True if initialization succeeded.
        """
        if self._initialized:
            return True

        if self._init_error:
            return False

        if not self._settings.enabled:
            self._init_error = "Push notifications disabled"
            return False

        credentials_path = self._settings.firebase_credentials_path
        project_id = self._settings.firebase_project_id

        if not credentials_path or not project_id:
            self._init_error = "Firebase credentials not configured"
            self.logger.warning(
                "Push notifications disabled: FIREBASE_CREDENTIALS_PATH or "
                "FIREBASE_PROJECT_ID not set"
            )
            return False

        if not os.path.exists(credentials_path):
            self._init_error = f"Credentials file not found: {credentials_path}"
            self.logger.error(self._init_error)
            return False

        try:
            self._credentials = service_account.Credentials.from_service_account_file(
                credentials_path,
                scopes=[FCM_SCOPE],
            )
        except (ValueError, OSError) as e:
            self._init_error = f"Failed to initialize: {str(e)}"
            self.logger.error(self._init_error, exc_info=True)
            return False

        self._initialized = True
        self.logger.info("FCM push channel initialized for project %s", project_id)
        return True

    async def _get_access_token(self) -> str | None:
        """Get OAuth2 access token for FCM API.

        Returns:
            Access token string or None if failed.
        """
        if not self._credentials:
            return None

        try:
            # Credential refresh is blocking, run it off the event loop
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._credentials.refresh, Request())
            return self._credentials.token
        except Exception as e:
            self.logger.error("Failed to get FCM access token: %s", str(e))
            return None

    @staticmethod
    def is_valid_token(token: str | None) -> bool:
        """Check whether a value looks like an FCM registration token."""
        if not token or not isinstance(token, str):
            return False
        token = token.strip()
        return MIN_TOKEN_LENGTH <= len(token) <= MAX_TOKEN_LENGTH

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        """Send push notification via FCM.

        Args:
            payload: The notification payload.

        Returns:
            ChannelResult with delivery status.
        """
        if not await self._ensure_initialized():
            return self.create_skipped_result(
                self._init_error or "Push channel not configured"
            )

        tokens = [token for token in payload.push_tokens if self.is_valid_token(token)]
        if not tokens:
            return self.create_skipped_result("No push tokens available")

        access_token = await self._get_access_token()
        if not access_token:
            return self.create_failure_result("Failed to obtain access token")

        results: list[dict[str, Any]] = []
        async with httpx.AsyncClient(timeout=self._settings.timeout) as client:
            for token in tokens:
                results.append(
                    await self._send_to_token(client, token, payload, access_token)
                )

        success_count = sum(1 for result in results if result.get("success"))
        failure_count = len(results) - success_count

        if success_count == 0:
            return self.create_failure_result(
                f"All {failure_count} push notifications failed",
                metadata={"results": results},
            )

        return self.create_success_result(
            message_id=next(
                (r.get("message_id") for r in results if r.get("success")), None
            ),
            metadata={
                "success_count": success_count,
                "failure_count": failure_count,
                "results": results,
            },
        )

    async def _send_to_token(
        self,
        client: httpx.AsyncClient,
        token: str,
        payload: NotificationPayload,
        access_token: str,
    ) -> dict[str, Any]:
        """Send notification to a single device token.

        Returns:
            Result dictionary with success status.
        """
        masked = token[:20] + "..."
        url = FCM_API_URL.format(project_id=self._settings.firebase_project_id)
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

        try:
            response = await client.post(
                url,
                headers=headers,
                json={"message": self._build_fcm_message(token, payload)},
            )
        except httpx.HTTPError as e:
            self.logger.error("Failed to send push to token: %s", str(e))
            return {"success": False, "token": masked, "error": str(e)}

        if response.status_code == 200:
            message_id = response.json().get("name", "").split("/")[-1]
            self.logger.debug("Push sent successfully to %s: %s", masked, message_id)
            return {"success": True, "token": masked, "message_id": message_id}

        self.logger.warning(
            "FCM request failed (%d): %s",
            response.status_code,
            response.text,
        )
        return {
            "success": False,
            "token": masked,
            "error": response.text,
            "status_code": response.status_code,
        }

    def _build_fcm_message(
        self,
        token: str,
        payload: NotificationPayload,
    ) -> dict[str, Any]:
        """Build FCM message structure.

        FCM requires every data value to be a string.
        """
        data = {key: str(value) for key, value in payload.data.items() if value is not None}
        data["type"] = payload.notification_type
        if payload.entry_id:
            data["alertId"] = payload.entry_id
        if payload.link_key:
            data["linkKey"] = payload.link_key

        priority = self.PRIORITY_MAP.get(payload.priority, "high")

        return {
            "token": token,
            "notification": {
                "title": payload.title,
                "body": payload.message,
            },
            "data": data,
            "android": {
                "priority": priority,
                "notification": {
                    "channel_id": self._settings.android_channel_id,
                    "sound": "default",
                },
            },
            "apns": {
                "headers": {
                    "apns-priority": "10" if priority == "high" else "5",
                },
                "payload": {
                    "aps": {
                        "sound": "default",
                        "badge": 1,
                    },
                },
            },
        }
