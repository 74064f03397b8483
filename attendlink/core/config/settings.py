# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for AttendLink.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from attendlink.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """Redis configuration for the document store and the offline cache.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
        url: Full Redis connection URL.
        max_connections: Maximum connection pool size.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 6379
    password: SecretStr = SecretStr("")
    database: int = 0
    max_connections: int = 20

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        if pwd:
            return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"
        return f"redis://{self.host}:{self.port}/{self.database}"


class StoreSettings(BaseSettings):
    """Shared document store configuration.

    Collection names mirror the layout used by the mobile clients so both
    sides read and write the same documents.

    Attributes:
        backend: Which document store implementation to use.
        key_prefix: Prefix for every Redis key owned by the store.
        users_collection: Account documents, keyed by internal id.
        links_collection: Link records, keyed by link key.
        parent_inbox_collection: Parent inboxes, keyed by canonical id.
        student_inbox_collection: Student inboxes, keyed by canonical id.
        conversations_collection: Conversation threads and their messages.
    """

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        extra="ignore",
    )

    backend: Literal["memory", "redis"] = "memory"
    key_prefix: str = "attendlink"
    users_collection: str = "users"
    links_collection: str = "parent_student_links"
    parent_inbox_collection: str = "parent_alerts"
    student_inbox_collection: str = "student_alerts"
    conversations_collection: str = "conversations"


class OfflineCacheSettings(BaseSettings):
    """Local key-value cache used while the device is offline.

    Attributes:
        backend: Which local storage implementation to use.
        key_prefix: Prefix for cached snapshot keys.
    """

    model_config = SettingsConfigDict(
        env_prefix="OFFLINE_CACHE_",
        extra="ignore",
    )

    backend: Literal["memory", "redis"] = "memory"
    key_prefix: str = "offline"


class PushSettings(BaseSettings):
    """Push notification (Firebase Cloud Messaging) configuration.

    Attributes:
        enabled: Whether push dispatch is attempted at all.
        firebase_credentials_path: Path to the service account JSON file.
        firebase_project_id: Firebase project id.
        timeout: HTTP timeout for FCM requests in seconds.
        cooldown_seconds: Window in which a repeat push for the same
            entry and recipient is suppressed.
        android_channel_id: Android notification channel.
    """

    model_config = SettingsConfigDict(
        env_prefix="PUSH_",
        extra="ignore",
        populate_by_name=True,
    )

    enabled: bool = True
    firebase_credentials_path: str | None = Field(
        default=None,
        validation_alias="FIREBASE_CREDENTIALS_PATH",
    )
    firebase_project_id: str | None = Field(
        default=None,
        validation_alias="FIREBASE_PROJECT_ID",
    )
    timeout: float = 30.0
    cooldown_seconds: int = 300
    android_channel_id: str = "default"


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        redis: Redis settings.
        store: Document store settings.
        offline_cache: Offline cache settings.
        push: Push notification settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    redis: RedisSettings = Field(default_factory=RedisSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    offline_cache: OfflineCacheSettings = Field(default_factory=OfflineCacheSettings)
    push: PushSettings = Field(default_factory=PushSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with development defaults.
        """
        if self.environment == "production":
            if self.debug:
                raise ValueError(
                    "Debug mode must be disabled in production. Set DEBUG=false."
                )
            if self.store.backend == "memory":
                raise ValueError(
                    "The in-memory document store cannot be used in production. "
                    "Set STORE_BACKEND=redis."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
