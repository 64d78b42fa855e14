"""Relay settings loaded from the environment.

Required:
- META_ACCESS_TOKEN: Meta access token
- META_PHONE_NUMBER_ID: Meta phone number ID used for sends and uploads
- BOT_WEBHOOK_URL: bot backend webhook receiving canonical messages
- STORAGE_BUCKET: bucket holding relocated inbound media

Everything else has a default; see Settings.from_env().
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

DEFAULT_GRAPH_API_URL = "https://graph.facebook.com"
DEFAULT_GRAPH_API_VERSION = "v18.0"
DEFAULT_LIST_BUTTON_LABEL = "Select one"
LIST_BUTTON_LABEL_MAX_LENGTH = 20

StorageProvider = Literal["gcs", "s3"]

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""

    pass


def _as_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _as_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "")
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _as_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "")
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Process-wide relay configuration."""

    access_token: str
    phone_number_id: str
    bot_webhook_url: str
    storage_bucket: str
    graph_api_url: str = DEFAULT_GRAPH_API_URL
    graph_api_version: str = DEFAULT_GRAPH_API_VERSION
    verify_token: str = ""
    app_secret: str = ""
    bot_webhook_secret: str = ""
    storage_provider: StorageProvider = "gcs"
    aws_region: str = "us-east-1"
    signed_url_ttl: int = 3600
    native_media_upload: bool = False
    http_timeout: float = 10.0
    send_timeout: float = 15.0
    dedupe_ttl: float = 120.0
    notice_window: float = 60.0
    menu_session_ttl: float = 86400.0
    menu_max_entries: int = 10_000
    list_button_label: str = DEFAULT_LIST_BUTTON_LABEL

    @property
    def graph_base_url(self) -> str:
        """Graph API root including the version segment."""
        return f"{self.graph_api_url.rstrip('/')}/{self.graph_api_version}"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Args:
            env: Mapping to read instead of os.environ (tests).

        Raises:
            ConfigError: If a required variable is missing or a value is invalid.
        """
        env = os.environ if env is None else env

        required = {
            "META_ACCESS_TOKEN": env.get("META_ACCESS_TOKEN", ""),
            "META_PHONE_NUMBER_ID": env.get("META_PHONE_NUMBER_ID", ""),
            "BOT_WEBHOOK_URL": env.get("BOT_WEBHOOK_URL", ""),
            "STORAGE_BUCKET": env.get("STORAGE_BUCKET", ""),
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigError(f"Missing relay config: {', '.join(missing)} required")

        provider = env.get("STORAGE_PROVIDER", "gcs").strip().lower()
        if provider not in ("gcs", "s3"):
            raise ConfigError(f"STORAGE_PROVIDER must be 'gcs' or 's3', got {provider!r}")

        list_button_label = env.get("LIST_BUTTON_LABEL", "").strip() or DEFAULT_LIST_BUTTON_LABEL
        if len(list_button_label) > LIST_BUTTON_LABEL_MAX_LENGTH:
            raise ConfigError(
                f"LIST_BUTTON_LABEL must be at most {LIST_BUTTON_LABEL_MAX_LENGTH} characters, got {len(list_button_label)}"
            )

        return cls(
            access_token=required["META_ACCESS_TOKEN"],
            phone_number_id=required["META_PHONE_NUMBER_ID"],
            bot_webhook_url=required["BOT_WEBHOOK_URL"],
            storage_bucket=required["STORAGE_BUCKET"],
            graph_api_url=env.get("META_GRAPH_API_URL", DEFAULT_GRAPH_API_URL),
            graph_api_version=env.get("META_GRAPH_API_VERSION", DEFAULT_GRAPH_API_VERSION),
            verify_token=env.get("META_VERIFY_TOKEN", ""),
            app_secret=env.get("META_APP_SECRET", ""),
            bot_webhook_secret=env.get("BOT_WEBHOOK_SECRET", ""),
            storage_provider=provider,  # type: ignore[arg-type]
            aws_region=env.get("AWS_REGION", "us-east-1"),
            signed_url_ttl=_as_int(env, "SIGNED_URL_TTL_SECONDS", 3600),
            native_media_upload=_as_bool(env.get("WHATSAPP_UPLOAD_MEDIA", "")),
            http_timeout=_as_float(env, "HTTP_TIMEOUT_SECONDS", 10.0),
            send_timeout=_as_float(env, "SEND_TIMEOUT_SECONDS", 15.0),
            dedupe_ttl=_as_float(env, "DEDUPE_TTL_SECONDS", 120.0),
            notice_window=_as_float(env, "MENU_NOTICE_WINDOW_SECONDS", 60.0),
            menu_session_ttl=_as_float(env, "MENU_SESSION_TTL_SECONDS", 86400.0),
            menu_max_entries=_as_int(env, "MENU_MAX_ENTRIES", 10_000),
            list_button_label=list_button_label,
        )
