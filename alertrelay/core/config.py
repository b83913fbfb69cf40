"""Pydantic settings loaded from YAML configuration with environment overrides."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr, field_validator

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

_BOT_TOKEN_PATTERN = re.compile(r"^\d+:[A-Za-z0-9_-]+$")


class TelegramConfig(BaseModel):
    """Telegram Bot API configuration."""

    bot_token: SecretStr = SecretStr("")
    chat_id: int | None = None
    authorized_users: list[str] = []
    timeout_secs: float = 60.0
    poll_timeout_secs: int = 30
    api_base: str = "https://api.telegram.org"

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token.get_secret_value())

    @field_validator("authorized_users", mode="before")
    @classmethod
    def _split_users(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, list):
            return [str(v).strip() for v in value if str(v).strip()]
        return value


class ServerConfig(BaseModel):
    """Inbound HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 3000
    webhook_secret: SecretStr = SecretStr("")
    request_timeout_secs: float = 30.0
    max_body_bytes: int = 10 * 1024 * 1024


class DatabaseConfig(BaseModel):
    """SQLite alert store configuration."""

    path: str = "data/alerts.db"
    busy_timeout_ms: int = 10000


class DisplayConfig(BaseModel):
    """How timestamps are rendered in chat messages."""

    timezone: str = "UTC"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    environment: str = "development"
    telegram: TelegramConfig = TelegramConfig()
    server: ServerConfig = ServerConfig()
    database: DatabaseConfig = DatabaseConfig()
    display: DisplayConfig = DisplayConfig()
    logging: LoggingConfig = LoggingConfig()


def _ms_to_secs(raw: str) -> float | None:
    try:
        return int(raw) / 1000.0
    except ValueError:
        return None


def _apply_env_overrides(data: dict[str, Any], env: dict[str, str]) -> dict[str, Any]:
    """Overlay deployment environment variables onto the YAML data."""

    def section(name: str) -> dict[str, Any]:
        current = data.get(name)
        if not isinstance(current, dict):
            current = {}
            data[name] = current
        return current

    if env.get("BOT_TOKEN"):
        section("telegram")["bot_token"] = env["BOT_TOKEN"].strip()
    if env.get("CHAT_ID"):
        try:
            section("telegram")["chat_id"] = int(float(env["CHAT_ID"].strip()))
        except ValueError:
            pass
    if env.get("AUTHORIZED_USERS"):
        section("telegram")["authorized_users"] = env["AUTHORIZED_USERS"]
    if env.get("TELEGRAM_TIMEOUT"):
        secs = _ms_to_secs(env["TELEGRAM_TIMEOUT"])
        if secs:
            section("telegram")["timeout_secs"] = secs
    if env.get("WEBHOOK_SECRET"):
        section("server")["webhook_secret"] = env["WEBHOOK_SECRET"].strip()
    if env.get("HOST"):
        section("server")["host"] = env["HOST"]
    if env.get("PORT", "").isdigit():
        section("server")["port"] = int(env["PORT"])
    if env.get("WEBHOOK_TIMEOUT"):
        secs = _ms_to_secs(env["WEBHOOK_TIMEOUT"])
        if secs:
            section("server")["request_timeout_secs"] = secs
    if env.get("DATABASE_PATH"):
        section("database")["path"] = env["DATABASE_PATH"]
    if env.get("LOG_LEVEL"):
        section("logging")["level"] = env["LOG_LEVEL"]
    if env.get("DISPLAY_TIMEZONE"):
        section("display")["timezone"] = env["DISPLAY_TIMEZONE"]
    if env.get("APP_ENV"):
        data["environment"] = env["APP_ENV"]
    return data


def load_settings(
    path: str | Path | None = None,
    env: dict[str, str] | None = None,
) -> Settings:
    """Load settings from a YAML file, apply env overrides and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.
        env: Environment mapping. Defaults to ``os.environ``.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    data = _apply_env_overrides(data, dict(os.environ) if env is None else env)
    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None


def validate_settings(settings: Settings) -> tuple[list[str], list[str]]:
    """Return ``(warnings, errors)`` describing configuration problems."""
    warnings: list[str] = []
    errors: list[str] = []

    token = settings.telegram.bot_token.get_secret_value()
    if not token:
        errors.append("BOT_TOKEN is required for Telegram functionality")
    elif not _BOT_TOKEN_PATTERN.match(token):
        warnings.append("BOT_TOKEN format appears invalid (expected <bot_id>:<bot_secret>)")

    secret = settings.server.webhook_secret.get_secret_value()
    if not secret:
        warnings.append("WEBHOOK_SECRET not set - webhook authentication disabled")
    elif len(secret) < 8:
        warnings.append("WEBHOOK_SECRET is too short, recommend at least 8 characters")

    chat_id = settings.telegram.chat_id
    if chat_id is None:
        warnings.append("CHAT_ID not set - alerts will not be sent to Telegram")
    elif chat_id > 0:
        warnings.append(
            f"CHAT_ID {chat_id} appears to be a user ID, group/channel IDs are negative"
        )

    if not settings.telegram.authorized_users:
        warnings.append("AUTHORIZED_USERS not set - bot commands will be public")

    return warnings, errors
