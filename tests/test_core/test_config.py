"""Tests for alertrelay/core/config.py — YAML loading, env overrides, validation."""

from __future__ import annotations

from pathlib import Path

import yaml

from alertrelay.core.config import (
    DatabaseConfig,
    ServerConfig,
    Settings,
    TelegramConfig,
    get_settings,
    load_settings,
    reset_settings,
    validate_settings,
)


def _write_yaml(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_server_defaults(self) -> None:
        cfg = ServerConfig()
        assert cfg.host == "0.0.0.0"
        assert cfg.port == 3000
        assert cfg.request_timeout_secs == 30.0
        assert cfg.webhook_secret.get_secret_value() == ""

    def test_database_defaults(self) -> None:
        assert DatabaseConfig().path == "data/alerts.db"

    def test_telegram_disabled_without_token(self) -> None:
        cfg = TelegramConfig()
        assert cfg.enabled is False
        assert cfg.chat_id is None
        assert cfg.authorized_users == []

    def test_settings_defaults(self) -> None:
        s = Settings()
        assert s.environment == "development"
        assert s.display.timezone == "UTC"
        assert s.logging.format == "json"


class TestYamlLoading:
    def test_load_from_yaml(self, tmp_path: Path) -> None:
        path = _write_yaml(
            tmp_path,
            {
                "telegram": {"bot_token": "123:abc", "chat_id": -1001},
                "server": {"port": 8080},
                "logging": {"level": "DEBUG"},
            },
        )
        s = load_settings(path, env={})
        assert s.telegram.bot_token.get_secret_value() == "123:abc"
        assert s.telegram.chat_id == -1001
        assert s.server.port == 8080
        assert s.logging.level == "DEBUG"

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        s = load_settings(tmp_path / "nope.yaml", env={})
        assert s.server.port == 3000

    def test_empty_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        s = load_settings(path, env={})
        assert s.database.path == "data/alerts.db"

    def test_secret_not_in_repr(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path, {"server": {"webhook_secret": "super-secret"}})
        s = load_settings(path, env={})
        assert "super-secret" not in repr(s.server)

    def test_authorized_users_from_list(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path, {"telegram": {"authorized_users": [123, "@bob"]}})
        s = load_settings(path, env={})
        assert s.telegram.authorized_users == ["123", "@bob"]


class TestEnvOverrides:
    def test_env_wins_over_yaml(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path, {"telegram": {"bot_token": "yaml-token"}})
        s = load_settings(path, env={"BOT_TOKEN": " 1:env "})
        assert s.telegram.bot_token.get_secret_value() == "1:env"

    def test_all_overrides(self, tmp_path: Path) -> None:
        env = {
            "CHAT_ID": "-100123",
            "AUTHORIZED_USERS": "111, @carol ,",
            "TELEGRAM_TIMEOUT": "15000",
            "WEBHOOK_SECRET": "s3cret-value",
            "HOST": "127.0.0.1",
            "PORT": "9000",
            "WEBHOOK_TIMEOUT": "5000",
            "DATABASE_PATH": "/tmp/x.db",
            "LOG_LEVEL": "warning",
            "APP_ENV": "production",
            "DISPLAY_TIMEZONE": "Asia/Jakarta",
        }
        s = load_settings(tmp_path / "none.yaml", env=env)
        assert s.telegram.chat_id == -100123
        assert s.telegram.authorized_users == ["111", "@carol"]
        assert s.telegram.timeout_secs == 15.0
        assert s.server.webhook_secret.get_secret_value() == "s3cret-value"
        assert s.server.host == "127.0.0.1"
        assert s.server.port == 9000
        assert s.server.request_timeout_secs == 5.0
        assert s.database.path == "/tmp/x.db"
        assert s.logging.level == "warning"
        assert s.environment == "production"
        assert s.display.timezone == "Asia/Jakarta"

    def test_bad_numbers_ignored(self, tmp_path: Path) -> None:
        env = {"CHAT_ID": "abc", "PORT": "http", "WEBHOOK_TIMEOUT": "soon"}
        s = load_settings(tmp_path / "none.yaml", env=env)
        assert s.telegram.chat_id is None
        assert s.server.port == 3000
        assert s.server.request_timeout_secs == 30.0


class TestCache:
    def test_get_settings_returns_cached(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path, {"server": {"port": 1234}})
        loaded = load_settings(path, env={})
        assert get_settings() is loaded

    def test_reset_clears_cache(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path, {"server": {"port": 1234}})
        loaded = load_settings(path, env={})
        reset_settings()
        load_settings(tmp_path / "none.yaml", env={})
        assert get_settings() is not loaded


class TestValidation:
    def _settings(self, **telegram: object) -> Settings:
        server = telegram.pop("server", {})
        return Settings(telegram=TelegramConfig(**telegram), server=ServerConfig(**server))  # type: ignore[arg-type]

    def test_missing_token_is_error(self) -> None:
        warnings, errors = validate_settings(Settings())
        assert errors == ["BOT_TOKEN is required for Telegram functionality"]
        assert "WEBHOOK_SECRET not set - webhook authentication disabled" in warnings

    def test_fully_configured_is_clean(self) -> None:
        s = self._settings(
            bot_token="123456:ABC-def_ghi",
            chat_id=-100123,
            authorized_users=["@alice"],
            server={"webhook_secret": "long-enough-secret"},
        )
        assert validate_settings(s) == ([], [])

    def test_positive_chat_id_warns(self) -> None:
        s = self._settings(bot_token="1:abc", chat_id=555, authorized_users=["1"])
        warnings, errors = validate_settings(s)
        assert errors == []
        assert any("appears to be a user ID" in w for w in warnings)

    def test_malformed_token_and_short_secret_warn(self) -> None:
        s = self._settings(
            bot_token="not-a-token",
            chat_id=-1,
            authorized_users=["1"],
            server={"webhook_secret": "short"},
        )
        warnings, _ = validate_settings(s)
        assert any("BOT_TOKEN format" in w for w in warnings)
        assert any("too short" in w for w in warnings)
