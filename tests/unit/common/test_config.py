"""Tests for settings and logging setup."""

import logging
import uuid
from datetime import timedelta

import pytest

from heritage.common.logger import configure_logging
from heritage.core.config import Settings
from heritage.core.security import create_access_token, decode_token


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch):
        """Test defaults when nothing is configured."""
        monkeypatch.delenv("HERITAGE_DATABASE_URL", raising=False)
        settings = Settings(_env_file=None)

        assert settings.database_url == "sqlite:///./heritage.db"
        assert settings.algorithm == "HS256"
        assert settings.webhook_urls_list == []

    def test_env_prefix(self, monkeypatch):
        """Test HERITAGE_ variables override defaults."""
        monkeypatch.setenv("HERITAGE_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("HERITAGE_WEBHOOK_MAX_RETRIES", "5")
        settings = Settings(_env_file=None)

        assert settings.log_level == "DEBUG"
        assert settings.webhook_max_retries == 5

    def test_webhook_list(self, monkeypatch):
        """Test comma separated webhook URLs."""
        monkeypatch.setenv("HERITAGE_WEBHOOK_URLS", "https://a.example.org/hook, ,https://b.example.org/hook ")
        settings = Settings(_env_file=None)

        assert settings.webhook_urls_list == ["https://a.example.org/hook", "https://b.example.org/hook"]


class TestLogging:
    """Tests for logging configuration."""

    def settings(self, tmp_path, **overrides):
        values = dict(log_level="INFO", log_dir=str(tmp_path), file_logging=False)
        values.update(overrides)
        return Settings(_env_file=None, **values)

    def test_level_from_settings(self, tmp_path):
        name = f"heritage-test-{uuid.uuid4().hex}"
        logger = configure_logging(self.settings(tmp_path, log_level="debug"), name=name)

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_reconfigure_replaces_handlers(self, tmp_path):
        name = f"heritage-test-{uuid.uuid4().hex}"
        configure_logging(self.settings(tmp_path), name=name)
        logger = configure_logging(self.settings(tmp_path, log_level="WARNING"), name=name)

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING

    def test_file_logging(self, tmp_path):
        name = f"heritage-test-{uuid.uuid4().hex}"
        logger = configure_logging(self.settings(tmp_path, file_logging=True), name=name, console=False)
        logging.getLogger(f"{name}.core.gate").info("Denied first_approve")
        for handler in logger.handlers:
            handler.flush()

        assert f"[INFO] [{name}.core.gate] Denied first_approve" in (tmp_path / f"{name}.log").read_text()

    def test_invalid_level(self, tmp_path):
        with pytest.raises(ValueError):
            configure_logging(self.settings(tmp_path, log_level="LOUD"), name="heritage-test-invalid")


class TestTokens:
    """Tests for bearer token handling."""

    def test_round_trip(self):
        user_id = uuid.uuid4()
        assert decode_token(create_access_token(user_id)) == user_id

    def test_expired(self):
        token = create_access_token(uuid.uuid4(), expires_delta=timedelta(minutes=-1))
        assert decode_token(token) is None

    def test_garbage(self):
        assert decode_token("not.a.token") is None
