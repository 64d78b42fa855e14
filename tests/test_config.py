"""Tests for environment-driven settings."""

import pytest

from warelay.config import ConfigError, Settings

REQUIRED = {
    "META_ACCESS_TOKEN": "token",
    "META_PHONE_NUMBER_ID": "123456789",
    "BOT_WEBHOOK_URL": "https://bot.example.com/webhook",
    "STORAGE_BUCKET": "relay-media",
}


class TestFromEnv:
    def test_defaults(self):
        settings = Settings.from_env(REQUIRED)
        assert settings.graph_base_url == "https://graph.facebook.com/v18.0"
        assert settings.storage_provider == "gcs"
        assert settings.dedupe_ttl == 120.0
        assert settings.notice_window == 60.0
        assert settings.menu_max_entries == 10_000
        assert settings.native_media_upload is False
        assert settings.list_button_label == "Select one"

    def test_overrides(self):
        env = {
            **REQUIRED,
            "META_GRAPH_API_VERSION": "v21.0",
            "STORAGE_PROVIDER": "S3",
            "WHATSAPP_UPLOAD_MEDIA": "true",
            "SEND_TIMEOUT_SECONDS": "2.5",
            "MENU_MAX_ENTRIES": "50",
        }
        settings = Settings.from_env(env)
        assert settings.graph_base_url.endswith("/v21.0")
        assert settings.storage_provider == "s3"
        assert settings.native_media_upload is True
        assert settings.send_timeout == 2.5
        assert settings.menu_max_entries == 50

    def test_reads_os_environ(self, monkeypatch):
        for name, value in REQUIRED.items():
            monkeypatch.setenv(name, value)
        assert Settings.from_env().phone_number_id == "123456789"

    @pytest.mark.parametrize("missing", sorted(REQUIRED))
    def test_missing_required(self, missing):
        env = {name: value for name, value in REQUIRED.items() if name != missing}
        with pytest.raises(ConfigError, match=missing):
            Settings.from_env(env)

    def test_invalid_provider(self):
        with pytest.raises(ConfigError, match="STORAGE_PROVIDER"):
            Settings.from_env({**REQUIRED, "STORAGE_PROVIDER": "azure"})

    @pytest.mark.parametrize("value", ["abc", "0", "-5"])
    def test_invalid_number(self, value):
        with pytest.raises(ConfigError, match="DEDUPE_TTL_SECONDS"):
            Settings.from_env({**REQUIRED, "DEDUPE_TTL_SECONDS": value})

    def test_list_button_label_override(self):
        settings = Settings.from_env({**REQUIRED, "LIST_BUTTON_LABEL": "Choose an option"})
        assert settings.list_button_label == "Choose an option"

    def test_blank_list_button_label_uses_default(self):
        settings = Settings.from_env({**REQUIRED, "LIST_BUTTON_LABEL": "   "})
        assert settings.list_button_label == "Select one"

    def test_list_button_label_too_long(self):
        with pytest.raises(ConfigError, match="LIST_BUTTON_LABEL"):
            Settings.from_env({**REQUIRED, "LIST_BUTTON_LABEL": "x" * 21})

    def test_config_error_is_runtime_error(self):
        assert issubclass(ConfigError, RuntimeError)
