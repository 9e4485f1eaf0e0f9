import json

import pytest

from streamalert.config import Settings
from streamalert.errors import ConfigurationError
from streamalert.utils.channels import load_channels


@pytest.mark.unit
class TestSettings:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("PERSIST_TOKENS", "false")
        monkeypatch.setenv("NOTIFY_RETRIES", "3")

        config = Settings(_env_file=None)

        assert config.port == 8080
        assert config.persist_tokens is False
        assert config.notify_retries == 3
        assert config.twitch_client_id == "test-client-id"

    def test_public_base_url(self, test_settings):
        assert test_settings.public_base_url() == "https://alerts.example.com"
        assert test_settings.callback_url("twitch") == "https://alerts.example.com/events/twitch"

    def test_development_uses_localhost(self, test_settings):
        config = test_settings.model_copy(update={"environment": "development", "port": 4000})

        assert config.is_development
        assert config.callback_url("kick") == "http://localhost:4000/events/kick"

    def test_authorized_user_ids(self, test_settings):
        assert test_settings.authorized_kick_user_ids == ["42", "43"]
        assert test_settings.model_copy(
            update={"kick_authorized_user_ids": None}
        ).authorized_kick_user_ids == []

    def test_validate_required(self, test_settings):
        test_settings.validate_required()

        with pytest.raises(ConfigurationError, match="DISCORD_WEBHOOK_URL"):
            test_settings.model_copy(update={"discord_webhook_url": None}).validate_required()


@pytest.mark.unit
class TestLoadChannels:
    def test_reads_and_dedupes(self, tmp_path):
        path = tmp_path / "channels.json"
        path.write_text(json.dumps(["Alpha", " beta ", "alpha", ""]))

        assert load_channels(path) == ["Alpha", "beta"]

    def test_missing_required_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_channels(tmp_path / "channels.json")

    def test_missing_optional_file(self, tmp_path):
        assert load_channels(tmp_path / "kick_channels.json", required=False) == []

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "channels.json"
        path.write_text(json.dumps({"channels": ["alpha"]}))

        with pytest.raises(ConfigurationError):
            load_channels(path)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "channels.json"
        path.write_text("[alpha")

        with pytest.raises(ConfigurationError):
            load_channels(path)
