"""Tests for workmate.core.config.load_config."""

import os

import pytest

from workmate.core.config import load_config

ENV_VARS = (
    "OPENAI_API_KEY", "CHAT_MODEL", "INTENT_MODEL", "MAX_TOKENS", "TEMPERATURE", "AUDIO_ENABLED",
    "PYTHON_API_URL", "TASK_API_TIMEOUT", "JOB_MAX_ATTEMPTS", "JOB_RETRY_DELAY",
    "MAX_HISTORY_SIZE", "KEEP_RECENT_MESSAGES", "USAGE_LIMITS_ENABLED", "USER_TIMEZONE",
    "HOST", "PORT", "LOG_LEVEL", "LOG_FILE", "INTENT_TEMPERATURE", "OPERATION_TEMPERATURE",
    "OPERATION_RETRY_ATTEMPTS", "OPERATION_RETRY_DELAY", "ROUTING_CONFIDENCE_THRESHOLD",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def yaml_file(tmp_path):
    path = tmp_path / "assistant.yaml"
    path.write_text(
        "models:\n"
        "  chat: gpt-4o\n"
        "  max_tokens: 800\n"
        "task_api:\n"
        "  url: http://yaml-host:8000/\n"
        "session:\n"
        "  max_history_size: 30\n"
        "  keep_recent_messages: 20\n"
        "server:\n"
        "  port: 4000\n"
        "routing:\n"
        "  confidence_threshold: 0.7\n"
        "  history_window: 4\n"
        "task_operations:\n"
        "  retry_attempts: 5\n"
    )
    return str(path)


class TestLoadConfig:

    def test_defaults_without_files(self, tmp_path):
        config = load_config(env_file=str(tmp_path / "none.env"), config_file=str(tmp_path / "none.yaml"))
        assert config.max_history == 20
        assert config.keep_recent == 15
        assert config.job_max_attempts == 3
        assert config.usage_limits_enabled is False

    def test_yaml_overrides_defaults(self, tmp_path, yaml_file):
        config = load_config(env_file=str(tmp_path / "none.env"), config_file=yaml_file)
        assert config.chat_model == "gpt-4o"
        assert config.max_tokens == 800
        assert config.task_api_url == "http://yaml-host:8000"
        assert config.max_history == 30
        assert config.port == 4000
        assert config.routing_confidence_threshold == 0.7
        assert config.classification_history_window == 4
        assert config.operation_retry_attempts == 5
        assert config.operation_retry_delay == 1.0

    def test_env_overrides_yaml(self, tmp_path, yaml_file, monkeypatch):
        monkeypatch.setenv("CHAT_MODEL", "gpt-4o-mini")
        monkeypatch.setenv("PORT", "5050")
        monkeypatch.setenv("USAGE_LIMITS_ENABLED", "true")
        config = load_config(env_file=str(tmp_path / "none.env"), config_file=yaml_file)
        assert config.chat_model == "gpt-4o-mini"
        assert config.port == 5050
        assert config.usage_limits_enabled is True

    def test_env_file_is_read(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("OPENAI_API_KEY=sk-from-file\n")
        try:
            config = load_config(env_file=str(env_file), config_file=str(tmp_path / "none.yaml"))
        finally:
            os.environ.pop("OPENAI_API_KEY", None)
        assert config.api_key == "sk-from-file"

    def test_keep_recent_must_fit_history(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MAX_HISTORY_SIZE", "10")
        monkeypatch.setenv("KEEP_RECENT_MESSAGES", "10")
        with pytest.raises(ValueError):
            load_config(env_file=str(tmp_path / "none.env"), config_file=str(tmp_path / "none.yaml"))

    def test_routing_and_operation_settings_from_env(self, tmp_path, yaml_file, monkeypatch):
        monkeypatch.setenv("ROUTING_CONFIDENCE_THRESHOLD", "0.8")
        monkeypatch.setenv("INTENT_TEMPERATURE", "0")
        monkeypatch.setenv("OPERATION_RETRY_DELAY", "0.5")
        config = load_config(env_file=str(tmp_path / "none.env"), config_file=yaml_file)
        assert config.routing_confidence_threshold == 0.8
        assert config.intent_temperature == 0.0
        assert config.operation_retry_delay == 0.5

    def test_threshold_must_be_a_probability(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ROUTING_CONFIDENCE_THRESHOLD", "1.5")
        with pytest.raises(ValueError):
            load_config(env_file=str(tmp_path / "none.env"), config_file=str(tmp_path / "none.yaml"))
