"""Configuration loader for the work assistant."""

import os
import yaml
from pathlib import Path
from dotenv import load_dotenv
from .types import AssistantConfig


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


def load_config(env_file: str = ".env", config_file: str = "config/assistant.yaml") -> AssistantConfig:
    """Load configuration from environment and yaml files.

    Environment variables take precedence over the YAML file, which takes
    precedence over the dataclass defaults.

    Args:
        env_file: Path to .env file
        config_file: Path to assistant.yaml config file

    Returns:
        AssistantConfig instance with all settings
    """
    # Load environment variables
    load_dotenv(env_file)

    # Load YAML config if exists
    yaml_config = {}
    if Path(config_file).exists():
        with open(config_file, 'r') as f:
            yaml_config = yaml.safe_load(f) or {}

    defaults = AssistantConfig()
    models_config = yaml_config.get("models", {})
    audio_config = yaml_config.get("audio", {})
    task_api_config = yaml_config.get("task_api", {})
    jobs_config = yaml_config.get("background_jobs", {})
    session_config = yaml_config.get("session", {})
    operations_config = yaml_config.get("task_operations", {})
    routing_config = yaml_config.get("routing", {})
    server_config = yaml_config.get("server", {})

    config = AssistantConfig(
        # Language model
        api_key=os.getenv("OPENAI_API_KEY", ""),
        chat_model=os.getenv("CHAT_MODEL", models_config.get("chat", defaults.chat_model)),
        intent_model=os.getenv("INTENT_MODEL", models_config.get("intent", defaults.intent_model)),
        max_tokens=int(os.getenv("MAX_TOKENS", models_config.get("max_tokens", defaults.max_tokens))),
        temperature=float(os.getenv("TEMPERATURE", models_config.get("temperature", defaults.temperature))),
        intent_temperature=float(os.getenv("INTENT_TEMPERATURE", models_config.get("intent_temperature", defaults.intent_temperature))),
        operation_temperature=float(os.getenv("OPERATION_TEMPERATURE", models_config.get("operation_temperature", defaults.operation_temperature))),

        # Speech
        audio_enabled=_env_bool("AUDIO_ENABLED", audio_config.get("enabled", defaults.audio_enabled)),
        tts_model=os.getenv("TTS_MODEL", audio_config.get("tts_model", defaults.tts_model)),
        tts_voice=os.getenv("TTS_VOICE", audio_config.get("voice", defaults.tts_voice)),
        audio_dir=os.getenv("AUDIO_DIR", audio_config.get("output_dir", defaults.audio_dir)),
        rhubarb_path=os.getenv("RHUBARB_PATH", audio_config.get("rhubarb_path", defaults.rhubarb_path)),
        ffmpeg_path=os.getenv("FFMPEG_PATH", audio_config.get("ffmpeg_path", defaults.ffmpeg_path)),

        # Task persistence service
        task_api_url=os.getenv("PYTHON_API_URL", task_api_config.get("url", defaults.task_api_url)).rstrip("/"),
        task_api_prefix=task_api_config.get("prefix", defaults.task_api_prefix),
        task_api_timeout=float(os.getenv("TASK_API_TIMEOUT", task_api_config.get("timeout", defaults.task_api_timeout))),

        # Background jobs
        job_max_attempts=int(os.getenv("JOB_MAX_ATTEMPTS", jobs_config.get("max_attempts", defaults.job_max_attempts))),
        job_retry_delay=float(os.getenv("JOB_RETRY_DELAY", jobs_config.get("retry_delay", defaults.job_retry_delay))),
        job_send_interval=float(jobs_config.get("send_interval", defaults.job_send_interval)),

        # Task operation retries
        operation_retry_attempts=int(os.getenv("OPERATION_RETRY_ATTEMPTS", operations_config.get("retry_attempts", defaults.operation_retry_attempts))),
        operation_retry_delay=float(os.getenv("OPERATION_RETRY_DELAY", operations_config.get("retry_delay", defaults.operation_retry_delay))),

        # Sessions & confirmations
        max_history=int(os.getenv("MAX_HISTORY_SIZE", session_config.get("max_history_size", defaults.max_history))),
        keep_recent=int(os.getenv("KEEP_RECENT_MESSAGES", session_config.get("keep_recent_messages", defaults.keep_recent))),
        confirmation_ttl_seconds=int(session_config.get("confirmation_ttl_seconds", defaults.confirmation_ttl_seconds)),
        routing_confidence_threshold=float(os.getenv("ROUTING_CONFIDENCE_THRESHOLD", routing_config.get("confidence_threshold", defaults.routing_confidence_threshold))),
        classification_history_window=int(routing_config.get("history_window", defaults.classification_history_window)),

        # Usage limits
        usage_limits_enabled=_env_bool("USAGE_LIMITS_ENABLED", yaml_config.get("usage_limits", {}).get("enabled", defaults.usage_limits_enabled)),

        # User
        timezone=os.getenv("USER_TIMEZONE", yaml_config.get("timezone", defaults.timezone)),

        # Server
        host=os.getenv("HOST", server_config.get("host", defaults.host)),
        port=int(os.getenv("PORT", server_config.get("port", defaults.port))),

        # Logging
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE", defaults.log_file),
    )

    # Validate
    if config.max_history < 2:
        raise ValueError(f"MAX_HISTORY_SIZE must be at least 2, got {config.max_history}")
    if not 1 <= config.keep_recent <= config.max_history - 1:
        raise ValueError(
            f"KEEP_RECENT_MESSAGES must be between 1 and {config.max_history - 1}, got {config.keep_recent}"
        )
    if config.job_max_attempts < 1:
        raise ValueError(f"JOB_MAX_ATTEMPTS must be at least 1, got {config.job_max_attempts}")
    if not 0.0 <= config.routing_confidence_threshold <= 1.0:
        raise ValueError(
            f"ROUTING_CONFIDENCE_THRESHOLD must be between 0 and 1, got {config.routing_confidence_threshold}"
        )

    return config
