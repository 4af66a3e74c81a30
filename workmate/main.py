"""Main entry point for the work assistant server."""

import asyncio
import logging
import sys
from pathlib import Path

from workmate.channels.http_channel import HttpChannel
from workmate.core.config import load_config
from workmate.core.confirmation_store import ConfirmationStore
from workmate.core.conversation_manager import ConversationManager
from workmate.core.intent_router import IntentRouter
from workmate.core.prompts import build_assistant_prompt
from workmate.core.session_store import SessionStore
from workmate.core.sync_queue import SyncQueue
from workmate.core.timezone import set_user_timezone
from workmate.core.task_operations import TaskOperationExecutor
from workmate.core.usage_guard import UsageGuard
from workmate.integrations.llm_client import LLMClient
from workmate.integrations.task_api import TaskAPIClient
from workmate.utils.audio import AudioService

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_file: str = "./data/logs/workmate.log"):
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file),
        ]
    )
    # LiteLLM and httpx are chatty at INFO
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_channel(config, llm_client=None, task_api=None) -> HttpChannel:
    """Wire every service object and return the HTTP channel."""
    llm_client = llm_client or LLMClient(config.api_key)
    task_api = task_api or TaskAPIClient(
        config.task_api_url,
        prefix=config.task_api_prefix,
        timeout=config.task_api_timeout,
    )

    sessions = SessionStore(build_assistant_prompt, config.max_history, config.keep_recent)
    confirmations = ConfirmationStore(config.confirmation_ttl_seconds)
    router = IntentRouter(
        llm_client,
        config.intent_model,
        threshold=config.routing_confidence_threshold,
        temperature=config.intent_temperature,
    )
    executor = TaskOperationExecutor(
        task_api,
        retry_attempts=config.operation_retry_attempts,
        retry_delay=config.operation_retry_delay,
    )
    sync_queue = SyncQueue(
        task_api,
        max_attempts=config.job_max_attempts,
        backoff_base=config.job_retry_delay,
        send_interval=config.job_send_interval,
    )
    audio = AudioService(llm_client, config)

    manager = ConversationManager(
        config, llm_client, task_api, sessions, confirmations, router, executor, sync_queue, audio,
    )
    usage_guard = UsageGuard(task_api, enabled=config.usage_limits_enabled)
    return HttpChannel(manager, sync_queue, usage_guard, host=config.host, port=config.port)


async def main():
    """Load configuration, wire services and serve until stopped."""
    try:
        config = load_config()
    except ValueError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    setup_logging(config.log_level, config.log_file)
    set_user_timezone(config.timezone)
    logger.info("🤖 Starting AI Work Assistant")
    logger.info(f"Chat model: {config.chat_model} | Intent model: {config.intent_model}")
    logger.info(f"🔗 Task API URL: {config.task_api_url}{config.task_api_prefix}")
    logger.info(f"🎵 Audio generation: {'Enabled' if config.audio_enabled else 'Disabled'}")
    logger.info(f"🔒 Usage limits: {'Enabled' if config.usage_limits_enabled else 'Disabled'}")
    if not config.api_key:
        logger.warning("OPENAI_API_KEY is not set, /chat will answer 401")

    channel = build_channel(config)
    try:
        await channel.start()
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        logger.info("👋 Shutting down gracefully...")
        await channel.sync_queue.close()
        await channel.conversation_manager.task_api.aclose()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
