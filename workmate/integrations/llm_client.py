"""LLM client via LiteLLM: JSON chat completions and speech synthesis.

Used for:
- Intent classification (small, low-temperature JSON call)
- Conversation / task-creation responses (JSON schema in the system prompt)
- Task operation planning
- Text-to-speech for the avatar's voice

All model strings are LiteLLM routes, e.g. "openai/gpt-4o-mini".
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import List, Dict, Any

from ..core.types import ModelResponseError

logger = logging.getLogger(__name__)


@dataclass
class LLMUsage:
    """Token usage of one completion."""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class JSONCompletion:
    """Parsed JSON body plus the raw text the model returned."""
    data: Dict[str, Any]
    raw: str
    usage: LLMUsage


def parse_json_object(text: str) -> Dict[str, Any]:
    """Parse a model reply that should be a single JSON object.

    Tolerates markdown code fences around the object.

    Raises:
        ModelResponseError: if the text is not a JSON object
    """
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
        cleaned = cleaned.strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ModelResponseError(f"Model returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ModelResponseError(f"Model returned {type(data).__name__}, expected an object")
    return data


class LLMClient:
    """LiteLLM-based client for JSON completions and TTS."""

    MAX_RETRIES = 3
    BASE_DELAY = 2.0  # seconds, doubled per rate-limited attempt

    def __init__(self, api_key: str, timeout: float = 60.0):
        """Initialize LiteLLM client.

        Args:
            api_key: Provider API key (OpenAI by default)
            timeout: Per-call timeout in seconds
        """
        self.api_key = api_key
        self.timeout = timeout
        self.enabled = bool(api_key)

        if self.enabled:
            logger.info("✨ LiteLLM client initialized")
        else:
            logger.warning("LiteLLM client has no API key, model calls will fail")

    async def complete_json(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> JSONCompletion:
        """Run a chat completion constrained to a JSON object.

        Args:
            model: LiteLLM model string
            messages: OpenAI-format messages (system first)
            max_tokens: Max tokens to generate
            temperature: Sampling temperature

        Returns:
            JSONCompletion with the parsed object

        Raises:
            ModelResponseError: reply was not a JSON object
            Exception: provider errors after rate-limit retries are exhausted
        """
        import litellm
        litellm.suppress_debug_info = True
        from litellm.exceptions import RateLimitError

        call_kwargs = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "response_format": {"type": "json_object"},
            "api_key": self.api_key,
            "timeout": self.timeout,
        }

        for attempt in range(self.MAX_RETRIES + 1):
            try:
                response = await litellm.acompletion(**call_kwargs)
                break
            except Exception as e:
                is_rate_limit = "429" in str(e) or isinstance(e, RateLimitError)
                if is_rate_limit and attempt < self.MAX_RETRIES:
                    delay = self.BASE_DELAY * (2 ** attempt)  # 2s, 4s, 8s
                    logger.warning(f"Rate limited ({model}). Retrying in {delay}s... (Attempt {attempt+1}/{self.MAX_RETRIES})")
                    await asyncio.sleep(delay)
                else:
                    logger.error(f"LLM API error ({model}): {e}")
                    raise

        text = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        llm_usage = LLMUsage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
        logger.info(f"LLM ({model}): {llm_usage.input_tokens} in / {llm_usage.output_tokens} out")

        return JSONCompletion(data=parse_json_object(text), raw=text, usage=llm_usage)

    async def synthesize_speech(self, text: str, model: str, voice: str) -> bytes:
        """Generate speech audio (mp3 bytes) for ``text``."""
        import litellm
        litellm.suppress_debug_info = True

        response = await litellm.aspeech(
            model=model,
            voice=voice,
            input=text,
            api_key=self.api_key,
        )
        return response.content

