"""Per-session bounded message history.

Element 0 of every history is the system instruction. It is never trimmed,
and is rebuilt before each model call because it embeds the current time.
"""

import logging
from typing import Callable, Dict, List, Any, Optional

logger = logging.getLogger(__name__)

SystemPromptBuilder = Callable[[], str]


class SessionStore:
    """In-memory conversation histories keyed by session id.

    Histories live for the process lifetime; there is no eviction.
    """

    def __init__(
        self,
        system_prompt_builder: SystemPromptBuilder,
        max_history: int = 20,
        keep_recent: int = 15,
    ):
        """Initialize the store.

        Args:
            system_prompt_builder: Builds the system instruction for new sessions
            max_history: Maximum history length including the system message
            keep_recent: Messages kept after the system message when trimming
        """
        if not 1 <= keep_recent <= max_history - 1:
            raise ValueError(f"keep_recent must be between 1 and {max_history - 1}, got {keep_recent}")
        self._build_system_prompt = system_prompt_builder
        self.max_history = max_history
        self.keep_recent = keep_recent
        self._sessions: Dict[str, List[Dict[str, Any]]] = {}

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def get_or_create(
        self,
        session_id: str,
        system_prompt_builder: Optional[SystemPromptBuilder] = None,
    ) -> List[Dict[str, Any]]:
        """Return the live history for a session, creating it if needed."""
        history = self._sessions.get(session_id)
        if history is None:
            builder = system_prompt_builder or self._build_system_prompt
            history = [{"role": "system", "content": builder()}]
            self._sessions[session_id] = history
            logger.debug(f"Created session {session_id}")
        return history

    def append(self, session_id: str, message: Dict[str, Any]):
        """Append a message, trimming to [system, last keep_recent] when over max."""
        history = self.get_or_create(session_id)
        history.append(message)

        if len(history) > self.max_history:
            tail = history[-self.keep_recent:]
            # Rewrite in place so callers holding the list see the trim
            history[1:] = tail
            logger.debug(f"Trimmed session {session_id} to {len(history)} messages")

    def replace_system_message(self, session_id: str, new_system_prompt: str):
        history = self.get_or_create(session_id)
        history[0] = {"role": "system", "content": new_system_prompt}

    def recent_messages(self, session_id: str, limit: int = 6) -> List[Dict[str, Any]]:
        """Last ``limit`` non-system messages, oldest first."""
        history = self._sessions.get(session_id)
        if not history or limit <= 0:
            return []
        return [dict(m) for m in history[1:][-limit:]]
