"""Pending clarification requests, one per session, with lazy expiry."""

import logging
import time
from typing import Callable, Dict, Optional

from .types import PendingConfirmation

logger = logging.getLogger(__name__)


class ConfirmationStore:
    """Holds the outstanding clarification request for each session.

    Expiry is checked on read; there is no background sweep.
    """

    DEFAULT_TTL = 1800  # 30 minutes

    def __init__(self, ttl_seconds: int = DEFAULT_TTL, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: Dict[str, PendingConfirmation] = {}

    def store(self, session_id: str, pending: PendingConfirmation) -> PendingConfirmation:
        """Upsert the session's pending confirmation and stamp its expiry."""
        now = self._clock()
        pending.created_at = now
        pending.expires_at = now + self.ttl_seconds
        if session_id in self._pending:
            logger.info(f"Replacing pending confirmation for session {session_id}")
        self._pending[session_id] = pending
        logger.info(
            f"⏳ Stored pending {pending.kind.value} confirmation "
            f"({pending.subtype.value}) for session {session_id}"
        )
        return pending

    def peek(self, session_id: str) -> Optional[PendingConfirmation]:
        """Return the live confirmation, dropping it if it has expired."""
        pending = self._pending.get(session_id)
        if pending is None:
            return None
        if self._clock() > pending.expires_at:
            del self._pending[session_id]
            logger.info(f"🗑️ Pending confirmation expired for session {session_id}")
            return None
        return pending

    def clear(self, session_id: str):
        if self._pending.pop(session_id, None) is not None:
            logger.debug(f"Cleared pending confirmation for session {session_id}")
