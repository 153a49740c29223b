"""
Per-session chat history for the shopping assistant

Sessions are kept in memory, capped at MAX_MESSAGES_PER_SESSION messages and
dropped after SESSION_TIMEOUT_SECONDS without activity.
"""
import logging
import random
import string
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from gearshop.core.config import settings

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Rough token estimation: ~4 chars per token."""
    return len(text) // 4


def limit_history(
    history: List[Dict[str, str]],
    max_messages: Optional[int] = None,
    max_tokens: Optional[int] = None
) -> Tuple[List[Dict[str, str]], int]:
    """
    Limit conversation history to prevent context explosion.

    Strategy:
    1. Keep at most max_messages recent messages
    2. Further trim if estimated tokens exceed max_tokens
    3. Never start on an assistant message (the API expects user first)

    Returns:
        Tuple of (limited_history, estimated_tokens)
    """
    if not history:
        return [], 0

    max_messages = max_messages or settings.MAX_HISTORY_MESSAGES
    max_tokens = max_tokens or settings.MAX_HISTORY_TOKENS

    limited = history[-max_messages:] if len(history) > max_messages else history.copy()

    total_tokens = sum(estimate_tokens(msg.get("content", "")) for msg in limited)

    while total_tokens > max_tokens and len(limited) > 2:
        # Keep at least 2 for context
        removed = limited.pop(0)
        total_tokens -= estimate_tokens(removed.get("content", ""))

    while limited and limited[0].get("role") != "user":
        removed = limited.pop(0)
        total_tokens -= estimate_tokens(removed.get("content", ""))

    messages_trimmed = len(history) - len(limited)
    if messages_trimmed > 0:
        logger.debug(f"History trimmed: {len(history)} -> {len(limited)} messages (~{total_tokens} tokens)")

    return limited, total_tokens


def _random_suffix(length: int = 9) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def generate_session_id(user_id: Optional[int] = None, now_millis: Optional[int] = None) -> str:
    """user_<id>_session_<millis>_<rand> for logged-in users, session_<millis>_<rand> otherwise"""
    millis = now_millis if now_millis is not None else int(time.time() * 1000)
    prefix = f"user_{user_id}_" if user_id else ""
    return f"{prefix}session_{millis}_{_random_suffix()}"


class ChatHistoryManager:
    """
    In-memory session -> message list store

    Messages are {"role": "user"|"assistant", "content": "..."} dicts,
    the shape the Anthropic Messages API takes.
    """

    MAX_MESSAGES_PER_SESSION = 20
    SESSION_TIMEOUT_SECONDS = 60 * 60
    CLEANUP_INTERVAL_SECONDS = 5 * 60

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._histories: Dict[str, List[Dict[str, str]]] = {}
        self._activity: Dict[str, float] = {}
        self._owners: Dict[str, Optional[int]] = {}
        self._last_cleanup = clock()
        self._lock = threading.Lock()

    def get_or_create(self, session_id: Optional[str] = None, user_id: Optional[int] = None) -> Tuple[str, List[Dict[str, str]]]:
        """
        Return (session_id, history), creating the session when needed.

        A new id is generated when session_id is empty, or when it names a
        session owned by another user.
        """
        self.cleanup_if_needed()

        with self._lock:
            owner = self._owners.get(session_id) if session_id else None
            if owner is not None and owner != user_id:
                logger.warning(f"Session {session_id} belongs to another user, starting a new one")
                session_id = None

            if not session_id:
                session_id = generate_session_id(user_id, int(self._clock() * 1000))

            if session_id not in self._histories:
                self._histories[session_id] = []
                self._owners[session_id] = user_id
                logger.info(f"Created new chat session: {session_id}")

            self._activity[session_id] = self._clock()
            self._trim(session_id)
            return session_id, list(self._histories[session_id])

    def get_history(self, session_id: str) -> Optional[List[Dict[str, str]]]:
        with self._lock:
            if session_id not in self._histories:
                return None
            self._activity[session_id] = self._clock()
            return list(self._histories[session_id])

    def add_exchange(self, session_id: str, user_message: str, assistant_message: str) -> None:
        """Append one user/assistant turn and trim to the session cap"""
        with self._lock:
            history = self._histories.setdefault(session_id, [])
            history.append({"role": "user", "content": user_message})
            history.append({"role": "assistant", "content": assistant_message})
            self._activity[session_id] = self._clock()
            self._trim(session_id)

    def _trim(self, session_id: str) -> None:
        history = self._histories[session_id]
        if len(history) > self.MAX_MESSAGES_PER_SESSION:
            self._histories[session_id] = history[-self.MAX_MESSAGES_PER_SESSION:]
            logger.debug(f"Trimmed session {session_id} to {self.MAX_MESSAGES_PER_SESSION} messages")

    def cleanup_if_needed(self) -> None:
        if self._clock() - self._last_cleanup > self.CLEANUP_INTERVAL_SECONDS:
            self.cleanup()

    def cleanup(self) -> int:
        """Drop sessions idle longer than SESSION_TIMEOUT_SECONDS"""
        with self._lock:
            now = self._clock()
            expired = [
                sid for sid in self._histories
                if now - self._activity.get(sid, 0) > self.SESSION_TIMEOUT_SECONDS
            ]
            for session_id in expired:
                self._histories.pop(session_id, None)
                self._activity.pop(session_id, None)
                self._owners.pop(session_id, None)
            self._last_cleanup = now

        if expired:
            logger.info(f"Chat history cleanup removed {len(expired)} sessions ({len(self._histories)} remaining)")
        return len(expired)

    def clear(self, session_id: str) -> bool:
        with self._lock:
            existed = self._histories.pop(session_id, None) is not None
            self._activity.pop(session_id, None)
            self._owners.pop(session_id, None)
        logger.info(f"Cleared chat session: {session_id}")
        return existed

    def clear_all(self) -> None:
        with self._lock:
            self._histories.clear()
            self._activity.clear()
            self._owners.clear()
        logger.info("Cleared all chat sessions")

    def owner_of(self, session_id: str) -> Optional[int]:
        """User id that started the session, None for guest sessions"""
        return self._owners.get(session_id)

    def session_ids(self) -> List[str]:
        return list(self._histories.keys())

    def get_stats(self) -> Dict[str, object]:
        now = self._clock()
        active = sum(1 for ts in self._activity.values() if now - ts < self.SESSION_TIMEOUT_SECONDS)
        return {
            "total_sessions": len(self._histories),
            "active_sessions": active,
            "inactive_sessions": len(self._histories) - active,
            "total_messages": sum(len(h) for h in self._histories.values()),
            "last_cleanup": datetime.fromtimestamp(self._last_cleanup, tz=timezone.utc).isoformat(),
        }
