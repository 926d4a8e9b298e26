"""
SpeechPlay v1.2: Session Registry
In-memory, per-process. Sessions live until ended or until nobody has
touched them for SESSION_IDLE_TIMEOUT_MINUTES; nothing is persisted.
Timer-fired results are queued per session for the game layer to poll.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from speechplay.config import SESSION_IDLE_TIMEOUT_MINUTES
from speechplay.session.controller import Session
from speechplay.state.types import SafetyGateResult

logger = logging.getLogger("speechplay.session.registry")

MAX_QUEUED_EVENTS = 50


@dataclass
class SessionEntry:
    session: Session
    events: deque = field(default_factory=lambda: deque(maxlen=MAX_QUEUED_EVENTS))
    last_seen: float = field(default_factory=time.monotonic)

    def drain(self) -> list[SafetyGateResult]:
        drained = list(self.events)
        self.events.clear()
        return drained

    def touch(self, now: Optional[float] = None) -> None:
        self.last_seen = now if now is not None else time.monotonic()


class SessionRegistry:
    def __init__(
        self,
        factory: Optional[Callable[[], Session]] = None,
        idle_timeout_seconds: float = SESSION_IDLE_TIMEOUT_MINUTES * 60,
    ):
        self._factory = factory or Session
        self._entries: dict[str, SessionEntry] = {}
        self.idle_timeout_seconds = idle_timeout_seconds

    def create(self) -> SessionEntry:
        self.reap_idle()
        session = self._factory()
        entry = SessionEntry(session=session)
        session.set_inactivity_callback(entry.events.append)
        session.set_task_timeout_callback(entry.events.append)
        self._entries[session.session_id] = entry
        logger.info(f"Session created: {session.session_id} ({len(self._entries)} active)")
        return entry

    def get(self, session_id: str) -> Optional[SessionEntry]:
        self.reap_idle()
        entry = self._entries.get(session_id)
        if entry is not None:
            entry.touch()
        return entry

    def end(self, session_id: str) -> bool:
        entry = self._entries.pop(session_id, None)
        if entry is None:
            return False
        entry.session.end()
        return True

    def end_all(self) -> None:
        for session_id in list(self._entries):
            self.end(session_id)

    def reap_idle(self, now: Optional[float] = None) -> int:
        """End sessions nobody has used within idle_timeout_seconds."""
        now = now if now is not None else time.monotonic()
        expired = [
            session_id for session_id, entry in self._entries.items()
            if now - entry.last_seen > self.idle_timeout_seconds
        ]
        for session_id in expired:
            logger.info(f"Session expired after {self.idle_timeout_seconds / 60:.0f} min idle: {session_id}")
            self.end(session_id)
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


_registry: Optional[SessionRegistry] = None


def get_registry() -> SessionRegistry:
    """Process-wide registry (singleton)."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry
