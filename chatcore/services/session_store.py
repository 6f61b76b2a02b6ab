"""Session Store — bounded, least-recently-used map of session id to Session.

Invariants:
    - len(store) <= capacity after every get_or_create(), except while the
      overflow consists of sessions whose lock is held (those are never evicted)
    - Every access (get_or_create, get) refreshes recency and last_activity
    - Each Session owns exactly one ContextWindowManager and one asyncio.Lock

Design Decisions:
    - OrderedDict LRU with injected capacity: eviction policy visible and testable
    - context_factory injected: orchestrator decides the context profile, store stays generic
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from chatcore.core.context_window import ContextWindowManager
from chatcore.core.domain_types import SessionId
from chatcore.core.messages import utc_now

logger = logging.getLogger(__name__)


@dataclass
class Session:
    id: SessionId
    context: ContextWindowManager
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    created_at: datetime = field(default_factory=utc_now)
    last_activity: datetime = field(default_factory=utc_now)

    def touch(self) -> None:
        self.last_activity = utc_now()


class SessionStore:
    def __init__(
        self, capacity: int,
        context_factory: Callable[[], ContextWindowManager] = ContextWindowManager,
    ):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._context_factory = context_factory
        self._sessions: OrderedDict[str, Session] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions.move_to_end(session_id)
            session.touch()
        return session

    def get_or_create(self, session_id: str) -> Session:
        session = self.get(session_id)
        if session is not None:
            return session
        session = Session(id=SessionId(session_id), context=self._context_factory())
        self._sessions[session_id] = session
        logger.debug("Session created", extra={"session_id": session_id})
        self._evict_overflow(keep=session_id)
        return session

    def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def clear(self) -> None:
        self._sessions.clear()

    def _evict_overflow(self, keep: str) -> None:
        # Oldest first; skip sessions with a request in flight
        for sid in list(self._sessions):
            if len(self._sessions) <= self._capacity:
                return
            if sid == keep or self._sessions[sid].lock.locked():
                continue
            del self._sessions[sid]
            logger.info("Session evicted (LRU)", extra={"session_id": sid})
