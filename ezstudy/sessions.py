import asyncio
import logging
import time
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .config import get_settings
from .models import ChatTurn, Role

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Ordered chat history per caller-supplied session id.

    Callers that read the history, call a provider and then append the
    resulting turns must hold `lock(session_id)` for the whole sequence so
    concurrent requests on one session cannot interleave.
    """

    @abstractmethod
    async def append(self, session_id: str, turn: ChatTurn) -> None:
        ...

    @abstractmethod
    async def get_history(self, session_id: str) -> List[ChatTurn]:
        ...

    @abstractmethod
    async def clear(self, session_id: str) -> None:
        ...

    @abstractmethod
    def lock(self, session_id: str) -> asyncio.Lock:
        ...


@dataclass
class _Session:
    turns: List[ChatTurn] = field(default_factory=list)
    last_access: float = 0.0


class InMemorySessionStore(SessionStore):
    """Process-local store with idle-time eviction.

    Sessions idle for longer than `ttl_seconds` are dropped lazily on the
    next access. `max_turns` keeps only the most recent turns of a session,
    trimmed so the history never opens with an assistant turn. A lock lives
    only while some caller holds a reference to it.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = 6 * 60 * 60,
        max_turns: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_turns = max_turns
        self._clock = clock
        self._sessions: Dict[str, _Session] = {}
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _expired(self, session: _Session, now: float) -> bool:
        return self.ttl_seconds is not None and now - session.last_access > self.ttl_seconds

    def _evict_expired(self, now: float) -> None:
        stale = [sid for sid, s in self._sessions.items() if self._expired(s, now)]
        for sid in stale:
            del self._sessions[sid]
        if stale:
            logger.info("Evicted %d idle session(s)", len(stale))

    async def append(self, session_id: str, turn: ChatTurn) -> None:
        now = self._clock()
        self._evict_expired(now)
        session = self._sessions.setdefault(session_id, _Session())
        session.turns.append(turn)
        if self.max_turns is not None and len(session.turns) > self.max_turns:
            start = len(session.turns) - self.max_turns
            while start < len(session.turns) and session.turns[start].role is Role.ASSISTANT:
                start += 1
            del session.turns[:start]
        session.last_access = now

    async def get_history(self, session_id: str) -> List[ChatTurn]:
        now = self._clock()
        self._evict_expired(now)
        session = self._sessions.get(session_id)
        if session is None:
            return []
        session.last_access = now
        return list(session.turns)

    async def clear(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._sessions)


# Global session store instance
session_store = None

def get_session_store() -> SessionStore:
    """Get or create the session store instance"""
    global session_store
    if session_store is None:
        settings = get_settings()
        session_store = InMemorySessionStore(
            ttl_seconds=settings.session_ttl_seconds,
            max_turns=settings.session_max_turns,
        )
    return session_store
