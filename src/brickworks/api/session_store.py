"""In-memory session registry for the Brick-Works API.

This module keeps session bookkeeping out of ``brickworks.api.main`` so the
route handlers only deal with HTTP concerns.

Sessions hold an uploaded image and several base64 renderings each, so the
registry is bounded two ways:

- a session untouched for longer than the idle TTL is discarded the next
  time the registry is used
- when the cap is reached, the least recently used session is evicted
  (sessions with a conversion in flight are evicted last)

Discarded sessions are ``reset()`` so any run still in flight drops its
result.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable

from brickworks.core.session import SessionOrchestrator

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Sessions keyed by id, with an idle TTL and a size cap.

    Args:
        max_sessions: Largest number of sessions held at once.
        ttl_seconds: Idle time after which a session is discarded.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        max_sessions: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_sessions = max_sessions
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, SessionOrchestrator] = {}
        self._last_seen: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def add(self, session: SessionOrchestrator) -> str:
        """Register a new session and return its id."""
        self.prune()
        while len(self._sessions) >= self.max_sessions:
            self._evict_one()

        session_id = str(uuid.uuid4())
        self._sessions[session_id] = session
        self._last_seen[session_id] = self._clock()
        return session_id

    def get(self, session_id: str) -> SessionOrchestrator | None:
        """Return a session and mark it as used, or ``None`` if unknown or expired."""
        self.prune()
        session = self._sessions.get(session_id)
        if session is not None:
            self._last_seen[session_id] = self._clock()
        return session

    def discard(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        if session is None:
            return False
        session.reset()
        return True

    def prune(self) -> int:
        """Discard every session idle for longer than the TTL.

        Returns:
            Number of sessions discarded.
        """
        cutoff = self._clock() - self.ttl_seconds
        expired = [sid for sid, seen in self._last_seen.items() if seen < cutoff]
        for session_id in expired:
            self.discard(session_id)
        if expired:
            logger.info(f"Discarded {len(expired)} idle session(s)")
        return len(expired)

    def clear(self) -> None:
        for session_id in list(self._sessions):
            self.discard(session_id)

    def _evict_one(self) -> None:
        by_age = sorted(self._last_seen, key=self._last_seen.__getitem__)
        idle = [sid for sid in by_age if not self._sessions[sid].is_busy]
        victim = (idle or by_age)[0]
        logger.warning(f"Session limit {self.max_sessions} reached, evicting {victim}")
        self.discard(victim)
