import asyncio
import logging
import re
import time
from dataclasses import dataclass

from . import config
from .interview import InterviewSession

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = 30  # seconds

_SESSION_ID_RE = re.compile(r"^[0-9a-f]{8,}$")


def is_valid_session_id(session_id: str) -> bool:
    return isinstance(session_id, str) and bool(_SESSION_ID_RE.match(session_id))


@dataclass
class RegisteredSession:
    session: InterviewSession
    registered_at: float
    parked_at: float | None = None

    @property
    def parked(self) -> bool:
        return self.parked_at is not None


def _close_task_done_callback(task: asyncio.Task):
    """Log exceptions from background close tasks instead of silently swallowing."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background close task failed: %s", exc, exc_info=exc)


class SessionRegistry:
    """In-memory index of interview sessions.

    Connected sessions are active; on disconnect they are parked and can be
    reclaimed until ``ttl_seconds`` have passed.
    """

    def __init__(self, ttl_seconds: float | None = None, max_sessions: int | None = None,
                 clock=time.monotonic):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.SESSION_TTL_SECONDS
        self.max_sessions = max_sessions if max_sessions is not None else config.MAX_SESSIONS
        self._clock = clock
        self._sessions: dict[str, RegisteredSession] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task | None = None

    def _expired(self, entry: RegisteredSession, now: float) -> bool:
        return entry.parked and (now - entry.parked_at) > self.ttl_seconds

    def _schedule_close(self, session: InterviewSession):
        task = asyncio.ensure_future(self._close(session))
        task.add_done_callback(_close_task_done_callback)

    async def register(self, session: InterviewSession):
        evicted_list: list[tuple[str, RegisteredSession]] = []

        async with self._lock:
            # Evict oldest parked sessions; connected ones are never dropped
            while len(self._sessions) >= self.max_sessions:
                parked = [sid for sid, e in self._sessions.items() if e.parked]
                if not parked:
                    break
                oldest_id = min(parked, key=lambda k: self._sessions[k].parked_at)
                evicted_list.append((oldest_id, self._sessions.pop(oldest_id)))
            self._sessions[session.session_id] = RegisteredSession(session, self._clock())
            total = len(self._sessions)

        for evicted_id, evicted in evicted_list:
            logger.info("Evicting parked session %s (over limit)", evicted_id)
            self._schedule_close(evicted.session)

        if total > self.max_sessions:
            logger.warning("Session limit %d exceeded: %d sessions connected", self.max_sessions, total)
        logger.info("Registered session %s", session.session_id)

    async def get(self, session_id: str) -> InterviewSession | None:
        async with self._lock:
            entry = self._sessions.get(session_id)
        if entry is None or self._expired(entry, self._clock()):
            return None
        return entry.session

    async def park(self, session_id: str):
        """Mark a session as disconnected and start its reconnect window."""
        async with self._lock:
            entry = self._sessions.get(session_id)
            if entry is not None:
                entry.parked_at = self._clock()
        if entry is not None:
            logger.info("Parked session %s", session_id)

    async def reclaim(self, session_id: str) -> InterviewSession | None:
        """Reattach a parked session, or None if it expired, is missing or is still connected."""
        async with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None or not entry.parked:
                return None
            age = self._clock() - entry.parked_at
            if age > self.ttl_seconds:
                del self._sessions[session_id]
            else:
                entry.parked_at = None

        if entry.parked:
            logger.info("Parked session %s expired (%.0fs old)", session_id, age)
            self._schedule_close(entry.session)
            return None

        logger.info("Reclaimed session %s (%.0fs old)", session_id, age)
        return entry.session

    async def remove(self, session_id: str):
        async with self._lock:
            entry = self._sessions.pop(session_id, None)
        if entry is not None:
            logger.info("Removed session %s", session_id)
            await self._close(entry.session)

    def __len__(self) -> int:
        return len(self._sessions)

    async def _close(self, session: InterviewSession):
        llm = session.coach.llm
        if llm is None:
            return
        try:
            await llm.shutdown()
        except Exception:
            logger.exception("Error shutting down coach client for %s", session.session_id)

    async def _cleanup_loop(self):
        while True:
            await asyncio.sleep(CLEANUP_INTERVAL)
            try:
                await self.expire()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Cleanup loop iteration failed")

    async def expire(self) -> int:
        """Drop parked sessions older than the TTL. Returns how many were dropped."""
        now = self._clock()
        async with self._lock:
            expired = [(sid, e) for sid, e in self._sessions.items() if self._expired(e, now)]
            for sid, _ in expired:
                del self._sessions[sid]

        for sid, entry in expired:
            logger.info("Cleanup: expiring parked session %s", sid)
            await self._close(entry.session)
        return len(expired)

    def start(self):
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.ensure_future(self._cleanup_loop())

    async def stop(self):
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        async with self._lock:
            remaining = list(self._sessions.values())
            self._sessions.clear()
        for entry in remaining:
            await self._close(entry.session)
