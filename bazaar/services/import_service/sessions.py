"""Short-lived import sessions bridging the parse and commit requests.

Sessions sit behind the ``SessionStore`` interface. ``InMemorySessionStore``
keeps them in process memory, so in-flight imports are lost on restart and
are not shared between worker processes; a multi-process deployment needs a
store backed by an external cache.
"""

import abc
import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from bazaar.schemas.product_import import ImportSession, ParseResult, SessionStatus

from .constants import CLEANUP_INTERVAL_MINUTES, SESSION_EXPIRY_MINUTES
from .validation import AccessDecision

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore(abc.ABC):
    """Storage backend for import sessions."""

    @abc.abstractmethod
    async def get(self, session_id: str) -> ImportSession | None: ...

    @abc.abstractmethod
    async def set(self, session: ImportSession) -> None: ...

    @abc.abstractmethod
    async def delete(self, session_id: str) -> bool: ...

    @abc.abstractmethod
    async def sweep(self, now: datetime) -> int:
        """Remove every session whose expiry is before ``now``; return how many."""

    @abc.abstractmethod
    async def compare_and_set_status(
        self,
        session_id: str,
        expected: SessionStatus,
        new: SessionStatus,
    ) -> bool:
        """Atomically move a session from ``expected`` to ``new`` status."""

    @abc.abstractmethod
    async def count(self) -> int: ...

    @abc.abstractmethod
    async def clear(self) -> None: ...


class InMemorySessionStore(SessionStore):
    """Process-local store.

    Methods never await, so each call runs to completion on the event loop
    and the status swap cannot interleave with another coroutine.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, ImportSession] = {}

    async def get(self, session_id: str) -> ImportSession | None:
        return self._sessions.get(session_id)

    async def set(self, session: ImportSession) -> None:
        self._sessions[session.id] = session

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def sweep(self, now: datetime) -> int:
        expired = [sid for sid, s in self._sessions.items() if now > s.expires_at]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    async def compare_and_set_status(
        self,
        session_id: str,
        expected: SessionStatus,
        new: SessionStatus,
    ) -> bool:
        session = self._sessions.get(session_id)
        if session is None or session.status != expected:
            return False
        session.status = new
        return True

    async def count(self) -> int:
        return len(self._sessions)

    async def clear(self) -> None:
        self._sessions.clear()


class ImportSessionManager:
    """Creates, reads and expires import sessions."""

    def __init__(
        self,
        store: SessionStore | None = None,
        ttl: timedelta = timedelta(minutes=SESSION_EXPIRY_MINUTES),
        cleanup_interval: timedelta = timedelta(minutes=CLEANUP_INTERVAL_MINUTES),
        clock: Clock = _utcnow,
    ) -> None:
        self.store = store or InMemorySessionStore()
        self.ttl = ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._cleanup_task: asyncio.Task | None = None

    async def create_session(
        self,
        merchant_id: str,
        user_id: str,
        parse_result: ParseResult,
        zip_bytes: bytes | None = None,
    ) -> ImportSession:
        now = self._clock()
        session = ImportSession(
            id=str(uuid.uuid4()),
            merchant_id=merchant_id,
            user_id=user_id,
            created_at=now,
            expires_at=now + self.ttl,
            parse_result=parse_result,
            zip_bytes=zip_bytes,
        )
        await self.store.set(session)

        logger.info(
            "Created import session %s for merchant %s (user %s, %d rows, %d valid, mode=%s, zip=%s)",
            session.id,
            merchant_id,
            user_id,
            parse_result.total_rows,
            parse_result.valid_rows,
            parse_result.mode.value,
            zip_bytes is not None,
        )
        return session

    async def get_session(self, session_id: str) -> ImportSession | None:
        """Return a live session. Expired sessions are deleted and treated as absent."""
        session = await self.store.get(session_id)
        if session is None:
            return None

        if self._clock() > session.expires_at:
            await self.store.delete(session_id)
            logger.debug("Import session %s expired", session_id)
            return None

        return session

    async def delete_session(self, session_id: str) -> bool:
        existed = await self.store.delete(session_id)
        if existed:
            logger.debug("Deleted import session %s", session_id)
        return existed

    async def begin_commit(self, session_id: str) -> bool:
        """Claim a pending session for commit. False if another commit holds it."""
        return await self.store.compare_and_set_status(
            session_id, SessionStatus.PENDING, SessionStatus.COMMITTING
        )

    async def finish_commit(self, session_id: str) -> None:
        """Mark a claimed session committed and release it."""
        await self.store.compare_and_set_status(
            session_id, SessionStatus.COMMITTING, SessionStatus.COMMITTED
        )
        await self.delete_session(session_id)

    async def abort_commit(self, session_id: str) -> bool:
        """Return a claimed session to pending so the commit can be retried."""
        return await self.store.compare_and_set_status(
            session_id, SessionStatus.COMMITTING, SessionStatus.PENDING
        )

    async def cleanup_expired(self) -> int:
        cleaned = await self.store.sweep(self._clock())
        if cleaned > 0:
            logger.info("Cleaned up %d expired import sessions", cleaned)
        return cleaned

    async def session_count(self) -> int:
        return await self.store.count()

    async def clear(self) -> None:
        await self.store.clear()
        logger.debug("Cleared all import sessions")

    async def _run_cleanup(self) -> None:
        interval = self.cleanup_interval.total_seconds()
        while True:
            try:
                await asyncio.sleep(interval)
                await self.cleanup_expired()
            except asyncio.CancelledError:
                logger.debug("Import session cleanup task cancelled")
                break
            except Exception as e:
                logger.error("Import session cleanup task error: %s", str(e))

    def start_cleanup(self) -> None:
        """Start the periodic sweep on the running event loop (idempotent)."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._run_cleanup())
            logger.info("Started import session cleanup task")

    async def stop_cleanup(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None
        logger.info("Stopped import session cleanup task")


def validate_session_access(
    session: ImportSession,
    user_id: str,
    role: str | None,
    admin_roles: Iterable[str] = ("admin",),
) -> AccessDecision:
    """Admins may use any session; everyone else only their own."""
    if role in set(admin_roles):
        return AccessDecision(allowed=True)
    if session.user_id == user_id:
        return AccessDecision(allowed=True)
    return AccessDecision(allowed=False, error="Cannot access another user's import session")


_manager: ImportSessionManager | None = None


def get_session_manager() -> ImportSessionManager:
    """Process-wide session manager configured from settings."""
    global _manager
    if _manager is None:
        from bazaar.config import settings

        _manager = ImportSessionManager(
            ttl=timedelta(minutes=settings.session_ttl_minutes),
            cleanup_interval=timedelta(minutes=settings.cleanup_interval_minutes),
        )
    return _manager


def reset_session_manager() -> None:
    global _manager
    _manager = None
