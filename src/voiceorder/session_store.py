"""Session storage with single-writer-per-call semantics.

Live sessions are mutated only inside ``mutate(call_id)``, which holds a
per-call lock. A second request for the same call waits at most
``lock_timeout`` seconds and is then rejected with SessionConflict, so a
provider retry can never interleave with the turn it duplicates.

Finished sessions move to an append-only archive of immutable
ArchivedCall records exactly once.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator

from voiceorder.errors import SessionConflict, SessionNotFound
from voiceorder.session import ArchivedCall, CallSession

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    @abstractmethod
    async def create(self, session: CallSession) -> CallSession:
        """Register a new live session. Raises SessionConflict if the id is taken."""

    @abstractmethod
    async def get(self, call_id: str) -> CallSession | None:
        """Live session for read-only use, or None."""

    @abstractmethod
    def mutate(self, call_id: str):
        """Async context manager yielding the live session under its lock."""

    @abstractmethod
    async def archive(self, call_id: str) -> ArchivedCall:
        """Move a terminal session from the live store to the archive."""

    @abstractmethod
    async def evict(self, call_id: str) -> CallSession | None:
        """Drop a live session without archiving it."""

    @abstractmethod
    def archived(self) -> tuple[ArchivedCall, ...]:
        """Snapshot of the archive, oldest first."""

    @abstractmethod
    def live_ids(self) -> list[str]:
        """Ids of sessions currently in progress."""


class InMemorySessionStore(SessionStore):
    def __init__(self, lock_timeout: float = 0.5):
        self.lock_timeout = lock_timeout
        self._live: dict[str, CallSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._archive: list[ArchivedCall] = []
        self._archived_ids: set[str] = set()

    async def create(self, session: CallSession) -> CallSession:
        call_id = session.call_id
        if call_id in self._live:
            raise SessionConflict(call_id, "session already exists")
        if call_id in self._archived_ids:
            raise SessionConflict(call_id, "session already archived")
        self._live[call_id] = session
        self._locks[call_id] = asyncio.Lock()
        logger.info("Session created: %s", call_id)
        return session

    async def get(self, call_id: str) -> CallSession | None:
        return self._live.get(call_id)

    @asynccontextmanager
    async def mutate(self, call_id: str) -> AsyncIterator[CallSession]:
        lock = self._locks.get(call_id)
        if lock is None:
            raise SessionNotFound(call_id)
        if self.lock_timeout <= 0:
            if lock.locked():
                raise SessionConflict(call_id)
            await lock.acquire()
        elif not await self._acquire_within(lock, self.lock_timeout):
            logger.warning("Session conflict on %s: mutation still in flight", call_id)
            raise SessionConflict(call_id)
        try:
            session = self._live.get(call_id)
            if session is None:
                # Archived by the request that held the lock
                raise SessionNotFound(call_id)
            yield session
        finally:
            lock.release()

    @staticmethod
    async def _acquire_within(lock: asyncio.Lock, timeout: float) -> bool:
        """Acquire lock within timeout seconds.

        A grant that lands as the deadline passes is given back, so a timed
        out caller never leaves the lock held.
        """
        acquire = asyncio.ensure_future(lock.acquire())
        done, _ = await asyncio.wait({acquire}, timeout=timeout)
        if done:
            return acquire.result()
        acquire.cancel()
        await asyncio.wait({acquire})
        if not acquire.cancelled() and acquire.exception() is None:
            lock.release()
        return False

    async def archive(self, call_id: str) -> ArchivedCall:
        session = self._live.pop(call_id, None)
        if session is None:
            raise SessionNotFound(call_id)
        if not session.state.is_terminal:
            self._live[call_id] = session
            raise ValueError(f"Cannot archive {call_id} in non-terminal state {session.state.value}")
        self._locks.pop(call_id, None)
        record = ArchivedCall.from_session(session)
        self._archive.append(record)
        self._archived_ids.add(call_id)
        logger.info("Session archived: %s (%s)", call_id, session.state.value)
        return record

    async def evict(self, call_id: str) -> CallSession | None:
        self._locks.pop(call_id, None)
        session = self._live.pop(call_id, None)
        if session is not None:
            logger.info("Session evicted: %s", call_id)
        return session

    def archived(self) -> tuple[ArchivedCall, ...]:
        return tuple(self._archive)

    def live_ids(self) -> list[str]:
        return list(self._live)
