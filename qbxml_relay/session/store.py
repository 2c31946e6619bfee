"""Session store contract and its in-memory and file-backed adapters."""

from __future__ import annotations

import asyncio
import json
import re
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Optional

from qbxml_relay.models.session import Session, SessionStatus, utcnow
from qbxml_relay.utils.atomic import AtomicWriteError, atomic_write_json, exclusive_create_json
from qbxml_relay.utils.logging import get_logger

logger = get_logger("session.store")


class SessionStoreError(Exception):
    """Raised when the backing storage fails."""

    pass


class SessionExistsError(SessionStoreError):
    """Raised by ``create`` when the ticket is already taken."""

    def __init__(self, ticket: str) -> None:
        super().__init__(f"Session already exists: {ticket}")
        self.ticket = ticket


class SessionStore(ABC):
    """
    Keyed storage of sessions by ticket.

    ``update_activity`` is conditional on the session being active; ``close``
    and ``delete`` are best-effort and report whether anything changed.
    None of the methods filter by expiry: that is the caller's decision.
    """

    @abstractmethod
    async def create(self, session: Session) -> None:
        """Store a new session; raises SessionExistsError if the ticket exists."""

    @abstractmethod
    async def get(self, ticket: str) -> Optional[Session]:
        """Fetch a session regardless of status or expiry."""

    @abstractmethod
    async def update_activity(
        self,
        ticket: str,
        now: Optional[datetime] = None,
        count_request: bool = False,
    ) -> bool:
        """
        Record activity on an active session.

        ``count_request`` also increments ``requests_sent``; only handing out
        an outbound document should set it. Returns False if absent or closed.
        """

    @abstractmethod
    async def close(self, ticket: str, now: Optional[datetime] = None) -> bool:
        """Mark a session closed; False if there was nothing to close."""

    @abstractmethod
    async def delete(self, ticket: str) -> bool:
        """Remove a session; False if it did not exist."""

    @abstractmethod
    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Remove every session whose expiry has passed; returns the count."""


class InMemorySessionStore(SessionStore):
    """Process-local store; each method runs under one asyncio lock."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self, session: Session) -> None:
        async with self._lock:
            if session.ticket in self._sessions:
                raise SessionExistsError(session.ticket)
            self._sessions[session.ticket] = session

    async def get(self, ticket: str) -> Optional[Session]:
        async with self._lock:
            return self._sessions.get(ticket)

    async def update_activity(
        self,
        ticket: str,
        now: Optional[datetime] = None,
        count_request: bool = False,
    ) -> bool:
        async with self._lock:
            session = self._sessions.get(ticket)
            if session is None or session.status != SessionStatus.ACTIVE:
                return False
            self._sessions[ticket] = session.touched(now, count_request)
            return True

    async def close(self, ticket: str, now: Optional[datetime] = None) -> bool:
        async with self._lock:
            session = self._sessions.get(ticket)
            if session is None:
                return False
            self._sessions[ticket] = session.closed(now)
            return True

    async def delete(self, ticket: str) -> bool:
        async with self._lock:
            return self._sessions.pop(ticket, None) is not None

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        async with self._lock:
            expired = [t for t, s in self._sessions.items() if s.is_expired(now)]
            for ticket in expired:
                del self._sessions[ticket]
        if expired:
            logger.info("sessions_purged", count=len(expired))
        return len(expired)


_SAFE_TICKET = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class FileSessionStore(SessionStore):
    """
    One JSON document per ticket under a directory.

    Creation uses O_EXCL so that create-if-absent holds across processes;
    updates are written atomically (temp file + rename). Tickets that are
    not safe file names are treated as unknown.
    """

    def __init__(self, store_dir: str | Path) -> None:
        """
        Initialize the store.

        Args:
            store_dir: Directory holding ``{ticket}.json`` files
        """
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _path(self, ticket: str) -> Optional[Path]:
        if not _SAFE_TICKET.match(ticket or ""):
            return None
        return self.store_dir / f"{ticket}.json"

    def _read(self, path: Optional[Path]) -> Optional[Session]:
        if path is None or not path.exists():
            return None
        try:
            return Session.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
            raise SessionStoreError(f"Unreadable session file {path}: {e}") from e

    def _write(self, path: Path, session: Session) -> None:
        try:
            atomic_write_json(path, session.to_dict())
        except AtomicWriteError as e:
            raise SessionStoreError(str(e)) from e

    async def create(self, session: Session) -> None:
        path = self._path(session.ticket)
        if path is None:
            raise SessionStoreError(f"Ticket is not a valid key: {session.ticket!r}")
        async with self._lock:
            try:
                created = exclusive_create_json(path, session.to_dict())
            except (OSError, AtomicWriteError) as e:
                raise SessionStoreError(f"Failed to create session: {e}") from e
            if not created:
                raise SessionExistsError(session.ticket)

    async def get(self, ticket: str) -> Optional[Session]:
        async with self._lock:
            return self._read(self._path(ticket))

    async def update_activity(
        self,
        ticket: str,
        now: Optional[datetime] = None,
        count_request: bool = False,
    ) -> bool:
        path = self._path(ticket)
        async with self._lock:
            session = self._read(path)
            if session is None or session.status != SessionStatus.ACTIVE:
                return False
            self._write(path, session.touched(now, count_request))
            return True

    async def close(self, ticket: str, now: Optional[datetime] = None) -> bool:
        path = self._path(ticket)
        async with self._lock:
            session = self._read(path)
            if session is None:
                return False
            self._write(path, session.closed(now))
            return True

    async def delete(self, ticket: str) -> bool:
        path = self._path(ticket)
        if path is None:
            return False
        async with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise SessionStoreError(f"Failed to delete session: {e}") from e
            return True

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        removed = 0
        async with self._lock:
            for path in sorted(self.store_dir.glob("*.json")):
                try:
                    session = self._read(path)
                except SessionStoreError as e:
                    logger.warning("session_file_skipped", path=str(path), error=str(e))
                    continue
                if session is not None and session.is_expired(now):
                    path.unlink(missing_ok=True)
                    removed += 1
        if removed:
            logger.info("sessions_purged", count=removed, store_dir=str(self.store_dir))
        return removed
