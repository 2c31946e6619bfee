"""Web Connector session record."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

INVALID_USER = "nvu"


class SessionStatus(Enum):
    """Persisted status of a session."""

    ACTIVE = "active"
    CLOSED = "closed"


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def generate_ticket() -> str:
    """Ticket format: ``{base36 epoch millis}-{uuid4 hex}``."""
    return f"{_base36(int(time.time() * 1000))}-{uuid.uuid4().hex}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionStats:
    """Usage summary of one session."""

    ticket: str
    status: SessionStatus
    requests_sent: int
    duration_seconds: int

    def to_dict(self) -> dict:
        return {
            "ticket": self.ticket,
            "status": self.status.value,
            "requests_sent": self.requests_sent,
            "duration_seconds": self.duration_seconds,
        }


@dataclass(frozen=True)
class Session:
    """
    One authenticated Web Connector conversation.

    Attributes:
        ticket: Opaque identifier handed to the Connector, the store key
        owner: User name that authenticated
        status: active until closed explicitly or found expired
        created_at: Authentication time
        last_activity_at: Last call bearing this ticket
        requests_sent: Number of outbound documents handed out
        expires_at: Hard expiry; sessions past it are treated as absent
    """

    ticket: str
    owner: str
    status: SessionStatus
    created_at: datetime
    last_activity_at: datetime
    requests_sent: int
    expires_at: datetime

    @classmethod
    def open(
        cls,
        owner: str,
        ttl: timedelta,
        now: Optional[datetime] = None,
        ticket: Optional[str] = None,
    ) -> "Session":
        now = now or utcnow()
        return cls(
            ticket=ticket or generate_ticket(),
            owner=owner,
            status=SessionStatus.ACTIVE,
            created_at=now,
            last_activity_at=now,
            requests_sent=0,
            expires_at=now + ttl,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utcnow())

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return self.status == SessionStatus.ACTIVE and not self.is_expired(now)

    def touched(self, now: Optional[datetime] = None, count_request: bool = False) -> "Session":
        """Copy with activity recorded; ``count_request`` also bumps the request counter."""
        return replace(
            self,
            last_activity_at=now or utcnow(),
            requests_sent=self.requests_sent + (1 if count_request else 0),
        )

    def stats(self, now: Optional[datetime] = None) -> SessionStats:
        """Whole seconds since authentication, with the request count."""
        elapsed = (now or utcnow()) - self.created_at
        return SessionStats(
            ticket=self.ticket,
            status=self.status,
            requests_sent=self.requests_sent,
            duration_seconds=max(0, int(elapsed.total_seconds())),
        )

    def closed(self, now: Optional[datetime] = None) -> "Session":
        return replace(
            self,
            status=SessionStatus.CLOSED,
            last_activity_at=now or utcnow(),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "ticket": self.ticket,
            "owner": self.owner,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
            "requests_sent": self.requests_sent,
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        """Create from dictionary."""
        return cls(
            ticket=data["ticket"],
            owner=data.get("owner", ""),
            status=SessionStatus(data.get("status", "active")),
            created_at=datetime.fromisoformat(data["created_at"]),
            last_activity_at=datetime.fromisoformat(data["last_activity_at"]),
            requests_sent=data.get("requests_sent", 0),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )
