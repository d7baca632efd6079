"""
Admin sessions.

A session is ``{token, email, timestamp, expires}`` stored in LocalStorage
under ``adminSession_<token>``. It gates the admin endpoints for a fixed
window after login; it is not a signed credential.
"""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from registration.storage import LocalStorage

logger = logging.getLogger(__name__)

SESSION_PREFIX = "adminSession_"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AdminSession:
    token: str
    email: str
    timestamp: str
    expires: str

    def is_valid(self, now: datetime | None = None) -> bool:
        now = now or _utcnow()
        return now < datetime.fromisoformat(self.expires)

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


class SessionStore:
    """Create, look up, and revoke admin sessions."""

    def __init__(self, storage: LocalStorage, hours: float = 3.0,
                 clock: Callable[[], datetime] = _utcnow) -> None:
        self.storage = storage
        self.window = timedelta(hours=hours)
        self.clock = clock

    def create(self, email: str) -> AdminSession:
        now = self.clock()
        session = AdminSession(
            token=secrets.token_urlsafe(32),
            email=email,
            timestamp=now.isoformat(),
            expires=(now + self.window).isoformat(),
        )
        self.storage.set_item(SESSION_PREFIX + session.token, json.dumps(session.to_dict()))
        return session

    def get(self, token: str) -> AdminSession | None:
        """Return the live session for *token*; expired sessions are removed."""
        if not token:
            return None
        key = SESSION_PREFIX + token
        raw = self.storage.get_item(key)
        if raw is None:
            return None
        try:
            session = AdminSession(**json.loads(raw))
            valid = session.is_valid(self.clock())
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable admin session")
            self.storage.remove_item(key)
            return None
        if not valid:
            self.storage.remove_item(key)
            return None
        return session

    def revoke(self, token: str) -> None:
        self.storage.remove_item(SESSION_PREFIX + token)

    def purge_expired(self) -> int:
        removed = 0
        for key in self.storage.keys(SESSION_PREFIX):
            if self.get(key[len(SESSION_PREFIX):]) is None:
                removed += 1
        return removed
