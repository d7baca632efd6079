"""
Local Backup Ledger: registrations not yet confirmed delivered.

One entry per logical submission, stored as JSON under
``voter_submission_<submission_id>`` with a status:

    pending  written before the first remote attempt
    failed   every attempt so far has failed; ``error`` holds the last message

Entries are removed exactly once, after the remote store confirms the
insert. Older installs wrote ``voters_backup_<timestamp>`` values shaped
``{"table": "voters", "data": {...}, "timestamp": ..., "error": ...}``; those
are still read and recovered, never written.

Values that fail to parse are reported as malformed and left in place; they
may still be recoverable by hand.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator

from registration.storage import LocalStorage

logger = logging.getLogger(__name__)

SUBMISSION_PREFIX = "voter_submission_"
LEGACY_PREFIX = "voters_backup_"


class EntryStatus(str, Enum):
    PENDING = "pending"
    FAILED = "failed"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LedgerEntry:
    """A registration payload waiting for confirmed remote delivery."""

    key: str
    submission_id: str
    payload: dict[str, Any]
    status: EntryStatus = EntryStatus.PENDING
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    attempts: int = 0
    error: str | None = None
    table: str = "voters"

    @property
    def legacy(self) -> bool:
        return self.key.startswith(LEGACY_PREFIX)

    def to_json(self) -> str:
        return json.dumps({
            "submission_id": self.submission_id,
            "table": self.table,
            "status": self.status.value,
            "payload": self.payload,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "attempts": self.attempts,
            "error": self.error,
        }, default=str)

    def summary(self) -> dict[str, Any]:
        """Entry metadata without the personal data in ``payload``."""
        return {
            "key": self.key,
            "submission_id": self.submission_id,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "attempts": self.attempts,
            "error": self.error,
        }


@dataclass
class LedgerScan:
    entries: list[LedgerEntry] = field(default_factory=list)
    malformed: list[str] = field(default_factory=list)


class MalformedEntry(ValueError):
    """A stored value that cannot be interpreted as a ledger entry."""


def parse_entry(key: str, raw: str) -> LedgerEntry:
    """Decode a stored value from either namespace.

    Raises:
        MalformedEntry: when the value is not a usable voters backup.
    """
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise MalformedEntry(f"not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedEntry("not an object")

    if key.startswith(LEGACY_PREFIX):
        payload = data.get("data")
        if isinstance(payload, list) and len(payload) == 1:
            payload = payload[0]
        if data.get("table") != "voters" or not isinstance(payload, dict) or not payload:
            raise MalformedEntry("legacy backup without voters data")
        return LedgerEntry(
            key=key,
            submission_id=key[len(LEGACY_PREFIX):],
            payload=payload,
            status=EntryStatus.FAILED,
            created_at=str(data.get("timestamp") or ""),
            updated_at=str(data.get("timestamp") or ""),
            error=data.get("error"),
        )

    payload = data.get("payload")
    if not isinstance(payload, dict) or not payload:
        raise MalformedEntry("missing payload")
    try:
        status = EntryStatus(data.get("status", EntryStatus.PENDING.value))
    except ValueError as exc:
        raise MalformedEntry(f"unknown status {data.get('status')!r}") from exc
    return LedgerEntry(
        key=key,
        submission_id=str(data.get("submission_id") or key[len(SUBMISSION_PREFIX):]),
        payload=payload,
        status=status,
        created_at=data.get("created_at") or "",
        updated_at=data.get("updated_at") or "",
        attempts=int(data.get("attempts") or 0),
        error=data.get("error"),
        table=data.get("table") or "voters",
    )


class BackupLedger:
    """Ledger of undelivered registrations on top of LocalStorage.

    Submissions still being delivered by a running workflow are tracked in
    memory; recovery leaves their entries alone until the workflow finishes.
    """

    def __init__(self, storage: LocalStorage) -> None:
        self.storage = storage
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    @staticmethod
    def key_for(submission_id: str) -> str:
        return f"{SUBMISSION_PREFIX}{submission_id}"

    @contextmanager
    def in_flight(self, submission_id: str) -> Iterator[str]:
        """Mark *submission_id* as owned by a running submission."""
        key = self.key_for(submission_id)
        with self._lock:
            self._in_flight.add(key)
        try:
            yield key
        finally:
            with self._lock:
                self._in_flight.discard(key)

    def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    def exists(self, key: str) -> bool:
        return self.storage.get_item(key) is not None

    def record_pending(self, submission_id: str, payload: dict[str, Any]) -> LedgerEntry:
        """Park *payload* before the first delivery attempt."""
        entry = LedgerEntry(
            key=self.key_for(submission_id),
            submission_id=submission_id,
            payload=payload,
        )
        self.storage.set_item(entry.key, entry.to_json())
        return entry

    def mark_failed(
        self, submission_id: str, payload: dict[str, Any], error: str, attempts: int = 0,
    ) -> LedgerEntry:
        """Flag the submission's entry as failed, creating it if the pending
        write never happened."""
        key = self.key_for(submission_id)
        entry = self.get(key)
        if entry is None:
            entry = LedgerEntry(key=key, submission_id=submission_id, payload=payload)
        entry.status = EntryStatus.FAILED
        entry.error = error
        entry.attempts += attempts
        entry.updated_at = _now()
        self.storage.set_item(key, entry.to_json())
        return entry

    def record_attempt(self, entry: LedgerEntry, error: str, attempts: int = 1) -> None:
        """Store the outcome of a failed redelivery. Legacy values are left as-is."""
        if entry.legacy:
            return
        entry.status = EntryStatus.FAILED
        entry.error = error
        entry.attempts += attempts
        entry.updated_at = _now()
        self.storage.set_item(entry.key, entry.to_json())

    def get(self, key: str) -> LedgerEntry | None:
        raw = self.storage.get_item(key)
        if raw is None:
            return None
        try:
            return parse_entry(key, raw)
        except MalformedEntry:
            return None

    def remove(self, key: str) -> None:
        self.storage.remove_item(key)

    def keys(self) -> list[str]:
        return self.storage.keys(SUBMISSION_PREFIX) + self.storage.keys(LEGACY_PREFIX)

    def scan(self) -> LedgerScan:
        """Read every entry in both namespaces, oldest key first per namespace."""
        result = LedgerScan()
        for key in self.keys():
            raw = self.storage.get_item(key)
            if raw is None:
                continue
            try:
                result.entries.append(parse_entry(key, raw))
            except MalformedEntry as exc:
                logger.warning("Skipping malformed ledger entry %s: %s", key, exc)
                result.malformed.append(key)
        return result

    def pending_count(self) -> int:
        return len(self.scan().entries)
