"""
Structured accounting for recovery passes and user-facing notices.

Provides:
  - SkipRecord: one ledger entry that was not attempted, with a category
  - RecoveryReport: what one recovery pass did (recovered / failed /
    duplicates / skipped) and how long it took
  - Notice: a message the monitor raises for the user, optionally with an
    action the user can take ("recover")

Skip categories (for SkipRecord.category):
    malformed_entry   stored value could not be parsed; left in place
    missing_entry     key vanished between scan and processing
    in_flight         a running submission still owns the entry
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class SkipRecord:
    """One thing that was skipped, with a machine-readable category."""

    category: str          # e.g. "malformed_entry"
    detail: str            # human-readable explanation
    item: str = ""         # ledger key

    def to_dict(self) -> dict[str, str]:
        d: dict[str, str] = {"category": self.category, "detail": self.detail}
        if self.item:
            d["item"] = self.item
        return d


@dataclass
class RecoveryReport:
    """Summary of one recovery pass."""

    status: str = "not_started"       # completed | already_running | nothing_pending
    recovered: int = 0
    failed: int = 0
    duplicates: int = 0
    elapsed_seconds: float = 0.0
    recovered_keys: list[str] = field(default_factory=list)
    skips: list[SkipRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def add_skip(self, category: str, detail: str, item: str = "") -> None:
        self.skips.append(SkipRecord(category=category, detail=detail, item=item))

    def add_error(self, key: str, message: str) -> None:
        self.errors.append(f"{key}: {message}")
        self.failed += 1

    @property
    def skipped(self) -> int:
        return len(self.skips)

    def skip_counts_by_category(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for s in self.skips:
            counts[s.category] = counts.get(s.category, 0) + 1
        return counts

    def console_summary(self) -> str:
        """One-line summary suitable for logs."""
        parts: list[str] = []
        if self.recovered:
            parts.append(f"{self.recovered} recovered")
        if self.duplicates:
            parts.append(f"{self.duplicates} already present")
        if self.failed:
            parts.append(f"{self.failed} failed")
        if self.skips:
            cats = self.skip_counts_by_category()
            skip_parts = [f"{v} {k.replace('_', ' ')}" for k, v in sorted(cats.items())]
            parts.append(f"{self.skipped} skipped ({', '.join(skip_parts)})")
        return " | ".join(parts) if parts else "no activity"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "status": self.status,
            "recovered": self.recovered,
            "failed": self.failed,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
        }
        if self.skips:
            d["skips"] = [s.to_dict() for s in self.skips]
            d["skip_categories"] = self.skip_counts_by_category()
        if self.errors:
            d["errors"] = self.errors
        return d


@dataclass
class Notice:
    """A user-facing notification raised by the recovery monitor."""

    kind: str               # found | recovered | failed | error
    title: str
    message: str
    count: int = 0
    action: str | None = None
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "title": self.title,
            "message": self.message,
            "count": self.count,
            "action": self.action,
            "created_at": self.created_at,
        }
