"""
Cached access to voters and admins, with the admin management rules.

Voter and admin lists are cached (60s / 300s by default). A change event
for a table expires its cache; the next read refetches. When a refetch fails
and an older copy exists, the older copy is served so the dashboard stays
usable offline. Concurrent refetches of the same table are coalesced.

Admin rules:
    - all fields required, email must look like an email
    - email and id are unique (checked before the create rpc)
    - the last remaining admin cannot be deleted
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from pydantic import ValidationError as PydanticValidationError

from registration.models import EMAIL_RE, AdminRecord, VoterRecord
from store.client import RecordStoreClient
from store.realtime import ChangeEvent, ChangeFeed, Subscription
from utils.cache import TTLCache
from utils.errors import DuplicateError, RemoteError, ValidationError
from utils.filters import sort_first_come_first_served

logger = logging.getLogger(__name__)

_ADMIN_COLUMNS = "id,email,is_admin,created_at"


def validate_admin_form(admin_id: str, email: str, password: str) -> None:
    """Raise ValidationError unless every field is present and the email is well formed."""
    if not admin_id or not email or not password:
        raise ValidationError("Please fill all fields to add a new admin")
    if not EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email address")


def quote_filter_value(value: str) -> str:
    """Double-quote a PostgREST filter value so `,` `(` `)` and `.` stay literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'

class RegistrationRepository:
    """Voters and admins as seen by the admin dashboard."""

    def __init__(
        self,
        client: RecordStoreClient,
        feed: ChangeFeed | None = None,
        voter_ttl: float = 60.0,
        admin_ttl: float = 300.0,
        page_size: int = 10_000,
        initial_admin_emails: Iterable[str] = (),
    ) -> None:
        self.client = client
        self.page_size = page_size
        self.initial_admin_emails = list(initial_admin_emails)
        self._voters = TTLCache(maxsize=1, ttl_seconds=voter_ttl)
        self._admins = TTLCache(maxsize=1, ttl_seconds=admin_ttl)
        self._voter_lock = threading.Lock()
        self._admin_lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        if feed is not None:
            self._subscriptions = [
                feed.subscribe("voters", self._on_voters_changed),
                feed.subscribe("admins", self._on_admins_changed),
            ]

    # ── change events ─────────────────────────────────────────────────────

    def _on_voters_changed(self, event: ChangeEvent) -> None:
        logger.debug("voters %s event; expiring cache", event.event_type)
        self._voters.invalidate("voters")

    def _on_admins_changed(self, event: ChangeEvent) -> None:
        logger.debug("admins %s event; expiring cache", event.event_type)
        self._admins.invalidate("admins")

    def invalidate(self) -> None:
        self._voters.invalidate("voters")
        self._admins.invalidate("admins")

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []

    # ── voters ────────────────────────────────────────────────────────────

    def voters(self, force: bool = False) -> list[VoterRecord]:
        """All voters, first come first served."""
        if not force:
            cached = self._voters.get("voters")
            if cached is not None:
                return cached
        with self._voter_lock:
            if not force:
                cached = self._voters.get("voters")
                if cached is not None:
                    return cached
            try:
                rows = self.client.fetch_all("voters", page_size=self.page_size)
            except RemoteError as exc:
                stale = self._voters.get_stale("voters")
                if stale is not None:
                    logger.warning("Voter refresh failed, serving cached data: %s", exc)
                    return stale
                raise
            records = sort_first_come_first_served(self._parse_voters(rows))
            self._voters.set("voters", records)
            return records

    @staticmethod
    def _parse_voters(rows: list[dict[str, Any]]) -> list[VoterRecord]:
        records = []
        for row in rows:
            try:
                records.append(VoterRecord.model_validate(row))
            except PydanticValidationError as exc:
                logger.warning("Skipping unreadable voter row %s: %s", row.get("id"), exc)
        return records

    def delete_voters(self, ids: Iterable[str]) -> int:
        """Delete voters by id; returns how many ids were requested."""
        id_list = [str(i) for i in ids]
        if not id_list:
            raise ValidationError("No voters selected")
        self.client.delete("voters", id_list)
        self._voters.invalidate("voters")
        logger.info("Deleted %d voter record(s)", len(id_list))
        return len(id_list)

    # ── admins ────────────────────────────────────────────────────────────

    def admins(self, force: bool = False) -> list[AdminRecord]:
        if not force:
            cached = self._admins.get("admins")
            if cached is not None:
                return cached
        with self._admin_lock:
            try:
                rows = self.client.select("admins", columns=_ADMIN_COLUMNS,
                                          order="created_at")
            except RemoteError as exc:
                stale = self._admins.get_stale("admins")
                if stale is not None and not force:
                    logger.warning("Admin refresh failed, serving cached data: %s", exc)
                    return stale
                raise
            records = [AdminRecord.model_validate(r) for r in rows]
            self._admins.set("admins", records)
            return records

    def has_admins(self) -> bool:
        return bool(self.admins())

    def initial_admins_present(self) -> bool:
        """True once the first configured admin exists (or any admin, if none configured)."""
        if not self.initial_admin_emails:
            return self.has_admins()
        rows = self.client.select("admins", columns="id",
                                  eq={"email": self.initial_admin_emails[0]})
        return bool(rows)

    def check_existing_admin(self, admin_id: str, email: str) -> None:
        rows = self.client.select(
            "admins", columns="id,email",
            or_filter=(f"email.eq.{quote_filter_value(email)},"
                       f"id.eq.{quote_filter_value(admin_id)}"),
        )
        for row in rows:
            if str(row.get("email", "")).lower() == email.lower():
                raise DuplicateError("An admin with this email already exists")
            if str(row.get("id")) == admin_id:
                raise DuplicateError("An admin with this ID already exists")

    def create_admin(self, admin_id: str, email: str, password: str) -> AdminRecord:
        validate_admin_form(admin_id, email, password)
        self.check_existing_admin(admin_id, email)
        self.client.rpc("create_admin", {
            "admin_id": admin_id,
            "admin_email": email,
            "admin_password": password,
        })
        self._admins.invalidate("admins")
        logger.info("Created admin %s", admin_id)
        return AdminRecord(id=admin_id, email=email)

    def delete_admin(self, admin_id: str) -> None:
        """Delete one admin, refusing to remove the last one.

        Raises:
            ValidationError: only one admin is left.
            LookupError: no admin has *admin_id*.
        """
        current = self.admins(force=True)
        if len(current) <= 1:
            raise ValidationError("At least one admin must remain in the system")
        if not any(a.id == admin_id for a in current):
            raise LookupError(f"Admin '{admin_id}' not found")
        self.client.rpc("delete_admin", {"admin_id": admin_id})
        self._admins.invalidate("admins")
        logger.info("Deleted admin %s", admin_id)

    def add_initial_admins(self) -> None:
        self.client.rpc("add_initial_admins")
        self._admins.invalidate("admins")

    def verify_login(self, email: str, password: str) -> bool:
        """Check credentials via the login rpc, falling back to a direct lookup."""
        try:
            result = self.client.rpc("admin_login", {
                "admin_email": email,
                "admin_password": password,
            })
        except RemoteError as exc:
            logger.warning("Login rpc failed, trying direct lookup: %s", exc)
            try:
                rows = self.client.select("admins", columns="id",
                                          eq={"email": email, "password": password})
            except RemoteError as direct_exc:
                logger.error("Direct login lookup failed: %s", direct_exc)
                return False
            return bool(rows)
        return bool(result)
