"""
Pytest fixtures for the voter registration tests.

Provides an in-memory stand-in for the remote record store (with failure
injection and change-feed publishing), in-memory local storage, a fast
AppConfig with zero backoff delays, a fully wired Services container, and a
TestClient for the API with an admin bearer token.
"""

import re
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi.testclient import TestClient

from api.app import create_app
from api.services import Services
from registration.ledger import BackupLedger
from registration.storage import LocalStorage
from store.realtime import ChangeEvent, ChangeFeed
from utils.config import AppConfig
from utils.errors import DuplicateError, RemoteError

_EPOCH = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
_OR_CLAUSE = re.compile(r'(\w+)\.eq\.("(?:[^"\\]|\\.)*"|[^,]*)')


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return re.sub(r"\\(.)", r"\1", value[1:-1])
    return value


class FakeRecordStore:
    """In-memory record store with the RecordStoreClient interface.

    Failure knobs:
        fail_inserts    number of upcoming inserts that raise RemoteError
        always_fail     every insert raises RemoteError
        fail_fetch      fetch_all / select raise RemoteError
        fail_rpc        rpc names that raise RemoteError
        before_insert   callable run at the start of every insert
    """

    def __init__(self, feed: ChangeFeed | None = None):
        self.feed = feed
        self.tables: dict[str, list[dict]] = {"voters": [], "admins": []}
        self.fail_inserts = 0
        self.always_fail = False
        self.fail_fetch = False
        self.fail_rpc: set[str] = set()
        self.before_insert = None
        self.insert_calls = 0
        self.fetch_calls = 0
        self.rpc_calls: list[tuple[str, dict]] = []
        self.closed = False
        self._next_id = 1

    def _publish(self, table, event_type, ids=()):
        if self.feed is not None:
            self.feed.publish(ChangeEvent(table, event_type, tuple(ids)))

    def _new_row(self, row: dict) -> dict:
        stored = dict(row)
        stored.setdefault("id", str(self._next_id))
        stored.setdefault(
            "created_at", (_EPOCH + timedelta(minutes=self._next_id)).isoformat()
        )
        self._next_id += 1
        return stored

    def add_voter(self, **fields) -> dict:
        stored = self._new_row(fields)
        self.tables["voters"].append(stored)
        return stored

    def add_admin(self, admin_id: str, email: str, password: str = "secret") -> dict:
        stored = self._new_row({"id": admin_id, "email": email,
                                "password": password, "is_admin": True})
        self.tables["admins"].append(stored)
        return stored

    def insert(self, table, rows):
        self.insert_calls += 1
        if self.before_insert is not None:
            self.before_insert()
        if self.always_fail:
            raise RemoteError("connection refused")
        if self.fail_inserts > 0:
            self.fail_inserts -= 1
            raise RemoteError("connection refused")
        body = [rows] if isinstance(rows, dict) else list(rows)
        existing = {r.get("email") for r in self.tables[table]}
        for row in body:
            if row.get("email") in existing:
                raise DuplicateError(
                    'duplicate key value violates unique constraint "voters_email_key"',
                    status_code=409,
                )
        stored = [self._new_row(row) for row in body]
        self.tables[table].extend(stored)
        self._publish(table, "INSERT", [r["id"] for r in stored])
        return [dict(r) for r in stored]

    def select(self, table, columns="*", eq=None, or_filter=None, order=None,
               ascending=True, limit=None, offset=None):
        if self.fail_fetch:
            raise RemoteError("network unreachable")
        rows = list(self.tables[table])
        for column, value in (eq or {}).items():
            rows = [r for r in rows if str(r.get(column)) == str(value)]
        if or_filter:
            clauses = [(col, _unquote(val)) for col, val in _OR_CLAUSE.findall(or_filter)]
            rows = [r for r in rows
                    if any(str(r.get(col)) == val for col, val in clauses)]
        start = offset or 0
        end = start + limit if limit is not None else None
        return [dict(r) for r in rows[start:end]]

    def delete(self, table, ids):
        id_set = {str(i) for i in ids}
        removed = [r for r in self.tables[table] if str(r.get("id")) in id_set]
        self.tables[table] = [r for r in self.tables[table] if str(r.get("id")) not in id_set]
        self._publish(table, "DELETE", sorted(id_set))
        return removed

    def rpc(self, name, params=None):
        params = params or {}
        self.rpc_calls.append((name, params))
        if name in self.fail_rpc:
            raise RemoteError(f"rpc {name} failed")
        if name == "create_admin":
            self.add_admin(params["admin_id"], params["admin_email"], params["admin_password"])
            self._publish("admins", "INSERT")
            return None
        if name == "delete_admin":
            self.tables["admins"] = [
                r for r in self.tables["admins"] if r["id"] != params["admin_id"]
            ]
            self._publish("admins", "DELETE")
            return None
        if name == "add_initial_admins":
            self.add_admin("initial-1", "first@example.com")
            self._publish("admins", "INSERT")
            return None
        if name == "admin_login":
            return any(
                r["email"] == params["admin_email"] and r["password"] == params["admin_password"]
                for r in self.tables["admins"]
            )
        return None

    def fetch_all(self, table, order_by="created_at", ascending=True,
                  page_size=10_000, max_attempts=3):
        self.fetch_calls += 1
        if self.fail_fetch:
            raise RemoteError("network unreachable")
        return [dict(r) for r in self.tables[table]]

    def close(self):
        self.closed = True


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_config(**overrides) -> AppConfig:
    """AppConfig with zero backoff delays; keyword overrides win."""
    config = AppConfig()
    config.submit_max_attempts = 3
    config.submit_retry_delay = 0.0
    config.recovery_entry_delay = 0.0
    config.recovery_retry_delay = 0.0
    config.recovery_max_attempts = 3
    config.recovery_settle_seconds = 0.01
    config.recovery_idle_seconds = 60
    config.recovery_scan_interval = 300
    config.dob_min_year = 1900
    config.dob_max_year = 2008
    config.cors_origins = ["*"]
    config.log_format = "text"
    config.rate_limit_default = 1000
    config.rate_limit_submit = 1000
    config.rate_limit_download = 1000
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


@pytest.fixture()
def config():
    return make_config()


@pytest.fixture()
def feed():
    f = ChangeFeed()
    yield f
    f.close()


@pytest.fixture()
def fake_store(feed):
    return FakeRecordStore(feed)


@pytest.fixture()
def storage():
    s = LocalStorage(":memory:")
    yield s
    s.close()


@pytest.fixture()
def ledger(storage):
    return BackupLedger(storage)


@pytest.fixture()
def valid_form():
    """A complete, valid registration form."""
    return {
        "agree_to_terms": True,
        "full_name": "Awa Jallow",
        "email": "Awa@Example.com",
        "date_of_birth": "2001-04-12",
        "gender": "female",
        "organization": "Youth Council",
        "region": "Banjul",
        "constituency": "Banjul North",
        "identification_type": "passport_number",
        "identification_number": "1234567",
    }


@pytest.fixture()
def services(config, fake_store, storage, feed):
    svc = Services.from_config(config, client=fake_store, storage=storage,
                               feed=feed, sleep=lambda seconds: None)
    yield svc
    svc.monitor.stop()
    svc.repository.close()


@pytest.fixture()
def client(services):
    app = create_app(services, start_monitor=False)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def auth_headers(services, fake_store):
    """Bearer header for a logged-in admin."""
    fake_store.add_admin("admin-1", "admin@example.com", "letmein")
    session = services.sessions.create("admin@example.com")
    return {"Authorization": f"Bearer {session.token}"}


@pytest.fixture()
def seeded_voters(fake_store):
    """Six voters across two regions, created in list order."""
    rows = [
        ("Awa Jallow", "awa@example.com", "female", "Banjul", "Banjul North", "2001-04-12"),
        ("Lamin Ceesay", "lamin@example.com", "male", "Banjul", "Banjul South", "1999-11-02"),
        ("Fatou Bah", "fatou@example.com", "female", "Banjul", "Banjul North", "2001-04-30"),
        ("Musa Sowe", "musa@example.com", "male", "Kanifing", "Bakau", "1995-06-15"),
        ("Isatou Njie", "isatou@example.com", "female", "Kanifing", "Serekunda", "2003-01-20"),
        ("Ousman Darboe", "ousman@example.com", "male", "Kanifing", "Bakau", "1990-09-09"),
    ]
    for i, (name, email, gender, region, constituency, dob) in enumerate(rows):
        fake_store.add_voter(
            full_name=name, email=email, gender=gender, region=region,
            constituency=constituency, date_of_birth=dob,
            organization="Youth Council" if i % 2 == 0 else "Scouts",
            identification_type="passport_number",
            identification_number=f"{1000000 + i}",
            agree_to_terms=True,
        )
    return fake_store.tables["voters"]
