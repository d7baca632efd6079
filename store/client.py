"""
Remote Record Store client.

Thin wrapper over the hosted backend's REST interface (PostgREST dialect)
for the two tables this service uses, ``voters`` and ``admins``, and its
privileged remote procedures (``create_admin``, ``delete_admin``,
``add_initial_admins``, ``admin_login``).

Failures are normalised to two exception types:
    DuplicateError  HTTP 409 or Postgres unique violation (code 23505)
    RemoteError     everything else (network, timeouts, HTTP >= 400, bad JSON)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable

import requests

from store.realtime import ChangeEvent, ChangeFeed
from utils.errors import DuplicateError, RemoteError
from utils.http import RetryPolicy, SessionManager

logger = logging.getLogger(__name__)

TABLES = ("admins", "voters")
UNIQUE_VIOLATION = "23505"

# Remote procedures that change a table, and the event they imply
_RPC_EVENTS = {
    "create_admin": ("admins", "INSERT"),
    "delete_admin": ("admins", "DELETE"),
    "add_initial_admins": ("admins", "INSERT"),
}


def _ids(rows: Iterable[dict[str, Any]] | None) -> tuple[str, ...]:
    return tuple(str(r["id"]) for r in rows or () if isinstance(r, dict) and "id" in r)


class RecordStoreClient:
    """REST client for the hosted record store.

    Args:
        base_url: Project URL, e.g. ``https://xyz.supabase.co``.
        api_key: Anon/service key sent as ``apikey`` and bearer token.
        session_manager: Pooled session provider (default: new one).
        timeout: Per-request timeout in seconds.
        feed: ChangeFeed notified after successful writes.
        sleep: Sleep function used between bulk-fetch retries.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session_manager: SessionManager | None = None,
        timeout: float = 30.0,
        feed: ChangeFeed | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.feed = feed
        self.sleep = sleep
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self.session_manager = session_manager or SessionManager(headers=self._headers)

    # ── transport ─────────────────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        if not self.base_url:
            raise RemoteError("Record store URL is not configured")
        url = f"{self.base_url}/rest/v1/{path}"
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            resp = self.session_manager.session.request(
                method, url, params=params, json=json_body,
                headers=headers, timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise RemoteError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code >= 400:
            raise self._error_from(resp, f"{method} {path}")
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteError(
                f"{method} {path} returned invalid JSON", status_code=resp.status_code,
            ) from exc

    @staticmethod
    def _error_from(resp: requests.Response, label: str) -> RemoteError:
        code = None
        message = resp.reason or f"HTTP {resp.status_code}"
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message") or body.get("error") or message
        if resp.status_code == 409 or code == UNIQUE_VIOLATION:
            return DuplicateError(message, status_code=resp.status_code)
        return RemoteError(f"{label}: {message}", status_code=resp.status_code)

    def _publish(self, table: str, event_type: str, ids: tuple[str, ...] = ()) -> None:
        if self.feed is not None:
            self.feed.publish(ChangeEvent(table, event_type, ids))

    # ── table operations ──────────────────────────────────────────────────

    def insert(self, table: str, rows: dict[str, Any] | list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert one or more rows and return them as stored."""
        body = [rows] if isinstance(rows, dict) else list(rows)
        result = self._request("POST", table, json_body=body,
                               prefer="return=representation") or []
        self._publish(table, "INSERT", _ids(result))
        return result

    def select(
        self,
        table: str,
        columns: str = "*",
        eq: dict[str, Any] | None = None,
        or_filter: str | None = None,
        order: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """Read rows with PostgREST filters.

        Args:
            eq: Column equality filters (``col=eq.value``).
            or_filter: Raw ``or`` expression, e.g. ``email.eq.a@b.com,id.eq.x``.
        """
        params: list[tuple[str, str]] = [("select", columns)]
        for column, value in (eq or {}).items():
            params.append((column, f"eq.{value}"))
        if or_filter:
            params.append(("or", f"({or_filter})"))
        if order:
            params.append(("order", f"{order}.{'asc' if ascending else 'desc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        if offset:
            params.append(("offset", str(offset)))
        return self._request("GET", table, params=params) or []

    def delete(self, table: str, ids: Iterable[str]) -> list[dict[str, Any]]:
        """Delete rows by id; returns the deleted rows."""
        id_list = [str(i) for i in ids]
        if not id_list:
            return []
        params = [("id", f"in.({','.join(id_list)})")]
        result = self._request("DELETE", table, params=params,
                               prefer="return=representation") or []
        self._publish(table, "DELETE", _ids(result) or tuple(id_list))
        return result

    def rpc(self, name: str, params: dict[str, Any] | None = None) -> Any:
        """Call a remote procedure."""
        result = self._request("POST", f"rpc/{name}", json_body=params or {})
        if name in _RPC_EVENTS:
            self._publish(*_RPC_EVENTS[name])
        return result

    def fetch_all(
        self,
        table: str,
        order_by: str = "created_at",
        ascending: bool = True,
        page_size: int = 10_000,
        max_attempts: int = 3,
    ) -> list[dict[str, Any]]:
        """Read every row of *table*, one page at a time.

        Each page is retried with growing, jittered delays (1s, x1.5, capped
        at 10s); a page that keeps failing aborts the whole fetch.
        """
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            policy = RetryPolicy(
                max_attempts=max_attempts, base_delay=1.0, multiplier=1.5,
                jitter=0.3, max_delay=10.0, give_up_on=(DuplicateError,),
                sleep=self.sleep,
            )
            page = policy.run(
                lambda: self.select(table, order=order_by, ascending=ascending,
                                    limit=page_size, offset=offset),
                label=f"fetch {table} offset={offset}",
            )
            rows.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
        logger.info("Fetched %d rows from %s", len(rows), table)
        return rows

    def close(self) -> None:
        self.session_manager.close()
