"""
Service container and FastAPI dependencies.

Everything the routes need (storage, ledger, record store client, change
feed, repository, submission workflow, recovery monitor, sessions) is built
once per application by ``Services.from_config`` and attached to
``app.state.services``. Tests pass their own container with fakes.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from registration.ledger import BackupLedger
from registration.recovery import RecoveryMonitor
from registration.session import AdminSession, SessionStore
from registration.storage import LocalStorage
from registration.workflow import SubmissionWorkflow
from store.client import RecordStoreClient
from store.realtime import ChangeFeed
from store.repository import RegistrationRepository
from utils.config import AppConfig

logger = logging.getLogger(__name__)


class Services:
    """Explicitly wired application services with init/teardown."""

    def __init__(
        self,
        config: AppConfig,
        storage: LocalStorage,
        client: Any,
        feed: ChangeFeed,
        ledger: BackupLedger,
        repository: RegistrationRepository,
        workflow: SubmissionWorkflow,
        monitor: RecoveryMonitor,
        sessions: SessionStore,
    ) -> None:
        self.config = config
        self.storage = storage
        self.client = client
        self.feed = feed
        self.ledger = ledger
        self.repository = repository
        self.workflow = workflow
        self.monitor = monitor
        self.sessions = sessions
        self.started = False

    @classmethod
    def from_config(
        cls,
        config: AppConfig | None = None,
        client: Any = None,
        storage: LocalStorage | None = None,
        feed: ChangeFeed | None = None,
        sleep=None,
    ) -> "Services":
        """Build the default service graph.

        Args:
            config: Settings (default: from environment).
            client: Record store client; defaults to RecordStoreClient
                against ``APP_STORE_URL``.
            storage: Local storage; defaults to ``APP_STORAGE_PATH``.
            feed: Change feed shared by client and repository.
            sleep: Sleep function for retry backoff (tests pass a no-op).
        """
        config = config or AppConfig.from_env()
        feed = feed or ChangeFeed()
        if client is None:
            client = RecordStoreClient(config.store_url, config.store_key,
                                       timeout=config.store_timeout, feed=feed)
        storage = storage or LocalStorage(config.storage_path)
        ledger = BackupLedger(storage)
        repository = RegistrationRepository(
            client, feed,
            voter_ttl=config.voter_cache_ttl,
            admin_ttl=config.admin_cache_ttl,
            page_size=config.fetch_page_size,
            initial_admin_emails=config.initial_admin_emails,
        )
        extra = {"sleep": sleep} if sleep is not None else {}
        workflow = SubmissionWorkflow(client, ledger, config, **extra)
        monitor = RecoveryMonitor(ledger, client, config,
                                  on_recover=repository.invalidate, **extra)
        sessions = SessionStore(storage, hours=config.session_hours)
        return cls(config, storage, client, feed, ledger, repository,
                   workflow, monitor, sessions)

    def start(self) -> None:
        if not self.started:
            self.monitor.start()
            self.started = True

    def close(self) -> None:
        self.monitor.stop()
        self.repository.close()
        self.feed.close()
        close_client = getattr(self.client, "close", None)
        if callable(close_client):
            close_client()
        self.storage.close()
        self.started = False


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services are not initialised")
    return services


_bearer = HTTPBearer(auto_error=False)


def require_admin_session(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    services: Services = Depends(get_services),
) -> AdminSession:
    """Resolve the bearer token to a live admin session or reply 401."""
    token = credentials.credentials if credentials else ""
    session = services.sessions.get(token)
    if session is None:
        raise HTTPException(
            status_code=401,
            detail="Admin session missing or expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session
