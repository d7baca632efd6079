"""
Resilient Submission Workflow.

Delivers one registration to the remote ``voters`` table without ever
losing it:

    validate ─► ledger: pending ─► insurance submit (retry + backoff)
                                        │ exhausted
                                        ▼
                                   direct insert (once)
        success from either path ─► remove ledger entry, return record
        both failed               ─► ledger: failed + error, SubmissionError

The ledger write is best effort; if local storage is unavailable the remote
attempt still happens, it just has no safety net.

While a submission runs, its entry is marked in flight and recovery skips
it. A duplicate after an earlier failure, with the backed-up entry already
gone, means the ledger copy was delivered; that counts as success.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

from registration.form import validate_registration
from registration.ledger import BackupLedger
from registration.models import VoterRecord, VoterRegistration
from utils.config import AppConfig
from utils.errors import DuplicateError, RemoteError, StorageError, SubmissionError
from utils.http import RetryPolicy

logger = logging.getLogger(__name__)

VOTERS_TABLE = "voters"


class RecordInserter(Protocol):
    def insert(self, table: str, rows: Any) -> list[dict[str, Any]]: ...


@dataclass
class SubmissionResult:
    record: VoterRecord
    submission_id: str
    attempts: int
    path: str  # "insurance", "direct" or "ledger"


def new_submission_id() -> str:
    """Random UUID, falling back to a timestamp tag if uuid generation fails."""
    try:
        return str(uuid.uuid4())
    except Exception:
        logger.warning("uuid4 unavailable; using timestamp submission id")
        return f"ts-{int(time.time() * 1000)}"


class SubmissionWorkflow:
    """Validate, back up, and deliver voter registrations."""

    def __init__(
        self,
        client: RecordInserter,
        ledger: BackupLedger | None,
        config: AppConfig | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.client = client
        self.ledger = ledger
        self.config = config or AppConfig.from_env()
        self.sleep = sleep

    def _insert_once(self, payload: dict[str, Any]) -> dict[str, Any]:
        rows = self.client.insert(VOTERS_TABLE, [payload])
        if not rows:
            raise RemoteError("Insert returned no rows")
        return rows[0]

    def _insurance_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.config.submit_max_attempts,
            base_delay=self.config.submit_retry_delay,
            multiplier=2.0,
            retry_on=(RemoteError,),
            give_up_on=(DuplicateError,),
            sleep=self.sleep,
        )

    def _safe_ledger(self, action: str, func: Callable[[], Any]) -> Any:
        if self.ledger is None:
            return None
        try:
            return func()
        except StorageError as exc:
            logger.error("Backup ledger %s failed (continuing): %s", action, exc)
            return None

    def _delivered_elsewhere(self, backup_key: str) -> bool:
        """True when a backed-up entry vanished while this submission was retrying."""
        try:
            return not self.ledger.exists(backup_key)
        except StorageError as exc:
            logger.error("Backup ledger lookup failed: %s", exc)
            return False

    def _claim(self, submission_id: str):
        if self.ledger is None:
            return nullcontext()
        return self.ledger.in_flight(submission_id)

    def submit(self, data: Mapping[str, Any] | VoterRegistration) -> SubmissionResult:
        """Deliver one registration.

        Raises:
            ValidationError: before any storage or network activity.
            DuplicateError: the email is already registered; nothing is kept.
            SubmissionError: delivery failed; the payload is in the ledger.
        """
        registration = validate_registration(data, self.config)
        payload = registration.to_insert_payload()
        submission_id = new_submission_id()
        backup_key = BackupLedger.key_for(submission_id)

        with self._claim(submission_id):
            backed_up = self._safe_ledger(
                "write", lambda: self.ledger.record_pending(submission_id, payload),
            ) is not None
            row, attempts, path = self._deliver(payload, submission_id, backup_key, backed_up)
            self._safe_ledger("remove", lambda: self.ledger.remove(backup_key))

        logger.info("Submission %s delivered via %s path after %d attempt(s)",
                    submission_id, path, attempts)
        return SubmissionResult(
            record=VoterRecord.model_validate(row),
            submission_id=submission_id,
            attempts=attempts,
            path=path,
        )

    def _already_delivered(self, submission_id: str, backup_key: str, backed_up: bool,
                           attempts: int) -> bool:
        # After an earlier failure a duplicate may be this very submission,
        # already stored from its ledger copy.
        if attempts > 1 and backed_up and self._delivered_elsewhere(backup_key):
            logger.info("Submission %s was already delivered from the backup ledger",
                        submission_id)
            return True
        self._safe_ledger("remove", lambda: self.ledger.remove(backup_key))
        return False

    def _deliver(self, payload: dict[str, Any], submission_id: str, backup_key: str,
                 backed_up: bool) -> tuple[dict, int, str]:
        policy = self._insurance_policy()
        try:
            row = policy.run(lambda: self._insert_once(payload),
                             label=f"submission {submission_id}")
            return row, policy.attempts, "insurance"
        except DuplicateError:
            if self._already_delivered(submission_id, backup_key, backed_up, policy.attempts):
                return payload, policy.attempts, "ledger"
            raise
        except RemoteError as insurance_exc:
            attempts = policy.attempts
            logger.warning("Insurance submit exhausted for %s; trying direct insert",
                           submission_id)
            try:
                row = self._insert_once(payload)
            except DuplicateError:
                if self._already_delivered(submission_id, backup_key, backed_up, attempts + 1):
                    return payload, attempts + 1, "ledger"
                raise
            except RemoteError as direct_exc:
                attempts += 1
                message = str(direct_exc) or str(insurance_exc)
                self._safe_ledger(
                    "mark failed",
                    lambda: self.ledger.mark_failed(submission_id, payload, message, attempts),
                )
                logger.error("Submission %s saved locally after %d attempts: %s",
                             submission_id, attempts, message)
                raise SubmissionError(
                    message, submission_id=submission_id, backup_key=backup_key,
                ) from direct_exc
            return row, attempts + 1, "direct"
