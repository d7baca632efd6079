"""
Recovery Monitor: redeliver ledger entries without user action.

Triggers:
    start()            one scan immediately, then the background worker
    notify_online()    scan after a short settle delay once connectivity returns
    worker tick        scan every ``recovery_scan_interval`` seconds, and run
                       recovery once entries are pending and nothing has
                       touched the monitor for ``recovery_idle_seconds``
    recover()          explicit trigger (the "Recover Data" action)

A scan only counts entries and raises a "found" notice; it never starts
recovery by itself. Only one recovery pass runs at a time; a trigger that
arrives during a pass returns immediately with status ``already_running``.

Within a pass entries are processed strictly one after another, each with
its own bounded retry, and with a fixed pause between entries. An entry is
removed as soon as its insert is confirmed, so a second pass can never
deliver it twice. Entries owned by a running submission are skipped.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any, Callable

from registration.ledger import BackupLedger, LedgerEntry
from registration.report import Notice, RecoveryReport
from registration.workflow import RecordInserter
from utils.config import AppConfig
from utils.errors import DuplicateError, RemoteError, StorageError
from utils.http import RetryPolicy

logger = logging.getLogger(__name__)

MAX_NOTICES = 50


class RecoveryMonitor:
    """Background redelivery of undelivered registrations."""

    def __init__(
        self,
        ledger: BackupLedger,
        client: RecordInserter,
        config: AppConfig | None = None,
        on_recover: Callable[[], Any] | None = None,
        notify: Callable[[Notice], Any] | None = None,
        sleep: Callable[[float], Any] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = 1.0,
    ) -> None:
        self.ledger = ledger
        self.client = client
        self.config = config or AppConfig.from_env()
        self.on_recover = on_recover
        self.notify = notify
        self.sleep = sleep
        self.clock = clock
        self.tick_interval = tick_interval

        self.pending = 0
        self.notices: deque[Notice] = deque(maxlen=MAX_NOTICES)
        self.last_report: RecoveryReport | None = None

        self._guard = threading.Lock()
        self._recovering = False
        self._last_activity = clock()
        self._last_scan = clock()
        self._stop = threading.Event()
        self._worker: threading.Thread | None = None
        self._online_timer: threading.Timer | None = None

    # ── state ─────────────────────────────────────────────────────────────

    @property
    def is_recovering(self) -> bool:
        return self._recovering

    def touch(self) -> None:
        """Record activity; postpones idle-triggered recovery."""
        self._last_activity = self.clock()

    def _emit(self, notice: Notice) -> None:
        self.notices.append(notice)
        logger.info("%s: %s", notice.title, notice.message)
        if self.notify is not None:
            try:
                self.notify(notice)
            except Exception:
                logger.exception("Notice callback failed")

    # ── scanning ──────────────────────────────────────────────────────────

    def _set_pending(self, count: int) -> None:
        # A change in the pending count restarts the idle clock.
        if count != self.pending:
            self._last_activity = self.clock()
        self.pending = count

    def refresh_pending(self) -> int:
        """Recount ledger entries without raising a notice."""
        try:
            self._set_pending(self.ledger.pending_count())
        except StorageError as exc:
            logger.error("Error counting backups: %s", exc)
        return self.pending

    def scan(self) -> int:
        """Count recoverable entries and tell the user if there are any."""
        self._last_scan = self.clock()
        try:
            result = self.ledger.scan()
        except StorageError as exc:
            logger.error("Error checking for backups: %s", exc)
            return self.pending
        self._set_pending(len(result.entries))
        if self.pending:
            self._emit(Notice(
                kind="found",
                title="Found Unsaved Registrations",
                message=(f"{self.pending} unsaved registration(s) found. "
                         "Choose \"Recover Data\" to restore them."),
                count=self.pending,
                action="recover",
            ))
        return self.pending

    # ── recovery ──────────────────────────────────────────────────────────

    def recover(self) -> RecoveryReport:
        """Run one recovery pass over every ledger entry."""
        with self._guard:
            if self._recovering:
                return RecoveryReport(status="already_running")
            self._recovering = True

        started = time.monotonic()
        report = RecoveryReport(status="completed")
        try:
            self._run_pass(report)
        except StorageError as exc:
            logger.error("Recovery attempt failed: %s", exc)
            report.status = "error"
            report.errors.append(str(exc))
            self._emit(Notice(
                kind="error",
                title="Recovery Error",
                message="An unexpected error occurred during recovery.",
            ))
        finally:
            report.elapsed_seconds = time.monotonic() - started
            self._last_activity = self.clock()
            with self._guard:
                self._recovering = False

        self.last_report = report
        logger.info("Recovery pass %s: %s", report.status, report.console_summary())
        if report.recovered and self.on_recover is not None:
            try:
                self.on_recover()
            except Exception:
                logger.exception("Recovery callback failed")
        return report

    def _run_pass(self, report: RecoveryReport) -> None:
        scan = self.ledger.scan()
        for key in scan.malformed:
            report.add_skip("malformed_entry", "stored value could not be parsed", key)
        if not scan.entries:
            report.status = "nothing_pending"
            self.pending = 0
            return

        for index, entry in enumerate(scan.entries):
            if index:
                self.sleep(self.config.recovery_entry_delay)
            self._recover_entry(entry, report)

        self.pending = self.ledger.pending_count()
        self._report_outcome(report)

    def _insert(self, entry: LedgerEntry) -> None:
        rows = self.client.insert(entry.table, [entry.payload])
        if not rows:
            raise RemoteError("Insert returned no rows")

    def _recover_entry(self, entry: LedgerEntry, report: RecoveryReport) -> None:
        if self.ledger.is_in_flight(entry.key):
            report.add_skip("in_flight", "submission is still being delivered", entry.key)
            return
        if not self.ledger.exists(entry.key):
            report.add_skip("missing_entry", "removed before it was processed", entry.key)
            return
        policy = RetryPolicy(
            max_attempts=self.config.recovery_max_attempts,
            base_delay=self.config.recovery_retry_delay,
            multiplier=2.0,
            retry_on=(RemoteError,),
            give_up_on=(DuplicateError,),
            sleep=self.sleep,
        )
        try:
            policy.run(lambda: self._insert(entry), label=f"recovery {entry.key}")
        except DuplicateError:
            # Already stored remotely by an earlier attempt.
            self.ledger.remove(entry.key)
            report.duplicates += 1
            return
        except RemoteError as exc:
            report.add_error(entry.key, str(exc))
            self.ledger.record_attempt(entry, str(exc), policy.attempts)
            return
        self.ledger.remove(entry.key)
        report.recovered += 1
        report.recovered_keys.append(entry.key)

    def _report_outcome(self, report: RecoveryReport) -> None:
        if report.recovered:
            message = f"Successfully recovered {report.recovered} registration(s)."
            if report.failed:
                message += f" {report.failed} failed."
            self._emit(Notice("recovered", "Recovery Complete", message,
                              count=report.recovered))
        elif report.failed:
            self._emit(Notice(
                "failed", "Recovery Failed",
                f"Failed to recover {report.failed} registration(s). "
                "Please try again later.",
                count=report.failed,
            ))
        elif report.duplicates:
            self._emit(Notice(
                "recovered", "Recovery Complete",
                f"{report.duplicates} registration(s) were already saved.",
            ))

    # ── background triggers ───────────────────────────────────────────────

    def tick(self) -> RecoveryReport | None:
        """One worker step: periodic scan, then idle-triggered recovery."""
        now = self.clock()
        if now - self._last_scan >= self.config.recovery_scan_interval:
            self.scan()
        idle = now - self._last_activity
        if self.pending and not self._recovering and idle >= self.config.recovery_idle_seconds:
            logger.info("Idle for %.0fs with %d pending; starting recovery",
                        idle, self.pending)
            return self.recover()
        return None

    def _run(self) -> None:
        while not self._stop.wait(self.tick_interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Recovery monitor tick failed")

    def start(self) -> None:
        """Scan once and start the background worker (idempotent)."""
        if self._worker is not None and self._worker.is_alive():
            return
        self._stop.clear()
        self.scan()
        self._worker = threading.Thread(target=self._run, name="recovery-monitor",
                                        daemon=True)
        self._worker.start()

    def notify_online(self) -> threading.Timer:
        """Connectivity restored: rescan after the settle delay."""
        if self._online_timer is not None:
            self._online_timer.cancel()
        timer = threading.Timer(self.config.recovery_settle_seconds, self.scan)
        timer.daemon = True
        timer.start()
        self._online_timer = timer
        return timer

    def stop(self) -> None:
        self._stop.set()
        if self._online_timer is not None:
            self._online_timer.cancel()
            self._online_timer = None
        if self._worker is not None:
            self._worker.join(timeout=5)
            self._worker = None
