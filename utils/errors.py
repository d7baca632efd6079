"""Error types shared by the registration workflow, the record store client,
and the API layer.

Hierarchy::

    RegistrationError
    ├── ValidationError   bad or missing input, raised before any network call
    ├── RemoteError       network / remote database failure (retryable)
    │   └── DuplicateError   unique-constraint violation (never retried)
    ├── StorageError      on-device storage unavailable
    └── SubmissionError   remote delivery exhausted; a local backup remains
"""

from __future__ import annotations


class RegistrationError(Exception):
    """Base class for all errors raised by this application."""


class ValidationError(RegistrationError):
    """Input failed validation. ``errors`` lists every problem found."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or [message]


class RemoteError(RegistrationError):
    """The remote record store could not complete a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DuplicateError(RemoteError):
    """A unique constraint (email, admin id) rejected the write."""


class StorageError(RegistrationError):
    """Local key-value storage failed to read or write."""


class SubmissionError(RegistrationError):
    """Every delivery attempt failed; the payload survives in the ledger."""

    def __init__(
        self,
        message: str,
        submission_id: str | None = None,
        backup_key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.submission_id = submission_id
        self.backup_key = backup_key
