"""Typed exceptions for the shared-folder store.

This module defines a small, explicit exception hierarchy used by the store
modules to signal contention and filesystem failures without collapsing them
into boolean return values.

Design intent:
    - Domain outcomes like "wrong password" or "attachment missing" are still
      represented by ``False``/``None`` where contracts already use those
      values.
    - Lock contention and filesystem failures raise typed exceptions so the
      sync orchestrator can map them to deterministic user-facing messages.
    - A malformed control file is *not* an error: the codec replaces it with
      a default document.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from seal_ledger.store.document import LockState


@dataclass(slots=True)
class StorageOperationContext:
    """Structured operation metadata carried by storage exceptions.

    Attributes:
        operation: Stable operation identifier (for example
            ``"document.write"``).
        details: Optional human-readable context for logs and debugging.
    """

    operation: str
    details: str | None = None


class LedgerSyncError(RuntimeError):
    """Base exception for every failure raised by the sync layer."""


# ── Lock contention ───────────────────────────────────────────────────────────


class ContentionError(LedgerSyncError):
    """The control file is locked by another session.

    Attributes:
        lock: The lock state found in the document, unchanged.  Carries the
            holder's name and the time the lock was taken.
    """

    def __init__(self, lock: LockState, message: str | None = None) -> None:
        holder = lock.active_user or "unknown user"
        since = lock.acquired_at.isoformat() if lock.acquired_at else "unknown time"
        super().__init__(message or f"ledger is locked by {holder} since {since}")
        self.lock = lock


class LockNotHeldError(ContentionError):
    """A save found that the caller no longer holds the lock.

    Raised when another client force-unlocked (and possibly re-locked) the
    ledger while the caller was editing.  Nothing has been written when this
    is raised.
    """

    def __init__(self, lock: LockState, user_name: str) -> None:
        holder = lock.active_user or "nobody"
        super().__init__(
            lock,
            f"{user_name} no longer holds the ledger lock (current holder: {holder})",
        )
        self.user_name = user_name


# ── Filesystem failures ───────────────────────────────────────────────────────


class StorageOperationError(LedgerSyncError):
    """Base exception for filesystem operation failures.

    Args:
        context: Structured operation metadata.
        cause: Optional underlying exception.
    """

    def __init__(
        self,
        *,
        context: StorageOperationContext,
        cause: Exception | None = None,
    ) -> None:
        message = context.operation
        if context.details:
            message = f"{message}: {context.details}"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)
        self.context = context
        self.cause = cause


class DocumentWriteError(StorageOperationError):
    """The control file could not be written."""


class AttachmentWriteError(StorageOperationError):
    """An attachment file could not be written."""


class AttachmentDeleteError(StorageOperationError):
    """An orphaned attachment file could not be removed."""


# ── Directory grant ───────────────────────────────────────────────────────────


class DirectoryAccessError(LedgerSyncError):
    """Base for directory grant failures; the OS message is kept verbatim."""

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class DirectoryNotFoundError(DirectoryAccessError):
    """The selected directory does not exist or is not a directory."""


class DirectoryPermissionError(DirectoryAccessError):
    """The selected directory exists but cannot be read or written."""


class SelectionCancelled(LedgerSyncError):
    """The operator dismissed the directory prompt.

    Not a failure: callers treat it as a silent no-op.
    """


# ── Misc ──────────────────────────────────────────────────────────────────────


class PasswordPolicyError(LedgerSyncError, ValueError):
    """A new access password does not meet the minimum requirements."""


class AccessDeniedError(LedgerSyncError):
    """The access password did not match."""


class OperationInProgressError(LedgerSyncError):
    """A mutating operation was requested while another one is outstanding."""
