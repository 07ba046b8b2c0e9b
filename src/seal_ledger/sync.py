"""Sync orchestrator: the workflows a ledger client runs against a folder.

Three workflows make up a session:

``connect``
    Acquire the lock, then load the records and their attachments.
``save_and_exit``
    Check the lock is still ours, pick up stored PDFs for records that only
    carry a file name (spreadsheet imports), write attachments under freshly
    computed names, delete orphans, then store the records, unlock and log
    ``DISCONNECT_SAVE`` in one document write.
``force_unlock_and_retry``
    Discard whoever holds the lock, then ``connect``.

State is explicit: every call takes the :class:`DirectoryGrant`, the records
and the user name, and returns new state.  The orchestrator only remembers
whether one of its own operations is in flight, so a client cannot start a
second mutating operation before the first one finishes.

Failure ordering
----------------
``save_and_exit`` writes attachments before touching the document.  If an
attachment write fails, the document is not written and the caller still
holds the lock, so the save can simply be retried.  If the lock turns out to
be gone (someone force-unlocked), nothing at all is written.

File I/O is blocking; each workflow runs in a worker thread via
:func:`asyncio.to_thread` so the caller's event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from seal_ledger.config import LedgerConfig
from seal_ledger.records import LedgerRecord, renumber
from seal_ledger.store import access
from seal_ledger.store.attachments import AttachmentStore, deterministic_name
from seal_ledger.store.directory import DirectoryGrant
from seal_ledger.store.document import DatabaseDocument, DocumentStore
from seal_ledger.store.errors import (
    AccessDeniedError,
    ContentionError,
    DirectoryNotFoundError,
    DirectoryPermissionError,
    LockNotHeldError,
    OperationInProgressError,
    PasswordPolicyError,
    SelectionCancelled,
    StorageOperationError,
)
from seal_ledger.store.lock import LockManager
from seal_ledger.store.sessions import SessionRecord, derive_sessions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaveResult:
    """Outcome of :meth:`LedgerSync.save_and_exit`.

    Attributes:
        records: The records as stored, with regenerated attachment names.
        written: Attachment files written (unchanged files are skipped).
        removed: Orphaned attachment files deleted.
    """

    records: list[LedgerRecord]
    written: list[str]
    removed: list[str]


def hydrate(document: DatabaseDocument, attachments: AttachmentStore) -> list[LedgerRecord]:
    """Build in-memory records from stored metadata plus attachment bytes.

    A referenced file that cannot be read leaves the record without an
    attachment.
    """
    records = []
    for meta in document.entries:
        payload = attachments.get(meta.attachment_name) if meta.attachment_name else None
        records.append(
            LedgerRecord(
                sequence_number=meta.sequence_number,
                date=meta.date,
                document_number=meta.document_number,
                content=meta.content,
                recipient=meta.recipient,
                author=meta.author,
                attachment_name=meta.attachment_name if payload is not None else None,
                attachment=payload,
            )
        )
    return renumber(records)


def carry_over_attachments(
    records: Iterable[LedgerRecord], attachments: AttachmentStore
) -> list[LedgerRecord]:
    """Load stored bytes for records that name an attachment but hold none.

    Records imported from a spreadsheet keep ``attachment_name`` without the
    PDF.  The stored name only locates the existing file; the bytes are then
    saved under the freshly computed name like any other attachment.  A name
    that is not in the folder leaves the record without an attachment.
    """
    carried = []
    for r in records:
        if r.attachment is None and r.attachment_name:
            payload = attachments.get(r.attachment_name)
            if payload is not None:
                r = replace(r, attachment=payload)
        carried.append(r)
    return carried


def prepare_for_save(records: Iterable[LedgerRecord]) -> list[LedgerRecord]:
    """Renumber and recompute every attachment name from current fields.

    A record without bytes in memory is stored with no attachment.
    """
    prepared = []
    for r in renumber(list(records)):
        name = deterministic_name(r) if r.attachment is not None else None
        prepared.append(r if r.attachment_name == name else replace(r, attachment_name=name))
    return prepared


class LedgerSync:
    """Entry point for the UI layer.

    Args:
        settings: Configuration to use.  Defaults to the module-level
            :data:`seal_ledger.config.config`.
    """

    def __init__(self, settings: LedgerConfig | None = None) -> None:
        if settings is None:
            from seal_ledger import config as config_module

            settings = config_module.config
        self.settings = settings
        self._busy: str | None = None

    # ── Plumbing ──────────────────────────────────────────────────────────

    @property
    def busy(self) -> bool:
        return self._busy is not None

    @asynccontextmanager
    async def _exclusive(self, operation: str) -> AsyncIterator[None]:
        if self._busy is not None:
            raise OperationInProgressError(
                f"cannot start {operation} while {self._busy} is in progress"
            )
        self._busy = operation
        try:
            yield
        finally:
            self._busy = None

    def open_directory(self, path: Any) -> DirectoryGrant:
        """Verify ``path`` and bind it to the configured layout."""
        return DirectoryGrant.open(
            path,
            self.settings.sync.document_name,
            self.settings.sync.attachment_folder,
        )

    def _document_store(self, directory: DirectoryGrant) -> DocumentStore:
        return directory.document_store(
            log_retention=self.settings.sync.log_retention,
            default_password=self.settings.security.default_password,
        )

    def _lock_manager(self, directory: DirectoryGrant) -> LockManager:
        return LockManager(self._document_store(directory))

    # ── Workflows ─────────────────────────────────────────────────────────

    async def connect(self, directory: DirectoryGrant, user_name: str) -> list[LedgerRecord]:
        """Lock the ledger for ``user_name`` and load its records.

        Raises:
            ContentionError: Someone else holds the lock.  Nothing written.
            OperationInProgressError: Another operation of this client is running.
            StorageOperationError: The locked document could not be written.
        """
        async with self._exclusive("connect"):
            return await asyncio.to_thread(self._connect, directory, user_name)

    def _connect(self, directory: DirectoryGrant, user_name: str) -> list[LedgerRecord]:
        document = self._lock_manager(directory).acquire(user_name)
        records = hydrate(document, directory.attachment_store())
        logger.info(
            "sync: %s connected to %s (%d records)", user_name, directory.root, len(records)
        )
        return records

    async def save_and_exit(
        self, directory: DirectoryGrant, records: Iterable[LedgerRecord], user_name: str
    ) -> SaveResult:
        """Store ``records`` and their attachments, then unlock.

        Raises:
            LockNotHeldError: The caller's lock was taken over.  Nothing written.
            AttachmentWriteError: An attachment failed.  The document is not
                written and the caller still holds the lock.
            AttachmentDeleteError: An orphan could not be removed.  Same state
                as above; new attachments are in place.
            DocumentWriteError: The final document write failed.  The caller
                still holds the lock.
        """
        async with self._exclusive("save"):
            return await asyncio.to_thread(self._save, directory, list(records), user_name)

    def _save(
        self, directory: DirectoryGrant, records: list[LedgerRecord], user_name: str
    ) -> SaveResult:
        locks = self._lock_manager(directory)
        locks.ensure_held(user_name)

        attachments = directory.attachment_store()
        prepared = prepare_for_save(carry_over_attachments(records, attachments))

        written = []
        for r in prepared:
            if r.attachment is not None and attachments.put(r.attachment_name, r.attachment):
                written.append(r.attachment_name)

        removed = attachments.reconcile(r.attachment_name for r in prepared if r.attachment_name)
        locks.release(user_name, prepared)

        logger.info(
            "sync: %s saved %d records (%d attachments written, %d removed)",
            user_name,
            len(prepared),
            len(written),
            len(removed),
        )
        return SaveResult(records=prepared, written=written, removed=removed)

    async def force_unlock_and_retry(
        self, directory: DirectoryGrant, user_name: str
    ) -> list[LedgerRecord]:
        """Discard the current holder's claim, then connect as ``user_name``."""
        async with self._exclusive("force unlock"):
            return await asyncio.to_thread(self._force_and_connect, directory, user_name)

    def _force_and_connect(self, directory: DirectoryGrant, user_name: str) -> list[LedgerRecord]:
        self._lock_manager(directory).force_release(user_name)
        return self._connect(directory, user_name)

    # ── Audit view and password ───────────────────────────────────────────

    async def view_sessions(self, directory: DirectoryGrant, password: str) -> list[SessionRecord]:
        """Return session history, newest first, if ``password`` matches.

        Raises:
            AccessDeniedError: Wrong password.
        """
        store = self._document_store(directory)

        def _load() -> list[SessionRecord]:
            if not access.check_password(store, password):
                raise AccessDeniedError("password does not match")
            document = store.read()
            return derive_sessions(document.logs, document.lock)

        return await asyncio.to_thread(_load)

    async def change_password(self, directory: DirectoryGrant, old: str, new: str) -> bool:
        store = self._document_store(directory)
        async with self._exclusive("password change"):
            return await asyncio.to_thread(
                access.change_password,
                store,
                old,
                new,
                min_length=self.settings.security.min_password_length,
            )

    async def reset_password(self, directory: DirectoryGrant) -> None:
        store = self._document_store(directory)
        async with self._exclusive("password reset"):
            await asyncio.to_thread(access.reset_password, store)


# ── Failure translation ───────────────────────────────────────────────────────


def _format_time(value: datetime | None) -> str:
    if value is None:
        return "unknown time"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def describe_failure(exc: BaseException) -> str:
    """Turn a failure from any workflow into a message for the operator.

    Returns an empty string for :exc:`SelectionCancelled`, which is not a
    failure and should not be shown.
    """
    if isinstance(exc, SelectionCancelled):
        return ""
    if isinstance(exc, LockNotHeldError):
        holder = exc.lock.active_user
        if holder:
            return (
                f"Your session was force-unlocked and the ledger is now in use by {holder} "
                f"(since {_format_time(exc.lock.acquired_at)}). Nothing was saved."
            )
        return "Your session was force-unlocked by another user. Nothing was saved; connect again."
    if isinstance(exc, ContentionError):
        return (
            f"The ledger is in use by {exc.lock.active_user or 'another user'} "
            f"(since {_format_time(exc.lock.acquired_at)}). "
            "If that session was abandoned, force unlock to take over; "
            "their unsaved changes will be lost."
        )
    if isinstance(exc, DirectoryNotFoundError):
        return f"Folder not found: {exc}"
    if isinstance(exc, DirectoryPermissionError):
        return f"No permission to use folder: {exc}"
    if isinstance(exc, StorageOperationError):
        return f"File operation failed; the ledger lock was not changed: {exc}"
    if isinstance(exc, AccessDeniedError):
        return "Password does not match."
    if isinstance(exc, PasswordPolicyError):
        return f"New password rejected: {exc}"
    if isinstance(exc, OperationInProgressError):
        return "Another operation is still running. Please wait for it to finish."
    if isinstance(exc, OSError):
        return f"File error: {exc}"
    return f"Unexpected error: {exc}"
