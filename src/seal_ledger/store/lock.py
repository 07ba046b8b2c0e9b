"""Advisory single-writer lock on top of the control file.

Protocol
--------
- :meth:`LockManager.acquire` reads the document, refuses with
  :exc:`~seal_ledger.store.errors.ContentionError` if it is ``LOCKED``, and
  otherwise writes it back ``LOCKED`` by the caller with a ``CONNECT`` log
  entry.
- :meth:`LockManager.release` writes the caller's records, ``UNLOCKED`` and a
  ``DISCONNECT_SAVE`` entry.
- :meth:`LockManager.force_release` writes ``UNLOCKED`` and a
  ``FORCE_UNLOCK`` entry whatever the lock said.  Records are not touched, so
  any unsaved work of the displaced holder is lost.  This is the recovery
  path for crashed or abandoned sessions.

Known race window
-----------------
The shared folder offers no compare-and-swap between processes.  ``acquire``
is read-check-write: two clients that both read ``UNLOCKED`` before either
writes will both believe they hold the lock, and the later write wins the
file.  The protocol is best-effort mutual exclusion for people taking turns,
not a linearizable lock.  This window is accepted; nothing here tries to
close it.  :meth:`LockManager.ensure_held` narrows the damage by refusing a
save from a client whose claim has since been overwritten.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from seal_ledger.store.document import (
    DatabaseDocument,
    DocumentStore,
    EntryMeta,
    LockState,
    LogAction,
    LogEntry,
    utc_now,
)
from seal_ledger.store.errors import ContentionError, LockNotHeldError

if TYPE_CHECKING:
    from seal_ledger.records import LedgerRecord

logger = logging.getLogger(__name__)


def to_entry_meta(record: LedgerRecord) -> EntryMeta:
    """Strip the in-memory payload from a record for storage."""
    return EntryMeta(
        sequence_number=record.sequence_number,
        date=record.date,
        document_number=record.document_number,
        content=record.content,
        recipient=record.recipient,
        author=record.author,
        attachment_name=record.attachment_name,
    )


class LockManager:
    """Acquire/release protocol over one :class:`DocumentStore`."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def status(self) -> LockState:
        return self.store.read().lock

    def acquire(self, user_name: str) -> DatabaseDocument:
        """Claim the ledger for ``user_name``.

        Returns:
            The document as written, for the caller to hydrate records from.

        Raises:
            ContentionError: If the document is already locked.  The lock
                state found is attached unchanged.  Nothing is written.
            DocumentWriteError: If the locked document cannot be written.
        """
        _require_user(user_name)
        document = self.store.read()
        if document.lock.is_locked:
            logger.info(
                "lock: %s refused, held by %s since %s",
                user_name,
                document.lock.active_user,
                document.lock.acquired_at,
            )
            raise ContentionError(document.lock)

        now = utc_now()
        locked = document.with_log(
            LogEntry(timestamp=now, user_name=user_name, action=LogAction.CONNECT),
            lock=LockState.held_by(user_name, now),
        )
        written = self.store.write(locked)
        logger.info("lock: acquired by %s", user_name)
        return written

    def ensure_held(self, user_name: str) -> DatabaseDocument:
        """Check that ``user_name`` still holds the lock.

        Raises:
            LockNotHeldError: If the lock is free or held by someone else.
        """
        document = self.store.read()
        lock = document.lock
        if not lock.is_locked or lock.active_user != user_name:
            raise LockNotHeldError(lock, user_name)
        return document

    def release(self, user_name: str, records: Iterable[LedgerRecord]) -> DatabaseDocument:
        """Store ``records`` as the new record set and unlock.

        Raises:
            DocumentWriteError: If the document cannot be written.  The file
                keeps its previous content, still locked by the caller.
        """
        _require_user(user_name)
        document = self.store.read()
        released = document.with_log(
            LogEntry(timestamp=utc_now(), user_name=user_name, action=LogAction.DISCONNECT_SAVE),
            lock=LockState.unlocked(),
            entries=[to_entry_meta(r) for r in records],
        )
        written = self.store.write(released)
        logger.info("lock: released by %s (%d entries saved)", user_name, len(written.entries))
        return written

    def force_release(self, user_name: str) -> DatabaseDocument:
        """Unlock regardless of holder.  Entries are left as they are."""
        _require_user(user_name)
        document = self.store.read()
        displaced = document.lock.active_user if document.lock.is_locked else None
        forced = document.with_log(
            LogEntry(
                timestamp=utc_now(),
                user_name=user_name,
                action=LogAction.FORCE_UNLOCK,
                displaced_user=displaced,
            ),
            lock=LockState.unlocked(),
        )
        written = self.store.write(forced)
        logger.warning("lock: force-released by %s (previous holder: %s)", user_name, displaced)
        return written


def _require_user(user_name: str) -> None:
    if not user_name or not user_name.strip():
        raise ValueError("user_name must be a non-empty string.")
