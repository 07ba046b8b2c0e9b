"""Store package: the shared folder as a single-writer database.

Public surface
--------------
- :class:`DocumentStore`: read/write the control file.
- :class:`LockManager`: acquire / release / force-release.
- :class:`AttachmentStore` and :func:`deterministic_name`: PDF blobs.
- :func:`derive_sessions`: session history from the log.
- :class:`DirectoryGrant`: a verified shared folder and its layout.
- Typed errors from :mod:`seal_ledger.store.errors`.

Layout of a shared folder::

    <root>/
        직인관리대장.json          control file (records, lock, password, log)
        다.직인관리대장 스캔/       one PDF per record with an attachment
"""

from seal_ledger.store.attachments import AttachmentStore, deterministic_name
from seal_ledger.store.directory import DirectoryGrant, select_directory
from seal_ledger.store.document import (
    DatabaseDocument,
    DocumentStore,
    EntryMeta,
    LockState,
    LockStatus,
    LogAction,
    LogEntry,
)
from seal_ledger.store.errors import (
    ContentionError,
    LedgerSyncError,
    LockNotHeldError,
    SelectionCancelled,
)
from seal_ledger.store.lock import LockManager
from seal_ledger.store.sessions import SessionRecord, SessionStatus, derive_sessions

__all__ = [
    "AttachmentStore",
    "ContentionError",
    "DatabaseDocument",
    "DirectoryGrant",
    "DocumentStore",
    "EntryMeta",
    "LedgerSyncError",
    "LockManager",
    "LockNotHeldError",
    "LockState",
    "LockStatus",
    "LogAction",
    "LogEntry",
    "SelectionCancelled",
    "SessionRecord",
    "SessionStatus",
    "derive_sessions",
    "deterministic_name",
    "select_directory",
]
