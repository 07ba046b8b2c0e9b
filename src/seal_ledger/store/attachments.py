"""Attachment folder: one PDF per ledger record.

Naming
------
An attachment is addressed by the *current* values of its record, never by a
stored identifier::

    <YYYYMMDD>_<content[:20]>_<recipient[:10]>_<author[:10]>.pdf

Each field is sanitised (``\\ / : * ? " < > |`` become ``_``, surrounding
whitespace is trimmed) and then truncated.  The name is recomputed on every
save, so editing any of the four fields "renames" the file: the new name is
written and the old one becomes an orphan that :meth:`AttachmentStore.reconcile`
removes.

Ordering
--------
:meth:`AttachmentStore.reconcile` deletes files.  It must only run once the new
authoritative record set is final, after every :meth:`AttachmentStore.put` of
the same save has succeeded.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from seal_ledger.store.errors import (
    AttachmentDeleteError,
    AttachmentWriteError,
    StorageOperationContext,
)

if TYPE_CHECKING:
    from seal_ledger.records import LedgerRecord

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|]')

_CONTENT_LIMIT = 20
_RECIPIENT_LIMIT = 10
_AUTHOR_LIMIT = 10
_UNDATED = "00000000"
ATTACHMENT_SUFFIX = ".pdf"


def sanitize_component(text: str | None) -> str:
    """Replace filesystem-unsafe characters with ``_`` and trim."""
    if not text:
        return ""
    return _UNSAFE_CHARS.sub("_", text).strip()


def deterministic_name(record: LedgerRecord) -> str:
    """Compute the attachment file name for ``record`` from its current fields.

    Pure: the same field values always give the same name.  Only ``date``,
    ``content``, ``recipient`` and ``author`` take part; the stored
    ``attachment_name`` and the payload are ignored.

    Example::

        >>> deterministic_name(LedgerRecord(1, date(2024, 3, 5), content="승인요청서",
        ...                                 recipient="총무팀", author="김철수"))
        '20240305_승인요청서_총무팀_김철수.pdf'
    """
    date_part = record.date.strftime("%Y%m%d") if record.date else _UNDATED
    content = sanitize_component(record.content)[:_CONTENT_LIMIT]
    recipient = sanitize_component(record.recipient)[:_RECIPIENT_LIMIT]
    author = sanitize_component(record.author)[:_AUTHOR_LIMIT]
    return f"{date_part}_{content}_{recipient}_{author}{ATTACHMENT_SUFFIX}"


class AttachmentStore:
    """Blob storage in the attachment subfolder of the shared directory."""

    def __init__(self, folder: Path) -> None:
        self.folder = Path(folder)

    def _path(self, name: str) -> Path:
        if not name or name != Path(name).name:
            raise ValueError(f"attachment name must be a bare file name: {name!r}")
        return self.folder / name

    def put(self, name: str, data: bytes) -> bool:
        """Write ``data`` under ``name``, creating the folder if needed.

        A file with the same name and byte length is assumed current and left
        alone.  A false match is harmless because the content is reproducible
        from the same record.

        Returns:
            ``True`` if the file was written, ``False`` if it was skipped.

        Raises:
            AttachmentWriteError: On any filesystem failure.
        """
        path = self._path(name)
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
            if path.is_file() and path.stat().st_size == len(data):
                logger.debug("attachments: %s unchanged, skipping", name)
                return False
            path.write_bytes(data)
        except OSError as exc:
            raise AttachmentWriteError(
                context=StorageOperationContext("attachments.put", details=name),
                cause=exc,
            ) from exc
        logger.debug("attachments: wrote %s (%d bytes)", name, len(data))
        return True

    def get(self, name: str) -> bytes | None:
        """Best-effort read.  Missing or unreadable files give ``None``."""
        try:
            return self._path(name).read_bytes()
        except FileNotFoundError:
            logger.warning("attachments: %s referenced but not found", name)
        except (OSError, ValueError) as exc:
            logger.warning("attachments: %s could not be read: %s", name, exc)
        return None

    def names(self) -> set[str]:
        """Names of the regular files currently in the folder."""
        if not self.folder.is_dir():
            return set()
        return {p.name for p in self.folder.iterdir() if p.is_file()}

    def reconcile(self, valid_names: Iterable[str]) -> list[str]:
        """Delete every file whose name is not in ``valid_names``.

        Idempotent: a second call with the same names deletes nothing.

        Returns:
            The deleted names, sorted.

        Raises:
            AttachmentDeleteError: If a file cannot be removed.  Files removed
                before the failure stay removed.
        """
        keep = set(valid_names)
        removed = []
        for name in sorted(self.names() - keep):
            try:
                (self.folder / name).unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise AttachmentDeleteError(
                    context=StorageOperationContext("attachments.reconcile", details=name),
                    cause=exc,
                ) from exc
            removed.append(name)

        if removed:
            logger.info("attachments: removed %d orphaned file(s)", len(removed))
        return removed
