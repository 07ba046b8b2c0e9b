"""Directory grant: the shared folder a client has been pointed at.

A :class:`DirectoryGrant` is obtained once, when the operator selects a
folder, and then passed explicitly to every sync operation.  It knows where
the control file and the attachment folder live, and builds the stores that
act on them.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from seal_ledger.store.attachments import AttachmentStore
from seal_ledger.store.document import DEFAULT_LOG_RETENTION, DEFAULT_PASSWORD, DocumentStore
from seal_ledger.store.errors import (
    DirectoryNotFoundError,
    DirectoryPermissionError,
    SelectionCancelled,
)


@dataclass(frozen=True)
class DirectoryGrant:
    """A verified shared directory plus its layout.

    Attributes:
        root: Absolute path of the shared directory.
        document_name: File name of the control file inside ``root``.
        attachment_folder: Name of the attachment subfolder inside ``root``.
    """

    root: Path
    document_name: str
    attachment_folder: str

    @classmethod
    def open(cls, path: str | os.PathLike[str], document_name: str, attachment_folder: str) -> DirectoryGrant:
        """Verify ``path`` and return a grant for it.

        Raises:
            DirectoryNotFoundError: ``path`` is missing or not a directory.
            DirectoryPermissionError: ``path`` cannot be read and written.
        """
        root = Path(path).expanduser()
        try:
            root = root.resolve(strict=True)
        except FileNotFoundError as exc:
            raise DirectoryNotFoundError(path, exc.strerror or "No such file or directory") from exc
        except OSError as exc:
            raise DirectoryPermissionError(path, exc.strerror or str(exc)) from exc

        if not root.is_dir():
            raise DirectoryNotFoundError(path, "Not a directory")
        if not os.access(root, os.R_OK | os.W_OK | os.X_OK):
            raise DirectoryPermissionError(path, "Permission denied")
        return cls(root=root, document_name=document_name, attachment_folder=attachment_folder)

    @property
    def document_path(self) -> Path:
        return self.root / self.document_name

    @property
    def attachment_path(self) -> Path:
        return self.root / self.attachment_folder

    def document_store(
        self,
        *,
        log_retention: int = DEFAULT_LOG_RETENTION,
        default_password: str = DEFAULT_PASSWORD,
    ) -> DocumentStore:
        return DocumentStore(
            self.document_path,
            log_retention=log_retention,
            default_password=default_password,
        )

    def attachment_store(self) -> AttachmentStore:
        return AttachmentStore(self.attachment_path)


def select_directory(
    document_name: str,
    attachment_folder: str,
    *,
    prompt: Callable[[str], str] = input,
) -> DirectoryGrant:
    """Ask the operator for a folder and open it.

    Raises:
        SelectionCancelled: Empty answer, end of input or Ctrl+C.
        DirectoryNotFoundError, DirectoryPermissionError: As for
            :meth:`DirectoryGrant.open`.
    """
    try:
        answer = prompt("Shared ledger folder: ").strip()
    except (EOFError, KeyboardInterrupt) as exc:
        raise SelectionCancelled("directory selection cancelled") from exc
    if not answer:
        raise SelectionCancelled("directory selection cancelled")
    return DirectoryGrant.open(answer, document_name, attachment_folder)
