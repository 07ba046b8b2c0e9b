"""Local working copy used by the CLI between ``connect`` and ``save``.

A browser client keeps the records in memory for the whole session.  The CLI
exits after every command, so the records live in a local directory
instead::

    <workdir>/
        records.json     entries in control-file shape, plus "attachmentFile"
        attachments/     the PDFs loaded on connect, named as in the ledger

Operators edit ``records.json`` (or replace PDFs) and then run ``save``.  To
attach a new PDF, point a record's ``attachmentFile`` at it; the path is
relative to the working copy unless absolute.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path

from seal_ledger.records import LedgerRecord, renumber
from seal_ledger.store.document import EntryMeta
from seal_ledger.store.lock import to_entry_meta

logger = logging.getLogger(__name__)

RECORDS_FILE = "records.json"
ATTACHMENTS_DIR = "attachments"
ATTACHMENT_KEY = "attachmentFile"


def write_working_copy(records: list[LedgerRecord], workdir: str | Path) -> Path:
    """Replace the working copy in ``workdir`` with ``records``."""
    root = Path(workdir)
    folder = root / ATTACHMENTS_DIR
    if folder.exists():
        shutil.rmtree(folder)
    folder.mkdir(parents=True)

    items = []
    for r in records:
        item = to_entry_meta(r).model_dump(mode="json", by_alias=True)
        if r.attachment is not None and r.attachment_name:
            (folder / r.attachment_name).write_bytes(r.attachment)
            item[ATTACHMENT_KEY] = f"{ATTACHMENTS_DIR}/{r.attachment_name}"
        items.append(item)

    path = root / RECORDS_FILE
    path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.debug("workcopy: wrote %d records to %s", len(items), path)
    return path


def read_working_copy(workdir: str | Path) -> list[LedgerRecord]:
    """Load records and attachment bytes from ``workdir``.

    Raises:
        FileNotFoundError: ``records.json`` or a referenced PDF is missing.
        pydantic.ValidationError: A record is malformed.
        ValueError: ``records.json`` is not a JSON list.
    """
    root = Path(workdir)
    items = json.loads((root / RECORDS_FILE).read_text(encoding="utf-8"))
    if not isinstance(items, list):
        raise ValueError(f"{root / RECORDS_FILE} must contain a JSON list")

    records = []
    for item in items:
        meta = EntryMeta.model_validate(item)
        payload = None
        if attachment_file := item.get(ATTACHMENT_KEY):
            source = Path(attachment_file)
            payload = (source if source.is_absolute() else root / source).read_bytes()
        records.append(
            LedgerRecord(
                sequence_number=meta.sequence_number,
                date=meta.date,
                document_number=meta.document_number,
                content=meta.content,
                recipient=meta.recipient,
                author=meta.author,
                attachment_name=meta.attachment_name,
                attachment=payload,
            )
        )
    return renumber(records)
