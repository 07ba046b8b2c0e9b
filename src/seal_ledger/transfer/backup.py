"""Full backup archive: metadata plus every attachment, in one zip.

The archive is a one-way export for safekeeping, not part of the sync
protocol.  Layout::

    직인관리대장_전체백업_2024-03-05.zip
        직인 관리 대장.json      record metadata, same shape as the control file's entries
        직인 관리 대장.xlsx      the same records as a spreadsheet
        직인문서스캔본/           one PDF per record that has bytes in memory
"""

from __future__ import annotations

import json
import logging
import zipfile
from datetime import date
from pathlib import Path

from seal_ledger.config import BackupSettings
from seal_ledger.records import LedgerRecord
from seal_ledger.store.attachments import deterministic_name
from seal_ledger.store.lock import to_entry_meta
from seal_ledger.transfer.spreadsheet import workbook_bytes

logger = logging.getLogger(__name__)


def archive_name(settings: BackupSettings, today: date | None = None) -> str:
    return f"{settings.archive_prefix}_{(today or date.today()).isoformat()}.zip"


def backup_archive(
    records: list[LedgerRecord],
    destination: str | Path,
    *,
    settings: BackupSettings | None = None,
    today: date | None = None,
) -> Path:
    """Write the backup zip.

    Args:
        records: Records to back up, with attachment bytes where available.
        destination: A directory (the dated default name is used inside it)
            or a full ``.zip`` path.
        settings: Archive layout.  Defaults to :class:`BackupSettings` defaults.
        today: Date used in the default archive name.

    Returns:
        Path of the written archive.
    """
    settings = settings or BackupSettings()
    target = Path(destination)
    if target.is_dir():
        target = target / archive_name(settings, today)
    target.parent.mkdir(parents=True, exist_ok=True)

    metadata = [to_entry_meta(r).model_dump(mode="json", by_alias=True) for r in records]

    attachments = 0
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(
            f"{settings.metadata_name}.json",
            json.dumps(metadata, ensure_ascii=False, indent=2),
        )
        archive.writestr(f"{settings.metadata_name}.xlsx", workbook_bytes(records))
        for r in records:
            if r.attachment is None:
                continue
            name = r.attachment_name or deterministic_name(r)
            archive.writestr(f"{settings.attachment_folder}/{name}", r.attachment)
            attachments += 1

    logger.info(
        "backup: %d records and %d attachments written to %s", len(records), attachments, target
    )
    return target
