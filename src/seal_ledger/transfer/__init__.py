"""Import/export utilities that sit outside the sync protocol."""

from seal_ledger.transfer.backup import backup_archive
from seal_ledger.transfer.spreadsheet import export_workbook, import_workbook

__all__ = ["backup_archive", "export_workbook", "import_workbook"]
