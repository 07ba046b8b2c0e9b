"""Seal Ledger: shared-folder ledger of official-seal usage records.

A directory chosen by the operator is treated as a lightweight single-writer
database: one JSON control file holds the records, an advisory lock, the
access password and the session log, and a subfolder holds one PDF per
record.  Any number of clients may point at the same directory; only the one
holding the lock may write.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ---------------------------------------------------------------------------
# Package version: read from pyproject.toml via importlib.metadata.
#
# When the package is imported without being installed we fall back to the
# last released version so the CLI can still start.
# ---------------------------------------------------------------------------
try:
    __version__: str = version("seal_ledger")
except PackageNotFoundError:
    __version__ = "0.3.0"
