"""
Shared pytest fixtures for the seal ledger test suite.

This module provides fixtures that are automatically available to all test files:
- A temporary shared folder and a DirectoryGrant for it
- Document, attachment and lock stores bound to that folder
- A LedgerSync orchestrator with default settings
- A record factory with sensible field defaults

Every fixture is function scoped: each test gets its own empty shared folder.
"""

from collections.abc import Callable
from datetime import date
from pathlib import Path

import pytest

from seal_ledger.config import LedgerConfig
from seal_ledger.records import LedgerRecord
from seal_ledger.store.attachments import AttachmentStore
from seal_ledger.store.directory import DirectoryGrant
from seal_ledger.store.document import DocumentStore
from seal_ledger.store.lock import LockManager
from seal_ledger.sync import LedgerSync

# ============================================================================
# SETTINGS
# ============================================================================


@pytest.fixture
def settings() -> LedgerConfig:
    """
    Built-in default configuration.

    Tests use this instead of the module-level singleton so a local
    ``config/ledger.ini`` or SEAL_* variables cannot change their outcome.
    """
    return LedgerConfig()


# ============================================================================
# SHARED FOLDER FIXTURES
# ============================================================================


@pytest.fixture
def shared_dir(tmp_path: Path) -> Path:
    """An empty directory standing in for the network share."""
    path = tmp_path / "share"
    path.mkdir()
    return path


@pytest.fixture
def grant(shared_dir: Path, settings: LedgerConfig) -> DirectoryGrant:
    return DirectoryGrant.open(
        shared_dir,
        settings.sync.document_name,
        settings.sync.attachment_folder,
    )


@pytest.fixture
def document_store(grant: DirectoryGrant) -> DocumentStore:
    return grant.document_store()


@pytest.fixture
def attachment_store(grant: DirectoryGrant) -> AttachmentStore:
    return grant.attachment_store()


@pytest.fixture
def lock_manager(document_store: DocumentStore) -> LockManager:
    return LockManager(document_store)


@pytest.fixture
def ledger(settings: LedgerConfig) -> LedgerSync:
    """A sync orchestrator using default settings."""
    return LedgerSync(settings)


# ============================================================================
# RECORD FACTORY
# ============================================================================


@pytest.fixture
def make_record() -> Callable[..., LedgerRecord]:
    """
    Build a LedgerRecord with defaults for every field not given.

    Usage:
        record = make_record(date(2024, 3, 5), content="승인요청서")
    """

    def _make(when: date = date(2024, 3, 5), **fields) -> LedgerRecord:
        defaults = {
            "sequence_number": 1,
            "document_number": "A-1",
            "content": "승인요청서",
            "recipient": "총무팀",
            "author": "김철수",
        }
        defaults.update(fields)
        return LedgerRecord(date=when, **defaults)

    return _make
