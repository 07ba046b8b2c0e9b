"""Codec for the shared-folder control file (the "database document").

Overview
--------
One JSON file in the shared directory holds everything the clients
coordinate on::

    {
      "password": "2888",
      "lock":    {"status": "LOCKED", "activeUser": "alice",
                  "startTime": "2024-03-05T09:00:00Z"},
      "logs":    [{"timestamp": "...", "userName": "alice", "action": "CONNECT"}],
      "entries": [{"id": 1, "date": "2024-03-05", "docNum": "A-12",
                   "content": "...", "recipient": "...", "author": "...",
                   "fileName": "20240305_..._..._....pdf"}]
    }

The file is always read whole and rewritten whole.  There is no partial or
incremental update.

Resilience
----------
A missing, unreadable, non-JSON or schema-invalid file is replaced by a fresh
default document (unlocked, empty log, no entries) instead of failing.  A
corrupt control file must never brick the folder.  Because the next write
replaces it, a non-empty file that is rejected is first copied aside as
``<name>.invalid-<digest>`` so nothing is lost silently.

Single bad fields are tolerated without rejecting the document: an entry
whose ``date`` is blank or unparseable (the ledger editor saves ``""``
when a date cell is cleared) is kept with no date and written back as
``""``.  The one schema migration is the access password: documents written
before the password existed are accepted and backfilled with the default
password.

Writes
------
:meth:`DocumentStore.write` truncates the log to the most recent
``log_retention`` entries, writes the JSON to a temporary file next to the
target and ``os.replace``-s it into place, so readers see either the old or
the new document, never a half-written one.  This is atomic *per write* only;
it gives no compare-and-swap between clients (see :mod:`seal_ledger.store.lock`).
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import tempfile
from datetime import UTC, datetime
from datetime import date as calendar_date
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from seal_ledger.store.errors import DocumentWriteError, StorageOperationContext

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = "2888"
DEFAULT_LOG_RETENTION = 200


# ── Enums ─────────────────────────────────────────────────────────────────────


class LockStatus(str, Enum):
    LOCKED = "LOCKED"
    UNLOCKED = "UNLOCKED"


class LogAction(str, Enum):
    """Closed set of session log actions."""

    CONNECT = "CONNECT"
    DISCONNECT_SAVE = "DISCONNECT_SAVE"
    FORCE_UNLOCK = "FORCE_UNLOCK"


def _as_utc(value: datetime | None) -> datetime | None:
    """Read naive timestamps as UTC so the log sorts consistently."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def utc_now() -> datetime:
    return datetime.now(UTC)


# ── Wire models ───────────────────────────────────────────────────────────────


class LockState(BaseModel):
    """The advisory single-writer claim.

    ``UNLOCKED`` always means no holder and no start time; stray values are
    dropped on load.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    status: LockStatus = LockStatus.UNLOCKED
    active_user: str | None = Field(default=None, alias="activeUser")
    acquired_at: datetime | None = Field(default=None, alias="startTime")

    @model_validator(mode="before")
    @classmethod
    def _unlocked_has_no_holder(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("status", LockStatus.UNLOCKED) == LockStatus.UNLOCKED:
            return {"status": LockStatus.UNLOCKED}
        return data

    @field_validator("acquired_at")
    @classmethod
    def _acquired_at_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @classmethod
    def unlocked(cls) -> LockState:
        return cls(status=LockStatus.UNLOCKED)

    @classmethod
    def held_by(cls, user_name: str, at: datetime | None = None) -> LockState:
        return cls(status=LockStatus.LOCKED, active_user=user_name, acquired_at=at or utc_now())

    @property
    def is_locked(self) -> bool:
        return self.status is LockStatus.LOCKED


class LogEntry(BaseModel):
    """One session log line.

    ``displaced_user`` is only set on ``FORCE_UNLOCK`` and names the holder
    whose claim was discarded.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    timestamp: datetime
    user_name: str = Field(alias="userName")
    action: LogAction
    displaced_user: str | None = Field(default=None, alias="displacedUser")

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)  # type: ignore[return-value]


class EntryMeta(BaseModel):
    """Record metadata as stored in the control file (no attachment bytes)."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    sequence_number: int = Field(alias="id")
    date: calendar_date | None = None
    document_number: str = Field(default="", alias="docNum")
    content: str = ""
    recipient: str = ""
    author: str = ""
    attachment_name: str | None = Field(default=None, alias="fileName")

    @field_validator("date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> Any:
        """A cleared or garbled date cell reads as no date, not a bad document."""
        if isinstance(value, datetime):
            return value.date()
        if value is None or isinstance(value, calendar_date):
            return value
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            try:
                return calendar_date.fromisoformat(text[:10])
            except ValueError:
                logger.warning("document: unreadable entry date %r, kept without a date", value)
                return None
        logger.warning("document: unexpected entry date %r, kept without a date", value)
        return None

    @field_serializer("date", when_used="json")
    def _date_wire(self, value: calendar_date | None) -> str:
        return value.isoformat() if value is not None else ""

    @field_validator("document_number", "content", "recipient", "author", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("attachment_name", mode="before")
    @classmethod
    def _blank_name_as_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class DatabaseDocument(BaseModel):
    """The root aggregate stored in the control file."""

    model_config = ConfigDict(populate_by_name=True)

    password: str = DEFAULT_PASSWORD
    lock: LockState = Field(default_factory=LockState.unlocked)
    logs: list[LogEntry] = Field(default_factory=list)
    entries: list[EntryMeta] = Field(default_factory=list)

    @classmethod
    def fresh(cls, password: str = DEFAULT_PASSWORD) -> DatabaseDocument:
        return cls(password=password)

    def with_log(self, entry: LogEntry, **updates: Any) -> DatabaseDocument:
        """Return a copy with ``entry`` appended and other fields replaced."""
        return self.model_copy(update={"logs": [*self.logs, entry], **updates})

    def to_wire(self) -> dict[str, Any]:
        return {
            "password": self.password,
            "lock": self.lock.model_dump(mode="json", by_alias=True),
            "logs": [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in self.logs],
            "entries": [e.model_dump(mode="json", by_alias=True) for e in self.entries],
        }


def truncate_log(logs: list[LogEntry], retention: int = DEFAULT_LOG_RETENTION) -> list[LogEntry]:
    """Keep the newest ``retention`` entries, in chronological order."""
    ordered = sorted(logs, key=lambda e: e.timestamp)
    if retention <= 0:
        return []
    return ordered[-retention:]


# ── Store ─────────────────────────────────────────────────────────────────────


class DocumentStore:
    """Reads and writes one control file.

    Args:
        path: Location of the control file inside the shared directory.
        log_retention: Log entries kept on every write.
        default_password: Password used for fresh documents and for the
            backfill of documents that predate the password field.
    """

    def __init__(
        self,
        path: Path,
        *,
        log_retention: int = DEFAULT_LOG_RETENTION,
        default_password: str = DEFAULT_PASSWORD,
    ) -> None:
        self.path = Path(path)
        self.log_retention = log_retention
        self.default_password = default_password

    def read(self) -> DatabaseDocument:
        """Load the document, falling back to a default one.

        Never raises for a bad or missing file; the cause is logged instead.
        A non-empty file that cannot be parsed is copied aside first (see
        :meth:`_keep_invalid_copy`) because the next write replaces it.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("document: %s absent, starting fresh", self.path.name)
            return DatabaseDocument.fresh(self.default_password)
        except UnicodeDecodeError as exc:
            logger.warning("document: %s is not UTF-8 (%s), starting fresh", self.path, exc)
            self._keep_invalid_copy()
            return DatabaseDocument.fresh(self.default_password)
        except OSError as exc:
            logger.warning("document: %s unreadable (%s), starting fresh", self.path, exc)
            return DatabaseDocument.fresh(self.default_password)

        if not text.strip():
            return DatabaseDocument.fresh(self.default_password)

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("document: %s is not valid JSON (%s), starting fresh", self.path, exc)
            self._keep_invalid_copy()
            return DatabaseDocument.fresh(self.default_password)

        if not isinstance(raw, dict):
            logger.warning("document: %s is not a JSON object, starting fresh", self.path)
            self._keep_invalid_copy()
            return DatabaseDocument.fresh(self.default_password)

        if "password" not in raw:
            # Files from before the password gate existed.
            raw["password"] = self.default_password

        try:
            return DatabaseDocument.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "document: %s failed validation (%d errors), starting fresh",
                self.path,
                exc.error_count(),
            )
            self._keep_invalid_copy()
            return DatabaseDocument.fresh(self.default_password)

    def invalid_copy_path(self, data: bytes) -> Path:
        """Where a rejected control file with content ``data`` is kept.

        The name is derived from the content, so polling an unchanged bad
        file keeps a single copy.
        """
        digest = hashlib.sha256(data).hexdigest()[:12]
        return self.path.with_name(f"{self.path.name}.invalid-{digest}")

    def _keep_invalid_copy(self) -> Path | None:
        try:
            data = self.path.read_bytes()
            target = self.invalid_copy_path(data)
            if not target.exists():
                shutil.copy2(self.path, target)
                logger.warning("document: kept rejected %s as %s", self.path.name, target.name)
            return target
        except OSError as exc:
            logger.error("document: could not keep a copy of rejected %s: %s", self.path, exc)
            return None

    def write(self, document: DatabaseDocument) -> DatabaseDocument:
        """Truncate the log and replace the file with ``document``.

        Returns:
            The document exactly as written (log truncated).

        Raises:
            DocumentWriteError: If the temporary file cannot be created,
                written or moved into place.  The previous file is untouched.
        """
        written = document.model_copy(
            update={"logs": truncate_log(document.logs, self.log_retention)}
        )
        payload = json.dumps(written.to_wire(), ensure_ascii=False, indent=2)

        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as fh:
                tmp_name = fh.name
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise DocumentWriteError(
                context=StorageOperationContext("document.write", details=str(self.path)),
                cause=exc,
            ) from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug("document: could not remove temp file %s", tmp_name)

        logger.debug(
            "document: wrote %s (%d entries, %d log lines, lock=%s)",
            self.path.name,
            len(written.entries),
            len(written.logs),
            written.lock.status.value,
        )
        return written
