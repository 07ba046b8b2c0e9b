"""Unit tests for the control file codec.

Test organisation
-----------------
- :class:`TestRead`: defaults for absent and malformed files, password backfill,
  lenient entry dates and the copy kept of a rejected file.
- :class:`TestWire`: field names and shapes on disk.
- :class:`TestWrite`: atomic replacement and write failures.
- :class:`TestTruncation`: the log never exceeds the retention bound.
"""

from __future__ import annotations

import json
import os
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

from seal_ledger.store.document import (
    DEFAULT_PASSWORD,
    DatabaseDocument,
    DocumentStore,
    EntryMeta,
    LockState,
    LockStatus,
    LogAction,
    LogEntry,
    truncate_log,
)
from seal_ledger.store.errors import DocumentWriteError

T0 = datetime(2024, 3, 5, 9, 0, tzinfo=UTC)


def _log(n: int, start: datetime = T0) -> list[LogEntry]:
    return [
        LogEntry(timestamp=start + timedelta(minutes=i), user_name="alice", action=LogAction.CONNECT)
        for i in range(n)
    ]


def _assert_fresh(document: DatabaseDocument, password: str = DEFAULT_PASSWORD) -> None:
    assert document.password == password
    assert document.lock.status is LockStatus.UNLOCKED
    assert document.logs == []
    assert document.entries == []


# ── TestRead ──────────────────────────────────────────────────────────────────


class TestRead:
    @pytest.mark.store
    def test_absent_file_gives_default(self, document_store: DocumentStore):
        assert not document_store.path.exists()
        _assert_fresh(document_store.read())

    @pytest.mark.store
    def test_absent_file_uses_configured_password(self, tmp_path: Path):
        store = DocumentStore(tmp_path / "ledger.json", default_password="9999")
        _assert_fresh(store.read(), password="9999")

    @pytest.mark.store
    @pytest.mark.parametrize(
        "content",
        ["", "   \n", "{not json", "[1, 2, 3]", '"just a string"', '{"lock": {"status": "MAYBE"}}'],
        ids=["empty", "blank", "invalid-json", "array", "string", "bad-lock-status"],
    )
    def test_malformed_file_gives_default(self, document_store: DocumentStore, content: str):
        document_store.path.write_text(content, encoding="utf-8")
        _assert_fresh(document_store.read())

    @pytest.mark.store
    def test_non_utf8_file_gives_default(self, document_store: DocumentStore):
        document_store.path.write_bytes(b"\xff\xfe\x00garbage")
        _assert_fresh(document_store.read())

    @pytest.mark.store
    def test_missing_password_is_backfilled(self, document_store: DocumentStore):
        document_store.path.write_text(
            json.dumps(
                {
                    "lock": {"status": "UNLOCKED"},
                    "logs": [],
                    "entries": [{"id": 1, "date": "2024-03-05", "content": "old file"}],
                }
            ),
            encoding="utf-8",
        )
        document = document_store.read()

        assert document.password == DEFAULT_PASSWORD
        assert document.entries[0].content == "old file"

    @pytest.mark.store
    def test_missing_sections_default(self, document_store: DocumentStore):
        document_store.path.write_text('{"password": "1234"}', encoding="utf-8")
        document = document_store.read()

        assert document.password == "1234"
        assert not document.lock.is_locked
        assert document.logs == []
        assert document.entries == []

    @pytest.mark.store
    def test_unlocked_lock_drops_stray_holder(self, document_store: DocumentStore):
        document_store.path.write_text(
            json.dumps(
                {
                    "password": "2888",
                    "lock": {"status": "UNLOCKED", "activeUser": "ghost", "startTime": "2024-01-01T00:00:00Z"},
                }
            ),
            encoding="utf-8",
        )
        lock = document_store.read().lock

        assert lock.active_user is None
        assert lock.acquired_at is None

    @pytest.mark.store
    def test_null_text_fields_read_as_empty(self, document_store: DocumentStore):
        document_store.path.write_text(
            json.dumps(
                {
                    "password": "2888",
                    "entries": [
                        {"id": 1, "date": "2024-03-05", "docNum": None, "content": None, "fileName": ""}
                    ],
                }
            ),
            encoding="utf-8",
        )
        entry = document_store.read().entries[0]

        assert entry.document_number == ""
        assert entry.content == ""
        assert entry.attachment_name is None

    @pytest.mark.store
    def test_numeric_document_number_is_read_as_text(self, document_store: DocumentStore):
        document_store.path.write_text(
            json.dumps({"password": "2888", "entries": [{"id": 1, "date": "2024-03-05", "docNum": 1234}]}),
            encoding="utf-8",
        )
        assert document_store.read().entries[0].document_number == "1234"

    @pytest.mark.store
    def test_naive_timestamps_are_read_as_utc(self, document_store: DocumentStore):
        document_store.path.write_text(
            json.dumps(
                {
                    "password": "2888",
                    "logs": [{"timestamp": "2024-03-05T09:00:00", "userName": "alice", "action": "CONNECT"}],
                }
            ),
            encoding="utf-8",
        )
        assert document_store.read().logs[0].timestamp == T0

    @pytest.mark.store
    def test_blank_or_garbled_entry_date_keeps_the_document(self, document_store: DocumentStore):
        document_store.path.write_text(
            json.dumps(
                {
                    "password": "2888",
                    "entries": [
                        {"id": 1, "date": "2024-03-05", "content": "kept"},
                        {"id": 2, "date": "", "content": "cleared date"},
                        {"id": 3, "date": "someday", "content": "garbled date"},
                        {"id": 4, "content": "no date key"},
                    ],
                }
            ),
            encoding="utf-8",
        )
        entries = document_store.read().entries

        assert [e.content for e in entries] == ["kept", "cleared date", "garbled date", "no date key"]
        assert entries[0].date == date(2024, 3, 5)
        assert [e.date for e in entries[1:]] == [None, None, None]
        assert not list(document_store.path.parent.glob("*.invalid-*"))

    @pytest.mark.store
    def test_rejected_file_is_copied_aside(self, document_store: DocumentStore):
        content = '{"entries": [{"id": "not a number", "date": "2024-03-05"}]}'
        document_store.path.write_text(content, encoding="utf-8")

        _assert_fresh(document_store.read())
        _assert_fresh(document_store.read())

        copies = list(document_store.path.parent.glob("*.invalid-*"))
        assert copies == [document_store.invalid_copy_path(content.encode("utf-8"))]
        assert copies[0].read_text(encoding="utf-8") == content

    @pytest.mark.store
    @pytest.mark.parametrize("content", ["", "  \n"], ids=["empty", "blank"])
    def test_empty_file_is_not_copied_aside(self, document_store: DocumentStore, content: str):
        document_store.path.write_text(content, encoding="utf-8")
        document_store.read()
        assert not list(document_store.path.parent.glob("*.invalid-*"))


# ── TestWire ──────────────────────────────────────────────────────────────────


class TestWire:
    @pytest.mark.store
    def test_written_field_names(self, document_store: DocumentStore):
        document = DatabaseDocument(
            lock=LockState.held_by("alice", T0),
            logs=_log(1),
            entries=[
                EntryMeta(
                    sequence_number=1,
                    date=date(2024, 3, 5),
                    document_number="A-12",
                    content="승인요청서",
                    recipient="총무팀",
                    author="김철수",
                    attachment_name="20240305_승인요청서_총무팀_김철수.pdf",
                )
            ],
        )
        document_store.write(document)
        raw = json.loads(document_store.path.read_text(encoding="utf-8"))

        assert set(raw) == {"password", "lock", "logs", "entries"}
        assert raw["lock"]["status"] == "LOCKED"
        assert raw["lock"]["activeUser"] == "alice"
        assert raw["lock"]["startTime"].startswith("2024-03-05T09:00:00")
        assert raw["logs"][0] == {
            "timestamp": raw["logs"][0]["timestamp"],
            "userName": "alice",
            "action": "CONNECT",
        }
        assert raw["entries"][0] == {
            "id": 1,
            "date": "2024-03-05",
            "docNum": "A-12",
            "content": "승인요청서",
            "recipient": "총무팀",
            "author": "김철수",
            "fileName": "20240305_승인요청서_총무팀_김철수.pdf",
        }

    @pytest.mark.store
    def test_non_ascii_is_written_verbatim(self, document_store: DocumentStore):
        document_store.write(
            DatabaseDocument(entries=[EntryMeta(sequence_number=1, date=date(2024, 3, 5), content="직인")])
        )
        assert "직인" in document_store.path.read_text(encoding="utf-8")

    @pytest.mark.store
    def test_undated_entry_is_written_as_empty_string(self, document_store: DocumentStore):
        document_store.write(DatabaseDocument(entries=[EntryMeta(sequence_number=1, content="cleared")]))
        raw = json.loads(document_store.path.read_text(encoding="utf-8"))

        assert raw["entries"][0]["date"] == ""
        assert document_store.read().entries[0].date is None

    @pytest.mark.store
    def test_displaced_user_is_written_only_when_set(self, document_store: DocumentStore):
        logs = [
            LogEntry(timestamp=T0, user_name="alice", action=LogAction.CONNECT),
            LogEntry(
                timestamp=T0 + timedelta(minutes=5),
                user_name="bob",
                action=LogAction.FORCE_UNLOCK,
                displaced_user="alice",
            ),
        ]
        document_store.write(DatabaseDocument(logs=logs))
        raw = json.loads(document_store.path.read_text(encoding="utf-8"))

        assert "displacedUser" not in raw["logs"][0]
        assert raw["logs"][1]["displacedUser"] == "alice"

    @pytest.mark.store
    def test_round_trip_through_disk(self, document_store: DocumentStore):
        original = DatabaseDocument(password="7777", lock=LockState.held_by("bob", T0), logs=_log(3))
        document_store.write(original)
        assert document_store.read() == original


# ── TestWrite ─────────────────────────────────────────────────────────────────


class TestWrite:
    @pytest.mark.store
    def test_write_leaves_no_temp_files(self, document_store: DocumentStore):
        document_store.write(DatabaseDocument())
        document_store.write(DatabaseDocument(password="1111"))

        leftovers = [p.name for p in document_store.path.parent.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []

    @pytest.mark.store
    def test_replace_failure_raises_and_keeps_previous_file(
        self, document_store: DocumentStore, monkeypatch: pytest.MonkeyPatch
    ):
        document_store.write(DatabaseDocument(password="1111"))

        def _fail(*args, **kwargs):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr(os, "replace", _fail)

        with pytest.raises(DocumentWriteError) as excinfo:
            document_store.write(DatabaseDocument(password="2222"))

        assert excinfo.value.context.operation == "document.write"
        assert isinstance(excinfo.value.cause, PermissionError)
        monkeypatch.undo()
        assert document_store.read().password == "1111"
        assert not [p for p in document_store.path.parent.iterdir() if p.name.endswith(".tmp")]

    @pytest.mark.store
    def test_write_returns_document_as_written(self, tmp_path: Path):
        store = DocumentStore(tmp_path / "ledger.json", log_retention=2)
        written = store.write(DatabaseDocument(logs=_log(5)))
        assert len(written.logs) == 2
        assert store.read() == written


# ── TestTruncation ────────────────────────────────────────────────────────────


class TestTruncation:
    @pytest.mark.unit
    def test_keeps_newest_entries_in_order(self):
        logs = _log(10)
        kept = truncate_log(list(reversed(logs)), 3)
        assert kept == logs[-3:]

    @pytest.mark.unit
    def test_short_log_is_unchanged(self):
        logs = _log(3)
        assert truncate_log(logs, 200) == logs

    @pytest.mark.unit
    def test_zero_retention_empties_log(self):
        assert truncate_log(_log(3), 0) == []

    @pytest.mark.store
    def test_bound_holds_after_every_write(self, tmp_path: Path):
        store = DocumentStore(tmp_path / "ledger.json", log_retention=200)
        document = store.read()
        for i in range(250):
            entry = LogEntry(timestamp=T0 + timedelta(seconds=i), user_name="alice", action=LogAction.CONNECT)
            document = store.write(document.with_log(entry))
            assert len(document.logs) <= 200

        on_disk = store.read().logs
        assert len(on_disk) == 200
        assert on_disk[0].timestamp == T0 + timedelta(seconds=50)
        assert on_disk[-1].timestamp == T0 + timedelta(seconds=249)
