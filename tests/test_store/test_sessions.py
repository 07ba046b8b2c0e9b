"""Tests for session derivation from the control file's log.

Scenarios are written as short scripts of (minute, user, action) tuples so
the expected sessions can be read off directly.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from seal_ledger.store.document import LockState, LogAction, LogEntry
from seal_ledger.store.sessions import SessionStatus, derive_sessions

T0 = datetime(2024, 3, 5, 9, 0, tzinfo=UTC)

CONNECT = LogAction.CONNECT
SAVE = LogAction.DISCONNECT_SAVE
FORCE = LogAction.FORCE_UNLOCK


def _at(minute: int) -> datetime:
    return T0 + timedelta(minutes=minute)


def _log(*script: tuple) -> list[LogEntry]:
    entries = []
    for minute, user, action, *displaced in script:
        entries.append(
            LogEntry(
                timestamp=_at(minute),
                user_name=user,
                action=action,
                displaced_user=displaced[0] if displaced else None,
            )
        )
    return entries


def _summary(sessions) -> list[tuple]:
    return [
        (
            s.user_name,
            int((s.start_time - T0).total_seconds() // 60),
            None if s.end_time is None else int((s.end_time - T0).total_seconds() // 60),
            s.status,
        )
        for s in sessions
    ]


class TestDeriveSessions:
    @pytest.mark.unit
    def test_empty_log(self):
        assert derive_sessions([]) == []

    @pytest.mark.unit
    def test_connect_then_save_is_clean(self):
        sessions = derive_sessions(_log((0, "alice", CONNECT), (10, "alice", SAVE)))
        assert _summary(sessions) == [("alice", 0, 10, SessionStatus.CLEAN_EXIT)]

    @pytest.mark.unit
    def test_open_session_of_lock_holder_is_active(self):
        sessions = derive_sessions(_log((0, "alice", CONNECT)), LockState.held_by("alice", _at(0)))
        assert _summary(sessions) == [("alice", 0, None, SessionStatus.ACTIVE)]

    @pytest.mark.unit
    def test_open_session_without_lock_is_abnormal(self):
        sessions = derive_sessions(_log((0, "alice", CONNECT)), LockState.unlocked())
        assert _summary(sessions) == [("alice", 0, None, SessionStatus.ABNORMAL_EXIT)]

    @pytest.mark.unit
    def test_no_lock_given_is_treated_as_unlocked(self):
        sessions = derive_sessions(_log((0, "alice", CONNECT)))
        assert sessions[0].status is SessionStatus.ABNORMAL_EXIT

    @pytest.mark.unit
    def test_stale_connect_is_closed_by_the_next_one(self):
        sessions = derive_sessions(
            _log((0, "alice", CONNECT), (30, "alice", CONNECT), (40, "alice", SAVE))
        )
        assert _summary(sessions) == [
            ("alice", 30, 40, SessionStatus.CLEAN_EXIT),
            ("alice", 0, 30, SessionStatus.ABNORMAL_EXIT),
        ]

    @pytest.mark.unit
    def test_force_unlock_closes_displaced_holder(self):
        sessions = derive_sessions(
            _log(
                (0, "alice", CONNECT),
                (60, "bob", FORCE, "alice"),
                (61, "bob", CONNECT),
                (70, "bob", SAVE),
            )
        )
        assert _summary(sessions) == [
            ("bob", 61, 70, SessionStatus.CLEAN_EXIT),
            ("alice", 0, 60, SessionStatus.FORCED_EXIT),
        ]

    @pytest.mark.unit
    def test_force_unlock_by_own_user_is_forced_exit(self):
        sessions = derive_sessions(_log((0, "alice", CONNECT), (5, "alice", FORCE, "alice")))
        assert _summary(sessions) == [("alice", 0, 5, SessionStatus.FORCED_EXIT)]

    @pytest.mark.unit
    def test_closing_without_open_session_is_ignored(self):
        sessions = derive_sessions(
            _log((0, "bob", SAVE), (1, "carol", FORCE), (2, "alice", CONNECT), (3, "alice", SAVE))
        )
        assert _summary(sessions) == [("alice", 2, 3, SessionStatus.CLEAN_EXIT)]

    @pytest.mark.unit
    def test_input_order_does_not_matter(self):
        entries = _log((0, "alice", CONNECT), (10, "alice", SAVE), (20, "bob", CONNECT))
        lock = LockState.held_by("bob", _at(20))
        assert derive_sessions(list(reversed(entries)), lock) == derive_sessions(entries, lock)

    @pytest.mark.unit
    def test_newest_first(self):
        sessions = derive_sessions(
            _log(
                (0, "alice", CONNECT),
                (5, "alice", SAVE),
                (10, "bob", CONNECT),
                (15, "bob", SAVE),
                (20, "carol", CONNECT),
            ),
            LockState.held_by("carol", _at(20)),
        )
        assert [s.user_name for s in sessions] == ["carol", "bob", "alice"]
        assert sessions[0].status is SessionStatus.ACTIVE

    @pytest.mark.unit
    def test_every_connect_yields_exactly_one_session(self):
        entries = _log(
            (0, "alice", CONNECT),
            (1, "bob", CONNECT),
            (2, "alice", CONNECT),
            (3, "carol", FORCE, "bob"),
            (4, "alice", SAVE),
            (5, "bob", CONNECT),
        )
        sessions = derive_sessions(entries, LockState.held_by("bob", _at(5)))
        assert len(sessions) == sum(1 for e in entries if e.action is CONNECT)


@pytest.mark.unit
@pytest.mark.parametrize(
    "status,label",
    [
        (SessionStatus.ACTIVE, "접속 중"),
        (SessionStatus.CLEAN_EXIT, "정상 종료"),
        (SessionStatus.FORCED_EXIT, "강제 종료"),
        (SessionStatus.ABNORMAL_EXIT, "비정상 종료"),
    ],
)
def test_status_labels(status, label):
    assert status.label == label
