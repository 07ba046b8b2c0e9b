"""Session history derived from the control file's log.

Sessions are never stored.  They are rebuilt by replaying the log in
timestamp order:

- ``CONNECT`` opens a session for the user.  If the user already had one open
  (the log lost its closing entry), the stale one is closed as
  ``ABNORMAL_EXIT`` at the new connect time.
- ``DISCONNECT_SAVE`` closes the user's open session as ``CLEAN_EXIT``.
- ``FORCE_UNLOCK`` closes the user's open session as ``FORCED_EXIT``.  When
  the entry names a ``displaced_user``, that user's open session is closed as
  ``FORCED_EXIT`` too.
- A closing entry with no open session is ignored.

Sessions still open at the end are ``ACTIVE`` if their user holds the live
lock, otherwise ``ABNORMAL_EXIT`` (the client vanished without a closing
entry).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from seal_ledger.store.document import LockState, LogAction, LogEntry


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLEAN_EXIT = "CLEAN_EXIT"
    FORCED_EXIT = "FORCED_EXIT"
    ABNORMAL_EXIT = "ABNORMAL_EXIT"

    @property
    def label(self) -> str:
        """Display label used by the log viewer."""
        return _LABELS[self]


_LABELS = {
    SessionStatus.ACTIVE: "접속 중",
    SessionStatus.CLEAN_EXIT: "정상 종료",
    SessionStatus.FORCED_EXIT: "강제 종료",
    SessionStatus.ABNORMAL_EXIT: "비정상 종료",
}

_CLOSING_STATUS = {
    LogAction.DISCONNECT_SAVE: SessionStatus.CLEAN_EXIT,
    LogAction.FORCE_UNLOCK: SessionStatus.FORCED_EXIT,
}


@dataclass(frozen=True)
class SessionRecord:
    user_name: str
    start_time: datetime
    end_time: datetime | None
    status: SessionStatus


def derive_sessions(
    log_entries: Iterable[LogEntry], lock: LockState | None = None
) -> list[SessionRecord]:
    """Replay ``log_entries`` into sessions, newest first by start time.

    Args:
        log_entries: Log lines in any order.
        lock: The document's current lock, used to tell a live session from
            a crashed one.  ``None`` is treated as unlocked.
    """
    closed: list[SessionRecord] = []
    open_sessions: dict[str, datetime] = {}

    def close(user: str, at: datetime, status: SessionStatus) -> None:
        started = open_sessions.pop(user, None)
        if started is not None:
            closed.append(SessionRecord(user, started, at, status))

    for entry in sorted(log_entries, key=lambda e: e.timestamp):
        if entry.action is LogAction.CONNECT:
            close(entry.user_name, entry.timestamp, SessionStatus.ABNORMAL_EXIT)
            open_sessions[entry.user_name] = entry.timestamp
            continue

        status = _CLOSING_STATUS[entry.action]
        close(entry.user_name, entry.timestamp, status)
        if entry.displaced_user and entry.displaced_user != entry.user_name:
            close(entry.displaced_user, entry.timestamp, SessionStatus.FORCED_EXIT)

    holder = lock.active_user if lock is not None and lock.is_locked else None
    for user, started in open_sessions.items():
        status = SessionStatus.ACTIVE if user == holder else SessionStatus.ABNORMAL_EXIT
        closed.append(SessionRecord(user, started, None, status))

    closed.sort(key=lambda s: s.start_time, reverse=True)
    return closed
