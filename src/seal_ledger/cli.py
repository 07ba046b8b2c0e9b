"""
Command-line interface for the seal ledger.

Provides CLI commands for working with a shared ledger folder:
- connect: Lock the ledger and copy its records into a local working copy
- save: Store the working copy back, release the lock
- force-unlock: Discard an abandoned lock, then connect
- status: Show who holds the lock and how many records are stored
- logs: Show the session history (password protected)
- password: Change or reset the log viewer password
- import / export / backup: Spreadsheet and zip utilities on a working copy

Usage:
    seal-ledger connect /mnt/share/ledger --user alice --workdir ./work
    seal-ledger save /mnt/share/ledger --user alice --workdir ./work
    seal-ledger force-unlock /mnt/share/ledger --user bob --workdir ./work
    seal-ledger logs /mnt/share/ledger

Environment Variables:
    SEAL_USER: User name recorded in the lock and the session log
    SEAL_*: Configuration overrides, see seal_ledger.config

Exit codes:
    0  success, or directory selection cancelled
    1  error
    2  the ledger is locked by someone else
"""

import argparse
import asyncio
import getpass
import os
import sys

from seal_ledger import __version__
from seal_ledger.store.errors import ContentionError, LedgerSyncError, SelectionCancelled

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_LOCKED = 2


def get_user_name(args: argparse.Namespace) -> str | None:
    """
    Resolve the user name for lock and log entries.

    Order: ``--user``, then ``SEAL_USER``, then an interactive prompt.

    Returns:
        The user name, or None if none could be obtained.
    """
    user = getattr(args, "user", None) or os.environ.get("SEAL_USER")
    if user and user.strip():
        return user.strip()
    if not sys.stdin.isatty():
        return None
    try:
        user = input("User name: ").strip()
    except (EOFError, KeyboardInterrupt):
        return None
    return user or None


def _sync():
    from seal_ledger.sync import LedgerSync

    return LedgerSync()


def _open_directory(sync, args: argparse.Namespace):
    """Open the directory argument, or prompt for one when it is omitted."""
    from seal_ledger.store.directory import select_directory

    if getattr(args, "directory", None):
        return sync.open_directory(args.directory)
    return select_directory(
        sync.settings.sync.document_name,
        sync.settings.sync.attachment_folder,
    )


def _report(exc: BaseException) -> int:
    """Print a failure the way the operator should see it."""
    from seal_ledger.sync import describe_failure

    message = describe_failure(exc)
    if message:
        print(f"Error: {message}", file=sys.stderr)
    if isinstance(exc, SelectionCancelled):
        return EXIT_OK
    if isinstance(exc, ContentionError):
        return EXIT_LOCKED
    return EXIT_ERROR


# ============================================================================
# SESSION COMMANDS
# ============================================================================


def cmd_connect(args: argparse.Namespace) -> int:
    """
    Lock the ledger and write its records to the working copy.

    Returns:
        0 on success or cancelled selection, 2 if locked, 1 on error
    """
    from seal_ledger.workcopy import write_working_copy

    user = get_user_name(args)
    if not user:
        print("Error: a user name is required (--user or SEAL_USER).", file=sys.stderr)
        return EXIT_ERROR

    sync = _sync()
    try:
        directory = _open_directory(sync, args)
        records = asyncio.run(sync.connect(directory, user))
    except (LedgerSyncError, OSError) as exc:
        code = _report(exc)
        if isinstance(exc, ContentionError):
            print("Run 'seal-ledger force-unlock' to take over an abandoned session.", file=sys.stderr)
        return code

    path = write_working_copy(records, args.workdir)
    print(f"Connected to {directory.root} as {user}: {len(records)} records.")
    print(f"Working copy: {path}")
    return EXIT_OK


def cmd_save(args: argparse.Namespace) -> int:
    """
    Store the working copy and release the lock.

    Returns:
        0 on success, 2 if the lock was taken over, 1 on error
    """
    from seal_ledger.workcopy import read_working_copy

    user = get_user_name(args)
    if not user:
        print("Error: a user name is required (--user or SEAL_USER).", file=sys.stderr)
        return EXIT_ERROR

    try:
        records = read_working_copy(args.workdir)
    except (OSError, ValueError) as exc:
        print(f"Error reading working copy: {exc}", file=sys.stderr)
        return EXIT_ERROR

    sync = _sync()
    try:
        directory = _open_directory(sync, args)
        result = asyncio.run(sync.save_and_exit(directory, records, user))
    except (LedgerSyncError, OSError) as exc:
        return _report(exc)

    print(
        f"Saved {len(result.records)} records "
        f"({len(result.written)} attachments written, {len(result.removed)} removed). "
        "Lock released."
    )
    return EXIT_OK


def cmd_force_unlock(args: argparse.Namespace) -> int:
    """
    Discard the current lock holder and connect.

    The previous holder's unsaved changes are lost; asks for confirmation
    unless ``--yes`` is given.
    """
    from seal_ledger.workcopy import write_working_copy

    user = get_user_name(args)
    if not user:
        print("Error: a user name is required (--user or SEAL_USER).", file=sys.stderr)
        return EXIT_ERROR

    sync = _sync()
    try:
        directory = _open_directory(sync, args)
    except (LedgerSyncError, OSError) as exc:
        return _report(exc)

    if not args.yes:
        if not sys.stdin.isatty():
            print("Error: refusing to force unlock without --yes.", file=sys.stderr)
            return EXIT_ERROR
        answer = input(
            "Force unlock? The previous user's unsaved work may be lost. [y/N] "
        ).strip().lower()
        if answer not in ("y", "yes"):
            print("Cancelled.")
            return EXIT_OK

    try:
        records = asyncio.run(sync.force_unlock_and_retry(directory, user))
    except (LedgerSyncError, OSError) as exc:
        return _report(exc)

    path = write_working_copy(records, args.workdir)
    print(f"Lock taken over by {user}: {len(records)} records.")
    print(f"Working copy: {path}")
    return EXIT_OK


def cmd_status(args: argparse.Namespace) -> int:
    """Show lock holder and record count without changing anything."""
    from seal_ledger.config import print_config_summary

    sync = _sync()
    try:
        directory = _open_directory(sync, args)
    except (LedgerSyncError, OSError) as exc:
        return _report(exc)

    document = directory.document_store(
        log_retention=sync.settings.sync.log_retention,
        default_password=sync.settings.security.default_password,
    ).read()
    lock = document.lock

    print_config_summary()
    print(f"Folder:  {directory.root}")
    if lock.is_locked:
        since = lock.acquired_at.isoformat() if lock.acquired_at else "unknown"
        print(f"Lock:    LOCKED by {lock.active_user} since {since}")
    else:
        print("Lock:    UNLOCKED")
    print(f"Records: {len(document.entries)}")
    print(f"Log:     {len(document.logs)} entries")
    return EXIT_OK


# ============================================================================
# AUDIT COMMANDS
# ============================================================================


def cmd_logs(args: argparse.Namespace) -> int:
    """Print session history, newest first."""
    sync = _sync()
    try:
        directory = _open_directory(sync, args)
        password = args.password if args.password is not None else getpass.getpass("Password: ")
        sessions = asyncio.run(sync.view_sessions(directory, password))
    except (LedgerSyncError, OSError) as exc:
        return _report(exc)

    if not sessions:
        print("No sessions recorded.")
        return EXIT_OK

    print(f"{'Connected':<20} {'User':<16} {'Status':<10} {'Ended':<20}")
    print("-" * 68)
    for s in sessions:
        started = s.start_time.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        ended = s.end_time.astimezone().strftime("%Y-%m-%d %H:%M:%S") if s.end_time else "-"
        print(f"{started:<20} {s.user_name:<16} {s.status.label:<10} {ended:<20}")
    print(f"\n{len(sessions)} sessions.")
    return EXIT_OK


def cmd_password(args: argparse.Namespace) -> int:
    """Change or reset the log viewer password."""
    sync = _sync()
    try:
        directory = _open_directory(sync, args)
        if args.action == "reset":
            asyncio.run(sync.reset_password(directory))
            print(f"Password reset to '{sync.settings.security.default_password}'.")
            return EXIT_OK

        old = getpass.getpass("Current password: ")
        new = getpass.getpass("New password: ")
        if new != getpass.getpass("Confirm new password: "):
            print("Error: passwords do not match.", file=sys.stderr)
            return EXIT_ERROR
        changed = asyncio.run(sync.change_password(directory, old, new))
    except (LedgerSyncError, OSError) as exc:
        return _report(exc)

    if not changed:
        print("Error: current password does not match.", file=sys.stderr)
        return EXIT_ERROR
    print("Password changed.")
    return EXIT_OK


# ============================================================================
# TRANSFER COMMANDS
# ============================================================================


def cmd_import(args: argparse.Namespace) -> int:
    """Replace the working copy with records read from a spreadsheet."""
    from seal_ledger.transfer import import_workbook
    from seal_ledger.workcopy import write_working_copy

    try:
        records = import_workbook(args.source)
    except Exception as e:
        print(f"Error importing {args.source}: {e}", file=sys.stderr)
        return EXIT_ERROR

    if not records:
        print("Nothing to import.")
        return EXIT_ERROR

    write_working_copy(records, args.workdir)
    print(f"Imported {len(records)} records into {args.workdir}.")
    return EXIT_OK


def cmd_export(args: argparse.Namespace) -> int:
    """Write the working copy's records to a spreadsheet."""
    from seal_ledger.transfer import export_workbook
    from seal_ledger.workcopy import read_working_copy

    try:
        records = read_working_copy(args.workdir)
        path = export_workbook(records, args.destination)
    except (OSError, ValueError) as exc:
        print(f"Error exporting: {exc}", file=sys.stderr)
        return EXIT_ERROR

    print(f"Exported {len(records)} records to {path}.")
    return EXIT_OK


def cmd_backup(args: argparse.Namespace) -> int:
    """Write a zip of the working copy's records and attachments."""
    from seal_ledger.config import config
    from seal_ledger.transfer import backup_archive
    from seal_ledger.workcopy import read_working_copy

    try:
        records = read_working_copy(args.workdir)
        if not records:
            print("Nothing to back up.")
            return EXIT_ERROR
        path = backup_archive(records, args.destination, settings=config.backup)
    except (OSError, ValueError) as exc:
        print(f"Error writing backup: {exc}", file=sys.stderr)
        return EXIT_ERROR

    print(f"Backup written to {path}.")
    return EXIT_OK


# ============================================================================
# PARSER
# ============================================================================


def _add_directory(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "directory",
        nargs="?",
        help="Shared ledger folder (prompted for when omitted)",
    )


def _add_session_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--user", "-u", type=str, help="User name (default: SEAL_USER env var)")
    parser.add_argument(
        "--workdir",
        "-w",
        type=str,
        default="ledger-work",
        help="Local working copy directory (default: ./ledger-work)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="seal-ledger",
        description="Seal ledger - shared-folder ledger with single-writer locking",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", type=str, help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    connect_parser = subparsers.add_parser(
        "connect",
        help="Lock the ledger and load it into a working copy",
        description=(
            "Acquire the ledger lock and copy records and attachments into the working copy. "
            "Fails with exit code 2 if another user holds the lock."
        ),
    )
    _add_directory(connect_parser)
    _add_session_options(connect_parser)
    connect_parser.set_defaults(func=cmd_connect)

    save_parser = subparsers.add_parser(
        "save",
        help="Save the working copy and release the lock",
    )
    _add_directory(save_parser)
    _add_session_options(save_parser)
    save_parser.set_defaults(func=cmd_save)

    force_parser = subparsers.add_parser(
        "force-unlock",
        help="Discard an abandoned lock and connect",
        description=(
            "Unlock the ledger regardless of who holds it, then connect. "
            "The previous holder's unsaved changes are lost."
        ),
    )
    _add_directory(force_parser)
    _add_session_options(force_parser)
    force_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    force_parser.set_defaults(func=cmd_force_unlock)

    status_parser = subparsers.add_parser("status", help="Show lock holder and record count")
    _add_directory(status_parser)
    status_parser.set_defaults(func=cmd_status)

    logs_parser = subparsers.add_parser("logs", help="Show session history")
    _add_directory(logs_parser)
    logs_parser.add_argument("--password", type=str, help="Viewer password (prompted if omitted)")
    logs_parser.set_defaults(func=cmd_logs)

    password_parser = subparsers.add_parser("password", help="Change or reset the viewer password")
    password_parser.add_argument("action", choices=["change", "reset"])
    _add_directory(password_parser)
    password_parser.set_defaults(func=cmd_password)

    import_parser = subparsers.add_parser("import", help="Load records from a spreadsheet")
    import_parser.add_argument("source", help="Path to an .xlsx file")
    import_parser.add_argument("--workdir", "-w", type=str, default="ledger-work")
    import_parser.set_defaults(func=cmd_import)

    export_parser = subparsers.add_parser("export", help="Write records to a spreadsheet")
    export_parser.add_argument("destination", help="Path of the .xlsx file to write")
    export_parser.add_argument("--workdir", "-w", type=str, default="ledger-work")
    export_parser.set_defaults(func=cmd_export)

    backup_parser = subparsers.add_parser("backup", help="Write a full zip backup")
    backup_parser.add_argument(
        "destination", nargs="?", default=".", help="Directory or .zip path (default: .)"
    )
    backup_parser.add_argument("--workdir", "-w", type=str, default="ledger-work")
    backup_parser.set_defaults(func=cmd_backup)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    from seal_ledger.config import config, configure_logging

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        config.logging.level = args.log_level.upper()
    configure_logging(config.logging)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
