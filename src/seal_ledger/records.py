"""In-memory ledger records and the renumbering rule.

A record's ``sequence_number`` is a display position, not an identity: the
list is always kept in ascending date order and numbered 1..N, and every
insert, delete or date edit renumbers the whole list.  Callers address rows
by their current sequence number and must use the returned list afterwards.

All helpers return a new list; the input list and its records are never
mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

# Fields an edit may change.  ``sequence_number`` is derived and never edited.
EDITABLE_FIELDS = frozenset(
    {
        "date",
        "document_number",
        "content",
        "recipient",
        "author",
        "attachment_name",
        "attachment",
    }
)


@dataclass(frozen=True)
class LedgerRecord:
    """One seal-usage row.

    Attributes:
        sequence_number: Dense 1-based position in date order.
        date: Date the seal was used, or ``None`` when the cell was cleared.
        document_number: Free-form document reference.
        content: What was sealed.
        recipient: Who the document went to.
        author: Who drafted it.
        attachment_name: File name in the attachment folder, if any.
        attachment: PDF bytes held in memory only; never written to the
            control file.
    """

    sequence_number: int
    date: date | None
    document_number: str = ""
    content: str = ""
    recipient: str = ""
    author: str = ""
    attachment_name: str | None = None
    attachment: bytes | None = field(default=None, repr=False, compare=False)

    @property
    def has_attachment(self) -> bool:
        return self.attachment is not None


def _date_order(record: LedgerRecord) -> tuple[bool, date]:
    # Undated rows sort after every dated row.
    return (record.date is None, record.date or date.min)


def renumber(records: list[LedgerRecord]) -> list[LedgerRecord]:
    """Sort by date (stable) and assign sequence numbers 1..N."""
    ordered = sorted(records, key=_date_order)
    return [
        r if r.sequence_number == i else replace(r, sequence_number=i)
        for i, r in enumerate(ordered, start=1)
    ]


def insert_record(records: list[LedgerRecord], record: LedgerRecord) -> list[LedgerRecord]:
    """Add ``record`` and renumber.  Its incoming sequence number is ignored."""
    # Placed last so a same-date newcomer sorts after existing rows.
    return renumber([*records, replace(record, sequence_number=len(records) + 1)])


def delete_record(records: list[LedgerRecord], sequence_number: int) -> list[LedgerRecord]:
    """Remove the row at ``sequence_number`` and renumber.

    Raises:
        KeyError: If no row has that sequence number.
    """
    remaining = [r for r in records if r.sequence_number != sequence_number]
    if len(remaining) == len(records):
        raise KeyError(sequence_number)
    return renumber(remaining)


def edit_record(
    records: list[LedgerRecord], sequence_number: int, /, **changes: Any
) -> list[LedgerRecord]:
    """Apply field changes to one row and renumber.

    Raises:
        KeyError: If no row has that sequence number.
        ValueError: If a change names a field that cannot be edited.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"cannot edit fields: {', '.join(sorted(unknown))}")

    found = False
    updated = []
    for r in records:
        if r.sequence_number == sequence_number:
            updated.append(replace(r, **changes))
            found = True
        else:
            updated.append(r)
    if not found:
        raise KeyError(sequence_number)
    return renumber(updated)
