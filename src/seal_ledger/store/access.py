"""Access password gate for the session log viewer.

The password lives in plain text in the shared control file.  It keeps
casual users out of the audit view; it is not a security boundary, and anyone
who can open the folder can read or reset it.

Every operation here is a whole-document read-modify-write that leaves the
lock and the entries untouched.

Usage:
    from seal_ledger.store.access import check_password, change_password

    if check_password(store, typed):
        ...
    change_password(store, old="2888", new="0415")
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field

from seal_ledger.store.document import DocumentStore
from seal_ledger.store.errors import PasswordPolicyError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 4


@dataclass
class ValidationResult:
    """
    Result of checking a new password against the policy.

    Attributes:
        is_valid: True if the password can be stored.
        errors: Human-readable reasons it cannot.  Empty if valid.
    """

    is_valid: bool
    errors: list[str] = field(default_factory=list)


def validate_new_password(
    password: str, *, min_length: int = MIN_PASSWORD_LENGTH
) -> ValidationResult:
    """Check a candidate password.  All problems are reported at once."""
    errors = []
    if len(password) < min_length:
        errors.append(
            f"Password must be at least {min_length} characters long (currently {len(password)})"
        )
    if password != password.strip():
        errors.append("Password must not start or end with whitespace")
    return ValidationResult(is_valid=not errors, errors=errors)


def check_password(store: DocumentStore, candidate: str) -> bool:
    """Return True if ``candidate`` matches the stored password."""
    stored = store.read().password
    return hmac.compare_digest(stored.encode("utf-8"), candidate.encode("utf-8"))


def change_password(
    store: DocumentStore,
    old: str,
    new: str,
    *,
    min_length: int = MIN_PASSWORD_LENGTH,
) -> bool:
    """Replace the password if ``old`` matches.

    Returns:
        ``False`` if ``old`` is wrong (nothing written), ``True`` otherwise.

    Raises:
        PasswordPolicyError: If ``new`` fails :func:`validate_new_password`.
        DocumentWriteError: If the document cannot be written.
    """
    result = validate_new_password(new, min_length=min_length)
    if not result.is_valid:
        raise PasswordPolicyError("; ".join(result.errors))

    document = store.read()
    if not hmac.compare_digest(document.password.encode("utf-8"), old.encode("utf-8")):
        logger.info("access: password change refused, old password mismatch")
        return False

    store.write(document.model_copy(update={"password": new}))
    logger.info("access: password changed")
    return True


def reset_password(store: DocumentStore) -> None:
    """Put the store's default password back."""
    document = store.read()
    store.write(document.model_copy(update={"password": store.default_password}))
    logger.warning("access: password reset to default")
