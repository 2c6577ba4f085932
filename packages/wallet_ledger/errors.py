"""Error taxonomy for the ledger core.

Every failure the core raises on purpose derives from ``LedgerError`` so hosts
can map the whole family to responses in one place. ``ValidationError`` and
``NotFoundError`` also subclass the matching builtins so generic callers that
catch ``ValueError``/``LookupError`` keep working.
"""

from __future__ import annotations

from collections.abc import Iterable


class LedgerError(Exception):
    """Base class for domain errors raised by ``wallet_ledger``."""


class ValidationError(LedgerError, ValueError):
    """Malformed or out-of-range input."""


class NotFoundError(LedgerError, LookupError):
    """A user, wallet, transaction or category does not exist (or is inactive)."""


class PermissionDeniedError(LedgerError):
    """The entity exists but belongs to a different user."""


class InvariantViolation(LedgerError):
    """An operation would break a ledger invariant (e.g. kind mismatch)."""


class AmbiguousIdentityError(LedgerError):
    """A phone number matched more than one stored identity at the same strength."""

    def __init__(self, phone: str, user_ids: Iterable[int]) -> None:
        self.phone = phone
        self.user_ids = tuple(sorted(user_ids))
        super().__init__(
            f"Phone {phone!r} matches several users: {', '.join(map(str, self.user_ids))}"
        )


__all__ = [
    "AmbiguousIdentityError",
    "InvariantViolation",
    "LedgerError",
    "NotFoundError",
    "PermissionDeniedError",
    "ValidationError",
]
