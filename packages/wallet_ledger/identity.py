"""Map raw phone identifiers to one stable user id.

Phones reach the ledger in many spellings: with or without a transport prefix
(``whatsapp:+55...``), with or without the country code, and with or without
the Brazilian mobile ``9`` after the area code. Resolution goes:

1. exact match of any candidate spelling against the stored canonical phone;
2. fuzzy match by trailing digits, trying suffix lengths 11, 10, 9 and 8 in
   that order. The longest length that hits wins; if it hits more than one
   user the call fails with ``AmbiguousIdentityError`` instead of guessing.

Successful lookups are memoized in an ``IdentityCache`` owned by the caller
(TTL + LRU, injectable clock) so repeated requests skip the scan.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable

from db.models.ledger import WlUser
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import AmbiguousIdentityError, NotFoundError, ValidationError
from .logging_setup import get_logger

_logger = get_logger("wallet_ledger.identity")

_TRANSPORT_PREFIXES = ("whatsapp:", "tel:", "sms:")
_SUFFIX_LENGTHS = (11, 10, 9, 8)
_NATIONAL_LENGTHS = (10, 11)


# ---------------------------
# Phone normalization
# ---------------------------


def strip_transport_prefix(raw: str) -> str:
    s = raw.strip()
    lowered = s.lower()
    for prefix in _TRANSPORT_PREFIXES:
        if lowered.startswith(prefix):
            return s[len(prefix) :].strip()
    return s


def digits_only(raw: str) -> str:
    return "".join(ch for ch in strip_transport_prefix(raw) if ch.isdigit())


def canonical_phone(raw: str, *, country_code: str = "55") -> str:
    """Return the storage form of ``raw``: digits only, country code included.

    A 10/11-digit number is treated as national and gets ``country_code``
    prepended; any other length is kept as typed.
    """

    if not isinstance(raw, str):
        raise ValidationError("Phone must be a string")
    digits = digits_only(raw)
    if len(digits) < 8:
        raise ValidationError(f"Phone {raw!r} must contain at least 8 digits")
    if country_code and len(digits) in _NATIONAL_LENGTHS:
        return country_code + digits
    return digits


def _national_part(digits: str, country_code: str) -> str | None:
    if len(digits) in _NATIONAL_LENGTHS:
        return digits
    if (
        country_code
        and digits.startswith(country_code)
        and len(digits) - len(country_code) in _NATIONAL_LENGTHS
    ):
        return digits[len(country_code) :]
    return None


def phone_candidates(raw: str, *, country_code: str = "55") -> list[str]:
    """Return every spelling ``raw`` may have been stored under, canonical first."""

    canonical = canonical_phone(raw, country_code=country_code)
    out: list[str] = [canonical]

    def add(value: str) -> None:
        if value and value not in out:
            out.append(value)

    add(digits_only(raw))
    national = _national_part(canonical, country_code)
    if national is None:
        return out

    nationals = [national]
    area, local = national[:2], national[2:]
    if len(local) == 9 and local.startswith("9"):
        nationals.append(area + local[1:])
    elif len(local) == 8:
        nationals.append(area + "9" + local)

    for n in nationals:
        if country_code:
            add(country_code + n)
        add(n)
    return out


def match_by_suffix(digits: str, stored: Iterable[tuple[int, str]]) -> int | None:
    """Return the user whose phone shares the longest trailing run with ``digits``.

    ``stored`` yields ``(user_id, phone)`` pairs. Raises
    ``AmbiguousIdentityError`` when the winning length matches several users.
    """

    rows = list(stored)
    for size in _SUFFIX_LENGTHS:
        if len(digits) < size:
            continue
        tail = digits[-size:]
        hits = {uid for uid, phone in rows if len(phone) >= size and phone.endswith(tail)}
        if len(hits) == 1:
            return hits.pop()
        if hits:
            raise AmbiguousIdentityError(digits, hits)
    return None


# ---------------------------
# Cache
# ---------------------------


class IdentityCache:
    """Thread-safe TTL + LRU map from lookup key to user id."""

    def __init__(
        self,
        *,
        ttl_s: float = 300.0,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = ttl_s
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[int, float]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> int | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            user_id, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return user_id

    def put(self, key: str, user_id: int) -> None:
        if self._max_entries <= 0 or self._ttl_s <= 0:
            return
        with self._lock:
            self._entries[key] = (user_id, self._clock() + self._ttl_s)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def forget_user(self, user_id: int) -> int:
        """Drop every entry pointing at ``user_id``; return how many were removed."""

        with self._lock:
            stale = [k for k, (uid, _) in self._entries.items() if uid == user_id]
            for k in stale:
                del self._entries[k]
            return len(stale)

    def discard(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def forget_prefix(self, prefix: str) -> int:
        with self._lock:
            stale = [k for k in self._entries if k.startswith(prefix)]
            for k in stale:
                del self._entries[k]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ---------------------------
# Resolver
# ---------------------------


class IdentityResolver:
    def __init__(self, *, country_code: str = "55", cache: IdentityCache | None = None) -> None:
        self.country_code = country_code
        self.cache = cache if cache is not None else IdentityCache()

    def canonical(self, raw: str) -> str:
        return canonical_phone(raw, country_code=self.country_code)

    def lookup(self, session: Session, raw: str, *, fuzzy: bool = True) -> int | None:
        """Return the user id for ``raw`` or ``None`` when nothing matches."""

        candidates = phone_candidates(raw, country_code=self.country_code)
        key = f"{'f' if fuzzy else 'e'}:{candidates[0]}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        user_id = self._exact(session, candidates)
        if user_id is None and fuzzy:
            try:
                user_id = self._fuzzy(session, candidates[0])
            except AmbiguousIdentityError as exc:
                _logger.warning(
                    "identity:ambiguous phone=%s user_ids=%s", candidates[0], exc.user_ids
                )
                raise
            if user_id is not None:
                _logger.info("identity:fuzzy_match phone=%s user_id=%s", candidates[0], user_id)
        if user_id is not None:
            self.cache.put(key, user_id)
        return user_id

    def resolve(self, session: Session, raw: str, *, fuzzy: bool = True) -> int:
        user_id = self.lookup(session, raw, fuzzy=fuzzy)
        if user_id is None:
            raise NotFoundError(f"No user registered for phone {raw!r}")
        return user_id

    def register(self, session: Session, raw: str) -> int:
        """Return the user for ``raw``, creating it when no spelling matches exactly.

        Fuzzy matching is deliberately not used here: a trailing-digit hit is
        good enough to read someone's data, not to adopt it as theirs.
        """

        candidates = phone_candidates(raw, country_code=self.country_code)
        existing = self._exact(session, candidates)
        if existing is not None:
            return existing

        canonical = candidates[0]
        try:
            with session.begin_nested():
                row = WlUser(phone=canonical)
                session.add(row)
                session.flush()
        except IntegrityError:
            # A concurrent caller registered the same phone first.
            existing = self._exact(session, [canonical])
            if existing is None:
                raise
            return existing
        # Fuzzy hits cached before this insert may now resolve differently.
        self.cache.discard(f"e:{canonical}")
        self.cache.forget_prefix("f:")
        _logger.info("identity:registered user_id=%s", row.id)
        return row.id

    def forget(self, user_id: int) -> None:
        self.cache.forget_user(user_id)

    def _exact(self, session: Session, candidates: list[str]) -> int | None:
        rows = session.execute(
            select(WlUser.id, WlUser.phone).where(WlUser.phone.in_(candidates))
        ).all()
        if not rows:
            return None
        by_phone = {phone: uid for uid, phone in rows}
        for candidate in candidates:
            if candidate in by_phone:
                return by_phone[candidate]
        return None

    def _fuzzy(self, session: Session, digits: str) -> int | None:
        # Every suffix hit shares at least the last 8 digits.
        tail = digits[-8:]
        rows = session.execute(
            select(WlUser.id, WlUser.phone).where(WlUser.phone.endswith(tail))
        ).all()
        return match_by_suffix(digits, ((uid, phone) for uid, phone in rows))


__all__ = [
    "IdentityCache",
    "IdentityResolver",
    "canonical_phone",
    "digits_only",
    "match_by_suffix",
    "phone_candidates",
    "strip_transport_prefix",
]
