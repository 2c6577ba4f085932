"""Category catalog: global defaults plus per-user custom categories.

Defaults (``user_id IS NULL``) are seeded by the ``0001_wl_core`` migration
and are read-only. Users create, rename and delete their own categories;
names are unique per user, case-insensitively.

Exports
-------
- ``normalize_name(...)`` and ``validate_name(...)``: shared trimming and
  validation rules (also used for wallet names and transaction categories).
- ``list_categories``/``create_category``/``update_category``/``delete_category``.
- ``seed_default_categories``: idempotent insert of ``DEFAULT_CATEGORIES``
  for databases created without Alembic (tests, local SQLite).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from db.models.ledger import WlCategory
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import NotFoundError, PermissionDeniedError, ValidationError
from .logging_setup import get_logger
from .models import Category, CategoryAffinity

_logger = get_logger("wallet_ledger.categories")

# (name, affinity, color); mirrored in the 0001_wl_core migration.
DEFAULT_CATEGORIES: tuple[tuple[str, CategoryAffinity, str], ...] = (
    ("Food", CategoryAffinity.OUTFLOW, "#ef4444"),
    ("Transport", CategoryAffinity.OUTFLOW, "#f97316"),
    ("Housing", CategoryAffinity.OUTFLOW, "#eab308"),
    ("Health", CategoryAffinity.OUTFLOW, "#22c55e"),
    ("Education", CategoryAffinity.OUTFLOW, "#3b82f6"),
    ("Leisure", CategoryAffinity.OUTFLOW, "#a855f7"),
    ("Shopping", CategoryAffinity.OUTFLOW, "#ec4899"),
    ("Other", CategoryAffinity.OUTFLOW, "#6b7280"),
    ("Salary", CategoryAffinity.INFLOW, "#10b981"),
    ("Freelance", CategoryAffinity.INFLOW, "#06b6d4"),
    ("Investments", CategoryAffinity.INFLOW, "#8b5cf6"),
    ("Sales", CategoryAffinity.INFLOW, "#f59e0b"),
    ("Other", CategoryAffinity.INFLOW, "#9ca3af"),
)

DEFAULT_COLOR = "#6b7280"

# ---------------------------
# Name normalization/validation
# ---------------------------

_ALLOWED_RE = re.compile(r"^[\w &\-/]+$")
_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``.

    Does not change case.
    """

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, min_len: int = 1, max_len: int = 64) -> NameValidation:
    """Validate a category name.

    Rules
    -----
    - Trim whitespace; enforce length bounds 1..64.
    - Allowed characters: letters (any script), digits, spaces, and ``& - /``.
    """

    n = normalize_name(name)
    if len(n) < min_len:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n) or "_" in n:
        return NameValidation(False, "Only letters, numbers, spaces, and & - / are allowed")
    return NameValidation(True, None)


def _checked_name(name: object) -> str:
    if not isinstance(name, str):
        raise ValidationError("Category name must be a string")
    v = validate_name(name)
    if not v.ok:
        raise ValidationError(f"Invalid category name: {v.reason}")
    return normalize_name(name)


def _affinity(value: object) -> CategoryAffinity:
    try:
        return CategoryAffinity(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(
            f"direction_affinity must be inflow, outflow or both, got {value!r}"
        ) from exc


def _color(value: object) -> str:
    if value is None:
        return DEFAULT_COLOR
    if not isinstance(value, str) or not _COLOR_RE.match(value.strip()):
        raise ValidationError(f"color must look like #RRGGBB, got {value!r}")
    return value.strip().lower()


def _row_to_category(row: WlCategory) -> Category:
    return Category(
        id=row.id,
        name=row.name,
        direction_affinity=CategoryAffinity(row.direction_affinity),
        is_default=bool(row.is_default),
        user_id=row.user_id,
        description=row.description,
        color=row.color,
    )


# ---------------------------
# Service operations
# ---------------------------


def list_categories(
    session: Session,
    *,
    user_id: int | None = None,
    affinity: CategoryAffinity | str | None = None,
) -> list[Category]:
    """Defaults first, then the user's own categories, each alphabetically.

    ``affinity`` keeps categories usable for that direction (``both`` always
    matches).
    """

    stmt = select(WlCategory)
    if user_id is None:
        stmt = stmt.where(WlCategory.user_id.is_(None))
    else:
        stmt = stmt.where(or_(WlCategory.user_id.is_(None), WlCategory.user_id == user_id))
    if affinity is not None:
        a = _affinity(affinity)
        if a is not CategoryAffinity.BOTH:
            stmt = stmt.where(
                WlCategory.direction_affinity.in_((a.value, CategoryAffinity.BOTH.value))
            )
    stmt = stmt.order_by(
        WlCategory.is_default.desc(), func.lower(WlCategory.name), WlCategory.id
    )
    return [_row_to_category(r) for r in session.execute(stmt).scalars()]


def _name_taken(
    session: Session, *, user_id: int, name: str, exclude_id: int | None = None
) -> bool:
    stmt = select(WlCategory.id).where(
        WlCategory.user_id == user_id, func.lower(WlCategory.name) == name.lower()
    )
    if exclude_id is not None:
        stmt = stmt.where(WlCategory.id != exclude_id)
    return session.execute(stmt).first() is not None


def create_category(
    session: Session,
    *,
    user_id: int,
    name: str,
    direction_affinity: CategoryAffinity | str = CategoryAffinity.OUTFLOW,
    description: str | None = None,
    color: str | None = None,
) -> Category:
    name_n = _checked_name(name)
    affinity = _affinity(direction_affinity)
    if _name_taken(session, user_id=user_id, name=name_n):
        raise ValidationError(f"Category '{name_n}' already exists")

    row = WlCategory(
        user_id=user_id,
        name=name_n,
        description=(description or "").strip() or None,
        color=_color(color),
        direction_affinity=affinity.value,
        is_default=False,
    )
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError as exc:
        raise ValidationError(f"Category '{name_n}' already exists") from exc
    _logger.info("category:create id=%s user_id=%s name=%r", row.id, user_id, name_n)
    return _row_to_category(row)


def _owned_row(session: Session, category_id: int, user_id: int) -> WlCategory:
    row = session.get(WlCategory, category_id)
    if row is None:
        raise NotFoundError(f"Category {category_id} not found")
    if row.user_id is None:
        raise PermissionDeniedError("Default categories cannot be modified")
    if row.user_id != user_id:
        raise PermissionDeniedError(f"Category {category_id} belongs to another user")
    return row


def update_category(
    session: Session,
    category_id: int,
    *,
    user_id: int,
    name: str | None = None,
    description: str | None = None,
    color: str | None = None,
    direction_affinity: CategoryAffinity | str | None = None,
) -> Category:
    row = _owned_row(session, category_id, user_id)
    if name is not None:
        name_n = _checked_name(name)
        if _name_taken(session, user_id=user_id, name=name_n, exclude_id=row.id):
            raise ValidationError(f"Category '{name_n}' already exists")
        row.name = name_n
    if description is not None:
        row.description = description.strip() or None
    if color is not None:
        row.color = _color(color)
    if direction_affinity is not None:
        row.direction_affinity = _affinity(direction_affinity).value
    session.flush()
    _logger.info("category:update id=%s user_id=%s", row.id, user_id)
    return _row_to_category(row)


def delete_category(session: Session, category_id: int, *, user_id: int) -> None:
    """Delete one of the user's categories.

    Transactions keep the category name they were booked with.
    """

    row = _owned_row(session, category_id, user_id)
    session.delete(row)
    session.flush()
    _logger.info("category:delete id=%s user_id=%s", category_id, user_id)


def seed_default_categories(session: Session) -> int:
    """Insert any missing default category; returns how many were added."""

    existing = {
        (name.lower(), affinity)
        for name, affinity in session.execute(
            select(WlCategory.name, WlCategory.direction_affinity).where(
                WlCategory.user_id.is_(None)
            )
        )
    }
    added = 0
    for name, affinity, color in DEFAULT_CATEGORIES:
        if (name.lower(), affinity.value) in existing:
            continue
        session.add(
            WlCategory(
                user_id=None,
                name=name,
                color=color,
                direction_affinity=affinity.value,
                is_default=True,
            )
        )
        added += 1
    session.flush()
    return added


__all__ = [
    "DEFAULT_CATEGORIES",
    "NameValidation",
    "create_category",
    "delete_category",
    "list_categories",
    "normalize_name",
    "seed_default_categories",
    "update_category",
    "validate_name",
]
