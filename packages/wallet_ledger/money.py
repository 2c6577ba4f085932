"""Money helpers: amounts travel as ``Decimal`` and are stored as integer cents."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import ValidationError

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("10000000.00")


def to_decimal_2(value: object) -> Decimal:
    """Return ``value`` as a 2-dp ``Decimal`` (ROUND_HALF_UP).

    Floats go through ``str`` first so ``0.1`` stays ``0.10``.
    """

    if isinstance(value, bool):
        raise ValidationError("Amount must be a number")
    try:
        if isinstance(value, Decimal):
            d = value
        elif isinstance(value, int | str):
            d = Decimal(str(value).strip() if isinstance(value, str) else value)
        elif isinstance(value, float):
            d = Decimal(str(value))
        else:
            raise ValidationError("Amount must be a number")
        if not d.is_finite():
            raise ValidationError("Amount must be finite")
        return d.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc


def to_cents(value: object, *, maximum: Decimal | None = MAX_AMOUNT) -> int:
    """Validate a strictly positive amount and convert it to integer cents."""

    d = to_decimal_2(value)
    if d <= 0:
        raise ValidationError("Amount must be greater than zero")
    if maximum is not None and d > maximum:
        raise ValidationError(f"Amount must be at most {maximum}")
    return int(d * 100)


def from_cents(cents: int | None) -> Decimal:
    if cents is None:
        return Decimal("0.00")
    return (Decimal(int(cents)) / 100).quantize(CENT)


__all__ = ["CENT", "MAX_AMOUNT", "from_cents", "to_cents", "to_decimal_2"]
