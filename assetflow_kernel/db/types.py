"""
Module: assetflow_kernel.db.types
Responsibility: Money precision and rounding shared by the depreciation
    engine, the schedule and the asset services.

Invariants enforced:
    - No floats.  Book values, depreciation and disposal gains are Decimal.
    - round_money() is the only rounding applied to presented amounts,
      which are carried in cents.
"""

from decimal import ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_money(value: Decimal | int | str | None) -> Decimal | None:
    """Coerce a DB/JSON value to a cent-rounded Decimal, keeping None."""
    if value is None:
        return None
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return round_money(value)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary amount, half-up to cents by default."""
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)
