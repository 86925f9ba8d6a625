"""
assetflow_engines.depreciation -- Per-period depreciation under four methods.

Responsibility:
    Compute the depreciation amount for ONE period of an asset's useful
    life under straight-line, double-declining-balance, sum-of-years-digits
    or units-of-production.  Iterating periods is the ScheduleGenerator's
    job; this module knows nothing about dates or persistence.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import assetflow_kernel (exceptions, money rounding).
    Consumed by ``assetflow_engines.schedule``.

Invariants enforced:
    - Determinism: identical inputs produce identical outputs; no clock,
      no internal state.
    - Salvage floor: the returned amount never takes the book value below
      the salvage value (``book_value_start - amount >= salvage_value``).
    - Rounding: every amount is rounded to cents with ``round_money``.
      Straight-line and sum-of-years-digits assign the accumulated
      rounding remainder to the final period so the schedule lands
      exactly on salvage.
    - Double-declining: rate = 2 / useful_life_months on the opening book
      value; zero once the book value has reached salvage.
    - Units of production: no usage recorded means zero depreciation.

Failure modes:
    - InvalidDepreciationInput when useful_life_months <= 0, any money
      input is negative, salvage_value > purchase_price, period_index is
      outside [1, useful_life_months], units are negative, or usage is
      supplied without a positive total_expected_units.

Usage:
    from assetflow_engines.depreciation import (
        DepreciationCalculator, DepreciationMethod,
    )

    amount = DepreciationCalculator().compute_period_depreciation(
        method=DepreciationMethod.STRAIGHT_LINE,
        purchase_price=Decimal("120000"),
        salvage_value=Decimal("10000"),
        useful_life_months=5,
        book_value_start=Decimal("120000"),
        period_index=1,
    )
    # Decimal("22000.00")
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from assetflow_kernel.db.types import ZERO, round_money
from assetflow_kernel.exceptions import InvalidDepreciationInput

DECLINING_BALANCE_FACTOR = Decimal("2")


class DepreciationMethod(str, Enum):
    """Supported depreciation methods."""

    STRAIGHT_LINE = "STRAIGHT_LINE"
    DECLINING_BALANCE = "DECLINING_BALANCE"
    UNITS_OF_PRODUCTION = "UNITS_OF_PRODUCTION"
    SUM_OF_YEARS_DIGITS = "SUM_OF_YEARS_DIGITS"


class DepreciationCalculator:
    """
    Pure per-period depreciation calculator.

    Contract:
        No I/O, no database access, fully deterministic.
    Guarantees:
        - 0 <= amount <= max(book_value_start - salvage_value, 0).
        - Final-period remainder absorption for STRAIGHT_LINE and
          SUM_OF_YEARS_DIGITS.
    Non-goals:
        - Partial-month conventions (mid-month, half-year) are not applied;
          every period is a full month.
    """

    def compute_period_depreciation(
        self,
        method: DepreciationMethod,
        purchase_price: Decimal,
        salvage_value: Decimal,
        useful_life_months: int,
        book_value_start: Decimal,
        period_index: int,
        units_in_period: Decimal | None = None,
        total_expected_units: Decimal | None = None,
    ) -> Decimal:
        """
        Depreciation for one period.

        Preconditions:
            See module Failure modes.
        Postconditions:
            Returns a cent-rounded, non-negative Decimal that keeps
            ``book_value_start - result >= salvage_value``.

        Raises:
            InvalidDepreciationInput
        """
        method = DepreciationMethod(method)
        self._validate(
            purchase_price, salvage_value, useful_life_months,
            book_value_start, period_index,
        )

        remaining = max(book_value_start - salvage_value, ZERO)
        if remaining == ZERO:
            return round_money(ZERO)

        depreciable = purchase_price - salvage_value
        is_final = period_index == useful_life_months

        if method == DepreciationMethod.STRAIGHT_LINE:
            amount = self._straight_line(depreciable, useful_life_months, remaining, is_final)
        elif method == DepreciationMethod.DECLINING_BALANCE:
            amount = self._declining_balance(book_value_start, useful_life_months)
        elif method == DepreciationMethod.SUM_OF_YEARS_DIGITS:
            amount = self._sum_of_years_digits(
                depreciable, useful_life_months, period_index, remaining, is_final,
            )
        else:
            amount = self._units_of_production(
                depreciable, units_in_period, total_expected_units,
            )

        return round_money(min(amount, remaining))

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    @staticmethod
    def _straight_line(
        depreciable: Decimal, life: int, remaining: Decimal, is_final: bool,
    ) -> Decimal:
        if is_final:
            return remaining
        return round_money(depreciable / Decimal(life))

    @staticmethod
    def _declining_balance(book_value_start: Decimal, life: int) -> Decimal:
        rate = DECLINING_BALANCE_FACTOR / Decimal(life)
        return round_money(book_value_start * rate)

    @staticmethod
    def _sum_of_years_digits(
        depreciable: Decimal,
        life: int,
        period_index: int,
        remaining: Decimal,
        is_final: bool,
    ) -> Decimal:
        if is_final:
            return remaining
        digits_total = Decimal(life * (life + 1)) / Decimal(2)
        weight = Decimal(life - period_index + 1)
        return round_money(depreciable * weight / digits_total)

    @staticmethod
    def _units_of_production(
        depreciable: Decimal,
        units_in_period: Decimal | None,
        total_expected_units: Decimal | None,
    ) -> Decimal:
        if units_in_period is None:
            return ZERO
        units = Decimal(units_in_period)
        if units < ZERO:
            raise InvalidDepreciationInput("units_in_period", "must not be negative")
        if total_expected_units is None or Decimal(total_expected_units) <= ZERO:
            raise InvalidDepreciationInput(
                "total_expected_units",
                "must be greater than zero when usage is supplied",
            )
        if units == ZERO:
            return ZERO
        return round_money(depreciable * units / Decimal(total_expected_units))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(
        purchase_price: Decimal,
        salvage_value: Decimal,
        useful_life_months: int,
        book_value_start: Decimal,
        period_index: int,
    ) -> None:
        if useful_life_months is None or useful_life_months <= 0:
            raise InvalidDepreciationInput("useful_life_months", "must be greater than zero")
        if purchase_price < ZERO:
            raise InvalidDepreciationInput("purchase_price", "must not be negative")
        if salvage_value < ZERO:
            raise InvalidDepreciationInput("salvage_value", "must not be negative")
        if salvage_value > purchase_price:
            raise InvalidDepreciationInput(
                "salvage_value", "must not exceed purchase_price",
            )
        if book_value_start < ZERO:
            raise InvalidDepreciationInput("book_value_start", "must not be negative")
        if period_index < 1 or period_index > useful_life_months:
            raise InvalidDepreciationInput(
                "period_index",
                f"must be within [1, {useful_life_months}], got {period_index}",
            )
