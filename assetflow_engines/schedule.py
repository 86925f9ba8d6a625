"""
assetflow_engines.schedule -- Depreciation schedule generation.

Responsibility:
    Iterate the DepreciationCalculator across an asset's useful life and
    return an ordered, immutable amortization schedule.  Also answers
    "what is the book value on date D" from the same schedule, so book
    value is always recomputed from stored asset fields and never cached.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports assetflow_kernel (exceptions, money rounding) and the sibling
    depreciation engine.  Consumed by the assets module (read path) and the
    TransactionCoordinator (book value at disposal).

Invariants enforced:
    - Chaining: entry[i].book_value_end == entry[i+1].book_value_start;
      entry[0].book_value_start == purchase_price.
    - Floor: salvage_value <= book_value_end <= book_value_start.
    - Accumulated depreciation is non-decreasing and capped at
      purchase_price - salvage_value.
    - Length == useful_life_months, except DECLINING_BALANCE which stops
      after the first entry that reaches salvage.
    - Restartable: a pure function of the basis; repeated calls return
      equal tuples.
    - Period dates: purchase_date + (period - 1) months (dateutil
      relativedelta keeps month-end dates clamped, e.g. Jan 31 -> Feb 29).

Failure modes:
    - DepreciationNotConfigured if purchase_price or useful_life_months is
      missing.
    - InvalidDepreciationInput propagated from the calculator.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Mapping

from dateutil.relativedelta import relativedelta

from assetflow_engines.depreciation import DepreciationCalculator, DepreciationMethod
from assetflow_engines.tracer import traced_engine
from assetflow_kernel.db.types import ZERO, round_money, to_money
from assetflow_kernel.exceptions import DepreciationNotConfigured, InvalidDepreciationInput


@dataclass(frozen=True)
class DepreciationScheduleEntry:
    """One period of a depreciation schedule."""

    period: int
    date: date
    book_value_start: Decimal
    depreciation_amount: Decimal
    book_value_end: Decimal
    accumulated_depreciation: Decimal


@dataclass(frozen=True)
class DepreciationBasis:
    """
    The stored asset fields a schedule is derived from.

    ``units_by_period`` holds recorded usage as (period, units) pairs for
    units-of-production assets.
    """

    purchase_price: Decimal | None
    useful_life_months: int | None
    purchase_date: date
    method: DepreciationMethod = DepreciationMethod.STRAIGHT_LINE
    salvage_value: Decimal | None = None
    total_expected_units: Decimal | None = None
    units_by_period: tuple[tuple[int, Decimal], ...] = ()
    asset_id: str | None = None

    @classmethod
    def build(
        cls,
        *,
        purchase_price: Decimal | None,
        useful_life_months: int | None,
        purchase_date: date,
        method: DepreciationMethod | str | None = None,
        salvage_value: Decimal | None = None,
        total_expected_units: Decimal | None = None,
        usage: Mapping[int, Decimal] | None = None,
        asset_id: str | None = None,
    ) -> DepreciationBasis:
        """Normalize raw stored values (cent rounding, sorted usage)."""
        return cls(
            purchase_price=to_money(purchase_price),
            useful_life_months=useful_life_months,
            purchase_date=purchase_date,
            method=DepreciationMethod(method or DepreciationMethod.STRAIGHT_LINE),
            salvage_value=to_money(salvage_value),
            total_expected_units=(
                Decimal(str(total_expected_units))
                if total_expected_units is not None else None
            ),
            units_by_period=tuple(
                sorted((int(p), Decimal(str(u))) for p, u in (usage or {}).items())
            ),
            asset_id=asset_id,
        )

    @property
    def is_configured(self) -> bool:
        return self.purchase_price is not None and self.useful_life_months is not None

    def units_for(self, period: int) -> Decimal | None:
        for p, units in self.units_by_period:
            if p == period:
                return units
        return None


@dataclass(frozen=True)
class ScheduleSummary:
    """Totals over a generated schedule."""

    periods: int
    total_depreciation: Decimal
    final_book_value: Decimal
    fully_depreciated: bool


class ScheduleGenerator:
    """
    Produces depreciation schedules from a DepreciationBasis.

    Contract:
        No I/O, fully deterministic.  Never persists entries.
    """

    def __init__(self, calculator: DepreciationCalculator | None = None):
        self._calculator = calculator or DepreciationCalculator()

    @traced_engine("depreciation_schedule", "1.0", fingerprint_fields=("basis",))
    def generate_schedule(self, basis: DepreciationBasis) -> tuple[DepreciationScheduleEntry, ...]:
        """
        Full schedule for ``basis``.

        Raises:
            DepreciationNotConfigured: price or useful life missing.
            InvalidDepreciationInput: from the calculator.
        """
        self._require_configured(basis)

        price = basis.purchase_price
        salvage = basis.salvage_value if basis.salvage_value is not None else round_money(ZERO)
        life = basis.useful_life_months
        if life <= 0:
            raise InvalidDepreciationInput("useful_life_months", "must be greater than zero")

        entries: list[DepreciationScheduleEntry] = []
        book_value = price
        accumulated = round_money(ZERO)

        for period in range(1, life + 1):
            amount = self._calculator.compute_period_depreciation(
                method=basis.method,
                purchase_price=price,
                salvage_value=salvage,
                useful_life_months=life,
                book_value_start=book_value,
                period_index=period,
                units_in_period=basis.units_for(period),
                total_expected_units=basis.total_expected_units,
            )
            end_value = book_value - amount
            accumulated += amount
            entries.append(
                DepreciationScheduleEntry(
                    period=period,
                    date=basis.purchase_date + relativedelta(months=period - 1),
                    book_value_start=book_value,
                    depreciation_amount=amount,
                    book_value_end=end_value,
                    accumulated_depreciation=accumulated,
                )
            )
            book_value = end_value
            if (
                basis.method == DepreciationMethod.DECLINING_BALANCE
                and end_value == salvage
            ):
                break

        return tuple(entries)

    @traced_engine("book_value", "1.0", fingerprint_fields=("basis", "as_of"))
    def book_value_as_of(self, basis: DepreciationBasis, as_of: date) -> Decimal:
        """
        Book value after every period dated on or before ``as_of``.

        Before the first period (or for an unconfigured asset with a
        price) the book value is the purchase price.
        """
        if not basis.is_configured:
            return basis.purchase_price if basis.purchase_price is not None else round_money(ZERO)

        book_value = basis.purchase_price
        for entry in self.generate_schedule(basis):
            if entry.date > as_of:
                break
            book_value = entry.book_value_end
        return book_value

    @staticmethod
    def summarize(schedule: tuple[DepreciationScheduleEntry, ...], salvage_value: Decimal) -> ScheduleSummary:
        if not schedule:
            return ScheduleSummary(0, round_money(ZERO), round_money(ZERO), False)
        last = schedule[-1]
        return ScheduleSummary(
            periods=len(schedule),
            total_depreciation=last.accumulated_depreciation,
            final_book_value=last.book_value_end,
            fully_depreciated=last.book_value_end <= salvage_value,
        )

    @staticmethod
    def _require_configured(basis: DepreciationBasis) -> None:
        missing = []
        if basis.purchase_price is None:
            missing.append("purchase_price")
        if basis.useful_life_months is None:
            missing.append("useful_life_months")
        if missing:
            raise DepreciationNotConfigured(basis.asset_id, tuple(missing))
