"""
Schedule generator tests.

Scenario A (120000 / 10000 / 5 months straight-line), period dating,
book value lookups and the engine trace record.
"""

from datetime import date
from decimal import Decimal

import pytest

from assetflow_engines.depreciation import DepreciationMethod
from assetflow_engines.schedule import DepreciationBasis, ScheduleGenerator
from assetflow_kernel.exceptions import DepreciationNotConfigured


@pytest.fixture
def generator():
    return ScheduleGenerator()


def _basis(price="120000", salvage="10000", life=5, method=DepreciationMethod.STRAIGHT_LINE,
           purchase_date=date(2024, 1, 1), **kwargs):
    return DepreciationBasis.build(
        purchase_price=Decimal(price) if price is not None else None,
        useful_life_months=life,
        purchase_date=purchase_date,
        method=method,
        salvage_value=Decimal(salvage),
        **kwargs,
    )


class TestStraightLineSchedule:

    def test_laptop_schedule(self, generator):
        schedule = generator.generate_schedule(_basis())

        assert len(schedule) == 5
        assert all(e.depreciation_amount == Decimal("22000.00") for e in schedule)
        assert schedule[0].book_value_start == Decimal("120000.00")
        assert schedule[-1].book_value_end == Decimal("10000.00")
        assert schedule[-1].accumulated_depreciation == Decimal("110000.00")

    def test_entries_chain(self, generator):
        schedule = generator.generate_schedule(_basis())
        for current, following in zip(schedule, schedule[1:]):
            assert current.book_value_end == following.book_value_start

    def test_period_dates_step_by_month(self, generator):
        schedule = generator.generate_schedule(_basis(purchase_date=date(2024, 1, 31)))
        assert [e.date for e in schedule[:3]] == [
            date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31),
        ]

    def test_restartable(self, generator):
        basis = _basis()
        assert generator.generate_schedule(basis) == generator.generate_schedule(basis)


class TestOtherMethods:

    def test_declining_balance_stops_at_salvage(self, generator):
        schedule = generator.generate_schedule(
            _basis("1000", "500", 5, DepreciationMethod.DECLINING_BALANCE),
        )
        assert [e.depreciation_amount for e in schedule] == [
            Decimal("400.00"), Decimal("100.00"),
        ]
        assert schedule[-1].book_value_end == Decimal("500.00")

    def test_sum_of_years_digits_lands_on_salvage(self, generator):
        schedule = generator.generate_schedule(
            _basis("1500", "0", 5, DepreciationMethod.SUM_OF_YEARS_DIGITS),
        )
        assert [e.depreciation_amount for e in schedule] == [
            Decimal("500.00"), Decimal("400.00"), Decimal("300.00"),
            Decimal("200.00"), Decimal("100.00"),
        ]

    def test_units_of_production_uses_recorded_usage(self, generator):
        schedule = generator.generate_schedule(
            _basis(
                "10000", "1000", 12, DepreciationMethod.UNITS_OF_PRODUCTION,
                total_expected_units=Decimal("1000"),
                usage={1: Decimal("100"), 2: Decimal("250")},
            ),
        )
        assert len(schedule) == 12
        assert schedule[0].depreciation_amount == Decimal("900.00")
        assert schedule[1].depreciation_amount == Decimal("2250.00")
        assert all(e.depreciation_amount == Decimal("0.00") for e in schedule[2:])


class TestNotConfigured:

    def test_missing_price(self, generator):
        with pytest.raises(DepreciationNotConfigured) as exc_info:
            generator.generate_schedule(_basis(price=None))
        assert "purchase_price" in exc_info.value.missing

    def test_missing_life(self, generator):
        with pytest.raises(DepreciationNotConfigured):
            generator.generate_schedule(_basis(life=None))


class TestBookValueAsOf:

    def test_before_purchase_is_price(self, generator):
        assert generator.book_value_as_of(_basis(), date(2023, 12, 31)) == Decimal("120000.00")

    def test_counts_periods_dated_on_or_before(self, generator):
        assert generator.book_value_as_of(_basis(), date(2024, 2, 15)) == Decimal("76000.00")

    def test_after_life_is_salvage(self, generator):
        assert generator.book_value_as_of(_basis(), date(2030, 1, 1)) == Decimal("10000.00")

    def test_unconfigured_asset_keeps_price(self, generator):
        assert generator.book_value_as_of(_basis(life=None), date(2030, 1, 1)) == Decimal("120000.00")


class TestSummary:

    def test_summarize(self, generator):
        basis = _basis()
        summary = ScheduleGenerator.summarize(generator.generate_schedule(basis), basis.salvage_value)
        assert summary.periods == 5
        assert summary.total_depreciation == Decimal("110000.00")
        assert summary.final_book_value == Decimal("10000.00")
        assert summary.fully_depreciated is True

    def test_summarize_empty(self):
        summary = ScheduleGenerator.summarize((), Decimal("0"))
        assert summary.periods == 0
        assert summary.fully_depreciated is False


class TestEngineTrace:

    def test_trace_record_emitted(self, generator, captured_logs):
        generator.generate_schedule(_basis())
        traces = [r for r in captured_logs() if r.get("trace_type") == "ASSET_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "depreciation_schedule"
        assert len(traces[-1]["input_fingerprint"]) == 16

    def test_same_basis_same_fingerprint(self, generator, captured_logs):
        generator.generate_schedule(_basis())
        generator.generate_schedule(basis=_basis())
        fingerprints = [
            r["input_fingerprint"] for r in captured_logs()
            if r.get("engine_name") == "depreciation_schedule"
        ]
        assert len(fingerprints) == 2
        assert fingerprints[0] == fingerprints[1]
