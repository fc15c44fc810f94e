"""
Tests for quarter identifiers, the fiscal calendar and edit locking.
"""

from datetime import date, datetime, timezone

import pytest

from execution_kernel.domain.activities import Activity, ActivityType, LineRole, Section
from execution_kernel.domain.clock import DeterministicClock
from execution_kernel.domain.quarters import (
    Quarter,
    QuarterContext,
    fiscal_quarter_for,
    quarter_date_range,
)
from execution_kernel.domain.values import ActivityValue, QuarterAmounts
from execution_kernel.exceptions import InvalidQuarterError


class TestQuarter:
    @pytest.mark.parametrize("raw", [Quarter.Q3, "Q3", "q3", " Q3 ", 3])
    def test_parse(self, raw):
        assert Quarter.parse(raw) == Quarter.Q3

    @pytest.mark.parametrize("raw", ["Q5", "", 0, 5, True, None, 2.0])
    def test_parse_rejects(self, raw):
        with pytest.raises(InvalidQuarterError):
            Quarter.parse(raw)

    def test_neighbours(self):
        assert Quarter.Q1.previous is None
        assert Quarter.Q2.previous == Quarter.Q1
        assert Quarter.Q3.next == Quarter.Q4
        assert Quarter.Q4.next is None

    def test_up_to(self):
        assert Quarter.Q3.up_to() == (Quarter.Q1, Quarter.Q2, Quarter.Q3)
        assert Quarter.Q1.up_to() == (Quarter.Q1,)

    def test_slot(self):
        assert Quarter.Q4.slot == "q4"


class TestFiscalCalendar:
    @pytest.mark.parametrize(
        "day, expected",
        [
            (date(2025, 7, 1), (2025, Quarter.Q1)),
            (date(2025, 9, 30), (2025, Quarter.Q1)),
            (date(2025, 10, 1), (2025, Quarter.Q2)),
            (date(2026, 1, 15), (2025, Quarter.Q3)),
            (date(2026, 6, 30), (2025, Quarter.Q4)),
        ],
    )
    def test_fiscal_quarter_for(self, day, expected):
        assert fiscal_quarter_for(day) == expected

    def test_date_range_crosses_calendar_year(self):
        assert quarter_date_range(2025, Quarter.Q3) == (date(2026, 1, 1), date(2026, 3, 31))

    def test_context_from_clock(self):
        clock = DeterministicClock(datetime(2026, 2, 3, tzinfo=timezone.utc))

        context = QuarterContext.from_clock(clock)

        assert context.current == Quarter.Q3
        assert context.fiscal_year == 2025


class TestQuarterContext:
    def setup_method(self):
        self.context = QuarterContext(current=Quarter.Q2)

    def test_only_current_quarter_editable(self):
        assert self.context.is_editable(Quarter.Q2)
        assert self.context.locked_quarters() == (Quarter.Q1, Quarter.Q3, Quarter.Q4)

    def test_active_and_future(self):
        assert self.context.active_quarters() == (Quarter.Q1, Quarter.Q2)
        assert self.context.is_future(Quarter.Q3)
        assert not self.context.is_future(Quarter.Q1)

    def test_visibility(self):
        values = [ActivityValue(code="A", amounts=QuarterAmounts.of(q4=10, q3=0))]

        assert self.context.is_visible(Quarter.Q2, values)
        assert self.context.is_visible(Quarter.Q4, values)
        assert not self.context.is_visible(Quarter.Q3, values)

    def test_row_lock_reasons(self):
        receipt = Activity(code="A_1", name="Receipt", section=Section.A, display_order=1)
        cash = Activity(
            code="D_1",
            name="Cash",
            section=Section.D,
            display_order=1,
            activity_type=ActivityType.COMPUTED_ASSET,
            is_editable=False,
            is_computed=True,
            role=LineRole.CASH_AT_BANK,
        )
        surplus = Activity(
            code="G_4",
            name="Accumulated",
            section=Section.G,
            display_order=1,
            is_editable=False,
            is_computed=True,
            role=LineRole.ACCUMULATED_SURPLUS,
        )

        assert self.context.row_lock_reason(receipt, Quarter.Q2) is None
        assert "locked" in self.context.row_lock_reason(receipt, Quarter.Q1)
        assert self.context.row_lock_reason(cash, Quarter.Q2) == "value is computed"
        assert "accumulated surplus" in self.context.row_lock_reason(surplus, Quarter.Q2)
