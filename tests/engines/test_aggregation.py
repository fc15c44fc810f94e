"""
Tests for the hierarchical aggregator and the derived sections.

Covers:
- Leaf values (VAT lines at net, total rows ignored, surplus mirror)
- Flow vs stock cumulatives
- Subcategory and category roll-up
- C = A - B, F = D - E, G composition
- Table ordering
"""

from decimal import Decimal

from execution_engines.aggregation import (
    QuarterTotals,
    RowKind,
    aggregate,
    latest_stock_quarter,
)
from execution_engines.derived import build_table, compute_derived
from execution_kernel.domain.activities import Section
from execution_kernel.domain.quarters import QUARTERS, Quarter


def _amounts(**slots):
    return {q: Decimal(str(slots.get(q.slot, 0))) for q in QUARTERS}


class TestLatestStockQuarter:
    def test_active_quarter_when_later_quarters_empty(self):
        assert latest_stock_quarter(_amounts(q1=700), Quarter.Q2) == Quarter.Q2

    def test_nonzero_future_quarter_wins(self):
        assert latest_stock_quarter(_amounts(q1=5, q3=10), Quarter.Q1) == Quarter.Q3

    def test_first_quarter_without_values(self):
        assert latest_stock_quarter(_amounts(), Quarter.Q1) == Quarter.Q1

    def test_constant_row_does_not_move_other_rows(self, codes, tree, build_state):
        state = build_state(
            {
                codes.accumulated_surplus: {"q1": 500, "q2": 500, "q3": 500, "q4": 500},
                codes.cash: {"q1": 300},
            }
        )

        sections = aggregate(tree, state)

        assert sections[Section.D].totals.cumulative == Decimal("300")
        assert sections[Section.G].find(codes.accumulated_surplus).totals.cumulative == Decimal("500")


class TestLeafValues:
    def test_vat_expense_contributes_net(self, codes, tree, build_state):
        state = build_state(
            {codes.communication: {"q1": 1180, "netAmount": {"q1": 1000}, "vatAmount": {"q1": 180}}}
        )

        sections = aggregate(tree, state)

        assert sections[Section.B].totals.q1 == Decimal("1000")
        assert sections[Section.B].find(codes.communication).totals.q1 == Decimal("1000")

    def test_total_rows_ignored(self, codes, tree, build_state):
        state = build_state({codes.salary: {"q1": 50}, codes.overheads_total: {"q1": 999}})

        sections = aggregate(tree, state)

        assert sections[Section.B].totals.q1 == Decimal("50")
        assert sections[Section.B].find(codes.overheads_total) is None

    def test_surplus_of_period_mirrors_c(self, codes, tree, build_state):
        state = build_state({codes.receipt: {"q1": 300}, codes.salary: {"q1": 120}})

        sections = aggregate(tree, state)
        row = sections[Section.G].find(codes.surplus_of_period)

        assert row.totals.q1 == Decimal("180")
        assert row.totals.cumulative == Decimal("180")


class TestCumulatives:
    def test_flow_sections_sum_quarters(self, codes, tree, build_state):
        state = build_state({codes.receipt: {"q1": 100, "q2": 200}}, quarter=Quarter.Q2)

        assert aggregate(tree, state)[Section.A].totals.cumulative == Decimal("300")

    def test_stock_sections_take_latest_reported_quarter(self, codes, tree, build_state):
        state = build_state({codes.cash: {"q1": 700, "q2": 800}}, quarter=Quarter.Q2)

        row = aggregate(tree, state)[Section.D]

        assert row.totals.cumulative == Decimal("800")
        assert row.find(codes.cash).totals.cumulative == Decimal("800")

    def test_stock_latest_quarter_without_value_is_zero(self, codes, tree, build_state):
        state = build_state({codes.cash: {"q1": 700}}, quarter=Quarter.Q2)

        assert aggregate(tree, state)[Section.D].totals.cumulative == Decimal("0")

    def test_accumulated_surplus_uses_q1(self, codes, tree, build_state):
        state = build_state({codes.accumulated_surplus: {"q1": 500, "q2": 500, "q3": 500, "q4": 500}})

        row = aggregate(tree, state)[Section.G].find(codes.accumulated_surplus)

        assert row.totals.q2 == Decimal("500")
        assert row.totals.cumulative == Decimal("500")


class TestRollUp:
    def test_subcategory_rows_in_display_order(self, tree, build_state):
        row = aggregate(tree, build_state())[Section.B]

        assert row.kind == RowKind.CATEGORY
        assert [child.code for child in row.children] == ["B-01", "B-04", "B-05"]
        assert all(child.kind == RowKind.SUBCATEGORY for child in row.children)

    def test_parent_cumulative_is_sum_of_children(self, codes, tree, build_state):
        state = build_state(
            {
                codes.salary: {"q1": 10, "q2": 20},
                codes.fuel: {"netAmount": {"q1": 5}},
                codes.transfer: {"q2": 7},
            },
            quarter=Quarter.Q2,
        )

        row = aggregate(tree, state)[Section.B]

        assert row.totals.q1 == Decimal("15")
        assert row.totals.q2 == Decimal("27")
        assert row.totals.cumulative == sum((c.totals.cumulative for c in row.children), Decimal("0"))
        assert row.totals.cumulative == Decimal("42")

    def test_derived_sections_not_aggregated(self, tree, build_state):
        sections = aggregate(tree, build_state())

        assert Section.C not in sections
        assert Section.F not in sections

    def test_editable_flag_on_leaves(self, codes, tree, build_state):
        sections = aggregate(tree, build_state())

        assert sections[Section.A].find(codes.receipt).is_editable
        assert not sections[Section.D].find(codes.cash).is_editable


class TestDerivedSections:
    def test_surplus_is_receipts_minus_expenditures(self, codes, tree, build_state):
        state = build_state(
            {codes.receipt: {"q1": 500, "q2": 100}, codes.salary: {"q1": 200, "q2": 300}},
            quarter=Quarter.Q2,
        )

        computed = compute_derived(tree, state, aggregate(tree, state))

        assert computed.surplus.q1 == Decimal("300")
        assert computed.surplus.q2 == Decimal("-200")
        assert computed.surplus.cumulative == Decimal("100")

    def test_net_financial_assets_cumulative_is_latest_not_sum(self, codes, tree, build_state):
        state = build_state(
            {
                codes.cash: {"q1": 100, "q2": 150},
                codes.payable_salaries: {"q1": 0, "q2": 50},
            },
            quarter=Quarter.Q2,
        )

        computed = compute_derived(tree, state, aggregate(tree, state))

        assert computed.net_financial_assets.q1 == Decimal("100")
        assert computed.net_financial_assets.q2 == Decimal("100")
        assert computed.net_financial_assets.cumulative == Decimal("100")

    def test_closing_balance_composition(self, codes, tree, build_state):
        state = build_state(
            {
                codes.accumulated_surplus: {"q1": 500, "q2": 500, "q3": 500, "q4": 500},
                codes.prior_year_payables: {"q1": -30},
                codes.receipt: {"q1": 100, "q2": 50},
            },
            quarter=Quarter.Q2,
        )

        computed = compute_derived(tree, state, aggregate(tree, state))

        assert computed.closing_balance.q1 == Decimal("570")
        assert computed.closing_balance.cumulative == Decimal("620")

    def test_table_in_display_order(self, tree, build_state):
        state = build_state()
        sections = aggregate(tree, state)

        table = build_table(tree, sections, compute_derived(tree, state, sections))

        assert [row.code for row in table] == ["A", "B", "C", "D", "E", "F", "G", "X"]
        assert table[2].label == "Surplus / Deficit"


class TestQuarterTotals:
    def test_sum_and_minus(self):
        a = QuarterTotals(q1=Decimal("1"), q2=Decimal("2"), cumulative=Decimal("3"))
        b = QuarterTotals(q1=Decimal("4"), cumulative=Decimal("4"))

        assert QuarterTotals.sum_of([a, b]) == QuarterTotals(
            q1=Decimal("5"), q2=Decimal("2"), cumulative=Decimal("7")
        )
        assert a.minus(b).q1 == Decimal("-3")
        assert a.as_dict()["cumulative"] == "3"
