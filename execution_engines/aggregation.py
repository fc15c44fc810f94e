"""
execution_engines.aggregation -- Hierarchical quarter and cumulative totals.

Responsibility:
    Roll leaf values up into subcategory and category totals for every
    quarter, and compute each row's cumulative value according to its
    section's aggregation rule.  Produces the read-only nested
    ``TableRow`` projection the form renders.

Architecture position:
    Engines -- pure calculation, zero I/O.

Invariants enforced:
    - VAT-applicable expenses contribute their net amount; the VAT part
      is carried as a receivable, not as expenditure.
    - The surplus-of-period line mirrors Surplus/Deficit (A - B).
    - Flow rows accumulate by summing quarters; stock rows (D, E) take
      the value at their own latest reported quarter; accumulated surplus takes
      its Q1 value.
    - Parent cumulatives are the sum of child cumulatives, never a
      re-application of the rule to parent quarter totals.
    - TOTAL_ROW items never contribute.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from execution_engines.tracer import traced_engine
from execution_kernel.domain.activities import (
    Activity,
    ActivityTree,
    AggregationRule,
    Category,
    LineRole,
    Section,
)
from execution_kernel.domain.quarters import QUARTERS, Quarter
from execution_kernel.domain.values import ZERO, ActivityValue, ExecutionState


@dataclass(frozen=True)
class QuarterTotals:
    q1: Decimal = ZERO
    q2: Decimal = ZERO
    q3: Decimal = ZERO
    q4: Decimal = ZERO
    cumulative: Decimal = ZERO

    def get(self, quarter: Quarter) -> Decimal:
        return getattr(self, quarter.slot)

    def quarters(self) -> tuple[Decimal, ...]:
        return tuple(self.get(q) for q in QUARTERS)

    @classmethod
    def from_quarters(cls, values: Mapping[Quarter, Decimal], cumulative: Decimal) -> QuarterTotals:
        return cls(
            **{q.slot: values.get(q, ZERO) for q in QUARTERS},
            cumulative=cumulative,
        )

    @classmethod
    def sum_of(cls, parts: list[QuarterTotals]) -> QuarterTotals:
        return cls(
            **{q.slot: sum((p.get(q) for p in parts), ZERO) for q in QUARTERS},
            cumulative=sum((p.cumulative for p in parts), ZERO),
        )

    def minus(self, other: QuarterTotals) -> QuarterTotals:
        return QuarterTotals(
            **{q.slot: self.get(q) - other.get(q) for q in QUARTERS},
            cumulative=self.cumulative - other.cumulative,
        )

    def as_dict(self) -> dict[str, str]:
        result = {q.slot: str(self.get(q)) for q in QUARTERS}
        result["cumulative"] = str(self.cumulative)
        return result


class RowKind(str, Enum):
    CATEGORY = "category"
    SUBCATEGORY = "subcategory"
    LEAF = "leaf"


@dataclass(frozen=True)
class TableRow:
    """One row of the nested execution table."""

    code: str
    label: str
    kind: RowKind
    totals: QuarterTotals
    is_editable: bool = False
    children: tuple[TableRow, ...] = ()

    def walk(self) -> Iterator[TableRow]:
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, code: str) -> TableRow | None:
        for row in self.walk():
            if row.code == code:
                return row
        return None


# ---------------------------------------------------------------------------
# Leaf values
# ---------------------------------------------------------------------------


def latest_stock_quarter(amounts: Mapping[Quarter, Decimal], current: Quarter) -> Quarter:
    """
    Latest quarter a stock row reports in.

    Scanning Q4 back to Q1, a quarter counts when it is not after the
    active quarter or when the row holds a nonzero amount there.  Rows
    are resolved one at a time so a value that is constant across all
    quarters (accumulated surplus) never drags other rows forward.
    """
    for quarter in reversed(QUARTERS):
        if quarter in current.up_to() or amounts.get(quarter, ZERO) != ZERO:
            return quarter
    return Quarter.Q1


def leaf_amount(activity: Activity, value: ActivityValue, quarter: Quarter) -> Decimal:
    if activity.is_vat_expense:
        return value.net_amount.get(quarter)
    return value.amounts.get(quarter)


def _section_quarters(tree: ActivityTree, state: ExecutionState, section: Section) -> dict[Quarter, Decimal]:
    totals = {q: ZERO for q in QUARTERS}
    for activity in tree.leaves_in(section):
        value = state.value_for(activity.code)
        for q in QUARTERS:
            totals[q] += leaf_amount(activity, value, q)
    return totals


def surplus_by_quarter(tree: ActivityTree, state: ExecutionState) -> dict[Quarter, Decimal]:
    """Receipts minus expenditures, per quarter."""
    receipts = _section_quarters(tree, state, Section.A)
    expenditures = _section_quarters(tree, state, Section.B)
    return {q: receipts[q] - expenditures[q] for q in QUARTERS}


def _leaf_totals(
    activity: Activity,
    value: ActivityValue,
    current: Quarter,
    surplus: Mapping[Quarter, Decimal],
) -> QuarterTotals:
    if activity.role == LineRole.SURPLUS_OF_PERIOD:
        amounts = dict(surplus)
    else:
        amounts = {q: leaf_amount(activity, value, q) for q in QUARTERS}

    if activity.role == LineRole.ACCUMULATED_SURPLUS:
        cumulative = amounts[Quarter.Q1]
    elif activity.section.aggregation == AggregationRule.STOCK:
        cumulative = amounts[latest_stock_quarter(amounts, current)]
    else:
        cumulative = sum(amounts.values(), ZERO)
    return QuarterTotals.from_quarters(amounts, cumulative)


def _category_row(
    category: Category,
    state: ExecutionState,
    current: Quarter,
    surplus: Mapping[Quarter, Decimal],
) -> TableRow:
    def _leaves(items: tuple[Activity, ...]) -> list[TableRow]:
        rows = []
        for activity in sorted(items, key=lambda a: a.display_order):
            if activity.is_total:
                continue
            rows.append(
                TableRow(
                    code=activity.code,
                    label=activity.name,
                    kind=RowKind.LEAF,
                    totals=_leaf_totals(activity, state.value_for(activity.code), current, surplus),
                    is_editable=activity.is_editable,
                )
            )
        return rows

    children = _leaves(category.items)
    for sub in sorted(category.subcategories, key=lambda s: s.display_order):
        sub_children = _leaves(sub.items)
        children.append(
            TableRow(
                code=sub.code,
                label=sub.label,
                kind=RowKind.SUBCATEGORY,
                totals=QuarterTotals.sum_of([c.totals for c in sub_children]),
                children=tuple(sub_children),
            )
        )

    return TableRow(
        code=category.section.value,
        label=category.label,
        kind=RowKind.CATEGORY,
        totals=QuarterTotals.sum_of([c.totals for c in children]),
        children=tuple(children),
    )


@traced_engine("aggregation", "1.0")
def aggregate(tree: ActivityTree, state: ExecutionState) -> dict[Section, TableRow]:
    """Category rows for every non-derived section of the tree."""
    surplus = surplus_by_quarter(tree, state)
    return {
        category.section: _category_row(category, state, state.quarter, surplus)
        for category in sorted(tree.categories, key=lambda c: c.display_order)
        if not category.section.is_derived
    }
