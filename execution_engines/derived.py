"""
execution_engines.derived -- Surplus, net financial assets and closing balance.

Responsibility:
    Compute the derived sections from aggregated section totals:
    C = A - B, F = D - E, and G (accumulated surplus + prior-year
    adjustments + surplus of the period).

Architecture position:
    Engines -- pure calculation over ``aggregate`` output, zero I/O.

Invariants enforced:
    - C per quarter is A - B; its cumulative is the sum of quarters.
    - F per quarter is D - E; its cumulative is the D cumulative less the
      E cumulative, each resolved row by row at its latest reported quarter.
    - G's cumulative is the sum of its children's cumulatives, so
      accumulated surplus counts once rather than once per quarter.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from execution_engines.aggregation import QuarterTotals, RowKind, TableRow
from execution_engines.tracer import traced_engine
from execution_kernel.domain.activities import ActivityTree, Section
from execution_kernel.domain.values import ExecutionState

_DEFAULT_LABELS = {
    Section.A: "Receipts",
    Section.B: "Expenditures",
    Section.C: "Surplus / Deficit",
    Section.D: "Financial Assets",
    Section.E: "Financial Liabilities",
    Section.F: "Net Financial Assets",
    Section.G: "Closing Balance",
}


@dataclass(frozen=True)
class ComputedValues:
    """Section-level totals of one report."""

    receipts: QuarterTotals
    expenditures: QuarterTotals
    surplus: QuarterTotals
    financial_assets: QuarterTotals
    financial_liabilities: QuarterTotals
    net_financial_assets: QuarterTotals
    closing_balance: QuarterTotals
    rows: Mapping[Section, TableRow] = field(default_factory=dict)


def _totals(sections: Mapping[Section, TableRow], section: Section) -> QuarterTotals:
    row = sections.get(section)
    return row.totals if row is not None else QuarterTotals()


def _label(tree: ActivityTree, section: Section) -> str:
    category = tree.category(section)
    return category.label if category is not None else _DEFAULT_LABELS[section]


def _row(tree: ActivityTree, section: Section, totals: QuarterTotals) -> TableRow:
    return TableRow(code=section.value, label=_label(tree, section), kind=RowKind.CATEGORY, totals=totals)


@traced_engine("derived", "1.0")
def compute_derived(
    tree: ActivityTree,
    state: ExecutionState,
    sections: Mapping[Section, TableRow],
) -> ComputedValues:
    receipts = _totals(sections, Section.A)
    expenditures = _totals(sections, Section.B)
    assets = _totals(sections, Section.D)
    liabilities = _totals(sections, Section.E)
    closing = _totals(sections, Section.G)

    surplus = receipts.minus(expenditures)
    net_assets = assets.minus(liabilities)

    closing_row = sections.get(Section.G) or _row(tree, Section.G, closing)
    return ComputedValues(
        receipts=receipts,
        expenditures=expenditures,
        surplus=surplus,
        financial_assets=assets,
        financial_liabilities=liabilities,
        net_financial_assets=net_assets,
        closing_balance=closing,
        rows={
            Section.C: _row(tree, Section.C, surplus),
            Section.F: _row(tree, Section.F, net_assets),
            Section.G: closing_row,
        },
    )


def build_table(
    tree: ActivityTree,
    sections: Mapping[Section, TableRow],
    computed: ComputedValues,
) -> tuple[TableRow, ...]:
    """Full table in display order, derived rows included."""
    rows = dict(sections)
    rows.update(computed.rows)
    ordered = [rows[c.section] for c in sorted(tree.categories, key=lambda c: c.display_order) if c.section in rows]
    for section in (Section.C, Section.F):
        if tree.category(section) is None:
            ordered.append(rows[section])
    return tuple(ordered)
