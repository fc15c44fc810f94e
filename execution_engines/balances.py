"""
execution_engines.balances -- Double-entry balance calculator.

Responsibility:
    Derive Cash at Bank, every Payable, every VAT Receivable and Other
    Receivables for the active quarter from the expense ledger, the
    rollover openings, and the clearance ledgers; then write the derived
    balances back into the draft state.

Architecture position:
    Engines -- pure calculation, zero I/O.  ``BalanceCalculator`` holds
    only immutable collaborators (tree, code mapper); all report data
    flows through arguments.

Invariants enforced:
    - Cash at Bank = opening + receipts - paid expenses - misc adjustments
      + VAT cleared - payables cleared + other receivables cleared
      + prior-year cash adjustment.
    - Opening balances for quarters after Q1 chain from the report's own
      closing values of the previous quarter; the rollover snapshot seeds
      Q1 (and any quarter whose predecessor was never reported).
    - Payables and VAT receivables are clamped at zero; Other Receivables
      and Cash are not (negative values are validator signals).  The rule
      is the named ``BALANCE_POLICIES`` table, not an incidental max().
    - Unclamped values are kept on the snapshot for the validator.

Failure modes:
    - None.  Missing lines (e.g. a tree without a cash line) contribute
      zero; missing quarter data reads as zero.

Audit relevance:
    ``CashMovement`` keeps every component of the cash formula so a
    reviewer can reconstruct the closing figure.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from execution_engines.code_mapping import CodeMapper
from execution_engines.expense_ledger import ExpenseLine, build_ledger
from execution_engines.rollover import RolloverOpenings, resolve_openings
from execution_engines.tracer import traced_engine
from execution_kernel.domain.activities import (
    ActivityTree,
    LineRole,
    Section,
    VatCategory,
)
from execution_kernel.domain.quarters import QUARTERS, Quarter
from execution_kernel.domain.values import ZERO, ActivityValue, ExecutionState
from execution_kernel.logging_config import get_logger

logger = get_logger("engines.balances")


# ---------------------------------------------------------------------------
# Clamping policy
# ---------------------------------------------------------------------------


class ClampPolicy(str, Enum):
    NON_NEGATIVE = "non_negative"
    UNBOUNDED = "unbounded"

    def apply(self, amount: Decimal) -> Decimal:
        if self is ClampPolicy.NON_NEGATIVE:
            return max(ZERO, amount)
        return amount


class BalanceKind(str, Enum):
    CASH = "cash"
    PAYABLE = "payable"
    VAT_RECEIVABLE = "vat_receivable"
    OTHER_RECEIVABLE = "other_receivable"


# A negative payable or VAT receivable is meaningless; a negative Other
# Receivable is the over-clearance signal the validator reports.
BALANCE_POLICIES: Mapping[BalanceKind, ClampPolicy] = {
    BalanceKind.CASH: ClampPolicy.UNBOUNDED,
    BalanceKind.PAYABLE: ClampPolicy.NON_NEGATIVE,
    BalanceKind.VAT_RECEIVABLE: ClampPolicy.NON_NEGATIVE,
    BalanceKind.OTHER_RECEIVABLE: ClampPolicy.UNBOUNDED,
}


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CashMovement:
    opening: Decimal = ZERO
    receipts: Decimal = ZERO
    paid_expenses: Decimal = ZERO
    misc_adjustments: Decimal = ZERO
    vat_cleared: Decimal = ZERO
    payables_cleared: Decimal = ZERO
    other_receivables_cleared: Decimal = ZERO
    prior_year_cash: Decimal = ZERO

    @property
    def closing(self) -> Decimal:
        return (
            self.opening
            + self.receipts
            - self.paid_expenses
            - self.misc_adjustments
            + self.vat_cleared
            - self.payables_cleared
            + self.other_receivables_cleared
            + self.prior_year_cash
        )

    @property
    def before_misc_adjustments(self) -> Decimal:
        """Cash available before Section-X adjustments are taken out."""
        return self.closing + self.misc_adjustments


@dataclass(frozen=True)
class BalanceSnapshot:
    """Derived balances for one quarter."""

    quarter: Quarter
    openings: RolloverOpenings
    cash: CashMovement
    payables: Mapping[str, Decimal] = field(default_factory=dict)
    vat_receivables: Mapping[VatCategory, Decimal] = field(default_factory=dict)
    other_receivables: Decimal = ZERO
    unclamped_vat: Mapping[VatCategory, Decimal] = field(default_factory=dict)
    unclamped_payables: Mapping[str, Decimal] = field(default_factory=dict)

    @property
    def cash_at_bank(self) -> Decimal:
        return self.cash.closing

    @property
    def total_payables(self) -> Decimal:
        return sum(self.payables.values(), ZERO)

    @property
    def total_vat_receivables(self) -> Decimal:
        return sum(self.vat_receivables.values(), ZERO)


def _chained_opening(value: ActivityValue, quarter: Quarter, rollover: Decimal) -> Decimal:
    """Previous quarter's own closing value, or the rollover amount."""
    previous = quarter.previous
    if previous is not None and value.amounts.is_reported(previous):
        return value.amounts.get(previous)
    return rollover


def _sum_amounts(state: ExecutionState, codes: tuple[str, ...], ledger: str, quarter: Quarter) -> Decimal:
    total = ZERO
    for code in codes:
        total += getattr(state.value_for(code), ledger).get(quarter)
    return total


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------


class BalanceCalculator:
    """
    Balance calculator bound to one activity tree.

    Contract:
        ``tree`` uses canonical storage codes (see
        ``CodeMapper.canonicalize_tree``); ``mapper`` resolves snapshot
        keys during rollover.

    Guarantees:
        - ``calculate`` and ``rebalance`` are pure functions of the state.
        - ``rebalance(rebalance(s)[0])[0] == rebalance(s)[0]``.
    """

    def __init__(self, tree: ActivityTree, mapper: CodeMapper):
        self.tree = tree
        self.mapper = mapper

    def openings(self, state: ExecutionState) -> RolloverOpenings:
        return resolve_openings(self.tree, state.previous, self.mapper)

    def ledger(self, state: ExecutionState, quarter: Quarter | None = None) -> tuple[ExpenseLine, ...]:
        return build_ledger(self.tree, state, quarter=quarter or state.quarter)

    def calculate(self, state: ExecutionState, quarter: Quarter | None = None) -> BalanceSnapshot:
        q = quarter or state.quarter
        return calculate_balances(
            self.tree,
            state,
            self.openings(state),
            self.ledger(state, q),
            quarter=q,
        )

    def rebalance(self, state: ExecutionState) -> tuple[ExecutionState, BalanceSnapshot]:
        snapshot = self.calculate(state)
        return apply_balances(state, self.tree, snapshot), snapshot


@traced_engine("balances", "1.0", fingerprint_fields=("quarter",))
def calculate_balances(
    tree: ActivityTree,
    state: ExecutionState,
    openings: RolloverOpenings,
    ledger: tuple[ExpenseLine, ...],
    *,
    quarter: Quarter,
) -> BalanceSnapshot:
    """Derive every balance-sheet line for ``quarter``."""
    receipt_codes = tuple(a.code for a in tree.leaves_in(Section.A))
    misc_codes = tuple(a.code for a in tree.leaves_in(Section.X))
    payable_codes = tree.payable_codes()

    cash_line = tree.by_role(LineRole.CASH_AT_BANK)
    other_line = tree.by_role(LineRole.OTHER_RECEIVABLES)
    prior_cash_line = tree.by_role(LineRole.PRIOR_YEAR_CASH)

    misc_total = _sum_amounts(state, misc_codes, "amounts", quarter)
    other_value = state.value_for(other_line.code) if other_line else None
    other_cleared = other_value.other_receivable_cleared.get(quarter) if other_value else ZERO

    cash = CashMovement(
        opening=(
            _chained_opening(state.value_for(cash_line.code), quarter, openings.cash)
            if cash_line
            else openings.cash
        ),
        receipts=_sum_amounts(state, receipt_codes, "amounts", quarter),
        paid_expenses=sum((line.amount_paid for line in ledger), ZERO),
        misc_adjustments=misc_total,
        vat_cleared=sum((line.vat_cleared for line in ledger), ZERO),
        payables_cleared=_sum_amounts(state, payable_codes, "payable_cleared", quarter),
        other_receivables_cleared=other_cleared,
        prior_year_cash=(
            state.value_for(prior_cash_line.code).amounts.get(quarter) if prior_cash_line else ZERO
        ),
    )

    # Payables
    payable_policy = BALANCE_POLICIES[BalanceKind.PAYABLE]
    payables: dict[str, Decimal] = {}
    unclamped_payables: dict[str, Decimal] = {}
    for code in payable_codes:
        value = state.value_for(code)
        owed = sum((line.unpaid_portion for line in ledger if line.payable_code == code), ZERO)
        raw = (
            _chained_opening(value, quarter, openings.payable(code))
            + owed
            - value.payable_cleared.get(quarter)
            + value.prior_year_adjustment.get(quarter)
        )
        unclamped_payables[code] = raw
        payables[code] = payable_policy.apply(raw)

    # VAT receivables
    vat_policy = BALANCE_POLICIES[BalanceKind.VAT_RECEIVABLE]
    vat: dict[VatCategory, Decimal] = {}
    unclamped_vat: dict[VatCategory, Decimal] = {}
    for category in VatCategory:
        receivable = tree.vat_receivable_for(category)
        lines = [line for line in ledger if line.vat_category == category]
        if receivable is None:
            if any(line.vat for line in lines):
                logger.warning(
                    "vat_receivable_line_missing",
                    extra={"vat_category": category.value},
                )
            continue
        value = state.value_for(receivable.code)
        raw = (
            _chained_opening(value, quarter, openings.vat_for(category))
            + sum((line.vat for line in lines), ZERO)
            - sum((line.vat_cleared for line in lines), ZERO)
            + value.prior_year_adjustment.get(quarter)
        )
        unclamped_vat[category] = raw
        vat[category] = vat_policy.apply(raw)

    # Other receivables
    other = ZERO
    if other_line and other_value is not None:
        other = BALANCE_POLICIES[BalanceKind.OTHER_RECEIVABLE].apply(
            _chained_opening(other_value, quarter, openings.other_receivables)
            + misc_total
            + other_value.prior_year_adjustment.get(quarter)
            - other_cleared
        )

    return BalanceSnapshot(
        quarter=quarter,
        openings=openings,
        cash=cash,
        payables=payables,
        vat_receivables=vat,
        other_receivables=other,
        unclamped_vat=unclamped_vat,
        unclamped_payables=unclamped_payables,
    )


def apply_balances(
    state: ExecutionState,
    tree: ActivityTree,
    snapshot: BalanceSnapshot,
) -> ExecutionState:
    """Write derived balances into the active quarter of the draft."""
    q = snapshot.quarter
    updates: dict[str, ActivityValue] = {}

    def _set(code: str, amount: Decimal) -> None:
        value = updates.get(code) or state.value_for(code)
        if value.amounts.raw(q) != amount or not value.amounts.is_reported(q):
            updates[code] = value.with_amount(q, amount)

    cash_line = tree.by_role(LineRole.CASH_AT_BANK)
    if cash_line:
        _set(cash_line.code, snapshot.cash_at_bank)
    for code, amount in snapshot.payables.items():
        _set(code, amount)
    for category, amount in snapshot.vat_receivables.items():
        receivable = tree.vat_receivable_for(category)
        if receivable is not None:
            _set(receivable.code, amount)
    other_line = tree.by_role(LineRole.OTHER_RECEIVABLES)
    if other_line:
        _set(other_line.code, snapshot.other_receivables)

    seed = snapshot.openings.accumulated_surplus
    surplus_line = tree.by_role(LineRole.ACCUMULATED_SURPLUS)
    if surplus_line and seed is not None and q == Quarter.Q1:
        surplus = updates.get(surplus_line.code) or state.value_for(surplus_line.code)
        if not surplus.amounts.is_reported(Quarter.Q1):
            for quarter in QUARTERS:
                surplus = surplus.with_amount(quarter, seed)
            updates[surplus_line.code] = surplus
            logger.info(
                "accumulated_surplus_seeded",
                extra={"code": surplus_line.code, "amount": seed},
            )

    return state.with_values(updates)
