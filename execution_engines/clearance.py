"""
execution_engines.clearance -- Settlement and prior-year adjustment postings.

Responsibility:
    Record clearances (payables paid, VAT refunded, other receivables
    collected) and prior-year adjustments against the active quarter,
    then re-derive every balance so the ledger change and its cash
    movement land in the same state.

Architecture position:
    Engines -- pure functions ``(state, ...) -> state``.  Session services
    check quarter locks before calling in; nothing here reads a clock.

Invariants enforced:
    - Double entry: clearing X from a payable lowers the payable by X and
      Cash by X; clearing X of VAT or other receivables lowers the
      receivable by X and raises Cash by X.
    - Clearance amounts accumulate within a quarter.
    - A prior-year adjustment posts its equity effect to the G-01 line:
      +amount for an asset target, -amount for a liability target, so
      Net Financial Assets and Closing Balance move together.
    - A prior-year cash adjustment posts only to the G-01 cash line; Cash
      at Bank picks it up on re-derivation.

Failure modes:
    - InvalidAmountError: amount <= 0.
    - ActivityNotFoundError: unknown code.
    - InvalidClearanceTargetError: target of the wrong section or role.
    - VatOverClearanceError: VAT refund exceeds the category receivable.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from execution_engines.balances import BalanceCalculator
from execution_engines.code_mapping import CodeMapper
from execution_kernel.domain.activities import (
    Activity,
    ActivityTree,
    ActivityType,
    LineRole,
    Section,
)
from execution_kernel.domain.values import ZERO, ExecutionState, parse_amount
from execution_kernel.exceptions import (
    InvalidAmountError,
    InvalidClearanceTargetError,
    VatOverClearanceError,
)
from execution_kernel.logging_config import get_logger

logger = get_logger("engines.clearance")


class AdjustmentDirection(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"

    def signed(self, amount: Decimal) -> Decimal:
        return amount if self is AdjustmentDirection.INCREASE else -amount


def _positive(code: str, amount: object) -> Decimal:
    value = amount if isinstance(amount, Decimal) else parse_amount(amount)
    if value <= ZERO:
        raise InvalidAmountError(code, value)
    return value


def _rebalance(
    state: ExecutionState,
    tree: ActivityTree,
    mapper: CodeMapper | None,
) -> ExecutionState:
    rebalanced, _snapshot = BalanceCalculator(tree, mapper or CodeMapper()).rebalance(state)
    return rebalanced


def _is_receivable_target(activity: Activity) -> bool:
    return activity.section == Section.D and (
        activity.activity_type == ActivityType.VAT_RECEIVABLE
        or activity.role == LineRole.OTHER_RECEIVABLES
    )


# ---------------------------------------------------------------------------
# Clearances
# ---------------------------------------------------------------------------


def clear_payable(
    state: ExecutionState,
    tree: ActivityTree,
    payable_code: str,
    amount: Decimal,
    *,
    mapper: CodeMapper | None = None,
) -> ExecutionState:
    """Settle ``amount`` of a Section-E payable out of Cash at Bank."""
    activity = tree.get(payable_code)
    if activity.section != Section.E or activity.is_total:
        raise InvalidClearanceTargetError(payable_code, "a Section E payable")
    value = _positive(payable_code, amount)

    q = state.quarter
    updated = state.with_value(state.value_for(activity.code).accumulate("payable_cleared", q, value))
    logger.info(
        "payable_cleared",
        extra={"code": activity.code, "amount": value, "quarter": q.value},
    )
    return _rebalance(updated, tree, mapper)


def _vat_ledger_holder(tree: ActivityTree, activity: Activity) -> Activity:
    """Expense line that carries the VAT-cleared ledger for ``activity``."""
    if activity.is_vat_expense:
        return activity
    if activity.activity_type == ActivityType.VAT_RECEIVABLE:
        for expense in tree.leaves_in(Section.B):
            if expense.vat_category == activity.vat_category:
                return expense
    raise InvalidClearanceTargetError(
        activity.code, "a VAT-applicable expense or VAT receivable"
    )


def clear_vat(
    state: ExecutionState,
    tree: ActivityTree,
    expense_code: str,
    amount: Decimal,
    *,
    mapper: CodeMapper | None = None,
) -> ExecutionState:
    """Record a VAT refund for the category of ``expense_code``.

    ``expense_code`` may also name the category's VAT receivable line, in
    which case the refund is booked against the first expense of that
    category.

    Raises:
        VatOverClearanceError: if the refund exceeds the receivable
            available before this clearance.
    """
    holder = _vat_ledger_holder(tree, tree.get(expense_code))
    value = _positive(expense_code, amount)
    category = holder.vat_category

    calculator = BalanceCalculator(tree, mapper or CodeMapper())
    available = calculator.calculate(state).vat_receivables.get(category, ZERO)
    if value > available:
        raise VatOverClearanceError(category.value, value, available)

    q = state.quarter
    updated = state.with_value(state.value_for(holder.code).accumulate("vat_cleared", q, value))
    logger.info(
        "vat_cleared",
        extra={
            "code": holder.code,
            "vat_category": category.value,
            "amount": value,
            "quarter": q.value,
        },
    )
    rebalanced, _snapshot = calculator.rebalance(updated)
    return rebalanced


def clear_other_receivable(
    state: ExecutionState,
    tree: ActivityTree,
    code: str,
    amount: Decimal,
    *,
    mapper: CodeMapper | None = None,
) -> ExecutionState:
    """Collect ``amount`` of Other Receivables into Cash at Bank."""
    activity = tree.get(code)
    if activity.role != LineRole.OTHER_RECEIVABLES:
        raise InvalidClearanceTargetError(code, "the Other Receivables line")
    value = _positive(code, amount)

    q = state.quarter
    updated = state.with_value(
        state.value_for(activity.code).accumulate("other_receivable_cleared", q, value)
    )
    logger.info(
        "other_receivable_cleared",
        extra={"code": activity.code, "amount": value, "quarter": q.value},
    )
    return _rebalance(updated, tree, mapper)


# ---------------------------------------------------------------------------
# Prior-year adjustments
# ---------------------------------------------------------------------------


def apply_prior_year_adjustment(
    state: ExecutionState,
    tree: ActivityTree,
    adjustment_code: str,
    target_code: str,
    direction: AdjustmentDirection | str,
    amount: Decimal,
    *,
    mapper: CodeMapper | None = None,
) -> ExecutionState:
    """Correct a prior-year payable or receivable against a G-01 line.

    The target's ``prior_year_adjustment`` moves by the signed amount; the
    G-01 line moves by the equity effect of that change.
    """
    adjustment = tree.get(adjustment_code)
    if adjustment.role not in (LineRole.PRIOR_YEAR_PAYABLE, LineRole.PRIOR_YEAR_RECEIVABLE):
        raise InvalidClearanceTargetError(
            adjustment_code, "a prior-year payable or receivable adjustment line"
        )
    target = tree.get(target_code)
    is_liability = target.section == Section.E and not target.is_total
    if not is_liability and not _is_receivable_target(target):
        raise InvalidClearanceTargetError(
            target_code, "a Section E payable, VAT receivable or Other Receivables line"
        )
    value = _positive(adjustment_code, amount)
    signed = AdjustmentDirection(direction).signed(value)
    equity_effect = -signed if is_liability else signed

    q = state.quarter
    updated = state.with_values(
        {
            target.code: state.value_for(target.code).accumulate("prior_year_adjustment", q, signed),
            adjustment.code: state.value_for(adjustment.code).accumulate("amounts", q, equity_effect),
        }
    )
    logger.info(
        "prior_year_adjustment_applied",
        extra={
            "adjustment_code": adjustment.code,
            "target_code": target.code,
            "signed_amount": signed,
            "equity_effect": equity_effect,
            "quarter": q.value,
        },
    )
    return _rebalance(updated, tree, mapper)


def apply_prior_year_cash_adjustment(
    state: ExecutionState,
    tree: ActivityTree,
    adjustment_code: str,
    direction: AdjustmentDirection | str,
    amount: Decimal,
    *,
    mapper: CodeMapper | None = None,
) -> ExecutionState:
    """Correct prior-year cash; Cash at Bank re-derives from the G-01 line."""
    adjustment = tree.get(adjustment_code)
    if adjustment.role != LineRole.PRIOR_YEAR_CASH:
        raise InvalidClearanceTargetError(adjustment_code, "the prior-year cash adjustment line")
    value = _positive(adjustment_code, amount)
    signed = AdjustmentDirection(direction).signed(value)

    q = state.quarter
    updated = state.with_value(state.value_for(adjustment.code).accumulate("amounts", q, signed))
    logger.info(
        "prior_year_cash_adjustment_applied",
        extra={"code": adjustment.code, "signed_amount": signed, "quarter": q.value},
    )
    return _rebalance(updated, tree, mapper)
