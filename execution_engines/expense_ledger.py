"""
execution_engines.expense_ledger -- Normalized expenditure lines per quarter.

Responsibility:
    Turn every Section-B expense into an ``ExpenseLine`` for one quarter:
    net, VAT and gross amounts, payment status, amount paid, and the
    portion still owed.  Also the single boundary where raw form payloads
    (with their legacy scalar/quarter-keyed unions) become typed
    ``ActivityValue`` records.

Architecture position:
    Engines -- pure calculation, zero I/O.

Invariants enforced:
    - VAT-applicable lines (explicit ``vat_category``) read their net and
      VAT amounts from the quarter-keyed sub-maps; other lines treat the
      quarter amount as net with zero VAT.
    - gross = net + VAT.
    - PAID pays gross; PARTIAL pays the recorded amount (not clamped, so
      the validator can flag over-payment); UNPAID pays nothing.
    - Lines with no payable (transfers, bank charges) settle immediately
      and are always counted as paid in full.
    - Missing status defaults to UNPAID.

Failure modes:
    - None.  Missing sub-maps and unparsable numbers read as zero.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from execution_engines.code_mapping import CodeMapper
from execution_engines.tracer import traced_engine
from execution_kernel.domain.activities import Activity, ActivityTree, Section, VatCategory
from execution_kernel.domain.quarters import Quarter
from execution_kernel.domain.values import (
    ZERO,
    ActivityValue,
    ExecutionState,
    PaymentStatus,
    PreviousQuarterBalances,
    QuarterAmounts,
    QuarterStatuses,
    parse_amount,
)
from execution_kernel.logging_config import get_logger

logger = get_logger("engines.expense_ledger")


@dataclass(frozen=True)
class ExpenseLine:
    """One expense activity in one quarter."""

    code: str
    quarter: Quarter
    net: Decimal
    vat: Decimal
    status: PaymentStatus
    amount_paid: Decimal
    vat_cleared: Decimal = ZERO
    vat_category: VatCategory | None = None
    payable_code: str | None = None

    @property
    def gross(self) -> Decimal:
        return self.net + self.vat

    @property
    def settles_immediately(self) -> bool:
        return self.payable_code is None

    @property
    def unpaid_portion(self) -> Decimal:
        """Amount still owed to the supplier, VAT included."""
        if self.settles_immediately or self.status == PaymentStatus.PAID:
            return ZERO
        if self.status == PaymentStatus.PARTIAL:
            return max(ZERO, self.gross - self.amount_paid)
        return self.gross


def expense_line(activity: Activity, value: ActivityValue, quarter: Quarter) -> ExpenseLine:
    if activity.vat_category is not None:
        net = value.net_amount.get(quarter)
        vat = value.vat_amount.get(quarter)
    else:
        net = value.amounts.get(quarter)
        vat = ZERO
    gross = net + vat
    status = value.payment_status.get(quarter) or PaymentStatus.UNPAID

    if activity.payable_code is None or status == PaymentStatus.PAID:
        paid = gross
    elif status == PaymentStatus.PARTIAL:
        paid = value.amount_paid.get(quarter)
    else:
        paid = ZERO

    return ExpenseLine(
        code=activity.code,
        quarter=quarter,
        net=net,
        vat=vat,
        status=status,
        amount_paid=paid,
        vat_cleared=value.vat_cleared.get(quarter),
        vat_category=activity.vat_category,
        payable_code=activity.payable_code,
    )


@traced_engine("expense_ledger", "1.0", fingerprint_fields=("quarter",))
def build_ledger(
    tree: ActivityTree,
    state: ExecutionState,
    *,
    quarter: Quarter,
) -> tuple[ExpenseLine, ...]:
    """Expense lines for every non-total Section-B activity."""
    return tuple(
        expense_line(activity, state.value_for(activity.code), quarter)
        for activity in tree.leaves_in(Section.B)
    )


# ---------------------------------------------------------------------------
# Form payload boundary
# ---------------------------------------------------------------------------

_LEDGER_KEYS: tuple[tuple[str, str, str], ...] = (
    ("net_amount", "netAmount", "net_amount"),
    ("vat_amount", "vatAmount", "vat_amount"),
    ("vat_cleared", "vatCleared", "vat_cleared"),
    ("payable_cleared", "payableCleared", "payable_cleared"),
    ("other_receivable_cleared", "otherReceivableCleared", "other_receivable_cleared"),
    ("prior_year_adjustment", "priorYearAdjustment", "prior_year_adjustment"),
)


def _pick(raw: Mapping[str, Any], camel: str, snake: str) -> Any:
    return raw[camel] if camel in raw else raw.get(snake)


def _quarter_map(raw: Any) -> QuarterAmounts:
    if isinstance(raw, Mapping):
        return QuarterAmounts.from_mapping(raw)
    return QuarterAmounts()


def normalize_activity_value(code: str, raw: Mapping[str, Any] | None) -> ActivityValue:
    """
    Parse one raw form entry into an ActivityValue.

    ``paymentStatus`` and ``amountPaid`` may be scalars (legacy shape,
    applied to every quarter) or quarter-keyed mappings.  Any other
    ledger field that is not a mapping is ignored.
    """
    if not raw:
        return ActivityValue(code=code)

    paid_raw = _pick(raw, "amountPaid", "amount_paid")
    if isinstance(paid_raw, Mapping):
        amount_paid = QuarterAmounts.from_mapping(paid_raw)
    elif paid_raw is None:
        amount_paid = QuarterAmounts()
    else:
        amount_paid = QuarterAmounts.uniform(paid_raw)

    ledgers = {field: _quarter_map(_pick(raw, camel, snake)) for field, camel, snake in _LEDGER_KEYS}
    comment = raw.get("comment")
    return ActivityValue(
        code=code,
        amounts=QuarterAmounts.from_mapping(raw),
        comment=str(comment) if comment else None,
        payment_status=QuarterStatuses.from_raw(_pick(raw, "paymentStatus", "payment_status")),
        amount_paid=amount_paid,
        **ledgers,
    )


def state_from_form_data(
    form_data: Mapping[str, Mapping[str, Any]],
    *,
    quarter: Quarter,
    mapper: CodeMapper,
    previous: PreviousQuarterBalances | None = None,
    planned_budget: Any = None,
) -> ExecutionState:
    """Build an ExecutionState from a raw form payload keyed by activity code."""
    values: dict[str, ActivityValue] = {}
    for raw_code, raw in form_data.items():
        code = mapper.resolve(raw_code)
        if code in values:
            logger.warning(
                "form_data_duplicate_code",
                extra={"code": code, "raw_code": raw_code},
            )
        values[code] = normalize_activity_value(code, raw)
    budget = None if planned_budget is None else parse_amount(planned_budget)
    return ExecutionState(
        quarter=quarter,
        values=values,
        previous=previous or PreviousQuarterBalances.none(),
        planned_budget=budget,
    )
