"""
execution_engines.validation -- Submission checks for an execution report.

Responsibility:
    Turn a recomputed report into validation findings.  Blocking findings
    (severity ``error``) prevent submission; the balance identity
    Net Financial Assets == Closing Balance is informational only.

Architecture position:
    Engines -- pure calculation, zero I/O.

Invariants enforced:
    - No reported amount in the active quarter is negative, including
      the derived Cash at Bank and Other Receivables lines.  Closing
      balance (G) lines may legitimately be negative and are exempt.
    - A partially paid expense never records more paid than its gross,
      in any quarter.
    - No VAT category is over-cleared (checked on the unclamped value).
    - Miscellaneous adjustments never exceed the cash available before
      them.
    - Expenditure in the active quarter stays within a positive planned
      budget.

Failure modes:
    - None.  Every problem becomes a finding, never an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from execution_config.schema import EngineConfig
from execution_engines.balances import BalanceSnapshot
from execution_engines.derived import ComputedValues
from execution_engines.expense_ledger import expense_line
from execution_engines.tracer import traced_engine
from execution_kernel.domain.activities import ActivityTree, Section
from execution_kernel.domain.quarters import QUARTERS
from execution_kernel.domain.values import ZERO, ExecutionState, PaymentStatus


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationFinding:
    field: str
    message: str
    severity: Severity
    code: str


@dataclass(frozen=True)
class IdentityCheck:
    """Net Financial Assets vs Closing Balance, on cumulative values."""

    net_financial_assets: Decimal
    closing_balance: Decimal
    allowance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.net_financial_assets - self.closing_balance

    @property
    def is_balanced(self) -> bool:
        return abs(self.difference) <= self.allowance


@dataclass(frozen=True)
class ValidationResult:
    findings: tuple[ValidationFinding, ...] = ()
    identity: IdentityCheck | None = None

    @property
    def errors(self) -> tuple[ValidationFinding, ...]:
        return tuple(f for f in self.findings if f.severity == Severity.ERROR)

    @property
    def warnings(self) -> tuple[ValidationFinding, ...]:
        return tuple(f for f in self.findings if f.severity == Severity.WARNING)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def can_submit(self) -> bool:
        return self.is_valid

    def with_findings(self, extra: tuple[ValidationFinding, ...]) -> ValidationResult:
        return ValidationResult(findings=self.findings + extra, identity=self.identity)


def identity_allowance(net_assets: Decimal, closing: Decimal, config: EngineConfig) -> Decimal:
    allowance = config.identity_tolerance
    if config.relative_tolerance is not None:
        allowance = max(allowance, config.relative_tolerance * max(abs(net_assets), abs(closing)))
    return allowance


def check_identity(computed: ComputedValues, config: EngineConfig) -> IdentityCheck:
    net_assets = computed.net_financial_assets.cumulative
    closing = computed.closing_balance.cumulative
    return IdentityCheck(
        net_financial_assets=net_assets,
        closing_balance=closing,
        allowance=identity_allowance(net_assets, closing, config),
    )


def validate_misc_adjustment(amount: Decimal, cash_before: Decimal) -> ValidationFinding | None:
    """Finding if ``amount`` exceeds the cash available before the adjustment."""
    max_allowable = max(ZERO, cash_before)
    if amount <= max_allowable:
        return None
    return ValidationFinding(
        field="miscellaneous_adjustments",
        message=(
            f"Miscellaneous adjustments ({amount}) exceed available cash "
            f"({max_allowable})"
        ),
        severity=Severity.ERROR,
        code="MISC_EXCEEDS_CASH",
    )


def _negative_amounts(tree: ActivityTree, state: ExecutionState) -> list[ValidationFinding]:
    q = state.quarter
    findings = []
    for activity in tree.leaves():
        if activity.section == Section.G:
            continue
        value = state.value_for(activity.code)
        ledgers = [("amounts", value.amounts)]
        if activity.section == Section.B:
            ledgers += [
                ("net_amount", value.net_amount),
                ("vat_amount", value.vat_amount),
                ("amount_paid", value.amount_paid),
            ]
        for name, amounts in ledgers:
            if amounts.get(q) < 0:
                findings.append(
                    ValidationFinding(
                        field=f"{activity.code}.{name}.{q.slot}",
                        message=f"{activity.name} cannot be negative in {q.value}",
                        severity=Severity.ERROR,
                        code="NEGATIVE_AMOUNT",
                    )
                )
    return findings


def _overpayments(tree: ActivityTree, state: ExecutionState) -> list[ValidationFinding]:
    findings = []
    for activity in tree.leaves_in(Section.B):
        value = state.value_for(activity.code)
        for q in QUARTERS:
            if value.payment_status.get(q) != PaymentStatus.PARTIAL:
                continue
            line = expense_line(activity, value, q)
            if line.amount_paid > line.gross:
                findings.append(
                    ValidationFinding(
                        field=f"{activity.code}.amount_paid.{q.slot}",
                        message=(
                            f"Amount paid ({line.amount_paid}) exceeds the "
                            f"{q.value} expense ({line.gross})"
                        ),
                        severity=Severity.ERROR,
                        code="PAYMENT_EXCEEDS_EXPENSE",
                    )
                )
    return findings


def _vat_over_clearance(tree: ActivityTree, snapshot: BalanceSnapshot) -> list[ValidationFinding]:
    findings = []
    for category, raw in snapshot.unclamped_vat.items():
        if raw < 0:
            receivable = tree.vat_receivable_for(category)
            findings.append(
                ValidationFinding(
                    field=receivable.code if receivable else category.value,
                    message=f"VAT cleared for {category.value} exceeds the receivable by {-raw}",
                    severity=Severity.ERROR,
                    code="VAT_OVER_CLEARED",
                )
            )
    return findings


@traced_engine("validation", "1.0")
def validate(
    tree: ActivityTree,
    state: ExecutionState,
    snapshot: BalanceSnapshot,
    computed: ComputedValues,
    *,
    config: EngineConfig,
) -> ValidationResult:
    findings: list[ValidationFinding] = []
    findings += _negative_amounts(tree, state)
    findings += _overpayments(tree, state)
    findings += _vat_over_clearance(tree, snapshot)

    misc = snapshot.cash.misc_adjustments
    if misc > 0:
        finding = validate_misc_adjustment(misc, snapshot.cash.before_misc_adjustments)
        if finding is not None:
            findings.append(finding)

    budget = state.planned_budget
    spent = computed.expenditures.get(state.quarter)
    if budget is not None and budget > 0 and spent > budget:
        findings.append(
            ValidationFinding(
                field="planned_budget",
                message=f"Expenditures ({spent}) exceed the planned budget ({budget})",
                severity=Severity.ERROR,
                code="BUDGET_EXCEEDED",
            )
        )

    identity = check_identity(computed, config)
    if not identity.is_balanced:
        findings.append(
            ValidationFinding(
                field="net_financial_assets",
                message=(
                    f"Net Financial Assets ({identity.net_financial_assets}) differ from "
                    f"Closing Balance ({identity.closing_balance}) by {identity.difference}"
                ),
                severity=Severity.WARNING,
                code="IDENTITY_MISMATCH",
            )
        )
    return ValidationResult(findings=tuple(findings), identity=identity)
