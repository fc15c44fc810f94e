"""
Values -- Per-activity quarterly amounts and the report draft state.

Responsibility:
    Quarter-indexed value records (amounts, statuses, clearance ledgers),
    the previous-quarter closing snapshot, and the immutable
    ``ExecutionState`` that every engine consumes.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - All money is ``Decimal``; ``parse_amount`` never yields NaN/Infinity.
    - A quarter slot of ``None`` means "not reported", distinct from an
      explicit zero.
    - Every record is frozen; updates return new instances.

Failure modes:
    - None.  Missing or unparsable input resolves to zero by policy,
      because partially seeded drafts are the normal case.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from execution_kernel.domain.quarters import QUARTERS, Quarter

ZERO = Decimal("0")


def parse_amount(raw: Any) -> Decimal:
    """Coerce user or wire input into a finite Decimal, defaulting to 0."""
    if raw is None or isinstance(raw, bool):
        return ZERO
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else ZERO
    if isinstance(raw, float):
        raw = repr(raw)
    try:
        value = Decimal(str(raw).strip().replace(",", ""))
    except (InvalidOperation, ValueError):
        return ZERO
    return value if value.is_finite() else ZERO


def _optional_amount(raw: Any) -> Decimal | None:
    if raw is None or raw == "":
        return None
    return parse_amount(raw)


class PaymentStatus(str, Enum):
    PAID = "paid"
    PARTIAL = "partial"
    UNPAID = "unpaid"

    @classmethod
    def parse(cls, raw: Any) -> PaymentStatus | None:
        if raw is None or raw == "":
            return None
        if isinstance(raw, PaymentStatus):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return None


# ---------------------------------------------------------------------------
# Quarter-indexed records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuarterAmounts:
    """Four quarterly amount slots; ``None`` marks an unreported quarter."""

    q1: Decimal | None = None
    q2: Decimal | None = None
    q3: Decimal | None = None
    q4: Decimal | None = None

    @classmethod
    def of(cls, **amounts: Any) -> QuarterAmounts:
        """Build from keyword slots, parsing each value (``q1=100``)."""
        return cls(**{slot: _optional_amount(val) for slot, val in amounts.items()})

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> QuarterAmounts:
        if not raw:
            return cls()
        return cls(
            **{q.slot: _optional_amount(raw.get(q.slot, raw.get(q.value))) for q in QUARTERS}
        )

    @classmethod
    def uniform(cls, raw: Any) -> QuarterAmounts:
        """Same value in every quarter (legacy scalar payloads)."""
        value = _optional_amount(raw)
        return cls(value, value, value, value)

    def raw(self, quarter: Quarter) -> Decimal | None:
        return getattr(self, quarter.slot)

    def get(self, quarter: Quarter) -> Decimal:
        value = getattr(self, quarter.slot)
        return ZERO if value is None else value

    def is_reported(self, quarter: Quarter) -> bool:
        return getattr(self, quarter.slot) is not None

    def with_amount(self, quarter: Quarter, amount: Decimal | None) -> QuarterAmounts:
        return replace(self, **{quarter.slot: amount})

    def add(self, quarter: Quarter, delta: Decimal) -> QuarterAmounts:
        return self.with_amount(quarter, self.get(quarter) + delta)

    def total(self) -> Decimal:
        return sum((self.get(q) for q in QUARTERS), ZERO)

    def reported_quarters(self) -> tuple[Quarter, ...]:
        return tuple(q for q in QUARTERS if self.is_reported(q))

    def latest_reported(self) -> Quarter | None:
        reported = self.reported_quarters()
        return reported[-1] if reported else None

    def as_dict(self) -> dict[str, str | None]:
        return {q.slot: None if self.raw(q) is None else str(self.raw(q)) for q in QUARTERS}


@dataclass(frozen=True)
class QuarterStatuses:
    q1: PaymentStatus | None = None
    q2: PaymentStatus | None = None
    q3: PaymentStatus | None = None
    q4: PaymentStatus | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> QuarterStatuses:
        """Accept either a scalar legacy status or a quarter-keyed mapping."""
        if isinstance(raw, Mapping):
            return cls(
                **{q.slot: PaymentStatus.parse(raw.get(q.slot, raw.get(q.value))) for q in QUARTERS}
            )
        status = PaymentStatus.parse(raw)
        return cls(status, status, status, status)

    def get(self, quarter: Quarter) -> PaymentStatus | None:
        return getattr(self, quarter.slot)

    def with_status(self, quarter: Quarter, status: PaymentStatus) -> QuarterStatuses:
        return replace(self, **{quarter.slot: status})


# ---------------------------------------------------------------------------
# Activity value
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActivityValue:
    """
    All reported and derived figures for one activity in one report.

    Only expense, payable and receivable lines use the ledger fields;
    for every other line they stay empty.
    """

    code: str
    amounts: QuarterAmounts = field(default_factory=QuarterAmounts)
    comment: str | None = None
    payment_status: QuarterStatuses = field(default_factory=QuarterStatuses)
    amount_paid: QuarterAmounts = field(default_factory=QuarterAmounts)
    net_amount: QuarterAmounts = field(default_factory=QuarterAmounts)
    vat_amount: QuarterAmounts = field(default_factory=QuarterAmounts)
    vat_cleared: QuarterAmounts = field(default_factory=QuarterAmounts)
    payable_cleared: QuarterAmounts = field(default_factory=QuarterAmounts)
    other_receivable_cleared: QuarterAmounts = field(default_factory=QuarterAmounts)
    prior_year_adjustment: QuarterAmounts = field(default_factory=QuarterAmounts)

    def with_amount(self, quarter: Quarter, amount: Decimal | None) -> ActivityValue:
        return replace(self, amounts=self.amounts.with_amount(quarter, amount))

    def accumulate(self, ledger: str, quarter: Quarter, delta: Decimal) -> ActivityValue:
        """Add ``delta`` to one quarter of a ledger field (e.g. ``vat_cleared``)."""
        current: QuarterAmounts = getattr(self, ledger)
        return replace(self, **{ledger: current.add(quarter, delta)})


# ---------------------------------------------------------------------------
# Previous-quarter snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClosingBalances:
    """Closing positions of the prior quarter, keyed by canonical code."""

    D: Mapping[str, Decimal] = field(default_factory=dict)
    E: Mapping[str, Decimal] = field(default_factory=dict)
    G: Mapping[str, Decimal] = field(default_factory=dict)
    VAT: Mapping[str, Decimal] | None = None
    closing_balance_total: Decimal | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> ClosingBalances:
        if not raw:
            return cls()

        def _section(key: str) -> dict[str, Decimal]:
            return {code: parse_amount(v) for code, v in (raw.get(key) or {}).items()}

        vat_raw = raw.get("VAT")
        total = raw.get("closingBalanceTotal", raw.get("closing_balance_total"))
        return cls(
            D=_section("D"),
            E=_section("E"),
            G=_section("G"),
            VAT=None if vat_raw is None else {k: parse_amount(v) for k, v in vat_raw.items()},
            closing_balance_total=_optional_amount(total),
        )

    def section(self, name: str) -> Mapping[str, Decimal] | None:
        if name in ("D", "E", "G", "VAT"):
            return getattr(self, name)
        return None


@dataclass(frozen=True)
class PreviousQuarterBalances:
    exists: bool
    quarter: Quarter | None = None
    execution_id: int | None = None
    closing_balances: ClosingBalances | None = None

    @classmethod
    def none(cls) -> PreviousQuarterBalances:
        """Snapshot for a facility's first reporting quarter."""
        return cls(exists=False)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> PreviousQuarterBalances:
        if not raw or not raw.get("exists"):
            return cls.none()
        quarter = raw.get("quarter")
        return cls(
            exists=True,
            quarter=Quarter.parse(quarter) if quarter else None,
            execution_id=raw.get("executionId", raw.get("execution_id")),
            closing_balances=ClosingBalances.from_dict(
                raw.get("closingBalances", raw.get("closing_balances"))
            ),
        )


# ---------------------------------------------------------------------------
# Draft state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExecutionState:
    """
    Immutable snapshot of a report draft.

    Contract:
        ``values`` is keyed by canonical activity code.  The mapping is
        never mutated; ``with_value`` returns a new state.
    """

    quarter: Quarter
    values: Mapping[str, ActivityValue] = field(default_factory=dict)
    previous: PreviousQuarterBalances = field(default_factory=PreviousQuarterBalances.none)
    planned_budget: Decimal | None = None

    def value_for(self, code: str) -> ActivityValue:
        value = self.values.get(code)
        return value if value is not None else ActivityValue(code=code)

    def with_value(self, value: ActivityValue) -> ExecutionState:
        values = dict(self.values)
        values[value.code] = value
        return replace(self, values=values)

    def with_values(self, updates: Mapping[str, ActivityValue]) -> ExecutionState:
        if not updates:
            return self
        values = dict(self.values)
        values.update(updates)
        return replace(self, values=values)
