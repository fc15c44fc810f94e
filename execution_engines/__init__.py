"""
Module: execution_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for
    execution_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import execution_kernel and execution_config.schema.
    MUST NOT import execution_services.

Invariants enforced:
    - Purity: engines never read the clock; the active quarter arrives on
      the ExecutionState.
    - Decimal-only arithmetic for every monetary amount.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine invocations are traced via ``@traced_engine`` (see
    ``execution_engines.tracer``), emitting EXECUTION_ENGINE_TRACE log
    records with engine name, version, input fingerprint and duration.

Usage:
    from execution_engines import recompute, clear_payable
    from execution_engines.code_mapping import CodeMapper
"""

from execution_kernel.logging_config import get_logger

logger = get_logger("engines")

from execution_engines.aggregation import (
    QuarterTotals,
    RowKind,
    TableRow,
    aggregate,
    latest_stock_quarter,
)
from execution_engines.backfill import (
    backfill_tree,
    detect_vat_category,
    find_ambiguous_vat_names,
)
from execution_engines.balances import (
    BALANCE_POLICIES,
    BalanceCalculator,
    BalanceKind,
    BalanceSnapshot,
    CashMovement,
    ClampPolicy,
    apply_balances,
    calculate_balances,
)
from execution_engines.clearance import (
    AdjustmentDirection,
    apply_prior_year_adjustment,
    apply_prior_year_cash_adjustment,
    clear_other_receivable,
    clear_payable,
    clear_vat,
)
from execution_engines.code_mapping import CodeMapper
from execution_engines.derived import ComputedValues, build_table, compute_derived
from execution_engines.expense_ledger import (
    ExpenseLine,
    build_ledger,
    normalize_activity_value,
    state_from_form_data,
)
from execution_engines.recompute import RecomputeResult, recompute
from execution_engines.rollover import RolloverOpenings, opening_balance, resolve_openings
from execution_engines.tracer import traced_engine
from execution_engines.validation import (
    IdentityCheck,
    Severity,
    ValidationFinding,
    ValidationResult,
    validate,
    validate_misc_adjustment,
)

__all__ = [
    "BALANCE_POLICIES",
    "AdjustmentDirection",
    "BalanceCalculator",
    "BalanceKind",
    "BalanceSnapshot",
    "CashMovement",
    "ClampPolicy",
    "CodeMapper",
    "ComputedValues",
    "ExpenseLine",
    "IdentityCheck",
    "QuarterTotals",
    "RecomputeResult",
    "RolloverOpenings",
    "RowKind",
    "Severity",
    "TableRow",
    "ValidationFinding",
    "ValidationResult",
    "aggregate",
    "apply_balances",
    "apply_prior_year_adjustment",
    "apply_prior_year_cash_adjustment",
    "backfill_tree",
    "build_ledger",
    "build_table",
    "calculate_balances",
    "clear_other_receivable",
    "clear_payable",
    "clear_vat",
    "compute_derived",
    "detect_vat_category",
    "find_ambiguous_vat_names",
    "normalize_activity_value",
    "opening_balance",
    "recompute",
    "latest_stock_quarter",
    "resolve_openings",
    "state_from_form_data",
    "traced_engine",
    "validate",
    "validate_misc_adjustment",
]
