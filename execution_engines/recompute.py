"""
execution_engines.recompute -- The full derivation pipeline for one draft.

Responsibility:
    Run every engine in order over a draft: openings and ledger (inside
    the balance calculator), balance write-back, aggregation, derived
    sections, validation.

Architecture position:
    Engines -- the single entry point services call after each edit.

Invariants enforced:
    - Pure: the input state is never mutated.
    - Idempotent: recomputing a recomputed state yields an equal state
      and equal computed values.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from execution_config.schema import EngineConfig
from execution_engines.aggregation import TableRow, aggregate
from execution_engines.balances import BalanceCalculator, BalanceSnapshot
from execution_engines.code_mapping import CodeMapper
from execution_engines.derived import ComputedValues, build_table, compute_derived
from execution_engines.validation import ValidationResult, validate
from execution_kernel.domain.activities import ActivityTree
from execution_kernel.domain.values import ExecutionState
from execution_kernel.logging_config import get_logger

logger = get_logger("engines.recompute")


@dataclass(frozen=True)
class RecomputeResult:
    state: ExecutionState
    balances: BalanceSnapshot
    computed: ComputedValues
    table: tuple[TableRow, ...]
    validation: ValidationResult


def recompute(
    state: ExecutionState,
    tree: ActivityTree,
    *,
    mapper: CodeMapper | None = None,
    config: EngineConfig | None = None,
) -> RecomputeResult:
    """Derive balances, totals and findings for ``state``."""
    config = config or EngineConfig()
    mapper = mapper or CodeMapper(config.code_aliases)
    t0 = time.monotonic()

    rebalanced, snapshot = BalanceCalculator(tree, mapper).rebalance(state)
    sections = aggregate(tree, rebalanced)
    computed = compute_derived(tree, rebalanced, sections)
    table = build_table(tree, sections, computed)
    validation = validate(tree, rebalanced, snapshot, computed, config=config)

    logger.info(
        "execution_recomputed",
        extra={
            "quarter": state.quarter.value,
            "cash_at_bank": snapshot.cash_at_bank,
            "error_count": len(validation.errors),
            "warning_count": len(validation.warnings),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        },
    )
    return RecomputeResult(
        state=rebalanced,
        balances=snapshot,
        computed=computed,
        table=table,
        validation=validation,
    )
