"""
execution_engines.rollover -- Opening balances from the prior quarter's close.

Responsibility:
    Extract opening values for cash, each payable, each VAT-receivable
    category, other receivables, and the accumulated-surplus seed from a
    ``PreviousQuarterBalances`` snapshot.

Architecture position:
    Engines -- pure calculation, zero I/O.

Invariants enforced:
    - ``exists=False`` yields zero for every opening balance.
    - Snapshot keys are resolved through the CodeMapper before matching,
      so legacy codes (e.g. per-utility VAT receivables) roll forward onto
      their current storage code.  Several legacy keys resolving to the
      same code are summed.
    - Payable openings only carry positive closing amounts.

Failure modes:
    - None.  Missing sections, codes or maps resolve to zero because a
      facility's first quarter legitimately has no prior data.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from execution_engines.backfill import vat_category_from_code, vat_category_from_key
from execution_engines.code_mapping import CodeMapper
from execution_engines.tracer import traced_engine
from execution_kernel.domain.activities import ActivityTree, LineRole, VatCategory
from execution_kernel.domain.values import ZERO, PreviousQuarterBalances
from execution_kernel.logging_config import get_logger

logger = get_logger("engines.rollover")


@dataclass(frozen=True)
class RolloverOpenings:
    """Opening positions for the first quarter computed from a snapshot."""

    exists: bool = False
    cash: Decimal = ZERO
    payables: Mapping[str, Decimal] = field(default_factory=dict)
    vat: Mapping[VatCategory, Decimal] = field(default_factory=dict)
    other_receivables: Decimal = ZERO
    accumulated_surplus: Decimal | None = None

    def payable(self, code: str) -> Decimal:
        return self.payables.get(code, ZERO)

    def vat_for(self, category: VatCategory) -> Decimal:
        return self.vat.get(category, ZERO)


def _resolved_section(
    previous: PreviousQuarterBalances,
    section: str,
    mapper: CodeMapper,
) -> dict[str, Decimal]:
    if not previous.exists or previous.closing_balances is None:
        return {}
    raw = previous.closing_balances.section(section)
    if not raw:
        return {}
    resolved: dict[str, Decimal] = {}
    for code, amount in raw.items():
        key = mapper.resolve(code)
        resolved[key] = resolved.get(key, ZERO) + amount
    return resolved


def opening_balance(
    section: str,
    code: str,
    previous: PreviousQuarterBalances,
    mapper: CodeMapper,
) -> Decimal:
    """Closing amount of ``code`` in ``section`` of the snapshot, else 0."""
    return _resolved_section(previous, section, mapper).get(mapper.resolve(code), ZERO)


def _vat_openings(
    previous: PreviousQuarterBalances,
    mapper: CodeMapper,
) -> dict[VatCategory, Decimal]:
    if not previous.exists or previous.closing_balances is None:
        return {}
    vat_map = previous.closing_balances.VAT
    openings: dict[VatCategory, Decimal] = {}
    if vat_map is not None:
        for key, amount in vat_map.items():
            category = vat_category_from_key(key)
            if category is None:
                logger.warning("rollover_unknown_vat_key", extra={"key": key})
                continue
            openings[category] = openings.get(category, ZERO) + amount
        return openings

    # Older snapshots kept VAT receivables inside section D.
    for code, amount in _resolved_section(previous, "D", mapper).items():
        category = vat_category_from_code(code)
        if category is not None:
            openings[category] = openings.get(category, ZERO) + amount
    if openings:
        logger.info(
            "rollover_vat_reconstructed_from_section_d",
            extra={"categories": sorted(c.value for c in openings)},
        )
    return openings


@traced_engine("rollover", "1.0")
def resolve_openings(
    tree: ActivityTree,
    previous: PreviousQuarterBalances,
    mapper: CodeMapper,
) -> RolloverOpenings:
    """Gather every opening balance the balance calculator needs."""
    if not previous.exists:
        return RolloverOpenings()

    cash_line = tree.by_role(LineRole.CASH_AT_BANK)
    other_line = tree.by_role(LineRole.OTHER_RECEIVABLES)
    payables = {
        code: amount
        for code, amount in _resolved_section(previous, "E", mapper).items()
        if amount > 0
    }
    closing = previous.closing_balances

    openings = RolloverOpenings(
        exists=True,
        cash=opening_balance("D", cash_line.code, previous, mapper) if cash_line else ZERO,
        payables=payables,
        vat=_vat_openings(previous, mapper),
        other_receivables=(
            opening_balance("D", other_line.code, previous, mapper) if other_line else ZERO
        ),
        accumulated_surplus=closing.closing_balance_total if closing else None,
    )
    logger.info(
        "rollover_openings_resolved",
        extra={
            "previous_quarter": previous.quarter.value if previous.quarter else None,
            "cash": openings.cash,
            "payable_count": len(payables),
            "vat_total": sum(openings.vat.values(), ZERO),
        },
    )
    return openings
