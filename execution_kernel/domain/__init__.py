"""
Pure domain layer.

Immutable value objects with NO dependencies on I/O, time, or the engine
and service layers above.
"""

from execution_kernel.domain.activities import (
    Activity,
    ActivityTree,
    ActivityType,
    AggregationRule,
    Category,
    LineRole,
    PayableMappingReport,
    Section,
    SubCategory,
    VatCategory,
)
from execution_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from execution_kernel.domain.quarters import (
    QUARTERS,
    Quarter,
    QuarterContext,
    fiscal_quarter_for,
    quarter_date_range,
)
from execution_kernel.domain.values import (
    ZERO,
    ActivityValue,
    ClosingBalances,
    ExecutionState,
    PaymentStatus,
    PreviousQuarterBalances,
    QuarterAmounts,
    QuarterStatuses,
    parse_amount,
)

__all__ = [
    "Activity",
    "ActivityTree",
    "ActivityType",
    "ActivityValue",
    "AggregationRule",
    "Category",
    "Clock",
    "ClosingBalances",
    "DeterministicClock",
    "ExecutionState",
    "LineRole",
    "PayableMappingReport",
    "PaymentStatus",
    "PreviousQuarterBalances",
    "QUARTERS",
    "Quarter",
    "QuarterAmounts",
    "QuarterContext",
    "QuarterStatuses",
    "Section",
    "SubCategory",
    "SystemClock",
    "VatCategory",
    "ZERO",
    "fiscal_quarter_for",
    "parse_amount",
    "quarter_date_range",
]
