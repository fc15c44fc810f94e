"""
Typed Exception Hierarchy for the Execution Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the execution engine (the report session host, import jobs,
verification adapters) must react to failures by TYPE, never by message.
Every exception therefore:

  1. Has its own class (catch by type, not by string matching)
  2. Carries a class-level CODE attribute (machine-readable, API-safe)
  3. Exposes structured DATA as attributes (code, quarter, amounts)

Example:
    try:
        session.clear_vat(expense_code, Decimal("500"))
    except VatOverClearanceError as e:
        api_response(code=e.code, available=e.available, requested=e.requested)

Missing data is NOT an error in this engine: absent prior-quarter snapshots,
absent quarter-keyed sub-maps and unparsable numbers all resolve to zero.
Blocking and informational findings are reported through ValidationResult,
not raised.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ExecutionKernelError (base)
    |
    +-- ActivityError
    |   +-- ActivityNotFoundError
    |   +-- ActivityNotEditableError
    |   +-- ActivityTreeError
    |
    +-- QuarterError
    |   +-- InvalidQuarterError
    |   +-- QuarterLockedError
    |
    +-- ClearanceError
    |   +-- InvalidAmountError
    |   +-- InvalidClearanceTargetError
    |   +-- VatOverClearanceError
    |
    +-- MappingError
    |   +-- AmbiguousVatCategoryError
    |
    +-- VerificationError
        +-- VerificationUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Activity        | ACTIVITY_NOT_FOUND          | Code not present in the activity tree
                | ACTIVITY_NOT_EDITABLE       | Direct edit of a computed/locked row
                | ACTIVITY_TREE_INVALID       | Malformed activity tree definition
----------------|-----------------------------|-----------------------------------------
Quarter         | INVALID_QUARTER             | Unrecognised quarter identifier
                | QUARTER_LOCKED              | Edit outside the current quarter
----------------|-----------------------------|-----------------------------------------
Clearance       | INVALID_AMOUNT              | Clearance/adjustment amount <= 0
                | INVALID_CLEARANCE_TARGET    | Clearance aimed at the wrong line kind
                | VAT_OVER_CLEARANCE          | VAT refund exceeds receivable balance
----------------|-----------------------------|-----------------------------------------
Mapping         | AMBIGUOUS_VAT_CATEGORY      | Name matches more than one VAT category
----------------|-----------------------------|-----------------------------------------
Verification    | VERIFICATION_UNAVAILABLE    | External balance check unreachable
"""

from __future__ import annotations

from decimal import Decimal


class ExecutionKernelError(Exception):
    """
    Base exception for all execution kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "EXECUTION_KERNEL_ERROR"


# Activity-related exceptions


class ActivityError(ExecutionKernelError):
    """Base exception for activity tree errors."""

    code: str = "ACTIVITY_ERROR"


class ActivityNotFoundError(ActivityError):
    """Activity code is not part of the activity tree."""

    code: str = "ACTIVITY_NOT_FOUND"

    def __init__(self, activity_code: str):
        self.activity_code = activity_code
        super().__init__(f"Activity not found: {activity_code}")


class ActivityNotEditableError(ActivityError):
    """Attempted to write a value directly into a non-editable row."""

    code: str = "ACTIVITY_NOT_EDITABLE"

    def __init__(self, activity_code: str, reason: str):
        self.activity_code = activity_code
        self.reason = reason
        super().__init__(f"Activity {activity_code} is not editable: {reason}")


class ActivityTreeError(ActivityError):
    """Activity tree definition is structurally invalid."""

    code: str = "ACTIVITY_TREE_INVALID"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid activity tree at {path}: {reason}")


# Quarter-related exceptions


class QuarterError(ExecutionKernelError):
    """Base exception for quarter errors."""

    code: str = "QUARTER_ERROR"


class InvalidQuarterError(QuarterError):
    """Quarter identifier cannot be parsed."""

    code: str = "INVALID_QUARTER"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid quarter: {value!r}")


class QuarterLockedError(QuarterError):
    """Attempted to edit a quarter other than the current one."""

    code: str = "QUARTER_LOCKED"

    def __init__(self, quarter: str, current_quarter: str, activity_code: str | None = None):
        self.quarter = quarter
        self.current_quarter = current_quarter
        self.activity_code = activity_code
        target = f" for {activity_code}" if activity_code else ""
        super().__init__(
            f"Quarter {quarter} is locked{target} "
            f"(current quarter: {current_quarter})"
        )


# Clearance-related exceptions


class ClearanceError(ExecutionKernelError):
    """Base exception for clearance and adjustment errors."""

    code: str = "CLEARANCE_ERROR"


class InvalidAmountError(ClearanceError):
    """Clearance or adjustment amount must be strictly positive."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, activity_code: str, amount: Decimal):
        self.activity_code = activity_code
        self.amount = str(amount)
        super().__init__(
            f"Amount for {activity_code} must be greater than zero, got {amount}"
        )


class InvalidClearanceTargetError(ClearanceError):
    """Clearance targets a line of the wrong kind."""

    code: str = "INVALID_CLEARANCE_TARGET"

    def __init__(self, activity_code: str, expected: str):
        self.activity_code = activity_code
        self.expected = expected
        super().__init__(f"{activity_code} is not a valid target, expected {expected}")


class VatOverClearanceError(ClearanceError):
    """VAT refund would drive the category receivable negative."""

    code: str = "VAT_OVER_CLEARANCE"

    def __init__(
        self,
        vat_category: str,
        requested: Decimal,
        available: Decimal,
    ):
        self.vat_category = vat_category
        self.requested = str(requested)
        self.available = str(available)
        super().__init__(
            f"Cannot clear {requested} of VAT for {vat_category}: "
            f"only {available} receivable"
        )


# Mapping-related exceptions


class MappingError(ExecutionKernelError):
    """Base exception for code and category mapping errors."""

    code: str = "MAPPING_ERROR"


class AmbiguousVatCategoryError(MappingError):
    """Activity name matches more than one VAT category pattern."""

    code: str = "AMBIGUOUS_VAT_CATEGORY"

    def __init__(self, activity_name: str, categories: list[str]):
        self.activity_name = activity_name
        self.categories = categories
        super().__init__(
            f"Activity name {activity_name!r} matches multiple VAT "
            f"categories: {', '.join(categories)}"
        )


# Verification-related exceptions


class VerificationError(ExecutionKernelError):
    """Base exception for balance verification errors."""

    code: str = "VERIFICATION_ERROR"


class VerificationUnavailableError(VerificationError):
    """External balance verification could not be reached."""

    code: str = "VERIFICATION_UNAVAILABLE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Balance verification unavailable: {reason}")
