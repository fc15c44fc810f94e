"""
Activities -- The static catalog of execution line items.

Responsibility:
    Immutable model of the activity tree: sections (A..G, X), optional
    subcategories, and leaf activities with the explicit attributes the
    engines key on (VAT category, mapped payable, line role).

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.  Trees are built by
    ``execution_config.activity_tree`` from collaborator-supplied data and
    consumed read-only by every engine.

Invariants enforced:
    - An activity is never both editable and computed.
    - TOTAL_ROW, VAT_RECEIVABLE and COMPUTED_ASSET activities are never
      editable.
    - Every VAT_RECEIVABLE activity names its VAT category.
    - Activity codes are unique within a tree.

Failure modes:
    - ValueError from ``Activity.__post_init__`` on an invalid combination.
    - ActivityTreeError on duplicate codes.
    - ActivityNotFoundError from ``ActivityTree.get``.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from execution_kernel.exceptions import ActivityNotFoundError, ActivityTreeError


class AggregationRule(str, Enum):
    """How a section's quarterly values roll up to a cumulative value."""

    FLOW = "flow"  # sum of quarters
    STOCK = "stock"  # latest reported quarter


class Section(str, Enum):
    """Top-level statement section."""

    A = "A"  # Receipts
    B = "B"  # Expenditures
    C = "C"  # Surplus/Deficit
    D = "D"  # Financial Assets
    E = "E"  # Financial Liabilities
    F = "F"  # Net Financial Assets
    G = "G"  # Closing Balance
    X = "X"  # Miscellaneous Adjustments

    @property
    def aggregation(self) -> AggregationRule:
        if self in (Section.D, Section.E, Section.F):
            return AggregationRule.STOCK
        return AggregationRule.FLOW

    @property
    def is_derived(self) -> bool:
        return self in (Section.C, Section.F)


class ActivityType(str, Enum):
    REGULAR = "REGULAR"
    VAT_RECEIVABLE = "VAT_RECEIVABLE"
    COMPUTED_ASSET = "COMPUTED_ASSET"
    MISCELLANEOUS_ADJUSTMENT = "MISCELLANEOUS_ADJUSTMENT"
    TOTAL_ROW = "TOTAL_ROW"


class VatCategory(str, Enum):
    """The four fixed VAT-recoverable expense categories."""

    COMMUNICATION_ALL = "COMMUNICATION_ALL"
    MAINTENANCE = "MAINTENANCE"
    FUEL = "FUEL"
    SUPPLIES = "SUPPLIES"


class LineRole(str, Enum):
    """Single lines the balance calculator must locate in any tree."""

    CASH_AT_BANK = "CASH_AT_BANK"
    OTHER_RECEIVABLES = "OTHER_RECEIVABLES"
    ACCUMULATED_SURPLUS = "ACCUMULATED_SURPLUS"
    SURPLUS_OF_PERIOD = "SURPLUS_OF_PERIOD"
    PRIOR_YEAR_CASH = "PRIOR_YEAR_CASH"
    PRIOR_YEAR_PAYABLE = "PRIOR_YEAR_PAYABLE"
    PRIOR_YEAR_RECEIVABLE = "PRIOR_YEAR_RECEIVABLE"


PRIOR_YEAR_ROLES = frozenset(
    {
        LineRole.PRIOR_YEAR_CASH,
        LineRole.PRIOR_YEAR_PAYABLE,
        LineRole.PRIOR_YEAR_RECEIVABLE,
    }
)

TRANSFER_SUBCATEGORY = "B-05"

_NEVER_EDITABLE = frozenset(
    {
        ActivityType.TOTAL_ROW,
        ActivityType.VAT_RECEIVABLE,
        ActivityType.COMPUTED_ASSET,
    }
)


@dataclass(frozen=True)
class Activity:
    """A leaf line item of the execution form."""

    code: str
    name: str
    section: Section
    display_order: int
    activity_type: ActivityType = ActivityType.REGULAR
    subcategory: str | None = None
    is_editable: bool = True
    is_computed: bool = False
    vat_category: VatCategory | None = None
    payable_code: str | None = None
    role: LineRole | None = None

    def __post_init__(self) -> None:
        if not self.code:
            raise ValueError("Activity code is required")
        if self.is_editable and self.is_computed:
            raise ValueError(f"Activity {self.code} cannot be both editable and computed")
        if self.is_editable and self.activity_type in _NEVER_EDITABLE:
            raise ValueError(
                f"Activity {self.code} of type {self.activity_type.value} cannot be editable"
            )
        if self.activity_type == ActivityType.VAT_RECEIVABLE and self.vat_category is None:
            raise ValueError(f"VAT receivable {self.code} must declare a vat_category")

    @property
    def is_total(self) -> bool:
        return self.activity_type == ActivityType.TOTAL_ROW

    @property
    def is_vat_expense(self) -> bool:
        return self.section == Section.B and self.vat_category is not None

    @property
    def is_transfer(self) -> bool:
        return self.section == Section.B and self.subcategory == TRANSFER_SUBCATEGORY


@dataclass(frozen=True)
class SubCategory:
    code: str
    label: str
    display_order: int
    items: tuple[Activity, ...] = ()


@dataclass(frozen=True)
class Category:
    section: Section
    label: str
    display_order: int
    is_computed: bool = False
    items: tuple[Activity, ...] = ()
    subcategories: tuple[SubCategory, ...] = ()

    def all_items(self) -> Iterator[Activity]:
        yield from self.items
        for sub in self.subcategories:
            yield from sub.items


@dataclass(frozen=True)
class PayableMappingReport:
    """Outcome of checking expense-to-payable links across a tree."""

    unmapped_expenses: tuple[str, ...]
    warnings: tuple[str, ...]

    @property
    def is_valid(self) -> bool:
        return not self.unmapped_expenses and not self.warnings


@dataclass(frozen=True)
class ActivityTree:
    """
    Immutable activity catalog for one (program, facility type) pair.

    Contract:
        Built once per session and never mutated.  Lookups by code, section
        and role are served from indexes computed at construction.

    Guarantees:
        - ``leaves()`` never yields TOTAL_ROW entries.
        - Leaves are ordered by section, then subcategory, then display order.
    """

    categories: tuple[Category, ...]
    _index: dict[str, Activity] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: dict[str, Activity] = {}
        for category in self.categories:
            for activity in category.all_items():
                if activity.code in index:
                    raise ActivityTreeError(activity.code, "duplicate activity code")
                index[activity.code] = activity
        object.__setattr__(self, "_index", index)

    def category(self, section: Section) -> Category | None:
        for category in self.categories:
            if category.section == section:
                return category
        return None

    def leaves(self) -> tuple[Activity, ...]:
        ordered: list[Activity] = []
        for category in sorted(self.categories, key=lambda c: c.display_order):
            ordered.extend(self._ordered_items(category))
        return tuple(a for a in ordered if not a.is_total)

    def leaves_in(self, section: Section) -> tuple[Activity, ...]:
        category = self.category(section)
        if category is None:
            return ()
        return tuple(a for a in self._ordered_items(category) if not a.is_total)

    def find(self, code: str) -> Activity | None:
        return self._index.get(code)

    def get(self, code: str) -> Activity:
        activity = self._index.get(code)
        if activity is None:
            raise ActivityNotFoundError(code)
        return activity

    def by_role(self, role: LineRole) -> Activity | None:
        for activity in self._index.values():
            if activity.role == role:
                return activity
        return None

    def vat_receivable_for(self, category: VatCategory) -> Activity | None:
        for activity in self.leaves_in(Section.D):
            if activity.activity_type == ActivityType.VAT_RECEIVABLE and activity.vat_category == category:
                return activity
        return None

    def payable_codes(self) -> tuple[str, ...]:
        return tuple(a.code for a in self.leaves_in(Section.E))

    def expense_payable_map(self) -> dict[str, str | None]:
        return {a.code: a.payable_code for a in self.leaves_in(Section.B)}

    def validate_payable_mapping(self) -> PayableMappingReport:
        """Report expenses without a payable and payables that do not exist.

        Transfers (B-05) are expected to settle immediately and must not
        carry a payable.
        """
        payables = set(self.payable_codes())
        unmapped: list[str] = []
        warnings: list[str] = []
        for expense in self.leaves_in(Section.B):
            if expense.is_transfer:
                if expense.payable_code is not None:
                    warnings.append(f"{expense.code} (Transfer) should not have a payable mapping")
                continue
            if expense.payable_code is None:
                unmapped.append(expense.code)
            elif expense.payable_code not in payables:
                warnings.append(
                    f"{expense.code} maps to unknown payable {expense.payable_code}"
                )
        return PayableMappingReport(tuple(unmapped), tuple(warnings))

    @staticmethod
    def _ordered_items(category: Category) -> list[Activity]:
        items = sorted(category.items, key=lambda a: a.display_order)
        for sub in sorted(category.subcategories, key=lambda s: s.display_order):
            items.extend(sorted(sub.items, key=lambda a: a.display_order))
        return items
