"""
execution_engines.backfill -- Name/code pattern matching for catalog migration.

Responsibility:
    Infer VAT categories and payable links for activity catalogs and
    closing snapshots that predate the explicit ``vat_category`` and
    ``payable_code`` attributes.  Runtime engines key on the explicit
    attributes; this module is used only when migrating old data (and by
    the rollover fallback for snapshots without a dedicated VAT map).

Architecture position:
    Engines -- pure, zero I/O.

Invariants enforced:
    - Name patterns are checked in a fixed order, most specific first:
      communication-all, maintenance, fuel (excluding refunds), supplies.
    - A name matching more than one category is rejected with
      AmbiguousVatCategoryError instead of silently taking the first hit.
    - Explicit attributes already on an activity are never overwritten.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace

from execution_config.schema import PayableRuleDef
from execution_kernel.domain.activities import Activity, ActivityTree, Section, VatCategory
from execution_kernel.exceptions import AmbiguousVatCategoryError
from execution_kernel.logging_config import get_logger

logger = get_logger("engines.backfill")


def _is_communication(name: str) -> bool:
    return "communication" in name and "all" in name


def _is_maintenance(name: str) -> bool:
    return "maintenance" in name


def _is_fuel(name: str) -> bool:
    return name == "fuel" or ("fuel" in name and "refund" not in name)


def _is_supplies(name: str) -> bool:
    return "office supplies" in name or "supplies" in name


_NAME_PATTERNS: tuple[tuple[VatCategory, Callable[[str], bool]], ...] = (
    (VatCategory.COMMUNICATION_ALL, _is_communication),
    (VatCategory.MAINTENANCE, _is_maintenance),
    (VatCategory.FUEL, _is_fuel),
    (VatCategory.SUPPLIES, _is_supplies),
)

# Substrings of storage codes, including renamed per-utility categories.
_CODE_PATTERNS: tuple[tuple[str, VatCategory], ...] = (
    ("_vat_communication_all", VatCategory.COMMUNICATION_ALL),
    ("_vat_airtime", VatCategory.COMMUNICATION_ALL),
    ("_vat_internet", VatCategory.COMMUNICATION_ALL),
    ("_vat_maintenance", VatCategory.MAINTENANCE),
    ("_vat_infrastructure", VatCategory.MAINTENANCE),
    ("_vat_fuel", VatCategory.FUEL),
    ("_vat_supplies", VatCategory.SUPPLIES),
    ("_vat_office_supplies", VatCategory.SUPPLIES),
)

_KEY_ALIASES: dict[str, VatCategory] = {
    "communication_all": VatCategory.COMMUNICATION_ALL,
    "communication": VatCategory.COMMUNICATION_ALL,
    "airtime": VatCategory.COMMUNICATION_ALL,
    "internet": VatCategory.COMMUNICATION_ALL,
    "maintenance": VatCategory.MAINTENANCE,
    "infrastructure": VatCategory.MAINTENANCE,
    "fuel": VatCategory.FUEL,
    "supplies": VatCategory.SUPPLIES,
    "office_supplies": VatCategory.SUPPLIES,
}


def vat_categories_for_name(name: str) -> list[VatCategory]:
    """Every category whose pattern matches ``name`` (case-insensitive)."""
    lowered = name.strip().lower()
    return [category for category, matches in _NAME_PATTERNS if matches(lowered)]


def detect_vat_category(name: str) -> VatCategory | None:
    """Single VAT category for an expense name, or None.

    Raises:
        AmbiguousVatCategoryError: if the name matches two categories.
    """
    matches = vat_categories_for_name(name)
    if len(matches) > 1:
        raise AmbiguousVatCategoryError(name, [c.value for c in matches])
    return matches[0] if matches else None


def find_ambiguous_vat_names(names: Iterable[str]) -> dict[str, list[VatCategory]]:
    """Names that would match more than one category."""
    ambiguous: dict[str, list[VatCategory]] = {}
    for name in names:
        matches = vat_categories_for_name(name)
        if len(matches) > 1:
            ambiguous[name] = matches
    return ambiguous


def vat_category_from_code(code: str) -> VatCategory | None:
    lowered = code.lower()
    for fragment, category in _CODE_PATTERNS:
        if fragment in lowered:
            return category
    return None


def vat_category_from_key(key: str) -> VatCategory | None:
    """Interpret a key of a snapshot's VAT map ("fuel", "FUEL", "office_supplies")."""
    normalized = key.strip().lower()
    if normalized in _KEY_ALIASES:
        return _KEY_ALIASES[normalized]
    return vat_category_from_code(f"_vat_{normalized}")


# ---------------------------------------------------------------------------
# Payables
# ---------------------------------------------------------------------------


def find_payable_by_pattern(
    payables_by_name: dict[str, str],
    patterns: tuple[str, ...],
) -> str | None:
    """First payable whose lower-cased name equals, then contains, a pattern."""
    for pattern in patterns:
        if pattern in payables_by_name:
            return payables_by_name[pattern]
        for payable_name, code in payables_by_name.items():
            if pattern in payable_name:
                return code
    return None


def infer_payable_code(
    activity: Activity,
    rules: tuple[PayableRuleDef, ...],
    payables_by_name: dict[str, str],
) -> str | None:
    for rule in rules:
        if rule.matches(activity.subcategory, activity.name):
            if not rule.payable_patterns:
                return None
            return find_payable_by_pattern(payables_by_name, rule.payable_patterns)
    return None


def backfill_activity(
    activity: Activity,
    rules: tuple[PayableRuleDef, ...],
    payables_by_name: dict[str, str],
) -> Activity:
    """Fill missing ``vat_category``/``payable_code`` on an expense line."""
    if activity.section != Section.B or activity.is_total:
        return activity
    vat_category = activity.vat_category or detect_vat_category(activity.name)
    payable_code = activity.payable_code or infer_payable_code(activity, rules, payables_by_name)
    if vat_category == activity.vat_category and payable_code == activity.payable_code:
        return activity
    return replace(activity, vat_category=vat_category, payable_code=payable_code)


def backfill_tree(tree: ActivityTree, rules: tuple[PayableRuleDef, ...]) -> ActivityTree:
    """Backfill every expense line of a legacy catalog."""
    payables_by_name = {a.name.strip().lower(): a.code for a in tree.leaves_in(Section.E)}
    changed = 0

    def _fill(activity: Activity) -> Activity:
        nonlocal changed
        filled = backfill_activity(activity, rules, payables_by_name)
        if filled is not activity:
            changed += 1
        return filled

    categories = tuple(
        replace(
            category,
            items=tuple(_fill(a) for a in category.items),
            subcategories=tuple(
                replace(sub, items=tuple(_fill(a) for a in sub.items))
                for sub in category.subcategories
            ),
        )
        for category in tree.categories
    )
    result = ActivityTree(categories=categories)
    report = result.validate_payable_mapping()
    logger.info(
        "activity_tree_backfilled",
        extra={
            "changed": changed,
            "unmapped_expenses": list(report.unmapped_expenses),
            "mapping_warnings": list(report.warnings),
        },
    )
    return result
