"""
execution_engines.code_mapping -- Schema/legacy code to storage code resolution.

Responsibility:
    Resolve activity codes that use a simplified schema suffix or a legacy
    (renamed) suffix onto the canonical code under which values are
    stored.  VAT receivables were renamed from per-utility codes onto four
    categories, and subcategory-qualified codes collapse onto flat codes.

Architecture position:
    Engines -- pure lookup, zero I/O.  The alias table is configuration
    (``EngineConfig.code_aliases``).

Invariants enforced:
    - Longest matching suffix wins, so ``_D_D-01_1`` is never shadowed by a
      shorter alias.
    - Unknown codes resolve to themselves; resolution never raises.
    - ``canonicalize_tree`` refuses trees in which two activities collapse
      onto the same storage code (ActivityTreeError via ActivityTree).
"""

from __future__ import annotations

from dataclasses import replace

from execution_kernel.domain.activities import Activity, ActivityTree
from execution_kernel.logging_config import get_logger

logger = get_logger("engines.code_mapping")


class CodeMapper:
    """
    Suffix alias table.

    Contract:
        ``resolve(code)`` returns the canonical storage code.
        ``to_schema_code(code)`` returns the first declared alias that
        resolves to ``code`` (the display/schema spelling).
    """

    def __init__(self, aliases: tuple[tuple[str, str], ...] = ()):
        self._aliases = tuple(aliases)
        # Longest first so more specific suffixes win.
        self._by_length = tuple(sorted(self._aliases, key=lambda pair: len(pair[0]), reverse=True))

    @property
    def aliases(self) -> tuple[tuple[str, str], ...]:
        return self._aliases

    def resolve(self, code: str) -> str:
        for alias, canonical in self._by_length:
            if code.endswith(alias):
                return code[: len(code) - len(alias)] + canonical
        return code

    def to_schema_code(self, code: str) -> str:
        for alias, canonical in self._aliases:
            if alias != canonical and code.endswith(canonical):
                return code[: len(code) - len(canonical)] + alias
        return code

    def canonicalize_tree(self, tree: ActivityTree) -> ActivityTree:
        """Rewrite every activity and payable reference onto storage codes."""
        renamed = 0

        def _activity(activity: Activity) -> Activity:
            nonlocal renamed
            code = self.resolve(activity.code)
            payable = self.resolve(activity.payable_code) if activity.payable_code else None
            if code == activity.code and payable == activity.payable_code:
                return activity
            renamed += 1
            return replace(activity, code=code, payable_code=payable)

        categories = tuple(
            replace(
                category,
                items=tuple(_activity(a) for a in category.items),
                subcategories=tuple(
                    replace(sub, items=tuple(_activity(a) for a in sub.items))
                    for sub in category.subcategories
                ),
            )
            for category in tree.categories
        )
        logger.info("activity_tree_canonicalized", extra={"renamed": renamed})
        return ActivityTree(categories=categories)
