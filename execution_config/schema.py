"""
Execution engine configuration schema.

Frozen dataclasses that YAML fragments are parsed into by
``execution_config.loader``.  Engines receive an ``EngineConfig`` and never
read files or environment variables themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Self

from execution_kernel.logging_config import get_logger

logger = get_logger("config.schema")

DEFAULT_IDENTITY_TOLERANCE = Decimal("0.01")
DEFAULT_DEBOUNCE_MS = 300


@dataclass(frozen=True)
class PayableRuleDef:
    """
    One ordered rule linking expense names to a payable line.

    An expense matches when it sits in ``subcategory``, its lower-cased
    name contains every ``name_contains`` term and none of the
    ``name_excludes`` terms.  The first payable whose name equals or
    contains one of ``payable_patterns`` (tried in order) is chosen.  A
    rule with no patterns maps the expense to no payable at all.
    """

    subcategory: str
    payable_patterns: tuple[str, ...] = ()
    name_contains: tuple[str, ...] = ()
    name_excludes: tuple[str, ...] = ()

    def matches(self, subcategory: str | None, name: str) -> bool:
        if subcategory != self.subcategory:
            return False
        lowered = name.lower()
        if any(term not in lowered for term in self.name_contains):
            return False
        return not any(term in lowered for term in self.name_excludes)


@dataclass(frozen=True)
class EngineConfig:
    """
    Configuration for the execution engines and session host.

    identity_tolerance is the absolute allowance for the informational
    Net Financial Assets == Closing Balance check.  relative_tolerance,
    when set, widens the allowance to a fraction of the larger side.
    """

    identity_tolerance: Decimal = DEFAULT_IDENTITY_TOLERANCE
    relative_tolerance: Decimal | None = None
    verification_debounce_ms: int = DEFAULT_DEBOUNCE_MS
    code_aliases: tuple[tuple[str, str], ...] = ()
    payable_rules: tuple[PayableRuleDef, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.identity_tolerance < 0:
            raise ValueError("identity_tolerance cannot be negative")
        if self.relative_tolerance is not None and not (
            Decimal("0") <= self.relative_tolerance < Decimal("1")
        ):
            raise ValueError("relative_tolerance must be in [0, 1)")
        if self.verification_debounce_ms < 0:
            raise ValueError("verification_debounce_ms cannot be negative")
        seen: set[str] = set()
        for alias, _canonical in self.code_aliases:
            if not alias:
                raise ValueError("code alias suffix cannot be empty")
            if alias in seen:
                raise ValueError(f"duplicate code alias: {alias}")
            seen.add(alias)

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with built-in defaults and no alias table."""
        logger.info("engine_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from an already-parsed YAML mapping."""
        engine = dict(data.get("engine") or {})
        logger.info(
            "engine_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        relative = engine.get("relative_tolerance")
        return cls(
            identity_tolerance=Decimal(str(engine.get("identity_tolerance", DEFAULT_IDENTITY_TOLERANCE))),
            relative_tolerance=None if relative is None else Decimal(str(relative)),
            verification_debounce_ms=int(engine.get("verification_debounce_ms", DEFAULT_DEBOUNCE_MS)),
            code_aliases=tuple(
                (str(alias), str(canonical))
                for alias, canonical in (data.get("code_aliases") or {}).items()
            ),
            payable_rules=tuple(_parse_rule(r) for r in data.get("payable_rules") or ()),
        )


def _parse_rule(data: dict[str, Any]) -> PayableRuleDef:
    return PayableRuleDef(
        subcategory=data["subcategory"],
        payable_patterns=tuple(p.lower() for p in data.get("payables", ())),
        name_contains=tuple(t.lower() for t in data.get("name_contains", ())),
        name_excludes=tuple(t.lower() for t in data.get("name_excludes", ())),
    )
