"""
execution_config -- public entrypoint for execution engine configuration.

Responsibility:
    Provides ``load_engine_config()`` and ``load_activity_tree()``, the only
    ways services obtain engine settings and the activity catalog.  Engines
    receive the resulting frozen objects as arguments and never read files.

Architecture position:
    Configuration -- sits above ``execution_kernel`` and below
    ``execution_services``.  The kernel MUST NEVER import from this package.

Failure modes:
    - ``FileNotFoundError`` -- config or tree file missing.
    - ``ValueError`` -- invalid engine settings.
    - ``ActivityTreeError`` -- malformed activity tree.

Audit relevance:
    Every successful load emits an ``EXECUTION_CONFIG_TRACE`` log entry
    naming the source file and the alias/rule counts.
"""

from __future__ import annotations

import logging
from pathlib import Path

from execution_config.loader import (
    load_yaml_file,
    parse_activity_tree,
    parse_engine_config,
)
from execution_config.schema import EngineConfig, PayableRuleDef
from execution_kernel.domain.activities import ActivityTree

_logger = logging.getLogger("execution_kernel.config")

_DEFAULT_ENGINE_CONFIG = Path(__file__).parent / "defaults" / "engine.yaml"


def load_engine_config(path: Path | None = None) -> EngineConfig:
    """Load the engine configuration (defaults to the bundled engine.yaml)."""
    source = path or _DEFAULT_ENGINE_CONFIG
    config = parse_engine_config(load_yaml_file(source))
    _logger.info(
        "EXECUTION_CONFIG_TRACE",
        extra={
            "trace_type": "EXECUTION_CONFIG_TRACE",
            "source": str(source),
            "alias_count": len(config.code_aliases),
            "payable_rule_count": len(config.payable_rules),
            "identity_tolerance": str(config.identity_tolerance),
        },
    )
    return config


def load_activity_tree(path: Path) -> ActivityTree:
    """Load an activity tree YAML file supplied by the catalog collaborator."""
    tree = parse_activity_tree(load_yaml_file(path))
    _logger.info(
        "activity_tree_loaded",
        extra={"source": str(path), "leaf_count": len(tree.leaves())},
    )
    return tree


__all__ = [
    "EngineConfig",
    "PayableRuleDef",
    "load_engine_config",
    "load_activity_tree",
    "parse_activity_tree",
]
