"""
Configuration Loader (``execution_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into typed configuration objects: the
``EngineConfig`` and the ``ActivityTree`` delivered by the catalog
collaborator.

Architecture position
---------------------
**Config layer** -- sits above ``execution_kernel`` and below
``execution_services``.  Engines never call the loader.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass.
* Activity tree keys are accepted in both ``snake_case`` and the
  collaborator's ``camelCase`` spelling.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Structurally invalid activity tree  -> ``ActivityTreeError``.
* Invalid engine settings  -> ``ValueError`` from ``EngineConfig``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from execution_config.schema import EngineConfig
from execution_kernel.domain.activities import (
    Activity,
    ActivityTree,
    ActivityType,
    Category,
    LineRole,
    Section,
    SubCategory,
    VatCategory,
)
from execution_kernel.exceptions import ActivityTreeError

_DERIVED_TYPES = frozenset({ActivityType.VAT_RECEIVABLE, ActivityType.COMPUTED_ASSET})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    return EngineConfig.from_dict(data)


def _get(data: dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


def _parse_enum(enum_cls: type, raw: Any, path: str) -> Any:
    if raw is None:
        return None
    try:
        return enum_cls(str(raw).upper())
    except ValueError:
        raise ActivityTreeError(path, f"unknown {enum_cls.__name__} {raw!r}") from None


def parse_activity(
    data: dict[str, Any],
    section: Section,
    subcategory: str | None,
    path: str,
) -> Activity:
    """
    Parse one leaf item.

    ``is_computed`` defaults to True for VAT receivables and computed
    assets; ``is_editable`` defaults to the opposite of ``is_computed``
    and is always False for total rows.
    """
    if "code" not in data or "name" not in data:
        raise ActivityTreeError(path, "item requires 'code' and 'name'")

    activity_type = _parse_enum(
        ActivityType, _get(data, "activity_type", "activityType", "REGULAR"), path
    )
    is_total = activity_type == ActivityType.TOTAL_ROW or bool(
        _get(data, "is_total_row", "isTotalRow", False)
    )
    if is_total:
        activity_type = ActivityType.TOTAL_ROW
    is_computed = bool(_get(data, "is_computed", "isComputed", activity_type in _DERIVED_TYPES))
    is_editable = bool(
        _get(data, "is_editable", "isEditable", not is_computed and not is_total)
    )

    try:
        return Activity(
            code=str(data["code"]),
            name=str(data["name"]),
            section=section,
            display_order=int(_get(data, "display_order", "displayOrder", 0)),
            activity_type=activity_type,
            subcategory=subcategory,
            is_editable=is_editable,
            is_computed=is_computed,
            vat_category=_parse_enum(VatCategory, _get(data, "vat_category", "vatCategory"), path),
            payable_code=_get(data, "payable_code", "payableCode"),
            role=_parse_enum(LineRole, data.get("role"), path),
        )
    except ValueError as exc:
        raise ActivityTreeError(path, str(exc)) from exc


def parse_activity_tree(data: dict[str, Any]) -> ActivityTree:
    """Parse ``{section: {label, display_order, items, subcategories}}``."""
    categories: list[Category] = []
    for section_key, section_data in data.items():
        section = _parse_enum(Section, section_key, str(section_key))
        section_data = section_data or {}
        items = tuple(
            parse_activity(item, section, None, f"{section_key}.items[{i}]")
            for i, item in enumerate(section_data.get("items") or ())
        )
        subcategories: list[SubCategory] = []
        raw_subs = _get(section_data, "subcategories", "subCategories") or {}
        for sub_code, sub_data in raw_subs.items():
            sub_data = sub_data or {}
            sub_items = tuple(
                parse_activity(item, section, str(sub_code), f"{section_key}.{sub_code}.items[{i}]")
                for i, item in enumerate(sub_data.get("items") or ())
            )
            subcategories.append(
                SubCategory(
                    code=str(sub_code),
                    label=str(sub_data.get("label", sub_code)),
                    display_order=int(_get(sub_data, "display_order", "displayOrder", 0)),
                    items=sub_items,
                )
            )
        categories.append(
            Category(
                section=section,
                label=str(section_data.get("label", section.value)),
                display_order=int(_get(section_data, "display_order", "displayOrder", 0)),
                is_computed=bool(_get(section_data, "is_computed", "isComputed", False)),
                items=items,
                subcategories=tuple(subcategories),
            )
        )
    return ActivityTree(categories=tuple(categories))
