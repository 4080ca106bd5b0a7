"""
Menu Import Validation Service - Pre-commit checks on the canonical import graph.

Validates a parsed upload before any store operation begins. Every problem
is collected (validation never stops at the first error) and returned as a
structured report; blocking errors prevent the commit, warnings do not.

Checks run per entity kind in dependency order (categories, sizes, modifier
groups, modifiers, items, overrides, item/group links). Within a kind:
required fields, uniqueness, enumerations, numeric ordering,
cross-references, then soft warnings.

Usage:
    from src.services.menu_import_validation_service import validate_import

    report = validate_import(graph, business_id="store-1")
    if not report.is_valid:
        for error in report.errors:
            print(f"{error.file}, row {error.row}: {error.field}: {error.message}")
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from src.services.logging_utils import get_service_logger, log_operation
from src.services.menu_import_graph import (
    MenuImportGraph,
    QuantityLevel,
    SizePriceDelta,
    entity_list,
)
from src.utils.constants import (
    DISPLAY_TYPES,
    ENTITY_CATEGORY,
    ENTITY_ITEM,
    ENTITY_ITEM_GROUP_LINK,
    ENTITY_MODIFIER,
    ENTITY_MODIFIER_GROUP,
    ENTITY_OVERRIDE,
    ENTITY_SIZE,
)
from src.utils.name_keys import normalize_code, normalize_name_key

logger = get_service_logger(__name__)


# ============================================================================
# Dataclasses
# ============================================================================


@dataclass
class ValidationIssue:
    """A validation error or warning pointing at one cell of the upload."""

    file: str  # Source file (archive member name for ZIP uploads)
    row: int  # 1-based row; header is row 1
    entity: str  # Entity kind (e.g., "Item", "ModifierGroup")
    field: str  # Column the issue is about
    message: str  # Human-readable description
    value: Any = None  # Offending value, if any

    def __str__(self) -> str:
        return f"{self.file}, row {self.row}: {self.entity}.{self.field}: {self.message}"


@dataclass
class ValidationReport:
    """Result of validating an import graph."""

    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def merge(self, other: "ValidationReport") -> "ValidationReport":
        """Merge another ValidationReport into this one."""
        return ValidationReport(
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings,
        )

    def get_summary(self, limit: int = 20) -> str:
        """Generate user-friendly summary for CLI display."""
        status = "PASSED" if self.is_valid else "FAILED"
        lines = [
            "=" * 60,
            f"Import Validation {status}",
            "=" * 60,
            f"Errors:   {self.error_count}",
            f"Warnings: {self.warning_count}",
        ]

        if self.errors:
            lines.append("\nErrors:")
            for issue in self.errors[:limit]:
                lines.append(f"  - {issue}")
            if len(self.errors) > limit:
                lines.append(f"  ... and {len(self.errors) - limit} more errors")

        if self.warnings:
            lines.append("\nWarnings:")
            for issue in self.warnings[:limit]:
                lines.append(f"  - {issue}")
            if len(self.warnings) > limit:
                lines.append(f"  ... and {len(self.warnings) - limit} more warnings")

        lines.append("=" * 60)
        return "\n".join(lines)


class _IssueCollector:
    """Accumulates issues for records that carry source_file/row_number."""

    def __init__(self, entity: str):
        self.entity = entity
        self.report = ValidationReport()

    def _issue(self, record, field_name: str, message: str, value: Any) -> ValidationIssue:
        return ValidationIssue(
            file=getattr(record, "source_file", "") or "",
            row=getattr(record, "row_number", 0) or 0,
            entity=self.entity,
            field=field_name,
            message=message,
            value=value,
        )

    def error(self, record, field_name: str, message: str, value: Any = None) -> None:
        self.report.errors.append(self._issue(record, field_name, message, value))

    def warning(self, record, field_name: str, message: str, value: Any = None) -> None:
        self.report.warnings.append(self._issue(record, field_name, message, value))


def _first_seen(record) -> str:
    return f"first defined in {record.source_file}, row {record.row_number}"


# ============================================================================
# Graph Indexes
# ============================================================================


@dataclass
class _GraphIndex:
    """Natural-key lookups over the whole graph, built once per validation."""

    category_names: Set[str]
    item_keys: Set[str]
    size_codes: Set[str]
    group_keys: Set[str]
    modifier_keys: Set[Tuple[str, str]]
    modifiers_per_group: Dict[str, int]
    size_rows_per_item: Dict[str, List[Any]]
    default_sizes_per_item: Dict[str, List[Any]]


def _build_index(graph: MenuImportGraph) -> _GraphIndex:
    modifiers_per_group: Dict[str, int] = defaultdict(int)
    for modifier in entity_list(graph, "modifiers"):
        modifiers_per_group[modifier.group_ref] += 1

    size_rows_per_item: Dict[str, List[Any]] = defaultdict(list)
    default_sizes_per_item: Dict[str, List[Any]] = defaultdict(list)
    for size in entity_list(graph, "sizes"):
        if size.item_key:
            size_rows_per_item[size.item_key].append(size)
            if size.is_default:
                default_sizes_per_item[size.item_key].append(size)

    return _GraphIndex(
        category_names={
            key
            for key in (normalize_name_key(c.name) for c in entity_list(graph, "categories"))
            if key
        },
        item_keys={i.item_key for i in entity_list(graph, "items") if i.item_key},
        size_codes={
            code
            for code in (normalize_code(s.size_code) for s in entity_list(graph, "sizes"))
            if code
        },
        group_keys={g.group_ref for g in entity_list(graph, "modifier_groups") if g.group_ref},
        modifier_keys={
            m.ref
            for m in entity_list(graph, "modifiers")
            if m.group_key and m.modifier_key
        },
        modifiers_per_group=modifiers_per_group,
        size_rows_per_item=size_rows_per_item,
        default_sizes_per_item=default_sizes_per_item,
    )


# ============================================================================
# Shared Checks
# ============================================================================


def _check_business_id(collector: _IssueCollector, record, business_id: str) -> None:
    if record.business_id and record.business_id != business_id:
        collector.warning(
            record,
            "business_id",
            f"business_id mismatch; using import business_id '{business_id}'",
            record.business_id,
        )


def _check_price_table(
    collector: _IssueCollector,
    record,
    field_name: str,
    table: List[SizePriceDelta],
    index: _GraphIndex,
) -> None:
    for entry in table:
        if normalize_code(entry.size_code) not in index.size_codes:
            collector.error(
                record,
                field_name,
                f"Size '{entry.size_code}' not found. Ensure the size is part of the import.",
                entry.size_code,
            )


def _check_quantity_levels(
    collector: _IssueCollector,
    record,
    levels: List[QuantityLevel],
    index: _GraphIndex,
) -> None:
    defaults = 0
    for level in levels:
        if level.quantity < 1:
            collector.error(
                record,
                "quantity_levels",
                f"quantity must be at least 1 (got {level.quantity})",
                level.quantity,
            )
        if level.price is not None and level.price < 0:
            collector.error(
                record, "quantity_levels", "quantity level price cannot be negative", level.price
            )
        if level.is_default:
            defaults += 1
        _check_price_table(collector, record, "quantity_levels", level.prices_by_size, index)

    if defaults > 1:
        collector.error(
            record,
            "quantity_levels",
            f"{defaults} quantity levels are marked default; at most one is allowed",
            defaults,
        )


# ============================================================================
# Entity Validators
# ============================================================================


def _validate_parse_errors(graph: MenuImportGraph) -> ValidationReport:
    report = ValidationReport()
    for parse_error in entity_list(graph, "parse_errors"):
        report.errors.append(
            ValidationIssue(
                file=parse_error.file,
                row=parse_error.row,
                entity=parse_error.entity,
                field=parse_error.field,
                message=parse_error.message,
                value=parse_error.value,
            )
        )
    return report


def validate_categories(
    graph: MenuImportGraph, business_id: str, index: _GraphIndex
) -> ValidationReport:
    """Validate category records: name required and unique (case-insensitive)."""
    collector = _IssueCollector(ENTITY_CATEGORY)
    seen: Dict[str, Any] = {}

    for category in entity_list(graph, "categories"):
        key = normalize_name_key(category.name)
        if key is None:
            collector.error(category, "name", "name is required", category.name)
            continue

        if key in seen:
            collector.error(
                category,
                "name",
                f"Duplicate category name '{category.name}' ({_first_seen(seen[key])})",
                category.name,
            )
        else:
            seen[key] = category

        if category.sort_order is not None and category.sort_order < 0:
            collector.error(category, "sort_order", "sort_order cannot be negative", category.sort_order)

        _check_business_id(collector, category, business_id)

    return collector.report


def validate_sizes(
    graph: MenuImportGraph, business_id: str, index: _GraphIndex
) -> ValidationReport:
    """
    Validate size records.

    Size codes are global within the catalog; a code may appear on several
    rows (once per item it prices) but only once per item.
    """
    collector = _IssueCollector(ENTITY_SIZE)
    seen: Dict[Tuple[str, str], Any] = {}
    names_by_code: Dict[str, Any] = {}
    items = {i.item_key: i for i in entity_list(graph, "items") if i.item_key}

    for size in entity_list(graph, "sizes"):
        code = normalize_code(size.size_code)
        if code is None:
            collector.error(size, "size_code", "size_code is required", size.size_code)
            continue

        # Uniqueness
        key = (size.item_key or "", code)
        if key in seen:
            owner = f" for item_key '{size.item_key}'" if size.item_key else ""
            collector.error(
                size,
                "size_code",
                f"Duplicate size_code '{code}'{owner} ({_first_seen(seen[key])})",
                code,
            )
        else:
            seen[key] = size

        # Numeric
        if size.price is not None and size.price < 0:
            collector.error(size, "price", "price cannot be negative", size.price)
        if size.display_order is not None and size.display_order < 0:
            collector.error(
                size, "display_order", "display_order cannot be negative", size.display_order
            )

        # Cross-references
        if size.is_default and not size.item_key:
            collector.error(
                size,
                "is_default",
                "a default size row must name the item it is the default for (item_key)",
                size.is_default,
            )
        if size.item_key and size.item_key not in index.item_keys:
            collector.error(
                size,
                "item_key",
                f"Item '{size.item_key}' not found. Ensure the item is part of the import.",
                size.item_key,
            )

        # Warnings
        first = names_by_code.setdefault(code, size)
        if first is not size and normalize_name_key(first.name) != normalize_name_key(size.name):
            collector.warning(
                size,
                "name",
                f"Size '{code}' is named '{size.name}' here but '{first.name}' "
                f"({_first_seen(first)}); the last name wins",
                size.name,
            )
        if size.item_key and size.item_key in items:
            item = items[size.item_key]
            if item.is_sizeable is False:
                collector.warning(
                    size,
                    "item_key",
                    f"Item '{size.item_key}' is not sizeable; its size prices are stored but unused",
                    size.item_key,
                )
            elif not size.price:
                collector.warning(
                    size,
                    "price",
                    f"No price for size '{code}' of item '{size.item_key}'; defaults to 0",
                    size.price,
                )

    for item_key, defaults in index.default_sizes_per_item.items():
        for extra in defaults[1:]:
            collector.error(
                extra,
                "is_default",
                f"Multiple default sizes for item_key '{item_key}' "
                f"({_first_seen(defaults[0])}); exactly one default is allowed",
                extra.size_code,
            )

    return collector.report


def validate_modifier_groups(
    graph: MenuImportGraph, business_id: str, index: _GraphIndex
) -> ValidationReport:
    """Validate modifier group records, including their pricing tables."""
    collector = _IssueCollector(ENTITY_MODIFIER_GROUP)
    seen_keys: Dict[str, Any] = {}
    seen_names: Dict[str, Any] = {}

    for group in entity_list(graph, "modifier_groups"):
        # Required
        if not group.group_key:
            collector.error(group, "group_key", "group_key is required", group.group_key)
            continue
        name_key = normalize_name_key(group.name)
        if name_key is None:
            collector.error(group, "name", "name is required", group.name)

        # Uniqueness
        if group.group_ref in seen_keys:
            collector.error(
                group,
                "group_key",
                f"Duplicate group_key '{group.group_key}' "
                f"({_first_seen(seen_keys[group.group_ref])})",
                group.group_key,
            )
        else:
            seen_keys[group.group_ref] = group
            if name_key is not None and name_key in seen_names:
                collector.error(
                    group,
                    "name",
                    f"Duplicate modifier group name '{group.name}' "
                    f"({_first_seen(seen_names[name_key])})",
                    group.name,
                )
            elif name_key is not None:
                seen_names[name_key] = group

        # Enumerations
        if group.display_type not in DISPLAY_TYPES:
            collector.error(
                group,
                "display_type",
                f"display_type must be one of {', '.join(DISPLAY_TYPES)}",
                group.display_type,
            )

        # Numeric ordering
        if group.min_select < 0:
            collector.error(group, "min_select", "min_select cannot be negative", group.min_select)
        if group.min_select > group.max_select:
            collector.error(
                group,
                "min_select",
                f"min_select ({group.min_select}) must be less than or equal to "
                f"max_select ({group.max_select})",
                group.min_select,
            )
        _check_quantity_levels(collector, group, group.quantity_levels, index)

        # Cross-references
        _check_price_table(collector, group, "prices_by_size", group.prices_by_size, index)

        # Warnings
        modifier_count = index.modifiers_per_group.get(group.group_ref, 0)
        if group.max_select > modifier_count:
            collector.warning(
                group,
                "max_select",
                f"max_select ({group.max_select}) is greater than the number of "
                f"modifiers ({modifier_count})",
                group.max_select,
            )
        _check_business_id(collector, group, business_id)

    return collector.report


def validate_modifiers(
    graph: MenuImportGraph, business_id: str, index: _GraphIndex
) -> ValidationReport:
    """Validate modifier records; names are unique per group."""
    collector = _IssueCollector(ENTITY_MODIFIER)
    seen_keys: Dict[Tuple[str, str], Any] = {}
    seen_names: Dict[Tuple[str, str], Any] = {}

    for modifier in entity_list(graph, "modifiers"):
        if not modifier.group_key:
            collector.error(modifier, "group_key", "group_key is required", modifier.group_key)
            continue
        name_key = normalize_name_key(modifier.name)
        if name_key is None:
            collector.error(modifier, "name", "name is required", modifier.name)
            continue

        key = modifier.ref
        if key in seen_keys:
            collector.error(
                modifier,
                "modifier_key",
                f"Duplicate modifier_key '{modifier.modifier_key}' in group "
                f"'{modifier.group_key}' ({_first_seen(seen_keys[key])})",
                modifier.modifier_key,
            )
        else:
            seen_keys[key] = modifier
            name_scope = (modifier.group_ref, name_key)
            if name_scope in seen_names:
                collector.error(
                    modifier,
                    "name",
                    f"Duplicate modifier name '{modifier.name}' in group "
                    f"'{modifier.group_key}' ({_first_seen(seen_names[name_scope])})",
                    modifier.name,
                )
            else:
                seen_names[name_scope] = modifier

        if modifier.max_quantity is not None and modifier.max_quantity < 1:
            collector.error(
                modifier,
                "max_quantity",
                "max_quantity must be at least 1",
                modifier.max_quantity,
            )

        if modifier.group_ref not in index.group_keys:
            collector.error(
                modifier,
                "group_key",
                f"ModifierGroup '{modifier.group_key}' not found. "
                "Ensure the modifier group is part of the import.",
                modifier.group_key,
            )

    return collector.report


def validate_items(
    graph: MenuImportGraph, business_id: str, index: _GraphIndex
) -> ValidationReport:
    """
    Validate item records.

    Items are unique by item_key within the import and by (name, category)
    in the store. Sizeable items need size rows; other items need a price.
    """
    collector = _IssueCollector(ENTITY_ITEM)
    seen_keys: Dict[str, Any] = {}
    seen_natural: Dict[Tuple[Optional[str], Optional[str]], Any] = {}

    for item in entity_list(graph, "items"):
        # Required
        if normalize_name_key(item.name) is None:
            collector.error(item, "name", "name is required", item.name)
            continue

        # Uniqueness
        if item.item_key in seen_keys:
            collector.error(
                item,
                "item_key",
                f"Duplicate item_key '{item.item_key}' ({_first_seen(seen_keys[item.item_key])})",
                item.item_key,
            )
        else:
            seen_keys[item.item_key] = item
            natural = item.natural_key
            if natural in seen_natural:
                where = f" in category '{item.category_name or item.category_id}'" if natural[1] else ""
                collector.error(
                    item,
                    "name",
                    f"Duplicate item '{item.name}'{where} ({_first_seen(seen_natural[natural])})",
                    item.name,
                )
            else:
                seen_natural[natural] = item

        # Numeric
        if item.base_price is not None and item.base_price < 0:
            collector.error(item, "base_price", "base_price cannot be negative", item.base_price)
        if item.max_per_order is not None and item.max_per_order < 1:
            collector.error(
                item, "max_per_order", "max_per_order must be at least 1", item.max_per_order
            )

        # Cross-references
        if item.category_name and normalize_name_key(item.category_name) not in index.category_names:
            collector.error(
                item,
                "category_name",
                f"Category '{item.category_name}' not found. "
                "Ensure the category is part of the import.",
                item.category_name,
            )

        size_rows = index.size_rows_per_item.get(item.item_key, [])
        default_rows = index.default_sizes_per_item.get(item.item_key, [])

        if item.default_size_code:
            code = normalize_code(item.default_size_code)
            if code not in index.size_codes:
                collector.error(
                    item,
                    "default_size_code",
                    f"Size '{item.default_size_code}' not found. "
                    "Ensure the size is part of the import.",
                    item.default_size_code,
                )
            elif default_rows and normalize_code(default_rows[0].size_code) != code:
                collector.error(
                    item,
                    "default_size_code",
                    f"default_size_code '{code}' conflicts with size "
                    f"'{default_rows[0].size_code}' marked default ({_first_seen(default_rows[0])})",
                    item.default_size_code,
                )

        if item.is_sizeable and not size_rows:
            collector.error(
                item,
                "is_sizeable",
                f"Sizeable item must have at least one size row; found 0 for "
                f"item_key '{item.item_key}'",
                item.is_sizeable,
            )

        # Warnings
        if not item.category_name and not item.category_id:
            collector.warning(item, "category_name", "Item has no category", None)
        if not item.is_sizeable and item.base_price is None:
            collector.warning(item, "base_price", "No base_price; defaults to 0", None)
        if (
            item.is_sizeable
            and size_rows
            and not default_rows
            and not item.default_size_code
        ):
            collector.warning(
                item,
                "default_size_code",
                f"No default size for item_key '{item.item_key}'; "
                f"the first size ('{size_rows[0].size_code}') is used",
                None,
            )
        _check_business_id(collector, item, business_id)

    return collector.report


def validate_overrides(
    graph: MenuImportGraph, business_id: str, index: _GraphIndex
) -> ValidationReport:
    """Validate per-item modifier overrides; every key of the triple must resolve."""
    collector = _IssueCollector(ENTITY_OVERRIDE)
    seen: Dict[Tuple[str, str, str], Any] = {}

    for override in entity_list(graph, "overrides"):
        missing = [
            name
            for name in ("item_key", "group_key", "modifier_key")
            if not getattr(override, name)
        ]
        if missing:
            for name in missing:
                collector.error(override, name, f"{name} is required", None)
            continue

        key = (override.item_key,) + override.modifier_ref
        if key in seen:
            collector.error(
                override,
                "modifier_key",
                f"Duplicate override for item '{override.item_key}', group "
                f"'{override.group_key}', modifier '{override.modifier_key}' "
                f"({_first_seen(seen[key])})",
                override.modifier_key,
            )
        else:
            seen[key] = override

        if override.max_quantity is not None and override.max_quantity < 1:
            collector.error(
                override,
                "max_quantity",
                "max_quantity must be at least 1",
                override.max_quantity,
            )
        _check_quantity_levels(collector, override, override.quantity_levels, index)

        if override.item_key not in index.item_keys:
            collector.error(
                override,
                "item_key",
                f"Item '{override.item_key}' not found. Ensure the item is part of the import.",
                override.item_key,
            )
        if override.group_ref not in index.group_keys:
            collector.error(
                override,
                "group_key",
                f"ModifierGroup '{override.group_key}' not found. "
                "Ensure the modifier group is part of the import.",
                override.group_key,
            )
        elif override.modifier_ref not in index.modifier_keys:
            collector.error(
                override,
                "modifier_key",
                f"Modifier '{override.modifier_key}' not found in group "
                f"'{override.group_key}'. Ensure the modifier is part of the import.",
                override.modifier_key,
            )
        _check_price_table(collector, override, "prices_by_size", override.prices_by_size, index)

    return collector.report


def validate_item_group_links(
    graph: MenuImportGraph, business_id: str, index: _GraphIndex
) -> ValidationReport:
    collector = _IssueCollector(ENTITY_ITEM_GROUP_LINK)

    for link in entity_list(graph, "item_group_links"):
        if link.item_key not in index.item_keys:
            collector.error(
                link,
                "parent",
                f"Item '{link.item_key}' not found. Ensure the item is part of the import.",
                link.item_key,
            )
        if link.group_ref not in index.group_keys:
            collector.error(
                link,
                "name",
                f"ModifierGroup '{link.group_key}' not found.",
                link.group_key,
            )

    return collector.report


# ============================================================================
# Entry Point
# ============================================================================

# Dependency order: parents before the records that reference them
_VALIDATORS = (
    validate_categories,
    validate_sizes,
    validate_modifier_groups,
    validate_modifiers,
    validate_items,
    validate_overrides,
    validate_item_group_links,
)


def validate_import(graph: MenuImportGraph, business_id: str) -> ValidationReport:
    """
    Validate a whole import graph.

    Pure: reads the graph only, never the store. Missing or empty entity
    lists are treated as empty.

    Args:
        graph: Canonical import graph from the parser
        business_id: Catalog scope the import will be committed to

    Returns:
        ValidationReport with every blocking error and warning
    """
    index = _build_index(graph)

    report = _validate_parse_errors(graph)
    for validator in _VALIDATORS:
        report = report.merge(validator(graph, business_id, index))

    log_operation(
        logger,
        operation="validate_import",
        outcome="valid" if report.is_valid else "invalid",
        level=logging.INFO if report.is_valid else logging.WARNING,
        business_id=business_id,
        error_count=report.error_count,
        warning_count=report.warning_count,
    )
    return report
