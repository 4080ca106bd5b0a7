"""
Menu Import Service - atomic, dependency-ordered commit of a menu upload.

Resolves the natural keys of a validated import graph to store ids and
upserts every entity in one transaction. Steps run in dependency order so
each step only references ids produced by earlier steps:

    1. categories            name -> id
    2. sizes                 code -> id (records per-item defaults and prices)
    3. modifier_groups       name -> id (pricing tables replaced wholesale)
    4. modifiers             (group_key, modifier_key) -> id
    5. items                 (name, category) -> id
    6. item_sizes            default size links and per-item size prices
    7. item_modifier_groups  full assignment list per overridden item

Any failure rolls the whole import back; nothing is partially committed.

Usage:
    from src.services.menu_import_service import import_menu

    with open("menu.zip", "rb") as f:
        result = import_menu(f.read(), "menu.zip", business_id="store-1", dry_run=True)
    print(result.get_summary())
"""

import logging
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.services import menu_catalog_service
from src.services.database import session_scope
from src.services.exceptions import (
    CommitDeadlineExceeded,
    CommitError,
    ImportValidationFailed,
    UnresolvedReferenceError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.services.menu_import_graph import (
    MenuImportGraph,
    QuantityLevel,
    SizePriceDelta,
    SizeRecord,
    entity_list,
)
from src.services.menu_import_parser import ParsedUpload, parse_upload
from src.services.menu_import_validation_service import (
    ValidationIssue,
    ValidationReport,
    validate_import,
)
from src.utils.constants import (
    ENTITY_CATEGORY,
    ENTITY_ITEM,
    ENTITY_MODIFIER,
    ENTITY_MODIFIER_GROUP,
    ENTITY_OVERRIDE,
    ENTITY_SIZE,
)
from src.utils.datetime_utils import deadline_passed
from src.utils.name_keys import normalize_code, normalize_name_key

logger = get_service_logger(__name__)


# ============================================================================
# Constants
# ============================================================================

STEP_CATEGORIES = "categories"
STEP_SIZES = "sizes"
STEP_MODIFIER_GROUPS = "modifier_groups"
STEP_MODIFIERS = "modifiers"
STEP_ITEMS = "items"
STEP_ITEM_SIZES = "item_sizes"
STEP_ITEM_MODIFIER_GROUPS = "item_modifier_groups"

COMMIT_STEPS = (
    STEP_CATEGORIES,
    STEP_SIZES,
    STEP_MODIFIER_GROUPS,
    STEP_MODIFIERS,
    STEP_ITEMS,
    STEP_ITEM_SIZES,
    STEP_ITEM_MODIFIER_GROUPS,
)


# ============================================================================
# Data Classes
# ============================================================================


@dataclass
class EntityCommitCounts:
    """Per-step commit statistics."""

    created: int = 0
    updated: int = 0


@dataclass
class ImportIdMaps:
    """
    Natural key -> store id maps built while committing.

    Lives only for the duration of one commit_import() call.
    """

    categories: Dict[str, int] = field(default_factory=dict)  # name_key -> id
    sizes: Dict[str, int] = field(default_factory=dict)  # code -> id
    modifier_groups: Dict[str, int] = field(default_factory=dict)  # group_ref -> id
    modifiers: Dict[Tuple[str, str], int] = field(default_factory=dict)
    items: Dict[str, int] = field(default_factory=dict)  # item_key -> id
    # (item_key, size_code) pairs marked default in size rows
    default_sizes: List[Tuple[str, str]] = field(default_factory=list)
    # item_key -> size rows pricing that item, in upload order
    item_size_rows: Dict[str, List[SizeRecord]] = field(
        default_factory=lambda: OrderedDict()
    )


class MenuImportResult:
    """
    Result of a menu import with per-step created/updated counts.
    """

    def __init__(self, business_id: str = ""):
        self.business_id = business_id
        self.entity_counts: Dict[str, EntityCommitCounts] = {
            step: EntityCommitCounts() for step in COMMIT_STEPS
        }
        self.warnings: List[ValidationIssue] = []
        self.source_files: List[str] = []
        self.dry_run: bool = False

    @property
    def total_created(self) -> int:
        """Total records created across all steps."""
        return sum(counts.created for counts in self.entity_counts.values())

    @property
    def total_updated(self) -> int:
        """Total records updated across all steps."""
        return sum(counts.updated for counts in self.entity_counts.values())

    @property
    def total_processed(self) -> int:
        return self.total_created + self.total_updated

    def add_created(self, step: str, count: int = 1) -> None:
        self.entity_counts[step].created += count

    def add_updated(self, step: str, count: int = 1) -> None:
        self.entity_counts[step].updated += count

    def get_summary(self) -> str:
        """Generate user-friendly summary for CLI display."""
        lines = [
            "=" * 60,
            f"Menu Import Summary (business: {self.business_id})",
        ]
        if self.dry_run:
            lines.append("*** DRY RUN - No changes committed ***")
        lines.append("=" * 60)

        if self.source_files:
            lines.append(f"Files: {', '.join(self.source_files)}")

        for step, counts in self.entity_counts.items():
            parts = []
            if counts.created > 0:
                parts.append(f"{counts.created} created")
            if counts.updated > 0:
                parts.append(f"{counts.updated} updated")
            if parts:
                label = step.replace("_", " ").capitalize()
                lines.append(f"  {label}: {', '.join(parts)}")

        lines.append("")
        lines.append(f"Total Processed: {self.total_processed}")
        lines.append(f"  Created: {self.total_created}")
        lines.append(f"  Updated: {self.total_updated}")

        if self.warnings and len(self.warnings) <= 10:
            lines.append("\nWarnings:")
            for warning in self.warnings:
                lines.append(f"  - {warning}")
        elif self.warnings:
            lines.append(f"\n{len(self.warnings)} warnings (use --verbose for full list)")

        lines.append("=" * 60)
        return "\n".join(lines)


# ============================================================================
# Helpers
# ============================================================================


@contextmanager
def _writing(step: str, entity_type: str, identifier: Any):
    """Wrap store errors raised while writing one entity into CommitError."""
    try:
        yield
    except SQLAlchemyError as e:
        detail = getattr(e, "orig", None) or e
        raise CommitError(
            step,
            str(detail),
            entity_type=entity_type,
            identifier=str(identifier),
            original_error=e,
        ) from e


def _upsert(
    result: MenuImportResult,
    step: str,
    existing,
    create: Callable[[], Any],
    update: Callable[[int], Any],
):
    if existing is None:
        entity = create()
        result.add_created(step)
    else:
        entity = update(existing.id)
        result.add_updated(step)
    return entity


def _resolve_size_id(
    maps: ImportIdMaps, step: str, entity_type: str, identifier: str, code: str
) -> int:
    size_id = maps.sizes.get(normalize_code(code))
    if size_id is None:
        raise UnresolvedReferenceError(step, entity_type, identifier, ENTITY_SIZE, code)
    return size_id


def _stored_price_table(
    table: List[SizePriceDelta], maps: ImportIdMaps, step: str, entity_type: str, identifier: str
) -> List[Dict[str, Any]]:
    return [
        {
            "size_id": _resolve_size_id(maps, step, entity_type, identifier, entry.size_code),
            "price_delta": entry.price_delta,
        }
        for entry in table
    ]


def _stored_quantity_levels(
    levels: List[QuantityLevel], maps: ImportIdMaps, step: str, entity_type: str, identifier: str
) -> List[Dict[str, Any]]:
    return [
        {
            "quantity": level.quantity,
            "name": level.name,
            "price": level.price,
            "is_default": level.is_default,
            "display_order": level.display_order,
            "is_active": level.is_active,
            "prices_by_size": _stored_price_table(
                level.prices_by_size, maps, step, entity_type, identifier
            ),
        }
        for level in levels
    ]


# ============================================================================
# Commit Steps
# ============================================================================


def _commit_categories(graph, business_id, maps, result, sess):
    step = STEP_CATEGORIES
    for record in entity_list(graph, "categories"):
        key = normalize_name_key(record.name)
        fields = {
            "name": record.name.strip(),
            "description": record.description,
            "sort_order": record.sort_order,
            "is_active": record.is_active,
        }
        with _writing(step, ENTITY_CATEGORY, record.name):
            existing = menu_catalog_service.find_category(business_id, record.name, session=sess)
            category = _upsert(
                result,
                step,
                existing,
                lambda: menu_catalog_service.create_category(
                    business_id, session=sess, **fields
                ),
                lambda category_id: menu_catalog_service.update_category(
                    category_id, fields, session=sess
                ),
            )
        maps.categories[key] = category.id


def _commit_sizes(graph, business_id, maps, result, sess):
    step = STEP_SIZES
    for record in entity_list(graph, "sizes"):
        code = normalize_code(record.size_code)
        fields = {
            "name": (record.name or "").strip() or code,
            "display_order": record.display_order,
            "is_active": record.is_active,
        }
        with _writing(step, ENTITY_SIZE, code):
            if code in maps.sizes:
                # Same code on another item's row: last write wins, counted once
                menu_catalog_service.update_size(maps.sizes[code], fields, session=sess)
            else:
                existing = menu_catalog_service.find_size(business_id, code, session=sess)
                size = _upsert(
                    result,
                    step,
                    existing,
                    lambda: menu_catalog_service.create_size(
                        business_id, code, session=sess, **fields
                    ),
                    lambda size_id: menu_catalog_service.update_size(size_id, fields, session=sess),
                )
                maps.sizes[code] = size.id

        if record.item_key:
            maps.item_size_rows.setdefault(record.item_key, []).append(record)
            if record.is_default:
                maps.default_sizes.append((record.item_key, code))


def _commit_modifier_groups(graph, business_id, maps, result, sess):
    step = STEP_MODIFIER_GROUPS
    for record in entity_list(graph, "modifier_groups"):
        fields = {
            "name": record.name.strip(),
            "display_type": record.display_type,
            "min_select": record.min_select,
            "max_select": record.max_select,
            "applies_per_quantity": record.applies_per_quantity,
            "is_active": record.is_active,
            "sort_order": record.sort_order,
            # Replaced wholesale, never merged with the stored tables
            "quantity_levels": _stored_quantity_levels(
                record.quantity_levels, maps, step, ENTITY_MODIFIER_GROUP, record.group_key
            ),
            "prices_by_size": _stored_price_table(
                record.prices_by_size, maps, step, ENTITY_MODIFIER_GROUP, record.group_key
            ),
        }
        with _writing(step, ENTITY_MODIFIER_GROUP, record.group_key):
            existing = menu_catalog_service.find_modifier_group(
                business_id, record.name, session=sess
            )
            group = _upsert(
                result,
                step,
                existing,
                lambda: menu_catalog_service.create_modifier_group(
                    business_id, session=sess, **fields
                ),
                lambda group_id: menu_catalog_service.update_modifier_group(
                    group_id, fields, session=sess
                ),
            )
        maps.modifier_groups[record.group_ref] = group.id


def _commit_modifiers(graph, business_id, maps, result, sess):
    step = STEP_MODIFIERS
    for record in entity_list(graph, "modifiers"):
        identifier = f"{record.group_key}/{record.modifier_key}"
        group_id = maps.modifier_groups.get(record.group_ref)
        if group_id is None:
            raise UnresolvedReferenceError(
                step, ENTITY_MODIFIER, identifier, ENTITY_MODIFIER_GROUP, record.group_key
            )

        fields = {
            "name": record.name.strip(),
            "is_default": record.is_default,
            "max_quantity": record.max_quantity,
            "display_order": record.display_order,
            "is_active": record.is_active,
        }
        with _writing(step, ENTITY_MODIFIER, identifier):
            existing = menu_catalog_service.find_modifier(group_id, record.name, session=sess)
            modifier = _upsert(
                result,
                step,
                existing,
                lambda: menu_catalog_service.create_modifier(group_id, session=sess, **fields),
                lambda modifier_id: menu_catalog_service.update_modifier(
                    modifier_id, fields, session=sess
                ),
            )
        maps.modifiers[record.ref] = modifier.id


def _resolve_category_id(record, business_id, maps, sess) -> Optional[int]:
    step = STEP_ITEMS
    if record.category_name:
        category_id = maps.categories.get(normalize_name_key(record.category_name))
        if category_id is None:
            raise UnresolvedReferenceError(
                step, ENTITY_ITEM, record.item_key, ENTITY_CATEGORY, record.category_name
            )
        return category_id

    if record.category_id:
        try:
            store_id = int(record.category_id)
        except ValueError:
            store_id = None
        category = (
            menu_catalog_service.get_category(business_id, store_id, session=sess)
            if store_id is not None
            else None
        )
        if category is None:
            raise UnresolvedReferenceError(
                step, ENTITY_ITEM, record.item_key, ENTITY_CATEGORY, record.category_id
            )
        return category.id

    return None


def _commit_items(graph, business_id, maps, result, sess):
    step = STEP_ITEMS
    customized = {o.item_key for o in entity_list(graph, "overrides")} | {
        link.item_key for link in entity_list(graph, "item_group_links")
    }

    for record in entity_list(graph, "items"):
        with _writing(step, ENTITY_ITEM, record.item_key):
            category_id = _resolve_category_id(record, business_id, maps, sess)
            is_customizable = record.is_customizable
            if is_customizable is None:
                is_customizable = record.item_key in customized
            fields = {
                "name": record.name.strip(),
                "category_id": category_id,
                "description": record.description,
                "base_price": record.base_price if record.base_price is not None else 0.0,
                "is_sizeable": bool(record.is_sizeable),
                "is_customizable": is_customizable,
                "is_active": record.is_active,
                "is_available": record.is_available,
                "is_signature": record.is_signature,
                "max_per_order": record.max_per_order,
                "sort_order": record.sort_order,
            }
            existing = menu_catalog_service.find_item(
                business_id, record.name, category_id, session=sess
            )
            item = _upsert(
                result,
                step,
                existing,
                lambda: menu_catalog_service.create_item(business_id, session=sess, **fields),
                lambda item_id: menu_catalog_service.update_item(item_id, fields, session=sess),
            )
        maps.items[record.item_key] = item.id


def _commit_item_sizes(graph, business_id, maps, result, sess):
    """Link default sizes and rebuild per-item size prices."""
    step = STEP_ITEM_SIZES

    default_codes: Dict[str, str] = {}
    for record in entity_list(graph, "items"):
        if record.default_size_code:
            default_codes[record.item_key] = normalize_code(record.default_size_code)
    for item_key, code in maps.default_sizes:
        default_codes[item_key] = code
    for item_key, rows in maps.item_size_rows.items():
        default_codes.setdefault(item_key, normalize_code(rows[0].size_code))

    for item_key, code in default_codes.items():
        item_id = maps.items.get(item_key)
        if item_id is None:
            raise UnresolvedReferenceError(step, ENTITY_SIZE, code, ENTITY_ITEM, item_key)
        size_id = _resolve_size_id(maps, step, ENTITY_ITEM, item_key, code)

        rows: Dict[int, Dict[str, Any]] = OrderedDict()
        for size in maps.item_size_rows.get(item_key, []):
            row_size_id = _resolve_size_id(maps, step, ENTITY_ITEM, item_key, size.size_code)
            rows[row_size_id] = {
                "size_id": row_size_id,
                "price": size.price if size.price is not None else 0.0,
                "is_default": row_size_id == size_id,
                "is_active": size.is_active,
            }

        with _writing(step, ENTITY_ITEM, item_key):
            menu_catalog_service.set_item_default_size(item_id, size_id, session=sess)
            if rows:
                menu_catalog_service.replace_item_sizes(item_id, list(rows.values()), session=sess)
        result.add_updated(step)
        result.add_created(step, len(rows))


def _commit_item_modifier_groups(graph, business_id, maps, result, sess):
    """Replace the modifier group assignments of every item with overrides or links."""
    step = STEP_ITEM_MODIFIER_GROUPS

    # item_key -> group_ref -> overrides, both in first-seen order
    assignments: Dict[str, Dict[str, list]] = OrderedDict()
    for override in entity_list(graph, "overrides"):
        groups = assignments.setdefault(override.item_key, OrderedDict())
        groups.setdefault(override.group_ref, []).append(override)
    for link in entity_list(graph, "item_group_links"):
        groups = assignments.setdefault(link.item_key, OrderedDict())
        groups.setdefault(link.group_ref, [])

    for item_key, groups in assignments.items():
        item_id = maps.items.get(item_key)
        if item_id is None:
            group_key = next(iter(groups))
            raise UnresolvedReferenceError(
                step, ENTITY_OVERRIDE, f"{item_key}/{group_key}", ENTITY_ITEM, item_key
            )

        rows = []
        for display_order, (group_key, overrides) in enumerate(groups.items()):
            group_id = maps.modifier_groups.get(group_key)
            if group_id is None:
                raise UnresolvedReferenceError(
                    step, ENTITY_OVERRIDE, f"{item_key}/{group_key}", ENTITY_MODIFIER_GROUP, group_key
                )

            modifier_overrides = []
            for override in overrides:
                identifier = "/".join(override.natural_key)
                modifier_id = maps.modifiers.get(override.modifier_ref)
                if modifier_id is None:
                    raise UnresolvedReferenceError(
                        step, ENTITY_OVERRIDE, identifier, ENTITY_MODIFIER, override.modifier_key
                    )
                modifier_overrides.append(
                    {
                        "modifier_id": modifier_id,
                        "max_quantity": override.max_quantity,
                        "is_default": override.is_default,
                        "prices_by_size": _stored_price_table(
                            override.prices_by_size, maps, step, ENTITY_OVERRIDE, identifier
                        ),
                        "quantity_levels": _stored_quantity_levels(
                            override.quantity_levels, maps, step, ENTITY_OVERRIDE, identifier
                        ),
                    }
                )

            rows.append(
                {
                    "modifier_group_id": group_id,
                    "display_order": display_order,
                    "modifier_overrides": modifier_overrides,
                }
            )

        with _writing(step, ENTITY_ITEM, item_key):
            menu_catalog_service.replace_item_modifier_groups(item_id, rows, session=sess)
        result.add_updated(step)
        result.add_created(step, len(rows))


_STEP_HANDLERS = OrderedDict(
    [
        (STEP_CATEGORIES, _commit_categories),
        (STEP_SIZES, _commit_sizes),
        (STEP_MODIFIER_GROUPS, _commit_modifier_groups),
        (STEP_MODIFIERS, _commit_modifiers),
        (STEP_ITEMS, _commit_items),
        (STEP_ITEM_SIZES, _commit_item_sizes),
        (STEP_ITEM_MODIFIER_GROUPS, _commit_item_modifier_groups),
    ]
)


# ============================================================================
# Public API
# ============================================================================


def commit_import(
    graph: MenuImportGraph,
    business_id: str,
    session: Optional[Session] = None,
    deadline: Optional[float] = None,
) -> MenuImportResult:
    """
    Upsert a validated import graph into the catalog store.

    Args:
        graph: Canonical import graph (already validated)
        business_id: Catalog scope; every entity is written under it
        session: Optional session; the caller then owns the transaction
        deadline: Optional time.monotonic() deadline (see deadline_in())

    Returns:
        MenuImportResult with per-step created/updated counts

    Raises:
        UnresolvedReferenceError: A natural key has no store id
        CommitDeadlineExceeded: The deadline passed before a step started
        CommitError: Any store failure, naming the step and entity
    """

    def _impl(sess: Session) -> MenuImportResult:
        result = MenuImportResult(business_id)
        maps = ImportIdMaps()
        for step, handler in _STEP_HANDLERS.items():
            if deadline_passed(deadline):
                raise CommitDeadlineExceeded(step)
            handler(graph, business_id, maps, result, sess)
            counts = result.entity_counts[step]
            log_operation(
                logger,
                operation="commit_step",
                outcome="success",
                level=logging.DEBUG,
                business_id=business_id,
                step=step,
                created_count=counts.created,
                updated_count=counts.updated,
            )
        return result

    try:
        if session is not None:
            result = _impl(session)
        else:
            with session_scope() as sess:
                result = _impl(sess)
    except CommitError as e:
        log_operation(
            logger,
            operation="commit_import",
            outcome="error",
            level=logging.ERROR,
            business_id=business_id,
            step=e.step,
            error=str(e),
        )
        raise

    log_operation(
        logger,
        operation="commit_import",
        outcome="success",
        business_id=business_id,
        created_count=result.total_created,
        updated_count=result.total_updated,
    )
    return result


def validate_upload(
    upload: bytes, filename: str, business_id: str
) -> Tuple[ParsedUpload, ValidationReport]:
    """
    Parse and validate an upload without touching the store.

    Raises:
        ImportFormatError: If the upload cannot be read
    """
    parsed = parse_upload(upload, filename)
    report = validate_import(parsed.graph, business_id)
    return parsed, report


def import_menu(
    upload: bytes,
    filename: str,
    business_id: str,
    dry_run: bool = False,
    session: Optional[Session] = None,
    deadline: Optional[float] = None,
) -> MenuImportResult:
    """
    Import a menu upload: parse, validate, then commit atomically.

    Args:
        upload: Raw uploaded bytes (CSV or ZIP of CSVs)
        filename: Original file name
        business_id: Catalog scope
        dry_run: If True, run the full commit and roll it back
        session: Optional SQLAlchemy session for transactional composition
        deadline: Optional time.monotonic() deadline for the commit

    Returns:
        MenuImportResult (warnings included)

    Raises:
        ImportFormatError: If the upload cannot be read
        ImportValidationFailed: If validation found blocking errors
        CommitError: If the commit failed (nothing was written)
    """
    parsed, report = validate_upload(upload, filename, business_id)
    if not report.is_valid:
        log_operation(
            logger,
            operation="import_menu",
            outcome="validation_failed",
            level=logging.WARNING,
            business_id=business_id,
            upload_name=filename,
            error_count=report.error_count,
        )
        raise ImportValidationFailed(report)

    if session is not None:
        if dry_run:
            savepoint = session.begin_nested()
            try:
                result = commit_import(parsed.graph, business_id, session=session, deadline=deadline)
            finally:
                savepoint.rollback()
        else:
            result = commit_import(parsed.graph, business_id, session=session, deadline=deadline)
    else:
        with session_scope() as sess:
            result = commit_import(parsed.graph, business_id, session=sess, deadline=deadline)
            if dry_run:
                sess.rollback()

    result.dry_run = dry_run
    result.warnings = list(report.warnings)
    result.source_files = list(parsed.source_files)

    log_operation(
        logger,
        operation="import_menu",
        outcome="dry_run" if dry_run else "success",
        business_id=business_id,
        upload_name=filename,
        source_files=parsed.source_files,
        warning_count=report.warning_count,
    )
    return result
