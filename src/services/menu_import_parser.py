"""
Menu Import Parser - turns uploaded CSV bytes into the canonical import graph.

Supports two tabular encodings, auto-detected per file by header inspection:

- Entity-specific: one file per entity kind (items.csv, sizes.csv,
  modifier_groups.csv, modifiers.csv, overrides.csv, categories.csv). The
  kind comes from the filename, falling back to per-row column signatures.
- Generic: a `type` + `name` header; every row declares its own kind
  (CATEGORY, ITEM, SIZE, MOD_GROUP, MODIFIER) and names its owner in
  `parent`.

A single CSV or a ZIP archive of CSVs may be uploaded. Archive members are
parsed independently and concatenated per entity kind.

The parser never rejects on business grounds (duplicates, missing
references); cells that cannot be coerced become FieldParseError entries on
the graph for the validator to report.

Usage:
    from src.services.menu_import_parser import parse_upload

    graph, source_files = parse_upload(data, "menu.zip")
"""

import csv
import io
import json
import logging
import math
import posixpath
import zipfile
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from src.services.exceptions import EmptyImportError, ImportFormatError
from src.services.logging_utils import get_service_logger, log_operation
from src.services.menu_import_graph import (
    CategoryRecord,
    FieldParseError,
    ItemGroupLinkRecord,
    ItemRecord,
    MenuImportGraph,
    ModifierGroupRecord,
    ModifierRecord,
    OverrideRecord,
    QuantityLevel,
    SizePriceDelta,
    SizeRecord,
)
from src.utils.constants import (
    ARCHIVE_EXTENSIONS,
    COLUMN_ALIASES,
    DEFAULT_MAX_SELECT,
    DEFAULT_MIN_SELECT,
    DISPLAY_TYPE_MULTI,
    DISPLAY_TYPE_SINGLE,
    ENTITY_CATEGORY,
    ENTITY_ITEM,
    ENTITY_MODIFIER,
    ENTITY_MODIFIER_GROUP,
    ENTITY_OVERRIDE,
    ENTITY_SIZE,
    ENTITY_UPLOAD,
    GENERIC_ROW_TYPES,
    ROW_TYPE_CATEGORY,
    ROW_TYPE_ITEM,
    ROW_TYPE_MOD_GROUP,
    ROW_TYPE_MODIFIER,
    ROW_TYPE_SIZE,
    TABULAR_EXTENSIONS,
    TRUTHY_STRINGS,
    ZIP_MAGIC,
)

logger = get_service_logger(__name__)


class ParsedUpload(NamedTuple):
    """Result of parsing one upload."""

    graph: MenuImportGraph
    source_files: List[str]


# ============================================================================
# Cell Coercion
# ============================================================================


class _RowReader:
    """Typed access to one CSV row, collecting coercion failures."""

    def __init__(
        self,
        row: Dict[str, str],
        filename: str,
        line: int,
        entity: str,
        errors: List[FieldParseError],
    ):
        self.row = row
        self.filename = filename
        self.line = line
        self.entity = entity
        self._errors = errors

    def error(self, field: str, message: str, value: Any = None) -> None:
        self._errors.append(
            FieldParseError(
                file=self.filename,
                row=self.line,
                entity=self.entity,
                field=field,
                message=message,
                value=value,
            )
        )

    def has(self, column: str) -> bool:
        return bool(self.row.get(column))

    def text(self, *columns: str) -> Optional[str]:
        """First non-blank value among the given columns."""
        for column in columns:
            value = self.row.get(column)
            if value:
                return value
        return None

    def flag(self, column: str, default: Optional[bool] = False) -> Optional[bool]:
        value = self.row.get(column)
        if not value:
            return default
        return value.strip().lower() in TRUTHY_STRINGS

    def integer(self, column: str, default: Optional[int] = None) -> Optional[int]:
        value = self.row.get(column)
        if not value:
            return default
        try:
            return int(value)
        except ValueError:
            pass
        try:
            number = float(value)
        except ValueError:
            number = None
        if number is not None and math.isfinite(number) and number.is_integer():
            return int(number)
        self.error(column, f"{column} must be a whole number", value)
        return default

    def price(self, *columns: str) -> Optional[float]:
        for column in columns:
            value = self.row.get(column)
            if not value:
                continue
            try:
                number = float(value)
            except ValueError:
                self.error(column, f"{column} must be a number", value)
                return None
            if not math.isfinite(number):
                self.error(column, f"{column} must be a finite number", value)
                return None
            return number
        return None

    def _json_list(self, column: str) -> Optional[list]:
        value = self.row.get(column)
        if not value:
            return None
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError as e:
            self.error(column, f"{column} is not valid JSON: {e.msg}", value)
            return None
        if not isinstance(decoded, list):
            self.error(column, f"{column} must be a JSON array", value)
            return None
        return decoded

    def price_table(self, column: str = "prices_by_size") -> List[SizePriceDelta]:
        entries = self._json_list(column)
        if entries is None:
            return []
        return _decode_price_table(entries, lambda msg: self.error(column, msg, self.row[column]))

    def quantity_levels(self, column: str = "quantity_levels") -> List[QuantityLevel]:
        entries = self._json_list(column)
        if entries is None:
            return []

        levels: List[QuantityLevel] = []
        report = lambda msg: self.error(column, msg, self.row[column])  # noqa: E731
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                report(f"quantity level {index + 1} must be an object")
                continue
            quantity = _json_int(entry.get("quantity"))
            if quantity is None:
                report(f"quantity level {index + 1} needs a whole-number 'quantity'")
                continue
            price = entry.get("price")
            if price is not None and _json_float(price) is None:
                report(f"quantity level {index + 1} has a non-numeric 'price'")
                continue
            nested = entry.get("prices_by_size") or entry.get("pricesBySize") or []
            if not isinstance(nested, list):
                report(f"quantity level {index + 1} 'prices_by_size' must be an array")
                nested = []
            display_order = _json_int(entry.get("display_order", entry.get("displayOrder")))
            levels.append(
                QuantityLevel(
                    quantity=quantity,
                    name=entry.get("name"),
                    price=_json_float(price) if price is not None else None,
                    is_default=_json_bool(entry.get("is_default", entry.get("isDefault"))),
                    display_order=index if display_order is None else display_order,
                    is_active=_json_bool(entry.get("is_active", entry.get("isActive")), True),
                    prices_by_size=_decode_price_table(nested, report),
                )
            )
        return levels


def _json_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip():
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _json_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _json_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY_STRINGS


def _decode_price_table(entries: list, report: Callable[[str], None]) -> List[SizePriceDelta]:
    table: List[SizePriceDelta] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            report(f"price entry {index + 1} must be an object")
            continue
        code = entry.get("sizeCode", entry.get("size_code"))
        if not code or not str(code).strip():
            report(f"price entry {index + 1} needs a 'sizeCode'")
            continue
        raw_delta = entry.get("priceDelta", entry.get("price_delta", 0))
        delta = _json_float(raw_delta)
        if delta is None:
            report(f"price entry {index + 1} has a non-numeric 'priceDelta'")
            continue
        table.append(SizePriceDelta(size_code=str(code).strip(), price_delta=delta))
    return table


# ============================================================================
# CSV Reading
# ============================================================================


def _normalize_header(header: str) -> str:
    name = header.strip().lower().replace(" ", "_").replace("-", "_")
    return COLUMN_ALIASES.get(name, name)


def _decode_text(data: bytes, filename: str) -> str:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ImportFormatError(f"file is not UTF-8 text ({e.reason})", filename)
    if "\x00" in text:
        raise ImportFormatError("file is binary, not a CSV table", filename)
    return text


def read_csv_rows(text: str, filename: str) -> Tuple[List[str], List[Tuple[int, Dict[str, str]]]]:
    """
    Read CSV text into normalized headers and (row number, row) pairs.

    Row numbers count CSV records, not physical lines, so a quoted cell
    spanning several lines is still one row. The header is row 1. Blank
    records before the header are ignored; blank records after it keep
    their number but are not returned.

    Raises:
        ImportFormatError: On malformed CSV syntax or a row wider than the header
    """
    reader = csv.reader(io.StringIO(text, newline=""), strict=True)

    def next_record() -> Optional[List[str]]:
        try:
            return next(reader)
        except StopIteration:
            return None
        except csv.Error as e:
            raise ImportFormatError(str(e), filename, reader.line_num)

    header = next_record()
    while header is not None and not any(cell.strip() for cell in header):
        header = next_record()
    if header is None:
        return [], []

    headers = [_normalize_header(h) for h in header]
    rows: List[Tuple[int, Dict[str, str]]] = []
    row_number = 1

    while True:
        cells = next_record()
        if cells is None:
            break
        row_number += 1

        if not any(cell.strip() for cell in cells):
            continue
        if len(cells) > len(headers):
            raise ImportFormatError(
                f"row has {len(cells)} fields but the header has {len(headers)}",
                filename,
                reader.line_num,
            )
        row = {h: cell.strip() for h, cell in zip(headers, cells) if h}
        rows.append((row_number, row))

    return headers, rows


def is_generic_header(headers: List[str]) -> bool:
    """A header with both `type` and `name` columns uses the generic encoding."""
    return "type" in headers and "name" in headers


# ============================================================================
# Entity-Specific Encoding
# ============================================================================


def detect_kind_from_filename(filename: str) -> Optional[str]:
    """Infer the entity kind of an entity-specific file from its name."""
    lower = posixpath.basename(filename.replace("\\", "/")).lower()

    if "override" in lower:
        return ENTITY_OVERRIDE
    if "size" in lower:
        return ENTITY_SIZE
    if "modifier" in lower and "group" in lower:
        return ENTITY_MODIFIER_GROUP
    if "modifier" in lower:
        return ENTITY_MODIFIER
    if "categor" in lower:
        return ENTITY_CATEGORY
    if "item" in lower:
        return ENTITY_ITEM
    return None


def detect_kind_from_row(row: Dict[str, str]) -> Optional[str]:
    """Infer the entity kind of a row from the columns it fills in."""

    def has(*columns):
        return all(row.get(column) for column in columns)

    if has("item_key", "size_code"):
        return ENTITY_SIZE
    if has("item_key", "group_key", "modifier_key"):
        return ENTITY_OVERRIDE
    if has("group_key", "modifier_key", "name"):
        return ENTITY_MODIFIER
    if has("group_key", "name") and (
        row.get("display_type") or row.get("min_select") or row.get("max_select")
    ):
        return ENTITY_MODIFIER_GROUP
    if has("item_key", "name"):
        return ENTITY_ITEM
    if has("name") and not any(
        row.get(column) for column in ("item_key", "group_key", "modifier_key", "size_code")
    ):
        return ENTITY_CATEGORY
    return None


def _parse_category(r: _RowReader) -> CategoryRecord:
    return CategoryRecord(
        name=r.text("name") or "",
        business_id=r.text("business_id"),
        description=r.text("description"),
        sort_order=r.integer("sort_order", 0),
        is_active=r.flag("is_active", True),
    )


def _parse_item(r: _RowReader) -> ItemRecord:
    name = r.text("name") or ""
    return ItemRecord(
        item_key=r.text("item_key") or name,
        name=name,
        business_id=r.text("business_id"),
        description=r.text("description"),
        base_price=r.price("base_price"),
        category_id=r.text("category_id"),
        category_name=r.text("category_name"),
        is_sizeable=r.flag("is_sizeable", False),
        is_customizable=r.flag("is_customizable", None),
        is_active=r.flag("is_active", True),
        is_available=r.flag("is_available", True),
        is_signature=r.flag("is_signature", False),
        max_per_order=r.integer("max_per_order"),
        sort_order=r.integer("sort_order", 0),
        default_size_code=r.text("default_size_code"),
    )


def _parse_size(r: _RowReader) -> SizeRecord:
    code = r.text("size_code") or ""
    return SizeRecord(
        size_code=code,
        name=r.text("name") or code,
        item_key=r.text("item_key"),
        price=r.price("price"),
        display_order=r.integer("display_order", 0),
        is_active=r.flag("is_active", True),
        is_default=r.flag("is_default", False),
    )


def _parse_modifier_group(r: _RowReader) -> ModifierGroupRecord:
    name = r.text("name") or ""
    return ModifierGroupRecord(
        group_key=r.text("group_key") or name,
        name=name,
        business_id=r.text("business_id"),
        display_type=(r.text("display_type") or DISPLAY_TYPE_SINGLE).upper(),
        min_select=r.integer("min_select", DEFAULT_MIN_SELECT),
        max_select=r.integer("max_select", DEFAULT_MAX_SELECT),
        applies_per_quantity=r.flag("applies_per_quantity", False),
        is_active=r.flag("is_active", True),
        sort_order=r.integer("sort_order", 0),
        quantity_levels=r.quantity_levels(),
        prices_by_size=r.price_table(),
    )


def _parse_modifier(r: _RowReader) -> ModifierRecord:
    name = r.text("name") or ""
    return ModifierRecord(
        group_key=r.text("group_key") or "",
        modifier_key=r.text("modifier_key") or name,
        name=name,
        is_default=r.flag("is_default", False),
        max_quantity=r.integer("max_quantity"),
        display_order=r.integer("display_order", 0),
        is_active=r.flag("is_active", True),
    )


def _parse_override(r: _RowReader) -> OverrideRecord:
    return OverrideRecord(
        item_key=r.text("item_key") or "",
        group_key=r.text("group_key") or "",
        modifier_key=r.text("modifier_key") or "",
        max_quantity=r.integer("max_quantity"),
        is_default=r.flag("is_default", None),
        prices_by_size=r.price_table(),
        quantity_levels=r.quantity_levels(),
    )


# entity kind -> (record parser, graph list name)
_ENTITY_PARSERS = {
    ENTITY_CATEGORY: (_parse_category, "categories"),
    ENTITY_ITEM: (_parse_item, "items"),
    ENTITY_SIZE: (_parse_size, "sizes"),
    ENTITY_MODIFIER_GROUP: (_parse_modifier_group, "modifier_groups"),
    ENTITY_MODIFIER: (_parse_modifier, "modifiers"),
    ENTITY_OVERRIDE: (_parse_override, "overrides"),
}


def parse_entity_rows(rows: List[Tuple[int, Dict[str, str]]], filename: str) -> MenuImportGraph:
    """Parse rows of an entity-specific file into a partial graph."""
    graph = MenuImportGraph()
    file_kind = detect_kind_from_filename(filename)

    for line, row in rows:
        kind = file_kind or detect_kind_from_row(row)
        if kind is None:
            graph.parse_errors.append(
                FieldParseError(
                    file=filename,
                    row=line,
                    entity=ENTITY_UPLOAD,
                    field="",
                    message="could not determine entity kind from file name or columns",
                    value=None,
                )
            )
            continue

        parser, list_name = _ENTITY_PARSERS[kind]
        reader = _RowReader(row, filename, line, kind, graph.parse_errors)
        record = parser(reader)
        record.source_file = filename
        record.row_number = line
        getattr(graph, list_name).append(record)

    return graph


# ============================================================================
# Generic (type-column) Encoding
# ============================================================================


def parse_generic_rows(rows: List[Tuple[int, Dict[str, str]]], filename: str) -> MenuImportGraph:
    """
    Parse rows of a generic type-column file into a partial graph.

    `parent` names the owner by natural key: ITEM -> category name,
    SIZE -> item, MOD_GROUP -> item (the group is linked to that item),
    MODIFIER -> modifier group. Items are left with is_sizeable=None so
    parse_upload() can derive it from the SIZE rows of the whole upload.
    """
    graph = MenuImportGraph()

    for line, row in rows:
        row_type = (row.get("type") or "").strip().upper()
        name = row.get("name") or ""
        parent = row.get("parent") or None

        if row_type == ROW_TYPE_CATEGORY:
            r = _RowReader(row, filename, line, ENTITY_CATEGORY, graph.parse_errors)
            graph.categories.append(
                CategoryRecord(
                    name=name,
                    business_id=r.text("business_id"),
                    description=r.text("description"),
                    sort_order=r.integer("sort_order", 0),
                    is_active=r.flag("active", True),
                    source_file=filename,
                    row_number=line,
                )
            )
        elif row_type == ROW_TYPE_ITEM:
            r = _RowReader(row, filename, line, ENTITY_ITEM, graph.parse_errors)
            graph.items.append(
                ItemRecord(
                    item_key=name,
                    name=name,
                    business_id=r.text("business_id"),
                    description=r.text("description"),
                    base_price=r.price("price", "value"),
                    category_name=parent,
                    is_sizeable=None,
                    is_active=r.flag("active", True),
                    is_available=r.flag("available", True),
                    sort_order=r.integer("sort_order", 0),
                    source_file=filename,
                    row_number=line,
                )
            )
        elif row_type == ROW_TYPE_SIZE:
            r = _RowReader(row, filename, line, ENTITY_SIZE, graph.parse_errors)
            graph.sizes.append(
                SizeRecord(
                    size_code=name,
                    name=r.text("display_name") or name,
                    item_key=parent,
                    price=r.price("price", "value"),
                    display_order=r.integer("sort_order", 0),
                    is_active=r.flag("active", True),
                    is_default=r.flag("is_default", False),
                    source_file=filename,
                    row_number=line,
                )
            )
        elif row_type == ROW_TYPE_MOD_GROUP:
            r = _RowReader(row, filename, line, ENTITY_MODIFIER_GROUP, graph.parse_errors)
            graph.modifier_groups.append(
                ModifierGroupRecord(
                    group_key=name,
                    name=name,
                    business_id=r.text("business_id"),
                    display_type=(r.text("display_type") or DISPLAY_TYPE_MULTI).upper(),
                    min_select=r.integer("min_select", DEFAULT_MIN_SELECT),
                    max_select=r.integer("max_select", DEFAULT_MAX_SELECT),
                    is_active=r.flag("active", True),
                    sort_order=r.integer("sort_order", 0),
                    source_file=filename,
                    row_number=line,
                )
            )
            if parent:
                graph.item_group_links.append(
                    ItemGroupLinkRecord(
                        item_key=parent,
                        group_key=name,
                        source_file=filename,
                        row_number=line,
                    )
                )
        elif row_type == ROW_TYPE_MODIFIER:
            r = _RowReader(row, filename, line, ENTITY_MODIFIER, graph.parse_errors)
            graph.modifiers.append(
                ModifierRecord(
                    group_key=parent or "",
                    modifier_key=name,
                    name=name,
                    is_default=r.flag("is_default", False),
                    max_quantity=r.integer("max_quantity"),
                    display_order=r.integer("sort_order", 0),
                    is_active=r.flag("active", True),
                    source_file=filename,
                    row_number=line,
                )
            )
        else:
            graph.parse_errors.append(
                FieldParseError(
                    file=filename,
                    row=line,
                    entity=ENTITY_UPLOAD,
                    field="type",
                    message=(
                        "type is required"
                        if not row_type
                        else f"unknown row type '{row.get('type')}'; expected one of "
                        f"{', '.join(GENERIC_ROW_TYPES)}"
                    ),
                    value=row.get("type"),
                )
            )

    return graph


# ============================================================================
# Upload Entry Points
# ============================================================================


def parse_table(data: bytes, filename: str) -> MenuImportGraph:
    """
    Parse one CSV file, auto-detecting its encoding.

    Args:
        data: Raw file bytes
        filename: File name (used for entity-kind detection and error reporting)

    Returns:
        Partial MenuImportGraph for this file
    """
    text = _decode_text(data, filename)
    headers, rows = read_csv_rows(text, filename)

    if is_generic_header(headers):
        graph = parse_generic_rows(rows, filename)
        encoding = "generic"
    else:
        graph = parse_entity_rows(rows, filename)
        encoding = "entity"

    log_operation(
        logger,
        operation="parse_table",
        outcome="success",
        level=logging.DEBUG,
        source_file=filename,
        encoding=encoding,
        rows=len(rows),
    )
    return graph


def _has_extension(filename: str, extensions: List[str]) -> bool:
    lower = filename.lower()
    return any(lower.endswith(ext) for ext in extensions)


def _is_archive(upload: bytes, filename: str) -> bool:
    return _has_extension(filename, ARCHIVE_EXTENSIONS) or upload.startswith(ZIP_MAGIC)


def _is_tabular_member(info: zipfile.ZipInfo) -> bool:
    if info.is_dir():
        return False
    name = info.filename
    basename = posixpath.basename(name)
    if name.startswith("__MACOSX/") or basename.startswith("."):
        return False
    return _has_extension(basename, TABULAR_EXTENSIONS)


def _parse_archive(upload: bytes, filename: str) -> ParsedUpload:
    graph = MenuImportGraph()
    source_files: List[str] = []

    try:
        archive = zipfile.ZipFile(io.BytesIO(upload))
    except zipfile.BadZipFile as e:
        raise ImportFormatError(f"unreadable archive: {e}", filename)

    with archive:
        for info in archive.infolist():
            if not _is_tabular_member(info):
                continue
            try:
                data = archive.read(info)
            except (zipfile.BadZipFile, RuntimeError, NotImplementedError) as e:
                raise ImportFormatError(f"unreadable archive member: {e}", info.filename)
            source_files.append(info.filename)
            graph.merge(parse_table(data, info.filename))

    if not source_files:
        raise EmptyImportError(filename, "archive contains no CSV files")

    return ParsedUpload(graph, source_files)


def _finalize_graph(graph: MenuImportGraph) -> MenuImportGraph:
    """Derive is_sizeable for generic items from the SIZE rows of the upload."""
    sized_items = {size.item_key for size in graph.sizes if size.item_key}
    for item in graph.items:
        if item.is_sizeable is None:
            item.is_sizeable = item.item_key in sized_items
    return graph


def parse_upload(upload: bytes, filename: str) -> ParsedUpload:
    """
    Parse an uploaded CSV file or ZIP archive of CSV files.

    Args:
        upload: Raw uploaded bytes
        filename: Original file name

    Returns:
        ParsedUpload(graph, source_files)

    Raises:
        EmptyImportError: Empty upload, or archive without CSV members
        ImportFormatError: Unsupported file type, unreadable archive,
            non-UTF-8 text or malformed CSV (with line number)
    """
    filename = filename or "upload.csv"

    if not upload or not upload.strip():
        raise EmptyImportError(filename, "upload is empty")

    if _is_archive(upload, filename):
        parsed = _parse_archive(upload, filename)
    else:
        basename = posixpath.basename(filename.replace("\\", "/"))
        if "." in basename and not _has_extension(basename, TABULAR_EXTENSIONS):
            raise ImportFormatError("unsupported file type; upload a .csv or .zip file", filename)
        parsed = ParsedUpload(parse_table(upload, filename), [filename])

    graph = _finalize_graph(parsed.graph)
    if graph.is_empty:
        raise EmptyImportError(filename, "no data rows found")

    log_operation(
        logger,
        operation="parse_upload",
        outcome="success",
        source_files=parsed.source_files,
        parse_errors=len(graph.parse_errors),
        **graph.counts(),
    )
    return ParsedUpload(graph, parsed.source_files)
