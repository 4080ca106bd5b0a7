"""
Canonical import graph for menu catalog uploads.

The ingestor turns every supported tabular encoding into this one
representation; the validator and the committer only ever see these typed
records. Records are keyed by human-assigned natural keys, never by store ids,
and every record remembers the file and row it came from so validation
issues point at an exact location.

Natural keys:
    Category        name (case-insensitive)
    Item            item_key (import-local); (name, category) in the store
    Size            size_code (global within the catalog scope)
    ModifierGroup   group_key (import-local; the name in the store)
    Modifier        (group_key, modifier_key)
    Override        (item_key, group_key, modifier_key)

item_key must match exactly. Group and modifier keys are compared through
normalize_name_key(), like the names they usually are, so "Ice" and "ice"
name the same group.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from src.utils.constants import (
    DEFAULT_MAX_SELECT,
    DEFAULT_MIN_SELECT,
    DISPLAY_TYPE_SINGLE,
)
from src.utils.name_keys import normalize_name_key


def _ref(key: Optional[str]) -> str:
    return normalize_name_key(key) or ""


# ============================================================================
# Nested Pricing Structures
# ============================================================================


@dataclass
class SizePriceDelta:
    """Price delta for one size, referenced by size code."""

    size_code: str
    price_delta: float = 0.0


@dataclass
class QuantityLevel:
    """One quantity tier of a modifier group or override."""

    quantity: int
    name: Optional[str] = None
    price: Optional[float] = None
    is_default: bool = False
    display_order: int = 0
    is_active: bool = True
    prices_by_size: List[SizePriceDelta] = field(default_factory=list)


# ============================================================================
# Entity Records
# ============================================================================


@dataclass
class CategoryRecord:
    name: str
    business_id: Optional[str] = None
    description: Optional[str] = None
    sort_order: int = 0
    is_active: bool = True
    source_file: str = ""
    row_number: int = 0


@dataclass
class ItemRecord:
    item_key: str
    name: str
    business_id: Optional[str] = None
    description: Optional[str] = None
    base_price: Optional[float] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    # None until derived from the upload's SIZE rows (generic encoding)
    is_sizeable: Optional[bool] = False
    is_customizable: Optional[bool] = None
    is_active: bool = True
    is_available: bool = True
    is_signature: bool = False
    max_per_order: Optional[int] = None
    sort_order: int = 0
    default_size_code: Optional[str] = None
    source_file: str = ""
    row_number: int = 0

    @property
    def natural_key(self) -> Tuple[Optional[str], Optional[str]]:
        """(name, category) key used for uniqueness in the store."""
        category = self.category_name if self.category_name else self.category_id
        return normalize_name_key(self.name), normalize_name_key(category)


@dataclass
class SizeRecord:
    """A catalog size row; item_key marks the item the row prices (optional)."""

    size_code: str
    name: str
    item_key: Optional[str] = None
    price: Optional[float] = None
    display_order: int = 0
    is_active: bool = True
    is_default: bool = False
    source_file: str = ""
    row_number: int = 0


@dataclass
class ModifierGroupRecord:
    group_key: str
    name: str
    business_id: Optional[str] = None
    display_type: str = DISPLAY_TYPE_SINGLE
    min_select: int = DEFAULT_MIN_SELECT
    max_select: int = DEFAULT_MAX_SELECT
    applies_per_quantity: bool = False
    is_active: bool = True
    sort_order: int = 0
    quantity_levels: List[QuantityLevel] = field(default_factory=list)
    prices_by_size: List[SizePriceDelta] = field(default_factory=list)
    source_file: str = ""
    row_number: int = 0

    @property
    def group_ref(self) -> str:
        return _ref(self.group_key)


@dataclass
class ModifierRecord:
    group_key: str
    modifier_key: str
    name: str
    is_default: bool = False
    max_quantity: Optional[int] = None
    display_order: int = 0
    is_active: bool = True
    source_file: str = ""
    row_number: int = 0

    @property
    def natural_key(self) -> Tuple[str, str]:
        return self.group_key, self.modifier_key

    @property
    def group_ref(self) -> str:
        return _ref(self.group_key)

    @property
    def ref(self) -> Tuple[str, str]:
        """(group, modifier) as matched by overrides and the commit id maps."""
        return self.group_ref, _ref(self.modifier_key)


@dataclass
class OverrideRecord:
    item_key: str
    group_key: str
    modifier_key: str
    max_quantity: Optional[int] = None
    is_default: Optional[bool] = None
    prices_by_size: List[SizePriceDelta] = field(default_factory=list)
    quantity_levels: List[QuantityLevel] = field(default_factory=list)
    source_file: str = ""
    row_number: int = 0

    @property
    def natural_key(self) -> Tuple[str, str, str]:
        return self.item_key, self.group_key, self.modifier_key

    @property
    def group_ref(self) -> str:
        return _ref(self.group_key)

    @property
    def modifier_ref(self) -> Tuple[str, str]:
        return self.group_ref, _ref(self.modifier_key)


@dataclass
class ItemGroupLinkRecord:
    """Assignment of a modifier group to an item without modifier overrides."""

    item_key: str
    group_key: str
    source_file: str = ""
    row_number: int = 0

    @property
    def group_ref(self) -> str:
        return _ref(self.group_key)


@dataclass
class FieldParseError:
    """A cell the ingestor could not coerce; reported as a blocking error."""

    file: str
    row: int
    entity: str
    field: str
    message: str
    value: Any = None


# ============================================================================
# Graph
# ============================================================================

ENTITY_LISTS = (
    "categories",
    "items",
    "sizes",
    "modifier_groups",
    "modifiers",
    "overrides",
    "item_group_links",
)


@dataclass
class MenuImportGraph:
    """Record-of-lists holding every entity of one import."""

    categories: List[CategoryRecord] = field(default_factory=list)
    items: List[ItemRecord] = field(default_factory=list)
    sizes: List[SizeRecord] = field(default_factory=list)
    modifier_groups: List[ModifierGroupRecord] = field(default_factory=list)
    modifiers: List[ModifierRecord] = field(default_factory=list)
    overrides: List[OverrideRecord] = field(default_factory=list)
    item_group_links: List[ItemGroupLinkRecord] = field(default_factory=list)
    parse_errors: List[FieldParseError] = field(default_factory=list)

    def merge(self, other: "MenuImportGraph") -> "MenuImportGraph":
        """Concatenate another graph into this one, per entity kind.

        No deduplication happens here; duplicates are the validator's job.
        """
        for name in ENTITY_LISTS:
            getattr(self, name).extend(getattr(other, name))
        self.parse_errors.extend(other.parse_errors)
        return self

    def counts(self) -> Dict[str, int]:
        """Number of records per entity kind."""
        return {name: len(getattr(self, name)) for name in ENTITY_LISTS}

    @property
    def total_records(self) -> int:
        return sum(self.counts().values())

    @property
    def is_empty(self) -> bool:
        return self.total_records == 0 and not self.parse_errors


def entity_list(graph: MenuImportGraph, name: str) -> list:
    """Return an entity list, treating a missing or None list as empty."""
    value = getattr(graph, name, None)
    return value if value is not None else []
