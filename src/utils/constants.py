"""
Constants and enumerations for the Menu Catalog importer.

This module defines all system-wide constants including:
- Application metadata
- Modifier group display types
- Import column aliases and truthy strings
- Generic (type-column) row types
"""

from typing import Dict, FrozenSet, List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Menu Catalog"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"
DATABASE_FILENAME = "menu_catalog.db"

# ============================================================================
# Modifier Groups
# ============================================================================

DISPLAY_TYPE_SINGLE = "RADIO"  # Single-select
DISPLAY_TYPE_MULTI = "CHECKBOX"  # Multi-select

DISPLAY_TYPES: List[str] = [DISPLAY_TYPE_SINGLE, DISPLAY_TYPE_MULTI]

DEFAULT_MIN_SELECT = 0
DEFAULT_MAX_SELECT = 1

# ============================================================================
# Import Entity Kinds
# ============================================================================

ENTITY_CATEGORY = "Category"
ENTITY_ITEM = "Item"
ENTITY_SIZE = "Size"
ENTITY_MODIFIER_GROUP = "ModifierGroup"
ENTITY_MODIFIER = "Modifier"
ENTITY_OVERRIDE = "ItemModifierOverride"
ENTITY_ITEM_GROUP_LINK = "ItemModifierGroupLink"
ENTITY_UPLOAD = "Upload"

# Generic (type-column) row types
ROW_TYPE_CATEGORY = "CATEGORY"
ROW_TYPE_ITEM = "ITEM"
ROW_TYPE_SIZE = "SIZE"
ROW_TYPE_MOD_GROUP = "MOD_GROUP"
ROW_TYPE_MODIFIER = "MODIFIER"

GENERIC_ROW_TYPES: List[str] = [
    ROW_TYPE_CATEGORY,
    ROW_TYPE_ITEM,
    ROW_TYPE_SIZE,
    ROW_TYPE_MOD_GROUP,
    ROW_TYPE_MODIFIER,
]

# ============================================================================
# Column Handling
# ============================================================================

TRUTHY_STRINGS: FrozenSet[str] = frozenset({"true", "1", "yes"})

# camelCase spellings accepted for entity-specific columns
COLUMN_ALIASES: Dict[str, str] = {
    "itemkey": "item_key",
    "businessid": "business_id",
    "categoryid": "category_id",
    "categoryname": "category_name",
    "defaultsizecode": "default_size_code",
    "sizecode": "size_code",
    "groupkey": "group_key",
    "modifierkey": "modifier_key",
    "displaytype": "display_type",
    "minselect": "min_select",
    "maxselect": "max_select",
    "baseprice": "base_price",
    "issizeable": "is_sizeable",
    "iscustomizable": "is_customizable",
    "isactive": "is_active",
    "isavailable": "is_available",
    "issignature": "is_signature",
    "isdefault": "is_default",
    "maxperorder": "max_per_order",
    "maxquantity": "max_quantity",
    "sortorder": "sort_order",
    "displayorder": "display_order",
    "displayname": "display_name",
    "appliesperquantity": "applies_per_quantity",
    "quantitylevels": "quantity_levels",
    "pricesbysize": "prices_by_size",
}

# ============================================================================
# Upload Handling
# ============================================================================

TABULAR_EXTENSIONS: List[str] = [".csv"]
ARCHIVE_EXTENSIONS: List[str] = [".zip"]
ZIP_MAGIC = b"PK\x03\x04"
