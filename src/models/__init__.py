"""
Database models package.

This package contains all SQLAlchemy ORM models for the menu catalog.
"""

from .base import Base, BaseModel
from .menu_category import MenuCategory
from .item_size import ItemSize
from .modifier_group import ModifierGroup, Modifier
from .menu_item import MenuItem, MenuItemSize, ItemModifierGroup

__all__ = [
    "Base",
    "BaseModel",
    "MenuCategory",
    "ItemSize",
    "ModifierGroup",
    "Modifier",
    "MenuItem",
    "MenuItemSize",
    "ItemModifierGroup",
]
