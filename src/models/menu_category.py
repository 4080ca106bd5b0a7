"""
MenuCategory model for top-level menu grouping.

Categories (e.g., "Drinks", "Burgers") own menu items. Within a catalog
scope a category is identified by its case-insensitive name.
"""

from sqlalchemy import Boolean, Column, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel, NamedMixin, ScopedMixin


class MenuCategory(ScopedMixin, NamedMixin, BaseModel):
    """
    MenuCategory model representing a menu section.

    Attributes:
        business_id: Catalog scope (tenant) the category belongs to
        name: Display name (e.g., "Drinks")
        name_key: Normalized name used for case-insensitive uniqueness
        description: Optional description text
        sort_order: Display ordering (default 0)
        is_active: Whether the category is shown

    Relationships:
        items: One-to-Many with MenuItem
    """

    __tablename__ = "menu_categories"

    description = Column(Text, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    items = relationship("MenuItem", back_populates="category", lazy="select")

    __table_args__ = (
        UniqueConstraint("business_id", "name_key", name="uq_menu_category_scope_name"),
    )

    def __repr__(self) -> str:
        return f"MenuCategory(id={self.id}, name='{self.name}')"
