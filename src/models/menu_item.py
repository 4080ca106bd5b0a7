"""
MenuItem model and its item-owned link tables.

- MenuItem: a sellable item inside a category
- MenuItemSize: per-item price configuration for a catalog size
- ItemModifierGroup: assignment of a modifier group to an item, with
  per-modifier overrides stored as JSON:

    modifier_overrides: [{"modifier_id": 7, "max_quantity": 2,
                          "is_default": false,
                          "prices_by_size": [{"size_id": 3, "price_delta": 0.5}],
                          "quantity_levels": [...]}]
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel, NamedMixin, ScopedMixin


class MenuItem(ScopedMixin, NamedMixin, BaseModel):
    """
    MenuItem model.

    Natural key within the store is (name, category): two items may share a
    name only when they belong to different categories. Items without a
    category are unique by name within the catalog scope.

    Attributes:
        business_id: Catalog scope
        category_id: Owning MenuCategory (None for uncategorized items)
        name / name_key: Display name and its normalized form
        base_price: Price used when the item is not sizeable
        is_sizeable: Whether the item is priced per size
        default_size_id: Preselected ItemSize (sizeable items)
        max_per_order: Optional per-order cap

    Relationships:
        category: Many-to-One with MenuCategory
        default_size: Many-to-One with ItemSize
        sizes: One-to-Many with MenuItemSize (cascade delete)
        modifier_groups: One-to-Many with ItemModifierGroup (cascade delete)
    """

    __tablename__ = "menu_items"

    category_id = Column(
        Integer, ForeignKey("menu_categories.id", ondelete="RESTRICT"), nullable=True
    )
    description = Column(Text, nullable=True)
    base_price = Column(Float, nullable=False, default=0.0)
    is_sizeable = Column(Boolean, nullable=False, default=False)
    is_customizable = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    is_available = Column(Boolean, nullable=False, default=True)
    is_signature = Column(Boolean, nullable=False, default=False)
    max_per_order = Column(Integer, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    default_size_id = Column(
        Integer, ForeignKey("item_sizes.id", ondelete="SET NULL"), nullable=True
    )

    category = relationship("MenuCategory", back_populates="items")
    default_size = relationship("ItemSize", foreign_keys=[default_size_id])
    sizes = relationship(
        "MenuItemSize",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="MenuItemSize.id",
        lazy="select",
    )
    modifier_groups = relationship(
        "ItemModifierGroup",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="ItemModifierGroup.display_order",
        lazy="select",
    )

    __table_args__ = (
        UniqueConstraint("category_id", "name_key", name="uq_menu_item_category_name"),
        # NULL category ids never collide in the constraint above
        Index(
            "uq_menu_item_uncategorized_name",
            "business_id",
            "name_key",
            unique=True,
            sqlite_where=text("category_id IS NULL"),
            postgresql_where=text("category_id IS NULL"),
        ),
        Index("idx_menu_item_category", "category_id"),
    )

    def __repr__(self) -> str:
        return f"MenuItem(id={self.id}, name='{self.name}', category_id={self.category_id})"

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert item to dictionary.

        Args:
            include_relationships: If True, include sizes and modifier group
                assignments (category and default size are reported by id)

        Returns:
            Dictionary representation
        """
        result = super().to_dict(False)

        if include_relationships:
            result["sizes"] = [s.to_dict() for s in self.sizes]
            result["modifier_groups"] = [g.to_dict() for g in self.modifier_groups]

        return result


class MenuItemSize(BaseModel):
    """Per-item price for one catalog size."""

    __tablename__ = "menu_item_sizes"

    item_id = Column(Integer, ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False)
    size_id = Column(Integer, ForeignKey("item_sizes.id", ondelete="CASCADE"), nullable=False)
    price = Column(Float, nullable=False, default=0.0)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    item = relationship("MenuItem", back_populates="sizes")
    size = relationship("ItemSize")

    __table_args__ = (UniqueConstraint("item_id", "size_id", name="uq_menu_item_size"),)


class ItemModifierGroup(BaseModel):
    """Assignment of a modifier group to an item."""

    __tablename__ = "item_modifier_groups"

    item_id = Column(Integer, ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False)
    modifier_group_id = Column(
        Integer, ForeignKey("modifier_groups.id", ondelete="CASCADE"), nullable=False
    )
    display_order = Column(Integer, nullable=False, default=0)
    modifier_overrides = Column(JSON, nullable=True)

    item = relationship("MenuItem", back_populates="modifier_groups")
    modifier_group = relationship("ModifierGroup")

    __table_args__ = (
        UniqueConstraint("item_id", "modifier_group_id", name="uq_item_modifier_group"),
    )

    def __repr__(self) -> str:
        return (
            f"ItemModifierGroup(item_id={self.item_id}, "
            f"modifier_group_id={self.modifier_group_id}, display_order={self.display_order})"
        )
