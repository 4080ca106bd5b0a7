"""
ModifierGroup and Modifier models.

A modifier group ("Milk", "Toppings") collects modifiers and carries its
selection rules and pricing tables. Pricing tables are stored as JSON:

    quantity_levels: [{"quantity": 1, "name": "Single", "price": 0.5,
                       "is_default": true, "display_order": 0,
                       "is_active": true,
                       "prices_by_size": [{"size_id": 3, "price_delta": 0.25}]}]
    prices_by_size:  [{"size_id": 3, "price_delta": 0.25}]

Size references inside the tables are store ids, never size codes.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from src.utils.constants import DEFAULT_MAX_SELECT, DEFAULT_MIN_SELECT, DISPLAY_TYPE_SINGLE

from .base import BaseModel, NamedMixin, ScopedMixin


class ModifierGroup(ScopedMixin, NamedMixin, BaseModel):
    """
    ModifierGroup model.

    Attributes:
        business_id: Catalog scope
        name: Display name; natural key within the scope (case-insensitive)
        display_type: "RADIO" (single-select) or "CHECKBOX" (multi-select)
        min_select / max_select: Selection bounds
        applies_per_quantity: Whether pricing multiplies with item quantity
        quantity_levels: JSON list of quantity tiers
        prices_by_size: JSON list of per-size price deltas

    Relationships:
        modifiers: One-to-Many with Modifier (cascade delete)
    """

    __tablename__ = "modifier_groups"

    display_type = Column(String(20), nullable=False, default=DISPLAY_TYPE_SINGLE)
    min_select = Column(Integer, nullable=False, default=DEFAULT_MIN_SELECT)
    max_select = Column(Integer, nullable=False, default=DEFAULT_MAX_SELECT)
    applies_per_quantity = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    quantity_levels = Column(JSON, nullable=True)
    prices_by_size = Column(JSON, nullable=True)

    modifiers = relationship(
        "Modifier",
        back_populates="modifier_group",
        cascade="all, delete-orphan",
        order_by="Modifier.display_order",
        lazy="select",
    )

    __table_args__ = (
        UniqueConstraint("business_id", "name_key", name="uq_modifier_group_scope_name"),
    )

    def __repr__(self) -> str:
        return f"ModifierGroup(id={self.id}, name='{self.name}')"


class Modifier(NamedMixin, BaseModel):
    """
    Modifier model (one option inside a modifier group).

    Attributes:
        modifier_group_id: Owning group
        name: Display name; natural key within the group (case-insensitive)
        is_default: Preselected option
        max_quantity: Optional per-order cap (>= 1)
        display_order: Ordering inside the group
        is_active: Whether the option is offered
    """

    __tablename__ = "modifiers"

    modifier_group_id = Column(
        Integer, ForeignKey("modifier_groups.id", ondelete="CASCADE"), nullable=False
    )
    is_default = Column(Boolean, nullable=False, default=False)
    max_quantity = Column(Integer, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    modifier_group = relationship("ModifierGroup", back_populates="modifiers")

    __table_args__ = (
        UniqueConstraint("modifier_group_id", "name_key", name="uq_modifier_group_name"),
        Index("idx_modifier_group", "modifier_group_id"),
    )

    def __repr__(self) -> str:
        return f"Modifier(id={self.id}, name='{self.name}', group_id={self.modifier_group_id})"
