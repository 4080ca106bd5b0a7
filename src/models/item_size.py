"""
ItemSize model for the global size catalog.

Sizes ("S", "M", "L") are defined once per catalog scope and referenced by
items (default size, per-item size prices) and by modifier group price
tables. The size code is the natural key.
"""

from sqlalchemy import Boolean, Column, Integer, String, UniqueConstraint

from .base import BaseModel, ScopedMixin


class ItemSize(ScopedMixin, BaseModel):
    """
    ItemSize model representing one entry of the size catalog.

    Attributes:
        business_id: Catalog scope the size belongs to
        code: Short natural key (e.g., "S", "L"), case-sensitive
        name: Display name (e.g., "Small")
        display_order: Ordering in size pickers
        is_active: Whether the size can be selected
    """

    __tablename__ = "item_sizes"

    code = Column(String(50), nullable=False)
    name = Column(String(100), nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (UniqueConstraint("business_id", "code", name="uq_item_size_scope_code"),)

    def __repr__(self) -> str:
        return f"ItemSize(id={self.id}, code='{self.code}')"
