"""
Menu Catalog Service - store access for the menu catalog entities.

Natural-key lookups, create and update operations for categories, sizes,
modifier groups, modifiers and items, plus replacement of the item-owned
link rows (per-item size prices and modifier group assignments). Catalog
entities are never deleted here.

Session Management Pattern:
- All functions accept optional `session` parameter
- If session is provided, use it directly (allows callers to manage transactions)
- If session is None, create a new session_scope for the operation

Creates and updates flush immediately so generated ids are available and
unique-index violations surface at the call that caused them.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from src.models import (
    ItemModifierGroup,
    ItemSize,
    MenuCategory,
    MenuItem,
    MenuItemSize,
    Modifier,
    ModifierGroup,
)
from src.services.database import session_scope
from src.services.exceptions import EntityNotFound, ValidationError
from src.utils.name_keys import normalize_code, normalize_name_key


# ============================================================================
# Utility Functions
# ============================================================================


def _require_name(name: Optional[str], entity_label: str) -> None:
    if normalize_name_key(name) is None:
        raise ValidationError([f"{entity_label} name cannot be empty"])


def _create(sess: Session, model, fields: Dict[str, Any]):
    entity = model(**fields)
    sess.add(entity)
    sess.flush()
    return entity


def _update(sess: Session, model, entity_id: int, updates: Dict[str, Any]):
    entity = sess.get(model, entity_id)
    if entity is None:
        raise EntityNotFound(model.__name__, entity_id)
    entity.update_from_dict(updates)
    sess.flush()
    return entity


# ============================================================================
# Categories
# ============================================================================


def find_category(
    business_id: str, name: str, session: Optional[Session] = None
) -> Optional[MenuCategory]:
    """
    Find a category by case-insensitive name within a catalog scope.

    Args:
        business_id: Catalog scope
        name: Category name (any casing/spacing)
        session: Optional database session

    Returns:
        MenuCategory or None
    """

    def _impl(sess: Session) -> Optional[MenuCategory]:
        return (
            sess.query(MenuCategory)
            .filter(
                MenuCategory.business_id == business_id,
                MenuCategory.name_key == normalize_name_key(name),
            )
            .first()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def get_category(
    business_id: str, category_id: int, session: Optional[Session] = None
) -> Optional[MenuCategory]:
    """Get a category by store id, only if it belongs to the catalog scope."""

    def _impl(sess: Session) -> Optional[MenuCategory]:
        return (
            sess.query(MenuCategory)
            .filter(MenuCategory.business_id == business_id, MenuCategory.id == category_id)
            .first()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def create_category(
    business_id: str,
    name: str,
    description: Optional[str] = None,
    sort_order: int = 0,
    is_active: bool = True,
    session: Optional[Session] = None,
) -> MenuCategory:
    """
    Create a new menu category.

    Raises:
        ValidationError: If name is empty
    """
    _require_name(name, "Category")
    fields = {
        "business_id": business_id,
        "name": name.strip(),
        "description": description,
        "sort_order": sort_order,
        "is_active": is_active,
    }

    if session is not None:
        return _create(session, MenuCategory, fields)

    with session_scope() as sess:
        return _create(sess, MenuCategory, fields)


def update_category(
    category_id: int, updates: Dict[str, Any], session: Optional[Session] = None
) -> MenuCategory:
    """
    Update an existing category in place.

    Raises:
        EntityNotFound: If the category does not exist
    """
    if session is not None:
        return _update(session, MenuCategory, category_id, updates)

    with session_scope() as sess:
        return _update(sess, MenuCategory, category_id, updates)


def list_categories(business_id: str, session: Optional[Session] = None) -> List[MenuCategory]:
    """List categories of a catalog scope ordered by sort_order, then name."""

    def _impl(sess: Session) -> List[MenuCategory]:
        return (
            sess.query(MenuCategory)
            .filter(MenuCategory.business_id == business_id)
            .order_by(MenuCategory.sort_order, MenuCategory.name)
            .all()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


# ============================================================================
# Sizes
# ============================================================================


def find_size(business_id: str, code: str, session: Optional[Session] = None) -> Optional[ItemSize]:
    """Find a size by its (case-sensitive) code within a catalog scope."""

    def _impl(sess: Session) -> Optional[ItemSize]:
        return (
            sess.query(ItemSize)
            .filter(ItemSize.business_id == business_id, ItemSize.code == normalize_code(code))
            .first()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def create_size(
    business_id: str,
    code: str,
    name: Optional[str] = None,
    display_order: int = 0,
    is_active: bool = True,
    session: Optional[Session] = None,
) -> ItemSize:
    """
    Create a new catalog size. The display name defaults to the code.

    Raises:
        ValidationError: If code is empty
    """
    code = normalize_code(code)
    if code is None:
        raise ValidationError(["Size code cannot be empty"])
    fields = {
        "business_id": business_id,
        "code": code,
        "name": (name or "").strip() or code,
        "display_order": display_order,
        "is_active": is_active,
    }

    if session is not None:
        return _create(session, ItemSize, fields)

    with session_scope() as sess:
        return _create(sess, ItemSize, fields)


def update_size(size_id: int, updates: Dict[str, Any], session: Optional[Session] = None) -> ItemSize:
    if session is not None:
        return _update(session, ItemSize, size_id, updates)

    with session_scope() as sess:
        return _update(sess, ItemSize, size_id, updates)


def list_sizes(business_id: str, session: Optional[Session] = None) -> List[ItemSize]:
    def _impl(sess: Session) -> List[ItemSize]:
        return (
            sess.query(ItemSize)
            .filter(ItemSize.business_id == business_id)
            .order_by(ItemSize.display_order, ItemSize.code)
            .all()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


# ============================================================================
# Modifier Groups and Modifiers
# ============================================================================


def find_modifier_group(
    business_id: str, name: str, session: Optional[Session] = None
) -> Optional[ModifierGroup]:
    """Find a modifier group by case-insensitive name within a catalog scope."""

    def _impl(sess: Session) -> Optional[ModifierGroup]:
        return (
            sess.query(ModifierGroup)
            .filter(
                ModifierGroup.business_id == business_id,
                ModifierGroup.name_key == normalize_name_key(name),
            )
            .first()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def create_modifier_group(
    business_id: str, name: str, session: Optional[Session] = None, **fields: Any
) -> ModifierGroup:
    """
    Create a new modifier group.

    Args:
        business_id: Catalog scope
        name: Group display name
        session: Optional database session
        **fields: Other ModifierGroup columns (display_type, min_select,
            max_select, quantity_levels, prices_by_size, ...)

    Raises:
        ValidationError: If name is empty
    """
    _require_name(name, "Modifier group")
    fields = {"business_id": business_id, "name": name.strip(), **fields}

    if session is not None:
        return _create(session, ModifierGroup, fields)

    with session_scope() as sess:
        return _create(sess, ModifierGroup, fields)


def update_modifier_group(
    group_id: int, updates: Dict[str, Any], session: Optional[Session] = None
) -> ModifierGroup:
    """
    Update a modifier group in place.

    JSON pricing tables in `updates` replace the stored tables wholesale.
    """
    if session is not None:
        return _update(session, ModifierGroup, group_id, updates)

    with session_scope() as sess:
        return _update(sess, ModifierGroup, group_id, updates)


def list_modifier_groups(business_id: str, session: Optional[Session] = None) -> List[ModifierGroup]:
    def _impl(sess: Session) -> List[ModifierGroup]:
        return (
            sess.query(ModifierGroup)
            .filter(ModifierGroup.business_id == business_id)
            .order_by(ModifierGroup.sort_order, ModifierGroup.name)
            .all()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def find_modifier(
    modifier_group_id: int, name: str, session: Optional[Session] = None
) -> Optional[Modifier]:
    """Find a modifier by case-insensitive name within its group."""

    def _impl(sess: Session) -> Optional[Modifier]:
        return (
            sess.query(Modifier)
            .filter(
                Modifier.modifier_group_id == modifier_group_id,
                Modifier.name_key == normalize_name_key(name),
            )
            .first()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def create_modifier(
    modifier_group_id: int, name: str, session: Optional[Session] = None, **fields: Any
) -> Modifier:
    _require_name(name, "Modifier")
    fields = {"modifier_group_id": modifier_group_id, "name": name.strip(), **fields}

    if session is not None:
        return _create(session, Modifier, fields)

    with session_scope() as sess:
        return _create(sess, Modifier, fields)


def update_modifier(
    modifier_id: int, updates: Dict[str, Any], session: Optional[Session] = None
) -> Modifier:
    if session is not None:
        return _update(session, Modifier, modifier_id, updates)

    with session_scope() as sess:
        return _update(sess, Modifier, modifier_id, updates)


def list_modifiers(modifier_group_id: int, session: Optional[Session] = None) -> List[Modifier]:
    def _impl(sess: Session) -> List[Modifier]:
        return (
            sess.query(Modifier)
            .filter(Modifier.modifier_group_id == modifier_group_id)
            .order_by(Modifier.display_order, Modifier.name)
            .all()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


# ============================================================================
# Items
# ============================================================================


def find_item(
    business_id: str,
    name: str,
    category_id: Optional[int],
    session: Optional[Session] = None,
) -> Optional[MenuItem]:
    """
    Find an item by its natural key: (name, category).

    Args:
        business_id: Catalog scope
        name: Item name (case-insensitive)
        category_id: Owning category id, or None for uncategorized items
        session: Optional database session

    Returns:
        MenuItem or None
    """

    def _impl(sess: Session) -> Optional[MenuItem]:
        query = sess.query(MenuItem).filter(
            MenuItem.business_id == business_id,
            MenuItem.name_key == normalize_name_key(name),
        )
        if category_id is None:
            query = query.filter(MenuItem.category_id.is_(None))
        else:
            query = query.filter(MenuItem.category_id == category_id)
        return query.first()

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def create_item(
    business_id: str,
    name: str,
    category_id: Optional[int],
    session: Optional[Session] = None,
    **fields: Any,
) -> MenuItem:
    """
    Create a new menu item.

    Raises:
        ValidationError: If name is empty
    """
    _require_name(name, "Item")
    fields = {
        "business_id": business_id,
        "name": name.strip(),
        "category_id": category_id,
        **fields,
    }

    if session is not None:
        return _create(session, MenuItem, fields)

    with session_scope() as sess:
        return _create(sess, MenuItem, fields)


def update_item(item_id: int, updates: Dict[str, Any], session: Optional[Session] = None) -> MenuItem:
    if session is not None:
        return _update(session, MenuItem, item_id, updates)

    with session_scope() as sess:
        return _update(sess, MenuItem, item_id, updates)


def list_items(business_id: str, session: Optional[Session] = None) -> List[MenuItem]:
    def _impl(sess: Session) -> List[MenuItem]:
        return (
            sess.query(MenuItem)
            .filter(MenuItem.business_id == business_id)
            .order_by(MenuItem.sort_order, MenuItem.name)
            .all()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def set_item_default_size(
    item_id: int, size_id: Optional[int], session: Optional[Session] = None
) -> MenuItem:
    """
    Point an item's default size at a catalog size (or clear it with None).

    Raises:
        EntityNotFound: If the item does not exist
    """
    return update_item(item_id, {"default_size_id": size_id}, session=session)


# ============================================================================
# Item-Owned Link Rows
# ============================================================================


def _replace_item_rows(sess: Session, item_id: int, model, rows: List[Dict[str, Any]], attribute: str):
    item = sess.get(MenuItem, item_id)
    if item is None:
        raise EntityNotFound("MenuItem", item_id)

    # Old rows must be gone before new ones are inserted (unique per item)
    sess.query(model).filter(model.item_id == item_id).delete()
    sess.flush()

    created = []
    for row in rows:
        link = model(item_id=item_id, **row)
        sess.add(link)
        created.append(link)
    sess.flush()

    sess.expire(item, [attribute])
    return created


def replace_item_sizes(
    item_id: int, sizes: List[Dict[str, Any]], session: Optional[Session] = None
) -> List[MenuItemSize]:
    """
    Replace the per-item size price rows of an item.

    Args:
        item_id: Item whose size rows are replaced
        sizes: Dicts with size_id, price, is_default, is_active
        session: Optional database session

    Returns:
        The new MenuItemSize rows

    Raises:
        EntityNotFound: If the item does not exist
    """
    if session is not None:
        return _replace_item_rows(session, item_id, MenuItemSize, sizes, "sizes")

    with session_scope() as sess:
        return _replace_item_rows(sess, item_id, MenuItemSize, sizes, "sizes")


def replace_item_modifier_groups(
    item_id: int, assignments: List[Dict[str, Any]], session: Optional[Session] = None
) -> List[ItemModifierGroup]:
    """
    Replace the full modifier group assignment list of an item.

    Args:
        item_id: Item whose assignments are replaced
        assignments: Dicts with modifier_group_id, display_order and
            modifier_overrides (JSON list keyed by modifier_id)
        session: Optional database session

    Returns:
        The new ItemModifierGroup rows

    Raises:
        EntityNotFound: If the item does not exist
    """
    if session is not None:
        return _replace_item_rows(
            session, item_id, ItemModifierGroup, assignments, "modifier_groups"
        )

    with session_scope() as sess:
        return _replace_item_rows(sess, item_id, ItemModifierGroup, assignments, "modifier_groups")


def get_item_sizes(item_id: int, session: Optional[Session] = None) -> List[MenuItemSize]:
    def _impl(sess: Session) -> List[MenuItemSize]:
        return (
            sess.query(MenuItemSize)
            .filter(MenuItemSize.item_id == item_id)
            .order_by(MenuItemSize.id)
            .all()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def get_item_modifier_groups(
    item_id: int, session: Optional[Session] = None
) -> List[ItemModifierGroup]:
    def _impl(sess: Session) -> List[ItemModifierGroup]:
        return (
            sess.query(ItemModifierGroup)
            .filter(ItemModifierGroup.item_id == item_id)
            .order_by(ItemModifierGroup.display_order)
            .all()
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)
