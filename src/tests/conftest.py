"""Pytest configuration and fixtures for service layer tests."""

import csv
import io
import json
import zipfile

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from src.models.base import Base
from src.services.database import get_session_factory


BUSINESS_ID = "store-1"


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    # Create in-memory SQLite database for testing
    engine = create_engine("sqlite:///:memory:", echo=False)

    # Create all tables
    Base.metadata.create_all(engine)

    # Create session factory
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import src.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    # Provide database to test
    yield Session

    # Cleanup
    Session.remove()
    Base.metadata.drop_all(engine)

    # Restore original session factory
    db_module.get_session_factory = original_get_session


@pytest.fixture
def business_id():
    return BUSINESS_ID


@pytest.fixture
def make_csv():
    """Build CSV bytes from a header and rows.

    Non-string cells are JSON-encoded (lists/dicts) or str()-ed.
    """

    def _make(header, *rows):
        buffer = io.StringIO(newline="")
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(header)
        for row in rows:
            writer.writerow(
                [
                    json.dumps(cell) if isinstance(cell, (list, dict)) else ("" if cell is None else cell)
                    for cell in row
                ]
            )
        return buffer.getvalue().encode("utf-8")

    return _make


@pytest.fixture
def make_zip():
    """Build ZIP archive bytes from a {member name: bytes} mapping."""

    def _make(members):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for name, data in members.items():
                archive.writestr(name, data)
        return buffer.getvalue()

    return _make


@pytest.fixture
def entity_menu_files(make_csv):
    """Entity-specific CSV files for a small, valid menu.

    - Drinks: Cola (sizes S/L, default L)
    - Burgers: Burger (base price 8.50) with a Cheese group override
    """
    return {
        "categories.csv": make_csv(
            ["name", "description", "sort_order"],
            ["Drinks", "Cold drinks", 1],
            ["Burgers", "", 2],
        ),
        "items.csv": make_csv(
            ["item_key", "name", "category_name", "base_price", "is_sizeable", "default_size_code"],
            ["cola", "Cola", "Drinks", "", "true", "L"],
            ["burger", "Burger", "Burgers", "8.50", "false", ""],
        ),
        "sizes.csv": make_csv(
            ["item_key", "size_code", "name", "price", "display_order", "is_default"],
            ["cola", "S", "Small", "1.50", 1, "false"],
            ["cola", "L", "Large", "2.50", 2, "true"],
        ),
        "modifier_groups.csv": make_csv(
            [
                "group_key",
                "name",
                "display_type",
                "min_select",
                "max_select",
                "prices_by_size",
                "quantity_levels",
            ],
            [
                "cheese",
                "Cheese",
                "RADIO",
                0,
                1,
                [{"sizeCode": "L", "priceDelta": 0.5}],
                [
                    {"quantity": 1, "name": "Single", "price": 1.0, "is_default": True},
                    {"quantity": 2, "name": "Double", "price": 1.75},
                ],
            ],
        ),
        "modifiers.csv": make_csv(
            ["group_key", "modifier_key", "name", "is_default", "max_quantity", "display_order"],
            ["cheese", "cheddar", "Cheddar", "true", 2, 1],
            ["cheese", "swiss", "Swiss", "false", "", 2],
        ),
        "overrides.csv": make_csv(
            ["item_key", "group_key", "modifier_key", "max_quantity", "is_default", "prices_by_size"],
            ["burger", "cheese", "swiss", 3, "true", [{"sizeCode": "L", "priceDelta": 0.25}]],
        ),
    }


@pytest.fixture
def entity_menu_zip(make_zip, entity_menu_files):
    return make_zip(entity_menu_files)


@pytest.fixture
def generic_menu_csv(make_csv):
    """Generic (type-column) encoding of a small menu."""
    return make_csv(
        ["type", "name", "parent", "price", "sort_order", "is_default", "display_type", "min_select", "max_select"],
        ["CATEGORY", "Drinks", "", "", 1, "", "", "", ""],
        ["ITEM", "Cola", "Drinks", "", "", "", "", "", ""],
        ["SIZE", "S", "Cola", "1.50", 1, "", "", "", ""],
        ["SIZE", "L", "Cola", "2.50", 2, "true", "", "", ""],
        ["ITEM", "Lemonade", "Drinks", "3.00", "", "", "", "", ""],
        ["MOD_GROUP", "Ice", "Cola", "", "", "", "CHECKBOX", 0, 2],
        ["MODIFIER", "Light Ice", "Ice", "", 1, "", "", "", ""],
        ["MODIFIER", "No Ice", "Ice", "", 2, "", "", "", ""],
    )
