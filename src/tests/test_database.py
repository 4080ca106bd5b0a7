"""Tests for database session management."""

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.pool import StaticPool

from src.models import MenuCategory
from src.services import database
from src.services.database import close_connections, init_database, reset_database, session_scope


class TestSessionScope:
    def test_commits_on_success(self, test_db):
        with session_scope() as session:
            session.add(MenuCategory(business_id="b1", name="Drinks"))

        with session_scope() as session:
            assert session.query(MenuCategory).count() == 1

    def test_rolls_back_on_exception(self, test_db):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(MenuCategory(business_id="b1", name="Drinks"))
                session.flush()
                raise RuntimeError("boom")

        with session_scope() as session:
            assert session.query(MenuCategory).count() == 0


class TestInitDatabase:
    def test_creates_catalog_tables(self):
        engine = create_engine("sqlite:///:memory:")

        init_database(engine)
        init_database(engine)  # idempotent

        tables = set(inspect(engine).get_table_names())
        assert {
            "menu_categories",
            "item_sizes",
            "modifier_groups",
            "modifiers",
            "menu_items",
            "menu_item_sizes",
            "item_modifier_groups",
        } <= tables


class TestResetDatabase:
    def test_requires_confirmation(self):
        with pytest.raises(ValueError):
            reset_database()

    def test_drops_data(self, monkeypatch):
        engine = create_engine("sqlite:///:memory:", poolclass=StaticPool)
        init_database(engine)
        monkeypatch.setattr(database, "get_engine", lambda force_recreate=False: engine)
        with engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO menu_categories (uuid, business_id, name, name_key, sort_order, "
                    "is_active, created_at, updated_at) VALUES ('u1', 'b1', 'Drinks', 'drinks', "
                    "0, 1, '2024-01-01', '2024-01-01')"
                )
            )

        reset_database(confirm=True)

        with engine.connect() as conn:
            count = conn.execute(text("SELECT COUNT(*) FROM menu_categories")).scalar()
        assert count == 0

    def test_close_connections_disposes_engine(self, monkeypatch):
        monkeypatch.setattr(database, "_engine", create_engine("sqlite:///:memory:"))

        close_connections()

        assert database._engine is None
        assert database._SessionFactory is None
