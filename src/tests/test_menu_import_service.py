"""Tests for the atomic menu import (resolve natural keys, upsert in dependency order)."""

import time

import pytest
from sqlalchemy.exc import IntegrityError

from src.services import menu_catalog_service as catalog
from src.services.exceptions import (
    CommitDeadlineExceeded,
    CommitError,
    ImportFormatError,
    ImportValidationFailed,
    UnresolvedReferenceError,
)
from src.services.menu_import_graph import (
    CategoryRecord,
    ItemRecord,
    MenuImportGraph,
    ModifierRecord,
)
from src.services.menu_import_service import (
    COMMIT_STEPS,
    MenuImportResult,
    commit_import,
    import_menu,
    validate_upload,
)


BUSINESS = "store-1"


def _snapshot(business_id=BUSINESS):
    """Stored catalog as plain values, for before/after comparisons."""
    return {
        "categories": [(c.name, c.sort_order) for c in catalog.list_categories(business_id)],
        "sizes": [(s.code, s.name) for s in catalog.list_sizes(business_id)],
        "groups": [
            (g.name, g.display_type, g.min_select, g.max_select)
            for g in catalog.list_modifier_groups(business_id)
        ],
        "items": [
            (i.name, i.base_price, i.is_sizeable, i.default_size_id)
            for i in catalog.list_items(business_id)
        ],
    }


# ============================================================================
# Entity-Specific Archives
# ============================================================================


class TestEntitySpecificImport:
    def test_first_import_creates_everything(self, test_db, entity_menu_zip):
        result = import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS)

        counts = result.entity_counts
        assert counts["categories"].created == 2
        assert counts["sizes"].created == 2
        assert counts["modifier_groups"].created == 1
        assert counts["modifiers"].created == 2
        assert counts["items"].created == 2
        assert result.total_updated == 2  # default size link + assignment list
        assert result.dry_run is False
        assert result.warnings == []
        assert "categories.csv" in result.source_files

    def test_default_size_and_size_prices(self, test_db, entity_menu_zip):
        import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS)

        drinks = catalog.find_category(BUSINESS, "Drinks")
        cola = catalog.find_item(BUSINESS, "Cola", drinks.id)
        large = catalog.find_size(BUSINESS, "L")
        small = catalog.find_size(BUSINESS, "S")

        assert cola.is_sizeable is True
        assert cola.default_size_id == large.id
        prices = {row.size_id: (row.price, row.is_default) for row in catalog.get_item_sizes(cola.id)}
        assert prices == {small.id: (1.5, False), large.id: (2.5, True)}

    def test_modifier_group_tables_use_size_ids(self, test_db, entity_menu_zip):
        import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS)

        large = catalog.find_size(BUSINESS, "L")
        cheese = catalog.find_modifier_group(BUSINESS, "Cheese")

        assert cheese.display_type == "RADIO"
        assert cheese.prices_by_size == [{"size_id": large.id, "price_delta": 0.5}]
        assert [level["quantity"] for level in cheese.quantity_levels] == [1, 2]
        assert cheese.quantity_levels[0]["is_default"] is True
        assert [m.name for m in catalog.list_modifiers(cheese.id)] == ["Cheddar", "Swiss"]

    def test_overrides_become_item_assignments(self, test_db, entity_menu_zip):
        import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS)

        burgers = catalog.find_category(BUSINESS, "Burgers")
        burger = catalog.find_item(BUSINESS, "Burger", burgers.id)
        cheese = catalog.find_modifier_group(BUSINESS, "Cheese")
        swiss = catalog.find_modifier(cheese.id, "Swiss")
        large = catalog.find_size(BUSINESS, "L")

        assert burger.is_customizable is True
        assert burger.base_price == 8.5
        assignments = catalog.get_item_modifier_groups(burger.id)
        assert len(assignments) == 1
        assert assignments[0].modifier_group_id == cheese.id
        override = assignments[0].modifier_overrides[0]
        assert override["modifier_id"] == swiss.id
        assert override["max_quantity"] == 3
        assert override["is_default"] is True
        assert override["prices_by_size"] == [{"size_id": large.id, "price_delta": 0.25}]

    def test_reimport_is_idempotent(self, test_db, entity_menu_zip):
        import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS)
        before = _snapshot()

        result = import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS)

        for step in ("categories", "sizes", "modifier_groups", "modifiers", "items"):
            assert result.entity_counts[step].created == 0
        assert result.entity_counts["categories"].updated == 2
        assert result.entity_counts["items"].updated == 2
        assert _snapshot() == before

        cola = catalog.find_item(BUSINESS, "Cola", catalog.find_category(BUSINESS, "Drinks").id)
        assert len(catalog.get_item_sizes(cola.id)) == 2

    def test_file_order_does_not_matter(self, test_db, make_zip, entity_menu_files):
        reversed_files = dict(reversed(list(entity_menu_files.items())))

        result = import_menu(make_zip(reversed_files), "menu.zip", business_id=BUSINESS)

        assert result.entity_counts["items"].created == 2
        cheese = catalog.find_modifier_group(BUSINESS, "Cheese")
        assert len(catalog.list_modifiers(cheese.id)) == 2

    def test_price_tables_replaced_not_merged(self, test_db, make_csv, make_zip, entity_menu_files):
        import_menu(make_zip(entity_menu_files), "menu.zip", business_id=BUSINESS)

        changed = dict(entity_menu_files)
        changed["modifier_groups.csv"] = make_csv(
            ["group_key", "name", "display_type", "min_select", "max_select", "prices_by_size"],
            ["cheese", "Cheese", "RADIO", 0, 1, [{"sizeCode": "S", "priceDelta": 0.1}]],
        )
        import_menu(make_zip(changed), "menu.zip", business_id=BUSINESS)

        small = catalog.find_size(BUSINESS, "S")
        cheese = catalog.find_modifier_group(BUSINESS, "Cheese")
        assert cheese.prices_by_size == [{"size_id": small.id, "price_delta": 0.1}]
        assert cheese.quantity_levels == []

    def test_catalog_scopes_are_isolated(self, test_db, entity_menu_zip):
        import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS)
        result = import_menu(entity_menu_zip, "menu.zip", business_id="store-2")

        assert result.entity_counts["categories"].created == 2
        assert len(catalog.list_categories(BUSINESS)) == 2
        assert len(catalog.list_categories("store-2")) == 2


# ============================================================================
# Generic Encoding
# ============================================================================


class TestGenericImport:
    def test_generic_menu(self, test_db, generic_menu_csv):
        result = import_menu(generic_menu_csv, "menu.csv", business_id=BUSINESS)

        assert result.entity_counts["categories"].created == 1
        assert result.entity_counts["items"].created == 2
        assert result.entity_counts["sizes"].created == 2
        assert result.source_files == ["menu.csv"]

        drinks = catalog.find_category(BUSINESS, "Drinks")
        cola = catalog.find_item(BUSINESS, "Cola", drinks.id)
        lemonade = catalog.find_item(BUSINESS, "Lemonade", drinks.id)
        large = catalog.find_size(BUSINESS, "L")

        assert cola.is_sizeable is True
        assert cola.default_size_id == large.id
        assert lemonade.is_sizeable is False
        assert lemonade.base_price == 3.0
        assert lemonade.default_size_id is None

    def test_group_row_links_group_to_parent_item(self, test_db, generic_menu_csv):
        import_menu(generic_menu_csv, "menu.csv", business_id=BUSINESS)

        drinks = catalog.find_category(BUSINESS, "Drinks")
        cola = catalog.find_item(BUSINESS, "Cola", drinks.id)
        ice = catalog.find_modifier_group(BUSINESS, "Ice")

        assert ice.display_type == "CHECKBOX"
        assert ice.max_select == 2
        assert [m.name for m in catalog.list_modifiers(ice.id)] == ["Light Ice", "No Ice"]
        assert cola.is_customizable is True
        assignments = catalog.get_item_modifier_groups(cola.id)
        assert [(a.modifier_group_id, a.modifier_overrides) for a in assignments] == [(ice.id, [])]

    def test_uncategorized_item_with_first_size_default(self, test_db, make_csv):
        upload = make_csv(
            ["type", "name", "parent", "price"],
            ["ITEM", "Cola", "", ""],
            ["SIZE", "S", "Cola", "1.00"],
            ["SIZE", "L", "Cola", "2.00"],
        )

        result = import_menu(upload, "menu.csv", business_id=BUSINESS)

        cola = catalog.find_item(BUSINESS, "Cola", None)
        assert cola.category_id is None
        assert cola.default_size_id == catalog.find_size(BUSINESS, "S").id
        assert any(w.field == "category_name" for w in result.warnings)

    def test_sizes_before_item_default_resolves_to_marked_size(self, test_db, make_csv):
        """SIZE rows listed before their ITEM still give Cola the L default."""
        upload = make_csv(
            ["type", "name", "parent", "is_default"],
            ["SIZE", "S", "Cola", ""],
            ["SIZE", "L", "Cola", "true"],
            ["ITEM", "Cola", "", ""],
        )

        result = import_menu(upload, "menu.csv", business_id=BUSINESS)

        assert result.entity_counts["items"].created == 1
        assert result.entity_counts["sizes"].created == 2
        cola = catalog.find_item(BUSINESS, "Cola", None)
        assert cola.is_sizeable is True
        assert cola.default_size_id == catalog.find_size(BUSINESS, "L").id
        assert cola.default_size_id != catalog.find_size(BUSINESS, "S").id

    def test_modifier_parent_matches_group_in_any_case(self, test_db):
        upload = b"type,name,parent\nMOD_GROUP,Ice,\nMODIFIER,No Ice,ice\nMODIFIER,Light Ice,ICE\n"

        result = import_menu(upload, "menu.csv", business_id=BUSINESS)

        assert result.entity_counts["modifier_groups"].created == 1
        assert result.entity_counts["modifiers"].created == 2
        ice = catalog.find_modifier_group(BUSINESS, "Ice")
        assert sorted(m.name for m in catalog.list_modifiers(ice.id)) == ["Light Ice", "No Ice"]


# ============================================================================
# Rejected Uploads
# ============================================================================


class TestRejectedUploads:
    def test_duplicate_item_rejected(self, test_db, make_csv):
        upload = make_csv(
            ["type", "name", "parent", "price"],
            ["CATEGORY", "Burgers", "", ""],
            ["ITEM", "Burger", "Burgers", "8.00"],
            ["ITEM", "burger", "Burgers", "9.00"],
        )

        with pytest.raises(ImportValidationFailed) as exc_info:
            import_menu(upload, "menu.csv", business_id=BUSINESS)

        assert exc_info.value.report.error_count >= 1
        assert catalog.list_categories(BUSINESS) == []

    def test_min_above_max_rejected(self, test_db, make_csv):
        upload = make_csv(
            ["group_key", "name", "display_type", "min_select", "max_select"],
            ["sauce", "Sauce", "CHECKBOX", 2, 1],
        )

        with pytest.raises(ImportValidationFailed) as exc_info:
            import_menu(upload, "modifier_groups.csv", business_id=BUSINESS)

        fields = [(e.entity, e.field) for e in exc_info.value.report.errors]
        assert ("ModifierGroup", "min_select") in fields
        assert catalog.list_modifier_groups(BUSINESS) == []

    def test_unreadable_upload(self, test_db):
        with pytest.raises(ImportFormatError):
            import_menu(b"PK\x03\x04 not really a zip", "menu.zip", business_id=BUSINESS)

    def test_validate_upload_touches_nothing(self, test_db, entity_menu_zip):
        parsed, report = validate_upload(entity_menu_zip, "menu.zip", BUSINESS)

        assert report.is_valid
        assert parsed.graph.counts()["items"] == 2
        assert catalog.list_categories(BUSINESS) == []


# ============================================================================
# Atomicity
# ============================================================================


class TestAtomicity:
    def test_store_error_in_last_step_rolls_back(self, test_db, entity_menu_zip, monkeypatch):
        def _fail(*args, **kwargs):
            raise IntegrityError("INSERT INTO item_modifier_groups", {}, Exception("boom"))

        monkeypatch.setattr(catalog, "replace_item_modifier_groups", _fail)

        with pytest.raises(CommitError) as exc_info:
            import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS)

        assert exc_info.value.step == "item_modifier_groups"
        assert exc_info.value.entity_type == "Item"
        assert exc_info.value.identifier == "burger"
        assert isinstance(exc_info.value.original_error, IntegrityError)
        assert _snapshot() == {"categories": [], "sizes": [], "groups": [], "items": []}

    def test_constraint_violation_names_step(self, test_db, entity_menu_zip, monkeypatch):
        import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS)
        before = _snapshot()

        # Lookup misses force an insert that collides with the stored row
        monkeypatch.setattr(catalog, "find_category", lambda *args, **kwargs: None)

        with pytest.raises(CommitError) as exc_info:
            import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS)

        assert exc_info.value.step == "categories"
        assert exc_info.value.entity_type == "Category"
        assert exc_info.value.identifier == "Drinks"
        monkeypatch.undo()
        assert _snapshot() == before

    def test_unresolved_reference_rolls_back(self, test_db):
        """An unvalidated graph with a dangling key fails at commit, writing nothing."""
        graph = MenuImportGraph(
            categories=[CategoryRecord(name="Drinks")],
            items=[ItemRecord(item_key="cola", name="Cola", category_name="Missing")],
        )

        with pytest.raises(UnresolvedReferenceError) as exc_info:
            commit_import(graph, BUSINESS)

        assert exc_info.value.step == "items"
        assert exc_info.value.missing_kind == "Category"
        assert exc_info.value.missing_key == "Missing"
        assert catalog.list_categories(BUSINESS) == []

    def test_unresolved_modifier_group(self, test_db):
        graph = MenuImportGraph(
            modifiers=[ModifierRecord(group_key="milk", modifier_key="oat", name="Oat")],
        )

        with pytest.raises(UnresolvedReferenceError) as exc_info:
            commit_import(graph, BUSINESS)

        assert exc_info.value.step == "modifiers"
        assert exc_info.value.missing_kind == "ModifierGroup"

    def test_deadline_passed(self, test_db, entity_menu_zip):
        with pytest.raises(CommitDeadlineExceeded) as exc_info:
            import_menu(
                entity_menu_zip,
                "menu.zip",
                business_id=BUSINESS,
                deadline=time.monotonic() - 1,
            )

        assert exc_info.value.step == "categories"
        assert catalog.list_categories(BUSINESS) == []

    def test_deadline_checked_between_steps(self, test_db, entity_menu_zip, monkeypatch):
        """A deadline reached mid-commit discards the steps already written."""
        import src.services.menu_import_service as service

        checks = []

        def _passed(deadline):
            checks.append(deadline)
            return len(checks) > 3

        monkeypatch.setattr(service, "deadline_passed", _passed)

        with pytest.raises(CommitDeadlineExceeded) as exc_info:
            import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS, deadline=1.0)

        assert exc_info.value.step == COMMIT_STEPS[3]
        assert catalog.list_categories(BUSINESS) == []
        assert catalog.list_sizes(BUSINESS) == []


# ============================================================================
# Dry Run and Caller-Owned Sessions
# ============================================================================


class TestDryRunAndSessions:
    def test_dry_run_writes_nothing(self, test_db, entity_menu_zip):
        result = import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS, dry_run=True)

        assert result.dry_run is True
        assert result.entity_counts["categories"].created == 2
        assert result.entity_counts["items"].created == 2
        assert _snapshot() == {"categories": [], "sizes": [], "groups": [], "items": []}

    def test_caller_owns_transaction(self, test_db, entity_menu_zip):
        session = test_db()

        import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS, session=session)
        assert catalog.find_category(BUSINESS, "Drinks", session=session) is not None

        session.rollback()
        assert catalog.find_category(BUSINESS, "Drinks", session=session) is None


# ============================================================================
# Result Summary
# ============================================================================


class TestMenuImportResult:
    def test_totals(self):
        result = MenuImportResult("store-1")
        result.add_created("categories", 2)
        result.add_updated("items")

        assert result.total_created == 2
        assert result.total_updated == 1
        assert result.total_processed == 3

    def test_summary(self, test_db, entity_menu_zip):
        result = import_menu(entity_menu_zip, "menu.zip", business_id=BUSINESS, dry_run=True)

        summary = result.get_summary()

        assert "Menu Import Summary (business: store-1)" in summary
        assert "DRY RUN" in summary
        assert "Categories: 2 created" in summary
        assert "Modifier groups: 1 created" in summary

    def test_summary_truncates_many_warnings(self):
        result = MenuImportResult("store-1")
        result.warnings = [f"warning {n}" for n in range(11)]

        assert "11 warnings (use --verbose for full list)" in result.get_summary()
