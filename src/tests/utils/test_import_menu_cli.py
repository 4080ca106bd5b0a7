"""
Tests for the menu import CLI.

Tests cover:
- import, dry-run and validate-only modes
- Exit codes
"""

import pytest

from src.services import menu_catalog_service as catalog
from src.utils import import_menu as cli
from src.utils.import_menu import (
    EXIT_COMMIT_FAILED,
    EXIT_INVALID_INPUT,
    EXIT_SUCCESS,
    EXIT_VALIDATION_FAILED,
    main,
)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def cli_db(test_db, monkeypatch):
    """Route the CLI at the in-memory test database."""
    monkeypatch.setattr(cli, "initialize_app_database", lambda: None)
    return test_db


@pytest.fixture
def menu_zip_path(tmp_path, entity_menu_zip):
    path = tmp_path / "menu.zip"
    path.write_bytes(entity_menu_zip)
    return path


@pytest.fixture
def invalid_menu_path(tmp_path, make_csv):
    path = tmp_path / "modifier_groups.csv"
    path.write_bytes(
        make_csv(
            ["group_key", "name", "display_type", "min_select", "max_select"],
            ["sauce", "Sauce", "CHECKBOX", 3, 1],
        )
    )
    return path


# ============================================================================
# Import
# ============================================================================


class TestImportCommand:
    def test_import_success(self, cli_db, menu_zip_path, capsys):
        exit_code = main([str(menu_zip_path), "--business-id=store-1"])

        assert exit_code == EXIT_SUCCESS
        output = capsys.readouterr().out
        assert "Menu Import Summary (business: store-1)" in output
        assert "Items: 2 created" in output
        assert len(catalog.list_items("store-1")) == 2

    def test_dry_run(self, cli_db, menu_zip_path, capsys):
        exit_code = main([str(menu_zip_path), "--business-id=store-1", "--dry-run"])

        assert exit_code == EXIT_SUCCESS
        output = capsys.readouterr().out
        assert "DRY RUN - No changes will be made" in output
        assert catalog.list_items("store-1") == []

    def test_verbose_lists_warnings(self, cli_db, tmp_path, make_csv, capsys):
        path = tmp_path / "items.csv"
        path.write_bytes(make_csv(["item_key", "name", "base_price"], ["tea", "Tea", "2.00"]))

        exit_code = main([str(path), "--business-id=store-1", "--verbose"])

        assert exit_code == EXIT_SUCCESS
        output = capsys.readouterr().out
        assert "All Warnings:" in output
        assert "Item.category_name" in output

    def test_validation_failure(self, cli_db, invalid_menu_path, capsys):
        exit_code = main([str(invalid_menu_path), "--business-id=store-1"])

        assert exit_code == EXIT_VALIDATION_FAILED
        output = capsys.readouterr().out
        assert "Import Validation FAILED" in output
        assert "ModifierGroup.min_select" in output
        assert catalog.list_modifier_groups("store-1") == []

    def test_commit_failure(self, cli_db, menu_zip_path, capsys):
        exit_code = main([str(menu_zip_path), "--business-id=store-1", "--timeout=-1"])

        assert exit_code == EXIT_COMMIT_FAILED
        assert "deadline exceeded" in capsys.readouterr().err
        assert catalog.list_categories("store-1") == []

    def test_missing_file(self, cli_db, tmp_path, capsys):
        exit_code = main([str(tmp_path / "nope.zip"), "--business-id=store-1"])

        assert exit_code == EXIT_INVALID_INPUT
        assert "Error:" in capsys.readouterr().err

    def test_unreadable_archive(self, cli_db, tmp_path, capsys):
        path = tmp_path / "menu.zip"
        path.write_bytes(b"not a zip archive")

        exit_code = main([str(path), "--business-id=store-1"])

        assert exit_code == EXIT_INVALID_INPUT

    def test_business_id_required(self, menu_zip_path):
        with pytest.raises(SystemExit):
            main([str(menu_zip_path)])


# ============================================================================
# Validate Only
# ============================================================================


class TestValidateOnly:
    def test_valid_upload(self, menu_zip_path, capsys, monkeypatch):
        def _no_database():
            raise AssertionError("validate-only must not touch the database")

        monkeypatch.setattr(cli, "initialize_app_database", _no_database)

        exit_code = main([str(menu_zip_path), "--business-id=store-1", "--validate-only"])

        assert exit_code == EXIT_SUCCESS
        assert "Import Validation PASSED" in capsys.readouterr().out

    def test_invalid_upload(self, invalid_menu_path, capsys):
        exit_code = main([str(invalid_menu_path), "--business-id=store-1", "--validate-only"])

        assert exit_code == EXIT_VALIDATION_FAILED
        assert "Import Validation FAILED" in capsys.readouterr().out

    def test_unsupported_file_type(self, tmp_path, capsys):
        path = tmp_path / "menu.xlsx"
        path.write_bytes(b"name\nDrinks\n")

        exit_code = main([str(path), "--business-id=store-1", "--validate-only"])

        assert exit_code == EXIT_INVALID_INPUT
        assert "unsupported file type" in capsys.readouterr().err
