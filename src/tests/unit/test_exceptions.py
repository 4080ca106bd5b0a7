"""Unit tests for exception hierarchy.

Validates that all exceptions inherit from ServiceError and that each
carries the context the CLI and callers report on.
"""

import inspect

import pytest

from src.services import exceptions as exc_module
from src.services.exceptions import (
    CommitDeadlineExceeded,
    CommitError,
    EmptyImportError,
    EntityNotFound,
    ImportFormatError,
    ImportValidationFailed,
    ServiceError,
    UnresolvedReferenceError,
    ValidationError,
)
from src.services.menu_import_validation_service import ValidationIssue, ValidationReport


def get_all_exception_classes():
    """Discover all exception classes defined in the exceptions module."""
    return [
        (name, obj)
        for name, obj in inspect.getmembers(exc_module, inspect.isclass)
        if issubclass(obj, Exception) and obj.__module__ == exc_module.__name__
    ]


class TestExceptionHierarchy:
    """Verify all exceptions inherit from ServiceError."""

    def test_all_domain_exceptions_inherit_from_service_error(self):
        failures = [
            f"{name} does not inherit from ServiceError"
            for name, exc_class in get_all_exception_classes()
            if not issubclass(exc_class, ServiceError)
        ]
        assert not failures, "\n".join(failures)

    @pytest.mark.parametrize(
        "child, parent",
        [
            (EmptyImportError, ImportFormatError),
            (UnresolvedReferenceError, CommitError),
            (CommitDeadlineExceeded, CommitError),
        ],
    )
    def test_tiers(self, child, parent):
        assert issubclass(child, parent)


class TestFormatErrors:
    def test_location_in_message(self):
        error = ImportFormatError("unexpected end of data", "items.csv", 4)
        assert str(error) == "items.csv, line 4: unexpected end of data"
        assert error.line_number == 4

    def test_without_location(self):
        assert str(ImportFormatError("unreadable")) == "upload: unreadable"

    def test_empty_import(self):
        error = EmptyImportError("menu.zip")
        assert str(error) == "menu.zip: no tabular data found"


class TestValidationFailed:
    def test_carries_report(self):
        issue = ValidationIssue("items.csv", 2, "Item", "name", "Name is required")
        report = ValidationReport(errors=[issue])

        error = ImportValidationFailed(report)

        assert error.report is report
        assert error.errors == [issue]
        assert error.warnings == []
        assert "1 blocking error" in str(error)


class TestCommitErrors:
    def test_message_names_step_and_entity(self):
        error = CommitError("items", "duplicate key", "Item", "Burger")
        assert str(error) == "Commit failed at step 'items' (Item 'Burger'): duplicate key"

    def test_unresolved_reference(self):
        error = UnresolvedReferenceError("items", "Item", "cola", "Category", "Drinks")
        assert error.step == "items"
        assert error.missing_kind == "Category"
        assert "Category 'Drinks' not found" in str(error)

    def test_deadline(self):
        error = CommitDeadlineExceeded("sizes")
        assert error.step == "sizes"
        assert "deadline exceeded" in str(error)


class TestStoreErrors:
    def test_entity_not_found(self):
        assert str(EntityNotFound("MenuItem", 42)) == "MenuItem with ID 42 not found"

    def test_validation_error(self):
        error = ValidationError(["a", "b"])
        assert error.errors == ["a", "b"]
        assert str(error) == "Validation failed: a; b"
