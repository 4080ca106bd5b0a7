"""Service layer exception classes for the menu catalog importer.

This module defines the custom exceptions used by the service layer to
provide consistent error handling across the import pipeline.

Exception Hierarchy:
    ServiceError (base)
    ├── ImportFormatError            (tier 1: upload cannot be read)
    │   └── EmptyImportError
    ├── ImportValidationFailed       (tier 2: blocking validation errors)
    ├── CommitError                  (tier 3: store-side failure, rolled back)
    │   ├── UnresolvedReferenceError
    │   └── CommitDeadlineExceeded
    ├── EntityNotFound
    └── ValidationError
"""

from typing import Any, List, Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions inherit from this class.
    """

    pass


# ============================================================================
# Tier 1: Format errors (Ingestor)
# ============================================================================


class ImportFormatError(ServiceError):
    """Raised when an upload is not a readable table or archive of tables.

    Args:
        message: What was wrong with the upload
        filename: File (or archive member) being read
        line_number: 1-based line where parsing failed, if known

    Example:
        >>> raise ImportFormatError("unexpected end of data", "items.csv", 4)
        ImportFormatError: items.csv, line 4: unexpected end of data
    """

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        line_number: Optional[int] = None,
    ):
        self.message = message
        self.filename = filename
        self.line_number = line_number

        location = filename or "upload"
        if line_number is not None:
            location = f"{location}, line {line_number}"
        super().__init__(f"{location}: {message}")


class EmptyImportError(ImportFormatError):
    """Raised when an upload is empty or an archive holds no tabular files."""

    def __init__(self, filename: Optional[str] = None, message: str = "no tabular data found"):
        super().__init__(message, filename=filename)


# ============================================================================
# Tier 2: Validation failures (Validator)
# ============================================================================


class ImportValidationFailed(ServiceError):
    """Raised when an import has blocking validation errors.

    Carries the complete report so callers can show every error at once.

    Args:
        report: ValidationReport with all errors and warnings
    """

    def __init__(self, report):
        self.report = report
        error_count = len(report.errors)
        super().__init__(
            f"Import validation failed with {error_count} blocking error(s)"
        )

    @property
    def errors(self) -> List[Any]:
        return self.report.errors

    @property
    def warnings(self) -> List[Any]:
        return self.report.warnings


# ============================================================================
# Tier 3: Commit errors (Resolver/Committer)
# ============================================================================


class CommitError(ServiceError):
    """Raised when a commit step fails; the whole import is rolled back.

    Args:
        step: Commit step name (e.g., "categories", "items")
        message: Human-readable description
        entity_type: Entity kind being written when the failure occurred
        identifier: Natural key of the failing entity
        original_error: Underlying exception, if any

    Example:
        >>> raise CommitError("items", "duplicate key", "Item", "Burger")
        CommitError: Commit failed at step 'items' (Item 'Burger'): duplicate key
    """

    def __init__(
        self,
        step: str,
        message: str,
        entity_type: Optional[str] = None,
        identifier: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.step = step
        self.message = message
        self.entity_type = entity_type
        self.identifier = identifier
        self.original_error = original_error

        target = ""
        if entity_type and identifier is not None:
            target = f" ({entity_type} '{identifier}')"
        elif entity_type:
            target = f" ({entity_type})"
        super().__init__(f"Commit failed at step '{step}'{target}: {message}")


class UnresolvedReferenceError(CommitError):
    """Raised when a natural key cannot be resolved to a store id at commit time.

    Indicates the validator was bypassed or the graph changed after validation.
    """

    def __init__(
        self,
        step: str,
        entity_type: str,
        identifier: str,
        missing_kind: str,
        missing_key: str,
    ):
        self.missing_kind = missing_kind
        self.missing_key = missing_key
        super().__init__(
            step,
            f"{missing_kind} '{missing_key}' not found. "
            f"Ensure the {missing_kind.lower()} is part of the import.",
            entity_type=entity_type,
            identifier=identifier,
        )


class CommitDeadlineExceeded(CommitError):
    """Raised when the caller-supplied deadline passes before the commit ends."""

    def __init__(self, step: str):
        super().__init__(step, "deadline exceeded; import rolled back")


# ============================================================================
# Catalog store errors
# ============================================================================


class EntityNotFound(ServiceError):
    """Raised when a catalog entity cannot be found by ID.

    Example:
        >>> raise EntityNotFound("MenuItem", 42)
        EntityNotFound: MenuItem with ID 42 not found
    """

    def __init__(self, entity_type: str, entity_id: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} with ID {entity_id} not found")


class ValidationError(ServiceError):
    """Raised when data passed to a catalog service function is invalid."""

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")
