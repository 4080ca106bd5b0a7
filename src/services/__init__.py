"""Services package - Business logic layer for the menu catalog importer.

This package contains the service modules that parse, validate and commit
bulk menu uploads, and the store access they build on.

Architecture:
- Services: Stateless functions organized by concern (parse, validate, commit)
- Transactions: Managed via session_scope() context manager
- Exceptions: Consistent error handling via ServiceError hierarchy
- Validation: The whole upload is validated before any database operation

Service Modules:
- menu_import_graph: Canonical import graph records
- menu_import_parser: CSV/ZIP upload parsing (entity-specific and generic encodings)
- menu_import_validation_service: Pre-commit validation report
- menu_import_service: Dependency-ordered atomic commit and the import pipeline
- menu_catalog_service: Natural-key lookups and upserts for catalog entities

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- logging_utils: Structured operation logging
"""

# Service modules
from . import (
    database,
    menu_catalog_service,
    menu_import_graph,
    menu_import_parser,
    menu_import_validation_service,
    menu_import_service,
)

# Exceptions
from .exceptions import (
    ServiceError,
    ImportFormatError,
    EmptyImportError,
    ImportValidationFailed,
    CommitError,
    UnresolvedReferenceError,
    CommitDeadlineExceeded,
    EntityNotFound,
    ValidationError,
)

# Import pipeline
from .menu_import_parser import ParsedUpload, parse_upload
from .menu_import_validation_service import ValidationIssue, ValidationReport, validate_import
from .menu_import_service import (
    EntityCommitCounts,
    MenuImportResult,
    commit_import,
    import_menu,
    validate_upload,
)

__all__ = [
    # Modules
    "database",
    "menu_catalog_service",
    "menu_import_graph",
    "menu_import_parser",
    "menu_import_validation_service",
    "menu_import_service",
    # Exceptions
    "ServiceError",
    "ImportFormatError",
    "EmptyImportError",
    "ImportValidationFailed",
    "CommitError",
    "UnresolvedReferenceError",
    "CommitDeadlineExceeded",
    "EntityNotFound",
    "ValidationError",
    # Import pipeline
    "ParsedUpload",
    "parse_upload",
    "ValidationIssue",
    "ValidationReport",
    "validate_import",
    "EntityCommitCounts",
    "MenuImportResult",
    "commit_import",
    "import_menu",
    "validate_upload",
]
