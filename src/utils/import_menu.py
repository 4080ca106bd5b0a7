"""
CLI for bulk menu catalog imports.

Imports categories, sizes, modifier groups, modifiers and items from a CSV
file or a ZIP archive of CSV files into one catalog scope.

Usage:
    python -m src.utils.import_menu menu.csv --business-id=store-1
    python -m src.utils.import_menu menu.zip --business-id=store-1 --dry-run
    python -m src.utils.import_menu menu.zip --business-id=store-1 --validate-only
    python -m src.utils.import_menu menu.zip --business-id=store-1 --timeout=30 --verbose

Exit Codes:
    0 - Success (everything committed, may have warnings)
    1 - Validation failed (nothing committed)
    2 - Commit failure (rolled back, nothing committed)
    3 - Unreadable upload or file not found
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from src.services.database import initialize_app_database
from src.services.exceptions import CommitError, ImportFormatError, ImportValidationFailed
from src.services.menu_import_service import MenuImportResult, import_menu, validate_upload
from src.services.menu_import_validation_service import ValidationReport
from src.utils.datetime_utils import deadline_in


# Exit code constants
EXIT_SUCCESS = 0
EXIT_VALIDATION_FAILED = 1
EXIT_COMMIT_FAILED = 2
EXIT_INVALID_INPUT = 3


def print_verbose_details(result: MenuImportResult) -> None:
    """Print detailed output for verbose mode."""
    if result.warnings:
        print("\nAll Warnings:")
        for warning in result.warnings:
            print(f"  - {warning}")


def print_validation_report(report: ValidationReport, verbose: bool = False) -> None:
    """Print a validation report; every issue when verbose."""
    limit = max(report.error_count, report.warning_count) if verbose else 20
    print(report.get_summary(limit=limit or 20))


def main(args=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Import a menu catalog from CSV or a ZIP of CSV files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s menu.csv --business-id=store-1                  # Import a single file
  %(prog)s menu.zip --business-id=store-1                  # Import an archive
  %(prog)s menu.zip --business-id=store-1 --dry-run        # Preview changes
  %(prog)s menu.zip --business-id=store-1 --validate-only  # Report issues only

Exit Codes:
  0 - Success (all records committed)
  1 - Validation failed (nothing committed)
  2 - Commit failure (nothing committed)
  3 - Unreadable upload or file not found
        """,
    )

    parser.add_argument(
        "file",
        help="Path to a .csv file or a .zip archive of .csv files",
    )

    parser.add_argument(
        "--business-id",
        required=True,
        help="Catalog scope the import is committed to",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the full import and roll it back",
    )

    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Parse and validate without touching the database",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Abort (and roll back) the commit after this many seconds",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show every warning and error, and debug logging",
    )

    parsed_args = parser.parse_args(args)

    logging.basicConfig(level=logging.DEBUG if parsed_args.verbose else logging.WARNING)

    path = Path(parsed_args.file)
    try:
        upload = path.read_bytes()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT

    if parsed_args.validate_only:
        try:
            _parsed, report = validate_upload(upload, path.name, parsed_args.business_id)
        except ImportFormatError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_INVALID_INPUT
        print_validation_report(report, parsed_args.verbose)
        return EXIT_SUCCESS if report.is_valid else EXIT_VALIDATION_FAILED

    # Show dry-run header early
    if parsed_args.dry_run:
        print("=" * 60)
        print("DRY RUN - No changes will be made")
        print("=" * 60)
        print()

    # Initialize database
    initialize_app_database()

    try:
        result = import_menu(
            upload,
            path.name,
            business_id=parsed_args.business_id,
            dry_run=parsed_args.dry_run,
            deadline=deadline_in(parsed_args.timeout),
        )

        print(result.get_summary())

        if parsed_args.verbose:
            print_verbose_details(result)

        return EXIT_SUCCESS

    except ImportFormatError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT

    except ImportValidationFailed as e:
        print_validation_report(e.report, parsed_args.verbose)
        return EXIT_VALIDATION_FAILED

    except CommitError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_COMMIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
