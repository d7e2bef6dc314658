"""
Version History CLI Utility

Command-line interface for operators inspecting and repairing recipe
version history. No UI required.

Usage Examples:
    # List the history of recipe 45, newest first
    recipe-ledger history 45

    # Second page, 20 versions per page
    recipe-ledger history 45 --page 2 --per-page 20

    # Print the stored snapshot document of version 812
    recipe-ledger show 812

    # Restore the recipe that owns version 812 to that version
    recipe-ledger restore 812

    # Check every stored snapshot and the version numbering
    recipe-ledger audit
    recipe-ledger audit --recipe-id 45
"""

import argparse
import json
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from ..services import version_ledger, versioning_service
from ..services.database import initialize_app_database, session_scope
from ..services.dto import PaginationParams
from ..services.exceptions import CorruptSnapshot, ServiceError


def show_history(recipe_id: int, page: int, per_page: int) -> int:
    """Print one page of a recipe's version history."""
    try:
        history = versioning_service.get_history(recipe_id, PaginationParams(page, per_page))
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"Recipe {recipe_id}: {history.total} version(s), page {history.page} of {history.pages}")
    for item in history.items:
        if item["corrupt"]:
            print(f"  v{item['version_number']:<4} [CORRUPT] {item['error']}")
            continue
        summary = item["summary"]
        print(
            f"  v{item['version_number']:<4} {item['created_at']}  "
            f"{item['change_description'] or ''}"
        )
        print(
            f"        {summary['title']!r}: {summary['ingredient_count']} ingredients, "
            f"{summary['step_count']} steps, {summary['category_count']} categories"
        )
        if item["changed_fields"]:
            print(f"        changed: {', '.join(item['changed_fields'])}")
    return 0


def show_version(version_id: int) -> int:
    """
    Print the stored snapshot document of a version.

    A document that fails to decode is printed as stored, followed by the
    decode error, so it can still be inspected.
    """
    try:
        with session_scope() as session:
            version = version_ledger.get_version(version_id, session=session)
            raw = version.snapshot_data
            header = (
                f"Version {version.version_number} of recipe {version.recipe_id} "
                f"(id {version.id}, {version.created_at})"
            )
            version_ledger.load_snapshot(version)
    except CorruptSnapshot as e:
        print(header)
        print(raw)
        print(f"ERROR: {e}")
        return 1
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1
    except SQLAlchemyError as e:
        print(f"ERROR: Database error: failed to read version {version_id} ({e})")
        return 1

    print(header)
    print(json.dumps(json.loads(raw), indent=2, sort_keys=True, ensure_ascii=False))
    return 0


def restore(version_id: int) -> int:
    """Restore the recipe owning a version to that version's content."""
    try:
        result = versioning_service.restore_version(version_id)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1

    print(
        f"Recipe {result.recipe_id} restored to version {result.restored_version_number} "
        f"(previous state saved as version {result.safety_version_number}, "
        f"restore recorded as version {result.restore_version_number})"
    )
    return 0


def audit(recipe_id=None) -> int:
    """Audit stored history; exit code 1 if problems were found."""
    try:
        report = version_ledger.audit_history(recipe_id)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"Checked {report['versions_checked']} version(s)")
    for item in report["corrupt_versions"]:
        print(
            f"  CORRUPT: recipe {item['recipe_id']} v{item['version_number']} "
            f"(id {item['version_id']}): {item['error']}"
        )
    for item in report["numbering_gaps"]:
        missing = ", ".join(str(number) for number in item["missing"])
        print(f"  GAP: recipe {item['recipe_id']} is missing version(s) {missing}")

    if report["ok"]:
        print("No problems found")
        return 0
    return 1


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="recipe-ledger",
        description="Inspect and restore recipe version history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  recipe-ledger history 45
  recipe-ledger show 812
  recipe-ledger restore 812
  recipe-ledger audit --recipe-id 45
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log service operations")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    history_parser = subparsers.add_parser("history", help="List a recipe's versions")
    history_parser.add_argument("recipe_id", type=int, help="Recipe ID")
    history_parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    history_parser.add_argument(
        "--per-page", dest="per_page", type=int, default=50, help="Versions per page (default: 50)"
    )

    show_parser = subparsers.add_parser("show", help="Print a version's snapshot document")
    show_parser.add_argument("version_id", type=int, help="Version ID")

    restore_parser = subparsers.add_parser("restore", help="Restore a recipe to a version")
    restore_parser.add_argument("version_id", type=int, help="Version ID to restore")

    audit_parser = subparsers.add_parser("audit", help="Check stored history for damage")
    audit_parser.add_argument(
        "--recipe-id", dest="recipe_id", type=int, default=None, help="Only audit this recipe"
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    initialize_app_database()

    if args.command == "history":
        try:
            PaginationParams(args.page, args.per_page)
        except ValueError as e:
            print(f"ERROR: {e}")
            return 1
        return show_history(args.recipe_id, args.page, args.per_page)
    elif args.command == "show":
        return show_version(args.version_id)
    elif args.command == "restore":
        return restore(args.version_id)
    elif args.command == "audit":
        return audit(args.recipe_id)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
