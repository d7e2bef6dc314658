"""
Version Ledger - append-only storage of recipe versions.

Versions are created only through append_version(); there are no update
or delete operations (the ORM rejects UPDATEs on persisted rows, and the
whole history goes away only when the recipe itself is deleted).

Numbering: each recipe's versions are numbered 1, 2, 3... The next number
is max(version_number) + 1, read inside the caller's transaction. Callers
that write must hold the recipe lock from database.lock_recipe() so two
writers can't compute the same number; the UNIQUE (recipe_id,
version_number) constraint turns a bypassed lock into VersionConflict
instead of a duplicate.

Session Management Pattern:
- All public functions accept session=None parameter
- If session provided, use it directly
- If session is None, create a new session via session_scope()
"""

import json
import logging
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Recipe, RecipeVersion
from .database import session_scope
from .dto import PaginatedResult, PaginationParams
from .exceptions import (
    CorruptSnapshot,
    DatabaseError,
    RecipeNotFound,
    VersionConflict,
    VersionNotFound,
)
from .logging_utils import get_service_logger, log_operation
from . import snapshot_codec
from .snapshot_codec import Snapshot

logger = get_service_logger(__name__)


def next_version_number(recipe_id: int, session: Session = None) -> int:
    """
    Number the next version of a recipe will get.

    Args:
        recipe_id: Recipe to number
        session: Optional session (pass the locked writer's session)

    Returns:
        1 if the recipe has no versions, else max(version_number) + 1
    """

    def _impl(sess: Session) -> int:
        current = (
            sess.query(func.max(RecipeVersion.version_number))
            .filter(RecipeVersion.recipe_id == recipe_id)
            .scalar()
        )
        return 1 if current is None else current + 1

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to number versions of recipe {recipe_id}", original_error=e)


def append_version(
    recipe_id: int,
    snapshot: Snapshot,
    change_description: Optional[str] = None,
    changed_fields: Optional[Iterable[str]] = None,
    user_id: Optional[int] = None,
    session: Session = None,
) -> RecipeVersion:
    """
    Append a snapshot to a recipe's ledger.

    This is the only way RecipeVersion rows are created.

    Args:
        recipe_id: Recipe the version belongs to
        snapshot: State to record
        change_description: Human-readable description of the change
        changed_fields: Scalar field names the change alters; None when the
            change touches a child collection
        user_id: Editor causing the change
        session: Optional session; writers pass the session holding the
            recipe lock

    Returns:
        The flushed RecipeVersion (id and version_number assigned)

    Raises:
        VersionConflict: If another writer took the same version number.
            The enclosing transaction must be rolled back.
        DatabaseError: If the insert fails for another reason
    """

    def _impl(sess: Session) -> RecipeVersion:
        version_number = next_version_number(recipe_id, session=sess)
        version = RecipeVersion(
            recipe_id=recipe_id,
            user_id=user_id,
            version_number=version_number,
            snapshot_data=snapshot_codec.encode(snapshot),
            change_description=change_description,
            changed_fields=(
                json.dumps(list(changed_fields), ensure_ascii=False)
                if changed_fields is not None
                else None
            ),
        )

        sess.add(version)
        try:
            sess.flush()
        except IntegrityError as e:
            if "version_number" not in str(e.orig):
                raise
            log_operation(
                logger,
                operation="append_version",
                outcome="conflict",
                level=logging.WARNING,
                recipe_id=recipe_id,
                version_number=version_number,
            )
            raise VersionConflict(recipe_id, version_number) from e

        log_operation(
            logger,
            operation="append_version",
            outcome="success",
            recipe_id=recipe_id,
            version_id=version.id,
            version_number=version_number,
        )
        return version

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to append version to recipe {recipe_id}", original_error=e)


def list_versions(
    recipe_id: int,
    pagination: Optional[PaginationParams] = None,
    session: Session = None,
) -> PaginatedResult[RecipeVersion]:
    """
    List a recipe's versions, newest first.

    Ordered by version_number, which agrees with created_at because
    numbers are assigned in commit order under the recipe lock.

    Args:
        recipe_id: Recipe whose history to list
        pagination: Optional page; None returns the whole history as one page
        session: Optional session

    Returns:
        PaginatedResult of RecipeVersion

    Raises:
        RecipeNotFound: If the recipe doesn't exist
    """

    def _impl(sess: Session) -> PaginatedResult[RecipeVersion]:
        if sess.query(Recipe.id).filter(Recipe.id == recipe_id).first() is None:
            raise RecipeNotFound(recipe_id)

        query = (
            sess.query(RecipeVersion)
            .filter(RecipeVersion.recipe_id == recipe_id)
            .order_by(RecipeVersion.version_number.desc())
        )
        total = query.count()

        if pagination is None:
            items = query.all()
            return PaginatedResult(items=items, total=total, page=1, per_page=max(total, 1))

        items = query.offset(pagination.offset()).limit(pagination.per_page).all()
        return PaginatedResult(
            items=items, total=total, page=pagination.page, per_page=pagination.per_page
        )

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to list versions of recipe {recipe_id}", original_error=e)


def get_version(version_id: int, session: Session = None) -> RecipeVersion:
    """
    Get a version by ID.

    Raises:
        VersionNotFound: If the version doesn't exist
    """

    def _impl(sess: Session) -> RecipeVersion:
        version = sess.query(RecipeVersion).filter(RecipeVersion.id == version_id).first()
        if version is None:
            raise VersionNotFound(version_id)
        return version

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to get version {version_id}", original_error=e)


def latest_version(recipe_id: int, session: Session = None) -> Optional[RecipeVersion]:
    """The highest-numbered version of a recipe, or None if it has no history."""

    def _impl(sess: Session) -> Optional[RecipeVersion]:
        return (
            sess.query(RecipeVersion)
            .filter(RecipeVersion.recipe_id == recipe_id)
            .order_by(RecipeVersion.version_number.desc())
            .first()
        )

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to get latest version of recipe {recipe_id}", original_error=e)


def load_snapshot(version: RecipeVersion) -> Snapshot:
    """
    Decode the snapshot stored in a version.

    Raises:
        CorruptSnapshot: If the stored document can't be decoded
    """
    return snapshot_codec.decode(version.snapshot_data, version_id=version.id)


def get_changed_fields(version: RecipeVersion) -> Optional[List[str]]:
    """
    Changed field names recorded on a version.

    Returns:
        List of field names, or None for child-collection changes

    Raises:
        CorruptSnapshot: If the stored list isn't a JSON list of strings
    """
    try:
        fields = version.get_changed_fields()
    except json.JSONDecodeError as e:
        raise CorruptSnapshot(f"changed_fields is not valid JSON ({e})", version_id=version.id)
    if fields is not None and (
        not isinstance(fields, list) or not all(isinstance(name, str) for name in fields)
    ):
        raise CorruptSnapshot("changed_fields must be a list of strings", version_id=version.id)
    return fields


def version_to_dict(version: RecipeVersion, include_snapshot: bool = False) -> dict:
    """
    Convert a version to a dictionary for the request layer.

    The summary (title, counts) is always included; the full snapshot
    document only when requested. A version whose snapshot can't be
    decoded is still listed, with ``corrupt`` set and no summary.

    Args:
        version: Version to convert
        include_snapshot: If True, include the decoded snapshot document

    Returns:
        Dictionary representation of the version
    """
    result = {
        "id": version.id,
        "uuid": version.uuid,
        "recipe_id": version.recipe_id,
        "user_id": version.user_id,
        "version_number": version.version_number,
        "change_description": version.change_description,
        "created_at": version.created_at.isoformat() if version.created_at else None,
    }

    try:
        result["changed_fields"] = get_changed_fields(version)
        snapshot = load_snapshot(version)
    except CorruptSnapshot as e:
        result.setdefault("changed_fields", None)
        result["corrupt"] = True
        result["error"] = str(e)
        result["summary"] = None
        return result

    result["corrupt"] = False
    result["summary"] = snapshot_codec.summarize(snapshot)
    if include_snapshot:
        result["snapshot"] = snapshot_codec.to_document(snapshot)

    return result


def audit_history(recipe_id: Optional[int] = None, session: Session = None) -> dict:
    """
    Check stored history for damage without raising.

    Decodes every snapshot and verifies that each recipe's version numbers
    run 1..N without gaps.

    Args:
        recipe_id: Only audit this recipe (None for all recipes)
        session: Optional session

    Returns:
        Dictionary with:
        - "versions_checked": number of versions decoded
        - "corrupt_versions": list of {"version_id", "recipe_id",
          "version_number", "error"}
        - "numbering_gaps": list of {"recipe_id", "missing"} where missing
          lists the absent version numbers
        - "ok": True if nothing was found
    """

    def _impl(sess: Session) -> dict:
        query = sess.query(RecipeVersion)
        if recipe_id is not None:
            query = query.filter(RecipeVersion.recipe_id == recipe_id)
        versions = query.order_by(RecipeVersion.recipe_id, RecipeVersion.version_number).all()

        corrupt = []
        numbers_by_recipe = {}
        for version in versions:
            numbers_by_recipe.setdefault(version.recipe_id, []).append(version.version_number)
            try:
                snapshot = load_snapshot(version)
                get_changed_fields(version)
                if snapshot.recipe_id != version.recipe_id:
                    raise CorruptSnapshot(
                        f"snapshot belongs to recipe {snapshot.recipe_id}", version_id=version.id
                    )
            except CorruptSnapshot as e:
                corrupt.append(
                    {
                        "version_id": version.id,
                        "recipe_id": version.recipe_id,
                        "version_number": version.version_number,
                        "error": str(e),
                    }
                )

        gaps = []
        for owner_id, numbers in numbers_by_recipe.items():
            missing = sorted(set(range(1, max(numbers) + 1)) - set(numbers))
            if missing:
                gaps.append({"recipe_id": owner_id, "missing": missing})

        report = {
            "versions_checked": len(versions),
            "corrupt_versions": corrupt,
            "numbering_gaps": gaps,
            "ok": not corrupt and not gaps,
        }

        log_operation(
            logger,
            operation="audit_history",
            outcome="clean" if report["ok"] else "problems_found",
            level=logging.INFO if report["ok"] else logging.WARNING,
            recipe_id=recipe_id,
            versions_checked=len(versions),
            corrupt_count=len(corrupt),
            gap_count=len(gaps),
        )
        return report

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to audit version history", original_error=e)
