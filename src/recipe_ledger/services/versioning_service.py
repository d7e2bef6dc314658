"""
Versioning Service - versioned edits and restore for the recipe aggregate.

This is the only module that writes both the Aggregate Store and the
Version Ledger. Every operation runs in one transaction that starts with
lock_recipe(), so writers on the same recipe are serialized and version
numbers are computed under the lock.

Edits follow the snapshot-before-mutation protocol:
    lock -> capture current state -> append version -> apply the edit

Restore:
    load + decode target -> lock -> append safety version of current state
    -> overwrite scalar fields -> replace ingredients, steps and category
    links (delete all, insert all) -> append restore-event version

If any step raises, the whole transaction rolls back: no version without
its edit, no edit without its version, no partially replaced collection.

Session Management Pattern:
- All public functions accept session=None parameter
- If session provided, use it directly (the caller owns the transaction)
- If session is None, create a new session via session_scope()
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Category, CookingStep, Ingredient, Recipe, RecipeCategoryLink
from ..utils.constants import (
    COOKING_STEP_FIELDS,
    INGREDIENT_FIELDS,
    RESTORED_MARKER,
    VERSIONED_RECIPE_FIELDS,
)
from ..utils.validators import (
    validate_cooking_step_data,
    validate_ingredient_data,
    validate_recipe_updates,
)
from . import snapshot_codec, version_ledger
from .database import lock_recipe, session_scope
from .dto import PaginatedResult, PaginationParams
from .exceptions import (
    CategoryNotFound,
    CookingStepNotFound,
    CorruptSnapshot,
    DatabaseError,
    IngredientNotFound,
    ValidationError,
)
from .logging_utils import get_service_logger, log_operation
from .snapshot_codec import CategoryEntry, IngredientEntry, StepEntry

logger = get_service_logger(__name__)


@dataclass(frozen=True)
class RestoreResult:
    """
    Outcome of a restore.

    Attributes:
        recipe_id: Recipe that was restored
        restored_version_number: Number of the version whose content is now live
        safety_version_number: Version holding the state before the restore
        restore_version_number: Version recording the restore itself
    """

    recipe_id: int
    restored_version_number: int
    safety_version_number: int
    restore_version_number: int


# ============================================================================
# Transaction helpers
# ============================================================================


def _run(operation: str, impl, session: Optional[Session], **context):
    """
    Run ``impl(session)`` in the caller's session or a new transaction.

    Failures are logged at WARNING before they propagate. SQLAlchemy errors
    are wrapped in DatabaseError; anything else (service errors, or
    ImmutableVersionError from the model layer) passes through unchanged.
    """
    try:
        if session is not None:
            return impl(session)
        with session_scope() as sess:
            return impl(sess)
    except SQLAlchemyError as e:
        log_operation(
            logger,
            operation=operation,
            outcome="database_error",
            level=logging.WARNING,
            error=str(e),
            **context,
        )
        raise DatabaseError(f"{operation} failed", original_error=e)
    except Exception as e:
        log_operation(
            logger,
            operation=operation,
            outcome=type(e).__name__,
            level=logging.WARNING,
            error=str(e),
            **context,
        )
        raise


def _record_current_state(
    sess: Session,
    recipe_id: int,
    change_description: str,
    changed_fields: Optional[Iterable[str]],
    user_id: Optional[int],
):
    """Append the current (locked) state of a recipe to its ledger."""
    snapshot = snapshot_codec.capture(recipe_id, session=sess)
    return version_ledger.append_version(
        recipe_id,
        snapshot,
        change_description=change_description,
        changed_fields=changed_fields,
        user_id=user_id,
        session=sess,
    )


def _check_order_free(
    sess: Session, recipe_id: int, order: int, exclude_id: Optional[int] = None
) -> None:
    query = sess.query(Ingredient.id).filter(
        Ingredient.recipe_id == recipe_id, Ingredient.order == order
    )
    if exclude_id is not None:
        query = query.filter(Ingredient.id != exclude_id)
    if query.first() is not None:
        raise ValidationError([f"Order: {order} is already used by another ingredient"])


def _locked_ingredient(sess: Session, ingredient_id: int) -> Ingredient:
    """
    Lock the recipe owning an ingredient and return the ingredient.

    The ingredient is read again after the lock because a writer that held
    the lock before us may have deleted it.
    """
    row = sess.query(Ingredient.recipe_id).filter(Ingredient.id == ingredient_id).first()
    if row is None:
        raise IngredientNotFound(ingredient_id)
    lock_recipe(sess, row.recipe_id)

    ingredient = (
        sess.query(Ingredient).filter(Ingredient.id == ingredient_id).populate_existing().first()
    )
    if ingredient is None:
        raise IngredientNotFound(ingredient_id)
    return ingredient


def _locked_step(sess: Session, step_id: int) -> CookingStep:
    """Lock the recipe owning a cooking step and return the step."""
    row = sess.query(CookingStep.recipe_id).filter(CookingStep.id == step_id).first()
    if row is None:
        raise CookingStepNotFound(step_id)
    lock_recipe(sess, row.recipe_id)

    step = sess.query(CookingStep).filter(CookingStep.id == step_id).populate_existing().first()
    if step is None:
        raise CookingStepNotFound(step_id)
    return step


# ============================================================================
# Versioned edits
# ============================================================================


def update_recipe_fields(
    recipe_id: int,
    updates: Dict,
    user_id: Optional[int] = None,
    change_description: Optional[str] = None,
    session: Optional[Session] = None,
) -> Recipe:
    """
    Update scalar fields of a recipe, recording the prior state first.

    Args:
        recipe_id: Recipe to update
        updates: Field name to new value (versioned recipe fields only)
        user_id: Editor making the change
        change_description: Description stored on the version
        session: Optional database session

    Returns:
        The updated Recipe

    Raises:
        ValidationError: If updates is empty or contains invalid values
        RecipeNotFound: If the recipe doesn't exist
    """
    is_valid, errors = validate_recipe_updates(updates)
    if not is_valid:
        raise ValidationError(errors)

    changed_fields = list(updates)

    def _impl(sess: Session) -> Recipe:
        recipe = lock_recipe(sess, recipe_id)
        version = _record_current_state(
            sess,
            recipe_id,
            change_description or "Edit recipe",
            changed_fields,
            user_id,
        )

        values = dict(updates)
        if "title" in values:
            values["title"] = values["title"].strip()
        recipe.update_from_dict(values, allowed=VERSIONED_RECIPE_FIELDS)
        sess.flush()

        log_operation(
            logger,
            operation="update_recipe_fields",
            outcome="success",
            recipe_id=recipe_id,
            version_number=version.version_number,
            changed_fields=changed_fields,
        )
        return recipe

    return _run("update_recipe_fields", _impl, session, recipe_id=recipe_id)


def add_ingredient(
    recipe_id: int,
    ingredient_data: Dict,
    user_id: Optional[int] = None,
    change_description: Optional[str] = None,
    session: Optional[Session] = None,
) -> Ingredient:
    """
    Add an ingredient line to a recipe, recording the prior state first.

    If ``order`` is omitted the line goes after the current last line.

    Raises:
        ValidationError: If the data is invalid or the order is taken
        RecipeNotFound: If the recipe doesn't exist
    """
    data = dict(ingredient_data)
    is_valid, errors = validate_ingredient_data(data)
    if not is_valid:
        raise ValidationError(errors)

    def _impl(sess: Session) -> Ingredient:
        recipe = lock_recipe(sess, recipe_id)

        if data.get("order") is None:
            current_max = (
                sess.query(func.max(Ingredient.order))
                .filter(Ingredient.recipe_id == recipe_id)
                .scalar()
            )
            data["order"] = 1 if current_max is None else current_max + 1
        else:
            _check_order_free(sess, recipe_id, data["order"])

        version = _record_current_state(
            sess,
            recipe_id,
            change_description or f"Add ingredient '{data['name']}'",
            None,
            user_id,
        )

        ingredient = Ingredient(
            recipe_id=recipe_id, **{key: data.get(key) for key in INGREDIENT_FIELDS}
        )
        sess.add(ingredient)
        sess.flush()
        sess.expire(recipe, ["ingredients"])

        log_operation(
            logger,
            operation="add_ingredient",
            outcome="success",
            recipe_id=recipe_id,
            ingredient_id=ingredient.id,
            version_number=version.version_number,
        )
        return ingredient

    return _run("add_ingredient", _impl, session, recipe_id=recipe_id)


def update_ingredient(
    ingredient_id: int,
    updates: Dict,
    user_id: Optional[int] = None,
    change_description: Optional[str] = None,
    session: Optional[Session] = None,
) -> Ingredient:
    """
    Update an ingredient line, recording the prior recipe state first.

    Raises:
        ValidationError: If updates is empty, invalid, or moves the line onto
            an order already in use
        IngredientNotFound: If the ingredient doesn't exist
    """
    is_valid, errors = validate_ingredient_data(updates, partial=True)
    if not is_valid:
        raise ValidationError(errors)

    def _impl(sess: Session) -> Ingredient:
        ingredient = _locked_ingredient(sess, ingredient_id)
        recipe_id = ingredient.recipe_id

        if "order" in updates and updates["order"] != ingredient.order:
            _check_order_free(sess, recipe_id, updates["order"], exclude_id=ingredient_id)

        version = _record_current_state(
            sess,
            recipe_id,
            change_description or f"Edit ingredient '{ingredient.name}'",
            None,
            user_id,
        )

        ingredient.update_from_dict(updates, allowed=INGREDIENT_FIELDS)
        sess.flush()
        sess.expire(ingredient.recipe, ["ingredients"])

        log_operation(
            logger,
            operation="update_ingredient",
            outcome="success",
            recipe_id=recipe_id,
            ingredient_id=ingredient_id,
            version_number=version.version_number,
        )
        return ingredient

    return _run("update_ingredient", _impl, session, ingredient_id=ingredient_id)


def delete_ingredient(
    ingredient_id: int,
    user_id: Optional[int] = None,
    change_description: Optional[str] = None,
    session: Optional[Session] = None,
) -> None:
    """
    Delete an ingredient line, recording the prior recipe state first.

    Raises:
        IngredientNotFound: If the ingredient doesn't exist
    """

    def _impl(sess: Session) -> None:
        ingredient = _locked_ingredient(sess, ingredient_id)
        recipe_id = ingredient.recipe_id

        version = _record_current_state(
            sess,
            recipe_id,
            change_description or f"Remove ingredient '{ingredient.name}'",
            None,
            user_id,
        )

        sess.expire(ingredient.recipe, ["ingredients"])
        sess.delete(ingredient)
        sess.flush()

        log_operation(
            logger,
            operation="delete_ingredient",
            outcome="success",
            recipe_id=recipe_id,
            ingredient_id=ingredient_id,
            version_number=version.version_number,
        )

    return _run("delete_ingredient", _impl, session, ingredient_id=ingredient_id)


def add_cooking_step(
    recipe_id: int,
    step_data: Dict,
    user_id: Optional[int] = None,
    change_description: Optional[str] = None,
    session: Optional[Session] = None,
) -> CookingStep:
    """
    Add a cooking step, recording the prior state first.

    If ``step_number`` is omitted the step goes after the current last step.

    Raises:
        ValidationError: If the data is invalid
        RecipeNotFound: If the recipe doesn't exist
    """
    data = dict(step_data)
    if data.get("step_number") is None:
        data.pop("step_number", None)
    is_valid, errors = validate_cooking_step_data(data)
    if not is_valid:
        raise ValidationError(errors)

    def _impl(sess: Session) -> CookingStep:
        recipe = lock_recipe(sess, recipe_id)

        if "step_number" not in data:
            current_max = (
                sess.query(func.max(CookingStep.step_number))
                .filter(CookingStep.recipe_id == recipe_id)
                .scalar()
            )
            data["step_number"] = 1 if current_max is None else current_max + 1

        version = _record_current_state(
            sess,
            recipe_id,
            change_description or f"Add step {data['step_number']}",
            None,
            user_id,
        )

        step = CookingStep(
            recipe_id=recipe_id, **{key: data.get(key) for key in COOKING_STEP_FIELDS}
        )
        sess.add(step)
        sess.flush()
        sess.expire(recipe, ["steps"])

        log_operation(
            logger,
            operation="add_cooking_step",
            outcome="success",
            recipe_id=recipe_id,
            step_id=step.id,
            version_number=version.version_number,
        )
        return step

    return _run("add_cooking_step", _impl, session, recipe_id=recipe_id)


def update_cooking_step(
    step_id: int,
    updates: Dict,
    user_id: Optional[int] = None,
    change_description: Optional[str] = None,
    session: Optional[Session] = None,
) -> CookingStep:
    """
    Update a cooking step, recording the prior recipe state first.

    Raises:
        ValidationError: If updates is empty or invalid
        CookingStepNotFound: If the step doesn't exist
    """
    is_valid, errors = validate_cooking_step_data(updates, partial=True)
    if not is_valid:
        raise ValidationError(errors)

    def _impl(sess: Session) -> CookingStep:
        step = _locked_step(sess, step_id)
        recipe_id = step.recipe_id

        version = _record_current_state(
            sess,
            recipe_id,
            change_description or f"Edit step {step.step_number}",
            None,
            user_id,
        )

        step.update_from_dict(updates, allowed=COOKING_STEP_FIELDS)
        sess.flush()

        log_operation(
            logger,
            operation="update_cooking_step",
            outcome="success",
            recipe_id=recipe_id,
            step_id=step_id,
            version_number=version.version_number,
        )
        return step

    return _run("update_cooking_step", _impl, session, step_id=step_id)


def delete_cooking_step(
    step_id: int,
    user_id: Optional[int] = None,
    change_description: Optional[str] = None,
    session: Optional[Session] = None,
) -> None:
    """
    Delete a cooking step, recording the prior recipe state first.

    Remaining steps keep their numbers.

    Raises:
        CookingStepNotFound: If the step doesn't exist
    """

    def _impl(sess: Session) -> None:
        step = _locked_step(sess, step_id)
        recipe_id = step.recipe_id

        version = _record_current_state(
            sess,
            recipe_id,
            change_description or f"Remove step {step.step_number}",
            None,
            user_id,
        )

        sess.expire(step.recipe, ["steps"])
        sess.delete(step)
        sess.flush()

        log_operation(
            logger,
            operation="delete_cooking_step",
            outcome="success",
            recipe_id=recipe_id,
            step_id=step_id,
            version_number=version.version_number,
        )

    return _run("delete_cooking_step", _impl, session, step_id=step_id)


def replace_categories(
    recipe_id: int,
    category_ids: List[int],
    user_id: Optional[int] = None,
    change_description: Optional[str] = None,
    session: Optional[Session] = None,
) -> List[Category]:
    """
    Replace a recipe's category set, recording the prior state first.

    Args:
        recipe_id: Recipe to re-tag
        category_ids: The complete new set (duplicates are ignored)

    Returns:
        The recipe's categories after the change, ordered by id

    Raises:
        RecipeNotFound: If the recipe doesn't exist
        CategoryNotFound: If a category_id doesn't exist
    """
    wanted = list(dict.fromkeys(category_ids))

    def _impl(sess: Session) -> List[Category]:
        recipe = lock_recipe(sess, recipe_id)

        existing = set()
        if wanted:
            existing = {
                row.id for row in sess.query(Category.id).filter(Category.id.in_(wanted)).all()
            }
        for category_id in wanted:
            if category_id not in existing:
                raise CategoryNotFound(category_id)

        version = _record_current_state(
            sess,
            recipe_id,
            change_description or "Update categories",
            None,
            user_id,
        )

        _replace_category_links(sess, recipe_id, wanted)
        sess.expire(recipe, ["category_links"])

        log_operation(
            logger,
            operation="replace_categories",
            outcome="success",
            recipe_id=recipe_id,
            category_count=len(wanted),
            version_number=version.version_number,
        )
        return recipe.categories

    return _run("replace_categories", _impl, session, recipe_id=recipe_id)


# ============================================================================
# Restore
# ============================================================================


def _replace_ingredients(
    sess: Session, recipe_id: int, entries: Iterable[IngredientEntry]
) -> None:
    """Delete every ingredient line of the recipe, then insert ``entries``."""
    sess.query(Ingredient).filter(Ingredient.recipe_id == recipe_id).delete(
        synchronize_session="fetch"
    )
    sess.flush()
    for entry in entries:
        sess.add(
            Ingredient(recipe_id=recipe_id, **{key: getattr(entry, key) for key in INGREDIENT_FIELDS})
        )
    sess.flush()


def _replace_steps(sess: Session, recipe_id: int, entries: Iterable[StepEntry]) -> None:
    """Delete every cooking step of the recipe, then insert ``entries``."""
    sess.query(CookingStep).filter(CookingStep.recipe_id == recipe_id).delete(
        synchronize_session="fetch"
    )
    sess.flush()
    for entry in entries:
        sess.add(
            CookingStep(
                recipe_id=recipe_id, **{key: getattr(entry, key) for key in COOKING_STEP_FIELDS}
            )
        )
    sess.flush()


def _replace_category_links(sess: Session, recipe_id: int, category_ids: Iterable[int]) -> List[int]:
    """
    Delete every category link of the recipe, then link ``category_ids``.

    Ids missing from the vocabulary are skipped.

    Returns:
        The ids that were skipped
    """
    category_ids = list(category_ids)
    sess.query(RecipeCategoryLink).filter(RecipeCategoryLink.recipe_id == recipe_id).delete(
        synchronize_session="fetch"
    )
    sess.flush()

    existing = set()
    if category_ids:
        existing = {
            row.id for row in sess.query(Category.id).filter(Category.id.in_(category_ids)).all()
        }

    skipped = []
    for category_id in category_ids:
        if category_id not in existing:
            skipped.append(category_id)
            continue
        sess.add(RecipeCategoryLink(recipe_id=recipe_id, category_id=category_id))
    sess.flush()
    return skipped


def _log_skipped_categories(
    recipe_id: int, version_number: int, skipped: List[int], categories: Iterable[CategoryEntry]
) -> None:
    names = {category.id: category.name for category in categories}
    for category_id in skipped:
        log_operation(
            logger,
            operation="restore_version",
            outcome="category_skipped",
            level=logging.WARNING,
            recipe_id=recipe_id,
            version_number=version_number,
            category_id=category_id,
            category_name=names.get(category_id),
        )


def restore_version(
    version_id: int,
    user_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> RestoreResult:
    """
    Restore a recipe to the content of one of its versions.

    The target snapshot is decoded before anything is written, so a damaged
    target aborts with the aggregate and ledger untouched. The state being
    overwritten is appended as a safety version, and the restored state is
    appended as a version recording the restore; a restore therefore always
    adds exactly two versions.

    Categories the target references that have since been deleted are
    skipped and logged.

    Args:
        version_id: Version whose content to restore
        user_id: Editor performing the restore
        session: Optional database session

    Returns:
        RestoreResult with the restored, safety and restore version numbers

    Raises:
        VersionNotFound: If the version doesn't exist
        CorruptSnapshot: If the target snapshot can't be decoded
        RecipeNotFound: If the recipe was deleted concurrently
        VersionConflict: If version numbering raced with another writer
    """

    def _impl(sess: Session) -> RestoreResult:
        version = version_ledger.get_version(version_id, session=sess)
        recipe_id = version.recipe_id
        target_number = version.version_number

        target = version_ledger.load_snapshot(version)
        if target.recipe_id != recipe_id:
            raise CorruptSnapshot(
                f"snapshot belongs to recipe {target.recipe_id}, not {recipe_id}",
                version_id=version_id,
            )

        recipe = lock_recipe(sess, recipe_id)

        safety = _record_current_state(
            sess,
            recipe_id,
            f"Snapshot before restore (restoring to version {target_number})",
            [],
            user_id,
        )

        recipe.update_from_dict(target.recipe.versioned_values(), allowed=VERSIONED_RECIPE_FIELDS)
        sess.flush()
        sess.expire(recipe, ["ingredients", "steps", "category_links"])

        _replace_ingredients(sess, recipe_id, target.ingredients)
        _replace_steps(sess, recipe_id, target.steps)
        skipped = _replace_category_links(sess, recipe_id, target.category_ids)

        if skipped:
            _log_skipped_categories(recipe_id, target_number, skipped, target.categories)

        restored = _record_current_state(
            sess,
            recipe_id,
            f"Restored to version {target_number}",
            [RESTORED_MARKER],
            user_id,
        )

        log_operation(
            logger,
            operation="restore_version",
            outcome="success",
            recipe_id=recipe_id,
            version_id=version_id,
            version_number=target_number,
            safety_version_number=safety.version_number,
            restore_version_number=restored.version_number,
        )

        return RestoreResult(
            recipe_id=recipe_id,
            restored_version_number=target_number,
            safety_version_number=safety.version_number,
            restore_version_number=restored.version_number,
        )

    return _run("restore_version", _impl, session, version_id=version_id)


# ============================================================================
# History reads
# ============================================================================


def get_history(
    recipe_id: int,
    pagination: Optional[PaginationParams] = None,
    session: Optional[Session] = None,
) -> PaginatedResult[dict]:
    """
    A recipe's version history for display, newest first.

    Each item is a version_to_dict() summary; damaged versions are listed
    with ``corrupt`` set instead of failing the whole listing.

    Raises:
        RecipeNotFound: If the recipe doesn't exist
    """

    def _impl(sess: Session) -> PaginatedResult[dict]:
        page = version_ledger.list_versions(recipe_id, pagination, session=sess)
        return PaginatedResult(
            items=[version_ledger.version_to_dict(version) for version in page.items],
            total=page.total,
            page=page.page,
            per_page=page.per_page,
        )

    return _run("get_history", _impl, session, recipe_id=recipe_id)


def get_version_detail(version_id: int, session: Optional[Session] = None) -> dict:
    """
    One version with its full snapshot document.

    Raises:
        VersionNotFound: If the version doesn't exist
        CorruptSnapshot: If its snapshot can't be decoded
    """

    def _impl(sess: Session) -> dict:
        version = version_ledger.get_version(version_id, session=sess)
        snapshot = version_ledger.load_snapshot(version)
        detail = version_ledger.version_to_dict(version)
        detail["changed_fields"] = version_ledger.get_changed_fields(version)
        detail["snapshot"] = snapshot_codec.to_document(snapshot)
        return detail

    return _run("get_version_detail", _impl, session, version_id=version_id)
