"""
Recipe Service - Aggregate Store access.

This module provides the unversioned operations on the recipe aggregate:
- Create a recipe together with its ingredients, steps and categories
- Read recipes and their children
- Delete a recipe (cascades to children and the whole version history)

Edits to an existing recipe go through versioning_service, which records a
version before applying them. Creating a recipe records no version: the
first version captures the state before the first recorded edit.
"""

from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Category, CookingStep, Ingredient, Recipe, RecipeCategoryLink, RecipeVersion
from .database import session_scope
from .exceptions import (
    CategoryNotFound,
    CookingStepNotFound,
    DatabaseError,
    IngredientNotFound,
    RecipeNotFound,
    ValidationError,
)
from .logging_utils import get_service_logger, log_operation
from ..utils.constants import COOKING_STEP_FIELDS, INGREDIENT_FIELDS, VERSIONED_RECIPE_FIELDS
from ..utils.validators import (
    validate_cooking_step_data,
    validate_ingredient_data,
    validate_recipe_data,
)

logger = get_service_logger(__name__)


def _load_children(recipe: Recipe) -> Recipe:
    """Touch the eager relationships so the recipe is usable after the session closes."""
    _ = recipe.ingredients
    _ = recipe.steps
    for link in recipe.category_links:
        _ = link.category
    return recipe


def _number_ingredients(ingredients_data: List[Dict]) -> List[Dict]:
    """
    Fill in missing ``order`` values (1..n by position) and validate lines.

    Raises:
        ValidationError: If a line is invalid or two lines share an order
    """
    errors = []
    numbered = []
    for position, data in enumerate(ingredients_data, start=1):
        data = dict(data)
        if data.get("order") is None:
            data["order"] = position
        is_valid, line_errors = validate_ingredient_data(data)
        if not is_valid:
            errors.extend(f"Ingredient {position}: {error}" for error in line_errors)
        numbered.append(data)

    orders = [data["order"] for data in numbered]
    if len(orders) != len(set(orders)):
        errors.append("Ingredient order values must be unique within a recipe")

    if errors:
        raise ValidationError(errors)
    return numbered


def _number_steps(steps_data: List[Dict]) -> List[Dict]:
    """Fill in missing ``step_number`` values (1..n by position) and validate steps."""
    errors = []
    numbered = []
    for position, data in enumerate(steps_data, start=1):
        data = dict(data)
        if data.get("step_number") is None:
            data["step_number"] = position
        is_valid, step_errors = validate_cooking_step_data(data)
        if not is_valid:
            errors.extend(f"Step {position}: {error}" for error in step_errors)
        numbered.append(data)

    if errors:
        raise ValidationError(errors)
    return numbered


def create_recipe(
    recipe_data: Dict,
    ingredients: Optional[List[Dict]] = None,
    steps: Optional[List[Dict]] = None,
    category_ids: Optional[List[int]] = None,
    session: Optional[Session] = None,
) -> Recipe:
    """
    Create a new recipe with optional children.

    Args:
        recipe_data: Dictionary with owner_id, title and any of the
            versioned recipe fields
        ingredients: List of ingredient dicts (name required; order
            defaults to the 1-based position)
        steps: List of step dicts (instruction required; step_number
            defaults to the 1-based position)
        category_ids: IDs of categories to link
        session: Optional database session

    Returns:
        Created Recipe instance with children loaded

    Raises:
        ValidationError: If any field fails validation
        CategoryNotFound: If a category_id doesn't exist
        DatabaseError: If database operation fails
    """
    is_valid, errors = validate_recipe_data(recipe_data)
    if not is_valid:
        raise ValidationError(errors)

    ingredient_rows = _number_ingredients(ingredients or [])
    step_rows = _number_steps(steps or [])

    def _impl(sess: Session) -> Recipe:
        recipe = Recipe(owner_id=recipe_data["owner_id"], title=recipe_data["title"].strip())
        recipe.update_from_dict(
            {key: value for key, value in recipe_data.items() if key != "title"},
            allowed=VERSIONED_RECIPE_FIELDS,
        )
        sess.add(recipe)
        sess.flush()

        for data in ingredient_rows:
            sess.add(
                Ingredient(
                    recipe_id=recipe.id,
                    **{key: data.get(key) for key in INGREDIENT_FIELDS},
                )
            )

        for data in step_rows:
            sess.add(
                CookingStep(
                    recipe_id=recipe.id,
                    **{key: data.get(key) for key in COOKING_STEP_FIELDS},
                )
            )

        for category_id in dict.fromkeys(category_ids or []):
            if sess.query(Category.id).filter(Category.id == category_id).first() is None:
                raise CategoryNotFound(category_id)
            sess.add(RecipeCategoryLink(recipe_id=recipe.id, category_id=category_id))

        sess.flush()
        sess.refresh(recipe)
        _load_children(recipe)

        log_operation(
            logger,
            operation="create_recipe",
            outcome="success",
            recipe_id=recipe.id,
            ingredient_count=len(ingredient_rows),
            step_count=len(step_rows),
        )
        return recipe

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except (ValidationError, CategoryNotFound):
        raise
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create recipe", e)


def get_recipe(recipe_id: int, session: Optional[Session] = None) -> Recipe:
    """
    Retrieve a recipe by ID with its ordered children loaded.

    Raises:
        RecipeNotFound: If recipe doesn't exist
        DatabaseError: If database operation fails
    """

    def _impl(sess: Session) -> Recipe:
        recipe = sess.query(Recipe).filter_by(id=recipe_id).first()
        if not recipe:
            raise RecipeNotFound(recipe_id)
        return _load_children(recipe)

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except RecipeNotFound:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to retrieve recipe {recipe_id}", e)


def list_recipes(
    owner_id: Optional[int] = None,
    published: Optional[bool] = None,
    session: Optional[Session] = None,
) -> List[Recipe]:
    """
    List recipes with optional filtering, newest first.

    Args:
        owner_id: Only recipes of this owner
        published: Filter on the publish flag
        session: Optional database session

    Returns:
        List of Recipe instances
    """

    def _impl(sess: Session) -> List[Recipe]:
        query = sess.query(Recipe)
        if owner_id is not None:
            query = query.filter(Recipe.owner_id == owner_id)
        if published is not None:
            query = query.filter(Recipe.is_published == published)
        return query.order_by(Recipe.created_at.desc(), Recipe.id.desc()).all()

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to list recipes", e)


def get_ingredient(ingredient_id: int, session: Optional[Session] = None) -> Ingredient:
    """
    Retrieve an ingredient line by ID.

    Raises:
        IngredientNotFound: If the ingredient doesn't exist
    """

    def _impl(sess: Session) -> Ingredient:
        ingredient = sess.query(Ingredient).filter_by(id=ingredient_id).first()
        if not ingredient:
            raise IngredientNotFound(ingredient_id)
        return ingredient

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except IngredientNotFound:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to retrieve ingredient {ingredient_id}", e)


def get_cooking_step(step_id: int, session: Optional[Session] = None) -> CookingStep:
    """
    Retrieve a cooking step by ID.

    Raises:
        CookingStepNotFound: If the step doesn't exist
    """

    def _impl(sess: Session) -> CookingStep:
        step = sess.query(CookingStep).filter_by(id=step_id).first()
        if not step:
            raise CookingStepNotFound(step_id)
        return step

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except CookingStepNotFound:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to retrieve cooking step {step_id}", e)


def get_recipe_categories(recipe_id: int, session: Optional[Session] = None) -> List[Category]:
    """
    Categories linked to a recipe, ordered by id.

    Raises:
        RecipeNotFound: If recipe doesn't exist
    """

    def _impl(sess: Session) -> List[Category]:
        if sess.query(Recipe.id).filter(Recipe.id == recipe_id).first() is None:
            raise RecipeNotFound(recipe_id)
        return (
            sess.query(Category)
            .join(RecipeCategoryLink, RecipeCategoryLink.category_id == Category.id)
            .filter(RecipeCategoryLink.recipe_id == recipe_id)
            .order_by(Category.id)
            .all()
        )

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except RecipeNotFound:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to retrieve categories of recipe {recipe_id}", e)


def delete_recipe(recipe_id: int, session: Optional[Session] = None) -> bool:
    """
    Delete a recipe with its children and its entire version history.

    Args:
        recipe_id: Recipe ID to delete

    Returns:
        True if deletion successful

    Raises:
        RecipeNotFound: If recipe doesn't exist
        DatabaseError: If database operation fails
    """

    def _impl(sess: Session) -> bool:
        recipe = sess.query(Recipe).filter_by(id=recipe_id).first()
        if not recipe:
            raise RecipeNotFound(recipe_id)

        version_count = (
            sess.query(RecipeVersion).filter(RecipeVersion.recipe_id == recipe_id).count()
        )

        sess.delete(recipe)
        sess.flush()

        log_operation(
            logger,
            operation="delete_recipe",
            outcome="success",
            recipe_id=recipe_id,
            versions_deleted=version_count,
        )
        return True

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except RecipeNotFound:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to delete recipe {recipe_id}", e)
