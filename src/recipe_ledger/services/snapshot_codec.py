"""
Snapshot Codec - capture, encode and decode recipe aggregate snapshots.

A snapshot is the complete state of one recipe at one instant: its scalar
fields, its ingredient lines in display order, its cooking steps in method
order, and its category set. Snapshots are stored as the payload of a
RecipeVersion and must stay readable for as long as the version exists, so
the stored document is tagged with a schema name and version:

    {
        "schema": "recipe-snapshot",
        "schema_version": 2,
        "recipe_id": 45,
        "recipe": {...scalar fields...},
        "ingredients": [...],
        "steps": [...],
        "categories": [{"id": 3, "name": "Cantonese", "type": "cuisine"}]
    }

Untagged documents are schema version 1: the camelCase row dumps written
before the document was tagged. They are upgraded in memory on decode.

Session Management Pattern:
- capture() accepts session=None
- If session provided, use it directly
- If session is None, create a new session via session_scope()
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Category, CookingStep, Ingredient, InputMethod, Recipe, RecipeCategoryLink
from ..utils.constants import (
    COOKING_STEP_FIELDS,
    DIFFICULTY_LEVELS,
    INGREDIENT_FIELDS,
    INPUT_METHODS,
    INTEGER_RECIPE_FIELDS,
    LEGACY_DIFFICULTY_LABELS,
    SNAPSHOT_SCHEMA,
    SNAPSHOT_SCHEMA_VERSION,
    VERSIONED_RECIPE_FIELDS,
)
from .database import session_scope
from .exceptions import CorruptSnapshot, DatabaseError, RecipeNotFound


# ============================================================================
# Snapshot types
# ============================================================================


@dataclass(frozen=True)
class RecipeFields:
    """Scalar fields of the recipe root."""

    title: str
    owner_id: Optional[int] = None
    description: Optional[str] = None
    input_method: Optional[str] = "manual"
    source_url: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    servings: Optional[int] = None
    difficulty: Optional[str] = None
    prep_time: Optional[int] = None
    cook_time: Optional[int] = None
    total_time: Optional[int] = None
    required_equipment: Optional[Tuple[str, ...]] = None
    total_calories: Optional[int] = None
    calories_per_serving: Optional[int] = None
    protein: Optional[int] = None
    carbs: Optional[int] = None
    fat: Optional[int] = None
    fiber: Optional[int] = None
    is_published: bool = False

    def versioned_values(self) -> Dict[str, Any]:
        """Values of the fields a restore writes back, keyed by field name."""
        values = {name: getattr(self, name) for name in VERSIONED_RECIPE_FIELDS}
        if values["required_equipment"] is not None:
            values["required_equipment"] = list(values["required_equipment"])
        return values


@dataclass(frozen=True)
class IngredientEntry:
    name: str
    order: int
    amount: Optional[str] = None
    unit: Optional[str] = None
    calories: Optional[int] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class StepEntry:
    step_number: int
    instruction: str
    duration: Optional[int] = None
    temperature: Optional[str] = None
    image_url: Optional[str] = None
    tips: Optional[str] = None


@dataclass(frozen=True)
class CategoryEntry:
    """Category reference with its display fields denormalized."""

    id: int
    name: str
    type: str


@dataclass(frozen=True)
class Snapshot:
    """
    Complete, immutable state of one recipe aggregate.

    Attributes:
        recipe_id: Recipe the snapshot was captured from
        recipe: Scalar fields
        ingredients: Ingredient lines sorted by order
        steps: Cooking steps sorted by step_number
        categories: Category set sorted by id

    Child row ids are storage identities and are deliberately absent, so
    a restored aggregate captures equal to the snapshot it came from.
    """

    recipe_id: int
    recipe: RecipeFields
    ingredients: Tuple[IngredientEntry, ...] = field(default_factory=tuple)
    steps: Tuple[StepEntry, ...] = field(default_factory=tuple)
    categories: Tuple[CategoryEntry, ...] = field(default_factory=tuple)

    @property
    def category_ids(self) -> Tuple[int, ...]:
        return tuple(category.id for category in self.categories)


# ============================================================================
# Capture
# ============================================================================


def capture(recipe_id: int, session: Session = None) -> Snapshot:
    """
    Read the live aggregate of a recipe into a Snapshot.

    Children are read with explicit ordered queries rather than through the
    relationship collections, so the result reflects everything flushed in
    the current transaction.

    Args:
        recipe_id: Recipe to capture
        session: Optional SQLAlchemy session for transaction sharing

    Returns:
        Snapshot of the current state

    Raises:
        RecipeNotFound: If the recipe doesn't exist
        DatabaseError: If the read fails
    """

    def _impl(sess: Session) -> Snapshot:
        recipe = sess.query(Recipe).filter(Recipe.id == recipe_id).first()
        if recipe is None:
            raise RecipeNotFound(recipe_id)

        ingredients = (
            sess.query(Ingredient)
            .filter(Ingredient.recipe_id == recipe_id)
            .order_by(Ingredient.order, Ingredient.id)
            .all()
        )
        steps = (
            sess.query(CookingStep)
            .filter(CookingStep.recipe_id == recipe_id)
            .order_by(CookingStep.step_number, CookingStep.id)
            .all()
        )
        categories = (
            sess.query(Category)
            .join(RecipeCategoryLink, RecipeCategoryLink.category_id == Category.id)
            .filter(RecipeCategoryLink.recipe_id == recipe_id)
            .order_by(Category.id)
            .all()
        )

        equipment = recipe.required_equipment
        scalar = {name: getattr(recipe, name) for name in VERSIONED_RECIPE_FIELDS}
        scalar["required_equipment"] = tuple(equipment) if equipment is not None else None
        scalar["is_published"] = bool(recipe.is_published)

        return Snapshot(
            recipe_id=recipe.id,
            recipe=RecipeFields(owner_id=recipe.owner_id, **scalar),
            ingredients=tuple(
                IngredientEntry(**{name: getattr(row, name) for name in INGREDIENT_FIELDS})
                for row in ingredients
            ),
            steps=tuple(
                StepEntry(**{name: getattr(row, name) for name in COOKING_STEP_FIELDS})
                for row in steps
            ),
            categories=tuple(
                CategoryEntry(id=row.id, name=row.name, type=row.type) for row in categories
            ),
        )

    if session is not None:
        return _impl(session)

    try:
        with session_scope() as sess:
            return _impl(sess)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to capture recipe {recipe_id}", original_error=e)


# ============================================================================
# Encode
# ============================================================================


def to_document(snapshot: Snapshot) -> dict:
    """Convert a Snapshot to the tagged document stored in the ledger."""
    recipe = {"owner_id": snapshot.recipe.owner_id}
    recipe.update(snapshot.recipe.versioned_values())

    return {
        "schema": SNAPSHOT_SCHEMA,
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "recipe_id": snapshot.recipe_id,
        "recipe": recipe,
        "ingredients": [
            {name: getattr(entry, name) for name in INGREDIENT_FIELDS}
            for entry in snapshot.ingredients
        ],
        "steps": [
            {name: getattr(entry, name) for name in COOKING_STEP_FIELDS}
            for entry in snapshot.steps
        ],
        "categories": [
            {"id": entry.id, "name": entry.name, "type": entry.type}
            for entry in snapshot.categories
        ],
    }


def encode(snapshot: Snapshot) -> str:
    """
    Serialize a Snapshot to JSON text.

    Keys are sorted and non-ASCII text is kept as-is so the stored document
    stays readable when inspected directly in the database.
    """
    return json.dumps(to_document(snapshot), sort_keys=True, ensure_ascii=False)


# ============================================================================
# Decode
# ============================================================================

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

_STRING_RECIPE_FIELDS = ("description", "source_url", "image_url", "video_url")


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def _upgrade_v1(document: dict) -> dict:
    """
    Upgrade an untagged legacy document to the current layout.

    Legacy documents are raw row dumps: camelCase keys, the owner stored as
    userId, difficulty as a display label and requiredEquipment as JSON text.
    Row ids and timestamps are dropped.
    """
    for key in ("recipe", "ingredients", "steps", "categories"):
        if key not in document:
            raise CorruptSnapshot(f"missing key '{key}'")

    legacy_recipe = document["recipe"]
    if not isinstance(legacy_recipe, dict):
        raise CorruptSnapshot("'recipe' must be an object")

    row = {_snake_case(key): value for key, value in legacy_recipe.items()}
    recipe = {name: row.get(name) for name in VERSIONED_RECIPE_FIELDS}
    recipe["owner_id"] = row.get("user_id", row.get("owner_id"))

    difficulty = recipe["difficulty"]
    recipe["difficulty"] = LEGACY_DIFFICULTY_LABELS.get(difficulty, difficulty)

    equipment = recipe["required_equipment"]
    if isinstance(equipment, str):
        try:
            equipment = json.loads(equipment)
        except json.JSONDecodeError:
            equipment = []
        recipe["required_equipment"] = equipment if isinstance(equipment, list) else []

    if recipe["is_published"] is None:
        recipe["is_published"] = False
    if recipe["input_method"] is None:
        recipe["input_method"] = InputMethod.MANUAL.value

    def _rows(key: str, fields) -> list:
        rows = document[key]
        if not isinstance(rows, list):
            raise CorruptSnapshot(f"'{key}' must be a list")
        upgraded = []
        for item in rows:
            if not isinstance(item, dict):
                raise CorruptSnapshot(f"'{key}' entries must be objects")
            converted = {_snake_case(k): v for k, v in item.items()}
            upgraded.append({name: converted.get(name) for name in fields})
        return upgraded

    ingredients = _rows("ingredients", INGREDIENT_FIELDS)

    # Legacy rows could share an order; renumber 1..n keeping (order, position)
    orders = [row["order"] for row in ingredients]
    if all(_is_int(order) for order in orders) and len(set(orders)) != len(orders):
        for position, row in enumerate(sorted(ingredients, key=lambda r: r["order"]), start=1):
            row["order"] = position

    return {
        "schema": SNAPSHOT_SCHEMA,
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "recipe_id": legacy_recipe.get("id"),
        "recipe": recipe,
        "ingredients": ingredients,
        "steps": _rows("steps", COOKING_STEP_FIELDS),
        "categories": _rows("categories", ("id", "name", "type")),
    }


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _require(container: dict, key: str, where: str) -> Any:
    if key not in container:
        raise CorruptSnapshot(f"missing key '{key}' in {where}")
    return container[key]


def _check_optional(value: Any, kind: str, name: str, where: str) -> None:
    if value is None:
        return
    if kind == "int" and not _is_int(value):
        raise CorruptSnapshot(f"'{name}' in {where} must be an integer")
    if kind == "str" and not isinstance(value, str):
        raise CorruptSnapshot(f"'{name}' in {where} must be a string")


def _build_recipe_fields(data: Any) -> RecipeFields:
    if not isinstance(data, dict):
        raise CorruptSnapshot("'recipe' must be an object")

    title = _require(data, "title", "recipe")
    if not isinstance(title, str):
        raise CorruptSnapshot("'title' in recipe must be a string")

    values = {name: data.get(name) for name in VERSIONED_RECIPE_FIELDS}
    values["owner_id"] = data.get("owner_id")

    _check_optional(values["owner_id"], "int", "owner_id", "recipe")
    for name in INTEGER_RECIPE_FIELDS:
        _check_optional(values[name], "int", name, "recipe")
    for name in _STRING_RECIPE_FIELDS:
        _check_optional(values[name], "str", name, "recipe")

    if values["input_method"] is None:
        values["input_method"] = InputMethod.MANUAL.value
    elif values["input_method"] not in INPUT_METHODS:
        raise CorruptSnapshot(f"unknown input_method {values['input_method']!r} in recipe")
    if values["difficulty"] is not None and values["difficulty"] not in DIFFICULTY_LEVELS:
        raise CorruptSnapshot(f"unknown difficulty {values['difficulty']!r} in recipe")

    equipment = values["required_equipment"]
    if equipment is not None:
        if not isinstance(equipment, list) or not all(isinstance(e, str) for e in equipment):
            raise CorruptSnapshot("'required_equipment' in recipe must be a list of strings")
        values["required_equipment"] = tuple(equipment)

    is_published = values["is_published"]
    if is_published is None:
        values["is_published"] = False
    elif not isinstance(is_published, bool):
        raise CorruptSnapshot("'is_published' in recipe must be a boolean")

    return RecipeFields(**values)


def _build_ingredient(data: Any) -> IngredientEntry:
    if not isinstance(data, dict):
        raise CorruptSnapshot("ingredient entries must be objects")
    name = _require(data, "name", "ingredient")
    order = _require(data, "order", "ingredient")
    if not isinstance(name, str):
        raise CorruptSnapshot("'name' in ingredient must be a string")
    if not _is_int(order):
        raise CorruptSnapshot("'order' in ingredient must be an integer")
    for key in ("amount", "unit", "notes"):
        _check_optional(data.get(key), "str", key, "ingredient")
    _check_optional(data.get("calories"), "int", "calories", "ingredient")
    return IngredientEntry(**{key: data.get(key) for key in INGREDIENT_FIELDS})


def _build_step(data: Any) -> StepEntry:
    if not isinstance(data, dict):
        raise CorruptSnapshot("step entries must be objects")
    step_number = _require(data, "step_number", "step")
    instruction = _require(data, "instruction", "step")
    if not _is_int(step_number):
        raise CorruptSnapshot("'step_number' in step must be an integer")
    if not isinstance(instruction, str):
        raise CorruptSnapshot("'instruction' in step must be a string")
    for key in ("temperature", "image_url", "tips"):
        _check_optional(data.get(key), "str", key, "step")
    _check_optional(data.get("duration"), "int", "duration", "step")
    return StepEntry(**{key: data.get(key) for key in COOKING_STEP_FIELDS})


def _build_category(data: Any) -> CategoryEntry:
    if not isinstance(data, dict):
        raise CorruptSnapshot("category entries must be objects")
    category_id = _require(data, "id", "category")
    if not _is_int(category_id):
        raise CorruptSnapshot("'id' in category must be an integer")
    name = data.get("name")
    category_type = data.get("type")
    _check_optional(name, "str", "name", "category")
    _check_optional(category_type, "str", "type", "category")
    return CategoryEntry(id=category_id, name=name or "", type=category_type or "")


def _build_list(document: dict, key: str, builder) -> tuple:
    items = _require(document, key, "snapshot")
    if not isinstance(items, list):
        raise CorruptSnapshot(f"'{key}' must be a list")
    return tuple(builder(item) for item in items)


def decode(blob: Union[str, bytes], version_id: Optional[int] = None) -> Snapshot:
    """
    Parse a stored document back into a Snapshot.

    Accepts the current tagged layout and untagged schema version 1
    documents. Keys the schema doesn't know are ignored.

    Args:
        blob: JSON text as stored in RecipeVersion.snapshot_data
        version_id: Version the blob belongs to, for error reporting

    Returns:
        The decoded Snapshot

    Raises:
        CorruptSnapshot: If the text isn't JSON, has the wrong schema tag,
            comes from a newer schema version, or is missing required keys
            or has values of the wrong type
    """
    try:
        return _decode(blob)
    except CorruptSnapshot as e:
        if version_id is None or e.version_id is not None:
            raise
        raise CorruptSnapshot(e.reason, version_id=version_id) from e


def _decode(blob: Union[str, bytes]) -> Snapshot:
    if blob is None:
        raise CorruptSnapshot("snapshot is empty")
    try:
        document = json.loads(blob)
    except (TypeError, ValueError) as e:
        raise CorruptSnapshot(f"not valid JSON ({e})") from e

    if not isinstance(document, dict):
        raise CorruptSnapshot("document must be a JSON object")

    if "schema" not in document:
        document = _upgrade_v1(document)
    else:
        if document["schema"] != SNAPSHOT_SCHEMA:
            raise CorruptSnapshot(f"unknown schema tag {document['schema']!r}")
        schema_version = document.get("schema_version")
        if not _is_int(schema_version) or schema_version < 2:
            raise CorruptSnapshot(f"invalid schema_version {schema_version!r}")
        if schema_version > SNAPSHOT_SCHEMA_VERSION:
            raise CorruptSnapshot(
                f"schema_version {schema_version} is newer than supported "
                f"version {SNAPSHOT_SCHEMA_VERSION}"
            )

    recipe_id = _require(document, "recipe_id", "snapshot")
    if not _is_int(recipe_id):
        raise CorruptSnapshot("'recipe_id' must be an integer")

    ingredients = _build_list(document, "ingredients", _build_ingredient)
    orders = [entry.order for entry in ingredients]
    if len(set(orders)) != len(orders):
        raise CorruptSnapshot("ingredient order values are not unique")

    return Snapshot(
        recipe_id=recipe_id,
        recipe=_build_recipe_fields(_require(document, "recipe", "snapshot")),
        ingredients=tuple(sorted(ingredients, key=lambda e: e.order)),
        steps=tuple(
            sorted(_build_list(document, "steps", _build_step), key=lambda e: e.step_number)
        ),
        categories=tuple(
            sorted(_build_list(document, "categories", _build_category), key=lambda e: e.id)
        ),
    )


# ============================================================================
# Display
# ============================================================================


def summarize(snapshot: Snapshot) -> dict:
    """
    Short description of a snapshot for history listings.

    Returns:
        Dictionary with title, description, servings and the ingredient,
        step and category counts
    """
    return {
        "title": snapshot.recipe.title,
        "description": snapshot.recipe.description,
        "servings": snapshot.recipe.servings,
        "ingredient_count": len(snapshot.ingredients),
        "step_count": len(snapshot.steps),
        "category_count": len(snapshot.categories),
        "categories": [category.name for category in snapshot.categories],
    }
