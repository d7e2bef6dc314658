"""
Input validation functions for Recipe Ledger.

Every validator returns ``(is_valid, errors)`` or ``(is_valid, error)``;
services turn failures into ``ValidationError`` before touching the
database, so a rejected mutation never produces a version.
"""

from typing import Any, Iterable, List, Optional, Tuple

from .constants import (
    CATEGORY_TYPES,
    COOKING_STEP_FIELDS,
    DIFFICULTY_LEVELS,
    ERROR_INVALID_INTEGER,
    ERROR_INVALID_NON_NEGATIVE,
    ERROR_INVALID_POSITIVE,
    ERROR_REQUIRED_FIELD,
    ERROR_UNKNOWN_FIELD,
    INGREDIENT_FIELDS,
    INPUT_METHODS,
    INTEGER_RECIPE_FIELDS,
    MAX_AMOUNT_LENGTH,
    MAX_CATEGORY_NAME_LENGTH,
    MAX_NAME_LENGTH,
    MAX_TEMPERATURE_LENGTH,
    MAX_TITLE_LENGTH,
    MAX_UNIT_LENGTH,
    VERSIONED_RECIPE_FIELDS,
)


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a string field is present and not blank.

    Args:
        value: The string value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or not isinstance(value, str) or value.strip() == "":
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_string_length(
    value: Optional[str], max_length: int, field_name: str = "Field"
) -> Tuple[bool, str]:
    """Validate that a string doesn't exceed ``max_length`` characters."""
    if value is not None and not isinstance(value, str):
        return False, f"{field_name}: Must be text"
    if value and len(value) > max_length:
        return False, f"{field_name}: Must be {max_length} characters or less"
    return True, ""


def validate_integer(
    value: Any,
    field_name: str = "Field",
    minimum: Optional[int] = 0,
    allow_none: bool = True,
) -> Tuple[bool, str]:
    """
    Validate an integer field.

    Booleans are rejected even though Python treats them as integers.

    Args:
        value: Value to validate
        field_name: Name of the field for error messages
        minimum: Smallest accepted value (None for no bound)
        allow_none: Whether None is accepted

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None:
        if allow_none:
            return True, ""
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"

    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{field_name}: {ERROR_INVALID_INTEGER}"

    if minimum is not None and value < minimum:
        message = ERROR_INVALID_POSITIVE if minimum == 1 else ERROR_INVALID_NON_NEGATIVE
        return False, f"{field_name}: {message}"

    return True, ""


def validate_choice(
    value: Any, choices: Iterable[str], field_name: str = "Field", allow_none: bool = True
) -> Tuple[bool, str]:
    """Validate that a value is one of ``choices``."""
    if value is None and allow_none:
        return True, ""
    choices = list(choices)
    if value not in choices:
        return False, f"{field_name}: Must be one of {', '.join(choices)}"
    return True, ""


def _check_unknown_fields(data: dict, allowed: Iterable[str]) -> List[str]:
    allowed = set(allowed)
    return [f"{key}: {ERROR_UNKNOWN_FIELD}" for key in data if key not in allowed]


def validate_recipe_updates(updates: dict) -> Tuple[bool, list]:  # noqa: C901
    """
    Validate a partial update of recipe scalar fields.

    Args:
        updates: Field name to new value; only VERSIONED_RECIPE_FIELDS allowed

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if not updates:
        return False, ["No fields to update"]

    errors.extend(_check_unknown_fields(updates, VERSIONED_RECIPE_FIELDS))

    if "title" in updates:
        is_valid, error = validate_required_string(updates["title"], "Title")
        if not is_valid:
            errors.append(error)
        else:
            is_valid, error = validate_string_length(updates["title"], MAX_TITLE_LENGTH, "Title")
            if not is_valid:
                errors.append(error)

    for field in ("description", "source_url", "image_url", "video_url"):
        if field in updates and updates[field] is not None and not isinstance(updates[field], str):
            errors.append(f"{field}: Must be text")

    if "difficulty" in updates:
        is_valid, error = validate_choice(updates["difficulty"], DIFFICULTY_LEVELS, "Difficulty")
        if not is_valid:
            errors.append(error)

    if "input_method" in updates:
        is_valid, error = validate_choice(
            updates["input_method"], INPUT_METHODS, "Input Method", allow_none=False
        )
        if not is_valid:
            errors.append(error)

    for field in INTEGER_RECIPE_FIELDS:
        if field in updates:
            minimum = 1 if field == "servings" else 0
            is_valid, error = validate_integer(updates[field], field, minimum=minimum)
            if not is_valid:
                errors.append(error)

    if "required_equipment" in updates:
        equipment = updates["required_equipment"]
        if equipment is not None and (
            not isinstance(equipment, (list, tuple))
            or not all(isinstance(item, str) for item in equipment)
        ):
            errors.append("required_equipment: Must be a list of text items")

    if "is_published" in updates and not isinstance(updates["is_published"], bool):
        errors.append("is_published: Must be true or false")

    return len(errors) == 0, errors


def validate_recipe_data(data: dict) -> Tuple[bool, list]:
    """
    Validate all fields for a new recipe.

    Args:
        data: Dictionary with owner_id, title and any versioned fields

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    is_valid, error = validate_integer(data.get("owner_id"), "Owner", allow_none=False)
    if not is_valid:
        errors.append(error)

    if "title" not in data:
        errors.append(f"Title: {ERROR_REQUIRED_FIELD}")

    fields = {key: value for key, value in data.items() if key != "owner_id"}
    if fields:
        _, field_errors = validate_recipe_updates(fields)
        errors.extend(field_errors)

    return len(errors) == 0, errors


def validate_ingredient_data(data: dict, partial: bool = False) -> Tuple[bool, list]:
    """
    Validate ingredient line fields.

    Args:
        data: Ingredient fields
        partial: If True, only the supplied fields are checked (updates)

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if partial and not data:
        return False, ["No fields to update"]

    errors.extend(_check_unknown_fields(data, INGREDIENT_FIELDS))

    if not partial or "name" in data:
        is_valid, error = validate_required_string(data.get("name"), "Ingredient Name")
        if not is_valid:
            errors.append(error)
        else:
            is_valid, error = validate_string_length(data["name"], MAX_NAME_LENGTH, "Ingredient Name")
            if not is_valid:
                errors.append(error)

    for field, limit in (("amount", MAX_AMOUNT_LENGTH), ("unit", MAX_UNIT_LENGTH)):
        is_valid, error = validate_string_length(data.get(field), limit, field.title())
        if not is_valid:
            errors.append(error)

    if "notes" in data and data["notes"] is not None and not isinstance(data["notes"], str):
        errors.append("Notes: Must be text")

    is_valid, error = validate_integer(data.get("calories"), "Calories")
    if not is_valid:
        errors.append(error)

    if "order" in data:
        is_valid, error = validate_integer(data["order"], "Order", minimum=None, allow_none=partial is False)
        if not is_valid:
            errors.append(error)

    return len(errors) == 0, errors


def validate_cooking_step_data(data: dict, partial: bool = False) -> Tuple[bool, list]:
    """
    Validate cooking step fields.

    Args:
        data: Step fields
        partial: If True, only the supplied fields are checked (updates)

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if partial and not data:
        return False, ["No fields to update"]

    errors.extend(_check_unknown_fields(data, COOKING_STEP_FIELDS))

    if not partial or "instruction" in data:
        is_valid, error = validate_required_string(data.get("instruction"), "Instruction")
        if not is_valid:
            errors.append(error)

    if "step_number" in data:
        is_valid, error = validate_integer(
            data["step_number"], "Step Number", minimum=1, allow_none=partial is False
        )
        if not is_valid:
            errors.append(error)

    is_valid, error = validate_integer(data.get("duration"), "Duration")
    if not is_valid:
        errors.append(error)

    is_valid, error = validate_string_length(
        data.get("temperature"), MAX_TEMPERATURE_LENGTH, "Temperature"
    )
    if not is_valid:
        errors.append(error)

    for field in ("image_url", "tips"):
        if field in data and data[field] is not None and not isinstance(data[field], str):
            errors.append(f"{field}: Must be text")

    return len(errors) == 0, errors


def validate_category_data(name: Optional[str], category_type: Optional[str]) -> Tuple[bool, list]:
    """Validate the name and type of a vocabulary category."""
    errors = []

    is_valid, error = validate_required_string(name, "Category Name")
    if not is_valid:
        errors.append(error)
    else:
        is_valid, error = validate_string_length(
            name.strip(), MAX_CATEGORY_NAME_LENGTH, "Category Name"
        )
        if not is_valid:
            errors.append(error)

    is_valid, error = validate_choice(category_type, CATEGORY_TYPES, "Category Type", allow_none=False)
    if not is_valid:
        errors.append(error)

    return len(errors) == 0, errors


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Strip whitespace and convert empty strings to None.

    Args:
        value: The string value to sanitize

    Returns:
        Sanitized string or None
    """
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None
