"""Service layer exception classes for Recipe Ledger.

This module defines all custom exceptions used by the service layer so the
request layer can tell failure kinds apart.

Exception Hierarchy:
    ServiceError (base)
    ├── NotFoundError
    │   ├── RecipeNotFound
    │   ├── VersionNotFound
    │   ├── IngredientNotFound
    │   ├── CookingStepNotFound
    │   └── CategoryNotFound
    ├── CorruptSnapshot
    ├── VersionConflict
    ├── ValidationError
    └── DatabaseError

ImmutableVersionError is raised by the model layer itself and re-exported
here for convenience.
"""

from typing import Optional

from ..models.recipe_version import ImmutableVersionError  # noqa: F401


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions inherit from this class.
    """

    pass


class NotFoundError(ServiceError):
    """Base class for "the addressed record does not exist" errors."""

    pass


class RecipeNotFound(NotFoundError):
    """Raised when a recipe cannot be found by ID.

    Example:
        >>> raise RecipeNotFound(12)
        RecipeNotFound: Recipe with ID 12 not found
    """

    def __init__(self, recipe_id: int):
        self.recipe_id = recipe_id
        super().__init__(f"Recipe with ID {recipe_id} not found")


class VersionNotFound(NotFoundError):
    """Raised when a recipe version cannot be found by ID."""

    def __init__(self, version_id: int):
        self.version_id = version_id
        super().__init__(f"Recipe version with ID {version_id} not found")


class IngredientNotFound(NotFoundError):
    """Raised when an ingredient line cannot be found by ID."""

    def __init__(self, ingredient_id: int):
        self.ingredient_id = ingredient_id
        super().__init__(f"Ingredient with ID {ingredient_id} not found")


class CookingStepNotFound(NotFoundError):
    """Raised when a cooking step cannot be found by ID."""

    def __init__(self, step_id: int):
        self.step_id = step_id
        super().__init__(f"Cooking step with ID {step_id} not found")


class CategoryNotFound(NotFoundError):
    """Raised when a category cannot be found by ID."""

    def __init__(self, category_id: int):
        self.category_id = category_id
        super().__init__(f"Category with ID {category_id} not found")


class CorruptSnapshot(ServiceError):
    """Raised when a stored snapshot document cannot be decoded.

    Distinct from VersionNotFound: the version exists but its history
    payload is damaged or written by an unsupported schema.

    Args:
        reason: What was wrong with the document
        version_id: The version whose snapshot failed to decode, if known

    Example:
        >>> raise CorruptSnapshot("missing key 'recipe'", version_id=7)
        CorruptSnapshot: Corrupt snapshot in version 7: missing key 'recipe'
    """

    def __init__(self, reason: str, version_id: Optional[int] = None):
        self.reason = reason
        self.version_id = version_id
        if version_id is None:
            message = f"Corrupt snapshot: {reason}"
        else:
            message = f"Corrupt snapshot in version {version_id}: {reason}"
        super().__init__(message)


class VersionConflict(ServiceError):
    """Raised when another writer already took the version number.

    Only reachable if the per-recipe lock was bypassed; the unique
    (recipe_id, version_number) constraint is the last line of defense.
    """

    def __init__(self, recipe_id: int, version_number: int):
        self.recipe_id = recipe_id
        self.version_number = version_number
        super().__init__(
            f"Version {version_number} of recipe {recipe_id} was written concurrently"
        )


class ValidationError(ServiceError):
    """Raised when mutation input fails validation."""

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")


class DatabaseError(ServiceError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
