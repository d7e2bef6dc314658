"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .enums import CategoryType, Difficulty, InputMethod
from .category import Category
from .recipe import Recipe, Ingredient, CookingStep, RecipeCategoryLink
from .recipe_version import RecipeVersion, ImmutableVersionError

__all__ = [
    "Base",
    "BaseModel",
    # Enums
    "CategoryType",
    "Difficulty",
    "InputMethod",
    # Aggregate
    "Recipe",
    "Ingredient",
    "CookingStep",
    "RecipeCategoryLink",
    # Vocabulary
    "Category",
    # Ledger
    "RecipeVersion",
    "ImmutableVersionError",
]
