"""
Enumerations for recipe data.

- Difficulty: Cooking difficulty of a recipe
- InputMethod: How the recipe entered the system
- CategoryType: Taxonomy a Category belongs to
"""

from enum import Enum


class Difficulty(str, Enum):
    """Cooking difficulty of a recipe."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class InputMethod(str, Enum):
    """
    Source of a recipe.

    Values:
        MANUAL: Typed in through the editor
        IMAGE: Extracted from an uploaded photo
        WEBLINK: Scraped from a web page or video transcript
    """

    MANUAL = "manual"
    IMAGE = "image"
    WEBLINK = "weblink"


class CategoryType(str, Enum):
    """
    Taxonomies of the shared category vocabulary.

    Values:
        INGREDIENT: Main ingredient (e.g. "Chicken")
        CUISINE: Regional cuisine (e.g. "Cantonese")
        METHOD: Cooking method (e.g. "Steamed")
        HEALTH: Health tag (e.g. "Low fat")
    """

    INGREDIENT = "ingredient"
    CUISINE = "cuisine"
    METHOD = "method"
    HEALTH = "health"
