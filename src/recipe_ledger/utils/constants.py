"""
Constants for the Recipe Ledger application.

This module defines system-wide constants including:
- Application metadata
- Recipe field groups used by the versioning engine
- Enumerated values (difficulty, input method, category type)
- Validation limits and error messages
"""

from typing import Dict, List

from ..models.enums import CategoryType, Difficulty, InputMethod

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Recipe Ledger"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"
DATABASE_FILENAME = "recipe_ledger.db"

# ============================================================================
# Snapshot Document
# ============================================================================

SNAPSHOT_SCHEMA = "recipe-snapshot"
SNAPSHOT_SCHEMA_VERSION = 2

# ============================================================================
# Recipe Field Groups
# ============================================================================

# Scalar fields restored from a snapshot and editable through versioned updates
VERSIONED_RECIPE_FIELDS: List[str] = [
    "title",
    "description",
    "input_method",
    "source_url",
    "image_url",
    "video_url",
    "servings",
    "difficulty",
    "prep_time",
    "cook_time",
    "total_time",
    "required_equipment",
    "total_calories",
    "calories_per_serving",
    "protein",
    "carbs",
    "fat",
    "fiber",
    "is_published",
]

INTEGER_RECIPE_FIELDS: List[str] = [
    "servings",
    "prep_time",
    "cook_time",
    "total_time",
    "total_calories",
    "calories_per_serving",
    "protein",
    "carbs",
    "fat",
    "fiber",
]

INGREDIENT_FIELDS: List[str] = ["name", "amount", "unit", "calories", "notes", "order"]

COOKING_STEP_FIELDS: List[str] = [
    "step_number",
    "instruction",
    "duration",
    "temperature",
    "image_url",
    "tips",
]

# Marker recorded in changed_fields by the version written after a restore
RESTORED_MARKER = "restored"

# ============================================================================
# Enumerated Values
# ============================================================================

DIFFICULTY_LEVELS: List[str] = [level.value for level in Difficulty]

# Difficulty labels found in schema version 1 snapshots
LEGACY_DIFFICULTY_LABELS: Dict[str, str] = {
    "簡單": Difficulty.EASY.value,
    "中等": Difficulty.MEDIUM.value,
    "困難": Difficulty.HARD.value,
}

INPUT_METHODS: List[str] = [method.value for method in InputMethod]

CATEGORY_TYPES: List[str] = [category_type.value for category_type in CategoryType]

# ============================================================================
# Validation Limits
# ============================================================================

MAX_TITLE_LENGTH = 255
MAX_NAME_LENGTH = 255
MAX_CATEGORY_NAME_LENGTH = 100
MAX_AMOUNT_LENGTH = 100
MAX_UNIT_LENGTH = 50
MAX_TEMPERATURE_LENGTH = 50

# ============================================================================
# Error Messages
# ============================================================================

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_INTEGER = "Must be a whole number"
ERROR_INVALID_NON_NEGATIVE = "Must be zero or greater"
ERROR_INVALID_POSITIVE = "Must be greater than zero"
ERROR_UNKNOWN_FIELD = "Not an editable field"
