"""
Tests for input validation functions.

Tests cover the validators module:
- String validation (required, length)
- Integer validation (bounds, booleans rejected)
- Recipe update validation
- Ingredient, cooking step and category validation
"""

from recipe_ledger.utils import validators
from recipe_ledger.utils.constants import MAX_TITLE_LENGTH


class TestStringValidation:
    """Test string validation functions."""

    def test_validate_required_string_valid(self):
        assert validators.validate_required_string("Congee", "Title") == (True, "")

    def test_validate_required_string_blank(self):
        for value in (None, "", "   "):
            is_valid, error = validators.validate_required_string(value, "Title")
            assert not is_valid
            assert "required" in error.lower()

    def test_validate_string_length(self):
        assert validators.validate_string_length("x" * 10, 10, "Unit")[0]
        is_valid, error = validators.validate_string_length("x" * 11, 10, "Unit")
        assert not is_valid
        assert "10 characters" in error

    def test_sanitize_string(self):
        assert validators.sanitize_string("  rice  ") == "rice"
        assert validators.sanitize_string("   ") is None
        assert validators.sanitize_string(None) is None


class TestIntegerValidation:
    def test_valid(self):
        assert validators.validate_integer(5, "Prep")[0]
        assert validators.validate_integer(None, "Prep")[0]

    def test_none_not_allowed(self):
        assert not validators.validate_integer(None, "Owner", allow_none=False)[0]

    def test_negative_rejected(self):
        is_valid, error = validators.validate_integer(-1, "Prep")
        assert not is_valid
        assert "zero or greater" in error

    def test_positive_minimum(self):
        is_valid, error = validators.validate_integer(0, "Servings", minimum=1)
        assert not is_valid
        assert "greater than zero" in error

    def test_bool_and_float_rejected(self):
        assert not validators.validate_integer(True, "Fat")[0]
        assert not validators.validate_integer(1.5, "Fat")[0]


class TestRecipeUpdates:
    def test_valid_updates(self):
        is_valid, errors = validators.validate_recipe_updates(
            {
                "title": "Congee",
                "difficulty": "medium",
                "servings": 4,
                "required_equipment": ["pot"],
                "is_published": True,
                "description": None,
            }
        )
        assert is_valid, errors

    def test_empty_updates(self):
        assert validators.validate_recipe_updates({}) == (False, ["No fields to update"])

    def test_unknown_and_identity_fields(self):
        is_valid, errors = validators.validate_recipe_updates({"id": 3, "revision": 9})
        assert not is_valid
        assert len(errors) == 2

    def test_title_too_long(self):
        is_valid, errors = validators.validate_recipe_updates({"title": "x" * (MAX_TITLE_LENGTH + 1)})
        assert not is_valid

    def test_collects_every_error(self):
        is_valid, errors = validators.validate_recipe_updates(
            {"difficulty": "easyish", "input_method": None, "cook_time": "ten"}
        )
        assert not is_valid
        assert len(errors) == 3

    def test_recipe_data_needs_owner_and_title(self):
        is_valid, errors = validators.validate_recipe_data({})
        assert not is_valid
        assert len(errors) == 2


class TestChildValidation:
    def test_ingredient_full(self):
        assert validators.validate_ingredient_data({"name": "rice", "order": 1})[0]
        assert validators.validate_ingredient_data({"name": "rice"})[0]
        assert not validators.validate_ingredient_data({"amount": "1"})[0]

    def test_ingredient_partial(self):
        assert validators.validate_ingredient_data({"amount": "2"}, partial=True)[0]
        assert not validators.validate_ingredient_data({}, partial=True)[0]
        assert not validators.validate_ingredient_data({"order": None}, partial=True)[0]
        assert not validators.validate_ingredient_data({"recipe_id": 2}, partial=True)[0]

    def test_ingredient_calories_non_negative(self):
        assert not validators.validate_ingredient_data({"name": "oil", "calories": -10})[0]

    def test_step(self):
        assert validators.validate_cooking_step_data({"instruction": "Stir", "step_number": 1})[0]
        assert not validators.validate_cooking_step_data({"instruction": "Stir", "step_number": 0})[0]
        assert not validators.validate_cooking_step_data({"instruction": "Stir", "duration": -1})[0]
        assert validators.validate_cooking_step_data({"tips": "Low heat"}, partial=True)[0]

    def test_category(self):
        assert validators.validate_category_data("Cantonese", "cuisine") == (True, [])
        is_valid, errors = validators.validate_category_data("", "diet")
        assert not is_valid
        assert len(errors) == 2
