"""
Recipe aggregate models.

This module contains:
- Recipe: Aggregate root holding the recipe's scalar fields
- Ingredient: Ordered ingredient line owned by one recipe
- CookingStep: Numbered instruction owned by one recipe
- RecipeCategoryLink: Association between a recipe and a Category
"""

import json
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import InputMethod


class Recipe(BaseModel):
    """
    Recipe model, the root of the recipe aggregate.

    Deleting a recipe removes its ingredients, steps, category links and
    its whole version history.

    Attributes:
        owner_id: Identity of the user who owns the recipe
        title: Recipe title (required)
        description: Free text description
        input_method: How the recipe was entered (manual, image, weblink)
        source_url / image_url / video_url: Media and provenance links
        servings: Number of servings
        difficulty: easy, medium or hard
        prep_time / cook_time / total_time: Minutes
        required_equipment: List of equipment names (stored as JSON text)
        total_calories / calories_per_serving: kcal
        protein / carbs / fat / fiber: Grams
        is_published: Visible in the public catalog
        revision: Write counter bumped by every versioned change
    """

    __tablename__ = "recipes"

    owner_id = Column(Integer, nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Provenance
    input_method = Column(String(20), nullable=False, default=InputMethod.MANUAL.value)
    source_url = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    video_url = Column(Text, nullable=True)

    # Cooking metadata
    servings = Column(Integer, nullable=True, default=1)
    difficulty = Column(String(20), nullable=True)
    prep_time = Column(Integer, nullable=True)
    cook_time = Column(Integer, nullable=True)
    total_time = Column(Integer, nullable=True)
    required_equipment_json = Column("required_equipment", Text, nullable=True)

    # Nutrition
    total_calories = Column(Integer, nullable=True)
    calories_per_serving = Column(Integer, nullable=True)
    protein = Column(Integer, nullable=True)
    carbs = Column(Integer, nullable=True)
    fat = Column(Integer, nullable=True)
    fiber = Column(Integer, nullable=True)

    is_published = Column(Boolean, nullable=False, default=False)

    revision = Column(Integer, nullable=False, default=0)

    # Relationships
    ingredients = relationship(
        "Ingredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Ingredient.order",
        lazy="selectin",
    )
    steps = relationship(
        "CookingStep",
        back_populates="recipe",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CookingStep.step_number",
        lazy="selectin",
    )
    category_links = relationship(
        "RecipeCategoryLink",
        back_populates="recipe",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    versions = relationship(
        "RecipeVersion",
        back_populates="recipe",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RecipeVersion.version_number",
        lazy="select",
    )

    __table_args__ = (Index("idx_recipe_title", "title"),)

    @property
    def required_equipment(self) -> Optional[List[str]]:
        """Equipment list decoded from JSON text; [] if the stored text is invalid."""
        if self.required_equipment_json is None:
            return None
        try:
            value = json.loads(self.required_equipment_json)
        except json.JSONDecodeError:
            return []
        return value if isinstance(value, list) else []

    @required_equipment.setter
    def required_equipment(self, value: Optional[List[str]]) -> None:
        if value is None:
            self.required_equipment_json = None
        else:
            self.required_equipment_json = json.dumps(list(value), ensure_ascii=False)

    @property
    def categories(self) -> list:
        """Categories linked to this recipe, ordered by id."""
        return sorted(
            (link.category for link in self.category_links if link.category is not None),
            key=lambda category: category.id,
        )

    def __repr__(self) -> str:
        """String representation of recipe."""
        return f"Recipe(id={self.id}, title='{self.title}')"

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert recipe to dictionary.

        Args:
            include_relationships: If True, include ingredients, steps and categories

        Returns:
            Dictionary with required_equipment decoded to a list
        """
        result = super().to_dict(include_relationships=False)
        result.pop("required_equipment_json", None)
        result["required_equipment"] = self.required_equipment

        if include_relationships:
            result["ingredients"] = [ingredient.to_dict() for ingredient in self.ingredients]
            result["steps"] = [step.to_dict() for step in self.steps]
            result["categories"] = [category.to_dict() for category in self.categories]

        return result


class Ingredient(BaseModel):
    """
    Ingredient line of a recipe.

    Attributes:
        recipe_id: Foreign key to Recipe
        name: Ingredient name (required)
        amount: Free text amount (e.g., "200", "2 tbsp")
        unit: Unit of measurement
        calories: kcal contributed by this line
        notes: Optional notes (e.g., "diced")
        order: Display position, unique within the recipe (gaps allowed)
    """

    __tablename__ = "ingredients"

    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False)

    name = Column(String(255), nullable=False)
    amount = Column(String(100), nullable=True)
    unit = Column(String(50), nullable=True)
    calories = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    order = Column(Integer, nullable=False)

    recipe = relationship("Recipe", back_populates="ingredients")

    __table_args__ = (
        UniqueConstraint("recipe_id", "order", name="uq_ingredient_recipe_order"),
        Index("idx_ingredient_recipe", "recipe_id"),
    )

    def __repr__(self) -> str:
        """String representation of ingredient."""
        return f"Ingredient(id={self.id}, recipe_id={self.recipe_id}, name='{self.name}', order={self.order})"


class CookingStep(BaseModel):
    """
    Numbered cooking instruction of a recipe.

    Attributes:
        recipe_id: Foreign key to Recipe
        step_number: 1-based position in the method
        instruction: Instruction text (required)
        duration: Minutes (optional)
        temperature: Free text temperature setting (e.g., "180°C")
        image_url: Optional step illustration
        tips: Optional hints
    """

    __tablename__ = "cooking_steps"

    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False)

    step_number = Column(Integer, nullable=False)
    instruction = Column(Text, nullable=False)
    duration = Column(Integer, nullable=True)
    temperature = Column(String(50), nullable=True)
    image_url = Column(Text, nullable=True)
    tips = Column(Text, nullable=True)

    recipe = relationship("Recipe", back_populates="steps")

    __table_args__ = (Index("idx_cooking_step_recipe", "recipe_id"),)

    def __repr__(self) -> str:
        """String representation of cooking step."""
        return f"CookingStep(id={self.id}, recipe_id={self.recipe_id}, step_number={self.step_number})"


class RecipeCategoryLink(BaseModel):
    """
    Association between a recipe and a category of the shared vocabulary.

    A recipe's links form a set: the (recipe_id, category_id) pair is unique
    and carries no ordering.
    """

    __tablename__ = "recipe_category_links"

    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )

    recipe = relationship("Recipe", back_populates="category_links")
    category = relationship("Category", back_populates="recipe_links", lazy="joined")

    __table_args__ = (
        UniqueConstraint("recipe_id", "category_id", name="uq_recipe_category_link"),
        Index("idx_recipe_category_link_recipe", "recipe_id"),
        Index("idx_recipe_category_link_category", "category_id"),
    )

    def __repr__(self) -> str:
        """String representation of category link."""
        return f"RecipeCategoryLink(recipe_id={self.recipe_id}, category_id={self.category_id})"
