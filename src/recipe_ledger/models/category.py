"""
Category model for the shared recipe tag vocabulary.

Categories are flat and grouped by type (ingredient, cuisine, method,
health). Recipes reference them through RecipeCategoryLink.
"""

from sqlalchemy import Column, String, Text, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel


class Category(BaseModel):
    """
    Category model representing one tag of the shared vocabulary.

    Attributes:
        name: Display name (e.g., "Cantonese")
        type: Taxonomy the tag belongs to (see CategoryType)
        description: Optional description text
    """

    __tablename__ = "categories"

    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False, index=True)
    description = Column(Text, nullable=True)

    recipe_links = relationship(
        "RecipeCategoryLink",
        back_populates="category",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("name", "type", name="uq_category_name_type"),
        Index("idx_category_name", "name"),
    )

    def __repr__(self) -> str:
        """String representation of category."""
        return f"<Category(name='{self.name}', type='{self.type}')>"
