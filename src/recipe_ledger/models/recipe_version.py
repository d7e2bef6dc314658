"""
RecipeVersion model, one entry of a recipe's version ledger.

Each row stores the complete recipe aggregate (scalar fields, ingredients,
cooking steps and categories) as it existed at one instant, serialized as a
JSON document. Rows are append-only: the ORM refuses to UPDATE them.
"""

import json
from typing import List, Optional

from sqlalchemy import Column, ForeignKey, Index, Integer, Text, UniqueConstraint, event, inspect
from sqlalchemy.orm import relationship

from .base import BaseModel


class ImmutableVersionError(Exception):
    """Raised when a persisted RecipeVersion is modified."""

    def __init__(self, version_id: int):
        self.version_id = version_id
        super().__init__(f"Recipe version {version_id} is immutable")


class RecipeVersion(BaseModel):
    """
    Immutable snapshot of a recipe aggregate.

    Attributes:
        recipe_id: FK to the recipe (CASCADE: history is deleted with the recipe)
        user_id: Editor that caused the version (optional)
        version_number: 1, 2, 3... per recipe, unique and gap-free
        snapshot_data: JSON document produced by the snapshot codec
        change_description: Human-readable description of the change
        changed_fields: JSON list of changed scalar field names, or NULL
            when the change touched a child collection

    Note:
        - UNIQUE (recipe_id, version_number) rejects a second writer that
          computed the same number
        - JSON columns use Text type for SQLite compatibility
    """

    __tablename__ = "recipe_versions"

    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, nullable=True)
    version_number = Column(Integer, nullable=False)

    snapshot_data = Column(Text, nullable=False)

    change_description = Column(Text, nullable=True)
    changed_fields = Column(Text, nullable=True)

    recipe = relationship("Recipe", back_populates="versions")

    __table_args__ = (
        UniqueConstraint("recipe_id", "version_number", name="uq_recipe_version_number"),
        Index("idx_recipe_version_recipe", "recipe_id"),
        Index("idx_recipe_version_created", "created_at"),
    )

    def get_changed_fields(self) -> Optional[List[str]]:
        """
        Parse the changed field names from JSON.

        Returns:
            List of field names, or None if none were recorded
        """
        if self.changed_fields is None:
            return None
        return json.loads(self.changed_fields)

    def __repr__(self) -> str:
        """String representation of recipe version."""
        return (
            f"RecipeVersion(id={self.id}, recipe_id={self.recipe_id}, "
            f"version_number={self.version_number})"
        )


@event.listens_for(RecipeVersion, "before_update")
def _reject_version_update(mapper, connection, target):
    """Versions are written once; any column change is a programming error."""
    state = inspect(target)
    for prop in mapper.column_attrs:
        if state.attrs[prop.key].history.has_changes():
            raise ImmutableVersionError(target.id)
