"""Services package - Business logic layer for Recipe Ledger.

Architecture:
- Services: Stateless functions organized by concern
- Transactions: Managed via session_scope() context manager; every public
  function also accepts an existing session
- Exceptions: Consistent error handling via ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- recipe_service: Create, read and delete recipe aggregates
- category_service: Shared category vocabulary
- snapshot_codec: Capture, encode and decode aggregate snapshots
- version_ledger: Append-only version storage and history reads
- versioning_service: Versioned edits and restore

Infrastructure:
- database: Session management, database setup and the per-recipe lock
- exceptions: Custom exception classes for service layer errors
- logging_utils: Structured operation logging
- dto: Pagination types
"""

from . import (
    database,
    recipe_service,
    category_service,
    snapshot_codec,
    version_ledger,
    versioning_service,
)

from .dto import PaginatedResult, PaginationParams

from .exceptions import (
    ServiceError,
    NotFoundError,
    RecipeNotFound,
    VersionNotFound,
    IngredientNotFound,
    CookingStepNotFound,
    CategoryNotFound,
    CorruptSnapshot,
    VersionConflict,
    ValidationError,
    DatabaseError,
    ImmutableVersionError,
)

from .snapshot_codec import Snapshot
from .versioning_service import RestoreResult

__all__ = [
    # Modules
    "database",
    "recipe_service",
    "category_service",
    "snapshot_codec",
    "version_ledger",
    "versioning_service",
    # DTOs
    "PaginatedResult",
    "PaginationParams",
    "Snapshot",
    "RestoreResult",
    # Exceptions
    "ServiceError",
    "NotFoundError",
    "RecipeNotFound",
    "VersionNotFound",
    "IngredientNotFound",
    "CookingStepNotFound",
    "CategoryNotFound",
    "CorruptSnapshot",
    "VersionConflict",
    "ValidationError",
    "DatabaseError",
    "ImmutableVersionError",
]
