"""Data Transfer Objects for the service layer.

Pagination types used when listing a recipe's version history, which grows
without bound because versions are never deleted.
"""

from dataclasses import dataclass
from typing import Generic, List, TypeVar

T = TypeVar("T")


@dataclass
class PaginationParams:
    """Page-based pagination parameters.

    Attributes:
        page: Page number (1-indexed, default 1)
        per_page: Items per page (default 50, max 1000)

    Raises:
        ValueError: If page < 1, per_page < 1, or per_page > 1000
    """

    page: int = 1
    per_page: int = 50

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.per_page < 1:
            raise ValueError("per_page must be >= 1")
        if self.per_page > 1000:
            raise ValueError("per_page must be <= 1000")

    def offset(self) -> int:
        """SQL OFFSET for this page.

        Examples:
            >>> PaginationParams(page=3, per_page=25).offset()
            50
        """
        return (self.page - 1) * self.per_page


@dataclass
class PaginatedResult(Generic[T]):
    """One page of results plus navigation metadata.

    When a service is called without pagination, all items are returned
    as a single page.

    Examples:
        history = version_ledger.list_versions(recipe_id, PaginationParams(page=2))
        print(f"Page {history.page} of {history.pages}")
    """

    items: List[T]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        """Total number of pages (minimum 1, even for empty results)."""
        if self.total == 0:
            return 1
        return (self.total + self.per_page - 1) // self.per_page

    @property
    def has_next(self) -> bool:
        """True if the current page is not the last page."""
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        """True if the current page is not the first page."""
        return self.page > 1
