"""
Category Service - CRUD operations for the shared category vocabulary.

Categories are grouped by type (ingredient, cuisine, method, health) and
linked to recipes through RecipeCategoryLink. Renaming or deleting a
category never touches version history: snapshots carry the name and type
the category had when they were captured.

Session Management Pattern:
- All functions accept optional `session` parameter
- If session is provided, use it directly (allows callers to manage transactions)
- If session is None, create a new session_scope for the operation
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import Category
from .database import session_scope
from .exceptions import CategoryNotFound, ValidationError
from .logging_utils import get_service_logger, log_operation
from ..utils.validators import sanitize_string, validate_category_data

logger = get_service_logger(__name__)


# ============================================================================
# Utility Functions
# ============================================================================


def _check_unique(
    name: str,
    category_type: str,
    session: Session,
    exclude_id: Optional[int] = None,
) -> None:
    """
    Reject a (name, type) pair that is already taken.

    Raises:
        ValidationError: If another category has the same name and type
    """
    query = session.query(Category).filter(
        Category.name == name,
        Category.type == category_type,
    )
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)

    if query.first() is not None:
        raise ValidationError([f"Category '{name}' already exists for type '{category_type}'"])


# ============================================================================
# CRUD Operations
# ============================================================================


def list_categories(
    category_type: Optional[str] = None,
    session: Optional[Session] = None,
) -> List[Category]:
    """
    List categories ordered by type, then name.

    Args:
        category_type: Only return categories of this type
        session: Optional database session

    Returns:
        List of Category objects
    """

    def _impl(sess: Session) -> List[Category]:
        query = sess.query(Category)
        if category_type is not None:
            query = query.filter(Category.type == category_type)
        return query.order_by(Category.type, Category.name).all()

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def create_category(
    name: str,
    category_type: str,
    description: Optional[str] = None,
    session: Optional[Session] = None,
) -> Category:
    """
    Create a new category.

    Args:
        name: Display name (required)
        category_type: ingredient, cuisine, method or health
        description: Optional description
        session: Optional database session

    Returns:
        Created Category object

    Raises:
        ValidationError: If the name is empty, the type unknown, or the
            (name, type) pair already exists
    """
    is_valid, errors = validate_category_data(name, category_type)
    if not is_valid:
        raise ValidationError(errors)

    name = name.strip()

    def _impl(sess: Session) -> Category:
        _check_unique(name, category_type, sess)

        category = Category(
            name=name,
            type=category_type,
            description=sanitize_string(description),
        )
        sess.add(category)
        sess.flush()

        log_operation(
            logger,
            operation="create_category",
            outcome="success",
            category_id=category.id,
            category_type=category_type,
        )
        return category

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def get_category(category_id: int, session: Optional[Session] = None) -> Category:
    """
    Get a category by ID.

    Raises:
        CategoryNotFound: If the category doesn't exist
    """

    def _impl(sess: Session) -> Category:
        category = sess.query(Category).filter(Category.id == category_id).first()
        if category is None:
            raise CategoryNotFound(category_id)
        return category

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def rename_category(
    category_id: int,
    name: str,
    session: Optional[Session] = None,
) -> Category:
    """
    Rename a category.

    Existing snapshots keep the old name.

    Raises:
        CategoryNotFound: If the category doesn't exist
        ValidationError: If the name is empty or already taken for the type
    """

    def _impl(sess: Session) -> Category:
        category = sess.query(Category).filter(Category.id == category_id).first()
        if category is None:
            raise CategoryNotFound(category_id)

        is_valid, errors = validate_category_data(name, category.type)
        if not is_valid:
            raise ValidationError(errors)

        new_name = name.strip()
        _check_unique(new_name, category.type, sess, exclude_id=category_id)

        category.name = new_name
        sess.flush()
        return category

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def delete_category(category_id: int, session: Optional[Session] = None) -> None:
    """
    Delete a category and its recipe links.

    Recipes simply lose the tag; versions that captured it keep its name
    and type, and a later restore of such a version skips it.

    Raises:
        CategoryNotFound: If the category doesn't exist
    """

    def _impl(sess: Session) -> None:
        category = sess.query(Category).filter(Category.id == category_id).first()
        if category is None:
            raise CategoryNotFound(category_id)

        sess.delete(category)
        sess.flush()

        log_operation(
            logger,
            operation="delete_category",
            outcome="success",
            category_id=category_id,
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)
