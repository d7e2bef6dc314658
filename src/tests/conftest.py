"""Pytest configuration and fixtures for service layer tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from recipe_ledger.models.base import Base


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    # Create in-memory SQLite database for testing
    engine = create_engine("sqlite:///:memory:", echo=False)

    # Create all tables
    Base.metadata.create_all(engine)

    # Create session factory
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import recipe_ledger.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    # Provide database to test
    yield Session

    # Cleanup
    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    # Restore original session factory
    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def sample_categories(test_db):
    """Provide a small category vocabulary: Cantonese, Steamed, Low fat."""
    from recipe_ledger.services import category_service

    return {
        "cantonese": category_service.create_category("Cantonese", "cuisine"),
        "steamed": category_service.create_category("Steamed", "method"),
        "low_fat": category_service.create_category("Low fat", "health"),
    }


@pytest.fixture(scope="function")
def sample_recipe(test_db, sample_categories):
    """Provide a recipe with two ingredients, two steps and two categories.

    Creation records no version, so the ledger starts empty.
    """
    from recipe_ledger.services import recipe_service

    return recipe_service.create_recipe(
        {
            "owner_id": 7,
            "title": "Steamed Egg Custard",
            "description": "Silky Cantonese steamed eggs",
            "servings": 2,
            "difficulty": "easy",
            "prep_time": 5,
            "cook_time": 12,
            "required_equipment": ["steamer", "sieve"],
        },
        ingredients=[
            {"name": "egg", "amount": "3", "unit": "pcs", "calories": 210},
            {"name": "chicken stock", "amount": "270", "unit": "ml", "notes": "warm"},
        ],
        steps=[
            {"instruction": "Beat the eggs with the stock and strain.", "duration": 3},
            {"instruction": "Steam on low heat.", "duration": 12, "temperature": "low"},
        ],
        category_ids=[sample_categories["cantonese"].id, sample_categories["steamed"].id],
    )


@pytest.fixture(scope="function")
def egg_recipe(test_db):
    """Provide the minimal recipe used by the history scenario: one egg, order 1."""
    from recipe_ledger.services import recipe_service

    return recipe_service.create_recipe(
        {"owner_id": 1, "title": "Original title"},
        ingredients=[{"name": "egg", "amount": "1", "order": 1}],
    )
