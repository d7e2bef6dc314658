"""Tests for database setup, session scope and the recipe lock."""

import pytest
from sqlalchemy import text

from recipe_ledger.models import Recipe
from recipe_ledger.services import database
from recipe_ledger.services.exceptions import RecipeNotFound
from recipe_ledger.utils import config as config_module


@pytest.fixture
def app_database(monkeypatch, tmp_path):
    """The real engine/session factory, pointed at a temporary SQLite file."""
    db_path = tmp_path / "app.db"
    monkeypatch.setenv(config_module.ENV_VAR_DATABASE_URL, f"sqlite:///{db_path}")
    config_module.reset_config()
    database.close_connections()

    database.initialize_app_database()
    yield db_path

    database.close_connections()
    config_module.reset_config()


class TestInitialization:
    def test_creates_tables(self, app_database):
        assert app_database.exists()
        assert database.verify_database()

    def test_sqlite_pragmas(self, app_database):
        with database.get_engine().connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
            assert conn.execute(text("PRAGMA journal_mode")).scalar() == "wal"

    def test_reset_requires_confirmation(self, app_database):
        with pytest.raises(ValueError):
            database.reset_database()

    def test_reset_drops_data(self, app_database):
        with database.session_scope() as session:
            session.add(Recipe(owner_id=1, title="Congee"))

        database.reset_database(confirm=True)

        with database.session_scope() as session:
            assert session.query(Recipe).count() == 0


class TestSessionScope:
    def test_commits_on_success(self, app_database):
        with database.session_scope() as session:
            session.add(Recipe(owner_id=1, title="Congee"))

        with database.session_scope() as session:
            assert session.query(Recipe).count() == 1

    def test_rolls_back_on_error(self, app_database):
        with pytest.raises(RuntimeError):
            with database.session_scope() as session:
                session.add(Recipe(owner_id=1, title="Congee"))
                session.flush()
                raise RuntimeError("boom")

        with database.session_scope() as session:
            assert session.query(Recipe).count() == 0

    def test_rolls_back_on_keyboard_interrupt(self, app_database):
        with pytest.raises(KeyboardInterrupt):
            with database.session_scope() as session:
                session.add(Recipe(owner_id=1, title="Congee"))
                session.flush()
                raise KeyboardInterrupt

        with database.session_scope() as session:
            assert session.query(Recipe).count() == 0


class TestLockRecipe:
    def test_bumps_revision(self, app_database):
        with database.session_scope() as session:
            recipe = Recipe(owner_id=1, title="Congee")
            session.add(recipe)
            session.flush()
            recipe_id = recipe.id

        with database.session_scope() as session:
            locked = database.lock_recipe(session, recipe_id)
            assert locked.revision == 1

        with database.session_scope() as session:
            assert database.lock_recipe(session, recipe_id).revision == 2

    def test_missing_recipe(self, app_database):
        with database.session_scope() as session:
            with pytest.raises(RecipeNotFound):
                database.lock_recipe(session, 404)
