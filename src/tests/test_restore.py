"""Tests for restore_version.

Covers the history scenario, convergence, safety-net completeness,
atomicity under an injected failure, and damaged targets.
"""

import json
import logging

import pytest

from recipe_ledger.models import Recipe, RecipeVersion
from recipe_ledger.services import (
    category_service,
    recipe_service,
    snapshot_codec,
    version_ledger,
    versioning_service,
)
from recipe_ledger.services.exceptions import CorruptSnapshot, VersionNotFound


def _versions(recipe_id):
    """All versions of a recipe, oldest first."""
    return list(reversed(version_ledger.list_versions(recipe_id).items))


def _content(snapshot):
    """Snapshot content without the recipe id."""
    return (snapshot.recipe, snapshot.ingredients, snapshot.steps, snapshot.categories)


# ============================================================================
# Scenario
# ============================================================================


class TestRestoreScenario:
    """Title edit, ingredient edit, then restore to version 1."""

    def test_restore_scenario(self, test_db, egg_recipe):
        egg = egg_recipe.ingredients[0]

        versioning_service.update_recipe_fields(egg_recipe.id, {"title": "New title"})
        v1 = _versions(egg_recipe.id)[0]
        snapshot_v1 = version_ledger.load_snapshot(v1)
        assert snapshot_v1.recipe.title == "Original title"
        assert [(i.name, i.order) for i in snapshot_v1.ingredients] == [("egg", 1)]

        versioning_service.update_ingredient(egg.id, {"amount": "2"})
        v2 = _versions(egg_recipe.id)[1]
        snapshot_v2 = version_ledger.load_snapshot(v2)
        assert snapshot_v2.recipe.title == "New title"
        assert snapshot_v2.ingredients[0].amount == "1"

        result = versioning_service.restore_version(v1.id)

        assert result.recipe_id == egg_recipe.id
        assert result.restored_version_number == 1
        assert result.safety_version_number == 3
        assert result.restore_version_number == 4

        recipe = recipe_service.get_recipe(egg_recipe.id)
        assert recipe.title == "Original title"
        assert [(i.name, i.order, i.amount) for i in recipe.ingredients] == [("egg", 1, "1")]

        versions = _versions(egg_recipe.id)
        assert [v.version_number for v in versions] == [1, 2, 3, 4]

    def test_safety_and_restore_versions_metadata(self, test_db, egg_recipe):
        versioning_service.update_recipe_fields(egg_recipe.id, {"title": "New title"})
        v1 = _versions(egg_recipe.id)[0]

        versioning_service.restore_version(v1.id, user_id=5)

        _, safety, restored = _versions(egg_recipe.id)
        assert safety.change_description == "Snapshot before restore (restoring to version 1)"
        assert version_ledger.get_changed_fields(safety) == []
        assert safety.user_id == 5
        assert restored.change_description == "Restored to version 1"
        assert version_ledger.get_changed_fields(restored) == ["restored"]

    def test_restore_event_snapshot_equals_live_state(self, test_db, sample_recipe):
        versioning_service.update_recipe_fields(sample_recipe.id, {"servings": 6})
        versioning_service.replace_categories(sample_recipe.id, [])
        v1 = _versions(sample_recipe.id)[0]

        result = versioning_service.restore_version(v1.id)

        latest = version_ledger.latest_version(sample_recipe.id)
        assert latest.version_number == result.restore_version_number
        assert version_ledger.load_snapshot(latest) == snapshot_codec.capture(sample_recipe.id)
        assert _content(version_ledger.load_snapshot(latest)) == _content(
            version_ledger.load_snapshot(v1)
        )


# ============================================================================
# Convergence and safety net
# ============================================================================


class TestRestoreProperties:
    def test_restore_converges(self, test_db, sample_recipe, sample_categories):
        versioning_service.update_recipe_fields(sample_recipe.id, {"title": "Draft 2"})
        v1 = _versions(sample_recipe.id)[0]
        target = _content(version_ledger.load_snapshot(v1))

        versioning_service.restore_version(v1.id)
        assert _content(snapshot_codec.capture(sample_recipe.id)) == target

        # Unrelated edits in between, then the same restore again
        versioning_service.add_ingredient(sample_recipe.id, {"name": "scallion"})
        versioning_service.delete_cooking_step(recipe_service.get_recipe(sample_recipe.id).steps[0].id)
        versioning_service.replace_categories(sample_recipe.id, [sample_categories["low_fat"].id])
        count_before = len(_versions(sample_recipe.id))

        versioning_service.restore_version(v1.id)

        assert _content(snapshot_codec.capture(sample_recipe.id)) == target
        assert len(_versions(sample_recipe.id)) == count_before + 2

    def test_safety_snapshot_holds_pre_restore_state(self, test_db, sample_recipe):
        versioning_service.update_recipe_fields(sample_recipe.id, {"title": "Draft 2"})
        versioning_service.add_cooking_step(sample_recipe.id, {"instruction": "Garnish."})
        v1 = _versions(sample_recipe.id)[0]
        pre_restore = snapshot_codec.capture(sample_recipe.id)

        result = versioning_service.restore_version(v1.id)

        snapshots = [version_ledger.load_snapshot(v) for v in _versions(sample_recipe.id)]
        assert pre_restore in snapshots
        safety = next(
            v for v in _versions(sample_recipe.id)
            if v.version_number == result.safety_version_number
        )
        assert version_ledger.load_snapshot(safety) == pre_restore

    def test_restore_preserves_order_and_step_numbers(self, test_db):
        recipe = recipe_service.create_recipe(
            {"owner_id": 1, "title": "Sparse"},
            ingredients=[{"name": "a", "order": 5}, {"name": "b", "order": 10}],
            steps=[{"instruction": "one", "step_number": 2}, {"instruction": "two", "step_number": 4}],
        )
        versioning_service.update_ingredient(recipe.ingredients[0].id, {"order": 1})
        v1 = _versions(recipe.id)[0]

        versioning_service.restore_version(v1.id)

        restored = recipe_service.get_recipe(recipe.id)
        assert [(i.name, i.order) for i in restored.ingredients] == [("a", 5), ("b", 10)]
        assert [s.step_number for s in restored.steps] == [2, 4]

    def test_restore_does_not_touch_owner(self, test_db, sample_recipe):
        versioning_service.update_recipe_fields(sample_recipe.id, {"title": "Draft 2"})
        v1 = _versions(sample_recipe.id)[0]
        session = test_db()
        session.query(Recipe).filter_by(id=sample_recipe.id).update({"owner_id": 8})
        session.commit()

        versioning_service.restore_version(v1.id)

        assert recipe_service.get_recipe(sample_recipe.id).owner_id == 8

    def test_deleted_category_skipped_and_logged(self, test_db, sample_recipe, sample_categories, caplog):
        versioning_service.replace_categories(sample_recipe.id, [])
        v1 = _versions(sample_recipe.id)[0]
        steamed = sample_categories["steamed"]
        category_service.delete_category(steamed.id)

        with caplog.at_level(logging.WARNING, logger="recipe_ledger.services"):
            versioning_service.restore_version(v1.id)

        categories = recipe_service.get_recipe_categories(sample_recipe.id)
        assert [c.name for c in categories] == ["Cantonese"]
        skipped = [r for r in caplog.records if getattr(r, "outcome", None) == "category_skipped"]
        assert len(skipped) == 1
        assert skipped[0].category_id == steamed.id
        assert skipped[0].category_name == "Steamed"


# ============================================================================
# Failure handling
# ============================================================================


class TestRestoreFailures:
    def test_missing_version(self, test_db):
        with pytest.raises(VersionNotFound):
            versioning_service.restore_version(999)

    def test_failure_mid_replace_rolls_back_everything(self, test_db, sample_recipe, monkeypatch):
        versioning_service.update_recipe_fields(sample_recipe.id, {"title": "Draft 2", "servings": 9})
        versioning_service.add_ingredient(sample_recipe.id, {"name": "scallion"})
        v1 = _versions(sample_recipe.id)[0]
        before = snapshot_codec.capture(sample_recipe.id)
        version_count = len(_versions(sample_recipe.id))

        original_replace_steps = versioning_service._replace_steps

        def _fail_after_delete(session, recipe_id, entries):
            # Ingredients are already replaced; steps get deleted, then the
            # insert never happens
            original_replace_steps(session, recipe_id, [])
            raise RuntimeError("connection lost")

        monkeypatch.setattr(versioning_service, "_replace_steps", _fail_after_delete)

        with pytest.raises(RuntimeError, match="connection lost"):
            versioning_service.restore_version(v1.id)

        assert snapshot_codec.capture(sample_recipe.id) == before
        assert len(_versions(sample_recipe.id)) == version_count

    def test_corrupt_target_aborts_before_mutation(self, test_db, sample_recipe, caplog):
        versioning_service.update_recipe_fields(sample_recipe.id, {"title": "Draft 2"})
        session = test_db()
        broken = RecipeVersion(
            recipe_id=sample_recipe.id,
            version_number=2,
            snapshot_data='{"schema": "recipe-snapshot", "schema_version": 2, "recipe_id": ',
        )
        session.add(broken)
        session.commit()
        before = snapshot_codec.capture(sample_recipe.id)

        with caplog.at_level(logging.WARNING, logger="recipe_ledger.services"):
            with pytest.raises(CorruptSnapshot) as exc_info:
                versioning_service.restore_version(broken.id)

        assert exc_info.value.version_id == broken.id
        assert snapshot_codec.capture(sample_recipe.id) == before
        assert len(_versions(sample_recipe.id)) == 2
        assert recipe_service.get_recipe(sample_recipe.id).revision == 1
        assert "restore_version: CorruptSnapshot" in caplog.text

    def test_snapshot_of_another_recipe_rejected(self, test_db, sample_recipe, egg_recipe):
        foreign = snapshot_codec.encode(snapshot_codec.capture(egg_recipe.id))
        session = test_db()
        version = RecipeVersion(recipe_id=sample_recipe.id, version_number=1, snapshot_data=foreign)
        session.add(version)
        session.commit()

        with pytest.raises(CorruptSnapshot, match="belongs to recipe"):
            versioning_service.restore_version(version.id)

        assert recipe_service.get_recipe(sample_recipe.id).title == "Steamed Egg Custard"

    def test_legacy_version_can_be_restored(self, test_db, sample_recipe):
        legacy = {
            "recipe": {
                "id": sample_recipe.id,
                "userId": 7,
                "title": "Old custard",
                "inputMethod": "manual",
                "servings": 1,
                "difficulty": "困難",
                "requiredEquipment": None,
                "isPublished": False,
            },
            "ingredients": [{"id": 1, "recipeId": sample_recipe.id, "name": "duck egg", "order": 1}],
            "steps": [],
            "categories": [],
        }
        session = test_db()
        version = RecipeVersion(
            recipe_id=sample_recipe.id,
            version_number=1,
            snapshot_data=json.dumps(legacy, ensure_ascii=False),
        )
        session.add(version)
        session.commit()

        versioning_service.restore_version(version.id)

        recipe = recipe_service.get_recipe(sample_recipe.id)
        assert recipe.title == "Old custard"
        assert recipe.difficulty == "hard"
        assert recipe.required_equipment is None
        assert [i.name for i in recipe.ingredients] == ["duck egg"]
        assert recipe.steps == []
        assert recipe.categories == []

    def test_duplicate_ingredient_orders_abort_before_mutation(self, test_db, sample_recipe):
        document = snapshot_codec.to_document(snapshot_codec.capture(sample_recipe.id))
        document["ingredients"] = [{"name": "egg", "order": 1}, {"name": "salt", "order": 1}]
        session = test_db()
        version = RecipeVersion(
            recipe_id=sample_recipe.id, version_number=1, snapshot_data=json.dumps(document)
        )
        session.add(version)
        session.commit()
        before = snapshot_codec.capture(sample_recipe.id)

        with pytest.raises(CorruptSnapshot, match="order"):
            versioning_service.restore_version(version.id)

        assert snapshot_codec.capture(sample_recipe.id) == before
        assert len(_versions(sample_recipe.id)) == 1
        assert recipe_service.get_recipe(sample_recipe.id).revision == 0

    def test_missing_input_method_restored_as_manual(self, test_db, sample_recipe):
        versioning_service.update_recipe_fields(sample_recipe.id, {"input_method": "weblink"})
        document = snapshot_codec.to_document(snapshot_codec.capture(sample_recipe.id))
        document["recipe"]["input_method"] = None
        session = test_db()
        version = RecipeVersion(
            recipe_id=sample_recipe.id, version_number=2, snapshot_data=json.dumps(document)
        )
        session.add(version)
        session.commit()

        versioning_service.restore_version(version.id)

        assert recipe_service.get_recipe(sample_recipe.id).input_method == "manual"

    def test_legacy_duplicate_orders_restored_renumbered(self, test_db, sample_recipe):
        legacy = {
            "recipe": {"id": sample_recipe.id, "userId": 7, "title": "Old custard",
                       "inputMethod": "manual"},
            "ingredients": [
                {"id": 1, "recipeId": sample_recipe.id, "name": "egg", "order": 1},
                {"id": 2, "recipeId": sample_recipe.id, "name": "water", "order": 1},
            ],
            "steps": [],
            "categories": [],
        }
        session = test_db()
        version = RecipeVersion(
            recipe_id=sample_recipe.id, version_number=1, snapshot_data=json.dumps(legacy)
        )
        session.add(version)
        session.commit()

        versioning_service.restore_version(version.id)

        ingredients = recipe_service.get_recipe(sample_recipe.id).ingredients
        assert [(i.name, i.order) for i in ingredients] == [("egg", 1), ("water", 2)]
