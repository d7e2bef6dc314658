"""Tests for the version ledger: numbering, append, listing and audit."""

import json
import logging

import pytest

from recipe_ledger.models import RecipeVersion
from recipe_ledger.services import snapshot_codec, version_ledger
from recipe_ledger.services.dto import PaginationParams
from recipe_ledger.services.exceptions import (
    CorruptSnapshot,
    RecipeNotFound,
    VersionConflict,
    VersionNotFound,
)


def _append(recipe_id, description=None, changed_fields=None):
    snapshot = snapshot_codec.capture(recipe_id)
    return version_ledger.append_version(
        recipe_id, snapshot, change_description=description, changed_fields=changed_fields
    )


def _store_raw(session, recipe_id, version_number, snapshot_data, changed_fields=None):
    """Write a version row directly, bypassing the codec."""
    version = RecipeVersion(
        recipe_id=recipe_id,
        version_number=version_number,
        snapshot_data=snapshot_data,
        changed_fields=changed_fields,
    )
    session.add(version)
    session.commit()
    return version


# ============================================================================
# Numbering
# ============================================================================


class TestNextVersionNumber:
    def test_first_version_is_one(self, test_db, sample_recipe):
        assert version_ledger.next_version_number(sample_recipe.id) == 1

    def test_next_is_max_plus_one(self, test_db, sample_recipe):
        _append(sample_recipe.id)
        _append(sample_recipe.id)

        assert version_ledger.next_version_number(sample_recipe.id) == 3

    def test_numbering_is_per_recipe(self, test_db, sample_recipe, egg_recipe):
        _append(sample_recipe.id)
        _append(sample_recipe.id)

        assert version_ledger.next_version_number(egg_recipe.id) == 1
        assert _append(egg_recipe.id).version_number == 1


# ============================================================================
# append_version
# ============================================================================


class TestAppendVersion:
    def test_append_stores_snapshot_and_metadata(self, test_db, sample_recipe):
        version = _append(sample_recipe.id, "Edit recipe", ["title", "servings"])

        assert version.id is not None
        assert version.version_number == 1
        assert version.change_description == "Edit recipe"
        assert json.loads(version.changed_fields) == ["title", "servings"]
        assert version.created_at is not None
        assert version_ledger.load_snapshot(version) == snapshot_codec.capture(sample_recipe.id)

    def test_child_change_records_null_changed_fields(self, test_db, sample_recipe):
        version = _append(sample_recipe.id, "Edit ingredient", None)

        assert version.changed_fields is None
        assert version_ledger.get_changed_fields(version) is None

    def test_empty_changed_fields_is_kept_distinct_from_null(self, test_db, sample_recipe):
        version = _append(sample_recipe.id, "Safety", [])

        assert version_ledger.get_changed_fields(version) == []

    def test_sequential_appends_are_gap_free(self, test_db, sample_recipe):
        numbers = [_append(sample_recipe.id).version_number for _ in range(5)]

        assert numbers == [1, 2, 3, 4, 5]

    def test_duplicate_number_raises_version_conflict(self, test_db, sample_recipe, monkeypatch):
        _append(sample_recipe.id)
        # Simulate a writer that computed its number without holding the lock
        monkeypatch.setattr(version_ledger, "next_version_number", lambda recipe_id, session=None: 1)

        with pytest.raises(VersionConflict) as exc_info:
            _append(sample_recipe.id)

        assert exc_info.value.version_number == 1
        assert test_db().query(RecipeVersion).count() == 1

    def test_append_logs_success(self, test_db, sample_recipe, caplog):
        with caplog.at_level(logging.INFO, logger="recipe_ledger.services"):
            version = _append(sample_recipe.id)

        records = [r for r in caplog.records if getattr(r, "operation", None) == "append_version"]
        assert len(records) == 1
        assert records[0].outcome == "success"
        assert records[0].recipe_id == sample_recipe.id
        assert records[0].version_number == version.version_number


# ============================================================================
# Reads
# ============================================================================


class TestListVersions:
    def test_newest_first(self, test_db, sample_recipe):
        for _ in range(3):
            _append(sample_recipe.id)

        result = version_ledger.list_versions(sample_recipe.id)

        assert [v.version_number for v in result.items] == [3, 2, 1]
        assert result.total == 3
        assert result.pages == 1

    def test_pagination(self, test_db, sample_recipe):
        for _ in range(5):
            _append(sample_recipe.id)

        page = version_ledger.list_versions(sample_recipe.id, PaginationParams(page=2, per_page=2))

        assert [v.version_number for v in page.items] == [3, 2]
        assert page.total == 5
        assert page.pages == 3
        assert page.has_next
        assert page.has_prev

    def test_empty_history(self, test_db, sample_recipe):
        result = version_ledger.list_versions(sample_recipe.id)

        assert result.items == []
        assert result.total == 0

    def test_unknown_recipe_raises(self, test_db):
        with pytest.raises(RecipeNotFound):
            version_ledger.list_versions(404)


class TestGetVersion:
    def test_get_version(self, test_db, sample_recipe):
        appended = _append(sample_recipe.id)

        version = version_ledger.get_version(appended.id)

        assert version.version_number == 1
        assert version.recipe_id == sample_recipe.id

    def test_missing_version_raises(self, test_db):
        with pytest.raises(VersionNotFound):
            version_ledger.get_version(12345)

    def test_latest_version(self, test_db, sample_recipe):
        assert version_ledger.latest_version(sample_recipe.id) is None

        _append(sample_recipe.id)
        _append(sample_recipe.id)

        assert version_ledger.latest_version(sample_recipe.id).version_number == 2


class TestVersionToDict:
    def test_summary_included(self, test_db, sample_recipe):
        version = _append(sample_recipe.id, "Edit recipe", ["title"])

        data = version_ledger.version_to_dict(version)

        assert data["version_number"] == 1
        assert data["changed_fields"] == ["title"]
        assert data["corrupt"] is False
        assert data["summary"]["ingredient_count"] == 2
        assert "snapshot" not in data

    def test_include_snapshot(self, test_db, sample_recipe):
        version = _append(sample_recipe.id)

        data = version_ledger.version_to_dict(version, include_snapshot=True)

        assert data["snapshot"]["recipe"]["title"] == "Steamed Egg Custard"

    def test_corrupt_version_is_flagged_not_raised(self, test_db, sample_recipe):
        version = _store_raw(test_db(), sample_recipe.id, 1, "{broken")

        data = version_ledger.version_to_dict(version)

        assert data["corrupt"] is True
        assert data["summary"] is None
        assert "Corrupt snapshot" in data["error"]

    def test_load_snapshot_of_corrupt_version_raises(self, test_db, sample_recipe):
        version = _store_raw(test_db(), sample_recipe.id, 1, '{"schema": "other"}')

        with pytest.raises(CorruptSnapshot) as exc_info:
            version_ledger.load_snapshot(version)

        assert exc_info.value.version_id == version.id

    def test_invalid_changed_fields_raise(self, test_db, sample_recipe):
        blob = snapshot_codec.encode(snapshot_codec.capture(sample_recipe.id))
        version = _store_raw(test_db(), sample_recipe.id, 1, blob, changed_fields='{"a": 1}')

        with pytest.raises(CorruptSnapshot, match="changed_fields"):
            version_ledger.get_changed_fields(version)


# ============================================================================
# audit_history
# ============================================================================


class TestAuditHistory:
    def test_clean_history(self, test_db, sample_recipe):
        _append(sample_recipe.id)
        _append(sample_recipe.id)

        report = version_ledger.audit_history()

        assert report["ok"] is True
        assert report["versions_checked"] == 2
        assert report["corrupt_versions"] == []
        assert report["numbering_gaps"] == []

    def test_reports_corrupt_versions_and_gaps(self, test_db, sample_recipe, caplog):
        blob = snapshot_codec.encode(snapshot_codec.capture(sample_recipe.id))
        session = test_db()
        _store_raw(session, sample_recipe.id, 1, blob)
        bad = _store_raw(session, sample_recipe.id, 2, "not json at all")
        _store_raw(session, sample_recipe.id, 5, blob)

        with caplog.at_level(logging.WARNING, logger="recipe_ledger.services"):
            report = version_ledger.audit_history(sample_recipe.id)

        assert report["ok"] is False
        assert report["versions_checked"] == 3
        assert [item["version_id"] for item in report["corrupt_versions"]] == [bad.id]
        assert report["numbering_gaps"] == [{"recipe_id": sample_recipe.id, "missing": [3, 4]}]
        assert "audit_history: problems_found" in caplog.text

    def test_snapshot_of_other_recipe_is_corrupt(self, test_db, sample_recipe, egg_recipe):
        blob = snapshot_codec.encode(snapshot_codec.capture(egg_recipe.id))
        _store_raw(test_db(), sample_recipe.id, 1, blob)

        report = version_ledger.audit_history(sample_recipe.id)

        assert len(report["corrupt_versions"]) == 1
        assert "belongs to recipe" in report["corrupt_versions"][0]["error"]
