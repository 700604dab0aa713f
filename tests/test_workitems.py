"""Tests for ralphloop.lib.workitems module."""

import json

import pytest

from ralphloop.lib.workitems import (
    DuplicateIdError,
    MalformedStoreError,
    UnknownIdError,
    WorkItem,
    WorkItemStore,
)


def write_json(path, data):
    path.write_text(json.dumps(data))
    return path


class TestLoad:
    """Tests for WorkItemStore.load."""

    def test_features_object(self, tmp_path):
        path = write_json(tmp_path / "requirements.json", {"features": [
            {"id": "SDET-1.1-001", "category": "Java", "description": "OOP pillars"},
            {"id": "SDET-1.1-002", "category": "Java", "description": "Strings"},
        ]})
        store = WorkItemStore.load(path)
        assert len(store) == 2
        assert store.ids() == ["SDET-1.1-001", "SDET-1.1-002"]
        assert store.source == path

    def test_bare_list(self, tmp_path):
        path = write_json(tmp_path / "requirements.json", [
            {"id": "a", "category": "c", "description": "d"},
        ])
        store = WorkItemStore.load(path)
        assert "a" in store

    def test_extra_fields_become_metadata(self, tmp_path):
        path = write_json(tmp_path / "requirements.json", {"features": [
            {"id": "a", "category": "c", "description": "d", "passes": False, "steps": ["x"]},
        ]})
        item = WorkItemStore.load(path).get("a")
        assert item.metadata == {"passes": False, "steps": ["x"]}

    def test_utf8_bom_accepted(self, tmp_path):
        path = tmp_path / "requirements.json"
        path.write_bytes(b"\xef\xbb\xbf" + json.dumps([{"id": "a", "category": "c", "description": "d"}]).encode())
        assert len(WorkItemStore.load(path)) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            WorkItemStore.load(tmp_path / "requirements.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "requirements.json"
        path.write_text("{not json")
        with pytest.raises(MalformedStoreError, match="Invalid JSON"):
            WorkItemStore.load(path)

    def test_schema_mismatch(self, tmp_path):
        path = write_json(tmp_path / "requirements.json", {"features": [{"id": "a"}]})
        with pytest.raises(MalformedStoreError, match="does not match schema"):
            WorkItemStore.load(path)

    def test_id_used_as_filename_is_validated(self, tmp_path):
        path = write_json(tmp_path / "requirements.json", [
            {"id": "../escape", "category": "c", "description": "d"},
        ])
        with pytest.raises(MalformedStoreError):
            WorkItemStore.load(path)

    def test_duplicate_ids_rejected(self, tmp_path):
        path = write_json(tmp_path / "requirements.json", [
            {"id": "a", "category": "c", "description": "first"},
            {"id": "b", "category": "c", "description": "other"},
            {"id": "a", "category": "c", "description": "second"},
        ])
        with pytest.raises(DuplicateIdError) as exc_info:
            WorkItemStore.load(path)
        assert exc_info.value.item_id == "a"
        assert "records 0 and 2" in str(exc_info.value)

    def test_duplicate_is_a_malformed_store(self):
        assert issubclass(DuplicateIdError, MalformedStoreError)


class TestLookup:
    """Tests for get and reporting helpers."""

    @pytest.fixture
    def store(self):
        return WorkItemStore.from_data({"features": [
            {"id": "a", "category": "Java", "description": "A"},
            {"id": "b", "category": "Selenium", "description": "B"},
            {"id": "c", "category": "Java", "description": "C"},
        ]})

    def test_get(self, store):
        item = store.get("b")
        assert item == WorkItem(id="b", category="Selenium", description="B")

    def test_get_unknown_raises(self, store):
        with pytest.raises(UnknownIdError) as exc_info:
            store.get("zzz")
        assert exc_info.value.item_id == "zzz"
        assert "Unknown id 'zzz'" in str(exc_info.value)

    def test_unknown_id_is_key_error(self, store):
        with pytest.raises(KeyError):
            store.get("zzz")

    def test_categories(self, store):
        assert store.categories() == {"Java": 2, "Selenium": 1}

    def test_iteration_in_document_order(self, store):
        assert [item.id for item in store] == ["a", "b", "c"]


class TestPromptJson:
    """Tests for WorkItem.to_prompt_json."""

    def test_uses_record_as_authored(self):
        store = WorkItemStore.from_data([
            {"description": "D", "id": "a", "category": "C", "steps": ["one"]},
        ])
        rendered = json.loads(store.get("a").to_prompt_json())
        assert rendered == {"description": "D", "id": "a", "category": "C", "steps": ["one"]}

    def test_rebuilds_without_raw(self):
        item = WorkItem(id="a", category="C", description="D", metadata={"k": 1})
        assert json.loads(item.to_prompt_json()) == {"id": "a", "category": "C", "description": "D", "k": 1}
