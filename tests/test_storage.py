import json
import logging

import pytest

from timesheet_tracker.errors import StorageError
from timesheet_tracker.storage import JsonEntryStore, JsonRateStore, MemoryStore


class TestJsonEntryStore:
    def test_ensure_creates_empty_file(self, tmp_path):
        path = tmp_path / "nested" / "timesheet.json"
        store = JsonEntryStore(path)
        store.ensure()
        assert json.loads(path.read_text(encoding="utf-8")) == []

    def test_ensure_keeps_existing_file(self, tmp_path):
        path = tmp_path / "timesheet.json"
        path.write_text(json.dumps([{"id": "a"}]), encoding="utf-8")
        JsonEntryStore(path).ensure()
        assert json.loads(path.read_text(encoding="utf-8")) == [{"id": "a"}]

    def test_put_appends_then_replaces_in_place(self, tmp_path):
        store = JsonEntryStore(tmp_path / "timesheet.json")
        store.put("a", {"id": "a", "courseName": "Algebra"})
        store.put("b", {"id": "b", "courseName": "Physics"})
        store.put("a", {"id": "a", "courseName": "Geometry"})

        assert [record["courseName"] for record in store.list()] == ["Geometry", "Physics"]
        assert store.get("a") == {"id": "a", "courseName": "Geometry"}
        assert store.get("missing") is None
        assert [key for key, _ in store.items()] == ["a", "b"]

    def test_delete(self, tmp_path):
        store = JsonEntryStore(tmp_path / "timesheet.json")
        store.put("a", {"id": "a"})
        assert store.delete("a") is True
        assert store.delete("a") is False
        assert store.list() == []

    def test_file_is_pretty_printed_utf8(self, tmp_path):
        path = tmp_path / "timesheet.json"
        JsonEntryStore(path).put("a", {"id": "a", "workMarkdown": "Übung"})
        text = path.read_text(encoding="utf-8")
        assert "Übung" in text
        assert text.startswith("[\n  {")

    def test_corrupt_file_reads_as_empty(self, tmp_path, caplog):
        path = tmp_path / "timesheet.json"
        path.write_text("{not json", encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="timesheet_tracker.storage"):
            assert JsonEntryStore(path).list() == []
        assert "Failed to read" in caplog.text

    def test_wrong_top_level_type_reads_as_empty(self, tmp_path):
        path = tmp_path / "timesheet.json"
        path.write_text(json.dumps({"a": 1}), encoding="utf-8")
        assert JsonEntryStore(path).list() == []

    def test_missing_file_reads_as_empty(self, tmp_path):
        assert JsonEntryStore(tmp_path / "absent.json").list() == []

    def test_write_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = JsonEntryStore(blocker / "timesheet.json")
        with pytest.raises(StorageError):
            store.put("a", {"id": "a"})


class TestJsonRateStore:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "courseRates.json"
        store = JsonRateStore(path)
        store.ensure()
        assert store.items() == []

        store.put("Algebra", 20)
        store.put("Physics", 22.5)
        assert dict(store.items()) == {"Algebra": 20, "Physics": 22.5}
        assert store.get("Algebra") == 20
        assert store.list() == [20, 22.5]
        assert json.loads(path.read_text(encoding="utf-8")) == {"Algebra": 20, "Physics": 22.5}

    def test_delete(self, tmp_path):
        store = JsonRateStore(tmp_path / "courseRates.json")
        store.put("Algebra", 20)
        assert store.delete("Algebra") is True
        assert store.delete("Algebra") is False


class TestMemoryStore:
    def test_basic_operations(self):
        store = MemoryStore({"a": 1})
        store.put("b", 2)
        assert store.get("b") == 2
        assert store.list() == [1, 2]
        assert store.items() == [("a", 1), ("b", 2)]
        assert store.delete("a") is True
        assert store.delete("a") is False
        assert store.items() == [("b", 2)]
