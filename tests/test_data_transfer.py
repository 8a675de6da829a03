"""Tests for export, import, reset and CSV export."""

import io
import json

import pandas as pd
import pytest

from core.models import default_document
from core.persistence import PersistenceEngine
from core.storage import MemoryStorage, QuotaExceededError
from services.data_transfer import CSV_COLUMNS, DataTransferService, merge_documents

MAIN_KEY = "ghgt:data:v3"


class RefusingStorage(MemoryStorage):
    """MemoryStorage that refuses writes for keys matched by `refuse`."""

    def __init__(self):
        super().__init__()
        self.refuse = lambda key: False

    def set(self, key, value):
        if self.refuse(key):
            raise QuotaExceededError(f"quota exceeded while writing {key}")
        super().set(key, value)


@pytest.fixture
def transfer(engine, sample_document) -> DataTransferService:
    engine.save_immediate(sample_document)
    return DataTransferService(engine)


@pytest.fixture
def incoming() -> dict:
    """Document coming from another device."""
    return {
        "habits": [
            {
                "id": "read",
                "title": "Read 20 pages",
                "bestStreak": 3,
                "completions": {"2026-03-10": "2026-03-10T08:00:00"},
            },
            {"id": "walk", "title": "Evening walk", "category": "HEALTH"},
        ],
        "points": 50,
        "totalXP": 400,
        "goals": {"HEALTH": {"monthlyTargetXP": 100}},
        "inventory": [],
        "shop": [{"id": "movie", "name": "Movie night", "cost": 80}],
        "categories": ["HEALTH"],
        "settings": {"theme": "light"},
    }


class TestExport:
    """JSON export of the current document."""

    def test_export_contains_document(self, transfer):
        exported = json.loads(transfer.export_data())
        assert exported["points"] == 120
        assert [habit["id"] for habit in exported["habits"]] == ["read", "save"]

    def test_export_includes_queued_changes(self, transfer, engine):
        engine.save({"points": 777})
        assert json.loads(transfer.export_data())["points"] == 777
        assert not engine.has_pending()


class TestImport:
    """Validation before mutation, replace and merge modes."""

    def test_replace(self, transfer, engine, incoming):
        result = transfer.import_data(json.dumps(incoming), mode="replace")

        assert result.success
        assert result.summary["habits"] == 2
        assert engine.load()["points"] == 50
        assert engine.list_backups()

    def test_invalid_document_lists_errors_and_keeps_data(self, transfer, engine, incoming):
        incoming["points"] = -1
        del incoming["habits"][1]["title"]

        result = transfer.import_data(json.dumps(incoming))

        assert not result.success
        assert any(error.startswith("points") for error in result.errors)
        assert any(error.startswith("habits.1.title") for error in result.errors)
        assert engine.load()["points"] == 120

    def test_missing_sections_rejected(self, transfer):
        result = transfer.import_data(json.dumps({"habits": []}))
        assert "missing section: points" in result.errors

    def test_invalid_json(self, transfer):
        result = transfer.import_data("{not json")
        assert not result.success
        assert result.errors[0].startswith("invalid JSON")

    def test_unknown_mode(self, transfer, incoming):
        result = transfer.import_data(json.dumps(incoming), mode="append")
        assert result.errors == ["unknown import mode: append"]

    def test_merge_by_id(self, transfer, engine, incoming):
        result = transfer.import_data(json.dumps(incoming), mode="merge")

        assert result.success
        assert result.summary["habits_added"] == 1
        assert result.summary["habits_updated"] == 1

        document = engine.load()
        habits = {habit["id"]: habit for habit in document["habits"]}
        assert set(habits) == {"read", "save", "walk"}
        assert len(habits["read"]["completions"]) == 3
        assert habits["read"]["bestStreak"] == 5
        assert document["points"] == 120
        assert document["totalXP"] == 400
        assert document["categories"] == ["PERSONAL DEVELOPMENT", "FINANCIAL", "HEALTH"]
        assert {reward["id"] for reward in document["shop"]} == {"coffee", "movie"}
        assert document["settings"]["theme"] == "dark"

    def test_stored_envelope_can_be_imported(self, transfer, engine, storage):
        raw = storage.get(MAIN_KEY)
        engine.replace_document(default_document())

        result = transfer.import_data(raw)

        assert result.success
        assert engine.load()["totalXP"] == 340

    def test_merge_documents_keeps_current_scalars(self, sample_document, incoming):
        merged = merge_documents(sample_document, incoming)
        assert merged["goals"]["FINANCIAL"] == {"monthlyTargetXP": 200}
        assert merged["goals"]["HEALTH"] == {"monthlyTargetXP": 100}
        assert sample_document["habits"][0]["completions"].keys() == {"2026-03-08", "2026-03-09"}


class TestReset:
    """Reset to the first-run document."""

    def test_reset_restores_defaults_with_backup(self, transfer, engine, storage):
        before = len(engine.list_backups())

        assert transfer.reset_data()

        assert engine.load() == default_document()
        backups = engine.list_backups()
        assert len(backups) == before + 1
        assert "Read 20 pages" in storage.get(backups[0].key)


class TestCsvExport:
    """Completion history as CSV."""

    def test_rows_per_completion(self, transfer):
        frame = pd.read_csv(io.StringIO(transfer.export_completions_csv()), dtype=str)

        assert list(frame.columns) == CSV_COLUMNS
        assert len(frame) == 3
        assert sorted(frame["period"]) == ["2026-02", "2026-03-08", "2026-03-09"]
        assert set(frame["habit_id"]) == {"read", "save"}

    def test_empty_history_has_header_only(self, engine):
        text = DataTransferService(engine).export_completions_csv()
        assert text.strip() == ",".join(CSV_COLUMNS)


@pytest.fixture
def refusing_storage() -> RefusingStorage:
    return RefusingStorage()


@pytest.fixture
def guarded(refusing_storage, scheduler, clock, storage_config, sample_document) -> PersistenceEngine:
    """Engine with stored data over a storage that can start refusing writes."""
    engine = PersistenceEngine(refusing_storage, scheduler.registry("persistence"), storage_config, clock)
    engine.save_immediate(sample_document)
    return engine


class TestWriteFailures:
    """Import and reset never lose the stored document."""

    def test_import_aborts_without_backup(self, guarded, refusing_storage, incoming):
        refusing_storage.refuse = lambda key: key.startswith(f"{MAIN_KEY}_backup_")
        backups = len(guarded.list_backups())

        result = DataTransferService(guarded).import_data(json.dumps(incoming))

        assert not result.success
        assert "backup" in result.errors[0]
        assert guarded.load()["points"] == 120
        assert len(guarded.list_backups()) == backups

    def test_reset_aborts_without_backup(self, guarded, refusing_storage):
        refusing_storage.refuse = lambda key: key.startswith(f"{MAIN_KEY}_backup_")

        assert DataTransferService(guarded).reset_data() is False
        assert guarded.load()["totalXP"] == 340

    def test_failed_import_write_is_not_replayed(self, guarded, refusing_storage, scheduler, incoming):
        refusing_storage.refuse = lambda key: key == MAIN_KEY

        result = DataTransferService(guarded).import_data(json.dumps(incoming))

        assert not result.success
        assert result.errors == ["failed to write imported data; previous data kept"]

        refusing_storage.refuse = lambda key: False
        scheduler.advance(60)

        assert not guarded.has_pending()
        document = guarded.load()
        assert document["points"] == 120
        assert [habit["id"] for habit in document["habits"]] == ["read", "save"]

        assert guarded.save_immediate({"points": 130})
        document = guarded.load()
        assert document["points"] == 130
        assert document["totalXP"] == 340
        assert [reward["id"] for reward in document["shop"]] == ["coffee"]

    def test_failed_reset_write_is_not_replayed(self, guarded, refusing_storage, scheduler):
        refusing_storage.refuse = lambda key: key == MAIN_KEY

        assert DataTransferService(guarded).reset_data() is False

        refusing_storage.refuse = lambda key: False
        scheduler.advance(60)

        assert not guarded.has_pending()
        assert guarded.load()["habits"] != []
        guarded.save_immediate({"points": 5})
        assert guarded.load()["totalXP"] == 340
