"""
Tests for the JSON record store.
"""

import asyncio
import errno
import json

import pytest

from conftest import make_sprint
from sprint_tracker.errors import (
    DataCorruptionError,
    DataValidationError,
    DuplicateSprintError,
    SprintNotFoundError,
    SprintTrackerError,
)
from sprint_tracker.models import AppConfig, AppDocument
from sprint_tracker.store import RecordStore


@pytest.fixture
def store(tmp_path):
    return RecordStore(data_dir=tmp_path / "data")


@pytest.fixture
def recovering_store(tmp_path):
    return RecordStore(data_dir=tmp_path / "data", recover_corrupted=True)


def write_raw(store: RecordStore, content: str) -> None:
    store.data_dir.mkdir(parents=True, exist_ok=True)
    store.data_file.write_text(content, encoding="utf-8")


class TestRead:
    """Tests for loading the document."""

    async def test_missing_file_returns_defaults(self, store):
        """Test a first run yields defaults without writing anything."""
        document = await store.read_sprint_data()

        assert document == AppDocument()
        assert not store.data_file.exists()
        assert store.list_backups() == []

    async def test_injected_default_config(self, tmp_path):
        """Test the default document uses the injected config."""
        store = RecordStore(tmp_path, default_config=AppConfig(velocity_calculation_sprints=3))

        config = await store.read_config()

        assert config.velocity_calculation_sprints == 3

    async def test_round_trip(self, store, config):
        """Test a written document reads back equal."""
        document = AppDocument(sprints=[make_sprint(0.2), make_sprint(0.3)], config=config)

        await store.write_sprint_data(document)

        assert await store.read_sprint_data() == document

    async def test_invalid_json_is_quarantined(self, recovering_store):
        """Test unparseable content is set aside and defaults returned."""
        store = recovering_store
        write_raw(store, "{not json")

        document = await store.read_sprint_data()

        assert document == AppDocument()
        quarantined = store.list_quarantined()
        assert len(quarantined) == 1
        assert quarantined[0].read_text(encoding="utf-8") == "{not json"

    async def test_corrupted_structure_is_quarantined(self, recovering_store):
        """Test a structurally broken document is set aside."""
        store = recovering_store
        write_raw(store, json.dumps({"sprints": "nope"}))

        assert await store.read_sprint_data() == AppDocument()
        assert len(store.list_quarantined()) == 1

    async def test_invalid_document_is_quarantined(self, recovering_store):
        """Test a document that fails validation is set aside."""
        store = recovering_store
        data = AppDocument(sprints=[make_sprint()]).to_dict()
        data["sprints"][0]["plannedPoints"] = -50
        write_raw(store, json.dumps(data))

        assert await store.read_sprint_data() == AppDocument()
        assert len(store.list_quarantined()) == 1

    async def test_recovery_disabled_by_default(self, store):
        """Test corruption raises unless recovery is turned on."""
        write_raw(store, "{not json")

        with pytest.raises(DataCorruptionError):
            await store.read_sprint_data()

        assert len(store.list_quarantined()) == 1
        assert store.data_file.read_text(encoding="utf-8") == "{not json"

    async def test_recovery_disabled_invalid_document(self, store):
        """Test validation failures raise when recovery is turned off."""
        data = AppDocument(sprints=[make_sprint()]).to_dict()
        data["sprints"][0]["newWorkPoints"] = -50
        write_raw(store, json.dumps(data))

        with pytest.raises(DataValidationError, match="Sprint 1: New work points"):
            await store.read_sprint_data()

    async def test_out_of_range_number_is_quarantined(self, recovering_store):
        """Test a number beyond float range falls back to defaults."""
        store = recovering_store
        data = AppDocument().to_dict()
        data["config"]["defaultMeetingPercentage"] = 10 ** 400
        write_raw(store, json.dumps(data))

        assert await store.read_sprint_data() == AppDocument()
        assert len(store.list_quarantined()) == 1

    async def test_out_of_range_number_without_recovery(self, store):
        """Test a number beyond float range raises a validation error."""
        data = AppDocument().to_dict()
        data["config"]["defaultMeetingPercentage"] = 10 ** 400
        write_raw(store, json.dumps(data))

        with pytest.raises(DataValidationError, match="must be a finite number"):
            await store.read_sprint_data()


class TestWrite:
    """Tests for persisting the document."""

    async def test_invalid_document_not_written(self, store):
        """Test validation failures block the write."""
        sprint = make_sprint()
        sprint.planned_points = -1

        with pytest.raises(DataValidationError):
            await store.write_sprint_data(AppDocument(sprints=[sprint]))

        assert not store.data_file.exists()

    async def test_backup_before_overwrite(self, store):
        """Test the previous file is backed up on each write."""
        await store.write_sprints([make_sprint(name="First")])
        assert store.list_backups() == []

        await store.write_sprints([make_sprint(name="Second")])

        backups = store.list_backups()
        assert len(backups) == 1
        assert json.loads(backups[0].read_text(encoding="utf-8"))["sprints"][0]["sprintName"] == "First"

    async def test_backup_retention(self, tmp_path):
        """Test only the newest backups are kept."""
        store = RecordStore(tmp_path, backup_retention=2)

        for i in range(5):
            await store.write_sprints([make_sprint(name=f"Sprint {i}")])

        backups = store.list_backups()
        assert len(backups) == 2
        names = [json.loads(b.read_text(encoding="utf-8"))["sprints"][0]["sprintName"] for b in backups]
        assert names == ["Sprint 2", "Sprint 3"]

    async def test_unlimited_retention(self, tmp_path):
        """Test None keeps every backup."""
        store = RecordStore(tmp_path, backup_retention=None)

        for i in range(4):
            await store.write_sprints([make_sprint(name=f"Sprint {i}")])

        assert len(store.list_backups()) == 3

    async def test_no_temp_files_left(self, store):
        """Test the temp sibling is cleaned up."""
        await store.write_sprints([make_sprint()])

        assert [p.name for p in store.data_dir.iterdir()] == ["sprints.json"]

    async def test_failed_verification_keeps_live_file(self, store, monkeypatch):
        """Test a temp file that does not verify is discarded and the live file kept."""
        await store.write_sprints([make_sprint(name="Original")])
        original = store.data_file.read_bytes()
        monkeypatch.setattr("sprint_tracker.store.is_data_corrupted", lambda data: True)

        with pytest.raises(DataCorruptionError, match="Data corruption detected after write operation"):
            await store.write_sprint_data(AppDocument(sprints=[make_sprint(name="Replacement")]))

        assert store.data_file.read_bytes() == original
        assert not [p for p in store.data_dir.iterdir() if p.name.endswith(".tmp")]

    async def test_replace_failure_propagates(self, store, monkeypatch):
        """Test an OS error during the swap reaches the caller."""
        await store.write_sprints([make_sprint(name="Original")])
        original = store.data_file.read_bytes()

        def fail_replace(src, dst):
            raise OSError(errno.ENOSPC, "No space left on device")

        monkeypatch.setattr("sprint_tracker.store.os.replace", fail_replace)

        with pytest.raises(OSError, match="No space left on device"):
            await store.write_sprints([make_sprint(name="Replacement")])

        assert store.data_file.read_bytes() == original
        assert not [p for p in store.data_dir.iterdir() if p.name.endswith(".tmp")]

    async def test_file_is_camel_case_json(self, store):
        """Test the on-disk format."""
        await store.write_sprints([make_sprint()])

        data = json.loads(store.data_file.read_text(encoding="utf-8"))
        assert set(data) == {"sprints", "config"}
        assert "sprintName" in data["sprints"][0]
        assert data["config"]["velocityCalculationSprints"] == 6


class TestCrud:
    """Tests for sprint and config operations."""

    async def test_add_and_get(self, store):
        """Test adding a sprint."""
        sprint = make_sprint()

        await store.add_sprint(sprint)

        assert await store.get_sprint(sprint.id) == sprint
        assert await store.get_sprint("missing") is None

    async def test_add_duplicate(self, store):
        """Test duplicate ids are rejected."""
        sprint = make_sprint()
        await store.add_sprint(sprint)

        with pytest.raises(DuplicateSprintError, match=f"Sprint with ID {sprint.id} already exists"):
            await store.add_sprint(sprint)

    async def test_update(self, store):
        """Test replacing a sprint."""
        sprint = make_sprint(name="Before")
        await store.add_sprint(sprint)
        sprint.sprint_name = "After"

        await store.update_sprint(sprint.id, sprint)

        assert (await store.get_sprint(sprint.id)).sprint_name == "After"

    async def test_update_missing(self, store):
        """Test updating an unknown id."""
        with pytest.raises(SprintNotFoundError, match="Sprint with ID nope not found"):
            await store.update_sprint("nope", make_sprint())

    async def test_delete(self, store):
        """Test deleting keeps the other sprints in order."""
        sprints = [make_sprint(name=f"Sprint {i}") for i in range(3)]
        await store.write_sprints(sprints)

        await store.delete_sprint(sprints[1].id)

        assert [s.sprint_name for s in await store.read_sprints()] == ["Sprint 0", "Sprint 2"]

    async def test_delete_missing(self, store):
        """Test deleting an unknown id."""
        with pytest.raises(SprintNotFoundError):
            await store.delete_sprint("nope")

    async def test_write_config_keeps_sprints(self, store, config):
        """Test config writes leave sprints alone."""
        await store.add_sprint(make_sprint())

        await store.write_config(config)

        assert len(await store.read_sprints()) == 1
        assert await store.read_config() == config

    async def test_bulk_import_names_bad_sprint(self, store):
        """Test bulk import reports the first invalid sprint."""
        good = make_sprint()
        bad = make_sprint()
        bad.id = "sprint-bad"
        bad.created_at = "not a date"

        with pytest.raises(DataValidationError, match="Invalid sprint data structure for sprint: sprint-bad"):
            await store.write_sprints_data([good, bad])

        assert await store.read_sprints() == []

    async def test_bulk_import(self, store):
        """Test a valid bulk import replaces all sprints."""
        await store.add_sprint(make_sprint(name="Old"))
        imported = [make_sprint(name="New 1"), make_sprint(name="New 2")]

        await store.write_sprints_data(imported)

        assert await store.read_sprints() == imported

    async def test_concurrent_adds(self, store):
        """Test concurrent writes through one store are not lost."""
        sprints = [make_sprint(name=f"Sprint {i}") for i in range(10)]

        await asyncio.gather(*(store.add_sprint(s) for s in sprints))

        assert len(await store.read_sprints()) == 10


class TestInitialize:
    """Tests for startup initialization."""

    async def test_initialize_defaults(self, store):
        """Test initializing with no file."""
        document = await store.initialize()

        assert document.sprints == []

    async def test_initialize_failure(self, store):
        """Test initialization fails loudly when recovery is off."""
        write_raw(store, "[]")

        with pytest.raises(SprintTrackerError, match="Failed to initialize data storage"):
            await store.initialize()
