"""Tests for the SaveSlotStore."""

from __future__ import annotations

import errno
import json
import os
from pathlib import Path

import pytest

from save_engine.config import SaveStoreConfig
from save_engine.core.slot_store import SaveSlotStore
from save_engine.errors import (
    CorruptedSaveError,
    DiskFullError,
    PermissionDeniedError,
    SaveIOError,
    SlotNotFoundError,
)
from save_engine.models.save_data import SaveData
from save_engine.models.save_file import SaveFile, SaveMetadata


@pytest.fixture
def save_dir(tmp_path: Path) -> Path:
    return tmp_path / "saves"


@pytest.fixture
def store(save_dir: Path) -> SaveSlotStore:
    return SaveSlotStore(save_dir, SaveStoreConfig())


def _data(level: int) -> SaveData:
    return SaveData(game_name="Test Game", player_name="Hero", level=level)


def _meta(name: str = "Test Save") -> SaveMetadata:
    return SaveMetadata(save_name=name, player_name="Hero")


def _level_in(path: Path) -> int:
    return SaveFile.from_bytes(path.read_bytes()).data.level


class TestConstruction:
    def test_creates_directory(self, save_dir: Path) -> None:
        SaveSlotStore(save_dir)
        assert save_dir.is_dir()

    def test_default_config(self, store: SaveSlotStore) -> None:
        assert store.config.max_save_slots == 10
        assert store.config.backup_count == 3
        assert store.config.auto_backup
        assert store.config.compression_enabled

    @pytest.mark.parametrize("field", ["max_save_slots", "backup_count"])
    def test_negative_limits_rejected(self, save_dir: Path, field: str) -> None:
        with pytest.raises(ValueError):
            SaveSlotStore(save_dir, SaveStoreConfig(**{field: -1}))


class TestSaveAndLoad:
    def test_round_trip(self, store: SaveSlotStore, sample_data, sample_metadata) -> None:
        store.save(0, sample_data, sample_metadata)
        loaded = store.load(0)
        assert loaded.verify()
        assert loaded.data == sample_data
        assert loaded.metadata == sample_metadata
        assert loaded.slot_id == 0

    def test_round_trip_uncompressed(self, save_dir: Path, sample_data, sample_metadata) -> None:
        store = SaveSlotStore(save_dir, SaveStoreConfig(compression_enabled=False))
        store.save(4, sample_data, sample_metadata)
        loaded = store.load(4)
        assert not loaded.compressed
        assert loaded.data == sample_data

    def test_reads_files_written_with_other_compression_setting(
        self, save_dir: Path, sample_data, sample_metadata
    ) -> None:
        SaveSlotStore(save_dir, SaveStoreConfig(compression_enabled=True)).save(1, sample_data, sample_metadata)
        reader = SaveSlotStore(save_dir, SaveStoreConfig(compression_enabled=False))
        assert reader.load(1).data == sample_data

    def test_file_layout(self, store: SaveSlotStore, save_dir: Path, sample_data, sample_metadata) -> None:
        store.save(7, sample_data, sample_metadata)
        assert (save_dir / "save_007.dat").exists()
        assert (save_dir / "save_007.meta").exists()
        assert not list(save_dir.glob("*.tmp"))

    def test_sidecar_has_metadata(self, store: SaveSlotStore, save_dir: Path, sample_data, sample_metadata) -> None:
        store.save(0, sample_data, sample_metadata)
        with open(save_dir / "save_000.meta", encoding="utf-8") as f:
            sidecar = json.load(f)
        assert sidecar["slot_id"] == 0
        assert sidecar["metadata"]["save_name"] == "Test Save"
        assert sidecar["checksum"] == store.load(0).checksum

    def test_save_stamps_last_modified(self, store: SaveSlotStore, sample_data) -> None:
        metadata = SaveMetadata("Stamp", "Hero", created_at=1_000.0)
        store.save(0, sample_data, metadata)
        loaded = store.load(0).metadata
        assert loaded.created_at == 1_000.0
        assert loaded.last_modified >= loaded.created_at
        assert loaded.last_modified > 1_000.0

    def test_invalid_slot(self, store: SaveSlotStore, sample_data, sample_metadata) -> None:
        with pytest.raises(SlotNotFoundError) as exc_info:
            store.save(999, sample_data, sample_metadata)
        assert exc_info.value.slot_id == 999

        with pytest.raises(SlotNotFoundError):
            store.load(999)
        with pytest.raises(SlotNotFoundError):
            store.load(-1)

    def test_load_empty_slot(self, store: SaveSlotStore) -> None:
        with pytest.raises(SlotNotFoundError):
            store.load(3)

    def test_overwrite_returns_latest(self, store: SaveSlotStore) -> None:
        store.save(0, _data(1), _meta())
        store.save(0, _data(2), _meta())
        assert store.load(0).data.level == 2


class TestBackupChain:
    def test_chain_shifts_newest_first(self, save_dir: Path) -> None:
        store = SaveSlotStore(save_dir, SaveStoreConfig(backup_count=2))
        for level in (1, 2, 3):
            store.save(0, _data(level), _meta())

        assert _level_in(save_dir / "save_000.dat") == 3
        assert _level_in(save_dir / "save_000.bak0") == 2
        assert _level_in(save_dir / "save_000.bak1") == 1

    def test_oldest_backup_dropped(self, save_dir: Path) -> None:
        store = SaveSlotStore(save_dir, SaveStoreConfig(backup_count=2))
        for level in (1, 2, 3, 4):
            store.save(0, _data(level), _meta())

        assert _level_in(save_dir / "save_000.bak0") == 3
        assert _level_in(save_dir / "save_000.bak1") == 2
        assert not (save_dir / "save_000.bak2").exists()

    def test_no_backup_when_disabled(self, save_dir: Path) -> None:
        store = SaveSlotStore(save_dir, SaveStoreConfig(auto_backup=False))
        store.save(0, _data(1), _meta())
        store.save(0, _data(2), _meta())
        assert not (save_dir / "save_000.bak0").exists()

    def test_first_save_has_no_backup(self, store: SaveSlotStore, save_dir: Path) -> None:
        store.save(0, _data(1), _meta())
        assert not (save_dir / "save_000.bak0").exists()

    def test_explicit_backup(self, store: SaveSlotStore, save_dir: Path) -> None:
        store.save(2, _data(5), _meta())
        backup_path = store.create_backup(2)
        assert backup_path == save_dir / "save_002.bak0"
        assert store.load_from_backup(2).data.level == 5

    def test_explicit_backup_of_empty_slot(self, store: SaveSlotStore) -> None:
        assert store.create_backup(1) is None

    def test_zero_backup_count(self, save_dir: Path) -> None:
        store = SaveSlotStore(save_dir, SaveStoreConfig(backup_count=0))
        store.save(0, _data(1), _meta())
        store.save(0, _data(2), _meta())
        assert store.create_backup(0) is None
        assert not list(save_dir.glob("*.bak*"))

    def test_load_from_backup_without_backups(self, store: SaveSlotStore) -> None:
        store.save(0, _data(1), _meta())
        with pytest.raises(CorruptedSaveError):
            store.load_from_backup(0)


class TestCorruptionRecovery:
    def test_garbage_bytes_fall_back_to_backup(self, store: SaveSlotStore, save_dir: Path) -> None:
        store.save(0, _data(1), _meta("first"))
        store.save(0, _data(2), _meta("second"))
        (save_dir / "save_000.dat").write_bytes(b"\x00\x01 definitely not a save")

        loaded = store.load(0)
        assert loaded.data.level == 1
        assert loaded.metadata.save_name == "first"

    def test_checksum_mismatch_falls_back_to_backup(self, store: SaveSlotStore, save_dir: Path) -> None:
        store.save(0, _data(1), _meta())
        store.save(0, _data(2), _meta())

        path = save_dir / "save_000.dat"
        envelope = json.loads(path.read_text(encoding="utf-8"))
        envelope["checksum"] = "0" * 64
        path.write_text(json.dumps(envelope), encoding="utf-8")

        assert store.load(0).data.level == 1

    def test_skips_corrupted_backups(self, store: SaveSlotStore, save_dir: Path) -> None:
        for level in (1, 2, 3):
            store.save(0, _data(level), _meta())
        (save_dir / "save_000.dat").write_bytes(b"{truncated")
        (save_dir / "save_000.bak0").write_bytes(b"{truncated")

        assert store.load(0).data.level == 1

    def test_unrecoverable_slot(self, store: SaveSlotStore, save_dir: Path) -> None:
        store.save(0, _data(1), _meta())
        (save_dir / "save_000.dat").write_bytes(b"{truncated")
        with pytest.raises(CorruptedSaveError):
            store.load(0)


class TestAtomicWrite:
    def test_crash_before_rename_keeps_old_save(
        self, save_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store = SaveSlotStore(save_dir, SaveStoreConfig(auto_backup=False))
        store.save(0, _data(1), _meta())

        def crash(self: Path, target: Path) -> Path:
            raise OSError("simulated crash before rename")

        monkeypatch.setattr(Path, "replace", crash)
        with pytest.raises(SaveIOError):
            store.save(0, _data(2), _meta())
        monkeypatch.undo()

        assert store.load(0).data.level == 1
        assert not list(save_dir.glob("*.tmp"))

    def test_crash_on_first_save_leaves_nothing(
        self, store: SaveSlotStore, save_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def crash(self: Path, target: Path) -> Path:
            raise OSError("simulated crash before rename")

        monkeypatch.setattr(Path, "replace", crash)
        with pytest.raises(SaveIOError):
            store.save(0, _data(1), _meta())
        monkeypatch.undo()

        assert not (save_dir / "save_000.dat").exists()
        with pytest.raises(SlotNotFoundError):
            store.load(0)

    def test_stale_temp_file_is_ignored(self, store: SaveSlotStore, save_dir: Path) -> None:
        store.save(0, _data(1), _meta())
        (save_dir / "save_000.dat.tmp").write_bytes(b"half a fi")
        assert store.load(0).data.level == 1

    def test_disk_full(self, store: SaveSlotStore, monkeypatch: pytest.MonkeyPatch) -> None:
        def no_space(fd: int) -> None:
            raise OSError(errno.ENOSPC, "No space left on device")

        monkeypatch.setattr(os, "fsync", no_space)
        with pytest.raises(DiskFullError):
            store.save(0, _data(1), _meta())


class TestSlotEnumeration:
    def test_all_empty(self, store: SaveSlotStore) -> None:
        slots = store.get_save_slots()
        assert len(slots) == 10
        assert all(not slot.is_occupied for slot in slots)
        assert [slot.slot_id for slot in slots] == list(range(10))

    def test_occupied_slot(self, store: SaveSlotStore, sample_data, sample_metadata) -> None:
        store.save(0, sample_data, sample_metadata)
        slots = store.get_save_slots()
        assert slots[0].is_occupied
        assert not slots[0].is_corrupted
        assert slots[0].metadata.save_name == "Test Save"
        assert all(not slot.is_occupied for slot in slots[1:])

    def test_backup_available(self, store: SaveSlotStore) -> None:
        store.save(1, _data(1), _meta())
        store.save(1, _data(2), _meta())
        assert store.get_save_slots()[1].backup_available

    def test_corrupted_slot_reported_not_raised(self, store: SaveSlotStore, save_dir: Path) -> None:
        store.save(3, _data(1), _meta())
        (save_dir / "save_003.dat").write_bytes(b"garbage")

        slot = store.get_save_slots()[3]
        assert slot.is_occupied
        assert slot.is_corrupted
        assert slot.metadata.save_name == "Corrupted Save"

    def test_backup_available_beyond_position_zero(self, store: SaveSlotStore, save_dir: Path) -> None:
        for level in (1, 2, 3):
            store.save(2, _data(level), _meta())
        (save_dir / "save_002.bak0").unlink()

        assert store.get_save_slots()[2].backup_available

    def test_unreadable_slot_is_not_corrupted(
        self, store: SaveSlotStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store.save(1, _data(1), _meta())
        read_bytes = Path.read_bytes

        def deny(self: Path) -> bytes:
            if self.name == "save_001.dat":
                raise PermissionError(errno.EACCES, "Permission denied", str(self))
            return read_bytes(self)

        monkeypatch.setattr(Path, "read_bytes", deny)
        with pytest.raises(PermissionDeniedError):
            store.load(1)

        slot = store.get_save_slots()[1]
        assert slot.is_occupied
        assert not slot.is_corrupted
        assert slot.metadata.save_name == "Unreadable Save"

    def test_recoverable_slot_shows_backup_metadata(self, store: SaveSlotStore, save_dir: Path) -> None:
        store.save(0, _data(1), _meta("older"))
        store.save(0, _data(2), _meta("newer"))
        (save_dir / "save_000.dat").write_bytes(b"garbage")

        slot = store.get_save_slots()[0]
        assert not slot.is_corrupted
        assert slot.metadata.save_name == "older"


class TestDelete:
    def test_delete_slot(self, store: SaveSlotStore, save_dir: Path) -> None:
        store.save(0, _data(1), _meta())
        store.save(0, _data(2), _meta())
        store.delete_slot(0)

        assert not list(save_dir.glob("save_000.*"))
        with pytest.raises(SlotNotFoundError):
            store.load(0)

    def test_delete_is_idempotent(self, store: SaveSlotStore) -> None:
        store.save(0, _data(1), _meta())
        store.delete_slot(0)
        store.delete_slot(0)

    def test_delete_empty_slot(self, store: SaveSlotStore) -> None:
        store.delete_slot(5)

    def test_delete_removes_backups_beyond_chain(self, save_dir: Path) -> None:
        wide = SaveSlotStore(save_dir, SaveStoreConfig(backup_count=5))
        for level in range(1, 7):
            wide.save(0, _data(level), _meta())
        assert (save_dir / "save_000.bak4").exists()
        (save_dir / "save_000.dat.tmp").write_bytes(b"partial")

        SaveSlotStore(save_dir, SaveStoreConfig(backup_count=2)).delete_slot(0)
        assert not list(save_dir.glob("save_000.*"))

    def test_delete_leaves_other_slots(self, store: SaveSlotStore, save_dir: Path) -> None:
        store.save(0, _data(1), _meta())
        store.save(1, _data(2), _meta())
        store.delete_slot(0)

        assert sorted(p.name for p in save_dir.iterdir()) == ["save_001.dat", "save_001.meta"]
        assert store.load(1).data.level == 2

    def test_delete_invalid_slot(self, store: SaveSlotStore) -> None:
        with pytest.raises(SlotNotFoundError):
            store.delete_slot(10)


class TestMaintenance:
    def test_save_info(self, store: SaveSlotStore, save_dir: Path) -> None:
        store.save(0, _data(1), _meta())
        info = store.get_save_info()
        assert info.save_directory == save_dir
        assert info.max_save_slots == 10
        assert info.backup_count == 3
        assert info.file_count == 2  # .dat + .meta
        assert info.total_size_bytes > 0
        assert info.compression_enabled
        assert info.auto_backup_enabled

    def test_cleanup(self, save_dir: Path) -> None:
        store = SaveSlotStore(save_dir, SaveStoreConfig(backup_count=2))
        store.save(0, _data(1), _meta())
        (save_dir / "save_000.dat.tmp").write_bytes(b"partial")
        (save_dir / "save_000.bak5").write_bytes(b"beyond chain")
        (save_dir / "save_004.meta").write_text("{}", encoding="utf-8")
        (save_dir / "notes.txt").write_text("keep me", encoding="utf-8")

        assert store.cleanup() == 3
        assert (save_dir / "save_000.dat").exists()
        assert (save_dir / "save_000.meta").exists()
        assert (save_dir / "notes.txt").exists()
        assert not (save_dir / "save_004.meta").exists()
