"""Save slot store — numbered slots with atomic writes and per-slot backup chains."""

from __future__ import annotations

import json
import re
import shutil
import time
from pathlib import Path

from loguru import logger

from save_engine.config import SaveStoreConfig
from save_engine.errors import (
    CorruptedSaveError,
    InvalidSaveFileError,
    SaveError,
    SlotNotFoundError,
    translate_os_errors,
)
from save_engine.models.save_data import SaveData
from save_engine.models.save_file import SaveFile, SaveMetadata, SaveSlot, SaveSystemInfo
from save_engine.utils import temp_path_for, write_atomic

_SLOT_FILE_RE = re.compile(r"^save_(\d+)\.(dat|meta|bak(\d+))$")


class SaveSlotStore:
    """
    Fixed number of save slots in one directory.

    Directory structure:
      {save_directory}/
        ├── save_000.dat      current save (JSON envelope)
        ├── save_000.bak0     newest backup … save_000.bak{backup_count-1}
        └── save_000.meta     sidecar metadata for fast enumeration

    Writers must be serialized per slot by the caller; different slots are
    independent. A file only becomes visible under its final name through
    ``Path.replace``.
    """

    def __init__(self, save_directory: Path, config: SaveStoreConfig | None = None) -> None:
        config = config or SaveStoreConfig()
        if config.max_save_slots < 0:
            raise ValueError(f"max_save_slots must be >= 0, got {config.max_save_slots}")
        if config.backup_count < 0:
            raise ValueError(f"backup_count must be >= 0, got {config.backup_count}")

        self._config = config
        self._dir = Path(save_directory)
        with translate_os_errors(f"Create save directory {self._dir}"):
            self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def save_directory(self) -> Path:
        return self._dir

    @property
    def config(self) -> SaveStoreConfig:
        return self._config

    # ── Paths ──

    def save_file_path(self, slot_id: int) -> Path:
        return self._dir / f"save_{slot_id:03d}.dat"

    def backup_file_path(self, slot_id: int, backup_index: int) -> Path:
        return self._dir / f"save_{slot_id:03d}.bak{backup_index}"

    def metadata_file_path(self, slot_id: int) -> Path:
        return self._dir / f"save_{slot_id:03d}.meta"

    def _check_slot(self, slot_id: int) -> None:
        if not 0 <= slot_id < self._config.max_save_slots:
            raise SlotNotFoundError(slot_id)

    # ── Public API ──

    def save(self, slot_id: int, data: SaveData, metadata: SaveMetadata) -> None:
        """Write *data* to a slot, pushing the previous save into the backup chain."""
        self._check_slot(slot_id)

        now = time.time()
        metadata.last_modified = max(now, metadata.created_at)
        save_file = SaveFile.create(
            metadata,
            data,
            compress=self._config.compression_enabled,
            slot_id=slot_id,
        )
        file_path = self.save_file_path(slot_id)

        if self._config.auto_backup and file_path.exists():
            self.create_backup(slot_id)

        try:
            with translate_os_errors(f"Write save slot {slot_id}"):
                write_atomic(file_path, save_file.to_bytes())
        except SaveError as e:
            logger.error(f"Failed to write slot {slot_id}: {e}")
            raise

        self._write_sidecar(slot_id, save_file)
        logger.info(
            f"Saved slot {slot_id}: '{metadata.save_name}' "
            f"({len(save_file.payload)} bytes, checksum {save_file.checksum[:12]})"
        )

    def load(self, slot_id: int) -> SaveFile:
        """Load and verify a slot, falling back to the newest valid backup."""
        self._check_slot(slot_id)
        file_path = self.save_file_path(slot_id)
        if not file_path.exists():
            raise SlotNotFoundError(slot_id)

        with translate_os_errors(f"Read save slot {slot_id}"):
            raw = file_path.read_bytes()

        try:
            save_file = SaveFile.from_bytes(raw)
            if save_file.verify():
                return save_file
            reason = "checksum mismatch"
        except InvalidSaveFileError as e:
            reason = str(e)

        logger.warning(f"Slot {slot_id} failed verification ({reason}), trying backups")
        try:
            backup = self.load_from_backup(slot_id)
        except CorruptedSaveError:
            raise CorruptedSaveError(f"Slot {slot_id}: {reason} and no valid backup") from None
        logger.warning(f"Recovered slot {slot_id} from backup")
        return backup

    def get_save_slots(self) -> list[SaveSlot]:
        """Enumerate every slot; corruption is reported on the slot, never raised."""
        slots: list[SaveSlot] = []
        for slot_id in range(self._config.max_save_slots):
            file_path = self.save_file_path(slot_id)
            is_occupied = file_path.exists()
            backup_available = self._has_backups(slot_id)
            is_corrupted = False
            metadata: SaveMetadata | None = None

            if is_occupied:
                try:
                    loaded = self.load(slot_id)
                    sidecar = self._read_sidecar(slot_id)
                    # Sidecar describes the canonical file; after a backup fallback it is stale
                    if sidecar is not None and sidecar[1] == loaded.checksum:
                        metadata = sidecar[0]
                    else:
                        metadata = loaded.metadata
                except CorruptedSaveError:
                    is_corrupted = True
                    metadata = SaveMetadata("Corrupted Save", "Unknown")
                except SaveError as e:
                    # Not corrupted: the bytes were never read
                    logger.warning(f"Could not probe slot {slot_id}: {e}")
                    metadata = SaveMetadata("Unreadable Save", "Unknown")
            else:
                metadata = SaveMetadata("Empty Slot", "")

            slots.append(
                SaveSlot(
                    slot_id=slot_id,
                    metadata=metadata,
                    path=file_path,
                    is_occupied=is_occupied,
                    is_corrupted=is_corrupted,
                    backup_available=backup_available,
                )
            )
        return slots

    def delete_slot(self, slot_id: int) -> None:
        """
        Remove every file of a slot: save, sidecar, all backups (including ones
        beyond the configured chain) and temp leftovers. Deleting an empty slot
        is a no-op.
        """
        self._check_slot(slot_id)

        removed = 0
        with translate_os_errors(f"Delete save slot {slot_id}"):
            for path in self._slot_files(slot_id):
                path.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.info(f"Deleted slot {slot_id} ({removed} files)")

    def create_backup(self, slot_id: int) -> Path | None:
        """Copy the current save to backup position 0, shifting older backups down."""
        self._check_slot(slot_id)
        source = self.save_file_path(slot_id)
        if not source.exists() or self._config.backup_count == 0:
            return None

        with translate_os_errors(f"Back up save slot {slot_id}"):
            # Oldest position is overwritten by the shift
            for i in range(self._config.backup_count - 1, 0, -1):
                older = self.backup_file_path(slot_id, i - 1)
                if older.exists():
                    older.replace(self.backup_file_path(slot_id, i))

            backup_path = self.backup_file_path(slot_id, 0)
            tmp_path = temp_path_for(backup_path)
            try:
                shutil.copy2(source, tmp_path)
                tmp_path.replace(backup_path)
            except OSError:
                tmp_path.unlink(missing_ok=True)
                raise

        logger.debug(f"Backed up slot {slot_id} to {backup_path.name}")
        return backup_path

    def load_from_backup(self, slot_id: int) -> SaveFile:
        """Return the newest backup that verifies."""
        self._check_slot(slot_id)
        for backup_index in range(self._config.backup_count):
            backup_path = self.backup_file_path(slot_id, backup_index)
            if not backup_path.exists():
                continue
            try:
                with translate_os_errors(f"Read backup {backup_path.name}"):
                    save_file = SaveFile.from_bytes(backup_path.read_bytes())
            except SaveError as e:
                logger.debug(f"Skipping unreadable backup {backup_path.name}: {e}")
                continue
            if save_file.verify():
                return save_file
            logger.debug(f"Skipping backup {backup_path.name}: checksum mismatch")

        raise CorruptedSaveError(f"No valid backup for slot {slot_id}")

    def get_save_info(self) -> SaveSystemInfo:
        info = SaveSystemInfo(
            save_directory=self._dir,
            max_save_slots=self._config.max_save_slots,
            backup_count=self._config.backup_count,
            compression_enabled=self._config.compression_enabled,
            auto_backup_enabled=self._config.auto_backup,
        )
        for entry in self._dir.iterdir():
            try:
                if entry.is_file():
                    info.total_size_bytes += entry.stat().st_size
                    info.file_count += 1
            except OSError:
                continue  # removed while scanning
        return info

    def cleanup(self) -> int:
        """Remove temp leftovers, out-of-chain backups and orphaned sidecars."""
        cleaned = 0
        with translate_os_errors(f"Clean up {self._dir}"):
            for entry in sorted(self._dir.iterdir()):
                if not entry.is_file():
                    continue
                if entry.suffix == ".tmp" or self._is_stale(entry):
                    entry.unlink(missing_ok=True)
                    logger.debug(f"Cleaned up {entry.name}")
                    cleaned += 1
        if cleaned:
            logger.info(f"Cleaned up {cleaned} stale files in {self._dir}")
        return cleaned

    # ── Internals ──

    def _is_stale(self, path: Path) -> bool:
        match = _SLOT_FILE_RE.match(path.name)
        if not match:
            return False
        slot_id = int(match.group(1))
        if match.group(3) is not None:
            return int(match.group(3)) >= self._config.backup_count
        if match.group(2) == "meta":
            return not self.save_file_path(slot_id).exists() and not self._has_backups(slot_id)
        return False

    def _has_backups(self, slot_id: int) -> bool:
        return any(self.backup_file_path(slot_id, i).exists() for i in range(self._config.backup_count))

    def _slot_files(self, slot_id: int) -> list[Path]:
        """Files on disk belonging to *slot_id*, with or without a ``.tmp`` suffix."""
        files: list[Path] = []
        for entry in self._dir.iterdir():
            name = entry.name.removesuffix(".tmp")
            match = _SLOT_FILE_RE.match(name)
            if match and int(match.group(1)) == slot_id and entry.is_file():
                files.append(entry)
        return sorted(files)

    def _write_sidecar(self, slot_id: int, save_file: SaveFile) -> None:
        """Write sidecar JSON metadata."""
        sidecar = {
            "slot_id": slot_id,
            "checksum": save_file.checksum,
            "metadata": save_file.metadata.to_dict(),
        }
        data = json.dumps(sidecar, ensure_ascii=False, indent=2).encode("utf-8")
        with translate_os_errors(f"Write metadata for slot {slot_id}"):
            write_atomic(self.metadata_file_path(slot_id), data)

    def _read_sidecar(self, slot_id: int) -> tuple[SaveMetadata, str] | None:
        """Return ``(metadata, checksum)`` from the sidecar, or None if unusable."""
        meta_path = self.metadata_file_path(slot_id)
        if not meta_path.exists():
            return None
        try:
            with open(meta_path, encoding="utf-8") as f:
                sidecar = json.load(f)
            return SaveMetadata.from_dict(sidecar["metadata"]), str(sidecar.get("checksum", ""))
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Skipping malformed slot metadata: {meta_path}: {e}")
            return None
