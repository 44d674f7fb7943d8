"""Save rotation — periodic pruning of accumulated save files."""

from __future__ import annotations

import json
import re
import shutil
import time
import zipfile
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from save_engine.config import RotationConfig, RotationStrategy
from save_engine.errors import InvalidSaveFileError, SaveIOError, translate_os_errors
from save_engine.models.save_file import SaveMetadata
from save_engine.utils import SECONDS_PER_DAY, temp_path_for

_SAVE_SUFFIX_RE = re.compile(r"^\.(dat|sav|save|bak\d+)$")
_SLOT_ID_RE = re.compile(r"(?:save|slot)_(\d+)")
_BACKUP_SUFFIX = ".backup"
_BACKUP_NAME_RE = re.compile(r"^(.+?)_(\d+)(?:_\d+)?\.backup$")


@dataclass
class SaveFileInfo:
    """Classification of one save file, rebuilt on every rotation pass."""

    path: Path
    slot_id: int
    metadata: SaveMetadata
    size: int
    modified_time: float
    is_autosave: bool
    is_manual: bool
    age_days: int
    importance_score: int = 0


@dataclass
class RotationResult:
    """Result of a rotation pass."""

    deleted_files: list[Path] = field(default_factory=list)
    backed_up_files: list[Path] = field(default_factory=list)
    compressed_files: int = 0
    space_freed: int = 0

    def merge(self, other: RotationResult) -> None:
        self.deleted_files.extend(other.deleted_files)
        self.backed_up_files.extend(other.backed_up_files)
        self.compressed_files += other.compressed_files
        self.space_freed += other.space_freed


@dataclass
class RotationStatistics:
    """Snapshot of the save directory as seen at scan time."""

    total_save_files: int
    total_size_bytes: int
    autosave_count: int
    manual_save_count: int
    oldest_save_age_days: int
    newest_save_age_days: int
    backup_directory_size: int
    config: RotationConfig


def extract_slot_id(filename: str) -> int:
    """``save_005.dat`` / ``slot_5.sav`` → 5; anything else → 0."""
    match = _SLOT_ID_RE.search(filename)
    return int(match.group(1)) if match else 0


def _validated(config: RotationConfig) -> RotationConfig:
    for name in ("max_saves_per_slot", "max_total_saves", "max_age_days"):
        value = getattr(config, name)
        if value < 0:
            raise ValueError(f"{name} must be >= 0, got {value}")
    return config


def calculate_importance_score(is_manual: bool, age_days: int, metadata: SaveMetadata) -> int:
    score = 0
    if is_manual:
        score += 100

    if age_days < 1:
        score += 50
    elif age_days < 7:
        score += 30
    elif age_days < 30:
        score += 10

    score += max(metadata.character_level, 0)
    score += max(metadata.playtime_seconds, 0) // 3600
    return score


class SaveRotationSystem:
    """
    Scans the save directory and prunes it per :class:`RotationStrategy`.

    Every pass re-derives its view from the filesystem, so it stays correct no
    matter who last touched the directory. It never calls into the slot store.

    Directory structure:
      {save_directory}/            files considered for rotation
      {save_directory}/backups/    {original-filename}_{unix-timestamp}.backup
    """

    def __init__(self, save_directory: Path, config: RotationConfig | None = None) -> None:
        self._config = _validated(config or RotationConfig())
        self._dir = Path(save_directory)
        self._backup_dir = self._dir / "backups"
        with translate_os_errors(f"Create rotation directories under {self._dir}"):
            self._backup_dir.mkdir(parents=True, exist_ok=True)

    @property
    def config(self) -> RotationConfig:
        return self._config

    def update_config(self, config: RotationConfig) -> None:
        self._config = _validated(config)

    @property
    def backup_directory(self) -> Path:
        return self._backup_dir

    # ── Rotation ──

    def rotate_saves(self) -> RotationResult:
        """Run one rotation pass with the configured strategy."""
        strategy = self._config.rotation_strategy
        result = RotationResult()

        if strategy == RotationStrategy.COUNT_BASED:
            result = self._rotate_by_count(self.scan_save_files())
        elif strategy == RotationStrategy.TIME_BASED:
            result = self._rotate_by_time(self.scan_save_files())
        elif strategy == RotationStrategy.TIME_BASED_WITH_COUNT:
            result.merge(self._rotate_by_time(self.scan_save_files()))
            # Rescan: the time pass changed the directory
            result.merge(self._rotate_by_count(self.scan_save_files()))
        elif strategy == RotationStrategy.IMPORTANCE_BASED:
            result = self._rotate_by_importance(self.scan_save_files())
        else:
            raise ValueError(f"Unknown rotation strategy: {strategy!r}")

        logger.info(
            f"Rotation ({strategy}) deleted {len(result.deleted_files)} files, "
            f"backed up {len(result.backed_up_files)}, freed {result.space_freed} bytes"
        )
        return result

    def scan_save_files(self) -> list[SaveFileInfo]:
        """Classify every save file in the directory, newest first."""
        now = time.time()
        infos: list[SaveFileInfo] = []

        with translate_os_errors(f"Scan {self._dir}"):
            entries = list(self._dir.iterdir())

        for path in entries:
            if not _SAVE_SUFFIX_RE.match(path.suffix):
                continue
            try:
                st = path.stat()
            except OSError:
                continue  # removed or replaced mid-scan
            if not path.is_file():
                continue
            infos.append(self._analyze(path, st.st_size, st.st_mtime, now))

        infos.sort(key=lambda info: info.modified_time, reverse=True)
        return infos

    def _analyze(self, path: Path, size: int, mtime: float, now: float) -> SaveFileInfo:
        name = path.name
        slot_id = extract_slot_id(name)
        is_autosave = "auto" in name.lower()
        age_days = int(max(now - mtime, 0) // SECONDS_PER_DAY)
        metadata = self._read_slot_metadata(path) or SaveMetadata(f"Save {slot_id}", "Player")
        return SaveFileInfo(
            path=path,
            slot_id=slot_id,
            metadata=metadata,
            size=size,
            modified_time=mtime,
            is_autosave=is_autosave,
            is_manual=not is_autosave,
            age_days=age_days,
            importance_score=calculate_importance_score(not is_autosave, age_days, metadata),
        )

    def _read_slot_metadata(self, path: Path) -> SaveMetadata | None:
        """Metadata from the ``.meta`` sidecar sharing the file's stem, if any."""
        meta_path = path.with_suffix(".meta")
        if not meta_path.is_file():
            return None
        try:
            with open(meta_path, encoding="utf-8") as f:
                return SaveMetadata.from_dict(json.load(f)["metadata"])
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.debug(f"Ignoring unreadable sidecar {meta_path.name}: {e}")
            return None

    def _rotate_by_count(self, files: list[SaveFileInfo]) -> RotationResult:
        result = RotationResult()
        by_slot: dict[int, list[SaveFileInfo]] = defaultdict(list)
        for info in files:
            by_slot[info.slot_id].append(info)

        for slot_id, slot_files in sorted(by_slot.items()):
            slot_files.sort(key=lambda info: info.modified_time, reverse=True)
            for info in slot_files[self._config.max_saves_per_slot :]:
                self._remove_save_file(info, result)
        return result

    def _rotate_by_time(self, files: list[SaveFileInfo]) -> RotationResult:
        result = RotationResult()
        for info in files:
            if info.age_days > self._config.max_age_days:
                self._remove_save_file(info, result)
        return result

    def _rotate_by_importance(self, files: list[SaveFileInfo]) -> RotationResult:
        result = RotationResult()
        # files arrive newest first; a stable sort keeps that as the tie-break
        ranked = sorted(files, key=lambda info: info.importance_score, reverse=True)
        for info in ranked[self._config.max_total_saves :]:
            self._remove_save_file(info, result)
        return result

    def _remove_save_file(self, info: SaveFileInfo, result: RotationResult) -> None:
        """Delete one file, copying it to the backup directory first if configured."""
        if not info.path.exists():
            logger.warning(f"Skipping {info.path.name}: vanished during rotation")
            return

        if self._config.backup_before_rotation:
            try:
                with translate_os_errors(f"Back up {info.path.name}"):
                    backup_path = self._create_backup(info.path)
            except SaveIOError:
                if info.path.exists():
                    raise
                logger.warning(f"Skipping {info.path.name}: vanished during rotation")
                return
            result.backed_up_files.append(backup_path)
            if self._config.compress_old_saves:
                result.compressed_files += 1

        with translate_os_errors(f"Delete {info.path.name}"):
            info.path.unlink(missing_ok=True)
        result.deleted_files.append(info.path)
        result.space_freed += info.size
        logger.debug(f"Rotated out {info.path.name} ({info.size} bytes)")

    # ── Backups ──

    def _backup_target(self, filename: str) -> Path:
        timestamp = int(time.time())
        target = self._backup_dir / f"{filename}_{timestamp}{_BACKUP_SUFFIX}"
        counter = 1
        while target.exists():
            target = self._backup_dir / f"{filename}_{timestamp}_{counter}{_BACKUP_SUFFIX}"
            counter += 1
        return target

    def _create_backup(self, save_path: Path) -> Path:
        """Copy *save_path* into the backup directory (deflated ZIP when compressing)."""
        target = self._backup_target(save_path.name)
        tmp_path = temp_path_for(target)
        try:
            if self._config.compress_old_saves:
                with zipfile.ZipFile(tmp_path, "w", zipfile.ZIP_DEFLATED) as zf:
                    zf.write(save_path, save_path.name)
            else:
                shutil.copy2(save_path, tmp_path)
            tmp_path.replace(target)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        return target

    def list_backups(self) -> list[Path]:
        """Rotation backups, newest first."""
        if not self._backup_dir.exists():
            return []
        entries: list[tuple[float, Path]] = []
        for path in self._backup_dir.glob(f"*{_BACKUP_SUFFIX}"):
            try:
                entries.append((path.stat().st_mtime, path))
            except OSError:
                continue
        return [path for _, path in sorted(entries, reverse=True)]

    def restore_backup(self, backup_path: Path) -> Path:
        """
        Restore a rotation backup into the save directory under its original name.

        Uses atomic restore: the content is staged in a temp file next to the
        destination, then renamed into place.
        """
        backup_path = Path(backup_path)
        match = _BACKUP_NAME_RE.match(backup_path.name)
        if not match:
            raise InvalidSaveFileError(f"Not a rotation backup: {backup_path.name}")

        dest = self._dir / match.group(1)
        tmp_path = temp_path_for(dest)
        with translate_os_errors(f"Restore {backup_path.name}"):
            try:
                if zipfile.is_zipfile(backup_path):
                    with zipfile.ZipFile(backup_path, "r") as zf:
                        with zf.open(dest.name) as src, open(tmp_path, "wb") as dst:
                            shutil.copyfileobj(src, dst)
                else:
                    shutil.copy2(backup_path, tmp_path)
                tmp_path.replace(dest)
            except (zipfile.BadZipFile, KeyError) as e:
                tmp_path.unlink(missing_ok=True)
                raise InvalidSaveFileError(f"Corrupt backup archive {backup_path.name}: {e}") from e
            except OSError:
                tmp_path.unlink(missing_ok=True)
                raise

        logger.info(f"Restored {dest.name} from {backup_path.name}")
        return dest

    def cleanup_backups(self, max_age_days: int) -> int:
        """Delete backup directory entries older than *max_age_days*."""
        if not self._backup_dir.exists():
            return 0

        cutoff = time.time() - max_age_days * SECONDS_PER_DAY
        deleted = 0
        with translate_os_errors(f"Clean up {self._backup_dir}"):
            for path in list(self._backup_dir.iterdir()):
                try:
                    st = path.stat()
                except FileNotFoundError:
                    continue
                if path.is_file() and st.st_mtime < cutoff:
                    path.unlink(missing_ok=True)
                    deleted += 1

        if deleted:
            logger.info(f"Removed {deleted} backups older than {max_age_days} days")
        return deleted

    # ── Statistics ──

    def get_statistics(self) -> RotationStatistics:
        files = self.scan_save_files()
        ages = [info.age_days for info in files]
        return RotationStatistics(
            total_save_files=len(files),
            total_size_bytes=sum(info.size for info in files),
            autosave_count=sum(1 for info in files if info.is_autosave),
            manual_save_count=sum(1 for info in files if info.is_manual),
            oldest_save_age_days=max(ages, default=0),
            newest_save_age_days=min(ages, default=0),
            backup_directory_size=self._backup_directory_size(),
            config=self._config,
        )

    def _backup_directory_size(self) -> int:
        total = 0
        if not self._backup_dir.exists():
            return total
        for path in self._backup_dir.iterdir():
            try:
                if path.is_file():
                    total += path.stat().st_size
            except OSError:
                continue
        return total
