"""Engine configuration — plain structs per component, plus a JSON-backed settings file."""

from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Iterator

from loguru import logger

# Default data directory
_DEFAULT_DATA_DIR = Path.home() / ".save-engine"


class RotationStrategy(StrEnum):
    """Retention policy applied by a rotation pass."""

    COUNT_BASED = "count_based"  # newest N per slot
    TIME_BASED = "time_based"  # newer than N days
    TIME_BASED_WITH_COUNT = "time_based_with_count"
    IMPORTANCE_BASED = "importance_based"  # top N by score, manual saves favoured


@dataclass
class SaveStoreConfig:
    """Slot store settings."""

    max_save_slots: int = 10
    backup_count: int = 3
    auto_backup: bool = True
    compression_enabled: bool = True


@dataclass
class RotationConfig:
    """Rotation settings."""

    max_saves_per_slot: int = 5
    max_total_saves: int = 50
    max_age_days: int = 30
    compress_old_saves: bool = True
    backup_before_rotation: bool = True
    rotation_strategy: RotationStrategy = RotationStrategy.TIME_BASED_WITH_COUNT


class Config:
    """JSON-based engine configuration with file locking.

    Instances are constructed explicitly and passed to whoever needs them;
    there is no module-level shared instance.
    """

    _DEFAULTS: dict[str, Any] = {
        "save_directory": "",
        "log_to_file": True,
        "log_level": "INFO",
        "current_version": "",
        "store": asdict(SaveStoreConfig()),
        "rotation": {
            **asdict(RotationConfig()),
            "rotation_strategy": str(RotationConfig().rotation_strategy),
        },
    }

    def __init__(self, config_dir: Path | None = None) -> None:
        self._data: dict[str, Any] = {}
        self._dir = config_dir or _DEFAULT_DATA_DIR
        self._path = self._dir / "config.json"
        self._lock = threading.Lock()
        self._defer_save = False
        self._load()

    def _load(self) -> None:
        """Load config from disk, merging with defaults."""
        self._data = json.loads(json.dumps(self._DEFAULTS))  # deep copy defaults
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as f:
                    user_data = json.load(f)
                self._deep_merge(self._data, user_data)
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Failed to load config, using defaults: {e}")

    def _deep_merge(self, base: dict, override: dict) -> None:
        """Recursively merge override into base."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _save(self) -> None:
        """Persist config to disk with file locking."""
        if self._defer_save:
            return
        with self._lock:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            try:
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(self._data, f, ensure_ascii=False, indent=2)
                tmp_path.replace(self._path)
            except OSError as e:
                logger.error(f"Failed to save config: {e}")
                if tmp_path.exists():
                    tmp_path.unlink(missing_ok=True)

    @contextmanager
    def batch_update(self) -> Iterator[None]:
        """Context manager for batching multiple config changes into a single write."""
        self._defer_save = True
        try:
            yield
        finally:
            self._defer_save = False
            self._save()

    # ── Generic access ──

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-separated key path."""
        parts = key.split(".")
        node = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def set(self, key: str, value: Any) -> None:
        """Set a config value by dot-separated key path."""
        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            if part not in node or not isinstance(node[part], dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
        self._save()

    # ── Typed properties ──

    @property
    def data_dir(self) -> Path:
        return self._dir

    @property
    def save_directory(self) -> Path:
        raw = self._data.get("save_directory", "")
        return Path(raw) if raw else self._dir / "saves"

    @save_directory.setter
    def save_directory(self, value: Path | None) -> None:
        self.set("save_directory", str(value) if value else "")

    @property
    def log_to_file(self) -> bool:
        return bool(self._data.get("log_to_file", True))

    @property
    def log_level(self) -> str:
        return str(self._data.get("log_level", "INFO")).upper()

    @property
    def current_version(self) -> str:
        return self._data.get("current_version", "")

    @current_version.setter
    def current_version(self, value: str) -> None:
        self.set("current_version", value)

    @property
    def max_save_slots(self) -> int:
        return int(self.get("store.max_save_slots", 10))

    @max_save_slots.setter
    def max_save_slots(self, value: int) -> None:
        self.set("store.max_save_slots", value)

    @property
    def backup_count(self) -> int:
        return int(self.get("store.backup_count", 3))

    @backup_count.setter
    def backup_count(self, value: int) -> None:
        self.set("store.backup_count", value)

    @property
    def rotation_strategy(self) -> RotationStrategy:
        raw = self.get("rotation.rotation_strategy", RotationStrategy.TIME_BASED_WITH_COUNT)
        try:
            return RotationStrategy(raw)
        except ValueError:
            logger.warning(f"Unknown rotation strategy {raw!r}, using default")
            return RotationStrategy.TIME_BASED_WITH_COUNT

    @rotation_strategy.setter
    def rotation_strategy(self, value: RotationStrategy) -> None:
        self.set("rotation.rotation_strategy", str(value))

    # ── Component structs ──

    def store_config(self) -> SaveStoreConfig:
        store = self._data.get("store", {})
        return SaveStoreConfig(
            max_save_slots=self.max_save_slots,
            backup_count=self.backup_count,
            auto_backup=bool(store.get("auto_backup", True)),
            compression_enabled=bool(store.get("compression_enabled", True)),
        )

    def rotation_config(self) -> RotationConfig:
        rotation = self._data.get("rotation", {})
        return RotationConfig(
            max_saves_per_slot=int(rotation.get("max_saves_per_slot", 5)),
            max_total_saves=int(rotation.get("max_total_saves", 50)),
            max_age_days=int(rotation.get("max_age_days", 30)),
            compress_old_saves=bool(rotation.get("compress_old_saves", True)),
            backup_before_rotation=bool(rotation.get("backup_before_rotation", True)),
            rotation_strategy=self.rotation_strategy,
        )
