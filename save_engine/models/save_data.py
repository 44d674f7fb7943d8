"""Save payload models — the structured game state handed to the engine."""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from save_engine import __version__
from save_engine.errors import SerializationError


class StorageType(StrEnum):
    """How the originating world stores a component."""

    VEC = "vec"
    DENSE_VEC = "dense_vec"
    HASH_MAP = "hash_map"
    NULL = "null"


@dataclass
class ComponentRecord:
    """One serialized component type with its per-entity records."""

    component_name: str
    storage_type: StorageType = StorageType.VEC
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class SaveData:
    """Serializable snapshot of application state.

    The engine treats this as an opaque blob, except for the ``version`` tag
    which the migration layer reads and rewrites.
    """

    game_name: str
    player_name: str
    version: str = __version__
    timestamp: int = field(default_factory=lambda: int(time.time()))
    level: int = 1
    playtime: int = 0
    components: list[ComponentRecord] = field(default_factory=list)
    resources: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)

    def component(self, name: str) -> ComponentRecord | None:
        for record in self.components:
            if record.component_name == name:
                return record
        return None

    def to_bytes(self) -> bytes:
        """Encode to deterministic UTF-8 JSON (same state, same bytes)."""
        try:
            text = json.dumps(asdict(self), ensure_ascii=False, sort_keys=True, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to serialize save data: {e}") from e
        return text.encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> SaveData:
        try:
            data = json.loads(raw.decode("utf-8"))
            components = [
                ComponentRecord(
                    component_name=c["component_name"],
                    storage_type=StorageType(c.get("storage_type", StorageType.VEC)),
                    data=c.get("data", {}),
                )
                for c in data.pop("components", [])
            ]
            return cls(components=components, **data)
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise SerializationError(f"Failed to deserialize save data: {e}") from e
