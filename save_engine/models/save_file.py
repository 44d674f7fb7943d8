"""Save file models — metadata header, on-disk envelope and slot view."""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import time
import zlib
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from save_engine import __version__
from save_engine.errors import InvalidSaveFileError, SerializationError
from save_engine.models.save_data import SaveData
from save_engine.utils import format_playtime, format_size

ENVELOPE_FORMAT = 1

_INT_FIELDS = ("character_level", "current_depth", "playtime_seconds", "achievements_count")
_FLOAT_FIELDS = ("created_at", "last_modified")


@dataclass
class SaveMetadata:
    """Descriptive header stored alongside (not inside) the payload."""

    save_name: str
    player_name: str
    character_level: int = 1
    current_depth: int = 1
    playtime_seconds: int = 0
    created_at: float = field(default_factory=time.time)
    last_modified: float = 0.0
    game_version: str = __version__
    seed: int | None = None
    difficulty: str = "Normal"  # free-form category
    achievements_count: int = 0
    screenshot_path: str | None = None

    def __post_init__(self) -> None:
        if not self.last_modified:
            self.last_modified = self.created_at
        if self.last_modified < self.created_at:
            raise ValueError(
                f"last_modified ({self.last_modified}) precedes created_at ({self.created_at})"
            )

    def formatted_playtime(self) -> str:
        return format_playtime(self.playtime_seconds)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SaveMetadata:
        """
        Build from a JSON mapping, ignoring keys this version doesn't know.

        Numeric fields are coerced (``"5"`` becomes ``5``); a value that is not
        a number raises ``ValueError``.
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        for name in _INT_FIELDS + _FLOAT_FIELDS:
            if name in values:
                kind = int if name in _INT_FIELDS else float
                try:
                    values[name] = kind(values[name])
                except (TypeError, ValueError, OverflowError) as e:
                    raise ValueError(f"Invalid {name}: {values[name]!r}") from e
        return cls(**values)


def compute_checksum(payload: bytes) -> str:
    """SHA-256 hex digest of the stored payload bytes."""
    return hashlib.sha256(payload).hexdigest()


@dataclass
class SaveFile:
    """
    The on-disk unit: metadata, stored payload bytes and their checksum.

    ``payload`` is the stored representation (compressed when ``compressed``
    is set), so :meth:`verify` covers exactly what sits on disk.
    """

    metadata: SaveMetadata
    payload: bytes
    checksum: str = ""
    compressed: bool = False
    slot_id: int | None = None

    @classmethod
    def create(
        cls,
        metadata: SaveMetadata,
        data: SaveData,
        compress: bool = False,
        slot_id: int | None = None,
    ) -> SaveFile:
        payload = data.to_bytes()
        if compress:
            payload = zlib.compress(payload, 6)
        return cls(
            metadata=metadata,
            payload=payload,
            checksum=compute_checksum(payload),
            compressed=compress,
            slot_id=slot_id,
        )

    def verify(self) -> bool:
        return bool(self.checksum) and compute_checksum(self.payload) == self.checksum

    @property
    def data(self) -> SaveData:
        """Decode the payload into :class:`SaveData`."""
        raw = self.payload
        if self.compressed:
            try:
                raw = zlib.decompress(raw)
            except zlib.error as e:
                raise SerializationError(f"Failed to decompress payload: {e}") from e
        return SaveData.from_bytes(raw)

    # ── Envelope codec ──

    def to_bytes(self) -> bytes:
        envelope = {
            "format": ENVELOPE_FORMAT,
            "slot_id": self.slot_id,
            "metadata": self.metadata.to_dict(),
            "compressed": self.compressed,
            "checksum": self.checksum,
            "payload": base64.b64encode(self.payload).decode("ascii"),
        }
        return json.dumps(envelope, ensure_ascii=False, indent=2).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> SaveFile:
        """Parse an envelope; raises :class:`InvalidSaveFileError` on any structural damage."""
        try:
            envelope = json.loads(raw.decode("utf-8"))
            if envelope.get("format") != ENVELOPE_FORMAT:
                raise InvalidSaveFileError(f"Unsupported save format: {envelope.get('format')!r}")
            return cls(
                metadata=SaveMetadata.from_dict(envelope["metadata"]),
                payload=base64.b64decode(envelope["payload"], validate=True),
                checksum=str(envelope.get("checksum") or ""),
                compressed=bool(envelope.get("compressed", False)),
                slot_id=envelope.get("slot_id"),
            )
        except InvalidSaveFileError:
            raise
        except (
            UnicodeDecodeError,
            json.JSONDecodeError,
            binascii.Error,
            KeyError,
            TypeError,
            ValueError,
            AttributeError,
        ) as e:
            raise InvalidSaveFileError(f"Malformed save file: {e}") from e


@dataclass
class SaveSlot:
    """Slot view computed on demand by probing the filesystem."""

    slot_id: int
    metadata: SaveMetadata
    path: Path
    is_occupied: bool = False
    is_corrupted: bool = False
    backup_available: bool = False


@dataclass
class SaveSystemInfo:
    """Aggregate view of a save directory."""

    save_directory: Path
    max_save_slots: int
    backup_count: int
    total_size_bytes: int = 0
    file_count: int = 0
    compression_enabled: bool = False
    auto_backup_enabled: bool = False

    @property
    def formatted_size(self) -> str:
        return format_size(self.total_size_bytes)
