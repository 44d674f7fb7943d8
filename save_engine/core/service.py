"""Save service — slot store plus post-load migration, as seen by the game."""

from __future__ import annotations

from loguru import logger

from save_engine.core.slot_store import SaveSlotStore
from save_engine.core.versioning import VersionManager
from save_engine.models.save_data import SaveData
from save_engine.models.save_file import SaveMetadata, SaveSlot


class SaveService:
    """
    Caller-side composition of the slot store and the version manager.

    The store never migrates; this service loads, then brings the payload up
    to the running version in memory. The file on disk is left as written.
    """

    def __init__(self, store: SaveSlotStore, versions: VersionManager) -> None:
        self._store = store
        self._versions = versions

    def save(self, slot_id: int, data: SaveData, metadata: SaveMetadata) -> None:
        self._store.save(slot_id, data, metadata)

    def load(self, slot_id: int) -> SaveData:
        """Load a slot and migrate its payload to the current version."""
        save_file = self._store.load(slot_id)
        result = self._versions.migrate_save(save_file.data)
        if result.migrated:
            logger.info(f"Slot {slot_id} migrated in memory ({', '.join(result.applied)})")
        return result.data

    def slots(self) -> list[SaveSlot]:
        return self._store.get_save_slots()
