"""Engine context — service container for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from save_engine.config import Config
    from save_engine.core.rotation import SaveRotationSystem
    from save_engine.core.service import SaveService
    from save_engine.core.slot_store import SaveSlotStore
    from save_engine.core.versioning import VersionManager


@dataclass
class EngineContext:
    """
    Central service container.

    Built once by ``main.create_context`` and handed to callers (autosave
    scheduler, CLI, game loop) instead of reaching for module-level state.
    """

    config: Config
    slot_store: SaveSlotStore
    rotation: SaveRotationSystem
    version_manager: VersionManager
    save_service: SaveService
