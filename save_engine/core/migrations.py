"""Built-in save migrations and the default version manager."""

from __future__ import annotations

from save_engine import __version__
from save_engine.core.versioning import (
    Migration,
    SaveVersion,
    VersionCompatibility,
    VersionManager,
)
from save_engine.models.save_data import SaveData

V0_1_0 = SaveVersion(0, 1, 0)
V0_2_0 = SaveVersion(0, 2, 0)
V0_3_0 = SaveVersion(0, 3, 0)


def add_combat_stats_fields(data: SaveData) -> SaveData:
    """0.1.0 → 0.2.0: combat stats gain ``max_hp``, defaulting to ``hp``."""
    data.metadata["migration_applied"] = "0.1.0->0.2.0"
    combat = data.component("CombatStats")
    if combat is not None:
        for record in combat.data.values():
            if isinstance(record, dict):
                record.setdefault("max_hp", record.get("hp", 0))
    return data


def update_inventory_system(data: SaveData) -> SaveData:
    """0.2.0 → 0.3.0: drop the legacy inventory component."""
    data.metadata["inventory_system_updated"] = "true"
    data.components = [c for c in data.components if c.component_name != "OldInventory"]
    return data


BUILTIN_MIGRATIONS: tuple[Migration, ...] = (
    Migration(V0_1_0, V0_2_0, add_combat_stats_fields, "Add new combat stats fields"),
    Migration(V0_2_0, V0_3_0, update_inventory_system, "Update inventory system"),
)


def create_version_manager(current_version: SaveVersion | str | None = None) -> VersionManager:
    """Version manager with the built-in migrations and compatibility rules registered."""
    manager = VersionManager(current_version or __version__)
    for migration in BUILTIN_MIGRATIONS:
        manager.register_migration(migration)

    for version in (V0_1_0, V0_2_0):
        if version < manager.current_version:
            manager.set_compatibility_rule(version, VersionCompatibility.NEEDS_MIGRATION)
    return manager
