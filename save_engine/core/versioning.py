"""Save versioning — compatibility checks and migration of older save payloads."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import StrEnum
from functools import total_ordering
from typing import Callable

from loguru import logger

from save_engine.errors import InvalidFormatError, MigrationError, VersionMismatchError
from save_engine.models.save_data import SaveData


class VersionCompatibility(StrEnum):
    """How a save's version relates to the running version."""

    EXACT = "exact"
    COMPATIBLE = "compatible"  # patch differs only
    NEEDS_MIGRATION = "needs_migration"  # older minor
    TOO_NEW = "too_new"  # written by a newer minor
    INCOMPATIBLE = "incompatible"  # major differs


@total_ordering
@dataclass(frozen=True)
class SaveVersion:
    """Semantic version of a save schema, e.g. ``1.2.3`` or ``2.0.0-beta``."""

    major: int
    minor: int
    patch: int
    pre_release: str | None = None

    @classmethod
    def parse(cls, text: str) -> SaveVersion:
        parts = text.strip().split(".")
        if len(parts) != 3:
            raise InvalidFormatError(f"Invalid version format: {text!r}")

        patch_part, _, pre_release = parts[2].partition("-")
        numbers: list[int] = []
        for label, raw in zip(("major", "minor", "patch"), (parts[0], parts[1], patch_part)):
            if not raw.isdecimal():
                raise InvalidFormatError(f"Invalid {label} version: {raw!r}")
            numbers.append(int(raw))

        return cls(numbers[0], numbers[1], numbers[2], pre_release or None)

    def with_pre_release(self, pre_release: str) -> SaveVersion:
        return SaveVersion(self.major, self.minor, self.patch, pre_release)

    @property
    def core(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def _sort_key(self) -> tuple:
        # A pre-release precedes its release: 1.0.0-alpha < 1.0.0
        if self.pre_release is None:
            return (*self.core, 1, "")
        return (*self.core, 0, self.pre_release)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SaveVersion):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.pre_release}" if self.pre_release else base

    def compatibility_with(self, other: SaveVersion) -> VersionCompatibility:
        """Compatibility of a save at *other* when running at ``self``."""
        if self.major != other.major:
            return VersionCompatibility.INCOMPATIBLE
        if self.minor != other.minor:
            if self.minor > other.minor:
                return VersionCompatibility.NEEDS_MIGRATION
            return VersionCompatibility.TOO_NEW
        if self.patch != other.patch:
            return VersionCompatibility.COMPATIBLE
        return VersionCompatibility.EXACT


@dataclass(frozen=True)
class Migration:
    """Directed schema edge with a transform over the structured payload."""

    from_version: SaveVersion
    to_version: SaveVersion
    transform: Callable[[SaveData], SaveData]
    description: str = ""

    @property
    def name(self) -> str:
        return f"{self.from_version}->{self.to_version}"


class MigrationStatus(StrEnum):
    SUCCESS = "success"
    NOT_NEEDED = "not_needed"


@dataclass
class MigrationResult:
    """Outcome of :meth:`VersionManager.migrate_save`."""

    status: MigrationStatus
    data: SaveData
    applied: list[str] = field(default_factory=list)

    @property
    def migrated(self) -> bool:
        return self.status == MigrationStatus.SUCCESS


class VersionManager:
    """
    Version compatibility rules and the migration registry.

    Migrations and rules are registered once at startup; afterwards the
    manager is only read.
    """

    def __init__(self, current_version: SaveVersion | str) -> None:
        if isinstance(current_version, str):
            current_version = SaveVersion.parse(current_version)
        self._current = current_version
        self._migrations: dict[tuple[SaveVersion, SaveVersion], Migration] = {}
        self._rules: dict[SaveVersion, VersionCompatibility] = {}

    @property
    def current_version(self) -> SaveVersion:
        return self._current

    def register_migration(self, migration: Migration) -> None:
        """Register an edge; registering the same edge again replaces it."""
        src, dst = migration.from_version, migration.to_version
        if src.major != dst.major:
            raise MigrationError(f"Migration {migration.name} crosses a major version")
        if not src < dst:
            raise MigrationError(f"Migration {migration.name} does not move forward")

        key = (src, dst)
        if key in self._migrations:
            logger.debug(f"Replacing migration {migration.name}")
        self._migrations[key] = migration

    def set_compatibility_rule(self, version: SaveVersion, compatibility: VersionCompatibility) -> None:
        self._rules[version] = compatibility

    def check_compatibility(self, save_version: SaveVersion) -> VersionCompatibility:
        if save_version in self._rules:
            return self._rules[save_version]
        return self._current.compatibility_with(save_version)

    def get_available_migrations(self) -> list[str]:
        return sorted(m.name for m in self._migrations.values())

    def validate_save_version(self, data: SaveData) -> None:
        """Raise :class:`VersionMismatchError` if *data* cannot be loaded at all."""
        save_version = SaveVersion.parse(data.version)
        compatibility = self.check_compatibility(save_version)
        if compatibility == VersionCompatibility.INCOMPATIBLE:
            raise VersionMismatchError(str(self._current), str(save_version))
        if compatibility == VersionCompatibility.TOO_NEW:
            raise VersionMismatchError(f"<= {self._current}", str(save_version))

    def migrate_save(self, data: SaveData) -> MigrationResult:
        """
        Bring *data* up to the current version.

        All-or-nothing: transforms run on a deep copy, so a failure anywhere in
        the chain leaves *data* untouched and raises :class:`MigrationError`.
        """
        save_version = SaveVersion.parse(data.version)
        compatibility = self.check_compatibility(save_version)

        if compatibility in (VersionCompatibility.EXACT, VersionCompatibility.COMPATIBLE):
            return MigrationResult(MigrationStatus.NOT_NEEDED, data)
        if compatibility in (VersionCompatibility.TOO_NEW, VersionCompatibility.INCOMPATIBLE):
            raise VersionMismatchError(str(self._current), str(save_version))

        path = self.find_migration_path(save_version, self._current)
        migrated = copy.deepcopy(data)
        for migration in path:
            try:
                migrated = migration.transform(migrated)
            except Exception as e:
                logger.error(f"Migration {migration.name} failed: {e}")
                raise MigrationError(f"Migration {migration.name} failed: {e}") from e
            if not isinstance(migrated, SaveData):
                raise MigrationError(f"Migration {migration.name} did not return SaveData")

        migrated.version = str(self._current)
        applied = [m.name for m in path]
        logger.info(f"Migrated save from {save_version} to {self._current} via {', '.join(applied)}")
        return MigrationResult(MigrationStatus.SUCCESS, migrated, applied)

    def find_migration_path(self, src: SaveVersion, dst: SaveVersion) -> list[Migration]:
        """
        Greedy path: step to the next minor (patch 0) while below the target
        minor, then step patches. Every step must be a registered edge, so
        chains have to be dense.
        """
        path: list[Migration] = []
        current = src
        while current.core != dst.core:
            if current.minor < dst.minor:
                step = SaveVersion(current.major, current.minor + 1, 0)
            elif current.patch < dst.patch:
                step = SaveVersion(current.major, current.minor, current.patch + 1)
            else:
                raise MigrationError(f"Cannot determine next migration step from {current} to {dst}")

            migration = self._migrations.get((current, step))
            if migration is None:
                raise MigrationError(f"No migration path found from {src} to {dst} (missing {current}->{step})")
            path.append(migration)
            current = step
        return path
