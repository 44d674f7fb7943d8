"""Save engine exceptions."""

from __future__ import annotations

import errno
from contextlib import contextmanager
from typing import Iterator


class SaveError(Exception):
    """Base exception for save/load errors."""


class SaveIOError(SaveError):
    """Filesystem failure while reading or writing save data."""


class PermissionDeniedError(SaveError):
    """The save directory or a save file is not accessible."""


class DiskFullError(SaveError):
    """No space left on the device holding the save directory."""


class SerializationError(SaveError):
    """Payload could not be encoded or decoded."""


class InvalidFormatError(SerializationError):
    """A version string or envelope field is malformed."""


class SlotNotFoundError(SaveError):
    """Slot id is out of range or the slot holds no save."""

    def __init__(self, slot_id: int) -> None:
        super().__init__(f"Save slot not found: {slot_id}")
        self.slot_id = slot_id


class InvalidSaveFileError(SaveError):
    """A save file is structurally unreadable."""


class CorruptedSaveError(SaveError):
    """Raised when save files are corrupted and cannot be recovered from backup."""


class VersionMismatchError(SaveError):
    """Save was written by an incompatible or newer version."""

    def __init__(self, expected: str, found: str) -> None:
        super().__init__(f"Version mismatch: expected {expected}, found {found}")
        self.expected = expected
        self.found = found


class MigrationError(SaveError):
    """A migration could not be found or failed while being applied."""


@contextmanager
def translate_os_errors(action: str) -> Iterator[None]:
    """Re-raise ``OSError`` from the wrapped block as a typed :class:`SaveError`."""
    try:
        yield
    except PermissionError as e:
        raise PermissionDeniedError(f"{action}: {e}") from e
    except OSError as e:
        if e.errno == errno.ENOSPC:
            raise DiskFullError(f"{action}: {e}") from e
        raise SaveIOError(f"{action}: {e}") from e
