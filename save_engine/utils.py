"""Shared utility functions."""

from __future__ import annotations

import os
from pathlib import Path

SECONDS_PER_DAY = 24 * 60 * 60


def format_size(size_bytes: int) -> str:
    """Format byte count to human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"


def format_playtime(seconds: int) -> str:
    """Format seconds as ``1h 1m 1s`` / ``1m 30s`` / ``30s``."""
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def temp_path_for(path: Path) -> Path:
    """Temporary write target next to *path* (``save_000.dat`` → ``save_000.dat.tmp``)."""
    return path.with_name(path.name + ".tmp")


def write_atomic(path: Path, data: bytes) -> None:
    """Write *data* to a temp file, fsync, then publish it with a single rename.

    Readers see either the previous complete file or the new one. The temp
    file is removed if anything fails before the rename.
    """
    tmp_path = temp_path_for(path)
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
