"""Save engine entry point: wires services and runs maintenance commands.

Usage:
    python main.py [--data-dir DIR] <command>

Commands:
    slots                         list every save slot and its state
    info                          save directory size and limits
    rotate                        run one rotation pass with the configured strategy
    stats                         rotation statistics (read-only)
    cleanup                       remove temp leftovers and stale slot files
    cleanup-backups --max-age-days N
                                  delete rotation backups older than N days
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger

from save_engine import __version__
from save_engine.config import Config
from save_engine.context import EngineContext
from save_engine.core.migrations import create_version_manager
from save_engine.core.rotation import SaveRotationSystem
from save_engine.core.service import SaveService
from save_engine.core.slot_store import SaveSlotStore
from save_engine.errors import SaveError
from save_engine.logger import setup_logger
from save_engine.utils import format_size


def create_context(data_dir: Path | None = None) -> EngineContext:
    """Wire all services and return an EngineContext."""
    config = Config(data_dir)

    # Logger
    setup_logger(config.data_dir / "logs" if config.log_to_file else None, level=config.log_level)

    # Core services
    save_dir = config.save_directory
    slot_store = SaveSlotStore(save_dir, config.store_config())
    rotation = SaveRotationSystem(save_dir, config.rotation_config())
    version_manager = create_version_manager(config.current_version or __version__)
    save_service = SaveService(slot_store, version_manager)

    logger.debug(f"Save engine {__version__} using {save_dir}")
    return EngineContext(
        config=config,
        slot_store=slot_store,
        rotation=rotation,
        version_manager=version_manager,
        save_service=save_service,
    )


def _cmd_slots(ctx: EngineContext, args: argparse.Namespace) -> None:
    for slot in ctx.slot_store.get_save_slots():
        if not slot.is_occupied:
            state = "empty"
        elif slot.is_corrupted:
            state = "CORRUPTED"
        else:
            state = "ok"
        backup = " [backup]" if slot.backup_available else ""
        meta = slot.metadata
        detail = (
            f"{meta.save_name} ({meta.player_name}) lv{meta.character_level} "
            f"depth {meta.current_depth} {meta.formatted_playtime()}"
            if slot.is_occupied
            else ""
        )
        print(f"{slot.slot_id:3d}  {state:<9} {detail}{backup}")


def _cmd_info(ctx: EngineContext, args: argparse.Namespace) -> None:
    info = ctx.slot_store.get_save_info()
    print(f"Directory:   {info.save_directory}")
    print(f"Slots:       {info.max_save_slots} (backups per slot: {info.backup_count})")
    print(f"Files:       {info.file_count} ({info.formatted_size})")
    print(f"Compression: {'on' if info.compression_enabled else 'off'}")
    print(f"Auto backup: {'on' if info.auto_backup_enabled else 'off'}")


def _cmd_rotate(ctx: EngineContext, args: argparse.Namespace) -> None:
    result = ctx.rotation.rotate_saves()
    print(f"Deleted {len(result.deleted_files)} files, freed {format_size(result.space_freed)}")
    for path in result.deleted_files:
        print(f"  - {path.name}")
    if result.backed_up_files:
        print(f"Backed up {len(result.backed_up_files)} files to {ctx.rotation.backup_directory}")


def _cmd_stats(ctx: EngineContext, args: argparse.Namespace) -> None:
    stats = ctx.rotation.get_statistics()
    print(f"Save files:  {stats.total_save_files} ({format_size(stats.total_size_bytes)})")
    print(f"Manual:      {stats.manual_save_count}")
    print(f"Autosaves:   {stats.autosave_count}")
    print(f"Age (days):  newest {stats.newest_save_age_days}, oldest {stats.oldest_save_age_days}")
    print(f"Backups:     {format_size(stats.backup_directory_size)}")
    print(f"Strategy:    {stats.config.rotation_strategy}")


def _cmd_cleanup(ctx: EngineContext, args: argparse.Namespace) -> None:
    print(f"Removed {ctx.slot_store.cleanup()} stale files")


def _cmd_cleanup_backups(ctx: EngineContext, args: argparse.Namespace) -> None:
    removed = ctx.rotation.cleanup_backups(args.max_age_days)
    print(f"Removed {removed} backups older than {args.max_age_days} days")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="save-engine", description="Save engine maintenance")
    parser.add_argument("--data-dir", type=Path, default=None, help="directory holding config.json")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("slots", help="list save slots").set_defaults(func=_cmd_slots)
    sub.add_parser("info", help="save directory summary").set_defaults(func=_cmd_info)
    sub.add_parser("rotate", help="run one rotation pass").set_defaults(func=_cmd_rotate)
    sub.add_parser("stats", help="rotation statistics").set_defaults(func=_cmd_stats)
    sub.add_parser("cleanup", help="remove stale slot files").set_defaults(func=_cmd_cleanup)

    backups = sub.add_parser("cleanup-backups", help="delete old rotation backups")
    backups.add_argument("--max-age-days", type=int, required=True)
    backups.set_defaults(func=_cmd_cleanup_backups)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Application entry point."""
    args = build_parser().parse_args(argv)
    try:
        ctx = create_context(args.data_dir)
        args.func(ctx, args)
    except SaveError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
