from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from .core.config import load_config
from .core.errors import VaultError
from .core.logging_setup import setup_logging
from .db.manager import DatabaseManager
from .db.services import LibraryService
from .jobs import JobManager, JobState, OrganizeJob, ScanJob, SyncJob

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="photovault", description="Keep a photo catalog in step with its vault folders.")
    parser.add_argument("--config", default=None, help="Config file (default: $PHOTOVAULT_CONFIG or ~/.photovault/config.json)")
    parser.add_argument("--db", default=None, help="Catalog database path override")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add-vault", help="Register a folder as a vault and sync it")
    p.add_argument("path")
    p.add_argument("--name", default=None)
    p.add_argument("--no-sync", action="store_true")

    sub.add_parser("vaults", help="List registered vaults")

    p = sub.add_parser("remove-vault", help="Forget a vault (files stay on disk)")
    p.add_argument("vault_id", type=int)

    p = sub.add_parser("sync", help="Reconcile the catalog with the vault folders")
    p.add_argument("vault_id", type=int, nargs="?")

    p = sub.add_parser("scan", help="Catalog the images of a source folder")
    p.add_argument("source")

    p = sub.add_parser("organize", help="Move assigned images to their destinations")
    p.add_argument("--keep-originals", action="store_true", help="Copy instead of move")

    sub.add_parser("summary", help="Show what organize would do")
    sub.add_parser("trash-info", help="Count the files waiting in vault trash folders")
    sub.add_parser("empty-trash", help="Permanently delete the vault trash folders' contents")

    p = sub.add_parser("export", help="Export album assignments to JSON")
    p.add_argument("--output", default=None)
    return parser


def _print_job(job) -> int:
    status = job.snapshot()
    print(f"{status.kind}: {status.state.value} ({status.progress.completed}/{status.progress.total})")
    for key, count in sorted(status.progress.stats.items()):
        print(f"  {key}: {count}")
    for err in status.progress.errors:
        print(f"  error: {err.path}: {err.reason}", file=sys.stderr)
    return 0 if status.state is JobState.completed else 1


def run(args: argparse.Namespace, library: LibraryService) -> int:
    jobs = JobManager()
    cmd = args.command

    if cmd == "add-vault":
        vault = library.add_vault(args.path, args.name, sync=not args.no_sync)
        print(f"{vault.id}\t{vault.display_name}\t{vault.root_path}")
    elif cmd == "vaults":
        for v in library.registry.list_vaults():
            print(f"{v.id}\t{v.display_name}\t{v.root_path}\t{'visible' if v.visible else 'hidden'}")
    elif cmd == "remove-vault":
        library.registry.remove_vault(args.vault_id)
    elif cmd == "sync":
        ids = [args.vault_id] if args.vault_id is not None else None
        job = jobs.submit(SyncJob(library.reconciler, ids), background=False)
        for report in job.reports:
            print(report.summary())
        return _print_job(job)
    elif cmd == "scan":
        job = jobs.submit(ScanJob(library.db, args.source, library.thumbnails), background=False)
        return _print_job(job)
    elif cmd == "organize":
        job = OrganizeJob(library.registry, delete_originals=False if args.keep_originals else None,
                          thumbnail_remover=library.thumbnails.remove if library.thumbnails else None)
        return _print_job(jobs.submit(job, background=False))
    elif cmd == "summary":
        summary = library.organize_summary()
        for move in summary.album_moves:
            print(f"{move.count}\t{move.album_name}\t{move.target_path}")
        print(f"trash: {summary.trash_count}  not sure: {summary.not_sure_count}  total: {summary.total_images}")
    elif cmd == "trash-info":
        print(json.dumps(asdict(library.images.trash_info())))
    elif cmd == "empty-trash":
        print(f"Deleted {library.images.empty_trash()} entries")
    elif cmd == "export":
        print(library.export_assignments(Path(args.output) if args.output else None))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    cfg = load_config(Path(args.config) if args.config else None)
    setup_logging(cfg.logs_path(), cfg.log_level)

    db = DatabaseManager()
    db.open(Path(args.db) if args.db else cfg.catalog_path(), create_if_missing=True)
    library = LibraryService.from_config(db, cfg)
    try:
        return run(args, library)
    except VaultError as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        library.close()
        db.dispose()


if __name__ == "__main__":
    sys.exit(main())
