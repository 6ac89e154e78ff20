"""
Sync the card catalog from Scryfall bulk data.

Downloads (or reuses) a bulk dataset, parses every record, reconciles the
printings against the stored catalog and writes the result in batches.
Run it on a schedule or by hand:

    cardcatalog-sync                      # default_cards, cached file if present
    cardcatalog-sync -f                   # force a fresh download
    cardcatalog-sync -t all_cards -d      # dry run against another dataset
    cardcatalog-sync -l                   # list available datasets
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from types import TracebackType

import httpx
from sqlalchemy.exc import SQLAlchemyError

from cardcatalog.config import settings
from cardcatalog.db.database import create_engine, create_session_factory, init_db
from cardcatalog.db.operations import collect_catalog_stats, load_identity_index, write_plan
from cardcatalog.models.failure import KnownError, SyncAlreadyRunningError
from cardcatalog.models.sync import SkippedRecord, SyncSummary
from cardcatalog.parsers.scryfall import load_bulk_printings
from cardcatalog.services.bulk_data import (
    default_headers,
    fetch_bulk_file,
    fetch_bulk_manifest,
    find_bulk_data,
)
from cardcatalog.services.reconciliation import plan_reconciliation

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = "sync.lock"
SKIP_REPORT_LIMIT = 10


class SyncLock:
    """
    Run lock held for the duration of a sync.

    The lock is a file created exclusively and holding the owner's PID.
    It is removed on exit, including when the run fails.
    """

    def __init__(self, path: Path):
        self.path = path
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as e:
            raise SyncAlreadyRunningError(str(self.path), holder=self._read_holder()) from e
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        self._held = True

    def release(self) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False

    def _read_holder(self) -> str | None:
        try:
            return self.path.read_text().strip() or None
        except OSError:
            return None

    def __enter__(self) -> "SyncLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def report_skipped(skipped: list[SkippedRecord], limit: int = SKIP_REPORT_LIMIT) -> None:
    """Log the first few skipped records and how many more there were."""
    if not skipped:
        return

    logger.warning("Skipped %d records:", len(skipped))
    for record in skipped[:limit]:
        logger.warning("  - %s [%s]: %s", record.name, record.external_id, record.reason)
    if len(skipped) > limit:
        logger.warning("  ... and %d more", len(skipped) - limit)


def log_summary(summary: SyncSummary) -> None:
    """Log the outcome of a run."""
    prefix = "Dry run" if summary.dry_run else "Sync"
    logger.info(
        "%s complete for %s: %d parsed, %d inserted, %d updated, %d skipped",
        prefix,
        summary.bulk_type,
        summary.parsed,
        summary.inserted,
        summary.updated,
        summary.skipped_count,
    )
    if summary.stats is not None:
        stats = summary.stats
        logger.info(
            "Catalog: %d printings, %d distinct cards, %d multi-faced, "
            "%d with finishes, %d on Arena, %d on MTGO",
            stats.total,
            stats.distinct_groups,
            stats.multi_faced,
            stats.with_finishes,
            stats.arena,
            stats.mtgo,
        )


async def list_bulk_types() -> list[str]:
    """Log every dataset in the upstream manifest. Returns their type names."""
    async with httpx.AsyncClient(headers=default_headers()) as client:
        manifest = await fetch_bulk_manifest(client)

    logger.info("Available bulk data types:")
    for info in manifest:
        logger.info(
            "  %-20s %-30s %8.1f MB  updated %s",
            info.type,
            info.name,
            info.size_mb,
            info.updated_at.date().isoformat(),
        )
    return [info.type for info in manifest]


async def run_sync(
    bulk_type: str | None = None,
    force_refresh: bool = False,
    dry_run: bool = False,
    database_url: str | None = None,
    data_dir: Path | None = None,
    batch_size: int | None = None,
) -> SyncSummary:
    """
    Run one ingestion.

    Args:
        bulk_type: Dataset to sync. Defaults to settings.default_bulk_type
        force_refresh: Download even if a cached file exists
        dry_run: Reconcile and report, but write nothing
        database_url: Override settings.database_url
        data_dir: Override settings.data_dir (cache and lock file)
        batch_size: Override settings.sync_batch_size

    Returns:
        SyncSummary for the run

    Raises:
        KnownError: On any run-aborting failure
    """
    bulk_type = bulk_type or settings.default_bulk_type
    data_dir = data_dir or settings.data_dir
    batch_size = batch_size or settings.sync_batch_size

    with SyncLock(data_dir / LOCK_FILE_NAME):
        async with httpx.AsyncClient(headers=default_headers()) as client:
            manifest = await fetch_bulk_manifest(client)
            info = find_bulk_data(manifest, bulk_type)
            logger.info(
                "Found %s: %.1f MB, updated %s", info.type, info.size_mb, info.updated_at
            )
            path = await fetch_bulk_file(client, info, data_dir, force_refresh=force_refresh)

        logger.info("Parsing %s...", path)
        parsed = load_bulk_printings(path)
        logger.info(
            "Parsed %d printings (%d records skipped)",
            len(parsed.printings),
            len(parsed.skipped),
        )

        engine = create_engine(database_url or settings.database_url)
        try:
            await init_db(engine)
            session_factory = create_session_factory(engine)

            async with session_factory() as session:
                index = await load_identity_index(session)
            logger.info("Loaded %d stored identities", len(index))

            plan = plan_reconciliation(parsed.printings, index)
            logger.info(
                "Plan: %d inserts, %d updates (%d rotated ids), %d duplicates",
                len(plan.inserts),
                len(plan.updates),
                plan.rotated_ids,
                len(plan.duplicates),
            )

            summary = SyncSummary(
                bulk_type=bulk_type,
                parsed=len(parsed.printings),
                skipped=parsed.skipped + plan.duplicates,
                dry_run=dry_run,
            )

            if dry_run:
                summary.inserted = len(plan.inserts)
                summary.updated = len(plan.updates)
                logger.info("Dry run: nothing written")
            else:
                summary.inserted, summary.updated = await write_plan(
                    session_factory, plan, batch_size
                )

            async with session_factory() as session:
                summary.stats = await collect_catalog_stats(session)
        finally:
            await engine.dispose()

    report_skipped(summary.skipped)
    log_summary(summary)
    return summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cardcatalog-sync",
        description="Sync the card catalog from Scryfall bulk data.",
    )
    parser.add_argument(
        "-f",
        "--force-refresh",
        action="store_true",
        help="Download fresh data even if a cached file exists",
    )
    parser.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        help="Parse and reconcile, but write nothing",
    )
    parser.add_argument(
        "-c",
        "--database-url",
        default=None,
        help="Database URL (default: DATABASE_URL / settings)",
    )
    parser.add_argument(
        "-t",
        "--bulk-type",
        default=settings.default_bulk_type,
        help=f"Bulk data type to sync (default: {settings.default_bulk_type})",
    )
    parser.add_argument(
        "-l",
        "--list-types",
        action="store_true",
        help="List available bulk data types and exit",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        if args.list_types:
            asyncio.run(list_bulk_types())
        else:
            asyncio.run(
                run_sync(
                    bulk_type=args.bulk_type,
                    force_refresh=args.force_refresh,
                    dry_run=args.dry_run,
                    database_url=args.database_url,
                )
            )
    except KnownError as e:
        logger.error("%s", e.message)
        if e.detail:
            logger.error("  %s", e.detail)
        if e.suggestion:
            logger.error("  %s", e.suggestion)
        return 1
    except (SQLAlchemyError, OSError, ValueError) as e:
        logger.error("Sync failed: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
