"""
Bookmark Ingest - Conversion Pipeline

One run: parse the export, normalize leaves into records, reconcile them
with the store (when one is given), write the CSV snapshot and optionally
diff it against an earlier snapshot.
"""

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .csv_snapshot import SnapshotDiff, diff_snapshots, read_snapshot, write_snapshot
from .db import RecordStore
from .errors import BookmarkIngestError, BookmarkParseError
from .firefox_parser import FirefoxParser
from .normalizer import FieldNormalizer
from .reconcile import apply_plan, build_plan
from .romanizer import BaseRomanizer

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Outcome of one conversion run"""
    input_path: Path
    output_path: Path
    db_path: Optional[Path] = None
    bookmarks_found: int = 0
    records_written: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    duplicates_merged: int = 0
    store_created: bool = False
    rejected: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    diff: Optional[SnapshotDiff] = None

    @property
    def issue_count(self) -> int:
        return len(self.rejected) + len(self.warnings)


def run_conversion(
    input_path: str | Path,
    output_path: str | Path,
    db_path: Optional[str | Path] = None,
    compare_path: Optional[str | Path] = None,
    romanizer: Optional[BaseRomanizer] = None,
    romanize_titles: bool = True,
    extract_hashtags: bool = True,
) -> RunReport:
    """
    Convert a Firefox export into a CSV snapshot, reconciling with the store.

    Args:
        input_path: Firefox JSON backup
        output_path: CSV snapshot to write
        db_path: Record store; None for a CSV-only conversion
        compare_path: Earlier CSV snapshot to diff the new one against
        romanizer: Romanizer for non-Latin titles
        romanize_titles: Whether to romanize at all
        extract_hashtags: Whether "#tags" in titles and notes become tags

    Returns:
        RunReport with counts and collected warnings

    Raises:
        BookmarkParseError: If the export is unreadable or not a bookmark tree
        StoreError: If the store cannot be opened or written
        BookmarkIngestError: If the CSV snapshot cannot be written
    """
    report = RunReport(
        input_path=Path(input_path),
        output_path=Path(output_path),
        db_path=Path(db_path) if db_path else None,
    )

    # Parse everything before touching the store
    try:
        parser = FirefoxParser(report.input_path)
    except FileNotFoundError as e:
        raise BookmarkParseError(str(e)) from e
    bookmarks = parser.parse()
    report.bookmarks_found = len(bookmarks)
    report.warnings.extend(parser.warnings)

    normalizer = FieldNormalizer(
        romanizer=romanizer,
        romanize_titles=romanize_titles,
        hashtags=extract_hashtags,
    )
    records, rejected = normalizer.normalize_all(bookmarks)
    report.rejected.extend(rejected)
    report.warnings.extend(normalizer.warnings)

    previous = None
    if compare_path:
        previous = _read_previous_snapshot(Path(compare_path), report)

    if report.db_path is None:
        plan = build_plan(records, [])
        final_records = plan.records()
    else:
        store = RecordStore.open_or_create(report.db_path)
        try:
            report.store_created = store.created
            # Hold the write lock from reading existing rows until commit
            with store.transaction():
                plan = build_plan(records, store.read_all())
                final_records = apply_plan(store, plan)
        finally:
            store.close()

    report.inserted = plan.inserts
    report.updated = plan.updates
    report.unchanged = plan.unchanged
    report.duplicates_merged = plan.duplicates_merged

    try:
        report.records_written = write_snapshot(final_records, report.output_path)
    except OSError as e:
        raise BookmarkIngestError(f"Cannot write CSV snapshot {report.output_path}: {e}") from e

    if previous is not None:
        report.diff = diff_snapshots(previous, final_records)

    logger.info(
        f"Converted {report.bookmarks_found} bookmarks: {report.inserted} new, "
        f"{report.updated} updated, {report.unchanged} unchanged, "
        f"{len(report.rejected)} rejected"
    )
    return report


def _read_previous_snapshot(path: Path, report: RunReport):
    if not path.exists():
        message = f"Comparison snapshot {path} not found, skipping diff"
        logger.warning(message)
        report.warnings.append(message)
        return None

    try:
        previous, warnings = read_snapshot(path)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        message = f"Cannot read comparison snapshot {path}: {e}"
        logger.warning(message)
        report.warnings.append(message)
        return None

    report.warnings.extend(warnings)
    return previous
