"""
Bookmark Ingest - CSV Snapshots

The CSV output is a disposable view of the record set, regenerated on each
run. Snapshots are written in a stable order with stable quoting so two
runs can be diffed byte for byte.
"""

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from .models import FIELD_NAMES, TAG_DELIMITER, Record
from .reconcile import snapshot_order

logger = logging.getLogger(__name__)


def record_to_row(record: Record) -> dict[str, str]:
    """Render a record as CSV cells; absent optional fields become empty strings"""
    row = {}
    for name in FIELD_NAMES:
        value = getattr(record, name)
        if name == "tags":
            row[name] = TAG_DELIMITER.join(value)
        elif value is None:
            row[name] = ""
        else:
            row[name] = str(value)
    return row


def row_to_record(row: dict[str, str]) -> Record:
    """
    Parse CSV cells back into a record.

    Raises:
        ValueError: If the row does not hold a valid record
    """
    values = {name: row[name] for name in FIELD_NAMES if row.get(name) is not None}
    values["id"] = int(values.get("id") or 0)
    return Record(**values)


def write_snapshot(records: Iterable[Record], path: str | Path) -> int:
    """
    Write records to a CSV snapshot.

    Args:
        records: Record set to write, in any order
        path: Output CSV path

    Returns:
        Number of data rows written
    """
    path = Path(path)
    ordered = snapshot_order(records)

    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(
            f,
            fieldnames=FIELD_NAMES,
            quoting=csv.QUOTE_ALL,
            lineterminator="\n",
        )
        writer.writeheader()
        for record in ordered:
            writer.writerow(record_to_row(record))

    logger.info(f"Wrote {len(ordered)} records to {path}")
    return len(ordered)


def read_snapshot(path: str | Path) -> tuple[list[Record], list[str]]:
    """
    Read a CSV snapshot written by write_snapshot.

    Rows that do not form a valid record are skipped and reported.

    Returns:
        (records, warnings)
    """
    path = Path(path)
    records = []
    warnings = []

    with path.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        missing = {"title", "url"} - set(reader.fieldnames or [])
        if missing:
            warnings.append(f"{path} is missing columns: {', '.join(sorted(missing))}")
            return records, warnings

        for line_number, row in enumerate(reader, start=2):
            try:
                records.append(row_to_record(row))
            except (ValidationError, ValueError) as e:
                warnings.append(f"{path}:{line_number}: skipping row: {e}")

    for warning in warnings:
        logger.warning(warning)
    return records, warnings


@dataclass
class SnapshotDiff:
    """URLs added, removed and changed between two snapshots"""
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.changed)


def diff_snapshots(previous: Iterable[Record], current: Iterable[Record]) -> SnapshotDiff:
    """
    Compare two record sets by normalized URL, ignoring store ids.

    Returns:
        SnapshotDiff with sorted URL lists
    """
    before = {record.url_key: record for record in previous}
    after = {record.url_key: record for record in current}

    diff = SnapshotDiff()
    for key in sorted(after.keys() - before.keys()):
        diff.added.append(after[key].url)
    for key in sorted(before.keys() - after.keys()):
        diff.removed.append(before[key].url)
    for key in sorted(after.keys() & before.keys()):
        if after[key].model_dump(exclude={"id"}) != before[key].model_dump(exclude={"id"}):
            diff.changed.append(after[key].url)
    return diff
