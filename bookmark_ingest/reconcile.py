"""
Bookmark Ingest - Reconciliation Engine

Matches freshly extracted records against stored rows by normalized URL,
decides insert / update / no-op for each, and applies the resulting plan to
the store as one transaction.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from .db import RecordStore
from .models import OPTIONAL_FIELDS, Record, normalize_tags
from .romanizer import needs_romanization

logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = ("possible_last_update", "possible_last_update_millis")


class PlanAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    UNCHANGED = "unchanged"


@dataclass
class PlanEntry:
    """What will happen to one logical record"""
    action: PlanAction
    record: Record
    existing: Optional[Record] = None


@dataclass
class UpsertPlan:
    """Ordered plan entries plus the stored rows this run does not touch"""
    entries: list[PlanEntry] = field(default_factory=list)
    untouched: list[Record] = field(default_factory=list)
    duplicates_merged: int = 0

    def count(self, action: PlanAction) -> int:
        return sum(1 for entry in self.entries if entry.action is action)

    @property
    def inserts(self) -> int:
        return self.count(PlanAction.INSERT)

    @property
    def updates(self) -> int:
        return self.count(PlanAction.UPDATE)

    @property
    def unchanged(self) -> int:
        return self.count(PlanAction.UNCHANGED)

    def records(self) -> list[Record]:
        """Post-merge record set as planned (inserts still carry id 0)"""
        return self.untouched + [entry.record for entry in self.entries]


def _same(left: Record, right: Record) -> bool:
    return left.model_dump() == right.model_dump()


def merge_records(existing: Record, incoming: Record) -> Record:
    """
    Merge an incoming record into an existing one.

    The existing id is kept. Fields the incoming record has overwrite the
    existing values; fields it lacks keep their stored value. The two
    timestamp fields move together. Tags are unioned, existing ones first.

    The romanized title belongs to the title it was derived from: when the
    title changes it is replaced too, unless the new title still needs
    romanization and none was produced for it.
    """
    updates = {"title": incoming.title, "url": incoming.url}

    for name in OPTIONAL_FIELDS:
        if name in TIMESTAMP_FIELDS:
            continue
        value = getattr(incoming, name)
        if value is not None:
            updates[name] = value

    if incoming.title != existing.title:
        romanized = incoming.possible_title_romanized
        if romanized is None and needs_romanization(incoming.title):
            romanized = existing.possible_title_romanized
        updates["possible_title_romanized"] = romanized

    if incoming.possible_last_update_millis is not None:
        for name in TIMESTAMP_FIELDS:
            updates[name] = getattr(incoming, name)

    updates["tags"] = normalize_tags(existing.tags + incoming.tags)
    return existing.model_copy(update=updates)


def build_plan(records: Iterable[Record], existing_rows: Iterable[Record]) -> UpsertPlan:
    """
    Build the upsert plan for this run.

    Args:
        records: Validated records from the export, in document order
        existing_rows: Every row currently in the store

    Returns:
        UpsertPlan with one entry per distinct normalized URL in the input
    """
    existing_rows = list(existing_rows)
    lookup: dict[str, Record] = {}
    for row in existing_rows:
        lookup.setdefault(row.url_key, row)

    plan = UpsertPlan()
    pending: dict[str, PlanEntry] = {}

    for record in records:
        key = record.url_key
        entry = pending.get(key)

        if entry is not None:
            # Same URL bookmarked twice in one export
            logger.info(f"Merging duplicate bookmark for {record.url}")
            plan.duplicates_merged += 1
            entry.record = merge_records(entry.record, record)
            if entry.existing is not None:
                entry.action = (
                    PlanAction.UNCHANGED if _same(entry.record, entry.existing) else PlanAction.UPDATE
                )
            continue

        existing = lookup.get(key)
        if existing is None:
            entry = PlanEntry(action=PlanAction.INSERT, record=record.with_id(0))
        else:
            merged = merge_records(existing, record)
            action = PlanAction.UNCHANGED if _same(merged, existing) else PlanAction.UPDATE
            entry = PlanEntry(action=action, record=merged, existing=existing)

        pending[key] = entry
        plan.entries.append(entry)

    plan.untouched = [row for row in existing_rows if row.url_key not in pending]
    return plan


def apply_plan(store: RecordStore, plan: UpsertPlan) -> list[Record]:
    """
    Apply every insert and update in one store transaction.

    Raises:
        StoreError: If any write fails; nothing from this plan is committed

    Returns:
        The full post-merge record set with store-assigned ids
    """
    applied = []
    with store.transaction():
        for entry in plan.entries:
            if entry.action is PlanAction.UNCHANGED:
                applied.append(entry.record)
                continue
            record_id = store.upsert(entry.record)
            applied.append(entry.record.with_id(record_id))

    logger.info(
        f"Applied plan to {store.db_path}: {plan.inserts} inserted, "
        f"{plan.updates} updated, {plan.unchanged} unchanged"
    )
    return plan.untouched + applied


def snapshot_order(records: Iterable[Record]) -> list[Record]:
    """Deterministic snapshot order: normalized URL, then URL, then id"""
    return sorted(records, key=lambda record: (record.url_key, record.url, record.id))
