"""
Bookmark Ingest

Converts Firefox bookmark backups into normalized records, reconciles them
with a local record store and writes CSV snapshots.
"""

__version__ = "1.0.0"

from .db import RecordStore
from .firefox_parser import Bookmark, FirefoxParser, Folder
from .models import Record
from .normalizer import FieldNormalizer
from .pipeline import RunReport, run_conversion
from .reconcile import apply_plan, build_plan, merge_records

__all__ = [
    "Bookmark",
    "FieldNormalizer",
    "FirefoxParser",
    "Folder",
    "Record",
    "RecordStore",
    "RunReport",
    "apply_plan",
    "build_plan",
    "merge_records",
    "run_conversion",
]
