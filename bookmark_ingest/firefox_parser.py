"""
Bookmark Ingest - Firefox Bookmarks Parser

Parses Firefox JSON bookmark backups into a tree of folders and bookmarks,
then flattens that tree into the bookmark leaves in document order.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

from .errors import BookmarkParseError
from .models import EPOCH

logger = logging.getLogger(__name__)

TYPE_BOOKMARK = "text/x-moz-place"
TYPE_FOLDER = "text/x-moz-place-container"
TYPE_SEPARATOR = "text/x-moz-place-separator"

TYPE_CODES = {1: TYPE_BOOKMARK, 2: TYPE_FOLDER, 3: TYPE_SEPARATOR}

DESCRIPTION_ANNO = "bookmarkProperties/description"


@dataclass
class Bookmark:
    """A bookmark leaf as found in the export"""
    title: Optional[str]
    uri: Optional[str]
    date_added: Optional[int] = None
    last_modified: Optional[int] = None
    tags: Optional[str] = None
    notes: Optional[str] = None
    guid: Optional[str] = None


@dataclass
class Separator:
    """A separator line between bookmarks"""
    guid: Optional[str] = None


@dataclass
class Folder:
    """A bookmark container and its ordered children"""
    title: Optional[str]
    children: list["Node"] = field(default_factory=list)
    guid: Optional[str] = None


Node = Union[Folder, Bookmark, Separator]


def _node_kind(raw: dict) -> Optional[str]:
    kind = raw.get("type")
    if kind in (TYPE_BOOKMARK, TYPE_FOLDER, TYPE_SEPARATOR):
        return kind
    kind = TYPE_CODES.get(raw.get("typeCode"))
    if kind:
        return kind
    if "children" in raw:
        return TYPE_FOLDER
    if "uri" in raw:
        return TYPE_BOOKMARK
    return None


def _optional_text(value) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    return None


def _notes_from_annos(annos) -> Optional[str]:
    if not isinstance(annos, list):
        return None
    for anno in annos:
        if isinstance(anno, dict) and anno.get("name") == DESCRIPTION_ANNO:
            return _optional_text(anno.get("value"))
    return None


def _parse_date(value: str) -> Optional[int]:
    """ISO date string -> epoch microseconds; naive values are UTC"""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return (parsed - EPOCH) // timedelta(microseconds=1)


def _timestamp(raw: dict, key: str, label: str, warnings: list[str]) -> Optional[int]:
    value = raw.get(key)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        micros = _parse_date(text)
        if micros is not None:
            return micros
    warnings.append(f"Ignoring unparsable {key} {value!r} on {label}")
    return None


def build_node(raw, path: str, warnings: list[str]) -> Optional[Node]:
    """
    Turn one decoded JSON node (and its subtree) into a tree node.

    Malformed nodes are reported in ``warnings`` and come back as None;
    a malformed child never discards its valid siblings.
    """
    if not isinstance(raw, dict):
        warnings.append(f"Skipping node at {path}: expected an object, got {type(raw).__name__}")
        return None

    kind = _node_kind(raw)
    title = _optional_text(raw.get("title"))
    label = f"{path} ({title})" if title else path

    if kind == TYPE_SEPARATOR:
        return Separator(guid=raw.get("guid"))

    if kind == TYPE_FOLDER:
        children_raw = raw.get("children", [])
        if children_raw is None:
            children_raw = []
        if not isinstance(children_raw, list):
            warnings.append(f"Skipping folder {label}: children is not a list")
            return None

        folder = Folder(title=title, guid=raw.get("guid"))
        for index, child_raw in enumerate(children_raw):
            child = build_node(child_raw, f"{path}/{index}", warnings)
            if child is not None:
                folder.children.append(child)
        return folder

    if kind == TYPE_BOOKMARK:
        uri = _optional_text(raw.get("uri"))
        return Bookmark(
            title=title,
            uri=uri,
            date_added=_timestamp(raw, "dateAdded", label, warnings),
            last_modified=_timestamp(raw, "lastModified", label, warnings),
            tags=_optional_text(raw.get("tags")),
            notes=_notes_from_annos(raw.get("annos")),
            guid=raw.get("guid"),
        )

    warnings.append(f"Skipping node at {label}: unknown node type {raw.get('type')!r}")
    return None


def flatten_tree(root: Folder, warnings: list[str]) -> list[Bookmark]:
    """
    Collect bookmark leaves depth-first, keeping sibling order.

    Leaves without a URI cannot become records and are reported.
    """
    bookmarks = []

    def visit(node: Node, path: str) -> None:
        if isinstance(node, Folder):
            for index, child in enumerate(node.children):
                visit(child, f"{path}/{index}")
        elif isinstance(node, Bookmark):
            if not node.uri and not node.title:
                warnings.append(f"Skipping bookmark at {path}: no title and no url")
            elif not node.uri:
                warnings.append(f"Skipping bookmark {node.title!r}: no url")
            else:
                bookmarks.append(node)

    visit(root, "root")
    return bookmarks


class FirefoxParser:
    """
    Parser for Firefox JSON bookmark backups.

    Example structure:
        root (text/x-moz-place-container)
            toolbar
                - bookmark1
                - folder
                    - bookmark2
            menu
                - bookmark3
    """

    def __init__(self, file_path: str | Path):
        self.file_path = Path(file_path)
        if not self.file_path.exists():
            raise FileNotFoundError(f"Bookmarks file not found: {self.file_path}")
        self.warnings: list[str] = []

    def _read_document(self):
        try:
            content = self.file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise BookmarkParseError(f"Cannot read {self.file_path}: {e}") from e

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise BookmarkParseError(f"{self.file_path} is not valid JSON: {e}") from e

    def load_tree(self) -> Folder:
        """
        Read the export and build the bookmark tree.

        Raises:
            BookmarkParseError: If the document is unreadable or its root
                is not a bookmark folder
        """
        self.warnings = []
        document = self._read_document()

        # Some tools export just the top-level list of nodes
        if isinstance(document, list):
            document = {"type": TYPE_FOLDER, "children": document}

        if not isinstance(document, dict) or _node_kind(document) != TYPE_FOLDER:
            raise BookmarkParseError(
                f"{self.file_path} does not contain a bookmark folder at its root"
            )

        root = build_node(document, "root", self.warnings)
        if root is None:
            raise BookmarkParseError(f"{self.file_path} has a malformed root folder")
        return root

    def parse(self) -> list[Bookmark]:
        """
        Parse the export and return every bookmark leaf.

        Returns:
            List of Bookmark nodes in depth-first document order
        """
        root = self.load_tree()
        bookmarks = flatten_tree(root, self.warnings)
        for warning in self.warnings:
            logger.warning(warning)
        return bookmarks

    def get_stats(self) -> dict:
        """
        Get statistics about the bookmarks file without normalizing anything.

        Returns:
            Dictionary with folder, bookmark and separator counts
        """
        root = self.load_tree()
        counts = {"folders": 0, "bookmarks": 0, "separators": 0}

        def count(node: Node) -> int:
            if isinstance(node, Folder):
                counts["folders"] += 1
                return sum(count(child) for child in node.children)
            if isinstance(node, Separator):
                counts["separators"] += 1
                return 0
            counts["bookmarks"] += 1
            return 1

        top_folders = []
        for child in root.children:
            total = count(child)
            if isinstance(child, Folder):
                top_folders.append({"label": child.title or "(untitled)", "count": total})

        return {
            "file_path": str(self.file_path),
            "top_folders": top_folders,
            "total_folders": counts["folders"],
            "total_bookmarks": counts["bookmarks"],
            "total_separators": counts["separators"],
            "malformed_nodes": len(self.warnings),
        }


def parse_bookmarks_file(file_path: str | Path) -> list[Bookmark]:
    """
    Convenience function to parse a Firefox bookmarks file.

    Args:
        file_path: Path to the Firefox JSON backup

    Returns:
        List of Bookmark leaves
    """
    parser = FirefoxParser(file_path)
    return parser.parse()
