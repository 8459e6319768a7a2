"""
Bookmark Ingest - Test Configuration and Fixtures

Shared fixtures for unit and integration tests.
"""

import json
from pathlib import Path
from typing import Callable, Optional

import pytest

from bookmark_ingest.config import reset_config
from bookmark_ingest.db import RecordStore
from bookmark_ingest.romanizer import BaseRomanizer

ENV_VARS = (
    "BOOKMARK_DB_PATH",
    "ROMANIZE_TITLES",
    "EXTRACT_HASHTAGS",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


class FakeRomanizer(BaseRomanizer):
    """Romanizer returning canned readings and remembering what it was asked"""

    name = "fake"

    def __init__(self, readings: Optional[dict[str, str]] = None):
        self.readings = readings or {}
        self.calls: list[str] = []

    def romanize(self, text: str) -> Optional[str]:
        self.calls.append(text)
        return self.readings.get(text, "romaji")


class FailingRomanizer(BaseRomanizer):
    """Romanizer that always blows up"""

    name = "failing"

    def romanize(self, text: str) -> Optional[str]:
        raise RuntimeError("transliteration backend crashed")


def place(title, uri, **extra) -> dict:
    """A Firefox bookmark leaf"""
    node = {
        "guid": extra.pop("guid", f"guid-{abs(hash(uri)) % 10_000}"),
        "title": title,
        "index": 0,
        "dateAdded": 1687548920094000,
        "lastModified": 1689519634292000,
        "id": 100,
        "typeCode": 1,
        "type": "text/x-moz-place",
        "uri": uri,
    }
    node.update(extra)
    return node


def container(title, children=None, **extra) -> dict:
    """A Firefox bookmark folder"""
    node = {
        "guid": extra.pop("guid", f"folder-{title}"),
        "title": title,
        "index": 0,
        "dateAdded": 1687548918712000,
        "lastModified": 1689519935422000,
        "id": 2,
        "typeCode": 2,
        "type": "text/x-moz-place-container",
    }
    if children is not None:
        node["children"] = children
    node.update(extra)
    return node


def separator() -> dict:
    return {
        "guid": "A8NUOjpsRO1f",
        "title": "",
        "index": 0,
        "dateAdded": 1687548920094000,
        "lastModified": 1687548920094000,
        "id": 15,
        "typeCode": 3,
        "type": "text/x-moz-place-separator",
    }


def root(*children) -> dict:
    return container("", list(children), guid="root________", root="placesRoot")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep developer settings (env vars, .env files) out of the tests"""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def sample_tree() -> dict:
    """Export shaped like a real Firefox backup"""
    return root(
        container("menu", [separator()], root="bookmarksMenuFolder"),
        container(
            "toolbar",
            [
                place("Downloads", "about:downloads"),
                place("ゆるキャン△", "https://some-site.test/page-of-this-manga"),
                container(
                    "Reading",
                    [
                        place("Foo", "http://a.test/x"),
                        place("Bar #action", "https://b.test/bar-chapter-12-1/"),
                    ],
                ),
            ],
            root="toolbarFolder",
        ),
        container("unfiled", root="unfiledBookmarksFolder"),
        container("mobile", [], root="mobileFolder"),
    )


@pytest.fixture
def write_export(tmp_path) -> Callable[..., Path]:
    """Write an export document (dict, list or raw text) and return its path"""
    def _write(document, name: str = "bookmarks.json") -> Path:
        path = tmp_path / name
        if isinstance(document, str):
            path.write_text(document, encoding="utf-8")
        else:
            path.write_text(json.dumps(document, ensure_ascii=False), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def store(tmp_path):
    """A freshly created record store"""
    record_store = RecordStore.open_or_create(tmp_path / "store.sqlite3")
    yield record_store
    record_store.close()


@pytest.fixture
def fake_romanizer() -> FakeRomanizer:
    return FakeRomanizer({"ゆるキャン△": "yurukyan△"})
