"""
Bookmark Ingest - Pipeline Integration Tests

Full runs from a JSON export through the record store to the CSV snapshot.
"""

import pytest

from conftest import container, place, root

from bookmark_ingest.csv_snapshot import read_snapshot
from bookmark_ingest.db import RecordStore
from bookmark_ingest.errors import BookmarkIngestError, BookmarkParseError
from bookmark_ingest.pipeline import run_conversion

pytestmark = pytest.mark.integration


def export_of(*leaves) -> dict:
    return root(container("toolbar", list(leaves), root="toolbarFolder"))


def stored(db_path):
    with RecordStore.open_or_create(db_path) as store:
        return store.read_all()


class TestFirstRun:
    """Tests for converting into an empty or missing store."""

    def test_single_bookmark(self, tmp_path, write_export):
        """One plain bookmark becomes row 1 and one CSV line with empty optional fields."""
        path = write_export(export_of(place("Foo", "http://a.test/x", dateAdded=None, lastModified=None)))
        db_path = tmp_path / "manga.sqlite3"
        output = tmp_path / "out.csv"

        report = run_conversion(path, output, db_path=db_path)

        assert report.store_created
        assert report.inserted == 1
        assert report.records_written == 1
        assert [(r.id, r.title, r.url) for r in stored(db_path)] == [(1, "Foo", "http://a.test/x")]

        lines = output.read_text(encoding="utf-8").split("\n")
        assert lines[1] == '"1","Foo","","http://a.test/x"' + ',""' * 7
        assert len(lines) == 3

    def test_sample_export(self, tmp_path, sample_tree, write_export, fake_romanizer):
        db_path = tmp_path / "manga.sqlite3"
        report = run_conversion(
            write_export(sample_tree),
            tmp_path / "out.csv",
            db_path=db_path,
            romanizer=fake_romanizer,
        )

        assert report.bookmarks_found == 4
        assert report.inserted == 3
        assert len(report.rejected) == 1
        assert report.issue_count == 1

        records = {r.url: r for r in stored(db_path)}
        assert records["https://b.test/bar/"].possible_chapter == "12.1"
        assert records["https://b.test/bar/"].tags == ["action"]
        assert records["https://some-site.test/page-of-this-manga"].possible_title_romanized == "yurukyan△"

    def test_invalid_url_is_skipped(self, tmp_path, write_export):
        """A bad leaf is reported while the rest of the export is stored."""
        path = write_export(export_of(place("Broken", "not a url"), place("Foo", "http://a.test/x")))
        db_path = tmp_path / "manga.sqlite3"

        report = run_conversion(path, tmp_path / "out.csv", db_path=db_path)

        assert report.inserted == 1
        assert len(report.rejected) == 1
        assert "Broken" in report.rejected[0]
        assert [r.url for r in stored(db_path)] == ["http://a.test/x"]

    def test_local_file_bookmark(self, tmp_path, write_export):
        """Bookmarks of local files are kept like any other page."""
        path = write_export(export_of(place("Doc", "file:///home/u/doc.html")))
        db_path = tmp_path / "manga.sqlite3"

        report = run_conversion(path, tmp_path / "out.csv", db_path=db_path)

        assert report.rejected == []
        assert report.records_written == 1
        assert [r.url for r in stored(db_path)] == ["file:///home/u/doc.html"]

    def test_csv_only(self, tmp_path, write_export):
        """Without a store, ids stay 0 and duplicates are still merged."""
        path = write_export(export_of(
            place("Foo", "http://a.test/x", tags="a"),
            place("Foo again", "HTTP://A.TEST/x", tags="b"),
        ))
        output = tmp_path / "out.csv"

        report = run_conversion(path, output)

        assert report.db_path is None
        assert report.duplicates_merged == 1
        records, _ = read_snapshot(output)
        assert [(r.id, r.title, r.tags) for r in records] == [(0, "Foo again", ["a", "b"])]


class TestRerun:
    """Tests for running the same or a changed export again."""

    def test_rerun_is_idempotent(self, tmp_path, sample_tree, write_export, fake_romanizer):
        """A second identical run changes nothing and writes the same bytes."""
        path = write_export(sample_tree)
        db_path = tmp_path / "manga.sqlite3"
        first_csv = tmp_path / "first.csv"
        second_csv = tmp_path / "second.csv"

        run_conversion(path, first_csv, db_path=db_path, romanizer=fake_romanizer)
        before = [r.model_dump() for r in stored(db_path)]
        report = run_conversion(path, second_csv, db_path=db_path, romanizer=fake_romanizer)

        assert not report.store_created
        assert report.inserted == report.updated == 0
        assert report.unchanged == 3
        assert [r.model_dump() for r in stored(db_path)] == before
        assert first_csv.read_bytes() == second_csv.read_bytes()

    def test_existing_rows_read_under_the_write_lock(self, tmp_path, write_export, monkeypatch):
        """Stored rows are read inside the transaction that applies the plan."""
        db_path = tmp_path / "manga.sqlite3"
        path = write_export(export_of(place("Foo", "http://a.test/x")))
        run_conversion(path, tmp_path / "v1.csv", db_path=db_path)

        seen = []
        original_read_all = RecordStore.read_all

        def read_all(store):
            seen.append(store.conn.in_transaction)
            return original_read_all(store)

        monkeypatch.setattr(RecordStore, "read_all", read_all)
        run_conversion(path, tmp_path / "v2.csv", db_path=db_path)

        assert seen == [True]

    def test_notes_survive(self, tmp_path, write_export):
        """A stored note is kept when a later export no longer has it."""
        db_path = tmp_path / "manga.sqlite3"
        with_notes = place(
            "Foo",
            "http://a.test/x",
            annos=[{"name": "bookmarkProperties/description", "value": "old"}],
        )
        run_conversion(write_export(export_of(with_notes), "v1.json"), tmp_path / "v1.csv", db_path=db_path)
        run_conversion(
            write_export(export_of(place("Foo", "http://a.test/x")), "v2.json"),
            tmp_path / "v2.csv",
            db_path=db_path,
        )

        [record] = stored(db_path)
        assert record.possible_notes == "old"

    def test_removed_bookmarks_stay_in_store(self, tmp_path, write_export):
        db_path = tmp_path / "manga.sqlite3"
        run_conversion(
            write_export(export_of(place("Foo", "http://a.test/x"), place("Bar", "http://b.test/")), "v1.json"),
            tmp_path / "v1.csv",
            db_path=db_path,
        )
        report = run_conversion(
            write_export(export_of(place("Foo", "http://a.test/x")), "v2.json"),
            tmp_path / "v2.csv",
            db_path=db_path,
        )

        assert report.records_written == 2
        assert len(stored(db_path)) == 2

    def test_compare_with_previous_snapshot(self, tmp_path, write_export):
        db_path = tmp_path / "manga.sqlite3"
        v1 = tmp_path / "v1.csv"
        run_conversion(write_export(export_of(place("Foo", "http://a.test/x")), "v1.json"), v1, db_path=db_path)

        report = run_conversion(
            write_export(export_of(place("Foo", "http://a.test/x"), place("Bar", "http://b.test/")), "v2.json"),
            tmp_path / "v2.csv",
            db_path=db_path,
            compare_path=v1,
        )

        assert report.diff.added == ["http://b.test/"]
        assert report.diff.removed == []
        assert report.diff.changed == []

    def test_compare_against_output_path(self, tmp_path, write_export):
        """Comparing against the file being overwritten uses its old contents."""
        output = tmp_path / "out.csv"
        run_conversion(write_export(export_of(place("Foo", "http://a.test/x")), "v1.json"), output)

        report = run_conversion(
            write_export(export_of(place("Foo v2", "http://a.test/x")), "v2.json"),
            output,
            compare_path=output,
        )
        assert report.diff.changed == ["http://a.test/x"]

    def test_missing_compare_file(self, tmp_path, write_export):
        report = run_conversion(
            write_export(export_of(place("Foo", "http://a.test/x"))),
            tmp_path / "out.csv",
            compare_path=tmp_path / "missing.csv",
        )

        assert report.diff is None
        assert any("not found" in warning for warning in report.warnings)


class TestFatalErrors:
    """Tests for errors that abort the run."""

    def test_malformed_root_leaves_store_untouched(self, tmp_path, write_export):
        db_path = tmp_path / "manga.sqlite3"
        run_conversion(write_export(export_of(place("Foo", "http://a.test/x")), "v1.json"), tmp_path / "v1.csv", db_path=db_path)
        before = db_path.read_bytes()

        with pytest.raises(BookmarkParseError):
            run_conversion(write_export("[1, 2", "broken.json"), tmp_path / "v2.csv", db_path=db_path)

        assert db_path.read_bytes() == before
        assert not (tmp_path / "v2.csv").exists()

    def test_malformed_root_creates_no_store(self, tmp_path, write_export):
        db_path = tmp_path / "manga.sqlite3"
        with pytest.raises(BookmarkParseError):
            run_conversion(write_export('{"type": "text/x-moz-place"}'), tmp_path / "out.csv", db_path=db_path)
        assert not db_path.exists()

    def test_missing_input(self, tmp_path):
        with pytest.raises(BookmarkParseError, match="not found"):
            run_conversion(tmp_path / "missing.json", tmp_path / "out.csv")

    def test_unwritable_output(self, tmp_path, write_export):
        path = write_export(export_of(place("Foo", "http://a.test/x")))
        with pytest.raises(BookmarkIngestError, match="Cannot write CSV"):
            run_conversion(path, tmp_path / "no-such-dir" / "out.csv")
