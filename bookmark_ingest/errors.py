"""
Bookmark Ingest - Error Types

Fatal errors abort the run; InvalidRecordError is local to one record and
is collected rather than raised out of the pipeline.
"""


class BookmarkIngestError(Exception):
    """Base class for all ingest errors"""


class BookmarkParseError(BookmarkIngestError):
    """The input export could not be read or is not a bookmark tree"""


class StoreError(BookmarkIngestError):
    """The record store could not be opened, created or written"""


class InvalidRecordError(BookmarkIngestError):
    """A single bookmark could not be turned into a valid record"""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url
