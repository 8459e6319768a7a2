"""
Bookmark Ingest - Field Normalizer

Turns bookmark leaves into validated records: URL validation, the chapter
split, romanized titles, timestamps and tags.
"""

import logging
import re
from typing import Iterable, Optional

from pydantic import ValidationError

from .errors import InvalidRecordError
from .firefox_parser import Bookmark
from .models import Record, millis_to_timestamp, normalize_tags
from .romanizer import BaseRomanizer, needs_romanization
from .urls import split_chapter, validate_url

logger = logging.getLogger(__name__)

HASHTAG_PATTERN = re.compile(r"(?<!\S)#(\w[\w-]*)")


def extract_hashtags(text: Optional[str]) -> list[str]:
    """Find "#tag" tokens in free text"""
    if not text:
        return []
    return HASHTAG_PATTERN.findall(text)


class FieldNormalizer:
    """
    Builds Record candidates from Bookmark leaves.

    Rejected records raise InvalidRecordError. Problems with a single
    optional field are only recorded in ``warnings``.
    """

    def __init__(
        self,
        romanizer: Optional[BaseRomanizer] = None,
        romanize_titles: bool = True,
        hashtags: bool = True,
    ):
        self.romanizer = romanizer
        self.romanize_titles = romanize_titles
        self.hashtags = hashtags
        self.warnings: list[str] = []
        self._missing_romanizer_reported = False

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def normalize(self, bookmark: Bookmark) -> Record:
        """
        Normalize one bookmark leaf.

        Args:
            bookmark: Leaf produced by the tree extractor

        Returns:
            A validated Record with id 0

        Raises:
            InvalidRecordError: If the URL is invalid or the record fails validation
        """
        label = bookmark.title or bookmark.uri or "(untitled)"

        try:
            url = validate_url(bookmark.uri or "")
        except ValueError as e:
            raise InvalidRecordError(f"Invalid URL for {label!r}: {e}", url=bookmark.uri) from e

        series_url, url_with_chapter, chapter = split_chapter(url)

        title = (bookmark.title or "").strip()
        if not title:
            self._warn(f"Bookmark {url} has no title, using its URL")
            title = url

        last_update_millis = self._last_update_millis(bookmark, label)

        try:
            return Record(
                title=title,
                possible_title_romanized=self._romanize(title),
                url=series_url,
                possible_url_with_chapter=url_with_chapter,
                possible_chapter=chapter,
                possible_last_update_millis=last_update_millis,
                possible_notes=bookmark.notes,
                tags=self._tags(bookmark, title),
            )
        except ValidationError as e:
            reason = "; ".join(error["msg"] for error in e.errors())
            raise InvalidRecordError(f"Invalid record {label!r}: {reason}", url=url) from e

    def normalize_all(self, bookmarks: Iterable[Bookmark]) -> tuple[list[Record], list[str]]:
        """
        Normalize many leaves, collecting rejections instead of raising.

        Returns:
            (records, rejection messages)
        """
        records = []
        rejected = []
        for bookmark in bookmarks:
            try:
                records.append(self.normalize(bookmark))
            except InvalidRecordError as e:
                logger.warning(str(e))
                rejected.append(str(e))
        return records, rejected

    def _romanize(self, title: str) -> Optional[str]:
        if not self.romanize_titles or not needs_romanization(title):
            return None

        if self.romanizer is None:
            if not self._missing_romanizer_reported:
                self._warn("No romanizer available, romanized titles left empty")
                self._missing_romanizer_reported = True
            return None

        try:
            return self.romanizer.romanize(title)
        except Exception as e:
            self._warn(f"Romanizing {title!r} failed: {e}")
            return None

    def _last_update_millis(self, bookmark: Bookmark, label: str) -> Optional[int]:
        # Firefox stores microseconds since the epoch
        for micros in (bookmark.last_modified, bookmark.date_added):
            if micros is None:
                continue
            millis = micros // 1000
            try:
                millis_to_timestamp(millis)
            except (OverflowError, ValueError):
                self._warn(f"Ignoring out of range timestamp {micros} on {label!r}")
                continue
            return millis
        return None

    def _tags(self, bookmark: Bookmark, title: str) -> list[str]:
        tags = []
        if bookmark.tags:
            tags.extend(bookmark.tags.split(","))
        if self.hashtags:
            tags.extend(extract_hashtags(title))
            tags.extend(extract_hashtags(bookmark.notes))
        return normalize_tags(tags)
