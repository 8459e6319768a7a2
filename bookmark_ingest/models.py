"""
Bookmark Ingest - Record Model

The canonical record tracked across runs, with its validation rules.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .urls import normalize_url, validate_url

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"
TAG_DELIMITER = ";"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_WHITESPACE = re.compile(r"\s+")


def millis_to_timestamp(millis: int) -> str:
    """Format epoch milliseconds as a UTC "YYYY-MM-DDTHH:MM:SS" string"""
    return (EPOCH + timedelta(milliseconds=millis)).strftime(TIMESTAMP_FORMAT)


def timestamp_to_millis(value: str) -> int:
    """Parse a "YYYY-MM-DDTHH:MM:SS" string (UTC) into epoch milliseconds"""
    parsed = datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    return (parsed - EPOCH) // timedelta(milliseconds=1)


def normalize_tag(tag: str) -> str:
    """Strip the hashtag marker and characters that collide with the tag delimiter"""
    tag = tag.strip().lstrip("#")
    tag = tag.replace(TAG_DELIMITER, " ").replace(",", " ")
    return _WHITESPACE.sub("-", tag.strip())


def normalize_tags(tags: Iterable[str]) -> list[str]:
    """
    Normalize a tag sequence.

    Duplicates are removed case-insensitively; the first-seen casing and
    the original order are kept.
    """
    seen = set()
    result = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        tag = normalize_tag(tag)
        key = tag.casefold()
        if not tag or key in seen:
            continue
        seen.add(key)
        result.append(tag)
    return result


class Record(BaseModel):
    """One tracked bookmark entry"""
    id: int = Field(default=0, ge=0, description="Store primary key, 0 when unassigned")
    title: str
    possible_title_romanized: Optional[str] = None
    url: str
    possible_url_with_chapter: Optional[str] = None
    possible_chapter: Optional[str] = None
    possible_last_update: Optional[str] = None
    possible_last_update_millis: Optional[int] = None
    possible_notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    possible_my_anime_list: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _require_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value

    @field_validator("url")
    @classmethod
    def _require_url(cls, value: str) -> str:
        return validate_url(value)

    @field_validator(
        "possible_title_romanized",
        "possible_url_with_chapter",
        "possible_chapter",
        "possible_last_update",
        "possible_notes",
        "possible_my_anime_list",
        mode="before",
    )
    @classmethod
    def _empty_to_none(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("possible_last_update_millis", mode="before")
    @classmethod
    def _blank_millis(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(TAG_DELIMITER)
        return normalize_tags(value)

    @model_validator(mode="after")
    def _sync_last_update(self) -> "Record":
        text = self.possible_last_update
        millis = self.possible_last_update_millis

        if text is not None:
            try:
                parsed = timestamp_to_millis(text)
            except ValueError:
                raise ValueError(f"last update {text!r} is not YYYY-MM-DDTHH:MM:SS")
            if millis is None:
                self.possible_last_update_millis = parsed
            elif millis_to_timestamp(millis) != text:
                raise ValueError(
                    f"last update {text!r} disagrees with millis {millis}"
                )
        elif millis is not None:
            self.possible_last_update = millis_to_timestamp(millis)

        return self

    @property
    def url_key(self) -> str:
        """Normalized URL this record is identified by"""
        return normalize_url(self.url)

    def with_id(self, record_id: int) -> "Record":
        """Copy of this record carrying a store id"""
        return self.model_copy(update={"id": record_id})


FIELD_NAMES = list(Record.model_fields)
OPTIONAL_FIELDS = [
    name for name in FIELD_NAMES
    if name.startswith("possible_")
]
