"""
Bookmark Ingest - URL Helpers

Validation, the normalized match key used for deduplication, and the
"-chapter-" split that separates a series URL from a chapter deep link.
"""

import re
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

DEFAULT_PORTS = {"http": 80, "https": 443}

# Schemes whose URLs may omit the host ("file:///home/u/doc.html")
HOSTLESS_SCHEMES = {"file"}

CHAPTER_MARKER = re.compile(r"-chapter-", re.IGNORECASE)


def validate_url(url: str) -> str:
    """
    Check that a URL is a well-formed absolute URL.

    Args:
        url: Raw URL string from the export

    Returns:
        The stripped URL

    Raises:
        ValueError: With a short reason when the URL is unusable
    """
    if not isinstance(url, str):
        raise ValueError(f"URL must be a string, got {type(url).__name__}")

    url = url.strip()
    if not url:
        raise ValueError("URL is empty")
    if any(ch.isspace() for ch in url):
        raise ValueError(f"URL contains whitespace: {url!r}")

    parts = urlsplit(url)
    if not parts.scheme:
        raise ValueError(f"not an absolute URL: {url!r}")

    if parts.netloc:
        if not parts.hostname:
            raise ValueError(f"URL has no host: {url!r}")
        try:
            parts.port
        except ValueError:
            raise ValueError(f"URL has an invalid port: {url!r}")
    elif parts.scheme.lower() in HOSTLESS_SCHEMES:
        if not parts.path.startswith("/") or not parts.path.strip("/"):
            raise ValueError(f"URL has no path: {url!r}")
    else:
        raise ValueError(f"not an absolute URL: {url!r}")

    return url


def normalize_url(url: str) -> str:
    """
    Build the key two URLs are compared by.

    Scheme and host are case-insensitive, default ports are dropped and an
    empty path becomes "/". Path, query and fragment stay case-sensitive.
    """
    url = url.strip()
    parts = urlsplit(url)
    try:
        port = parts.port
    except ValueError:
        return url

    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"

    netloc = host
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"
    if "@" in parts.netloc:
        userinfo = parts.netloc.rsplit("@", 1)[0]
        netloc = f"{userinfo}@{netloc}"

    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, parts.fragment))


def split_chapter(url: str) -> tuple[str, Optional[str], Optional[str]]:
    """
    Split a chapter link into its series URL and chapter label.

    "https://site/manga/foo-chapter-12-1/" becomes
    ("https://site/manga/foo/", "https://site/manga/foo-chapter-12-1/", "12.1").
    URLs without a "-chapter-" last segment come back unchanged with no
    chapter information.

    Returns:
        (series_url, url_with_chapter, chapter)
    """
    parts = urlsplit(url)
    segments = [segment for segment in parts.path.split("/") if segment]
    if not segments:
        return url, None, None

    pieces = CHAPTER_MARKER.split(segments[-1], maxsplit=1)
    if len(pieces) != 2 or not pieces[0] or not pieces[1]:
        return url, None, None

    series_slug, chapter = pieces
    path = "/" + "/".join(segments[:-1] + [series_slug]) + "/"
    series_url = urlunsplit((parts.scheme, parts.netloc, path, "", ""))

    return series_url, url, chapter.replace("-", ".")
