"""
Bookmark Ingest - Title Romanization

Romanizers turn titles written in non-Latin scripts (mostly Japanese) into
a Latin-script reading. The normalizer only depends on BaseRomanizer, so
tests can substitute a fake.
"""

import logging
import unicodedata
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)

# Last code point of Latin Extended-B
LATIN_MAX = 0x024F


def needs_romanization(text: str) -> bool:
    """True when the text contains a letter outside the Latin ranges"""
    return any(
        ord(ch) > LATIN_MAX and unicodedata.category(ch).startswith("L")
        for ch in text
    )


class BaseRomanizer(ABC):
    """
    Abstract base class for title romanizers.

    Implementations return None when they have nothing useful to offer
    and raise on failure; the caller decides how failures are reported.
    """

    name: str = "base"

    @abstractmethod
    def romanize(self, text: str) -> Optional[str]:
        """
        Produce a Latin-script reading of the text.

        Args:
            text: Title possibly containing kanji/kana

        Returns:
            The romanized text, or None
        """
        pass


class KakasiRomanizer(BaseRomanizer):
    """Hepburn romanization backed by pykakasi"""

    name = "pykakasi"

    def __init__(self):
        import pykakasi

        self._kakasi = pykakasi.kakasi()

    def romanize(self, text: str) -> Optional[str]:
        words = []
        for item in self._kakasi.convert(text):
            word = item.get("hepburn", "").strip()
            if word:
                words.append(word)
        return " ".join(words) or None


def get_default_romanizer() -> Optional[BaseRomanizer]:
    """
    Create the pykakasi romanizer.

    Returns None (with a warning) when pykakasi cannot be loaded, in which
    case romanized titles are simply left empty.
    """
    try:
        return KakasiRomanizer()
    except ImportError as e:
        logger.warning(f"Title romanization unavailable: {e}")
        return None
