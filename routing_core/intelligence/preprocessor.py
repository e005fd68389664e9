"""Request preprocessing: normalization, language and content flags."""

import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Language(str, Enum):
    """Dominant script of a request."""
    EN = "en"
    KO = "ko"
    MIXED = "mixed"


KOREAN_THRESHOLD = 0.30
ENGLISH_THRESHOLD = 0.05

_WHITESPACE_RE = re.compile(r"\s+")
_TOKEN_RE = re.compile(r"\w+")
_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
_INDENTED_LINE_RE = re.compile(r"^(?: {4}|\t)[ \t]*\S", re.MULTILINE)


@dataclass
class PreprocessedRequest:
    """Normalized request plus cheap content signals."""

    normalized: str
    language: Language
    tokens: list[str] = field(default_factory=list)
    has_code: bool = False
    has_url: bool = False
    estimated_word_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "normalized": self.normalized,
            "language": self.language.value,
            "tokens": list(self.tokens),
            "has_code": self.has_code,
            "has_url": self.has_url,
            "estimated_word_count": self.estimated_word_count,
        }


def is_hangul(char: str) -> bool:
    """Check whether a character is a Hangul syllable or jamo."""
    code = ord(char)
    return (
        0xAC00 <= code <= 0xD7A3  # syllables
        or 0x1100 <= code <= 0x11FF  # jamo
        or 0x3130 <= code <= 0x318F  # compatibility jamo
    )


def _is_countable(char: str) -> bool:
    if char.isspace():
        return False
    category = unicodedata.category(char)
    return not (category.startswith("P") or category.startswith("S"))


def detect_language(text: str) -> Language:
    """Decide the dominant language from the share of Hangul characters.

    Whitespace, punctuation and symbols are ignored. Text with nothing left
    to count is treated as English.
    """
    countable = [c for c in text if _is_countable(c)]
    if not countable:
        return Language.EN

    ratio = sum(1 for c in countable if is_hangul(c)) / len(countable)
    if ratio > KOREAN_THRESHOLD:
        return Language.KO
    if ratio < ENGLISH_THRESHOLD:
        return Language.EN
    return Language.MIXED


def normalize(text: str) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return _WHITESPACE_RE.sub(" ", text.strip()).lower()


def preprocess(text: str) -> PreprocessedRequest:
    """Normalize a raw request and flag its language and content.

    Args:
        text: Raw request text

    Returns:
        PreprocessedRequest
    """
    text = text or ""
    normalized = normalize(text)
    tokens = _TOKEN_RE.findall(normalized)

    return PreprocessedRequest(
        normalized=normalized,
        language=detect_language(text),
        tokens=tokens,
        has_code="```" in text or bool(_INDENTED_LINE_RE.search(text)),
        has_url=bool(_URL_RE.search(text)),
        estimated_word_count=len(tokens),
    )
