"""
BeanScan Backend - OCR Text Cleaner
=====================================

What:  Normalizes reconstructed lines, drops OCR noise, removes duplicates.
How:   Pure functions, deterministic for identical input. Cleaning an already
       cleaned list returns it unchanged.

Per-line normalization (in order):
    1. Unicode NFKC
    2. Typographic quotes and dashes → ASCII equivalents
    3. Strip C0 control characters and DEL (tab, newline, VT, FF, CR excluded)
    4. Collapse whitespace runs to a single space
    5. Trim

Artifact rejection (any one is enough):
    - empty after normalization
    - punctuation/symbols only
    - a run of 5+ identical characters ("-----", "||||||")
    - alpha ratio < 0.2 and fewer than 2 digits
    - symbol ratio > 0.6

Deduplication key: diacritic-stripped, case-folded line. First occurrence wins.
"""

import re
import unicodedata
from typing import Iterable, List, NamedTuple

_QUOTE_TRANSLATION = str.maketrans(
    {
        "“": '"',
        "”": '"',
        "„": '"',
        "‘": "'",
        "’": "'",
        "‐": "-",
        "‑": "-",
        "‒": "-",
        "–": "-",
        "—": "-",
    }
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0e-\x1f\x7f]")
_WHITESPACE_RUN = re.compile(r"\s+")
_NON_WORD_ONLY = re.compile(r"^[\W_]+$")
_REPEATED_RUN = re.compile(r"(.)\1{4,}")
_ALPHA = re.compile(r"[A-Za-zÀ-ž]")
_DIGIT = re.compile(r"[0-9]")

# Empirically tuned thresholds; keep literal for compatibility.
MIN_ALPHA_RATIO = 0.2
MIN_DIGITS_FOR_NUMERIC = 2
MAX_SYMBOL_RATIO = 0.6


class CleanedText(NamedTuple):
    lines: List[str]
    text: str
    normalized_text: str


def normalize_unicode(value: str) -> str:
    return unicodedata.normalize("NFKC", value)


def _is_diacritic(ch: str) -> bool:
    return (
        unicodedata.combining(ch) != 0
        or unicodedata.category(ch) == "Sk"
        or "\u02b0" <= ch <= "\u02ff"
        or ch == "\u00b7"
    )


def strip_diacritics(value: str) -> str:
    """
    Remove diacritics after canonical decomposition ("Čerešňa" → "Ceresna").

    Spacing marks such as ^ ` ¨ ´ and modifier letters are dropped along with
    combining marks.
    """
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not _is_diacritic(ch))


def normalize_line(line: str) -> str:
    value = normalize_unicode(line).translate(_QUOTE_TRANSLATION)
    value = _CONTROL_CHARS.sub("", value)
    value = _WHITESPACE_RUN.sub(" ", value)
    return value.strip()


def is_artifact_line(line: str) -> bool:
    """True when a normalized line looks like OCR noise rather than text."""
    if not line:
        return True
    if _NON_WORD_ONLY.match(line):
        return True
    if _REPEATED_RUN.search(line):
        return True

    length = len(line)
    alpha_count = len(_ALPHA.findall(line))
    digit_count = len(_DIGIT.findall(line))
    symbol_count = length - alpha_count - digit_count

    if alpha_count / length < MIN_ALPHA_RATIO and digit_count < MIN_DIGITS_FOR_NUMERIC:
        return True
    return symbol_count / length > MAX_SYMBOL_RATIO


def dedupe_key(line: str) -> str:
    return strip_diacritics(line).casefold()


def clean_lines(lines: Iterable[str]) -> List[str]:
    """Normalize, filter and deduplicate raw line texts, preserving order."""
    seen = set()
    cleaned: List[str] = []

    for line in lines:
        normalized = normalize_line(line)
        if is_artifact_line(normalized):
            continue

        key = dedupe_key(normalized)
        if key in seen:
            continue

        seen.add(key)
        cleaned.append(normalized)

    return cleaned


def clean_text(lines: Iterable[str]) -> CleanedText:
    """Clean lines and derive the joined and diacritic-stripped text artifacts."""
    cleaned = clean_lines(lines)
    text = "\n".join(cleaned)
    return CleanedText(lines=cleaned, text=text, normalized_text=strip_diacritics(text))
