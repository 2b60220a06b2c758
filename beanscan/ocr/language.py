"""
BeanScan Backend - Language Detector
======================================

What:  Picks sk, cs or en for the cleaned OCR text.
How:   Counts characters of a per-language class. Caller hints softly bias the
       result: every class NOT hinted has its score multiplied by 0.6, so a
       strong unhinted signal can still win. Ties go to the earlier class.
"""

import re
from typing import Iterable

from beanscan.ocr.cleaning import normalize_unicode

# Declaration order is the tie-break order.
LANGUAGE_PATTERNS = (
    ("sk", re.compile(r"[áäčďéíĺľňóôŕšťúýž]", re.IGNORECASE)),
    ("cs", re.compile(r"[áčďéěíňóřšťúůýž]", re.IGNORECASE)),
    ("en", re.compile(r"[a-z]", re.IGNORECASE)),
)

UNHINTED_WEIGHT = 0.6


def detect_language(text: str, language_hints: Iterable[str] = ()) -> str:
    """
    Return the best-scoring language code. Never fails.

    All-zero scores resolve to the first declared class.
    """
    normalized = normalize_unicode(text)
    hints = {hint.lower() for hint in language_hints}

    best_code, best_score = LANGUAGE_PATTERNS[0][0], -1.0
    for code, pattern in LANGUAGE_PATTERNS:
        score = float(len(pattern.findall(normalized)))
        if hints and code not in hints:
            score *= UNHINTED_WEIGHT
        if score > best_score:
            best_code, best_score = code, score

    return best_code
