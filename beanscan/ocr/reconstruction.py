"""
BeanScan Backend - Annotation Reconstructor
=============================================

What:  Rebuilds plain-text lines and blocks from the Vision annotation tree.
How:   Walks pages → blocks → paragraphs → words → symbols in document order.
       Symbol text is concatenated into words; words are appended to an
       in-progress line; detected break types decide where spaces go and
       where lines end.

Break handling:
    SPACE, SURE_SPACE         → append a trailing space, keep the line open
    LINE_BREAK                → close the line
    EOL_SURE_SPACE            → append a space, then close the line

Words whose reconstructed text is empty are skipped together with their
break signal. A response with no fullTextAnnotation yields empty collections;
finding nothing is not an error at this level.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from beanscan.ocr.models import Block, Line

SPACE_BREAKS = frozenset({"SPACE", "SURE_SPACE", "EOL_SURE_SPACE"})
LINE_BREAKS = frozenset({"LINE_BREAK", "EOL_SURE_SPACE"})


def average(values: Iterable[float]) -> Optional[float]:
    """Arithmetic mean, or None for an empty input (unknown, not zero)."""
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)


def _confidence(value: Any) -> Optional[float]:
    # bool is an int subclass; NaN and out-of-range values count as absent
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        return None
    return float(value)


def _children(node: Any, key: str) -> List[Any]:
    if not isinstance(node, Mapping):
        return []
    items = node.get(key)
    return items if isinstance(items, list) else []


def _break_type(symbol: Mapping[str, Any]) -> Optional[str]:
    prop = symbol.get("property")
    if not isinstance(prop, Mapping):
        return None
    detected = prop.get("detectedBreak")
    if not isinstance(detected, Mapping):
        return None
    return detected.get("type") or None


@dataclass(frozen=True)
class WordInfo:
    text: str
    break_type: Optional[str]
    confidence: Optional[float]


def build_word(word: Any) -> WordInfo:
    """
    Collapse a word's symbols into text, a break type and a confidence.

    Confidence is the mean of the symbol confidences, falling back to the
    word-level confidence when no symbol carries one. The break type is the
    one on the last symbol that has any.
    """
    text_parts: List[str] = []
    break_type: Optional[str] = None
    confidences: List[float] = []

    for symbol in _children(word, "symbols"):
        if not isinstance(symbol, Mapping):
            continue
        if symbol.get("text"):
            text_parts.append(str(symbol["text"]))
        value = _confidence(symbol.get("confidence"))
        if value is not None:
            confidences.append(value)
        detected = _break_type(symbol)
        if detected:
            break_type = detected

    confidence = average(confidences)
    if confidence is None and isinstance(word, Mapping):
        confidence = _confidence(word.get("confidence"))

    return WordInfo(text="".join(text_parts), break_type=break_type, confidence=confidence)


@dataclass
class _LineAccumulator:
    text: str = ""
    confidences: List[float] = field(default_factory=list)

    def append_word(self, word: WordInfo) -> None:
        if self.text and not self.text.endswith(" "):
            self.text += " "
        self.text += word.text
        if word.confidence is not None:
            self.confidences.append(word.confidence)
        if word.break_type in SPACE_BREAKS:
            self.text += " "

    def freeze(self) -> Optional[Line]:
        text = self.text.strip()
        if not text:
            return None
        return Line(text=text, confidence=average(self.confidences))


def _reconstruct_block(block: Any) -> List[Line]:
    block_lines: List[Line] = []
    current = _LineAccumulator()

    for paragraph in _children(block, "paragraphs"):
        for word in _children(paragraph, "words"):
            info = build_word(word)
            if not info.text:
                continue

            current.append_word(info)

            if info.break_type in LINE_BREAKS:
                line = current.freeze()
                if line is not None:
                    block_lines.append(line)
                current = _LineAccumulator()

    line = current.freeze()
    if line is not None:
        block_lines.append(line)
    return block_lines


def _first_response(vision_response: Any) -> Dict[str, Any]:
    responses = _children(vision_response, "responses")
    first = responses[0] if responses else None
    return first if isinstance(first, dict) else {}


def extract_blocks_and_lines(vision_response: Any) -> Tuple[List[Block], List[Line]]:
    """
    Reconstruct blocks and the flattened line list, both in reading order.

    Returns:
        (blocks, lines): lines is the concatenation of every block's lines
    """
    blocks: List[Block] = []
    lines: List[Line] = []

    annotation = _first_response(vision_response).get("fullTextAnnotation")
    pages = _children(annotation, "pages")
    if not pages:
        return blocks, lines

    for page in pages:
        for block in _children(page, "blocks"):
            block_lines = _reconstruct_block(block)
            lines.extend(block_lines)
            blocks.append(
                Block(
                    text="\n".join(line.text for line in block_lines),
                    confidence=average(
                        line.confidence for line in block_lines if line.confidence is not None
                    ),
                    lines=tuple(block_lines),
                )
            )

    return blocks, lines


def extract_raw_text(vision_response: Any) -> str:
    """Engine full text, else the first textAnnotation description, else ''."""
    response = _first_response(vision_response)

    annotation = response.get("fullTextAnnotation")
    if isinstance(annotation, Mapping) and annotation.get("text"):
        return str(annotation["text"])

    text_annotations = _children(response, "textAnnotations")
    if text_annotations and isinstance(text_annotations[0], Mapping):
        description = text_annotations[0].get("description")
        if description:
            return str(description)

    return ""
