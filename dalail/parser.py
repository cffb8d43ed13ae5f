"""
Source page segmentation.

Turns the raw markup of one part into an ordered list of sentences:

1. Extract visible text as trimmed, whitespace-normalized lines
2. Split lines into blocks opened by numbered markers ("12 ▶")
3. Pick the longest Arabic line of each block as the sentence text
4. Attach the first French (else English) line as the translation

Absence of structure is an expected outcome for scraped content, so nothing in
here raises: malformed markup degrades to fewer or zero sentences.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Sequence

from bs4 import BeautifulSoup

from dalail.classify import LineClassifier, LineKind, ScriptRatioClassifier
from dalail.schema import Sentence
from dalail.segments import sentence_id

logger = logging.getLogger(__name__)

# "<number> ▶" with an optional text-presentation selector after the glyph
BLOCK_MARKER_RE = re.compile(r"^(\d+)\s*▶")

_WS_RE = re.compile(r"\s+")


@dataclass
class Block:
    """Lines between two block markers."""

    number: int
    lines: list[str] = field(default_factory=list)


# ============================================================
# Line Extraction
# ============================================================


def extract_lines(html: str) -> list[str]:
    """
    Extract visible text lines in reading order.

    Args:
        html: Raw page markup

    Returns:
        Non-empty lines with internal whitespace collapsed
    """
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    root = soup.body or soup
    raw_text = root.get_text()

    lines = []
    for raw in raw_text.splitlines():
        line = _WS_RE.sub(" ", raw).strip()
        if line:
            lines.append(line)
    return lines


def split_blocks(lines: Sequence[str]) -> list[Block]:
    """
    Group lines into numbered blocks.

    Each marker line opens a new block and closes the previous one. Lines
    before the first marker are discarded.
    """
    blocks: list[Block] = []
    current: Block | None = None

    for line in lines:
        m = BLOCK_MARKER_RE.match(line)
        if m:
            if current is not None:
                blocks.append(current)
            current = Block(number=int(m.group(1)))
            continue
        if current is None:
            continue
        current.lines.append(line)

    if current is not None:
        blocks.append(current)
    return blocks


# ============================================================
# Block Assembly
# ============================================================


def pick_primary_text(lines: Sequence[str], classifier: LineClassifier) -> str | None:
    """Longest primary-language line; the first one wins ties."""
    best: str | None = None
    for line in lines:
        if classifier.classify(line) is not LineKind.PRIMARY_LANGUAGE:
            continue
        if best is None or len(line) > len(best):
            best = line
    return best


def pick_translation(lines: Sequence[str], classifier: LineClassifier) -> str | None:
    """
    First secondary-A line, else first secondary-B line, else None.

    Every line is a candidate, including lines already taken as primary text.
    """
    for wanted in (LineKind.SECONDARY_LANGUAGE_A, LineKind.SECONDARY_LANGUAGE_B):
        for line in lines:
            if classifier.matches(line, wanted):
                return line
    return None


def build_sentences(
    blocks: Sequence[Block],
    collection_number: int,
    classifier: LineClassifier | None = None,
) -> list[Sentence]:
    """
    Turn blocks into sentences with contiguous indices.

    Blocks without a primary-language line are skipped and do not consume an
    index.
    """
    classifier = classifier or ScriptRatioClassifier()
    sentences: list[Sentence] = []

    for block in blocks:
        text = pick_primary_text(block.lines, classifier)
        if text is None:
            logger.debug(f"Block {block.number}: no primary-language line, skipped")
            continue

        index = len(sentences) + 1
        sentences.append(
            Sentence(
                id=sentence_id(collection_number, index),
                index=index,
                text=text,
                translation=pick_translation(block.lines, classifier),
            )
        )

    return sentences


def parse_collection_html(
    html: str,
    collection_number: int,
    classifier: LineClassifier | None = None,
) -> list[Sentence]:
    """
    Parse the markup of one part into sentences.

    Args:
        html: Raw page markup
        collection_number: Part number used for sentence ids
        classifier: Line classifier (defaults to ScriptRatioClassifier)

    Returns:
        Ordered sentence list, empty if no recognizable structure was found
    """
    lines = extract_lines(html)
    blocks = split_blocks(lines)
    sentences = build_sentences(blocks, collection_number, classifier)

    logger.info(
        f"Part {collection_number}: {len(lines)} lines, {len(blocks)} blocks, "
        f"{len(sentences)} sentences"
    )
    return sentences
