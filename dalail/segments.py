"""
Stable sentence identifiers.

Ids are derived purely from (collection, index) so timings authored against
one fetch of a part stay valid for any later fetch with the same indices.
"""

from __future__ import annotations

import re

MIN_COLLECTION = 1
MAX_COLLECTION = 8

# Zero-padding keeps lexicographic order equal to index order below 1000
INDEX_WIDTH = 3

_ID_RE = re.compile(r"^p(\d+)s(\d+)$")


def is_valid_collection(number: int) -> bool:
    """Check a collection number is within the supported range."""
    return MIN_COLLECTION <= number <= MAX_COLLECTION


def sentence_id(collection: int, index: int) -> str:
    """
    Build the id of a sentence.

    Args:
        collection: Collection (part) number
        index: 1-based sentence index

    Returns:
        Identifier such as ``p1s007``
    """
    return f"p{collection}s{index:0{INDEX_WIDTH}d}"


def parse_sentence_id(value: str) -> tuple[int, int]:
    """
    Resolve a sentence id back to (collection, index).

    Raises:
        ValueError: If the id is malformed
    """
    m = _ID_RE.match(value)
    if not m:
        raise ValueError(f"Invalid sentence id: {value!r}")
    return int(m.group(1)), int(m.group(2))
