"""
Text retrieval for one part of the source.

Fetches the source page over HTTP and hands the markup to the parser. Only
network/upstream failures are errors; an unrecognizable page yields an empty
collection.
"""

from __future__ import annotations

import logging

import requests

from dalail.parser import parse_collection_html
from dalail.schema import Collection
from dalail.segments import MAX_COLLECTION, MIN_COLLECTION, is_valid_collection

logger = logging.getLogger(__name__)

SOURCE_BASE = "https://www.dalailalkhayrat.com/parts.php?part="

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; DalailReelsMaker/1.0)",
    "Accept": "text/html",
}


class InvalidCollectionError(ValueError):
    """Collection number outside the supported range."""

    def __init__(self, collection_number: object):
        super().__init__(
            f"Invalid part number: {collection_number!r} "
            f"(expected {MIN_COLLECTION}..{MAX_COLLECTION})"
        )
        self.collection_number = collection_number


class RetrievalError(Exception):
    """Error fetching source text or audio from upstream."""

    def __init__(
        self,
        message: str,
        collection_number: int | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.collection_number = collection_number
        self.status_code = status_code


def collection_title(collection_number: int) -> str:
    """Display title of a part."""
    return f"الحزب {collection_number}"


def source_url(collection_number: int, base_url: str = SOURCE_BASE) -> str:
    """URL of the source page for a part."""
    return f"{base_url}{collection_number}"


def fetch_collection(
    collection_number: int,
    *,
    base_url: str = SOURCE_BASE,
    timeout: float = 20.0,
    session: requests.Session | None = None,
) -> Collection:
    """
    Fetch and segment one part.

    Args:
        collection_number: Part number (1..8)
        base_url: Source URL prefix; the part number is appended
        timeout: Request timeout in seconds
        session: Optional requests session (shared connection pool)

    Returns:
        Collection with freshly parsed sentences

    Raises:
        InvalidCollectionError: If the part number is out of range
        RetrievalError: If the request fails or upstream returns non-2xx
    """
    if isinstance(collection_number, bool) or not isinstance(collection_number, int):
        raise InvalidCollectionError(collection_number)
    if not is_valid_collection(collection_number):
        raise InvalidCollectionError(collection_number)

    url = source_url(collection_number, base_url)
    http = session or requests

    logger.info(f"Fetching part {collection_number}: {url}")
    try:
        response = http.get(url, headers=DEFAULT_HEADERS, timeout=timeout)
    except requests.RequestException as e:
        raise RetrievalError(
            f"Failed to fetch source for part {collection_number}: {e}",
            collection_number=collection_number,
        ) from e

    if not response.ok:
        raise RetrievalError(
            f"Failed to fetch source for part {collection_number}: HTTP {response.status_code}",
            collection_number=collection_number,
            status_code=response.status_code,
        )

    sentences = parse_collection_html(response.text, collection_number)
    return Collection(
        number=collection_number,
        title=collection_title(collection_number),
        sentences=sentences,
        source_url=url,
    )
