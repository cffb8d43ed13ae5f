"""
Reader reference data.

Readers are static configuration (YAML or JSON), loaded once.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

import yaml

from dalail.io import safe_name
from dalail.schema import Reader

logger = logging.getLogger(__name__)


class ReaderNotFoundError(KeyError):
    """No reader with the requested id."""


def parse_readers(data: Any) -> list[Reader]:
    """
    Parse reader records.

    Accepts a list of reader mappings or a mapping with a ``readers`` list.
    """
    if isinstance(data, dict):
        data = data.get("readers", [])
    if not isinstance(data, list):
        raise ValueError("Reader data must be a list of readers")

    readers = [Reader.model_validate(item) for item in data]
    ids = [r.id for r in readers]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ValueError(f"Duplicate reader ids: {duplicates}")

    # Timing files are named after safe_name(id)
    by_file: dict[str, str] = {}
    for reader in readers:
        other = by_file.setdefault(safe_name(reader.id), reader.id)
        if other != reader.id:
            raise ValueError(f"Reader ids {other!r} and {reader.id!r} map to the same timing file")
    return readers


def load_readers(path: Path | str) -> list[Reader]:
    """
    Load readers from a YAML or JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Readers file not found: {path}")

    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    readers = parse_readers(data or [])
    logger.info(f"Loaded {len(readers)} readers from: {path}")
    return readers


def find_reader(readers: Iterable[Reader], reader_id: str) -> Reader:
    """
    Look up a reader by id.

    Raises:
        ReaderNotFoundError: If no reader has that id
    """
    for reader in readers:
        if reader.id == reader_id:
            return reader
    raise ReaderNotFoundError(reader_id)
