"""
I/O utilities and artifact management.

Provides path helpers, atomic writes, and the layout of the export workspace.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pydantic import BaseModel


# ============================================================
# Export Workspace Layout
# ============================================================
# Intermediate artifacts of one export run, relative to its workspace

ARTIFACT_NAMES = {
    "frames_dir": "frames",
    "audio_source": "source_audio",
    "video": "video.mp4",
    "audio": "audio.m4a",
    "output": "out.mp4",
}

# Frame naming pattern: frame_XXXXX.png
FRAME_PATTERN = "frame_{index:05d}.{ext}"
# The same pattern as understood by ffmpeg's image2 demuxer
FRAME_GLOB = "frame_%05d.{ext}"

# Timing file naming pattern
TIMINGS_PATTERN = "timings_{reader_id}_part-{collection}.json"


# ============================================================
# Path Helpers
# ============================================================


def ensure_dir(path: Path) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to create

    Returns:
        The same path (for chaining)
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def artifact_path(workspace: Path, kind: str) -> Path:
    """
    Get the path to a specific artifact in the export workspace.

    Args:
        workspace: The export run's working directory
        kind: Artifact type (e.g., "frames_dir", "video", "audio")

    Returns:
        Full path to the artifact

    Raises:
        KeyError: If kind is not a known artifact type
    """
    if kind not in ARTIFACT_NAMES:
        raise KeyError(f"Unknown artifact kind: {kind}. Valid: {list(ARTIFACT_NAMES.keys())}")
    return workspace / ARTIFACT_NAMES[kind]


def frame_path(frames_dir: Path, index: int, ext: str = "png") -> Path:
    """
    Get the path for a rendered frame image.

    Args:
        frames_dir: Directory containing frames
        index: 0-based frame index
        ext: Image extension

    Returns:
        Full path to the frame image
    """
    return frames_dir / FRAME_PATTERN.format(index=index, ext=ext)


def exists_nonempty(path: Path) -> bool:
    """
    Check if a file exists and is non-empty.

    Args:
        path: File path to check

    Returns:
        True if file exists and has content
    """
    return path.exists() and path.stat().st_size > 0


def safe_name(value: str) -> str:
    """
    Convert an identifier to a filesystem-safe name.

    Args:
        value: Arbitrary identifier (e.g. a reader id)

    Returns:
        Name with only alphanumeric, underscore, and hyphen
    """
    return "".join(c if c.isalnum() or c in "_-" else "_" for c in value)


def timings_filename(reader_id: str, collection_number: int) -> str:
    """File name under which a reader's timings for a part are stored."""
    return TIMINGS_PATTERN.format(reader_id=safe_name(reader_id), collection=collection_number)


# ============================================================
# Atomic Write Operations
# ============================================================


def atomic_write_text(path: Path, text: str, encoding: str = "utf-8") -> None:
    """
    Atomically write text to a file.

    Writes to a temp file first, then renames to avoid partial writes.

    Args:
        path: Destination file path
        text: Text content to write
        encoding: Text encoding
    """
    ensure_dir(path.parent)

    # Temp file in the same directory keeps the rename on one filesystem
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(text)
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def atomic_write_json(path: Path, data: Any, indent: int = 2) -> None:
    """
    Atomically write JSON data to a file.

    Args:
        path: Destination file path
        data: JSON-serializable data
        indent: JSON indentation level
    """
    text = json.dumps(data, ensure_ascii=False, indent=indent)
    atomic_write_text(path, text)


# ============================================================
# Read Operations
# ============================================================


def load_json(path: Path) -> Any:
    """
    Load JSON data from a file.

    Args:
        path: File path to read

    Returns:
        Parsed JSON data
    """
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def save_model(path: Path, model: BaseModel, indent: int = 2) -> None:
    """
    Save a Pydantic model to a JSON file using its external field names.

    Args:
        path: Destination file path
        model: Pydantic model instance
        indent: JSON indentation level
    """
    atomic_write_json(path, model.model_dump(mode="json", by_alias=True), indent=indent)
