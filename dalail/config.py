"""
Configuration loading.

``config.yaml`` is looked up in the current directory, then the project
directory. Values from the file are merged over ``get_default_config()``, so a
partial file only needs the keys it changes.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

from dalail.render import FontSet
from dalail.schema import RenderStyle
from dalail.source import SOURCE_BASE

logger = logging.getLogger(__name__)

PROJECT_DIR = Path(__file__).resolve().parent.parent


def get_default_config() -> dict[str, Any]:
    """Return default configuration."""
    return {
        "source": {"base_url": SOURCE_BASE, "timeout": 20.0},
        "storage": {"timings_dir": "./data/timings"},
        "readers": {"path": "./data/readers.yaml"},
        "render": {
            "width": 1080,
            "height": 1920,
            "fps": 30,
            "font_size": 46,
            "line_height": 1.4,
            "text_color": "#F5D37D",
            "shadow_on": True,
            "shadow_strength": 35,
            "position": "center",
            "show_collection_label": True,
            "show_reader_name": True,
            "show_translation": False,
            "background_color": "#0E2A22",
            "background_image": None,
            "fonts": {"text": None, "label": None, "translation": None},
        },
        "export": {"output_dir": "./output", "work_dir": None, "download_timeout": 60.0},
        "ffmpeg": {"path": "ffmpeg", "timeout": 3600},
        "server": {"host": "127.0.0.1", "port": 8000},
        "processing": {"progress_bar": True},
    }


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path | str | None = None) -> dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        # Look for config.yaml in current directory or project directory
        candidates = [
            Path("config.yaml"),
            PROJECT_DIR / "config.yaml",
        ]
        for candidate in candidates:
            if candidate.exists():
                config_path = candidate
                break
        else:
            logger.warning("No config.yaml found, using defaults")
            return get_default_config()

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}

    if not isinstance(loaded, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    logger.info(f"Loaded config from: {config_path}")
    return merge_config(get_default_config(), loaded)


def render_style_from_config(config: dict[str, Any], **overrides: Any) -> RenderStyle:
    """Build a RenderStyle from the ``render`` section, applying overrides."""
    values = {k: v for k, v in config.get("render", {}).items() if k != "fonts"}
    values.update({k: v for k, v in overrides.items() if v is not None})
    return RenderStyle(**values)


def fonts_from_config(config: dict[str, Any]) -> FontSet:
    """Resolve fonts, preferring paths set under ``render.fonts``."""
    fonts = config.get("render", {}).get("fonts") or {}
    return FontSet.resolve(
        text=fonts.get("text"),
        label=fonts.get("label"),
        translation=fonts.get("translation"),
    )
