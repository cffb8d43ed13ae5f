#!/usr/bin/env python3
"""
Dalail al-Khayrat reel maker.

Turns a range of sentences of one part, recited by one reader, into a
vertical MP4 reel:
1. Fetch the part's text and segment it into sentences
2. Load the reader's saved sentence timings
3. Render frames of the selected range
4. Encode, trim the recitation audio and mux

Usage:
    python run_reel.py fetch 1
    python run_reel.py validate reader_a 1
    python run_reel.py export reader_a 1 --from 3 --to 5 -o reel.mp4
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from tqdm import tqdm

from dalail.config import fonts_from_config, load_config, render_style_from_config
from dalail.export import CancelToken, ExportCancelled, ExportError, ExportPipeline
from dalail.ffmpeg_utils import check_ffmpeg, get_media_info
from dalail.io import atomic_write_json, safe_name
from dalail.readers import find_reader, load_readers
from dalail.schema import Collection
from dalail.selection import PreconditionError, build_render_state
from dalail.source import fetch_collection
from dalail.timing import TimingStore, validate

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ============================================================
# Commands
# ============================================================


def _fetch(n: int, config: dict[str, Any]) -> Collection:
    source_cfg = config.get("source", {})
    return fetch_collection(
        n,
        base_url=source_cfg["base_url"],
        timeout=source_cfg.get("timeout", 20.0),
    )


def cmd_fetch(args: argparse.Namespace, config: dict[str, Any]) -> int:
    """Fetch a part and print or save its sentences."""
    collection = _fetch(args.part, config)
    data = collection.model_dump(mode="json", by_alias=True)

    if args.output:
        atomic_write_json(args.output, data)
        logger.info(f"Saved {collection.total} sentences to: {args.output}")
    else:
        print(json.dumps(data, ensure_ascii=False, indent=2))
    return 0


def cmd_validate(args: argparse.Namespace, config: dict[str, Any]) -> int:
    """Report timing violations of a reader for a part."""
    store = TimingStore(args.timings_dir or config["storage"]["timings_dir"])
    timing_set = store.read(args.reader, args.part)
    if timing_set is None:
        logger.error(f"No timings saved for {args.reader}, part {args.part}")
        return 1

    total = args.total if args.total is not None else _fetch(args.part, config).total
    violations = validate(timing_set, total)

    for v in violations:
        print(f"[{v.kind}] {v.message}")
    if violations:
        logger.warning(f"{len(violations)} violation(s) in {store.path_for(args.reader, args.part)}")
        return 1

    logger.info(f"{len(timing_set.items)} timings OK ({total} sentences)")
    return 0


def cmd_export(args: argparse.Namespace, config: dict[str, Any]) -> int:
    """Export a sentence range as an MP4 reel."""
    ffmpeg_cfg = config.get("ffmpeg", {})
    ffmpeg_path = ffmpeg_cfg.get("path", "ffmpeg")
    if not check_ffmpeg(ffmpeg_path):
        logger.error(f"ffmpeg not available at: {ffmpeg_path}")
        return 1

    readers = load_readers(args.readers or config["readers"]["path"])
    reader = find_reader(readers, args.reader)
    collection = _fetch(args.part, config)

    store = TimingStore(args.timings_dir or config["storage"]["timings_dir"])
    timing_set = store.read(reader.id, args.part)

    style = render_style_from_config(
        config,
        position=args.position,
        show_translation=True if args.translation else None,
        fps=args.fps,
    )
    to_index = args.to_index if args.to_index is not None else args.from_index
    state = build_render_state(collection, reader, timing_set, args.from_index, to_index, style)

    export_cfg = config.get("export", {})
    output = args.output or (
        Path(export_cfg.get("output_dir", "./output"))
        / f"dalail_part{args.part}_{safe_name(reader.id)}_{args.from_index}-{to_index}.mp4"
    )

    show_progress = config.get("processing", {}).get("progress_bar", True)
    bar = tqdm(total=100, desc="Export", unit="%", disable=not show_progress)

    def on_progress(value: float) -> None:
        bar.update(value - bar.n)

    cancel = CancelToken()
    with ExportPipeline(
        ffmpeg_path=ffmpeg_path,
        fonts=fonts_from_config(config),
        work_root=export_cfg.get("work_dir"),
        ffmpeg_timeout=ffmpeg_cfg.get("timeout", 3600),
        download_timeout=export_cfg.get("download_timeout", 60.0),
    ) as pipeline:
        future = pipeline.submit(state, reader, output, progress=on_progress, cancel=cancel)
        try:
            result = future.result()
        except KeyboardInterrupt:
            cancel.cancel()
            logger.info("Cancelling export...")
            try:
                future.result()
            except ExportCancelled:
                pass
            raise
        finally:
            bar.close()

    info = get_media_info(result.output_path, ffmpeg_path)
    logger.info(
        f"Wrote {result.output_path}: {result.frame_count} frames, "
        f"{result.duration:.2f}s @ {result.fps}fps"
        + (f" (probed {info['duration']:.2f}s)" if info.get("duration") else "")
    )
    return 0


# ============================================================
# CLI
# ============================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Make Dalail al-Khayrat recitation reels",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        help="Path to config.yaml",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_fetch = sub.add_parser("fetch", help="Fetch and segment a part")
    p_fetch.add_argument("part", type=int, help="Part number (1-8)")
    p_fetch.add_argument("-o", "--output", type=Path, help="Write JSON here instead of stdout")
    p_fetch.set_defaults(func=cmd_fetch)

    p_validate = sub.add_parser("validate", help="Check saved timings")
    p_validate.add_argument("reader", help="Reader id")
    p_validate.add_argument("part", type=int, help="Part number (1-8)")
    p_validate.add_argument("--total", type=int, help="Sentence count (fetched if omitted)")
    p_validate.add_argument("--timings-dir", type=Path, help="Timings directory")
    p_validate.set_defaults(func=cmd_validate)

    p_export = sub.add_parser("export", help="Export a sentence range to MP4")
    p_export.add_argument("reader", help="Reader id")
    p_export.add_argument("part", type=int, help="Part number (1-8)")
    p_export.add_argument("--from", dest="from_index", type=int, default=1, help="First sentence")
    p_export.add_argument("--to", dest="to_index", type=int, help="Last sentence (default: --from)")
    p_export.add_argument("-o", "--output", type=Path, help="Output MP4 path")
    p_export.add_argument("--position", choices=["top", "center", "bottom"], help="Text position")
    p_export.add_argument("--translation", action="store_true", help="Show translation")
    p_export.add_argument("--fps", type=int, help="Frame rate")
    p_export.add_argument("--readers", type=Path, help="Readers file")
    p_export.add_argument("--timings-dir", type=Path, help="Timings directory")
    p_export.set_defaults(func=cmd_export)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = load_config(args.config)
        return args.func(args, config)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except PreconditionError as e:
        logger.error(f"Export disabled: {e}")
        return 2
    except ExportError as e:
        logger.error(f"Export failed at {e.stage.value}: {e.message}")
        return 1
    except Exception as e:
        logger.error(f"Command failed: {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
