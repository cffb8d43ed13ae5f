"""
Sentence range selection.

Derives the RenderState of a contiguous sentence range: the concatenated text,
the translation (if any), and the audio window resolved from the timings.
"""

from __future__ import annotations

import logging
from typing import Sequence

from dalail.schema import (
    Collection,
    Reader,
    RenderState,
    RenderStyle,
    SelectionWindow,
    Sentence,
    TimingSet,
)

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = "\n\n"


class PreconditionError(Exception):
    """Required input for an export is missing; export is disabled."""


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def clamp_range(from_index: int, to_index: int, total: int) -> tuple[int, int]:
    """
    Clamp a range to 1..total and put its bounds in order.

    An empty collection is treated as having one slot, so the result is always
    a valid (possibly empty) range.
    """
    high = max(1, total)
    a = clamp(from_index, 1, high)
    b = clamp(to_index, 1, high)
    return (a, b) if a <= b else (b, a)


def select_range(collection: Collection, from_index: int, to_index: int) -> list[Sentence]:
    """Sentences with from_index <= index <= to_index, after clamping."""
    lo, hi = clamp_range(from_index, to_index, collection.total)
    return [s for s in collection.sentences if lo <= s.index <= hi]


def concat_text(sentences: Sequence[Sentence]) -> str:
    """Primary text of the selection, one paragraph per sentence."""
    return PARAGRAPH_BREAK.join(s.text for s in sentences)


def concat_translation(sentences: Sequence[Sentence]) -> str | None:
    """Available translations of the selection, or None if there are none."""
    parts = [s.translation for s in sentences if s.translation]
    return PARAGRAPH_BREAK.join(parts) if parts else None


def resolve_window(
    timing_set: TimingSet | None,
    selected: Sequence[Sentence],
) -> SelectionWindow | None:
    """
    Audio window of a selection.

    Starts at the first sentence's start and ends at the last sentence's end.

    Returns:
        The window, or None when either bound has no recorded interval
    """
    if timing_set is None or not selected:
        return None

    first = timing_set.get(selected[0].id)
    last = timing_set.get(selected[-1].id)
    if first is None or last is None:
        return None
    if last.end_sec < first.start_sec:
        logger.warning(
            f"Selection {selected[0].id}..{selected[-1].id} ends before it starts; "
            "treating as empty window"
        )
        return SelectionWindow(start_sec=first.start_sec, end_sec=first.start_sec)
    return SelectionWindow(start_sec=first.start_sec, end_sec=last.end_sec)


def build_render_state(
    collection: Collection,
    reader: Reader,
    timing_set: TimingSet | None,
    from_index: int,
    to_index: int,
    style: RenderStyle | None = None,
) -> RenderState:
    """
    Build the render state of a selected range.

    Args:
        collection: Parsed collection
        reader: Selected reader (name shown on the frame)
        timing_set: Reader's timings for this collection, if any
        from_index: First selected sentence (1-based)
        to_index: Last selected sentence (1-based)
        style: Layout parameters (defaults apply if None)

    Returns:
        Immutable RenderState
    """
    style = style or RenderStyle()
    selected = select_range(collection, from_index, to_index)
    translation = concat_translation(selected) if style.show_translation else None

    return RenderState(
        collection_number=collection.number,
        reader_name=reader.name,
        text=concat_text(selected),
        translation=translation,
        style=style,
        window=resolve_window(timing_set, selected),
    )


def check_export_preconditions(
    reader: Reader,
    collection_number: int,
    window: SelectionWindow | None,
) -> tuple[str, SelectionWindow]:
    """
    Ensure an export can be attempted.

    Returns:
        (audio locator, window)

    Raises:
        PreconditionError: If the audio locator or the timing window is missing
    """
    audio_url = reader.audio_url_for(collection_number)
    if audio_url is None:
        raise PreconditionError(
            f"Reader {reader.id!r} has no audio for part {collection_number}"
        )
    if window is None:
        raise PreconditionError("No complete timing window for the current selection")
    return audio_url, window


def can_export(reader: Reader, collection_number: int, window: SelectionWindow | None) -> bool:
    """Whether export should be enabled for this selection."""
    try:
        check_export_preconditions(reader, collection_number, window)
    except PreconditionError:
        return False
    return True
