"""
Timing drafts, validation and persistence.

A ``TimingDraft`` is the editor-local state: intervals may be half filled.
Only complete intervals ever make it into a ``TimingSet``, which is what gets
persisted and used for export.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from dalail.io import load_json, save_model, timings_filename
from dalail.schema import TimingInterval, TimingSet
from dalail.segments import sentence_id

logger = logging.getLogger(__name__)

ViolationKind = Literal["incomplete", "bounds", "overlap"]


@dataclass
class DraftEntry:
    """A possibly incomplete interval being edited."""

    start_sec: float | None = None
    end_sec: float | None = None

    @property
    def complete(self) -> bool:
        return self.start_sec is not None and self.end_sec is not None


@dataclass(frozen=True)
class TimingViolation:
    """One problem found by ``validate``."""

    kind: ViolationKind
    index: int
    sentence_id: str
    message: str
    previous_index: int | None = None


class TimingValidationError(ValueError):
    """Raised by ``ensure_valid`` with the full list of violations."""

    def __init__(self, violations: list[TimingViolation]):
        super().__init__("; ".join(v.message for v in violations))
        self.violations = violations


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_seconds(value: float) -> float:
    value = float(value)
    if value < 0:
        raise ValueError(f"Timestamp must be >= 0, got {value}")
    return value


# ============================================================
# Editor Draft
# ============================================================


@dataclass
class TimingDraft:
    """Editable timings for one collection, keyed by sentence id."""

    collection_number: int
    entries: dict[str, DraftEntry] = field(default_factory=dict)

    def _entry(self, index: int) -> DraftEntry:
        sid = sentence_id(self.collection_number, index)
        return self.entries.setdefault(sid, DraftEntry())

    def get(self, index: int) -> DraftEntry | None:
        """Entry for a sentence index, if anything was recorded."""
        return self.entries.get(sentence_id(self.collection_number, index))

    def set_start(self, index: int, seconds: float) -> None:
        self._entry(index).start_sec = _check_seconds(seconds)

    def set_end(self, index: int, seconds: float) -> None:
        self._entry(index).end_sec = _check_seconds(seconds)

    def clear(self, index: int) -> None:
        self.entries.pop(sentence_id(self.collection_number, index), None)

    def complete_intervals(self) -> list[TimingInterval]:
        """Complete intervals in canonical (sentence id) order."""
        items = [
            TimingInterval(sentence_id=sid, start_sec=e.start_sec, end_sec=e.end_sec)
            for sid, e in self.entries.items()
            if e.complete
        ]
        return sorted(items, key=lambda item: item.sentence_id)

    def to_timing_set(
        self,
        reader_id: str,
        version: int = 1,
        created_at: str | None = None,
    ) -> TimingSet:
        """
        Freeze the draft into a persistable TimingSet.

        Partially filled entries are left out.
        """
        return TimingSet(
            reader_id=reader_id,
            collection_number=self.collection_number,
            items=self.complete_intervals(),
            version=version,
            created_at=created_at or _now_iso(),
        )

    @classmethod
    def from_timing_set(cls, timing_set: TimingSet) -> TimingDraft:
        return cls(
            collection_number=timing_set.collection_number,
            entries={
                item.sentence_id: DraftEntry(item.start_sec, item.end_sec)
                for item in timing_set.items
            },
        )


def derive_start(draft: TimingDraft, index: int) -> bool:
    """
    Copy the previous sentence's end into this sentence's start.

    No-op for the first sentence or when the previous end is missing.

    Returns:
        True if the start was set
    """
    if index <= 1:
        return False
    prev = draft.get(index - 1)
    if prev is None or prev.end_sec is None:
        return False
    draft.set_start(index, prev.end_sec)
    return True


# ============================================================
# Validation
# ============================================================


def _bounds_by_id(
    timings: TimingSet | TimingDraft,
) -> tuple[int, dict[str, tuple[float | None, float | None]]]:
    if isinstance(timings, TimingSet):
        return timings.collection_number, {
            item.sentence_id: (item.start_sec, item.end_sec) for item in timings.items
        }
    return timings.collection_number, {
        sid: (e.start_sec, e.end_sec) for sid, e in timings.entries.items()
    }


def validate(timings: TimingSet | TimingDraft, total_sentences: int) -> list[TimingViolation]:
    """
    Check timing invariants for sentences 1..total_sentences.

    Reports every violation, in index order:
        - incomplete: start or end missing (drafts only)
        - bounds: start >= end
        - overlap: previous end > this start

    Only adjacent sentences are compared. Sentences without a recorded
    interval are skipped, and so is the overlap check against them.
    """
    collection, bounds = _bounds_by_id(timings)
    violations: list[TimingViolation] = []

    for i in range(1, total_sentences + 1):
        sid = sentence_id(collection, i)
        if sid not in bounds:
            continue
        start, end = bounds[sid]

        if start is None or end is None:
            violations.append(
                TimingViolation("incomplete", i, sid, f"Sentence {i}: start or end missing")
            )
        elif start >= end:
            violations.append(
                TimingViolation("bounds", i, sid, f"Sentence {i}: start must be before end")
            )

        prev_sid = sentence_id(collection, i - 1)
        if i > 1 and prev_sid in bounds:
            prev_end = bounds[prev_sid][1]
            if prev_end is not None and start is not None and prev_end > start:
                violations.append(
                    TimingViolation(
                        "overlap",
                        i,
                        sid,
                        f"Overlap between {i - 1} and {i}",
                        previous_index=i - 1,
                    )
                )

    return violations


def ensure_valid(timings: TimingSet | TimingDraft, total_sentences: int) -> None:
    """
    Raise if ``validate`` finds anything.

    Raises:
        TimingValidationError: With all violations attached
    """
    violations = validate(timings, total_sentences)
    if violations:
        raise TimingValidationError(violations)


# ============================================================
# Serialization
# ============================================================


def dump_timing_set(timing_set: TimingSet) -> dict[str, Any]:
    """Canonical JSON form: camelCase keys, items sorted by sentence id."""
    return timing_set.model_dump(mode="json", by_alias=True)


def load_timing_set(data: Any) -> TimingSet:
    """Parse a TimingSet from its JSON form."""
    return TimingSet.model_validate(data)


class TimingStore:
    """
    File-backed keyed storage of timing sets.

    One JSON file per (reader, collection) under ``root``.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def path_for(self, reader_id: str, collection_number: int) -> Path:
        return self.root / timings_filename(reader_id, collection_number)

    def read(self, reader_id: str, collection_number: int) -> TimingSet | None:
        """
        Load the timings of a reader for a collection.

        Returns:
            The TimingSet, or None if nothing was saved yet
        """
        path = self.path_for(reader_id, collection_number)
        if not path.exists():
            return None
        timing_set = load_timing_set(load_json(path))
        if timing_set.reader_id != reader_id or timing_set.collection_number != collection_number:
            raise ValueError(
                f"Timing file {path} belongs to reader {timing_set.reader_id!r}, "
                f"part {timing_set.collection_number}"
            )
        return timing_set

    def write(self, timing_set: TimingSet) -> Path:
        """Persist a TimingSet atomically. Returns the file path."""
        path = self.path_for(timing_set.reader_id, timing_set.collection_number)
        save_model(path, timing_set)
        logger.info(f"Saved {len(timing_set.items)} timings to: {path}")
        return path
