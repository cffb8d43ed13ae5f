"""Tests for dalail/timing.py drafts, validation and persistence."""

import json

import pytest

from dalail.schema import TimingInterval, TimingSet
from dalail.timing import (
    TimingDraft,
    TimingStore,
    TimingValidationError,
    derive_start,
    dump_timing_set,
    ensure_valid,
    load_timing_set,
    validate,
)


def make_set(intervals, collection=1, reader="r"):
    return TimingSet(
        reader_id=reader,
        collection_number=collection,
        items=[
            TimingInterval(sentence_id=f"p{collection}s{i:03d}", start_sec=s, end_sec=e)
            for i, (s, e) in intervals.items()
        ],
        created_at="2024-05-01T12:00:00+00:00",
    )


def kinds(violations, kind):
    return [v for v in violations if v.kind == kind]


class TestTimingDraft:
    def test_set_and_complete(self):
        draft = TimingDraft(collection_number=1)
        draft.set_start(1, 0.0)
        assert not draft.get(1).complete
        draft.set_end(1, 2.5)
        assert draft.get(1).complete
        assert draft.get(2) is None

    def test_negative_rejected(self):
        draft = TimingDraft(collection_number=1)
        with pytest.raises(ValueError):
            draft.set_start(1, -0.5)
        with pytest.raises(ValueError):
            draft.set_end(1, -1)

    def test_clear(self):
        draft = TimingDraft(collection_number=1)
        draft.set_start(1, 1.0)
        draft.clear(1)
        assert draft.get(1) is None
        draft.clear(5)

    def test_to_timing_set_keeps_only_complete(self):
        draft = TimingDraft(collection_number=2)
        draft.set_start(2, 3.0)
        draft.set_end(2, 4.0)
        draft.set_start(1, 0.0)
        draft.set_end(1, 3.0)
        draft.set_start(3, 4.0)

        ts = draft.to_timing_set("reader_a")

        assert ts.reader_id == "reader_a"
        assert ts.collection_number == 2
        assert ts.version == 1
        assert ts.created_at
        assert [i.sentence_id for i in ts.items] == ["p2s001", "p2s002"]

    def test_from_timing_set(self):
        ts = make_set({1: (0.0, 1.0), 2: (1.0, 2.0)})
        draft = TimingDraft.from_timing_set(ts)
        assert draft.get(2).start_sec == 1.0
        assert draft.to_timing_set("r", created_at=ts.created_at) == ts


class TestDeriveStart:
    def test_copies_previous_end(self):
        draft = TimingDraft(collection_number=1)
        draft.set_start(1, 0.0)
        draft.set_end(1, 4.2)
        assert derive_start(draft, 2)
        assert draft.get(2).start_sec == 4.2

    def test_first_sentence_noop(self):
        draft = TimingDraft(collection_number=1)
        assert not derive_start(draft, 1)
        assert draft.get(1) is None

    def test_missing_previous_end_noop(self):
        draft = TimingDraft(collection_number=1)
        draft.set_start(1, 0.0)
        assert not derive_start(draft, 2)
        assert draft.get(2) is None


class TestValidate:
    def test_valid_set(self):
        ts = make_set({1: (0.0, 2.0), 2: (2.0, 4.0), 3: (4.5, 6.0)})
        assert validate(ts, 3) == []
        ensure_valid(ts, 3)

    def test_bounds_violation_only(self):
        ts = make_set({1: (0.0, 4.0), 2: (5.0, 4.0)})
        violations = validate(ts, 5)
        assert len(kinds(violations, "bounds")) == 1
        assert kinds(violations, "bounds")[0].index == 2
        assert kinds(violations, "overlap") == []

    def test_equal_start_end_is_bounds_violation(self):
        ts = make_set({1: (3.0, 3.0)})
        assert [v.kind for v in validate(ts, 1)] == ["bounds"]

    def test_overlap_between_partial_entries(self):
        draft = TimingDraft(collection_number=1)
        draft.set_end(1, 6.0)
        draft.set_start(2, 5.0)

        overlaps = kinds(validate(draft, 5), "overlap")

        assert len(overlaps) == 1
        assert overlaps[0].previous_index == 1
        assert overlaps[0].index == 2
        assert overlaps[0].message == "Overlap between 1 and 2"

    def test_draft_reports_incomplete(self):
        draft = TimingDraft(collection_number=1)
        draft.set_start(1, 0.0)
        incomplete = kinds(validate(draft, 3), "incomplete")
        assert [v.index for v in incomplete] == [1]

    def test_touching_intervals_do_not_overlap(self):
        ts = make_set({1: (0.0, 5.0), 2: (5.0, 6.0)})
        assert validate(ts, 2) == []

    def test_overlap_iff_adjacent_prev_end_after_start(self):
        cases = [
            ({1: (0.0, 5.0), 2: (4.9, 6.0)}, 1),
            ({1: (0.0, 5.0), 2: (5.1, 6.0)}, 0),
            ({1: (0.0, 5.0), 2: (4.0, 6.0), 3: (5.0, 7.0)}, 2),
        ]
        for intervals, expected in cases:
            assert len(kinds(validate(make_set(intervals), 3), "overlap")) == expected

    def test_non_adjacent_overlap_not_reported(self):
        # Sentence 2 has no interval, so 1 and 3 are never compared
        ts = make_set({1: (0.0, 10.0), 3: (5.0, 12.0)})
        assert kinds(validate(ts, 3), "overlap") == []

    def test_all_violations_reported(self):
        ts = make_set({1: (0.0, 5.0), 2: (4.0, 3.0), 3: (8.0, 7.0)})
        violations = validate(ts, 3)
        assert len(kinds(violations, "bounds")) == 2
        assert len(kinds(violations, "overlap")) == 1

    def test_beyond_total_ignored(self):
        ts = make_set({1: (0.0, 1.0), 4: (5.0, 4.0)})
        assert validate(ts, 3) == []

    def test_ensure_valid_raises(self):
        ts = make_set({1: (2.0, 1.0)})
        with pytest.raises(TimingValidationError) as exc:
            ensure_valid(ts, 1)
        assert len(exc.value.violations) == 1


class TestSerialization:
    def test_round_trip(self):
        ts = make_set({2: (3.0, 4.5), 1: (0.0, 3.0), 10: (20.0, 21.0)})
        data = json.loads(json.dumps(dump_timing_set(ts)))
        loaded = load_timing_set(data)

        assert loaded == ts
        assert [i.sentence_id for i in loaded.items] == [i.sentence_id for i in ts.items]

    def test_json_schema_keys(self):
        data = dump_timing_set(make_set({1: (0.0, 1.0)}))
        assert data["readerId"] == "r"
        assert data["collectionNumber"] == 1
        assert data["items"] == [{"sentenceId": "p1s001", "startSec": 0.0, "endSec": 1.0}]
        assert data["version"] == 1


class TestTimingStore:
    def test_read_missing(self, tmp_path):
        assert TimingStore(tmp_path).read("r", 1) is None

    def test_write_and_read(self, tmp_path):
        store = TimingStore(tmp_path / "timings")
        ts = make_set({1: (0.0, 1.0), 2: (1.0, 2.5)}, reader="reader_a")

        path = store.write(ts)

        assert path.name == "timings_reader_a_part-1.json"
        assert path.exists()
        assert store.read("reader_a", 1) == ts

    def test_overwrite(self, tmp_path):
        store = TimingStore(tmp_path)
        store.write(make_set({1: (0.0, 1.0)}))
        store.write(make_set({1: (0.5, 1.0)}))
        assert store.read("r", 1).items[0].start_sec == 0.5

    def test_mismatched_file(self, tmp_path):
        store = TimingStore(tmp_path)
        ts = make_set({1: (0.0, 1.0)}, reader="other")
        store.path_for("r", 1).write_text(json.dumps(dump_timing_set(ts)), encoding="utf-8")
        with pytest.raises(ValueError):
            store.read("r", 1)
