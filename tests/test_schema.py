"""Tests for dalail/schema.py Pydantic models."""

import pytest
from pydantic import ValidationError

from dalail.schema import (
    Collection,
    Reader,
    RenderState,
    RenderStyle,
    SelectionWindow,
    Sentence,
    TimingInterval,
    TimingSet,
)


def make_sentences(n, collection=1):
    return [Sentence(id=f"p{collection}s{i:03d}", index=i, text=f"نص {i}") for i in range(1, n + 1)]


class TestSentence:
    def test_valid(self):
        s = Sentence(id="p1s001", index=1, text="اللهم")
        assert s.translation is None

    def test_index_starts_at_one(self):
        with pytest.raises(ValidationError):
            Sentence(id="p1s000", index=0, text="x")


class TestCollection:
    def test_valid(self):
        c = Collection(number=1, title="الحزب 1", sentences=make_sentences(3), source_url="u")
        assert c.total == 3
        assert c.sentence(2).index == 2
        assert c.sentence(4) is None
        assert c.sentence(0) is None

    def test_number_range(self):
        with pytest.raises(ValidationError):
            Collection(number=9, title="x", source_url="u")

    def test_indices_must_be_contiguous(self):
        sentences = make_sentences(3)
        with pytest.raises(ValidationError):
            Collection(number=1, title="x", sentences=[sentences[0], sentences[2]], source_url="u")

    def test_json_aliases(self):
        c = Collection(number=2, title="t", sentences=make_sentences(1, 2), source_url="u")
        data = c.model_dump(mode="json", by_alias=True)
        assert data["collectionNumber"] == 2
        assert data["sourceUrl"] == "u"
        assert Collection.model_validate(data) == c

    def test_accepts_part_key(self):
        c = Collection.model_validate({"part": 3, "title": "t", "sourceUrl": "u"})
        assert c.number == 3


class TestTimingInterval:
    def test_aliases(self):
        item = TimingInterval.model_validate({"sentenceId": "p1s001", "startSec": 1.0, "endSec": 2.5})
        assert item.start_sec == 1.0
        assert item.duration == 1.5
        assert item.model_dump(by_alias=True) == {"sentenceId": "p1s001", "startSec": 1.0, "endSec": 2.5}

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            TimingInterval(sentence_id="p1s001", start_sec=-1.0, end_sec=2.0)

    def test_inverted_interval_loads(self):
        item = TimingInterval(sentence_id="p1s002", start_sec=5.0, end_sec=4.0)
        assert item.duration == -1.0

    def test_frozen(self):
        item = TimingInterval(sentence_id="p1s001", start_sec=0.0, end_sec=1.0)
        with pytest.raises(ValidationError):
            item.start_sec = 3.0


class TestTimingSet:
    def test_items_sorted(self):
        ts = TimingSet(
            reader_id="r",
            collection_number=1,
            items=[
                TimingInterval(sentence_id="p1s002", start_sec=2.0, end_sec=3.0),
                TimingInterval(sentence_id="p1s001", start_sec=0.0, end_sec=2.0),
            ],
            created_at="2024-01-01T00:00:00Z",
        )
        assert [i.sentence_id for i in ts.items] == ["p1s001", "p1s002"]
        assert ts.get("p1s002").start_sec == 2.0
        assert ts.get("p1s003") is None
        assert set(ts.by_id()) == {"p1s001", "p1s002"}

    def test_duplicates_rejected(self):
        with pytest.raises(ValidationError):
            TimingSet(
                reader_id="r",
                collection_number=1,
                items=[
                    TimingInterval(sentence_id="p1s001", start_sec=0.0, end_sec=1.0),
                    TimingInterval(sentence_id="p1s001", start_sec=1.0, end_sec=2.0),
                ],
                created_at="now",
            )

    def test_items_must_belong_to_collection(self):
        with pytest.raises(ValidationError):
            TimingSet(
                reader_id="r",
                collection_number=1,
                items=[TimingInterval(sentence_id="p2s001", start_sec=0.0, end_sec=1.0)],
                created_at="now",
            )

    def test_malformed_sentence_id_rejected(self):
        with pytest.raises(ValidationError):
            TimingSet(
                reader_id="r",
                collection_number=1,
                items=[TimingInterval(sentence_id="first", start_sec=0.0, end_sec=1.0)],
                created_at="now",
            )

    def test_defaults_and_aliases(self):
        ts = TimingSet.model_validate(
            {"readerId": "r", "collectionNumber": 2, "items": [], "createdAt": "now"}
        )
        assert ts.version == 1
        data = ts.model_dump(by_alias=True)
        assert set(data) == {"readerId", "collectionNumber", "items", "version", "createdAt"}


class TestReader:
    def test_audio_url_for(self):
        r = Reader(id="a", name="A", audio_urls_by_collection={"1": "https://x/1.mp3", "2": "  "})
        assert r.audio_url_for(1) == "https://x/1.mp3"
        assert r.audio_url_for(2) is None
        assert r.audio_url_for(3) is None

    def test_int_keys_normalized(self):
        r = Reader.model_validate({"id": "a", "name": "A", "audioParts": {1: "u1"}})
        assert r.audio_url_for(1) == "u1"


class TestRenderModels:
    def test_style_defaults(self):
        style = RenderStyle()
        assert (style.width, style.height, style.fps) == (1080, 1920, 30)
        assert style.position == "center"
        assert style.shadow_on is True
        assert style.show_translation is False

    def test_invalid_position(self):
        with pytest.raises(ValidationError):
            RenderStyle(position="middle")

    def test_window_duration(self):
        assert SelectionWindow(start_sec=10.0, end_sec=18.4).duration == pytest.approx(8.4)
        assert SelectionWindow(start_sec=5.0, end_sec=4.0).duration == 0.0

    def test_render_state_frozen(self):
        state = RenderState(collection_number=1, text="x")
        with pytest.raises(ValidationError):
            state.text = "y"
