"""
Pydantic v2 models for all data structures.

JSON field names follow the persisted/external schema (camelCase), while the
Python attributes stay snake_case. Models accept either form on input.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from dalail.segments import MAX_COLLECTION, MIN_COLLECTION, parse_sentence_id

Position = Literal["top", "center", "bottom"]


class Sentence(BaseModel):
    """The smallest addressable unit of primary text."""

    id: str = Field(..., description="Stable identifier, e.g. p1s003")
    index: int = Field(..., ge=1, description="1-based position within the collection")
    text: str = Field(..., description="Primary-language (Arabic) text")
    translation: str | None = Field(default=None, description="Extracted translation, if any")


class Collection(BaseModel):
    """A numbered part of the text with its ordered sentences."""

    model_config = ConfigDict(populate_by_name=True)

    number: int = Field(
        ...,
        ge=MIN_COLLECTION,
        le=MAX_COLLECTION,
        validation_alias=AliasChoices("collectionNumber", "number", "part"),
        serialization_alias="collectionNumber",
    )
    title: str = Field(..., description="Display title")
    sentences: list[Sentence] = Field(default_factory=list)
    source_url: str = Field(
        ...,
        validation_alias=AliasChoices("sourceUrl", "source_url"),
        serialization_alias="sourceUrl",
    )

    @field_validator("sentences")
    @classmethod
    def indices_contiguous(cls, v: list[Sentence]) -> list[Sentence]:
        """Ensure sentence indices run 1..N in order."""
        for expected, sentence in enumerate(v, start=1):
            if sentence.index != expected:
                raise ValueError(
                    f"sentence indices must be contiguous from 1, got {sentence.index} at position {expected}"
                )
        return v

    @property
    def total(self) -> int:
        """Number of sentences in the collection."""
        return len(self.sentences)

    def sentence(self, index: int) -> Sentence | None:
        """Get a sentence by its 1-based index."""
        if 1 <= index <= len(self.sentences):
            return self.sentences[index - 1]
        return None


class TimingInterval(BaseModel):
    """
    Audio window mapped to one sentence.

    ``start_sec < end_sec`` is checked by ``timing.validate`` rather than at
    construction, so an invalid edit can still be loaded and reported.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    sentence_id: str = Field(
        ...,
        validation_alias=AliasChoices("sentenceId", "sentence_id"),
        serialization_alias="sentenceId",
    )
    start_sec: float = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("startSec", "start_sec"),
        serialization_alias="startSec",
    )
    end_sec: float = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("endSec", "end_sec"),
        serialization_alias="endSec",
    )

    @property
    def duration(self) -> float:
        """Interval duration in seconds (may be negative for invalid edits)."""
        return self.end_sec - self.start_sec


class TimingSet(BaseModel):
    """All complete timing intervals of one reader for one collection."""

    model_config = ConfigDict(populate_by_name=True)

    reader_id: str = Field(
        ...,
        validation_alias=AliasChoices("readerId", "reader_id"),
        serialization_alias="readerId",
    )
    collection_number: int = Field(
        ...,
        ge=MIN_COLLECTION,
        le=MAX_COLLECTION,
        validation_alias=AliasChoices("collectionNumber", "collection_number", "part"),
        serialization_alias="collectionNumber",
    )
    items: list[TimingInterval] = Field(default_factory=list)
    version: int = Field(default=1, ge=1)
    created_at: str = Field(
        ...,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )

    @field_validator("items")
    @classmethod
    def sorted_unique(cls, v: list[TimingInterval]) -> list[TimingInterval]:
        """Keep items in canonical (sentence id) order and reject duplicates."""
        ordered = sorted(v, key=lambda item: item.sentence_id)
        for prev, cur in zip(ordered, ordered[1:]):
            if prev.sentence_id == cur.sentence_id:
                raise ValueError(f"duplicate timing for sentence {cur.sentence_id}")
        return ordered

    @model_validator(mode="after")
    def items_in_collection(self) -> TimingSet:
        """Every item must address a sentence of this collection."""
        for item in self.items:
            collection, _ = parse_sentence_id(item.sentence_id)
            if collection != self.collection_number:
                raise ValueError(
                    f"sentence {item.sentence_id} does not belong to part {self.collection_number}"
                )
        return self

    def get(self, sentence_id: str) -> TimingInterval | None:
        """Look up the interval recorded for a sentence."""
        for item in self.items:
            if item.sentence_id == sentence_id:
                return item
        return None

    def by_id(self) -> dict[str, TimingInterval]:
        """Map sentence id to interval."""
        return {item.sentence_id: item for item in self.items}


class Reader(BaseModel):
    """A reciter with per-collection audio locators. Immutable reference data."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str
    audio_urls_by_collection: dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("audioUrlsByCollection", "audio_urls_by_collection", "audioParts"),
        serialization_alias="audioUrlsByCollection",
    )

    @field_validator("audio_urls_by_collection", mode="before")
    @classmethod
    def stringify_keys(cls, v: Any) -> Any:
        """YAML turns ``1: url`` into an int key; normalize to strings."""
        if isinstance(v, dict):
            return {str(k): val for k, val in v.items()}
        return v

    def audio_url_for(self, collection_number: int) -> str | None:
        """Audio locator for a collection, or None when missing or blank."""
        url = self.audio_urls_by_collection.get(str(collection_number), "")
        return url.strip() or None


class RenderStyle(BaseModel):
    """Operator-chosen layout and output parameters."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(default=1080, ge=16, description="Frame width in pixels")
    height: int = Field(default=1920, ge=16, description="Frame height in pixels")
    fps: int = Field(default=30, ge=1, le=120, description="Output frame rate")
    font_size: float = Field(default=46, gt=0, description="Base font size")
    line_height: float = Field(default=1.4, gt=0, description="Line height multiplier")
    text_color: str = Field(default="#F5D37D")
    shadow_on: bool = True
    shadow_strength: float = Field(default=35, ge=0)
    position: Position = "center"
    show_collection_label: bool = True
    show_reader_name: bool = True
    show_translation: bool = False
    background_color: str = Field(default="#0E2A22")
    background_image: str | None = Field(default=None, description="Path to a cover image")


class SelectionWindow(BaseModel):
    """Resolved [start, end) audio window of a selected sentence range."""

    model_config = ConfigDict(frozen=True)

    start_sec: float = Field(..., ge=0)
    end_sec: float = Field(..., ge=0)

    @property
    def duration(self) -> float:
        """Window duration in seconds, never negative."""
        return max(0.0, self.end_sec - self.start_sec)


class RenderState(BaseModel):
    """Everything the renderer and exporter need for one selection."""

    model_config = ConfigDict(frozen=True)

    collection_number: int = Field(..., ge=MIN_COLLECTION, le=MAX_COLLECTION)
    reader_name: str = ""
    text: str = ""
    translation: str | None = None
    style: RenderStyle = Field(default_factory=RenderStyle)
    window: SelectionWindow | None = None
