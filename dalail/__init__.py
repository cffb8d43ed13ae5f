"""
dalail - Dalail al-Khayrat Reels Maker

Turns the text of a Dalail al-Khayrat part into short vertical videos.

Modules:
    - schema: Pydantic models for all data structures
    - segments: Stable sentence identifiers
    - classify: Line language classification
    - parser: Source page segmentation into sentences
    - source: Text retrieval over HTTP
    - readers: Reader reference data
    - timing: Timing drafts, validation and persistence
    - selection: Sentence range selection and render state
    - render: Frame rendering with Pillow
    - io: Path helpers and atomic writes
    - ffmpeg_utils: Video encoding, audio trimming and muxing via ffmpeg
    - export: Staged export pipeline
    - config: YAML configuration
    - serve: FastAPI service
"""

__version__ = "0.1.0"
