"""
FastAPI server for text retrieval and timing storage.

Endpoints:
    GET  /health                              - Health check
    GET  /collections/{n}                     - Fetch and segment part n
    GET  /readers                             - List readers
    GET  /timings/{reader_id}/{n}             - Saved timings of a reader for part n
    PUT  /timings/{reader_id}/{n}             - Save timings
    POST /timings/{reader_id}/{n}/validate    - Check timings without saving

Usage:
    dalail-serve
    uvicorn dalail.serve:app --reload
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from dalail.config import get_default_config, load_config
from dalail.readers import ReaderNotFoundError, find_reader, load_readers
from dalail.schema import Collection, Reader, TimingSet
from dalail.source import InvalidCollectionError, RetrievalError, fetch_collection
from dalail.timing import TimingStore, validate

logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Dalail Reels API",
    description="Text retrieval and timing storage for Dalail al-Khayrat reels",
    version="0.1.0",
)

# Global settings (initialized on first use)
_config: dict[str, Any] | None = None
_store: TimingStore | None = None


def configure(config: dict[str, Any]) -> None:
    """Replace the server configuration."""
    global _config, _store
    _config = config
    _store = None


def get_config() -> dict[str, Any]:
    """Get the global configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def get_store() -> TimingStore:
    """Get the global timing store."""
    global _store
    if _store is None:
        _store = TimingStore(get_config().get("storage", {}).get("timings_dir", "./data/timings"))
    return _store


def get_readers() -> list[Reader]:
    path = Path(get_config().get("readers", {}).get("path", "./data/readers.yaml"))
    try:
        return load_readers(path)
    except FileNotFoundError:
        logger.warning(f"Readers file not found: {path}")
        return []


# Request/Response models
class ViolationOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: str
    index: int
    sentence_id: str = Field(alias="sentenceId")
    message: str


class ValidationResponse(BaseModel):
    valid: bool
    violations: list[ViolationOut]


def _fetch(n: int) -> Collection:
    source_cfg = get_config().get("source", {})
    try:
        return fetch_collection(
            n,
            base_url=source_cfg.get("base_url") or get_default_config()["source"]["base_url"],
            timeout=source_cfg.get("timeout", 20.0),
        )
    except InvalidCollectionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RetrievalError as e:
        detail: dict[str, Any] = {"error": str(e)}
        if e.status_code is not None:
            detail["status"] = e.status_code
        raise HTTPException(status_code=502, detail=detail)


def _check_reader(reader_id: str) -> Reader:
    try:
        return find_reader(get_readers(), reader_id)
    except ReaderNotFoundError:
        raise HTTPException(status_code=404, detail=f"Reader not found: {reader_id}")


# Endpoints
@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/collections/{n}", response_model=Collection)
def get_collection(n: int):
    """
    Fetch part n from the source and segment it into sentences.

    400 for a part outside 1..8, 502 when the source can't be retrieved.
    """
    return _fetch(n)


@app.get("/readers", response_model=list[Reader])
def list_readers():
    """List all readers and their audio locators."""
    return get_readers()


@app.get("/timings/{reader_id}/{n}", response_model=TimingSet)
def get_timings(reader_id: str, n: int):
    """Get the saved timings of a reader for a part."""
    _check_reader(reader_id)
    try:
        timing_set = get_store().read(reader_id, n)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if timing_set is None:
        raise HTTPException(status_code=404, detail=f"No timings for {reader_id}, part {n}")
    return timing_set


@app.put("/timings/{reader_id}/{n}", response_model=TimingSet)
def put_timings(reader_id: str, n: int, timing_set: TimingSet):
    """Save timings of a reader for a part, replacing any previous version."""
    _check_reader(reader_id)
    if timing_set.reader_id != reader_id or timing_set.collection_number != n:
        raise HTTPException(
            status_code=400,
            detail=f"Body is for {timing_set.reader_id}, part {timing_set.collection_number}",
        )
    get_store().write(timing_set)
    return timing_set


@app.post("/timings/{reader_id}/{n}/validate", response_model=ValidationResponse)
def validate_timings(
    reader_id: str,
    n: int,
    timing_set: TimingSet,
    total: int | None = Query(default=None, ge=0, description="Sentence count (fetched if omitted)"),
):
    """
    Check timings for bound and overlap violations.

    Every violation is reported; nothing is saved.
    """
    if timing_set.reader_id != reader_id or timing_set.collection_number != n:
        raise HTTPException(status_code=400, detail="Body does not match path")
    if total is None:
        total = _fetch(n).total

    violations = validate(timing_set, total)
    return ValidationResponse(
        valid=not violations,
        violations=[
            ViolationOut(kind=v.kind, index=v.index, sentence_id=v.sentence_id, message=v.message)
            for v in violations
        ],
    )


def main():
    """Run the FastAPI server."""
    parser = argparse.ArgumentParser(description="Run the Dalail Reels API server")
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config or 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: from config or 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.yaml",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = load_config(args.config)
    configure(config)
    server_config = config.get("server", {})

    host = args.host or server_config.get("host", "127.0.0.1")
    port = args.port or server_config.get("port", 8000)

    logger.info(f"Starting server at http://{host}:{port}")
    logger.info(f"API docs available at http://{host}:{port}/docs")

    uvicorn.run(
        app if not args.reload else "dalail.serve:app",
        host=host,
        port=port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
