"""
MP4 export of a selected range.

Runs the staged pipeline

    RENDERING_FRAMES -> ENCODING_VIDEO -> TRIMMING_AUDIO -> MUXING -> DONE

in a private temporary workspace. Any stage failure moves the pipeline to
FAILED, skips the remaining stages and raises ExportError. A set CancelToken
aborts into CANCELLED. The workspace is removed in every case.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

import requests

from dalail.ffmpeg_utils import encode_frames, mux, trim_audio
from dalail.io import FRAME_GLOB, artifact_path, ensure_dir, exists_nonempty, frame_path
from dalail.render import FontSet, render_frame
from dalail.schema import Reader, RenderState
from dalail.selection import check_export_preconditions
from dalail.source import RetrievalError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

DOWNLOAD_CHUNK_SIZE = 1 << 16


class ExportStage(str, Enum):
    """Pipeline state."""

    IDLE = "idle"
    RENDERING_FRAMES = "rendering_frames"
    ENCODING_VIDEO = "encoding_video"
    TRIMMING_AUDIO = "trimming_audio"
    MUXING = "muxing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Progress range (percent) covered by each working stage
STAGE_PROGRESS = {
    ExportStage.RENDERING_FRAMES: (0.0, 40.0),
    ExportStage.ENCODING_VIDEO: (40.0, 60.0),
    ExportStage.TRIMMING_AUDIO: (60.0, 80.0),
    ExportStage.MUXING: (80.0, 100.0),
}


class ExportError(Exception):
    """A pipeline stage failed. ``message`` is the stage's own error text."""

    def __init__(self, stage: ExportStage, message: str):
        super().__init__(f"{stage.value}: {message}")
        self.stage = stage
        self.message = message


class ExportCancelled(Exception):
    """The export was cancelled through its CancelToken."""


class ExportBusyError(RuntimeError):
    """Another export is already running on this pipeline."""


class CancelToken:
    """Cooperative cancellation flag shared with a running export."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class ExportResult:
    """Outcome of a successful export."""

    output_path: Path
    frame_count: int
    duration: float
    fps: int


def frame_count(duration: float, fps: int) -> int:
    """Number of frames for a window: max(1, round(duration * fps))."""
    return max(1, round(duration * fps))


class _Progress:
    """Forwards progress to a callback, clamped to [0, 100] and never decreasing."""

    def __init__(self, callback: ProgressCallback | None):
        self.callback = callback
        self.value = 0.0

    def report(self, value: float) -> None:
        value = min(100.0, max(self.value, float(value)))
        self.value = value
        if self.callback is not None:
            self.callback(value)

    def within(self, stage: ExportStage, fraction: float) -> None:
        low, high = STAGE_PROGRESS[stage]
        self.report(low + (high - low) * min(1.0, max(0.0, fraction)))


def fetch_audio(
    locator: str,
    dest: Path,
    *,
    timeout: float = 60.0,
    session: requests.Session | None = None,
) -> Path:
    """
    Make the full source audio available locally.

    http(s) locators are downloaded to ``dest``; anything else is treated as a
    local file path and used in place.

    Raises:
        RetrievalError: If the audio can't be downloaded or the file is missing
    """
    if not locator.startswith(("http://", "https://")):
        path = Path(locator).expanduser()
        if not path.is_file():
            raise RetrievalError(f"Audio file not found: {path}")
        return path

    logger.info(f"Downloading audio: {locator}")
    http = session or requests
    try:
        with http.get(locator, stream=True, timeout=timeout) as response:
            if not response.ok:
                raise RetrievalError(
                    f"Audio download failed with status {response.status_code}: {locator}",
                    status_code=response.status_code,
                )
            dest.parent.mkdir(parents=True, exist_ok=True)
            with open(dest, "wb") as f:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
    except requests.RequestException as e:
        raise RetrievalError(f"Audio download failed: {e}") from e

    if not exists_nonempty(dest):
        raise RetrievalError(f"Audio download was empty: {locator}")

    logger.debug(f"Downloaded {dest.stat().st_size} bytes to {dest}")
    return dest


class ExportPipeline:
    """
    Export a RenderState and its audio window to one MP4 file.

    One export runs at a time per instance. ``run`` blocks the caller;
    ``submit`` queues the run on a single worker thread.
    """

    def __init__(
        self,
        *,
        ffmpeg_path: str = "ffmpeg",
        fonts: FontSet | None = None,
        work_root: Path | str | None = None,
        ffmpeg_timeout: float = 3600,
        download_timeout: float = 60.0,
        session: requests.Session | None = None,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.fonts = fonts
        self.work_root = Path(work_root) if work_root else None
        self.ffmpeg_timeout = ffmpeg_timeout
        self.download_timeout = download_timeout
        self.session = session
        self.state = ExportStage.IDLE
        self._lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def submit(
        self,
        state: RenderState,
        reader: Reader,
        output_path: Path | str,
        *,
        progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> Future[ExportResult]:
        """Queue an export on the pipeline's worker thread."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dalail-export")
        return self._executor.submit(
            self.run, state, reader, output_path, progress=progress, cancel=cancel
        )

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def __enter__(self) -> ExportPipeline:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()

    def run(
        self,
        state: RenderState,
        reader: Reader,
        output_path: Path | str,
        *,
        progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> ExportResult:
        """
        Export the selection to ``output_path``.

        Args:
            state: Render state of the selection (its window sets the duration)
            reader: Reader whose audio is used
            output_path: Destination MP4
            progress: Called with percentages in [0, 100]
            cancel: Token checked before every stage and between frames

        Returns:
            ExportResult

        Raises:
            PreconditionError: Missing audio locator or empty window
            ExportBusyError: Another export is running on this pipeline
            ExportCancelled: The token was set
            ExportError: A stage failed
        """
        audio_url, window = check_export_preconditions(reader, state.collection_number, state.window)

        if not self._lock.acquire(blocking=False):
            raise ExportBusyError("An export is already running")

        try:
            return self._run_locked(
                state,
                audio_url,
                window.start_sec,
                window.duration,
                Path(output_path),
                _Progress(progress),
                cancel or CancelToken(),
            )
        finally:
            self._lock.release()

    def _run_locked(
        self,
        state: RenderState,
        audio_url: str,
        start_sec: float,
        duration: float,
        output_path: Path,
        progress: _Progress,
        cancel: CancelToken,
    ) -> ExportResult:
        fps = state.style.fps
        total_frames = frame_count(duration, fps)
        if self.work_root is not None:
            ensure_dir(self.work_root)
        workspace = Path(tempfile.mkdtemp(prefix="dalail-export-", dir=self.work_root))
        logger.info(
            f"Exporting part {state.collection_number} "
            f"[{start_sec:.2f}s +{duration:.2f}s] as {total_frames} frames @ {fps}fps"
        )

        try:
            progress.report(0)
            frames_dir = ensure_dir(artifact_path(workspace, "frames_dir"))
            video_path = artifact_path(workspace, "video")
            audio_path = artifact_path(workspace, "audio")
            muxed_path = artifact_path(workspace, "output")

            self._stage(
                ExportStage.RENDERING_FRAMES,
                cancel,
                lambda: self._render_frames(state, frames_dir, total_frames, progress, cancel),
            )
            progress.within(ExportStage.RENDERING_FRAMES, 1.0)

            self._stage(
                ExportStage.ENCODING_VIDEO,
                cancel,
                lambda: encode_frames(
                    frames_dir / FRAME_GLOB.format(ext="png"),
                    video_path,
                    fps,
                    ffmpeg_path=self.ffmpeg_path,
                    timeout=self.ffmpeg_timeout,
                ),
            )
            progress.within(ExportStage.ENCODING_VIDEO, 1.0)

            def trim() -> Path:
                source = fetch_audio(
                    audio_url,
                    artifact_path(workspace, "audio_source"),
                    timeout=self.download_timeout,
                    session=self.session,
                )
                return trim_audio(
                    source,
                    audio_path,
                    start_sec,
                    duration,
                    ffmpeg_path=self.ffmpeg_path,
                    timeout=self.ffmpeg_timeout,
                )

            self._stage(ExportStage.TRIMMING_AUDIO, cancel, trim)
            progress.within(ExportStage.TRIMMING_AUDIO, 1.0)

            self._stage(
                ExportStage.MUXING,
                cancel,
                lambda: self._mux_to(video_path, audio_path, muxed_path, output_path),
            )

            self.state = ExportStage.DONE
            progress.report(100)
            logger.info(f"Export complete: {output_path}")
            return ExportResult(
                output_path=output_path,
                frame_count=total_frames,
                duration=duration,
                fps=fps,
            )
        finally:
            self._cleanup(workspace)

    def _stage(self, stage: ExportStage, cancel: CancelToken, action: Callable[[], object]) -> None:
        self._check_cancel(cancel)
        self.state = stage
        logger.info(f"Stage: {stage.value}")
        try:
            action()
        except ExportCancelled:
            self.state = ExportStage.CANCELLED
            raise
        except Exception as e:
            self.state = ExportStage.FAILED
            logger.error(f"Export failed during {stage.value}: {e}")
            raise ExportError(stage, str(e)) from e

    def _check_cancel(self, cancel: CancelToken) -> None:
        if cancel.cancelled:
            self.state = ExportStage.CANCELLED
            logger.info("Export cancelled")
            raise ExportCancelled("Export cancelled")

    def _render_frames(
        self,
        state: RenderState,
        frames_dir: Path,
        total_frames: int,
        progress: _Progress,
        cancel: CancelToken,
    ) -> None:
        fonts = self.fonts or FontSet.resolve()
        fps = state.style.fps
        for i in range(total_frames):
            self._check_cancel(cancel)
            img = render_frame(state, i / fps, fonts=fonts)
            img.save(frame_path(frames_dir, i), format="PNG")
            progress.within(ExportStage.RENDERING_FRAMES, (i + 1) / total_frames)
        logger.debug(f"Rendered {total_frames} frames to {frames_dir}")

    def _mux_to(self, video_path: Path, audio_path: Path, muxed_path: Path, output_path: Path) -> Path:
        mux(
            video_path,
            audio_path,
            muxed_path,
            ffmpeg_path=self.ffmpeg_path,
            timeout=self.ffmpeg_timeout,
        )
        output_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(muxed_path), str(output_path))
        return output_path

    def _cleanup(self, workspace: Path) -> None:
        try:
            shutil.rmtree(workspace)
        except OSError as e:
            logger.warning(f"Could not remove export workspace {workspace}: {e}")
