"""
FFmpeg utilities for video encoding, audio trimming and muxing.

Provides a clean interface to ffmpeg for the export pipeline.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

# Broadly playable H.264 output
VIDEO_CODEC = "libx264"
PIXEL_FORMAT = "yuv420p"
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "192k"

# Shortest audio segment ffmpeg is asked to cut
MIN_AUDIO_SECONDS = 0.01


class FFmpegError(Exception):
    """Error during FFmpeg execution."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str | None = None):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


def check_ffmpeg(ffmpeg_path: str = "ffmpeg") -> bool:
    """
    Check if ffmpeg is available and working.

    Args:
        ffmpeg_path: Path to ffmpeg binary

    Returns:
        True if ffmpeg is available
    """
    try:
        result = subprocess.run(
            [ffmpeg_path, "-version"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError):
        return False


def _stderr_tail(stderr: str | None, lines: int = 3) -> str:
    if not stderr:
        return ""
    tail = [line for line in stderr.strip().splitlines() if line.strip()][-lines:]
    return " | ".join(tail)


def run_ffmpeg(cmd: list[str], output_path: Path, *, timeout: float = 3600) -> Path:
    """
    Run an ffmpeg command that must produce ``output_path``.

    Raises:
        FFmpegError: If ffmpeg is missing, times out, fails, or writes nothing
    """
    logger.debug(f"Running ffmpeg: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise FFmpegError(f"FFmpeg timed out writing {output_path.name}") from e
    except FileNotFoundError as e:
        raise FFmpegError(f"FFmpeg not found at: {cmd[0]}") from e

    if result.returncode != 0:
        detail = _stderr_tail(result.stderr)
        message = f"FFmpeg failed with code {result.returncode}"
        if detail:
            message = f"{message}: {detail}"
        raise FFmpegError(message, returncode=result.returncode, stderr=result.stderr)

    if not output_path.exists():
        raise FFmpegError(f"FFmpeg produced no output: {output_path}", returncode=0, stderr=result.stderr)

    return output_path


def encode_frames(
    frame_pattern: Path,
    video_path: Path,
    fps: int,
    *,
    ffmpeg_path: str = "ffmpeg",
    timeout: float = 3600,
) -> Path:
    """
    Encode a numbered image sequence into a video-only H.264 stream.

    Args:
        frame_pattern: image2 pattern such as ``frames/frame_%05d.png``
        video_path: Output video path
        fps: Frame rate of both input sequence and output
        ffmpeg_path: Path to ffmpeg binary

    Returns:
        Path to the encoded video
    """
    video_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        ffmpeg_path,
        "-y",
        "-framerate",
        str(fps),
        "-i",
        str(frame_pattern),
        "-c:v",
        VIDEO_CODEC,
        "-pix_fmt",
        PIXEL_FORMAT,
        "-r",
        str(fps),
        str(video_path),
    ]
    run_ffmpeg(cmd, video_path, timeout=timeout)
    logger.info(f"Encoded video: {video_path}")
    return video_path


def trim_audio(
    source_path: Path,
    audio_path: Path,
    start_sec: float,
    duration_sec: float,
    *,
    ffmpeg_path: str = "ffmpeg",
    bitrate: str = AUDIO_BITRATE,
    timeout: float = 3600,
) -> Path:
    """
    Cut [start, start + duration) out of an audio source and encode it as AAC.

    Args:
        source_path: Full-length source audio
        audio_path: Output path (.m4a)
        start_sec: Segment start in seconds
        duration_sec: Segment length in seconds
        ffmpeg_path: Path to ffmpeg binary
        bitrate: AAC bitrate

    Returns:
        Path to the trimmed audio

    Raises:
        FFmpegError: If ffmpeg fails
        FileNotFoundError: If the source doesn't exist
    """
    if not source_path.exists():
        raise FileNotFoundError(f"Audio source not found: {source_path}")

    audio_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        ffmpeg_path,
        "-y",
        "-ss",
        str(start_sec),  # Seek before input (faster)
        "-t",
        str(max(MIN_AUDIO_SECONDS, duration_sec)),
        "-i",
        str(source_path),
        "-vn",
        "-c:a",
        AUDIO_CODEC,
        "-b:a",
        bitrate,
        str(audio_path),
    ]
    run_ffmpeg(cmd, audio_path, timeout=timeout)
    logger.info(f"Trimmed audio {start_sec:.2f}s +{duration_sec:.2f}s: {audio_path}")
    return audio_path


def mux(
    video_path: Path,
    audio_path: Path,
    output_path: Path,
    *,
    ffmpeg_path: str = "ffmpeg",
    timeout: float = 3600,
) -> Path:
    """
    Combine a video-only and an audio-only stream into one MP4.

    The result is cut to the shorter of the two streams.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        ffmpeg_path,
        "-y",
        "-i",
        str(video_path),
        "-i",
        str(audio_path),
        "-map",
        "0:v:0",
        "-map",
        "1:a:0",
        "-c:v",
        "copy",
        "-c:a",
        AUDIO_CODEC,
        "-shortest",
        "-movflags",
        "+faststart",
        str(output_path),
    ]
    run_ffmpeg(cmd, output_path, timeout=timeout)
    logger.info(f"Muxed: {output_path}")
    return output_path


def get_media_info(path: Path, ffmpeg_path: str = "ffmpeg") -> dict[str, float | int | str | None]:
    """
    Get media metadata using ffprobe.

    Args:
        path: Path to media file
        ffmpeg_path: Path to ffmpeg binary (ffprobe assumed in same directory)

    Returns:
        Dictionary with duration, width, height, fps, video_codec, audio_codec
    """
    ffprobe_path = ffmpeg_path.replace("ffmpeg", "ffprobe")

    info: dict[str, float | int | str | None] = {
        "duration": None,
        "width": None,
        "height": None,
        "fps": None,
        "video_codec": None,
        "audio_codec": None,
    }

    cmd = [
        ffprobe_path,
        "-v",
        "quiet",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)

        if result.returncode != 0:
            logger.warning(f"ffprobe failed for {path}")
            return info

        data = json.loads(result.stdout)

        if "format" in data and "duration" in data["format"]:
            info["duration"] = float(data["format"]["duration"])

        for stream in data.get("streams", []):
            codec_type = stream.get("codec_type")
            if codec_type == "video" and info["video_codec"] is None:
                info["video_codec"] = stream.get("codec_name")
                info["width"] = stream.get("width")
                info["height"] = stream.get("height")

                # r_frame_rate looks like "30/1" or "30000/1001"
                fps_str = stream.get("r_frame_rate", "")
                if "/" in fps_str:
                    num, den = fps_str.split("/")
                    if int(den) > 0:
                        info["fps"] = float(num) / float(den)
            elif codec_type == "audio" and info["audio_codec"] is None:
                info["audio_codec"] = stream.get("codec_name")

        return info

    except (subprocess.SubprocessError, FileNotFoundError, json.JSONDecodeError) as e:
        logger.warning(f"Could not get media info: {e}")
        return info
