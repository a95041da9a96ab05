"""ffprobe / ffmpeg helpers

Metrics come from decoding the file, not from what a vendor claims.
"""
import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from modelarena.core.config import settings

logger = logging.getLogger("media")


@dataclass
class VideoMetadata:
    duration: float
    width: int
    height: int


def probe_video(video_path: Path) -> VideoMetadata:
    """Get duration, width and height of a video using ffprobe

    Args:
        video_path: Path to a local video file

    Returns:
        VideoMetadata for the first video stream

    Raises:
        Exception: If ffprobe is not available or the video cannot be analyzed
    """
    cmd = [
        'ffprobe',
        '-v', 'error',
        '-select_streams', 'v:0',
        '-show_entries', 'stream=width,height,duration:format=duration',
        '-of', 'json',
        str(video_path)
    ]

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=settings.FFPROBE_TIMEOUT
        )
    except FileNotFoundError:
        raise Exception("ffprobe not found. Please install ffmpeg to enable video probing.")
    except subprocess.TimeoutExpired:
        raise Exception("ffprobe timed out while analyzing video")

    if result.returncode != 0:
        raise Exception(f"ffprobe failed: {result.stderr.strip()}")

    try:
        data = json.loads(result.stdout or "{}")
    except ValueError as e:
        raise Exception(f"Failed to parse ffprobe output: {e}")

    metadata = parse_probe_output(data)
    logger.debug(f"Probed {video_path.name}: {metadata.width}x{metadata.height}, {metadata.duration:.3f}s")
    return metadata


def parse_probe_output(data: dict) -> VideoMetadata:
    """Turn ffprobe's JSON into VideoMetadata

    The container duration is preferred; some encoders only set it per stream.
    """
    streams = data.get("streams") or []
    if not streams:
        raise Exception("ffprobe found no video stream")
    stream = streams[0]

    width = stream.get("width")
    height = stream.get("height")
    if not width or not height:
        raise Exception("ffprobe returned no video dimensions")

    duration_str = (data.get("format") or {}).get("duration") or stream.get("duration")
    if not duration_str:
        raise Exception("ffprobe returned empty duration")
    try:
        duration = float(duration_str)
    except (TypeError, ValueError) as e:
        raise Exception(f"Failed to parse video duration: {e}")
    if duration <= 0:
        raise Exception(f"Invalid duration: {duration}")

    return VideoMetadata(duration=duration, width=int(width), height=int(height))


def extract_frame(
    video_path: Path,
    output_path: Path,
    duration: Optional[float],
    width: Optional[int] = None,
    position: Optional[float] = None,
) -> Path:
    """Capture a single JPEG frame at `position` (fraction) of the video

    The frame is scaled to `width` pixels wide, keeping the aspect ratio.
    """
    width = width or settings.THUMBNAIL_WIDTH
    position = settings.THUMBNAIL_POSITION if position is None else position
    timestamp = max(0.0, (duration or 0.0) * position)

    cmd = [
        'ffmpeg',
        '-y',
        '-v', 'error',
        '-ss', f"{timestamp:.3f}",
        '-i', str(video_path),
        '-frames:v', '1',
        '-vf', f"scale={width}:-2",
        '-q:v', '3',
        str(output_path)
    ]

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=settings.FFMPEG_TIMEOUT
        )
    except FileNotFoundError:
        raise Exception("ffmpeg not found. Please install ffmpeg to enable thumbnail generation.")
    except subprocess.TimeoutExpired:
        raise Exception("ffmpeg timed out while generating thumbnail")

    if result.returncode != 0 or not output_path.exists():
        raise Exception(f"ffmpeg failed to generate thumbnail: {result.stderr.strip()}")

    return output_path
