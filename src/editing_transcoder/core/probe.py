"""Media metadata probing via ffprobe."""

import logging
from pathlib import Path
from typing import Optional, Union

import ffmpeg

from ..exceptions import MediaProbeError
from ..models.media import AudioStream, MediaMetadata, VideoStream

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {".mp4", ".mkv", ".avi", ".mov", ".mxf", ".webm", ".m4v", ".mts", ".m2ts"}


def bit_depth_from(stream: dict) -> int:
    """Bit depth from bits_per_raw_sample, else inferred from the pixel format."""
    raw = stream.get("bits_per_raw_sample")
    if raw:
        try:
            return int(raw)
        except (TypeError, ValueError):
            pass

    pix_fmt = stream.get("pix_fmt", "yuv420p")
    if pix_fmt.endswith(("10le", "10be")):
        return 10
    if pix_fmt.endswith(("12le", "12be")):
        return 12
    return 8


def chroma_from_pix_fmt(pix_fmt: str) -> str:
    if "422" in pix_fmt:
        return "4:2:2"
    if "444" in pix_fmt:
        return "4:4:4"
    return "4:2:0"


def parse_probe(probe: dict, file_path: str) -> MediaMetadata:
    """
    Build metadata from ``ffprobe -show_streams -show_format`` JSON.

    Raises:
        MediaProbeError: If the file has no video stream.
    """
    video = None
    audio = None
    for stream in probe.get("streams", []):
        codec_type = stream.get("codec_type")
        if codec_type == "video" and video is None:
            pix_fmt = stream.get("pix_fmt", "yuv420p")
            video = VideoStream(
                codec=stream.get("codec_name", "unknown"),
                width=int(stream.get("width") or 1920),
                height=int(stream.get("height") or 1080),
                framerate=stream.get("r_frame_rate", "25/1"),
                bit_depth=bit_depth_from(stream),
                pix_fmt=pix_fmt,
                chroma_subsampling=chroma_from_pix_fmt(pix_fmt),
            )
        elif codec_type == "audio" and audio is None:
            audio = AudioStream(
                codec=stream.get("codec_name", "unknown"),
                sample_rate=int(stream.get("sample_rate") or 48000),
                channels=int(stream.get("channels") or 2),
            )

    if video is None:
        raise MediaProbeError(f"No video stream found in {Path(file_path).name}")

    try:
        duration = float(probe.get("format", {}).get("duration") or 0)
    except (TypeError, ValueError):
        duration = 0.0

    return MediaMetadata(file_path=file_path, duration_sec=duration, video=video, audio=audio)


def probe_media(path: Union[str, Path], ffprobe_bin: Optional[str] = None) -> MediaMetadata:
    """
    Read media metadata with ffprobe.

    Args:
        path: Media file path.
        ffprobe_bin: ffprobe executable (default: ``ffprobe`` on PATH).

    Returns:
        Parsed metadata.

    Raises:
        MediaProbeError: If ffprobe fails or the file has no video stream.
    """
    path = Path(path)
    if not path.exists():
        raise MediaProbeError(f"Video file not found: {path}")

    try:
        probe = ffmpeg.probe(str(path), cmd=ffprobe_bin or "ffprobe")
    except ffmpeg.Error as e:
        error_msg = e.stderr.decode(errors="replace") if e.stderr else str(e)
        raise MediaProbeError(f"Failed to read media info: {error_msg}") from e
    except FileNotFoundError as e:
        raise MediaProbeError("ffprobe not found in system PATH") from e

    metadata = parse_probe(probe, str(path))
    logger.debug(
        f"Probed {path.name}: {metadata.duration_sec:.1f}s {metadata.resolution} {metadata.video.codec}"
    )
    return metadata
