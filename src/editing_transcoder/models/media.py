"""Media metadata model."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class VideoStream:
    """Primary video stream properties."""

    codec: str
    width: int
    height: int
    framerate: str  # kept as "30000/1001" for exactness
    bit_depth: int = 8
    pix_fmt: str = "yuv420p"
    chroma_subsampling: str = "4:2:0"


@dataclass(frozen=True)
class AudioStream:
    """Primary audio stream properties."""

    codec: str
    sample_rate: int = 48000
    channels: int = 2


@dataclass(frozen=True)
class MediaMetadata:
    """Metadata extracted from a media file via ffprobe."""

    file_path: str
    duration_sec: float  # 0.0 if unknown
    video: VideoStream
    audio: Optional[AudioStream] = None

    @property
    def resolution(self) -> str:
        return f"{self.video.width}x{self.video.height}"
