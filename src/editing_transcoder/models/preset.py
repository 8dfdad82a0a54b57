"""Output format presets."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from ..exceptions import ConfigError


class OutputFormat(Enum):
    """Output format enum, values are the wire names."""

    PRORES_422 = "ProRes422"
    PRORES_422_LT = "ProRes422LT"
    PRORES_422_PROXY = "ProRes422Proxy"
    DNXHR_HQX = "DnxHRHQX"
    H264_CRF18 = "H264Crf18"

    @classmethod
    def parse(cls, value: Union[str, "OutputFormat"]) -> "OutputFormat":
        """Parse a wire name (case-insensitive) into a format."""
        if isinstance(value, OutputFormat):
            return value
        for fmt in cls:
            if fmt.value.lower() == str(value).strip().lower():
                return fmt
        names = ", ".join(f.value for f in cls)
        raise ConfigError(f"Unknown output format: {value}. Available formats: {names}")

    @property
    def info(self) -> "PresetInfo":
        return PRESETS[self]


@dataclass(frozen=True)
class PresetInfo:
    """Naming, size and encoder parameters of one output format."""

    display_name: str
    description: str
    suffix: str
    extension: str
    bitrate_mbps: float  # at 1080p
    # Measured MB per minute at 1080p (low, high); None for constant-rate codecs
    mb_per_minute: Optional[Tuple[float, float]] = None
    ffmpeg_args: Dict[str, str] = field(default_factory=dict)

    @property
    def is_constant_bitrate(self) -> bool:
        return self.mb_per_minute is None


PRESETS: Dict[OutputFormat, PresetInfo] = {
    OutputFormat.PRORES_422: PresetInfo(
        display_name="ProRes 422",
        description="ProRes, 10-bit, 4:2:2, PCM",
        suffix="_prores",
        extension=".mov",
        bitrate_mbps=147,
        ffmpeg_args={
            "vcodec": "prores_ks",
            "profile:v": "3",
            "vendor": "ap10",
            "pix_fmt": "yuv422p10le",
            "acodec": "pcm_s16le",
        },
    ),
    OutputFormat.PRORES_422_LT: PresetInfo(
        display_name="ProRes 422 LT",
        description="ProRes, 10-bit, 4:2:2, PCM",
        suffix="_proreslt",
        extension=".mov",
        bitrate_mbps=102,
        ffmpeg_args={
            "vcodec": "prores_ks",
            "profile:v": "1",
            "vendor": "ap10",
            "pix_fmt": "yuv422p10le",
            "acodec": "pcm_s16le",
        },
    ),
    OutputFormat.PRORES_422_PROXY: PresetInfo(
        display_name="ProRes 422 Proxy",
        description="ProRes, 8-bit, 4:2:0, AAC 320kbps",
        suffix="_proxy",
        extension=".mov",
        bitrate_mbps=36,
        ffmpeg_args={
            "vcodec": "prores_ks",
            "profile:v": "0",
            "vendor": "ap10",
            "acodec": "aac",
            "b:a": "320k",
        },
    ),
    OutputFormat.DNXHR_HQX: PresetInfo(
        display_name="DNxHR HQX",
        description="DNxHR, 10-bit, 4:2:2, PCM",
        suffix="_dnxhr",
        extension=".mov",
        bitrate_mbps=295,
        ffmpeg_args={
            "vcodec": "dnxhd",
            "profile:v": "dnxhr_hqx",
            "pix_fmt": "yuv422p10le",
            "acodec": "pcm_s16le",
        },
    ),
    OutputFormat.H264_CRF18: PresetInfo(
        display_name="H.264 CRF 18",
        description="H.264, 8-bit, 4:2:0, AAC 320kbps",
        suffix="_h264",
        extension=".mp4",
        bitrate_mbps=25,  # nominal, CRF output varies with content
        mb_per_minute=(60.0, 190.0),
        ffmpeg_args={
            "vcodec": "libx264",
            "crf": "18",
            "pix_fmt": "yuv420p",
            "acodec": "aac",
            "b:a": "320k",
        },
    ),
}


def output_naming(fmt: OutputFormat) -> Tuple[str, str]:
    """Get (suffix, extension) for a format."""
    info = PRESETS[fmt]
    return info.suffix, info.extension
