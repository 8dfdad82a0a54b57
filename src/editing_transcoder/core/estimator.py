"""Output size and run time estimation."""

from dataclasses import dataclass
from statistics import mean
from typing import Iterable, Optional, Sequence

from ..models.preset import OutputFormat, PRESETS
from ..models.task import Task, TimeRange

BASELINE_PIXELS = 1920 * 1080
BYTES_PER_MB = 1_000_000
MB_PER_GB = 1000


@dataclass(frozen=True)
class SizeEstimate:
    """Projected output size range in megabytes. (0, 0) means unknown."""

    min_mb: float = 0.0
    max_mb: float = 0.0

    @property
    def is_unknown(self) -> bool:
        return self.min_mb == 0 and self.max_mb == 0

    def __add__(self, other: "SizeEstimate") -> "SizeEstimate":
        return SizeEstimate(self.min_mb + other.min_mb, self.max_mb + other.max_mb)


UNKNOWN = SizeEstimate()


def estimate_size(
    duration: Optional[float],
    width: Optional[int],
    height: Optional[int],
    fmt: OutputFormat,
    time_range: Optional[TimeRange] = None,
) -> SizeEstimate:
    """
    Estimate the output size of one file.

    Constant-rate formats scale the 1080p reference bitrate by pixel count.
    Variable-rate formats scale the measured MB-per-minute range the same way,
    giving a genuine min/max spread.

    Args:
        duration: Media duration in seconds.
        width: Frame width.
        height: Frame height.
        fmt: Output format.
        time_range: Optional trim range; its length replaces the full duration.

    Returns:
        Size range, or ``UNKNOWN`` when metadata is missing.
    """
    if not duration or not width or not height or duration <= 0:
        return UNKNOWN

    seconds = time_range.duration(duration) if time_range else duration
    factor = (width * height) / BASELINE_PIXELS
    info = PRESETS[fmt]

    if info.is_constant_bitrate:
        bits = info.bitrate_mbps * 1_000_000 * factor * seconds
        size_mb = bits / 8 / BYTES_PER_MB
        return SizeEstimate(size_mb, size_mb)

    low, high = info.mb_per_minute
    minutes = seconds / 60
    return SizeEstimate(low * factor * minutes, high * factor * minutes)


def estimate_task(task: Task, default_format: OutputFormat) -> SizeEstimate:
    """Estimate a task's output size from its probed metadata."""
    meta = task.metadata
    if meta is None:
        return UNKNOWN
    return estimate_size(
        meta.duration_sec,
        meta.video.width,
        meta.video.height,
        task.effective_format(default_format),
        task.time_range,
    )


def estimate_total(tasks: Iterable[Task], default_format: OutputFormat) -> SizeEstimate:
    """Sum of the known estimates; unknown tasks contribute nothing."""
    total = UNKNOWN
    for task in tasks:
        total = total + estimate_task(task, default_format)
    return total


def _format_mb(mb: float) -> str:
    if mb >= MB_PER_GB:
        return f"{mb / MB_PER_GB:.1f} GB"
    return f"{mb:.0f} MB"


def format_size(estimate: SizeEstimate) -> str:
    """Human-readable size. Unknown estimates never render as zero bytes."""
    if estimate.is_unknown:
        return "Unknown"
    if round(estimate.min_mb) == round(estimate.max_mb):
        return f"~{_format_mb(estimate.max_mb)}"
    if estimate.max_mb < MB_PER_GB:
        return f"~{estimate.min_mb:.0f}-{estimate.max_mb:.0f} MB"
    return f"~{_format_mb(estimate.min_mb)} - {_format_mb(estimate.max_mb)}"


def estimate_remaining_seconds(
    unfinished: int,
    finished_durations: Sequence[float],
) -> Optional[float]:
    """
    Coarse run time estimate.

    Args:
        unfinished: Number of tasks not yet terminal.
        finished_durations: Wall-clock seconds of the tasks finished so far.

    Returns:
        Seconds left, or None until at least one task has finished.
    """
    if unfinished <= 0:
        return 0.0
    if not finished_durations:
        return None
    return unfinished * mean(finished_durations)
