"""Timecode helpers."""

from typing import Optional

from ..models.task import TimeRange


def seconds_to_timecode(seconds: float) -> str:
    """Convert seconds to HH:MM:SS."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def timecode_to_seconds(timecode: str) -> Optional[int]:
    """Parse HH:MM:SS into seconds, None if malformed."""
    parts = timecode.strip().split(":")
    if len(parts) != 3:
        return None
    try:
        hours, minutes, secs = (int(p) for p in parts)
    except ValueError:
        return None
    if hours < 0 or not 0 <= minutes < 60 or not 0 <= secs < 60:
        return None
    return hours * 3600 + minutes * 60 + secs


def format_segment_suffix(time_range: Optional[TimeRange]) -> str:
    """File name suffix for a trim range, e.g. ``_0105-0230`` or ``_0105-end``."""
    if time_range is None:
        return ""

    def mmss(sec: float) -> str:
        minutes, secs = divmod(int(sec), 60)
        return f"{minutes:02d}{secs:02d}"

    end = mmss(time_range.end) if time_range.end is not None else "end"
    return f"_{mmss(time_range.start)}-{end}"
