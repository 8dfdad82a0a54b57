"""Task data model.

Tasks are immutable. Every transition below returns a new ``Task`` built with
``dataclasses.replace`` so readers holding an older version never observe a
half-applied update.
"""

import re
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..exceptions import StateConflict
from .media import MediaMetadata
from .preset import OutputFormat, output_naming

INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')


class TaskStatus(Enum):
    """Task status enum."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (TaskStatus.COMPLETED, TaskStatus.FAILED)


@dataclass(frozen=True)
class TimeRange:
    """Trim range in seconds, ``end=None`` means end of media."""

    start: float
    end: Optional[float] = None

    def duration(self, media_duration: float) -> float:
        """Length of the range, clamped to the media end."""
        end = self.end if self.end is not None else media_duration
        return max(0.0, min(end, media_duration) - self.start)

    def validate(self, media_duration: float) -> Optional[str]:
        """
        Check the range against a media duration.

        Returns:
            ``"start"`` or ``"end"`` naming the bad bound, None if valid.
        """
        if self.start < 0 or self.start >= media_duration:
            return "start"
        if self.end is not None and self.end <= self.start:
            return "end"
        return None


@dataclass(frozen=True)
class TaskProgress:
    """Last known progress snapshot."""

    percent: float
    elapsed_time: str = "00:00:00.00"
    fps: Optional[float] = None


@dataclass(frozen=True)
class Task:
    """One file's transcode unit."""

    id: str
    input_path: Path
    output_base_name: str
    output_suffix: str
    output_extension: str

    format: Optional[OutputFormat] = None
    time_range: Optional[TimeRange] = None
    metadata: Optional[MediaMetadata] = None

    status: TaskStatus = TaskStatus.PENDING
    progress: Optional[TaskProgress] = None
    error: Optional[str] = None

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.input_path.name

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def output_file_name(self) -> str:
        return f"{self.output_base_name}{self.output_suffix}{self.output_extension}"

    @property
    def elapsed_time(self) -> Optional[float]:
        """Get elapsed time in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def effective_format(self, default_format: OutputFormat) -> OutputFormat:
        return self.format or default_format


def sanitize_base_name(name: str) -> str:
    """Strip characters that are not valid in file names."""
    return INVALID_FILENAME_CHARS.sub("", name).strip()


def create_task(
    input_path: Union[str, Path],
    default_format: OutputFormat,
    metadata: Optional[MediaMetadata] = None,
    output_base_name: Optional[str] = None,
    time_range: Optional[TimeRange] = None,
    format: Optional[OutputFormat] = None,
) -> Task:
    """
    Create a pending task for an input file.

    Args:
        input_path: Source file, also used as the task id.
        default_format: Run-wide default format.
        metadata: Probed media metadata, if known.
        output_base_name: Output name without suffix/extension. Defaults to the input stem.
        time_range: Optional trim range.
        format: Optional per-task format override.

    Returns:
        New task in ``PENDING`` state.
    """
    input_path = Path(input_path).absolute()
    suffix, extension = output_naming(format or default_format)
    base_name = sanitize_base_name(output_base_name or "") or input_path.stem
    return Task(
        id=str(input_path),
        input_path=input_path,
        output_base_name=base_name,
        output_suffix=suffix,
        output_extension=extension,
        format=format,
        time_range=time_range,
        metadata=metadata,
    )


_UNSET = object()


def update_config(
    task: Task,
    default_format: OutputFormat,
    output_base_name: Optional[str] = None,
    format=_UNSET,
    time_range=_UNSET,
) -> Task:
    """
    Apply a user edit to a pending task.

    ``format`` and ``time_range`` accept None to clear the override or range;
    leaving them out keeps the current value.

    Raises:
        StateConflict: If the task is not pending.
    """
    if task.status != TaskStatus.PENDING:
        raise StateConflict(
            f"Cannot edit {task.name}: task is {task.status.value}, not pending"
        )

    changes = {}
    if output_base_name is not None:
        base_name = sanitize_base_name(output_base_name)
        if base_name:
            changes["output_base_name"] = base_name
    if format is not _UNSET:
        changes["format"] = format
    if time_range is not _UNSET:
        changes["time_range"] = time_range

    updated = replace(task, **changes)
    return retarget(updated, default_format)


def retarget(task: Task, default_format: OutputFormat) -> Task:
    """Recompute suffix and extension from the task's effective format."""
    suffix, extension = output_naming(task.effective_format(default_format))
    if (suffix, extension) == (task.output_suffix, task.output_extension):
        return task
    return replace(task, output_suffix=suffix, output_extension=extension)


def mark_started(task: Task) -> Task:
    """Move a pending task to ``IN_PROGRESS``."""
    if task.status == TaskStatus.IN_PROGRESS:
        return task
    if task.status != TaskStatus.PENDING:
        raise StateConflict(f"Cannot start {task.name}: task is {task.status.value}")
    return replace(
        task,
        status=TaskStatus.IN_PROGRESS,
        progress=TaskProgress(percent=0.0),
        started_at=datetime.now(),
    )


def apply_progress(
    task: Task,
    percent: float,
    fps: Optional[float] = None,
    elapsed_time: str = "00:00:00.00",
) -> Task:
    """Record a progress tick on an in-progress task."""
    if task.status != TaskStatus.IN_PROGRESS:
        raise StateConflict(
            f"Cannot apply progress to {task.name}: task is {task.status.value}"
        )
    percent = min(100.0, max(0.0, float(percent)))
    return replace(
        task,
        progress=TaskProgress(percent=percent, elapsed_time=elapsed_time, fps=fps),
    )


def mark_completed(task: Task) -> Task:
    """
    Mark an in-progress task completed.

    Progress is pinned to 100% because the engine may exit without a final
    progress tick. A second completion is a no-op.
    """
    if task.status == TaskStatus.COMPLETED:
        return task
    if task.status != TaskStatus.IN_PROGRESS:
        raise StateConflict(f"Cannot complete {task.name}: task is {task.status.value}")

    last = task.progress or TaskProgress(percent=0.0)
    return replace(
        task,
        status=TaskStatus.COMPLETED,
        progress=replace(last, percent=100.0),
        completed_at=datetime.now(),
    )


def mark_failed(task: Task, error: Optional[str] = None) -> Task:
    """Mark a task failed, keeping its last progress snapshot."""
    if task.status == TaskStatus.FAILED:
        return task
    if task.status == TaskStatus.COMPLETED:
        raise StateConflict(f"Cannot fail {task.name}: task already completed")
    return replace(
        task,
        status=TaskStatus.FAILED,
        error=error,
        completed_at=datetime.now(),
    )


def reset(task: Task) -> Task:
    """Return a task to ``PENDING`` for a new run."""
    if task.status == TaskStatus.IN_PROGRESS:
        raise StateConflict(f"Cannot reset {task.name}: task is in progress")
    if task.status == TaskStatus.PENDING and task.progress is None and task.error is None:
        return task
    return replace(
        task,
        status=TaskStatus.PENDING,
        progress=None,
        error=None,
        started_at=None,
        completed_at=None,
    )


def get_output_path(task: Task, output_dir: Union[str, Path]) -> Path:
    """Full output path for a task."""
    return Path(output_dir) / task.output_file_name
