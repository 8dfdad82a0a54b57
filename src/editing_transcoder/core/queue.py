"""Task queue holding the active task set."""

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from ..exceptions import StateConflict
from ..models.media import MediaMetadata
from ..models.preset import OutputFormat
from ..models.task import (
    Task,
    TaskStatus,
    TimeRange,
    create_task,
    retarget,
    update_config,
)

logger = logging.getLogger(__name__)

TaskListener = Callable[[Optional[Task], Optional[Task]], None]


class TaskQueue:
    """
    Ordered task set with a push channel.

    Tasks are replaced, never mutated: every change installs a new ``Task``
    version and notifies listeners with ``(old, new)``. ``old`` is None for
    additions, ``new`` is None for removals.
    """

    def __init__(self):
        self._tasks: Dict[str, Task] = {}
        self._dispatched: Set[str] = set()
        self._listeners: List[TaskListener] = []

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def tasks(self) -> List[Task]:
        """Get tasks in queue order."""
        return list(self._tasks.values())

    def get(self, task_id: str) -> Task:
        """
        Get the current version of a task.

        Raises:
            KeyError: If the task is not queued.
        """
        return self._tasks[task_id]

    def find(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        """Register a listener for task changes; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, old: Optional[Task], new: Optional[Task]) -> None:
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception:
                logger.exception("Task listener failed")

    def add_task(self, task: Task) -> Task:
        """Add a task; an input already queued returns the existing task."""
        existing = self._tasks.get(task.id)
        if existing is not None:
            logger.debug(f"Already queued: {task.name}")
            return existing
        self._tasks[task.id] = task
        logger.debug(f"Task added: {task.name}")
        self._notify(None, task)
        return task

    def add_file(
        self,
        input_path: Union[str, Path],
        default_format: OutputFormat,
        metadata: Optional[MediaMetadata] = None,
        **options,
    ) -> Task:
        """
        Add a file to the queue.

        Args:
            input_path: Source file.
            default_format: Run-wide default format.
            metadata: Probed media metadata.
            **options: ``output_base_name``, ``time_range`` or ``format``.

        Returns:
            The queued task.
        """
        return self.add_task(create_task(input_path, default_format, metadata, **options))

    def replace(self, task: Task) -> Task:
        """Install a new version of a queued task."""
        old = self._tasks.get(task.id)
        if old is None:
            raise KeyError(task.id)
        if old is task:
            return task
        self._tasks[task.id] = task
        self._notify(old, task)
        return task

    def update(self, task_id: str, default_format: OutputFormat, **changes) -> Task:
        """
        Edit a pending task's name, format override or time range.

        Raises:
            StateConflict: If the task is not pending or already dispatched.
        """
        task = self.get(task_id)
        if task_id in self._dispatched:
            raise StateConflict(f"Cannot edit {task.name}: task has been dispatched")
        return self.replace(update_config(task, default_format, **changes))

    def apply_range_to_all(
        self,
        time_range: Optional[TimeRange],
        default_format: OutputFormat,
    ) -> int:
        """
        Set the same time range on every editable task.

        Returns:
            Number of tasks updated.
        """
        count = 0
        for task in self.tasks():
            if task.status != TaskStatus.PENDING or task.id in self._dispatched:
                continue
            self.replace(update_config(task, default_format, time_range=time_range))
            count += 1
        return count

    def retarget_all(self, default_format: OutputFormat) -> None:
        """Recompute output naming after the default format changed."""
        for task in self.tasks():
            if task.status == TaskStatus.PENDING and task.format is None:
                self.replace(retarget(task, default_format))

    def remove(self, task_id: str) -> Task:
        """
        Remove a task from the queue.

        Raises:
            StateConflict: If the task is in progress or part of an open group.
        """
        task = self.get(task_id)
        if task.status == TaskStatus.IN_PROGRESS or task_id in self._dispatched:
            raise StateConflict(f"Cannot remove {task.name}: transcode in progress")
        del self._tasks[task_id]
        logger.debug(f"Task removed: {task.name}")
        self._notify(task, None)
        return task

    def mark_dispatched(self, task_ids: Iterable[str]) -> None:
        self._dispatched.update(task_ids)

    def release(self, task_ids: Iterable[str]) -> None:
        self._dispatched.difference_update(task_ids)

    def is_dispatched(self, task_id: str) -> bool:
        return task_id in self._dispatched

    def _count(self, status: TaskStatus) -> int:
        return sum(1 for t in self._tasks.values() if t.status == status)

    @property
    def pending_count(self) -> int:
        """Get number of pending tasks."""
        return self._count(TaskStatus.PENDING)

    @property
    def in_progress_count(self) -> int:
        """Get number of in-progress tasks."""
        return self._count(TaskStatus.IN_PROGRESS)

    @property
    def completed_count(self) -> int:
        """Get number of completed tasks."""
        return self._count(TaskStatus.COMPLETED)

    @property
    def failed_count(self) -> int:
        """Get number of failed tasks."""
        return self._count(TaskStatus.FAILED)
