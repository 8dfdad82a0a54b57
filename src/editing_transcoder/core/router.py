"""Route position-addressed engine events back to tasks."""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..exceptions import StateConflict, UnknownEvent
from ..models.task import (
    Task,
    TaskStatus,
    apply_progress,
    mark_completed,
    mark_failed,
    mark_started,
)
from .engine import CompletedEvent, EngineEvent, FailedEvent, ProgressEvent
from .queue import TaskQueue

logger = logging.getLogger(__name__)


class EventRouter:
    """
    Resolves ``(group_id, position)`` to a task and applies the transition.

    Each registered group keeps the exact member order it was submitted with;
    positions index into that tuple. Events for unknown groups are stale
    leftovers of a superseded run and are dropped.
    """

    def __init__(
        self,
        queue: TaskQueue,
        on_group_retired: Optional[Callable[[str], None]] = None,
    ):
        self.queue = queue
        self.on_group_retired = on_group_retired
        self._groups: Dict[str, Tuple[str, ...]] = {}
        self._task_group: Dict[str, str] = {}

    def register(self, group_id: str, task_ids: Sequence[str]) -> None:
        """
        Track a dispatched group.

        Raises:
            StateConflict: If the group id is already open or a member belongs
                to another open group.
        """
        if group_id in self._groups:
            raise StateConflict(f"Group {group_id} is already registered")
        members = tuple(task_ids)
        for task_id in members:
            if task_id in self._task_group:
                raise StateConflict(f"Task {task_id} already belongs to an open group")

        self._groups[group_id] = members
        for task_id in members:
            self._task_group[task_id] = group_id
        self.queue.mark_dispatched(members)
        logger.debug(f"Registered group {group_id} with {len(members)} member(s)")

    def is_open(self, group_id: str) -> bool:
        return group_id in self._groups

    @property
    def open_groups(self) -> List[str]:
        return list(self._groups)

    def group_of(self, task_id: str) -> Optional[str]:
        return self._task_group.get(task_id)

    def members(self, group_id: str) -> Tuple[str, ...]:
        return self._groups[group_id]

    def _resolve(self, group_id: str, position: int) -> Task:
        """
        Find the task an event is addressed to.

        Raises:
            UnknownEvent: If the group is not open, the position is out of
                range or the task was removed from the queue.
        """
        members = self._groups.get(group_id)
        if members is None:
            raise UnknownEvent(f"Unknown group {group_id}")
        if not 0 <= position < len(members):
            raise UnknownEvent(f"Group {group_id} has no member at position {position}")
        task = self.queue.find(members[position])
        if task is None:
            raise UnknownEvent(f"Task {members[position]} is no longer queued")
        return task

    def dispatch(self, event: EngineEvent) -> None:
        """Route any engine event; stale events are logged and dropped."""
        try:
            if isinstance(event, ProgressEvent):
                self.on_progress(
                    event.group_id, event.position, event.percent, event.fps, event.elapsed_time
                )
            elif isinstance(event, CompletedEvent):
                self.on_completed(event.group_id, event.position)
            elif isinstance(event, FailedEvent):
                self.on_failed(event.group_id, event.position, event.error)
            else:
                logger.warning(f"Ignoring unrecognized engine event: {event!r}")
        except UnknownEvent as e:
            logger.debug(f"Dropping event: {e}")

    def on_progress(
        self,
        group_id: str,
        position: int,
        percent: float,
        fps: Optional[float] = None,
        elapsed_time: str = "00:00:00.00",
    ) -> None:
        task = self._resolve(group_id, position)
        if task.is_terminal:
            logger.debug(f"Dropping progress for finished task {task.name}")
            return
        updated = apply_progress(mark_started(task), percent, fps, elapsed_time)
        self.queue.replace(updated)

    def on_completed(self, group_id: str, position: int) -> None:
        task = self._resolve(group_id, position)
        if task.status == TaskStatus.FAILED:
            logger.warning(f"Ignoring completion for failed task {task.name}")
            return
        if task.status != TaskStatus.COMPLETED:
            self.queue.replace(mark_completed(mark_started(task)))
            logger.info(f"Completed: {task.name}")
        self._check_retired(group_id)

    def on_failed(self, group_id: str, position: int, error: Optional[str] = None) -> None:
        task = self._resolve(group_id, position)
        if task.status == TaskStatus.COMPLETED:
            logger.warning(f"Ignoring failure for completed task {task.name}")
            return
        if task.status != TaskStatus.FAILED:
            self.queue.replace(mark_failed(mark_started(task), error))
            logger.error(f"Failed: {task.name}" + (f" - {error}" if error else ""))
        self._check_retired(group_id)

    def _check_retired(self, group_id: str) -> None:
        members = self._groups.get(group_id)
        if members is None:
            return
        for task_id in members:
            task = self.queue.find(task_id)
            if task is not None and not task.is_terminal:
                return

        del self._groups[group_id]
        for task_id in members:
            self._task_group.pop(task_id, None)
        self.queue.release(members)
        logger.debug(f"Group {group_id} retired")

        if self.on_group_retired:
            self.on_group_retired(group_id)

    def clear(self) -> None:
        """Forget every open group."""
        for members in self._groups.values():
            self.queue.release(members)
        self._groups.clear()
        self._task_group.clear()
