"""Partition tasks into single-format dispatch groups."""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from ..models.preset import OutputFormat
from ..models.task import Task


@dataclass(frozen=True)
class TaskGroup:
    """Tasks sharing one effective output format, in queue order."""

    format: OutputFormat
    tasks: Tuple[Task, ...]

    def __len__(self) -> int:
        return len(self.tasks)


def group_tasks(tasks: Sequence[Task], default_format: OutputFormat) -> List[TaskGroup]:
    """
    Group tasks by effective format.

    The engine accepts one format per dispatch call and addresses events by
    position, so the split must keep the relative queue order inside each
    group. Groups are ordered by the first appearance of their format.

    Args:
        tasks: Tasks in queue order.
        default_format: Format used by tasks without an override.

    Returns:
        Ordered list of groups.
    """
    buckets: Dict[OutputFormat, List[Task]] = {}
    for task in tasks:
        buckets.setdefault(task.effective_format(default_format), []).append(task)
    return [TaskGroup(fmt, tuple(members)) for fmt, members in buckets.items()]
