"""Dispatch one single-format task group to the engine."""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..exceptions import EngineUnavailable, InvalidRequest
from ..models.preset import OutputFormat
from ..models.task import Task, TimeRange, get_output_path
from .engine import DispatchRequest, TranscodeEngine

logger = logging.getLogger(__name__)


def range_error(task: Task) -> Optional[str]:
    """
    Describe an invalid trim range on a task.

    Returns:
        Per-file error message, or None if the range is valid or absent.
    """
    if task.time_range is None:
        return None
    duration = task.metadata.duration_sec if task.metadata else 0.0
    if duration <= 0:
        # Unknown duration: only the ordering of the bounds can be checked
        duration = float("inf")
    bad = task.time_range.validate(duration)
    if bad == "start":
        return f"Invalid segment start time for {task.name}"
    if bad == "end":
        return f"Invalid segment end time for {task.name}"
    return None


class DispatchClient:
    """Builds engine requests from task groups. Never retries."""

    def __init__(self, engine: TranscodeEngine, output_dir: Union[str, Path]):
        self.engine = engine
        self.output_dir = Path(output_dir)

    def build_request(self, fmt: OutputFormat, tasks: Sequence[Task]) -> DispatchRequest:
        """Build the request for a group, keeping member order."""
        segments: List[Optional[TimeRange]] = [task.time_range for task in tasks]
        return DispatchRequest(
            input_paths=[str(task.input_path) for task in tasks],
            output_paths=[str(get_output_path(task, self.output_dir)) for task in tasks],
            format=fmt,
            segments=segments if any(s is not None for s in segments) else None,
        )

    async def submit(self, fmt: OutputFormat, tasks: Sequence[Task]) -> str:
        """
        Submit a group to the engine.

        Args:
            fmt: Output format shared by every task.
            tasks: Group members in dispatch order.

        Returns:
            Engine-issued group id.

        Raises:
            InvalidRequest: If a task has an invalid time range or the engine
                rejects the parameters or fails unexpectedly.
            EngineUnavailable: If the engine cannot be reached.
        """
        errors = [msg for msg in (range_error(task) for task in tasks) if msg]
        if errors:
            raise InvalidRequest("; ".join(errors))

        request = self.build_request(fmt, tasks)
        try:
            group_id = await self.engine.submit_group(request)
        except (EngineUnavailable, InvalidRequest):
            raise
        except OSError as e:
            raise EngineUnavailable(f"Engine unreachable: {e}") from e
        except Exception as e:
            logger.exception(f"Engine failed on {fmt.value} group")
            raise InvalidRequest(f"Engine error: {e}") from e

        logger.debug(f"Submitted {len(request)} task(s) as {fmt.value}: group {group_id}")
        return group_id
