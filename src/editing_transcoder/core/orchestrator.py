"""Batch transcode orchestration."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..exceptions import EngineUnavailable, InvalidRequest, StateConflict, ValidationError
from ..models.config import AppConfig
from ..models.preset import OutputFormat
from ..models.task import Task, TaskStatus, mark_failed, reset, retarget
from .dispatch import DispatchClient, range_error
from .engine import EngineEvent, TranscodeEngine
from .estimator import estimate_remaining_seconds
from .grouper import TaskGroup, group_tasks
from .queue import TaskListener, TaskQueue
from .router import EventRouter

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Orchestrator run state."""

    IDLE = "idle"
    VALIDATING = "validating"
    DISPATCHING = "dispatching"
    RUNNING = "running"


@dataclass
class RunHandle:
    """One submitted run."""

    run_id: str
    task_ids: Tuple[str, ...]
    default_format: OutputFormat
    started_at: datetime = field(default_factory=datetime.now)
    aborted: bool = False
    outcome: Optional[str] = None  # "success" or "aborted" once finished
    group_ids: List[str] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.outcome is not None


@dataclass(frozen=True)
class AggregateStatus:
    """Counts over a run's tasks."""

    completed: int
    failed: int
    remaining: int
    estimated_seconds: Optional[float] = None

    @property
    def total(self) -> int:
        return self.completed + self.failed + self.remaining


class Orchestrator:
    """
    Coordinates validation, grouping, dispatch and event routing.

    All state lives on one asyncio event loop: dispatch calls are awaited one
    group at a time, engine events are applied synchronously as they arrive.
    """

    def __init__(
        self,
        engine: TranscodeEngine,
        output_dir: Union[str, Path],
        config: Optional[AppConfig] = None,
        queue: Optional[TaskQueue] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            engine: Transcoding engine to dispatch to.
            output_dir: Directory receiving output files.
            config: Application configuration (retry policy, default format).
            queue: Shared task queue; a new one is created if None.
        """
        self.config = config if config is not None else AppConfig()
        self.queue = queue if queue is not None else TaskQueue()
        self.engine = engine
        self.client = DispatchClient(engine, output_dir)
        self.router = EventRouter(self.queue, on_group_retired=self._on_group_retired)

        self._state = RunState.IDLE
        self._run: Optional[RunHandle] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._unsubscribe = engine.subscribe(self._on_engine_event)

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def current_run(self) -> Optional[RunHandle]:
        return self._run

    @property
    def default_format(self) -> OutputFormat:
        return self.config.output.format

    def _set_state(self, state: RunState) -> None:
        if state != self._state:
            logger.debug(f"Run state: {self._state.value} -> {state.value}")
        self._state = state
        if state == RunState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()

    # Engine events

    def _on_engine_event(self, event: EngineEvent) -> None:
        self.router.dispatch(event)

    def threadsafe_listener(self) -> Callable[[EngineEvent], None]:
        """Listener for engines that emit events from other threads."""
        loop = asyncio.get_running_loop()

        def listener(event: EngineEvent) -> None:
            loop.call_soon_threadsafe(self._on_engine_event, event)

        return listener

    def _on_group_retired(self, group_id: str) -> None:
        if self._state == RunState.RUNNING and not self.router.open_groups:
            self._finish_run()

    def _finish_run(self) -> None:
        run = self._run
        if run is not None and run.outcome is None:
            run.outcome = "aborted" if run.aborted else "success"
            status = self.query_aggregate(run)
            logger.info(
                f"Run {run.run_id[:8]} {run.outcome}: {status.completed} completed, "
                f"{status.failed} failed, {status.remaining} not transcoded"
            )
        self._set_state(RunState.IDLE)

    # Run lifecycle

    def validate(self, tasks: Sequence[Task]) -> None:
        """
        Check every task's time range.

        Raises:
            ValidationError: Listing every invalid file.
        """
        errors = [msg for msg in (range_error(task) for task in tasks) if msg]
        if errors:
            raise ValidationError(
                f"{len(errors)} file(s) have an invalid time range", errors
            )

    async def submit_run(
        self,
        tasks: Optional[Sequence[Task]] = None,
        default_format: Optional[OutputFormat] = None,
    ) -> RunHandle:
        """
        Validate, group and dispatch a run.

        Args:
            tasks: Tasks to transcode in queue order; the whole queue if None.
                Tasks not yet queued are added.
            default_format: Format for tasks without an override.

        Returns:
            Handle for querying and cancelling the run.

        Raises:
            StateConflict: If another run is active.
            ValidationError: If the task set is empty or a range is invalid.
        """
        if self._state != RunState.IDLE:
            raise StateConflict(f"Cannot start a run while {self._state.value}")

        default_format = default_format or self.default_format

        self._set_state(RunState.VALIDATING)
        try:
            selected = self.queue.tasks() if tasks is None else self._admit(tasks)
            if not selected:
                raise ValidationError("No files provided")
            for task in selected:
                if task.status == TaskStatus.IN_PROGRESS or self.queue.is_dispatched(task.id):
                    raise StateConflict(f"{task.name} is still being transcoded")
            self.validate(selected)
        except Exception:
            self._set_state(RunState.IDLE)
            raise

        selected = [self.queue.replace(retarget(reset(task), default_format)) for task in selected]
        run = RunHandle(
            run_id=str(uuid.uuid4()),
            task_ids=tuple(task.id for task in selected),
            default_format=default_format,
        )
        self._run = run
        logger.info(f"Run {run.run_id[:8]}: {len(selected)} file(s), default {default_format.value}")

        self._set_state(RunState.DISPATCHING)
        try:
            for group in group_tasks(selected, default_format):
                if run.aborted:
                    logger.info(f"Run {run.run_id[:8]} aborted, {len(group)} file(s) not dispatched")
                    continue
                await self._dispatch_group(run, group)
        except BaseException:
            # Includes cancellation of the caller; groups already registered keep running
            run.aborted = True
            self.queue.release(
                [task_id for task_id in run.task_ids if self.router.group_of(task_id) is None]
            )
            raise
        finally:
            self._set_state(RunState.RUNNING)
            if not self.router.open_groups:
                self._finish_run()
        return run

    def _admit(self, tasks: Sequence[Task]) -> List[Task]:
        """
        Queue the caller's tasks, one per input.

        A later duplicate of an input is dropped. A caller version that differs
        from the queued one replaces it, so edits made with ``update_config``
        are what gets dispatched.

        Raises:
            StateConflict: If a differing version is passed for a task that is
                still being transcoded.
        """
        admitted: Dict[str, Task] = {}
        for task in tasks:
            if task.id in admitted:
                logger.warning(f"Ignoring duplicate input: {task.name}")
                continue
            queued = self.queue.find(task.id)
            if queued is None:
                task = self.queue.add_task(task)
            elif queued is not task:
                if queued.status == TaskStatus.IN_PROGRESS or self.queue.is_dispatched(task.id):
                    raise StateConflict(f"{task.name} is still being transcoded")
                task = self.queue.replace(task)
            admitted[task.id] = task
        return list(admitted.values())

    async def _dispatch_group(self, run: RunHandle, group: TaskGroup) -> None:
        # Latest version of each member still queued
        members = [task for task in (self.queue.find(t.id) for t in group.tasks) if task is not None]
        if not members:
            return
        task_ids = [task.id for task in members]
        # Hold members against edits and removal while the call is in flight
        self.queue.mark_dispatched(task_ids)

        attempts = self.config.dispatch.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                group_id = await self.client.submit(group.format, members)
            except EngineUnavailable as e:
                if attempt < attempts and not run.aborted:
                    logger.warning(
                        f"Engine unavailable ({e}), retrying {group.format.value} group "
                        f"({attempt}/{attempts - 1})"
                    )
                    await asyncio.sleep(self.config.dispatch.retry_delay)
                    if not run.aborted:
                        continue
                    self.queue.release(task_ids)
                    return
                self.queue.release(task_ids)
                self._fail_group(members, group.format, str(e))
                return
            except InvalidRequest as e:
                self.queue.release(task_ids)
                self._fail_group(members, group.format, str(e))
                return

            # Register before awaiting anything else so no event can precede it
            self.router.register(group_id, task_ids)
            run.group_ids.append(group_id)
            return

    def _fail_group(self, members: Sequence[Task], fmt: OutputFormat, error: str) -> None:
        logger.error(f"Dispatch failed for {len(members)} {fmt.value} file(s): {error}")
        for task in members:
            self.queue.replace(mark_failed(self.queue.get(task.id), error))

    def cancel(self, run: Optional[RunHandle] = None) -> None:
        """
        Abort a run cooperatively.

        Groups not yet dispatched are skipped; files already handed to the
        engine keep running and their events are still applied.
        """
        run = run or self._run
        if run is None or run.finished:
            return
        run.aborted = True
        logger.info(f"Run {run.run_id[:8]} cancellation requested")

    async def wait(self, run: Optional[RunHandle] = None) -> RunHandle:
        """Wait until the orchestrator is idle again."""
        run = run or self._run
        await self._idle.wait()
        return run

    # Queries

    def query_aggregate(self, run: RunHandle) -> AggregateStatus:
        """Completed/failed/remaining counts for a run."""
        completed = failed = remaining = 0
        durations: List[float] = []
        for task_id in run.task_ids:
            task = self.queue.find(task_id)
            if task is None:
                # Removed from the queue after the run started
                continue
            if task.status == TaskStatus.COMPLETED:
                completed += 1
                if task.elapsed_time is not None:
                    durations.append(task.elapsed_time)
            elif task.status == TaskStatus.FAILED:
                failed += 1
            else:
                remaining += 1
        return AggregateStatus(
            completed=completed,
            failed=failed,
            remaining=remaining,
            estimated_seconds=estimate_remaining_seconds(remaining, durations),
        )

    def query_task(self, task_id: str) -> Task:
        """Current snapshot of a task."""
        return self.queue.get(task_id)

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        """Push channel for task changes."""
        return self.queue.subscribe(listener)

    def close(self) -> None:
        """Stop listening to the engine."""
        self._unsubscribe()
