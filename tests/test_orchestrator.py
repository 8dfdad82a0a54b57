import asyncio

import pytest

from editing_transcoder.core.engine import CompletedEvent, FailedEvent, ProgressEvent
from editing_transcoder.core.orchestrator import Orchestrator, RunState
from editing_transcoder.exceptions import EngineUnavailable, StateConflict, ValidationError
from editing_transcoder.models.preset import OutputFormat
from editing_transcoder.models.task import TaskStatus, TimeRange, update_config

from conftest import FakeEngine, make_task

PRORES = OutputFormat.PRORES_422
H264 = OutputFormat.H264_CRF18


def test_mixed_formats_dispatch_failure_isolated(queue, config):
    engine = FakeEngine(failures={H264: [EngineUnavailable("engine down")]})
    a, b, c = make_task("a.mp4"), make_task("b.mp4", fmt=H264), make_task("c.mp4")

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        run = await orch.submit_run([a, b, c], PRORES)

        assert orch.state == RunState.RUNNING
        assert queue.get(b.id).status == TaskStatus.FAILED
        assert queue.get(b.id).error == "engine down"

        request = engine.requests[0]
        assert request.format == PRORES
        assert request.input_paths == [str(a.input_path), str(c.input_path)]
        assert request.output_paths == ["/out/a_prores.mov", "/out/c_prores.mov"]
        assert request.segments is None

        engine.emit(ProgressEvent("group-1", 1, 50.0))
        assert queue.get(c.id).status == TaskStatus.IN_PROGRESS
        assert queue.get(a.id).status == TaskStatus.PENDING

        engine.emit(CompletedEvent("group-1", 0))
        engine.emit(CompletedEvent("group-1", 1))
        await asyncio.wait_for(orch.wait(run), timeout=1)
        return orch, run

    orch, run = asyncio.run(scenario())

    assert orch.state == RunState.IDLE
    assert run.outcome == "success"
    status = orch.query_aggregate(run)
    assert (status.completed, status.failed, status.remaining) == (2, 1, 0)
    assert status.estimated_seconds == 0.0


def test_invalid_range_rejects_whole_run(queue, config, engine):
    good = make_task("good.mp4")
    bad = make_task("bad.mp4", duration=60, time_range=TimeRange(90, None))

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        with pytest.raises(ValidationError) as exc_info:
            await orch.submit_run([good, bad], PRORES)
        return orch, exc_info.value

    orch, error = asyncio.run(scenario())

    assert error.errors == ["Invalid segment start time for bad.mp4"]
    assert engine.requests == []
    assert orch.state == RunState.IDLE
    assert queue.get(good.id).status == TaskStatus.PENDING


def test_end_before_start_is_reported(queue, config, engine):
    task = make_task("clip.mp4", time_range=TimeRange(30, 10))

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        await orch.submit_run([task], PRORES)

    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.errors == ["Invalid segment end time for clip.mp4"]


def test_empty_run_rejected(queue, config, engine):
    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        await orch.submit_run([], PRORES)

    with pytest.raises(ValidationError, match="No files provided"):
        asyncio.run(scenario())


def test_segments_sent_with_trimmed_members(queue, config, engine):
    a = make_task("a.mp4", time_range=TimeRange(5, 65))
    b = make_task("b.mp4")

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        await orch.submit_run([a, b], PRORES)

    asyncio.run(scenario())

    assert engine.requests[0].segments == [TimeRange(5, 65), None]


def test_engine_unavailable_is_retried(queue, config):
    config.dispatch.max_retries = 2
    engine = FakeEngine(failures={PRORES: [EngineUnavailable("busy")]})
    task = make_task()

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        return await orch.submit_run([task], PRORES)

    run = asyncio.run(scenario())

    assert len(engine.requests) == 2
    assert run.group_ids == ["group-1"]
    assert queue.get(task.id).status == TaskStatus.PENDING
    assert queue.is_dispatched(task.id)


def test_submit_while_running_conflicts(queue, config, engine):
    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        await orch.submit_run([make_task("a.mp4")], PRORES)
        await orch.submit_run([make_task("b.mp4")], PRORES)

    with pytest.raises(StateConflict):
        asyncio.run(scenario())


def test_cancel_skips_undispatched_groups(queue, config, engine):
    a, b = make_task("a.mp4"), make_task("b.mp4", fmt=H264)

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        engine.on_submit = lambda request: orch.cancel()
        run = await orch.submit_run([a, b], PRORES)

        assert len(engine.requests) == 1
        engine.emit(FailedEvent("group-1", 0, "exit 1"))
        await asyncio.wait_for(orch.wait(run), timeout=1)
        return orch, run

    orch, run = asyncio.run(scenario())

    assert run.outcome == "aborted"
    assert queue.get(b.id).status == TaskStatus.PENDING
    status = orch.query_aggregate(run)
    assert (status.completed, status.failed, status.remaining) == (0, 1, 1)
    assert status.estimated_seconds is None


def test_stale_events_from_previous_run_are_ignored(queue, config, engine):
    task = make_task()

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        first = await orch.submit_run([task], PRORES)
        engine.emit(CompletedEvent("group-1", 0))
        await orch.wait(first)

        second = await orch.submit_run(default_format=PRORES)
        assert queue.get(task.id).status == TaskStatus.PENDING

        engine.emit(ProgressEvent("group-1", 0, 99.0))
        assert queue.get(task.id).status == TaskStatus.PENDING

        engine.emit(CompletedEvent("group-2", 0))
        await orch.wait(second)
        return second

    second = asyncio.run(scenario())

    assert second.outcome == "success"
    assert queue.get(task.id).status == TaskStatus.COMPLETED


def test_rerun_retargets_to_new_default(queue, config, engine):
    task = make_task()

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        await orch.submit_run([task], H264)

    asyncio.run(scenario())

    assert engine.requests[0].output_paths == ["/out/clip_h264.mp4"]
    assert queue.get(task.id).output_file_name == "clip_h264.mp4"


def test_query_task_and_subscribe(queue, config, engine):
    task = make_task()
    changes = []

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        orch.subscribe(lambda old, new: changes.append(new.status))
        await orch.submit_run([task], PRORES)
        engine.emit(ProgressEvent("group-1", 0, 10.0))
        engine.emit(CompletedEvent("group-1", 0))
        return orch

    orch = asyncio.run(scenario())

    assert orch.query_task(task.id).status == TaskStatus.COMPLETED
    assert changes == [
        TaskStatus.PENDING,
        TaskStatus.IN_PROGRESS,
        TaskStatus.COMPLETED,
    ]


def test_orchestrator_uses_callers_empty_queue(queue, config, engine):
    orch = Orchestrator(engine, "/out", config, queue)

    assert len(queue) == 0
    assert orch.queue is queue


def test_repeated_input_is_dispatched_once(queue, config, engine):
    a = make_task("a.mp4")

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        return await orch.submit_run([a, make_task("b.mp4"), a], PRORES)

    run = asyncio.run(scenario())

    assert engine.requests[0].input_paths == [str(a.input_path), "/media/b.mp4"]
    assert len(run.task_ids) == 2
    assert len(queue) == 2


def test_edited_version_replaces_queued_task(queue, config, engine):
    a = queue.add_task(make_task("a.mp4"))
    edited = update_config(a, PRORES, format=H264, output_base_name="intro")

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        await orch.submit_run([edited], PRORES)

    asyncio.run(scenario())

    request = engine.requests[0]
    assert request.format == H264
    assert request.output_paths == ["/out/intro_h264.mp4"]
    assert queue.get(a.id).format == H264


def test_edited_version_of_dispatched_task_conflicts(queue, config, engine):
    a = make_task("a.mp4")

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        await orch.submit_run([a], PRORES)
        second = Orchestrator(FakeEngine(), "/out", config, queue)
        with pytest.raises(StateConflict):
            await second.submit_run([update_config(a, PRORES, format=H264)], PRORES)
        return second

    second = asyncio.run(scenario())

    assert second.state == RunState.IDLE
    assert queue.get(a.id).format is None


def test_unexpected_engine_error_fails_group_and_returns_idle(queue, config):
    engine = FakeEngine(failures={PRORES: [RuntimeError("boom")]})
    a, b = make_task("a.mp4"), make_task("b.mp4", fmt=H264)

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        run = await orch.submit_run([a, b], PRORES)
        assert orch.state == RunState.RUNNING
        engine.emit(CompletedEvent("group-1", 0))
        await asyncio.wait_for(orch.wait(run), timeout=1)

        again = await orch.submit_run([a], PRORES)
        return orch, again

    orch, again = asyncio.run(scenario())

    assert queue.get(b.id).status == TaskStatus.COMPLETED
    assert queue.get(a.id).status == TaskStatus.PENDING
    assert again.group_ids == ["group-2"]
    assert orch.state == RunState.RUNNING


def test_cancelled_dispatch_releases_locks_and_returns_idle(queue, config, engine):
    a = make_task("a.mp4")

    def interrupt(request):
        raise asyncio.CancelledError()

    async def scenario():
        orch = Orchestrator(engine, "/out", config, queue)
        engine.on_submit = interrupt
        with pytest.raises(asyncio.CancelledError):
            await orch.submit_run([a], PRORES)
        return orch

    orch = asyncio.run(scenario())

    assert orch.state == RunState.IDLE
    assert orch.current_run.outcome == "aborted"
    assert not queue.is_dispatched(a.id)
    assert queue.get(a.id).status == TaskStatus.PENDING
