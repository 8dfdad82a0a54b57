import pytest

from editing_transcoder.exceptions import StateConflict
from editing_transcoder.models.preset import OutputFormat
from editing_transcoder.models.task import TaskStatus, TimeRange, mark_started

from conftest import make_metadata, make_task

DEFAULT = OutputFormat.PRORES_422


def test_add_file_and_duplicate(queue):
    first = queue.add_file("/media/a.mp4", DEFAULT, make_metadata("/media/a.mp4"))
    again = queue.add_file("/media/a.mp4", DEFAULT)

    assert again is first
    assert len(queue) == 1
    assert first.id in queue


def test_listeners_see_old_and_new(queue):
    events = []
    unsubscribe = queue.subscribe(lambda old, new: events.append((old, new)))

    task = queue.add_task(make_task())
    updated = queue.update(task.id, DEFAULT, output_base_name="renamed")
    queue.remove(task.id)
    unsubscribe()
    queue.add_task(make_task("b.mp4"))

    assert events == [(None, task), (task, updated), (updated, None)]


def test_failing_listener_does_not_break_queue(queue):
    def broken(old, new):
        raise RuntimeError("boom")

    queue.subscribe(broken)

    task = queue.add_task(make_task())

    assert queue.get(task.id) is task


def test_update_rejected_for_dispatched_task(queue):
    task = queue.add_task(make_task())
    queue.mark_dispatched([task.id])

    with pytest.raises(StateConflict):
        queue.update(task.id, DEFAULT, format=OutputFormat.H264_CRF18)

    queue.release([task.id])
    assert queue.update(task.id, DEFAULT, format=OutputFormat.H264_CRF18).output_extension == ".mp4"


def test_remove_in_progress_rejected(queue):
    task = queue.add_task(make_task())
    queue.replace(mark_started(task))

    with pytest.raises(StateConflict):
        queue.remove(task.id)
    assert len(queue) == 1


def test_get_unknown_raises(queue):
    with pytest.raises(KeyError):
        queue.get("/nope.mp4")
    assert queue.find("/nope.mp4") is None


def test_apply_range_to_all_skips_locked_tasks(queue):
    a = queue.add_task(make_task("a.mp4"))
    b = queue.add_task(make_task("b.mp4"))
    c = queue.add_task(make_task("c.mp4"))
    queue.replace(mark_started(b))
    queue.mark_dispatched([c.id])

    count = queue.apply_range_to_all(TimeRange(10, 20), DEFAULT)

    assert count == 1
    assert queue.get(a.id).time_range == TimeRange(10, 20)
    assert queue.get(b.id).time_range is None
    assert queue.get(c.id).time_range is None


def test_retarget_all_follows_new_default(queue):
    plain = queue.add_task(make_task("a.mp4"))
    pinned = queue.add_task(make_task("b.mp4", fmt=OutputFormat.DNXHR_HQX))

    queue.retarget_all(OutputFormat.H264_CRF18)

    assert queue.get(plain.id).output_file_name == "a_h264.mp4"
    assert queue.get(pinned.id).output_file_name == "b_dnxhr.mov"


def test_counts(queue):
    queue.add_task(make_task("a.mp4"))
    b = queue.add_task(make_task("b.mp4"))
    queue.replace(mark_started(b))

    assert queue.pending_count == 1
    assert queue.in_progress_count == 1
    assert queue.completed_count == 0
    assert queue.get(b.id).status == TaskStatus.IN_PROGRESS
