from pathlib import Path

import pytest

from editing_transcoder.exceptions import StateConflict
from editing_transcoder.models.preset import OutputFormat, PRESETS
from editing_transcoder.models.task import (
    TaskStatus,
    TimeRange,
    apply_progress,
    get_output_path,
    mark_completed,
    mark_failed,
    mark_started,
    reset,
    update_config,
)

from conftest import make_task

DEFAULT = OutputFormat.PRORES_422


def test_create_task_defaults():
    task = make_task("interview.mp4")

    assert task.id == str(Path("/media/interview.mp4").absolute())
    assert task.status == TaskStatus.PENDING
    assert task.progress is None
    assert task.output_base_name == "interview"
    assert task.output_suffix == "_prores"
    assert task.output_extension == ".mov"


def test_create_task_with_override_uses_override_naming():
    task = make_task("a.mp4", fmt=OutputFormat.H264_CRF18)

    assert task.output_file_name == "a_h264.mp4"


@pytest.mark.parametrize("fmt", list(OutputFormat))
def test_output_path_for_every_format(fmt):
    task = make_task("clip.mov", fmt=fmt)
    info = PRESETS[fmt]

    path = get_output_path(task, "/out")

    assert path == Path("/out") / f"clip{info.suffix}{info.extension}"


def test_update_config_recomputes_suffix_and_extension():
    task = make_task()

    updated = update_config(task, DEFAULT, format=OutputFormat.DNXHR_HQX)
    assert updated.output_suffix == "_dnxhr"
    assert updated.output_extension == ".mov"

    cleared = update_config(updated, OutputFormat.H264_CRF18, format=None)
    assert cleared.format is None
    assert cleared.output_file_name == "clip_h264.mp4"


def test_update_config_does_not_mutate_original():
    task = make_task()

    updated = update_config(task, DEFAULT, output_base_name="renamed", time_range=TimeRange(5, 10))

    assert task.output_base_name == "clip"
    assert task.time_range is None
    assert updated.output_base_name == "renamed"
    assert updated.time_range == TimeRange(5, 10)


def test_update_config_sanitizes_and_keeps_blank_name():
    task = make_task()

    assert update_config(task, DEFAULT, output_base_name='a<b>:c?').output_base_name == "abc"
    assert update_config(task, DEFAULT, output_base_name="  ").output_base_name == "clip"


def test_update_config_rejected_when_not_pending():
    task = mark_started(make_task())

    with pytest.raises(StateConflict):
        update_config(task, DEFAULT, output_base_name="x")


def test_apply_progress_requires_in_progress():
    with pytest.raises(StateConflict):
        apply_progress(make_task(), 10)


def test_progress_is_clamped():
    task = mark_started(make_task())

    assert apply_progress(task, 140).progress.percent == 100
    assert apply_progress(task, -3).progress.percent == 0


def test_completed_pins_percent_and_keeps_snapshot():
    task = apply_progress(mark_started(make_task()), 87.5, fps=48.0, elapsed_time="00:01:00.00")

    done = mark_completed(task)

    assert done.status == TaskStatus.COMPLETED
    assert done.progress.percent == 100
    assert done.progress.fps == 48.0
    assert done.progress.elapsed_time == "00:01:00.00"
    assert mark_completed(done) is done


def test_complete_requires_in_progress():
    with pytest.raises(StateConflict):
        mark_completed(make_task())


def test_failed_keeps_last_progress():
    task = apply_progress(mark_started(make_task()), 40)

    failed = mark_failed(task, "boom")

    assert failed.status == TaskStatus.FAILED
    assert failed.progress.percent == 40
    assert failed.error == "boom"
    assert mark_failed(failed) is failed


def test_pending_can_fail_directly():
    assert mark_failed(make_task()).status == TaskStatus.FAILED


def test_transitions_only_move_forward():
    done = mark_completed(mark_started(make_task()))

    with pytest.raises(StateConflict):
        mark_failed(done)
    with pytest.raises(StateConflict):
        mark_started(done)
    with pytest.raises(StateConflict):
        mark_completed(mark_failed(make_task()))


def test_reset_returns_to_pending():
    done = mark_completed(mark_started(make_task()))

    fresh = reset(done)

    assert fresh.status == TaskStatus.PENDING
    assert fresh.progress is None
    assert fresh.completed_at is None
    with pytest.raises(StateConflict):
        reset(mark_started(make_task()))


def test_time_range_validation():
    assert TimeRange(0, 30).validate(120) is None
    assert TimeRange(10, None).validate(120) is None
    assert TimeRange(120, None).validate(120) == "start"
    assert TimeRange(40, 40).validate(120) == "end"
    assert TimeRange(50, 20).validate(120) == "end"


def test_time_range_duration_clamps_to_media():
    assert TimeRange(10, 40).duration(120) == 30
    assert TimeRange(100, None).duration(120) == 20
    assert TimeRange(100, 500).duration(120) == 20
