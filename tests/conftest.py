from typing import Callable, Dict, List, Optional

import pytest

from editing_transcoder.core.engine import DispatchRequest, EventSource
from editing_transcoder.core.queue import TaskQueue
from editing_transcoder.models.config import AppConfig
from editing_transcoder.models.media import MediaMetadata, VideoStream
from editing_transcoder.models.preset import OutputFormat
from editing_transcoder.models.task import TimeRange, create_task


class FakeEngine(EventSource):
    """In-memory engine: records requests, tests push events by hand."""

    def __init__(self, failures: Optional[Dict[OutputFormat, List[Exception]]] = None):
        super().__init__()
        self.requests: List[DispatchRequest] = []
        self.group_ids: List[str] = []
        self.failures = failures or {}
        self.on_submit: Optional[Callable[[DispatchRequest], None]] = None

    async def submit_group(self, request: DispatchRequest) -> str:
        self.requests.append(request)
        if self.on_submit:
            self.on_submit(request)
        pending = self.failures.get(request.format)
        if pending:
            raise pending.pop(0)
        group_id = f"group-{len(self.group_ids) + 1}"
        self.group_ids.append(group_id)
        return group_id


def make_metadata(path="/media/clip.mp4", duration=120.0, width=1920, height=1080):
    return MediaMetadata(
        file_path=path,
        duration_sec=duration,
        video=VideoStream(codec="h264", width=width, height=height, framerate="30000/1001"),
    )


def make_task(
    name="clip.mp4",
    duration=120.0,
    fmt=None,
    time_range: Optional[TimeRange] = None,
    default_format=OutputFormat.PRORES_422,
):
    path = f"/media/{name}"
    return create_task(
        path,
        default_format,
        metadata=make_metadata(path, duration),
        time_range=time_range,
        format=fmt,
    )


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def queue():
    return TaskQueue()


@pytest.fixture
def config():
    config = AppConfig()
    config.dispatch.max_retries = 0
    config.dispatch.retry_delay = 0
    return config
