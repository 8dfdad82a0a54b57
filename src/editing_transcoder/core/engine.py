"""Transcoding engine boundary and the ffmpeg-backed engine."""

import asyncio
import logging
import re
import shutil
import uuid
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Set, Union

import ffmpeg

from ..exceptions import EngineUnavailable, InvalidRequest
from ..models.preset import OutputFormat, PRESETS
from ..models.task import TimeRange

logger = logging.getLogger(__name__)

LINE_SPLIT = re.compile(rb"[\r\n]+")
STDERR_TAIL_LINES = 20


@dataclass(frozen=True)
class ProgressEvent:
    group_id: str
    position: int
    percent: float
    fps: Optional[float] = None
    elapsed_time: str = "00:00:00.00"


@dataclass(frozen=True)
class CompletedEvent:
    group_id: str
    position: int


@dataclass(frozen=True)
class FailedEvent:
    group_id: str
    position: int
    error: Optional[str] = None


EngineEvent = Union[ProgressEvent, CompletedEvent, FailedEvent]
EventListener = Callable[[EngineEvent], None]


@dataclass(frozen=True)
class DispatchRequest:
    """One engine call: ordered inputs sharing a single output format."""

    input_paths: List[str]
    output_paths: List[str]
    format: OutputFormat
    # Aligned with input_paths; None when no member is trimmed
    segments: Optional[List[Optional[TimeRange]]] = None

    def __len__(self) -> int:
        return len(self.input_paths)


class TranscodeEngine:
    """
    Interface of an external transcoding engine.

    ``submit_group`` returns a group id; the engine then emits events addressed
    by ``(group_id, position)`` to every subscribed listener.
    """

    async def submit_group(self, request: DispatchRequest) -> str:
        raise NotImplementedError

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        raise NotImplementedError


class EventSource(TranscodeEngine):
    """Listener bookkeeping shared by engine implementations."""

    def __init__(self):
        self._listeners: List[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: EngineEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Event listener failed on {event}")


@dataclass(frozen=True)
class ProgressSample:
    percent: float
    fps: Optional[float]
    elapsed_time: str


def find_binary(name: str, configured: Optional[str] = None) -> Optional[str]:
    """Locate an executable: configured path first, then PATH."""
    if configured:
        if Path(configured).is_file():
            return configured
        return shutil.which(configured)
    return shutil.which(name)


def parse_time_string(time_str: str) -> Optional[float]:
    """Parse ffmpeg "HH:MM:SS.xx" into seconds."""
    parts = time_str.split(":")
    if len(parts) != 3:
        return None
    try:
        hours, minutes, seconds = float(parts[0]), float(parts[1]), float(parts[2])
    except ValueError:
        return None
    return hours * 3600 + minutes * 60 + seconds


def _extract_value(line: str, key: str) -> Optional[str]:
    match = re.search(rf"{re.escape(key)}\s*(\S+)", line)
    return match.group(1) if match else None


def parse_progress_line(
    line: str,
    media_duration: float,
    time_range: Optional[TimeRange] = None,
) -> Optional[ProgressSample]:
    """
    Parse one ffmpeg stats line.

    Example line:
        frame=  123 fps= 25 q=12.0 size=   12345kB time=00:00:05.00 bitrate=1234.5kbits/s speed=1.00x

    The trim range is applied with input seeking, so ``time=`` already counts
    from the range start and the percentage is taken against the range length.
    """
    if "frame=" not in line:
        return None

    time_str = _extract_value(line, "time=")
    if time_str is None:
        return None
    elapsed = parse_time_string(time_str)
    if elapsed is None:
        return None

    fps = None
    fps_str = _extract_value(line, "fps=")
    if fps_str:
        try:
            fps = float(fps_str)
        except ValueError:
            fps = None

    total = time_range.duration(media_duration) if time_range else media_duration
    percent = (elapsed / total) * 100 if total > 0 else 0.0
    return ProgressSample(
        percent=min(100.0, max(0.0, percent)),
        fps=fps,
        elapsed_time=time_str,
    )


def build_ffmpeg_command(
    fmt: OutputFormat,
    input_path: str,
    output_path: str,
    time_range: Optional[TimeRange] = None,
    ffmpeg_bin: str = "ffmpeg",
) -> List[str]:
    """Build the ffmpeg argument list for one file."""
    input_kwargs = {}
    if time_range is not None:
        input_kwargs["ss"] = time_range.start
        if time_range.end is not None:
            input_kwargs["to"] = time_range.end

    stream = ffmpeg.input(input_path, **input_kwargs)
    stream = ffmpeg.output(stream, output_path, **PRESETS[fmt].ffmpeg_args)
    stream = stream.global_args("-hide_banner").overwrite_output()
    return stream.compile(cmd=ffmpeg_bin)


async def _iter_stderr_lines(reader: asyncio.StreamReader) -> AsyncIterator[str]:
    # ffmpeg rewrites its stats line with '\r', so split on both terminators
    buffer = b""
    while True:
        chunk = await reader.read(4096)
        if not chunk:
            break
        buffer += chunk
        *lines, buffer = LINE_SPLIT.split(buffer)
        for line in lines:
            if line:
                yield line.decode("utf-8", errors="replace")
    if buffer:
        yield buffer.decode("utf-8", errors="replace")


class FfmpegEngine(EventSource):
    """Runs one ffmpeg process per group member and reports via events."""

    def __init__(
        self,
        ffmpeg_bin: Optional[str] = None,
        ffprobe_bin: Optional[str] = None,
        max_parallel: Optional[int] = None,
    ):
        """
        Initialize the engine.

        Args:
            ffmpeg_bin: ffmpeg executable, looked up on PATH if None.
            ffprobe_bin: ffprobe executable, looked up on PATH if None.
            max_parallel: Maximum concurrent ffmpeg processes across all groups.
        """
        super().__init__()
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self._slots = asyncio.Semaphore(max_parallel) if max_parallel else None
        self._jobs: Set[asyncio.Task] = set()

    async def submit_group(self, request: DispatchRequest) -> str:
        """
        Start every member of a group.

        Member jobs are scheduled as asyncio tasks and cannot run before this
        coroutine returns, so the caller can register the group id first.

        Raises:
            EngineUnavailable: If ffmpeg or ffprobe cannot be found.
            InvalidRequest: If the request is empty or its lists are misaligned.
        """
        ffmpeg_bin = find_binary("ffmpeg", self.ffmpeg_bin)
        ffprobe_bin = find_binary("ffprobe", self.ffprobe_bin)
        if ffmpeg_bin is None:
            raise EngineUnavailable("ffmpeg not found in system PATH")
        if ffprobe_bin is None:
            raise EngineUnavailable("ffprobe not found in system PATH")

        if not request.input_paths:
            raise InvalidRequest("No files provided")
        if len(request.output_paths) != len(request.input_paths):
            raise InvalidRequest("Output paths do not match input paths")
        if request.segments is not None and len(request.segments) != len(request.input_paths):
            raise InvalidRequest("Segments do not match input paths")

        group_id = str(uuid.uuid4())
        logger.info(
            f"Group {group_id[:8]}: {len(request)} file(s) as {request.format.value}"
        )

        for position, (src, dst) in enumerate(zip(request.input_paths, request.output_paths)):
            segment = request.segments[position] if request.segments else None
            job = asyncio.ensure_future(
                self._run_member(
                    group_id, position, src, dst, request.format, segment, ffmpeg_bin, ffprobe_bin
                )
            )
            self._jobs.add(job)
            job.add_done_callback(self._jobs.discard)

        return group_id

    async def _probe_duration(self, input_path: str, ffprobe_bin: str) -> float:
        loop = asyncio.get_running_loop()
        probe = await loop.run_in_executor(
            None, lambda: ffmpeg.probe(input_path, cmd=ffprobe_bin)
        )
        return float(probe.get("format", {}).get("duration", 0) or 0)

    async def _run_member(
        self,
        group_id: str,
        position: int,
        input_path: str,
        output_path: str,
        fmt: OutputFormat,
        segment: Optional[TimeRange],
        ffmpeg_bin: str,
        ffprobe_bin: str,
    ) -> None:
        if self._slots is not None:
            async with self._slots:
                await self._transcode(
                    group_id, position, input_path, output_path, fmt, segment, ffmpeg_bin, ffprobe_bin
                )
        else:
            await self._transcode(
                group_id, position, input_path, output_path, fmt, segment, ffmpeg_bin, ffprobe_bin
            )

    async def _transcode(
        self,
        group_id: str,
        position: int,
        input_path: str,
        output_path: str,
        fmt: OutputFormat,
        segment: Optional[TimeRange],
        ffmpeg_bin: str,
        ffprobe_bin: str,
    ) -> None:
        name = Path(input_path).name
        tail: deque = deque(maxlen=STDERR_TAIL_LINES)
        process = None

        try:
            duration = await self._probe_duration(input_path, ffprobe_bin)
            cmd = build_ffmpeg_command(fmt, input_path, output_path, segment, ffmpeg_bin)
            logger.debug(f"Running: {' '.join(cmd)}")

            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            async for line in _iter_stderr_lines(process.stderr):
                tail.append(line)
                sample = parse_progress_line(line, duration, segment)
                if sample is not None:
                    self.emit(
                        ProgressEvent(
                            group_id, position, sample.percent, sample.fps, sample.elapsed_time
                        )
                    )
            returncode = await process.wait()

        except asyncio.CancelledError:
            if process is not None and process.returncode is None:
                process.kill()
            raise
        except ffmpeg.Error as e:
            error_msg = e.stderr.decode(errors="replace") if e.stderr else str(e)
            logger.error(f"Failed to read media info for {name}: {error_msg}")
            self.emit(FailedEvent(group_id, position, f"Failed to read media info: {error_msg}"))
            return
        except OSError as e:
            logger.error(f"Failed to start ffmpeg for {name}: {e}")
            self.emit(FailedEvent(group_id, position, str(e)))
            return
        except Exception as e:
            # Every position must still get its terminal event
            logger.exception(f"Transcode crashed: {name}")
            if process is not None and process.returncode is None:
                process.kill()
            self.emit(FailedEvent(group_id, position, f"Internal error: {e}"))
            return

        if returncode == 0:
            logger.info(f"Transcoded: {name}")
            self.emit(CompletedEvent(group_id, position))
        else:
            detail = tail[-1] if tail else "ffmpeg returned non-zero exit code"
            logger.error(f"Transcode failed: {name} (exit {returncode}) - {detail}")
            self.emit(FailedEvent(group_id, position, detail))

    async def close(self) -> None:
        """Cancel running jobs, killing their ffmpeg processes."""
        jobs = list(self._jobs)
        for job in jobs:
            job.cancel()
        await asyncio.gather(*jobs, return_exceptions=True)
