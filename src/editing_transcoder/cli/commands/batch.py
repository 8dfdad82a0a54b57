"""Batch transcode command."""

import asyncio
from pathlib import Path
from typing import Dict, List, Optional

import typer

from ...core.probe import VIDEO_EXTENSIONS
from ...models.preset import OutputFormat
from ...models.task import TimeRange

app = typer.Typer(no_args_is_help=True)


def find_videos(paths: List[Path], recursive: bool = False) -> List[Path]:
    """Find video files in the given files and directories."""
    videos = []

    for path in paths:
        if path.is_file():
            if path.suffix.lower() in VIDEO_EXTENSIONS:
                videos.append(path)
        elif path.is_dir():
            pattern = "**/*" if recursive else "*"
            found = [p for p in path.glob(pattern) if p.suffix.lower() in VIDEO_EXTENSIONS]
            videos.extend(sorted(found))

    # Keep first occurrence, one input at most once
    seen = set()
    unique = []
    for video in videos:
        key = video.resolve()
        if key not in seen:
            seen.add(key)
            unique.append(video)
    return unique


def parse_time(value: Optional[str]) -> Optional[float]:
    """Accept HH:MM:SS or plain seconds."""
    from ...utils.timecode import timecode_to_seconds

    if value is None:
        return None
    if ":" in value:
        seconds = timecode_to_seconds(value)
        if seconds is None:
            raise typer.BadParameter(f"Invalid timecode: {value} (expected HH:MM:SS)")
        return float(seconds)
    try:
        return float(value)
    except ValueError:
        raise typer.BadParameter(f"Invalid time: {value}")


def parse_range(start: Optional[str], end: Optional[str]) -> Optional[TimeRange]:
    if start is None and end is None:
        return None
    return TimeRange(start=parse_time(start) or 0.0, end=parse_time(end))


def parse_overrides(values: List[str]) -> Dict[str, OutputFormat]:
    """Parse ``FILE=FORMAT`` options into a map keyed by file name."""
    from ...exceptions import ConfigError

    overrides = {}
    for value in values:
        name, sep, fmt = value.rpartition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected FILE=FORMAT, got: {value}")
        try:
            overrides[Path(name).name] = OutputFormat.parse(fmt)
        except ConfigError as e:
            raise typer.BadParameter(str(e))
    return overrides


def build_queue(
    videos: List[Path],
    default_format: OutputFormat,
    time_range: Optional[TimeRange] = None,
    overrides: Optional[Dict[str, OutputFormat]] = None,
    ffprobe_bin: Optional[str] = None,
):
    """
    Probe inputs and queue one task per video.

    Files that cannot be probed are still queued without metadata; their size
    renders as unknown and only range ordering can be validated.
    """
    from ...core.probe import probe_media
    from ...core.queue import TaskQueue
    from ...exceptions import MediaProbeError
    from ...utils.progress import print_warning
    from ...utils.timecode import format_segment_suffix

    queue = TaskQueue()
    overrides = overrides or {}

    for video in videos:
        try:
            metadata = probe_media(video, ffprobe_bin)
        except MediaProbeError as e:
            print_warning(f"{video.name}: {e}")
            metadata = None

        base_name = None
        if time_range is not None:
            base_name = f"{video.stem}{format_segment_suffix(time_range)}"

        queue.add_file(
            video,
            default_format,
            metadata,
            output_base_name=base_name,
            time_range=time_range,
            format=overrides.get(video.name),
        )

    return queue


async def run_batch(queue, output_dir: Path, config, default_format: OutputFormat, no_progress: bool):
    """Run every queued task through the ffmpeg engine."""
    from ...core.engine import FfmpegEngine
    from ...core.orchestrator import Orchestrator
    from ...utils.progress import RunProgress

    engine = FfmpegEngine(
        ffmpeg_bin=config.engine.ffmpeg_path,
        ffprobe_bin=config.engine.ffprobe_path,
        max_parallel=config.engine.max_parallel,
    )
    orchestrator = Orchestrator(engine, output_dir, config, queue)
    run = None

    try:
        with RunProgress(queue.tasks(), disable=no_progress) as view:
            unsubscribe = orchestrator.subscribe(view.on_task_change)
            try:
                run = await orchestrator.submit_run(default_format=default_format)
                await orchestrator.wait(run)
            finally:
                unsubscribe()
    finally:
        orchestrator.cancel(run)
        orchestrator.close()
        await engine.close()

    return orchestrator.query_aggregate(run)


@app.command("run")
def batch_run(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., help="Video files or directories", exists=True),
    output_format: Optional[str] = typer.Option(
        None,
        "--format",
        "-f",
        help="Default output format (ProRes422, ProRes422LT, ProRes422Proxy, DnxHRHQX, H264Crf18)",
    ),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output-dir",
        "-o",
        help="Output directory (default: config or next to the first video)",
    ),
    start: Optional[str] = typer.Option(
        None,
        "--start",
        help="Trim start for every file (HH:MM:SS or seconds)",
    ),
    end: Optional[str] = typer.Option(
        None,
        "--end",
        help="Trim end for every file (HH:MM:SS or seconds, default: end of media)",
    ),
    override: List[str] = typer.Option(
        [],
        "--override",
        help="Per-file format override as FILE=FORMAT (repeatable)",
    ),
    recursive: bool = typer.Option(
        False,
        "--recursive",
        "-r",
        help="Recursively search for videos",
    ),
):
    """
    Transcode multiple videos.

    Example:
        editing-transcoder batch run ./clips/ -f ProRes422
        editing-transcoder batch run a.mp4 b.mp4 --override b.mp4=H264Crf18
        editing-transcoder batch run a.mp4 --start 00:01:05 --end 00:02:30
    """
    from ...exceptions import ConfigError, ValidationError
    from ...models.config import AppConfig
    from ...models.task import TaskStatus, get_output_path
    from ...utils.progress import (
        print_error,
        print_estimates,
        print_info,
        print_success,
        print_task_summary,
    )

    obj = ctx.obj or {}
    config = obj.get("config") or AppConfig.load()
    no_progress = obj.get("no_progress", False)

    try:
        default_format = OutputFormat.parse(output_format) if output_format else config.output.format
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    videos = find_videos(paths, recursive)
    if not videos:
        print_error("No video files found")
        raise typer.Exit(1)

    print_info(f"Found {len(videos)} video(s) to transcode")

    queue = build_queue(
        videos,
        default_format,
        parse_range(start, end),
        parse_overrides(override),
        config.engine.ffprobe_path,
    )

    if output_dir is None:
        output_dir = Path(config.output.output_dir) if config.output.output_dir else videos[0].parent
    output_dir.mkdir(parents=True, exist_ok=True)

    print_estimates(queue.tasks(), default_format)

    try:
        status = asyncio.run(run_batch(queue, output_dir, config, default_format, no_progress))
    except ValidationError as e:
        print_error("\n".join(e.errors) or str(e))
        raise typer.Exit(1)

    print_task_summary(queue.tasks(), lambda task: get_output_path(task, output_dir))

    if status.failed > 0:
        print_error(f"{status.failed} file(s) failed")
        raise typer.Exit(1)

    completed = sum(1 for t in queue.tasks() if t.status == TaskStatus.COMPLETED)
    if status.remaining:
        print_info(f"{status.remaining} file(s) were not transcoded")
    print_success(f"{completed} file(s) transcoded to {output_dir}")
