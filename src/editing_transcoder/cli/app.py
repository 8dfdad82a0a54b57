"""CLI main application."""

from pathlib import Path
from typing import Optional, List

import typer
from rich.console import Console

from .commands import batch, config
from ..exceptions import ConfigError
from ..models.config import AppConfig
from ..utils.logger import setup_logging

app = typer.Typer(
    name="editing-transcoder",
    help="Batch transcode footage into editing-friendly formats",
    add_completion=True,
    no_args_is_help=True,
)

console = Console()

# Register subcommands
app.add_typer(batch.app, name="batch", help="Batch transcode multiple videos")
app.add_typer(config.app, name="config", help="Configuration management")

# Global config
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get current configuration."""
    global _config
    if _config is None:
        _config = AppConfig.load()
    return _config


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file path",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Verbose output mode",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Quiet mode, only show errors",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log file path",
    ),
    no_progress: bool = typer.Option(
        False,
        "--no-progress",
        help="Disable progress bar",
    ),
):
    """editing-transcoder - Batch transcode footage into editing-friendly formats"""
    global _config

    from ..utils.progress import print_error

    # Load configuration
    try:
        _config = AppConfig.load(config_file) if config_file else get_config()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    # Setup logging
    log_level = "DEBUG" if verbose else ("ERROR" if quiet else _config.log_level)
    setup_logging(log_level, str(log_file) if log_file else _config.log_file)

    # Store in context
    ctx.ensure_object(dict)
    ctx.obj["config"] = _config
    ctx.obj["no_progress"] = no_progress


@app.command()
def estimate(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., help="Video files or directories", exists=True),
    output_format: Optional[str] = typer.Option(
        None,
        "--format",
        "-f",
        help="Output format",
    ),
    start: Optional[str] = typer.Option(None, "--start", help="Trim start (HH:MM:SS or seconds)"),
    end: Optional[str] = typer.Option(None, "--end", help="Trim end (HH:MM:SS or seconds)"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Recursively search for videos"),
):
    """
    Estimate output sizes without transcoding.

    Example:
        editing-transcoder estimate ./clips/ -f DnxHRHQX
    """
    from ..models.preset import OutputFormat
    from ..utils.progress import print_error, print_estimates

    cfg = (ctx.obj or {}).get("config") or get_config()
    try:
        fmt = OutputFormat.parse(output_format) if output_format else cfg.output.format
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    videos = batch.find_videos(paths, recursive)
    if not videos:
        print_error("No video files found")
        raise typer.Exit(1)

    queue = batch.build_queue(
        videos, fmt, batch.parse_range(start, end), ffprobe_bin=cfg.engine.ffprobe_path
    )
    print_estimates(queue.tasks(), fmt)


@app.command()
def probe(
    ctx: typer.Context,
    video: Path = typer.Argument(..., help="Video file path", exists=True),
):
    """Show media information for a video."""
    from rich.markup import escape
    from rich.table import Table

    from ..core.probe import probe_media
    from ..exceptions import MediaProbeError
    from ..utils.progress import print_error
    from ..utils.timecode import seconds_to_timecode

    cfg = (ctx.obj or {}).get("config") or get_config()
    try:
        meta = probe_media(video, cfg.engine.ffprobe_path)
    except MediaProbeError as e:
        print_error(str(e))
        raise typer.Exit(1)

    table = Table(title=escape(video.name))
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Duration", seconds_to_timecode(meta.duration_sec))
    table.add_row("Video", f"{meta.video.codec} {meta.resolution} @ {meta.video.framerate}")
    table.add_row("Pixel Format", f"{meta.video.pix_fmt} ({meta.video.bit_depth}-bit, {meta.video.chroma_subsampling})")
    if meta.audio:
        table.add_row(
            "Audio", f"{meta.audio.codec} {meta.audio.sample_rate} Hz, {meta.audio.channels} ch"
        )
    else:
        table.add_row("Audio", "none")

    console.print(table)


@app.command()
def formats():
    """List available output formats."""
    from rich.table import Table

    from ..models.preset import PRESETS

    table = Table(title="Output Formats")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Output", style="green")
    table.add_column("Bitrate @1080p", justify="right")

    for fmt, info in PRESETS.items():
        rate = f"{info.bitrate_mbps:.0f} Mbps"
        if not info.is_constant_bitrate:
            low, high = info.mb_per_minute
            rate = f"{low:.0f}-{high:.0f} MB/min"
        table.add_row(fmt.value, info.description, f"*{info.suffix}{info.extension}", rate)

    console.print(table)


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    console.print(f"editing-transcoder version {__version__}")


def cli():
    """Entry point."""
    app()


if __name__ == "__main__":
    cli()
