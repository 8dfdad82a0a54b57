"""Configuration management command."""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.panel import Panel

from ...exceptions import ConfigError
from ...models.config import AppConfig
from ...models.preset import OutputFormat
from ...utils.progress import print_success, print_error

app = typer.Typer(no_args_is_help=True)
console = Console()

NONE_VALUES = ("", "none", "null")


@app.command()
def show():
    """Show current configuration."""
    config = AppConfig.load()

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    # Engine settings
    table.add_row("[bold]Engine[/bold]", "")
    table.add_row("  ffmpeg", config.engine.ffmpeg_path or "(PATH)")
    table.add_row("  ffprobe", config.engine.ffprobe_path or "(PATH)")
    table.add_row("  Max Parallel", str(config.engine.max_parallel or "unlimited"))

    # Dispatch settings
    table.add_row("[bold]Dispatch[/bold]", "")
    table.add_row("  Max Retries", str(config.dispatch.max_retries))
    table.add_row("  Retry Delay", f"{config.dispatch.retry_delay}s")

    # Output settings
    table.add_row("[bold]Output[/bold]", "")
    table.add_row("  Default Format", config.output.default_format)
    table.add_row("  Output Dir", config.output.output_dir or "(next to input)")

    # General settings
    table.add_row("[bold]General[/bold]", "")
    table.add_row("  Log Level", config.log_level)
    table.add_row("  Log File", config.log_file or "")

    console.print(table)
    console.print(f"\nConfig file: {AppConfig.get_config_path()}")


def _optional(value: str):
    return None if value.strip().lower() in NONE_VALUES else value


def _optional_int(value: str):
    value = _optional(value)
    return int(value) if value is not None else None


SETTERS = {
    "engine.ffmpeg_path": lambda c, v: setattr(c.engine, "ffmpeg_path", _optional(v)),
    "engine.ffprobe_path": lambda c, v: setattr(c.engine, "ffprobe_path", _optional(v)),
    "engine.max_parallel": lambda c, v: setattr(c.engine, "max_parallel", _optional_int(v)),
    "dispatch.max_retries": lambda c, v: setattr(c.dispatch, "max_retries", int(v)),
    "dispatch.retry_delay": lambda c, v: setattr(c.dispatch, "retry_delay", float(v)),
    "output.default_format": lambda c, v: setattr(
        c.output, "default_format", OutputFormat.parse(v).value
    ),
    "output.output_dir": lambda c, v: setattr(c.output, "output_dir", _optional(v)),
    "log_level": lambda c, v: setattr(c, "log_level", v.upper()),
    "log_file": lambda c, v: setattr(c, "log_file", _optional(v)),
}


@app.command("set")
def set_value(
    key: str = typer.Argument(..., help="Setting key (e.g., output.default_format)"),
    value: str = typer.Argument(..., help="Setting value"),
):
    """
    Set a configuration value.

    Example:
        editing-transcoder config set output.default_format DnxHRHQX
        editing-transcoder config set engine.max_parallel 2
        editing-transcoder config set dispatch.max_retries 3
    """
    config = AppConfig.load()

    setter = SETTERS.get(key)
    if setter is None:
        print_error(f"Unknown setting: {key}\nAvailable: {', '.join(SETTERS)}")
        raise typer.Exit(1)

    try:
        setter(config, value)
    except ValueError:
        print_error(f"Invalid value for {key}: {value}")
        raise typer.Exit(1)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    config.save()
    print_success(f"Set {key} = {value}")


@app.command()
def reset():
    """Reset configuration to defaults."""
    config = AppConfig()
    config.save()
    print_success("Configuration reset to defaults")


@app.command()
def path():
    """Show the configuration file path."""
    console.print(str(AppConfig.get_config_path()))


@app.command()
def check():
    """Check that ffmpeg and ffprobe are available."""
    from ...core.engine import find_binary

    console.print(Panel("System Check", style="bold blue"))

    config = AppConfig.load()
    ok = True
    for name, configured in (
        ("ffmpeg", config.engine.ffmpeg_path),
        ("ffprobe", config.engine.ffprobe_path),
    ):
        found = find_binary(name, configured)
        if found:
            source = "configured" if configured else "system"
            console.print(f"[green]{name}:[/green] Found ({source}) {escape(found)}")
        else:
            ok = False
            console.print(f"[red]{name}:[/red] Not found - please install ffmpeg")

    if not ok:
        raise typer.Exit(1)


@app.command()
def export(
    output: Path = typer.Option(
        ...,
        "--output",
        "-o",
        help="Output file path",
    ),
):
    """Export configuration to file."""
    config = AppConfig.load()
    config.save(output)
    print_success(f"Configuration exported to: {output}")


@app.command("import")
def import_config(
    input_file: Path = typer.Argument(..., help="Configuration file to import", exists=True),
):
    """Import configuration from file."""
    try:
        config = AppConfig.load(input_file)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)
    config.save()
    print_success(f"Configuration imported from: {input_file}")
