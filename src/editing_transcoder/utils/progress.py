"""Progress display utilities using Rich."""

from typing import Callable, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from ..core.estimator import estimate_task, estimate_total, format_size
from ..models.preset import OutputFormat
from ..models.task import Task, TaskStatus
from .timecode import seconds_to_timecode

console = Console()

STATUS_LABELS = {
    TaskStatus.PENDING: "[dim]Pending[/dim]",
    TaskStatus.IN_PROGRESS: "[yellow]Transcoding[/yellow]",
    TaskStatus.COMPLETED: "[green]Success[/green]",
    TaskStatus.FAILED: "[red]Failed[/red]",
}


class RunProgress:
    """
    Live view of a batch run.

    Driven entirely by task change notifications, so it never polls. Use as a
    context manager and pass ``on_task_change`` to the orchestrator's
    ``subscribe``.
    """

    def __init__(self, tasks: List[Task], disable: bool = False):
        self.disable = disable
        self._names = {task.id: escape(task.name) for task in tasks}
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.fields[fps]}[/dim]"),
            TimeElapsedColumn(),
            console=console,
            disable=disable,
        )
        self._overall: Optional[TaskID] = None
        self._rows: Dict[str, TaskID] = {}

    def __enter__(self) -> "RunProgress":
        self._progress.start()
        self._overall = self._progress.add_task(
            "[cyan]Overall progress", total=len(self._names), fps=""
        )
        for task_id, name in self._names.items():
            self._rows[task_id] = self._progress.add_task(name, total=100, fps="")
        return self

    def __exit__(self, *args) -> None:
        self._progress.stop()

    def on_task_change(self, old: Optional[Task], new: Optional[Task]) -> None:
        if new is None or new.id not in self._rows:
            return
        row = self._rows[new.id]

        if new.status == TaskStatus.IN_PROGRESS and new.progress:
            fps = f"{new.progress.fps:.0f} fps" if new.progress.fps else ""
            self._progress.update(row, completed=new.progress.percent, fps=fps)
        elif new.status == TaskStatus.COMPLETED:
            self._progress.update(
                row, completed=100, description=f"[green]{self._names[new.id]}", fps=""
            )
        elif new.status == TaskStatus.FAILED:
            self._progress.update(row, description=f"[red]{self._names[new.id]}", fps="")

        if new.is_terminal and not (old is not None and old.is_terminal):
            self._progress.advance(self._overall)


def print_estimates(tasks: List[Task], default_format: OutputFormat) -> None:
    """Print per-file size estimates and the total."""
    table = Table(title=f"Estimated output size ({default_format.info.display_name})")

    table.add_column("File", style="cyan")
    table.add_column("Format")
    table.add_column("Range")
    table.add_column("Output")
    table.add_column("Size", justify="right")

    for task in tasks:
        fmt = task.effective_format(default_format)
        span = ""
        if task.time_range is not None:
            end = task.time_range.end
            span = (
                f"{seconds_to_timecode(task.time_range.start)} - "
                f"{seconds_to_timecode(end) if end is not None else 'End'}"
            )
        table.add_row(
            escape(task.name),
            fmt.info.display_name,
            span,
            escape(task.output_file_name),
            format_size(estimate_task(task, default_format)),
        )

    console.print(table)
    total = format_size(estimate_total(tasks, default_format))
    console.print(f"Total estimated size: [bold]{total}[/bold]")


def print_task_summary(tasks: List[Task], output_path: Callable[[Task], object]) -> None:
    """Print task summary table."""
    table = Table(title="Transcode Results")

    table.add_column("File", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Duration", justify="right")
    table.add_column("Output / Note")

    for task in tasks:
        duration = ""
        if task.elapsed_time:
            duration = f"{task.elapsed_time:.1f}s"

        if task.status == TaskStatus.FAILED:
            note = task.error or ""
            if len(note) > 60:
                note = note[:60] + "..."
        else:
            note = str(output_path(task))

        table.add_row(escape(task.name), STATUS_LABELS[task.status], duration, escape(note))

    console.print(table)


def print_error(message: str) -> None:
    """Print error message."""
    console.print(Panel(escape(message), title="Error", border_style="red"))


def print_success(message: str) -> None:
    """Print success message."""
    console.print(Panel(escape(message), title="Complete", border_style="green"))


def print_info(message: str) -> None:
    """Print info message."""
    console.print(f"[cyan]i[/cyan] {escape(message)}")


def print_warning(message: str) -> None:
    """Print warning message."""
    console.print(f"[yellow]![/yellow] {escape(message)}")
