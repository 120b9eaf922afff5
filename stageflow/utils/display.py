"""
Rich rendering for the CLI: live run progress and end-of-run tables.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from rich.console import Console, Group
from rich.live import Live
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table
from rich.text import Text

from stageflow.core.configuration import ToolConfig
from stageflow.core.error_handler import ErrorReport
from stageflow.core.models import CompletionState, RunResult

STATE_STYLES: Dict[CompletionState, str] = {
    CompletionState.SATISFIED: "green",
    CompletionState.TIMED_OUT: "yellow",
    CompletionState.CANCELLED: "yellow",
    CompletionState.PROCESS_FAILED: "red",
    CompletionState.FAILED: "red",
}


class RunProgress:
    """Thread-safe progress counters fed by the detector callback."""

    def __init__(self, label: str, total: int, clock: Callable[[], float] = time.monotonic):
        self.label = label
        self._clock = clock
        self._lock = threading.Lock()
        self._found = 0
        self._total = total
        self._idle = 0.0
        self._started = clock()

    def update(self, found: int, total: int, idle: float) -> None:
        with self._lock:
            self._found = found
            self._total = total
            self._idle = idle

    def snapshot(self) -> Tuple[int, int, float, float]:
        """(found, total, seconds since start, seconds since last new artifact)."""
        with self._lock:
            return self._found, self._total, self._clock() - self._started, self._idle

    def describe(self) -> str:
        found, total, elapsed, _ = self.snapshot()
        return f"Waiting for {self.label} - {found} of {total} found, {elapsed:.0f} seconds"

    def render(self):
        found, total, _, idle = self.snapshot()
        progress = Progress(
            TextColumn("[bold]Artifacts[/]"),
            BarColumn(bar_width=None),
            TaskProgressColumn(),
        )
        task_id = progress.add_task(self.label, total=max(1, total))
        progress.update(task_id, completed=found)
        header = Text(self.describe(), style="bold")
        info = Text(f"last new artifact {idle:.0f}s ago", style="dim")
        return Group(header, progress, info)


def watch_progress(progress: RunProgress, stop: threading.Event, interval: float = 0.5,
                   console: Optional[Console] = None) -> None:
    """Render ``progress`` until ``stop`` is set."""
    console = console or Console()
    refresh_per_second = max(1, int(round(1.0 / max(0.01, interval))))
    with Live(progress.render(), console=console, refresh_per_second=refresh_per_second, transient=True) as live:
        while not stop.wait(interval):
            live.update(progress.render())


def summary_table(result: RunResult, matcher_names: List[str], moved: Dict[Path, Path]) -> Table:
    """One row per expected artifact, in matcher order."""
    style = STATE_STYLES.get(result.state, "")
    table = Table(title=f"Run {result.state.value}", title_style=style, show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Artifact")
    table.add_column("Status")
    table.add_column("Location", overflow="fold")
    by_index = {a.matcher_index: a for a in result.completed_artifacts}
    for idx, name in enumerate(matcher_names):
        art = by_index.get(idx)
        if art is None:
            if idx in result.abandoned_matchers:
                status = "[red]not collected[/]"
            elif idx in result.missing_matchers:
                status = "[red]not produced[/]"
            elif result.cancelled:
                status = "[yellow]cancelled[/]"
            elif idx in result.timed_out_matchers:
                status = "[yellow]timed out[/]"
            else:
                status = "[dim]-[/]"
            table.add_row(str(idx), name, status, "")
        elif art.harvest_error is not None:
            table.add_row(str(idx), name, "[red]harvest failed[/]", str(art.path))
        else:
            table.add_row(str(idx), name, "[green]harvested[/]", str(moved.get(art.path, art.path)))
    return table


def reports_table(reports: Iterable[ErrorReport]) -> Table:
    table = Table(title="Problems", show_lines=True)
    table.add_column("Severity")
    table.add_column("Category")
    table.add_column("Description", overflow="fold")
    table.add_column("Suggestions", overflow="fold")
    for rep in reports:
        table.add_row(rep.severity.value, rep.category.value, rep.description, "\n".join(rep.suggestions))
    return table


def tools_table(tools: Iterable[ToolConfig]) -> Table:
    table = Table(title="Configured tools")
    table.add_column("Name", style="bold")
    table.add_column("Adapter")
    table.add_column("Executable", overflow="fold")
    table.add_column("Staging folder", overflow="fold")
    table.add_column("Timeout (min)", justify="right")
    for tool in tools:
        table.add_row(tool.name, tool.adapter, tool.executable, str(tool.staging_dir), f"{tool.timeout_minutes:g}")
    return table
