"""A Rich-powered console overview of the entry catalog."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from rich import box
from rich.columns import Columns
from rich.console import Console, Group
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from ..services.entries import EntryRecord, EntryRepository, EntryStatus


STATUS_STYLES: Dict[EntryStatus, str] = {
    EntryStatus.ACTIVE: "green",
    EntryStatus.STAGING: "yellow",
    EntryStatus.DISABLED: "dim",
}


@dataclass
class OverviewSnapshot:
    active: List[EntryRecord]
    staging: List[EntryRecord]
    disabled: List[EntryRecord]

    @property
    def total(self) -> int:
        return len(self.active) + len(self.staging) + len(self.disabled)

    @property
    def narrated(self) -> int:
        return sum(
            1 for record in (*self.active, *self.staging, *self.disabled) if record.has_narration
        )


class ModernUI:
    """Render the catalog using Rich widgets."""

    def __init__(self, repository: EntryRepository, *, console: Optional[Console] = None) -> None:
        self._repository = repository
        self._console = console or Console()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self) -> None:
        snapshot = self._collect_snapshot()
        console = self._console

        console.rule("[bold magenta]Memory Lane Overview")

        if snapshot.total == 0:
            console.print(
                Panel(
                    "No entries have been synced yet.\n"
                    "Use [bold]python run.py sync[/bold] to pull media from Dropbox.",
                    border_style="yellow",
                    box=box.ROUNDED,
                )
            )
            return

        console.print(self._build_entries_table(snapshot))
        console.print(Columns([self._build_stats_panel(snapshot)], expand=True))

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------
    def _build_entries_table(self, snapshot: OverviewSnapshot) -> Table:
        table = Table(box=box.SIMPLE_HEAVY, expand=True)
        table.add_column("#", justify="right", style="bold")
        table.add_column("Status")
        table.add_column("Title")
        table.add_column("Remote path", style="cyan", overflow="fold")
        table.add_column("Narration", justify="center")

        for record in (*snapshot.active, *snapshot.staging, *snapshot.disabled):
            status = record.status
            table.add_row(
                "" if record.position is None else str(record.position),
                Text(status.value, style=STATUS_STYLES[status]),
                record.title or Text("untitled", style="dim"),
                record.remote_path,
                "🎙️" if record.has_narration else "",
            )
        return table

    def _build_stats_panel(self, snapshot: OverviewSnapshot) -> Panel:
        metrics = Table.grid(expand=True, padding=(0, 1))
        metrics.add_column(style="dim")
        metrics.add_column(justify="right", style="bold")
        metrics.add_row("Active", str(len(snapshot.active)))
        metrics.add_row("Staging", str(len(snapshot.staging)))
        metrics.add_row("Disabled", str(len(snapshot.disabled)))

        narration = Table.grid(expand=True, padding=(0, 1))
        narration.add_column(style="dim")
        narration.add_column(justify="right", style="bold")
        narration.add_row("With narration", str(snapshot.narrated))

        body = Group(metrics, Rule(style="magenta"), narration)
        return Panel(body, title="At a glance", border_style="magenta", box=box.ROUNDED)

    # ------------------------------------------------------------------
    # Data aggregation
    # ------------------------------------------------------------------
    def _collect_snapshot(self) -> OverviewSnapshot:
        return OverviewSnapshot(
            active=self._repository.list_active(),
            staging=self._repository.list_staging(),
            disabled=self._repository.list_disabled(),
        )


__all__ = ["ModernUI", "OverviewSnapshot"]
