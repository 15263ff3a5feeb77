from __future__ import annotations

from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from recordseed.domain.models import LoadResult, RestoreReport, RunSummary
from recordseed.planning.sequencer import SequencePlan

_STATUS_STYLE = {
    "completed": "bold green",
    "cancelled": "yellow",
    "errored": "bold red",
    "running": "blue",
}


def _rate_style(rate: float) -> str:
    if rate >= 95:
        return "green"
    if rate >= 50:
        return "yellow"
    return "red"


def render_results(results: Sequence[LoadResult], title: str = "Load Results") -> Table:
    """Build the per-entity results table in load order."""
    table = Table(title=title, box=box.ROUNDED, caption="In load order")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Entity", style="cyan", no_wrap=True)
    table.add_column("Attempted", justify="right", style="magenta")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Success %", justify="right")
    table.add_column("Elapsed (ms)", justify="right", style="blue")
    table.add_column("Error", style="dim", overflow="fold")

    for position, result in enumerate(results, start=1):
        rate_style = _rate_style(result.success_rate_pct) if result.attempted else "dim"
        table.add_row(
            str(position),
            result.entity_type,
            f"{result.attempted:,}",
            f"{result.created:,}",
            f"{result.failed:,}",
            f"[{rate_style}]{result.success_rate_pct:.2f}[/{rate_style}]"
            if result.attempted
            else "[dim]N/A[/dim]",
            f"{result.elapsed_ms:,}",
            result.error_message or "",
        )
    return table


def render_plan(plan: SequencePlan) -> Table:
    table = Table(title="Load Sequence", box=box.ROUNDED)
    table.add_column("Batch", justify="right", style="dim")
    table.add_column("Entity types", style="cyan")
    for number, batch in enumerate(plan.batches, start=1):
        marker = " [yellow](cycle)[/yellow]" if set(batch) & set(plan.cyclic) else ""
        table.add_row(str(number), ", ".join(batch) + marker)
    return table


def print_restore_report(report: Optional[RestoreReport], console: Optional[Console] = None) -> None:
    console = console or Console()
    if report is None:
        console.print("[dim]Validation rules were not suspended.[/dim]")
        return
    console.print(
        f"Validation rules: [green]{len(report.restored)} restored[/green], "
        f"[red]{len(report.failed)} failed[/red], "
        f"{len(report.already_active)} already active"
    )
    for name in report.failed:
        console.print(f"  [red]still inactive:[/red] {name}")


def print_results(summary: RunSummary) -> None:
    """
    Render a finished run: status line, per-entity table, and rule restoration.
    """
    console = Console()
    style = _STATUS_STYLE.get(summary.status.value, "white")
    console.print(
        f"Session [bold]{summary.session_id}[/bold]: [{style}]{summary.status.value}[/{style}]"
    )
    if summary.fatal_error:
        console.print(f"[bold red]Fatal error:[/bold red] {summary.fatal_error}")

    if not summary.results:
        console.print("[yellow]No results to display.[/yellow]")
    else:
        console.print(render_results(summary.results))
        attempted = sum(r.attempted for r in summary.results)
        created = sum(r.created for r in summary.results)
        rate = created / attempted * 100 if attempted else 0.0
        console.print(
            f"Total: {created:,}/{attempted:,} created "
            f"([{_rate_style(rate)}]{rate:.2f}%[/{_rate_style(rate)}])"
        )
    print_restore_report(summary.restore_report, console)


__all__ = ["print_results", "print_restore_report", "render_plan", "render_results"]
