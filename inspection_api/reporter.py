from __future__ import annotations

from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from inspection_api.domain.models import ReportSummary


def print_reports(
    rows: Sequence[ReportSummary], kind: Optional[str] = None, console: Optional[Console] = None
) -> None:
    """
    Render report summaries as a rich table, newest first.
    """
    console = console or Console()

    if not rows:
        console.print("[yellow]No reports to display.[/yellow]")
        return

    title = "Inspection Reports"
    if kind:
        title = f"{title}\n[dim]type = {kind}[/dim]"

    table = Table(title=title, box=box.ROUNDED, caption=f"{len(rows)} row(s)")
    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Type", style="magenta")
    table.add_column("Report Date", style="green")
    table.add_column("Invoice", style="yellow")
    table.add_column("Reporter")
    table.add_column("Updated", style="dim")

    for row in rows:
        table.add_row(
            str(row.id),
            row.type,
            row.reportDate or "-",
            row.invoiceNo or "-",
            row.reporter or "-",
            row.updated_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


__all__ = ["print_reports"]
