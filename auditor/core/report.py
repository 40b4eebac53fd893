"""Human-readable run report for the terminal."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from auditor.models.types import Issue, PageRecord, Run, RunStatus, Severity, VisualDiff


SEVERITY_COLORS = {
    Severity.CRITICAL: "red bold",
    Severity.MAJOR: "red",
    Severity.MINOR: "yellow",
    Severity.TRIVIAL: "dim",
}
STATUS_COLORS = {
    RunStatus.COMPLETED: "green",
    RunStatus.FAILED: "red",
    RunStatus.RUNNING: "yellow",
    RunStatus.PENDING: "dim",
}


def print_report(run: Run, pages: list[PageRecord], issues: list[Issue],
                 diffs: list[VisualDiff] | None = None, console: Console | None = None):
    console = console or Console()
    diffs = diffs or []

    duration = ""
    if run.completed_at:
        secs = (run.completed_at - run.started_at).total_seconds()
        duration = f" in {secs:.1f}s"

    status_color = STATUS_COLORS.get(run.status, "white")
    header = Text()
    header.append("\n Site Audit Report\n", style="bold")
    header.append(f" Run {run.id}\n", style="dim")
    header.append(f" {run.pages_processed} pages processed{duration}\n", style="dim")
    console.print(Panel(header, border_style="blue"))

    console.print()
    status_text = Text()
    status_text.append("  Status: ", style="bold")
    status_text.append(run.status.value, style=f"bold {status_color}")
    if run.error_message:
        status_text.append(f" ({run.error_message})", style="dim")
    console.print(status_text)
    console.print()

    if issues:
        counts = {}
        for issue in issues:
            counts[issue.severity] = counts.get(issue.severity, 0) + 1
        parts = []
        for sev in Severity:
            if sev in counts:
                color = SEVERITY_COLORS[sev]
                parts.append(f"[{color}]{counts[sev]} {sev.value}[/{color}]")
        console.print(f"  Issues created: {', '.join(parts)}\n")

        table = Table(show_header=True, header_style="bold", padding=(0, 1))
        table.add_column("Severity", width=9)
        table.add_column("Type", width=18)
        table.add_column("Issue", min_width=40)
        table.add_column("Page", max_width=35)

        for issue in sorted(issues, key=lambda i: i.severity.rank):
            table.add_row(
                Text(issue.severity.value, style=SEVERITY_COLORS[issue.severity]),
                issue.type.value,
                issue.title[:60],
                _short(issue.url, 35),
            )
        console.print(table)
        console.print()
    elif run.status == RunStatus.COMPLETED:
        console.print("  [green bold]No issues found.[/green bold]\n")

    if pages:
        page_table = Table(title="Pages", show_header=True, header_style="bold", padding=(0, 1))
        page_table.add_column("Page", max_width=45)
        page_table.add_column("Status", width=7, justify="right")
        page_table.add_column("Depth", width=5, justify="right")
        page_table.add_column("Result", min_width=20)

        for page in pages:
            if page.render_failed:
                result = f"[red]failed: {(page.render_error or '')[:60]}[/red]"
            else:
                result = "[green]audited[/green]"
            status = str(page.status_code) if page.status_code is not None else "-"
            page_table.add_row(_short(page.url, 45), status, str(page.depth), result)

        console.print(page_table)
        console.print()

    failed_diffs = [d for d in diffs if not d.passed]
    if failed_diffs:
        console.print(f"  [red]Visual regressions: {len(failed_diffs)}[/red]")
        for diff in failed_diffs[:10]:
            console.print(
                f"    [dim]• baseline {diff.baseline_id}: {diff.difference_percentage:.2f}% "
                f"({diff.pixel_diff_count:,} px) → {diff.diff_image_path}[/dim]"
            )
        console.print()


def _short(url: str, width: int) -> str:
    short = url.replace("https://", "").replace("http://", "")
    if len(short) > width:
        short = short[: width - 3] + "..."
    return short
