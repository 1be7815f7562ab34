"""history command — display past review records from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_VERDICT_STYLE = {"ALL_CLEAR": "green", "FINDINGS": "yellow"}


@click.command("history")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Filter by PR number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, repo: str, pr_number: int | None, limit: int):
    """Show past review records for a repository, most recent first."""
    from diffguard_store.noop import NoOpStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, NoOpStore):
        raise click.UsageError("No store configured. Add 'store: sqlite' or 'store: gist' to .diffguard.yml.")

    records = store.list_reviews(repo, pr_number=pr_number)
    if not records:
        console.print("[yellow]No review records found.[/yellow]")
        return

    records = list(reversed(records))[:limit]

    table = Table(title=f"Review History — {repo}", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Window", width=17)
    table.add_column("Verdict", width=10)
    table.add_column("Files", justify="right", width=6)
    table.add_column("Findings", justify="right", width=9)
    table.add_column("Reviewed At", width=20)

    for r in records:
        style = _VERDICT_STYLE.get(r.verdict, "white")
        table.add_row(
            f"#{r.pr_number}",
            f"{r.base_sha[:7]}..{r.head_sha[:7]}",
            f"[{style}]{r.verdict}[/{style}]",
            str(r.files_reviewed),
            str(len(r.findings)),
            r.reviewed_at[:19].replace("T", " "),
        )

    console.print(table)
