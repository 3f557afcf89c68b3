"""Rich output formatting for the DappBot CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that ``--json`` output on *stdout* stays clean.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from rich.console import Console
from rich.table import Table

from dappbot_engine.models.billing import LapsedUserRecord


def _outcome_table(title: str, rows: list[tuple[str, str, str]]) -> Table:
    table = Table(title=title, show_lines=False, pad_edge=True, expand=False)
    table.add_column("Outcome", style="bold")
    table.add_column("Item")
    table.add_column("Detail")
    for outcome, item, detail in rows:
        table.add_row(outcome, item, detail)
    return table


def display_cleanup_result(console: Console, result: dict[str, Any]) -> None:
    """Render the reconciliation and distribution cleanup outcome.

    Parameters
    ----------
    console:
        Rich console to write to.
    result:
        Mapping with ``reconciliation`` and ``cleanup`` sections as returned
        by :func:`dappbot_engine.handler.run_cleanup`.
    """
    reconciliation = result.get("reconciliation", {})
    if "error" in reconciliation:
        console.print(f"[red]Reconciliation failed: {reconciliation['error']}[/red]")
    else:
        rows = [("[red]failed[/red]", owner, "-") for owner in reconciliation.get("failed", [])]
        rows += [("[green]recovered[/green]", owner, "-") for owner in reconciliation.get("recovered", [])]
        rows += [
            ("[yellow]skipped[/yellow]", owner, "unrecognized status") for owner in reconciliation.get("skipped", [])
        ]
        rows += [("[red]errored[/red]", owner, err) for owner, err in reconciliation.get("errored", {}).items()]
        if rows:
            console.print(_outcome_table("Lapsed users", rows))
        else:
            console.print("[dim]No lapsed users past the grace period.[/dim]")

    cleanup = result.get("cleanup", {})
    if "error" in cleanup:
        console.print(f"[red]Distribution cleanup failed: {cleanup['error']}[/red]")
        return
    rows = [("[green]deleted[/green]", dist_id, "-") for dist_id in cleanup.get("deleted", [])]
    rows += [("[red]failed[/red]", dist_id, err) for dist_id, err in cleanup.get("failed", {}).items()]
    ignored = len(cleanup.get("disabled", [])) - len(cleanup.get("eligible", []))
    if rows:
        console.print(_outcome_table("Distributions", rows))
    else:
        console.print("[dim]No distributions eligible for cleanup.[/dim]")
    if ignored > 0:
        console.print(f"[dim]{ignored} disabled distributions not owned by DappBot were left alone.[/dim]")


def display_lapsed_users(
    console: Console,
    records: list[LapsedUserRecord],
    grace_period_hours: float,
    now: datetime,
) -> None:
    """Render the lapsed-user ledger with each row's age."""
    if not records:
        console.print("[dim]No lapsed users.[/dim]")
        return

    table = Table(
        title=f"Lapsed users ({len(records)}, grace period {grace_period_hours:g}h)",
        show_lines=False,
        pad_edge=True,
        expand=False,
    )
    table.add_column("Owner", style="bold")
    table.add_column("Lapsed at")
    table.add_column("Age (h)", justify="right")
    table.add_column("Past grace")

    for record in sorted(records, key=lambda r: r.lapsed_at):
        age = record.age_hours(now)
        past = age > grace_period_hours
        table.add_row(
            record.email,
            record.lapsed_at.isoformat(),
            f"{age:.1f}",
            "[red]yes[/red]" if past else "[green]no[/green]",
        )

    console.print(table)
