"""DappBot operator CLI -- Typer-based maintenance interface.

Runs the same reconciliation, cleanup and billing transitions the Lambda
function runs, against the environment's configured AWS account.
Human-readable output goes to *stderr* via Rich; ``--json`` writes
machine-readable output to *stdout*.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

import typer
from rich.console import Console

from dappbot_cli.display import display_cleanup_result, display_lapsed_users
from dappbot_engine.handler import Services, get_application, run_cleanup
from dappbot_engine.models.billing import PaymentStatus

T = TypeVar("T")

app = typer.Typer(
    name="dappbot",
    help="DappBot - hosted dapp lifecycle maintenance",
    no_args_is_help=True,
)
console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_with_services(fn: Callable[[Services], Awaitable[T]]) -> T:
    application = get_application()

    async def _run() -> T:
        async with application.services() as services:
            return await fn(services)

    return asyncio.run(_run())


def _write_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")


# ---------------------------------------------------------------------------
# cleanup
# ---------------------------------------------------------------------------


@app.command()
def cleanup(
    json_output: bool = typer.Option(False, "--json", help="Emit the result as JSON on stdout."),
) -> None:
    """Run one lapsed-user reconciliation tick and the CDN garbage collector."""
    try:
        result = _run_with_services(run_cleanup)
    except Exception as exc:
        console.print(f"[red]Cleanup failed: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    if json_output:
        _write_json(result)
    else:
        display_cleanup_result(console, result)

    reconciliation = result.get("reconciliation", {})
    distributions = result.get("cleanup", {})
    if "error" in reconciliation or "error" in distributions:
        raise typer.Exit(code=1)
    if reconciliation.get("errored") or distributions.get("failed"):
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# payment-status
# ---------------------------------------------------------------------------


@app.command("payment-status")
def payment_status(
    email: str = typer.Argument(..., help="Owner email (Cognito username)."),
    status: str = typer.Argument(..., help="ACTIVE | LAPSED | FAILED | CANCELLED"),
) -> None:
    """Apply a billing status change to one owner."""
    try:
        target = PaymentStatus(status.strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in PaymentStatus)
        console.print(f"[red]Unknown payment status '{status}'. Expected one of: {allowed}[/red]")
        raise typer.Exit(code=2) from None

    result = _run_with_services(lambda services: services.reconciler.apply_payment_status(email, target))
    if result.ok:
        console.print(f"[green]{email} is now {target.value}.[/green]")
        return
    for error in result.errors:
        console.print(f"[red]{error}[/red]")
    console.print("[yellow]Partially applied; the next reconciliation run will converge.[/yellow]")
    raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# lapsed-users
# ---------------------------------------------------------------------------


@app.command("lapsed-users")
def lapsed_users(
    json_output: bool = typer.Option(False, "--json", help="Emit the ledger as JSON on stdout."),
) -> None:
    """List the lapsed-user ledger and which rows are past the grace period."""
    application = get_application()
    try:
        records = asyncio.run(application.table.scan_lapsed_users())
    except Exception as exc:
        console.print(f"[red]Failed to read lapsed users: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    grace = application.table.grace_period_hours
    now = datetime.now(UTC)
    if json_output:
        _write_json(
            [
                {
                    "email": record.email,
                    "lapsed_at": record.lapsed_at.isoformat(),
                    "age_hours": round(record.age_hours(now), 2),
                    "past_grace_period": record.age_hours(now) > grace,
                }
                for record in records
            ]
        )
    else:
        display_lapsed_users(console, records, grace, now)
