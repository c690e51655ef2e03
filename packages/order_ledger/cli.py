# ruff: noqa: I001
"""CLI for the ``order_ledger`` package.

A Typer console that acts as the composition root: it reads settings from the
environment (after loading a local ``.env`` with ``python-dotenv``), builds
the cache, the optional sheet transport and the store, runs the startup
sequence and prints what the dashboard would show.
"""

from __future__ import annotations

import datetime as dt
from pathlib import Path

import typer
from dotenv import load_dotenv

from .cache import open_cache
from .config import LedgerSettings
from .errors import ConfigurationError, LedgerError, PushFailures
from .images import display_url
from .logging_setup import configure_logging, get_logger
from .store import LedgerStore
from .transport import SheetsTransport

_logger = get_logger("order_ledger.cli")


def build_store(settings: LedgerSettings, *, offline: bool = False) -> LedgerStore:
    """Wire cache, transport and store from ``settings``.

    An unconfigured remote is not fatal: the store runs on the local cache
    and the reason is logged. ``offline`` skips the remote even when it is
    configured.
    """

    cache = open_cache(settings)
    transport: SheetsTransport | None = None
    if not offline:
        try:
            transport = SheetsTransport(settings.require_remote())
        except ConfigurationError as e:
            _logger.error("cli:sync_disabled %s", e)
    return LedgerStore(cache=cache, transport=transport, images=settings.image_policy)


def _load_settings() -> LedgerSettings:
    try:
        return LedgerSettings.from_env()
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e


def _open_store(offline: bool) -> LedgerStore:
    settings = _load_settings()
    try:
        store = build_store(settings, offline=offline)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e
    store.initialize()
    return store


def _money(value) -> str:
    return f"{value:,.2f}"


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Order ledger for a home bakery: orders, customers and expenses kept in a "
        "local cache and mirrored to a Google Sheet. Loads settings from a local .env."
    ),
)

OFFLINE_OPTION = typer.Option(False, "--offline", help="Use the local cache only; skip the sheet.")


@app.command("status")
def status_cmd(offline: bool = OFFLINE_OPTION) -> None:
    """Show configuration and collection sizes after startup."""

    settings = _load_settings()
    missing = settings.missing_remote_settings()
    with _open_store(offline) as store:
        typer.echo(f"cache backend: {settings.cache_backend}")
        if store.sync_enabled:
            typer.echo("sync: enabled")
        elif offline:
            typer.echo("sync: disabled (--offline)")
        else:
            typer.echo("sync: disabled (missing " + ", ".join(missing) + ")")
        typer.echo(f"orders: {len(store.get_orders())}")
        typer.echo(f"customers: {len(store.get_customers())}")
        typer.echo(f"expenses: {len(store.get_expenses())}")


@app.command("dashboard")
def dashboard_cmd(
    year: int | None = typer.Option(None, help="Calendar year (defaults to the current one)."),
    month: int | None = typer.Option(
        None, min=1, max=12, help="Month 1-12 (defaults to the current one)."
    ),
    offline: bool = OFFLINE_OPTION,
) -> None:
    """Print the monthly figures for one month."""

    today = dt.date.today()
    y = year if year is not None else today.year
    m = month if month is not None else today.month
    with _open_store(offline) as store:
        revenue = store.monthly_revenue(y, m)
        spent = store.monthly_expenses(y, m)
        typer.echo(f"{y}-{m:02d}")
        typer.echo(f"revenue: {_money(revenue)}")
        typer.echo(f"orders: {store.monthly_orders_count(y, m)}")
        typer.echo(f"eggless: {store.monthly_eggless_count(y, m)}")
        typer.echo(f"new customers: {store.new_customers_count(y, m)}")
        typer.echo(f"expenses: {_money(spent)}")
        typer.echo(f"net: {_money(revenue - spent)}")


@app.command("upcoming")
def upcoming_cmd(
    count: int = typer.Option(3, min=0, help="How many orders to list."),
    offline: bool = OFFLINE_OPTION,
) -> None:
    """List the next undelivered orders by due date."""

    with _open_store(offline) as store:
        orders = store.upcoming_orders(count)
        if not orders:
            typer.echo("No upcoming orders.")
            return
        for o in orders:
            line = f"{o.due_date.isoformat() if o.due_date else '-'}  {o.customer_name}  {o.cake_type}"
            line += f"  x{o.quantity}  {_money(o.grand_total)}  [{o.status}]"
            if o.is_eggless:
                line += "  eggless"
            image = display_url(o.cake_image)
            if image:
                line += f"  {image}"
            typer.echo(line)


@app.command("sync")
def sync_cmd(
    force: bool = typer.Option(
        False, "--force", help="Push the local cache even when the sheet could not be read first."
    ),
) -> None:
    """Load, then push every collection to the sheet and report the outcome.

    Refuses to push when the startup fetch failed, since the push would replace
    the sheet with whatever the local cache holds. ``--force`` pushes anyway.
    """

    with _open_store(offline=False) as store:
        if store.sync_enabled and not store.loaded_from_remote and not force:
            typer.echo(
                "Error: could not read the sheet; pushing now would overwrite it with the "
                "local cache. Re-run with --force to push anyway.",
                err=True,
            )
            raise typer.Exit(1)
        try:
            store.sync_now()
        except ConfigurationError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(2) from e
        except PushFailures as eg:
            for exc in eg.exceptions:
                typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(1) from eg
        except LedgerError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from e
    typer.echo("Sync dispatched for Orders, Customers and Expenses.")


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
