# cruise_watch/cli/runner.py

"""Headless CLI commands built on the watch manager."""

import json
import logging
import sys

from rich.console import Console
from rich.table import Table

from cruise_watch.errors import SourceError, WatchError
from cruise_watch.models.analytics import Trend, WatchedOfferView
from cruise_watch.services.refresh_orchestrator import (
    RefreshReport,
    RefreshStatus,
)
from cruise_watch.services.watch_manager import WatchManager
from cruise_watch.sources.cruiseway_source import CruisewaySource
from cruise_watch.storage.watch_store import WatchStore

logger = logging.getLogger("cruise_watch.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def build_manager() -> WatchManager:
    """Wire the default store and Cruiseway source into a manager."""
    return WatchManager(WatchStore(), CruisewaySource())


def _views_to_dicts(
    views: list[WatchedOfferView],
) -> list[dict[str, object]]:
    """Serialise watched offers to plain dicts for JSON output."""
    result: list[dict[str, object]] = []
    for v in views:
        a = v.analytics
        attrs = v.offer.attributes
        result.append({
            "offer_id": v.offer.offer_id,
            "vessel_name": attrs.vessel_name,
            "departure_date": attrs.departure_date,
            "port_name": attrs.port_name,
            "duration": attrs.duration,
            "created_at": v.offer.created_at.isoformat(),
            "current_price": str(a.current_price),
            "min_price": str(a.min_price),
            "max_price": str(a.max_price),
            "trend": a.trend.value,
            "previous_low": (
                {
                    "price": str(a.previous_low.price),
                    "recorded_at": a.previous_low.recorded_at.isoformat(),
                }
                if a.previous_low is not None
                else None
            ),
            "price_history": [
                {
                    "price": str(o.price),
                    "recorded_at": o.recorded_at.isoformat(),
                }
                for o in v.history
            ],
        })
    return result


def _print_watch_table(views: list[WatchedOfferView]) -> None:
    """Render a Rich table of watched offers to stdout."""
    table = Table(
        title="Watched Cruises",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Offer", style="dim")
    table.add_column("Ship", max_width=30)
    table.add_column("Departure")
    table.add_column("Port")
    table.add_column("Nights", justify="right")
    table.add_column("Current", justify="right")
    table.add_column("Lowest", justify="right", style="green")
    table.add_column("Trend", max_width=50)

    for v in views:
        a = v.analytics
        attrs = v.offer.attributes
        current_style = (
            "green" if a.trend is Trend.AT_MINIMUM else "red"
        )
        table.add_row(
            v.offer.offer_id,
            attrs.vessel_name or "Unknown Ship",
            attrs.departure_date or "N/A",
            attrs.port_name or "N/A",
            str(attrs.duration) if attrs.duration is not None else "N/A",
            f"[{current_style}]{a.current_price:,.2f}[/{current_style}]",
            f"{a.min_price:,.2f}",
            a.describe(),
        )

    Console().print(table)


def cli_list(output_format: str = "table") -> int:
    """Print every watched offer with its analytics."""
    manager = build_manager()
    try:
        views = manager.list()
    except WatchError as exc:
        logger.error("Cannot read watch list: %s", exc, exc_info=True)
        _err.print(f"[red]Cannot read watch list: {exc}[/red]")
        return 1
    if not views:
        _err.print("[yellow]No watched cruises.[/yellow]")
        return 0

    if output_format == "table":
        _print_watch_table(views)
    else:
        json.dump(
            _views_to_dicts(views),
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")
    return 0


def cli_watch(offer_id: str) -> int:
    """Look up an offer upstream and start watching it."""
    manager = build_manager()
    try:
        created = manager.watch_by_id(offer_id)
    except SourceError as exc:
        logger.error("Cannot watch offer %s: %s", offer_id, exc)
        _err.print(f"[red]Cannot watch offer {offer_id}: {exc.reason}[/red]")
        return 1
    except (WatchError, ValueError) as exc:
        logger.error(
            "Cannot watch offer %s: %s", offer_id, exc, exc_info=True,
        )
        _err.print(f"[red]Cannot watch offer {offer_id}: {exc}[/red]")
        return 1

    if created:
        _err.print(f"[green]✓ Watching offer {offer_id}[/green]")
    else:
        _err.print(f"[dim]Offer {offer_id} is already watched[/dim]")
    return 0


def cli_unwatch(offer_id: str) -> int:
    """Stop watching an offer."""
    manager = build_manager()
    try:
        removed = manager.unwatch(offer_id)
    except WatchError as exc:
        logger.error(
            "Cannot unwatch offer %s: %s", offer_id, exc, exc_info=True,
        )
        _err.print(f"[red]Cannot unwatch offer {offer_id}: {exc}[/red]")
        return 1
    if removed:
        _err.print(f"[green]✓ Unwatched offer {offer_id}[/green]")
    else:
        _err.print(f"[dim]Offer {offer_id} was not watched[/dim]")
    return 0


def _print_refresh_table(report: RefreshReport) -> None:
    """Render per-offer refresh outcomes to stdout."""
    table = Table(
        title="Price Refresh",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Offer", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Price", justify="right")
    table.add_column("Notes", style="dim")

    for o in report.outcomes:
        if o.status is RefreshStatus.SUCCESS:
            status = "[green]✅ UPDATED[/green]"
        else:
            status = "[red]❌ FAILED[/red]"
        price = f"{o.price:,.2f}" if o.price is not None else "—"
        table.add_row(o.offer_id, status, price, o.error)

    Console().print(table)


async def cli_refresh() -> int:
    """Run one refresh pass; exit code 1 if any offer failed."""
    manager = build_manager()
    _err.print("[bold]Refreshing watched cruise prices...[/bold]")
    try:
        report = await manager.refresh_all()
    except WatchError as exc:
        logger.error("Refresh pass could not run: %s", exc, exc_info=True)
        _err.print(f"[red]Refresh failed: {exc}[/red]")
        return 1

    if not report.outcomes:
        _err.print("[yellow]No watched cruises to refresh.[/yellow]")
        return 0

    _print_refresh_table(report)
    colour = "yellow" if report.failed else "green"
    _err.print(f"[{colour}]{report.summary()}[/{colour}]")
    return 1 if report.failed else 0
