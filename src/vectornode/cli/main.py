"""
VectorNode CLI

Command-line interface for operating the bid matching engine.
"""

import logging
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..config import settings

# Fix Windows console encoding
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding='utf-8', errors='replace')
from ..db import get_repository
from ..exceptions import VectorNodeError
from ..models import RankedShipment, RankTier, ShipmentStatus
from ..sample_data import seed_demo_marketplace
from ..services import BidRankingService, SelectionStateMachine

app = typer.Typer(
    name="vectornode",
    help="VectorNode: freight bid matching engine",
    add_completion=False,
)
console = Console()

TIER_STYLES = {
    RankTier.TOP_MATCH: "bold green",
    RankTier.GOOD_MATCH: "cyan",
    RankTier.STANDARD: "dim",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.LOG_LEVEL,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _fail(error: VectorNodeError) -> None:
    console.print(f"[red]{error}[/red]")
    raise typer.Exit(1)


def _print_ranking(ranked: RankedShipment) -> None:
    shipment = ranked.shipment
    stats = ranked.matching_stats

    console.print(Panel.fit(
        f"[bold]{shipment.title}[/bold]\n"
        f"{shipment.route}\n"
        f"Status: {shipment.status.value}",
        title=f"Shipment {shipment.id[:8]}",
    ))

    if not ranked.bids:
        console.print("\n[yellow]No bids yet.[/yellow]")
        return

    table = Table(title="Ranked Bids")
    table.add_column("#", style="dim")
    table.add_column("Bid", style="cyan")
    table.add_column("Carrier")
    table.add_column("Price", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Tier")
    table.add_column("Why", style="dim")

    for position, sb in enumerate(ranked.bids, start=1):
        style = TIER_STYLES.get(sb.rank, "")
        table.add_row(
            str(position),
            sb.bid.id[:8],
            sb.carrier_name or sb.bid.carrier_id[:8],
            f"{sb.total_price:,.2f} {sb.bid.currency}",
            f"{sb.match_score:.1f}",
            f"[{style}]{sb.rank.value}[/{style}]",
            ", ".join(sb.insights[:3]),
        )

    console.print(table)

    summary = Table(title="Matching Stats")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", style="green")
    summary.add_row("Total Bids", str(stats.total_bids))
    summary.add_row("Top / Good / Standard", f"{stats.top_matches} / {stats.good_matches} / {stats.standard_matches}")
    summary.add_row("Avg Match Score", f"{stats.average_score_display}/100")
    if stats.price_range:
        summary.add_row("Price Range", f"{stats.price_range.min:,.2f} - {stats.price_range.max:,.2f}")
    summary.add_row("Confidence", stats.confidence.value)
    console.print(summary)


# =============================================================================
# Matching Commands
# =============================================================================

@app.command()
def rank(
    shipment_id: str = typer.Argument(..., help="Shipment to rank"),
    shipper_id: Optional[str] = typer.Option(None, "--shipper", "-s", help="Requesting shipper"),
):
    """
    Rank a shipment's bids.

    Shows every eligible bid with its match score, tier and top insights.
    """
    try:
        ranked = BidRankingService(get_repository()).rank_bids(shipment_id, shipper_id=shipper_id)
    except VectorNodeError as e:
        _fail(e)
    _print_ranking(ranked)


@app.command()
def shipments(
    status: Optional[ShipmentStatus] = typer.Option(None, "--status", help="Filter by status"),
    shipper_id: Optional[str] = typer.Option(None, "--shipper", "-s", help="Filter by shipper"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum rows"),
):
    """List shipments, newest first."""
    rows = get_repository().list_shipments(shipper_id=shipper_id, status=status, limit=limit)
    if not rows:
        console.print("[yellow]No shipments found.[/yellow]")
        return

    table = Table(title=f"Shipments ({len(rows)})")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Route")
    table.add_column("Status")

    for shipment in rows:
        table.add_row(shipment.id[:8], shipment.title, shipment.route, shipment.status.value)

    console.print(table)


@app.command()
def select(
    shipment_id: str = typer.Argument(..., help="Shipment"),
    bid_id: str = typer.Argument(..., help="Winning bid"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """
    Select the winning bid for a shipment. Cannot be undone.
    """
    if not yes and not typer.confirm("Select this carrier? This action cannot be undone."):
        raise typer.Exit(0)

    try:
        result = SelectionStateMachine(get_repository()).select_bid(shipment_id, bid_id)
    except VectorNodeError as e:
        _fail(e)

    console.print(f"[green]Carrier {result.accepted_bid.carrier_id} selected.[/green]")
    console.print(f"[dim]{len(result.rejected_bids)} other bids rejected.[/dim]")


@app.command()
def withdraw(
    bid_id: str = typer.Argument(..., help="Bid to withdraw"),
):
    """Withdraw a pending bid."""
    try:
        bid = SelectionStateMachine(get_repository()).withdraw_bid(bid_id)
    except VectorNodeError as e:
        _fail(e)
    console.print(f"[green]Bid {bid.id} withdrawn.[/green]")


@app.command()
def expire(
    bid_id: str = typer.Argument(..., help="Bid to expire"),
):
    """Expire a pending bid (no-op if already expired)."""
    try:
        bid = SelectionStateMachine(get_repository()).expire_bid(bid_id)
    except VectorNodeError as e:
        _fail(e)
    console.print(f"[green]Bid {bid.id} is {bid.status.value}.[/green]")


@app.command()
def sweep():
    """Expire every pending bid past its deadline."""
    expired = SelectionStateMachine(get_repository()).expire_overdue_bids()
    console.print(f"[green]Expired {len(expired)} overdue bids.[/green]")


# =============================================================================
# System Commands
# =============================================================================

@app.command()
def stats():
    """Show database statistics."""
    data = get_repository().get_stats()

    for section, counts in data.items():
        table = Table(title=section.title())
        table.add_column("Status", style="cyan")
        table.add_column("Count", style="green")
        for key, value in counts.items():
            table.add_row(key, str(value))
        console.print(table)


@app.command()
def init():
    """Initialize the database."""
    console.print("[dim]Initializing database...[/dim]")
    repo = get_repository()
    repo.init_db()
    console.print(f"[green]Database ready at {settings.DATABASE_URL}[/green]")


@app.command()
def demo():
    """
    Seed a sample shipment with three bids and rank it.
    """
    console.print(Panel.fit(
        "[bold green]VectorNode Smart Matching[/bold green]\n"
        "Seeding a sample shipment with three carrier bids...",
        title="Demo",
    ))
    repo = get_repository()
    market = seed_demo_marketplace(repo)
    ranked = BidRankingService(repo).rank_bids(market.shipment.id)
    _print_ranking(ranked)

    top = ranked.top_matches
    if top:
        console.print(f"\n[bold]{len(top)} top matches.[/bold] Select one with:")
        console.print(f"[dim]vectornode select {market.shipment.id} {top[0].bid_id}[/dim]")


@app.command()
def version():
    """Show version information."""
    console.print(f"{settings.APP_NAME} v{settings.APP_VERSION}")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload on code changes"),
):
    """
    Start the FastAPI server.
    """
    import uvicorn

    console.print(Panel.fit(
        f"[bold green]{settings.APP_NAME}[/bold green]\n"
        f"API: http://{host}:{port}\n"
        f"Docs: http://{host}:{port}/docs",
        title="Server",
    ))
    uvicorn.run("vectornode.server:app", host=host, port=port, reload=reload, log_level="info")


if __name__ == "__main__":
    app()
