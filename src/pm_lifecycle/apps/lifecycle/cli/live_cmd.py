"""CLI command for running the lifecycle engine against live Polymarket data.

Positions are simulated; no orders are sent to the exchange.
"""

import asyncio
from typing import Annotated

import typer

from pm_lifecycle.apps.lifecycle.cli._helpers import (
    build_client,
    configure_verbose_logging,
    echo_config,
    echo_result,
    load_cli_config,
)
from pm_lifecycle.apps.lifecycle.config import EngineConfig
from pm_lifecycle.apps.lifecycle.feeds import (
    PolymarketMarketFeed,
    PolymarketOrderBookSource,
)
from pm_lifecycle.apps.lifecycle.poll_driver import PollDriver


def live(  # noqa: PLR0913
    test_mode: Annotated[
        str | None, typer.Option(help="Strategy preset (see the presets command)")
    ] = None,
    capital: Annotated[float | None, typer.Option(help="Initial capital in USD")] = None,
    interval_minutes: Annotated[
        int | None, typer.Option(help="Minutes between market polls")
    ] = None,
    max_ticks: Annotated[
        int | None, typer.Option(help="Stop after N ticks (None = until Ctrl-C)")
    ] = None,
    max_markets: Annotated[int, typer.Option(help="Maximum markets scanned per poll")] = 15000,
    order_books: Annotated[  # noqa: FBT002
        bool, typer.Option(help="Validate candidate liquidity against CLOB order books")
    ] = True,
    close_on_stop: Annotated[  # noqa: FBT002
        bool, typer.Option(help="Close open positions at their latest price on stop")
    ] = False,
    verbose: Annotated[  # noqa: FBT002
        bool, typer.Option("--verbose", "-v", help="Enable tick-by-tick logging")
    ] = False,
) -> None:
    """Poll Polymarket and simulate strategy entries and exits until stopped."""
    if verbose:
        configure_verbose_logging()

    config = load_cli_config(
        test_mode=test_mode,
        initial_capital=capital,
        update_interval_minutes=interval_minutes,
    )

    typer.echo("Starting live simulation (Ctrl-C to stop)")
    echo_config(config)
    typer.echo(f"Poll interval: {config.update_interval_minutes} min")
    if max_ticks is not None:
        typer.echo(f"Max ticks: {max_ticks}")
    typer.echo("")

    asyncio.run(
        _live(
            config=config,
            max_ticks=max_ticks,
            max_markets=max_markets,
            use_order_books=order_books,
            close_on_stop=close_on_stop,
        )
    )


async def _live(
    *,
    config: EngineConfig,
    max_ticks: int | None,
    max_markets: int,
    use_order_books: bool,
    close_on_stop: bool,
) -> None:
    """Run the poll driver until SIGINT or ``max_ticks``.

    Args:
        config: Engine configuration.
        max_ticks: Maximum number of ticks.
        max_markets: Upper bound on markets scanned per poll.
        use_order_books: Whether to revalidate liquidity via the CLOB API.
        close_on_stop: Whether to close open positions when polling stops.

    """
    async with build_client() as client:
        driver = PollDriver(
            PolymarketMarketFeed(client, max_markets=max_markets),
            config,
            order_books=PolymarketOrderBookSource(client) if use_order_books else None,
            close_on_stop=close_on_stop,
        )
        result = await driver.run(max_ticks=max_ticks)

    typer.echo("\n--- Live Simulation Results ---")
    echo_result(result, show_trades=True)
