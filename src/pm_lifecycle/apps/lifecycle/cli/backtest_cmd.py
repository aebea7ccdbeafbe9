"""CLI command for replaying historical snapshots through the lifecycle engine."""

from pathlib import Path
from typing import Annotated

import typer

from pm_lifecycle.apps.lifecycle.cli._helpers import (
    configure_verbose_logging,
    echo_config,
    echo_result,
    load_cli_config,
)
from pm_lifecycle.apps.lifecycle.replay_driver import ReplayDriver
from pm_lifecycle.apps.lifecycle.snapshot_loader import load_snapshots
from pm_lifecycle.core.models import SECONDS_PER_MINUTE


def backtest(  # noqa: PLR0913
    file: Annotated[Path, typer.Argument(help="Snapshot file (.json or .csv)")],
    test_mode: Annotated[
        str | None, typer.Option(help="Strategy preset (see the presets command)")
    ] = None,
    capital: Annotated[float | None, typer.Option(help="Initial capital in USD")] = None,
    max_positions: Annotated[int | None, typer.Option(help="Global open-position cap")] = None,
    min_volume: Annotated[
        float | None, typer.Option(help="Minimum 24h volume for candidates")
    ] = None,
    min_liquidity: Annotated[
        float | None, typer.Option(help="Minimum liquidity for candidates")
    ] = None,
    bucket_minutes: Annotated[
        int, typer.Option(help="Group snapshots into ticks of N minutes (0 = per timestamp)")
    ] = 0,
    show_trades: Annotated[  # noqa: FBT002
        bool, typer.Option("--trades", help="List every closed trade")
    ] = False,
    verbose: Annotated[  # noqa: FBT002
        bool, typer.Option("--verbose", "-v", help="Enable tick-by-tick logging")
    ] = False,
) -> None:
    """Replay a snapshot file and print the resulting trades and metrics."""
    if verbose:
        configure_verbose_logging()

    if not file.exists():
        typer.echo(f"Error: file not found: {file}", err=True)
        raise typer.Exit(code=1)

    config = load_cli_config(
        test_mode=test_mode,
        initial_capital=capital,
        max_positions=max_positions,
        min_volume=min_volume,
        min_liquidity=min_liquidity,
    )

    try:
        snapshots = load_snapshots(file)
    except (OSError, ValueError) as exc:
        typer.echo(f"Error: cannot load snapshots: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if not snapshots:
        typer.echo("Error: no valid snapshots in file", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Backtesting {len(snapshots)} snapshots from {file.name}")
    echo_config(config)
    typer.echo("")

    driver = ReplayDriver(
        snapshots,
        config,
        bucket_seconds=bucket_minutes * SECONDS_PER_MINUTE or None,
    )
    result = driver.start()

    typer.echo("\n--- Backtest Results ---")
    echo_result(result, show_trades=show_trades)
