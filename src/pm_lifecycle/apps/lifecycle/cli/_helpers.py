"""Shared helpers for the lifecycle CLI commands.

Centralise verbose logging setup, configuration loading with CLI
overrides, Polymarket client construction and result printing.
"""

import logging
from typing import Any

import typer

from pm_lifecycle.apps.lifecycle.config import EngineConfig, build_engine_config
from pm_lifecycle.apps.lifecycle.models import RunResult
from pm_lifecycle.clients.polymarket.client import PolymarketClient
from pm_lifecycle.core.config import ConfigError, get_config
from pm_lifecycle.core.models import to_decimal


def configure_verbose_logging() -> None:
    """Enable INFO-level logging for tick-by-tick engine output."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(message)s",
        datefmt="%H:%M:%S",
    )


def load_cli_config(**overrides: Any) -> EngineConfig:
    """Load the ``lifecycle`` settings and apply non-``None`` CLI overrides.

    Abort with exit code 1 if the settings cannot be loaded or are invalid.

    Args:
        **overrides: Snake-case engine settings given on the command line.

    Returns:
        The validated engine configuration.

    """
    try:
        raw = dict(get_config().get_section("lifecycle"))
        raw.update({key: value for key, value in overrides.items() if value is not None})
        return build_engine_config(raw)
    except (ConfigError, ValueError) as exc:
        typer.echo(f"Error: invalid configuration: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def build_client() -> PolymarketClient:
    """Build a PolymarketClient from the ``polymarket`` settings section."""
    loader = get_config()
    return PolymarketClient(
        clob_url=str(loader.get("polymarket.clob_api_url", PolymarketClient.CLOB_URL)),
        gamma_url=str(loader.get("polymarket.gamma_api_url", PolymarketClient.GAMMA_URL)),
        timeout=float(to_decimal(loader.get("polymarket.timeout_seconds"), to_decimal(30))),
    )


def echo_config(config: EngineConfig) -> None:
    """Print the key settings of a run."""
    typer.echo(f"Capital: ${config.initial_capital}")
    typer.echo(f"Max positions: {config.max_positions}")
    for strategy_type in config.enabled_strategies:
        strategy = config.strategy(strategy_type)
        typer.echo(
            f"  {strategy_type.value}: max {strategy.max_positions} positions, "
            f"{strategy.max_position_size} of equity each"
        )


def echo_result(result: RunResult, *, show_trades: bool = False) -> None:
    """Print a run summary, metrics and optionally every closed trade."""
    closed = [p for p in result.positions if not p.is_open]
    typer.echo(f"Ticks processed: {result.ticks_processed}")
    typer.echo(f"Initial capital: ${result.initial_capital:.2f}")
    typer.echo(f"Final equity:    ${result.final_equity:.2f}")
    typer.echo(f"Total trades: {len(closed)}")
    if result.open_positions:
        typer.echo(f"Open positions: {len(result.open_positions)}")
        typer.echo(f"Floating P&L:   ${result.floating_pnl:.2f}")

    if result.metrics:
        typer.echo("\nMetrics:")
        for key, value in result.metrics.items():
            typer.echo(f"  {key}: {value:.4f}")

    for name, metrics in result.strategy_metrics.items():
        typer.echo(f"\n{name}:")
        for key, value in metrics.items():
            typer.echo(f"  {key}: {value:.4f}")

    if show_trades and closed:
        typer.echo("\nTrades:")
        for position in closed:
            typer.echo(
                f"  {position.strategy.value:<11} {position.market_id[:20]:<20} "
                f"{position.outcome_name:<4} {position.entry_price} -> {position.exit_price} "
                f"pnl={position.pnl:.2f} ({position.pnl_percent:.1f}%) {position.exit_reason}"
            )
