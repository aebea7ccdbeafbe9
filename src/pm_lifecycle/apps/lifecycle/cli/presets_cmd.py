"""CLI command for listing the strategy test-mode presets."""

import typer

from pm_lifecycle.apps.lifecycle.config import TEST_MODE_PRESETS


def presets() -> None:
    """List the available test-mode presets and their position budgets."""
    for name, strategies in TEST_MODE_PRESETS.items():
        parts = [
            f"{strategy_type.value}={config.max_positions}"
            for strategy_type, config in strategies.items()
            if config.enabled
        ]
        typer.echo(f"{name}: {', '.join(parts)}")
