"""CLI subpackage for the lifecycle engine.

Create the Typer application and register all command modules.
"""

import typer

from pm_lifecycle.apps.lifecycle.cli.backtest_cmd import backtest
from pm_lifecycle.apps.lifecycle.cli.live_cmd import live
from pm_lifecycle.apps.lifecycle.cli.presets_cmd import presets

app = typer.Typer(help="Prediction-market position lifecycle engine")

app.command()(backtest)
app.command()(live)
app.command()(presets)

__all__ = ["app"]
