"""Performance metrics for evaluating a finished run.

Each function computes a single metric from closed positions or from the
equity curve. ``compute_metrics`` runs all of them and returns a dictionary
suitable for display; ``compute_strategy_metrics`` breaks the trade-level
metrics down by strategy.
"""

from collections.abc import Sequence
from decimal import Decimal

from pm_lifecycle.apps.lifecycle.models import EquityPoint, Position
from pm_lifecycle.core.models import HUNDRED, ZERO

_MIN_TRADES_FOR_SHARPE = 2


def _closed(positions: Sequence[Position]) -> list[Position]:
    return [p for p in positions if not p.is_open]


def total_return(initial_capital: Decimal, final_equity: Decimal) -> Decimal:
    """Return the total return as a decimal fraction (e.g. 0.25 = +25%)."""
    if initial_capital == ZERO:
        return ZERO
    return (final_equity - initial_capital) / initial_capital


def win_rate(positions: Sequence[Position]) -> Decimal:
    """Return the fraction of closed positions with positive P&L (0.0 to 1.0)."""
    closed = _closed(positions)
    if not closed:
        return ZERO
    winners = sum(1 for p in closed if p.pnl > ZERO)
    return Decimal(winners) / Decimal(len(closed))


def profit_factor(positions: Sequence[Position]) -> Decimal:
    """Return gross profit divided by gross loss.

    Return ``Infinity`` when there are winners but no losers, and zero when
    there are no closed positions at all.
    """
    closed = _closed(positions)
    gross_profit = sum((p.pnl for p in closed if p.pnl > ZERO), ZERO)
    gross_loss = abs(sum((p.pnl for p in closed if p.pnl < ZERO), ZERO))
    if gross_loss == ZERO:
        return Decimal("Infinity") if gross_profit > ZERO else ZERO
    return gross_profit / gross_loss


def max_drawdown(curve: Sequence[EquityPoint], initial_capital: Decimal) -> Decimal:
    """Return the largest peak-to-trough decline in total assets, as a fraction.

    Walk the equity curve tick by tick (total assets include floating P&L),
    tracking the running high-water mark.
    """
    peak = initial_capital
    max_dd = ZERO
    for point in curve:
        peak = max(peak, point.total_assets)
        if peak > ZERO:
            max_dd = max(max_dd, (peak - point.total_assets) / peak)
    return max_dd


def sharpe_ratio(positions: Sequence[Position]) -> Decimal:
    """Return a simplified per-trade Sharpe ratio (mean / std dev of returns).

    Use a risk-free rate of zero. Return zero with fewer than two closed
    positions or zero variance.
    """
    closed = _closed(positions)
    if len(closed) < _MIN_TRADES_FOR_SHARPE:
        return ZERO
    returns = [p.pnl_percent / HUNDRED for p in closed]
    mean = sum(returns, ZERO) / Decimal(len(returns))
    variance = sum(((r - mean) ** 2 for r in returns), ZERO) / Decimal(len(returns) - 1)
    if variance == ZERO:
        return ZERO
    return mean / variance.sqrt()


def average_holding_hours(positions: Sequence[Position]) -> Decimal:
    """Return the mean holding duration of closed positions in hours."""
    closed = [p for p in _closed(positions) if p.exit_time is not None]
    if not closed:
        return ZERO
    total = sum((p.hours_held(p.exit_time) for p in closed if p.exit_time is not None), ZERO)
    return total / Decimal(len(closed))


def compute_metrics(
    positions: Sequence[Position],
    curve: Sequence[EquityPoint],
    initial_capital: Decimal,
) -> dict[str, Decimal]:
    """Calculate every portfolio metric and return them as a named dictionary."""
    closed = _closed(positions)
    final_equity = initial_capital + sum((p.pnl for p in closed), ZERO)
    return {
        "total_return": total_return(initial_capital, final_equity),
        "win_rate": win_rate(positions),
        "profit_factor": profit_factor(positions),
        "max_drawdown": max_drawdown(curve, initial_capital),
        "sharpe_ratio": sharpe_ratio(positions),
        "total_trades": Decimal(len(closed)),
        "total_pnl": sum((p.pnl for p in closed), ZERO),
        "avg_holding_hours": average_holding_hours(positions),
    }


def compute_strategy_metrics(positions: Sequence[Position]) -> dict[str, dict[str, Decimal]]:
    """Break trade counts, P&L and win rate down by strategy name."""
    grouped: dict[str, list[Position]] = {}
    for position in positions:
        grouped.setdefault(position.strategy.value, []).append(position)
    result: dict[str, dict[str, Decimal]] = {}
    for name, group in grouped.items():
        closed = _closed(group)
        result[name] = {
            "total_trades": Decimal(len(closed)),
            "total_pnl": sum((p.pnl for p in closed), ZERO),
            "win_rate": win_rate(group),
            "profit_factor": profit_factor(group),
        }
    return result
