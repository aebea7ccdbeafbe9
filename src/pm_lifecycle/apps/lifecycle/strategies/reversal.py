"""Reversal strategy: buy low-probability outcomes and ride a recovery.

Entries are restricted to the price buckets in ``REVERSAL_BUCKETS``; each
bucket carries its own stop-loss, trailing-drawdown and holding limit.
Markets whose price collapses below the near-zero floor are blacklisted.
"""

from decimal import Decimal

from pm_lifecycle.apps.lifecycle.models import Candidate, Position, StrategyType
from pm_lifecycle.apps.lifecycle.strategies.base import (
    ExitDecision,
    ExitRule,
    StrategyEvaluator,
)
from pm_lifecycle.apps.lifecycle.strategies.buckets import (
    REVERSAL_BUCKETS,
    RiskPolicy,
    find_bucket,
)
from pm_lifecycle.core.models import HUNDRED

_FALLBACK_STOP_LOSS = Decimal("-0.15")
_FALLBACK_PROFIT_TRIGGER = Decimal("0.5")
_FALLBACK_DRAWDOWN = Decimal("0.15")


class ReversalStrategy(StrategyEvaluator):
    """Evaluate entries and exits for low-priced reversal positions.

    Uses a 30-minute cooldown because the traded price bands are thin and
    volatile, and requires at least 2000 USD 24h volume and 500 USD
    liquidity unless the configuration overrides them.
    """

    strategy_type = StrategyType.REVERSAL
    default_cooldown_minutes = 30
    default_min_volume = Decimal(2000)
    default_min_liquidity = Decimal(500)
    blacklist_on_zero = True

    def _price_eligible(self, candidate: Candidate, now: int) -> bool:  # noqa: ARG002
        """Return whether the candidate's price sits inside a reversal bucket."""
        return find_bucket(REVERSAL_BUCKETS, candidate.latest_price) is not None

    def _base_policy(self, entry_price: Decimal) -> RiskPolicy | None:
        return find_bucket(REVERSAL_BUCKETS, entry_price)

    def _fallback_exit(self, position: Position, price: Decimal) -> ExitDecision | None:
        """Apply coarse rules to positions entered outside every bucket.

        Close on a loss beyond 15%. Once the position has gained more than
        50%, close on a retracement of more than 15% from the high.
        """
        ratio = position.profit_ratio(price)
        if ratio < _FALLBACK_STOP_LOSS:
            return ExitDecision(
                rule=ExitRule.FALLBACK_STOP,
                reason=f"Stop-loss: {ratio * HUNDRED:+.1f}% from entry",
            )
        if ratio > _FALLBACK_PROFIT_TRIGGER:
            high = max(position.highest_price, price)
            drawdown = position.drawdown_from_high(price)
            if drawdown > _FALLBACK_DRAWDOWN:
                return ExitDecision(
                    rule=ExitRule.FALLBACK_TRAILING,
                    reason=(
                        f"Take profit on pullback: {ratio * HUNDRED:+.1f}% gain, "
                        f"{drawdown * HUNDRED:.1f}% below high of {high}"
                    ),
                )
        return None
