"""Convergence strategy: buy near-certain outcomes shortly before resolution."""

from decimal import Decimal

from pm_lifecycle.apps.lifecycle.models import Candidate, Position, StrategyType
from pm_lifecycle.apps.lifecycle.strategies.base import (
    ExitDecision,
    ExitRule,
    StrategyEvaluator,
)
from pm_lifecycle.apps.lifecycle.strategies.buckets import CONVERGENCE_POLICY, RiskPolicy
from pm_lifecycle.core.models import ZERO

_MAX_HOURS_TO_END = Decimal(48)
_END_WINDOW_HOURS = Decimal(2)


class ConvergenceStrategy(StrategyEvaluator):
    """Evaluate entries and exits for high-probability convergence positions.

    A candidate qualifies when its price is within ``[0.90, 0.95]`` and the
    market resolves within the next 48 hours. Open positions are closed
    once the market is within two hours of its end to avoid settlement risk.
    """

    strategy_type = StrategyType.CONVERGENCE
    default_cooldown_minutes = 15
    default_min_volume = Decimal(1000)
    default_min_liquidity = Decimal(300)

    def _price_eligible(self, candidate: Candidate, now: int) -> bool:
        if not CONVERGENCE_POLICY.contains(candidate.latest_price):
            return False
        hours_left = candidate.market.hours_until_end(now)
        return ZERO <= hours_left <= _MAX_HOURS_TO_END

    def _base_policy(self, entry_price: Decimal) -> RiskPolicy | None:  # noqa: ARG002
        return CONVERGENCE_POLICY

    def _extra_exit(self, position: Position, price: Decimal, now: int) -> ExitDecision | None:  # noqa: ARG002
        """Close positions whose market ends within the settlement window."""
        if position.hours_until_end(now) <= _END_WINDOW_HOURS:
            return ExitDecision(
                rule=ExitRule.MARKET_ENDING,
                reason=f"Market ending within {_END_WINDOW_HOURS} hours",
            )
        return None
