"""Abstract strategy evaluator shared by every strategy variant.

A ``StrategyEvaluator`` owns two decisions: whether a candidate may be
opened, and whether (and why) an open position must be closed. Exit rules
are evaluated in a fixed priority order and produce a single
``ExitDecision`` so that the boolean answer and the human-readable reason
always come from the same code path.

Each evaluator instance also owns a per-market cooldown table that blocks
re-entry into a market shortly after an entry attempt or an exit.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import ClassVar

from pm_lifecycle.apps.lifecycle.config import StrategyConfig
from pm_lifecycle.apps.lifecycle.models import (
    BookQuote,
    Candidate,
    MarketSnapshot,
    Position,
    StrategyType,
)
from pm_lifecycle.apps.lifecycle.strategies.buckets import RiskPolicy
from pm_lifecycle.core.models import HUNDRED, SECONDS_PER_MINUTE, ZERO

logger = logging.getLogger(__name__)

NEAR_ZERO_PRICE = Decimal("0.01")
_DEFAULT_LIQUIDITY_MULTIPLIER = Decimal(2)


class ExitRule(Enum):
    """Exit rules in the order they are evaluated."""

    NEAR_ZERO = "near_zero"
    HARD_STOP = "hard_stop"
    TAKE_PROFIT = "take_profit"
    TRAILING_STOP = "trailing_stop"
    MAX_HOLDING = "max_holding"
    MARKET_ENDING = "market_ending"
    FALLBACK_STOP = "fallback_stop"
    FALLBACK_TRAILING = "fallback_trailing"
    END_OF_RUN = "end_of_run"


@dataclass(frozen=True)
class ExitDecision:
    """The exit rule that fired for a position and its report text.

    Args:
        rule: Which rule fired.
        reason: Human-readable explanation used as the position's exit reason.
        blacklist: Whether the market must be blacklisted after closing.

    """

    rule: ExitRule
    reason: str
    blacklist: bool = False


def _pct(ratio: Decimal) -> str:
    """Format a fractional ratio as a signed percentage string."""
    return f"{ratio * HUNDRED:+.1f}%"


class StrategyEvaluator(ABC):
    """Template for entry and exit decisions of one strategy variant.

    Subclasses declare their strategy type, default cooldown and depth
    thresholds, and implement ``_price_eligible`` and ``_base_policy``.
    Optional hooks add strategy-specific exit rules and fallback rules for
    positions that fall outside every policy bucket.

    Args:
        config: Per-strategy configuration.
        liquidity_multiplier: Required best-ask depth as a multiple of the
            intended order size.

    """

    strategy_type: ClassVar[StrategyType]
    default_cooldown_minutes: ClassVar[int]
    default_min_volume: ClassVar[Decimal]
    default_min_liquidity: ClassVar[Decimal]
    blacklist_on_zero: ClassVar[bool] = False

    def __init__(
        self,
        config: StrategyConfig,
        liquidity_multiplier: Decimal = _DEFAULT_LIQUIDITY_MULTIPLIER,
    ) -> None:
        """Initialize the evaluator.

        Args:
            config: Per-strategy configuration.
            liquidity_multiplier: Required best-ask depth as a multiple of
                the intended order size.

        """
        self._config = config
        self._liquidity_multiplier = liquidity_multiplier
        self._cooldowns: dict[str, int] = {}

    @property
    def name(self) -> str:
        """Return the strategy name."""
        return self.strategy_type.value

    @property
    def config(self) -> StrategyConfig:
        """Return the strategy configuration."""
        return self._config

    @property
    def cooldown_minutes(self) -> int:
        """Return the effective cooldown in minutes."""
        if self._config.cooldown_minutes is not None:
            return self._config.cooldown_minutes
        return self.default_cooldown_minutes

    @property
    def min_volume(self) -> Decimal:
        """Return the effective minimum 24h volume for the depth check."""
        if self._config.min_volume is not None:
            return self._config.min_volume
        return self.default_min_volume

    @property
    def min_liquidity(self) -> Decimal:
        """Return the effective minimum liquidity for the depth check."""
        if self._config.min_liquidity is not None:
            return self._config.min_liquidity
        return self.default_min_liquidity

    # -- cooldown ---------------------------------------------------------

    def record_activity(self, market_id: str, now: int) -> None:
        """Start the cooldown window for ``market_id`` at ``now``."""
        self._cooldowns[market_id] = now

    def in_cooldown(self, market_id: str, now: int) -> bool:
        """Return whether ``market_id`` is still inside its cooldown window."""
        last = self._cooldowns.get(market_id)
        if last is None:
            return False
        return now - last < self.cooldown_minutes * SECONDS_PER_MINUTE

    def reset(self) -> None:
        """Forget every cooldown."""
        self._cooldowns.clear()

    # -- entry ------------------------------------------------------------

    def position_size(self, equity: Decimal, price: Decimal) -> Decimal:
        """Return the whole number of shares to buy at ``price``.

        Args:
            equity: Current account equity.
            price: Expected entry price.

        Returns:
            ``floor(equity * max_position_size / price)``, or zero when the
            price or equity is not positive.

        """
        if price <= ZERO or equity <= ZERO:
            return ZERO
        raw = equity * self._config.max_position_size / price
        return raw.to_integral_value(rounding=ROUND_FLOOR)

    def passes_depth_check(self, market: MarketSnapshot) -> bool:
        """Return whether the market meets the strategy's volume and liquidity floor."""
        return market.volume_24h >= self.min_volume and market.liquidity >= self.min_liquidity

    def should_open(
        self,
        candidate: Candidate,
        now: int,
        *,
        equity: Decimal,
        quote: BookQuote | None = None,
    ) -> bool:
        """Decide whether ``candidate`` may be opened at ``now``.

        Checks run in order: cooldown, strategy price/time window, basic
        depth, and, when an order-book quote is supplied, whether the best
        ask can absorb ``liquidity_multiplier`` times the intended size.

        Args:
            candidate: The candidate under evaluation.
            now: Current time (epoch seconds).
            equity: Current account equity, used to size the order.
            quote: Top of book for the candidate's token, if available.

        Returns:
            ``True`` if every check passes.

        """
        if not self._config.enabled:
            return False
        if self.in_cooldown(candidate.market_id, now):
            return False
        if not self._price_eligible(candidate, now):
            return False
        if not self.passes_depth_check(candidate.market):
            return False
        if quote is None:
            return True
        size = self.position_size(equity, quote.best_ask)
        if size <= ZERO:
            return False
        required = size * self._liquidity_multiplier
        if quote.ask_size < required:
            logger.debug(
                "%s: ask depth %s below required %s for %s",
                self.name,
                quote.ask_size,
                required,
                candidate.key,
            )
            return False
        return True

    @abstractmethod
    def _price_eligible(self, candidate: Candidate, now: int) -> bool:
        """Return whether the candidate's price and timing fit the strategy."""

    # -- exit -------------------------------------------------------------

    @abstractmethod
    def _base_policy(self, entry_price: Decimal) -> RiskPolicy | None:
        """Return the built-in risk policy for a position entered at ``entry_price``."""

    def policy_for(self, position: Position) -> RiskPolicy | None:
        """Return the effective risk policy for ``position``.

        Start from the built-in policy for the entry price and apply any
        stop-loss, trailing-stop or max-holding override from the config.
        """
        policy = self._base_policy(position.entry_price)
        if policy is None:
            return None
        updates: dict[str, Decimal] = {}
        if self._config.stop_loss is not None:
            updates["stop_loss"] = -self._config.stop_loss
        if self._config.trailing_stop is not None:
            updates["trailing_drawdown"] = self._config.trailing_stop
        if self._config.max_holding_hours is not None:
            updates["max_hours"] = self._config.max_holding_hours
        return replace(policy, **updates) if updates else policy

    def evaluate_exit(
        self,
        position: Position,
        price: Decimal,
        now: int,
    ) -> ExitDecision | None:
        """Return the first exit rule that fires for ``position`` at ``price``.

        Rules in priority order: near-zero floor, hard stop-loss, take
        profit, trailing stop (only while in profit), maximum holding time,
        then strategy-specific rules. Positions outside every policy bucket
        use the strategy's fallback rules instead of the bucket rules.

        Args:
            position: An open position of this strategy.
            price: Current price of the position's outcome.
            now: Current time (epoch seconds).

        Returns:
            The decision, or ``None`` to keep holding.

        """
        if price < NEAR_ZERO_PRICE:
            return ExitDecision(
                rule=ExitRule.NEAR_ZERO,
                reason=f"Price near zero: {price * HUNDRED:.2f}% (< 1%)",
                blacklist=self.blacklist_on_zero,
            )

        policy = self.policy_for(position)
        if policy is None:
            return self._fallback_exit(position, price)

        ratio = position.profit_ratio(price)
        if ratio <= policy.stop_loss:
            return ExitDecision(
                rule=ExitRule.HARD_STOP,
                reason=(
                    f"Hard stop-loss: price fell to {price} ({_pct(ratio)}, "
                    f"{_pct(policy.stop_loss)} stop)"
                ),
            )

        take_profit = self._config.take_profit
        if take_profit is not None and ratio >= take_profit:
            return ExitDecision(
                rule=ExitRule.TAKE_PROFIT,
                reason=f"Take profit: {_pct(ratio)} (target {_pct(take_profit)})",
            )

        if price > position.entry_price:
            high = max(position.highest_price, price)
            drawdown = position.drawdown_from_high(price)
            if drawdown >= policy.trailing_drawdown:
                return ExitDecision(
                    rule=ExitRule.TRAILING_STOP,
                    reason=(
                        f"Trailing stop: {drawdown * HUNDRED:.1f}% retracement "
                        f"from high of {high} (limit {policy.trailing_drawdown * HUNDRED:.0f}%)"
                    ),
                )

        hours = position.hours_held(now)
        if hours >= policy.max_hours:
            return ExitDecision(
                rule=ExitRule.MAX_HOLDING,
                reason=f"Max holding time reached: {hours:.1f} hours (limit {policy.max_hours}h)",
            )

        return self._extra_exit(position, price, now)

    def should_close(self, position: Position, price: Decimal, now: int) -> bool:
        """Return whether ``position`` must be closed at ``price``."""
        return self.evaluate_exit(position, price, now) is not None

    def exit_reason(self, position: Position, price: Decimal, now: int) -> str:
        """Return the reason ``position`` must close, or an empty string."""
        decision = self.evaluate_exit(position, price, now)
        return decision.reason if decision is not None else ""

    def _fallback_exit(
        self,
        position: Position,  # noqa: ARG002
        price: Decimal,  # noqa: ARG002
    ) -> ExitDecision | None:
        """Exit rules for positions outside every policy bucket (none by default)."""
        return None

    def _extra_exit(
        self,
        position: Position,  # noqa: ARG002
        price: Decimal,  # noqa: ARG002
        now: int,  # noqa: ARG002
    ) -> ExitDecision | None:
        """Strategy-specific exit rules evaluated after the shared ones."""
        return None


def end_of_run_decision(reason: str = "end of replay") -> ExitDecision:
    """Build the decision used when a driver force-closes remaining positions."""
    return ExitDecision(rule=ExitRule.END_OF_RUN, reason=reason)

