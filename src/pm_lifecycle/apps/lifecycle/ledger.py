"""Authoritative ledger of open and closed positions.

The ledger is the only writer of ``Position`` records. Equity is derived
from closed positions on demand so it can never drift from the trade log:
``equity = initial_capital + sum(pnl of closed positions)``, and floating
P&L of open positions is reported separately and never folded into equity.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from pm_lifecycle.apps.lifecycle.exceptions import (
    CapacityExceeded,
    DuplicateMarket,
    InvariantViolation,
)
from pm_lifecycle.apps.lifecycle.models import (
    Candidate,
    LedgerStatistics,
    Position,
    PositionStatus,
    StrategyType,
)
from pm_lifecycle.core.models import HUNDRED, ONE, ZERO

logger = logging.getLogger(__name__)

_PNL_TOLERANCE = Decimal("1e-9")


@dataclass(frozen=True)
class EquityAccount:
    """Capital snapshot derived from the ledger.

    Args:
        initial_capital: Starting capital.
        realized_pnl: Sum of P&L over closed positions.
        floating_pnl: Sum of current P&L over open positions.
        clamp_negative: Whether equity is floored at zero.

    """

    initial_capital: Decimal
    realized_pnl: Decimal
    floating_pnl: Decimal
    clamp_negative: bool = True

    @property
    def raw_equity(self) -> Decimal:
        """Return initial capital plus realized P&L, without any floor."""
        return self.initial_capital + self.realized_pnl

    @property
    def equity(self) -> Decimal:
        """Return equity, floored at zero when clamping is enabled."""
        if self.clamp_negative and self.raw_equity < ZERO:
            return ZERO
        return self.raw_equity

    @property
    def total_assets(self) -> Decimal:
        """Return equity plus floating P&L."""
        return self.equity + self.floating_pnl


class PositionLedger:
    """Own every position of one trading session.

    Enforce one open position per market and the global and per-strategy
    capacity limits. Closed positions are frozen in practice: the ledger
    never writes to them again.

    Args:
        initial_capital: Starting capital in USD.
        max_positions: Global cap on simultaneously open positions.
        strategy_limits: Per-strategy caps on open positions. Strategies
            missing from the mapping are limited only by the global cap.
        clamp_negative_equity: Floor equity at zero when losses exceed capital.

    """

    def __init__(
        self,
        initial_capital: Decimal,
        max_positions: int,
        strategy_limits: Mapping[StrategyType, int] | None = None,
        clamp_negative_equity: bool = True,  # noqa: FBT001, FBT002
    ) -> None:
        """Initialize an empty ledger."""
        if initial_capital <= ZERO:
            msg = f"initial_capital must be positive, got {initial_capital}"
            raise ValueError(msg)
        self._initial_capital = initial_capital
        self._max_positions = max_positions
        self._strategy_limits = dict(strategy_limits or {})
        self._clamp = clamp_negative_equity
        self._positions: dict[str, Position] = {}
        self._open_by_market: dict[str, str] = {}
        self._traded_market_ids: set[str] = set()

    @property
    def initial_capital(self) -> Decimal:
        """Return the starting capital."""
        return self._initial_capital

    # -- queries ----------------------------------------------------------

    def open_positions(self, strategy: StrategyType | None = None) -> list[Position]:
        """Return open positions in opening order, optionally for one strategy."""
        return [
            self._positions[pid]
            for pid in self._open_by_market.values()
            if strategy is None or self._positions[pid].strategy is strategy
        ]

    def closed_positions(self) -> list[Position]:
        """Return closed positions in opening order."""
        return [p for p in self._positions.values() if not p.is_open]

    def all_positions(self) -> list[Position]:
        """Return every position in opening order."""
        return list(self._positions.values())

    def get(self, position_id: str) -> Position | None:
        """Return a position by id."""
        return self._positions.get(position_id)

    def has_position(self, market_id: str) -> bool:
        """Return whether ``market_id`` has an open position."""
        return market_id in self._open_by_market

    def position_for_market(self, market_id: str) -> Position | None:
        """Return the open position for ``market_id``, if any."""
        pid = self._open_by_market.get(market_id)
        return self._positions[pid] if pid is not None else None

    @property
    def traded_market_ids(self) -> frozenset[str]:
        """Return ids of markets currently held.

        A market enters the set when a position opens and leaves it when
        that position closes; re-entry after a close is governed by the
        strategy cooldowns and the blacklist, not by this set.
        """
        return frozenset(self._traded_market_ids)

    def open_count(self, strategy: StrategyType | None = None) -> int:
        """Return the number of open positions, optionally for one strategy."""
        return len(self.open_positions(strategy))

    def can_open(self, strategy: StrategyType, market_id: str | None = None) -> bool:
        """Return whether a new position for ``strategy`` fits every limit."""
        if market_id is not None and self.has_position(market_id):
            return False
        if self.open_count() >= self._max_positions:
            return False
        limit = self._strategy_limits.get(strategy)
        return limit is None or self.open_count(strategy) < limit

    # -- equity -----------------------------------------------------------

    def account(self) -> EquityAccount:
        """Derive the equity account from the current positions."""
        realized = sum((p.pnl for p in self._positions.values() if not p.is_open), ZERO)
        floating = sum((p.current_pnl for p in self.open_positions()), ZERO)
        return EquityAccount(
            initial_capital=self._initial_capital,
            realized_pnl=realized,
            floating_pnl=floating,
            clamp_negative=self._clamp,
        )

    @property
    def equity(self) -> Decimal:
        """Return current equity (initial capital plus realized P&L)."""
        return self.account().equity

    def statistics(self) -> LedgerStatistics:
        """Return counts, P&L and win rate derived from the positions."""
        account = self.account()
        closed = self.closed_positions()
        wins = sum(1 for p in closed if p.pnl > ZERO)
        losses = sum(1 for p in closed if p.pnl < ZERO)
        win_rate = Decimal(wins) / Decimal(len(closed)) * HUNDRED if closed else ZERO
        return LedgerStatistics(
            open_count=self.open_count(),
            closed_count=len(closed),
            realized_pnl=account.realized_pnl,
            floating_pnl=account.floating_pnl,
            equity=account.equity,
            total_assets=account.total_assets,
            win_count=wins,
            loss_count=losses,
            win_rate=win_rate,
        )

    # -- mutations --------------------------------------------------------

    def open(  # noqa: PLR0913
        self,
        candidate: Candidate,
        price: Decimal,
        size: Decimal,
        strategy: StrategyType,
        now: int,
    ) -> Position:
        """Open a position on a candidate.

        Args:
            candidate: The candidate being entered.
            price: Entry price per share.
            size: Number of shares.
            strategy: Strategy that owns the position.
            now: Entry time (epoch seconds).

        Returns:
            The new open position.

        Raises:
            CapacityExceeded: If the global or strategy limit is reached.
            DuplicateMarket: If the market already has an open position.
            ValueError: If the price or size is not positive.

        """
        if not (ZERO < price <= ONE):
            msg = f"entry price must be in (0, 1], got {price}"
            raise ValueError(msg)
        if size <= ZERO:
            msg = f"position size must be positive, got {size}"
            raise ValueError(msg)
        if self.open_count() >= self._max_positions:
            raise CapacityExceeded("global", self._max_positions)
        limit = self._strategy_limits.get(strategy)
        if limit is not None and self.open_count(strategy) >= limit:
            raise CapacityExceeded(strategy.value, limit)
        if self.has_position(candidate.market_id):
            raise DuplicateMarket(candidate.market_id)

        market = candidate.market
        position = Position(
            id=f"{market.market_id}-{now}-{strategy.value}",
            market_id=market.market_id,
            question=market.question,
            outcome_name=candidate.outcome_name,
            strategy=strategy,
            entry_time=now,
            entry_price=price,
            position_size=size,
            entry_value=size * price,
            end_time=market.end_time,
            token_id=candidate.token_id,
        )
        self._positions[position.id] = position
        self._open_by_market[position.market_id] = position.id
        self._traded_market_ids.add(position.market_id)
        logger.info(
            "OPEN %s %s %s @ %s x %s (%s)",
            strategy.value,
            position.market_id,
            position.outcome_name,
            price,
            size,
            market.question[:60],
        )
        return position

    def close(
        self,
        position: Position,
        exit_price: Decimal,
        reason: str,
        now: int,
    ) -> Position:
        """Close an open position at ``exit_price``.

        Closing an already-closed position logs a warning and changes nothing.

        Args:
            position: The position to close.
            exit_price: Exit price per share.
            reason: Human-readable exit reason.
            now: Exit time (epoch seconds).

        Returns:
            The (now closed) position.

        """
        if not position.is_open:
            logger.warning("Position %s is already closed, ignoring close", position.id)
            return position
        if self._positions.get(position.id) is not position:
            msg = f"position {position.id} is not owned by this ledger"
            raise InvariantViolation(msg)

        position.observe(exit_price)
        exit_value = position.position_size * exit_price
        pnl = exit_value - position.entry_value
        position.exit_time = now
        position.exit_price = exit_price
        position.exit_value = exit_value
        position.pnl = pnl
        position.pnl_percent = (
            pnl / position.entry_value * HUNDRED if position.entry_value else ZERO
        )
        position.exit_reason = reason
        position.status = PositionStatus.CLOSED
        del self._open_by_market[position.market_id]
        self._traded_market_ids.discard(position.market_id)

        account = self.account()
        logger.info(
            "CLOSE %s %s @ %s pnl=%s (%.2f%%) reason=%s equity=%s",
            position.strategy.value,
            position.market_id,
            exit_price,
            pnl,
            position.pnl_percent,
            reason,
            account.equity,
        )
        if account.raw_equity < ZERO:
            if self._clamp:
                logger.warning(
                    "Equity would be negative (%s); clamped to zero", account.raw_equity
                )
            else:
                logger.warning("Equity is negative: %s", account.raw_equity)
        return position

    def mark_price(self, position_id: str, price: Decimal) -> Position:
        """Record a new price for an open position.

        Closed positions are never mutated.

        Raises:
            KeyError: If ``position_id`` is unknown.

        """
        position = self._positions.get(position_id)
        if position is None:
            msg = f"Unknown position: {position_id}"
            raise KeyError(msg)
        position.observe(price)
        return position

    def reset(self, initial_capital: Decimal | None = None) -> None:
        """Forget every position, optionally with a new starting capital."""
        if initial_capital is not None:
            if initial_capital <= ZERO:
                msg = f"initial_capital must be positive, got {initial_capital}"
                raise ValueError(msg)
            self._initial_capital = initial_capital
        self._positions.clear()
        self._open_by_market.clear()
        self._traded_market_ids.clear()

    def verify_invariants(self) -> None:
        """Check ledger consistency.

        Raises:
            InvariantViolation: If an open market appears twice, a high-water
                mark is below its entry price, a closed position's P&L does
                not match its prices, or equity is negative.

        """
        seen: set[str] = set()
        for position in self._positions.values():
            if position.highest_price < position.entry_price:
                msg = f"position {position.id} high-water mark below entry price"
                raise InvariantViolation(msg)
            if position.is_open:
                if position.market_id in seen:
                    msg = f"market {position.market_id} has two open positions"
                    raise InvariantViolation(msg)
                seen.add(position.market_id)
                continue
            exit_price = position.exit_price if position.exit_price is not None else ZERO
            expected = position.position_size * (exit_price - position.entry_price)
            if abs(position.pnl - expected) > _PNL_TOLERANCE:
                msg = f"position {position.id} pnl {position.pnl} != {expected}"
                raise InvariantViolation(msg)
        if seen != set(self._open_by_market) or seen != self._traded_market_ids:
            msg = "open-market index out of sync with positions"
            raise InvariantViolation(msg)
        raw = self.account().raw_equity
        if raw < ZERO:
            msg = f"equity is negative: {raw}"
            raise InvariantViolation(msg)
