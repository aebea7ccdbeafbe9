"""Data models for the position lifecycle engine.

Market snapshots are immutable values produced by the feed. Candidates and
positions are mutable records owned respectively by the candidate pool and
the position ledger. Result objects summarise a finished run.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from pm_lifecycle.core.models import HUNDRED, ONE, SECONDS_PER_HOUR, ZERO

_DEFAULT_OUTCOMES = ("Yes", "No")


class StrategyType(Enum):
    """Closed set of strategy variants the engine can run."""

    REVERSAL = "reversal"
    CONVERGENCE = "convergence"


class PositionStatus(Enum):
    """Lifecycle state of a position."""

    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time view of one prediction market.

    Args:
        timestamp: Unix epoch seconds when the snapshot was taken.
        market_id: Unique market identifier.
        question: The prediction question text.
        outcome_prices: Price of each outcome, aligned with ``outcomes``.
        liquidity: Available liquidity in USD.
        volume_24h: Trading volume over the last 24 hours in USD.
        end_time: Unix epoch seconds when the market resolves.
        outcomes: Outcome labels, aligned with ``outcome_prices``.
        token_ids: CLOB token identifiers, aligned with ``outcomes``. May be
            empty for historical data without order-book access.
        tags: Category labels.
        active: Whether the market is open for trading.

    Raises:
        ValueError: If a price is outside ``[0, 1]`` or the outcome arrays
            disagree in length.

    """

    timestamp: int
    market_id: str
    question: str
    outcome_prices: tuple[Decimal, ...]
    liquidity: Decimal
    volume_24h: Decimal
    end_time: int
    outcomes: tuple[str, ...] = _DEFAULT_OUTCOMES
    token_ids: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    active: bool = True

    def __post_init__(self) -> None:
        """Validate prices and outcome alignment."""
        for price in self.outcome_prices:
            if not (ZERO <= price <= ONE):
                msg = f"outcome price must be between 0 and 1, got {price}"
                raise ValueError(msg)
        if len(self.outcomes) != len(self.outcome_prices):
            msg = (
                f"market {self.market_id} has {len(self.outcomes)} outcomes "
                f"but {len(self.outcome_prices)} prices"
            )
            raise ValueError(msg)
        if self.token_ids and len(self.token_ids) != len(self.outcomes):
            msg = f"market {self.market_id} token ids do not match its outcomes"
            raise ValueError(msg)

    @property
    def is_binary(self) -> bool:
        """Return whether the market has exactly two outcomes."""
        return len(self.outcomes) == 2  # noqa: PLR2004

    def price_of(self, outcome: str) -> Decimal | None:
        """Return the price of ``outcome``, or ``None`` if the market lacks it."""
        try:
            return self.outcome_prices[self.outcomes.index(outcome)]
        except ValueError:
            return None

    def token_id_of(self, outcome: str) -> str | None:
        """Return the CLOB token id of ``outcome`` when known."""
        if not self.token_ids:
            return None
        try:
            return self.token_ids[self.outcomes.index(outcome)]
        except ValueError:
            return None

    def hours_until_end(self, now: int) -> Decimal:
        """Return hours remaining until resolution (negative once ended)."""
        return Decimal(self.end_time - now) / Decimal(SECONDS_PER_HOUR)


@dataclass
class Candidate:
    """A market outcome currently eligible for strategy evaluation.

    ``trend_strength`` is the price drift since the candidate was admitted
    (``latest_price - probability``).
    """

    market: MarketSnapshot
    outcome_name: str
    probability: Decimal
    trend_strength: Decimal
    add_time: int
    last_update_time: int
    latest_price: Decimal

    @property
    def key(self) -> str:
        """Return the pool key, unique per market and outcome."""
        return candidate_key(self.market.market_id, self.outcome_name)

    @property
    def market_id(self) -> str:
        """Return the identifier of the candidate's market."""
        return self.market.market_id

    @property
    def token_id(self) -> str | None:
        """Return the CLOB token id for the candidate's outcome."""
        return self.market.token_id_of(self.outcome_name)


def candidate_key(market_id: str, outcome_name: str) -> str:
    """Build the candidate pool key for a market outcome."""
    return f"{market_id}_{outcome_name}"


@dataclass(frozen=True)
class BookQuote:
    """Top of the order book for one outcome token.

    Args:
        token_id: CLOB token identifier.
        best_bid: Highest bid price.
        bid_size: Shares available at the best bid.
        best_ask: Lowest ask price.
        ask_size: Shares available at the best ask.

    """

    token_id: str
    best_bid: Decimal
    bid_size: Decimal
    best_ask: Decimal
    ask_size: Decimal

    @property
    def spread(self) -> Decimal:
        """Return the best ask minus the best bid."""
        return self.best_ask - self.best_bid


@dataclass
class Position:
    """A simulated trade owned by the position ledger.

    Open positions track their latest mark and the high-water mark since
    entry. Once closed, the exit fields are filled in and the ledger never
    touches the record again.
    """

    id: str
    market_id: str
    question: str
    outcome_name: str
    strategy: StrategyType
    entry_time: int
    entry_price: Decimal
    position_size: Decimal
    entry_value: Decimal
    end_time: int
    token_id: str | None = None
    status: PositionStatus = PositionStatus.OPEN
    current_price: Decimal = ZERO
    current_pnl: Decimal = ZERO
    current_pnl_percent: Decimal = ZERO
    highest_price: Decimal = ZERO
    exit_time: int | None = None
    exit_price: Decimal | None = None
    exit_value: Decimal | None = None
    pnl: Decimal = ZERO
    pnl_percent: Decimal = ZERO
    exit_reason: str = ""

    def __post_init__(self) -> None:
        """Seed the mark and high-water mark from the entry price."""
        if self.current_price == ZERO:
            self.current_price = self.entry_price
        self.highest_price = max(self.highest_price, self.entry_price)

    @property
    def is_open(self) -> bool:
        """Return whether the position is still open."""
        return self.status is PositionStatus.OPEN

    def profit_ratio(self, price: Decimal) -> Decimal:
        """Return the fractional return at ``price`` (``0.1`` means +10%)."""
        if self.entry_price == ZERO:
            return ZERO
        return (price - self.entry_price) / self.entry_price

    def drawdown_from_high(self, price: Decimal) -> Decimal:
        """Return the retracement of ``price`` from the high-water mark.

        ``price`` itself counts toward the high, so a new high yields zero.
        """
        high = max(self.highest_price, price)
        if high == ZERO:
            return ZERO
        return (high - price) / high

    def hours_held(self, now: int) -> Decimal:
        """Return hours elapsed since entry."""
        return Decimal(now - self.entry_time) / Decimal(SECONDS_PER_HOUR)

    def hours_until_end(self, now: int) -> Decimal:
        """Return hours remaining until the market resolves."""
        return Decimal(self.end_time - now) / Decimal(SECONDS_PER_HOUR)

    def raise_high_water(self, price: Decimal) -> None:
        """Lift the high-water mark to ``price`` if it is higher (open positions only)."""
        if self.is_open:
            self.highest_price = max(self.highest_price, price)

    def observe(self, price: Decimal) -> None:
        """Record a price observation on an open position.

        Update the mark, the floating P&L and the high-water mark. Closed
        positions are left untouched.
        """
        if not self.is_open:
            return
        self.current_price = price
        self.raise_high_water(price)
        self.current_pnl = self.position_size * price - self.entry_value
        self.current_pnl_percent = (
            self.current_pnl / self.entry_value * HUNDRED if self.entry_value else ZERO
        )


@dataclass(frozen=True)
class LedgerStatistics:
    """Derived summary of a position ledger at one instant."""

    open_count: int
    closed_count: int
    realized_pnl: Decimal
    floating_pnl: Decimal
    equity: Decimal
    total_assets: Decimal
    win_count: int
    loss_count: int
    win_rate: Decimal


@dataclass(frozen=True)
class EquityPoint:
    """One point on a run's equity curve."""

    timestamp: int
    equity: Decimal
    total_assets: Decimal
    open_positions: int


def _empty_metrics() -> dict[str, Decimal]:
    """Create an empty metrics dictionary."""
    return {}


def _empty_strategy_metrics() -> dict[str, dict[str, Decimal]]:
    """Create an empty per-strategy metrics dictionary."""
    return {}


@dataclass(frozen=True)
class RunResult:
    """Summary of a completed replay or poll run.

    Args:
        initial_capital: Starting capital.
        final_equity: Equity at the end of the run; realized P&L only.
        positions: All positions, in the order they were opened.
        equity_curve: One point per processed tick.
        ticks_processed: Number of ticks the driver completed.
        metrics: Portfolio-level performance metrics.
        strategy_metrics: Metrics broken down by strategy name.

    """

    initial_capital: Decimal
    final_equity: Decimal
    positions: tuple[Position, ...]
    equity_curve: tuple[EquityPoint, ...]
    ticks_processed: int
    metrics: dict[str, Decimal] = field(default_factory=_empty_metrics)
    strategy_metrics: dict[str, dict[str, Decimal]] = field(
        default_factory=_empty_strategy_metrics
    )

    @property
    def open_positions(self) -> tuple[Position, ...]:
        """Return positions still open when the run ended."""
        return tuple(p for p in self.positions if p.is_open)

    @property
    def floating_pnl(self) -> Decimal:
        """Return the unrealized P&L of positions still open."""
        return sum((p.current_pnl for p in self.open_positions), ZERO)
