"""Per-tick business logic shared by the replay and poll drivers.

A ``TradingSession`` owns one ledger, one candidate pool and one evaluator
per enabled strategy. Drivers feed it snapshot batches; the session runs
the fixed tick order: record prices, check exits, refresh candidates,
(optionally) revalidate liquidity, check entries, mark prices and record
an equity point. Close checks always run before entry checks, so a
position is never opened and closed within the same tick.
"""

import logging
from collections.abc import Iterable
from decimal import Decimal

from pm_lifecycle.apps.lifecycle.candidate_pool import CandidatePool, OrderBookSource
from pm_lifecycle.apps.lifecycle.config import EngineConfig
from pm_lifecycle.apps.lifecycle.events import (
    ClosedEvent,
    DriverEvent,
    ErrorEvent,
    EventSink,
    OpenedEvent,
    ProgressEvent,
    TickEvent,
    ignore_event,
)
from pm_lifecycle.apps.lifecycle.exceptions import (
    CapacityExceeded,
    DuplicateMarket,
    InvariantViolation,
    LiquidityUnknown,
)
from pm_lifecycle.apps.lifecycle.ledger import PositionLedger
from pm_lifecycle.apps.lifecycle.metrics import compute_metrics, compute_strategy_metrics
from pm_lifecycle.apps.lifecycle.models import (
    Candidate,
    EquityPoint,
    MarketSnapshot,
    Position,
    RunResult,
    StrategyType,
)
from pm_lifecycle.apps.lifecycle.strategies.base import StrategyEvaluator
from pm_lifecycle.apps.lifecycle.strategy_factory import build_evaluators
from pm_lifecycle.core.models import ONE

logger = logging.getLogger(__name__)

ZEROED_REASON = "market zeroed (price < 1%)"
_CONFIGURED_REASON = "configured blacklist"

STEP_FETCHING_MARKETS = "fetching_markets"
STEP_CHECKING_POSITIONS = "checking_positions"
STEP_UPDATING_CANDIDATES = "updating_candidates"
STEP_UPDATING_ORDER_BOOKS = "updating_order_books"
STEP_CHECKING_ENTRIES = "checking_entries"
STEP_UPDATING_PRICES = "updating_prices"


class TradingSession:
    """Explicit state of one trading session, advanced one tick at a time.

    Args:
        config: Normalized engine configuration.
        sink: Callback receiving driver events. Exceptions raised by the
            sink are logged and never interrupt the tick.
        ledger: Ledger to use; a fresh one is built from ``config`` if omitted.
        pool: Candidate pool to use; built from ``config`` if omitted.
        evaluators: Strategy evaluators keyed by type; built from
            ``config`` if omitted.

    """

    def __init__(
        self,
        config: EngineConfig,
        sink: EventSink | None = None,
        ledger: PositionLedger | None = None,
        pool: CandidatePool | None = None,
        evaluators: dict[StrategyType, StrategyEvaluator] | None = None,
    ) -> None:
        """Initialize the session and its collaborators."""
        self._config = config
        self._sink = sink or ignore_event
        self.ledger = ledger if ledger is not None else PositionLedger(
            initial_capital=config.initial_capital,
            max_positions=config.max_positions,
            strategy_limits={s: config.strategy(s).max_positions for s in StrategyType},
            clamp_negative_equity=config.clamp_negative_equity,
        )
        self.pool = pool if pool is not None else CandidatePool(
            expire_minutes=config.candidate_expire_minutes,
            min_liquidity=config.min_liquidity,
            min_volume=config.min_volume,
            max_spread=config.max_spread,
            min_hours_to_end=config.min_hours_to_end,
            max_candidates=config.max_candidates,
        )
        self.evaluators = evaluators if evaluators is not None else build_evaluators(config)
        self._blacklist: dict[str, str] = dict.fromkeys(
            config.market_blacklist, _CONFIGURED_REASON
        )
        self._markets: dict[str, MarketSnapshot] = {}
        self._equity_curve: list[EquityPoint] = []
        self._tick = 0

    @property
    def config(self) -> EngineConfig:
        """Return the session configuration."""
        return self._config

    @property
    def tick_count(self) -> int:
        """Return the number of ticks started so far."""
        return self._tick

    @property
    def blacklist(self) -> dict[str, str]:
        """Return blacklisted market ids mapped to the reason."""
        return dict(self._blacklist)

    @property
    def equity_curve(self) -> list[EquityPoint]:
        """Return the equity curve recorded so far."""
        return list(self._equity_curve)

    def blacklist_market(self, market_id: str, reason: str) -> None:
        """Prevent any future entry into ``market_id``."""
        if market_id not in self._blacklist:
            self._blacklist[market_id] = reason
            logger.warning("Blacklisted market %s: %s", market_id, reason)

    def emit(self, event: DriverEvent) -> None:
        """Deliver ``event`` to the sink, logging sink failures."""
        try:
            self._sink(event)
        except Exception:
            logger.exception("Event sink failed on %s event", event.type)

    def _progress(self, now: int, step: str) -> None:
        self.emit(ProgressEvent(tick=self._tick, timestamp=now, step=step))

    def _error(self, now: int, kind: str, message: str, **details: object) -> None:
        self.emit(ErrorEvent(timestamp=now, message=message, kind=kind, details=dict(details)))

    # -- tick phases ------------------------------------------------------

    def begin_tick(self, snapshots: Iterable[MarketSnapshot], now: int) -> list[MarketSnapshot]:
        """Start a tick and record the latest snapshot per market.

        Returns:
            The snapshots as a list, for use by later phases.

        """
        self._tick += 1
        batch = list(snapshots)
        self._progress(now, STEP_FETCHING_MARKETS)
        for snapshot in batch:
            self._markets[snapshot.market_id] = snapshot
        return batch

    def current_price(self, position: Position) -> Decimal | None:
        """Return the latest known price of ``position``'s outcome."""
        snapshot = self._markets.get(position.market_id)
        if snapshot is None:
            return None
        return snapshot.price_of(position.outcome_name)

    def check_exits(self, now: int) -> int:
        """Evaluate every open position and close those whose exit rule fires.

        Returns:
            Number of positions closed.

        """
        self._progress(now, STEP_CHECKING_POSITIONS)
        closed = 0
        for position in self.ledger.open_positions():
            evaluator = self.evaluators.get(position.strategy)
            price = self.current_price(position)
            if evaluator is None or price is None:
                continue
            try:
                self.ledger.mark_price(position.id, price)
                decision = evaluator.evaluate_exit(position, price, now)
                if decision is None:
                    continue
                self.ledger.close(position, price, decision.reason, now)
            except Exception:
                logger.exception("Error checking exit for position %s", position.id)
                self._error(now, "exit_check", "exit check failed", position_id=position.id)
                continue
            closed += 1
            evaluator.record_activity(position.market_id, now)
            if decision.blacklist:
                self.blacklist_market(position.market_id, ZEROED_REASON)
            self.emit(ClosedEvent(timestamp=now, position=position, reason=decision.reason))
        return closed

    def refresh_candidates(self, snapshots: Iterable[MarketSnapshot], now: int) -> None:
        """Ingest snapshots into the pool and expire stale candidates."""
        self._progress(now, STEP_UPDATING_CANDIDATES)
        self.pool.ingest(snapshots, now)
        self.pool.expire(now)

    async def refresh_order_books(self, source: OrderBookSource, now: int) -> None:
        """Revalidate candidate liquidity against live order books."""
        self._progress(now, STEP_UPDATING_ORDER_BOOKS)
        await self.pool.revalidate_liquidity(source, self._config.order_book_batch_size)

    def excluded_market_ids(self) -> set[str]:
        """Return markets that may not be entered: held markets and blacklist."""
        return set(self.ledger.traded_market_ids) | set(self._blacklist)

    def check_entries(self, now: int, *, use_quotes: bool = False) -> int:
        """Evaluate valid candidates for every enabled strategy.

        Strategies are visited in ``StrategyType`` order and candidates in
        key order so identical inputs always produce identical entries.

        Args:
            now: Current time (epoch seconds).
            use_quotes: Price entries at the cached best ask and require ask
                depth; candidates without a cached quote are skipped.

        Returns:
            Number of positions opened.

        """
        self._progress(now, STEP_CHECKING_ENTRIES)
        opened = 0
        for strategy_type, evaluator in self.evaluators.items():
            if not evaluator.config.enabled:
                continue
            candidates = sorted(
                self.pool.valid_for(self.excluded_market_ids(), now), key=lambda c: c.key
            )
            for candidate in candidates:
                if not self.ledger.can_open(strategy_type):
                    break
                if self.ledger.has_position(candidate.market_id):
                    continue
                try:
                    if self._try_open(evaluator, candidate, now, use_quotes=use_quotes):
                        opened += 1
                except (CapacityExceeded, DuplicateMarket) as exc:
                    logger.warning("Open rejected for %s: %s", candidate.key, exc)
                    self._error(now, type(exc).__name__, str(exc), candidate=candidate.key)
                except LiquidityUnknown as exc:
                    logger.info("Skipping %s: %s", candidate.key, exc)
                except Exception:
                    logger.exception("Error evaluating candidate %s", candidate.key)
                    self._error(now, "entry_check", "entry check failed", candidate=candidate.key)
        return opened

    def _try_open(
        self,
        evaluator: StrategyEvaluator,
        candidate: Candidate,
        now: int,
        *,
        use_quotes: bool,
    ) -> bool:
        """Size, check affordability and open one candidate."""
        quote = self.pool.quote_for(candidate) if use_quotes else None
        equity = self.ledger.equity
        if not evaluator.should_open(candidate, now, equity=equity, quote=quote):
            return False
        evaluator.record_activity(candidate.market_id, now)
        price = quote.best_ask if quote is not None else candidate.latest_price
        size = evaluator.position_size(equity, price)
        if size < self._config.min_order_size:
            logger.debug(
                "Size %s below minimum order %s for %s",
                size,
                self._config.min_order_size,
                candidate.key,
            )
            return False
        cost = size * price * (ONE + self._config.taker_fee_rate)
        if cost > equity:
            logger.info("Cannot afford %s: cost %s exceeds equity %s", candidate.key, cost, equity)
            return False
        position = self.ledger.open(candidate, price, size, evaluator.strategy_type, now)
        self.emit(OpenedEvent(timestamp=now, position=position))
        return True

    def mark_prices(self, now: int) -> None:
        """Mark open positions, verify the ledger and record an equity point."""
        self._progress(now, STEP_UPDATING_PRICES)
        for position in self.ledger.open_positions():
            price = self.current_price(position)
            if price is not None:
                self.ledger.mark_price(position.id, price)
        try:
            self.ledger.verify_invariants()
        except InvariantViolation as exc:
            logger.warning("Ledger invariant violated: %s", exc)
            self._error(now, "InvariantViolation", str(exc))
        account = self.ledger.account()
        self._equity_curve.append(
            EquityPoint(
                timestamp=now,
                equity=account.equity,
                total_assets=account.total_assets,
                open_positions=self.ledger.open_count(),
            )
        )

    def end_tick(self, now: int) -> None:
        """Emit the tick summary event."""
        stats = self.ledger.statistics()
        logger.info(
            "[tick %d] open=%d closed=%d equity=%s total=%s candidates=%d",
            self._tick,
            stats.open_count,
            stats.closed_count,
            stats.equity,
            stats.total_assets,
            len(self.pool),
        )
        self.emit(
            TickEvent(
                tick=self._tick,
                timestamp=now,
                statistics=stats,
                candidates=len(self.pool),
            )
        )

    # -- whole ticks ------------------------------------------------------

    def run_tick(self, snapshots: Iterable[MarketSnapshot], now: int) -> None:
        """Process one tick without order-book access."""
        batch = self.begin_tick(snapshots, now)
        self.check_exits(now)
        self.refresh_candidates(batch, now)
        self.check_entries(now)
        self.mark_prices(now)
        self.end_tick(now)

    async def run_tick_async(
        self,
        snapshots: Iterable[MarketSnapshot],
        now: int,
        source: OrderBookSource | None = None,
    ) -> None:
        """Process one tick, revalidating liquidity when ``source`` is given."""
        batch = self.begin_tick(snapshots, now)
        self.check_exits(now)
        self.refresh_candidates(batch, now)
        if source is not None:
            await self.refresh_order_books(source, now)
        self.check_entries(now, use_quotes=source is not None)
        self.mark_prices(now)
        self.end_tick(now)

    def close_all(self, now: int, reason: str) -> int:
        """Close every open position at its latest price.

        Returns:
            Number of positions closed.

        """
        closed = 0
        for position in self.ledger.open_positions():
            price = self.current_price(position)
            if price is None:
                price = position.current_price
            self.ledger.close(position, price, reason, now)
            self.emit(ClosedEvent(timestamp=now, position=position, reason=reason))
            closed += 1
        return closed

    def build_result(self) -> RunResult:
        """Summarise the session as a ``RunResult``."""
        positions = tuple(self.ledger.all_positions())
        curve = tuple(self._equity_curve)
        initial = self.ledger.initial_capital
        return RunResult(
            initial_capital=initial,
            final_equity=self.ledger.equity,
            positions=positions,
            equity_curve=curve,
            ticks_processed=self._tick,
            metrics=compute_metrics(positions, curve, initial),
            strategy_metrics=compute_strategy_metrics(positions),
        )
