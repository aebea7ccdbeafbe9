"""Live polling driver that advances a session on a fixed wall-clock interval.

A single timer task owns the right to start ticks. Each tick runs as its
own task; if the timer fires while a tick is still in flight, that firing
is skipped rather than queued. ``stop`` cancels the timer but always waits
for an in-flight tick to finish, so the ledger is never left half-updated.
"""

import asyncio
import contextlib
import logging
import signal
import time
from collections.abc import Callable
from typing import Any

from pm_lifecycle.apps.lifecycle.base_driver import DriverState, SimulationDriver
from pm_lifecycle.apps.lifecycle.candidate_pool import OrderBookSource
from pm_lifecycle.apps.lifecycle.config import EngineConfig
from pm_lifecycle.apps.lifecycle.events import ErrorEvent, EventSink
from pm_lifecycle.apps.lifecycle.exceptions import FeedUnavailable
from pm_lifecycle.apps.lifecycle.feeds import MarketFeed
from pm_lifecycle.apps.lifecycle.models import RunResult
from pm_lifecycle.apps.lifecycle.session import TradingSession
from pm_lifecycle.core.models import SECONDS_PER_MINUTE

logger = logging.getLogger(__name__)

STOPPED_REASON = "driver stopped"


def _log_task_exception(task: asyncio.Task[Any]) -> None:
    """Log unhandled exceptions from background tasks.

    Args:
        task: The completed asyncio task.

    """
    if not task.cancelled() and task.exception() is not None:
        logger.error(
            "Background task %s failed: %s",
            task.get_name(),
            task.exception(),
            exc_info=task.exception(),
        )


def _wall_clock() -> int:
    """Return the current Unix time in whole seconds."""
    return int(time.time())


class PollDriver(SimulationDriver):
    """Poll a market feed periodically and run one tick per poll.

    Args:
        feed: Market-feed collaborator.
        config: Engine configuration.
        sink: Callback receiving driver events.
        order_books: Optional order-book collaborator. When given, candidates
            are liquidity-validated each tick and entries use the best ask.
        interval_seconds: Poll interval; defaults to the configured
            ``update_interval_minutes``.
        clock: Function returning the current epoch time in seconds.
        close_on_stop: Close open positions at their latest price when the
            driver stops. Off by default, so stopping never realizes P&L.

    """

    def __init__(  # noqa: PLR0913
        self,
        feed: MarketFeed,
        config: EngineConfig,
        sink: EventSink | None = None,
        order_books: OrderBookSource | None = None,
        interval_seconds: float | None = None,
        clock: Callable[[], int] = _wall_clock,
        *,
        close_on_stop: bool = False,
    ) -> None:
        """Initialize an idle poll driver."""
        super().__init__(config, sink)
        self._feed = feed
        self._order_books = order_books
        self._interval_override = interval_seconds
        self._clock = clock
        self._close_on_stop = close_on_stop
        self._timer_task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._ticks_completed = 0
        self._skipped_firings = 0
        self._max_ticks: int | None = None
        self._done = asyncio.Event()

    @property
    def interval_seconds(self) -> float:
        """Return the poll interval in seconds."""
        if self._interval_override is not None:
            return self._interval_override
        return float(self._config.update_interval_minutes * SECONDS_PER_MINUTE)

    @property
    def ticks_completed(self) -> int:
        """Return the number of ticks that finished in the current run."""
        return self._ticks_completed

    @property
    def skipped_firings(self) -> int:
        """Return how many timer firings were skipped due to an in-flight tick."""
        return self._skipped_firings

    @property
    def tick_in_progress(self) -> bool:
        """Return whether a tick is currently executing."""
        return self._tick_task is not None and not self._tick_task.done()

    async def start(self, config: EngineConfig | None = None) -> None:
        """Initialize a session, run the first tick and start the timer.

        Args:
            config: Optional configuration replacing the constructor's.

        Raises:
            AlreadyInitializing: If a previous ``start`` is still initializing.
            AlreadyRunning: If the driver is running or stopping.

        """
        session = self._begin_start(config)
        self._ticks_completed = 0
        self._skipped_firings = 0
        self._done = asyncio.Event()
        logger.info(
            "Starting poll driver (interval %.0fs, strategies: %s)",
            self.interval_seconds,
            ", ".join(s.value for s in self._config.enabled_strategies),
        )
        try:
            await self._run_tick(session)
        except BaseException:
            self._state = DriverState.IDLE
            raise
        self._state = DriverState.RUNNING
        self._timer_task = asyncio.create_task(self._timer_loop(), name="poll-timer")
        self._timer_task.add_done_callback(_log_task_exception)

    def fire(self) -> bool:
        """Start a tick now unless one is already in flight.

        Returns:
            ``True`` if a tick was started, ``False`` if the firing was skipped.

        """
        session = self._session
        if self._state is not DriverState.RUNNING or session is None:
            return False
        if self.tick_in_progress:
            self._skipped_firings += 1
            logger.warning("Tick still in progress, skipping timer firing")
            return False
        self._tick_task = asyncio.create_task(self._run_tick(session), name="poll-tick")
        self._tick_task.add_done_callback(_log_task_exception)
        return True

    async def _timer_loop(self) -> None:
        """Fire a tick every ``interval_seconds`` while running."""
        while self._state is DriverState.RUNNING:
            await asyncio.sleep(self.interval_seconds)
            self.fire()

    async def _run_tick(self, session: TradingSession) -> None:
        """Fetch snapshots and process one tick; feed failures skip the tick."""
        now = self._clock()
        try:
            snapshots = await self._feed.fetch_snapshots(now)
        except FeedUnavailable as exc:
            logger.warning("Feed unavailable, skipping tick: %s", exc)
            session.emit(ErrorEvent(timestamp=now, message=str(exc), kind="FeedUnavailable"))
            return
        try:
            await session.run_tick_async(snapshots, now, self._order_books)
        except Exception:
            logger.exception("Tick failed at %d", now)
            session.emit(ErrorEvent(timestamp=now, message="tick failed", kind="tick"))
            return
        self._ticks_completed += 1
        if self._max_ticks is not None and self._ticks_completed >= self._max_ticks:
            self._done.set()

    async def stop(self) -> RunResult:
        """Stop polling after any in-flight tick completes.

        Open positions stay open unless ``close_on_stop`` was requested.

        Returns:
            The run result.

        Raises:
            NotRunning: If the driver is not running.

        """
        session = self._require_running()
        if self._timer_task is not None:
            self._timer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer_task
            self._timer_task = None
        if self._tick_task is not None and not self._tick_task.done():
            logger.info("Waiting for in-flight tick to finish")
            await asyncio.wait([self._tick_task])
        self._tick_task = None
        try:
            close_reason = STOPPED_REASON if self._close_on_stop else None
            return self._finish(session, self._clock(), close_reason)
        finally:
            self._state = DriverState.IDLE
            self._done.set()

    def _handle_sigint(self) -> None:
        """Request a graceful stop on SIGINT."""
        logger.info("Shutdown signal received")
        self._done.set()

    async def run(self, *, max_ticks: int | None = None) -> RunResult:
        """Start, poll until SIGINT or ``max_ticks`` ticks, then stop.

        Args:
            max_ticks: Stop after this many completed ticks (``None`` for
                unlimited).

        Returns:
            The run result.

        """
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
        self._max_ticks = max_ticks
        try:
            await self.start()
            await self._done.wait()
            return await self.stop()
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            self._max_ticks = None
