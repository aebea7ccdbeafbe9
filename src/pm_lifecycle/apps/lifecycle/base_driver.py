"""Shared state machine for the replay and poll drivers.

Both drivers move through ``idle -> initializing -> running -> stopping ->
idle``. ``start`` is only accepted from ``idle`` and ``stop`` only from
``running``; every other transition fails fast with a ``DriverError``.
"""

import logging
from enum import Enum

from pm_lifecycle.apps.lifecycle.config import EngineConfig
from pm_lifecycle.apps.lifecycle.events import CompleteEvent, EventSink
from pm_lifecycle.apps.lifecycle.exceptions import (
    AlreadyInitializing,
    AlreadyRunning,
    NotRunning,
)
from pm_lifecycle.apps.lifecycle.models import RunResult
from pm_lifecycle.apps.lifecycle.session import TradingSession

logger = logging.getLogger(__name__)


class DriverState(Enum):
    """Lifecycle state of a driver."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    STOPPING = "stopping"


class SimulationDriver:
    """Common state handling for drivers.

    Args:
        config: Engine configuration used for new sessions.
        sink: Callback receiving driver events.

    """

    def __init__(self, config: EngineConfig, sink: EventSink | None = None) -> None:
        """Initialize an idle driver."""
        self._config = config
        self._sink = sink
        self._state = DriverState.IDLE
        self._session: TradingSession | None = None

    @property
    def state(self) -> DriverState:
        """Return the current driver state."""
        return self._state

    @property
    def session(self) -> TradingSession | None:
        """Return the session of the current or most recent run."""
        return self._session

    @property
    def config(self) -> EngineConfig:
        """Return the configuration used for new sessions."""
        return self._config

    def _begin_start(self, config: EngineConfig | None) -> TradingSession:
        """Validate the start transition and create a fresh session.

        Raises:
            AlreadyInitializing: If a previous ``start`` is still initializing.
            AlreadyRunning: If the driver is running or stopping.

        """
        if self._state is DriverState.INITIALIZING:
            msg = "driver is still initializing"
            raise AlreadyInitializing(msg)
        if self._state is not DriverState.IDLE:
            msg = f"driver is {self._state.value}"
            raise AlreadyRunning(msg)
        self._state = DriverState.INITIALIZING
        if config is not None:
            self._config = config
        self._session = TradingSession(self._config, sink=self._sink)
        return self._session

    def _require_running(self) -> TradingSession:
        """Validate the stop transition and return the active session.

        Raises:
            NotRunning: If the driver is not running.

        """
        if self._state is not DriverState.RUNNING or self._session is None:
            msg = f"driver is {self._state.value}"
            raise NotRunning(msg)
        self._state = DriverState.STOPPING
        return self._session

    def _finish(
        self, session: TradingSession, now: int, close_reason: str | None
    ) -> RunResult:
        """Emit the completion event and go idle.

        Open positions are closed at their latest price only when
        ``close_reason`` is given; otherwise they stay open and their
        floating P&L is reported in the result.
        """
        if close_reason is not None:
            closed = session.close_all(now, close_reason)
            if closed:
                logger.info("Closed %d open positions: %s", closed, close_reason)
        else:
            logger.info(
                "Leaving %d positions open (floating P&L %s)",
                session.ledger.open_count(),
                session.ledger.account().floating_pnl,
            )
        result = session.build_result()
        session.emit(
            CompleteEvent(
                timestamp=now,
                ticks=result.ticks_processed,
                statistics=session.ledger.statistics(),
                final_equity=result.final_equity,
            )
        )
        self._state = DriverState.IDLE
        return result
