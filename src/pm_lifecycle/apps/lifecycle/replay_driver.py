"""Deterministic historical replay over a fixed snapshot sequence.

Snapshots are sorted once at construction and grouped into ticks, either
one tick per distinct timestamp or one tick per fixed-width time bucket.
Identical input and configuration always produce identical trades.
"""

import logging
from collections.abc import Iterable, Iterator

from pm_lifecycle.apps.lifecycle.base_driver import DriverState, SimulationDriver
from pm_lifecycle.apps.lifecycle.config import EngineConfig
from pm_lifecycle.apps.lifecycle.events import EventSink
from pm_lifecycle.apps.lifecycle.models import MarketSnapshot, RunResult

logger = logging.getLogger(__name__)

END_OF_REPLAY_REASON = "end of replay"


def group_snapshots(
    snapshots: Iterable[MarketSnapshot],
    bucket_seconds: int | None = None,
) -> Iterator[tuple[int, list[MarketSnapshot]]]:
    """Yield ``(tick_time, batch)`` pairs in time order.

    Within a batch only the latest snapshot per market is kept. The tick
    time is the latest timestamp in the batch.

    Args:
        snapshots: Snapshots sorted by timestamp.
        bucket_seconds: Bucket width; ``None`` groups by exact timestamp.

    """
    current_key: int | None = None
    batch: dict[str, MarketSnapshot] = {}
    tick_time = 0
    for snapshot in snapshots:
        key = snapshot.timestamp
        if bucket_seconds:
            key = snapshot.timestamp // bucket_seconds * bucket_seconds
        if current_key is not None and key != current_key:
            yield tick_time, list(batch.values())
            batch = {}
        current_key = key
        batch[snapshot.market_id] = snapshot
        tick_time = snapshot.timestamp
    if batch:
        yield tick_time, list(batch.values())


class ReplayDriver(SimulationDriver):
    """Replay a pre-sorted snapshot sequence through a trading session.

    Args:
        snapshots: Historical snapshots in any order.
        config: Engine configuration.
        sink: Callback receiving driver events. It may call ``stop`` to end
            the replay after the current tick.
        bucket_seconds: Group snapshots into buckets of this width instead
            of by exact timestamp.

    """

    def __init__(
        self,
        snapshots: Iterable[MarketSnapshot],
        config: EngineConfig,
        sink: EventSink | None = None,
        bucket_seconds: int | None = None,
    ) -> None:
        """Initialize the driver with an immutable, sorted snapshot sequence."""
        super().__init__(config, sink)
        self._snapshots: tuple[MarketSnapshot, ...] = tuple(
            sorted(snapshots, key=lambda s: (s.timestamp, s.market_id))
        )
        self._bucket_seconds = bucket_seconds
        self._stop_requested = False

    @property
    def snapshot_count(self) -> int:
        """Return the number of snapshots in the replay."""
        return len(self._snapshots)

    def start(self, config: EngineConfig | None = None) -> RunResult:
        """Run the full replay and return its result.

        Open positions left at the end are closed at their last observed
        price with reason ``"end of replay"``.

        Args:
            config: Optional configuration replacing the constructor's.

        Returns:
            The run result.

        Raises:
            AlreadyInitializing: If called while initializing.
            AlreadyRunning: If called while a replay is running.

        """
        session = self._begin_start(config)
        self._stop_requested = False
        logger.info(
            "Replaying %d snapshots (strategies: %s)",
            len(self._snapshots),
            ", ".join(s.value for s in self._config.enabled_strategies),
        )
        self._state = DriverState.RUNNING
        last_time = self._snapshots[0].timestamp if self._snapshots else 0
        try:
            for now, batch in group_snapshots(self._snapshots, self._bucket_seconds):
                if self._stop_requested:
                    logger.info("Replay stopped after %d ticks", session.tick_count)
                    break
                session.run_tick(batch, now)
                last_time = now
            return self._finish(session, last_time, END_OF_REPLAY_REASON)
        finally:
            self._state = DriverState.IDLE

    def stop(self) -> None:
        """Request the replay to stop after the current tick.

        Raises:
            NotRunning: If no replay is running.

        """
        self._require_running()
        self._stop_requested = True
