"""Exception hierarchy for the lifecycle engine.

Ledger errors reject a single request and never stop a run. Driver errors
are control-plane failures raised synchronously from ``start``/``stop``.
Feed and liquidity errors wrap collaborator failures so the drivers can
skip a tick or a candidate without knowing the transport.
"""


class LifecycleError(Exception):
    """Base exception for all lifecycle engine errors."""


class LedgerError(LifecycleError):
    """Base exception for rejected ledger operations."""


class CapacityExceeded(LedgerError):
    """Opening a position would exceed a global or per-strategy limit.

    Args:
        scope: ``"global"`` or the strategy name whose limit was hit.
        limit: The configured maximum number of open positions.

    """

    def __init__(self, scope: str, limit: int) -> None:
        """Initialize the capacity error.

        Args:
            scope: ``"global"`` or the strategy name whose limit was hit.
            limit: The configured maximum number of open positions.

        """
        super().__init__(f"{scope} position limit of {limit} reached")
        self.scope = scope
        self.limit = limit


class DuplicateMarket(LedgerError):
    """The market already has an open position.

    Args:
        market_id: Identifier of the market that is already held.

    """

    def __init__(self, market_id: str) -> None:
        """Initialize the duplicate-market error.

        Args:
            market_id: Identifier of the market that is already held.

        """
        super().__init__(f"market {market_id} already has an open position")
        self.market_id = market_id


class InvariantViolation(LedgerError):
    """A ledger consistency check failed."""


class DriverError(LifecycleError):
    """Base exception for driver control-plane errors."""


class AlreadyRunning(DriverError):
    """``start`` was called while the driver is running or stopping."""


class AlreadyInitializing(DriverError):
    """``start`` was called while a previous ``start`` is still initializing."""


class NotRunning(DriverError):
    """``stop`` was called on a driver that is not running."""


class FeedUnavailable(LifecycleError):
    """The market-feed collaborator could not supply snapshots."""


class LiquidityUnknown(LifecycleError):
    """Order-book depth for a token could not be determined.

    Args:
        token_id: CLOB token identifier that could not be resolved.

    """

    def __init__(self, token_id: str) -> None:
        """Initialize the liquidity error.

        Args:
            token_id: CLOB token identifier that could not be resolved.

        """
        super().__init__(f"no order book available for token {token_id}")
        self.token_id = token_id
