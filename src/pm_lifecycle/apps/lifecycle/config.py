"""Normalized configuration for the lifecycle engine.

Both drivers and every strategy only ever see ``EngineConfig`` and
``StrategyConfig``. Loose input (YAML sections, environment variables,
JSON payloads using camelCase or snake_case keys) is converted exactly once
by ``build_engine_config`` at the boundary.
"""

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, cast

from pm_lifecycle.apps.lifecycle.models import StrategyType
from pm_lifecycle.core.config import ConfigLoader, get_config
from pm_lifecycle.core.models import ONE, ZERO, to_decimal

logger = logging.getLogger(__name__)

_DEFAULT_INITIAL_CAPITAL = Decimal(10000)
_DEFAULT_MAX_POSITIONS = 5
_DEFAULT_MAX_POSITION_SIZE = Decimal("0.18")
_DEFAULT_UPDATE_INTERVAL_MINUTES = 10
_DEFAULT_MIN_LIQUIDITY = Decimal(100)
_DEFAULT_MIN_VOLUME = Decimal(80000)
_DEFAULT_MAX_SPREAD = Decimal("0.025")
_DEFAULT_MAX_SLIPPAGE = Decimal("0.02")
_DEFAULT_MIN_ORDER_SIZE = Decimal(10)
_DEFAULT_TAKER_FEE_RATE = Decimal("0.002")
_DEFAULT_LIQUIDITY_MULTIPLIER = Decimal(2)
_DEFAULT_EXPIRE_MINUTES = 60
_DEFAULT_MIN_HOURS_TO_END = Decimal(2)
_DEFAULT_BOOK_BATCH_SIZE = 10
_DEFAULT_TEST_MODE = "1-convergence-4-reversal"

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off", ""})


@dataclass(frozen=True)
class StrategyConfig:
    """Per-strategy settings shared by every strategy variant.

    Optional risk values override the strategy's built-in price-bucket
    policy when set; ``None`` keeps the policy default.

    Args:
        enabled: Whether the strategy may open new positions.
        max_positions: Maximum simultaneously open positions for the strategy.
        max_position_size: Fraction of equity committed per position.
        stop_loss: Loss fraction that triggers a hard stop (``0.1`` = -10%).
        take_profit: Gain fraction that triggers an immediate close.
        trailing_stop: Retracement from the high-water mark that closes a
            profitable position.
        max_holding_hours: Maximum holding duration in hours.
        cooldown_minutes: Minutes a market is blocked after an entry or exit.
        min_volume: Minimum 24h volume for the basic depth check.
        min_liquidity: Minimum liquidity for the basic depth check.

    """

    enabled: bool = True
    max_positions: int = _DEFAULT_MAX_POSITIONS
    max_position_size: Decimal = _DEFAULT_MAX_POSITION_SIZE
    stop_loss: Decimal | None = None
    take_profit: Decimal | None = None
    trailing_stop: Decimal | None = None
    max_holding_hours: Decimal | None = None
    cooldown_minutes: int | None = None
    min_volume: Decimal | None = None
    min_liquidity: Decimal | None = None

    def __post_init__(self) -> None:
        """Validate limits and normalise the stop-loss sign."""
        if self.max_positions < 0:
            msg = f"max_positions must be non-negative, got {self.max_positions}"
            raise ValueError(msg)
        if not (ZERO < self.max_position_size <= ONE):
            msg = f"max_position_size must be in (0, 1], got {self.max_position_size}"
            raise ValueError(msg)
        if self.stop_loss is not None:
            object.__setattr__(self, "stop_loss", abs(self.stop_loss))


_DISABLED = StrategyConfig(enabled=False, max_positions=0)


def _split(reversal: int, convergence: int) -> dict[StrategyType, StrategyConfig]:
    """Build a strategy table that splits the position budget between strategies."""
    return {
        StrategyType.REVERSAL: (
            StrategyConfig(max_positions=reversal) if reversal else _DISABLED
        ),
        StrategyType.CONVERGENCE: (
            StrategyConfig(max_positions=convergence) if convergence else _DISABLED
        ),
    }


TEST_MODE_PRESETS: dict[str, dict[StrategyType, StrategyConfig]] = {
    "all-reversal": _split(5, 0),
    "1-convergence-4-reversal": _split(4, 1),
    "2-convergence-3-reversal": _split(3, 2),
}


def _default_strategies() -> dict[StrategyType, StrategyConfig]:
    """Return the default strategy table."""
    return dict(TEST_MODE_PRESETS[_DEFAULT_TEST_MODE])


@dataclass(frozen=True)
class EngineConfig:
    """Immutable configuration for one trading session.

    Args:
        initial_capital: Starting capital in USD.
        max_positions: Global cap on simultaneously open positions.
        max_position_size: Default fraction of equity per position.
        update_interval_minutes: Poll interval for the live driver, and the
            bucket width used when the replay driver groups snapshots.
        min_liquidity: Minimum market liquidity for candidate admission and
            minimum best-level depth for order-book validation.
        min_volume: Minimum 24h volume for candidate admission.
        max_spread: Maximum best bid/ask spread for order-book validation.
        max_slippage: Maximum accepted slippage for live fills.
        min_order_size: Minimum number of shares per order.
        taker_fee_rate: Fee rate applied to entry cost in the affordability check.
        liquidity_multiplier: Required ask depth as a multiple of order size.
        candidate_expire_minutes: Minutes after which an unrefreshed candidate
            expires.
        max_candidates: Optional cap on the candidate pool size.
        min_hours_to_end: Candidates must resolve more than this many hours
            after admission.
        order_book_batch_size: Tokens per order-book request.
        clamp_negative_equity: Clamp equity at zero when losses exceed capital.
        market_blacklist: Market ids that may never be traded.
        strategies: Per-strategy configuration.

    Raises:
        ValueError: If a numeric setting is out of range.

    """

    initial_capital: Decimal = _DEFAULT_INITIAL_CAPITAL
    max_positions: int = _DEFAULT_MAX_POSITIONS
    max_position_size: Decimal = _DEFAULT_MAX_POSITION_SIZE
    update_interval_minutes: int = _DEFAULT_UPDATE_INTERVAL_MINUTES
    min_liquidity: Decimal = _DEFAULT_MIN_LIQUIDITY
    min_volume: Decimal = _DEFAULT_MIN_VOLUME
    max_spread: Decimal = _DEFAULT_MAX_SPREAD
    max_slippage: Decimal = _DEFAULT_MAX_SLIPPAGE
    min_order_size: Decimal = _DEFAULT_MIN_ORDER_SIZE
    taker_fee_rate: Decimal = _DEFAULT_TAKER_FEE_RATE
    liquidity_multiplier: Decimal = _DEFAULT_LIQUIDITY_MULTIPLIER
    candidate_expire_minutes: int = _DEFAULT_EXPIRE_MINUTES
    max_candidates: int | None = None
    min_hours_to_end: Decimal = _DEFAULT_MIN_HOURS_TO_END
    order_book_batch_size: int = _DEFAULT_BOOK_BATCH_SIZE
    clamp_negative_equity: bool = True
    market_blacklist: tuple[str, ...] = ()
    strategies: dict[StrategyType, StrategyConfig] = field(default_factory=_default_strategies)

    def __post_init__(self) -> None:
        """Validate global limits."""
        if self.initial_capital <= ZERO:
            msg = f"initial_capital must be positive, got {self.initial_capital}"
            raise ValueError(msg)
        if self.max_positions < 1:
            msg = f"max_positions must be at least 1, got {self.max_positions}"
            raise ValueError(msg)
        if not (ZERO < self.max_position_size <= ONE):
            msg = f"max_position_size must be in (0, 1], got {self.max_position_size}"
            raise ValueError(msg)
        if self.update_interval_minutes < 1:
            msg = f"update_interval_minutes must be at least 1, got {self.update_interval_minutes}"
            raise ValueError(msg)
        if self.order_book_batch_size < 1:
            msg = f"order_book_batch_size must be at least 1, got {self.order_book_batch_size}"
            raise ValueError(msg)

    def strategy(self, strategy_type: StrategyType) -> StrategyConfig:
        """Return the configuration for ``strategy_type`` (disabled if absent)."""
        return self.strategies.get(strategy_type, _DISABLED)

    @property
    def enabled_strategies(self) -> tuple[StrategyType, ...]:
        """Return enabled strategies in declaration order."""
        return tuple(s for s in StrategyType if self.strategy(s).enabled)


def _snake_case(key: str) -> str:
    """Convert ``camelCase`` keys to ``snake_case``."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _normalise_keys(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``raw`` with snake_case keys."""
    return {_snake_case(str(key)): value for key, value in raw.items()}


def parse_bool(value: Any) -> bool:
    """Parse a boolean from YAML, environment, or JSON input.

    Raises:
        ValueError: If a string value is not a recognised boolean literal.

    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float | Decimal):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    msg = f"Cannot interpret {value!r} as a boolean"
    raise ValueError(msg)


def parse_blacklist(value: Any) -> tuple[str, ...]:
    """Parse a market blacklist from a list, JSON array string, or comma list."""
    if value is None:
        return ()
    if isinstance(value, list | tuple):
        items = cast("list[Any]", list(value))  # pyright: ignore[reportUnknownArgumentType]
        return tuple(str(item).strip() for item in items if str(item).strip())
    text = str(value).strip()
    if not text:
        return ()
    if text.startswith("["):
        try:
            decoded: Any = json.loads(text)
        except json.JSONDecodeError as exc:
            msg = f"Invalid market blacklist JSON: {text}"
            raise ValueError(msg) from exc
        return parse_blacklist(decoded)
    return tuple(part.strip() for part in text.split(",") if part.strip())


def _optional_decimal(value: Any) -> Decimal | None:
    """Parse an optional decimal, keeping ``None`` and empty strings as ``None``."""
    if value is None or value == "":
        return None
    result = to_decimal(value, default=Decimal("NaN"))
    if result.is_nan():
        msg = f"Invalid numeric value: {value!r}"
        raise ValueError(msg)
    return result


def _required_decimal(value: Any) -> Decimal:
    """Parse a mandatory decimal setting."""
    result = _optional_decimal(value)
    if result is None:
        msg = "Missing numeric value"
        raise ValueError(msg)
    return result


def build_strategy_config(
    raw: Mapping[str, Any],
    base: StrategyConfig | None = None,
) -> StrategyConfig:
    """Build a ``StrategyConfig`` from a loose mapping.

    Args:
        raw: Strategy settings using camelCase or snake_case keys.
        base: Settings to start from (defaults to ``StrategyConfig()``).

    Returns:
        The merged strategy configuration.

    Raises:
        ValueError: If a value cannot be parsed.

    """
    data = _normalise_keys(raw)
    result = base or StrategyConfig()
    updates: dict[str, Any] = {}
    if "enabled" in data:
        updates["enabled"] = parse_bool(data["enabled"])
    if "max_positions" in data:
        updates["max_positions"] = int(data["max_positions"])
    if "max_position_size" in data:
        updates["max_position_size"] = _required_decimal(data["max_position_size"])
    for key in (
        "stop_loss",
        "take_profit",
        "trailing_stop",
        "max_holding_hours",
        "min_volume",
        "min_liquidity",
    ):
        if key in data:
            updates[key] = _optional_decimal(data[key])
    if "cooldown_minutes" in data and data["cooldown_minutes"] not in (None, ""):
        updates["cooldown_minutes"] = int(data["cooldown_minutes"])
    return replace(result, **updates)


_DECIMAL_FIELDS = (
    "initial_capital",
    "max_position_size",
    "min_liquidity",
    "min_volume",
    "max_spread",
    "max_slippage",
    "min_order_size",
    "taker_fee_rate",
    "liquidity_multiplier",
    "min_hours_to_end",
)
_INT_FIELDS = (
    "max_positions",
    "update_interval_minutes",
    "candidate_expire_minutes",
    "order_book_batch_size",
)


def build_engine_config(raw: Mapping[str, Any]) -> EngineConfig:
    """Normalize a loose configuration mapping into an ``EngineConfig``.

    Apply the ``test_mode`` preset first (if any), then explicit
    per-strategy overrides from the ``strategies`` mapping. Strategy names
    are matched case-insensitively against ``StrategyType`` values; unknown
    names are ignored with a warning.

    Args:
        raw: Settings with camelCase or snake_case keys. Empty strings mean
            "use the default".

    Returns:
        The validated engine configuration.

    Raises:
        ValueError: If a value cannot be parsed, the test mode is unknown,
            or a limit is out of range.

    """
    data = {k: v for k, v in _normalise_keys(raw).items() if v is not None and v != ""}
    kwargs: dict[str, Any] = {}
    for key in _DECIMAL_FIELDS:
        if key in data:
            kwargs[key] = _required_decimal(data[key])
    for key in _INT_FIELDS:
        if key in data:
            kwargs[key] = int(data[key])
    if "max_candidates" in data:
        kwargs["max_candidates"] = int(data["max_candidates"])
    if "clamp_negative_equity" in data:
        kwargs["clamp_negative_equity"] = parse_bool(data["clamp_negative_equity"])
    if "market_blacklist" in data:
        kwargs["market_blacklist"] = parse_blacklist(data["market_blacklist"])

    test_mode = str(data.get("test_mode", _DEFAULT_TEST_MODE))
    if test_mode not in TEST_MODE_PRESETS:
        msg = f"Unknown test mode: {test_mode}. Available: {', '.join(TEST_MODE_PRESETS)}"
        raise ValueError(msg)
    strategies = dict(TEST_MODE_PRESETS[test_mode])

    raw_strategies: Any = data.get("strategies", {})
    if isinstance(raw_strategies, Mapping):
        for name, settings in cast("Mapping[str, Any]", raw_strategies).items():
            try:
                strategy_type = StrategyType(str(name).lower())
            except ValueError:
                logger.warning("Ignoring settings for unknown strategy %r", name)
                continue
            if isinstance(settings, Mapping):
                strategies[strategy_type] = build_strategy_config(
                    cast("Mapping[str, Any]", settings), strategies[strategy_type]
                )
    kwargs["strategies"] = strategies
    return EngineConfig(**kwargs)


def load_engine_config(loader: ConfigLoader | None = None) -> EngineConfig:
    """Load the ``lifecycle`` section of the YAML settings.

    Args:
        loader: Config loader to read from. Defaults to the shared loader.

    Returns:
        The validated engine configuration.

    """
    loader = loader or get_config()
    return build_engine_config(loader.get_section("lifecycle"))
