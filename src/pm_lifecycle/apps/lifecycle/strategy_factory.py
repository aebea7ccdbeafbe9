"""Strategy registry and factory for the lifecycle engine.

Map each ``StrategyType`` to its evaluator class and build one evaluator
instance per enabled strategy for a trading session.
"""

import typer

from pm_lifecycle.apps.lifecycle.config import EngineConfig
from pm_lifecycle.apps.lifecycle.models import StrategyType
from pm_lifecycle.apps.lifecycle.strategies.base import StrategyEvaluator
from pm_lifecycle.apps.lifecycle.strategies.convergence import ConvergenceStrategy
from pm_lifecycle.apps.lifecycle.strategies.reversal import ReversalStrategy

STRATEGY_NAMES = tuple(s.value for s in StrategyType)

_EVALUATORS: dict[StrategyType, type[StrategyEvaluator]] = {
    StrategyType.REVERSAL: ReversalStrategy,
    StrategyType.CONVERGENCE: ConvergenceStrategy,
}


def build_evaluator(name: str, config: EngineConfig) -> StrategyEvaluator:
    """Build a single strategy evaluator by name.

    Args:
        name: Strategy identifier (must be one of ``STRATEGY_NAMES``).
        config: Engine configuration holding the per-strategy settings.

    Returns:
        A configured ``StrategyEvaluator`` instance.

    Raises:
        typer.BadParameter: If the strategy name is not recognised.

    """
    if name not in STRATEGY_NAMES:
        msg = f"Unknown strategy: {name}. Available: {', '.join(STRATEGY_NAMES)}"
        raise typer.BadParameter(msg)
    strategy_type = StrategyType(name)
    evaluator_cls = _EVALUATORS[strategy_type]
    return evaluator_cls(
        config.strategy(strategy_type),
        liquidity_multiplier=config.liquidity_multiplier,
    )


def build_evaluators(config: EngineConfig) -> dict[StrategyType, StrategyEvaluator]:
    """Build one evaluator per enabled strategy, in ``StrategyType`` order."""
    return {
        strategy_type: build_evaluator(strategy_type.value, config)
        for strategy_type in config.enabled_strategies
    }
