"""Strategy evaluators for the lifecycle engine.

Each evaluator implements the same ``should_open`` / ``should_close`` /
``exit_reason`` contract and is selected by ``StrategyType``.
"""
