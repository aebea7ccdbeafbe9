"""Applications built on the lifecycle engine."""
