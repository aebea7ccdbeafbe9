"""CLI entry point for the lifecycle engine.

All command logic lives in the cli subpackage.
"""

from pm_lifecycle.apps.lifecycle.cli import app

__all__ = ["app", "main"]


def main() -> None:
    """Run the lifecycle CLI application."""
    app()


if __name__ == "__main__":
    main()
