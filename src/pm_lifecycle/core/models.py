"""Core numeric constants and conversion helpers.

Keep every monetary value and probability as ``Decimal`` so that P&L
identities (``pnl == size * (exit - entry)``) hold exactly instead of
drifting with binary floating point.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

ZERO = Decimal(0)
ONE = Decimal(1)
HUNDRED = Decimal(100)
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Convert an arbitrary scalar into a ``Decimal``.

    Route floats through ``str`` so ``0.1`` becomes ``Decimal("0.1")``
    rather than its binary expansion. Return ``default`` for ``None``,
    empty strings, and values that cannot be parsed.

    Args:
        value: Number, numeric string, or ``None``.
        default: Value returned when conversion is impossible.

    Returns:
        The parsed decimal, or ``default``.

    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result
