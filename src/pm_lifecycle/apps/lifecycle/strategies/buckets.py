"""Static risk-policy tables keyed by entry-price bucket.

A bucket is a half-open price range ``[lower, upper)`` (the topmost bucket
of a table also includes its upper bound) with its own stop-loss,
trailing-drawdown and maximum-holding parameters.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class RiskPolicy:
    """Exit parameters for positions entered within one price bucket.

    Args:
        name: Bucket label used in logs.
        lower: Inclusive lower bound of the entry price.
        upper: Upper bound of the entry price.
        upper_inclusive: Whether ``upper`` itself belongs to the bucket.
        stop_loss: Return at or below which the hard stop fires (negative).
        trailing_drawdown: Retracement from the high-water mark at or above
            which a profitable position is closed.
        max_hours: Holding duration at which the position is force-closed.

    """

    name: str
    lower: Decimal
    upper: Decimal
    upper_inclusive: bool
    stop_loss: Decimal
    trailing_drawdown: Decimal
    max_hours: Decimal

    def contains(self, price: Decimal) -> bool:
        """Return whether ``price`` falls inside this bucket."""
        if price < self.lower:
            return False
        if self.upper_inclusive:
            return price <= self.upper
        return price < self.upper


REVERSAL_BUCKETS: tuple[RiskPolicy, ...] = (
    RiskPolicy(
        name="ultra_low",
        lower=Decimal("0.01"),
        upper=Decimal("0.05"),
        upper_inclusive=False,
        stop_loss=Decimal("-0.15"),
        trailing_drawdown=Decimal("0.30"),
        max_hours=Decimal(168),
    ),
    RiskPolicy(
        name="low",
        lower=Decimal("0.05"),
        upper=Decimal("0.10"),
        upper_inclusive=False,
        stop_loss=Decimal("-0.15"),
        trailing_drawdown=Decimal("0.25"),
        max_hours=Decimal(120),
    ),
    RiskPolicy(
        name="medium_low",
        lower=Decimal("0.10"),
        upper=Decimal("0.20"),
        upper_inclusive=False,
        stop_loss=Decimal("-0.10"),
        trailing_drawdown=Decimal("0.20"),
        max_hours=Decimal(96),
    ),
    RiskPolicy(
        name="medium",
        lower=Decimal("0.20"),
        upper=Decimal("0.35"),
        upper_inclusive=True,
        stop_loss=Decimal("-0.10"),
        trailing_drawdown=Decimal("0.15"),
        max_hours=Decimal(72),
    ),
)

CONVERGENCE_POLICY = RiskPolicy(
    name="convergence",
    lower=Decimal("0.90"),
    upper=Decimal("0.95"),
    upper_inclusive=True,
    stop_loss=Decimal("-0.05"),
    trailing_drawdown=Decimal("0.10"),
    max_hours=Decimal(24),
)


def find_bucket(buckets: tuple[RiskPolicy, ...], price: Decimal) -> RiskPolicy | None:
    """Return the bucket containing ``price``, or ``None`` if none does."""
    for bucket in buckets:
        if bucket.contains(price):
            return bucket
    return None
