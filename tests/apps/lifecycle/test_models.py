"""Tests for lifecycle data models."""

from decimal import Decimal

import pytest

from pm_lifecycle.apps.lifecycle.models import (
    BookQuote,
    Candidate,
    MarketSnapshot,
    Position,
    PositionStatus,
    StrategyType,
    candidate_key,
)

_NOW = 1_700_000_000
_HOUR = 3600


def _snapshot(**overrides: object) -> MarketSnapshot:
    fields: dict[str, object] = {
        "timestamp": _NOW,
        "market_id": "m1",
        "question": "Will it rain?",
        "outcome_prices": (Decimal("0.30"), Decimal("0.70")),
        "liquidity": Decimal(1000),
        "volume_24h": Decimal(100000),
        "end_time": _NOW + 10 * _HOUR,
        "token_ids": ("t-yes", "t-no"),
    }
    fields.update(overrides)
    return MarketSnapshot(**fields)  # type: ignore[arg-type]


def _position(entry: str = "0.50", size: str = "100") -> Position:
    entry_price = Decimal(entry)
    position_size = Decimal(size)
    return Position(
        id="m1-1-reversal",
        market_id="m1",
        question="Will it rain?",
        outcome_name="Yes",
        strategy=StrategyType.REVERSAL,
        entry_time=_NOW,
        entry_price=entry_price,
        position_size=position_size,
        entry_value=entry_price * position_size,
        end_time=_NOW + 48 * _HOUR,
    )


class TestMarketSnapshot:
    """Tests for MarketSnapshot."""

    def test_price_and_token_lookup(self) -> None:
        """Look up prices and token ids by outcome name."""
        snap = _snapshot()
        assert snap.price_of("Yes") == Decimal("0.30")
        assert snap.price_of("Maybe") is None
        assert snap.token_id_of("No") == "t-no"
        assert snap.is_binary

    def test_token_lookup_without_tokens(self) -> None:
        """Return None for token ids when none are known."""
        assert _snapshot(token_ids=()).token_id_of("Yes") is None

    def test_hours_until_end(self) -> None:
        """Compute hours to resolution, negative once ended."""
        snap = _snapshot()
        assert snap.hours_until_end(_NOW) == Decimal(10)
        assert snap.hours_until_end(_NOW + 11 * _HOUR) == Decimal(-1)

    def test_rejects_out_of_range_price(self) -> None:
        """Reject prices outside [0, 1]."""
        with pytest.raises(ValueError, match="between 0 and 1"):
            _snapshot(outcome_prices=(Decimal("1.2"), Decimal("0.1")))

    def test_rejects_misaligned_outcomes(self) -> None:
        """Reject outcome and price arrays of different lengths."""
        with pytest.raises(ValueError, match="outcomes"):
            _snapshot(outcome_prices=(Decimal("0.5"),))

    def test_rejects_misaligned_tokens(self) -> None:
        """Reject token ids that do not match the outcomes."""
        with pytest.raises(ValueError, match="token ids"):
            _snapshot(token_ids=("only-one",))


class TestCandidate:
    """Tests for Candidate."""

    def test_key_and_token(self) -> None:
        """Derive the pool key and token id from the market."""
        candidate = Candidate(
            market=_snapshot(),
            outcome_name="Yes",
            probability=Decimal("0.30"),
            trend_strength=Decimal(0),
            add_time=_NOW,
            last_update_time=_NOW,
            latest_price=Decimal("0.30"),
        )
        assert candidate.key == candidate_key("m1", "Yes") == "m1_Yes"
        assert candidate.market_id == "m1"
        assert candidate.token_id == "t-yes"


class TestBookQuote:
    """Tests for BookQuote."""

    def test_spread(self) -> None:
        """Compute the spread as ask minus bid."""
        quote = BookQuote(
            token_id="t",
            best_bid=Decimal("0.40"),
            bid_size=Decimal(10),
            best_ask=Decimal("0.42"),
            ask_size=Decimal(20),
        )
        assert quote.spread == Decimal("0.02")


class TestPosition:
    """Tests for Position."""

    def test_seeds_mark_and_high_water(self) -> None:
        """Start the mark and the high-water mark at the entry price."""
        position = _position()
        assert position.current_price == Decimal("0.50")
        assert position.highest_price == Decimal("0.50")
        assert position.is_open

    def test_observe_updates_floating_pnl(self) -> None:
        """Update the mark, floating P&L and high-water mark."""
        position = _position()
        position.observe(Decimal("0.60"))
        assert position.current_price == Decimal("0.60")
        assert position.current_pnl == Decimal("10.00")
        assert position.current_pnl_percent == Decimal(20)
        assert position.highest_price == Decimal("0.60")

        position.observe(Decimal("0.55"))
        assert position.highest_price == Decimal("0.60")

    def test_observe_ignored_when_closed(self) -> None:
        """Leave closed positions untouched."""
        position = _position()
        position.status = PositionStatus.CLOSED
        position.observe(Decimal("0.90"))
        assert position.current_price == Decimal("0.50")
        assert position.highest_price == Decimal("0.50")

    def test_ratios(self) -> None:
        """Compute profit ratio and drawdown from the high."""
        position = _position()
        position.observe(Decimal("0.80"))
        assert position.profit_ratio(Decimal("0.60")) == Decimal("0.2")
        assert position.drawdown_from_high(Decimal("0.60")) == Decimal("0.25")
        assert position.drawdown_from_high(Decimal("0.90")) == Decimal(0)

    def test_hours(self) -> None:
        """Compute hours held and hours to market end."""
        position = _position()
        assert position.hours_held(_NOW + 3 * _HOUR) == Decimal(3)
        assert position.hours_until_end(_NOW + 47 * _HOUR) == Decimal(1)
