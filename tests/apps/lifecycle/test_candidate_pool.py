"""Tests for the candidate pool."""

from decimal import Decimal

import pytest

from pm_lifecycle.apps.lifecycle.candidate_pool import CandidatePool
from pm_lifecycle.apps.lifecycle.exceptions import FeedUnavailable, LiquidityUnknown
from pm_lifecycle.apps.lifecycle.models import BookQuote, MarketSnapshot

_NOW = 1_700_000_000
_HOUR = 3600
_MINUTE = 60


def _snapshot(  # noqa: PLR0913
    market_id: str = "m1",
    yes: str = "0.30",
    *,
    now: int = _NOW,
    hours_to_end: int = 24,
    volume: int = 100000,
    liquidity: int = 1000,
    active: bool = True,
    with_tokens: bool = True,
) -> MarketSnapshot:
    price = Decimal(yes)
    return MarketSnapshot(
        timestamp=now,
        market_id=market_id,
        question=f"Question {market_id}?",
        outcome_prices=(price, Decimal(1) - price),
        liquidity=Decimal(liquidity),
        volume_24h=Decimal(volume),
        end_time=now + hours_to_end * _HOUR,
        token_ids=(f"{market_id}-yes", f"{market_id}-no") if with_tokens else (),
        active=active,
    )


def _quote(token_id: str, *, bid: str = "0.29", ask: str = "0.30", size: int = 500) -> BookQuote:
    return BookQuote(
        token_id=token_id,
        best_bid=Decimal(bid),
        bid_size=Decimal(size),
        best_ask=Decimal(ask),
        ask_size=Decimal(size),
    )


class FakeOrderBooks:
    """Order-book source returning canned quotes."""

    def __init__(self, quotes: dict[str, BookQuote], *, fail: bool = False) -> None:
        """Store the canned quotes."""
        self.quotes = quotes
        self.fail = fail
        self.requests: list[list[str]] = []

    async def get_quotes(self, token_ids: list[str]) -> dict[str, BookQuote]:
        """Return quotes for the requested tokens."""
        self.requests.append(token_ids)
        if self.fail:
            msg = "books down"
            raise FeedUnavailable(msg)
        return {t: self.quotes[t] for t in token_ids if t in self.quotes}


@pytest.fixture
def pool() -> CandidatePool:
    """Create a pool with default thresholds."""
    return CandidatePool()


class TestIngest:
    """Tests for admission and refresh."""

    def test_adds_both_outcomes(self, pool: CandidatePool) -> None:
        """Admit every tradable outcome of a qualifying market."""
        assert pool.ingest([_snapshot()], _NOW) == 2
        assert "m1_Yes" in pool
        assert "m1_No" in pool
        assert len(pool) == 2

    @pytest.mark.parametrize(
        "snapshot",
        [
            _snapshot(volume=79999),
            _snapshot(liquidity=99),
            _snapshot(hours_to_end=2),
            _snapshot(active=False),
        ],
    )
    def test_rejects_unqualified_markets(
        self, pool: CandidatePool, snapshot: MarketSnapshot
    ) -> None:
        """Reject markets failing the volume, liquidity, end-time or activity filter."""
        assert pool.ingest([snapshot], _NOW) == 0
        assert len(pool) == 0

    def test_skips_extreme_prices(self, pool: CandidatePool) -> None:
        """Skip outcomes priced at or beyond the tradable band."""
        pool.ingest([_snapshot(yes="0.99")], _NOW)
        assert len(pool) == 0
        pool.ingest([_snapshot(yes="0.985")], _NOW)
        assert [c.outcome_name for c in pool.all()] == ["Yes", "No"]

    def test_refresh_updates_trend(self, pool: CandidatePool) -> None:
        """Refresh the price and trend while keeping the original add time."""
        pool.ingest([_snapshot(yes="0.30")], _NOW)
        assert pool.ingest([_snapshot(yes="0.35", now=_NOW + 600)], _NOW + 600) == 0
        cand = pool.get("m1", "Yes")
        assert cand is not None
        assert cand.latest_price == Decimal("0.35")
        assert cand.trend_strength == Decimal("0.05")
        assert cand.add_time == _NOW
        assert cand.last_update_time == _NOW + 600

    def test_drops_market_that_stops_qualifying(self, pool: CandidatePool) -> None:
        """Remove candidates once their market no longer qualifies."""
        pool.ingest([_snapshot()], _NOW)
        pool.ingest([_snapshot(active=False)], _NOW + 60)
        assert len(pool) == 0

    def test_cap_evicts_oldest(self) -> None:
        """Evict the oldest candidates when the cap is exceeded."""
        pool = CandidatePool(max_candidates=2)
        pool.ingest([_snapshot("old")], _NOW)
        pool.ingest([_snapshot("new", now=_NOW + 60)], _NOW + 60)
        assert {c.market_id for c in pool.all()} == {"new"}


class TestExpiry:
    """Tests for candidate expiry."""

    def test_expires_after_window(self, pool: CandidatePool) -> None:
        """Remove candidates not refreshed for more than an hour."""
        pool.ingest([_snapshot()], _NOW)
        assert pool.expire(_NOW + 60 * _MINUTE) == 0
        assert pool.expire(_NOW + 61 * _MINUTE) == 2
        assert len(pool) == 0

    def test_valid_for_excludes_stale_and_traded(self, pool: CandidatePool) -> None:
        """Exclude traded markets and stale candidates."""
        pool.ingest([_snapshot("a"), _snapshot("b")], _NOW)
        valid = pool.valid_for(["a"], _NOW)
        assert {c.market_id for c in valid} == {"b"}
        assert pool.valid_for([], _NOW + 61 * _MINUTE) == []


class TestQueries:
    """Tests for lookup helpers."""

    def test_by_price_range(self, pool: CandidatePool) -> None:
        """Filter valid candidates by an inclusive price range."""
        pool.ingest([_snapshot(yes="0.10")], _NOW)
        result = pool.by_price_range(Decimal("0.05"), Decimal("0.10"), _NOW)
        assert [c.outcome_name for c in result] == ["Yes"]

    def test_update_prices(self, pool: CandidatePool) -> None:
        """Update matching candidates only."""
        pool.ingest([_snapshot()], _NOW)
        updated = pool.update_prices({"m1": {"Yes": Decimal("0.4")}, "zz": {}}, _NOW + 5)
        assert updated == 1
        cand = pool.get("m1")
        assert cand is not None
        assert cand.latest_price == Decimal("0.4")

    def test_remove_and_clear(self, pool: CandidatePool) -> None:
        """Remove single candidates and clear the pool."""
        pool.ingest([_snapshot()], _NOW)
        assert pool.remove("m1", "Yes")
        assert not pool.remove("m1", "Yes")
        pool.clear()
        assert len(pool) == 0
        assert pool.statistics(_NOW).last_update_time is None

    def test_token_ids_and_statistics(self, pool: CandidatePool) -> None:
        """Report distinct token ids and pool statistics."""
        pool.ingest([_snapshot()], _NOW)
        assert pool.token_ids() == ["m1-yes", "m1-no"]
        stats = pool.statistics(_NOW)
        assert stats.total_candidates == 2
        assert stats.valid_candidates == 2
        assert stats.quoted_candidates == 0
        assert stats.last_update_time == _NOW


class TestRevalidateLiquidity:
    """Tests for order-book revalidation."""

    @pytest.mark.asyncio
    async def test_keeps_liquid_candidates(self, pool: CandidatePool) -> None:
        """Keep candidates with a tight, deep book and cache the quote."""
        pool.ingest([_snapshot()], _NOW)
        books = FakeOrderBooks({"m1-yes": _quote("m1-yes"), "m1-no": _quote("m1-no")})
        assert await pool.revalidate_liquidity(books) == 0
        cand = pool.get("m1", "Yes")
        assert cand is not None
        assert pool.quote_for(cand).token_id == "m1-yes"

    @pytest.mark.asyncio
    async def test_drops_wide_thin_and_unknown(self, pool: CandidatePool) -> None:
        """Drop candidates with a wide spread, thin book, or unknown book."""
        pool.ingest([_snapshot("wide"), _snapshot("thin"), _snapshot("gone")], _NOW)
        books = FakeOrderBooks(
            {
                "wide-yes": _quote("wide-yes", bid="0.20", ask="0.30"),
                "wide-no": _quote("wide-no"),
                "thin-yes": _quote("thin-yes", size=99),
                "thin-no": _quote("thin-no"),
            }
        )
        removed = await pool.revalidate_liquidity(books)
        assert removed == 4
        assert {c.key for c in pool.all()} == {"wide_No", "thin_No"}

    @pytest.mark.asyncio
    async def test_batches_requests(self, pool: CandidatePool) -> None:
        """Request token ids in batches."""
        pool.ingest([_snapshot("a"), _snapshot("b")], _NOW)
        books = FakeOrderBooks({})
        await pool.revalidate_liquidity(books, batch_size=3)
        assert [len(r) for r in books.requests] == [3, 1]

    @pytest.mark.asyncio
    async def test_feed_failure_drops_batch(self, pool: CandidatePool) -> None:
        """Treat a failed batch as unknown liquidity."""
        pool.ingest([_snapshot()], _NOW)
        removed = await pool.revalidate_liquidity(FakeOrderBooks({}, fail=True))
        assert removed == 2
        assert len(pool) == 0

    @pytest.mark.asyncio
    async def test_drops_candidates_without_tokens(self, pool: CandidatePool) -> None:
        """Drop candidates whose token id is unknown."""
        pool.ingest([_snapshot(with_tokens=False)], _NOW)
        assert await pool.revalidate_liquidity(FakeOrderBooks({})) == 2

    def test_quote_for_unknown(self, pool: CandidatePool) -> None:
        """Raise LiquidityUnknown when no quote is cached."""
        pool.ingest([_snapshot()], _NOW)
        cand = pool.get("m1", "Yes")
        assert cand is not None
        with pytest.raises(LiquidityUnknown):
            pool.quote_for(cand)
