"""Pool of market outcomes currently eligible for strategy evaluation.

The pool is refreshed from market snapshots on every tick, expires entries
that stop being refreshed, and optionally drops entries whose order book is
too thin or too wide. Strategies only ever see ``valid_for`` output.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from pm_lifecycle.apps.lifecycle.exceptions import FeedUnavailable, LiquidityUnknown
from pm_lifecycle.apps.lifecycle.models import (
    BookQuote,
    Candidate,
    MarketSnapshot,
    candidate_key,
)
from pm_lifecycle.core.models import SECONDS_PER_MINUTE

logger = logging.getLogger(__name__)

MIN_TRADABLE_PRICE = Decimal("0.01")
MAX_TRADABLE_PRICE = Decimal("0.99")

_DEFAULT_EXPIRE_MINUTES = 60
_DEFAULT_MIN_LIQUIDITY = Decimal(100)
_DEFAULT_MIN_VOLUME = Decimal(80000)
_DEFAULT_MAX_SPREAD = Decimal("0.025")
_DEFAULT_MIN_HOURS_TO_END = Decimal(2)
_DEFAULT_BATCH_SIZE = 10


class OrderBookSource(Protocol):
    """Collaborator that returns top-of-book quotes for outcome tokens."""

    async def get_quotes(self, token_ids: list[str]) -> dict[str, BookQuote]:
        """Return a quote per token id; absent ids mean the book is unknown.

        Raises:
            FeedUnavailable: If the whole request failed.

        """
        ...


@dataclass(frozen=True)
class PoolStatistics:
    """Summary of the candidate pool at one instant."""

    total_candidates: int
    valid_candidates: int
    quoted_candidates: int
    last_update_time: int | None


def _tradable(price: Decimal) -> bool:
    """Return whether ``price`` lies strictly inside the tradable band."""
    return MIN_TRADABLE_PRICE < price < MAX_TRADABLE_PRICE


class CandidatePool:
    """Maintain candidates keyed by ``(market_id, outcome)``.

    Args:
        expire_minutes: Minutes without a refresh after which a candidate expires.
        min_liquidity: Minimum market liquidity for admission, and minimum
            best-level depth on both sides of the book for revalidation.
        min_volume: Minimum 24h volume for admission.
        max_spread: Maximum best bid/ask spread for revalidation.
        min_hours_to_end: Markets must resolve more than this many hours
            after ``now`` to be admitted.
        max_candidates: Optional cap on the pool size; the oldest
            candidates by ``add_time`` are evicted first.

    """

    def __init__(  # noqa: PLR0913
        self,
        expire_minutes: int = _DEFAULT_EXPIRE_MINUTES,
        min_liquidity: Decimal = _DEFAULT_MIN_LIQUIDITY,
        min_volume: Decimal = _DEFAULT_MIN_VOLUME,
        max_spread: Decimal = _DEFAULT_MAX_SPREAD,
        min_hours_to_end: Decimal = _DEFAULT_MIN_HOURS_TO_END,
        max_candidates: int | None = None,
    ) -> None:
        """Initialize an empty pool."""
        self._expire_seconds = expire_minutes * SECONDS_PER_MINUTE
        self._min_liquidity = min_liquidity
        self._min_volume = min_volume
        self._max_spread = max_spread
        self._min_hours_to_end = min_hours_to_end
        self._max_candidates = max_candidates
        self._candidates: dict[str, Candidate] = {}
        self._quotes: dict[str, BookQuote] = {}
        self._last_update_time: int | None = None

    def __len__(self) -> int:
        """Return the number of candidates in the pool."""
        return len(self._candidates)

    def __contains__(self, key: object) -> bool:
        """Return whether a candidate with ``key`` is in the pool."""
        return key in self._candidates

    def _admissible(self, snapshot: MarketSnapshot, now: int) -> bool:
        """Apply the market-level admission filter."""
        return (
            snapshot.active
            and snapshot.is_binary
            and snapshot.hours_until_end(now) > self._min_hours_to_end
            and snapshot.volume_24h >= self._min_volume
            and snapshot.liquidity >= self._min_liquidity
        )

    def ingest(self, snapshots: Iterable[MarketSnapshot], now: int) -> int:
        """Insert or refresh candidates from a batch of snapshots.

        Every outcome of an admissible market whose price lies strictly
        between 0.01 and 0.99 becomes (or refreshes) a candidate. Existing
        candidates whose market is no longer admissible are removed.

        Args:
            snapshots: Latest snapshot per market.
            now: Current time (epoch seconds).

        Returns:
            Number of newly added candidates.

        """
        added = 0
        for snapshot in snapshots:
            if not self._admissible(snapshot, now):
                self._drop_market(snapshot.market_id)
                continue
            for outcome, price in zip(snapshot.outcomes, snapshot.outcome_prices, strict=True):
                key = candidate_key(snapshot.market_id, outcome)
                existing = self._candidates.get(key)
                if not _tradable(price):
                    if existing is not None:
                        del self._candidates[key]
                        self._quotes.pop(key, None)
                    continue
                if existing is None:
                    self._candidates[key] = Candidate(
                        market=snapshot,
                        outcome_name=outcome,
                        probability=price,
                        trend_strength=Decimal(0),
                        add_time=now,
                        last_update_time=now,
                        latest_price=price,
                    )
                    added += 1
                else:
                    existing.market = snapshot
                    existing.latest_price = price
                    existing.trend_strength = price - existing.probability
                    existing.last_update_time = now
        self._enforce_cap()
        self._last_update_time = now
        if added:
            logger.info("Candidate pool: added %d, total %d", added, len(self._candidates))
        return added

    def _drop_market(self, market_id: str) -> None:
        """Remove every candidate belonging to ``market_id``."""
        for key in [k for k, c in self._candidates.items() if c.market_id == market_id]:
            del self._candidates[key]
            self._quotes.pop(key, None)

    def _enforce_cap(self) -> None:
        """Evict the oldest candidates while the pool exceeds its cap."""
        if self._max_candidates is None:
            return
        excess = len(self._candidates) - self._max_candidates
        if excess <= 0:
            return
        oldest = sorted(self._candidates.values(), key=lambda c: c.add_time)[:excess]
        for cand in oldest:
            del self._candidates[cand.key]
            self._quotes.pop(cand.key, None)
        logger.info("Candidate pool: evicted %d oldest candidates", excess)

    def expire(self, now: int) -> int:
        """Remove candidates not refreshed within the expiry window.

        Returns:
            Number of candidates removed.

        """
        stale = [
            key
            for key, cand in self._candidates.items()
            if now - cand.last_update_time > self._expire_seconds
        ]
        for key in stale:
            del self._candidates[key]
            self._quotes.pop(key, None)
        if stale:
            logger.info("Candidate pool: expired %d candidates", len(stale))
        return len(stale)

    def is_valid_quote(self, quote: BookQuote) -> bool:
        """Return whether a quote has an acceptable spread and depth."""
        return (
            Decimal(0) <= quote.spread <= self._max_spread
            and quote.bid_size >= self._min_liquidity
            and quote.ask_size >= self._min_liquidity
        )

    async def revalidate_liquidity(
        self,
        source: OrderBookSource,
        batch_size: int = _DEFAULT_BATCH_SIZE,
    ) -> int:
        """Drop candidates whose order book is unknown, too wide, or too thin.

        Token ids are requested in batches of ``batch_size``. A failed batch
        marks all of its candidates unknown; unknown candidates are dropped
        with a warning. Surviving quotes are cached for ``quote_for``.

        Args:
            source: Order-book collaborator.
            batch_size: Token ids per request.

        Returns:
            Number of candidates removed.

        """
        by_token: dict[str, list[str]] = {}
        removed = 0
        for key, cand in list(self._candidates.items()):
            token_id = cand.token_id
            if token_id is None:
                logger.warning("No token id for candidate %s, dropping", key)
                del self._candidates[key]
                removed += 1
                continue
            by_token.setdefault(token_id, []).append(key)

        token_ids = list(by_token)
        quotes: dict[str, BookQuote] = {}
        for start in range(0, len(token_ids), batch_size):
            batch = token_ids[start : start + batch_size]
            try:
                quotes.update(await source.get_quotes(batch))
            except FeedUnavailable:
                logger.warning(
                    "Order book lookup failed for %d tokens", len(batch), exc_info=True
                )

        self._quotes.clear()
        for token_id, keys in by_token.items():
            quote = quotes.get(token_id)
            for key in keys:
                if quote is None:
                    logger.warning("Order book unknown for candidate %s, dropping", key)
                elif not self.is_valid_quote(quote):
                    logger.info(
                        "Dropping illiquid candidate %s (spread %s, bid %s, ask %s)",
                        key,
                        quote.spread,
                        quote.bid_size,
                        quote.ask_size,
                    )
                else:
                    self._quotes[key] = quote
                    continue
                del self._candidates[key]
                removed += 1
        logger.info(
            "Liquidity check complete: %d valid, %d removed", len(self._candidates), removed
        )
        return removed

    def quote_for(self, candidate: Candidate) -> BookQuote:
        """Return the cached quote for ``candidate``.

        Raises:
            LiquidityUnknown: If no quote was cached by the last revalidation.

        """
        quote = self._quotes.get(candidate.key)
        if quote is None:
            raise LiquidityUnknown(candidate.token_id or candidate.key)
        return quote

    def valid_for(self, traded_market_ids: Iterable[str], now: int) -> list[Candidate]:
        """Return candidates that may be evaluated for entry.

        Excludes candidates of traded markets, expired candidates, inactive
        markets, and prices outside ``(0.01, 0.99)``. The order is not
        significant.
        """
        traded = set(traded_market_ids)
        return [
            cand
            for cand in self._candidates.values()
            if cand.market_id not in traded
            and now - cand.last_update_time <= self._expire_seconds
            and cand.market.active
            and _tradable(cand.latest_price)
        ]

    def by_price_range(
        self,
        min_price: Decimal,
        max_price: Decimal,
        now: int,
    ) -> list[Candidate]:
        """Return valid candidates whose latest price is within ``[min_price, max_price]``."""
        return [
            cand
            for cand in self.valid_for((), now)
            if min_price <= cand.latest_price <= max_price
        ]

    def update_prices(self, prices: Mapping[str, Mapping[str, Decimal]], now: int) -> int:
        """Refresh candidate prices from ``{market_id: {outcome: price}}``.

        Returns:
            Number of candidates updated.

        """
        updated = 0
        for cand in self._candidates.values():
            price = prices.get(cand.market_id, {}).get(cand.outcome_name)
            if price is None:
                continue
            cand.latest_price = price
            cand.trend_strength = price - cand.probability
            cand.last_update_time = now
            updated += 1
        return updated

    def get(self, market_id: str, outcome_name: str | None = None) -> Candidate | None:
        """Return a candidate by market and outcome, or the first for the market."""
        if outcome_name is not None:
            return self._candidates.get(candidate_key(market_id, outcome_name))
        for cand in self._candidates.values():
            if cand.market_id == market_id:
                return cand
        return None

    def remove(self, market_id: str, outcome_name: str) -> bool:
        """Remove a candidate; return whether it was present."""
        key = candidate_key(market_id, outcome_name)
        self._quotes.pop(key, None)
        if self._candidates.pop(key, None) is None:
            return False
        logger.info("Removed candidate %s", key)
        return True

    def all(self) -> list[Candidate]:
        """Return every candidate currently in the pool."""
        return list(self._candidates.values())

    def token_ids(self) -> list[str]:
        """Return the distinct token ids of all candidates."""
        seen: dict[str, None] = {}
        for cand in self._candidates.values():
            if cand.token_id is not None:
                seen[cand.token_id] = None
        return list(seen)

    def statistics(self, now: int) -> PoolStatistics:
        """Return a summary of the pool."""
        return PoolStatistics(
            total_candidates=len(self._candidates),
            valid_candidates=len(self.valid_for((), now)),
            quoted_candidates=len(self._quotes),
            last_update_time=self._last_update_time,
        )

    def clear(self) -> None:
        """Remove every candidate and cached quote."""
        self._candidates.clear()
        self._quotes.clear()
        self._last_update_time = None
        logger.info("Candidate pool cleared")
