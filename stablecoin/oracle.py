"""
oracle.py - Price feeds and the staleness-checking price oracle

Provides the pricing infrastructure the collateral engine values positions with.

Classes:
- RoundData: One answer of a price feed (aggregator round)
- PriceFeed: Protocol defining the feed interface
- StaticPriceFeed: Feed whose answer is set explicitly (mock aggregator)
- TimeSeriesPriceFeed: Feed that replays a price path against a clock
- PriceOracle: Resolves feed ids to wad prices, rejecting unusable readings

All answers are USD per whole token, quoted with the feed's decimals. The
oracle normalizes them to the 18-decimal fixed-point scale.
"""

from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

from .core import FEED_DECIMALS, ORACLE_TIMEOUT, StaleOrInvalidPrice
from .health import normalize_price


class Clock(Protocol):
    """Anything with a logical current_time (the host Ledger is one)."""

    @property
    def current_time(self) -> datetime:
        ...


@dataclass(frozen=True, slots=True)
class RoundData:
    """
    One price-feed round.

    Attributes:
        round_id: Monotonic round identifier.
        answer: Price in USD scaled by the feed's decimals.
        started_at: When the round started.
        updated_at: When the answer was written (None: never updated).
        answered_in_round: Round in which the answer was computed.
    """
    round_id: int
    answer: int
    started_at: Optional[datetime]
    updated_at: Optional[datetime]
    answered_in_round: int


@runtime_checkable
class PriceFeed(Protocol):
    """Protocol for price feeds."""
    decimals: int

    def latest_round_data(self) -> RoundData:
        """Return the most recent round."""
        ...


class StaticPriceFeed:
    """
    Price feed whose answer only changes through update_answer().

    Each update opens a new round stamped with the clock's current time,
    so a feed nobody updates eventually goes stale.
    """

    def __init__(self, clock: Clock, answer: int, decimals: int = FEED_DECIMALS):
        """
        Initialize with a first answer.

        Args:
            clock: Source of the timestamp written with each answer
            answer: Initial price scaled by decimals (e.g., 2000 * 10**8)
            decimals: Decimals of the answer
        """
        self.clock = clock
        self.decimals = decimals
        self.round_id = 0
        self.answer = 0
        self.started_at: Optional[datetime] = None
        self.updated_at: Optional[datetime] = None
        self.update_answer(answer)

    def update_answer(self, answer: int) -> None:
        """Publish a new answer in a new round."""
        self.round_id += 1
        self.answer = answer
        self.started_at = self.clock.current_time
        self.updated_at = self.clock.current_time

    def latest_round_data(self) -> RoundData:
        return RoundData(
            round_id=self.round_id,
            answer=self.answer,
            started_at=self.started_at,
            updated_at=self.updated_at,
            answered_in_round=self.round_id,
        )

    def __repr__(self):
        return f"StaticPriceFeed(answer={self.answer}, round={self.round_id}, decimals={self.decimals})"


class TimeSeriesPriceFeed:
    """
    Price feed with time-varying answers.

    Stores a price path and answers with the most recent observation at or
    before the clock's current time. Each observation is one round.

    Supports two initialization patterns:
    - Empty initialization for incremental addition via add_price()
    - Batch initialization with a complete price path for simulations
    """

    def __init__(
        self,
        clock: Clock,
        price_path: Optional[List[Tuple[datetime, int]]] = None,
        decimals: int = FEED_DECIMALS,
    ):
        """
        Initialize price feed.

        Args:
            clock: Source of the current time
            price_path: Optional list of (timestamp, answer) tuples
            decimals: Decimals of the answers

        Examples:
            feed = TimeSeriesPriceFeed(ledger, [
                (t0, 2000 * 10**8),
                (t1, 1800 * 10**8),
            ])
        """
        self.clock = clock
        self.decimals = decimals
        self.history: List[Tuple[datetime, int]] = sorted(price_path or [], key=lambda x: x[0])

    def add_price(self, timestamp: datetime, answer: int) -> None:
        """Add an observation, keeping the path in chronological order."""
        self.history.append((timestamp, answer))
        self.history.sort(key=lambda x: x[0])

    def latest_round_data(self) -> RoundData:
        """
        Round for the latest observation at or before the current time.

        Uses binary search for O(log n) lookup. Before the first observation
        the round has never been updated.
        """
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, self.clock.current_time)
        if idx == 0:
            return RoundData(0, 0, None, None, 0)
        ts, answer = self.history[idx - 1]
        return RoundData(
            round_id=idx,
            answer=answer,
            started_at=ts,
            updated_at=ts,
            answered_in_round=idx,
        )

    def __repr__(self):
        return f"TimeSeriesPriceFeed({len(self.history)} observations, decimals={self.decimals})"


class PriceOracle:
    """
    Resolves price-feed ids to USD prices on the 18-decimal scale.

    A reading is unusable, and StaleOrInvalidPrice is raised, when:
    - the feed id is unknown
    - the round was never updated
    - the answer was computed in an earlier round than the current one
    - the answer is older than timeout
    - the answer is zero or negative

    Callers must treat the error as fatal: there is no fallback price.
    """

    def __init__(
        self,
        feeds: Dict[str, PriceFeed],
        clock: Clock,
        timeout: timedelta = ORACLE_TIMEOUT,
    ):
        self.feeds = dict(feeds)
        self.clock = clock
        self.timeout = timeout

    def add_feed(self, feed_id: str, feed: PriceFeed) -> None:
        if feed_id in self.feeds:
            raise ValueError(f"Feed {feed_id} already registered")
        self.feeds[feed_id] = feed

    def stale_check_latest_round_data(self, feed_id: str) -> RoundData:
        """Return the latest round of a feed after checking it is fresh."""
        feed = self.feeds.get(feed_id)
        if feed is None:
            raise StaleOrInvalidPrice(f"Unknown price feed {feed_id!r}")

        data = feed.latest_round_data()
        if data.updated_at is None:
            raise StaleOrInvalidPrice(f"{feed_id}: round {data.round_id} never updated")
        if data.answered_in_round < data.round_id:
            raise StaleOrInvalidPrice(
                f"{feed_id}: answered in round {data.answered_in_round} < {data.round_id}"
            )
        age = self.clock.current_time - data.updated_at
        if age > self.timeout:
            raise StaleOrInvalidPrice(f"{feed_id}: price is {age} old (timeout {self.timeout})")
        if data.answer <= 0:
            raise StaleOrInvalidPrice(f"{feed_id}: invalid answer {data.answer}")
        return data

    def latest_price(self, feed_id: str) -> Tuple[int, datetime]:
        """
        Latest usable price of a feed.

        Returns:
            Tuple of (USD price per whole token scaled to 1e18, updated_at)
        """
        data = self.stale_check_latest_round_data(feed_id)
        return normalize_price(data.answer, self.feeds[feed_id].decimals), data.updated_at

    def __repr__(self):
        return f"PriceOracle({len(self.feeds)} feeds, timeout={self.timeout})"
