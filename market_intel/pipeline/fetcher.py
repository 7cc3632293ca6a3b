"""SourceFetcher — concurrent, isolated fetch of every headline source plus candles.

All sources and the candle provider are dispatched together on a thread pool
and joined against one deadline. A source that raises or misses the deadline
contributes an empty list; siblings are never affected.
"""

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from market_intel.core.errors import SourceError
from market_intel.core.logger import logger
from market_intel.models.datatypes import HeadlineItem, MarketSeries, Mode, SourceName
from market_intel.providers.base import HeadlineSource, MarketDataProvider

_POLL_SECONDS = 0.1


@dataclass
class FetchResult:
    """Per-source results in configured priority order, plus optional candles."""
    by_source: List[Tuple[SourceName, List[HeadlineItem]]] = field(default_factory=list)
    market_series: Optional[MarketSeries] = None
    failed_sources: List[str] = field(default_factory=list)


class SourceFetcher:
    """Fetch all configured sources concurrently.

    Args:
        sources: Adapters in priority order.
        market: Candle provider, or ``None`` to skip candle data.
        market_symbol: Symbol passed to ``market.fetch_series``.
        timeout_seconds: Deadline for the whole fan-out; anything still
            running afterwards counts as failed.
    """

    def __init__(
        self,
        sources: List[HeadlineSource],
        market: Optional[MarketDataProvider] = None,
        market_symbol: str = "GC=F",
        timeout_seconds: float = 15,
    ) -> None:
        self.sources = list(sources)
        self.market = market
        self.market_symbol = market_symbol
        self.timeout_seconds = timeout_seconds

    # ── public ────────────────────────────────────────────────────────────────

    def fetch(self, source: HeadlineSource, mode: Mode) -> List[HeadlineItem]:
        """Fetch one source; any failure is logged and yields an empty list."""
        try:
            return list(source.fetch(mode))
        except SourceError as exc:
            logger.warning(f"SourceFetcher: {exc}, contributing no items")
        except Exception as exc:
            logger.error(f"SourceFetcher: {source.name.value} raised unexpectedly: {exc}")
        return []

    def fetch_all(self, mode: Mode, cancel: Optional[threading.Event] = None) -> FetchResult:
        """Dispatch every source (and the candle fetch) and join them.

        The join ends at the deadline or as soon as ``cancel`` is set;
        unfinished sources then count as failed.

        Returns:
            FetchResult with one entry per source, in configured order.
        """
        result = FetchResult()
        if not self.sources and self.market is None:
            return result

        executor = ThreadPoolExecutor(
            max_workers=len(self.sources) + 1,
            thread_name_prefix="source-fetch",
        )
        try:
            futures: Dict[Future, HeadlineSource] = {
                executor.submit(self.fetch, source, mode): source
                for source in self.sources
            }
            market_future = (
                executor.submit(self._fetch_market, mode) if self.market is not None else None
            )
            pending = list(futures) + ([market_future] if market_future else [])
            done = _wait_for(pending, self.timeout_seconds, cancel)

            for future, source in futures.items():
                if future in done:
                    items = future.result()
                else:
                    logger.warning(
                        f"SourceFetcher: {source.name.value} did not finish, contributing no items"
                    )
                    items = []
                if not items:
                    result.failed_sources.append(source.name.value)
                result.by_source.append((source.name, items))

            if market_future is not None:
                if market_future in done:
                    result.market_series = market_future.result()
                else:
                    logger.warning("SourceFetcher: candle fetch did not finish")
        finally:
            # Stragglers finish on their own request timeouts; nobody waits for them.
            executor.shutdown(wait=False, cancel_futures=True)

        total = sum(len(items) for _, items in result.by_source)
        logger.info(
            f"SourceFetcher: {total} items from {len(self.sources)} sources "
            f"(empty/failed: {result.failed_sources or 'none'})"
        )
        return result

    # ── internal ──────────────────────────────────────────────────────────────

    def _fetch_market(self, mode: Mode) -> Optional[MarketSeries]:
        try:
            return self.market.fetch_series(self.market_symbol, mode)
        except Exception as exc:
            logger.warning(f"SourceFetcher: candle fetch for {self.market_symbol} failed: {exc}")
            return None


def _wait_for(
    futures: Iterable[Future],
    timeout: float,
    cancel: Optional[threading.Event] = None,
) -> Set[Future]:
    """Wait until all ``futures`` finish, ``timeout`` elapses or ``cancel`` is set.

    Returns:
        The futures that finished.
    """
    pending = set(futures)
    done: Set[Future] = set()
    deadline = time.monotonic() + timeout
    while pending and not (cancel is not None and cancel.is_set()):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        finished, pending = wait(pending, timeout=min(remaining, _POLL_SECONDS), return_when=FIRST_COMPLETED)
        done |= finished
    if cancel is not None and cancel.is_set() and pending:
        logger.warning(f"SourceFetcher: run cancelled with {len(pending)} fetch(es) in flight")
    return done
