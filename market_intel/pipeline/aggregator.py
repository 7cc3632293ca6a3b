"""NewsAggregator — merge per-source headlines into one bounded, ordered list.

Steps, in order:
  1. Concatenate in source-priority order (the order results are passed in).
  2. Clean text: strip markup, collapse whitespace, cap at ``max_chars``.
  3. Drop empty titles and duplicates (first occurrence wins).
  4. DAILY keeps same-day items only (UTC calendar date); undated items are kept.
     WEEKLY keeps everything.
  5. Truncate to ``max_items``.
"""

from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Sequence

from market_intel.core.logger import logger
from market_intel.core.text_utils import clean_text, dedup_key
from market_intel.models.datatypes import HeadlineItem, Mode

MAX_ITEMS = 5
MAX_CHARS = 300


class NewsAggregator:

    def __init__(self, max_items: int = MAX_ITEMS, max_chars: int = MAX_CHARS) -> None:
        self.max_items = max_items
        self.max_chars = max_chars

    def aggregate(
        self,
        all_source_results: Iterable[Sequence[HeadlineItem]],
        mode: Mode,
        today: Optional[date] = None,
    ) -> List[HeadlineItem]:
        """Return at most ``max_items`` cleaned headlines; never raises on empty input.

        Args:
            all_source_results: One sequence of items per source, highest priority first.
            mode: DAILY filters to ``today``; WEEKLY keeps all.
            today: Reference calendar date (UTC). Defaults to the current UTC date.
        """
        today = today or datetime.now(timezone.utc).date()
        seen = set()
        merged: List[HeadlineItem] = []

        for items in all_source_results:
            for item in items or ():
                title = clean_text(item.title, self.max_chars)
                if not title:
                    continue
                key = dedup_key(title)
                if key in seen:
                    continue
                if mode is Mode.DAILY and not _is_same_day(item, today):
                    continue
                seen.add(key)
                merged.append(replace(
                    item,
                    title=title,
                    summary=clean_text(item.summary, self.max_chars),
                ))

        result = merged[: self.max_items]
        logger.info(f"NewsAggregator: {len(result)} headlines kept ({mode.value})")
        return result


def _is_same_day(item: HeadlineItem, today: date) -> bool:
    if item.published_at is None:
        return True
    published = item.published_at
    if published.tzinfo is not None:
        published = published.astimezone(timezone.utc)
    return published.date() == today
