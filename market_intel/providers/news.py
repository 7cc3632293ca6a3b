"""Headline source adapters and the source factory.

Two adapter kinds:
  1. FeedSource   — RSS/Atom endpoint, downloaded with ``requests`` and parsed
                    with ``feedparser``. Items carry a publication date.
  2. ScrapeSource — HTML news page, downloaded with ``requests`` and parsed
                    with ``lxml.html``; titles are selected by XPath. Items are
                    undated (the page lists only the latest stories).

Both raise ``SourceError`` on any failure; isolation from sibling sources is
the fetcher's job, not theirs.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser
import lxml.html
import requests
from lxml.etree import LxmlError

from market_intel.core.errors import SourceError
from market_intel.core.logger import logger
from market_intel.core.retry import with_retries
from market_intel.core.text_utils import clean_text
from market_intel.models.datatypes import HeadlineItem, Mode, SourceName
from market_intel.providers.base import HeadlineSource

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
_MAX_SCRAPED = 20


class _HttpSource(HeadlineSource):
    """Shared download logic: one GET with an explicit timeout, retried once."""

    def __init__(
        self,
        name: SourceName,
        url: str,
        timeout: float = 15,
        summary_max_chars: int = 300,
    ) -> None:
        self.name = name
        self.url = url
        self.timeout = timeout
        self.summary_max_chars = summary_max_chars

    @with_retries(max_retries=1, initial_delay=1, retry_on=(requests.RequestException,))
    def _download(self) -> requests.Response:
        resp = requests.get(
            self.url,
            headers={"User-Agent": USER_AGENT},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp

    def _get(self) -> requests.Response:
        logger.info(f"{self.name.value}: fetching {self.url}")
        try:
            return self._download()
        except requests.RequestException as exc:
            raise SourceError(self.name.value, f"INFRA_FAILURE: {exc}") from exc


# ── FeedSource ────────────────────────────────────────────────────────────────

class FeedSource(_HttpSource):
    """RSS/Atom feed source (FXStreet, Investing.com)."""

    def fetch(self, mode: Mode) -> List[HeadlineItem]:
        resp = self._get()
        feed = feedparser.parse(resp.content)

        if feed.bozo and not feed.entries:
            raise SourceError(
                self.name.value,
                f"feed parse failure: {getattr(feed, 'bozo_exception', 'unknown')}",
            )
        if feed.bozo:
            logger.warning(
                f"{self.name.value}: feed parse warning: "
                f"{getattr(feed, 'bozo_exception', 'unknown')}"
            )

        items: List[HeadlineItem] = []
        for entry in feed.entries:
            title = clean_text(entry.get("title", ""))
            if not title:
                continue
            items.append(HeadlineItem(
                source=self.name,
                title=title,
                summary=clean_text(entry.get("summary", ""), self.summary_max_chars),
                published_at=_entry_datetime(entry),
            ))

        logger.info(f"{self.name.value}: {len(items)} entries")
        return items


# ── ScrapeSource ──────────────────────────────────────────────────────────────

class ScrapeSource(_HttpSource):
    """HTML page source (ForexFactory news) using an XPath title selector."""

    def __init__(
        self,
        name: SourceName,
        url: str,
        xpath: str,
        timeout: float = 15,
        summary_max_chars: int = 300,
    ) -> None:
        super().__init__(name, url, timeout, summary_max_chars)
        self.xpath = xpath

    def fetch(self, mode: Mode) -> List[HeadlineItem]:
        resp = self._get()
        try:
            doc = lxml.html.fromstring(resp.content)
            nodes = doc.xpath(self.xpath)
        except LxmlError as exc:
            raise SourceError(self.name.value, f"page parse failure: {exc}") from exc

        items: List[HeadlineItem] = []
        for node in nodes[:_MAX_SCRAPED]:
            text = node.text_content() if hasattr(node, "text_content") else str(node)
            title = clean_text(text)
            if title:
                items.append(HeadlineItem(source=self.name, title=title))

        logger.info(f"{self.name.value}: {len(items)} stories scraped")
        return items


# ── factory ───────────────────────────────────────────────────────────────────

def build_sources(
    source_configs: List[Dict[str, Any]],
    timeout: float = 15,
    summary_max_chars: int = 300,
) -> List[HeadlineSource]:
    """Instantiate source adapters in configured (priority) order.

    Args:
        source_configs: ``config["sources"]`` entries with ``name``, ``kind``,
            ``url`` and, for scrape sources, ``xpath``.
        timeout: Per-request timeout in seconds.
        summary_max_chars: Summary length cap passed to each adapter.

    Raises:
        ValueError: On an unknown source name or kind.
    """
    sources: List[HeadlineSource] = []
    for cfg in source_configs:
        name = SourceName(str(cfg["name"]).upper())
        kind = cfg.get("kind", "feed")
        if kind == "feed":
            sources.append(FeedSource(name, cfg["url"], timeout, summary_max_chars))
        elif kind == "scrape":
            sources.append(ScrapeSource(name, cfg["url"], cfg["xpath"], timeout, summary_max_chars))
        else:
            raise ValueError(f"Unknown source kind {kind!r} for {name.value}")
    return sources


def _entry_datetime(entry: Any) -> Optional[datetime]:
    """Return the entry's publication time as aware UTC, if feedparser found one."""
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime(*parsed[:6], tzinfo=timezone.utc)
