import threading
from datetime import datetime, timezone
from typing import List, Optional

import pytest

from market_intel.core.errors import ProviderError, SourceError
from market_intel.models.datatypes import HeadlineItem, MarketSeries, Mode, SourceName
from market_intel.providers.base import HeadlineSource, MarketDataProvider, TextGenerator


class StubSource(HeadlineSource):
    """Returns fixed items, raises, or blocks until released."""

    def __init__(self, name, items=None, error=None, block: Optional[threading.Event] = None):
        self.name = name
        self.items = list(items or [])
        self.error = error
        self.block = block
        self.calls = 0

    def fetch(self, mode: Mode) -> List[HeadlineItem]:
        self.calls += 1
        if self.block is not None:
            self.block.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return list(self.items)


class StubMarket(MarketDataProvider):
    def __init__(self, series: Optional[MarketSeries] = None, error=None):
        self.series = series
        self.error = error

    def fetch_series(self, symbol: str, mode: Mode) -> Optional[MarketSeries]:
        if self.error is not None:
            raise self.error
        return self.series


class FakeGenerator(TextGenerator):
    """Returns ``text`` or raises ``ProviderError`` when ``fail`` is set."""

    def __init__(self, identifier: str, text: str = "", fail: bool = False):
        self.identifier = identifier
        self.text = text
        self.fail = fail
        self.prompts: List[str] = []

    def generate(self, prompt: str, timeout: float) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise ProviderError(self.identifier, "HTTP 503")
        return self.text


@pytest.fixture
def make_item():
    def _make(title, source=SourceName.FXSTREET, summary="", published_at=None):
        return HeadlineItem(source=source, title=title, summary=summary, published_at=published_at)
    return _make


@pytest.fixture
def today():
    return datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def stub_source():
    return StubSource


@pytest.fixture
def stub_market():
    return StubMarket


@pytest.fixture
def fake_generator():
    return FakeGenerator


@pytest.fixture
def source_error():
    def _make(name: SourceName):
        return SourceError(name.value, "HTTP 403")
    return _make


@pytest.fixture(autouse=True)
def _no_retry_sleep(monkeypatch):
    monkeypatch.setattr("market_intel.core.retry.sleep", lambda seconds: None)
