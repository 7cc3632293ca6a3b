"""Abstract base classes for external collaborators."""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from market_intel.models.datatypes import HeadlineItem, MarketSeries, Mode, SourceName


class HeadlineSource(ABC):
    """Abstract interface for one external news endpoint."""

    name: SourceName

    @abstractmethod
    def fetch(self, mode: Mode) -> List[HeadlineItem]:
        """
        Fetch the latest headlines from this source.

        Args:
            mode (Mode): Report mode; sources may use it to widen their window.

        Returns:
            List[HeadlineItem]: Cleaned items in the source's own order.

        Raises:
            SourceError: On any transport or parse failure.
        """
        pass


class MarketDataProvider(ABC):
    """Abstract interface for fetching candle data for the charted instrument."""

    @abstractmethod
    def fetch_series(self, symbol: str, mode: Mode) -> Optional[MarketSeries]:
        """
        Fetch OHLC candles for a symbol over the window implied by ``mode``.

        Returns:
            Optional[MarketSeries]: The series, or ``None`` when no data came back.
        """
        pass


class TextGenerator(ABC):
    """Abstract interface for an AI text-generation provider/model pair."""

    identifier: str

    @abstractmethod
    def generate(self, prompt: str, timeout: float) -> str:
        """
        Send a prompt and return the generated text.

        Args:
            prompt (str): The full prompt.
            timeout (float): Seconds before the call is abandoned.

        Returns:
            str: Non-empty generated text.

        Raises:
            ProviderError: On error responses, timeouts, or empty output.
        """
        pass


class BrowserLaunchStrategy(ABC):
    """Abstract interface for acquiring a browser from a Playwright handle."""

    name: str

    @abstractmethod
    def launch(self, playwright: Any, timeout_ms: int) -> Any:
        """
        Start or connect to a Chromium browser.

        Args:
            playwright: The object yielded by ``sync_playwright()``.
            timeout_ms (int): Launch/connect timeout in milliseconds.

        Returns:
            A Playwright ``Browser``; the caller owns closing it.
        """
        pass
