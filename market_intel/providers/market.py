"""Candle data for the charted instrument via yfinance."""

from typing import Dict, Optional

import pandas as pd
import yfinance as yf

from market_intel.core.logger import logger
from market_intel.core.retry import with_retries
from market_intel.models.datatypes import CandleFrame, MarketSeries, Mode
from market_intel.providers.base import MarketDataProvider

_DEFAULT_WINDOWS: Dict[str, Dict[str, str]] = {
    Mode.DAILY.value: {"period": "1d", "interval": "15m"},
    Mode.WEEKLY.value: {"period": "5d", "interval": "1h"},
}


class YFinanceProvider(MarketDataProvider):
    """Yahoo Finance implementation for intraday candle data."""

    def __init__(self, windows: Optional[Dict[str, Dict[str, str]]] = None) -> None:
        """
        Args:
            windows: ``{"daily": {"period", "interval"}, "weekly": {...}}``
                overriding the default lookback per mode.
        """
        self.windows = {**_DEFAULT_WINDOWS, **(windows or {})}

    @with_retries(max_retries=1, initial_delay=2)
    def fetch_series(self, symbol: str, mode: Mode) -> Optional[MarketSeries]:
        """
        Fetch OHLC candles for ``symbol`` over the window configured for ``mode``.

        Args:
            symbol (str): The Yahoo ticker (e.g. ``GC=F`` for gold futures).
            mode (Mode): DAILY uses intraday candles, WEEKLY hourly ones.

        Returns:
            Optional[MarketSeries]: Ordered candles, or ``None`` if Yahoo returned nothing.
        """
        window = self.windows[mode.value]
        logger.info(
            f"Fetching candles for {symbol} "
            f"(period={window['period']}, interval={window['interval']})"
        )

        hist = yf.Ticker(symbol).history(period=window["period"], interval=window["interval"])

        if hist is None or hist.empty:
            logger.warning(f"No candle data returned for {symbol}")
            return None

        return frame_to_series(hist)


def frame_to_series(hist: pd.DataFrame) -> Optional[MarketSeries]:
    """Convert a yfinance history frame (DatetimeIndex + OHLC columns) to a MarketSeries.

    Rows with any missing OHLC value are dropped; the index is sorted so the
    first frame is the oldest.
    """
    ohlc = hist[["Open", "High", "Low", "Close"]].apply(pd.to_numeric, errors="coerce").dropna()
    if ohlc.empty:
        return None
    ohlc = ohlc.sort_index()

    index = pd.to_datetime(ohlc.index)
    if index.tz is None:
        index = index.tz_localize("UTC")
    # epoch milliseconds, independent of the index's storage resolution
    epoch = pd.Timestamp("1970-01-01", tz="UTC")
    stamps = ((index.tz_convert("UTC") - epoch) // pd.Timedelta(milliseconds=1)).tolist()

    frames = tuple(
        CandleFrame(
            timestamp=int(ts),
            open=round(float(row.Open), 4),
            high=round(float(row.High), 4),
            low=round(float(row.Low), 4),
            close=round(float(row.Close), 4),
        )
        for ts, row in zip(stamps, ohlc.itertuples(index=False))
    )
    return MarketSeries(frames=frames)
