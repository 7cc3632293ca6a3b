"""Data structures for the market intelligence report pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Mode(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class Sentiment(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class SourceName(str, Enum):
    """Known headline sources. Order here carries no meaning; priority comes from config."""
    FXSTREET = "FXSTREET"
    INVESTING = "INVESTING"
    FOREXFACTORY = "FOREXFACTORY"


@dataclass(frozen=True)
class HeadlineItem:
    """
    A cleaned headline from one source. ``summary`` is HTML-stripped and capped.
    ``published_at`` is timezone-aware UTC when the source provides a date.
    """
    source: SourceName
    title: str
    summary: str = ""
    published_at: Optional[datetime] = None


@dataclass(frozen=True)
class CandleFrame:
    timestamp: int  # epoch milliseconds
    open: float
    high: float
    low: float
    close: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
        }


@dataclass(frozen=True)
class MarketSeries:
    """Ordered candles for the charted instrument."""
    frames: Tuple[CandleFrame, ...]

    @property
    def is_bullish(self) -> bool:
        if not self.frames:
            return False
        return self.frames[-1].close > self.frames[0].open

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frames": [frame.to_dict() for frame in self.frames],
            "isBullish": self.is_bullish,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketSeries":
        return cls(frames=tuple(CandleFrame(**frame) for frame in data.get("frames", [])))


@dataclass(frozen=True)
class AnalysisResult:
    """
    Sentiment and summary produced by one provider attempt, or by the
    deterministic fallback when every provider failed (``is_fallback``).
    """
    sentiment: Sentiment
    probability: int
    summary: str
    provider: Optional[str] = None
    is_fallback: bool = False


@dataclass(frozen=True)
class ReportRecord:
    """
    Represents one assembled report. Immutable; owned by the history store
    once appended. Serialises with the camelCase keys of the history log.
    """
    id: int
    created_at: str  # ISO 8601, UTC
    date: str        # human-readable local time, for display
    mode: Mode
    chart_image: str  # data URI of the captured PNG, or the placeholder reference
    headline: str
    script: str
    market_series: Optional[MarketSeries] = None
    sentiment: Optional[Sentiment] = None
    probability: Optional[int] = None
    source_log: str = ""
    headlines: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "date": self.date,
            "mode": self.mode.value,
            "chartImage": self.chart_image,
            "marketSeries": self.market_series.to_dict() if self.market_series else None,
            "headline": self.headline,
            "script": self.script,
            "sentiment": self.sentiment.value if self.sentiment else None,
            "probability": self.probability,
            "sourceLog": self.source_log,
            "headlines": list(self.headlines),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportRecord":
        series = data.get("marketSeries")
        sentiment = data.get("sentiment")
        return cls(
            id=int(data["id"]),
            created_at=data.get("createdAt", ""),
            date=data.get("date", ""),
            mode=Mode(data.get("mode", Mode.DAILY.value)),
            chart_image=data.get("chartImage", ""),
            headline=data.get("headline", ""),
            script=data.get("script", ""),
            market_series=MarketSeries.from_dict(series) if series else None,
            sentiment=Sentiment(sentiment) if sentiment else None,
            probability=data.get("probability"),
            source_log=data.get("sourceLog", ""),
            headlines=tuple(data.get("headlines", [])),
        )
