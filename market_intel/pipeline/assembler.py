"""ReportAssembler — combine branch outputs into one immutable ReportRecord.

No I/O happens here and nothing can fail: a failed render becomes the
placeholder image, a missing analysis leaves sentiment/probability empty, and
a fallback analysis is carried through as-is.
"""

import base64
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Union

from market_intel.core.errors import RenderError
from market_intel.models.datatypes import (
    AnalysisResult,
    HeadlineItem,
    MarketSeries,
    Mode,
    ReportRecord,
)
from market_intel.pipeline.analysis_chain import GENERIC_SUMMARY

PLACEHOLDER_IMAGE = "/chart-placeholder.png"
DEFAULT_HEADLINE = "Market Update"

RenderResult = Union[bytes, RenderError, None]


class _IdSequence:
    """Millisecond timestamps, bumped when two records land in the same millisecond."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next(self, now_ms: int) -> int:
        with self._lock:
            self._last = max(now_ms, self._last + 1)
            return self._last


class ReportAssembler:
    """
    Args:
        placeholder_image: Reference stored when no chart image was captured.
        clock: Returns the current aware datetime; injectable for tests.
    """

    def __init__(
        self,
        placeholder_image: str = PLACEHOLDER_IMAGE,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.placeholder_image = placeholder_image
        self._clock = clock
        self._ids = _IdSequence()

    def assemble(
        self,
        render_result: RenderResult,
        analysis_result: Optional[AnalysisResult],
        mode: Mode,
        headlines: Sequence[HeadlineItem] = (),
        market_series: Optional[MarketSeries] = None,
    ) -> ReportRecord:
        """Build the record for one run.

        Args:
            render_result: PNG bytes, the ``RenderError`` raised, or ``None``
                when the render branch never finished.
            analysis_result: Chain output (possibly its fallback), or ``None``
                when the analysis branch never finished.
            mode: Report mode.
            headlines: Aggregated headlines; the first becomes the record headline.
            market_series: Candles, if fetched.
        """
        created = self._clock()
        log_parts: List[str] = []

        if isinstance(render_result, (bytes, bytearray)) and render_result:
            chart_image = "data:image/png;base64," + base64.b64encode(bytes(render_result)).decode("ascii")
            log_parts.append("render=ok")
        else:
            chart_image = self.placeholder_image
            if isinstance(render_result, RenderError):
                log_parts.append(f"render={render_result.reason.value}")
            else:
                log_parts.append("render=unavailable")

        log_parts.append("market=yfinance" if market_series is not None else "market=unavailable")
        log_parts.append(f"news={len(headlines)}")

        if analysis_result is None:
            script = GENERIC_SUMMARY
            sentiment = None
            probability = None
            log_parts.append("analysis=unavailable")
        else:
            script = analysis_result.summary
            sentiment = analysis_result.sentiment
            probability = analysis_result.probability
            log_parts.append(
                "analysis=fallback" if analysis_result.is_fallback
                else f"analysis={analysis_result.provider}"
            )

        return ReportRecord(
            id=self._ids.next(int(created.timestamp() * 1000)),
            created_at=created.isoformat(),
            date=created.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
            mode=mode,
            chart_image=chart_image,
            headline=headlines[0].title if headlines else DEFAULT_HEADLINE,
            script=script,
            market_series=market_series,
            sentiment=sentiment,
            probability=probability,
            source_log=" | ".join(log_parts),
            headlines=tuple(item.title for item in headlines),
        )
