"""AnalysisChain — ordered provider fallback for sentiment and summary.

Providers are tried strictly one after another in configured order; the first
one returning non-empty text wins and the rest are never called. Every
provider-level failure is absorbed here. When the chain is exhausted (or
empty because no credential is configured) a deterministic fallback built from
the headlines is returned instead.
"""

import threading
from typing import List, Optional, Sequence

from market_intel.core.errors import ProviderError
from market_intel.core.logger import logger
from market_intel.models.datatypes import AnalysisResult, HeadlineItem, Mode
from market_intel.pipeline.extraction import (
    DEFAULT_PROBABILITY,
    DEFAULT_SENTIMENT,
    parse_analysis_text,
)
from market_intel.providers.base import TextGenerator

GENERIC_SUMMARY = (
    "No major market headlines are available right now. "
    "Traders should watch the charts closely for the next move."
)

_HORIZON = {
    Mode.DAILY: "today's trading session",
    Mode.WEEKLY: "the coming trading week",
}

PROMPT_TEMPLATE = """You are a professional Forex and commodities market analyst.
Here are the latest market headlines:
{headlines}

Assess the likely direction of Gold (XAU/USD) over {horizon}.
Reply in exactly this format:
Market Sentiment: <BULLISH, BEARISH or NEUTRAL>
Probability: <0-100>%
Analysis: <two or three sentences a trader can read aloud in 30 seconds>
"""


def build_prompt(headlines: Sequence[HeadlineItem], mode: Mode) -> str:
    """Render the fixed prompt template for ``mode`` and ``headlines``."""
    if headlines:
        lines = "\n".join(
            f"- [{item.source.value}] {item.title}" + (f": {item.summary}" if item.summary else "")
            for item in headlines
        )
    else:
        lines = "- (no headlines available)"
    return PROMPT_TEMPLATE.format(headlines=lines, horizon=_HORIZON[mode])


def fallback_result(headlines: Sequence[HeadlineItem]) -> AnalysisResult:
    """Deterministic result used when no provider produced text."""
    if headlines:
        summary = (
            f"Breaking News: {headlines[0].title}. "
            "Traders are reacting to this volatility. Watch the charts closely."
        )
    else:
        summary = GENERIC_SUMMARY
    return AnalysisResult(
        sentiment=DEFAULT_SENTIMENT,
        probability=DEFAULT_PROBABILITY,
        summary=summary,
        provider=None,
        is_fallback=True,
    )


class AnalysisChain:
    """Try each generator in order until one succeeds.

    Args:
        generators: Provider adapters in preference order (may be empty).
        timeout_seconds: Per-attempt timeout handed to each adapter.
    """

    def __init__(self, generators: List[TextGenerator], timeout_seconds: float = 30) -> None:
        self.generators = list(generators)
        self.timeout_seconds = timeout_seconds

    def analyze(
        self,
        headlines: Sequence[HeadlineItem],
        mode: Mode,
        cancel: Optional[threading.Event] = None,
    ) -> AnalysisResult:
        """Return the first successful provider's parsed result, or the fallback.

        Never raises for provider failures. ``probability`` is clamped to [0, 100].
        Once ``cancel`` is set no further provider is called; an attempt
        already in flight is left to finish on its own timeout.
        """
        if not self.generators:
            logger.warning("AnalysisChain: no provider configured, using fallback")
            return fallback_result(headlines)

        prompt = build_prompt(headlines, mode)
        for generator in self.generators:
            if cancel is not None and cancel.is_set():
                logger.warning(f"AnalysisChain: run cancelled before {generator.identifier}, using fallback")
                return fallback_result(headlines)
            try:
                text = generator.generate(prompt, self.timeout_seconds)
            except ProviderError as exc:
                logger.warning(f"AnalysisChain: {exc}, trying next provider")
                continue
            except Exception as exc:
                logger.error(f"AnalysisChain: {generator.identifier} raised unexpectedly: {exc}")
                continue

            if not text or not text.strip():
                logger.warning(f"AnalysisChain: {generator.identifier} returned empty text")
                continue

            parsed = parse_analysis_text(text)
            probability = min(max(parsed.probability, 0), 100)
            if probability != parsed.probability:
                logger.warning(
                    f"AnalysisChain: probability {parsed.probability} out of range, "
                    f"clamped to {probability}"
                )
            logger.info(
                f"AnalysisChain: {generator.identifier} → "
                f"{parsed.sentiment.value} {probability}%"
            )
            return AnalysisResult(
                sentiment=parsed.sentiment,
                probability=probability,
                summary=parsed.summary or _first_title(headlines),
                provider=generator.identifier,
            )

        logger.warning("AnalysisChain: all providers failed, using fallback")
        return fallback_result(headlines)


def _first_title(headlines: Sequence[HeadlineItem]) -> str:
    return headlines[0].title if headlines else GENERIC_SUMMARY
