"""Best-effort parser for the fixed-format analysis text returned by a provider.

Expected shape (any order, extra prose tolerated):

    Market Sentiment: BEARISH
    Probability: 72%
    Analysis: Profit-taking stalled the gold rally ...

Rules:
    sentiment   — ``Market Sentiment:\\s*(\\w+)``; absent or unrecognised → NEUTRAL.
    probability — ``Probability:\\s*(\\d+)%``; absent → 50. Not clamped here.
    summary     — the text with the sentiment and probability fields removed and
                  any ``Analysis:``/``Summary:`` label dropped, even when all
                  three fields share one line; trimmed.
"""

import re
from typing import NamedTuple

from market_intel.models.datatypes import Sentiment

DEFAULT_SENTIMENT = Sentiment.NEUTRAL
DEFAULT_PROBABILITY = 50

SENTIMENT_RE = re.compile(r"Market Sentiment:\s*(\w+)")
PROBABILITY_RE = re.compile(r"Probability:\s*(\d+)%")

# Structured field tokens, wherever they sit on a line
_FIELD_RE = re.compile(r"\**(?:Market Sentiment:\**\s*\w*|Probability:\**\s*\d+%)\**")
_LABEL_RE = re.compile(r"\**\b(?:Analysis|Summary)\s*:\**\s*")
_BULLET_RE = re.compile(r"^[\s*#>-]+")
_SPACES_RE = re.compile(r"[ \t]{2,}")


class Extraction(NamedTuple):
    sentiment: Sentiment
    probability: int
    summary: str


def extract_sentiment(text: str) -> Sentiment:
    match = SENTIMENT_RE.search(text or "")
    if not match:
        return DEFAULT_SENTIMENT
    try:
        return Sentiment(match.group(1).upper())
    except ValueError:
        return DEFAULT_SENTIMENT


def extract_probability(text: str) -> int:
    match = PROBABILITY_RE.search(text or "")
    return int(match.group(1)) if match else DEFAULT_PROBABILITY


def extract_summary(text: str) -> str:
    """Drop the field tokens and labels; lines left empty are removed."""
    lines = []
    for line in (text or "").splitlines():
        cleaned = _LABEL_RE.sub("", _FIELD_RE.sub(" ", line))
        if cleaned != line:
            cleaned = _BULLET_RE.sub("", cleaned)
        cleaned = _SPACES_RE.sub(" ", cleaned).strip()
        if cleaned:
            lines.append(cleaned)
    return "\n".join(lines)


def parse_analysis_text(text: str) -> Extraction:
    """Apply all three extraction rules to one provider response."""
    return Extraction(
        sentiment=extract_sentiment(text),
        probability=extract_probability(text),
        summary=extract_summary(text),
    )
