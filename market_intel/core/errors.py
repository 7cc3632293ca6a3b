"""Error taxonomy for the report pipeline.

Every stage absorbs its own error type into a fallback value; these classes
exist so that the absorbing code can tell them apart and log a reason.
"""

from enum import Enum


class MarketIntelError(Exception):
    """Base class for all pipeline errors."""


class RenderErrorReason(str, Enum):
    LAUNCH_FAILED = "LaunchFailed"
    NAVIGATION_TIMEOUT = "NavigationTimeout"
    CAPTURE_FAILED = "CaptureFailed"


class RenderError(MarketIntelError):
    """Chart capture failed; recovered with a placeholder image."""

    def __init__(self, reason: RenderErrorReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


class SourceError(MarketIntelError):
    """A single headline source failed; recovered as an empty contribution."""

    def __init__(self, source: str, detail: str = "") -> None:
        self.source = source
        super().__init__(f"{source}: {detail}" if detail else source)


class ProviderError(MarketIntelError):
    """A single AI provider attempt failed; recovered by advancing the chain."""

    def __init__(self, identifier: str, detail: str = "") -> None:
        self.identifier = identifier
        super().__init__(f"{identifier}: {detail}" if detail else identifier)


class PersistError(MarketIntelError):
    """The history medium rejected a write; recovered as a logged no-op."""
