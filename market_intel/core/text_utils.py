"""Text helpers shared by the news sources and the aggregator."""

import html
import re
import warnings

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

_WS_RE = re.compile(r"\s+")

# Short headlines such as "example.com" look like URLs to bs4
warnings.filterwarnings("ignore", category=MarkupResemblesLocatorWarning)


def strip_tags(text: str) -> str:
    """Decode HTML entities, then remove markup tags.

    Entities are decoded first so that entity-encoded markup
    (``&lt;b&gt;Gold&lt;/b&gt;``) is removed as well.

    Examples:
        ``"<p>Gold &amp; silver</p>"`` → ``"Gold & silver"``
    """
    if not text:
        return ""
    decoded = html.unescape(text)
    return BeautifulSoup(decoded, "html.parser").get_text(separator=" ")


def clean_text(text: str, max_chars: int | None = None) -> str:
    """Strip tags, collapse whitespace, trim, and cap the length.

    Args:
        text (str): Raw title or summary, possibly containing HTML.
        max_chars (int | None): Hard cap on the returned length.

    Returns:
        str: Cleaned single-line text, at most ``max_chars`` characters.
    """
    cleaned = _WS_RE.sub(" ", strip_tags(text)).strip()
    if max_chars is not None and len(cleaned) > max_chars:
        cleaned = cleaned[:max_chars].rstrip()
    return cleaned


def dedup_key(title: str) -> str:
    """Case- and whitespace-insensitive key used to drop repeated headlines."""
    return _WS_RE.sub(" ", title).strip().lower()
