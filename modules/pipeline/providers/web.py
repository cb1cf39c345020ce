"""
URL input fetching.
"""

import html
import re

import httpx

from shared.errors import GenerationError, RetryableError
from shared.logging import get_logger
from shared.retry import retry_with_backoff

logger = get_logger("pipeline.providers.web")

MAX_URL_TEXT_CHARS = 50_000

_SCRIPT_STYLE_RE = re.compile(r"<(script|style|noscript)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def strip_html(markup: str) -> str:
    """Visible text of an HTML document, whitespace collapsed."""
    text = _SCRIPT_STYLE_RE.sub(" ", markup)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)
    return _WHITESPACE_RE.sub(" ", text).strip()


class HttpWebFetcher:
    """WebFetcher over httpx."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    @retry_with_backoff(max_attempts=3, base_delay=2)
    async def fetch_text(self, url: str) -> str:
        """
        Download a page and return its text content.

        Raises:
            GenerationError: 4xx response
            RetryableError: Network failure or 5xx (retried)
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url, headers={"User-Agent": "CanvasCast/1.0"})
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code >= 500:
                raise RetryableError(f"Server error fetching {url}: {e}")
            raise GenerationError(f"Failed to fetch {url}: {e}")
        except httpx.RequestError as e:
            raise RetryableError(f"Network error fetching {url}: {e}")

        content_type = response.headers.get("content-type", "")
        text = strip_html(response.text) if "html" in content_type else response.text.strip()
        logger.debug("Fetched URL input", extra={"url": url, "chars": len(text)})
        return text[:MAX_URL_TEXT_CHARS]
