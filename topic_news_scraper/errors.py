from __future__ import annotations


class ScraperError(Exception):
    """Base class for every error raised by topic_news_scraper."""


class ConfigurationError(ScraperError, ValueError):
    """A requested category key is missing from the category configuration."""


class NavigationTimeout(ScraperError):
    """The topic page did not finish loading within the navigation timeout."""

    def __init__(self, url: str, timeout_seconds: float) -> None:
        super().__init__(f"navigation to {url} timed out after {timeout_seconds:g}s")
        self.url = url
        self.timeout_seconds = timeout_seconds


class ExtractionFailure(ScraperError):
    """The rendered page could not be turned into article records."""


class DecodeFailure(ScraperError):
    """An attribution attribute did not carry a decodable source URL."""


class ProxyUnavailable(ScraperError):
    """No proxy could be obtained from the proxy directory."""
