from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import timezone
from typing import Iterable, Optional

from dateutil import parser as dateparser

from topic_news_scraper.browser import BrowserSessionFactory
from topic_news_scraper.config import CategoryConfig, Config
from topic_news_scraper.errors import ConfigurationError
from topic_news_scraper.extract import PageExtractor
from topic_news_scraper.http import TokenBucketRateLimiter
from topic_news_scraper.proxy import ProxySource
from topic_news_scraper.types import Article


logger = logging.getLogger(__name__)

DEFAULT_OFFSET = 101
DEFAULT_LIMIT = 10


def format_timestamp(value: Optional[str]) -> Optional[str]:
    """Render a machine timestamp as local time, e.g. ``October 18, 2026 3:05 PM``.

    Naive timestamps are taken as UTC.
    """

    if not value:
        return None
    try:
        dt = dateparser.isoparse(value)
    except ValueError:
        try:
            dt = dateparser.parse(value)
        except (ValueError, OverflowError):
            logger.debug("Unparseable timestamp %r", value)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    local = dt.astimezone()
    hour = local.hour % 12 or 12
    return f"{local:%B} {local.day}, {local.year} {hour}:{local:%M} {local:%p}"


def has_malformed_time(label: Optional[str]) -> bool:
    """True for display times that look like two labels run together."""

    t = (label or "").lower()
    ago = t.count("ago")
    yesterday = t.count("yesterday")
    return ago > 1 or (ago >= 1 and yesterday >= 1) or yesterday > 1


def filter_and_format(articles: Iterable[Article]) -> list[Article]:
    return [
        replace(a, formatted_time=format_timestamp(a.date_time))
        for a in articles
        if not has_malformed_time(a.time)
    ]


class CategoryAggregator:
    """Rate-limited access to the configured news categories."""

    def __init__(
        self,
        categories: CategoryConfig,
        extractor: PageExtractor,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        *,
        requests_per_minute: int = 60,
        default_offset: int = DEFAULT_OFFSET,
        default_limit: int = DEFAULT_LIMIT,
    ) -> None:
        if not isinstance(categories, CategoryConfig):
            categories = CategoryConfig(categories)
        self.categories = categories
        self._extractor = extractor
        self._limiter = rate_limiter or TokenBucketRateLimiter.per_minute(requests_per_minute)
        self._default_offset = default_offset
        self._default_limit = default_limit

    @classmethod
    def from_config(cls, config: Config, categories: Optional[CategoryConfig] = None) -> "CategoryAggregator":
        """Wire the full scraping stack from a loaded ``Config``.

        ``categories`` overrides the config file's mapping (e.g. one built
        from the environment).
        """

        scrape = config.scrape
        factory = BrowserSessionFactory(ProxySource(config.proxy), config.browser)
        return cls(
            categories if categories is not None else config.categories,
            PageExtractor(factory, scrape),
            TokenBucketRateLimiter.per_minute(config.requests_per_minute),
            default_offset=scrape.default_offset,
            default_limit=scrape.default_limit,
        )

    async def _fetch_category(self, category: str, offset: int, limit: int) -> list[Article]:
        try:
            topic_id = self.categories.topic_id(category)
            articles = await self._extractor.scrape(topic_id, offset, limit)
            return filter_and_format(articles)
        except Exception:
            logger.exception("Error fetching %s news", category)
            raise

    async def get_by_category(
        self,
        category: str,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[Article]:
        await self._limiter.wait_for_token()
        offset = self._default_offset if offset is None else offset
        limit = self._default_limit if limit is None else limit
        return await self._fetch_category(category, offset, limit)

    async def get_by_categories(self, categories: Optional[Iterable[str]] = None) -> dict[str, list[Article]]:
        """Scrape several categories concurrently.

        No categories means all of them. The first failure cancels the other
        categories and is raised; partial results are discarded.
        """

        requested = list(categories or self.categories)
        try:
            targets = self.categories.require(requested)
        except ConfigurationError:
            logger.exception("Error fetching multiple categories %s", ", ".join(requested))
            raise

        async def one(category: str) -> list[Article]:
            # one token per category in a fan-out
            await self._limiter.wait_for_token()
            return await self._fetch_category(category, self._default_offset, self._default_limit)

        tasks = [asyncio.ensure_future(one(c)) for c in targets]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            logger.error("Error fetching multiple categories %s", ", ".join(targets))
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return dict(zip(targets, results))

    async def search(self, query: str) -> dict[str, list[Article]]:
        all_news = await self.get_by_categories()
        q = query.lower()
        results: dict[str, list[Article]] = {}
        for category, articles in all_news.items():
            matching = [a for a in articles if q in a.title.lower() or (a.author and q in a.author.lower())]
            if matching:
                results[category] = matching
        return results

    async def latest(self, limit: int = 5) -> dict[str, list[Article]]:
        all_news = await self.get_by_categories()
        return {category: articles[:limit] for category, articles in all_news.items()}
