from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Iterator, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from topic_news_scraper.browser import BrowserSessionFactory
from topic_news_scraper.config import ScrapeSettings
from topic_news_scraper.errors import ExtractionFailure, NavigationTimeout
from topic_news_scraper.redirect import decode_jslog
from topic_news_scraper.types import Article


logger = logging.getLogger(__name__)

BASE_URL = "https://news.google.com"
TOPIC_URL_TEMPLATE = BASE_URL + "/topics/{topic_id}?hl=en-US&gl=US&ceid=US:en"


@dataclass(frozen=True)
class CardShape:
    """One of the card layouts the topic page renders.

    ``containers`` lists the (tag, class) pairs a container element can have;
    ``title_link`` is the selector of the anchor holding the headline.
    """

    name: str
    containers: tuple[tuple[str, str], ...]
    title_link: str

    @property
    def selector(self) -> str:
        return ", ".join(f"{tag}.{cls}" for tag, cls in self.containers)

    def matches(self, el: Tag) -> bool:
        classes = el.get("class") or []
        return any(el.name == tag and cls in classes for tag, cls in self.containers)


# Cards inside a "full coverage" cluster use a different headline anchor.
CLUSTER_CARD = CardShape("cluster", (("article", "IFHyqb"),), "a.JtKRv")
STANDARD_CARD = CardShape(
    "standard",
    (("div", "W8yrY"), ("article", "IBr9hb"), ("article", "UwIKyb")),
    "a.gPFEn",
)

# Order matters: the first shape whose predicate matches wins.
CARD_SHAPES: tuple[CardShape, ...] = (CLUSTER_CARD, STANDARD_CARD)
CARD_SELECTOR = ", ".join(s.selector for s in CARD_SHAPES)


@dataclass(frozen=True)
class Card:
    element: Tag
    shape: CardShape
    title: str
    position: int  # 1-based among cards with a non-empty title


def card_shape(el: Tag) -> CardShape:
    for shape in CARD_SHAPES:
        if shape.matches(el):
            return shape
    raise ExtractionFailure(f"unrecognized card layout: <{el.name} class={el.get('class')}>")


def _text(el: Tag, selector: str) -> str:
    # Text of every match, concatenated, the way the page reads when a card
    # repeats an element.
    return "".join(t.get_text() for t in el.select(selector)).strip()


def _attr(el: Tag, selector: str, name: str) -> Optional[str]:
    found = el.select_one(selector)
    if found is None:
        return None
    value = found.get(name)
    return str(value) if value is not None else None


def iter_cards(soup: BeautifulSoup) -> Iterator[Card]:
    """Yield the article cards of a topic page in document order.

    Cards without a headline are skipped and do not advance ``position``.
    """

    position = 0
    for el in soup.select(CARD_SELECTOR):
        shape = card_shape(el)
        title = _text(el, shape.title_link)
        if not title:
            continue
        position += 1
        yield Card(element=el, shape=shape, title=title, position=position)


def select_window(
    cards: Iterable[Card],
    offset: int,
    limit: int,
    *,
    fill_window: bool = False,
) -> list[Card]:
    """Pick the cards at positions ``offset + 1 .. offset + limit``, dropping repeated titles.

    A repeated title still uses up its position, so fewer than ``limit`` cards
    come back when the window holds duplicates. With ``fill_window`` the scan
    continues past the window until ``limit`` distinct titles are found.
    """

    seen: set[str] = set()
    out: list[Card] = []
    if limit <= 0:
        return out

    for card in cards:
        if card.position <= offset:
            continue
        if fill_window:
            if len(out) >= limit:
                break
        elif card.position > offset + limit:
            break
        if card.title in seen:
            continue
        seen.add(card.title)
        out.append(card)
    return out


def parse_author(byline: str) -> str:
    names = [part.strip() for part in (byline or "").split("By ") if part.strip()]
    return ", ".join(names) if names else "Unknown"


def absolute_link(href: str, base_url: str = BASE_URL) -> str:
    if href.startswith("http"):
        return href
    # topic pages use "./read/..." style links
    if href.startswith("."):
        href = href[1:]
    return urljoin(base_url, href)


def card_to_article(card: Card, base_url: str = BASE_URL) -> Article:
    el = card.element

    href = _attr(el, card.shape.title_link, "href")
    if not href:
        raise ExtractionFailure(f"card {card.position} ({card.title!r}) has no link")

    image_src = _attr(el, "figure.K0q4G img.Quavad", "src")

    return Article(
        title=card.title,
        google_link=absolute_link(href, base_url),
        source_link=decode_jslog(_attr(el, "a.WwrzSb", "jslog")),
        source=_text(el, "div.vr1PYe"),
        date_time=_attr(el, "time.hvbAAd", "datetime"),
        time=_text(el, "time.hvbAAd"),
        author=parse_author(_text(el, "div.bInasb span")),
        image_url=urljoin(base_url, image_src) if image_src else None,
    )


def parse_articles(
    html: str,
    offset: int,
    limit: int,
    *,
    fill_window: bool = False,
    base_url: str = BASE_URL,
) -> list[Article]:
    """Synchronous extraction of one page snapshot, without settle delays."""

    soup = BeautifulSoup(html or "", "lxml")
    cards = select_window(iter_cards(soup), offset, limit, fill_window=fill_window)
    return [card_to_article(c, base_url) for c in cards]


def topic_url(topic_id: str) -> str:
    return TOPIC_URL_TEMPLATE.format(topic_id=topic_id)


class PageExtractor:
    """Scrapes one topic page into ``Article`` records.

    Each call opens its own browser session and never raises: failures are
    logged and produce an empty list.
    """

    def __init__(
        self,
        session_factory: BrowserSessionFactory,
        settings: Optional[ScrapeSettings] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        base_url: str = BASE_URL,
    ) -> None:
        self._factory = session_factory
        self._settings = settings or ScrapeSettings()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._base_url = base_url

    async def _settle(self) -> None:
        lo, hi = self._settings.settle_delay_seconds
        await self._sleep(self._rng.uniform(lo, hi) if hi > lo else lo)

    async def scrape(self, topic_id: str, offset: int = 0, limit: int = 3) -> list[Article]:
        url = topic_url(topic_id)
        logger.info("Scraping topic %s (offset=%d, limit=%d)", topic_id, offset, limit)
        try:
            async with self._factory.open() as session:
                articles = await self._scrape_page(session.page, url, offset, limit)
        except asyncio.CancelledError:
            raise
        except NavigationTimeout as e:
            logger.warning("Topic %s: %s", topic_id, e)
            return []
        except Exception:
            logger.exception("Error while scraping topic %s (%s)", topic_id, url)
            return []

        logger.info("Scraped %d articles from topic %s", len(articles), topic_id)
        return articles

    async def _scrape_page(self, page: Page, url: str, offset: int, limit: int) -> list[Article]:
        timeout = self._settings.navigation_timeout_seconds
        logger.debug("Navigating to %s", url)
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(url, timeout) from e

        await self._settle()

        soup = BeautifulSoup(await page.content(), "lxml")
        containers = soup.select(CARD_SELECTOR)
        if not containers:
            raise ExtractionFailure(f"no article containers found on {url}")
        logger.debug("Found %d article containers on %s", len(containers), url)

        cards = select_window(iter_cards(soup), offset, limit, fill_window=self._settings.fill_window)

        articles: list[Article] = []
        for i, card in enumerate(cards):
            if i:
                await self._settle()
            logger.debug("Scraping article #%d: %r", card.position, card.title)
            article = card_to_article(card, self._base_url)
            logger.debug("-> Source: %s, Time: %s, Author: %s", article.source, article.time, article.author)
            articles.append(article)
        return articles
