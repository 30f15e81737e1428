"""Shared fixtures: a fake browser page over fixture HTML and helpers to build topic pages."""

from __future__ import annotations

import base64
from contextlib import asynccontextmanager
from typing import Optional

import pytest

from topic_news_scraper.browser import BrowserSession


def encode_jslog(url: str, marker_prefix: str = "95014; ") -> str:
    payload = base64.b64encode(f'["{url}",null,1]'.encode("utf-8")).decode("ascii").rstrip("=")
    return f"{marker_prefix}5:{payload}; track:click"


def card_html(
    title: str,
    *,
    href: str = "./read/CBMi0001",
    source_url: Optional[str] = "https://publisher.example/story",
    source: str = "Example Times",
    date_time: Optional[str] = "2024-05-15T12:00:00Z",
    time: str = "3 hours ago",
    byline: Optional[str] = "By Jane Doe",
    image: Optional[str] = None,
    layout: str = "article.IBr9hb",
) -> str:
    tag, cls = layout.split(".")
    link_cls = "JtKRv" if cls == "IFHyqb" else "gPFEn"
    parts = [f'<{tag} class="{cls}">']
    if image:
        parts.append(f'<figure class="K0q4G"><img class="Quavad" src="{image}"></figure>')
    parts.append(f'<a class="{link_cls}" href="{href}">{title}</a>')
    if source_url:
        parts.append(f'<a class="WwrzSb" jslog="{encode_jslog(source_url)}"></a>')
    parts.append(f'<div class="vr1PYe">{source}</div>')
    if date_time:
        parts.append(f'<time class="hvbAAd" datetime="{date_time}">{time}</time>')
    else:
        parts.append(f'<time class="hvbAAd">{time}</time>')
    if byline is not None:
        parts.append(f'<div class="bInasb"><span>{byline}</span></div>')
    parts.append(f"</{tag}>")
    return "".join(parts)


def page_html(*cards: str) -> str:
    return "<html><body><main>" + "".join(cards) + "</main></body></html>"


class FakePage:
    def __init__(self, html: str = "", goto_error: Optional[BaseException] = None) -> None:
        self.html = html
        self.goto_error = goto_error
        self.visited: list[tuple[str, dict]] = []
        self.url = "about:blank"

    async def goto(self, url: str, **kwargs):
        self.visited.append((url, kwargs))
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url
        return None

    async def content(self) -> str:
        return self.html


class FakeSessionFactory:
    """Stands in for BrowserSessionFactory; counts opened and closed sessions."""

    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def open(self):
        self.opened += 1
        try:
            yield BrowserSession(identity="Mozilla/5.0 (X11; Linux x86_64)", proxy=None, page=self.page)
        finally:
            self.closed += 1


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
