from __future__ import annotations

import json
import logging
import random
import re
from contextlib import aclosing
from typing import Any, AsyncIterator, Iterable, Optional

import aiohttp

from topic_news_scraper.config import ProxySettings
from topic_news_scraper.errors import ProxyUnavailable
from topic_news_scraper.http import get_text


logger = logging.getLogger(__name__)

ANONYMITY_LEVELS = frozenset({"anonymous", "elite"})
PROTOCOLS = frozenset({"http"})

_HOST_PORT_RE = re.compile(r"^\s*(\d{1,3}(?:\.\d{1,3}){3}):(\d{1,5})\s*$")


def parse_text_listing(body: str) -> list[str]:
    """Parse a plain ``ip:port`` per line listing. Filtering is done server side."""

    out: list[str] = []
    for line in (body or "").splitlines():
        m = _HOST_PORT_RE.match(line)
        if m:
            out.append(f"{m.group(1)}:{m.group(2)}")
    return out


def parse_json_listing(
    body: str,
    anonymity_levels: Iterable[str] = ANONYMITY_LEVELS,
    protocols: Iterable[str] = PROTOCOLS,
) -> list[str]:
    """Parse a ``{"data": [{"ip", "port", "anonymityLevel", "protocols"}]}`` listing."""

    levels = {a.lower() for a in anonymity_levels}
    wanted = {p.lower() for p in protocols}

    payload: Any = json.loads(body or "{}")
    rows = payload.get("data", []) if isinstance(payload, dict) else payload

    out: list[str] = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        ip = str(row.get("ip") or "").strip()
        port = str(row.get("port") or "").strip()
        if not ip or not port:
            continue
        level = str(row.get("anonymityLevel") or "").lower()
        if level not in levels:
            continue
        row_protocols = {str(p).lower() for p in (row.get("protocols") or [])}
        if not row_protocols & wanted:
            continue
        out.append(f"{ip}:{port}")
    return out


_PARSERS = {
    "text": parse_text_listing,
    "json": parse_json_listing,
}


class ProxySource:
    """Best-effort lookup of a free anonymous/elite HTTP proxy."""

    def __init__(
        self,
        settings: Optional[ProxySettings] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._settings = settings or ProxySettings()
        self._rng = rng or random.Random()

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    async def iter_batches(self) -> AsyncIterator[list[str]]:
        """Yield one batch of ``ip:port`` strings per configured provider.

        Any provider error ends the stream with that error.
        """

        async with aiohttp.ClientSession() as session:
            for provider in self._settings.providers:
                url = str(provider["url"])
                fmt = str(provider.get("format", "text")).lower()
                parser = _PARSERS.get(fmt)
                if parser is None:
                    raise ValueError(f"unknown proxy listing format {fmt!r} for {url}")
                body = await get_text(session, url, timeout_seconds=self._settings.timeout_seconds)
                batch = parser(body)
                logger.debug("Proxy provider %s returned %d entries", url, len(batch))
                yield batch

    async def fetch_proxy(self) -> str:
        """Return one random ``ip:port`` from the first non-empty batch.

        Raises ``ProxyUnavailable`` on a stream error or when no provider
        returns anything.
        """

        if not self._settings.enabled:
            raise ProxyUnavailable("proxy lookup is disabled")

        try:
            async with aclosing(self.iter_batches()) as batches:
                async for batch in batches:
                    if batch:
                        return self._rng.choice(batch)
        except ProxyUnavailable:
            raise
        except Exception as e:
            raise ProxyUnavailable(f"proxy directory lookup failed: {e}") from e

        raise ProxyUnavailable("proxy directory returned no usable proxies")
