from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional

import yaml
from dotenv import load_dotenv

from topic_news_scraper.errors import ConfigurationError


# Category keys the aggregator knows about when they come from the environment,
# read as "<KEY>_CATEGORY" (e.g. TECHNOLOGY_CATEGORY=CAAqJgg...).
DEFAULT_CATEGORY_KEYS = (
    "TECHNOLOGY",
    "BUSINESS",
    "ENTERTAINMENT",
    "HEADLINES",
    "HEALTH",
    "SCIENCE",
    "SPORTS",
    "US_NEWS",
    "WORLD",
)


DEFAULT_PROXY_PROVIDERS: tuple[dict[str, str], ...] = (
    {
        "url": "https://api.proxyscrape.com/v2/?request=displayproxies&protocol=http&timeout=10000&country=all&anonymity=elite",
        "format": "text",
    },
    {
        "url": "https://api.proxyscrape.com/v2/?request=displayproxies&protocol=http&timeout=10000&country=all&anonymity=anonymous",
        "format": "text",
    },
    {
        "url": "https://proxylist.geonode.com/api/proxy-list?limit=100&page=1&sort_by=lastChecked&sort_type=desc&protocols=http",
        "format": "json",
    },
)


class CategoryConfig(Mapping[str, str]):
    """Validated mapping from category key to the target site's topic id."""

    def __init__(self, topics: Mapping[str, Any]) -> None:
        missing = sorted(k for k, v in topics.items() if not v or not str(v).strip())
        if missing:
            raise ConfigurationError(f"Missing topic id for categories: {', '.join(missing)}")
        if not topics:
            raise ConfigurationError("No categories configured")
        self._topics = {str(k): str(v).strip() for k, v in topics.items()}

    def __getitem__(self, key: str) -> str:
        return self._topics[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._topics)

    def __len__(self) -> int:
        return len(self._topics)

    def __repr__(self) -> str:
        return f"CategoryConfig({self._topics!r})"

    def topic_id(self, key: str) -> str:
        try:
            return self._topics[key]
        except KeyError:
            raise ConfigurationError(f"Invalid category: {key}") from None

    def require(self, keys: Iterable[str]) -> list[str]:
        """Return ``keys`` as a list, raising if any is not configured."""

        keys = list(keys)
        unknown = [k for k in keys if k not in self._topics]
        if unknown:
            raise ConfigurationError(f"Invalid category: {', '.join(unknown)}")
        return keys


@dataclass(frozen=True)
class ScrapeSettings:
    default_offset: int = 101
    default_limit: int = 10
    settle_delay_seconds: tuple[float, float] = (5.0, 10.0)
    navigation_timeout_seconds: float = 20.0
    # keep scanning past the window until `limit` unique titles are found
    fill_window: bool = False


@dataclass(frozen=True)
class BrowserSettings:
    headless: bool = True
    redirect_timeout_seconds: float = 15.0


@dataclass(frozen=True)
class ProxySettings:
    enabled: bool = True
    timeout_seconds: float = 10.0
    providers: tuple[dict[str, str], ...] = field(default=DEFAULT_PROXY_PROVIDERS)


@dataclass(frozen=True)
class Config:
    raw: dict[str, Any]

    @property
    def categories(self) -> CategoryConfig:
        cats = self.raw.get("categories")
        if not isinstance(cats, dict):
            raise ConfigurationError("config is missing a 'categories' mapping")
        return CategoryConfig(cats)

    @property
    def requests_per_minute(self) -> int:
        rl = self.raw.get("rate_limit", {}) or {}
        return int(rl.get("requests_per_minute", 60))

    @property
    def scrape(self) -> ScrapeSettings:
        s = self.raw.get("scrape", {}) or {}
        lo, hi = s.get("settle_delay_seconds", (5.0, 10.0))
        return ScrapeSettings(
            default_offset=int(s.get("default_offset", 101)),
            default_limit=int(s.get("default_limit", 10)),
            settle_delay_seconds=(float(lo), float(hi)),
            navigation_timeout_seconds=float(s.get("navigation_timeout_seconds", 20)),
            fill_window=bool(s.get("fill_window", False)),
        )

    @property
    def browser(self) -> BrowserSettings:
        b = self.raw.get("browser", {}) or {}
        return BrowserSettings(
            headless=bool(b.get("headless", True)),
            redirect_timeout_seconds=float(b.get("redirect_timeout_seconds", 15)),
        )

    @property
    def proxy(self) -> ProxySettings:
        p = self.raw.get("proxy", {}) or {}
        providers = p.get("providers")
        return ProxySettings(
            enabled=bool(p.get("enabled", True)),
            timeout_seconds=float(p.get("timeout_seconds", 10)),
            providers=tuple(dict(x) for x in providers) if providers else DEFAULT_PROXY_PROVIDERS,
        )


def load_yaml(path: str | Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config(path: str | Path) -> Config:
    return Config(raw=load_yaml(path))


def categories_from_env(
    keys: Iterable[str] = DEFAULT_CATEGORY_KEYS,
    *,
    env_file: Optional[str | Path] = None,
) -> CategoryConfig:
    """Build the category mapping from ``<KEY>_CATEGORY`` environment variables.

    A ``.env`` file is loaded first (without overriding the real environment).
    Every key must resolve; a missing variable fails here rather than on the
    first request for that category.
    """

    load_dotenv(env_file, override=False)
    return CategoryConfig({k: os.environ.get(f"{k}_CATEGORY", "") for k in keys})
