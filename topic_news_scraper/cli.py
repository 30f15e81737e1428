from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from typing import Any, Optional

from topic_news_scraper.aggregator import CategoryAggregator
from topic_news_scraper.config import Config, categories_from_env, load_config
from topic_news_scraper.errors import ScraperError


logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="topic_news_scraper",
        description="Scrape Google News topic pages into JSON article records.",
    )
    p.add_argument("--config", default=None, help="YAML config file (categories, rate limit, scrape settings)")
    p.add_argument("--env", action="store_true", help="read categories from <KEY>_CATEGORY environment variables")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    cat = sub.add_parser("category", help="articles for one category")
    cat.add_argument("key")
    cat.add_argument("--offset", type=int, default=None)
    cat.add_argument("--limit", type=int, default=None)

    cats = sub.add_parser("categories", help="articles for several categories (all when none given)")
    cats.add_argument("keys", nargs="*")

    search = sub.add_parser("search", help="search titles and authors across all categories")
    search.add_argument("query")

    latest = sub.add_parser("latest", help="first N articles of every category")
    latest.add_argument("--limit", type=int, default=5)

    return p


async def _run(args: argparse.Namespace, aggregator: CategoryAggregator) -> Any:
    if args.command == "category":
        articles = await aggregator.get_by_category(args.key, args.offset, args.limit)
        return [a.to_dict() for a in articles]
    if args.command == "categories":
        grouped = await aggregator.get_by_categories(args.keys)
    elif args.command == "search":
        grouped = await aggregator.search(args.query)
    else:
        grouped = await aggregator.latest(args.limit)
    return {k: [a.to_dict() for a in v] for k, v in grouped.items()}


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    cfg = load_config(args.config) if args.config else Config(raw={})
    started = time.monotonic()
    try:
        categories = categories_from_env() if args.env or "categories" not in cfg.raw else None
        aggregator = CategoryAggregator.from_config(cfg, categories)
        result = asyncio.run(_run(args, aggregator))
    except ScraperError as e:
        logger.error("%s", e)
        return 2

    print(json.dumps(result, indent=2, ensure_ascii=False))
    logger.info("Run completed in %.1f seconds", time.monotonic() - started)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
