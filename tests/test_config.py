from __future__ import annotations

import os
import textwrap

import pytest

from topic_news_scraper.config import (
    DEFAULT_PROXY_PROVIDERS,
    CategoryConfig,
    Config,
    categories_from_env,
    load_config,
)
from topic_news_scraper.errors import ConfigurationError


def test_load_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        textwrap.dedent(
            """
            categories:
              TECHNOLOGY: topic-tech
              WORLD: topic-world
            rate_limit:
              requests_per_minute: 30
            scrape:
              default_offset: 0
              default_limit: 5
              settle_delay_seconds: [1, 2]
              fill_window: true
            proxy:
              enabled: false
            """
        ),
        encoding="utf-8",
    )

    cfg = load_config(path)

    assert dict(cfg.categories) == {"TECHNOLOGY": "topic-tech", "WORLD": "topic-world"}
    assert cfg.requests_per_minute == 30
    assert cfg.scrape.default_offset == 0
    assert cfg.scrape.default_limit == 5
    assert cfg.scrape.settle_delay_seconds == (1.0, 2.0)
    assert cfg.scrape.navigation_timeout_seconds == 20.0
    assert cfg.scrape.fill_window is True
    assert cfg.proxy.enabled is False
    assert cfg.proxy.providers == DEFAULT_PROXY_PROVIDERS
    assert cfg.browser.redirect_timeout_seconds == 15.0


def test_defaults_for_empty_config():
    cfg = Config(raw={})
    assert cfg.requests_per_minute == 60
    assert cfg.scrape.default_offset == 101
    assert cfg.scrape.default_limit == 10
    assert cfg.scrape.settle_delay_seconds == (5.0, 10.0)
    assert cfg.scrape.fill_window is False
    assert cfg.browser.headless is True
    with pytest.raises(ConfigurationError):
        cfg.categories


def test_category_config_validates_eagerly():
    with pytest.raises(ConfigurationError, match="HEALTH"):
        CategoryConfig({"TECHNOLOGY": "topic-tech", "HEALTH": None})
    with pytest.raises(ConfigurationError):
        CategoryConfig({})


def test_category_lookup():
    cats = CategoryConfig({"TECHNOLOGY": " topic-tech "})
    assert cats.topic_id("TECHNOLOGY") == "topic-tech"
    assert "TECHNOLOGY" in cats
    with pytest.raises(ConfigurationError, match="Invalid category: SPORTS"):
        cats.topic_id("SPORTS")
    with pytest.raises(ConfigurationError):
        cats.require(["TECHNOLOGY", "SPORTS"])
    assert cats.require(["TECHNOLOGY"]) == ["TECHNOLOGY"]


def test_categories_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TECHNOLOGY_CATEGORY", "topic-tech")
    monkeypatch.setenv("SPORTS_CATEGORY", "topic-sports")

    cats = categories_from_env(["TECHNOLOGY", "SPORTS"], env_file=tmp_path / "missing.env")

    assert dict(cats) == {"TECHNOLOGY": "topic-tech", "SPORTS": "topic-sports"}


def test_categories_from_env_reads_dotenv(monkeypatch, tmp_path):
    monkeypatch.delenv("WORLD_CATEGORY", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("WORLD_CATEGORY=topic-world\n", encoding="utf-8")

    try:
        cats = categories_from_env(["WORLD"], env_file=env_file)
    finally:
        # load_dotenv writes straight into os.environ
        os.environ.pop("WORLD_CATEGORY", None)

    assert cats.topic_id("WORLD") == "topic-world"


def test_categories_from_env_missing_variable(monkeypatch, tmp_path):
    monkeypatch.delenv("HEALTH_CATEGORY", raising=False)
    with pytest.raises(ConfigurationError, match="HEALTH"):
        categories_from_env(["HEALTH"], env_file=tmp_path / "missing.env")
