"""Tests for configuration loading."""

import json

import pytest

from core.config import DEFAULT_USER_AGENT, Config, load_config, merge_env_config


def test_defaults():
    config = Config()

    assert config.crawl.max_pages == 50
    assert config.crawl.max_depth == 3
    assert config.crawl.respect_robots is True
    assert config.rate_limit.max_concurrent == 2
    assert config.rate_limit.min_time == 0.5
    assert config.fetch.robots_timeout == 5.0
    assert config.fetch.link_timeout == 10.0
    assert config.scanner.navigation_timeout == 30.0
    assert config.scanner.max_penalty == 90
    assert config.fetch.user_agent == DEFAULT_USER_AGENT


def test_from_dict_round_trip():
    config = Config.from_dict({"crawl": {"max_pages": 5}, "scanner": {"headless": False}})

    assert config.crawl.max_pages == 5
    assert config.crawl.max_depth == 3
    assert config.scanner.headless is False
    assert Config.from_dict(config.to_dict()).to_dict() == config.to_dict()


def test_load_yaml_file(tmp_path):
    path = tmp_path / "sitescan.yaml"
    path.write_text("crawl:\n  max_pages: 12\nrate_limit:\n  min_time: 0.25\n")

    config = load_config(str(path))

    assert config.crawl.max_pages == 12
    assert config.rate_limit.min_time == 0.25


def test_load_json_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"database": {"path": "/tmp/x.db"}}))

    assert load_config(str(path)).database.path == "/tmp/x.db"


def test_search_order_uses_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".sitescan.yml").write_text("crawl:\n  max_depth: 1\n")

    assert load_config().crawl.max_depth == 1


def test_missing_explicit_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_unsupported_format(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("")

    with pytest.raises(ValueError):
        load_config(str(path))


def test_merge_env_config(monkeypatch):
    monkeypatch.setenv("SITESCAN_MAX_PAGES", "9")
    monkeypatch.setenv("SITESCAN_RESPECT_ROBOTS", "false")
    monkeypatch.setenv("SITESCAN_MIN_TIME", "0")
    monkeypatch.setenv("SITESCAN_USER_AGENT", "Bot/2.0")
    monkeypatch.setenv("SITESCAN_DB_PATH", "/tmp/test.db")

    config = merge_env_config(Config())

    assert config.crawl.max_pages == 9
    assert config.crawl.respect_robots is False
    assert config.rate_limit.min_time == 0.0
    assert config.fetch.user_agent == "Bot/2.0"
    assert config.database.path == "/tmp/test.db"
