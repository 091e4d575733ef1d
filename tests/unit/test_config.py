"""
tests/unit/test_config.py
"""
from __future__ import annotations

import pytest

from linkhub import get_setting, load_settings, settings
from linkhub.exceptions import FaviconConfigError
from linkhub.favicons import config
from linkhub.favicons.config import DEFAULT_CFG_TOML_PATH, FaviconConfig


def test_default_config():
    cfg = FaviconConfig.from_toml_file(DEFAULT_CFG_TOML_PATH, use_cache=False)
    assert cfg.cfg_schema == 1
    assert cfg.cache.db_type == "mem"
    assert cfg.proxy.resolver == "google"
    assert cfg.resolve.aggregator == "google"
    assert cfg.resolve.favicon_paths[0] == "/favicon.ico"


def test_config_is_cached():
    first = FaviconConfig.from_toml_file(DEFAULT_CFG_TOML_PATH, use_cache=True)
    assert FaviconConfig.from_toml_file(DEFAULT_CFG_TOML_PATH, use_cache=True) is first
    assert str(DEFAULT_CFG_TOML_PATH) in config.TOML_CACHE


def test_custom_config(tmp_path):
    cfg_file = tmp_path / "favicons.toml"
    cfg_file.write_text(
        """
[favicons]
cfg_schema = 1

[favicons.resolve]
step_timeout = 1.5
aggregator = "duckduckgo"
"""
    )
    cfg = FaviconConfig.from_toml_file(cfg_file, use_cache=False)
    assert cfg.resolve.step_timeout == 1.5
    assert cfg.resolve.aggregator == "duckduckgo"
    assert cfg.cache.db_type == "mem"


@pytest.mark.parametrize(
    "content",
    [
        "[favicons]\n",
        "[favicons]\ncfg_schema = 2\n",
        "[favicons]\ncfg_schema = 1\n[favicons.resolve]\naggregator = 'altavista'\n",
        "this is not toml",
    ],
)
def test_invalid_config(tmp_path, content):
    cfg_file = tmp_path / "favicons.toml"
    cfg_file.write_text(content)
    with pytest.raises(FaviconConfigError):
        FaviconConfig.from_toml_file(cfg_file, use_cache=False)


def test_missing_config(tmp_path):
    with pytest.raises(FaviconConfigError):
        FaviconConfig.from_toml_file(tmp_path / "missing.toml", use_cache=False)


def test_get_setting():
    assert get_setting("server.port") == 8888
    assert get_setting("server.nope", "fallback") == "fallback"
    with pytest.raises(KeyError):
        get_setting("server.nope")


def test_load_settings(tmp_path, monkeypatch):
    settings_file = tmp_path / "settings.toml"
    settings_file.write_text('[server]\nsecret_key = "s3cret"\n[general]\ndebug = false\n')
    saved = dict(settings)
    try:
        monkeypatch.setenv("LINKHUB_SETTINGS_PATH", str(settings_file))
        load_settings()
        assert get_setting("server.secret_key") == "s3cret"
        assert get_setting("links.db_url", None) is None
    finally:
        settings.clear()
        settings.update(saved)
