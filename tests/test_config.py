"""
tests/test_config.py — YAML Configuration Tests
================================================
"""

from __future__ import annotations

import pytest

from rollcall.config import RollcallConfig, config_from_mapping, load_config
from rollcall.constants import DEFAULT_FACTION_API_BASE_URL


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_empty_file_uses_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, ""))
        assert cfg == RollcallConfig()
        assert cfg.faction_api_base_url == DEFAULT_FACTION_API_BASE_URL
        assert cfg.roster_cache_minutes == 1440

    def test_overrides(self, tmp_path):
        cfg = load_config(_write(tmp_path, (
            "faction_api_base_url: https://ucp.example/api/\n"
            "forum_api_path: /app.php/api/\n"
            "roster_cache_minutes: 30\n"
            "forum_cache_minutes: 60\n"
            "http_timeout_seconds: 2.5\n"
        )))
        assert cfg.faction_api_base_url == "https://ucp.example/api"
        assert cfg.forum_api_path == "app.php/api"
        assert (cfg.roster_cache_minutes, cfg.abas_cache_minutes, cfg.forum_cache_minutes) == (
            30, 1440, 60,
        )
        assert cfg.http_timeout_seconds == 2.5

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    @pytest.mark.parametrize("key", [
        "roster_cache_minutes", "abas_cache_minutes", "forum_cache_minutes",
    ])
    def test_non_positive_threshold_rejected(self, key):
        with pytest.raises(ValueError, match=key):
            config_from_mapping({key: 0})

    def test_frozen(self):
        cfg = RollcallConfig()
        with pytest.raises(AttributeError):
            cfg.roster_cache_minutes = 5
