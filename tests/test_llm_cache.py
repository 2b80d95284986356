"""Tests for llm_cache, the disk cache for extraction responses.

Covers cache miss/hit, disabled mode, error handling (corrupt files, OS
errors), and key hashing.
"""

import importlib
from pathlib import Path
from unittest.mock import patch

import pytest

from guide_augment.config import Settings
from guide_augment.utils import llm_cache


@pytest.fixture(autouse=True)
def _enable_cache(tmp_path):
    """Point _CACHE_DIR to a temp directory for every test."""
    with patch.object(llm_cache, "_CACHE_DIR", str(tmp_path)):
        yield tmp_path


class TestCachePath:
    def test_returns_path_when_enabled(self, tmp_path):
        path = llm_cache._cache_path("gear_extraction", ["model", "body"])
        assert path is not None
        assert path.parent == tmp_path / "gear_extraction"
        assert path.suffix == ".json"

    def test_returns_none_when_disabled(self):
        with patch.object(llm_cache, "_CACHE_DIR", None):
            assert llm_cache._cache_path("ns", ["a"]) is None

    def test_returns_none_when_empty_string(self):
        with patch.object(llm_cache, "_CACHE_DIR", ""):
            assert llm_cache._cache_path("ns", ["a"]) is None

    def test_different_keys_produce_different_paths(self):
        assert llm_cache._cache_path("ns", ["m", "body a"]) != llm_cache._cache_path(
            "ns", ["m", "body b"]
        )

    def test_same_keys_produce_same_path(self):
        assert llm_cache._cache_path("ns", ["x", "y"]) == llm_cache._cache_path("ns", ["x", "y"])


class TestGetSetCached:
    def test_miss_returns_none(self):
        assert llm_cache.get_cached("ns", ["no-such-key"]) is None

    def test_round_trip(self):
        data = [{"item": "tent", "category": "shelter", "context": None}]
        llm_cache.set_cached("gear_extraction", ["m", "body"], data)
        assert llm_cache.get_cached("gear_extraction", ["m", "body"]) == data

    def test_namespaces_are_isolated(self):
        llm_cache.set_cached("ns_a", ["k"], "a")
        llm_cache.set_cached("ns_b", ["k"], "b")
        assert llm_cache.get_cached("ns_a", ["k"]) == "a"
        assert llm_cache.get_cached("ns_b", ["k"]) == "b"

    def test_corrupt_json_returns_none(self):
        llm_cache.set_cached("ns", ["k"], {"valid": True})
        llm_cache._cache_path("ns", ["k"]).write_text("not valid json{{{")
        assert llm_cache.get_cached("ns", ["k"]) is None

    def test_noop_when_disabled(self):
        with patch.object(llm_cache, "_CACHE_DIR", None):
            llm_cache.set_cached("ns", ["k"], "value")
            assert llm_cache.get_cached("ns", ["k"]) is None

    def test_set_handles_unserializable(self):
        llm_cache.set_cached("ns", ["k"], object())

    def test_set_handles_os_error(self):
        with patch.object(Path, "write_text", side_effect=OSError("disk full")):
            llm_cache.set_cached("ns", ["k"], "value")

    def test_get_handles_os_error(self):
        llm_cache.set_cached("ns", ["k"], "value")
        with patch.object(Path, "read_text", side_effect=OSError("permission denied")):
            assert llm_cache.get_cached("ns", ["k"]) is None


class TestCacheDirSetting:
    def test_cache_dir_comes_from_settings(self, monkeypatch, tmp_path):
        monkeypatch.setattr(
            "guide_augment.config.settings", Settings(_env_file=None, llm_cache_dir=str(tmp_path))
        )
        importlib.reload(llm_cache)
        assert llm_cache._CACHE_DIR == str(tmp_path)

    def test_blank_setting_disables_cache(self, monkeypatch):
        monkeypatch.setattr(
            "guide_augment.config.settings", Settings(_env_file=None, llm_cache_dir="  ")
        )
        importlib.reload(llm_cache)
        assert llm_cache._CACHE_DIR is None
