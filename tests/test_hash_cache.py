"""Tests for the image content hash cache."""

from __future__ import annotations

import json
from pathlib import Path

from wikirag.index.hash_cache import HashCache
from wikirag.models import AssetRecord


class TestHashCache:
    """Test HashCache persistence and lookups."""

    def test_empty_when_missing(self, tmp_path: Path) -> None:
        cache = HashCache(tmp_path / "cache.json")

        assert len(cache) == 0
        assert cache.get("a.png") is None

    def test_record_persists_immediately(self, tmp_path: Path) -> None:
        """Should write the file on every record call."""
        path = tmp_path / "nested" / "cache.json"
        cache = HashCache(path)

        cache.record("a.png", "abc")

        assert json.loads(path.read_text()) == {"a.png": "abc"}
        assert HashCache(path).get("a.png") == "abc"

    def test_is_unchanged(self, tmp_path: Path) -> None:
        cache = HashCache(tmp_path / "cache.json")
        cache.record("a.png", "abc")

        assert cache.is_unchanged("a.png", "abc")
        assert not cache.is_unchanged("a.png", "def")
        assert not cache.is_unchanged("b.png", "abc")

    def test_record_overwrites(self, tmp_path: Path) -> None:
        cache = HashCache(tmp_path / "cache.json")
        cache.record("a.png", "abc")
        cache.record("a.png", "def")

        assert len(cache) == 1
        assert cache.records() == [AssetRecord(identifier="a.png", digest="def")]

    def test_malformed_file_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        path.write_text("not json")

        assert len(HashCache(path)) == 0

    def test_non_object_file_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        path.write_text("[1, 2]")

        assert len(HashCache(path)) == 0

    def test_clear_removes_file(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        cache = HashCache(path)
        cache.record("a.png", "abc")

        cache.clear()

        assert not path.exists()
        assert "a.png" not in cache
        assert len(cache) == 0

    def test_clear_without_file(self, tmp_path: Path) -> None:
        cache = HashCache(tmp_path / "cache.json")

        cache.clear()

        assert len(cache) == 0
