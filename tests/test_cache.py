"""Tests for the declaration cache."""

import json
import logging
import os
from unittest.mock import patch

import pytest

from nsdeps.cache import SourceCache
from nsdeps.errors import CachePersistError
from nsdeps.sources import find_sources


@pytest.fixture
def js_dir(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "foo.js").write_text("goog.module('ns.Foo');\ngoog.require('ns.Base');\n")
    (src / "base.js").write_text("goog.provide('ns.Base');\n")
    return src


class TestSourceCache:
    def test_round_trip_through_file(self, tmp_path, js_dir):
        cache_path = tmp_path / "cache" / "decls.json"
        cache = SourceCache(cache_path)
        find_sources([js_dir], parse=False, cache=cache)
        cache.save()

        data = json.loads(cache_path.read_text())
        foo = data[str((js_dir / "foo.js").resolve())]
        assert foo["provides"] == ["ns.Foo"]
        assert foo["requires"] == ["ns.Base"]
        assert foo["is_module"] is True

    def test_hit_skips_reading(self, tmp_path, js_dir):
        cache_path = tmp_path / "decls.json"
        first = SourceCache(cache_path)
        find_sources([js_dir], parse=False, cache=first)
        first.save()

        second = SourceCache(cache_path)
        with patch("nsdeps.sources.read_text_safe", side_effect=AssertionError("read")):
            sources = find_sources([js_dir], parse=False, cache=second)
        assert [s.provides for s in sources] == [["ns.Base"], ["ns.Foo"]]
        assert sources[1].is_module is True

    def test_stale_entry_ignored(self, tmp_path, js_dir):
        cache = SourceCache(tmp_path / "decls.json")
        find_sources([js_dir], parse=False, cache=cache)

        foo = js_dir / "foo.js"
        foo.write_text("goog.provide('ns.Renamed');\n")
        stat = foo.stat()
        os.utime(foo, (stat.st_atime, stat.st_mtime + 10))

        assert cache.get(foo.resolve(), foo.stat()) is None
        sources = find_sources([js_dir], parse=False, cache=cache)
        assert sources[1].provides == ["ns.Renamed"]

    def test_parse_mode_bypasses_lookup(self, tmp_path, js_dir):
        cache = SourceCache(tmp_path / "decls.json")
        find_sources([js_dir], parse=False, cache=cache)
        sources = find_sources([js_dir], parse=True, cache=cache)
        assert all(s.parsed is not None for s in sources)

    def test_corrupt_file_treated_as_empty(self, tmp_path, js_dir, caplog):
        cache_path = tmp_path / "decls.json"
        cache_path.write_text("{not json")
        cache = SourceCache(cache_path)
        with caplog.at_level(logging.WARNING, logger="nsdeps.cache"):
            sources = find_sources([js_dir], parse=False, cache=cache)
        assert len(sources) == 2
        assert "Ignoring unreadable cache" in caplog.text

    def test_save_without_changes_writes_nothing(self, tmp_path):
        cache_path = tmp_path / "decls.json"
        SourceCache(cache_path).save()
        assert not cache_path.exists()

    def test_save_failure_raises(self, tmp_path, js_dir):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        cache = SourceCache(blocker / "decls.json")
        find_sources([js_dir], parse=False, cache=cache)
        with pytest.raises(CachePersistError):
            cache.save()

    def test_malformed_entries_are_misses(self, tmp_path, js_dir, caplog):
        foo = (js_dir / "foo.js").resolve()
        base = (js_dir / "base.js").resolve()
        stat = base.stat()
        cache_path = tmp_path / "decls.json"
        cache_path.write_text(json.dumps({
            str(foo): 5,
            str(base): {
                "mtime": stat.st_mtime,
                "size": stat.st_size,
                "provides": "ns.Wrong",
                "requires": [],
            },
        }))
        cache = SourceCache(cache_path)
        with caplog.at_level(logging.WARNING, logger="nsdeps.cache"):
            sources = find_sources([js_dir], parse=False, cache=cache)
        assert [s.provides for s in sources] == [["ns.Base"], ["ns.Foo"]]
        assert "2 malformed entries" in caplog.text

    def test_non_object_file_treated_as_empty(self, tmp_path, js_dir, caplog):
        cache_path = tmp_path / "decls.json"
        cache_path.write_text("[1, 2]")
        with caplog.at_level(logging.WARNING, logger="nsdeps.cache"):
            sources = find_sources([js_dir], parse=False, cache=SourceCache(cache_path))
        assert len(sources) == 2
        assert "not a JSON object" in caplog.text
