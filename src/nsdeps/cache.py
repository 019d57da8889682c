"""Declaration cache — remembers provides/requires between module builds.

Entries are keyed by absolute path and invalidated by mtime or size
changes.  Storage is a single JSON file, rewritten on ``save()``.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from nsdeps.errors import CachePersistError
from nsdeps.sources import SourceFile

logger = logging.getLogger(__name__)


def _valid_entry(entry: object) -> bool:
    """An entry is usable when it holds string lists of provides and requires."""
    if not isinstance(entry, dict):
        return False
    for key in ("provides", "requires"):
        value = entry.get(key)
        if not isinstance(value, list) or not all(isinstance(ns, str) for ns in value):
            return False
    return True


class SourceCache:
    """JSON-file cache of ``SourceFile`` declarations.

    Usage::

        cache = SourceCache("build/.nsdeps-cache.json")
        sources = find_sources(["src"], parse=False, cache=cache)
        cache.save()
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._entries: Optional[dict[str, dict]] = None
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, dict]:
        if self._entries is None:
            self._entries = {}
            if self._path.is_file():
                try:
                    data = json.loads(self._path.read_text(encoding="utf-8"))
                    if isinstance(data, dict):
                        self._entries = {
                            key: entry for key, entry in data.items() if _valid_entry(entry)
                        }
                        if len(self._entries) != len(data):
                            logger.warning(
                                "Ignoring %d malformed entries in cache %s",
                                len(data) - len(self._entries), self._path,
                            )
                    else:
                        logger.warning("Ignoring cache %s: not a JSON object", self._path)
                except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
                    logger.warning("Ignoring unreadable cache %s: %s", self._path, e)
        return self._entries

    def get(self, path: Path, stat: os.stat_result) -> Optional[SourceFile]:
        """Return the cached declarations for ``path`` if still current."""
        entry = self._load().get(str(path))
        if not entry or entry.get("mtime") != stat.st_mtime or entry.get("size") != stat.st_size:
            logger.debug("Cache miss: %s", path)
            return None
        return SourceFile(
            path=str(path),
            provides=list(entry["provides"]),
            requires=list(entry["requires"]),
            is_module=bool(entry.get("is_module", False)),
        )

    def put(self, source: SourceFile, stat: os.stat_result) -> None:
        self._load()[source.path] = {
            "mtime": stat.st_mtime,
            "size": stat.st_size,
            "provides": source.provides,
            "requires": source.requires,
            "is_module": source.is_module,
        }
        self._dirty = True

    def save(self) -> None:
        """Write the cache file if anything changed.

        Raises:
            CachePersistError: If the file cannot be written.
        """
        if not self._dirty:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(self._load(), indent=1, sort_keys=True) + "\n",
                encoding="utf-8",
            )
        except OSError as e:
            raise CachePersistError(f"Could not save cache {self._path}: {e}") from e
        self._dirty = False
