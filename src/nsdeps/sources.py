"""Source discovery — finds JS files and extracts their namespace declarations.

Each file yields a ``SourceFile`` with its ``goog.provide``/``goog.module``
namespaces, its ``goog.require`` namespaces and, when requested, its token
and comment streams.  Declarations are read from comment-stripped text, so
they survive a tokenizer failure; the token streams do not.

Pure Python. No Node.js dependency.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

from nsdeps.errors import DiscoveryError, ParseError
from nsdeps.tokenizer import ParsedSource, strip_comments, tokenize

if TYPE_CHECKING:
    from nsdeps.cache import SourceCache

logger = logging.getLogger(__name__)

# ── Encoding-safe file reading ──

_UTF16_LE_BOM = b"\xff\xfe"
_UTF16_BE_BOM = b"\xfe\xff"

# ── Constants ──

JS_EXTENSIONS = {".js"}

DISCOVER_EXCLUDE_DIRS = {
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "bower_components",
    ".cache",
    "coverage",
    ".DS_Store",
}

# ── Declaration Patterns ──

# goog.provide('a.b') / goog.module('a.b') / goog.require('a.b') / goog.requireType('a.b')
_DECLARATION_RE = re.compile(
    r"""\bgoog\s*\.\s*(provide|module|require|requireType)\s*\(\s*(['"])([\w.$]+)\2\s*\)"""
)


# ── Data Classes ──


@dataclass
class SourceFile:
    """A JS file with its declared namespaces.

    ``parsed`` is None when the file was not tokenized, either because
    parsing was not requested or because tokenizing failed (``parse_error``
    then holds the reason).
    """

    path: str
    provides: list[str] = field(default_factory=list)
    requires: list[str] = field(default_factory=list)
    is_module: bool = False
    parsed: Optional[ParsedSource] = field(default=None, repr=False)
    parse_error: Optional[str] = None


# ── Helpers ──


def read_text_safe(path: Path) -> str:
    """Read a text file, handling UTF-8, UTF-16 (BOM), and latin-1 gracefully.

    Raises OSError if the file cannot be read at all.
    """
    raw = path.read_bytes()
    if raw[:2] in (_UTF16_LE_BOM, _UTF16_BE_BOM):
        return raw.decode("utf-16")
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def extract_declarations(source: str) -> tuple[list[str], list[str], bool]:
    """Return ``(provides, requires, is_module)`` declared by a JS source.

    Commented-out declarations are ignored.  Order of first appearance is
    kept; repeats are dropped.
    """
    provides: list[str] = []
    requires: list[str] = []
    is_module = False

    for m in _DECLARATION_RE.finditer(strip_comments(source)):
        kind, namespace = m.group(1), m.group(3)
        if kind in ("provide", "module"):
            if kind == "module":
                is_module = True
            if namespace not in provides:
                provides.append(namespace)
        elif namespace not in requires:
            requires.append(namespace)

    return provides, requires, is_module


# ── Discovery ──


def discover_js_files(paths: Iterable[str | Path]) -> list[Path]:
    """Expand files and directories into a sorted list of JS files.

    Raises:
        DiscoveryError: If a path does not exist.
    """
    found: set[Path] = set()
    for raw in paths:
        path = Path(raw).resolve()
        if path.is_file():
            found.add(path)
        elif path.is_dir():
            for dirpath, dirnames, filenames in os.walk(path):
                dirnames[:] = [d for d in dirnames if d not in DISCOVER_EXCLUDE_DIRS]
                for name in filenames:
                    if Path(name).suffix in JS_EXTENSIONS:
                        found.add(Path(dirpath) / name)
        else:
            raise DiscoveryError(f"Source path does not exist: {path}")
    return sorted(found)


def load_source(
    path: Path,
    parse: bool = True,
    cache: Optional["SourceCache"] = None,
) -> SourceFile:
    """Read one JS file into a ``SourceFile``.

    With ``parse=False`` a matching cache entry spares reading the file.

    Raises:
        DiscoveryError: If the file cannot be read.
    """
    try:
        stat = path.stat()
    except OSError as e:
        raise DiscoveryError(f"Could not read file {path}: {e}") from e

    if cache is not None and not parse:
        cached = cache.get(path, stat)
        if cached is not None:
            return cached

    try:
        text = read_text_safe(path)
    except OSError as e:
        raise DiscoveryError(f"Could not read file {path}: {e}") from e

    provides, requires, is_module = extract_declarations(text)
    source = SourceFile(
        path=str(path),
        provides=provides,
        requires=requires,
        is_module=is_module,
    )

    if parse:
        try:
            source.parsed = tokenize(text)
        except ParseError as e:
            source.parse_error = str(e)
            logger.debug("Skipping tokens of %s: %s", path, e)

    if cache is not None:
        cache.put(source, stat)

    return source


def find_sources(
    paths: Iterable[str | Path],
    parse: bool = True,
    cache: Optional["SourceCache"] = None,
) -> list[SourceFile]:
    """Discover and load every JS file under ``paths``.

    Raises:
        DiscoveryError: If any path is missing or unreadable.  No partial
            result is returned.
    """
    return [load_source(p, parse=parse, cache=cache) for p in discover_js_files(paths)]
