"""Require Checker — compares the namespaces a file uses with those it requires.

For every analyzed file, usages are gathered from code (dotted identifier
chains) and from doc comments (JSDoc type expressions), resolved to the
most specific provided namespace, and compared with the file's
``goog.require`` list:

- missing: used, but neither required nor provided by the file itself
- unnecessary: required, but never used

Extern files contribute provides to the registry but are not checked.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from nsdeps.matcher import (
    NamespaceMatcher,
    ProvideRegistry,
    UsageKind,
    UsageMatchCache,
    identifiers_used,
    types_used,
)
from nsdeps.sources import SourceFile, find_sources

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


# ── Data Classes ──


@dataclass
class FileCheckResult:
    """Flagged namespaces of a single file, each list sorted."""

    missing: list[str] = field(default_factory=list)
    unnecessary: list[str] = field(default_factory=list)


@dataclass
class RequireCheckResult:
    """Outcome of a checker run.

    Attributes:
        missing_by_path: Path -> sorted namespaces used but not required.
            Only files with at least one entry appear.
        unnecessary_by_path: Path -> sorted namespaces required but unused.
        files_checked: Number of analyzed (non-extern) files.
        files_unparsed: Paths whose tokens could not be read; they are
            reported clean.
        duration_ms: Wall-clock time of the run.
    """

    missing_by_path: dict[str, list[str]] = field(default_factory=dict)
    unnecessary_by_path: dict[str, list[str]] = field(default_factory=dict)
    files_checked: int = 0
    files_unparsed: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def has_issues(self) -> bool:
        return bool(self.missing_by_path or self.unnecessary_by_path)

    def as_text(self) -> str:
        """Render the console report: missing requires, then unnecessary."""
        lines: list[str] = [f"Missing requires: {len(self.missing_by_path)}"]
        for path in sorted(self.missing_by_path):
            lines.append(path)
            lines.extend(f"\t{ns}" for ns in self.missing_by_path[path])
        if self.missing_by_path:
            lines.append("\n")

        lines.append(f"Unnecessary requires: {len(self.unnecessary_by_path)}")
        for path in sorted(self.unnecessary_by_path):
            lines.append(path)
            lines.extend(f"\t{ns}" for ns in self.unnecessary_by_path[path])
        return "\n".join(lines)

    def as_dict(self) -> dict:
        """JSON-serializable form, keys sorted by path."""
        return {
            "files_checked": self.files_checked,
            "files_unparsed": sorted(self.files_unparsed),
            "missing_requires": {
                path: self.missing_by_path[path] for path in sorted(self.missing_by_path)
            },
            "unnecessary_requires": {
                path: self.unnecessary_by_path[path]
                for path in sorted(self.unnecessary_by_path)
            },
        }


# ── Require Checker ──


class RequireChecker:
    """Finds missing and unnecessary requires across a set of JS files.

    Usage::

        checker = RequireChecker(["src/"], extern_files=["externs/"])
        checker.set_exclude_provides(["goog"])
        result = checker.check_all()
        for path, namespaces in result.missing_by_path.items():
            ...

    Each ``check_all`` starts a fresh usage match cache, so changing the
    exclusions between runs takes effect.  Not safe for concurrent runs.
    """

    def __init__(
        self,
        js_files: Iterable[str | Path],
        extern_files: Optional[Iterable[str | Path]] = None,
        exclude_provides: Optional[Iterable[str]] = None,
        print_result: bool = True,
    ) -> None:
        self.js_files = list(js_files)
        self.extern_files = list(extern_files or [])
        self._exclude_provides = list(exclude_provides) if exclude_provides else None
        self._print_result = print_result
        self._match_cache = UsageMatchCache()
        self._matcher: Optional[NamespaceMatcher] = None

    # ── Configuration ──

    def get_exclude_provides(self) -> Optional[list[str]]:
        return self._exclude_provides

    def set_exclude_provides(self, provides: Iterable[str]) -> None:
        self._exclude_provides = list(provides)

    def is_result_print(self) -> bool:
        return self._print_result

    def set_result_print(self, enable: bool) -> None:
        self._print_result = enable

    @property
    def match_cache(self) -> UsageMatchCache:
        return self._match_cache

    # ── Checking ──

    def check_file(self, source: SourceFile, registry: ProvideRegistry) -> FileCheckResult:
        """Compare one file's usages with its declared requires.

        A file without token streams yields an empty result.
        """
        if source.parsed is None:
            return FileCheckResult()

        matcher = self._matcher_for(registry)
        used = matcher.resolve_all(identifiers_used(source.parsed.tokens), UsageKind.CODE)
        used |= matcher.resolve_all(types_used(source.parsed.comments), UsageKind.DOC)

        declared = set(source.provides) | set(source.requires)
        return FileCheckResult(
            missing=sorted(ns for ns in used if ns not in declared),
            unnecessary=sorted(ns for ns in source.requires if ns not in used),
        )

    def _matcher_for(self, registry: ProvideRegistry) -> NamespaceMatcher:
        """One matcher per registry, so candidate patterns compile once."""
        matcher = self._matcher
        if (
            matcher is None
            or matcher.registry is not registry
            or matcher.cache is not self._match_cache
        ):
            matcher = self._matcher = NamespaceMatcher(registry, self._match_cache)
        return matcher

    def check_all(self) -> RequireCheckResult:
        """Check every js file against the provides of js and extern files.

        Raises:
            DiscoveryError: If any js or extern path is missing or
                unreadable.  Nothing is checked in that case.
        """
        run_start = time.monotonic()
        self._match_cache = UsageMatchCache()
        self._matcher = None

        stage_start = time.monotonic()
        js_sources = find_sources(self.js_files)
        extern_sources = find_sources(self.extern_files) if self.extern_files else []
        logger.info(
            "Found %d sources and %d externs (%.1f ms)",
            len(js_sources), len(extern_sources), _elapsed_ms(stage_start),
        )

        registry = ProvideRegistry.from_sources(
            js_sources + extern_sources,
            exclude=self._exclude_provides or (),
        )
        logger.info("Registry holds %d provides", len(registry))

        stage_start = time.monotonic()
        result = RequireCheckResult(files_checked=len(js_sources))
        for source in js_sources:
            if source.parsed is None:
                result.files_unparsed.append(source.path)
            info = self.check_file(source, registry)
            if info.missing:
                result.missing_by_path[source.path] = info.missing
            if info.unnecessary:
                result.unnecessary_by_path[source.path] = info.unnecessary
        logger.info(
            "Wrong requires found in %d files (%.1f ms)",
            len(set(result.missing_by_path) | set(result.unnecessary_by_path)),
            _elapsed_ms(stage_start),
        )

        result.duration_ms = _elapsed_ms(run_start)
        logger.info("Total time: %.1f ms", result.duration_ms)

        if self._print_result:
            print(result.as_text())

        return result
