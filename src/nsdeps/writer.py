"""Module Deps Writer — writes one loader artifact per bundle.

Parses the module tree, saves the declaration cache (best-effort), then
walks the tree writing ``<output_path_prefix><name>.js`` for each bundle,
a parent strictly before its children.  The first failed write stops the
walk; nothing after it is attempted.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional

from nsdeps.cache import SourceCache
from nsdeps.errors import CachePersistError, NsDepsError, WriteError
from nsdeps.loader import LoaderScriptSynthesizer, LoadStrategy, RenderContext
from nsdeps.modules import ManifestConfig, Module, ModuleParser, ModuleTree

logger = logging.getLogger(__name__)


class WriterState(Enum):
    UNBUILT = "unbuilt"
    PARSING = "parsing"
    PARSE_FAILED = "parse_failed"
    PARSED = "parsed"
    WRITING = "writing"
    WRITE_FAILED = "write_failed"
    DONE = "done"


@dataclass
class BuildResult:
    """Artifacts written by a build, in write order."""

    written: list[Path] = field(default_factory=list)
    duration_ms: float = 0.0


def write_file(path: Path, content: str) -> None:
    """Write ``content`` to ``path``, creating parent directories.

    Raises:
        WriteError: If the file cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise WriteError(f"Could not write {path}: {e}") from e


class ModuleDepsWriter:
    """Generates the loader scripts of every bundle in a manifest.

    Usage::

        writer = ModuleDepsWriter("modules.json", ["src/"], defines={"DEBUG": True})
        writer.set_async(True)
        result = writer.build()

    One run per instance.
    """

    def __init__(
        self,
        config: ManifestConfig,
        js_files: Iterable[str | Path],
        cache_file: Optional[str | Path] = None,
        defines: Optional[Mapping[str, Any]] = None,
        load_async: bool = False,
    ) -> None:
        self._cache = SourceCache(cache_file) if cache_file else None
        self._parser = ModuleParser(config, js_files, self._cache)
        self._defines = dict(defines) if defines else None
        self._load_async = load_async
        self._synthesizer = LoaderScriptSynthesizer()
        self._state = WriterState.UNBUILT

    # ── Configuration ──

    def is_async(self) -> bool:
        return self._load_async

    def set_async(self, load_async: bool) -> None:
        self._load_async = load_async

    def get_defines_map(self) -> Optional[dict[str, Any]]:
        return self._defines

    def set_defines_map(self, defines: Mapping[str, Any]) -> None:
        self._defines = dict(defines)

    def get_cache(self) -> Optional[SourceCache]:
        return self._cache

    def get_parser(self) -> ModuleParser:
        return self._parser

    @property
    def state(self) -> WriterState:
        return self._state

    @property
    def strategy(self) -> LoadStrategy:
        return LoadStrategy.ASYNC if self._load_async else LoadStrategy.SYNC

    # ── Build ──

    def build(
        self, callback: Optional[Callable[[Optional[Exception]], None]] = None
    ) -> Optional[BuildResult]:
        """Parse the manifest and write every bundle's loader.

        Without ``callback`` errors are raised.  With one, it is called with
        the error or ``None`` and the error is not raised.

        Raises:
            ManifestError, DiscoveryError: If the tree cannot be parsed.
            WriteError: If an artifact cannot be written.
        """
        try:
            result = self._build()
        except NsDepsError as e:
            if callback is None:
                raise
            callback(e)
            return None
        if callback is not None:
            callback(None)
        return result

    def _build(self) -> BuildResult:
        start = time.monotonic()

        self._state = WriterState.PARSING
        try:
            tree = self._parser.parse()
        except NsDepsError:
            self._state = WriterState.PARSE_FAILED
            raise
        self._state = WriterState.PARSED
        logger.info("Module tree parsed (%.1f ms)", (time.monotonic() - start) * 1000)

        if self._cache is not None:
            try:
                self._cache.save()
            except CachePersistError as e:
                logger.warning("%s", e)

        self._state = WriterState.WRITING
        result = BuildResult()
        context = RenderContext.from_tree(
            tree, defines=self._defines, strategy=self.strategy, writer=self
        )
        try:
            self._write_module(tree, tree.root, context, result)
        except WriteError:
            self._state = WriterState.WRITE_FAILED
            raise
        self._state = WriterState.DONE

        result.duration_ms = (time.monotonic() - start) * 1000
        logger.info("Wrote %d loaders (%.1f ms)", len(result.written), result.duration_ms)
        return result

    def render(self, tree: ModuleTree, module: Module) -> str:
        """Loader text of one bundle, as ``build`` would write it."""
        context = RenderContext.from_tree(
            tree, defines=self._defines, strategy=self.strategy, writer=self
        )
        return self._synthesizer.render(module, context)

    def _write_module(
        self,
        tree: ModuleTree,
        module: Module,
        context: RenderContext,
        result: BuildResult,
    ) -> None:
        path = tree.output_path(module)
        write_file(path, self._synthesizer.render(module, context))
        result.written.append(path)
        logger.info("Wrote %s (%d files)", path, len(module.deps))

        for child in module.children:
            self._write_module(tree, child, context, result)


def build_modules(
    config: ManifestConfig,
    js_files: Iterable[str | Path],
    cache_file: Optional[str | Path] = None,
    defines: Optional[Mapping[str, Any]] = None,
    load_async: bool = False,
    callback: Optional[Callable[[Optional[Exception]], None]] = None,
) -> Optional[BuildResult]:
    """One-call form of ``ModuleDepsWriter(...).build(callback)``."""
    writer = ModuleDepsWriter(
        config, js_files, cache_file=cache_file, defines=defines, load_async=load_async
    )
    return writer.build(callback)
