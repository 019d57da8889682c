"""Module tree — load-time bundles and the manifest parser that builds them.

A manifest names each bundle, its parent and its inputs (namespaces or
file paths).  The parser resolves every bundle's dependency list as the
closure of its inputs over ``goog.require``, dependencies first, without
the files an ancestor bundle already loads.

Manifest format::

    {
      "production_uri": "/static/js/",
      "output_path_prefix": "build/js/",
      "modules": {
        "app": {"inputs": ["app.main"]},
        "settings": {"parent": "app", "inputs": ["app.settings.Page"]}
      }
    }
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

from nsdeps.cache import SourceCache
from nsdeps.errors import ManifestError
from nsdeps.loader import CustomRenderer
from nsdeps.sources import SourceFile, find_sources

logger = logging.getLogger(__name__)

ManifestConfig = Union[dict, str, Path]


# ── Data Classes ──


@dataclass(eq=False)
class Module:
    """One bundle.  ``deps`` is in execution order and never re-sorted."""

    name: str
    parent: Optional["Module"] = field(default=None, repr=False)
    children: list["Module"] = field(default_factory=list, repr=False)
    deps: list[SourceFile] = field(default_factory=list, repr=False)
    renderer: Optional[CustomRenderer] = field(default=None, repr=False)

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def ancestors(self) -> Iterator["Module"]:
        module = self.parent
        while module is not None:
            yield module
            module = module.parent

    def walk(self) -> Iterator["Module"]:
        """This module, then its descendants, parents before children."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class ModuleTree:
    """The bundle hierarchy plus the tree-wide settings loaders need.

    Attributes:
        root: The bundle without a parent.
        production_uri: URI prefix bundles are served from.
        output_path_prefix: Filesystem prefix artifacts are written to.
        module_info: Bundle name -> names of the bundles it depends on.
        module_uris: Bundle name -> URIs of its loader artifact.
    """

    root: Module
    production_uri: str = ""
    output_path_prefix: str = ""
    module_info: dict[str, list[str]] = field(default_factory=dict)
    module_uris: dict[str, list[str]] = field(default_factory=dict)

    def walk(self) -> Iterator[Module]:
        return self.root.walk()

    def get(self, name: str) -> Optional[Module]:
        for module in self.walk():
            if module.name == name:
                return module
        return None

    def output_path(self, module: Module) -> Path:
        return Path(self.output_path_prefix + module.name + ".js")


# ── Manifest Parser ──


class ModuleParser:
    """Builds a ``ModuleTree`` from a manifest and the JS files it draws on.

    ``config`` is a manifest dict or the path of a JSON manifest.  Relative
    output prefixes in a manifest file are resolved against its directory.
    """

    def __init__(
        self,
        config: ManifestConfig,
        js_files: Iterable[str | Path],
        cache: Optional[SourceCache] = None,
    ) -> None:
        self._config = config
        self._js_files = list(js_files)
        self._cache = cache
        self._by_namespace: dict[str, SourceFile] = {}
        self._by_path: dict[str, SourceFile] = {}

    @property
    def cache(self) -> Optional[SourceCache]:
        return self._cache

    def parse(self) -> ModuleTree:
        """Resolve the manifest into a tree.

        Raises:
            ManifestError: On an invalid manifest, an unknown input, or a
                require no file provides.
            DiscoveryError: If a JS path is missing or unreadable.
        """
        config, base_dir = self._load_config()
        specs = config.get("modules")
        if not isinstance(specs, dict) or not specs:
            raise ManifestError("Manifest must define at least one module under 'modules'")

        self._index(find_sources(self._js_files, parse=False, cache=self._cache))

        root = self._build_hierarchy(specs)
        for module in root.walk():
            spec = specs[module.name]
            module.deps = self._resolve_deps(module, spec.get("inputs"), base_dir)
            wrapper = spec.get("wrapper")
            if wrapper is not None and not (isinstance(wrapper, str) or callable(wrapper)):
                raise ManifestError(
                    f"Module {module.name!r} wrapper must be a string or a callable"
                )
            if wrapper is not None:
                module.renderer = CustomRenderer(wrapper)
            logger.debug("Module %s: %d files", module.name, len(module.deps))

        production_uri = str(config.get("production_uri", ""))
        prefix = str(config.get("output_path_prefix", ""))
        if base_dir is not None and not os.path.isabs(prefix):
            prefix = os.path.join(str(base_dir), prefix)

        return ModuleTree(
            root=root,
            production_uri=production_uri,
            output_path_prefix=prefix,
            module_info={
                m.name: [m.parent.name] if m.parent else [] for m in root.walk()
            },
            module_uris={
                m.name: [production_uri + m.name + ".js"] for m in root.walk()
            },
        )

    # ── Helpers ──

    def _load_config(self) -> tuple[dict, Optional[Path]]:
        if isinstance(self._config, dict):
            return self._config, None

        path = Path(self._config).resolve()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestError(f"Could not read manifest {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ManifestError(f"Invalid JSON in manifest {path}: {e}") from e
        if not isinstance(data, dict):
            raise ManifestError(f"Manifest {path} must be a JSON object")
        return data, path.parent

    def _index(self, sources: list[SourceFile]) -> None:
        self._by_namespace = {}
        self._by_path = {}
        for source in sources:
            self._by_path[source.path] = source
            for namespace in source.provides:
                self._by_namespace.setdefault(namespace, source)

    def _build_hierarchy(self, specs: dict[str, Any]) -> Module:
        modules = {name: Module(name=name) for name in specs}
        roots: list[Module] = []

        for name, spec in specs.items():
            if not isinstance(spec, dict):
                raise ManifestError(f"Module {name!r} must be an object")
            parent_name = spec.get("parent")
            if parent_name is None:
                roots.append(modules[name])
                continue
            parent = modules.get(parent_name)
            if parent is None:
                raise ManifestError(f"Module {name!r} has unknown parent {parent_name!r}")
            modules[name].parent = parent
            parent.children.append(modules[name])

        if len(roots) != 1:
            raise ManifestError(
                f"Manifest must have exactly one root module, found {len(roots)}"
            )

        reachable = {m.name for m in roots[0].walk()}
        orphans = sorted(set(modules) - reachable)
        if orphans:
            raise ManifestError(f"Parent cycle among modules: {', '.join(orphans)}")

        return roots[0]

    def _resolve_deps(
        self, module: Module, inputs: Any, base_dir: Optional[Path]
    ) -> list[SourceFile]:
        if not inputs or not isinstance(inputs, list):
            raise ManifestError(f"Module {module.name!r} must list its inputs")

        # Files loaded by an ancestor are already on the page
        seen: set[str] = {
            dep.path for ancestor in module.ancestors() for dep in ancestor.deps
        }
        ordered: list[SourceFile] = []
        for item in inputs:
            self._collect(self._lookup_input(module, str(item), base_dir), ordered, seen)
        return ordered

    def _lookup_input(
        self, module: Module, item: str, base_dir: Optional[Path]
    ) -> SourceFile:
        source = self._by_namespace.get(item)
        if source is not None:
            return source
        path = Path(base_dir / item if base_dir is not None else item).resolve()
        source = self._by_path.get(str(path))
        if source is None:
            raise ManifestError(
                f"Module {module.name!r} input {item!r} is neither a provided "
                f"namespace nor a known file"
            )
        return source

    def _collect(self, source: SourceFile, ordered: list[SourceFile], seen: set[str]) -> None:
        """Depth-first: requires of ``source`` first, then ``source`` itself.

        Walks with an explicit stack; require chains can be thousands of
        files deep.
        """
        if source.path in seen:
            return
        seen.add(source.path)
        stack: list[tuple[SourceFile, Iterator[str]]] = [(source, iter(source.requires))]
        while stack:
            current, pending = stack[-1]
            for namespace in pending:
                dep = self._by_namespace.get(namespace)
                if dep is None:
                    raise ManifestError(
                        f"Namespace {namespace!r} required by {current.path} is not provided"
                    )
                if dep.path not in seen:
                    seen.add(dep.path)
                    stack.append((dep, iter(dep.requires)))
                    break
            else:
                stack.pop()
                ordered.append(current)

