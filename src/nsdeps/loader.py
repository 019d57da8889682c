"""Loader Script Synthesizer — renders one self-loading bootstrap per bundle.

Each artifact is a small script that fetches the bundle's files and
injects them into ``<head>`` in dependency order.  Two strategies:

- ``SYNC``: blocking XHR per file, written as soon as it arrives.
- ``ASYNC``: all XHRs issued at once; completed texts are parked in slots
  and written strictly in list order (see ``ScriptSlots``), then
  ``window.onGoogleClosureSourceLoad`` is called if defined.

The root artifact also installs the build defines and the module graph.
A bundle may carry a ``CustomRenderer`` that replaces the whole script.
Rendering is pure templating: no file or network I/O happens here.
"""

import json
import os
import posixpath
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Union

if TYPE_CHECKING:
    from nsdeps.modules import Module, ModuleTree

# ── Constants ──

_PLACEHOLDER_RE = re.compile(r"%(defines|moduleInfo|moduleUris|name|productionUri|files)%")

_ROOT_HEADER = """\
CLOSURE_DEFINES=%defines%;
CLOSURE_NO_DEPS=true;
MODULE_USE_DEBUG_MODE=true;
MODULE_INFO=%moduleInfo%;
MODULE_URIS=%moduleUris%;

"""

_BODY_START = r"""(function(deps) {
  var head = document.getElementsByTagName('head')[0];

  if (!head) {
    return;
  }

  var writeScript = function(text, src, isModule) {
    if (!text) {
      return;
    }

    if (isModule) {
      text = 'goog.loadModule(function(exports) {"use strict";' + text +
          '\n;return exports});\n//# sourceURL=' + src + '\n';
    } else {
      text += '\n//# sourceURL=' + src;
    }

    var script = document.createElement('script');

    try {
      script.appendChild(document.createTextNode(text));
    } catch (e) {
      // Old IE script elements reject child nodes
      script.text = text;
    }

    head.appendChild(script);
  };
"""

_SYNC_BODY = r"""
  var fetchSync = function(src) {
    try {
      var xhr = new XMLHttpRequest();
      xhr.open('GET', src, false);
      xhr.send();

      return xhr.status == 0 || xhr.status == 200 ? xhr.responseText : null;
    } catch (e) {
      return null;
    }
  };

  for (var i = 0; i < deps.length; i++) {
    writeScript(fetchSync(deps[i][0]), deps[i][0], deps[i][1]);
  }
"""

_ASYNC_BODY = r"""
  var PENDING = 0;
  var READY = 1;
  var WRITTEN = 2;
  var states = [];
  var texts = [];
  var nextIndex = 0;

  var advance = function() {
    while (nextIndex < deps.length && READY == states[nextIndex]) {
      writeScript(texts[nextIndex], deps[nextIndex][0], deps[nextIndex][1]);
      texts[nextIndex] = null;
      states[nextIndex] = WRITTEN;
      nextIndex++;
    }

    if (nextIndex == deps.length &&
        'function' == typeof window.onGoogleClosureSourceLoad) {
      window.onGoogleClosureSourceLoad();
    }
  };

  var request = function(index) {
    var xhr = new XMLHttpRequest();
    xhr.onreadystatechange = function() {
      if (4 != xhr.readyState) {
        return;
      }

      texts[index] = 400 > xhr.status && xhr.responseText ?
          xhr.responseText : null;
      states[index] = READY;
      advance();
    };
    xhr.open('GET', deps[index][0]);
    xhr.send();
  };

  for (var i = 0; i < deps.length; i++) {
    states[i] = PENDING;
  }

  for (var j = 0; j < deps.length; j++) {
    request(j);
  }
"""


class LoadStrategy(Enum):
    """How a generated loader fetches its files."""

    SYNC = "sync"
    ASYNC = "async"


# ── Data Classes ──


@dataclass(frozen=True)
class LoaderEntry:
    """One file of a bundle as the loader sees it."""

    uri: str
    is_module: bool = False


@dataclass
class RenderContext:
    """Tree-wide inputs of a render plus the writer driving it.

    Attributes:
        production_uri: URI prefix bundles are served from.
        output_path_prefix: Filesystem prefix artifacts are written to.
        defines: Build constants, embedded as JSON in the root artifact.
        module_info: Bundle name -> names of the bundles it depends on.
        module_uris: Bundle name -> URIs of its loader artifact.
        strategy: Load strategy of default-rendered bundles.
        writer: The object running the build, handed to custom renderers.
    """

    production_uri: str = ""
    output_path_prefix: str = ""
    defines: Mapping[str, Any] = field(default_factory=dict)
    module_info: dict[str, list[str]] = field(default_factory=dict)
    module_uris: dict[str, list[str]] = field(default_factory=dict)
    strategy: LoadStrategy = LoadStrategy.SYNC
    writer: Any = None

    @classmethod
    def from_tree(
        cls,
        tree: "ModuleTree",
        defines: Optional[Mapping[str, Any]] = None,
        strategy: LoadStrategy = LoadStrategy.SYNC,
        writer: Any = None,
    ) -> "RenderContext":
        return cls(
            production_uri=tree.production_uri,
            output_path_prefix=tree.output_path_prefix,
            defines=dict(defines or {}),
            module_info=tree.module_info,
            module_uris=tree.module_uris,
            strategy=strategy,
            writer=writer,
        )

    def entries(self, module: "Module") -> list[LoaderEntry]:
        """Loader entries of ``module``, URIs relative to its artifact."""
        web_dir = posixpath.dirname(self.production_uri + module.name + ".js")
        out_dir = os.path.dirname(
            os.path.abspath(self.output_path_prefix + module.name + ".js")
        )
        entries = []
        for source in module.deps:
            rel = os.path.relpath(source.path, out_dir).replace(os.sep, "/")
            entries.append(LoaderEntry(uri=web_dir + "/" + rel, is_module=source.is_module))
        return entries

    def placeholders(self, module: "Module") -> dict[str, str]:
        return {
            "defines": json.dumps(dict(self.defines), separators=(",", ":")),
            "moduleInfo": json.dumps(self.module_info, separators=(",", ":")),
            "moduleUris": json.dumps(self.module_uris, separators=(",", ":")),
            "name": module.name,
            "productionUri": self.production_uri,
            "files": json.dumps([e.uri for e in self.entries(module)], separators=(",", ":")),
        }


def substitute_placeholders(text: str, values: Mapping[str, str]) -> str:
    """Replace ``%name%`` style placeholders in one pass."""
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], text)


# ── Async ordering model ──


class SlotState(Enum):
    PENDING = "pending"
    READY = "ready"
    WRITTEN = "written"


class ScriptSlots:
    """Write-ordering state machine of the asynchronous loader.

    Fetches complete in any order; ``complete`` parks the text in its slot
    and ``advance`` writes every consecutive ready slot from the lowest
    unwritten index, stopping at the first pending one.  The generated
    JavaScript implements the same transitions.
    """

    def __init__(self, count: int) -> None:
        self.states = [SlotState.PENDING] * count
        self.texts: list[Optional[str]] = [None] * count
        self.next_index = 0

    @property
    def done(self) -> bool:
        return self.next_index == len(self.states)

    def complete(self, index: int, text: Optional[str]) -> list[int]:
        """Record a finished fetch; return the indices written as a result.

        A failed fetch passes ``None``: its slot is still written (as
        nothing) so later slots are not held back.
        """
        if self.states[index] is not SlotState.PENDING:
            raise ValueError(f"Slot {index} already completed")
        self.texts[index] = text
        self.states[index] = SlotState.READY
        return self.advance()

    def advance(self) -> list[int]:
        written = []
        while not self.done and self.states[self.next_index] is SlotState.READY:
            self.states[self.next_index] = SlotState.WRITTEN
            written.append(self.next_index)
            self.next_index += 1
        return written


# ── Renderers ──


class DefaultRenderer:
    """Header (root only) plus the strategy-specific loader body."""

    def render(self, module: "Module", context: RenderContext) -> str:
        deps = json.dumps(
            [[e.uri, e.is_module] for e in context.entries(module)],
            separators=(",", ":"),
        )
        body = _ASYNC_BODY if context.strategy is LoadStrategy.ASYNC else _SYNC_BODY
        header = _ROOT_HEADER if module.parent is None else ""
        return header + _BODY_START + body + "})(" + deps + ");\n"


class CustomRenderer:
    """A per-bundle override owning the complete artifact text.

    ``handle`` is either a ``(context, module) -> str`` callable or a
    template string; both may use the ``%name%`` style placeholders.
    """

    def __init__(self, handle: Union[Callable[[RenderContext, "Module"], str], str]) -> None:
        if not callable(handle) and not isinstance(handle, str):
            raise TypeError(f"Renderer must be a callable or a string, got {type(handle).__name__}")
        self.handle = handle

    def render(self, module: "Module", context: RenderContext) -> str:
        if isinstance(self.handle, str):
            return self.handle
        return self.handle(context, module)


class LoaderScriptSynthesizer:
    """Picks a bundle's renderer and fills in placeholders.

    Usage::

        synthesizer = LoaderScriptSynthesizer()
        context = RenderContext.from_tree(tree, defines={"DEBUG": False})
        text = synthesizer.render(tree.root, context)
    """

    def __init__(self, default: Optional[DefaultRenderer] = None) -> None:
        self._default = default or DefaultRenderer()

    def renderer_for(self, module: "Module") -> Union[DefaultRenderer, CustomRenderer]:
        return module.renderer or self._default

    def render(self, module: "Module", context: RenderContext) -> str:
        text = self.renderer_for(module).render(module, context)
        return substitute_placeholders(text, context.placeholders(module))
