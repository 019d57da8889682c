"""nsdeps — require checking and module loader generation for namespaced JS."""

from nsdeps.cache import SourceCache
from nsdeps.checker import FileCheckResult, RequireCheckResult, RequireChecker
from nsdeps.errors import (
    CachePersistError,
    DiscoveryError,
    JsSyntaxError,
    ManifestError,
    NsDepsError,
    ParseError,
    WriteError,
)
from nsdeps.jsdoc import get_types
from nsdeps.loader import (
    CustomRenderer,
    DefaultRenderer,
    LoaderEntry,
    LoaderScriptSynthesizer,
    LoadStrategy,
    RenderContext,
    ScriptSlots,
)
from nsdeps.matcher import (
    NamespaceMatcher,
    ProvideRegistry,
    UsageKind,
    UsageMatchCache,
    identifiers_used,
    types_used,
)
from nsdeps.modules import Module, ModuleParser, ModuleTree
from nsdeps.sources import SourceFile, find_sources
from nsdeps.tokenizer import Comment, ParsedSource, Token, tokenize
from nsdeps.writer import BuildResult, ModuleDepsWriter, WriterState, build_modules

__all__ = [
    # Tokenizer and sources
    "tokenize",
    "Token",
    "Comment",
    "ParsedSource",
    "SourceFile",
    "find_sources",
    "SourceCache",
    "get_types",
    # Matching
    "ProvideRegistry",
    "NamespaceMatcher",
    "UsageKind",
    "UsageMatchCache",
    "identifiers_used",
    "types_used",
    # Require Checker
    "RequireChecker",
    "RequireCheckResult",
    "FileCheckResult",
    # Module tree and loaders
    "Module",
    "ModuleTree",
    "ModuleParser",
    "LoadStrategy",
    "LoaderEntry",
    "RenderContext",
    "ScriptSlots",
    "DefaultRenderer",
    "CustomRenderer",
    "LoaderScriptSynthesizer",
    # Module Deps Writer
    "ModuleDepsWriter",
    "WriterState",
    "BuildResult",
    "build_modules",
    # Errors
    "NsDepsError",
    "DiscoveryError",
    "ParseError",
    "JsSyntaxError",
    "ManifestError",
    "WriteError",
    "CachePersistError",
]
