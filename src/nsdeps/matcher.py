"""Namespace matching — resolves raw usages to declared namespaces.

Three pieces:

- ``ProvideRegistry``: the namespaces provided across one run's corpus,
  minus exclusions, ordered so the most specific candidate is tried first.
- ``identifiers_used`` / ``types_used``: usage strings from a file's
  tokens (dotted identifier chains) and doc comments (type names).
- ``NamespaceMatcher``: resolves a usage string to the first matching
  candidate, memoized in a ``UsageMatchCache``.

Candidates are sorted in descending lexicographic order, so a namespace is
always tried before any namespace that is a string prefix of it: with
provides ``a.b`` and ``a.b.C``, the usage ``a.b.C.d`` resolves to
``a.b.C``.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence

from nsdeps.jsdoc import get_types
from nsdeps.sources import SourceFile
from nsdeps.tokenizer import Comment, Token

logger = logging.getLogger(__name__)

# ── Constants ──

_PROTOTYPE = "prototype"

# Characters that continue an identifier after a matched prefix
_WORD_CHAR_RE = re.compile(r"[\w$]")

# Doc comments start with "/**" but banners like "/*****" do not count
_DOC_COMMENT_RE = re.compile(r"\*[^*]")


class UsageKind(Enum):
    """Where a usage string came from."""

    CODE = "code"
    DOC = "doc"


# ── Registry ──


class ProvideRegistry:
    """Immutable snapshot of the namespaces provided in one run.

    The first file to provide a namespace owns it; later duplicates are
    logged and ignored.
    """

    def __init__(
        self,
        provides: Iterable[str],
        exclude: Iterable[str] = (),
        owners: Optional[dict[str, str]] = None,
    ) -> None:
        excluded = set(exclude)
        self._candidates = tuple(
            sorted({p for p in provides if p not in excluded}, reverse=True)
        )
        self._owners = {
            ns: path for ns, path in (owners or {}).items() if ns not in excluded
        }

    @classmethod
    def from_sources(
        cls, sources: Iterable[SourceFile], exclude: Iterable[str] = ()
    ) -> "ProvideRegistry":
        owners: dict[str, str] = {}
        for source in sources:
            for namespace in source.provides:
                if namespace in owners:
                    if owners[namespace] != source.path:
                        logger.warning(
                            "Namespace %s provided by both %s and %s",
                            namespace, owners[namespace], source.path,
                        )
                    continue
                owners[namespace] = source.path
        return cls(owners, exclude=exclude, owners=owners)

    @property
    def candidates(self) -> tuple[str, ...]:
        """Provided namespaces, descending lexicographic order."""
        return self._candidates

    def owner(self, namespace: str) -> Optional[str]:
        """Path of the file declaring ``namespace``, if known."""
        return self._owners.get(namespace)

    def __contains__(self, namespace: object) -> bool:
        return namespace in self._owners or namespace in self._candidates

    def __iter__(self):
        return iter(self._candidates)

    def __len__(self) -> int:
        return len(self._candidates)


# ── Usage Extraction ──


def _chain_name(tokens: Sequence[Token], chain: list[int]) -> str:
    """Join a chain of identifier token indices, cut at ``prototype``."""
    parts: list[str] = []
    for index in chain:
        value = tokens[index].value
        if value == _PROTOTYPE:
            break
        parts.append(value)
    return ".".join(parts)


def identifiers_used(tokens: Sequence[Token]) -> set[str]:
    """Collect dotted identifier chains (``a.b.C``) from a token stream.

    A chain is a run of identifiers separated by ``.`` punctuators.  Any
    other token ends it.  ``a.B.prototype.m`` is recorded as ``a.B``.
    """
    used: set[str] = set()
    chain: list[int] = []
    after_dot = False

    def flush() -> None:
        if chain:
            name = _chain_name(tokens, chain)
            if name:
                used.add(name)
            chain.clear()

    for i, token in enumerate(tokens):
        if token.type == "Identifier":
            if chain and not after_dot:
                flush()
            chain.append(i)
            after_dot = False
        elif token.type == "Punctuator" and token.value == "." and chain and not after_dot:
            after_dot = True
        else:
            flush()
            after_dot = False

    flush()
    return used


def types_used(
    comments: Iterable[Comment],
    extract: Callable[[str], list[str]] = get_types,
) -> set[str]:
    """Collect the type names mentioned in the doc comments of a file."""
    used: set[str] = set()
    for comment in comments:
        if comment.type == "Block" and _DOC_COMMENT_RE.match(comment.value):
            used.update(extract(comment.value))
    return used


# ── Matching ──


@dataclass
class UsageMatchCache:
    """Memo of resolved usages, one map per usage kind.

    A ``None`` value records that the usage matched no candidate.  Owned by
    a single checker and never invalidated during its run.
    """

    code: dict[str, Optional[str]] = field(default_factory=dict)
    doc: dict[str, Optional[str]] = field(default_factory=dict)

    def for_kind(self, kind: UsageKind) -> dict[str, Optional[str]]:
        return self.code if kind is UsageKind.CODE else self.doc


def match_identifier(
    used: str,
    candidates: Sequence[str],
    memo: dict[str, Optional[str]],
) -> Optional[str]:
    """Resolve a code identifier chain to the first candidate prefixing it.

    A candidate must end on a segment boundary: ``a.b`` matches ``a.b``
    and ``a.b.c`` but not ``a.bc``.
    """
    if used in memo:
        return memo[used]

    match = None
    for candidate in candidates:
        if used.startswith(candidate) and (
            len(used) == len(candidate)
            or not _WORD_CHAR_RE.match(used, len(candidate))
        ):
            match = candidate
            break

    memo[used] = match
    return match


def type_pattern(namespace: str) -> re.Pattern:
    """Regex finding ``namespace`` as a whole name inside a type expression."""
    return re.compile(
        r"(?<![A-Za-z0-9_.$])" + re.escape(namespace) + r"(?![A-Za-z0-9_$])"
    )


def match_type(
    used: str,
    candidates: Sequence[str],
    memo: dict[str, Optional[str]],
    patterns: dict[str, re.Pattern],
) -> Optional[str]:
    """Resolve a doc type expression to the first candidate named in it."""
    if used in memo:
        return memo[used]

    match = None
    for candidate in candidates:
        pattern = patterns.get(candidate)
        if pattern is None:
            pattern = patterns[candidate] = type_pattern(candidate)
        if pattern.search(used):
            match = candidate
            break

    memo[used] = match
    return match


class NamespaceMatcher:
    """Resolves usages against one registry, memoizing into a shared cache."""

    def __init__(
        self,
        registry: ProvideRegistry,
        cache: Optional[UsageMatchCache] = None,
    ) -> None:
        self._registry = registry
        self._cache = cache if cache is not None else UsageMatchCache()
        self._patterns: dict[str, re.Pattern] = {}

    @property
    def registry(self) -> ProvideRegistry:
        return self._registry

    @property
    def cache(self) -> UsageMatchCache:
        return self._cache

    def resolve(self, used: str, kind: UsageKind = UsageKind.CODE) -> Optional[str]:
        """Most specific declared namespace for ``used``, or None."""
        memo = self._cache.for_kind(kind)
        if kind is UsageKind.CODE:
            return match_identifier(used, self._registry.candidates, memo)
        return match_type(used, self._registry.candidates, memo, self._patterns)

    def resolve_all(self, usages: Iterable[str], kind: UsageKind) -> set[str]:
        resolved = set()
        for used in usages:
            namespace = self.resolve(used, kind)
            if namespace is not None:
                resolved.add(namespace)
        return resolved
