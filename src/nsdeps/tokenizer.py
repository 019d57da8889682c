"""JavaScript tokenizer — token and comment streams for usage analysis.

A single-pass character scanner producing esprima-style ``{type, value}``
tokens plus ``Line``/``Block`` comments.  It does not build a syntax tree:
the require checker only needs identifier chains and doc comments.

Handles partial input strictly: unterminated strings, templates, regular
expressions and block comments raise ``JsSyntaxError`` so the caller can
treat the file as unparsed.

Pure Python. No Node.js dependency.
"""

import re
from dataclasses import dataclass, field

from nsdeps.errors import JsSyntaxError

# ── Constants ──

KEYWORDS = frozenset({
    "break",
    "case",
    "catch",
    "class",
    "const",
    "continue",
    "debugger",
    "default",
    "delete",
    "do",
    "else",
    "enum",
    "export",
    "extends",
    "finally",
    "for",
    "function",
    "if",
    "import",
    "in",
    "instanceof",
    "new",
    "return",
    "super",
    "switch",
    "this",
    "throw",
    "try",
    "typeof",
    "var",
    "void",
    "while",
    "with",
    "yield",
})

# Keywords after which a slash starts a regular expression, not a division
_REGEX_AFTER_KEYWORDS = KEYWORDS - {"this", "super"}

# Punctuators after which a slash is a division
_DIVISION_AFTER_PUNCTUATORS = frozenset({")", "]", "}"})

_PUNCTUATORS = [
    ">>>=", "...", "===", "!==", "**=", "<<=", ">>=", ">>>", "&&=", "||=",
    "??=", "=>", "==", "!=", "<=", ">=", "&&", "||", "??", "?.", "++", "--",
    "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "<<", ">>", "**",
    "{", "}", "(", ")", "[", "]", ";", ",", "<", ">", "+", "-", "*", "/",
    "%", "&", "|", "^", "!", "~", "?", ":", "=", ".", "@", "#",
]

_PUNCTUATOR_RE = re.compile(
    "|".join(re.escape(p) for p in sorted(_PUNCTUATORS, key=len, reverse=True))
)

_IDENT_RE = re.compile(r"[A-Za-z_$\u0080-\uffff][\w$\u0080-\uffff]*")

_NUMERIC_RE = re.compile(
    r"""
    0[xX][0-9a-fA-F_]+n?
    | 0[oO][0-7_]+n?
    | 0[bB][01_]+n?
    | (?:\d[\d_]*(?:\.[\d_]*)?|\.\d[\d_]*)(?:[eE][+-]?\d[\d_]*)?n?
    """,
    re.VERBOSE,
)

_WHITESPACE = frozenset(" \t\r\n\v\f\u00a0\ufeff\u2028\u2029")


# ── Data Classes ──


@dataclass
class Token:
    """A lexical token. ``value`` is the raw source text."""

    type: str  # Identifier, Keyword, Punctuator, String, Numeric, ...
    value: str
    lineno: int = 0


@dataclass
class Comment:
    """A comment body without its ``//``, ``/*`` or ``*/`` delimiters."""

    type: str  # Line or Block
    value: str
    lineno: int = 0


@dataclass
class ParsedSource:
    """Token and comment streams of one file, in source order."""

    tokens: list[Token] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)


# ── Scanner ──


class _Scanner:
    """Walks a source string once, appending tokens and comments."""

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.lineno = 1
        self.result = ParsedSource()
        # One entry per open template substitution: braces opened inside it
        self._template_braces: list[int] = []

    def run(self) -> ParsedSource:
        source = self.source
        n = len(source)

        if source.startswith("#!"):
            end = source.find("\n")
            end = n if end == -1 else end
            self._comment("Line", source[2:end], end)

        while self.pos < n:
            c = source[self.pos]

            if c in _WHITESPACE:
                if c == "\n":
                    self.lineno += 1
                self.pos += 1
                continue

            if c == "/" and source.startswith("//", self.pos):
                end = source.find("\n", self.pos)
                end = n if end == -1 else end
                self._comment("Line", source[self.pos + 2:end], end)
                continue

            if c == "/" and source.startswith("/*", self.pos):
                end = source.find("*/", self.pos + 2)
                if end == -1:
                    raise JsSyntaxError("Unterminated block comment", self.lineno)
                self._comment("Block", source[self.pos + 2:end], end + 2)
                continue

            if c in ("'", '"'):
                self._string(c)
                continue

            if c == "`":
                self._template(self.pos)
                continue

            if c == "}" and self._template_braces and self._template_braces[-1] == 0:
                self._template_braces.pop()
                self._template(self.pos)
                continue

            if c.isdigit() or (c == "." and self.pos + 1 < n and source[self.pos + 1].isdigit()):
                m = _NUMERIC_RE.match(source, self.pos)
                if m:
                    self._emit("Numeric", m.end())
                    continue

            m = _IDENT_RE.match(source, self.pos)
            if m:
                word = m.group()
                if word in KEYWORDS:
                    kind = "Keyword"
                elif word in ("true", "false"):
                    kind = "Boolean"
                elif word == "null":
                    kind = "Null"
                else:
                    kind = "Identifier"
                self._emit(kind, m.end())
                continue

            if c == "/" and self._regex_allowed():
                self._regex()
                continue

            m = _PUNCTUATOR_RE.match(source, self.pos)
            if m:
                value = m.group()
                # `a?.5:b` is a conditional, not optional chaining
                if value == "?." and m.end() < n and source[m.end()].isdigit():
                    value = "?"
                self._punctuator(value)
                continue

            # Unknown character (e.g. stray backslash): skip it
            self.pos += 1

        if self._template_braces:
            raise JsSyntaxError("Unterminated template literal", self.lineno)

        return self.result

    # ── Emitters ──

    def _emit(self, kind: str, end: int) -> None:
        value = self.source[self.pos:end]
        self.result.tokens.append(Token(kind, value, self.lineno))
        self.lineno += value.count("\n")
        self.pos = end

    def _comment(self, kind: str, body: str, end: int) -> None:
        self.result.comments.append(Comment(kind, body, self.lineno))
        self.lineno += self.source.count("\n", self.pos, end)
        self.pos = end

    def _punctuator(self, value: str) -> None:
        if self._template_braces:
            if value == "{":
                self._template_braces[-1] += 1
            elif value == "}":
                self._template_braces[-1] -= 1
        self._emit("Punctuator", self.pos + len(value))

    # ── Literals ──

    def _string(self, quote: str) -> None:
        source = self.source
        n = len(source)
        i = self.pos + 1
        while i < n:
            c = source[i]
            if c == "\\":
                i += 2
                continue
            if c == quote:
                self._emit("String", i + 1)
                return
            if c == "\n":
                break
            i += 1
        raise JsSyntaxError("Unterminated string literal", self.lineno)

    def _template(self, start: int) -> None:
        """Scan one template chunk starting at a backtick or a closing ``}``."""
        source = self.source
        n = len(source)
        i = start + 1
        while i < n:
            c = source[i]
            if c == "\\":
                i += 2
                continue
            if c == "`":
                self._emit("Template", i + 1)
                return
            if c == "$" and i + 1 < n and source[i + 1] == "{":
                self._emit("Template", i + 2)
                self._template_braces.append(0)
                return
            i += 1
        raise JsSyntaxError("Unterminated template literal", self.lineno)

    def _regex(self) -> None:
        source = self.source
        n = len(source)
        i = self.pos + 1
        in_class = False
        while i < n:
            c = source[i]
            if c == "\\":
                i += 2
                continue
            if c == "\n":
                break
            if in_class:
                if c == "]":
                    in_class = False
            elif c == "[":
                in_class = True
            elif c == "/":
                i += 1
                while i < n and (source[i].isalnum() or source[i] in "_$"):
                    i += 1
                self._emit("RegularExpression", i)
                return
            i += 1
        raise JsSyntaxError("Unterminated regular expression", self.lineno)

    def _regex_allowed(self) -> bool:
        tokens = self.result.tokens
        if not tokens:
            return True
        last = tokens[-1]
        if last.type == "Punctuator":
            return last.value not in _DIVISION_AFTER_PUNCTUATORS
        if last.type == "Keyword":
            return last.value in _REGEX_AFTER_KEYWORDS
        return False


# ── Public API ──


def tokenize(source: str) -> ParsedSource:
    """Tokenize a JavaScript source string.

    Raises:
        JsSyntaxError: On unterminated literals or comments.
    """
    return _Scanner(source).run()


def strip_comments(source: str) -> str:
    """Remove JS comments while preserving line numbers and string contents.

    Tolerant of malformed input: an unterminated literal simply runs to the
    end of the source.
    """
    result: list[str] = []
    i = 0
    n = len(source)

    while i < n:
        c = source[i]

        if c in ("'", '"', "`"):
            j = i + 1
            while j < n and source[j] != c:
                j += 2 if source[j] == "\\" else 1
            result.append(source[i:j + 1])
            i = j + 1
            continue

        if c == "/" and i + 1 < n and source[i + 1] == "/":
            while i < n and source[i] != "\n":
                i += 1
            continue

        if c == "/" and i + 1 < n and source[i + 1] == "*":
            end = source.find("*/", i + 2)
            end = n if end == -1 else end + 2
            result.append("\n" * source.count("\n", i, end))
            i = end
            continue

        result.append(c)
        i += 1

    return "".join(result)
