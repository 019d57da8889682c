"""JSDoc type extraction — type names from doc comment bodies.

Composite expressions are split into the names they mention, so
``{Object<ns.A, ns.B>|ns.C}`` yields ``Object``, ``ns.A``, ``ns.B`` and
``ns.C``, each matched against the provides on its own.
"""

import re

# Leading " * " gutter of each doc comment line
_GUTTER_RE = re.compile(r"^[ \t]*\*+", re.MULTILINE)

# @param {T}, @type {T}, @return {T}, ... : points at the opening brace
_TAG_WITH_TYPE_RE = re.compile(r"@[A-Za-z]+[ \t\r\n]*(?=\{)")

# @extends ns.Foo  (closure also accepts the type without braces)
_BARE_TYPE_TAG_RE = re.compile(r"@(?:extends|implements|augments)[ \t]+([A-Za-z_$][\w$.]*)")

# A whole dotted name inside a type expression.  Record keys and the
# ``this:``/``new:`` markers of function types are followed by a colon
# and are not type names; ``ns.Map.<T>`` yields ``ns.Map`` and
# ``...ns.Foo`` yields ``ns.Foo``.
_TYPE_NAME_RE = re.compile(
    r"(?<![\w$])(?<![\w$]\.)[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*(?![\w$])(?!\.[\w$])(?!\s*:)"
)


def _balanced_braces(text: str, start: int) -> int:
    """Index just past the brace closing the one at ``start``, or -1."""
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return -1


def type_names(expr: str) -> list[str]:
    """Names mentioned by one type expression, in order, without repeats."""
    names: list[str] = []
    for m in _TYPE_NAME_RE.finditer(expr):
        if m.group() not in names:
            names.append(m.group())
    return names


def get_types(comment: str) -> list[str]:
    """Return the type names of a doc comment body, in order.

    ``comment`` is the text between ``/*`` and ``*/``::

        >>> get_types("* @param {Array.<ns.Foo>|ns.Bar} x\\n * @return {number} ")
        ['Array', 'ns.Foo', 'ns.Bar', 'number']
    """
    text = _GUTTER_RE.sub("", comment)
    types: list[str] = []

    for m in _TAG_WITH_TYPE_RE.finditer(text):
        end = _balanced_braces(text, m.end())
        if end == -1:
            continue
        for name in type_names(text[m.end() + 1:end - 1]):
            if name not in types:
                types.append(name)

    for m in _BARE_TYPE_TAG_RE.finditer(text):
        if m.group(1) not in types:
            types.append(m.group(1))

    return types
