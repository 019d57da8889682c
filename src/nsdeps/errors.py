"""Exception hierarchy shared by the checker and the module writer."""


class NsDepsError(Exception):
    """Base exception for nsdeps errors."""


class DiscoveryError(NsDepsError):
    """A source path is missing or cannot be read."""


class ParseError(NsDepsError):
    """A single source file could not be tokenized."""


class JsSyntaxError(ParseError):
    """Tokenizer hit malformed JavaScript (unterminated literal or comment)."""

    def __init__(self, message: str, lineno: int = 0):
        super().__init__(f"line {lineno}: {message}" if lineno else message)
        self.lineno = lineno


class ManifestError(NsDepsError):
    """The module manifest is invalid or references unknown inputs."""


class WriteError(NsDepsError):
    """A generated artifact could not be written."""


class CachePersistError(NsDepsError):
    """The declaration cache could not be saved."""
