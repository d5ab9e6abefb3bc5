"""Route pattern compilation and matching.

Patterns are literal path text with placeholders:

- ``[name]`` captures one or more characters other than ``/``
- ``[name:(constraint)]`` captures with ``constraint`` as the regular
  expression body, e.g. ``/users/[id:(\\d+)]``

Literal text is escaped, so a pattern without placeholders only matches the
identical path. Matching is anchored at both ends.
"""

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple, Union

from .exceptions import InvalidPatternError
from .models import MatchResult

DEFAULT_CONSTRAINT = "[^/]+"

_NAME = re.compile(r"\w+")
_NO_MATCH = MatchResult(False)


@dataclass(frozen=True)
class Placeholder:
    """A ``[name]`` or ``[name:(constraint)]`` token of a route pattern."""

    name: str
    constraint: Optional[str]
    source: str

    def to_regex(self) -> str:
        return f"(?P<{self.name}>{self.constraint or DEFAULT_CONSTRAINT})"


Token = Union[str, Placeholder]


def _find_group_end(text: str, start: int) -> int:
    """Return the index of the ``)`` closing the group opened at ``start``.

    Escaped characters and parentheses inside character classes do not
    count towards nesting.
    """
    depth = 0
    i = start
    while i < len(text):
        char = text[i]
        if char == "\\":
            i += 2
            continue
        if char == "[":
            # Skip the whole character class; a leading ']' is literal
            i += 1
            if i < len(text) and text[i] == "^":
                i += 1
            if i < len(text) and text[i] == "]":
                i += 1
            while i < len(text) and text[i] != "]":
                if text[i] == "\\":
                    i += 1
                i += 1
            i += 1
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise InvalidPatternError(f"Unbalanced parentheses in constraint of pattern '{text}'")


def tokenize(text: str) -> List[Token]:
    """Split a route pattern into literal strings and placeholders."""
    tokens: List[Token] = []
    literal: List[str] = []
    i = 0

    def flush():
        if literal:
            tokens.append("".join(literal))
            literal.clear()

    while i < len(text):
        if text[i] == "[":
            name_match = _NAME.match(text, i + 1)
            if name_match:
                name = name_match.group()
                end = name_match.end()
                if text.startswith("]", end):
                    flush()
                    tokens.append(Placeholder(name, None, text[i:end + 1]))
                    i = end + 1
                    continue
                if text.startswith(":(", end):
                    close = _find_group_end(text, end + 1)
                    if not text.startswith("]", close + 1):
                        raise InvalidPatternError(
                            f"Placeholder '{name}' in pattern '{text}' is not closed with ']'"
                        )
                    constraint = text[end + 2:close]
                    if not constraint.strip():
                        raise InvalidPatternError(
                            f"Placeholder '{name}' in pattern '{text}' has an empty constraint"
                        )
                    flush()
                    tokens.append(Placeholder(name, constraint, text[i:close + 2]))
                    i = close + 2
                    continue
        literal.append(text[i])
        i += 1

    flush()
    return tokens


class RoutePattern:
    """A compiled route pattern."""

    def __init__(self, text: str):
        self.text = text
        self._tokens = tokenize(text)
        self.placeholders: Tuple[str, ...] = tuple(
            token.name for token in self._tokens if isinstance(token, Placeholder)
        )

        duplicates = {name for name in self.placeholders if self.placeholders.count(name) > 1}
        if duplicates:
            raise InvalidPatternError(
                f"Pattern '{text}' repeats parameter(s): {', '.join(sorted(duplicates))}"
            )

        source = "".join(
            token.to_regex() if isinstance(token, Placeholder) else re.escape(token)
            for token in self._tokens
        )
        try:
            self.regex = re.compile(source)
        except re.error as e:
            raise InvalidPatternError(f"Pattern '{text}' does not compile: {e}") from e

    @property
    def is_static(self) -> bool:
        return not self.placeholders

    def match(self, path: str) -> MatchResult:
        """Match a request path (query string already stripped)."""
        found = self.regex.fullmatch(path)
        if found is None:
            return _NO_MATCH
        groups = found.groupdict()
        return MatchResult(True, MappingProxyType({name: groups[name] for name in self.placeholders}))

    def build(self, params: Mapping[str, Any]) -> str:
        """Substitute placeholders with values; unknown placeholders stay as written."""
        parts = []
        for token in self._tokens:
            if isinstance(token, Placeholder):
                parts.append(str(params[token.name]) if token.name in params else token.source)
            else:
                parts.append(token)
        return "".join(parts)

    def __repr__(self) -> str:
        return f"RoutePattern({self.text!r})"
