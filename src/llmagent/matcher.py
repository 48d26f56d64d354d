# src/llmagent/matcher.py
"""Glob patterns compiled into full-string path matchers.

A pattern is split into tokens:

* ``*`` matches any run of characters, path separators included, so
  ``/data/*`` covers the whole subtree below ``/data``.
* ``?`` matches exactly one character.
* ``[...]`` is a character class. ``!`` or ``^`` after the bracket negates it,
  a ``]`` in first position is a member, and ``a-z`` is a range. An unclosed
  ``[`` is an ordinary character.
* Every other character matches itself.

Matching is anchored at both ends. Compilation is purely lexical; the one
filesystem probe (bare directory patterns) lives in :func:`resolve_pattern`.
"""

import os
from dataclasses import dataclass
from typing import Tuple, Union

from .paths import SEP, expand_tilde, normalize


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class AnyRun:
    pass


@dataclass(frozen=True)
class AnyChar:
    pass


@dataclass(frozen=True)
class CharClass:
    members: Tuple[Tuple[str, str], ...]
    negated: bool = False

    def accepts(self, char: str) -> bool:
        hit = any(low <= char <= high for low, high in self.members)
        return hit != self.negated


Token = Union[Literal, AnyRun, AnyChar, CharClass]


def _parse_class(glob: str, start: int) -> Tuple[CharClass, int] | None:
    """Parse a bracket expression opening at ``glob[start]``.

    Returns the class and the index just past the closing bracket, or None
    when the bracket is never closed.
    """
    i = start + 1
    negated = False
    if i < len(glob) and glob[i] in "!^":
        negated = True
        i += 1

    members = []
    first = True
    while i < len(glob):
        char = glob[i]
        if char == "]" and not first:
            return CharClass(tuple(members), negated), i + 1
        first = False
        if i + 2 < len(glob) and glob[i + 1] == "-" and glob[i + 2] != "]":
            members.append((char, glob[i + 2]))
            i += 3
        else:
            members.append((char, char))
            i += 1
    return None


def tokenize(glob: str) -> Tuple[Token, ...]:
    """Split a glob into matcher tokens."""
    tokens: list[Token] = []
    literal: list[str] = []

    def flush() -> None:
        if literal:
            tokens.append(Literal("".join(literal)))
            literal.clear()

    i = 0
    while i < len(glob):
        char = glob[i]
        if char == "*":
            flush()
            if not tokens or not isinstance(tokens[-1], AnyRun):
                tokens.append(AnyRun())
            i += 1
        elif char == "?":
            flush()
            tokens.append(AnyChar())
            i += 1
        elif char == "[":
            parsed = _parse_class(glob, i)
            if parsed is None:
                literal.append(char)
                i += 1
            else:
                flush()
                tokens.append(parsed[0])
                i = parsed[1]
        else:
            literal.append(char)
            i += 1

    flush()
    return tuple(tokens)


def _match_at(token: Token, text: str, pos: int) -> int:
    """Try a fixed-width token at ``pos``; return its width, or -1."""
    if isinstance(token, Literal):
        return len(token.text) if text.startswith(token.text, pos) else -1
    if pos >= len(text):
        return -1
    if isinstance(token, AnyChar):
        return 1
    return 1 if token.accepts(text[pos]) else -1


@dataclass(frozen=True)
class Matcher:
    """A compiled glob pattern."""
    pattern: str
    tokens: Tuple[Token, ...]

    @classmethod
    def from_glob(cls, glob: str) -> "Matcher":
        return cls(glob, tokenize(glob))

    def matches(self, path: str) -> bool:
        """Return True if the whole of ``path`` matches the pattern."""
        tokens = self.tokens
        t = pos = 0
        # Resume point for the last AnyRun seen: (token index, text position).
        star: Tuple[int, int] | None = None

        while True:
            if t < len(tokens) and isinstance(tokens[t], AnyRun):
                star = (t + 1, pos)
                t += 1
                continue
            if t == len(tokens) and pos == len(path):
                return True
            if t < len(tokens):
                width = _match_at(tokens[t], path, pos)
                if width >= 0:
                    t += 1
                    pos += width
                    continue
            # Mismatch: let the last star swallow one more character.
            if star is None or star[1] >= len(path):
                return False
            t, pos = star[0], star[1] + 1
            star = (t, pos)

    __call__ = matches


def resolve_pattern(pattern: str) -> str:
    """
    Apply the bare-directory convenience rule against the live filesystem.

    A pattern naming an existing directory, with no trailing wildcard or
    separator, gets '/*' appended so it covers the files below it.
    """
    expanded = expand_tilde(pattern)
    if expanded and expanded[-1] not in "*?" + SEP and os.path.isdir(expanded):
        return pattern + SEP + "*"
    return pattern


def compile_matcher(pattern: str) -> Matcher:
    """Compile a policy pattern into a matcher over normalized paths."""
    return Matcher.from_glob(normalize(resolve_pattern(pattern)))
