# src/llmagent/policy.py
"""Filesystem write policy: validation, symlink guard and allow/deny decisions."""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from .matcher import compile_matcher
from .paths import SEP, normalize

logger = logging.getLogger(__name__)


class DenyCode(str, Enum):
    """Why a decision refused a path."""
    POLICY_INVALID = "policy_invalid"
    INVALID_PATH = "invalid_path"
    SYMLINK = "symlink"
    BLOCKED = "blocked"
    NOT_ALLOWED = "not_allowed"


@dataclass(frozen=True)
class Decision:
    """Outcome of checking one path against one policy."""
    allowed: bool
    reason: Optional[str] = None
    code: Optional[DenyCode] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, code: DenyCode, reason: str) -> "Decision":
        return cls(False, reason, code)

    def __bool__(self) -> bool:
        return self.allowed


def find_overlaps(allowed: Iterable[str], blocked: Iterable[str]) -> List[str]:
    """Return the patterns listed verbatim in both lists, in blocked order."""
    allowed_set = set(allowed)
    overlaps: List[str] = []
    for pattern in blocked:
        if pattern in allowed_set and pattern not in overlaps:
            overlaps.append(pattern)
    return overlaps


def validate_policy(
    allowed: Optional[Sequence[str]], blocked: Optional[Sequence[str]]
) -> Optional[str]:
    """
    Check that a policy can be evaluated at all.

    Returns None when the policy is usable, otherwise a message describing the
    problem. An empty allowed list is rejected (nothing is writable without an
    explicit grant), as is any pattern present in both lists.
    """
    if not allowed:
        return "allowed patterns empty: all writes denied by default"

    overlaps = find_overlaps(allowed, blocked or ())
    if overlaps:
        return (
            "policy conflict: pattern(s) appear in both allowed and blocked "
            "patterns: " + ", ".join(overlaps)
        )
    return None


def check_no_symlink_dirs(resolved: str) -> Optional[str]:
    """
    Refuse paths that traverse a symlinked directory.

    Every component of the normalized path except the last is checked with
    lstat. Returns None when clean, otherwise the reason naming the first
    symlinked component.
    """
    parts = [part for part in resolved.split(SEP) if part]
    current = ""
    for part in parts[:-1]:
        current += SEP + part
        if os.path.islink(current):
            return f"symlinked directory in path not allowed for safety: {current}"
    return None


def is_allowed(
    path: str | os.PathLike,
    allowed: Optional[Sequence[str]],
    blocked: Optional[Sequence[str]],
) -> Decision:
    """
    Decide whether the policy permits writing to ``path``.

    Steps short-circuit on the first failure: policy validation, lexical
    normalization and a NUL-byte check, the symlink guard, blocked patterns
    (which always win), then allowed patterns.
    """
    problem = validate_policy(allowed, blocked)
    if problem:
        return _denied(path, DenyCode.POLICY_INVALID, f"policy invalid: {problem}")

    resolved = normalize(path)

    if "\x00" in resolved:
        return _denied(
            path, DenyCode.INVALID_PATH, f"path contains a NUL byte: {resolved!r}"
        )

    symlink = check_no_symlink_dirs(resolved)
    if symlink:
        return _denied(path, DenyCode.SYMLINK, symlink)

    for pattern in blocked or ():
        if compile_matcher(pattern).matches(resolved):
            return _denied(
                path, DenyCode.BLOCKED, f"path matches blocked pattern: {pattern}"
            )

    for pattern in allowed:
        if compile_matcher(pattern).matches(resolved):
            logger.debug("Write to %s allowed by pattern %s", resolved, pattern)
            return Decision.allow()

    return _denied(
        path, DenyCode.NOT_ALLOWED, f"no allowed pattern matched: {resolved}"
    )


def _denied(path, code: DenyCode, reason: str) -> Decision:
    logger.debug("Write to %s denied: %s", path, reason)
    return Decision.deny(code, reason)


@dataclass(frozen=True)
class PolicySet:
    """An allowed/blocked pattern pair passed explicitly into every check."""
    allowed: Tuple[str, ...] = ()
    blocked: Tuple[str, ...] = ()

    @classmethod
    def from_lists(
        cls, allowed: Optional[Iterable[str]], blocked: Optional[Iterable[str]]
    ) -> "PolicySet":
        return cls(tuple(allowed or ()), tuple(blocked or ()))

    def validate(self) -> Optional[str]:
        return validate_policy(self.allowed, self.blocked)

    def check(self, path: str | os.PathLike) -> Decision:
        return is_allowed(path, self.allowed, self.blocked)

    def write(self, path: str | os.PathLike, content: str | bytes):
        from .fs import write_file

        return write_file(path, content, self.allowed, self.blocked)
