# src/llmagent/fs.py
"""Policy-checked atomic file writes.

Content is written to a sibling temporary file and renamed onto the target,
so readers only ever see the old file or the complete new one.
"""

import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

from .errors import (
    ParentMissingError,
    PathDeniedError,
    PolicyInvalidError,
    RenameFailedError,
    TargetIsDirectoryError,
    WriteFailedError,
)
from .paths import parent_of, normalize
from .policy import DenyCode, is_allowed

logger = logging.getLogger(__name__)


# Longest slice of the target's basename used in a temp file name. Keeps the
# temp name within NAME_MAX whenever the target name itself is.
TEMP_STEM_MAX = 200


def _current_umask() -> int:
    # os.umask cannot be queried without setting it.
    mask = os.umask(0)
    os.umask(mask)
    return mask


class WriteErrorKind(str, Enum):
    POLICY_INVALID = "policy_invalid"
    PATH_DENIED = "path_denied"
    TARGET_IS_DIRECTORY = "target_is_directory"
    PARENT_MISSING = "parent_missing"
    WRITE_FAILED = "write_failed"
    RENAME_FAILED = "rename_failed"


_ERRORS = {
    WriteErrorKind.POLICY_INVALID: PolicyInvalidError,
    WriteErrorKind.PATH_DENIED: PathDeniedError,
    WriteErrorKind.TARGET_IS_DIRECTORY: TargetIsDirectoryError,
    WriteErrorKind.PARENT_MISSING: ParentMissingError,
    WriteErrorKind.WRITE_FAILED: WriteFailedError,
    WriteErrorKind.RENAME_FAILED: RenameFailedError,
}


@dataclass(frozen=True)
class WriteResult:
    """Outcome of :func:`write_file`."""
    path: str
    error_kind: Optional[WriteErrorKind] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    def __bool__(self) -> bool:
        return self.ok

    def raise_for_error(self) -> None:
        """Raise the typed exception matching a failed result."""
        if self.error_kind is not None:
            raise _ERRORS[self.error_kind](self.message)


def _failure(path: str, kind: WriteErrorKind, message: str) -> WriteResult:
    logger.warning("Write to %s failed (%s): %s", path, kind.value, message)
    return WriteResult(path, kind, message)


def _encode(content: str | bytes) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


def _target_mode(target: str) -> int:
    """Permissions for the new file: keep the old file's, else honour umask."""
    try:
        return stat.S_IMODE(os.stat(target).st_mode)
    except OSError:
        return 0o666 & ~_current_umask()


def _write_temp(directory: str, name: str, data: bytes, mode: int) -> str:
    """Write ``data`` to a new exclusive temp file in ``directory``."""
    with tempfile.NamedTemporaryFile(
        mode="wb",
        dir=directory,
        prefix=f".{name[:TEMP_STEM_MAX]}.",
        suffix=".tmp",
        delete=False,
    ) as tmp_file:
        tmp_path = tmp_file.name
        try:
            tmp_file.write(data)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
            os.chmod(tmp_path, mode)
        except (OSError, ValueError):
            tmp_file.close()
            _remove_quietly(tmp_path)
            raise
    return tmp_path


def _remove_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def write_file(
    path: str | os.PathLike,
    content: str | bytes,
    allowed: Optional[Sequence[str]],
    blocked: Optional[Sequence[str]],
) -> WriteResult:
    """
    Write ``content`` to ``path`` only if the policy permits it.

    The policy is re-evaluated immediately before writing. The parent
    directory must already exist; directories are never created. On any
    failure the target is left untouched and the temporary file is removed.

    Returns:
        A WriteResult; failures carry a WriteErrorKind and a message.
    """
    decision = is_allowed(path, allowed, blocked)
    resolved = normalize(path)
    if not decision:
        kind = (
            WriteErrorKind.POLICY_INVALID
            if decision.code is DenyCode.POLICY_INVALID
            else WriteErrorKind.PATH_DENIED
        )
        return _failure(resolved, kind, f"write denied: {decision.reason}")

    if os.path.isdir(resolved):
        return _failure(
            resolved,
            WriteErrorKind.TARGET_IS_DIRECTORY,
            f"output path is a directory, not a file: {resolved}",
        )

    parent = parent_of(resolved)
    if not os.path.isdir(parent):
        return _failure(
            resolved,
            WriteErrorKind.PARENT_MISSING,
            f"parent directory does not exist: {parent}",
        )

    name = os.path.basename(resolved)
    try:
        data = _encode(content)
        tmp_path = _write_temp(parent, name, data, _target_mode(resolved))
    except (OSError, ValueError) as e:
        return _failure(resolved, WriteErrorKind.WRITE_FAILED, f"write failed: {e}")

    try:
        os.replace(tmp_path, resolved)
    except (OSError, ValueError) as e:
        _remove_quietly(tmp_path)
        return _failure(resolved, WriteErrorKind.RENAME_FAILED, f"rename failed: {e}")

    logger.info("Wrote %d bytes to %s", len(data), resolved)
    return WriteResult(resolved)


def atomic_write(path: str | Path, content: str | bytes) -> None:
    """
    Write content to a file atomically, without any policy check.

    Used for the application's own files. Raises WriteFailedError or
    RenameFailedError on failure.
    """
    target = os.fspath(path)
    directory = os.path.dirname(os.path.abspath(target))
    try:
        tmp_path = _write_temp(
            directory, os.path.basename(target), _encode(content), _target_mode(target)
        )
    except (OSError, ValueError) as e:
        raise WriteFailedError(f"Failed to write '{target}': {e}") from e

    try:
        os.replace(tmp_path, target)
    except (OSError, ValueError) as e:
        _remove_quietly(tmp_path)
        raise RenameFailedError(f"Failed to move '{tmp_path}' onto '{target}': {e}") from e
