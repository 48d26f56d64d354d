# src/llmagent/paths.py
"""Lexical path normalization and application directory resolution."""

import os
from pathlib import Path

import platformdirs

APP_NAME = "llmagent"

SEP = "/"


def home_dir() -> str:
    """
    Return the process's home directory value.

    Uses HOME, then USERPROFILE on Windows, and falls back to an empty string
    so that normalization never fails.
    """
    return os.environ.get("HOME") or os.environ.get("USERPROFILE") or ""


def expand_tilde(value: str) -> str:
    """Expand a leading '~' (alone or followed by '/') to the home directory."""
    if value == "~" or value.startswith("~" + SEP):
        return home_dir() + value[1:]
    return value


def normalize(path: str | os.PathLike) -> str:
    """
    Resolve a path to an absolute, lexically clean form.

    The filesystem is never consulted and the path does not need to exist.
    Trailing separators are dropped, a leading '~' is expanded, relative
    paths are joined onto the current directory, and '.' / '..' segments are
    folded. '..' never ascends past the root.

    Only '~' and '~/...' are expanded. '~name' is left as an ordinary
    relative segment rather than being read as another user's home or
    glued onto this user's.
    """
    path = os.fspath(path).rstrip(SEP)
    if not path:
        path = SEP

    path = expand_tilde(path)

    if not path.startswith(SEP):
        path = os.getcwd().rstrip(SEP) + SEP + path

    parts: list[str] = []
    for segment in path.split(SEP):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts:
                parts.pop()
            continue
        parts.append(segment)

    return SEP + SEP.join(parts)


def parent_of(resolved: str) -> str:
    """Return the parent of a normalized path ('/' for top-level entries)."""
    head, _, _ = resolved.rpartition(SEP)
    return head or SEP


def get_app_config_dir() -> Path:
    """Get the application's config directory (not created)."""
    return Path(platformdirs.user_config_dir(APP_NAME))


def get_default_config_path() -> Path:
    """Get the default path for the config.yaml file."""
    return get_app_config_dir() / "config.yaml"


def get_state_dir(config_dir: Path | None = None) -> Path:
    """Get the state directory that lives beside the config file."""
    return (config_dir or get_app_config_dir()) / "state"
