# src/llmagent/doctor.py
"""Environment health checks for `llmagent doctor [--fix]`."""

import importlib.util
import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from . import config, paths
from .errors import ConfigError, ServerError
from .policy import find_overlaps
from .server import run_command


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str
    fixable: bool = False
    fixed: Optional[bool] = None
    fix_detail: Optional[str] = None


@dataclass
class Check:
    """A named check with an optional automatic fix."""
    name: str
    run: Callable[["DoctorContext"], Tuple[bool, str]]
    fix: Optional[Callable[["DoctorContext"], Tuple[bool, str]]] = None


class DoctorContext:
    """Shared state for one doctor run: where the config lives and what it says."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else paths.get_default_config_path()

    @property
    def config_dir(self) -> Path:
        return self.config_path.parent

    def load(self) -> config.AgentConfig:
        return config.load_config(self.config_path)

    def load_or_default(self) -> config.AgentConfig:
        try:
            return self.load()
        except ConfigError:
            return config.AgentConfig()


# Python distributions the CLI cannot run without, keyed by import name.
REQUIRED_MODULES = {
    "typer": "typer",
    "rich": "rich",
    "pydantic": "pydantic",
    "yaml": "PyYAML",
    "httpx": "httpx",
    "platformdirs": "platformdirs",
    "pythonjsonlogger": "python-json-logger",
}


def which(binary: str) -> Optional[str]:
    """Resolve a bare command name or an explicit path to an executable."""
    if binary.startswith((".", "/")):
        return binary if os.path.isfile(binary) else None
    return shutil.which(binary)


def _init_skeleton(ctx: DoctorContext) -> Tuple[bool, str]:
    try:
        path, _ = config.init_config(ctx.config_dir)
    except ConfigError as e:
        return False, f"init failed: {e.message}"
    return True, f"created config and directory skeleton at {path}"


def _config_exists(ctx: DoctorContext) -> Tuple[bool, str]:
    if ctx.config_path.is_file():
        return True, str(ctx.config_path)
    return False, f"not found at {ctx.config_path}"


def _config_valid(ctx: DoctorContext) -> Tuple[bool, str]:
    try:
        ctx.load()
    except ConfigError as e:
        return False, e.message
    return True, str(ctx.config_path)


def _binary_configured(ctx: DoctorContext) -> Tuple[bool, str]:
    binary = ctx.load_or_default().luallm.binary
    if binary:
        return True, binary
    return False, "luallm.binary is missing or empty in config"


def _binary_found(ctx: DoctorContext) -> Tuple[bool, str]:
    binary = ctx.load_or_default().luallm.binary or "luallm"
    resolved = which(binary)
    if resolved:
        return True, resolved
    return False, (
        f"'{binary}' not found on PATH\n"
        "Set luallm.binary in your config to the correct path"
    )


def _module_check(module: str) -> Callable[[DoctorContext], Tuple[bool, str]]:
    def run(ctx: DoctorContext) -> Tuple[bool, str]:
        if importlib.util.find_spec(module) is not None:
            return True, f"import {module} OK"
        return False, f"not importable; install it with: pip install {REQUIRED_MODULES[module]}"
    return run


def _pip_install(dist: str) -> Callable[[DoctorContext], Tuple[bool, str]]:
    def fix(ctx: DoctorContext) -> Tuple[bool, str]:
        try:
            run_command([sys.executable, "-m", "pip", "install", dist])
        except ServerError as e:
            return False, e.message
        importlib.invalidate_caches()
        return True, f"pip install {dist}"
    return fix


def _state_dir(ctx: DoctorContext) -> Tuple[bool, str]:
    state = paths.get_state_dir(ctx.config_dir)
    if state.is_dir():
        return True, str(state)
    return False, f"not found: {state}"


def _allowed_paths(ctx: DoctorContext) -> Tuple[bool, str]:
    allowed = ctx.load_or_default().allowed_paths
    if allowed:
        return True, f"{len(allowed)} pattern(s) set"
    return False, (
        "allowed_paths is empty or missing: generate will deny all writes\n"
        "Add at least one path glob to allowed_paths in your config"
    )


def _no_conflicts(ctx: DoctorContext) -> Tuple[bool, str]:
    cfg = ctx.load_or_default()
    overlaps = find_overlaps(cfg.allowed_paths, cfg.blocked_paths)
    if not overlaps:
        return True, "no overlapping patterns"
    return False, (
        "pattern(s) in both allowed_paths and blocked_paths:\n  "
        + "\n  ".join(overlaps)
    )


CHECKS: List[Check] = [
    Check("Config file exists", _config_exists, fix=_init_skeleton),
    Check("Config is valid", _config_valid),
    Check("luallm.binary configured", _binary_configured),
    Check("luallm binary found", _binary_found),
    *[
        Check(f"Python package: {dist}", _module_check(module), fix=_pip_install(dist))
        for module, dist in REQUIRED_MODULES.items()
    ],
    Check("State directory exists", _state_dir, fix=_init_skeleton),
    Check("allowed_paths configured", _allowed_paths),
    Check("No allowed/blocked path conflicts", _no_conflicts),
]


def run_checks(config_path: Optional[Path] = None, fix: bool = False) -> List[CheckResult]:
    """
    Run every check, optionally attempting fixes for the failing ones.

    A successful fix re-runs its check so the result reflects the final state.
    """
    ctx = DoctorContext(config_path)
    results = []
    for check in CHECKS:
        ok, detail = check.run(ctx)
        result = CheckResult(check.name, ok, detail, fixable=check.fix is not None)
        if not ok and fix and check.fix:
            fixed, fix_detail = check.fix(ctx)
            result.fixed = fixed
            result.fix_detail = fix_detail
            if fixed:
                result.ok, result.detail = check.run(ctx)
        results.append(result)
    return results
