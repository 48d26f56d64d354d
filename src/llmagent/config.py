# src/llmagent/config.py
"""Configuration loading and validation using Pydantic."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import paths
from .errors import ConfigError, LLMAgentError

SCHEMA_ID = "llmagent-config-v1"

ApprovalTier = Literal["auto", "prompt", "manual"]

# Directory skeleton created by init_config(), relative to the config dir.
SKELETON_DIRS = (
    "state",
    "state/pending_approvals",
    "skills",
    "skills/agent",
    "skills/allowed",
    "skills/allowed/.archive",
)


class ApprovalsConfig(BaseModel):
    """How much operator confirmation each kind of action needs."""
    task_confirmation: ApprovalTier = "prompt"
    path_read: ApprovalTier = "auto"
    path_write: ApprovalTier = "prompt"
    skill_promotion: ApprovalTier = "manual"
    destructive_overwrite: ApprovalTier = "prompt"
    network_access: ApprovalTier = "prompt"

    @field_validator("skill_promotion")
    @classmethod
    def _always_manual(cls, value: str) -> str:
        # Promoting a skill is never automatic, whatever the file says.
        return "manual"


class LimitsConfig(BaseModel):
    max_task_steps: int = Field(50, gt=0)
    max_plan_retries: int = Field(2, gt=0)
    max_node_retries: int = Field(3, gt=0)
    max_skill_retries: int = Field(3, gt=0)
    llm_timeout_seconds: float = Field(120, gt=0)
    llm_backoff_base_seconds: float = Field(1, gt=0)
    llm_backoff_max_seconds: float = Field(60, gt=0)
    skill_exec_timeout_seconds: float = Field(30, gt=0)
    skill_memory_limit_mb: float = Field(50, gt=0)
    max_open_file_handles: int = Field(10, gt=0)
    model_start_timeout_seconds: float = Field(120, gt=0)


class AuditConfig(BaseModel):
    max_size_mb: float = Field(50, gt=0)
    max_files: int = Field(5, ge=1)


class LuallmConfig(BaseModel):
    """Settings for the luallm binary and model discovery."""
    binary: str = "luallm"
    auto_start: bool = False
    auto_stop: bool = False
    model: Optional[str] = None


class ModelPolicy(BaseModel):
    prefer: List[str] = Field(default_factory=list)
    fallback: List[str] = Field(default_factory=list)


class GenerateConfig(BaseModel):
    system_prompt: Optional[str] = None


class LoggingConfig(BaseModel):
    """Logging configuration."""
    model_config = ConfigDict(populate_by_name=True)

    level: str = "WARNING"
    json_format: bool = Field(False, alias="json")


def _default_blocked_paths() -> List[str]:
    return ["~/.ssh", "~/.gnupg", "/etc", "/usr", "/var"]


class AgentConfig(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    schema_id: str = Field(SCHEMA_ID, alias="$schema")
    allowed_paths: List[str] = Field(default_factory=list)
    blocked_paths: List[str] = Field(default_factory=_default_blocked_paths)
    approvals: ApprovalsConfig = Field(default_factory=ApprovalsConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    luallm: LuallmConfig = Field(default_factory=LuallmConfig)
    model_selection: Dict[str, ModelPolicy] = Field(
        default_factory=lambda: {"default": ModelPolicy()}
    )
    generate: GenerateConfig = Field(default_factory=GenerateConfig)
    editor: str = "$EDITOR"
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("model_selection")
    @classmethod
    def _has_default(cls, value: Dict[str, ModelPolicy]) -> Dict[str, ModelPolicy]:
        if "default" not in value:
            raise ValueError("model_selection must contain a 'default' entry")
        return value

    def approval_tier(self, tier_name: str) -> str:
        """Return 'auto', 'prompt' or 'manual' for an approval tier."""
        if tier_name == "skill_promotion":
            return "manual"
        return getattr(self.approvals, tier_name, None) or "prompt"

    def model_policy(self, task_type: str) -> ModelPolicy:
        """Return the model selection policy for a task type, else the default."""
        return self.model_selection.get(task_type) or self.model_selection["default"]

    def policy_set(self):
        """Build the write policy from allowed_paths / blocked_paths."""
        from .policy import PolicySet

        return PolicySet.from_lists(self.allowed_paths, self.blocked_paths)


# --- Configuration Loading ---

def _expand_tilde_in_obj(obj: Any) -> Any:
    """Recursively expand a leading '~' in every string of a loaded object."""
    if isinstance(obj, dict):
        return {key: _expand_tilde_in_obj(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_expand_tilde_in_obj(item) for item in obj]
    if isinstance(obj, str):
        return paths.expand_tilde(obj)
    return obj


def load_config(path: Optional[Path] = None) -> AgentConfig:
    """
    Load, parse, and validate the configuration file.

    Args:
        path: The path to the configuration file. If None, uses the default path.

    Returns:
        A validated AgentConfig instance.

    Raises:
        ConfigError: If the file is not found, cannot be read, or fails validation.
    """
    config_path = Path(path) if path else paths.get_default_config_path()
    if not config_path.is_file():
        raise ConfigError(
            f"Configuration file not found at '{config_path}'. "
            f"Run 'llmagent init' to create one."
        )

    try:
        data = yaml.safe_load(config_path.read_bytes())
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file '{config_path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse configuration file '{config_path}': {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Configuration validation failed: '{config_path}' must contain a mapping"
        )

    try:
        config = AgentConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed:\n{e}") from e

    return AgentConfig.model_validate(
        _expand_tilde_in_obj(config.model_dump(by_alias=True))
    )


def default_config_yaml() -> str:
    """Render the default configuration as YAML."""
    data = AgentConfig().model_dump(by_alias=True, exclude_none=True)
    return yaml.safe_dump(data, sort_keys=True, default_flow_style=False)


def init_config(directory: Optional[Path] = None) -> Tuple[Path, bool]:
    """
    Create the config directory skeleton and a default config.yaml.

    An existing config file is never overwritten.

    Returns:
        The config file path and whether it was created.

    Raises:
        ConfigError: If a directory or the file cannot be created.
    """
    from .fs import atomic_write

    config_dir = Path(directory) if directory else paths.get_app_config_dir()
    try:
        for sub in ("",) + SKELETON_DIRS:
            (config_dir / sub).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Failed to create config directory '{config_dir}': {e}") from e

    config_path = config_dir / "config.yaml"
    if config_path.exists():
        return config_path, False

    try:
        atomic_write(config_path, default_config_yaml())
    except LLMAgentError as e:
        raise ConfigError(f"Failed to write default configuration: {e.message}") from e
    return config_path, True
