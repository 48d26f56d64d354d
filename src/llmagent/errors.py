# src/llmagent/errors.py
"""Typed exceptions and exit codes for the application."""

from enum import IntEnum


class ExitCode(IntEnum):
    """Enumeration for application exit codes."""
    OK = 0
    UNKNOWN_ERROR = 1
    CONFIG_ERROR = 10
    SERVER_ERROR = 11
    POLICY_INVALID = 20
    PATH_DENIED = 21
    TARGET_IS_DIRECTORY = 22
    PARENT_MISSING = 23
    WRITE_FAILED = 24
    RENAME_FAILED = 25


class LLMAgentError(Exception):
    """Base exception for all llmagent errors."""
    def __init__(self, message: str, exit_code: ExitCode = ExitCode.UNKNOWN_ERROR):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    def __str__(self) -> str:
        return f"[{self.exit_code.name}] {super().__str__()}"


class ConfigError(LLMAgentError):
    """Exception for configuration loading or validation errors."""
    def __init__(self, message: str):
        super().__init__(message, ExitCode.CONFIG_ERROR)


class ServerError(LLMAgentError):
    """Exception for failures talking to the luallm binary or its HTTP API."""
    def __init__(self, message: str):
        super().__init__(message, ExitCode.SERVER_ERROR)


class PolicyInvalidError(LLMAgentError):
    """The allowed/blocked pattern lists are unusable."""
    def __init__(self, message: str):
        super().__init__(message, ExitCode.POLICY_INVALID)


class PathDeniedError(LLMAgentError):
    """The target path is refused by the policy."""
    def __init__(self, message: str):
        super().__init__(message, ExitCode.PATH_DENIED)


class TargetIsDirectoryError(LLMAgentError):
    """The target path is an existing directory."""
    def __init__(self, message: str):
        super().__init__(message, ExitCode.TARGET_IS_DIRECTORY)


class ParentMissingError(LLMAgentError):
    """The parent directory of the target does not exist."""
    def __init__(self, message: str):
        super().__init__(message, ExitCode.PARENT_MISSING)


class WriteFailedError(LLMAgentError):
    """Writing the temporary file failed."""
    def __init__(self, message: str):
        super().__init__(message, ExitCode.WRITE_FAILED)


class RenameFailedError(LLMAgentError):
    """Moving the temporary file onto the target failed."""
    def __init__(self, message: str):
        super().__init__(message, ExitCode.RENAME_FAILED)
