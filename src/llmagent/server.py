# src/llmagent/server.py
"""Thin wrapper around the luallm CLI and its HTTP completion API."""

import json
import logging
import subprocess
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .errors import ServerError

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "luallm"

# Error messages include at most this much of a response body.
MAX_BODY_IN_ERR = 2048


def run_command(args: List[str]) -> str:
    """Run a command and return its stdout, raising ServerError on failure."""
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout
    except FileNotFoundError:
        raise ServerError(f"`{args[0]}` command not found.")
    except subprocess.CalledProcessError as e:
        output = (e.stderr or e.stdout or "").strip()
        raise ServerError(f"Command `{' '.join(args)}` failed: {output}")


def servers(state: Any) -> List[Dict[str, Any]]:
    """
    Return the list of server entries from a status response.

    Accepts {"servers": [...]}, {"models": [...]}, {"running_models": [...]}
    or a bare list.
    """
    if isinstance(state, list):
        return state
    if isinstance(state, dict):
        for key in ("servers", "models", "running_models"):
            if isinstance(state.get(key), list):
                return state[key]
    return []


def entry_name(entry: Dict[str, Any]) -> Optional[str]:
    """The model name of a server entry ('model' wins over 'name')."""
    return entry.get("model") or entry.get("name")


def extract_content(response: Dict[str, Any]) -> Optional[str]:
    """Return choices[0].message.content from an OpenAI-style response."""
    try:
        content = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) else None


def token_summary(response: Dict[str, Any]) -> str:
    usage = response.get("usage") or {}
    if usage.get("total_tokens") is not None:
        return str(int(usage["total_tokens"]))
    if usage.get("completion_tokens") is not None:
        return f"{int(usage['completion_tokens'])} (completion)"
    return "unknown"


class LuallmClient:
    """
    Talks to the luallm binary for server state and to the model's
    OpenAI-compatible endpoint for completions.
    """

    def __init__(self, binary: str = DEFAULT_BINARY, timeout: float = 120.0):
        self.binary = binary or DEFAULT_BINARY
        self.timeout = timeout

    def exec(self, *args: str) -> Any:
        """Run `<binary> <args...> --json` and return the decoded JSON output."""
        argv = [self.binary, *args]
        if "--json" not in args:
            argv.append("--json")

        raw = run_command(argv)
        if not raw.strip():
            raise ServerError(f"No output from command: {' '.join(argv)}")

        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            snippet = raw[:512].rstrip()
            raise ServerError(
                f"JSON parse error for `{' '.join(argv)}`: {e}\n  output was: {snippet}"
            ) from e

    def state(self) -> Any:
        """Return the decoded output of `luallm status --json`."""
        return self.exec("status")

    def first_model(self) -> str:
        """Return the name of the first running model."""
        for entry in servers(self.state()):
            if entry.get("state") == "running" and entry_name(entry):
                return entry_name(entry)
        raise ServerError("No running models found in luallm status")

    def running_endpoint(self, state: Any = None) -> Tuple[str, int]:
        """Return (model, port) of the first running server with a port."""
        if state is None:
            state = self.state()
        for entry in servers(state):
            if entry.get("state") == "running" and entry_name(entry) and entry.get("port"):
                return entry_name(entry), int(entry["port"])
        raise ServerError("No running model found in luallm status")

    def find_port(self, model: str) -> int:
        for entry in servers(self.state()):
            if entry_name(entry) == model:
                port = entry.get("port")
                if not isinstance(port, (int, float)) or port < 1:
                    raise ServerError(f"Model '{model}' has no valid port in luallm status")
                return int(port)
        raise ServerError(f"Model not found in luallm status: {model}")

    def complete(
        self,
        model: str,
        messages: List[Dict[str, str]],
        options: Optional[Dict[str, Any]] = None,
        port: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Send a chat completion request to a running model.

        Args:
            model: Model name, as reported by luallm status.
            messages: List of {"role": ..., "content": ...} messages.
            options: Extra fields merged into the request body.
            port: If given, the status lookup is skipped.

        Raises:
            ServerError: On transport failure, non-2xx status, or a body that
                is not JSON.
        """
        port = int(port) if port else self.find_port(model)
        payload: Dict[str, Any] = {"model": model, "messages": messages}
        payload.update(options or {})

        url = f"http://127.0.0.1:{port}/v1/chat/completions"
        logger.info("Requesting completion from %s (model %s)", url, model)
        try:
            response = httpx.post(
                url,
                json=payload,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise ServerError(f"HTTP request to {url} failed: {e}") from e

        if not response.is_success:
            raise ServerError(
                f"HTTP {response.status_code} from {url}: {response.text[:MAX_BODY_IN_ERR]}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise ServerError(
                f"JSON decode failed ({e}): {response.text[:MAX_BODY_IN_ERR]}"
            ) from e
