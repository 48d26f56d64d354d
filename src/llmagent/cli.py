# src/llmagent/cli.py
"""Command-line interface for llmagent."""

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from . import __version__, config, doctor, paths
from .errors import ExitCode, LLMAgentError
from .fs import write_file
from .logging import command_context, setup_logging
from .policy import DenyCode, is_allowed, validate_policy
from .server import LuallmClient, extract_content, token_summary

app = typer.Typer(
    name="llmagent",
    help="Drive a local luallm model server and write what it generates, safely.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console(stderr=True)

# Used when generate.system_prompt is not set in the config.
DEFAULT_GENERATE_SYSTEM_PROMPT = (
    "You are a code generator. Output ONLY valid code. "
    "No markdown fences, no explanations, no commentary. "
    "Start with the first line of code."
)


class State:
    """Per-invocation options shared by all commands."""

    def __init__(self, config_path: Optional[Path]):
        self.config_path = config_path
        self._config: Optional[config.AgentConfig] = None

    @property
    def config(self) -> config.AgentConfig:
        if self._config is None:
            self._config = config.load_config(self.config_path)
            setup_logging(self._config.logging)
        return self._config


def version_callback(value: bool):
    """Print the version and exit."""
    if value:
        print(f"llmagent version: {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to the config.yaml file. [default: {paths.get_default_config_path()}]",
    ),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True
    ),
):
    """
    llmagent CLI.
    """
    command_context.set(ctx.invoked_subcommand)
    ctx.obj = State(config_path)


def fail(title: str, detail: str, code: int, hint: Optional[str] = None):
    console.print(f"[bold red]✗ {title}[/bold red]")
    console.print(f"  [yellow]{escape(str(detail))}[/yellow]", highlight=False)
    if hint:
        console.print(f"  [dim]{hint}[/dim]")
    raise typer.Exit(code=code)


def load_state_config(state: State) -> config.AgentConfig:
    try:
        return state.config
    except LLMAgentError as e:
        fail("Could not load config:", e.message, e.exit_code, "Run: llmagent doctor")


@app.command()
def init(ctx: typer.Context):
    """Create the default config file and directory skeleton."""
    state: State = ctx.obj
    directory = state.config_path.parent if state.config_path else None
    try:
        path, created = config.init_config(directory)
    except LLMAgentError as e:
        fail("Init failed:", e.message, e.exit_code)

    if created:
        console.print(f"[bold green]✓[/bold green] Created {escape(str(path))}")
    else:
        console.print(f"Config already exists at {escape(str(path))}; left unchanged.")


@app.command("doctor")
def doctor_command(
    ctx: typer.Context,
    fix: bool = typer.Option(False, "--fix", help="Attempt to automatically fix failing checks."),
):
    """Check your environment: config, luallm binary, required packages."""
    state: State = ctx.obj
    if fix:
        console.print("[bold magenta]llmagent doctor --fix[/bold magenta]")
        console.print("[dim]Checking your environment and fixing what we can…[/dim]\n")
    else:
        console.print("[bold magenta]llmagent doctor[/bold magenta]")
        console.print("[dim]Checking your environment…[/dim]\n")

    results = doctor.run_checks(state.config_path, fix=fix)
    n_fail = 0
    for result in results:
        if result.ok:
            console.print(f"[green]✓[/green] [bold]{result.name}[/bold]")
            console.print(f"    [dim]{escape(result.detail)}[/dim]", highlight=False)
            if result.fixed:
                console.print(f"    [cyan]↳ fixed:[/cyan] [dim]{escape(result.fix_detail or '')}[/dim]")
            continue

        n_fail += 1
        if result.fixed is False:
            console.print(f"[yellow]~[/yellow] [bold]{result.name}[/bold]")
            console.print("    [yellow]fix attempted but failed:[/yellow]")
            for line in (result.fix_detail or "").splitlines():
                console.print(f"    [yellow]{escape(line)}[/yellow]", highlight=False)
        else:
            console.print(f"[red]✗[/red] [bold]{result.name}[/bold]")
            for line in result.detail.splitlines():
                console.print(f"    [yellow]{escape(line)}[/yellow]", highlight=False)
            if not fix and result.fixable:
                console.print("    [dim]→ run with --fix to attempt auto-fix[/dim]")

    console.print("")
    if n_fail == 0:
        console.print(f"[bold green]✓ All {len(results)} checks passed[/bold green]")
        return

    console.print(
        f"[bold red]✗ {n_fail} check(s) failed, {len(results) - n_fail} passed[/bold red]"
    )
    if not fix:
        console.print("[dim]Tip: run with --fix to auto-fix what we can[/dim]")
    raise typer.Exit(code=ExitCode.UNKNOWN_ERROR)


def _client(cfg: config.AgentConfig) -> LuallmClient:
    return LuallmClient(cfg.luallm.binary, timeout=cfg.limits.llm_timeout_seconds)


@app.command("quick-prompt")
def quick_prompt(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="The prompt text to send."),
):
    """Send a prompt to the first running model and print the response."""
    cfg = load_state_config(ctx.obj)
    client = _client(cfg)

    try:
        model, port = client.running_endpoint()
    except LLMAgentError as e:
        fail("Could not reach luallm:", e.message, e.exit_code, "Is luallm running? Try: llmagent doctor")

    console.print(f"[dim]model: {escape(model)}  …[/dim]")
    try:
        response = client.complete(model, [{"role": "user", "content": prompt}], port=port)
    except LLMAgentError as e:
        fail("Request failed:", e.message, e.exit_code)

    content = extract_content(response)
    if content is None:
        fail(
            "Unexpected response shape (no choices[0].message.content)",
            str(response)[:300],
            ExitCode.SERVER_ERROR,
        )
    print(content)


@app.command()
def generate(
    ctx: typer.Context,
    output_path: str = typer.Argument(..., help="File path to write the generated code to."),
    prompt: str = typer.Argument(..., help="Description of the code to generate."),
):
    """Generate code from a prompt and write it to OUTPUT_PATH."""
    cfg = load_state_config(ctx.obj)
    allowed, blocked = cfg.allowed_paths, cfg.blocked_paths

    # Both checks run before any inference so a bad target costs nothing.
    problem = validate_policy(allowed, blocked)
    if problem:
        fail(
            "Path policy is invalid:",
            problem,
            ExitCode.POLICY_INVALID,
            "Fix allowed_paths / blocked_paths in your config, then retry.",
        )

    decision = is_allowed(output_path, allowed, blocked)
    if not decision:
        fail("Write not permitted:", decision.reason, ExitCode.PATH_DENIED)

    system_prompt = cfg.generate.system_prompt or DEFAULT_GENERATE_SYSTEM_PROMPT
    client = _client(cfg)

    try:
        if cfg.luallm.model:
            model, port = cfg.luallm.model, None
        else:
            model, port = client.running_endpoint()
        console.print(f"[dim]model: {escape(model)}  generating…[/dim]")
        response = client.complete(
            model,
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            port=port,
        )
    except LLMAgentError as e:
        fail("LLM request failed:", e.message, e.exit_code, "Is luallm running? Try: llmagent doctor")

    content = extract_content(response)
    if content is None:
        fail(
            "Unexpected response shape (no choices[0].message.content)",
            str(response)[:300],
            ExitCode.SERVER_ERROR,
        )

    result = write_file(output_path, content, allowed, blocked)
    try:
        result.raise_for_error()
    except LLMAgentError as e:
        fail("Failed to write output file:", e.message, e.exit_code)

    console.print(f"[bold green]✓[/bold green] [bold]Wrote:[/bold]  {escape(result.path)}", highlight=False)
    console.print(f"  [bold]Model:[/bold]  {escape(model)}", highlight=False)
    console.print(f"  [bold]Tokens:[/bold] {token_summary(response)}", highlight=False)


@app.command()
def check(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="The path to test against the write policy."),
):
    """Show whether the write policy permits writing to PATH."""
    cfg = load_state_config(ctx.obj)
    decision = cfg.policy_set().check(path)
    resolved = paths.normalize(path)
    if decision:
        console.print(f"[bold green]✓ allowed[/bold green] {escape(resolved)}", highlight=False)
        return
    code = (
        ExitCode.POLICY_INVALID
        if decision.code is DenyCode.POLICY_INVALID
        else ExitCode.PATH_DENIED
    )
    fail(f"denied {escape(resolved)}", decision.reason, code)


def run_cli():
    """Main entry point for the CLI application."""
    try:
        app()
    except typer.Exit:
        raise
    except LLMAgentError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}", highlight=False)
        sys.exit(e.exit_code)
    except Exception as e:
        console.print(f"[bold red]An unexpected error occurred:[/bold red] {escape(str(e))}")
        sys.exit(ExitCode.UNKNOWN_ERROR)


if __name__ == "__main__":
    run_cli()
