# tests/unit/test_cli.py
from pathlib import Path

import pytest
from pytest_mock import MockerFixture
from typer.testing import CliRunner

from llmagent import __version__
from llmagent.cli import DEFAULT_GENERATE_SYSTEM_PROMPT, app
from llmagent.errors import ExitCode, ServerError
from llmagent.server import LuallmClient

runner = CliRunner()

RESPONSE = {
    "choices": [{"message": {"content": "local x = 1\n"}}],
    "usage": {"total_tokens": 17},
}


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def config_path(tmp_path: Path, workdir: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        f"allowed_paths: ['{workdir}/*']\n"
        f"blocked_paths: ['{workdir}/secret/*']\n"
    )
    return path


@pytest.fixture
def llm(mocker: MockerFixture):
    mocker.patch.object(LuallmClient, "running_endpoint", return_value=("qwen-coder", 8081))
    return mocker.patch.object(LuallmClient, "complete", return_value=RESPONSE)


def invoke(config_path: Path, *args: str):
    return runner.invoke(app, ["--config", str(config_path), *args])


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_init_creates_config(tmp_path: Path):
    config_path = tmp_path / "cfg" / "config.yaml"

    result = invoke(config_path, "init")

    assert result.exit_code == 0
    assert "Created" in result.output
    assert config_path.is_file()

    again = invoke(config_path, "init")
    assert again.exit_code == 0
    assert "already exists" in again.output


def test_generate_writes_file(config_path: Path, workdir: Path, llm):
    target = workdir / "hello.lua"

    result = invoke(config_path, "generate", str(target), "a hello world script")

    assert result.exit_code == 0, result.output
    assert target.read_text() == "local x = 1\n"
    assert "Wrote:" in result.output
    assert "qwen-coder" in result.output
    assert "17" in result.output

    messages = llm.call_args.args[1]
    assert messages[0] == {"role": "system", "content": DEFAULT_GENERATE_SYSTEM_PROMPT}
    assert messages[1] == {"role": "user", "content": "a hello world script"}
    assert llm.call_args.kwargs["port"] == 8081


def test_generate_uses_configured_model_and_prompt(tmp_path: Path, workdir: Path, llm):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"allowed_paths: ['{workdir}/*']\n"
        "luallm:\n  model: pinned-model\n"
        "generate:\n  system_prompt: Only Lua.\n"
    )

    result = invoke(config_path, "generate", str(workdir / "a.lua"), "x")

    assert result.exit_code == 0, result.output
    assert llm.call_args.args[0] == "pinned-model"
    assert llm.call_args.args[1][0]["content"] == "Only Lua."
    assert llm.call_args.kwargs["port"] is None
    LuallmClient.running_endpoint.assert_not_called()


def test_generate_denied_before_inference(config_path: Path, workdir: Path, llm):
    (workdir / "secret").mkdir()
    target = workdir / "secret" / "x.lua"

    result = invoke(config_path, "generate", str(target), "x")

    assert result.exit_code == ExitCode.PATH_DENIED
    assert "blocked pattern" in result.output
    assert not target.exists()
    llm.assert_not_called()


def test_generate_invalid_policy(tmp_path: Path, workdir: Path, llm):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("allowed_paths: []\n")

    result = invoke(config_path, "generate", str(workdir / "a.lua"), "x")

    assert result.exit_code == ExitCode.POLICY_INVALID
    assert "allowed patterns empty" in result.output
    llm.assert_not_called()


def test_generate_missing_parent(tmp_path: Path, workdir: Path, llm):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"allowed_paths: ['{workdir}/**']\n")

    result = invoke(config_path, "generate", str(workdir / "nope" / "a.lua"), "x")

    assert result.exit_code == ExitCode.PARENT_MISSING
    assert not (workdir / "nope").exists()


def test_generate_target_is_directory(config_path: Path, workdir: Path, llm):
    (workdir / "sub").mkdir()

    result = invoke(config_path, "generate", str(workdir / "sub"), "x")

    assert result.exit_code == ExitCode.TARGET_IS_DIRECTORY
    assert (workdir / "sub").is_dir()


def test_generate_server_failure(config_path: Path, workdir: Path, mocker: MockerFixture):
    mocker.patch.object(
        LuallmClient, "running_endpoint", side_effect=ServerError("No running model found")
    )

    result = invoke(config_path, "generate", str(workdir / "a.lua"), "x")

    assert result.exit_code == ExitCode.SERVER_ERROR
    assert "No running model" in result.output
    assert not (workdir / "a.lua").exists()


def test_generate_unexpected_response(config_path: Path, workdir: Path, mocker: MockerFixture):
    mocker.patch.object(LuallmClient, "running_endpoint", return_value=("m", 1))
    mocker.patch.object(LuallmClient, "complete", return_value={"choices": []})

    result = invoke(config_path, "generate", str(workdir / "a.lua"), "x")

    assert result.exit_code == ExitCode.SERVER_ERROR
    assert not (workdir / "a.lua").exists()


def test_missing_config(tmp_path: Path):
    result = invoke(tmp_path / "absent.yaml", "check", "/tmp/x")
    assert result.exit_code == ExitCode.CONFIG_ERROR
    assert "Could not load config" in result.output


def test_check_allowed_and_denied(config_path: Path, workdir: Path):
    allowed = invoke(config_path, "check", str(workdir / "ok.md"))
    assert allowed.exit_code == 0
    assert "allowed" in allowed.output

    denied = invoke(config_path, "check", str(workdir / ".." / "escape.md"))
    assert denied.exit_code == ExitCode.PATH_DENIED
    assert "no allowed pattern matched" in denied.output


def test_quick_prompt_prints_content(config_path: Path, llm):
    result = invoke(config_path, "quick-prompt", "say hi")

    assert result.exit_code == 0, result.output
    assert "local x = 1" in result.output
    assert llm.call_args.args[1] == [{"role": "user", "content": "say hi"}]


def test_doctor_reports_failures(tmp_path: Path, mocker: MockerFixture):
    mocker.patch("llmagent.doctor.shutil.which", return_value=None)

    result = invoke(tmp_path / "cfg" / "config.yaml", "doctor")

    assert result.exit_code == 1
    assert "Config file exists" in result.output
    assert "--fix" in result.output


def test_doctor_fix(tmp_path: Path, mocker: MockerFixture):
    mocker.patch("llmagent.doctor.shutil.which", return_value="/usr/bin/luallm")
    config_path = tmp_path / "cfg" / "config.yaml"

    result = invoke(config_path, "doctor", "--fix")

    assert config_path.is_file()
    assert "fixed" in result.output
    # allowed_paths is still empty after the fix.
    assert result.exit_code == 1


def test_generate_unencodable_output(config_path: Path, workdir: Path, mocker: MockerFixture):
    mocker.patch.object(LuallmClient, "running_endpoint", return_value=("m", 1))
    mocker.patch.object(
        LuallmClient, "complete", return_value={"choices": [{"message": {"content": "x\ud800"}}]}
    )

    result = invoke(config_path, "generate", str(workdir / "a.lua"), "x")

    assert result.exit_code == ExitCode.WRITE_FAILED
    assert not (workdir / "a.lua").exists()
