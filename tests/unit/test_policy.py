# tests/unit/test_policy.py
import os
from pathlib import Path

import pytest

from llmagent.policy import (
    Decision,
    DenyCode,
    PolicySet,
    check_no_symlink_dirs,
    find_overlaps,
    is_allowed,
    validate_policy,
)


@pytest.fixture
def sandbox(tmp_path: Path):
    allowed_dir = tmp_path / "allowed"
    blocked_dir = tmp_path / "blocked"
    allowed_dir.mkdir()
    blocked_dir.mkdir()
    return allowed_dir, blocked_dir


@pytest.fixture
def policy(sandbox):
    allowed_dir, blocked_dir = sandbox
    return [f"{allowed_dir}/*"], [f"{blocked_dir}/*"]


def test_validate_policy_accepts_disjoint_lists(policy):
    assert validate_policy(*policy) is None
    assert validate_policy(["/data/*"], None) is None
    assert validate_policy(["/data/*"], []) is None


@pytest.mark.parametrize("allowed", [[], None])
def test_validate_policy_rejects_empty_allowed(allowed):
    message = validate_policy(allowed, [])
    assert message is not None
    assert "allowed patterns empty" in message


def test_validate_policy_rejects_overlap():
    message = validate_policy(["/a/*"], ["/a/*"])
    assert message is not None
    assert "conflict" in message
    assert "/a/*" in message


def test_find_overlaps_reports_each_pattern_once():
    assert find_overlaps(["/a/*", "/b/*"], ["/b/*", "/c/*", "/b/*", "/a/*"]) == ["/b/*", "/a/*"]
    assert find_overlaps(["/a/*"], ["/a/**"]) == []


def test_allows_path_inside_allowed_dir(sandbox, policy):
    allowed_dir, _ = sandbox
    decision = is_allowed(str(allowed_dir / "out.lua"), *policy)
    assert decision == Decision.allow()
    assert decision.reason is None
    assert bool(decision) is True


def test_denies_path_inside_blocked_dir(sandbox, policy):
    _, blocked_dir = sandbox
    decision = is_allowed(str(blocked_dir / "hack.lua"), *policy)
    assert not decision
    assert decision.code is DenyCode.BLOCKED
    assert f"{blocked_dir}/*" in decision.reason


def test_denies_traversal_into_blocked_dir(sandbox, policy):
    allowed_dir, _ = sandbox
    traversal = f"{allowed_dir}/../blocked/escape.lua"
    decision = is_allowed(traversal, *policy)
    assert not decision
    assert decision.code is DenyCode.BLOCKED


def test_denies_path_outside_every_pattern(sandbox, policy, tmp_path):
    decision = is_allowed(str(tmp_path / "elsewhere.txt"), *policy)
    assert not decision
    assert decision.code is DenyCode.NOT_ALLOWED
    assert "no allowed pattern matched" in decision.reason


def test_denies_path_with_nul_byte(sandbox, policy):
    allowed_dir, _ = sandbox
    decision = is_allowed(f"{allowed_dir}/a\x00b", *policy)
    assert not decision
    assert decision.code is DenyCode.INVALID_PATH
    assert "NUL byte" in decision.reason


def test_denies_everything_when_allowed_empty(sandbox):
    allowed_dir, _ = sandbox
    decision = is_allowed(str(allowed_dir / "out.lua"), [], [])
    assert not decision
    assert decision.code is DenyCode.POLICY_INVALID
    assert decision.reason.startswith("policy invalid:")


def test_denies_when_policy_has_overlap(sandbox):
    allowed_dir, blocked_dir = sandbox
    overlap = f"{blocked_dir}/*"
    decision = is_allowed(
        str(allowed_dir / "file.lua"), [f"{allowed_dir}/*", overlap], [overlap]
    )
    assert not decision
    assert decision.code is DenyCode.POLICY_INVALID


def test_blocked_overrides_allowed():
    decision = is_allowed("/etc/passwd", ["/**"], ["/etc/*"])
    assert not decision
    assert decision.reason == "path matches blocked pattern: /etc/*"


def test_extension_policy(sandbox):
    allowed_dir, _ = sandbox
    patterns = [f"{allowed_dir}/*.lua"]
    assert is_allowed(str(allowed_dir / "x.lua"), patterns, [])
    assert not is_allowed(str(allowed_dir / "x.txt"), patterns, [])


def test_scenario_blocked_subtree_inside_allowed_tree():
    decision = is_allowed("/data/secret/x.txt", ["/data/*"], ["/data/secret/*"])
    assert not decision
    assert "/data/secret/*" in decision.reason


def test_bare_directory_pattern(sandbox):
    allowed_dir, _ = sandbox
    assert is_allowed(str(allowed_dir / "report.md"), [str(allowed_dir)], [])
    assert not is_allowed(str(allowed_dir), [str(allowed_dir)], [])


def test_symlinked_directory_is_denied(sandbox, tmp_path):
    allowed_dir, _ = sandbox
    outside = tmp_path / "outside"
    outside.mkdir()
    link = allowed_dir / "link"
    os.symlink(outside, link)

    target = link / "escape.txt"
    decision = is_allowed(str(target), [f"{allowed_dir}/*"], [])
    assert not decision
    assert decision.code is DenyCode.SYMLINK
    assert str(link) in decision.reason


def test_symlinked_file_itself_is_not_rejected_by_guard(sandbox, tmp_path):
    allowed_dir, _ = sandbox
    real = tmp_path / "real.txt"
    real.write_text("x")
    os.symlink(real, allowed_dir / "alias.txt")
    assert check_no_symlink_dirs(str(allowed_dir / "alias.txt")) is None


def test_symlink_guard_reports_first_link(tmp_path):
    (tmp_path / "real").mkdir()
    os.symlink(tmp_path / "real", tmp_path / "a")
    reason = check_no_symlink_dirs(f"{tmp_path}/a/b/c.txt")
    assert reason == f"symlinked directory in path not allowed for safety: {tmp_path}/a"
    assert check_no_symlink_dirs("/") is None


def test_policy_set_wraps_the_functions(sandbox):
    allowed_dir, blocked_dir = sandbox
    policy_set = PolicySet.from_lists([f"{allowed_dir}/*"], None)
    assert policy_set.blocked == ()
    assert policy_set.validate() is None
    assert policy_set.check(str(allowed_dir / "ok.txt"))
    assert not policy_set.check(str(blocked_dir / "no.txt"))

    result = policy_set.write(str(allowed_dir / "ok.txt"), "hi")
    assert result.ok
    assert (allowed_dir / "ok.txt").read_text() == "hi"


def test_distinct_policies_do_not_interfere(sandbox):
    allowed_dir, blocked_dir = sandbox
    first = PolicySet.from_lists([f"{allowed_dir}/*"], [])
    second = PolicySet.from_lists([f"{blocked_dir}/*"], [])
    target = str(allowed_dir / "a.txt")
    assert first.check(target)
    assert not second.check(target)
    assert first.check(target)
