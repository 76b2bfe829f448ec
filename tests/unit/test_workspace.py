"""Tests for workspace trust helpers."""

import os
from pathlib import Path

from agentgate.security.workspace import (
    StaticWorkspaceProvider,
    WorkspaceProvider,
    find_outside_path,
    is_within_root,
    is_within_workspace,
    resolve_path,
)


class TestResolvePath:
    """Tests for resolve_path."""

    def test_relative_to_cwd(self) -> None:
        assert resolve_path("src/main.py", "/work") == os.path.normpath("/work/src/main.py")

    def test_absolute_unchanged(self) -> None:
        assert resolve_path("/etc/hosts", "/work") == os.path.normpath("/etc/hosts")

    def test_dot_dot_normalized(self) -> None:
        assert resolve_path("../outside", "/work/app") == os.path.normpath("/work/outside")

    def test_home_expanded(self) -> None:
        assert resolve_path("~/notes", "/work") == os.path.normpath(os.path.expanduser("~/notes"))


class TestContainment:
    """Tests for root containment."""

    def test_inside_root(self) -> None:
        assert is_within_root("/work/src", "/work") is True

    def test_root_itself(self) -> None:
        assert is_within_root("/work", "/work/") is True

    def test_sibling_prefix_rejected(self) -> None:
        """/work does not contain /workspace."""
        assert is_within_root("/workspace/file", "/work") is False

    def test_escape_via_dot_dot(self) -> None:
        assert is_within_workspace("../../etc/passwd", "/work/app", ["/work"]) is False

    def test_relative_inside(self) -> None:
        assert is_within_workspace("./build", "/work/app", ["/work"]) is True

    def test_any_root_suffices(self) -> None:
        assert is_within_workspace("/b/x", "/", ["/a", "/b"]) is True

    def test_find_outside_path(self) -> None:
        paths = ["./ok", "/tmp/elsewhere", "/also/outside"]
        assert find_outside_path(paths, "/work", ["/work"]) == "/tmp/elsewhere"
        assert find_outside_path(["./ok"], "/work", ["/work"]) is None

    def test_real_directories(self, tmp_path: Path) -> None:
        root = tmp_path / "project"
        (root / "src").mkdir(parents=True)
        assert is_within_workspace("src", str(root), [str(root)]) is True
        assert is_within_workspace(str(tmp_path), str(root), [str(root)]) is False


class TestStaticWorkspaceProvider:
    """Tests for StaticWorkspaceProvider."""

    def test_roots(self) -> None:
        provider = StaticWorkspaceProvider(["/a"])
        provider.add_root("/b")
        provider.add_root("/a")
        assert list(provider.get_workspace_roots()) == ["/a", "/b"]

    def test_satisfies_protocol(self) -> None:
        assert isinstance(StaticWorkspaceProvider(), WorkspaceProvider)
