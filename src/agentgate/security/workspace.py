"""Workspace trust - Root providers and path containment."""

import os
from typing import Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class WorkspaceProvider(Protocol):
    """Supplies trusted workspace roots when none are configured."""

    def get_workspace_roots(self) -> Sequence[str]:
        ...


class StaticWorkspaceProvider:
    """Workspace provider backed by a fixed list of roots."""

    def __init__(self, roots: Optional[Sequence[str]] = None) -> None:
        self._roots = list(roots or [])

    def add_root(self, root: str) -> None:
        if root not in self._roots:
            self._roots.append(root)

    def get_workspace_roots(self) -> Sequence[str]:
        return list(self._roots)


def resolve_path(path: str, cwd: str) -> str:
    """Resolve a referenced path against cwd to a normalized absolute path."""
    expanded = os.path.expanduser(path)
    if not os.path.isabs(expanded):
        expanded = os.path.join(os.path.expanduser(cwd), expanded)
    return os.path.normcase(os.path.normpath(os.path.abspath(expanded)))


def is_within_root(path: str, root: str) -> bool:
    """Check whether an absolute, normalized path lies under root.

    Compares whole path components, so ``/work`` does not contain
    ``/workspace``.
    """
    normalized_root = os.path.normcase(os.path.normpath(os.path.abspath(os.path.expanduser(root))))
    try:
        return os.path.commonpath([path, normalized_root]) == normalized_root
    except ValueError:
        # Different drives on Windows
        return False


def is_within_workspace(path: str, cwd: str, roots: Sequence[str]) -> bool:
    """Check whether path (relative to cwd) resolves under any root."""
    resolved = resolve_path(path, cwd)
    return any(is_within_root(resolved, root) for root in roots)


def find_outside_path(paths: Sequence[str], cwd: str, roots: Sequence[str]) -> Optional[str]:
    """Return the first path that is outside every root, if any."""
    for path in paths:
        if not is_within_workspace(path, cwd, roots):
            return path
    return None
