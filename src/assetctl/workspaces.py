"""Locate the registered workspace enclosing a directory."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional
from urllib.parse import unquote, urlparse

from .errors import WorkspaceNotFound
from .paths import resolve_path

REGISTRY_ACTION = "list_favorite_workspaces"


@dataclass(frozen=True)
class Workspace:
    name: str
    url: str
    root: str


def _root_from_uri(uri: str) -> Optional[str]:
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return None
    return unquote(parsed.path)


def _entry_to_workspace(entry: Any) -> Optional[Workspace]:
    if not isinstance(entry, dict):
        return None
    url = entry.get("file_uri") or entry.get("url")
    root = entry.get("path")
    if not root and isinstance(url, str):
        root = _root_from_uri(url)
    if not isinstance(root, str) or not root:
        return None
    root = resolve_path(root, cwd="/")
    if not isinstance(url, str) or not url:
        url = "file://" + root
    name = entry.get("name") or url
    return Workspace(name=str(name), url=url, root=root)


def parse_registry(entries: Any) -> List[Workspace]:
    """Build workspaces from the favorite registry payload, skipping bad entries."""

    if isinstance(entries, dict):
        entries = entries.get("items") or entries.get("workspaces") or []
    if not isinstance(entries, list):
        return []
    workspaces = []
    for entry in entries:
        workspace = _entry_to_workspace(entry)
        if workspace is not None:
            workspaces.append(workspace)
    return workspaces


def _contains(root: str, path: str) -> bool:
    if root == path or root == "/":
        return True
    return path.startswith(root.rstrip("/") + "/")


def find_workspace_url(starting_dir: str, registry: Iterable[Workspace]) -> str:
    """Return the url of the deepest registered workspace containing ``starting_dir``."""

    target = resolve_path(starting_dir, cwd="/")
    best: Optional[Workspace] = None
    for workspace in registry:
        if not _contains(workspace.root, target):
            continue
        if best is None or len(workspace.root) > len(best.root):
            best = workspace
    if best is None:
        raise WorkspaceNotFound(target)
    return best.url
