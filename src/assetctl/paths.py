"""Canonicalization of user-supplied paths and asset/resource references."""

from __future__ import annotations

import os
import posixpath
from typing import Any, Dict, Mapping, Optional

ASSET_PREFIX = "/assets/"
RESOURCE_PREFIX = "/resources/"


def _posix(value: str) -> str:
    return value.replace("\\", "/")


def resolve_path(relative: Optional[str] = None, cwd: Optional[str] = None) -> str:
    """Join ``relative`` onto the working directory without touching the disk."""

    base = _posix(cwd if cwd is not None else os.getcwd())
    joined = posixpath.join(base, _posix(relative or ""))
    return posixpath.normpath(joined)


def _resolve_ref(prefix: str, ref: Optional[str]) -> str:
    ref = ref or ""
    if ref.startswith(prefix):
        return ref
    return f"{prefix}{_posix(ref)}"


def resolve_asset_ref(ref: Optional[str] = "") -> str:
    return _resolve_ref(ASSET_PREFIX, ref)


def resolve_resource_ref(ref: Optional[str] = "") -> str:
    return _resolve_ref(RESOURCE_PREFIX, ref)


def resolve_resource_refs_in_object(obj: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a new mapping with every string or list value resolved as a resource.

    Values of any other type (``None`` included) are left out of the result.
    """

    resolved: Dict[str, Any] = {}
    for key, value in obj.items():
        if isinstance(value, str):
            resolved[key] = resolve_resource_ref(value)
        elif isinstance(value, (list, tuple)):
            resolved[key] = [resolve_resource_ref(item) for item in value]
    return resolved
