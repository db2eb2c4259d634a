"""Error taxonomy shared by the command layer."""

from __future__ import annotations

from typing import Any


class AssetCtlError(RuntimeError):
    """Base class for failures reported to the user as a one-line diagnostic."""

    title = "Error"


class WorkspaceNotFound(AssetCtlError):
    title = "Workspace not found"

    def __init__(self, path: str):
        super().__init__(
            f"no registered workspace contains {path}; "
            "pass --identifier or run from inside a registered workspace"
        )
        self.path = path


class SpawnFailure(AssetCtlError):
    title = "Failed to start service"


class UnknownCommand(AssetCtlError):
    title = "Unknown command"

    def __init__(self, token: str):
        super().__init__(token)
        self.token = token


class RemoteActionError(AssetCtlError):
    """Raised when the background service rejects or fails a request."""

    title = "Service error"

    def __init__(
        self,
        message: str,
        *,
        action: str | None = None,
        code: str | None = None,
        details: Any | None = None,
    ):
        super().__init__(f"{action}: {message}" if action else message)
        self.message = message
        self.action = action
        self.code = code
        self.details = details


class DuplicateCommand(ValueError):
    """Raised when two command specifications claim the same name or alias."""
