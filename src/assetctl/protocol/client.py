"""Async client for the asset service's NDJSON action protocol."""

from __future__ import annotations

import asyncio
import json
from itertools import count
from typing import Any, Dict, Optional, Tuple

from ..errors import RemoteActionError

PROTOCOL_VERSION = "1.0.0"


class BackendClient:
    """Asyncio client sending named actions to the background service.

    One request is in flight at a time; each reply line must echo the
    request ``id``.
    """

    def __init__(self, addr: Tuple[str, int], *, client_name: str = "assetctl") -> None:
        self._addr = addr
        self._client_name = client_name
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._counter = count(1)

    async def connect(self) -> None:
        if self._reader is not None:
            return

        reader, writer = await asyncio.open_connection(*self._addr)
        self._reader = reader
        self._writer = writer
        await self._handshake()

    async def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            await self._writer.wait_closed()
        self._reader = None
        self._writer = None

    async def call(self, action: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._send(action, params or {})

    async def _handshake(self) -> None:
        await self._send(
            "handshake",
            {
                "client": self._client_name,
                "protocol_version": PROTOCOL_VERSION,
            },
        )

    async def _send(self, action: str, params: Dict[str, Any]) -> Any:
        if self._writer is None or self._reader is None:
            raise RuntimeError("BackendClient is not connected")

        request_id = next(self._counter)
        line = json.dumps({"id": request_id, "command": action, "params": params})
        self._writer.write(line.encode("utf-8") + b"\n")
        await self._writer.drain()

        raw = await self._reader.readline()
        if not raw:
            raise ConnectionError(f"asset service closed the connection during {action}")
        return _unwrap_reply(action, request_id, raw)


def _unwrap_reply(action: str, request_id: int, raw: bytes) -> Any:
    """Return the ``result`` of one reply line, or raise ``RemoteActionError``.

    Replies are answered strictly in order on a connection, so a reply whose
    ``id`` differs from the pending request means the stream is out of step.
    """

    try:
        reply = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise RemoteActionError(f"malformed reply ({exc})", action=action, code="BAD_REPLY") from exc
    if not isinstance(reply, dict):
        raise RemoteActionError(
            f"expected a JSON object, got {type(reply).__name__}", action=action, code="BAD_REPLY"
        )
    if reply.get("id") != request_id:
        raise RemoteActionError(
            f"reply id {reply.get('id')!r} does not match request id {request_id}",
            action=action,
            code="BAD_REPLY",
        )

    if "error" in reply:
        error = reply["error"]
        if not isinstance(error, dict):
            raise RemoteActionError(str(error), action=action)
        raise RemoteActionError(
            error.get("message", "unknown error"),
            action=action,
            code=error.get("code"),
            details=error.get("details"),
        )
    return reply.get("result")
