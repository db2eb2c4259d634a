"""Keep the singleton background service reachable before commands run."""

from __future__ import annotations

import contextlib
import logging
import os
import socket
import subprocess
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, TypeVar

from .config import DEFAULT_SERVICE_HOST, DEFAULT_SERVICE_PORT, DEFAULT_START_TIMEOUT, CLIConfig
from .errors import SpawnFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


def ping_service(host: str, port: int, timeout: float = 0.2) -> bool:
    try:
        with socket.create_connection((host, port), timeout):
            return True
    except OSError:
        return False


class ServiceSupervisor:
    """Start the background service on first use and wait until it listens.

    Liveness is decided by a TCP connect on the service port, never by a
    stored pid. Two invocations racing to start the service both tolerate the
    other one winning: a child that exits early only matters if the port is
    still closed once the timeout elapses.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        host: str = DEFAULT_SERVICE_HOST,
        port: int = DEFAULT_SERVICE_PORT,
        timeout: float = DEFAULT_START_TIMEOUT,
        poll_interval: float = 0.1,
        log_path: Optional[Path] = None,
        show_output: bool = False,
    ) -> None:
        self.command = tuple(command)
        self.host = host
        self.port = port
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.log_path = log_path
        self.show_output = show_output
        self._process: Optional[subprocess.Popen] = None
        self._ready = False

    @classmethod
    def from_config(cls, config: CLIConfig) -> "ServiceSupervisor":
        return cls(
            config.service_command(),
            host=config.host,
            port=config.port,
            timeout=config.start_timeout,
            log_path=config.service_log_path,
            show_output=config.service_output,
        )

    def is_running(self) -> bool:
        return ping_service(self.host, self.port)

    def ensure_running(self, on_ready: Callable[[], T]) -> T:
        """Invoke ``on_ready`` once the service is reachable.

        Raises :class:`SpawnFailure` without calling ``on_ready`` when the
        service cannot be started or stays unreachable past the timeout.
        """

        if not self._ready:
            if self.is_running():
                logger.debug("Service already listening on %s:%d", self.host, self.port)
            else:
                if self._process is None:
                    self._spawn()
                self._await_ready()
            self._ready = True
        return on_ready()

    def _spawn(self) -> None:
        logger.info("Starting background service: %s", " ".join(self.command))
        kwargs: Dict[str, Any] = {"stdin": subprocess.DEVNULL}
        if os.name == "nt":
            kwargs["creationflags"] = (
                subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP  # type: ignore[attr-defined]
            )
        else:
            kwargs["start_new_session"] = True

        try:
            if self.show_output or self.log_path is None:
                if not self.show_output:
                    kwargs["stdout"] = subprocess.DEVNULL
                    kwargs["stderr"] = subprocess.DEVNULL
                self._process = subprocess.Popen(self.command, **kwargs)
            else:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.log_path, "ab") as log_file:
                    self._process = subprocess.Popen(
                        self.command,
                        stdout=log_file,
                        stderr=subprocess.STDOUT,
                        **kwargs,
                    )
        except OSError as exc:
            raise SpawnFailure(f"could not launch {self.command[0]}: {exc}") from exc

    def _await_ready(self) -> None:
        deadline = time.monotonic() + self.timeout
        exit_logged = False
        while True:
            if self.is_running():
                logger.debug("Service reachable on %s:%d", self.host, self.port)
                return
            if not exit_logged and self._process is not None and self._process.poll() is not None:
                logger.debug(
                    "Service process exited with %s; waiting for another instance",
                    self._process.returncode,
                )
                exit_logged = True
            if time.monotonic() >= deadline:
                break
            time.sleep(self.poll_interval)

        if self._process is not None and self._process.poll() is None:
            with contextlib.suppress(ProcessLookupError):
                self._process.terminate()
        hint = f" (see {self.log_path})" if self.log_path and not self.show_output else ""
        raise SpawnFailure(
            f"service did not become reachable on {self.host}:{self.port} "
            f"within {self.timeout:g}s{hint}"
        )
