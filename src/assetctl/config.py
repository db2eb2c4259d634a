"""Per-invocation configuration built from the global command-line options."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import typer
from rich.console import Console

from .paths import resolve_path

APP_NAME = "assetctl"
DEFAULT_SERVICE_HOST = "127.0.0.1"
DEFAULT_SERVICE_PORT = 9224
DEFAULT_START_TIMEOUT = 10.0
SERVICE_BIN_ENV = "ASSETCTL_SERVICE_BIN"
SERVICE_EXECUTABLE = "assetd"
SERVICE_LOG_FILE = "service.log"


@dataclass
class CLIConfig:
    """Runtime configuration shared across commands."""

    pwd: str
    output: Optional[Path] = None
    service_output: bool = False
    service_bin: Optional[Path] = None
    host: str = DEFAULT_SERVICE_HOST
    port: int = DEFAULT_SERVICE_PORT
    start_timeout: float = DEFAULT_START_TIMEOUT
    state_dir: Path = field(default_factory=lambda: Path(typer.get_app_dir(APP_NAME)))
    console: Console = field(default_factory=Console)
    err_console: Console = field(default_factory=lambda: Console(stderr=True))

    @property
    def service_log_path(self) -> Path:
        return self.state_dir / SERVICE_LOG_FILE

    def service_command(self) -> Tuple[str, ...]:
        if self.service_bin:
            executable = str(self.service_bin)
        else:
            env_override = os.environ.get(SERVICE_BIN_ENV)
            if env_override:
                executable = env_override
            else:
                exe_name = f"{SERVICE_EXECUTABLE}.exe" if os.name == "nt" else SERVICE_EXECUTABLE
                executable = shutil.which(exe_name) or exe_name
        return (executable, "--host", self.host, "--port", str(self.port))


def build_config(
    pwd: Optional[str] = None,
    output: Optional[Path] = None,
    service_output: bool = False,
    service_bin: Optional[Path] = None,
) -> CLIConfig:
    """Construct the configuration once at startup.

    With ``output`` set, every console message is appended to ``<output>.log``
    instead of the terminal.
    """

    config = CLIConfig(
        pwd=resolve_path(pwd),
        output=output,
        service_output=service_output,
        service_bin=service_bin,
    )
    if output is not None:
        log_path = Path(f"{output}.log")
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(log_path, "a", encoding="utf-8")
        config.console = Console(file=handle, no_color=True, width=120)
        config.err_console = config.console
    return config


def close_config(config: CLIConfig) -> None:
    if config.output is not None:
        config.console.file.close()
