"""Command-line interface for the asset service using Typer + Rich."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

import rich_click as click  # Must be imported before typer to patch Click
import typer
from rich.console import Console
from rich.json import JSON
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from typer.core import TyperArgument, TyperCommand, TyperGroup, TyperOption

from . import __version__
from .commands import COMMANDS, CommandSpec, CommandTable, Invocation
from .config import APP_NAME, SERVICE_BIN_ENV, CLIConfig, build_config, close_config
from .errors import AssetCtlError, RemoteActionError, UnknownCommand
from .protocol.client import BackendClient
from .supervisor import ServiceSupervisor

# Configure rich-click aesthetics
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.STYLE_OPTION = "bold cyan"
click.rich_click.STYLE_SWITCH = "bold cyan"
click.rich_click.STYLE_COMMAND = "bold yellow"
click.rich_click.STYLE_HELPTEXT = "dim"
click.rich_click.MAX_WIDTH = 100

T = TypeVar("T")


class SpecCommand(TyperCommand):
    """A subcommand generated from one command table entry.

    Built from typer's own parameter and command classes so that help,
    usage errors and ``typer.Exit`` are handled by the same click that
    runs the group.
    """

    def __init__(self, spec: CommandSpec, **kwargs: Any) -> None:
        super().__init__(spec.name, **kwargs)
        self.spec = spec

    def invoke(self, ctx: typer.Context) -> None:
        dispatch(self.spec, _ensure_config(ctx), ctx.params, context=ctx)


class RouterGroup(TyperGroup):
    """Resolve subcommands by name or alias against the static command table."""

    table: CommandTable = COMMANDS

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._built: Dict[str, SpecCommand] = {}

    def list_commands(self, ctx: typer.Context) -> List[str]:
        return self.table.names()

    def get_command(self, ctx: typer.Context, cmd_name: str) -> Optional[SpecCommand]:
        spec = self.table.get(cmd_name)
        if spec is None:
            return None
        if spec.name not in self._built:
            self._built[spec.name] = build_command(spec)
        return self._built[spec.name]

    def resolve_command(
        self, ctx: typer.Context, args: List[str]
    ) -> Tuple[Optional[str], Optional[SpecCommand], List[str]]:
        token = args[0]
        try:
            spec = self.table.resolve(token)
        except UnknownCommand as exc:
            if ctx.resilient_parsing or token.startswith("-"):
                return super().resolve_command(ctx, args)
            _print_unknown_command(_ensure_config(ctx), exc, args)
            raise typer.Exit(1)
        return spec.name, self.get_command(ctx, spec.name), args[1:]


app = typer.Typer(
    cls=RouterGroup,
    add_completion=False,
    help="Manage workspaces, assets and branches through the local asset service.",
    rich_markup_mode="rich",
)


def _ensure_config(ctx: typer.Context) -> CLIConfig:
    """Build the shared configuration once from the root context's global options."""

    root = ctx.find_root()
    if isinstance(root.obj, CLIConfig):
        return root.obj
    params = root.params
    config = build_config(
        pwd=params.get("pwd"),
        output=params.get("output"),
        service_output=bool(params.get("service_output")),
        service_bin=params.get("service_bin"),
    )
    handler = _configure_logging(config)
    root.obj = config

    def _close() -> None:
        logging.getLogger(__package__).removeHandler(handler)
        close_config(config)

    root.call_on_close(_close)
    return config


def _configure_logging(config: CLIConfig) -> logging.Handler:
    """Route this package's records to the error console, leaving the root logger alone."""

    handler = RichHandler(console=config.err_console, show_path=False, show_time=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger = logging.getLogger(__package__)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if config.service_output else logging.INFO)
    return handler


def _show_group_help(ctx: typer.Context) -> None:
    typer.echo(ctx.get_help())
    raise typer.Exit()


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{APP_NAME} {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    pwd: Optional[str] = typer.Option(  # noqa: B008
        None,
        "--pwd",
        "-P",
        help="Folder to work from, relative to the current directory.",
        rich_help_panel="Global Options",
    ),
    output: Optional[Path] = typer.Option(  # noqa: B008
        None,
        "--output",
        "-O",
        help="Write console output to <output>.log instead of the terminal.",
        rich_help_panel="Global Options",
    ),
    service_output: bool = typer.Option(  # noqa: B008
        False,
        "--service-output",
        "-B",
        help="Display the background service output and debug diagnostics.",
        rich_help_panel="Global Options",
    ),
    service_bin: Optional[Path] = typer.Option(  # noqa: B008
        None,
        "--service-bin",
        envvar=SERVICE_BIN_ENV,
        help="Path to the asset service executable (overrides PATH lookup).",
        rich_help_panel="Global Options",
    ),
    version: bool = typer.Option(  # noqa: B008
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Top-level callback storing shared CLI state."""

    _ensure_config(ctx)
    if ctx.invoked_subcommand is None:
        _show_group_help(ctx)


def build_command(spec: CommandSpec) -> SpecCommand:
    """Turn a table entry into a typer command bound to the dispatcher."""

    params: List[Any] = []
    for argument in spec.arguments:
        params.append(
            TyperArgument(
                param_decls=[argument.name],
                required=argument.required,
                help=argument.help,
            )
        )
    for option in spec.options:
        kwargs: Dict[str, Any] = {"help": option.help}
        if option.is_flag:
            kwargs["is_flag"] = True
            kwargs["default"] = bool(option.default)
        else:
            kwargs["default"] = option.default
            if option.parser is not None:
                # Plain callables become click's FuncParamType.
                kwargs["type"] = option.parser
            if option.metavar:
                kwargs["metavar"] = option.metavar
        params.append(TyperOption(param_decls=[*option.flags, option.name], **kwargs))

    short_help = spec.help
    if spec.aliases:
        short_help = f"{spec.help} (alias: {', '.join(spec.aliases)})"

    return SpecCommand(
        spec,
        params=params,
        help=spec.help,
        short_help=short_help,
        epilog=spec.epilog,
        rich_help_panel=spec.panel,
    )


def dispatch(
    spec: CommandSpec,
    config: CLIConfig,
    values: Dict[str, Any],
    context: Optional[typer.Context] = None,
) -> None:
    """Run one matched command: confirm, supervise, call, render."""

    if spec.confirm and not values.get("force"):
        if not _confirm(config, spec.confirm):
            config.console.print("[yellow]Aborted; nothing was changed.[/yellow]")
            return

    result = _run(config, lambda: _execute(spec, config, values, context))
    if spec.supervised:
        _print_result(config.console, result, spec.name)


def _confirm(config: CLIConfig, warning: str) -> bool:
    prompt = Console(stderr=True)
    prompt.print(
        Panel(
            f"[bold red]{warning}[/bold red]",
            border_style="red",
            title="[bold red]Danger Zone[/bold red]",
        )
    )
    answer = typer.get_text_stream("stdin").readline()
    return answer.rstrip("\r\n") == "y"


def _execute(
    spec: CommandSpec,
    config: CLIConfig,
    values: Dict[str, Any],
    context: Optional[typer.Context] = None,
) -> Any:
    if not spec.supervised:
        return asyncio.run(spec.action(Invocation(spec, values, config, context=context)))

    supervisor = ServiceSupervisor.from_config(config)
    return supervisor.ensure_running(lambda: asyncio.run(_call_service(spec, config, values)))


async def _call_service(spec: CommandSpec, config: CLIConfig, values: Dict[str, Any]) -> Any:
    client = BackendClient((config.host, config.port))
    await client.connect()
    try:
        return await spec.action(Invocation(spec, values, config, client))
    finally:
        await client.close()


def _run(config: CLIConfig, func: Callable[[], T]) -> T:
    """Execute a command body with unified error handling."""

    try:
        return func()
    except (typer.Exit, typer.Abort):
        raise
    except RemoteActionError as exc:
        suffix = f" ({exc.code})" if exc.code else ""
        _print_error(config, f"{exc.title}{suffix}", exc)
        raise typer.Exit(1)
    except AssetCtlError as exc:
        _print_error(config, exc.title, exc)
        raise typer.Exit(1)
    except OSError as exc:
        _print_error(config, "Service unavailable", exc)
        raise typer.Exit(1)
    except KeyboardInterrupt:  # pragma: no cover - manual interrupt
        config.err_console.print("\n[yellow]Interrupted by user[/yellow]")
        raise typer.Exit(130)
    except Exception as exc:  # pragma: no cover - safety net
        _print_error(config, "Unexpected error", exc)
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Rich formatting helpers
# ---------------------------------------------------------------------------


def _print_error(config: CLIConfig, title: str, exc: BaseException) -> None:
    config.err_console.print(f"[bold red]{title}:[/bold red] {escape(str(exc))}", soft_wrap=True)


def _print_unknown_command(config: CLIConfig, exc: UnknownCommand, args: List[str]) -> None:
    config.err_console.print(
        f"[bold red]{exc.title}:[/bold red] {escape(' '.join(args))}", soft_wrap=True
    )
    config.err_console.print(
        f"[dim]Use `{APP_NAME} help` to list available commands.[/dim]", soft_wrap=True
    )


def _print_workspaces(console: Console, result: Any) -> None:
    if not isinstance(result, list) or not all(isinstance(item, dict) for item in result):
        console.print(JSON.from_data(result))
        return
    if not result:
        console.print("[yellow]No workspaces in the favorite list.[/yellow]")
        return

    table = Table(title="Workspaces", header_style="bold cyan")
    table.add_column("Name", style="bold")
    table.add_column("Location")
    for entry in result:
        location = entry.get("file_uri") or entry.get("url") or entry.get("path") or ""
        table.add_row(str(entry.get("name", "")), str(location))
    console.print(table)


def _print_references(console: Console, result: Any, title: str) -> None:
    items = result.get("items") if isinstance(result, dict) else result
    if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
        console.print(JSON.from_data(result))
        return
    if not items:
        console.print(f"[yellow]{title}: empty.[/yellow]")
        return
    console.print(f"[bold cyan]{title}[/bold cyan]")
    for item in items:
        console.print(f"  {escape(item)}")


def _print_operation_result(console: Console, result: Any, command: str) -> None:
    if result is None:
        console.print(f"[green]{command}: done.[/green]")
    elif isinstance(result, (dict, list)):
        console.print(
            Panel(
                JSON.from_data(result),
                title=f"[bold green]{command}[/bold green]",
                border_style="green",
            )
        )
    else:
        console.print(escape(str(result)))


def _print_result(console: Console, result: Any, command: str) -> None:
    if command == "list-workspaces":
        _print_workspaces(console, result)
    elif command == "list-subscriptions":
        _print_references(console, result, "Subscriptions")
    elif command == "list-stage":
        _print_references(console, result, "Stage")
    elif command in ("list-assets", "list-resources", "list-branches", "status", "get-configs", "whoami"):
        if result is None:
            console.print("[yellow]Nothing to show.[/yellow]")
        elif isinstance(result, str):
            console.print(escape(result))
        else:
            console.print(JSON.from_data(result))
    else:
        _print_operation_result(console, result, command)


cli = typer.main.get_group(app)


def main_entrypoint() -> None:
    cli(prog_name=APP_NAME)


if __name__ == "__main__":  # pragma: no cover - manual invocation
    main_entrypoint()
