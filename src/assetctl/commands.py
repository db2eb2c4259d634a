"""Declarative table of subcommands and the actions bound to them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import typer

from . import __version__
from .config import APP_NAME, CLIConfig
from .errors import DuplicateCommand, UnknownCommand
from .paths import resolve_asset_ref, resolve_path, resolve_resource_ref, resolve_resource_refs_in_object
from .protocol.client import BackendClient
from .workspaces import REGISTRY_ACTION, find_workspace_url, parse_registry

Action = Callable[["Invocation"], Awaitable[Any]]


@dataclass(frozen=True)
class ArgumentSpec:
    name: str
    required: bool = True
    help: str = ""


@dataclass(frozen=True)
class OptionSpec:
    name: str
    flags: Tuple[str, ...]
    help: str = ""
    is_flag: bool = False
    parser: Optional[Callable[[str], Any]] = None
    default: Any = None
    metavar: Optional[str] = None


@dataclass(frozen=True)
class CommandSpec:
    name: str
    help: str
    action: Action
    aliases: Tuple[str, ...] = ()
    arguments: Tuple[ArgumentSpec, ...] = ()
    options: Tuple[OptionSpec, ...] = ()
    panel: Optional[str] = None
    epilog: Optional[str] = None
    supervised: bool = True
    confirm: Optional[str] = None

    @property
    def tokens(self) -> Tuple[str, ...]:
        return (self.name, *self.aliases)


class CommandTable:
    """Ordered, validated lookup of command specifications by name or alias."""

    def __init__(self, specs: Iterable[CommandSpec]) -> None:
        self._specs: List[CommandSpec] = []
        self._index: Dict[str, CommandSpec] = {}
        for spec in specs:
            for token in spec.tokens:
                if token in self._index:
                    raise DuplicateCommand(
                        f"{token!r} is claimed by both {self._index[token].name!r} and {spec.name!r}"
                    )
                self._index[token] = spec
            self._specs.append(spec)

    def __iter__(self) -> Iterator[CommandSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def names(self) -> List[str]:
        return [spec.name for spec in self._specs]

    def get(self, token: str) -> Optional[CommandSpec]:
        return self._index.get(token)

    def resolve(self, token: str) -> CommandSpec:
        spec = self.get(token)
        if spec is None:
            raise UnknownCommand(token)
        return spec


@dataclass
class Invocation:
    """A matched command with its positional values and options."""

    spec: CommandSpec
    args: Mapping[str, Any]
    config: CLIConfig
    client: Optional[BackendClient] = None
    context: Optional[typer.Context] = field(default=None, repr=False)
    _registry: Optional[list] = field(default=None, repr=False)

    def path(self, relative: Optional[str]) -> str:
        return resolve_path(relative, cwd=self.config.pwd)

    async def call(self, action: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if self.client is None:
            raise RuntimeError(f"{self.spec.name} has no connection to the asset service")
        return await self.client.call(action, params or {})

    async def workspace_identifier(self, start: Optional[str] = None) -> str:
        """Explicit ``--identifier`` first, else the registered workspace enclosing ``start``."""

        explicit = self.args.get("identifier")
        if explicit:
            return explicit
        if self._registry is None:
            self._registry = parse_registry(await self.call(REGISTRY_ACTION))
        return find_workspace_url(start or self.config.pwd, self._registry)


def split_list(value: str) -> List[str]:
    return value.split(",")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def _service_action(remote: str, *fields: str) -> Action:
    async def action(inv: Invocation) -> Any:
        return await inv.call(remote, {name: inv.args.get(name) for name in fields})

    return action


def _workspace_action(
    remote: str,
    *fields: str,
    asset_refs: Tuple[str, ...] = (),
    resource_refs: Tuple[str, ...] = (),
    constants: Optional[Mapping[str, Any]] = None,
) -> Action:
    async def action(inv: Invocation) -> Any:
        params: Dict[str, Any] = {"identifier": await inv.workspace_identifier()}
        for name in asset_refs:
            params[name] = resolve_asset_ref(inv.args.get(name))
        for name in resource_refs:
            params[name] = resolve_resource_ref(inv.args.get(name))
        for name in fields:
            params[name] = inv.args.get(name)
        if constants:
            params.update(constants)
        return await inv.call(remote, params)

    return action


async def _add_workspace(inv: Invocation) -> Any:
    return await inv.call(
        "add_workspace_to_favorite",
        {"name": inv.args["identifier"], "path": inv.path(inv.args.get("relative_path"))},
    )


async def _create_workspace(inv: Invocation) -> Any:
    params = {
        "path": inv.path(inv.args.get("relative_path")),
        "organization": inv.args["organization"],
        "project_name": inv.args["repository"],
        "branch": inv.args["branch"],
        "description": inv.args.get("description"),
        "from_repo": True,
    }
    return await inv.call("create_workspace", params)


async def _reset_workspace(inv: Invocation) -> Any:
    params = {
        "path": inv.path(inv.args.get("relative_path")),
        "silent": bool(inv.args.get("silent")),
    }
    return await inv.call("reset_workspace", params)


async def _delete_workspace(inv: Invocation) -> Any:
    path = inv.path(inv.args.get("relative_path"))
    identifier = await inv.workspace_identifier(start=path)
    return await inv.call("delete_workspace", {"identifier": identifier})


async def _update_asset(inv: Invocation) -> Any:
    identifier = await inv.workspace_identifier()
    changes = {"comment": inv.args.get("comment")}
    changes.update(
        resolve_resource_refs_in_object(
            {
                "main": inv.args.get("main"),
                "add": inv.args.get("add"),
                "remove": inv.args.get("remove"),
            }
        )
    )
    params = {
        "identifier": identifier,
        "reference": resolve_asset_ref(inv.args["reference"]),
        "changes": {key: value for key, value in changes.items() if value is not None},
    }
    return await inv.call("update_asset", params)


async def _push_folder_asset(inv: Invocation) -> Any:
    params = {
        "identifier": await inv.workspace_identifier(),
        "reference": resolve_asset_ref(inv.args["reference"]),
        "directory": inv.path(inv.args["directory"]),
    }
    return await inv.call("push_folder_asset", params)


async def _show_help(inv: Invocation) -> None:
    typer.echo(f"{APP_NAME} {__version__}")
    if inv.context is not None:
        typer.echo(inv.context.find_root().get_help())


# ---------------------------------------------------------------------------
# Shared argument / option definitions
# ---------------------------------------------------------------------------

IDENTIFIER = OptionSpec(
    "identifier",
    ("-i", "--identifier"),
    "Workspace identifier (name or file URI). Defaults to the workspace enclosing --pwd.",
)
VERBOSE = OptionSpec("verbose", ("-v", "--verbose"), "Display full content.", is_flag=True)
ASSET_REF = ArgumentSpec("reference", help="Asset reference, with or without the /assets/ prefix.")

WORKSPACES = "Workspaces"
ASSETS = "Assets"
RESOURCES = "Resources"
SUBSCRIPTIONS = "Subscriptions"
STAGE = "Stage"
VERSIONING = "Version control"
BRANCHES = "Branches"
CONFIG = "Configuration"
AUTH = "Authentication"

RESET_WARNING = (
    "This will remove resources and subscription/stage lists.\n"
    "Are you sure this is what you want? Type [bold]y[/bold] to proceed."
)

COMMANDS = CommandTable(
    [
        CommandSpec("whoami", "Retrieve user information if connected.", _service_action("whoami"), panel=AUTH),
        CommandSpec(
            "login",
            "Authenticate user.",
            _service_action("login"),
            panel=AUTH,
            epilog=(
                "Opens the sign-in page in the default web browser when not connected; "
                "you have one minute to log in."
            ),
        ),
        CommandSpec(
            "session",
            "Set the session token used to talk to the asset backend.",
            _service_action("session", "token"),
            arguments=(ArgumentSpec("token", help="Session token."),),
            panel=AUTH,
        ),
        CommandSpec(
            "logout",
            "Log out from the asset backend.",
            _service_action("logout"),
            panel=AUTH,
            epilog="The session terminates and its token is lost.",
        ),
        CommandSpec(
            "list-workspaces",
            "List workspaces in the favorite list.",
            _service_action("list_workspace", "identifier", "verbose"),
            aliases=("ls-workspaces",),
            options=(IDENTIFIER, VERBOSE),
            panel=WORKSPACES,
            epilog="Only one workspace is listed when --identifier is given.",
        ),
        CommandSpec(
            "add-workspace",
            "Add a workspace to the favorite list under a name identifier.",
            _add_workspace,
            aliases=("bookmark",),
            arguments=(
                ArgumentSpec("identifier", help="Name to register the workspace under."),
                ArgumentSpec("relative_path", required=False, help="Workspace folder, relative to --pwd."),
            ),
            panel=WORKSPACES,
            epilog="The identifier can then be passed to --identifier on other commands.",
        ),
        CommandSpec(
            "forget-workspace",
            "Forget a workspace from the favorite list.",
            _service_action("forget_workspace_in_favorite", "identifier"),
            aliases=("unbookmark",),
            arguments=(ArgumentSpec("identifier", help="Workspace name or file URI."),),
            panel=WORKSPACES,
            epilog='Run "assetctl list-workspaces" to get identifiers.',
        ),
        CommandSpec(
            "forget-workspaces",
            "Forget all workspaces.",
            _service_action("forget_workspaces_in_favorite"),
            aliases=("unbookmark-all",),
            panel=WORKSPACES,
        ),
        CommandSpec(
            "create-workspace",
            "Create a workspace from a remote repository.",
            _create_workspace,
            arguments=(
                ArgumentSpec("relative_path", help="Target folder, created if missing."),
                ArgumentSpec("organization"),
                ArgumentSpec("repository"),
                ArgumentSpec("branch"),
            ),
            options=(OptionSpec("description", ("-d", "--description"), "Workspace description."),),
            panel=WORKSPACES,
            epilog="Example: assetctl create-workspace folder_name organization_name project_name master",
        ),
        CommandSpec(
            "reset-workspace",
            "Reset a workspace.",
            _reset_workspace,
            arguments=(ArgumentSpec("relative_path", required=False, help="Workspace folder, relative to --pwd."),),
            options=(
                OptionSpec("force", ("-f", "--force"), "Reset without prompting.", is_flag=True),
                OptionSpec(
                    "silent",
                    ("-s", "--silent"),
                    "Silence errors when the workspace is missing or invalid.",
                    is_flag=True,
                ),
            ),
            panel=WORKSPACES,
            epilog="WARNING: all resources, subscription and stage lists are removed.",
            confirm=RESET_WARNING,
        ),
        CommandSpec(
            "delete-workspace",
            "Delete a workspace.",
            _delete_workspace,
            aliases=("remove-workspace",),
            arguments=(ArgumentSpec("relative_path", help="Workspace folder, relative to --pwd."),),
            options=(IDENTIFIER,),
            panel=WORKSPACES,
            epilog=(
                "A workspace cannot be removed while the working directory is inside it. "
                "The identifier can be a workspace name or file URI."
            ),
        ),
        CommandSpec(
            "list-assets",
            "List assets.",
            _workspace_action("list_asset", "verbose", asset_refs=("reference",)),
            aliases=("ls-assets",),
            arguments=(ArgumentSpec("reference", required=False, help="Asset or namespace reference."),),
            options=(IDENTIFIER, VERBOSE),
            panel=ASSETS,
            epilog=(
                "Without --verbose only asset and namespace references are shown, unless the "
                "reference points to a single asset. Example: assetctl list-assets namespace/bar/ -v"
            ),
        ),
        CommandSpec(
            "create-asset",
            "Create an asset.",
            _workspace_action("create_asset", "definition_path", asset_refs=("reference",)),
            arguments=(ASSET_REF,),
            options=(
                IDENTIFIER,
                OptionSpec(
                    "definition_path",
                    ("-p", "--definition-path"),
                    "Absolute path to a JSON file holding the asset definition.",
                ),
            ),
            panel=ASSETS,
            epilog="The asset is empty when no definition file is given; use update-asset to fill it.",
        ),
        CommandSpec(
            "rename-asset",
            "Rename an asset.",
            _workspace_action("rename_asset", "verbose", asset_refs=("reference", "new_reference")),
            arguments=(ASSET_REF, ArgumentSpec("new_reference", help="New asset reference.")),
            options=(IDENTIFIER, OptionSpec("verbose", ("-v", "--verbose"), "Display the renamed asset.", is_flag=True)),
            panel=ASSETS,
            epilog="Example: assetctl rename-asset old_foo new_foo",
        ),
        CommandSpec(
            "update-asset",
            "Update an asset.",
            _update_asset,
            arguments=(ASSET_REF,),
            options=(
                IDENTIFIER,
                OptionSpec("main", ("-m", "--main"), "Main resource reference."),
                OptionSpec("add", ("-a", "--add"), "Comma-separated resource dependencies to add.", parser=split_list),
                OptionSpec(
                    "remove",
                    ("-r", "--remove"),
                    "Comma-separated resource dependencies to remove.",
                    parser=split_list,
                ),
                OptionSpec("comment", ("-c", "--comment"), "Asset comment."),
            ),
            panel=ASSETS,
            epilog=(
                "--add and --remove take lists separated by ',' without whitespace and may point "
                'to directories. Example: assetctl update-asset foo --add a/b,texture.png --main bar --comment "new"'
            ),
        ),
        CommandSpec(
            "delete-asset",
            "Delete an asset given by its reference.",
            _workspace_action("delete_asset", asset_refs=("reference",)),
            arguments=(ASSET_REF,),
            options=(IDENTIFIER,),
            panel=ASSETS,
        ),
        CommandSpec(
            "list-resources",
            "Browse resources with their asset associations.",
            _workspace_action("list_resources", "query", resource_refs=("reference",)),
            aliases=("ls-resources",),
            arguments=(ArgumentSpec("reference", required=False, help="Resource reference."),),
            options=(OptionSpec("query", ("-q", "--query"), "Search entry."), IDENTIFIER),
            panel=RESOURCES,
        ),
        CommandSpec(
            "list-subscriptions",
            "Print the subscription list.",
            _workspace_action("get_subscription_list"),
            aliases=("ls-subscriptions",),
            options=(IDENTIFIER,),
            panel=SUBSCRIPTIONS,
        ),
        CommandSpec(
            "subscribe",
            "Subscribe to an asset.",
            _workspace_action("subscribe", asset_refs=("reference",), constants={"type": "ASSET"}),
            arguments=(ASSET_REF,),
            options=(IDENTIFIER,),
            panel=SUBSCRIPTIONS,
            epilog="Example: assetctl subscribe /assets/foo",
        ),
        CommandSpec(
            "unsubscribe",
            "Remove the subscription to an asset.",
            _workspace_action("unsubscribe", asset_refs=("reference",)),
            arguments=(ASSET_REF,),
            options=(IDENTIFIER,),
            panel=SUBSCRIPTIONS,
            epilog='Run "assetctl list-subscriptions" to list current subscriptions.',
        ),
        CommandSpec(
            "reset-subscriptions",
            "Reset the subscription list.",
            _workspace_action("reset_subscription_list"),
            options=(IDENTIFIER,),
            panel=SUBSCRIPTIONS,
        ),
        CommandSpec(
            "list-stage",
            "Print the stage list.",
            _workspace_action("get_stage_list"),
            aliases=("ls-stage",),
            options=(IDENTIFIER,),
            panel=STAGE,
        ),
        CommandSpec(
            "stage",
            "Stage an asset given by its reference.",
            _workspace_action("stage", asset_refs=("reference",)),
            arguments=(ASSET_REF,),
            options=(IDENTIFIER,),
            panel=STAGE,
        ),
        CommandSpec(
            "unstage",
            "Unstage an asset.",
            _workspace_action("unstage", asset_refs=("reference",)),
            arguments=(ASSET_REF,),
            options=(IDENTIFIER,),
            panel=STAGE,
        ),
        CommandSpec(
            "reset-stage",
            "Reset the stage list.",
            _workspace_action("reset_stage_list"),
            options=(IDENTIFIER,),
            panel=STAGE,
        ),
        CommandSpec(
            "status",
            "Print workspace, resource or asset statuses.",
            _workspace_action("get_status", "reference"),
            options=(IDENTIFIER, OptionSpec("reference", ("-r", "--reference"), "Resource reference.")),
            panel=VERSIONING,
        ),
        CommandSpec(
            "push",
            "Push staged items.",
            _workspace_action("push", "comment"),
            arguments=(ArgumentSpec("comment", help="Commit comment."),),
            options=(IDENTIFIER,),
            panel=VERSIONING,
        ),
        CommandSpec(
            "push-folder-asset",
            "Version a whole folder as a single asset.",
            _push_folder_asset,
            arguments=(ASSET_REF, ArgumentSpec("directory", help="Folder to push, relative to --pwd.")),
            options=(IDENTIFIER,),
            panel=VERSIONING,
            epilog="Example: assetctl push-folder-asset /assets/duck ./duck",
        ),
        CommandSpec(
            "list-branches",
            "List available branches.",
            _workspace_action("list_branches", "verbose"),
            aliases=("ls-branches",),
            options=(IDENTIFIER, OptionSpec("verbose", ("-v", "--verbose"), "Verbose output.", is_flag=True)),
            panel=BRANCHES,
        ),
        CommandSpec(
            "current-branch",
            "Get the current branch.",
            _workspace_action("get_branch"),
            options=(IDENTIFIER,),
            panel=BRANCHES,
        ),
        CommandSpec(
            "create-branch",
            "Create a branch from the current one.",
            _workspace_action("create_branch", "branch_name"),
            arguments=(ArgumentSpec("branch_name"),),
            options=(IDENTIFIER,),
            panel=BRANCHES,
        ),
        CommandSpec(
            "change-branch",
            "Change branch.",
            _workspace_action("change_branch", "branch_name"),
            arguments=(ArgumentSpec("branch_name"),),
            options=(IDENTIFIER, OptionSpec("force", ("-f", "--force"), "Change branch without prompting.", is_flag=True)),
            panel=BRANCHES,
            epilog="WARNING: all resources are removed along with subscription and stage lists.",
            confirm=RESET_WARNING,
        ),
        CommandSpec(
            "remove-branch",
            "Remove a branch.",
            _workspace_action("remove_branch", "branch_name"),
            arguments=(ArgumentSpec("branch_name"),),
            options=(IDENTIFIER,),
            panel=BRANCHES,
        ),
        CommandSpec(
            "get-config",
            "Get a configuration value.",
            _service_action("get_config", "name"),
            arguments=(ArgumentSpec("name"),),
            panel=CONFIG,
        ),
        CommandSpec(
            "get-configs",
            "Get all configuration values.",
            _service_action("get_configs"),
            panel=CONFIG,
        ),
        CommandSpec(
            "set-config",
            "Set a configuration value.",
            _service_action("set_config", "name", "value"),
            arguments=(ArgumentSpec("name"), ArgumentSpec("value")),
            panel=CONFIG,
        ),
        CommandSpec(
            "del-config",
            "Reset a configuration value.",
            _service_action("del_config", "name"),
            arguments=(ArgumentSpec("name"),),
            panel=CONFIG,
        ),
        CommandSpec("help", "Display this help.", _show_help, supervised=False),
    ]
)
