import asyncio
import unittest
from unittest import mock

from assetctl.commands import (
    COMMANDS,
    CommandSpec,
    CommandTable,
    Invocation,
    split_list,
)
from assetctl.config import CLIConfig
from assetctl.errors import DuplicateCommand, UnknownCommand, WorkspaceNotFound


async def _noop(inv):
    return None


def _client(registry=None, result="ok"):
    client = mock.MagicMock()

    def respond(action, params=None):
        if action == "list_favorite_workspaces":
            return registry or []
        return result

    client.call = mock.AsyncMock(side_effect=respond)
    return client


def _run(name, args, *, pwd="/projects/game/art", registry=None):
    spec = COMMANDS.resolve(name)
    client = _client(registry)
    inv = Invocation(spec, args, CLIConfig(pwd=pwd), client)
    asyncio.run(spec.action(inv))
    return client


REGISTRY = [{"name": "game", "file_uri": "file:///projects/game"}]


class CommandTableTests(unittest.TestCase):
    def test_builtin_table_has_unique_tokens(self) -> None:
        tokens = [token for spec in COMMANDS for token in spec.tokens]
        self.assertEqual(len(tokens), len(set(tokens)))
        self.assertIn("list-assets", COMMANDS.names())
        self.assertEqual(COMMANDS.names()[-1], "help")

    def test_duplicate_name_is_rejected(self) -> None:
        with self.assertRaises(DuplicateCommand):
            CommandTable([CommandSpec("stage", "a", _noop), CommandSpec("stage", "b", _noop)])

    def test_alias_clashing_with_name_is_rejected(self) -> None:
        with self.assertRaises(DuplicateCommand):
            CommandTable(
                [
                    CommandSpec("list-stage", "a", _noop, aliases=("ls",)),
                    CommandSpec("ls", "b", _noop),
                ]
            )

    def test_lookup_by_alias(self) -> None:
        self.assertEqual(COMMANDS.resolve("ls-assets").name, "list-assets")
        self.assertEqual(COMMANDS.resolve("bookmark").name, "add-workspace")
        self.assertIsNone(COMMANDS.get("bogus-cmd"))

    def test_unknown_token_raises(self) -> None:
        with self.assertRaises(UnknownCommand) as caught:
            COMMANDS.resolve("bogus-cmd")
        self.assertEqual(caught.exception.token, "bogus-cmd")

    def test_destructive_commands_require_confirmation(self) -> None:
        confirmed = {spec.name for spec in COMMANDS if spec.confirm}
        self.assertEqual(confirmed, {"reset-workspace", "change-branch"})
        for name in confirmed:
            option_names = {option.name for option in COMMANDS.resolve(name).options}
            self.assertIn("force", option_names)

    def test_only_help_is_unsupervised(self) -> None:
        self.assertEqual([spec.name for spec in COMMANDS if not spec.supervised], ["help"])

    def test_split_list(self) -> None:
        self.assertEqual(split_list("a\\b,texture.png"), ["a\\b", "texture.png"])


class WorkspaceResolutionTests(unittest.TestCase):
    def test_explicit_identifier_skips_registry(self) -> None:
        client = _run("stage", {"reference": "duck", "identifier": "game"})
        client.call.assert_awaited_once_with(
            "stage", {"identifier": "game", "reference": "/assets/duck"}
        )

    def test_identifier_inferred_from_working_directory(self) -> None:
        client = _run("stage", {"reference": "duck", "identifier": None}, registry=REGISTRY)
        self.assertEqual(client.call.await_args_list[0].args[0], "list_favorite_workspaces")
        client.call.assert_awaited_with(
            "stage", {"identifier": "file:///projects/game", "reference": "/assets/duck"}
        )

    def test_outside_registered_workspace_fails(self) -> None:
        with self.assertRaises(WorkspaceNotFound):
            _run("list-stage", {"identifier": None}, pwd="/tmp", registry=REGISTRY)

    def test_delete_workspace_searches_from_given_path(self) -> None:
        client = _run(
            "delete-workspace",
            {"relative_path": "../../game", "identifier": None},
            pwd="/projects/other/x",
            registry=REGISTRY,
        )
        client.call.assert_awaited_with("delete_workspace", {"identifier": "file:///projects/game"})


class ActionParameterTests(unittest.TestCase):
    def test_list_assets_defaults_to_root_namespace(self) -> None:
        client = _run("list-assets", {"reference": None, "identifier": "game", "verbose": False})
        client.call.assert_awaited_once_with(
            "list_asset", {"identifier": "game", "reference": "/assets/", "verbose": False}
        )

    def test_list_resources_resolves_reference(self) -> None:
        client = _run("list-resources", {"reference": "tex\\a.png", "identifier": "game", "query": "a"})
        client.call.assert_awaited_once_with(
            "list_resources", {"identifier": "game", "reference": "/resources/tex/a.png", "query": "a"}
        )

    def test_rename_asset_resolves_both_references(self) -> None:
        client = _run(
            "rename-asset",
            {"reference": "old_foo", "new_reference": "/assets/new_foo", "identifier": "game", "verbose": True},
        )
        client.call.assert_awaited_once_with(
            "rename_asset",
            {
                "identifier": "game",
                "reference": "/assets/old_foo",
                "new_reference": "/assets/new_foo",
                "verbose": True,
            },
        )

    def test_update_asset_resolves_dependency_options(self) -> None:
        args = {
            "reference": "foo",
            "identifier": "game",
            "main": "bar",
            "add": ["a\\b", "texture.png"],
            "remove": None,
            "comment": "new comment",
        }
        client = _run("update-asset", args)
        client.call.assert_awaited_once_with(
            "update_asset",
            {
                "identifier": "game",
                "reference": "/assets/foo",
                "changes": {
                    "comment": "new comment",
                    "main": "/resources/bar",
                    "add": ["/resources/a/b", "/resources/texture.png"],
                },
            },
        )
        self.assertEqual(args["main"], "bar")

    def test_subscribe_sends_asset_type(self) -> None:
        client = _run("subscribe", {"reference": "foo", "identifier": "game"})
        client.call.assert_awaited_once_with(
            "subscribe", {"identifier": "game", "reference": "/assets/foo", "type": "ASSET"}
        )

    def test_workspace_paths_join_onto_pwd(self) -> None:
        client = _run("add-workspace", {"identifier": "game", "relative_path": "sub"}, pwd="/projects")
        client.call.assert_awaited_once_with(
            "add_workspace_to_favorite", {"name": "game", "path": "/projects/sub"}
        )

    def test_create_workspace_parameters(self) -> None:
        client = _run(
            "create-workspace",
            {
                "relative_path": "ws",
                "organization": "org",
                "repository": "repo",
                "branch": "master",
                "description": None,
            },
            pwd="/projects",
        )
        client.call.assert_awaited_once_with(
            "create_workspace",
            {
                "path": "/projects/ws",
                "organization": "org",
                "project_name": "repo",
                "branch": "master",
                "description": None,
                "from_repo": True,
            },
        )

    def test_push_folder_asset_resolves_reference_and_directory(self) -> None:
        client = _run(
            "push-folder-asset",
            {"reference": "duck", "directory": "./duck", "identifier": "game"},
            pwd="/projects/game",
        )
        client.call.assert_awaited_once_with(
            "push_folder_asset",
            {"identifier": "game", "reference": "/assets/duck", "directory": "/projects/game/duck"},
        )

    def test_status_passes_reference_through(self) -> None:
        client = _run("status", {"identifier": "game", "reference": None})
        client.call.assert_awaited_once_with("get_status", {"identifier": "game", "reference": None})


if __name__ == "__main__":
    unittest.main()
