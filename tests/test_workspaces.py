import unittest

from assetctl.errors import WorkspaceNotFound
from assetctl.workspaces import Workspace, find_workspace_url, parse_registry


REGISTRY = [
    Workspace(name="game", url="file:///projects/game", root="/projects/game"),
    Workspace(name="tools", url="file:///projects/tools", root="/projects/tools"),
]


class FindWorkspaceUrlTests(unittest.TestCase):
    def test_workspace_root_itself_matches(self) -> None:
        self.assertEqual(find_workspace_url("/projects/game", REGISTRY), "file:///projects/game")

    def test_strict_subdirectory_matches(self) -> None:
        self.assertEqual(
            find_workspace_url("/projects/tools/src/deep", REGISTRY),
            "file:///projects/tools",
        )

    def test_sibling_with_common_prefix_does_not_match(self) -> None:
        with self.assertRaises(WorkspaceNotFound):
            find_workspace_url("/projects/gameplay", REGISTRY)

    def test_outside_all_roots_raises(self) -> None:
        with self.assertRaises(WorkspaceNotFound) as caught:
            find_workspace_url("/elsewhere", REGISTRY)
        self.assertEqual(caught.exception.path, "/elsewhere")
        self.assertIn("--identifier", str(caught.exception))

    def test_empty_registry_raises(self) -> None:
        with self.assertRaises(WorkspaceNotFound):
            find_workspace_url("/projects/game", [])

    def test_deepest_nested_workspace_wins(self) -> None:
        registry = REGISTRY + [
            Workspace(name="sub", url="file:///projects/game/sub", root="/projects/game/sub"),
        ]
        self.assertEqual(
            find_workspace_url("/projects/game/sub/x", registry),
            "file:///projects/game/sub",
        )

    def test_windows_style_start_directory(self) -> None:
        registry = [Workspace(name="w", url="file:///C:/work", root="/C:/work")]
        self.assertEqual(find_workspace_url("C:\\work\\assets", registry), "file:///C:/work")


class ParseRegistryTests(unittest.TestCase):
    def test_entries_with_file_uri(self) -> None:
        workspaces = parse_registry(
            [{"name": "game", "file_uri": "file:///projects/my%20game"}]
        )
        self.assertEqual(
            workspaces,
            [Workspace(name="game", url="file:///projects/my%20game", root="/projects/my game")],
        )

    def test_entries_with_path_only(self) -> None:
        workspaces = parse_registry([{"name": "tools", "path": "/projects/tools/"}])
        self.assertEqual(workspaces[0].root, "/projects/tools")
        self.assertEqual(workspaces[0].url, "file:///projects/tools")

    def test_wrapped_payload_and_malformed_entries(self) -> None:
        workspaces = parse_registry(
            {"items": [{"name": "nope"}, "garbage", {"url": "https://x/y"}, {"url": "file:///ok"}]}
        )
        self.assertEqual([w.root for w in workspaces], ["/ok"])
        self.assertEqual(workspaces[0].name, "file:///ok")

    def test_unexpected_payload(self) -> None:
        self.assertEqual(parse_registry(None), [])
        self.assertEqual(parse_registry("text"), [])


if __name__ == "__main__":
    unittest.main()
