"""Tests for the MCP server entrypoint."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mcp.server.fastmcp.exceptions import ResourceError

from core.constants import Settings
from core.lifecycle import SandboxManager
from main import FILE_RESOURCE_TEMPLATE, build_server, run_node_js_script_prompt, serve


class TestBuildServer:
    """Tests for tool and prompt registration."""

    @pytest.mark.asyncio
    async def test_registers_tools(self, manager: SandboxManager) -> None:
        server = build_server(manager)

        tools = {tool.name: tool for tool in await server.list_tools()}

        assert set(tools) == {"sandbox_initialize", "sandbox_exec", "run_js", "run_js_ephemeral", "sandbox_stop"}
        assert set(tools["run_js"].inputSchema["required"]) == {"container_id", "code"}
        assert set(tools["run_js"].inputSchema["properties"]) == {
            "container_id",
            "code",
            "dependencies",
            "listenOnPort",
        }
        assert set(tools["sandbox_exec"].inputSchema["required"]) == {"container_id", "commands"}
        assert not tools["sandbox_initialize"].inputSchema.get("required")

    @pytest.mark.asyncio
    async def test_registers_prompt(self, manager: SandboxManager) -> None:
        server = build_server(manager)

        prompts = await server.list_prompts()
        assert [p.name for p in prompts] == ["run-node-js-script"]

        result = await server.get_prompt("run-node-js-script", {"prompt": "Fetch a URL"})
        assert "Fetch a URL" in result.messages[0].content.text


class TestFileResources:
    """Tests for reading back the file:// URIs that runs return."""

    @pytest.fixture(autouse=True)
    def host_mount(self, files_dir: Path) -> Any:
        with patch("main.get_mount_point_dir", return_value=files_dir):
            yield

    @pytest.mark.asyncio
    async def test_lists_file_template(self, manager: SandboxManager) -> None:
        server = build_server(manager)

        templates = await server.list_resource_templates()

        assert [(t.name, t.uriTemplate) for t in templates] == [("file", FILE_RESOURCE_TEMPLATE)]

    @pytest.mark.asyncio
    async def test_reads_nested_file_as_bytes(self, manager: SandboxManager, files_dir: Path) -> None:
        chart = files_dir / "charts" / "out.png"
        chart.parent.mkdir()
        chart.write_bytes(b"\x89PNG-data")
        server = build_server(manager)

        contents = list(await server.read_resource(chart.resolve().as_uri()))

        assert len(contents) == 1
        assert contents[0].content == b"\x89PNG-data"
        assert contents[0].mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_rejects_file_outside_files_dir(
        self, manager: SandboxManager, tmp_path_factory: pytest.TempPathFactory
    ) -> None:
        secret = tmp_path_factory.mktemp("elsewhere") / "secret.txt"
        secret.write_text("secret")
        server = build_server(manager)

        with pytest.raises(ResourceError, match="outside the files directory"):
            await server.read_resource(secret.as_uri())

    @pytest.mark.asyncio
    async def test_missing_file_is_a_resource_error(self, manager: SandboxManager, files_dir: Path) -> None:
        server = build_server(manager)

        with pytest.raises(ResourceError):
            await server.read_resource((files_dir.resolve() / "gone.txt").as_uri())


class TestPrompt:
    """Tests for the prompt text."""

    def test_wraps_user_prompt(self) -> None:
        text = run_node_js_script_prompt("plot a chart")

        assert text.startswith("Here is my prompt:\n\nplot a chart\n\n")
        assert "ECMAScript Modules (ESM)" in text
        assert text.endswith("Please write and run a Node.js script.")


class TestServe:
    """Tests for startup and shutdown ordering."""

    @pytest.mark.asyncio
    async def test_starts_and_drains(self, sandbox_settings: Settings) -> None:
        manager = MagicMock(spec=SandboxManager)
        manager.shutdown = AsyncMock()
        manager.settings = sandbox_settings

        with (
            patch("main.get_settings", return_value=sandbox_settings),
            patch("main.SandboxManager", return_value=manager),
            patch("main.FastMCP.run_stdio_async", new=AsyncMock()),
        ):
            await serve()

        manager.start.assert_called_once()
        manager.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_drains_when_server_fails(self, sandbox_settings: Settings) -> None:
        manager = MagicMock(spec=SandboxManager)
        manager.shutdown = AsyncMock()
        manager.settings = sandbox_settings

        with (
            patch("main.get_settings", return_value=sandbox_settings),
            patch("main.SandboxManager", return_value=manager),
            patch("main.FastMCP.run_stdio_async", new=AsyncMock(side_effect=RuntimeError("stdio closed"))),
        ):
            with pytest.raises(RuntimeError, match="stdio closed"):
                await serve()

        manager.shutdown.assert_awaited_once()
