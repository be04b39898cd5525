"""
shellwrap.server - MCP Server

Exposes every configured tool over the MCP stdio transport. The protocol
handlers are thin: lookup, run, and translate the CommandResult. Argument
schema validation is done by the MCP server before the handler runs.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from shellwrap.config import WrapperConfig
from shellwrap.errors import ToolExecutionError, ToolNotFoundError
from shellwrap.logging import Loggers
from shellwrap.security.policy import PolicyManager
from shellwrap.security.renderer import SecureRenderer
from shellwrap.tools.audit import AuditLogger
from shellwrap.tools.executor import CommandExecutor
from shellwrap.tools.runner import ToolRunner

logger = Loggers.server()

DEFAULT_NAME = "shellwrap"
DEFAULT_VERSION = "1.0.0"
SUCCESS_MESSAGE = "Command executed successfully"


class ShellwrapServer:
    """MCP server over a loaded configuration.

    Example:
        >>> config = load_config("shellwrap.yaml")
        >>> server = ShellwrapServer(config, config.policy_manager())
        >>> await server.run_stdio()
    """

    def __init__(
        self,
        config: WrapperConfig,
        policy_manager: PolicyManager | None = None,
        *,
        name: str | None = None,
        version: str | None = None,
        audit: AuditLogger | None = None,
    ) -> None:
        self.config = config
        self.policy_manager = policy_manager or config.policy_manager()
        self.name = name or DEFAULT_NAME
        self.version = version or DEFAULT_VERSION
        self.executor = CommandExecutor(self.policy_manager, audit=audit)
        renderer = SecureRenderer(self.policy_manager)

        self.runners: dict[str, ToolRunner] = {
            key: ToolRunner(key, definition, self.policy_manager, self.executor, renderer)
            for key, definition in config.tools.items()
        }

    def find_runner(self, name: str) -> ToolRunner:
        """Find a tool by config key, then by display name.

        Raises:
            ToolNotFoundError: If no tool matches.
        """
        runner = self.runners.get(name)
        if runner is not None:
            return runner
        for candidate in self.runners.values():
            if candidate.definition.name == name:
                return candidate
        raise ToolNotFoundError(name)

    def list_tools(self) -> list[Tool]:
        """One MCP Tool per definition."""
        tools = [
            Tool(
                name=runner.display_name,
                description=runner.definition.description,
                inputSchema=runner.definition.input.to_json_schema(),
            )
            for runner in self.runners.values()
        ]
        logger.info("tools_listed", count=len(tools))
        return tools

    async def call_tool(self, name: str, arguments: Mapping[str, Any] | None) -> list[TextContent]:
        """Run a tool and return its output as text content.

        Raises:
            ToolNotFoundError: If the tool is unknown.
            ShellwrapError: If the invocation is rejected by the security
                pipeline.
            ToolExecutionError: If the command ran and failed.
        """
        logger.info("tool_called", tool=name)
        runner = self.find_runner(name)
        result = await runner.run(arguments or {})

        if not result.success:
            raise ToolExecutionError(f"Error: {result.stderr or result.error or 'Command failed'}")

        return [TextContent(type="text", text=result.stdout or SUCCESS_MESSAGE)]

    def build(self) -> Server:
        """Create the low-level MCP server wired to this instance."""
        server = Server(self.name, version=self.version)

        @server.list_tools()
        async def handle_list_tools() -> list[Tool]:
            return self.list_tools()

        @server.call_tool()
        async def handle_call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
            return await self.call_tool(name, arguments)

        return server

    async def run_stdio(self) -> None:
        """Serve over stdin/stdout until the client disconnects."""
        server = self.build()
        logger.info("server_starting", name=self.name, tools=len(self.runners), transport="stdio")
        try:
            async with stdio_server() as (read_stream, write_stream):
                await server.run(read_stream, write_stream, server.create_initialization_options())
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Terminate any commands still running."""
        terminated = await self.executor.terminate_all()
        logger.info("server_stopped", terminated=terminated)
