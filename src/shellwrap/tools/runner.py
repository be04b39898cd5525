"""Binding of one tool definition to the security pipeline and executor."""

from __future__ import annotations

import sys
from collections.abc import Mapping
from typing import Any

from shellwrap.config import PlatformCommands, ToolDefinition
from shellwrap.errors import ConfigError, ShellwrapError
from shellwrap.logging import Loggers, bind_context, unbind_context
from shellwrap.security.models import ValidationRule
from shellwrap.security.policy import PolicyManager
from shellwrap.security.renderer import SecureRenderer
from shellwrap.tools.executor import CommandExecutor, CommandResult

logger = Loggers.tools()

# sys.platform prefix -> PlatformCommands field
_PLATFORM_FIELDS = (
    ("win32", "win"),
    ("darwin", "macos"),
    ("linux", "unix"),
    ("freebsd", "unix"),
    ("openbsd", "unix"),
    ("netbsd", "unix"),
)


def select_platform_command(cmd: PlatformCommands | str, platform: str | None = None) -> str:
    """Pick the command template for a platform.

    Args:
        cmd: Per-platform templates, or a single template.
        platform: A ``sys.platform`` value. Defaults to the current one.

    Returns:
        The platform's template, else the ``default`` template.

    Raises:
        ConfigError: If neither applies.
    """
    if isinstance(cmd, str):
        return cmd

    platform = platform or sys.platform
    for prefix, key in _PLATFORM_FIELDS:
        if platform.startswith(prefix):
            template = getattr(cmd, key)
            if template:
                return template
            break

    if cmd.default:
        return cmd.default

    raise ConfigError(f"No command defined for platform: {platform}")


class ToolRunner:
    """Runs one configured tool: render securely, then execute.

    Validation rules are resolved once at construction, so an invalid
    ``security`` annotation fails here rather than on first call.
    """

    def __init__(
        self,
        name: str,
        definition: ToolDefinition,
        policy_manager: PolicyManager,
        executor: CommandExecutor,
        renderer: SecureRenderer | None = None,
    ) -> None:
        self.name = name
        self.definition = definition
        self.policy_manager = policy_manager
        self.executor = executor
        self.renderer = renderer or SecureRenderer(policy_manager)
        self.rules: dict[str, ValidationRule] = self.renderer.validator.extract_validation_rules(
            definition.input
        )

    @property
    def display_name(self) -> str:
        return self.definition.display_name(self.name)

    def render(self, arguments: Mapping[str, Any]) -> str:
        """Render the platform command for ``arguments`` without running it."""
        template = select_platform_command(self.definition.cmd)
        return self.renderer.render(template, arguments, rules=self.rules)

    async def run(self, arguments: Mapping[str, Any] | None = None) -> CommandResult:
        """Render and execute the tool.

        Raises:
            ShellwrapError: If the invocation is rejected before execution.
                The rejection is audited first.
        """
        arguments = arguments or {}
        bind_context(tool=self.display_name)
        try:
            try:
                command = self.render(arguments)
            except ShellwrapError as e:
                logger.warning("tool_rejected", error=str(e))
                if self.policy_manager.is_audit_logging_enabled():
                    self.executor.audit.log_rejection(
                        str(e), tool=self.display_name, arguments=list(arguments)
                    )
                raise

            return await self.executor.execute(
                command,
                timeout_seconds=self.definition.timeout,
                tool_name=self.display_name,
            )
        finally:
            unbind_context("tool")
