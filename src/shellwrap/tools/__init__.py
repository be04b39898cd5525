"""Command execution, auditing and tool binding."""

from shellwrap.tools.audit import AuditConfig, AuditEntry, AuditLogger
from shellwrap.tools.executor import CommandExecutor, CommandResult, ExecutionLimits
from shellwrap.tools.runner import ToolRunner, select_platform_command

__all__ = [
    "AuditConfig",
    "AuditEntry",
    "AuditLogger",
    "CommandExecutor",
    "CommandResult",
    "ExecutionLimits",
    "ToolRunner",
    "select_platform_command",
]
