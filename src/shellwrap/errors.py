"""Exception hierarchy for shellwrap.

Callers of the security pipeline match on the category phrases carried in
these messages ("Template validation failed", "warnings treated as errors",
"contains blocked patterns", "Command not allowed"), so keep them stable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class ShellwrapError(Exception):
    """Base class for all shellwrap errors."""

    pass


@dataclass
class ConfigProblem:
    """A single offending field found while loading configuration."""

    field: str
    message: str
    value: Any = None

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ConfigError(ShellwrapError):
    """Raised when configuration is invalid.

    All problems found in one load pass are aggregated so a single
    fix pass suffices.

    Attributes:
        problems: Every offending field that was found.
    """

    def __init__(self, message: str, problems: list[ConfigProblem] | None = None) -> None:
        self.problems = list(problems or [])
        if self.problems:
            details = "\n".join(str(p) for p in self.problems)
            message = f"{message}:\n{details}"
        super().__init__(message)

    @classmethod
    def from_problems(cls, problems: list[ConfigProblem]) -> "ConfigError":
        return cls("Configuration validation failed", problems)


class TemplateError(ShellwrapError):
    """Raised when a command template cannot be parsed or rendered."""

    pass


def _format_failures(failures: dict[str, list[str]]) -> str:
    return "; ".join(f"{key}: {', '.join(items)}" for key, items in failures.items())


class InputValidationError(ShellwrapError):
    """Raised when one or more input values fail security validation.

    Attributes:
        failures: Mapping of property name to its error messages.
    """

    prefix = "Template validation failed"

    def __init__(self, failures: dict[str, list[str]]) -> None:
        self.failures = failures
        super().__init__(f"{self.prefix}: {_format_failures(failures)}")


class WarningsAsErrorsError(InputValidationError):
    """Raised when sanitization warnings are fatal under the active policy."""

    prefix = "Template validation warnings treated as errors"


class PolicyViolation(ShellwrapError):
    """Raised when a command or template violates the security policy."""

    pass


class CommandNotAllowedError(PolicyViolation):
    """Raised when a command value names a program the policy refuses.

    Attributes:
        failures: Mapping of property name to the rejection details.
    """

    def __init__(self, failures: dict[str, list[str]]) -> None:
        self.failures = failures
        super().__init__(f"Command not allowed: {_format_failures(failures)}")


class BlockedPatternError(PolicyViolation):
    """Raised when a template or rendered command matches a blocked pattern.

    Attributes:
        stage: "template" for the unrendered literal, "rendered" for the
            final command string.
    """

    TEMPLATE = "template"
    RENDERED = "rendered"

    def __init__(self, stage: str) -> None:
        self.stage = stage
        if stage == self.TEMPLATE:
            message = "Template contains blocked patterns"
        else:
            message = "Rendered command contains blocked patterns"
        super().__init__(message)


class ToolNotFoundError(ShellwrapError):
    """Raised when a tool call names an unknown tool."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' not found")


class ToolExecutionError(ShellwrapError):
    """Raised by the protocol layer when a tool command fails."""

    pass
