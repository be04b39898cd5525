"""shellwrap - expose shell command line tools as MCP servers.

Tools are declared in YAML as command templates with a JSON input schema.
Every invocation passes through the security pipeline in
``shellwrap.security`` before anything reaches a shell.
"""

__version__ = "0.1.0"

from shellwrap.errors import (
    BlockedPatternError,
    CommandNotAllowedError,
    ConfigError,
    InputValidationError,
    PolicyViolation,
    ShellwrapError,
    TemplateError,
    ToolExecutionError,
    ToolNotFoundError,
    WarningsAsErrorsError,
)
from shellwrap.config import WrapperConfig, load_config
from shellwrap.security import (
    PolicyManager,
    Sanitizer,
    SecureRenderer,
    SecurityLevel,
    SecurityType,
    Validator,
)
from shellwrap.tools import CommandExecutor, CommandResult, ToolRunner

__all__ = [
    "__version__",
    "BlockedPatternError",
    "CommandExecutor",
    "CommandNotAllowedError",
    "CommandResult",
    "ConfigError",
    "InputValidationError",
    "PolicyManager",
    "PolicyViolation",
    "Sanitizer",
    "SecureRenderer",
    "SecurityLevel",
    "SecurityType",
    "ShellwrapError",
    "TemplateError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolRunner",
    "Validator",
    "WarningsAsErrorsError",
    "WrapperConfig",
    "load_config",
]
