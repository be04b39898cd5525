"""Data models for the security pipeline.

Provides enums and dataclasses for policies, validation rules,
and sanitization/validation results.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import Enum


class SecurityLevel(Enum):
    """Named policy baseline."""

    STRICT = "strict"
    MODERATE = "moderate"
    PERMISSIVE = "permissive"


class SecurityType(Enum):
    """How a single input value must be treated before reaching a shell."""

    SAFE = "safe"  # Default: strip metacharacters, quote
    FILEPATH = "filepath"  # Normalize, block traversal/absolute paths, quote
    COMMAND = "command"  # Program name + independently quoted arguments
    TEXT = "text"  # Free text: remove operators/substitution, quote
    UNSAFE = "unsafe"  # No sanitization (only if policy allows)


class ShellFlavor(Enum):
    """Quoting and spawning convention of the target shell."""

    POSIX = "posix"
    WINDOWS = "windows"

    @classmethod
    def detect(cls) -> "ShellFlavor":
        """Return the flavor of the current platform."""
        return cls.WINDOWS if sys.platform == "win32" else cls.POSIX


class Rejection(Enum):
    """Reason a sanitizer refused to produce any value."""

    EMPTY_COMMAND = "empty_command"
    COMMAND_NOT_ALLOWED = "command_not_allowed"
    DANGEROUS_COMMAND = "dangerous_command"

    @property
    def is_policy_violation(self) -> bool:
        return self in (Rejection.COMMAND_NOT_ALLOWED, Rejection.DANGEROUS_COMMAND)


@dataclass(frozen=True)
class Policy:
    """Resolved security settings for one server instance.

    Immutable: reconfiguration produces a new snapshot, so in-flight
    invocations keep reading the one they started with.

    Attributes:
        level: Baseline this policy was built from.
        default_security_type: Type applied to values with no explicit or
            inferred classification.
        allow_unsafe: Whether the ``unsafe`` type may be used.
        allowed_commands: Program allowlist. Empty means no allowlist.
        blocked_patterns: Regexes (or literal substrings, when a pattern is
            not a valid regex) that reject a template or command outright.
        allowed_paths: Path confinement roots. Empty means no confinement.
        max_execution_timeout: Command timeout in seconds.
        max_input_length: Maximum length of an input value, also used as
            the output bound during execution.
        audit_logging: Emit one audit record per execution.
        fail_on_warnings: Treat sanitization warnings as fatal.
    """

    level: SecurityLevel
    default_security_type: SecurityType = SecurityType.SAFE
    allow_unsafe: bool = False
    allowed_commands: frozenset[str] = frozenset()
    blocked_patterns: tuple[str, ...] = ()
    allowed_paths: tuple[str, ...] = ()
    max_execution_timeout: float = 30
    max_input_length: int = 5000
    audit_logging: bool = True
    fail_on_warnings: bool = False


@dataclass(frozen=True)
class ValidationRule:
    """Security classification for one schema property."""

    security_type: SecurityType = SecurityType.SAFE


@dataclass
class SanitizationResult:
    """Outcome of sanitizing a single value.

    ``safe=False`` means sanitization altered or rejected the input; it is
    informational, not itself an error. ``rejection`` is set only when the
    sanitizer refused to produce any value.
    """

    value: str
    safe: bool = True
    warnings: list[str] = field(default_factory=list)
    rejection: Rejection | None = None


@dataclass
class ValidationResult:
    """Outcome of validating one property of a tool invocation."""

    valid: bool
    sanitized_value: str
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    rejection: Rejection | None = None
