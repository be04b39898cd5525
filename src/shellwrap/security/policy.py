"""Security policy baselines and the PolicyManager.

The three built-in levels differ only in data: allowlists, blocked
patterns, budgets and switches. All policy decisions go through
PolicyManager queries so callers never interpret a Policy directly.
"""

from __future__ import annotations

import dataclasses
import os
import re
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from shellwrap.errors import ConfigError, ConfigProblem
from shellwrap.logging import Loggers
from shellwrap.security.models import Policy, SecurityLevel, SecurityType

logger = Loggers.security()


# Read-only utilities permitted under the strict baseline
STRICT_COMMANDS: frozenset[str] = frozenset(
    {
        "echo",
        "cat",
        "ls",
        "pwd",
        "grep",
        "head",
        "tail",
        "wc",
        "sort",
        "uniq",
        "date",
        "whoami",
    }
)

MODERATE_COMMANDS: frozenset[str] = STRICT_COMMANDS | {
    "git",
    "find",
    "diff",
    "tree",
    "stat",
    "file",
    "du",
    "df",
    "ps",
    "which",
    "sed",
    "awk",
    "jq",
    "tar",
    "make",
    "python3",
    "node",
    "npm",
}

# Broad set: any shell control syntax at all is refused
STRICT_BLOCKED_PATTERNS: tuple[str, ...] = (
    r";",
    r"&&",
    r"\|",
    r"`",
    r"\$\(",
    r"\$\{",
    r">",
    r"<",
    r"\brm\s+-",
    r"\bsudo\b",
    r"\bsu\s",
    r"\bchmod\b",
    r"\bchown\b",
    r"\bmkfs",
    r"\bdd\s+.*of=",
    r"\bformat\s+[a-z]:",
    r"\beval\b",
    r"\bexec\b",
    r"\bshutdown\b",
    r"\breboot\b",
)

# Destructive operations, anchored to command position so that a quoted,
# sanitized word mentioning them is not flagged. A command starts the
# string, a line, a subshell or a substitution, or follows an operator,
# a shell keyword, or a program that runs its arguments as a command.
_CMD_START = r"(?:^|[;&|\n\r(`{])"
_CMD_PREFIX = (
    r"(?:(?:xargs|env|nohup|nice|time|timeout|command|builtin|exec|then|do|else)\b"
    r"(?:\s+(?:-\S+|\w+=\S*|\d+))*\s+)*"
)
_CMD_POSITION = _CMD_START + r"\s*" + _CMD_PREFIX

MODERATE_BLOCKED_PATTERNS: tuple[str, ...] = (
    _CMD_POSITION + r"rm\s+-(?:[a-z]*r[a-z]*f|[a-z]*f[a-z]*r)",
    _CMD_POSITION + r"sudo\b",
    _CMD_POSITION + r"su\s+-",
    _CMD_POSITION + r"format\s+[a-z]:",
    _CMD_POSITION + r"mkfs",
    _CMD_POSITION + r"dd\s+.*of=/dev/",
    _CMD_POSITION + r"(?:shutdown|reboot|halt|poweroff)\b",
    _CMD_POSITION + r"chmod\s+(?:-R\s+)?777\s+/",
    r":\(\)\s*\{\s*:\|:&\s*\};\s*:",
    r">\s*/dev/sd[a-z]",
    r"\b(?:curl|wget)\b[^|]*\|\s*(?:ba)?sh\b",
)

PERMISSIVE_BLOCKED_PATTERNS: tuple[str, ...] = (
    r"\brm\s+-(?:[a-z]*r[a-z]*f|[a-z]*f[a-z]*r)[a-z]*\s+/(?:\s|$)",
    r":\(\)\s*\{\s*:\|:&\s*\};\s*:",
    r"\bmkfs",
    r"\bdd\s+.*of=/dev/",
)


SECURITY_POLICIES: dict[SecurityLevel, Policy] = {
    SecurityLevel.STRICT: Policy(
        level=SecurityLevel.STRICT,
        allow_unsafe=False,
        allowed_commands=STRICT_COMMANDS,
        blocked_patterns=STRICT_BLOCKED_PATTERNS,
        allowed_paths=("./",),
        max_execution_timeout=10,
        max_input_length=1000,
        audit_logging=True,
        fail_on_warnings=True,
    ),
    SecurityLevel.MODERATE: Policy(
        level=SecurityLevel.MODERATE,
        allow_unsafe=False,
        allowed_commands=MODERATE_COMMANDS,
        blocked_patterns=MODERATE_BLOCKED_PATTERNS,
        allowed_paths=("./", tempfile.gettempdir(), str(Path.home())),
        max_execution_timeout=30,
        max_input_length=5000,
        audit_logging=True,
        fail_on_warnings=False,
    ),
    SecurityLevel.PERMISSIVE: Policy(
        level=SecurityLevel.PERMISSIVE,
        allow_unsafe=True,
        allowed_commands=frozenset(),
        blocked_patterns=PERMISSIVE_BLOCKED_PATTERNS,
        allowed_paths=(),
        max_execution_timeout=60,
        max_input_length=10000,
        audit_logging=False,
        fail_on_warnings=False,
    ),
}

# Raw security-config keys (camelCase, as written in YAML) -> Policy fields
_CONFIG_KEYS: dict[str, str] = {
    "defaultSecurityType": "default_security_type",
    "allowUnsafe": "allow_unsafe",
    "allowedCommands": "allowed_commands",
    "blockedPatterns": "blocked_patterns",
    "allowedPaths": "allowed_paths",
    "maxExecutionTimeout": "max_execution_timeout",
    "maxInputLength": "max_input_length",
    "auditLogging": "audit_logging",
    "failOnWarnings": "fail_on_warnings",
}


def _coerce_level(level: SecurityLevel | str) -> SecurityLevel:
    if isinstance(level, SecurityLevel):
        return level
    return SecurityLevel(level)


def _coerce_overrides(overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Convert override values to the types Policy stores."""
    coerced: dict[str, Any] = {}
    for name, value in overrides.items():
        if name == "level":
            value = _coerce_level(value)
        elif name == "default_security_type" and not isinstance(value, SecurityType):
            value = SecurityType(value)
        elif name == "allowed_commands":
            value = frozenset(value)
        elif name in ("blocked_patterns", "allowed_paths"):
            value = tuple(value)
        coerced[name] = value
    return coerced


def _normalize_path(path: str) -> str:
    return os.path.normpath(os.path.abspath(os.path.expanduser(path)))


class _CompiledPattern:
    """A blocked pattern, as a regex when valid, else a literal substring."""

    __slots__ = ("source", "regex", "literal")

    def __init__(self, source: str) -> None:
        self.source = source
        self.literal = source.lower()
        try:
            self.regex: re.Pattern[str] | None = re.compile(source, re.IGNORECASE)
        except re.error:
            self.regex = None

    def matches(self, text: str) -> bool:
        if self.regex is not None:
            return self.regex.search(text) is not None
        return self.literal in text.lower()


class PolicyManager:
    """Builds policies and answers policy queries.

    The manager wraps an immutable Policy snapshot. ``update_policy``
    swaps the snapshot; callers must not call it while invocations are
    in flight.

    Example:
        >>> manager = PolicyManager.from_level("strict")
        >>> manager.is_command_allowed("git")
        False
    """

    def __init__(self, policy: Policy) -> None:
        self._policy = policy
        self._patterns = [_CompiledPattern(p) for p in policy.blocked_patterns]

    @classmethod
    def from_level(
        cls,
        level: SecurityLevel | str = SecurityLevel.MODERATE,
        **overrides: Any,
    ) -> "PolicyManager":
        """Create a manager from a named baseline plus field overrides.

        Args:
            level: Baseline to start from.
            **overrides: Policy fields to replace on top of the baseline.

        Raises:
            ValueError: If the level name is unknown.
            TypeError: If an override names a field Policy does not have.
        """
        policy = SECURITY_POLICIES[_coerce_level(level)]
        if overrides:
            policy = dataclasses.replace(policy, **_coerce_overrides(overrides))
        return cls(policy)

    @classmethod
    def from_config(cls, config: Any = None) -> "PolicyManager":
        """Create a manager from a raw security configuration block.

        Accepts a mapping with camelCase (YAML) or snake_case keys, a
        pydantic SecurityConfig model, or None. Fields that are absent or
        None keep the baseline value. A missing or unrecognized level
        falls back to moderate; rejecting bad level names is the config
        loader's job.
        """
        if config is None:
            raw: dict[str, Any] = {}
        elif hasattr(config, "model_dump"):
            raw = config.model_dump(exclude_none=True)
        else:
            raw = dict(config)

        level_value = raw.pop("level", None)
        level = SecurityLevel.MODERATE
        if level_value is not None:
            try:
                level = _coerce_level(level_value)
            except ValueError:
                logger.warning("unknown_security_level", level=level_value, fallback=level.value)

        overrides: dict[str, Any] = {}
        for key, value in raw.items():
            if value is None:
                continue
            name = _CONFIG_KEYS.get(key, key)
            if name in _CONFIG_KEYS.values():
                overrides[name] = value

        try:
            return cls.from_level(level, **overrides)
        except ValueError as e:
            raise ConfigError.from_problems(
                [ConfigProblem("security.defaultSecurityType", str(e), overrides.get("default_security_type"))]
            ) from e

    @property
    def policy(self) -> Policy:
        """The current policy snapshot."""
        return self._policy

    def get_policy(self) -> Policy:
        return self._policy

    def update_policy(self, **overrides: Any) -> Policy:
        """Replace the policy snapshot with overridden fields.

        Not safe to call while validations are in progress.

        Returns:
            The new snapshot.
        """
        self._policy = dataclasses.replace(self._policy, **_coerce_overrides(overrides))
        self._patterns = [_CompiledPattern(p) for p in self._policy.blocked_patterns]
        logger.info("policy_updated", level=self._policy.level.value, fields=sorted(overrides))
        return self._policy

    def is_pattern_blocked(self, text: str) -> bool:
        """Check text against blocked patterns, case-insensitively."""
        for pattern in self._patterns:
            if pattern.matches(text):
                logger.debug("blocked_pattern_matched", pattern=pattern.source)
                return True
        return False

    def is_command_allowed(self, command: str) -> bool:
        """Check a command against the allowlist and blocked patterns."""
        if self._policy.allowed_commands and command not in self._policy.allowed_commands:
            return False
        return not self.is_pattern_blocked(command)

    def is_path_allowed(self, path: str) -> bool:
        """Check that a path lies inside one of the allowed roots.

        Relative paths resolve against the current working directory.
        Containment is component-wise: ``/tmp`` does not admit ``/tmpfoo``.
        """
        if not self._policy.allowed_paths:
            return True

        candidate = os.path.normpath(os.path.abspath(path))
        for allowed in self._policy.allowed_paths:
            root = _normalize_path(allowed)
            try:
                if os.path.commonpath([root, candidate]) == root:
                    return True
            except ValueError:
                # Different drives on Windows
                continue
        return False

    def validate_input_length(self, text: str) -> bool:
        return len(text) <= self._policy.max_input_length

    def max_execution_timeout_millis(self) -> int:
        return int(self._policy.max_execution_timeout * 1000)

    def should_fail_on_warnings(self) -> bool:
        return self._policy.fail_on_warnings

    def is_audit_logging_enabled(self) -> bool:
        return self._policy.audit_logging

    def is_unsafe_allowed(self) -> bool:
        return self._policy.allow_unsafe

    def get_default_security_type(self) -> SecurityType:
        return self._policy.default_security_type

    def validate_security_type(self, security_type: SecurityType | str) -> bool:
        """Return False only for ``unsafe`` when the policy disallows it."""
        if not isinstance(security_type, SecurityType):
            security_type = SecurityType(security_type)
        if security_type is SecurityType.UNSAFE:
            return self._policy.allow_unsafe
        return True
