"""Per-value sanitization keyed by security type.

The sanitizer is stateless apart from the policy it reads. Every
algorithm ends in shell quoting, so a sanitized value (other than
``unsafe``) is always a literal shell word (or, for ``command``, a
sequence of literal words).
"""

from __future__ import annotations

import json
import ntpath
import posixpath
import re
from collections.abc import Mapping
from typing import Any

from shellwrap.security.models import (
    Rejection,
    SanitizationResult,
    SecurityType,
    ShellFlavor,
)
from shellwrap.security.policy import PolicyManager

# Shell metacharacters removed from safe, filepath and command values
DANGEROUS_CHARS = re.compile(r"[;&|`$(){}\[\]]")

# Shell control operators removed from text values
TEXT_OPERATORS = re.compile(r"[;&|`]")
TEXT_SUBSTITUTIONS = ("$(", "${")

# Programs a ``command`` value may never name
DANGEROUS_COMMANDS: frozenset[str] = frozenset(
    {
        "rm",
        "del",
        "rmdir",
        "format",
        "mkfs",
        "dd",
        "fdisk",
        "chmod",
        "chown",
        "sudo",
        "su",
        "passwd",
        "eval",
        "exec",
        "source",
    }
)

_POSIX_PLAIN_WORD = re.compile(r"[A-Za-z0-9_.-]+")
_WINDOWS_NEEDS_QUOTES = re.compile(r"[\s\"']")
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")
_PATH_SEPARATORS = re.compile(r"[\\/]")

WARN_SANITIZED = "input sanitized for shell safety"
WARN_TEXT_SANITIZED = "dangerous characters removed from text input"
WARN_TRAVERSAL = "path traversal attempt detected and blocked"
WARN_ABSOLUTE = "absolute path detected, using basename only"
WARN_OUTSIDE_ALLOWED = "path outside allowed directories, using basename only"
WARN_EMPTY_COMMAND = "empty command not allowed"
WARN_UNSAFE_DISALLOWED = "unsafe mode not allowed, falling back to safe mode"
WARN_UNSAFE = "using unsafe mode - no sanitization applied"


def stringify(value: Any) -> str:
    """Convert an argument value to the string a shell would see."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else stringify(v) for v in value)
    if isinstance(value, Mapping):
        return json.dumps(value)
    return str(value)


def _remove_repeatedly(value: str, needles: tuple[str, ...]) -> str:
    """Remove needles until none remain (removal can create new ones)."""
    previous = None
    while previous != value:
        previous = value
        for needle in needles:
            value = value.replace(needle, "")
    return value


def _basename(path: str) -> str:
    """Final path segment, treating both separators and dropping drives."""
    name = _PATH_SEPARATORS.split(path)[-1]
    name = _DRIVE_PREFIX.sub("", name)
    return _remove_repeatedly(name, ("..",))


def _is_absolute(path: str) -> bool:
    return path.startswith(("/", "\\")) or _DRIVE_PREFIX.match(path) is not None


class Sanitizer:
    """Transforms a single untrusted value according to its security type.

    Example:
        >>> sanitizer = Sanitizer(PolicyManager.from_level("moderate"), ShellFlavor.POSIX)
        >>> sanitizer.sanitize("hello world").value
        "'hello world'"
    """

    def __init__(
        self,
        policy_manager: PolicyManager,
        shell_flavor: ShellFlavor | None = None,
    ) -> None:
        """Initialize the sanitizer.

        Args:
            policy_manager: Source of allowlists, confinement and unsafe mode.
            shell_flavor: Quoting convention. Detected from the platform
                when omitted.
        """
        self.policy_manager = policy_manager
        self.shell_flavor = shell_flavor or ShellFlavor.detect()

    def sanitize(
        self,
        value: Any,
        security_type: SecurityType | str = SecurityType.SAFE,
    ) -> SanitizationResult:
        """Sanitize a value for inclusion in a shell command.

        Args:
            value: The raw input value. None yields an empty, safe result.
            security_type: Classification selecting the algorithm.

        Returns:
            SanitizationResult with the shell-ready value.
        """
        if value is None:
            return SanitizationResult(value="", safe=True, warnings=[])

        if not isinstance(security_type, SecurityType):
            security_type = SecurityType(security_type)

        text = stringify(value)

        if security_type is SecurityType.UNSAFE:
            return self._sanitize_unsafe(text)
        if security_type is SecurityType.FILEPATH:
            return self._sanitize_filepath(text)
        if security_type is SecurityType.COMMAND:
            return self._sanitize_command(text)
        if security_type is SecurityType.TEXT:
            return self._sanitize_text(text)
        return self._sanitize_safe(text)

    def quote(self, value: str) -> str:
        """Quote a value so the target shell treats it as one literal word."""
        if self.shell_flavor is ShellFlavor.WINDOWS:
            if not value:
                return '""'
            if _WINDOWS_NEEDS_QUOTES.search(value):
                return '"' + value.replace('"', '""') + '"'
            return value

        if not value:
            return "''"
        if _POSIX_PLAIN_WORD.fullmatch(value):
            return value
        return "'" + value.replace("'", "'\\''") + "'"

    def _sanitize_safe(self, value: str) -> SanitizationResult:
        cleaned = DANGEROUS_CHARS.sub("", value).replace("\n", " ").replace("\r", "")
        quoted = self.quote(cleaned)

        if quoted != self.quote(value):
            return SanitizationResult(value=quoted, safe=False, warnings=[WARN_SANITIZED])
        return SanitizationResult(value=quoted)

    def _sanitize_filepath(self, value: str) -> SanitizationResult:
        warnings: list[str] = []
        path = DANGEROUS_CHARS.sub("", value)

        if path:
            pathmod = ntpath if self.shell_flavor is ShellFlavor.WINDOWS else posixpath
            path = pathmod.normpath(path)

        # Traversal and absolute checks first: both can reduce the value to
        # a basename, which then trivially passes confinement
        if ".." in path:
            warnings.append(WARN_TRAVERSAL)
            path = _basename(path)

        if _is_absolute(path):
            warnings.append(WARN_ABSOLUTE)
            path = _basename(path)

        if path and not self.policy_manager.is_path_allowed(path):
            warnings.append(WARN_OUTSIDE_ALLOWED)
            path = _basename(path)

        return SanitizationResult(
            value=self.quote(path),
            safe=not warnings,
            warnings=warnings,
        )

    def _sanitize_command(self, value: str) -> SanitizationResult:
        parts = value.split()
        program = parts[0] if parts else ""

        if not program:
            return self._reject(WARN_EMPTY_COMMAND, Rejection.EMPTY_COMMAND)

        allowed = self.policy_manager.policy.allowed_commands
        if allowed and program not in allowed:
            return self._reject(
                f"command '{program}' not in allowed list",
                Rejection.COMMAND_NOT_ALLOWED,
            )

        if program.lower() in DANGEROUS_COMMANDS:
            return self._reject(
                f"potentially dangerous command '{program}' detected",
                Rejection.DANGEROUS_COMMAND,
            )

        clean_program = DANGEROUS_CHARS.sub("", program)
        if not clean_program:
            return self._reject(WARN_EMPTY_COMMAND, Rejection.EMPTY_COMMAND)

        warnings: list[str] = []
        if clean_program != program:
            warnings.append(WARN_SANITIZED)

        words = [self.quote(clean_program)]
        words.extend(self.quote(DANGEROUS_CHARS.sub("", arg)) for arg in parts[1:])

        return SanitizationResult(
            value=" ".join(words),
            safe=not warnings,
            warnings=warnings,
        )

    def _sanitize_text(self, value: str) -> SanitizationResult:
        cleaned = _remove_repeatedly(TEXT_OPERATORS.sub("", value), TEXT_SUBSTITUTIONS)
        quoted = self.quote(cleaned)

        if quoted != self.quote(value):
            return SanitizationResult(value=quoted, safe=False, warnings=[WARN_TEXT_SANITIZED])
        return SanitizationResult(value=quoted)

    def _sanitize_unsafe(self, value: str) -> SanitizationResult:
        if not self.policy_manager.is_unsafe_allowed():
            return SanitizationResult(
                value=self._sanitize_safe(value).value,
                safe=False,
                warnings=[WARN_UNSAFE_DISALLOWED],
            )
        return SanitizationResult(value=value, safe=False, warnings=[WARN_UNSAFE])

    @staticmethod
    def _reject(warning: str, rejection: Rejection) -> SanitizationResult:
        return SanitizationResult(value="", safe=False, warnings=[warning], rejection=rejection)
