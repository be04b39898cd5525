"""Tests for per-type sanitization and shell quoting.

All sanitizers here quote for a POSIX shell unless a test says otherwise,
so the expectations hold on every platform.
"""

import re
import shlex

import pytest

from shellwrap.security import (
    PolicyManager,
    Rejection,
    Sanitizer,
    SecurityType,
    ShellFlavor,
)
from shellwrap.security.sanitizer import (
    WARN_ABSOLUTE,
    WARN_EMPTY_COMMAND,
    WARN_OUTSIDE_ALLOWED,
    WARN_SANITIZED,
    WARN_TEXT_SANITIZED,
    WARN_TRAVERSAL,
    WARN_UNSAFE,
    WARN_UNSAFE_DISALLOWED,
    stringify,
)

HOSTILE_PATHS = [
    "../../../etc/passwd",
    "....//....//etc",
    "..\\..\\windows\\system32",
    "/",
    "",
    "a/../../b",
    "C:..\\x",
    "C:\\Windows\\system.ini",
    "~/../../x",
    "foo..bar",
    "...",
    "a b/../../c d",
    "$(whoami)/x",
    "it's/../../here",
    "\\\\server\\share\\file",
]

HOSTILE_VALUES = [
    "hello world",
    "a'b",
    "x\ny",
    "",
    "$(rm -rf /)",
    "`id`",
    "a  b\tc",
    "semi;colon && pipe | amp &",
    "'; echo pwned; '",
]


def _sanitizer(manager: PolicyManager) -> Sanitizer:
    return Sanitizer(manager, ShellFlavor.POSIX)


@pytest.fixture
def sanitizer(moderate_manager):
    return _sanitizer(moderate_manager)


class TestStringify:
    """Non-string argument values."""

    def test_booleans(self):
        assert stringify(True) == "true"
        assert stringify(False) == "false"

    def test_numbers(self):
        assert stringify(3) == "3"
        assert stringify(3.0) == "3"
        assert stringify(2.5) == "2.5"

    def test_lists_and_mappings(self):
        assert stringify([1, "a", True]) == "1,a,true"
        assert stringify({"a": 1}) == '{"a": 1}'


class TestQuote:
    """Shell quoting for both flavors."""

    def test_posix_plain_word_unchanged(self, sanitizer):
        assert sanitizer.quote("notes_v1.2-final") == "notes_v1.2-final"

    def test_posix_empty(self, sanitizer):
        assert sanitizer.quote("") == "''"

    def test_posix_embedded_quote(self, sanitizer):
        assert sanitizer.quote("it's") == "'it'\\''s'"
        assert shlex.split(sanitizer.quote("it's")) == ["it's"]

    def test_windows_quoting(self, moderate_manager):
        windows = Sanitizer(moderate_manager, ShellFlavor.WINDOWS)
        assert windows.quote("") == '""'
        assert windows.quote("plain") == "plain"
        assert windows.quote("a b") == '"a b"'
        assert windows.quote('say "hi"') == '"say ""hi"""'


class TestSafe:
    """The default ``safe`` algorithm."""

    def test_none_is_empty_and_safe(self, sanitizer):
        result = sanitizer.sanitize(None)
        assert result.value == ""
        assert result.safe
        assert result.warnings == []

    def test_empty_string(self, sanitizer):
        result = sanitizer.sanitize("", SecurityType.SAFE)
        assert result.value == "''"
        assert result.safe
        assert result.warnings == []

    def test_hello_world(self, sanitizer):
        result = sanitizer.sanitize("hello world")
        assert result.value == "'hello world'"
        assert result.safe

    def test_metacharacters_removed(self, sanitizer):
        result = sanitizer.sanitize("hello; rm -rf / && `id` $(x) {a} [b]")
        assert not result.safe
        assert result.warnings == [WARN_SANITIZED]
        for char in ";&|`$(){}[]":
            assert char not in result.value

    def test_newlines_become_spaces(self, sanitizer):
        result = sanitizer.sanitize("line1\r\nline2")
        assert result.value == "'line1 line2'"
        assert not result.safe

    def test_type_given_by_name(self, sanitizer):
        assert sanitizer.sanitize("a;b", "safe").value == "ab"

    def test_non_string_values(self, sanitizer):
        assert sanitizer.sanitize(True).value == "true"
        assert sanitizer.sanitize(42).value == "42"

    @pytest.mark.parametrize("value", HOSTILE_VALUES)
    def test_single_shell_word(self, sanitizer, value):
        assert len(shlex.split(sanitizer.sanitize(value).value)) == 1

    @pytest.mark.parametrize("value", HOSTILE_VALUES)
    def test_idempotent_after_unquoting(self, sanitizer, value):
        first = sanitizer.sanitize(value).value
        unquoted = shlex.split(first)[0]
        assert sanitizer.sanitize(unquoted).value == first


class TestFilepath:
    """Traversal, absolute paths and confinement."""

    def test_traversal_reduced_to_basename(self, sanitizer):
        result = sanitizer.sanitize("../../../etc/passwd", SecurityType.FILEPATH)
        assert result.value == "passwd"
        assert not result.safe
        assert WARN_TRAVERSAL in result.warnings

    def test_absolute_path_reduced_to_basename(self, sanitizer):
        result = sanitizer.sanitize("/etc/passwd", SecurityType.FILEPATH)
        assert result.value == "passwd"
        assert result.warnings == [WARN_ABSOLUTE]

    def test_drive_letter_reduced_to_basename(self, sanitizer):
        result = sanitizer.sanitize("C:\\Windows\\system.ini", SecurityType.FILEPATH)
        assert result.value == "system.ini"
        assert WARN_ABSOLUTE in result.warnings

    def test_relative_path_kept(self, sanitizer):
        result = sanitizer.sanitize("src/main.py", SecurityType.FILEPATH)
        assert result.value == "'src/main.py'"
        assert result.safe
        assert result.warnings == []

    def test_path_is_normalized(self, sanitizer):
        assert sanitizer.sanitize("src/./lib//x.py", SecurityType.FILEPATH).value == "'src/lib/x.py'"

    def test_outside_allowed_paths(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        manager = PolicyManager.from_level("moderate", allowed_paths=[str(tmp_path / "allowed")])
        result = _sanitizer(manager).sanitize("notes/a.txt", SecurityType.FILEPATH)
        assert result.value == "a.txt"
        assert result.warnings == [WARN_OUTSIDE_ALLOWED]

    def test_inside_allowed_paths(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        manager = PolicyManager.from_level("moderate", allowed_paths=[str(tmp_path)])
        result = _sanitizer(manager).sanitize("notes/a.txt", SecurityType.FILEPATH)
        assert result.value == "'notes/a.txt'"
        assert result.safe

    def test_empty_path(self, sanitizer):
        result = sanitizer.sanitize("", SecurityType.FILEPATH)
        assert result.value == "''"
        assert result.safe

    @pytest.mark.parametrize("value", HOSTILE_PATHS)
    def test_never_escapes(self, sanitizer, value):
        result = sanitizer.sanitize(value, SecurityType.FILEPATH)
        assert ".." not in result.value
        assert not result.value.startswith("/")
        assert not re.match(r"^[A-Za-z]:", result.value)
        words = shlex.split(result.value)
        assert len(words) == 1
        assert not words[0].startswith(("/", "\\"))
        assert not re.match(r"^[A-Za-z]:", words[0])


class TestCommand:
    """Program allowlists and argument quoting."""

    def test_allowed_command(self, sanitizer):
        result = sanitizer.sanitize("git status", SecurityType.COMMAND)
        assert result.value == "git status"
        assert result.safe
        assert result.rejection is None

    def test_arguments_quoted_independently(self, sanitizer):
        result = sanitizer.sanitize("grep hello;world notes.txt", SecurityType.COMMAND)
        assert result.value == "grep helloworld notes.txt"

    def test_not_in_allowlist(self, strict_manager):
        result = _sanitizer(strict_manager).sanitize("git status", SecurityType.COMMAND)
        assert result.value == ""
        assert result.rejection is Rejection.COMMAND_NOT_ALLOWED
        assert result.warnings == ["command 'git' not in allowed list"]

    def test_metacharacters_in_program_not_allowed(self, sanitizer):
        result = sanitizer.sanitize("ls;rm -rf /", SecurityType.COMMAND)
        assert result.rejection is Rejection.COMMAND_NOT_ALLOWED
        assert result.value == ""

    def test_dangerous_command_without_allowlist(self, permissive_manager):
        result = _sanitizer(permissive_manager).sanitize("RM -rf build", SecurityType.COMMAND)
        assert result.rejection is Rejection.DANGEROUS_COMMAND
        assert result.value == ""
        assert "dangerous" in result.warnings[0]

    def test_empty_command(self, sanitizer):
        result = sanitizer.sanitize("   ", SecurityType.COMMAND)
        assert result.rejection is Rejection.EMPTY_COMMAND
        assert result.warnings == [WARN_EMPTY_COMMAND]

    def test_program_is_cleaned_without_allowlist(self, permissive_manager):
        result = _sanitizer(permissive_manager).sanitize("echo$ hi", SecurityType.COMMAND)
        assert result.value == "echo hi"
        assert result.warnings == [WARN_SANITIZED]

    def test_rejection_is_policy_violation(self):
        assert Rejection.COMMAND_NOT_ALLOWED.is_policy_violation
        assert Rejection.DANGEROUS_COMMAND.is_policy_violation
        assert not Rejection.EMPTY_COMMAND.is_policy_violation


class TestText:
    """Free text keeps punctuation but loses shell operators."""

    def test_operators_removed(self, sanitizer):
        result = sanitizer.sanitize("hello; rm -rf /", SecurityType.TEXT)
        assert result.value == "'hello rm -rf /'"
        assert not result.safe
        assert result.warnings == [WARN_TEXT_SANITIZED]

    def test_nested_substitution_removed(self, sanitizer):
        result = sanitizer.sanitize("$$((x))", SecurityType.TEXT)
        assert "$(" not in result.value
        assert result.value == "'x))'"

    def test_plain_dollar_kept(self, sanitizer):
        result = sanitizer.sanitize("costs $5 (approx)", SecurityType.TEXT)
        assert result.value == "'costs $5 (approx)'"
        assert result.safe

    @pytest.mark.parametrize("value", HOSTILE_VALUES)
    def test_single_shell_word(self, sanitizer, value):
        assert len(shlex.split(sanitizer.sanitize(value, SecurityType.TEXT).value)) == 1


class TestUnsafe:
    """Unsafe passes values through only when the policy allows it."""

    def test_disallowed_falls_back_to_safe(self, sanitizer):
        result = sanitizer.sanitize("a | b", SecurityType.UNSAFE)
        assert result.value == "'a  b'"
        assert not result.safe
        assert result.warnings == [WARN_UNSAFE_DISALLOWED]

    def test_allowed_passes_through(self, permissive_manager):
        result = _sanitizer(permissive_manager).sanitize("a | b", SecurityType.UNSAFE)
        assert result.value == "a | b"
        assert not result.safe
        assert result.warnings == [WARN_UNSAFE]
