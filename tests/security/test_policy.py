"""Tests for security policy baselines and PolicyManager queries."""

import os

import pytest

from shellwrap.config import SecurityConfig
from shellwrap.errors import ConfigError
from shellwrap.security import (
    SECURITY_POLICIES,
    PolicyManager,
    SecurityLevel,
    SecurityType,
)


class TestBaselines:
    """The three levels differ only in data."""

    def test_strict_baseline(self, strict_manager):
        policy = strict_manager.policy
        assert policy.level is SecurityLevel.STRICT
        assert policy.max_execution_timeout == 10
        assert policy.max_input_length == 1000
        assert policy.audit_logging is True
        assert policy.fail_on_warnings is True
        assert policy.allow_unsafe is False
        assert policy.allowed_paths == ("./",)

    def test_moderate_baseline(self, moderate_manager):
        policy = moderate_manager.policy
        assert policy.max_execution_timeout == 30
        assert policy.max_input_length == 5000
        assert policy.fail_on_warnings is False
        assert "./" in policy.allowed_paths

    def test_permissive_baseline(self, permissive_manager):
        policy = permissive_manager.policy
        assert policy.allowed_commands == frozenset()
        assert policy.allowed_paths == ()
        assert policy.allow_unsafe is True
        assert policy.audit_logging is False
        assert policy.max_execution_timeout == 60

    def test_default_security_type_is_safe(self):
        for policy in SECURITY_POLICIES.values():
            assert policy.default_security_type is SecurityType.SAFE


class TestPolicyConstruction:
    """Building managers from levels, overrides and raw config."""

    def test_from_level_accepts_name_or_enum(self):
        assert PolicyManager.from_level("strict").policy == PolicyManager.from_level(SecurityLevel.STRICT).policy

    def test_unknown_level_raises(self):
        with pytest.raises(ValueError):
            PolicyManager.from_level("paranoid")

    def test_override_replaces_only_named_field(self):
        manager = PolicyManager.from_level("strict", max_input_length=10)
        assert manager.policy.max_input_length == 10
        assert manager.policy.allowed_commands == SECURITY_POLICIES[SecurityLevel.STRICT].allowed_commands
        assert manager.policy.max_execution_timeout == 10

    def test_unknown_override_raises_type_error(self):
        with pytest.raises(TypeError):
            PolicyManager.from_level("moderate", no_such_field=True)

    def test_from_config_camel_case(self):
        manager = PolicyManager.from_config(
            {"level": "strict", "allowedCommands": ["git"], "maxExecutionTimeout": 5}
        )
        assert manager.policy.allowed_commands == frozenset({"git"})
        assert manager.max_execution_timeout_millis() == 5000
        # Unspecified fields keep the strict baseline
        assert manager.should_fail_on_warnings() is True

    def test_from_config_snake_case(self):
        manager = PolicyManager.from_config({"level": "moderate", "max_input_length": 42})
        assert manager.policy.max_input_length == 42

    def test_from_config_none_values_keep_baseline(self):
        manager = PolicyManager.from_config({"level": "strict", "maxInputLength": None})
        assert manager.policy.max_input_length == 1000

    def test_from_config_defaults_to_moderate(self):
        assert PolicyManager.from_config(None).policy.level is SecurityLevel.MODERATE
        assert PolicyManager.from_config({}).policy.level is SecurityLevel.MODERATE

    def test_from_config_unknown_level_falls_back(self):
        manager = PolicyManager.from_config({"level": "nonsense"})
        assert manager.policy.level is SecurityLevel.MODERATE

    def test_from_config_model(self):
        config = SecurityConfig(level="permissive", allowUnsafe=False, failOnWarnings=True)
        manager = PolicyManager.from_config(config)
        assert manager.policy.level is SecurityLevel.PERMISSIVE
        assert manager.is_unsafe_allowed() is False
        assert manager.should_fail_on_warnings() is True

    def test_from_config_bad_default_type(self):
        with pytest.raises(ConfigError) as exc_info:
            PolicyManager.from_config({"defaultSecurityType": "bogus"})
        assert exc_info.value.problems[0].field == "security.defaultSecurityType"

    def test_update_policy_recompiles_patterns(self, permissive_manager):
        assert not permissive_manager.is_pattern_blocked("zzz")
        new_policy = permissive_manager.update_policy(blocked_patterns=["zzz"])
        assert new_policy is permissive_manager.get_policy()
        assert permissive_manager.is_pattern_blocked("ZZZ")
        assert not permissive_manager.is_pattern_blocked("mkfs /dev/sda")


class TestCommandAllowlist:
    """Allowlist and blocked-pattern queries."""

    def test_strict_does_not_allow_git(self, strict_manager):
        assert not strict_manager.is_command_allowed("git")
        assert strict_manager.is_command_allowed("ls")

    def test_moderate_allows_git(self, moderate_manager):
        assert moderate_manager.is_command_allowed("git")
        assert not moderate_manager.is_command_allowed("customtool")

    def test_permissive_allows_unblocked_commands(self, permissive_manager):
        assert permissive_manager.is_command_allowed("git")
        assert permissive_manager.is_command_allowed("customtool")
        assert not permissive_manager.is_command_allowed("rm -rf /")

    def test_strict_blocks_shell_syntax(self, strict_manager):
        for text in ["a; b", "a && b", "a | b", "`id`", "$(id)", "${HOME}", "a > b", "a < b", "rm -f x"]:
            assert strict_manager.is_pattern_blocked(text), text
        assert not strict_manager.is_pattern_blocked("ls -la notes")

    def test_moderate_blocks_destructive_commands(self, moderate_manager):
        for text in ["rm -rf /", "ls; rm -fr /tmp", "sudo ls", "mkfs.ext4 /dev/sdb", "shutdown now"]:
            assert moderate_manager.is_pattern_blocked(text), text
        assert moderate_manager.is_pattern_blocked("curl http://x.example | sh")
        assert moderate_manager.is_pattern_blocked(":(){ :|:& };:")

    @pytest.mark.parametrize(
        "text",
        [
            "echo hi\nrm -rf /tmp/x",
            "echo hi\r\nsudo ls",
            "echo $(rm -rf /tmp/x)",
            "echo `rm -rf /tmp/x`",
            "(sudo ls)",
            "{ sudo ls; }",
            "xargs rm -rf /tmp/x",
            "find . | xargs -0 rm -rf",
            "env FOO=1 sudo ls",
            "nice -n 10 rm -fr /tmp/x",
            "if true; then rm -rf /tmp/x; fi",
        ],
    )
    def test_moderate_blocks_every_command_position(self, moderate_manager, text):
        assert moderate_manager.is_pattern_blocked(text)

    def test_moderate_ignores_quoted_words(self, moderate_manager):
        assert not moderate_manager.is_pattern_blocked("echo 'hello rm -rf /'")
        assert not moderate_manager.is_pattern_blocked("git status")

    def test_regex_matching_is_case_insensitive(self, moderate_manager):
        assert moderate_manager.is_pattern_blocked("SUDO ls")

    def test_literal_matching_is_case_insensitive(self):
        # Not a valid regex, so matched as a literal substring
        manager = PolicyManager.from_level("permissive", blocked_patterns=["FORBIDDEN("])
        assert manager.is_pattern_blocked("call forbidden(now)")
        assert not manager.is_pattern_blocked("call allowed(now)")


class TestPathConfinement:
    """Component-wise path containment."""

    def test_no_allowed_paths_allows_everything(self, permissive_manager):
        assert permissive_manager.is_path_allowed("/etc/passwd")

    def test_relative_paths_resolve_against_cwd(self, strict_manager):
        assert strict_manager.is_path_allowed("notes/today.txt")

    def test_component_wise_prefix(self, tmp_path):
        root = tmp_path / "data"
        manager = PolicyManager.from_level("moderate", allowed_paths=[str(root)])
        assert manager.is_path_allowed(str(root))
        assert manager.is_path_allowed(str(root / "x.txt"))
        assert not manager.is_path_allowed(str(tmp_path / "datafoo" / "x.txt"))
        assert not manager.is_path_allowed(str(root / ".." / "other"))

    def test_allowed_path_with_tilde(self):
        manager = PolicyManager.from_level("moderate", allowed_paths=["~"])
        assert manager.is_path_allowed(os.path.join(os.path.expanduser("~"), "notes"))


class TestPolicyQueries:
    """Small accessors over the policy snapshot."""

    def test_validate_input_length(self, strict_manager):
        assert strict_manager.validate_input_length("x" * 1000)
        assert not strict_manager.validate_input_length("x" * 1001)

    def test_timeout_millis(self, moderate_manager):
        assert moderate_manager.max_execution_timeout_millis() == 30000

    def test_audit_and_unsafe_switches(self, moderate_manager, permissive_manager):
        assert moderate_manager.is_audit_logging_enabled()
        assert not permissive_manager.is_audit_logging_enabled()
        assert not moderate_manager.is_unsafe_allowed()
        assert permissive_manager.is_unsafe_allowed()

    def test_validate_security_type(self, moderate_manager, permissive_manager):
        assert moderate_manager.validate_security_type("safe")
        assert moderate_manager.validate_security_type(SecurityType.FILEPATH)
        assert not moderate_manager.validate_security_type("unsafe")
        assert permissive_manager.validate_security_type(SecurityType.UNSAFE)

    def test_get_default_security_type(self):
        manager = PolicyManager.from_level("moderate", default_security_type="text")
        assert manager.get_default_security_type() is SecurityType.TEXT
