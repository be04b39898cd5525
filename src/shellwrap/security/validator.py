"""Classification and validation of tool invocation inputs.

Structural validation (types, required, enum, min/max) happens upstream
against the JSON schema; this module only resolves security types and
runs the sanitizer over each present value.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from shellwrap.errors import ConfigError, ConfigProblem
from shellwrap.security.models import SecurityType, ValidationResult, ValidationRule
from shellwrap.security.policy import PolicyManager
from shellwrap.security.sanitizer import Sanitizer, stringify

ERROR_FAILED = "input failed security validation"

# Substrings of a property name that imply a security type
_FILEPATH_HINTS = ("path", "file", "dir")
_COMMAND_HINTS = ("command", "cmd")


def _schema_properties(schema: Any) -> Mapping[str, Any]:
    """Get the property map from an InputSchema model or a raw mapping."""
    if schema is None:
        return {}
    if isinstance(schema, Mapping):
        return schema.get("properties") or {}
    return getattr(schema, "properties", None) or {}


def _declared_security(prop: Any) -> Any:
    if isinstance(prop, Mapping):
        return prop.get("security")
    return getattr(prop, "security", None)


class Validator:
    """Resolves per-property security rules and validates inputs.

    Example:
        >>> validator = Validator(PolicyManager.from_level("moderate"))
        >>> rules = validator.extract_validation_rules(
        ...     {"properties": {"file_path": {"type": "string"}}}
        ... )
        >>> rules["file_path"].security_type
        <SecurityType.FILEPATH: 'filepath'>
    """

    def __init__(
        self,
        policy_manager: PolicyManager,
        sanitizer: Sanitizer | None = None,
    ) -> None:
        self.policy_manager = policy_manager
        self.sanitizer = sanitizer or Sanitizer(policy_manager)

    def extract_validation_rules(self, schema: Any) -> dict[str, ValidationRule]:
        """Resolve one ValidationRule per declared schema property.

        An explicit ``security`` annotation wins; otherwise the type is
        inferred from the property name. Annotations are a load-time policy
        check: invalid names and disallowed ``unsafe`` are collected for all
        properties and raised together.

        Args:
            schema: InputSchema model or raw JSON-schema mapping.

        Returns:
            Mapping of property name to ValidationRule.

        Raises:
            ConfigError: If any annotation is invalid or not permitted.
        """
        rules: dict[str, ValidationRule] = {}
        problems: list[ConfigProblem] = []

        for name, prop in _schema_properties(schema).items():
            declared = _declared_security(prop)
            if declared is None:
                rules[name] = ValidationRule(self._infer_security_type(name))
                continue

            field = f"properties.{name}.security"
            try:
                security_type = (
                    declared if isinstance(declared, SecurityType) else SecurityType(declared)
                )
            except ValueError:
                valid = ", ".join(t.value for t in SecurityType)
                problems.append(ConfigProblem(field, f"Security type must be one of: {valid}", declared))
                continue

            if not self.policy_manager.validate_security_type(security_type):
                problems.append(
                    ConfigProblem(
                        field,
                        "Security type 'unsafe' requires allowUnsafe in the security policy",
                        security_type.value,
                    )
                )
                continue

            rules[name] = ValidationRule(security_type)

        if problems:
            raise ConfigError.from_problems(problems)
        return rules

    def validate_input(
        self,
        values: Mapping[str, Any],
        rules: Mapping[str, ValidationRule],
    ) -> dict[str, ValidationResult]:
        """Sanitize every present value and collect errors and warnings.

        Absent properties are skipped; enforcing ``required`` is the schema
        validator's job. Warnings never make a result invalid; whether they
        are fatal is decided by the renderer from the policy.

        Args:
            values: Raw call arguments.
            rules: Rules from ``extract_validation_rules``.

        Returns:
            Mapping of property name to ValidationResult.
        """
        default_type = self.policy_manager.get_default_security_type()
        results: dict[str, ValidationResult] = {}

        for name, value in values.items():
            rule = rules.get(name)
            security_type = rule.security_type if rule else default_type
            results[name] = self._validate_property(value, security_type)

        return results

    def _validate_property(self, value: Any, security_type: SecurityType) -> ValidationResult:
        errors: list[str] = []
        sanitized = self.sanitizer.sanitize(value, security_type)

        if sanitized.rejection is not None:
            errors.append(ERROR_FAILED)
        elif not sanitized.safe and sanitized.value == "" and not sanitized.warnings:
            errors.append(ERROR_FAILED)

        if value is not None and not self.policy_manager.validate_input_length(stringify(value)):
            limit = self.policy_manager.policy.max_input_length
            errors.append(f"input exceeds maximum length of {limit} characters")

        return ValidationResult(
            valid=not errors,
            sanitized_value=sanitized.value,
            errors=errors,
            warnings=list(sanitized.warnings),
            rejection=sanitized.rejection,
        )

    def _infer_security_type(self, name: str) -> SecurityType:
        lowered = name.lower()
        if any(hint in lowered for hint in _FILEPATH_HINTS):
            return SecurityType.FILEPATH
        if any(hint in lowered for hint in _COMMAND_HINTS):
            return SecurityType.COMMAND
        return self.policy_manager.get_default_security_type()
