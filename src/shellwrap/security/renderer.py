"""Secure rendering of command templates.

The renderer is the only place untrusted values meet a command template.
It validates first, renders second, and fails rather than returning a
partially rendered command.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jinja2 import Undefined

from shellwrap.errors import (
    BlockedPatternError,
    CommandNotAllowedError,
    InputValidationError,
    WarningsAsErrorsError,
)
from shellwrap.logging import Loggers
from shellwrap.security.models import SecurityType, ValidationResult, ValidationRule
from shellwrap.security.policy import PolicyManager
from shellwrap.security.sanitizer import stringify
from shellwrap.security.validator import Validator
from shellwrap.templating import (
    RAW_NAMESPACE,
    RawString,
    SafeString,
    TemplateEngine,
    get_engine,
)

logger = Loggers.security()


class SecureRenderer:
    """Validates inputs and renders a command template from them.

    Example:
        >>> renderer = SecureRenderer(PolicyManager.from_level("moderate"))
        >>> renderer.render(
        ...     "echo {{ message }}",
        ...     {"message": "hello; rm -rf /"},
        ...     rules={"message": ValidationRule(SecurityType.TEXT)},
        ... )
        "echo 'hello rm -rf /'"
    """

    def __init__(
        self,
        policy_manager: PolicyManager,
        validator: Validator | None = None,
        engine: TemplateEngine | None = None,
    ) -> None:
        self.policy_manager = policy_manager
        self.validator = validator or Validator(policy_manager)
        self.engine = engine or get_engine()

    def render(
        self,
        template: str,
        values: Mapping[str, Any],
        rules: Mapping[str, ValidationRule] | None = None,
        schema: Any = None,
    ) -> str:
        """Render a template with validated, sanitized values.

        Args:
            template: Command template source.
            values: Raw call arguments (already schema-validated).
            rules: Precomputed validation rules. Extracted from ``schema``
                when omitted.
            schema: Input schema used when ``rules`` is not given.

        Returns:
            The final command string.

        Raises:
            CommandNotAllowedError: If a command value names a refused program.
            InputValidationError: If any value fails validation.
            WarningsAsErrorsError: If warnings are fatal under the policy.
            BlockedPatternError: If the template or the result is blocked.
            TemplateError: If the template cannot be parsed or rendered.
        """
        if rules is None:
            rules = self.validator.extract_validation_rules(schema) if schema is not None else {}

        results = self.validator.validate_input(values, rules)
        self._check_errors(results)
        self._check_warnings(results)

        if self.policy_manager.is_pattern_blocked(template):
            logger.warning("template_blocked", stage=BlockedPatternError.TEMPLATE)
            raise BlockedPatternError(BlockedPatternError.TEMPLATE)

        bindings: dict[str, Any] = {
            name: SafeString(result.sanitized_value) for name, result in results.items()
        }
        bindings[RAW_NAMESPACE] = {
            name: RawString("" if value is None else stringify(value))
            for name, value in values.items()
        }

        rendered = self.engine.render(self.engine.parse(template), bindings, self._escape)

        if self.policy_manager.is_pattern_blocked(rendered):
            logger.warning("template_blocked", stage=BlockedPatternError.RENDERED)
            raise BlockedPatternError(BlockedPatternError.RENDERED)

        logger.debug("template_rendered", command=rendered)
        return rendered

    def _escape(self, value: Any) -> str:
        """Finalize hook: sanitize any output that is not already marked."""
        if isinstance(value, (SafeString, RawString)):
            return value
        if value is None or isinstance(value, Undefined):
            return ""
        return self.validator.sanitizer.sanitize(value, SecurityType.SAFE).value

    def _check_errors(self, results: Mapping[str, ValidationResult]) -> None:
        failures = {name: r.errors for name, r in results.items() if r.errors}
        if not failures:
            return

        rejected = {
            name: r.warnings or r.errors
            for name, r in results.items()
            if r.errors and r.rejection is not None and r.rejection.is_policy_violation
        }
        if rejected:
            logger.warning("command_not_allowed", failures=rejected)
            raise CommandNotAllowedError(rejected)

        logger.warning("template_validation_failed", failures=failures)
        raise InputValidationError(failures)

    def _check_warnings(self, results: Mapping[str, ValidationResult]) -> None:
        warnings = {name: r.warnings for name, r in results.items() if r.warnings}
        if not warnings:
            return

        logger.warning("template_render_warnings", warnings=warnings)
        if self.policy_manager.should_fail_on_warnings():
            raise WarningsAsErrorsError(warnings)
