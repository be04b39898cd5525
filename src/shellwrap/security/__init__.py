"""Security pipeline for shell command templates.

Untrusted values flow through the pipeline in a fixed order:
- Classification: each schema property gets a SecurityType (Validator)
- Sanitization: each value is cleaned and shell-quoted (Sanitizer)
- Policy: allowlists, blocked patterns and path confinement (PolicyManager)
- Rendering: sanitized values are substituted into the template and the
  result is checked once more (SecureRenderer)

Usage:
    from shellwrap.security import PolicyManager, SecureRenderer

    renderer = SecureRenderer(PolicyManager.from_level("strict"))
    command = renderer.render("cat {{ file }}", {"file": "notes.txt"})
"""

from shellwrap.security.models import (
    Policy,
    Rejection,
    SanitizationResult,
    SecurityLevel,
    SecurityType,
    ShellFlavor,
    ValidationResult,
    ValidationRule,
)
from shellwrap.security.policy import SECURITY_POLICIES, PolicyManager
from shellwrap.security.sanitizer import Sanitizer
from shellwrap.security.validator import Validator
from shellwrap.security.renderer import SecureRenderer

__all__ = [
    "Policy",
    "PolicyManager",
    "Rejection",
    "SECURITY_POLICIES",
    "SanitizationResult",
    "Sanitizer",
    "SecureRenderer",
    "SecurityLevel",
    "SecurityType",
    "ShellFlavor",
    "ValidationResult",
    "ValidationRule",
    "Validator",
]
