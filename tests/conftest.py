"""Shared test fixtures for shellwrap tests.

Provides:
- Policy managers for each built-in level
- Renderers pinned to POSIX quoting so expectations are platform independent
- A helper for writing YAML config files
"""

import textwrap
from pathlib import Path
from typing import Callable

import pytest

from shellwrap.security import (
    PolicyManager,
    Sanitizer,
    SecureRenderer,
    ShellFlavor,
    Validator,
)


def _posix_renderer(manager: PolicyManager) -> SecureRenderer:
    sanitizer = Sanitizer(manager, ShellFlavor.POSIX)
    return SecureRenderer(manager, Validator(manager, sanitizer))


@pytest.fixture
def strict_manager() -> PolicyManager:
    return PolicyManager.from_level("strict")


@pytest.fixture
def moderate_manager() -> PolicyManager:
    return PolicyManager.from_level("moderate")


@pytest.fixture
def permissive_manager() -> PolicyManager:
    return PolicyManager.from_level("permissive")


@pytest.fixture
def make_renderer() -> Callable[[PolicyManager], SecureRenderer]:
    """Fixture returning a factory for renderers that quote for a POSIX shell."""
    return _posix_renderer


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[[str], Path]:
    """Fixture returning a function that writes YAML text to a config file."""

    def _write(content: str, name: str = "shellwrap.yaml") -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(content), encoding="utf-8")
        return path

    return _write
