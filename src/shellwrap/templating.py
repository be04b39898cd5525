"""
shellwrap.templating - Command Template Engine

Jinja2-backed parsing and rendering of command templates. Markers have the
``{{ name }}`` shape; the reserved ``raw`` namespace (``{{ raw.name }}``)
exposes unsanitized values to fully trusted templates.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import jinja2
from jinja2 import meta, nodes
from jinja2.sandbox import SandboxedEnvironment

from shellwrap.errors import TemplateError

# Binding name holding the unsanitized values
RAW_NAMESPACE = "raw"


class SafeString(str):
    """A value that has already been sanitized for the shell."""

    __slots__ = ()


class RawString(str):
    """An unsanitized value reached through the ``raw`` namespace."""

    __slots__ = ()


class TemplateEngine:
    """Sandboxed Jinja2 engine for command templates.

    Autoescaping is off: escaping for a shell is not HTML escaping, so the
    caller supplies its own ``escape`` hook at render time.
    """

    def __init__(self) -> None:
        self.env = SandboxedEnvironment(autoescape=False)

    def parse(self, source: str) -> nodes.Template:
        """Parse a template source into an AST.

        Raises:
            TemplateError: On syntax errors.
        """
        try:
            return self.env.parse(source)
        except jinja2.TemplateSyntaxError as e:
            raise TemplateError(f"Invalid template: {e.message} (line {e.lineno})") from e

    def render(
        self,
        ast: nodes.Template,
        bindings: Mapping[str, Any],
        escape: Callable[[Any], Any] | None = None,
    ) -> str:
        """Render a parsed template.

        Args:
            ast: Template from ``parse``.
            bindings: Values available to the template.
            escape: Applied to every expression output before it is
                written. Installed as the environment's ``finalize`` hook.

        Raises:
            TemplateError: If rendering fails (including sandbox violations).
        """
        env = self.env.overlay(finalize=escape) if escape is not None else self.env
        try:
            return env.from_string(ast).render(dict(bindings))
        except jinja2.TemplateError as e:
            raise TemplateError(f"Template rendering failed: {e}") from e

    def extract_variables(self, ast: nodes.Template) -> list[str]:
        """List the context variables a template references, in order.

        ``raw.<name>`` references are reported as ``<name>``; names bound
        inside the template (loop targets, ``set``) are not reported.
        """
        undeclared = meta.find_undeclared_variables(ast)
        variables: list[str] = []

        for node in ast.find_all((nodes.Getattr, nodes.Name)):
            if isinstance(node, nodes.Getattr):
                target = node.node
                if (
                    isinstance(target, nodes.Name)
                    and target.name == RAW_NAMESPACE
                    and RAW_NAMESPACE in undeclared
                ):
                    name = node.attr
                else:
                    continue
            elif node.ctx == "load" and node.name in undeclared and node.name != RAW_NAMESPACE:
                name = node.name
            else:
                continue

            if name not in variables:
                variables.append(name)

        return variables

    def validate(self, source: str) -> list[str]:
        """Return template errors; empty when the source parses."""
        try:
            self.parse(source)
        except TemplateError as e:
            return [str(e)]
        return []


_engine: TemplateEngine | None = None


def get_engine() -> TemplateEngine:
    """Get the shared template engine instance."""
    global _engine
    if _engine is None:
        _engine = TemplateEngine()
    return _engine
