"""Tests for the command template engine."""

import pytest

from shellwrap.errors import TemplateError
from shellwrap.templating import RawString, SafeString, TemplateEngine, get_engine


@pytest.fixture
def engine():
    return TemplateEngine()


class TestParse:
    """Parsing and validation."""

    def test_parse_valid(self, engine):
        ast = engine.parse("ls -la {{ path }}")
        assert engine.extract_variables(ast) == ["path"]

    def test_parse_syntax_error(self, engine):
        with pytest.raises(TemplateError) as exc_info:
            engine.parse("echo {{ unclosed")
        assert "Invalid template" in str(exc_info.value)

    def test_validate(self, engine):
        assert engine.validate("echo {{ name }}") == []
        errors = engine.validate("echo {% if x %}")
        assert len(errors) == 1
        assert errors[0].startswith("Invalid template")


class TestExtractVariables:
    """Ordered, de-duplicated variable references."""

    def test_order_and_duplicates(self, engine):
        ast = engine.parse("cp {{ source }} {{ target }} && ls {{ source }}")
        assert engine.extract_variables(ast) == ["source", "target"]

    def test_raw_references(self, engine):
        ast = engine.parse("ls {{ path }} {{ raw.flags }}")
        assert engine.extract_variables(ast) == ["path", "flags"]

    def test_loop_targets_excluded(self, engine):
        ast = engine.parse("{% for f in files %}{{ f }} {% endfor %}")
        assert engine.extract_variables(ast) == ["files"]

    def test_no_variables(self, engine):
        assert engine.extract_variables(engine.parse("pwd")) == []


class TestRender:
    """Rendering with and without an escape hook."""

    def test_render_plain(self, engine):
        assert engine.render(engine.parse("echo {{ a }}"), {"a": "x"}) == "echo x"

    def test_escape_applied_to_every_output(self, engine):
        ast = engine.parse("{{ a }}-{{ b }}")
        rendered = engine.render(ast, {"a": "x", "b": "y"}, escape=lambda v: f"<{v}>")
        assert rendered == "<x>-<y>"

    def test_escape_hook_does_not_leak(self, engine):
        ast = engine.parse("{{ a }}")
        engine.render(ast, {"a": "x"}, escape=lambda v: "escaped")
        assert engine.render(ast, {"a": "x"}) == "x"

    def test_markers_are_strings(self):
        assert SafeString("a") == "a"
        assert isinstance(RawString("b"), str)

    def test_sandbox_hides_internals(self, engine):
        assert engine.render(engine.parse("{{ a.__class__ }}"), {"a": "x"}) == ""

    def test_sandbox_violation_raises(self, engine):
        with pytest.raises(TemplateError):
            engine.render(engine.parse("{{ a.__class__.mro }}"), {"a": "x"})

    def test_shared_engine(self):
        assert get_engine() is get_engine()
