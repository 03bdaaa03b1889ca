"""Unit tests for the template engine."""

import pytest

from plugforge.config.agent_config import AgentPluginConfig, BuildTarget, ResourceConfig
from plugforge.generate.template_engine import (
    TemplateEngine,
    TemplateRenderError,
    build_placeholders,
    escape_string,
    go_module_name,
    go_raw_string,
)
from plugforge.packages.platform_utils import TargetPlatform


@pytest.fixture
def config():
    return AgentPluginConfig(
        agent_id="abc",
        agent_name='Helper "One"',
        description="Line one\nLine two",
        version="2.0.0",
        build_target=BuildTarget.WASM,
    )


@pytest.fixture
def engine(tmp_path):
    return TemplateEngine(tmp_path)


class TestHelpers:
    """Tests for escaping helpers."""

    def test_escape_string(self):
        assert escape_string('a "b"\n\\') == 'a \\"b\\"\\n\\\\'
        assert escape_string("héllo") == "héllo"

    def test_go_raw_string_with_backtick(self):
        assert go_raw_string("a`b") == '`a` + "`" + `b`'

    def test_go_raw_string_keeps_carriage_returns(self):
        literal = go_raw_string("line one\r\nline two\r\n")

        assert literal == '`line one` + "\\r" + `\nline two` + "\\r" + `\n`'
        assert "\r" not in literal

    def test_go_raw_string_with_nul(self):
        literal = go_raw_string("a\x00b")

        assert literal == '`a` + "\\x00" + `b`'
        assert "\x00" not in literal

    def test_go_raw_string_plain(self):
        assert go_raw_string("plain\ntext é") == "`plain\ntext é`"

    def test_go_module_name(self):
        assert go_module_name("my agent/1") == "plugforge/agent_my_agent_1"


class TestBuildPlaceholders:
    def test_identity_values_are_escaped(self, config):
        values = build_placeholders(config, TargetPlatform.DARWIN)

        assert values["agentId"] == "abc"
        assert values["agentName"] == 'Helper \\"One\\"'
        assert values["agentDescription"] == "Line one\\nLine two"
        assert values["buildTarget"] == "wasm"
        assert values["platform"] == "darwin"
        assert values["networkAccess"] == "true"
        assert values["memoryLimit"] == "512"

    def test_embedded_resources_skip_external(self, config):
        config.resources = [
            ResourceConfig(name="inline", content="x"),
            ResourceConfig(name="external", content="y", is_embedded=False),
        ]
        values = build_placeholders(config, TargetPlatform.LINUX)

        assert '"inline": []byte(`x`)' in values["embeddedResources"]
        assert "external" not in values["embeddedResources"]

    def test_extra_requires(self, config):
        assert build_placeholders(config, TargetPlatform.LINUX)["extraRequires"] == ""
        config.extra_dependencies = ["github.com/a/b v1.0.0"]
        assert build_placeholders(config, TargetPlatform.LINUX)["extraRequires"] == (
            "\nrequire (\n\tgithub.com/a/b v1.0.0\n)\n"
        )


class TestTemplateEngine:
    """Tests for TemplateEngine rendering."""

    def test_substitute_placeholders(self, engine, config):
        rendered = engine.render('id={{.agentId}} v={{ .agentVersion }}', config)
        assert rendered == "id=abc v=2.0.0"

    def test_unknown_placeholder_renders_empty(self, engine, config):
        assert engine.render("[{{.nothing}}]", config) == "[]"

    def test_conditionals_wasm(self, engine, config):
        template = '{{if eq .buildTarget "wasm"}}W{{end}}{{if ne .buildTarget "wasm"}}N{{end}}'
        assert engine.render(template, config) == "W"

    def test_conditionals_native(self, engine, config):
        template = '{{if eq .buildTarget "wasm"}}W{{end}}{{if ne .buildTarget "wasm"}}N{{end}}'
        assert engine.render(template, config.with_target(BuildTarget.NATIVE)) == "N"

    def test_conditional_body_spans_lines(self, engine, config):
        template = 'a\n{{if eq .buildTarget "wasm"}}\nline1\nline2\n{{end}}b'
        assert engine.render(template, config.with_target(BuildTarget.NATIVE)) == "a\nb"

    def test_substituted_values_are_not_reexpanded(self, engine, config):
        rendered = engine.render("{{.body}}", config, extra={"body": "{{.agentId}}"})
        assert rendered == "{{.agentId}}"

    def test_extra_overrides_defaults(self, engine, config):
        assert engine.render("{{.agentId}}", config, extra={"agentId": "zzz"}) == "zzz"

    def test_rendering_is_deterministic(self, engine, config):
        template = "{{.agentName}} {{.moduleName}} {{.embeddedPrompts}}"
        assert engine.render(template, config) == engine.render(template, config)

    def test_render_file(self, engine, config, tmp_path):
        (tmp_path / "go.mod.template").write_text("module {{.moduleName}}\n")
        assert engine.has_template("go.mod")
        assert engine.render_file("go.mod", config) == "module plugforge/agent_abc\n"

    def test_missing_template(self, engine, config):
        with pytest.raises(TemplateRenderError) as exc_info:
            engine.render_file("main.go", config)
        assert exc_info.value.filename == "main.go"
        assert str(exc_info.value).startswith("main.go: template not found")
