"""Unit tests for the agent plugin configuration model."""

import pytest

from plugforge.config.agent_config import (
    AgentPluginConfig,
    BuildTarget,
    ConfigValidationError,
    ParameterConfig,
    ToolConfig,
)


@pytest.fixture
def config_data():
    return {
        "agentId": "abc",
        "agentName": "urn:agent:agentify:helper",
        "description": "Helps",
        "version": "2.0.0",
        "buildTarget": "wasm",
        "tools": [
            {
                "name": "chat",
                "description": "Chat with the user",
                "parameters": [
                    {"name": "input", "type": "string", "required": True},
                    {"name": "tone", "type": "string", "defaultValue": "neutral"},
                ],
                "implementation": "return { message: input }",
            }
        ],
        "resources": [{"name": "notes", "type": "text", "content": "hello"}],
        "prompts": [{"name": "system", "content": "Be nice", "variables": ["user"]}],
        "trustedExecutionEnvironment": {
            "isolationLevel": "container",
            "resourceLimits": {"memory": 256, "cpu": 2, "timeLimit": 30},
            "networkAccess": False,
            "fileSystemAccess": True,
        },
        "extraDependencies": ["github.com/philippgille/chromem-go v0.5.0"],
    }


class TestBuildTarget:
    """Tests for BuildTarget parsing."""

    def test_from_string_defaults_to_wasm(self):
        assert BuildTarget.from_string(None) == BuildTarget.WASM
        assert BuildTarget.from_string("") == BuildTarget.WASM

    def test_from_string_accepts_aliases(self):
        assert BuildTarget.from_string("go") == BuildTarget.NATIVE
        assert BuildTarget.from_string("plugin") == BuildTarget.NATIVE
        assert BuildTarget.from_string(" Native ") == BuildTarget.NATIVE

    def test_from_string_unknown(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            BuildTarget.from_string("elf")
        assert "elf" in exc_info.value.problems[0]


class TestAgentPluginConfig:
    """Tests for AgentPluginConfig."""

    def test_from_dict_camel_case(self, config_data):
        config = AgentPluginConfig.from_dict(config_data)

        assert config.agent_id == "abc"
        assert config.build_target == BuildTarget.WASM
        assert config.tools[0].required_parameters[0].name == "input"
        assert config.tools[0].optional_parameters[0].default_value == "neutral"
        assert config.trusted_execution_environment.isolation_level == "container"
        assert config.trusted_execution_environment.memory_mb == 256
        assert config.trusted_execution_environment.network_access is False
        assert config.prompts[0].variables == ["user"]

    def test_from_dict_snake_case(self):
        config = AgentPluginConfig.from_dict(
            {"agent_id": "x1", "agent_name": "X", "build_target": "native"}
        )
        assert config.agent_id == "x1"
        assert config.agent_name == "X"
        assert config.build_target == BuildTarget.NATIVE
        assert config.version == "1.0.0"

    def test_from_dict_rejects_non_mapping(self):
        with pytest.raises(ConfigValidationError):
            AgentPluginConfig.from_dict(["not", "a", "dict"])

    def test_from_dict_rejects_non_numeric_ttl(self):
        with pytest.raises(ConfigValidationError):
            AgentPluginConfig.from_dict({"agentId": "a", "agentName": "A", "ttl": "soon"})

    def test_to_dict_is_wire_form(self, config_data):
        config = AgentPluginConfig.from_dict(config_data)
        data = config.to_dict()

        assert data["agentId"] == "abc"
        assert data["buildTarget"] == "wasm"
        assert data["tools"][0]["parameters"][1]["defaultValue"] == "neutral"
        assert AgentPluginConfig.from_dict(data) == config

    def test_artifact_stem(self, config_data):
        config = AgentPluginConfig.from_dict(config_data)
        assert config.artifact_stem == "agent_abc_2.0.0"

    def test_with_target_returns_copy(self, config_data):
        config = AgentPluginConfig.from_dict(config_data)
        native = config.with_target(BuildTarget.NATIVE)

        assert native.build_target == BuildTarget.NATIVE
        assert config.build_target == BuildTarget.WASM
        assert native.tools == config.tools

    def test_validate_accepts_valid_config(self, config_data):
        AgentPluginConfig.from_dict(config_data).validate()

    def test_validate_reports_every_problem(self):
        config = AgentPluginConfig(
            agent_id="",
            agent_name="",
            version="latest",
            tools=[
                ToolConfig(name="bad-name"),
                ToolConfig(
                    name="ok",
                    parameters=[ParameterConfig(name="a"), ParameterConfig(name="a")],
                ),
            ],
        )

        with pytest.raises(ConfigValidationError) as exc_info:
            config.validate()

        problems = exc_info.value.problems
        assert "agentId is required" in problems
        assert "agentName is required" in problems
        assert any("semantic version" in p for p in problems)
        assert any("bad-name" in p for p in problems)
        assert any("duplicate parameter 'a'" in p for p in problems)

    def test_validate_rejects_path_in_agent_id(self, config_data):
        config_data["agentId"] = "../etc"
        with pytest.raises(ConfigValidationError):
            AgentPluginConfig.from_dict(config_data).validate()

    def test_validate_rejects_duplicate_tools(self, config_data):
        config_data["tools"].append(dict(config_data["tools"][0]))
        with pytest.raises(ConfigValidationError) as exc_info:
            AgentPluginConfig.from_dict(config_data).validate()
        assert "duplicate tool name 'chat'" in exc_info.value.problems

    def test_validate_rejects_bad_isolation_level(self, config_data):
        config_data["trustedExecutionEnvironment"]["isolationLevel"] = "none"
        with pytest.raises(ConfigValidationError):
            AgentPluginConfig.from_dict(config_data).validate()

    def test_validate_rejects_malformed_dependency(self, config_data):
        config_data["extraDependencies"] = ["github.com/only/module"]
        with pytest.raises(ConfigValidationError):
            AgentPluginConfig.from_dict(config_data).validate()

    def test_error_message_lists_problems(self):
        error = ConfigValidationError(["a is bad", "b is bad"])
        assert str(error) == "Invalid agent configuration: a is bad; b is bad"
