"""
Conversion of dashboard UI payloads into plugin configurations.

The dashboard describes an agent in product terms (name, personality,
feature toggles, MCP servers). This module maps that payload onto an
AgentPluginConfig the compiler understands.
"""

import json
import re
import uuid
from typing import Any, Callable, Dict, Optional

from .agent_config import (
    AgentPluginConfig,
    BuildTarget,
    ConfigValidationError,
    ParameterConfig,
    ResourceConfig,
    TEEConfig,
    ToolConfig,
)

FACTS_URL_TEMPLATE = "https://agentify.example.com/agents/{agent_id}"
URN_PREFIX = "urn:agent:agentify:"


def _feature_tool(name: str, description: str, implementation: str, param: str, param_doc: str) -> ToolConfig:
    return ToolConfig(
        name=name,
        description=description,
        parameters=[ParameterConfig(name=param, required=True, type="string", description=param_doc)],
        implementation=implementation,
        return_type="object",
    )


# Feature toggle -> tool factory
FEATURE_TOOLS: Dict[str, Callable[[], ToolConfig]] = {
    "chat": lambda: _feature_tool(
        "chat", "Chat with the user", "return { message: input }", "input", "The user input"
    ),
    "automation": lambda: _feature_tool(
        "automate",
        "Automate a task",
        'return { success: true, taskId: "task-123" }',
        "task",
        "The task to automate",
    ),
    "analytics": lambda: _feature_tool(
        "analyze",
        "Analyze data",
        'return { insights: ["Insight 1", "Insight 2"] }',
        "data",
        "The data to analyze",
    ),
}


def agent_urn(name: str) -> str:
    """Build the agent URN from a display name (``My Bot`` -> ``urn:agent:agentify:my-bot``)."""
    return URN_PREFIX + re.sub(r"\s+", "-", name.strip().lower())


def _tee_from_advanced(advanced: Dict[str, Any]) -> TEEConfig:
    defaults = TEEConfig()
    return TEEConfig(
        isolation_level=str(advanced.get("isolationLevel", defaults.isolation_level)),
        memory_mb=int(advanced.get("memoryLimit", defaults.memory_mb)),
        cpu_cores=int(advanced.get("cpuCores", defaults.cpu_cores)),
        time_limit_sec=int(advanced.get("timeLimit", defaults.time_limit_sec)),
        network_access=bool(advanced.get("networkAccess", defaults.network_access)),
        file_system_access=bool(advanced.get("fileSystemAccess", defaults.file_system_access)),
    )


def convert_ui_config(
    ui_config: Any,
    agent_id: Optional[str] = None,
    build_target: Optional[str] = None,
) -> AgentPluginConfig:
    """Convert a dashboard UI payload into an AgentPluginConfig.

    Args:
        ui_config: Payload with ``name``, ``personality``, ``instructions``,
            ``features``, ``settings`` and optional ``apiKeys`` and
            ``advancedSettings``
        agent_id: Identifier to use (a UUID is generated if None)
        build_target: Build target name (defaults to wasm)

    Returns:
        AgentPluginConfig (not yet validated)

    Raises:
        ConfigValidationError: If the payload is not an object or lacks
            name, personality, instructions or settings
    """
    if not isinstance(ui_config, dict):
        raise ConfigValidationError(["UI configuration must be a JSON object"])

    missing = [
        key for key in ("name", "personality", "instructions", "settings") if not ui_config.get(key)
    ]
    if missing:
        raise ConfigValidationError([f"UI configuration is missing '{key}'" for key in missing])

    name = str(ui_config["name"])
    settings = ui_config["settings"]
    if not isinstance(settings, dict):
        raise ConfigValidationError(["UI configuration 'settings' must be an object"])

    agent_id = agent_id or str(uuid.uuid4())
    config = AgentPluginConfig(
        agent_id=agent_id,
        agent_name=agent_urn(name),
        description=str(ui_config.get("instructions") or f"{name} is a helpful AI assistant."),
        version="1.0.0",
        build_target=BuildTarget.from_string(build_target),
        agent_type="llm",
        facts_url=FACTS_URL_TEMPLATE.format(agent_id=agent_id),
        ttl=3600,
        signature="placeholder-signature",
        use_chromem_go=True,
    )

    features = ui_config.get("features") or {}
    for feature, factory in FEATURE_TOOLS.items():
        if features.get(feature):
            config.tools.append(factory())

    for index, server in enumerate(settings.get("mcpServers") or []):
        if isinstance(server, dict) and server.get("enabled"):
            config.resources.append(
                ResourceConfig(name=f"mcp_server_{index}", type="json", content=json.dumps(server))
            )

    if settings.get("creativity") is not None:
        config.resources.append(
            ResourceConfig(name="creativity_parameter", type="text", content=str(settings["creativity"]))
        )

    api_keys = ui_config.get("apiKeys")
    if api_keys:
        config.resources.append(ResourceConfig(name="api_keys", type="json", content=json.dumps(api_keys)))

    advanced = ui_config.get("advancedSettings")
    if isinstance(advanced, dict) and advanced:
        try:
            config.trusted_execution_environment = _tee_from_advanced(advanced)
        except (TypeError, ValueError) as e:
            raise ConfigValidationError([f"malformed advancedSettings: {e}"])
        config.use_chromem_go = bool(advanced.get("useChromemGo", config.use_chromem_go))
        config.sub_agent_capabilities = bool(
            advanced.get("subAgentCapabilities", config.sub_agent_capabilities)
        )

    return config
