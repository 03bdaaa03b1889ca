"""Configuration models and runtime settings for plugforge."""

from .agent_config import (
    AgentPluginConfig,
    BuildTarget,
    ConfigValidationError,
    ParameterConfig,
    PromptConfig,
    ResourceConfig,
    TEEConfig,
    ToolConfig,
)
from .settings import Settings, SettingsError
from .ui_config import convert_ui_config

__all__ = [
    "AgentPluginConfig",
    "BuildTarget",
    "ConfigValidationError",
    "ParameterConfig",
    "PromptConfig",
    "ResourceConfig",
    "TEEConfig",
    "ToolConfig",
    "Settings",
    "SettingsError",
    "convert_ui_config",
]
