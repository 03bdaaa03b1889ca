"""Template rendering for generated plugin sources.

Templates use a deliberately small dialect:

    {{.agentId}}                          placeholder
    {{if eq .buildTarget "wasm"}}...{{end}}  kept only when equal
    {{if ne .buildTarget "wasm"}}...{{end}}  kept only when not equal

Conditional blocks are resolved first, then placeholders are substituted in
a single pass, so substituted values (resource content, translated tool
bodies) are never re-interpreted as template syntax. Unknown placeholders
render as the empty string. Nested conditional blocks are not supported.
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Mapping, Optional

from ..config.agent_config import AgentPluginConfig
from ..packages.platform_utils import TargetPlatform


class TemplateRenderError(Exception):
    """Raised when a template cannot be loaded, rendered or written.

    Attributes:
        filename: Name of the file being produced when the failure happened
    """

    def __init__(self, message: str, filename: Optional[str] = None):
        self.filename = filename
        if filename:
            message = f"{filename}: {message}"
        super().__init__(message)


# Go language version written into go.mod
GO_VERSION = "1.21"

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-3.5-turbo"
EMBEDDING_PROVIDER = "cerebras"
EMBEDDING_DIMENSION = 384
EMBEDDING_TASK_TYPE = "retrieval_document"

_CONDITIONAL_PATTERN = re.compile(
    r'\{\{\s*if\s+(eq|ne)\s+\.(\w+)\s+"([^"]*)"\s*\}\}(.*?)\{\{\s*end\s*\}\}',
    re.DOTALL,
)
_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*\.(\w+)\s*\}\}")


def escape_string(value: str) -> str:
    """Escape ``value`` for the inside of a double-quoted string.

    The result is valid between double quotes in Go, Python and dotenv files.
    """
    return json.dumps(value, ensure_ascii=False)[1:-1]


# Characters a Go raw string literal cannot carry verbatim. The compiler
# strips carriage returns from raw literals and rejects NUL in source.
_GO_RAW_BREAKS = {"`": '"`"', "\r": '"\\r"', "\x00": '"\\x00"'}


def go_raw_string(content: str) -> str:
    """Quote ``content`` as a Go raw string literal.

    Characters that cannot appear verbatim in a raw literal are emitted as
    interpreted strings concatenated between two raw segments.
    """
    return "`" + "".join(
        f"` + {_GO_RAW_BREAKS[char]} + `" if char in _GO_RAW_BREAKS else char for char in content
    ) + "`"


def go_module_name(agent_id: str) -> str:
    """Module path used in go.mod for an agent."""
    return "plugforge/agent_" + re.sub(r"[^A-Za-z0-9_.-]", "_", agent_id)


def _go_bool(value: bool) -> str:
    return "true" if value else "false"


def _embedded_resources(config: AgentPluginConfig) -> str:
    lines = []
    for resource in config.resources:
        if not resource.is_embedded:
            continue
        lines.append(f"\t{json.dumps(resource.name)}: []byte({go_raw_string(resource.content)}),\n")
    return "".join(lines)


def _resource_types(config: AgentPluginConfig) -> str:
    return "".join(
        f"\t{json.dumps(resource.name)}: {json.dumps(resource.type)},\n"
        for resource in config.resources
        if resource.is_embedded
    )


def _embedded_prompts(config: AgentPluginConfig) -> str:
    return "".join(
        f"\t{json.dumps(prompt.name)}: {go_raw_string(prompt.content)},\n"
        for prompt in config.prompts
    )


def _extra_requires(config: AgentPluginConfig) -> str:
    if not config.extra_dependencies:
        return ""
    body = "".join(f"\t{dep}\n" for dep in config.extra_dependencies)
    return f"\nrequire (\n{body})\n"


def build_placeholders(
    config: AgentPluginConfig, platform: TargetPlatform
) -> Dict[str, str]:
    """Build the placeholder dictionary for a configuration.

    Identity strings are pre-escaped for double-quoted contexts. Numeric and
    boolean values are rendered as Go/JSON literals. Code-valued entries
    (embedded tables, go.mod requires) are emitted ready to paste.

    Args:
        config: Agent configuration
        platform: Target platform of the build

    Returns:
        Mapping of placeholder name to rendered text
    """
    tee = config.trusted_execution_environment
    return {
        "agentId": escape_string(config.agent_id),
        "agentName": escape_string(config.agent_name),
        "agentDescription": escape_string(config.description),
        "agentVersion": escape_string(config.version),
        "agentType": escape_string(config.agent_type),
        "factsUrl": escape_string(config.facts_url),
        "privateFactsUrl": escape_string(config.private_facts_url),
        "adaptiveRouterUrl": escape_string(config.adaptive_router_url),
        "ttl": str(int(config.ttl)),
        "signature": escape_string(config.signature),
        "buildTarget": config.build_target.value,
        "platform": platform.goos,
        "moduleName": go_module_name(config.agent_id),
        "goVersion": GO_VERSION,
        "isolationLevel": escape_string(tee.isolation_level),
        "memoryLimit": str(tee.memory_mb),
        "cpuCores": str(tee.cpu_cores),
        "timeoutSec": str(tee.time_limit_sec),
        "networkAccess": _go_bool(tee.network_access),
        "fileSystemAccess": _go_bool(tee.file_system_access),
        "defaultProvider": DEFAULT_PROVIDER,
        "defaultModel": DEFAULT_MODEL,
        "embeddingProvider": EMBEDDING_PROVIDER,
        "embeddingDimension": str(EMBEDDING_DIMENSION),
        "embeddingTaskType": EMBEDDING_TASK_TYPE,
        "embeddingNormalize": "true",
        "useChromemGo": _go_bool(config.use_chromem_go),
        "subAgentCapabilities": _go_bool(config.sub_agent_capabilities),
        "embeddedResources": _embedded_resources(config),
        "resourceTypes": _resource_types(config),
        "embeddedPrompts": _embedded_prompts(config),
        "extraRequires": _extra_requires(config),
        "pythonRequirements": "".join(f"{dep}\n" for dep in config.python_dependencies),
    }


class TemplateEngine:
    """Loads ``*.template`` files and renders them against a configuration."""

    SUFFIX = ".template"

    def __init__(self, template_dir: Path):
        """Initialize template engine.

        Args:
            template_dir: Directory holding ``<output-name>.template`` files
        """
        self.template_dir = Path(template_dir)

    def template_path(self, name: str) -> Path:
        """Path of the template producing output file ``name``."""
        return self.template_dir / f"{name}{self.SUFFIX}"

    def has_template(self, name: str) -> bool:
        return self.template_path(name).is_file()

    def load(self, name: str) -> str:
        """Read the template for output file ``name``.

        Raises:
            TemplateRenderError: If the template is missing or unreadable
        """
        path = self.template_path(name)
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError:
            raise TemplateRenderError(f"template not found: {path}", filename=name)
        except OSError as e:
            raise TemplateRenderError(f"failed to read template {path}: {e}", filename=name)

    @staticmethod
    def resolve_conditionals(template: str, values: Mapping[str, str]) -> str:
        """Keep or drop ``{{if eq|ne .key "value"}}...{{end}}`` blocks."""

        def _select(match: "re.Match[str]") -> str:
            operator, key, expected, body = match.groups()
            actual = values.get(key, "")
            keep = actual == expected if operator == "eq" else actual != expected
            return body if keep else ""

        return _CONDITIONAL_PATTERN.sub(_select, template)

    @staticmethod
    def substitute(template: str, values: Mapping[str, str]) -> str:
        """Replace ``{{.key}}`` placeholders; unknown keys become empty."""

        def _replace(match: "re.Match[str]") -> str:
            key = match.group(1)
            if key not in values:
                logging.debug(f"Template placeholder '{key}' has no value, rendering empty")
                return ""
            return values[key]

        return _PLACEHOLDER_PATTERN.sub(_replace, template)

    def render(
        self,
        template: str,
        config: AgentPluginConfig,
        platform: TargetPlatform = TargetPlatform.LINUX,
        extra: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Render template text against a configuration.

        Args:
            template: Template text
            config: Agent configuration
            platform: Target platform of the build
            extra: Additional placeholder values (override the defaults)

        Returns:
            Rendered text
        """
        values = build_placeholders(config, platform)
        if extra:
            values.update(extra)
        return self.substitute(self.resolve_conditionals(template, values), values)

    def render_file(
        self,
        name: str,
        config: AgentPluginConfig,
        platform: TargetPlatform = TargetPlatform.LINUX,
        extra: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Load and render the template for output file ``name``."""
        return self.render(self.load(name), config, platform, extra)
