"""
Agent plugin configuration model.

This module defines the declarative description of an agent that the
compiler turns into a plugin artifact. Configurations arrive as JSON from
the dashboard or the CLI, so every type here can be built from a dictionary
using either camelCase (wire form) or snake_case keys.

Example:
    config = AgentPluginConfig.from_dict({
        "agentId": "abc",
        "agentName": "urn:agent:agentify:helper",
        "version": "2.0.0",
        "buildTarget": "wasm",
    })
    config.validate()
    print(config.artifact_stem)  # agent_abc_2.0.0
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional


class ConfigValidationError(Exception):
    """Raised when an agent configuration is missing or has malformed fields."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Invalid agent configuration: " + "; ".join(self.problems))


class BuildTarget(Enum):
    """Kind of artifact produced by a build."""

    WASM = "wasm"
    NATIVE = "native"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "BuildTarget":
        """Convert string to BuildTarget.

        ``go`` and ``plugin`` are accepted as aliases for ``native`` since the
        remote workflow and older dashboards use them.

        Raises:
            ConfigValidationError: If the value names no known target
        """
        if value is None or value == "":
            return cls.WASM
        normalized = str(value).strip().lower()
        if normalized in ("go", "plugin"):
            return cls.NATIVE
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigValidationError([f"unknown build target '{value}'"])


SEMVER_PATTERN = re.compile(
    r"^\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
ISOLATION_LEVELS = ("process", "container", "vm")
AGENT_TYPES = ("llm", "sequential", "parallel", "loop")


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key out of several spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class ParameterConfig:
    """A single tool parameter."""

    name: str
    required: bool = False
    type: str = "string"
    description: str = ""
    default_value: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParameterConfig":
        return cls(
            name=str(data.get("name", "")),
            required=bool(data.get("required", False)),
            type=str(data.get("type", "string")),
            description=str(data.get("description", "")),
            default_value=_pick(data, "defaultValue", "default_value"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "required": self.required,
        }
        if self.default_value is not None:
            result["defaultValue"] = self.default_value
        return result


@dataclass
class ToolConfig:
    """A tool exposed by the agent.

    Attributes:
        name: Tool name, must be a valid identifier
        description: Human-readable description
        parameters: Ordered parameter list (drives argument validation)
        implementation: Snippet of the form ``return <expression>``
        return_type: Declared return type (informational)
    """

    name: str
    description: str = ""
    parameters: List[ParameterConfig] = field(default_factory=list)
    implementation: str = ""
    return_type: str = "object"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolConfig":
        return cls(
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            parameters=[ParameterConfig.from_dict(p) for p in data.get("parameters") or []],
            implementation=str(data.get("implementation", "")),
            return_type=str(_pick(data, "returnType", "return_type", default="object")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": [p.to_dict() for p in self.parameters],
            "implementation": self.implementation,
            "returnType": self.return_type,
        }

    @property
    def required_parameters(self) -> List[ParameterConfig]:
        return [p for p in self.parameters if p.required]

    @property
    def optional_parameters(self) -> List[ParameterConfig]:
        return [p for p in self.parameters if not p.required]


@dataclass
class ResourceConfig:
    """A resource embedded verbatim into the generated source."""

    name: str
    content: str = ""
    type: str = "text"
    is_embedded: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceConfig":
        content = data.get("content", "")
        if isinstance(content, bytes):
            content = content.decode("utf-8", errors="replace")
        return cls(
            name=str(data.get("name", "")),
            content=str(content),
            type=str(data.get("type", "text")),
            is_embedded=bool(_pick(data, "isEmbedded", "is_embedded", default=True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "content": self.content,
            "isEmbedded": self.is_embedded,
        }


@dataclass
class PromptConfig:
    """A prompt embedded verbatim into the generated source."""

    name: str
    content: str = ""
    type: str = "text"
    variables: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptConfig":
        return cls(
            name=str(data.get("name", "")),
            content=str(data.get("content", "")),
            type=str(data.get("type", "text")),
            variables=[str(v) for v in data.get("variables") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "content": self.content,
            "variables": list(self.variables),
        }


@dataclass
class TEEConfig:
    """Trusted execution environment settings passed to the generated runtime."""

    isolation_level: str = "process"
    memory_mb: int = 512
    cpu_cores: int = 1
    time_limit_sec: int = 60
    network_access: bool = True
    file_system_access: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TEEConfig":
        if not data:
            return cls()
        limits = _pick(data, "resourceLimits", "resource_limits", default={}) or {}
        return cls(
            isolation_level=str(_pick(data, "isolationLevel", "isolation_level", default="process")),
            memory_mb=int(_pick(limits, "memory", "memory_mb", default=512)),
            cpu_cores=int(_pick(limits, "cpu", "cpu_cores", default=1)),
            time_limit_sec=int(_pick(limits, "timeLimit", "time_limit_sec", default=60)),
            network_access=bool(_pick(data, "networkAccess", "network_access", default=True)),
            file_system_access=bool(
                _pick(data, "fileSystemAccess", "file_system_access", default=False)
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isolationLevel": self.isolation_level,
            "resourceLimits": {
                "memory": self.memory_mb,
                "cpu": self.cpu_cores,
                "timeLimit": self.time_limit_sec,
            },
            "networkAccess": self.network_access,
            "fileSystemAccess": self.file_system_access,
        }


@dataclass
class AgentPluginConfig:
    """The unit of work for the compiler.

    ``agent_id`` and ``version`` together determine the artifact filename, so
    recompiling the same pair overwrites the previous artifact.
    """

    agent_id: str
    agent_name: str
    description: str = ""
    version: str = "1.0.0"
    build_target: BuildTarget = BuildTarget.WASM
    tools: List[ToolConfig] = field(default_factory=list)
    resources: List[ResourceConfig] = field(default_factory=list)
    prompts: List[PromptConfig] = field(default_factory=list)
    trusted_execution_environment: TEEConfig = field(default_factory=TEEConfig)
    extra_dependencies: List[str] = field(default_factory=list)
    agent_type: str = "llm"
    facts_url: str = ""
    private_facts_url: str = ""
    adaptive_router_url: str = ""
    ttl: int = 3600
    signature: str = ""
    python_dependencies: List[str] = field(default_factory=list)
    use_chromem_go: bool = False
    sub_agent_capabilities: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentPluginConfig":
        """Create a config from its JSON form.

        Args:
            data: Dictionary in camelCase or snake_case form

        Returns:
            AgentPluginConfig (not yet validated)

        Raises:
            ConfigValidationError: If ``data`` is not a mapping or has an
                unknown build target or non-numeric limits
        """
        if not isinstance(data, dict):
            raise ConfigValidationError(["configuration must be a JSON object"])

        try:
            return cls(
                agent_id=str(_pick(data, "agentId", "agent_id", default="")),
                agent_name=str(_pick(data, "agentName", "agent_name", "name", default="")),
                description=str(data.get("description", "")),
                version=str(data.get("version") or "1.0.0"),
                build_target=BuildTarget.from_string(_pick(data, "buildTarget", "build_target")),
                tools=[ToolConfig.from_dict(t) for t in data.get("tools") or []],
                resources=[ResourceConfig.from_dict(r) for r in data.get("resources") or []],
                prompts=[PromptConfig.from_dict(p) for p in data.get("prompts") or []],
                trusted_execution_environment=TEEConfig.from_dict(
                    _pick(data, "trustedExecutionEnvironment", "trusted_execution_environment")
                ),
                extra_dependencies=[
                    str(d)
                    for d in _pick(data, "extraDependencies", "extra_dependencies", default=[])
                ],
                agent_type=str(_pick(data, "agentType", "agent_type", default="llm")),
                facts_url=str(_pick(data, "factsUrl", "facts_url", default="")),
                private_facts_url=str(_pick(data, "privateFactsUrl", "private_facts_url", default="")),
                adaptive_router_url=str(
                    _pick(data, "adaptiveRouterUrl", "adaptive_router_url", default="")
                ),
                ttl=int(data.get("ttl", 3600)),
                signature=str(data.get("signature", "")),
                python_dependencies=[
                    str(d)
                    for d in _pick(data, "pythonDependencies", "python_dependencies", default=[])
                ],
                use_chromem_go=bool(_pick(data, "useChromemGo", "use_chromem_go", default=False)),
                sub_agent_capabilities=bool(
                    _pick(data, "subAgentCapabilities", "sub_agent_capabilities", default=False)
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigValidationError([f"malformed configuration: {e}"])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire form used for remote builds."""
        return {
            "agentId": self.agent_id,
            "agentName": self.agent_name,
            "description": self.description,
            "version": self.version,
            "buildTarget": self.build_target.value,
            "tools": [t.to_dict() for t in self.tools],
            "resources": [r.to_dict() for r in self.resources],
            "prompts": [p.to_dict() for p in self.prompts],
            "trustedExecutionEnvironment": self.trusted_execution_environment.to_dict(),
            "extraDependencies": list(self.extra_dependencies),
            "agentType": self.agent_type,
            "factsUrl": self.facts_url,
            "privateFactsUrl": self.private_facts_url,
            "adaptiveRouterUrl": self.adaptive_router_url,
            "ttl": self.ttl,
            "signature": self.signature,
            "pythonDependencies": list(self.python_dependencies),
            "useChromemGo": self.use_chromem_go,
            "subAgentCapabilities": self.sub_agent_capabilities,
        }

    def with_target(self, target: BuildTarget) -> "AgentPluginConfig":
        """Return a copy of this config retargeted to ``target``."""
        return replace(self, build_target=target)

    @property
    def artifact_stem(self) -> str:
        """Artifact filename without extension."""
        return f"agent_{self.agent_id}_{self.version}"

    def validate(self) -> None:
        """Check every field and report all problems at once.

        Raises:
            ConfigValidationError: If any field is missing or malformed
        """
        problems: List[str] = []

        if not self.agent_id.strip():
            problems.append("agentId is required")
        elif re.search(r"[\\/\s]|\.\.", self.agent_id):
            problems.append(f"agentId '{self.agent_id}' must not contain path separators or whitespace")

        if not self.agent_name.strip():
            problems.append("agentName is required")

        if not SEMVER_PATTERN.match(self.version):
            problems.append(f"version '{self.version}' is not a semantic version (MAJOR.MINOR.PATCH)")

        if not isinstance(self.build_target, BuildTarget):
            problems.append(f"unknown build target '{self.build_target}'")

        if self.agent_type not in AGENT_TYPES:
            problems.append(f"agentType '{self.agent_type}' must be one of {', '.join(AGENT_TYPES)}")

        seen_tools = set()
        for tool in self.tools:
            if not IDENTIFIER_PATTERN.match(tool.name):
                problems.append(f"tool name '{tool.name}' is not a valid identifier")
            if tool.name in seen_tools:
                problems.append(f"duplicate tool name '{tool.name}'")
            seen_tools.add(tool.name)

            seen_params = set()
            for param in tool.parameters:
                if not IDENTIFIER_PATTERN.match(param.name):
                    problems.append(f"tool '{tool.name}': parameter name '{param.name}' is not a valid identifier")
                if param.name in seen_params:
                    problems.append(f"tool '{tool.name}': duplicate parameter '{param.name}'")
                seen_params.add(param.name)

        for kind, items in (("resource", self.resources), ("prompt", self.prompts)):
            names = [item.name for item in items]
            for name in names:
                if not name.strip():
                    problems.append(f"{kind} name is required")
            duplicates = sorted({n for n in names if names.count(n) > 1})
            for name in duplicates:
                problems.append(f"duplicate {kind} name '{name}'")

        tee = self.trusted_execution_environment
        if tee.isolation_level not in ISOLATION_LEVELS:
            problems.append(
                f"isolationLevel '{tee.isolation_level}' must be one of {', '.join(ISOLATION_LEVELS)}"
            )
        if tee.memory_mb <= 0 or tee.cpu_cores <= 0 or tee.time_limit_sec <= 0:
            problems.append("resource limits must be positive")

        for dep in self.extra_dependencies:
            if len(dep.split()) != 2:
                problems.append(f"extra dependency '{dep}' must be '<module> <version>'")

        if problems:
            raise ConfigValidationError(problems)
