"""Source generation for agent plugins.

The SourceGenerator drives the TemplateEngine across the fixed set of
templates and populates a build directory:

    main.go              entry points, selected by build target
    go.mod               module manifest
    tee.go, ...          auxiliary sources (only if their template exists)
    tool_<name>.go       one file per tool with argument validation
    resources.go         embedded resource and prompt tables
    agent_service.py     companion service with the same tools
    requirements.txt     companion service dependencies
    .env                 runtime environment for the companion service
    config.json          the serialized configuration

Each step is a separate method so a failed step can be retried alone.
Generation is deterministic: the same configuration yields the same bytes.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..config.agent_config import AgentPluginConfig, ToolConfig
from ..packages.platform_utils import TargetPlatform
from .expressions import (
    GoTranslator,
    PythonTranslator,
    UnsupportedExpressionError,
    node_from_value,
    parse_implementation,
)
from .template_engine import TemplateEngine, TemplateRenderError, escape_string

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


class SourceGenerator:
    """Renders the plugin sources for one configuration into a directory."""

    AUXILIARY_SOURCES = [
        "tee.go",
        "llm_inference.go",
        "subagent_manager.go",
        "agent_monitoring.go",
    ]

    def __init__(
        self,
        template_dir: Optional[Path] = None,
        engine: Optional[TemplateEngine] = None,
    ):
        """Initialize source generator.

        Args:
            template_dir: Template directory (defaults to packaged templates)
            engine: Template engine to use (built from template_dir if None)
        """
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR
        self.engine = engine or TemplateEngine(self.template_dir)
        self.go = GoTranslator()
        self.python = PythonTranslator()

    def generate(
        self,
        build_dir: Path,
        config: AgentPluginConfig,
        platform: TargetPlatform = TargetPlatform.LINUX,
    ) -> List[Path]:
        """Populate ``build_dir`` with the sources for ``config``.

        Args:
            build_dir: Existing build directory
            config: Validated agent configuration
            platform: Target platform of the build

        Returns:
            Paths of all files written, in generation order

        Raises:
            TemplateRenderError: On a missing required template, an
                unsupported tool implementation or any write failure
        """
        build_dir = Path(build_dir)
        logging.info(
            f"Generating sources for {config.agent_id} "
            + f"({config.build_target.value}, {platform.goos}) in {build_dir}"
        )
        written = [
            self.generate_main(build_dir, config, platform),
            self.generate_manifest(build_dir, config, platform),
        ]
        written.extend(self.generate_auxiliary(build_dir, config, platform))
        written.extend(self.generate_tools(build_dir, config, platform))
        written.append(self.generate_resources(build_dir, config, platform))
        written.extend(self.generate_service(build_dir, config, platform))
        logging.debug(f"Generated {len(written)} files in {build_dir}")
        return written

    def _write(self, build_dir: Path, filename: str, content: str) -> Path:
        path = build_dir / filename
        try:
            with open(path, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
        except OSError as e:
            raise TemplateRenderError(f"failed to write {path}: {e}", filename=filename)
        return path

    def _render(
        self,
        template_name: str,
        config: AgentPluginConfig,
        platform: TargetPlatform,
        extra: Optional[Dict[str, str]] = None,
    ) -> str:
        return self.engine.render_file(template_name, config, platform, extra)

    def generate_main(
        self, build_dir: Path, config: AgentPluginConfig, platform: TargetPlatform
    ) -> Path:
        registrations = "".join(
            f"\t{json.dumps(tool.name)}: {self.tool_func_name(tool)},\n" for tool in config.tools
        )
        content = self._render("main.go", config, platform, {"toolRegistrations": registrations})
        return self._write(build_dir, "main.go", content)

    def generate_manifest(
        self, build_dir: Path, config: AgentPluginConfig, platform: TargetPlatform
    ) -> Path:
        return self._write(build_dir, "go.mod", self._render("go.mod", config, platform))

    def generate_auxiliary(
        self, build_dir: Path, config: AgentPluginConfig, platform: TargetPlatform
    ) -> List[Path]:
        """Render auxiliary sources whose templates exist; skip the rest."""
        written = []
        for name in self.AUXILIARY_SOURCES:
            if not self.engine.has_template(name):
                logging.debug(f"No template for {name}, skipping")
                continue
            written.append(self._write(build_dir, name, self._render(name, config, platform)))
        return written

    @staticmethod
    def tool_func_name(tool: ToolConfig) -> str:
        return f"tool_{tool.name}"

    @staticmethod
    def _single_line(text: str) -> str:
        return " ".join(text.split())

    def _tool_result(self, tool: ToolConfig, filename: str, language: str) -> str:
        translator = self.go if language == "go" else self.python
        try:
            node = parse_implementation(tool.implementation, [p.name for p in tool.parameters])
            return translator.translate(node)
        except UnsupportedExpressionError as e:
            raise TemplateRenderError(
                f"unsupported implementation for tool '{tool.name}': {e}", filename=filename
            )

    def _tool_default(self, tool: ToolConfig, value: object, filename: str, language: str) -> str:
        translator = self.go if language == "go" else self.python
        try:
            return translator.translate(node_from_value(value))
        except UnsupportedExpressionError as e:
            raise TemplateRenderError(
                f"unsupported parameter default for tool '{tool.name}': {e}", filename=filename
            )

    def _go_tool_context(self, tool: ToolConfig, filename: str) -> Dict[str, str]:
        tool_key = json.dumps(tool.name)
        checks = []
        for param in tool.required_parameters:
            key = json.dumps(param.name)
            checks.append(
                f"\tif v, ok := args[{key}]; !ok || v == nil {{\n"
                + f"\t\treturn nil, &MissingParameterError{{Tool: {tool_key}, Parameter: {key}}}\n"
                + "\t}\n"
            )
        defaults = []
        for param in tool.optional_parameters:
            if param.default_value is None:
                continue
            key = json.dumps(param.name)
            literal = self._tool_default(tool, param.default_value, filename, "go")
            defaults.append(
                f"\tif _, ok := args[{key}]; !ok {{\n" + f"\t\targs[{key}] = {literal}\n" + "\t}\n"
            )
        return {
            "toolName": escape_string(tool.name),
            "toolFuncName": self.tool_func_name(tool),
            "toolDescription": self._single_line(tool.description) or "No description.",
            "toolRequiredChecks": "".join(checks),
            "toolOptionalDefaults": "".join(defaults),
            "toolResult": self._tool_result(tool, filename, "go"),
        }

    def generate_tools(
        self, build_dir: Path, config: AgentPluginConfig, platform: TargetPlatform
    ) -> List[Path]:
        """Render one ``tool_<name>.go`` per tool."""
        template = self.engine.load("tool.go")
        written = []
        for tool in config.tools:
            filename = f"tool_{tool.name}.go"
            extra = self._go_tool_context(tool, filename)
            content = self.engine.render(template, config, platform, extra)
            written.append(self._write(build_dir, filename, content))
        return written

    def generate_resources(
        self, build_dir: Path, config: AgentPluginConfig, platform: TargetPlatform
    ) -> Path:
        return self._write(build_dir, "resources.go", self._render("resources.go", config, platform))

    def _python_tools(self, config: AgentPluginConfig) -> str:
        blocks = []
        for tool in config.tools:
            lines = [f"def {self.tool_func_name(tool)}(args):"]
            description = self._single_line(tool.description)
            if description:
                lines.append(f"    # {description}")
            for param in tool.required_parameters:
                lines.append(f"    _require({tool.name!r}, args, {param.name!r})")
            for param in tool.optional_parameters:
                if param.default_value is None:
                    continue
                literal = self._tool_default(tool, param.default_value, "agent_service.py", "python")
                lines.append(f"    args.setdefault({param.name!r}, {literal})")
            lines.append("    return " + self._tool_result(tool, "agent_service.py", "python"))
            blocks.append("\n" + "\n".join(lines) + "\n\n")
        return "".join(blocks)

    def generate_service(
        self, build_dir: Path, config: AgentPluginConfig, platform: TargetPlatform
    ) -> List[Path]:
        """Render the companion service, its requirements, .env and config.json."""
        service_extra = {
            "pythonTools": self._python_tools(config),
            "pythonToolRegistrations": "".join(
                f"    {tool.name!r}: {self.tool_func_name(tool)},\n" for tool in config.tools
            ),
        }
        written = [
            self._write(
                build_dir,
                "agent_service.py",
                self._render("agent_service.py", config, platform, service_extra),
            ),
            self._write(
                build_dir, "requirements.txt", self._render("requirements.txt", config, platform)
            ),
            self._write(build_dir, ".env", self._render("env", config, platform)),
            self._write(
                build_dir,
                "config.json",
                json.dumps(config.to_dict(), indent=2, sort_keys=True) + "\n",
            ),
        ]
        return written
