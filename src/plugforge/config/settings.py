"""
Runtime settings for plugforge.

Settings come from three layers, later layers winning:

    1. Defaults defined on the Settings dataclass
    2. A ``[plugforge]`` section in an INI file (optional)
    3. Environment variables

Example plugforge.ini:
    [plugforge]
    output_dir = /var/lib/plugforge
    retain_build_dir = yes
    build_timeout = 600
    github_owner = my-org
    github_repo = agent-builds
"""

import configparser
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional


class SettingsError(Exception):
    """Raised when a setting has a malformed value."""

    pass


# Environment variable -> Settings field
ENV_VARS = {
    "PLUGFORGE_TEMPLATE_DIR": "template_dir",
    "PLUGFORGE_OUTPUT_DIR": "output_dir",
    "PLUGFORGE_RETAIN_BUILD_DIR": "retain_build_dir",
    "PLUGFORGE_BUILD_TIMEOUT": "build_timeout",
    "PLUGFORGE_REMOTE_TIMEOUT": "remote_timeout",
    "PLUGFORGE_POLL_INTERVAL": "poll_interval",
    "PLUGFORGE_PROGRESS_URL": "progress_url",
    "PLUGFORGE_VENDOR": "vendor_dependencies",
    "GITHUB_TOKEN": "github_token",
    "GITHUB_OWNER": "github_owner",
    "GITHUB_REPO": "github_repo",
    "GITHUB_WORKFLOW_ID": "github_workflow_id",
    "GITHUB_REF": "github_ref",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass
class Settings:
    """Runtime settings.

    Attributes:
        template_dir: Template directory (None uses the packaged templates)
        output_dir: Root of temp/, plugins/ and cache/
        retain_build_dir: Keep build workspaces for debugging
        build_timeout: Per-command timeout for local toolchain calls (seconds)
        remote_timeout: Bound on waiting for a remote build (seconds)
        poll_interval: Delay between remote status polls (seconds)
        progress_url: Endpoint receiving progress events (None disables)
        vendor_dependencies: Run ``go mod vendor`` after ``go mod tidy``
        github_token: Bearer token for the remote CI (None disables remote)
        github_owner: Owner of the repository running the compile workflow
        github_repo: Repository running the compile workflow
        github_workflow_id: Workflow file dispatched for remote builds
        github_ref: Git ref the workflow is dispatched on
    """

    template_dir: Optional[Path] = None
    output_dir: Path = field(default_factory=lambda: Path.cwd() / "output")
    retain_build_dir: bool = False
    build_timeout: float = 300.0
    remote_timeout: float = 300.0
    poll_interval: float = 5.0
    progress_url: Optional[str] = None
    vendor_dependencies: bool = False
    github_token: Optional[str] = None
    github_owner: str = "guiperry"
    github_repo: str = "next-agentify"
    github_workflow_id: str = "compile-plugin.yml"
    github_ref: str = "main"

    @property
    def remote_enabled(self) -> bool:
        """True when remote builds can be dispatched."""
        return bool(self.github_token)

    @property
    def remote_timeout_ms(self) -> int:
        return int(self.remote_timeout * 1000)

    @staticmethod
    def _coerce(name: str, value: str) -> Any:
        """Convert a raw string to the type of Settings field ``name``."""
        if name in ("template_dir", "output_dir"):
            return Path(value).expanduser() if value else None
        if name in ("retain_build_dir", "vendor_dependencies"):
            lowered = value.strip().lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
            raise SettingsError(f"{name}: expected a boolean, got '{value}'")
        if name in ("build_timeout", "remote_timeout", "poll_interval"):
            try:
                number = float(value)
            except ValueError:
                raise SettingsError(f"{name}: expected a number, got '{value}'")
            if number <= 0:
                raise SettingsError(f"{name}: must be positive, got '{value}'")
            return number
        if name in ("progress_url", "github_token"):
            return value or None
        return value

    def _apply(self, values: Mapping[str, str]) -> "Settings":
        for name, raw in values.items():
            coerced = self._coerce(name, raw)
            if name == "output_dir" and coerced is None:
                continue
            setattr(self, name, coerced)
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from defaults plus environment variables.

        Args:
            environ: Environment mapping (defaults to os.environ)

        Raises:
            SettingsError: If a variable has a malformed value
        """
        return cls()._apply(cls._env_values(environ))

    @staticmethod
    def _env_values(environ: Optional[Mapping[str, str]]) -> Dict[str, str]:
        environ = os.environ if environ is None else environ
        return {name: environ[var] for var, name in ENV_VARS.items() if var in environ}

    @classmethod
    def from_ini(
        cls, ini_path: Path, environ: Optional[Mapping[str, str]] = None
    ) -> "Settings":
        """Build settings from an INI file, overlaid with environment variables.

        Args:
            ini_path: Path to an INI file with a ``[plugforge]`` section
            environ: Environment mapping (defaults to os.environ)

        Raises:
            SettingsError: If the file is missing, unparsable or has
                malformed or unknown keys
        """
        ini_path = Path(ini_path)
        if not ini_path.exists():
            raise SettingsError(f"Settings file not found: {ini_path}")

        parser = configparser.ConfigParser()
        try:
            parser.read(ini_path, encoding="utf-8")
        except configparser.Error as e:
            raise SettingsError(f"Failed to parse {ini_path}: {e}") from e

        known = {f.name for f in fields(cls)}
        values: Dict[str, str] = {}
        if parser.has_section("plugforge"):
            for key, raw in parser.items("plugforge"):
                if key not in known:
                    raise SettingsError(f"{ini_path}: unknown setting '{key}'")
                values[key] = raw

        settings = cls()._apply(values)
        return settings._apply(cls._env_values(environ))
