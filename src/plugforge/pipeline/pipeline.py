"""
Compilation pipeline.

Entry point that turns a validated agent configuration into a plugin
artifact. The local build runs first; when it raises and remote builds are
configured, the same configuration is compiled by GitHub Actions instead.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..build.orchestrator import BuildOrchestrator
from ..config.agent_config import AgentPluginConfig, ConfigValidationError
from ..config.settings import Settings
from ..packages.platform_utils import PlatformDetector, PlatformError, TargetPlatform
from ..remote.dispatcher import RemoteBuildDispatcher
from .progress import ProgressNotifier, ProgressStatus, SafeProgressReporter, default_notifier
from .strategies import BuildStrategy, FallbackCoordinator, LocalStrategy, RemoteStrategy


@dataclass
class CompilationResult:
    """Outcome of a compilation request."""

    success: bool
    method: Optional[str] = None
    artifact_path: Optional[str] = None
    artifact_url: Optional[str] = None
    filename: Optional[str] = None
    job_id: Optional[str] = None
    message: str = ""
    errors: List[str] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)
    build_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "artifactPath": self.artifact_path,
            "artifactUrl": self.artifact_url,
            "filename": self.filename,
            "logs": list(self.logs),
            "method": self.method,
            "message": self.message,
            "errors": list(self.errors),
            "jobId": self.job_id,
            "buildTime": self.build_time,
        }


def default_platform() -> TargetPlatform:
    """Host platform, or linux when the host is not a supported target."""
    try:
        return PlatformDetector.detect_host_platform()
    except PlatformError as e:
        logging.debug(f"Falling back to linux target: {e}")
        return TargetPlatform.LINUX


class CompilationPipeline:
    """
    Local-then-remote plugin compilation.

    Usage:
        pipeline = CompilationPipeline(Settings.from_env())
        result = pipeline.run(AgentPluginConfig.from_dict(data))
        if result.success:
            print(result.artifact_path)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        orchestrator: Optional[BuildOrchestrator] = None,
        dispatcher: Optional[RemoteBuildDispatcher] = None,
        notifier: Optional[ProgressNotifier] = None,
        strategies: Optional[List[BuildStrategy]] = None,
        enable_remote: bool = True,
        verbose: bool = False,
    ):
        """Initialize the pipeline.

        Args:
            settings: Runtime settings (defaults from the environment)
            orchestrator: Local build orchestrator
            dispatcher: Remote dispatcher; created from settings when remote
                builds are configured and none is given
            notifier: Progress notifier (logging, plus HTTP when
                ``settings.progress_url`` is set)
            strategies: Explicit strategy chain, overriding local/remote
            enable_remote: Allow the remote fallback
            verbose: Echo toolchain output to the console
        """
        self.settings = settings or Settings.from_env()
        self.orchestrator = orchestrator or BuildOrchestrator(self.settings, verbose=verbose)
        self.reporter = SafeProgressReporter(notifier or default_notifier(self.settings.progress_url))

        if dispatcher is None and enable_remote and self.settings.remote_enabled:
            dispatcher = RemoteBuildDispatcher.from_settings(self.settings)
        self.dispatcher = dispatcher if enable_remote else None

        if strategies is None:
            strategies = [LocalStrategy(self.orchestrator)]
            if self.dispatcher is not None:
                strategies.append(
                    RemoteStrategy(self.dispatcher, self.orchestrator.cache, self.settings.remote_timeout_ms)
                )
        self.coordinator = FallbackCoordinator(strategies, self.reporter)

    def run(self, config: AgentPluginConfig, platform: Optional[TargetPlatform] = None) -> CompilationResult:
        """Compile ``config`` into a plugin artifact.

        Args:
            config: Agent configuration
            platform: Target platform of a native build (defaults to the host)

        Returns:
            CompilationResult; ``success`` is False when every strategy failed

        Raises:
            ConfigValidationError: If the configuration is invalid (no
                fallback is attempted)
        """
        platform = platform or default_platform()

        try:
            config.validate()
        except ConfigValidationError as e:
            self.reporter.report("error", 100, f"Invalid configuration: {e}", ProgressStatus.ERROR)
            raise

        self.reporter.report(
            "initializing",
            10,
            f"Compiling {config.agent_name} ({config.build_target.value}, {platform.value})",
        )
        start_time = time.time()
        outcome = self.coordinator.run(config, platform)
        build_time = time.time() - start_time
        errors = [failure.message for failure in outcome.failures]

        if outcome.result is None:
            message = "; ".join(errors) or "No build strategy configured"
            self.reporter.report("error", 100, message, ProgressStatus.ERROR)
            return CompilationResult(
                success=False,
                message=message,
                errors=errors,
                logs=outcome.logs,
                build_time=build_time,
            )

        result = outcome.result
        message = f"Compiled {result.filename} via {result.method} build"
        self.reporter.report("completed", 100, message, ProgressStatus.COMPLETED)
        return CompilationResult(
            success=True,
            method=result.method,
            artifact_path=str(result.artifact_path),
            artifact_url=result.artifact_url,
            filename=result.filename,
            job_id=result.job_id,
            message=message,
            errors=errors,
            logs=outcome.logs,
            build_time=build_time,
        )
