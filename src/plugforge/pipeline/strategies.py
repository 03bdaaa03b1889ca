"""
Build strategies and the fallback coordinator.

A strategy produces an artifact for a validated configuration or raises.
FallbackCoordinator tries strategies in order and stops at the first one
that succeeds:

    LocalStrategy   generate sources and compile with the local toolchain
    RemoteStrategy  dispatch to GitHub Actions, wait, download, unpack
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..build.orchestrator import BuildOrchestrator, WorkspaceError, artifact_filename
from ..config.agent_config import AgentPluginConfig
from ..packages.cache import Cache
from ..packages.platform_utils import TargetPlatform
from ..remote.dispatcher import RemoteBuildDispatcher, RemoteDispatchError, RemoteTimeoutError
from ..remote.messages import JobStatus
from .progress import SafeProgressReporter


@dataclass
class StrategyResult:
    """Artifact produced by a strategy."""

    method: str
    artifact_path: Path
    filename: str
    artifact_url: Optional[str] = None
    job_id: Optional[str] = None


class BuildStrategy:
    """Base class for build strategies.

    ``build`` appends the log trail of its attempt to ``logs`` whether it
    succeeds or raises. Strategies hold no per-attempt state, so one
    instance may serve concurrent builds.
    """

    name = ""

    def build(
        self,
        config: AgentPluginConfig,
        platform: TargetPlatform,
        reporter: SafeProgressReporter,
        logs: List[str],
    ) -> StrategyResult:
        raise NotImplementedError


class LocalStrategy(BuildStrategy):
    """Generate and compile in a fresh workspace with the local toolchain."""

    name = "local"

    def __init__(self, orchestrator: BuildOrchestrator):
        self.orchestrator = orchestrator

    def build(
        self,
        config: AgentPluginConfig,
        platform: TargetPlatform,
        reporter: SafeProgressReporter,
        logs: List[str],
    ) -> StrategyResult:
        attempt = self.orchestrator.for_attempt()
        try:
            build_dir = attempt.create_workspace(config)
            try:
                reporter.report("generating", 20, f"Generating sources in {build_dir.name}")
                attempt.generator.generate(build_dir, config, platform)
                reporter.report("compiling", 40, f"Compiling {config.build_target.value} plugin locally")
                artifact = attempt.compile(build_dir, config, platform)
            finally:
                try:
                    attempt.cleanup_workspace(build_dir)
                except WorkspaceError as e:
                    logging.warning(str(e))
        finally:
            logs.extend(attempt.get_logs())
        return StrategyResult(method=self.name, artifact_path=artifact, filename=artifact.name)


class RemoteStrategy(BuildStrategy):
    """Compile on GitHub Actions and unpack the artifact into plugins/."""

    name = "remote"

    def __init__(self, dispatcher: RemoteBuildDispatcher, cache: Cache, timeout_ms: int = 300000):
        self.dispatcher = dispatcher
        self.cache = cache
        self.timeout_ms = timeout_ms

    def build(
        self,
        config: AgentPluginConfig,
        platform: TargetPlatform,
        reporter: SafeProgressReporter,
        logs: List[str],
    ) -> StrategyResult:
        reporter.report("remote_dispatch", 60, "Submitting build to GitHub Actions")
        job_id = self.dispatcher.trigger(config, platform)

        reporter.report("remote_compiling", 70, f"Waiting for remote job {job_id}")
        job = self.dispatcher.wait_for_completion(job_id, self.timeout_ms)
        logs.extend(job.logs)

        if job.status == JobStatus.TIMED_OUT:
            raise RemoteTimeoutError(job.error or f"Remote job {job_id} timed out")
        if job.status != JobStatus.COMPLETED:
            raise RemoteDispatchError(job.error or f"Remote job {job_id} failed")

        reporter.report("downloading", 90, f"Downloading artifact of {job_id}")
        archive = self.dispatcher.fetch_artifact(job_id)
        path = self.dispatcher.extract_artifact(
            archive, self.cache.plugins_dir, artifact_filename(config, platform)
        )
        logs.append(f"Extracted remote artifact to {path}")
        return StrategyResult(
            method=self.name,
            artifact_path=path,
            filename=path.name,
            artifact_url=job.download_url,
            job_id=job_id,
        )


@dataclass
class AttemptFailure:
    """A strategy that raised."""

    method: str
    error: Exception

    @property
    def message(self) -> str:
        return f"{self.method} build failed: {self.error}"


@dataclass
class FallbackOutcome:
    """Result of running the strategy chain."""

    result: Optional[StrategyResult]
    failures: List[AttemptFailure] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.result is not None


class FallbackCoordinator:
    """Runs strategies in order until one succeeds."""

    def __init__(self, strategies: List[BuildStrategy], reporter: Optional[SafeProgressReporter] = None):
        self.strategies = list(strategies)
        self.reporter = reporter or SafeProgressReporter()

    def run(self, config: AgentPluginConfig, platform: TargetPlatform) -> FallbackOutcome:
        outcome = FallbackOutcome(result=None)
        for strategy in self.strategies:
            if outcome.failures:
                last = outcome.failures[-1]
                self.reporter.report(
                    "falling_back", 55, f"{last.message}; falling back to {strategy.name} build"
                )
            attempt_logs: List[str] = []
            try:
                outcome.result = strategy.build(config, platform, self.reporter, attempt_logs)
            except KeyboardInterrupt:
                raise
            except Exception as e:
                logging.warning(f"{strategy.name} build of {config.agent_id} failed: {e}")
                outcome.failures.append(AttemptFailure(method=strategy.name, error=e))
            finally:
                outcome.logs.extend(attempt_logs)
            if outcome.result is not None:
                break
        return outcome
