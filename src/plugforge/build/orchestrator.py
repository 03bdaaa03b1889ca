"""
Build orchestration for agent plugins.

This module turns a populated build directory into a published plugin
artifact using the local Go toolchain:

1. Locate the compiler (fails fast with ToolchainMissingError)
2. ``go mod tidy`` (and ``go mod vendor`` when vendoring is enabled)
3. ``go build`` as a WASM module or as a native ``-buildmode=plugin``
4. Publish the artifact to ``output_dir/plugins`` (Cache.publish_artifact)

A failed WASM build is retried exactly once as a native plugin build after
regenerating the sources for the native target. Only the native error is
surfaced if that retry also fails.
"""

import copy
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Dict, List, Optional

from ..config.agent_config import AgentPluginConfig, BuildTarget
from ..config.settings import Settings
from ..generate.source_generator import SourceGenerator
from ..packages.cache import Cache
from ..packages.downloader import PackageDownloader
from ..packages.platform_utils import TargetPlatform
from ..packages.toolchain import GoToolchain, ToolchainStatus
from .build_executor import BuildCommandError, BuildExecutor
from .build_log import BuildLog


class WorkspaceError(OSError):
    """Raised when a build workspace cannot be created, published from or removed."""

    pass


def artifact_filename(config: AgentPluginConfig, platform: TargetPlatform) -> str:
    """Output filename for a build.

    ``agent_<agent_id>_<version>.wasm`` for WASM builds, otherwise the
    shared-library extension of the target platform.
    """
    if config.build_target == BuildTarget.WASM:
        extension = ".wasm"
    else:
        extension = platform.shared_library_extension
    return f"{config.artifact_stem}{extension}"


class BuildOrchestrator:
    """
    Compiles generated plugin sources with the local toolchain.

    Usage:
        orchestrator = BuildOrchestrator(Settings.from_env())
        build_dir = orchestrator.create_workspace(config)
        generator.generate(build_dir, config, TargetPlatform.LINUX)
        artifact = orchestrator.compile(build_dir, config, TargetPlatform.LINUX)
        orchestrator.cleanup_workspace(build_dir)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        generator: Optional[SourceGenerator] = None,
        toolchain: Optional[GoToolchain] = None,
        executor: Optional[BuildExecutor] = None,
        cache: Optional[Cache] = None,
        verbose: bool = False,
    ):
        """Initialize build orchestrator.

        Args:
            settings: Runtime settings (defaults from the environment)
            generator: Source generator used for the WASM-to-native retry
            toolchain: Go toolchain manager
            executor: Command executor (shares this orchestrator's log)
            cache: Output/cache directory manager
            verbose: Echo toolchain output to the console
        """
        self.settings = settings or Settings.from_env()
        self.cache = cache or Cache(self.settings.output_dir)
        self.generator = generator or SourceGenerator(self.settings.template_dir)
        self.toolchain = toolchain or GoToolchain(self.cache)
        self.log = BuildLog()
        self.executor = executor or BuildExecutor(
            self.log, timeout=self.settings.build_timeout, verbose=verbose
        )
        self.verbose = verbose

    def get_logs(self) -> List[str]:
        """Timestamped lines captured from every command run so far."""
        return self.log.get_logs()

    def for_attempt(self) -> "BuildOrchestrator":
        """Shallow copy recording into a fresh BuildLog.

        Settings, cache, generator and toolchain stay shared, so concurrent
        builds can run through one orchestrator and still keep their logs
        apart.
        """
        attempt = copy.copy(self)
        attempt.log = BuildLog()
        if isinstance(self.executor, BuildExecutor):
            attempt.executor = self.executor.with_log(attempt.log)
        return attempt

    def check_toolchain(self) -> ToolchainStatus:
        return self.toolchain.check_toolchain()

    def install_toolchain(
        self, downloader: Optional[PackageDownloader] = None, force_download: bool = False
    ) -> ToolchainStatus:
        """Best-effort toolchain installation; never called by compile()."""
        return self.toolchain.install_toolchain(downloader, force_download=force_download)

    def create_workspace(self, config: AgentPluginConfig) -> Path:
        """Create an empty, exclusively owned build directory.

        Raises:
            WorkspaceError: If the directory cannot be created
        """
        try:
            build_dir = self.cache.new_build_dir(config.agent_id)
        except OSError as e:
            raise WorkspaceError(f"Failed to create build workspace for {config.agent_id}: {e}")
        self.log.add(f"Created workspace {build_dir}")
        return build_dir

    def cleanup_workspace(self, build_dir: Path) -> None:
        """Remove a build directory unless workspaces are retained.

        Raises:
            WorkspaceError: If the path is outside the temp directory or
                cannot be removed
        """
        build_dir = Path(build_dir).resolve()
        if self.settings.retain_build_dir:
            logging.info(f"Build directory preserved for debugging: {build_dir}")
            return
        temp_dir = self.cache.temp_dir.resolve()
        if temp_dir not in build_dir.parents:
            raise WorkspaceError(f"Refusing to remove {build_dir}: not inside {temp_dir}")
        if not build_dir.exists():
            return
        try:
            shutil.rmtree(build_dir)
        except OSError as e:
            raise WorkspaceError(f"Failed to remove build workspace {build_dir}: {e}")
        logging.debug(f"Removed build workspace {build_dir}")

    def build_env(self, config: AgentPluginConfig, platform: TargetPlatform) -> Dict[str, str]:
        """Environment for toolchain commands.

        A copy of the parent environment plus the target selection.
        """
        env = dict(os.environ)
        if config.build_target == BuildTarget.WASM:
            env.update({"GOOS": "js", "GOARCH": "wasm", "CGO_ENABLED": "0"})
        else:
            env.update({"GOOS": platform.goos, "CGO_ENABLED": "1"})
        return env

    def compile(
        self,
        build_dir: Path,
        config: AgentPluginConfig,
        platform: TargetPlatform = TargetPlatform.LINUX,
    ) -> Path:
        """Compile the sources in ``build_dir`` and publish the artifact.

        Args:
            build_dir: Directory populated by SourceGenerator for ``config``
            config: Agent configuration
            platform: Target platform (selects the native extension)

        Returns:
            Path of the published artifact

        Raises:
            ToolchainMissingError: If no Go compiler is available
            BuildCommandError: If the build fails (the native error when a
                WASM build fell back)
            WorkspaceError: If the artifact cannot be published
        """
        build_dir = Path(build_dir)
        compiler = self.toolchain.require_compiler()
        self.log.add(f"Using compiler {compiler}")

        if config.build_target != BuildTarget.WASM:
            return self._build(compiler, build_dir, config, platform)

        try:
            return self._build(compiler, build_dir, config, platform)
        except KeyboardInterrupt:
            raise
        except Exception as e:
            logging.warning(f"WASM build failed for {config.agent_id}, retrying as native plugin: {e}")
            self.log.add(f"WASM build failed ({e}); retrying as native plugin")

        native_config = config.with_target(BuildTarget.NATIVE)
        self.generator.generate(build_dir, native_config, platform)
        return self._build(compiler, build_dir, native_config, platform)

    def _build(
        self,
        compiler: Path,
        build_dir: Path,
        config: AgentPluginConfig,
        platform: TargetPlatform,
    ) -> Path:
        filename = artifact_filename(config, platform)
        output_path = build_dir / filename
        env = self.build_env(config, platform)
        go = str(compiler)

        self.log.add(f"Building {filename} ({config.build_target.value}, {platform.goos})")
        start_time = time.time()

        self.executor.run([go, "mod", "tidy"], cwd=build_dir, env=env)
        if self.settings.vendor_dependencies:
            self.executor.run([go, "mod", "vendor"], cwd=build_dir, env=env)

        if config.build_target == BuildTarget.WASM:
            command = [go, "build", "-o", str(output_path), "."]
        else:
            command = [go, "build", "-buildmode=plugin", "-o", str(output_path), "."]
        self.executor.run(command, cwd=build_dir, env=env)

        if not output_path.is_file():
            raise BuildCommandError(
                f"Compiler reported success but {output_path} was not produced",
                command=command,
                exit_code=0,
            )

        artifact = self._publish(output_path, filename)
        self.log.add(f"Built {filename} in {time.time() - start_time:.2f}s")
        logging.info(f"Published {artifact} ({artifact.stat().st_size} bytes)")
        return artifact

    def _publish(self, built: Path, filename: str) -> Path:
        try:
            return self.cache.publish_artifact(filename, source=built)
        except OSError as e:
            raise WorkspaceError(f"Failed to publish {filename}: {e}")

    def build(
        self, config: AgentPluginConfig, platform: TargetPlatform = TargetPlatform.LINUX
    ) -> Path:
        """Create a workspace, generate sources, compile, and clean up.

        Returns:
            Path of the published artifact
        """
        build_dir = self.create_workspace(config)
        try:
            self.generator.generate(build_dir, config, platform)
            return self.compile(build_dir, config, platform)
        finally:
            try:
                self.cleanup_workspace(build_dir)
            except WorkspaceError as e:
                logging.warning(str(e))
