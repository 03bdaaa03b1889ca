"""
Unit tests for BuildOrchestrator.

Toolchain commands are replaced by a mock executor; the tests cover
workspace handling, target environments, artifact publication and the
WASM-to-native retry.
"""

from pathlib import Path
from unittest.mock import Mock

import pytest

from plugforge.build.build_executor import BuildCommandError, CommandResult
from plugforge.build.orchestrator import BuildOrchestrator, WorkspaceError, artifact_filename
from plugforge.config.agent_config import AgentPluginConfig, BuildTarget
from plugforge.config.settings import Settings
from plugforge.generate.source_generator import SourceGenerator
from plugforge.packages.cache import Cache
from plugforge.packages.platform_utils import TargetPlatform
from plugforge.packages.toolchain import GoToolchain, ToolchainMissingError


# Test fixtures

@pytest.fixture
def config():
    return AgentPluginConfig(agent_id="abc", agent_name="Helper", version="2.0.0")


@pytest.fixture
def settings(tmp_path):
    return Settings(output_dir=tmp_path / "output")


@pytest.fixture
def mock_toolchain():
    toolchain = Mock(spec=GoToolchain)
    toolchain.require_compiler = Mock(return_value=Path("/usr/local/go/bin/go"))
    return toolchain


@pytest.fixture
def mock_generator():
    return Mock(spec=SourceGenerator)


def fake_go(fail_targets=()):
    """Executor side effect that writes the -o output unless the target should fail."""

    def run(command, cwd, env, timeout=None):
        if "build" in command:
            output = Path(command[command.index("-o") + 1])
            target = "wasm" if output.suffix == ".wasm" else "native"
            if target in fail_targets:
                raise BuildCommandError(
                    f"{target} build failed", command=command, exit_code=1, captured_output=[target]
                )
            output.write_bytes(b"\0asm" if target == "wasm" else b"\x7fELF")
        return CommandResult(command=list(command), exit_code=0)

    return run


@pytest.fixture
def make_orchestrator(settings, mock_toolchain, mock_generator):
    def _make(fail_targets=(), **overrides):
        executor = Mock()
        executor.run = Mock(side_effect=fake_go(fail_targets))
        orchestrator = BuildOrchestrator(
            settings=overrides.get("settings", settings),
            generator=mock_generator,
            toolchain=mock_toolchain,
            executor=executor,
            cache=Cache(overrides.get("settings", settings).output_dir),
        )
        return orchestrator

    return _make


def build_commands(executor):
    return [c.args[0] for c in executor.run.call_args_list if "build" in c.args[0]]


class TestArtifactFilename:
    def test_wasm(self, config):
        assert artifact_filename(config, TargetPlatform.LINUX) == "agent_abc_2.0.0.wasm"

    def test_native_per_platform(self, config):
        native = config.with_target(BuildTarget.NATIVE)
        assert artifact_filename(native, TargetPlatform.LINUX) == "agent_abc_2.0.0.so"
        assert artifact_filename(native, TargetPlatform.DARWIN) == "agent_abc_2.0.0.dylib"
        assert artifact_filename(native, TargetPlatform.WINDOWS) == "agent_abc_2.0.0.dll"


class TestWorkspace:
    """Tests for workspace creation and cleanup."""

    def test_create_workspace_is_unique(self, make_orchestrator, config):
        orchestrator = make_orchestrator()
        first = orchestrator.create_workspace(config)
        second = orchestrator.create_workspace(config)

        assert first != second
        assert first.is_dir() and second.is_dir()
        assert first.parent == orchestrator.cache.temp_dir.resolve()
        assert first.name.startswith("abc_")

    def test_cleanup_removes_workspace(self, make_orchestrator, config):
        orchestrator = make_orchestrator()
        build_dir = orchestrator.create_workspace(config)
        (build_dir / "main.go").write_text("package main\n")

        orchestrator.cleanup_workspace(build_dir)

        assert not build_dir.exists()

    def test_cleanup_retains_when_configured(self, make_orchestrator, config, tmp_path):
        orchestrator = make_orchestrator(settings=Settings(output_dir=tmp_path / "out", retain_build_dir=True))
        build_dir = orchestrator.create_workspace(config)

        orchestrator.cleanup_workspace(build_dir)

        assert build_dir.exists()

    def test_cleanup_refuses_foreign_path(self, make_orchestrator, tmp_path):
        orchestrator = make_orchestrator()
        foreign = tmp_path / "precious"
        foreign.mkdir()

        with pytest.raises(WorkspaceError):
            orchestrator.cleanup_workspace(foreign)
        assert foreign.exists()


class TestBuildEnv:
    def test_wasm_env(self, make_orchestrator, config):
        env = make_orchestrator().build_env(config, TargetPlatform.LINUX)
        assert env["GOOS"] == "js"
        assert env["GOARCH"] == "wasm"
        assert env["CGO_ENABLED"] == "0"

    def test_native_env(self, make_orchestrator, config):
        env = make_orchestrator().build_env(config.with_target(BuildTarget.NATIVE), TargetPlatform.DARWIN)
        assert env["GOOS"] == "darwin"
        assert env["CGO_ENABLED"] == "1"
        assert "PATH" in env


class TestCompile:
    """Tests for BuildOrchestrator.compile."""

    def test_wasm_build_publishes_artifact(self, make_orchestrator, config):
        orchestrator = make_orchestrator()
        build_dir = orchestrator.create_workspace(config)

        artifact = orchestrator.compile(build_dir, config, TargetPlatform.LINUX)

        assert artifact == orchestrator.cache.plugins_dir / "agent_abc_2.0.0.wasm"
        assert artifact.read_bytes() == b"\0asm"
        commands = [c.args[0] for c in orchestrator.executor.run.call_args_list]
        assert commands[0][1:] == ["mod", "tidy"]
        assert commands[1][1:4] == ["build", "-o", str(build_dir / "agent_abc_2.0.0.wasm")]
        assert all(c.kwargs["cwd"] == build_dir for c in orchestrator.executor.run.call_args_list)

    def test_native_build_uses_plugin_mode(self, make_orchestrator, config):
        orchestrator = make_orchestrator()
        build_dir = orchestrator.create_workspace(config)

        artifact = orchestrator.compile(build_dir, config.with_target(BuildTarget.NATIVE), TargetPlatform.LINUX)

        assert artifact.name == "agent_abc_2.0.0.so"
        assert "-buildmode=plugin" in build_commands(orchestrator.executor)[0]

    def test_vendor_dependencies(self, make_orchestrator, config, tmp_path):
        orchestrator = make_orchestrator(settings=Settings(output_dir=tmp_path / "out", vendor_dependencies=True))
        build_dir = orchestrator.create_workspace(config)

        orchestrator.compile(build_dir, config, TargetPlatform.LINUX)

        commands = [c.args[0][1:3] for c in orchestrator.executor.run.call_args_list]
        assert commands[:2] == [["mod", "tidy"], ["mod", "vendor"]]

    def test_missing_toolchain_fails_fast(self, make_orchestrator, mock_toolchain, config):
        mock_toolchain.require_compiler.side_effect = ToolchainMissingError("Go compiler not found")
        orchestrator = make_orchestrator()
        build_dir = orchestrator.create_workspace(config)

        with pytest.raises(ToolchainMissingError):
            orchestrator.compile(build_dir, config, TargetPlatform.LINUX)
        orchestrator.executor.run.assert_not_called()

    def test_wasm_failure_falls_back_to_native_once(self, make_orchestrator, mock_generator, config):
        orchestrator = make_orchestrator(fail_targets=("wasm",))
        build_dir = orchestrator.create_workspace(config)

        artifact = orchestrator.compile(build_dir, config, TargetPlatform.LINUX)

        assert artifact.name == "agent_abc_2.0.0.so"
        assert len(build_commands(orchestrator.executor)) == 2
        mock_generator.generate.assert_called_once()
        regenerated = mock_generator.generate.call_args.args[1]
        assert regenerated.build_target == BuildTarget.NATIVE
        assert any("retrying as native plugin" in line for line in orchestrator.get_logs())

    def test_native_error_surfaces_after_fallback(self, make_orchestrator, config):
        orchestrator = make_orchestrator(fail_targets=("wasm", "native"))
        build_dir = orchestrator.create_workspace(config)

        with pytest.raises(BuildCommandError) as exc_info:
            orchestrator.compile(build_dir, config, TargetPlatform.LINUX)

        assert str(exc_info.value) == "native build failed"
        assert exc_info.value.captured_output == ["native"]
        assert len(build_commands(orchestrator.executor)) == 2

    def test_native_failure_does_not_retry(self, make_orchestrator, mock_generator, config):
        orchestrator = make_orchestrator(fail_targets=("native",))
        build_dir = orchestrator.create_workspace(config)

        with pytest.raises(BuildCommandError):
            orchestrator.compile(build_dir, config.with_target(BuildTarget.NATIVE), TargetPlatform.LINUX)

        assert len(build_commands(orchestrator.executor)) == 1
        mock_generator.generate.assert_not_called()

    def test_missing_output_is_an_error(self, make_orchestrator, config):
        orchestrator = make_orchestrator()
        orchestrator.executor.run = Mock(return_value=CommandResult(command=[], exit_code=0))
        build_dir = orchestrator.create_workspace(config)

        with pytest.raises(BuildCommandError, match="was not produced"):
            orchestrator.compile(build_dir, config.with_target(BuildTarget.NATIVE), TargetPlatform.LINUX)


class TestBuild:
    def test_build_generates_compiles_and_cleans_up(self, make_orchestrator, mock_generator, config):
        orchestrator = make_orchestrator()

        artifact = orchestrator.build(config, TargetPlatform.LINUX)

        assert artifact.exists()
        mock_generator.generate.assert_called_once()
        build_dir = mock_generator.generate.call_args.args[0]
        assert not build_dir.exists()

    def test_build_cleans_up_on_failure(self, make_orchestrator, mock_generator, config):
        orchestrator = make_orchestrator(fail_targets=("wasm", "native"))

        with pytest.raises(BuildCommandError):
            orchestrator.build(config, TargetPlatform.LINUX)

        build_dir = mock_generator.generate.call_args_list[0].args[0]
        assert not build_dir.exists()


class TestForAttempt:
    """Tests for per-attempt log isolation."""

    def test_attempt_has_own_log(self, make_orchestrator, config):
        orchestrator = make_orchestrator()
        attempt = orchestrator.for_attempt()

        attempt.create_workspace(config)

        assert attempt.log is not orchestrator.log
        assert attempt.cache is orchestrator.cache
        assert any("Created workspace" in line for line in attempt.get_logs())
        assert orchestrator.get_logs() == []

    def test_real_executor_is_rebound(self, settings, mock_toolchain, mock_generator):
        orchestrator = BuildOrchestrator(
            settings=settings, generator=mock_generator, toolchain=mock_toolchain, verbose=True
        )

        attempt = orchestrator.for_attempt()

        assert attempt.executor is not orchestrator.executor
        assert attempt.executor.log is attempt.log
        assert attempt.executor.timeout == orchestrator.executor.timeout
        assert attempt.executor.verbose
        assert orchestrator.executor.log is orchestrator.log
