"""
Command-line interface for plugforge.

This module provides the `plugforge` CLI tool for compiling agent plugins.
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass, replace
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from plugforge import __version__
from plugforge.cli_utils import ConfigLoader, ErrorFormatter, PathValidator
from plugforge.config.agent_config import AgentPluginConfig, BuildTarget, ConfigValidationError
from plugforge.config.settings import Settings, SettingsError
from plugforge.config.ui_config import convert_ui_config
from plugforge.generate.source_generator import SourceGenerator
from plugforge.packages.cache import Cache
from plugforge.packages.downloader import PackageDownloader
from plugforge.packages.platform_utils import PlatformError, TargetPlatform
from plugforge.packages.toolchain import GoToolchain, ToolchainMissingError
from plugforge.pipeline.pipeline import CompilationPipeline, default_platform
from plugforge.remote.dispatcher import RemoteBuildDispatcher


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    config_path: Path
    target: Optional[str] = None
    platform: Optional[str] = None
    output_dir: Optional[Path] = None
    template_dir: Optional[Path] = None
    retain: bool = False
    no_remote: bool = False
    remote_timeout: Optional[float] = None
    json_output: bool = False
    verbose: bool = False


@dataclass
class GenerateArgs:
    """Arguments for the generate command."""

    config_path: Path
    out_dir: Path
    target: Optional[str] = None
    platform: Optional[str] = None
    template_dir: Optional[Path] = None
    verbose: bool = False


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure the root logger.

    Console output goes to stderr (DEBUG when verbose, WARNING otherwise).
    With ``log_file`` every INFO record is also written to a rotating file.
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=3,
        )
        file_handler.setLevel(logging.INFO)
        file_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)


def load_plugin_config(path: Path, target: Optional[str] = None) -> AgentPluginConfig:
    """Load an agent configuration file, optionally overriding its target."""
    config = AgentPluginConfig.from_dict(ConfigLoader.load_json(path))
    if target:
        config = config.with_target(BuildTarget.from_string(target))
    return config


def resolve_platform(name: Optional[str]) -> TargetPlatform:
    if name:
        return TargetPlatform.from_string(name)
    return default_platform()


def build_command(args: BuildArgs) -> None:
    """Compile an agent plugin.

    Examples:
        plugforge build agent.json                   # Local build, remote fallback
        plugforge build agent.json --target native   # Native plugin
        plugforge build agent.json --no-remote       # Never leave this machine
        plugforge build agent.json --json            # Print the result as JSON
    """
    if not args.json_output:
        print(f"plugforge v{__version__}")
        print()

    try:
        config = load_plugin_config(args.config_path, args.target)
        platform = resolve_platform(args.platform)

        settings = Settings.from_env()
        if args.output_dir is not None:
            settings = replace(settings, output_dir=args.output_dir)
        if args.template_dir is not None:
            settings = replace(settings, template_dir=args.template_dir)
        if args.retain:
            settings = replace(settings, retain_build_dir=True)
        if args.remote_timeout is not None:
            settings = replace(settings, remote_timeout=args.remote_timeout)

        if args.verbose:
            print(f"Agent: {config.agent_name} ({config.agent_id} {config.version})")
            print(f"Target: {config.build_target.value} / {platform.value}")
            print(f"Output: {settings.output_dir}")
            print()

        pipeline = CompilationPipeline(settings, enable_remote=not args.no_remote, verbose=args.verbose)
        result = pipeline.run(config, platform)

        if args.json_output:
            print(json.dumps(result.to_dict(), indent=2))
            sys.exit(0 if result.success else 1)

        if result.success:
            ErrorFormatter.print_success(f"Build successful ({result.method})!")
            print()
            print(f"Artifact: {result.artifact_path}")
            if result.artifact_url:
                print(f"Download: {result.artifact_url}")
            print(f"Build time: {result.build_time:.2f}s")
            sys.exit(0)
        else:
            ErrorFormatter.print_error("Build failed!", result.message)
            if args.verbose and result.logs:
                print("\n".join(result.logs))
            sys.exit(1)

    except ConfigValidationError as e:
        ErrorFormatter.handle_config_error(e)
    except (PlatformError, SettingsError) as e:
        ErrorFormatter.print_error("Invalid arguments", str(e))
        sys.exit(2)
    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def generate_command(args: GenerateArgs) -> None:
    """Write the generated sources of a configuration without compiling.

    Examples:
        plugforge generate agent.json ./src                 # WASM sources
        plugforge generate agent.json ./src -t native -p darwin
    """
    try:
        config = load_plugin_config(args.config_path, args.target)
        config.validate()
        platform = resolve_platform(args.platform)

        args.out_dir.mkdir(parents=True, exist_ok=True)
        written = SourceGenerator(args.template_dir).generate(args.out_dir, config, platform)
        for path in written:
            print(f"  {path}")
        ErrorFormatter.print_success(f"Generated {len(written)} files in {args.out_dir}")
        sys.exit(0)

    except ConfigValidationError as e:
        ErrorFormatter.handle_config_error(e)
    except PlatformError as e:
        ErrorFormatter.print_error("Invalid arguments", str(e))
        sys.exit(2)
    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def toolchain_command(action: str, output_dir: Optional[Path] = None, force: bool = False) -> None:
    """Inspect or install the Go toolchain.

    Examples:
        plugforge toolchain check     # Report go/python/linker availability
        plugforge toolchain install   # Download the pinned Go release
    """
    try:
        settings = Settings.from_env()
        toolchain = GoToolchain(Cache(output_dir or settings.output_dir))

        if action == "install":
            status = toolchain.install_toolchain(PackageDownloader(), force_download=force)
        else:
            status = toolchain.check_toolchain()

        marks = {True: "✅", False: "❌"}
        print(f"{marks[status.compiler_present]} go      {status.compiler_path or 'not found'}")
        if status.compiler_version:
            print(f"   {status.compiler_version}")
        print(f"{marks[status.interpreter_present]} python")
        print(f"{marks[status.linker_present]} C linker")
        sys.exit(0 if status.ready else 1)

    except ToolchainMissingError as e:
        ErrorFormatter.print_error("Toolchain installation failed", str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, verbose=False)


def remote_command(action: str, job_id: str, dest: Optional[Path] = None) -> None:
    """Query or download a remote build.

    Examples:
        plugforge remote status compile-1700000000000-abc123xyz
        plugforge remote download compile-1700000000000-abc123xyz ./agent.wasm
    """
    try:
        dispatcher = RemoteBuildDispatcher.from_settings(Settings.from_env())
        job = dispatcher.poll_status(job_id)

        if action == "status":
            print(json.dumps(job.to_dict(), indent=2))
            sys.exit(0)

        if dest is None:
            ErrorFormatter.print_error("Missing destination", "remote download needs a DEST path")
            sys.exit(2)
        archive = dispatcher.fetch_artifact(job_id)
        path = dispatcher.extract_artifact(archive, dest.parent, dest.name)
        ErrorFormatter.print_success(f"Downloaded {path}")
        sys.exit(0)

    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.print_error(f"Remote {action} failed", str(e))
        sys.exit(1)


def convert_command(ui_path: Path, out_path: Path, target: Optional[str] = None) -> None:
    """Convert a dashboard agent definition into a plugin configuration.

    Examples:
        plugforge convert ui.json agent.json
    """
    try:
        config = convert_ui_config(ConfigLoader.load_json(ui_path), build_target=target)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(config.to_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8")
        ErrorFormatter.print_success(f"Wrote {out_path} ({config.agent_id})")
        sys.exit(0)

    except ConfigValidationError as e:
        ErrorFormatter.handle_config_error(e)
    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, verbose=False)


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-t",
        "--target",
        choices=["wasm", "native"],
        default=None,
        help="Build target (default: from the configuration)",
    )
    parser.add_argument(
        "-p",
        "--platform",
        default=None,
        help="Target platform for native builds: linux, darwin, windows (default: host)",
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plugforge",
        description="plugforge - Compile agent configurations into loadable plugins",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"plugforge {__version__}",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file (rotated at 10MB)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Build command
    build_parser = subparsers.add_parser("build", help="Compile an agent plugin")
    build_parser.add_argument("config_path", type=Path, help="Agent configuration JSON file")
    _add_target_arguments(build_parser)
    build_parser.add_argument("-o", "--output-dir", type=Path, default=None, help="Output directory")
    build_parser.add_argument("--template-dir", type=Path, default=None, help="Template directory")
    build_parser.add_argument("--retain", action="store_true", help="Keep the build directory")
    build_parser.add_argument("--no-remote", action="store_true", help="Disable the remote fallback")
    build_parser.add_argument(
        "--remote-timeout",
        type=float,
        default=None,
        help="Seconds to wait for a remote build (default: 300)",
    )
    build_parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    build_parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose build output")

    # Generate command
    generate_parser = subparsers.add_parser("generate", help="Write generated sources without compiling")
    generate_parser.add_argument("config_path", type=Path, help="Agent configuration JSON file")
    generate_parser.add_argument("out_dir", type=Path, help="Directory receiving the sources")
    _add_target_arguments(generate_parser)
    generate_parser.add_argument("--template-dir", type=Path, default=None, help="Template directory")
    generate_parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")

    # Toolchain command
    toolchain_parser = subparsers.add_parser("toolchain", help="Inspect or install the Go toolchain")
    toolchain_parser.add_argument("action", choices=["check", "install"], help="Toolchain action")
    toolchain_parser.add_argument("-o", "--output-dir", type=Path, default=None, help="Output directory")
    toolchain_parser.add_argument("--force", action="store_true", help="Re-download even if cached")

    # Remote command
    remote_parser = subparsers.add_parser("remote", help="Query or download remote builds")
    remote_parser.add_argument("action", choices=["status", "download"], help="Remote action")
    remote_parser.add_argument("job_id", help="Remote job id (compile-...)")
    remote_parser.add_argument("dest", nargs="?", type=Path, default=None, help="Download destination file")

    # Convert command
    convert_parser = subparsers.add_parser("convert", help="Convert a dashboard agent definition")
    convert_parser.add_argument("ui_path", type=Path, help="Dashboard agent definition JSON file")
    convert_parser.add_argument("out_path", type=Path, help="Plugin configuration to write")
    convert_parser.add_argument("-t", "--target", choices=["wasm", "native"], default=None, help="Build target")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """plugforge - Agent plugin compiler."""
    parser = create_parser()
    parsed_args = parser.parse_args(argv)

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging(getattr(parsed_args, "verbose", False), parsed_args.log_file)

    if hasattr(parsed_args, "config_path"):
        PathValidator.validate_input_file(parsed_args.config_path)

    if parsed_args.command == "build":
        build_args = BuildArgs(
            config_path=parsed_args.config_path,
            target=parsed_args.target,
            platform=parsed_args.platform,
            output_dir=parsed_args.output_dir,
            template_dir=parsed_args.template_dir,
            retain=parsed_args.retain,
            no_remote=parsed_args.no_remote,
            remote_timeout=parsed_args.remote_timeout,
            json_output=parsed_args.json,
            verbose=parsed_args.verbose,
        )
        build_command(build_args)
    elif parsed_args.command == "generate":
        PathValidator.validate_output_dir(parsed_args.out_dir)
        generate_args = GenerateArgs(
            config_path=parsed_args.config_path,
            out_dir=parsed_args.out_dir,
            target=parsed_args.target,
            platform=parsed_args.platform,
            template_dir=parsed_args.template_dir,
            verbose=parsed_args.verbose,
        )
        generate_command(generate_args)
    elif parsed_args.command == "toolchain":
        toolchain_command(parsed_args.action, parsed_args.output_dir, parsed_args.force)
    elif parsed_args.command == "remote":
        remote_command(parsed_args.action, parsed_args.job_id, parsed_args.dest)
    elif parsed_args.command == "convert":
        PathValidator.validate_input_file(parsed_args.ui_path)
        convert_command(parsed_args.ui_path, parsed_args.out_path, parsed_args.target)


if __name__ == "__main__":
    main()
