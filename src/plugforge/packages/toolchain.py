"""Toolchain management for the Go compiler.

This module locates the Go toolchain used to compile generated plugin
sources, reports which parts of the build toolchain are available, and can
download a pinned Go release into the plugforge cache as a best-effort
remediation step.

A native plugin build (``-buildmode=plugin``) needs cgo, so a C linker must
be present as well. The companion service script needs a Python interpreter.
"""

import platform
import shutil
import subprocess
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .cache import Cache
from .downloader import DownloadError, ExtractionError, PackageDownloader
from .platform_utils import PlatformDetector, PlatformError


class ToolchainMissingError(Exception):
    """Raised when the compiler toolchain cannot be found."""

    pass


@dataclass
class ToolchainStatus:
    """Availability of the tools a local build needs."""

    compiler_present: bool
    interpreter_present: bool
    linker_present: bool
    compiler_path: Optional[str] = None
    compiler_version: Optional[str] = None

    @property
    def ready(self) -> bool:
        """True when every tool needed for a native plugin build is present."""
        return self.compiler_present and self.interpreter_present and self.linker_present

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


class GoToolchain:
    """Manages the Go toolchain."""

    # Go release installed by install_toolchain()
    VERSION = "1.21.5"

    # Base URL for toolchain downloads
    BASE_URL = "https://go.dev/dl"

    # Fixed search path, consulted after the plugforge cache and before PATH
    SEARCH_PATHS = [
        Path("/usr/local/go/bin"),
        Path("/usr/lib/go/bin"),
        Path.home() / "go" / "bin",
        Path.home() / "sdk" / "go" / "bin",
    ]

    INTERPRETERS = ["python3", "python"]
    LINKERS = ["gcc", "cc", "clang"]

    def __init__(
        self,
        cache: Cache,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        """Initialize toolchain manager.

        Args:
            cache: Cache instance for storing an installed toolchain
            which: Executable lookup on PATH (injectable for tests)
        """
        self.cache = cache
        self.which = which
        self._compiler_path: Optional[Path] = None

    @staticmethod
    def _executable_name(name: str) -> str:
        if platform.system().lower() == "windows":
            return f"{name}.exe"
        return name

    def _cached_bin_dir(self) -> Path:
        return self.cache.get_toolchain_path(self.BASE_URL, self.VERSION) / "go" / "bin"

    def search_dirs(self) -> List[Path]:
        """Directories searched for the compiler, in priority order."""
        return [self._cached_bin_dir()] + list(self.SEARCH_PATHS)

    def find_compiler(self) -> Optional[Path]:
        """Locate the ``go`` executable.

        Returns:
            Path to the compiler, or None if it is not installed
        """
        if self._compiler_path and self._compiler_path.exists():
            return self._compiler_path

        exe = self._executable_name("go")
        for directory in self.search_dirs():
            candidate = directory / exe
            if candidate.is_file():
                self._compiler_path = candidate
                return candidate

        found = self.which("go")
        if found:
            self._compiler_path = Path(found)
            return self._compiler_path

        return None

    def require_compiler(self) -> Path:
        """Locate the compiler or fail.

        Raises:
            ToolchainMissingError: If no Go compiler can be found
        """
        compiler = self.find_compiler()
        if compiler is None:
            searched = ", ".join(str(d) for d in self.search_dirs())
            raise ToolchainMissingError(
                f"Go compiler not found (searched {searched} and PATH). "
                + "Run 'plugforge toolchain install' or install Go manually."
            )
        return compiler

    def _find_any(self, names: List[str]) -> Optional[str]:
        for name in names:
            found = self.which(name)
            if found:
                return found
        return None

    def get_compiler_version(self, compiler: Path) -> Optional[str]:
        """Return the output of ``go version``, or None if it cannot be run."""
        try:
            result = subprocess.run(
                [str(compiler), "version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired):
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def check_toolchain(self) -> ToolchainStatus:
        """Report which build tools are available.

        Returns:
            ToolchainStatus with compiler/interpreter/linker presence flags
        """
        compiler = self.find_compiler()
        return ToolchainStatus(
            compiler_present=compiler is not None,
            interpreter_present=self._find_any(self.INTERPRETERS) is not None,
            linker_present=self._find_any(self.LINKERS) is not None,
            compiler_path=str(compiler) if compiler else None,
            compiler_version=self.get_compiler_version(compiler) if compiler else None,
        )

    def get_package_info(self) -> Tuple[str, Optional[str]]:
        """Get archive filename and checksum for the host platform.

        Returns:
            Tuple of (package_filename, checksum). No checksum is pinned.

        Raises:
            ToolchainMissingError: If no archive exists for this host
        """
        try:
            goos, goarch = PlatformDetector.detect_go_archive_platform()
        except PlatformError as e:
            raise ToolchainMissingError(str(e))

        extension = "zip" if goos == "windows" else "tar.gz"
        return f"go{self.VERSION}.{goos}-{goarch}.{extension}", None

    def install_toolchain(
        self,
        downloader: Optional[PackageDownloader] = None,
        force_download: bool = False,
        show_progress: bool = True,
    ) -> ToolchainStatus:
        """Download and extract the pinned Go release into the cache.

        This is never called automatically by a compile. Python and a C
        linker cannot be installed this way; their status is only reported.

        Args:
            downloader: Downloader to use (a default one is created if None)
            force_download: Re-download even if the toolchain is cached
            show_progress: Whether to show download progress

        Returns:
            ToolchainStatus after installation

        Raises:
            ToolchainMissingError: If download or extraction fails
        """
        package_name, checksum = self.get_package_info()
        toolchain_path = self.cache.get_toolchain_path(self.BASE_URL, self.VERSION)
        package_path = self.cache.get_package_path(self.BASE_URL, self.VERSION, package_name)

        if not force_download and (self._cached_bin_dir() / self._executable_name("go")).exists():
            print(f"Go {self.VERSION} already installed at {toolchain_path}")
            return self.check_toolchain()

        self.cache.ensure_directories()
        downloader = downloader or PackageDownloader()

        print(f"Downloading Go toolchain ({self.VERSION})...")
        try:
            if force_download or not package_path.exists():
                downloader.download(
                    f"{self.BASE_URL}/{package_name}",
                    package_path,
                    checksum,
                    show_progress=show_progress,
                )
            else:
                print(f"Using cached {package_name}")

            downloader.extract_archive(package_path, toolchain_path, show_progress)
        except (DownloadError, ExtractionError) as e:
            raise ToolchainMissingError(f"Failed to install Go toolchain: {e}")

        self._compiler_path = None
        status = self.check_toolchain()
        if not status.interpreter_present:
            print("Python interpreter not found; install python3 manually.")
        if not status.linker_present:
            print("C linker not found; native plugin builds need gcc or clang.")
        return status
