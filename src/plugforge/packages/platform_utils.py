"""Platform Detection Utilities.

This module provides utilities for detecting the host platform (for toolchain
downloads) and for describing the target platform of a plugin build.

The target platform is always passed explicitly through the generator,
orchestrator and dispatcher. Nothing here reads or writes GOOS/GOARCH in the
process environment.

Supported Platforms:
    - Linux: amd64, arm64, 386, armv6l
    - macOS: amd64, arm64
    - Windows: amd64, 386, arm64
"""

import platform
from enum import Enum
from typing import Optional, Tuple


class PlatformError(Exception):
    """Raised when platform detection fails or platform is unsupported."""

    pass


class TargetPlatform(Enum):
    """Operating system a native plugin is built for."""

    LINUX = "linux"
    DARWIN = "darwin"
    WINDOWS = "windows"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "TargetPlatform":
        """Convert a user-facing platform name to TargetPlatform.

        Accepts the dashboard spellings (``mac``, ``macos``, ``win``) as well
        as Go's GOOS names.

        Raises:
            PlatformError: If the name is not recognised
        """
        if not value:
            return cls.LINUX
        normalized = value.strip().lower()
        aliases = {
            "mac": cls.DARWIN,
            "macos": cls.DARWIN,
            "osx": cls.DARWIN,
            "win": cls.WINDOWS,
            "win32": cls.WINDOWS,
            "win64": cls.WINDOWS,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise PlatformError(f"Unsupported target platform: {value}")

    @property
    def goos(self) -> str:
        return self.value

    @property
    def shared_library_extension(self) -> str:
        """Extension of a dynamically loaded library on this platform."""
        return {
            TargetPlatform.LINUX: ".so",
            TargetPlatform.DARWIN: ".dylib",
            TargetPlatform.WINDOWS: ".dll",
        }[self]


class PlatformDetector:
    """Detects the current platform and architecture for toolchain selection."""

    @staticmethod
    def detect_host_platform() -> TargetPlatform:
        """Detect the host operating system.

        Returns:
            TargetPlatform matching the machine we run on

        Raises:
            PlatformError: If platform is unsupported
        """
        system = platform.system().lower()
        if system == "linux":
            return TargetPlatform.LINUX
        elif system == "darwin":
            return TargetPlatform.DARWIN
        elif system == "windows":
            return TargetPlatform.WINDOWS
        raise PlatformError(f"Unsupported platform: {system} {platform.machine()}")

    @staticmethod
    def detect_go_archive_platform() -> Tuple[str, str]:
        """Detect the host platform in the format used by Go release archives.

        Returns:
            Tuple of (goos, goarch), e.g. ("linux", "amd64")

        Raises:
            PlatformError: If platform is unsupported
        """
        goos = PlatformDetector.detect_host_platform().goos
        machine = platform.machine().lower()

        if machine in ("x86_64", "amd64"):
            goarch = "amd64"
        elif machine in ("aarch64", "arm64"):
            goarch = "arm64"
        elif machine in ("i386", "i686", "x86"):
            goarch = "386"
        elif machine.startswith("arm"):
            goarch = "armv6l"
        else:
            raise PlatformError(f"Unsupported architecture: {machine}")

        if goos == "darwin" and goarch not in ("amd64", "arm64"):
            raise PlatformError(f"Unsupported architecture for macOS: {machine}")

        return goos, goarch
