"""Package management for plugforge.

This module handles locating, downloading and caching the Go toolchain and
manages the output directory that build artifacts are published to.
"""

from .cache import Cache, get_artifact_lock
from .downloader import ChecksumError, DownloadError, ExtractionError, PackageDownloader
from .platform_utils import PlatformDetector, PlatformError, TargetPlatform
from .toolchain import GoToolchain, ToolchainMissingError, ToolchainStatus

__all__ = [
    "Cache",
    "get_artifact_lock",
    "PackageDownloader",
    "DownloadError",
    "ChecksumError",
    "ExtractionError",
    "PlatformDetector",
    "PlatformError",
    "TargetPlatform",
    "GoToolchain",
    "ToolchainMissingError",
    "ToolchainStatus",
]
