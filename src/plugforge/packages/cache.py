"""Output and cache directory management for plugforge.

This module provides the directory structure shared by the build
orchestrator, the toolchain installer and the remote artifact fetcher.

Directory Structure:
    {output_dir}/
    ├── temp/
    │   └── {agent_id}_{timestamp_ms}/   # Ephemeral build workspace
    │       ├── main.go
    │       ├── go.mod
    │       └── ...
    ├── plugins/
    │   └── agent_{agent_id}_{version}.{ext}   # Durable artifacts
    └── cache/
        ├── packages/
        │   └── {url_hash}/{version}/    # Downloaded toolchain archives
        └── toolchains/
            └── {url_hash}/{version}/    # Extracted Go toolchains

The cache root can be moved out of the output directory with the
PLUGFORGE_CACHE_DIR environment variable so several output directories can
share one toolchain download.
"""

import hashlib
import os
import shutil
import threading
import time
import uuid
from pathlib import Path
from typing import Dict, Optional

# Per-artifact locks serializing publication of the same filename
_locks_lock = threading.Lock()
_artifact_locks: Dict[str, threading.Lock] = {}


def get_artifact_lock(filename: str) -> threading.Lock:
    """Get or create the lock guarding publication of one artifact filename.

    Args:
        filename: Artifact filename (agent id + version + extension)

    Returns:
        Threading lock for this artifact
    """
    with _locks_lock:
        if filename not in _artifact_locks:
            _artifact_locks[filename] = threading.Lock()
        return _artifact_locks[filename]


def write_atomic(destination: Path, source: Optional[Path] = None, data: Optional[bytes] = None) -> Path:
    """Write ``destination`` through a uniquely named temp file and a replace.

    Exactly one of ``source`` (a file to copy) or ``data`` (raw bytes) must
    be given. Writers of the same filename are serialized; the last one wins
    and readers never see a partially written file. The temp file is removed
    if the write fails.

    Raises:
        OSError: If the file cannot be written
    """
    if (source is None) == (data is None):
        raise ValueError("write_atomic needs exactly one of source or data")

    destination = Path(destination)
    with get_artifact_lock(destination.name):
        destination.parent.mkdir(parents=True, exist_ok=True)
        temp_file = destination.parent / f".{destination.name}.{uuid.uuid4().hex}.tmp"
        try:
            if source is not None:
                shutil.copy2(source, temp_file)
            else:
                temp_file.write_bytes(data or b"")
            temp_file.replace(destination)
        except OSError:
            if temp_file.exists():
                temp_file.unlink()
            raise
    return destination


class Cache:
    """Manages the plugforge output and cache directory structure."""

    def __init__(self, output_dir: Optional[Path] = None):
        """Initialize cache manager.

        Args:
            output_dir: Output directory. If None, uses ./output.
        """
        if output_dir is None:
            output_dir = Path.cwd() / "output"

        self.output_dir = Path(output_dir).resolve()

        cache_env = os.environ.get("PLUGFORGE_CACHE_DIR")
        if cache_env:
            self.cache_root = Path(cache_env).resolve()
        else:
            self.cache_root = self.output_dir / "cache"

    @staticmethod
    def hash_url(url: str) -> str:
        """Generate a SHA256 hash of a URL for cache directory naming.

        Args:
            url: The base URL to hash

        Returns:
            First 16 characters of SHA256 hash (sufficient for uniqueness)
        """
        return hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]

    @property
    def temp_dir(self) -> Path:
        """Directory holding ephemeral build workspaces."""
        return self.output_dir / "temp"

    @property
    def plugins_dir(self) -> Path:
        """Directory holding published plugin artifacts."""
        return self.output_dir / "plugins"

    @property
    def packages_dir(self) -> Path:
        """Directory for downloaded toolchain archives."""
        return self.cache_root / "packages"

    @property
    def toolchains_dir(self) -> Path:
        """Directory for extracted toolchains."""
        return self.cache_root / "toolchains"

    def ensure_directories(self) -> None:
        """Create all output and cache directories if they don't exist."""
        for directory in [
            self.temp_dir,
            self.plugins_dir,
            self.packages_dir,
            self.toolchains_dir,
        ]:
            directory.mkdir(parents=True, exist_ok=True)

    def get_artifact_path(self, filename: str) -> Path:
        """Get the durable location of a published artifact."""
        return self.plugins_dir / filename

    def publish_artifact(self, filename: str, source: Optional[Path] = None, data: Optional[bytes] = None) -> Path:
        """Install an artifact into plugins/ by atomic replace.

        Exactly one of ``source`` (a file to copy) or ``data`` (raw bytes)
        must be given.

        Returns:
            Path of the published artifact

        Raises:
            OSError: If the artifact cannot be written
        """
        if (source is None) == (data is None):
            raise ValueError("publish_artifact needs exactly one of source or data")
        return write_atomic(self.get_artifact_path(filename), source=source, data=data)

    def new_build_dir(self, agent_id: str) -> Path:
        """Create a fresh, empty workspace for one compile attempt.

        The directory is named after the agent id and the current time in
        milliseconds. If another compile of the same agent grabbed the same
        millisecond, a counter suffix is appended.

        Args:
            agent_id: Agent identifier

        Returns:
            Path to the newly created directory

        Raises:
            OSError: If the directory cannot be created
        """
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        base_name = f"{agent_id}_{int(time.time() * 1000)}"
        candidate = self.temp_dir / base_name
        counter = 1
        while True:
            try:
                candidate.mkdir(parents=False, exist_ok=False)
                return candidate
            except FileExistsError:
                candidate = self.temp_dir / f"{base_name}_{counter}"
                counter += 1

    def get_package_path(self, base_url: str, version: str, filename: str) -> Path:
        """Get path where a downloaded archive should be stored.

        Args:
            base_url: Base URL the archive was downloaded from
            version: Version string
            filename: Archive filename

        Returns:
            Path to the archive file
        """
        return self.packages_dir / self.hash_url(base_url) / version / filename

    def get_toolchain_path(self, base_url: str, version: str) -> Path:
        """Get path where a toolchain should be extracted."""
        return self.toolchains_dir / self.hash_url(base_url) / version

    def is_toolchain_cached(self, base_url: str, version: str) -> bool:
        """Check if a toolchain is already extracted in the cache."""
        toolchain_path = self.get_toolchain_path(base_url, version)
        return toolchain_path.exists() and toolchain_path.is_dir()
