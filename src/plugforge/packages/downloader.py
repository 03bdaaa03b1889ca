"""Package downloader with progress tracking and checksum verification.

This module handles downloading toolchain archives and build artifacts from
URLs, extracting archives, and verifying integrity with checksums.
"""

import hashlib
import io
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlparse

import requests
from tqdm import tqdm


class DownloadError(Exception):
    """Raised when download fails."""

    pass


class ChecksumError(Exception):
    """Raised when checksum verification fails."""

    pass


class ExtractionError(Exception):
    """Raised when archive extraction fails."""

    pass


class PackageDownloader:
    """Downloads and extracts packages with progress tracking."""

    def __init__(
        self,
        chunk_size: int = 8192,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        """Initialize downloader.

        Args:
            chunk_size: Size of chunks for downloading and hashing
            session: Optional requests session (carries auth headers)
            timeout: Connect/read timeout in seconds
        """
        self.chunk_size = chunk_size
        self.session = session or requests.Session()
        self.timeout = timeout

    def _open(self, url: str, headers: Optional[Dict[str, str]]) -> requests.Response:
        response = self.session.get(
            url, stream=True, timeout=self.timeout, headers=headers, allow_redirects=True
        )
        response.raise_for_status()
        return response

    def _progress_bar(self, url: str, total_size: int, show_progress: bool) -> Optional[tqdm]:
        if not show_progress or total_size <= 0:
            return None
        filename = Path(urlparse(url).path).name
        return tqdm(
            total=total_size,
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            desc=f"Downloading {filename}",
        )

    def download(
        self,
        url: str,
        dest_path: Path,
        checksum: Optional[str] = None,
        show_progress: bool = True,
        headers: Optional[Dict[str, str]] = None,
    ) -> Path:
        """Download a file from a URL.

        Args:
            url: URL to download from
            dest_path: Destination file path
            checksum: Optional SHA256 checksum for verification
            show_progress: Whether to show progress bar
            headers: Extra request headers

        Returns:
            Path to the downloaded file

        Raises:
            DownloadError: If download fails
            ChecksumError: If checksum verification fails
        """
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        # Use temporary file during download
        temp_file = dest_path.with_suffix(dest_path.suffix + ".tmp")

        try:
            response = self._open(url, headers)
            total_size = int(response.headers.get("content-length", 0))
            progress_bar = self._progress_bar(url, total_size, show_progress)

            sha256 = hashlib.sha256() if checksum else None

            with open(temp_file, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        f.write(chunk)
                        if progress_bar:
                            progress_bar.update(len(chunk))
                        if sha256:
                            sha256.update(chunk)

            if progress_bar:
                progress_bar.close()

            if checksum and sha256:
                actual_checksum = sha256.hexdigest()
                if actual_checksum.lower() != checksum.lower():
                    temp_file.unlink()
                    raise ChecksumError(
                        f"Checksum mismatch for {url}\n"
                        + f"Expected: {checksum}\n"
                        + f"Got: {actual_checksum}"
                    )

            temp_file.replace(dest_path)
            return dest_path

        except requests.RequestException as e:
            if temp_file.exists():
                temp_file.unlink()
            raise DownloadError(f"Failed to download {url}: {e}")

        except Exception:
            if temp_file.exists():
                temp_file.unlink()
            raise

    def fetch(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        show_progress: bool = False,
    ) -> bytes:
        """Download a URL into memory.

        Args:
            url: URL to download from
            headers: Extra request headers (e.g. Authorization)
            show_progress: Whether to show progress bar

        Returns:
            Response body

        Raises:
            DownloadError: If download fails
        """
        try:
            response = self._open(url, headers)
            total_size = int(response.headers.get("content-length", 0))
            progress_bar = self._progress_bar(url, total_size, show_progress)

            buffer = io.BytesIO()
            for chunk in response.iter_content(chunk_size=self.chunk_size):
                if chunk:
                    buffer.write(chunk)
                    if progress_bar:
                        progress_bar.update(len(chunk))

            if progress_bar:
                progress_bar.close()

            return buffer.getvalue()

        except requests.RequestException as e:
            raise DownloadError(f"Failed to download {url}: {e}")

    def extract_archive(
        self, archive_path: Path, dest_dir: Path, show_progress: bool = True
    ) -> Path:
        """Extract an archive file.

        Supports .tar.gz, .tar.bz2, .tar.xz, and .zip formats.

        Args:
            archive_path: Path to the archive file
            dest_dir: Destination directory for extraction
            show_progress: Whether to show progress information

        Returns:
            Path to the extracted directory

        Raises:
            ExtractionError: If extraction fails
        """
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)

        if not archive_path.exists():
            raise ExtractionError(f"Archive not found: {archive_path}")

        dest_dir.mkdir(parents=True, exist_ok=True)

        try:
            if show_progress:
                print(f"Extracting {archive_path.name}...")

            if archive_path.suffix == ".zip":
                with zipfile.ZipFile(archive_path, "r") as zip_file:
                    zip_file.extractall(dest_dir)
            elif archive_path.name.endswith((".tar.gz", ".tar.bz2", ".tar.xz")):
                with tarfile.open(archive_path, "r:*") as tar:
                    tar.extractall(dest_dir)
            else:
                raise ExtractionError(
                    f"Unsupported archive format: {archive_path.suffix}"
                )

            return dest_dir

        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Failed to extract {archive_path}: {e}")

    def verify_checksum(self, file_path: Path, expected: str) -> bool:
        """Verify SHA256 checksum of a file.

        Raises:
            ChecksumError: If checksum doesn't match
        """
        sha256 = hashlib.sha256()

        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(self.chunk_size), b""):
                sha256.update(chunk)

        actual = sha256.hexdigest()
        if actual.lower() != expected.lower():
            raise ChecksumError(
                f"Checksum mismatch for {file_path}\n"
                + f"Expected: {expected}\n"
                + f"Got: {actual}"
            )

        return True
