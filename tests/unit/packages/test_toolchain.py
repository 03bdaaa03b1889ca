"""Unit tests for Go toolchain management."""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from plugforge.packages.cache import Cache
from plugforge.packages.downloader import DownloadError, PackageDownloader
from plugforge.packages.toolchain import GoToolchain, ToolchainMissingError, ToolchainStatus


@pytest.fixture(autouse=True)
def isolated(monkeypatch):
    monkeypatch.delenv("PLUGFORGE_CACHE_DIR", raising=False)
    monkeypatch.setattr(GoToolchain, "SEARCH_PATHS", [])


def which_from(mapping):
    return lambda name: mapping.get(name)


class TestFindCompiler:
    """Tests for compiler lookup."""

    def test_not_found(self, tmp_path):
        toolchain = GoToolchain(Cache(tmp_path), which=which_from({}))
        assert toolchain.find_compiler() is None

    def test_found_on_path(self, tmp_path):
        toolchain = GoToolchain(Cache(tmp_path), which=which_from({"go": "/opt/go/bin/go"}))
        assert toolchain.find_compiler() == Path("/opt/go/bin/go")

    def test_search_path_before_path(self, tmp_path, monkeypatch):
        bin_dir = tmp_path / "usr-local-go" / "bin"
        bin_dir.mkdir(parents=True)
        go = bin_dir / GoToolchain._executable_name("go")
        go.write_text("")
        monkeypatch.setattr(GoToolchain, "SEARCH_PATHS", [bin_dir])

        toolchain = GoToolchain(Cache(tmp_path / "out"), which=which_from({"go": "/opt/go/bin/go"}))

        assert toolchain.find_compiler() == go

    def test_cached_toolchain_first(self, tmp_path):
        cache = Cache(tmp_path)
        toolchain = GoToolchain(cache, which=which_from({"go": "/opt/go/bin/go"}))
        cached_bin = cache.get_toolchain_path(GoToolchain.BASE_URL, GoToolchain.VERSION) / "go" / "bin"
        cached_bin.mkdir(parents=True)
        go = cached_bin / GoToolchain._executable_name("go")
        go.write_text("")

        assert toolchain.find_compiler() == go
        assert toolchain.search_dirs()[0] == cached_bin

    def test_require_compiler_fails_fast(self, tmp_path):
        toolchain = GoToolchain(Cache(tmp_path), which=which_from({}))
        with pytest.raises(ToolchainMissingError, match="Go compiler not found"):
            toolchain.require_compiler()


class TestCheckToolchain:
    """Tests for GoToolchain.check_toolchain."""

    def test_nothing_installed(self, tmp_path):
        status = GoToolchain(Cache(tmp_path), which=which_from({})).check_toolchain()

        assert status == ToolchainStatus(
            compiler_present=False, interpreter_present=False, linker_present=False
        )
        assert not status.ready

    def test_everything_installed(self, tmp_path):
        toolchain = GoToolchain(
            Cache(tmp_path),
            which=which_from({"go": "/usr/bin/go", "python": "/usr/bin/python", "cc": "/usr/bin/cc"}),
        )
        with patch.object(toolchain, "get_compiler_version", return_value="go version go1.21.5 linux/amd64"):
            status = toolchain.check_toolchain()

        assert status.ready
        assert status.compiler_path == str(Path("/usr/bin/go"))
        assert status.to_dict()["compiler_version"] == "go version go1.21.5 linux/amd64"

    def test_version_of_broken_compiler(self, tmp_path):
        toolchain = GoToolchain(Cache(tmp_path), which=which_from({}))
        assert toolchain.get_compiler_version(tmp_path / "missing-go") is None


class TestInstallToolchain:
    """Tests for GoToolchain.install_toolchain."""

    def test_package_info_linux(self, tmp_path):
        toolchain = GoToolchain(Cache(tmp_path), which=which_from({}))
        with patch(
            "plugforge.packages.toolchain.PlatformDetector.detect_go_archive_platform",
            return_value=("linux", "amd64"),
        ):
            assert toolchain.get_package_info() == (f"go{GoToolchain.VERSION}.linux-amd64.tar.gz", None)

    def test_package_info_windows(self, tmp_path):
        toolchain = GoToolchain(Cache(tmp_path), which=which_from({}))
        with patch(
            "plugforge.packages.toolchain.PlatformDetector.detect_go_archive_platform",
            return_value=("windows", "amd64"),
        ):
            assert toolchain.get_package_info()[0].endswith("windows-amd64.zip")

    def test_download_failure(self, tmp_path):
        toolchain = GoToolchain(Cache(tmp_path), which=which_from({}))
        downloader = Mock(spec=PackageDownloader)
        downloader.download.side_effect = DownloadError("connection refused")

        with patch(
            "plugforge.packages.toolchain.PlatformDetector.detect_go_archive_platform",
            return_value=("linux", "amd64"),
        ):
            with pytest.raises(ToolchainMissingError, match="connection refused"):
                toolchain.install_toolchain(downloader, show_progress=False)

    def test_downloads_and_extracts(self, tmp_path):
        cache = Cache(tmp_path)
        toolchain = GoToolchain(cache, which=which_from({}))
        downloader = Mock(spec=PackageDownloader)

        with patch(
            "plugforge.packages.toolchain.PlatformDetector.detect_go_archive_platform",
            return_value=("linux", "amd64"),
        ):
            toolchain.install_toolchain(downloader, show_progress=False)

        url = downloader.download.call_args.args[0]
        assert url == f"{GoToolchain.BASE_URL}/go{GoToolchain.VERSION}.linux-amd64.tar.gz"
        downloader.extract_archive.assert_called_once()
        assert downloader.extract_archive.call_args.args[1] == cache.get_toolchain_path(
            GoToolchain.BASE_URL, GoToolchain.VERSION
        )
