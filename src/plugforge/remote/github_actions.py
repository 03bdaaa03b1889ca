"""GitHub Actions REST client.

Thin wrapper around the handful of GitHub REST endpoints the remote build
dispatcher needs:

    POST /repos/{owner}/{repo}/actions/workflows/{workflow}/dispatches
    GET  /repos/{owner}/{repo}/actions/workflows/{workflow}/runs
    GET  /repos/{owner}/{repo}/actions/runs/{run_id}/artifacts
    GET  /repos/{owner}/{repo}/actions/runs/{run_id}/jobs

Artifact archives are downloaded through PackageDownloader with the same
bearer token.
"""

from typing import Any, Dict, List, Optional

import requests

from ..packages.downloader import DownloadError, PackageDownloader

API_URL = "https://api.github.com"


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        status_code: HTTP status code (None for transport errors)
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GitHubActionsClient:
    """Talks to the Actions API of one repository and workflow."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        workflow_id: str,
        session: Optional[requests.Session] = None,
        api_url: str = API_URL,
        timeout: float = 30,
    ):
        """Initialize client.

        Args:
            token: Bearer token with ``actions`` scope
            owner: Repository owner
            repo: Repository name
            workflow_id: Workflow file name or numeric id
            session: Optional requests session
            api_url: API root (GitHub Enterprise installs differ)
            timeout: Request timeout in seconds
        """
        self.owner = owner
        self.repo = repo
        self.workflow_id = workflow_id
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    @property
    def repo_path(self) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}"

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            response = self.session.request(
                method, url, headers=self.headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise GitHubAPIError(f"{method} {url} failed: {e}")
        if response.status_code >= 400:
            raise GitHubAPIError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self._request("GET", url, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise GitHubAPIError(f"GET {url} returned invalid JSON: {e}")

    def dispatch_workflow(self, ref: str, inputs: Dict[str, str]) -> None:
        """Trigger a ``workflow_dispatch`` event.

        Raises:
            GitHubAPIError: If GitHub does not answer 204 No Content
        """
        url = f"{self.repo_path}/actions/workflows/{self.workflow_id}/dispatches"
        response = self._request("POST", url, json={"ref": ref, "inputs": inputs})
        if response.status_code != 204:
            raise GitHubAPIError(
                f"Workflow dispatch returned {response.status_code}", status_code=response.status_code
            )

    def list_workflow_runs(self, per_page: int = 50) -> List[Dict[str, Any]]:
        """Most recent runs of the workflow, newest first."""
        url = f"{self.repo_path}/actions/workflows/{self.workflow_id}/runs"
        return self._get_json(url, params={"per_page": per_page}).get("workflow_runs", [])

    def list_run_artifacts(self, run_id: int) -> List[Dict[str, Any]]:
        url = f"{self.repo_path}/actions/runs/{run_id}/artifacts"
        return self._get_json(url).get("artifacts", [])

    def list_run_jobs(self, run_id: int) -> List[Dict[str, Any]]:
        url = f"{self.repo_path}/actions/runs/{run_id}/jobs"
        return self._get_json(url).get("jobs", [])

    def artifact_page_url(self, run_id: int, artifact_id: int) -> str:
        """Browser URL of an artifact."""
        return f"https://github.com/{self.owner}/{self.repo}/actions/runs/{run_id}/artifacts/{artifact_id}"

    def download_artifact(
        self, archive_url: str, downloader: Optional[PackageDownloader] = None
    ) -> bytes:
        """Download an artifact archive (a zip file).

        Raises:
            GitHubAPIError: If the download fails
        """
        downloader = downloader or PackageDownloader(session=self.session, timeout=self.timeout)
        try:
            return downloader.fetch(archive_url, headers=self.headers)
        except DownloadError as e:
            raise GitHubAPIError(str(e))
