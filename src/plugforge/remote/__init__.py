"""Remote builds on GitHub Actions."""

from .dispatcher import (
    ArtifactDownloadError,
    RemoteBuildDispatcher,
    RemoteDispatchError,
    RemoteTimeoutError,
)
from .github_actions import GitHubActionsClient, GitHubAPIError
from .messages import BuildJob, JobStatus

__all__ = [
    "ArtifactDownloadError",
    "RemoteBuildDispatcher",
    "RemoteDispatchError",
    "RemoteTimeoutError",
    "GitHubActionsClient",
    "GitHubAPIError",
    "BuildJob",
    "JobStatus",
]
