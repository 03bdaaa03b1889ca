"""
Remote build dispatcher.

When the local toolchain is missing or fails, the same configuration is
compiled by a GitHub Actions workflow. The dispatcher:

- triggers the workflow with a fresh job id
- polls the workflow run matching that job id (one request per poll)
- waits for a terminal status with a bounded timeout
- downloads and unpacks the artifact the run uploaded

Jobs live in a bounded in-memory registry keyed by job id. Polls for different
jobs may run concurrently; polls for the same job are serialized.
"""

import io
import json
import logging
import random
import re
import string
import threading
import time
import zipfile
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config.agent_config import AgentPluginConfig, BuildTarget
from ..config.settings import Settings
from ..packages.cache import write_atomic
from ..packages.platform_utils import TargetPlatform
from .github_actions import GitHubActionsClient, GitHubAPIError
from .messages import BuildJob, JobStatus


class RemoteDispatchError(Exception):
    """Raised when a remote build cannot be submitted or has failed."""

    pass


class RemoteTimeoutError(Exception):
    """Raised when a remote build does not finish within its time bound."""

    pass


class ArtifactDownloadError(Exception):
    """Raised when a remote artifact cannot be fetched or unpacked."""

    pass


# GitHub run states that mean the run has not started yet
QUEUED_RUN_STATES = ("queued", "requested", "waiting", "pending")

MAX_AGENT_NAME_LENGTH = 30

_JOB_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_job_id() -> str:
    """Job id of the form ``compile-<ms>-<9 random base36 chars>``."""
    suffix = "".join(random.choice(_JOB_ID_ALPHABET) for _ in range(9))
    return f"compile-{int(time.time() * 1000)}-{suffix}"


def workflow_agent_name(agent_name: str) -> str:
    """Short agent name for the workflow inputs.

    Takes the last segment of a URN (``urn:agent:agentify:helper`` ->
    ``helper``), replaces anything outside ``[a-zA-Z0-9_-]`` with ``_`` and
    truncates to 30 characters.
    """
    last_segment = agent_name.split(":")[-1] or "agent"
    return re.sub(r"[^a-zA-Z0-9_-]", "_", last_segment)[:MAX_AGENT_NAME_LENGTH]


def _select_artifact(artifacts: List[Dict[str, Any]], job_id: str) -> Optional[Dict[str, Any]]:
    for artifact in artifacts:
        if job_id in artifact.get("name", ""):
            return artifact
    for artifact in artifacts:
        name = artifact.get("name", "")
        if "plugin" in name or "agent" in name:
            return artifact
    if len(artifacts) == 1:
        return artifacts[0]
    return None


class RemoteBuildDispatcher:
    """Dispatches builds to GitHub Actions and tracks them as BuildJobs."""

    def __init__(
        self,
        client: GitHubActionsClient,
        ref: str = "main",
        poll_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        max_jobs: int = 256,
    ):
        """Initialize dispatcher.

        Args:
            client: GitHub Actions client for the compile workflow
            ref: Git ref the workflow is dispatched on
            poll_interval: Seconds between polls in wait_for_completion
            clock: Monotonic clock (injectable for tests)
            sleep: Sleep function (injectable for tests)
            max_jobs: Registry size above which the oldest jobs are evicted
        """
        self.client = client
        self.ref = ref
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep
        self.max_jobs = max(1, max_jobs)
        self._registry_lock = threading.Lock()
        self._jobs: Dict[str, BuildJob] = {}
        self._job_locks: Dict[str, threading.Lock] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "RemoteBuildDispatcher":
        """Create a dispatcher from runtime settings.

        Raises:
            RemoteDispatchError: If no GitHub token is configured
        """
        if not settings.remote_enabled:
            raise RemoteDispatchError("GitHub token not configured; remote builds unavailable")
        client = GitHubActionsClient(
            token=settings.github_token or "",
            owner=settings.github_owner,
            repo=settings.github_repo,
            workflow_id=settings.github_workflow_id,
        )
        return cls(client, ref=settings.github_ref, poll_interval=settings.poll_interval)

    def _entry(self, job_id: str) -> Tuple[BuildJob, threading.Lock]:
        """Registry entry for ``job_id``; unknown ids get a fresh queued job."""
        with self._registry_lock:
            if job_id not in self._jobs:
                self._evict(self.max_jobs - 1)
                self._jobs[job_id] = BuildJob(job_id=job_id)
                self._job_locks[job_id] = threading.Lock()
            return self._jobs[job_id], self._job_locks[job_id]

    def _evict(self, keep: int) -> None:
        """Drop the oldest entries until at most ``keep`` remain.

        Terminal jobs go first; in-flight jobs are dropped only when nothing
        else is left. Caller holds the registry lock.
        """
        excess = len(self._jobs) - keep
        if excess <= 0:
            return
        terminal = [job_id for job_id, job in self._jobs.items() if job.status.is_terminal]
        terminal_ids = set(terminal)
        in_flight = [job_id for job_id in self._jobs if job_id not in terminal_ids]
        for job_id in (terminal + in_flight)[:excess]:
            del self._jobs[job_id]
            del self._job_locks[job_id]
        logging.debug(f"Evicted {excess} remote job(s) from the registry")

    @property
    def job_count(self) -> int:
        with self._registry_lock:
            return len(self._jobs)

    @staticmethod
    def _snapshot(job: BuildJob) -> BuildJob:
        return replace(job, logs=list(job.logs))

    def get_job(self, job_id: str) -> BuildJob:
        """Snapshot of a job without querying GitHub.

        Unknown ids read as a queued job and are not added to the registry.
        """
        with self._registry_lock:
            job = self._jobs.get(job_id)
            lock = self._job_locks.get(job_id)
        if job is None or lock is None:
            return BuildJob(job_id=job_id)
        with lock:
            return self._snapshot(job)

    def trigger(
        self,
        config: AgentPluginConfig,
        platform: TargetPlatform = TargetPlatform.LINUX,
    ) -> str:
        """Submit a build to the remote workflow without waiting for it.

        Args:
            config: Agent configuration (sent as JSON)
            platform: Target platform of a native build

        Returns:
            The new job id

        Raises:
            RemoteDispatchError: If the workflow dispatch fails
        """
        job_id = new_job_id()
        agent_name = workflow_agent_name(config.agent_name)
        inputs = {
            "job_id": job_id,
            "agent_name": agent_name,
            "config": json.dumps(config.to_dict(), sort_keys=True),
            "build_target": "wasm" if config.build_target == BuildTarget.WASM else "go",
            "platform": platform.goos,
        }

        logging.info(f"Triggering remote compilation {job_id} for {config.agent_id}")
        try:
            self.client.dispatch_workflow(self.ref, inputs)
        except GitHubAPIError as e:
            raise RemoteDispatchError(f"GitHub Actions compilation trigger failed: {e}")

        job, lock = self._entry(job_id)
        with lock:
            job.agent_name = agent_name
            job.add_log(f"Dispatched workflow {self.client.workflow_id} on {self.ref}")
        return job_id

    def _find_run(self, job_id: str) -> Optional[Dict[str, Any]]:
        for run in self.client.list_workflow_runs(per_page=50):
            head_commit = run.get("head_commit") or {}
            candidates = (run.get("name"), run.get("display_title"), head_commit.get("message"))
            if any(text and job_id in text for text in candidates):
                return run
        return None

    def _failure_reason(self, run: Dict[str, Any]) -> str:
        conclusion = run.get("conclusion") or "unknown"
        try:
            jobs = self.client.list_run_jobs(run["id"])
        except GitHubAPIError as e:
            logging.warning(f"Could not list jobs of run {run['id']}: {e}")
            jobs = []
        for job in jobs:
            if job.get("conclusion") == "failure":
                return f"Compilation failed in step: {job.get('name', 'unknown')}"
        return f"Workflow run concluded with '{conclusion}'"

    def _apply_run(self, job: BuildJob, run: Dict[str, Any]) -> None:
        job.run_id = run.get("id")
        run_status = run.get("status")

        if run_status in QUEUED_RUN_STATES:
            job.transition(JobStatus.QUEUED)
        elif run_status == "in_progress":
            job.transition(JobStatus.IN_PROGRESS)
        elif run_status == "completed":
            if run.get("conclusion") != "success":
                job.transition(JobStatus.FAILED, error=self._failure_reason(run))
                return
            artifact = _select_artifact(self.client.list_run_artifacts(run["id"]), job.job_id)
            if artifact is None:
                job.transition(JobStatus.FAILED, error="Workflow run succeeded but uploaded no plugin artifact")
                return
            job.raw_download_url = artifact.get("archive_download_url")
            job.download_url = self.client.artifact_page_url(run["id"], artifact.get("id"))
            job.transition(JobStatus.COMPLETED)
        else:
            job.add_log(f"Unrecognised run status '{run_status}'")

    def poll_status(self, job_id: str) -> BuildJob:
        """Query GitHub once and update the job.

        Terminal jobs are returned without a request. Transport errors leave
        the status unchanged and are recorded in ``error`` and ``logs``.

        Returns:
            Snapshot of the job after the poll
        """
        job, lock = self._entry(job_id)
        with lock:
            if job.status.is_terminal:
                return self._snapshot(job)
            try:
                run = self._find_run(job_id)
                if run is None:
                    job.add_log("Workflow run not found yet")
                else:
                    self._apply_run(job, run)
            except GitHubAPIError as e:
                job.error = f"Status check failed: {e}"
                job.add_log(job.error)
                logging.warning(f"Polling {job_id} failed: {e}")
            return self._snapshot(job)

    def wait_for_completion(self, job_id: str, timeout_ms: int = 300000) -> BuildJob:
        """Poll until the job is terminal or ``timeout_ms`` has elapsed.

        Never raises for a slow job: on timeout the job is marked
        ``timed_out`` and returned.
        """
        deadline = self.clock() + timeout_ms / 1000.0
        while True:
            job = self.poll_status(job_id)
            if job.status.is_terminal:
                return job
            remaining = deadline - self.clock()
            if remaining <= 0:
                break
            self.sleep(min(self.poll_interval, remaining))

        job, lock = self._entry(job_id)
        with lock:
            job.transition(JobStatus.TIMED_OUT, error=f"Remote compilation did not finish within {timeout_ms} ms")
            logging.warning(f"Remote compilation {job_id} timed out after {timeout_ms} ms")
            return self._snapshot(job)

    def fetch_artifact(self, job_id: str) -> bytes:
        """Download the artifact archive of a completed job.

        Raises:
            ArtifactDownloadError: If the job is not completed, has no
                artifact, or the download fails
        """
        job = self.get_job(job_id)
        if job.status != JobStatus.COMPLETED:
            raise ArtifactDownloadError(f"Job {job_id} is {job.status.value}, not completed")
        if not job.raw_download_url:
            raise ArtifactDownloadError(f"Job {job_id} has no artifact download URL")
        try:
            return self.client.download_artifact(job.raw_download_url)
        except GitHubAPIError as e:
            raise ArtifactDownloadError(f"Failed to download artifact of {job_id}: {e}")

    @staticmethod
    def extract_artifact(archive_bytes: bytes, dest_dir: Path, filename: str) -> Path:
        """Unpack the plugin from a CI artifact archive.

        The member named ``filename`` is preferred, then any member with the
        same extension. If the archive holds no such file the archive itself
        is saved as ``<stem>.zip``.

        Args:
            archive_bytes: Zip archive returned by fetch_artifact
            dest_dir: Directory receiving the plugin
            filename: Expected artifact filename (e.g. agent_abc_2.0.0.wasm)

        Returns:
            Path of the written file

        Raises:
            ArtifactDownloadError: If the archive is not a valid zip or the
                file cannot be written
        """
        dest_dir = Path(dest_dir)
        extension = Path(filename).suffix
        try:
            with zipfile.ZipFile(io.BytesIO(archive_bytes)) as archive:
                members = [name for name in archive.namelist() if not name.endswith("/")]
                exact = [name for name in members if Path(name).name == filename]
                by_extension = sorted(name for name in members if extension and name.endswith(extension))
                chosen = (exact or by_extension or [None])[0]
                if chosen is not None:
                    payload = archive.read(chosen)
                    target = dest_dir / filename
                else:
                    payload = archive_bytes
                    target = dest_dir / f"{Path(filename).stem}.zip"
        except zipfile.BadZipFile as e:
            raise ArtifactDownloadError(f"Artifact archive is not a valid zip: {e}")

        try:
            write_atomic(target, data=payload)
        except OSError as e:
            raise ArtifactDownloadError(f"Failed to write {target}: {e}")
        return target
