"""
Remote build job model.

A BuildJob tracks one compilation dispatched to the remote CI:

    queued -> in_progress -> completed | failed | timed_out

Terminal states are final. Transitions out of a terminal state and the
backwards move from in_progress to queued are ignored and logged.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class JobStatus(Enum):
    """Remote build job status."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @classmethod
    def from_string(cls, value: str) -> "JobStatus":
        """Convert string to JobStatus.

        Raises:
            ValueError: If the value names no known status
        """
        return cls(value)

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMED_OUT)


_ORDER = {JobStatus.QUEUED: 0, JobStatus.IN_PROGRESS: 1}


@dataclass
class BuildJob:
    """A remote compilation job.

    Attributes:
        job_id: Identifier sent with the workflow dispatch
        status: Current status
        download_url: Browser link to the artifact page
        raw_download_url: API location of the artifact archive
        logs: Timestamped status messages collected while polling
        error: Last error message (failure reason or transport error)
        run_id: Workflow run id once the run has been located
        agent_name: Agent name sent with the dispatch
        created_at: Unix timestamp of the dispatch
        updated_at: Unix timestamp of the last change
    """

    job_id: str
    status: JobStatus = JobStatus.QUEUED
    download_url: Optional[str] = None
    raw_download_url: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    error: Optional[str] = None
    run_id: Optional[int] = None
    agent_name: str = ""
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def add_log(self, message: str) -> None:
        stamp = time.strftime("%H:%M:%S", time.localtime())
        self.logs.append(f"[{stamp}] {message}")
        self.updated_at = time.time()

    def transition(self, new_status: JobStatus, error: Optional[str] = None) -> bool:
        """Move to ``new_status`` if the state machine allows it.

        Args:
            new_status: Requested status
            error: Error message to record with the transition

        Returns:
            True if the status changed
        """
        if new_status == self.status:
            return False
        if self.status.is_terminal:
            logging.warning(
                f"Ignoring transition of job {self.job_id} from terminal "
                + f"{self.status.value} to {new_status.value}"
            )
            return False
        if not new_status.is_terminal and _ORDER[new_status] < _ORDER[self.status]:
            logging.debug(
                f"Ignoring backwards transition of job {self.job_id} "
                + f"from {self.status.value} to {new_status.value}"
            )
            return False

        old_status = self.status
        self.status = new_status
        if error is not None:
            self.error = error
        self.add_log(f"status {old_status.value} -> {new_status.value}")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase form returned to API callers."""
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            "downloadUrl": self.download_url,
            "rawDownloadUrl": self.raw_download_url,
            "logs": list(self.logs),
            "error": self.error,
            "runId": self.run_id,
            "agentName": self.agent_name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildJob":
        """Create BuildJob from dictionary."""
        return cls(
            job_id=data["jobId"],
            status=JobStatus.from_string(data.get("status", "queued")),
            download_url=data.get("downloadUrl"),
            raw_download_url=data.get("rawDownloadUrl"),
            logs=list(data.get("logs", [])),
            error=data.get("error"),
            run_id=data.get("runId"),
            agent_name=data.get("agentName", ""),
            created_at=data.get("createdAt", time.time()),
            updated_at=data.get("updatedAt", time.time()),
        )
