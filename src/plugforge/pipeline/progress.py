"""
Progress notification for compilations.

Progress is one-way and fire-and-forget: a notifier failure is logged and
swallowed by SafeProgressReporter and never affects the compilation.

Notifiers:
    LoggingProgressNotifier    writes events to the log
    CallbackProgressNotifier   hands events to a Python callable
    HttpProgressNotifier       POSTs events as JSON from a background thread
    CompositeProgressNotifier  fans out to several notifiers
"""

import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import requests


class ProgressStatus(Enum):
    """Status attached to a progress event."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class ProgressEvent:
    """A stage transition of a compilation."""

    stage: str
    progress: int
    message: str
    status: ProgressStatus = ProgressStatus.IN_PROGRESS
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["status"] = self.status.value
        return data


class ProgressNotifier:
    """Base class for progress notifiers."""

    def notify(self, stage: str, percent: int, message: str, status: ProgressStatus) -> None:
        raise NotImplementedError


class LoggingProgressNotifier(ProgressNotifier):
    def notify(self, stage: str, percent: int, message: str, status: ProgressStatus) -> None:
        if status == ProgressStatus.ERROR:
            logging.error(f"[{percent:3d}%] {stage}: {message}")
        else:
            logging.info(f"[{percent:3d}%] {stage}: {message}")


class CallbackProgressNotifier(ProgressNotifier):
    """Passes each event to ``callback(ProgressEvent)``."""

    def __init__(self, callback: Callable[[ProgressEvent], None]):
        self.callback = callback

    def notify(self, stage: str, percent: int, message: str, status: ProgressStatus) -> None:
        self.callback(ProgressEvent(stage=stage, progress=percent, message=message, status=status))


class HttpProgressNotifier(ProgressNotifier):
    """POSTs events as JSON to an external progress channel.

    With ``background=True`` (the default) each POST runs on a daemon
    thread so a slow endpoint never delays the build.
    """

    def __init__(
        self,
        url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 5,
        background: bool = True,
    ):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout
        self.background = background

    def _post(self, event: ProgressEvent) -> None:
        response = self.session.post(self.url, json=event.to_dict(), timeout=self.timeout)
        response.raise_for_status()

    def _post_logged(self, event: ProgressEvent) -> None:
        try:
            self._post(event)
        except requests.RequestException as e:
            logging.warning(f"Failed to deliver progress event '{event.stage}' to {self.url}: {e}")

    def notify(self, stage: str, percent: int, message: str, status: ProgressStatus) -> None:
        event = ProgressEvent(stage=stage, progress=percent, message=message, status=status)
        if not self.background:
            self._post(event)
            return
        thread = threading.Thread(target=self._post_logged, args=(event,), daemon=True)
        thread.start()


class CompositeProgressNotifier(ProgressNotifier):
    """Delivers every event to each child; one failing child does not stop the rest."""

    def __init__(self, notifiers: List[ProgressNotifier]):
        self.notifiers = list(notifiers)

    def notify(self, stage: str, percent: int, message: str, status: ProgressStatus) -> None:
        for notifier in self.notifiers:
            try:
                notifier.notify(stage, percent, message, status)
            except KeyboardInterrupt:
                raise
            except Exception as e:
                logging.warning(f"Progress notifier {type(notifier).__name__} failed: {e}")


class SafeProgressReporter:
    """Front end used by the pipeline; never raises from report()."""

    def __init__(self, notifier: Optional[ProgressNotifier] = None):
        self.notifier = notifier or LoggingProgressNotifier()

    def report(
        self,
        stage: str,
        percent: int,
        message: str,
        status: ProgressStatus = ProgressStatus.IN_PROGRESS,
    ) -> None:
        percent = max(0, min(100, int(percent)))
        try:
            self.notifier.notify(stage, percent, message, status)
        except KeyboardInterrupt:
            raise
        except Exception as e:
            logging.warning(f"Progress notification for '{stage}' failed: {e}")


def default_notifier(progress_url: Optional[str] = None) -> ProgressNotifier:
    """Logging notifier, plus HTTP delivery when ``progress_url`` is set."""
    if not progress_url:
        return LoggingProgressNotifier()
    return CompositeProgressNotifier([LoggingProgressNotifier(), HttpProgressNotifier(progress_url)])
