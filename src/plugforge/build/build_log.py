"""Ordered, timestamped log of everything a build printed."""

import threading
import time
from dataclasses import dataclass, field
from typing import List


@dataclass
class LogEntry:
    """One captured line.

    Attributes:
        line: Line text without trailing newline
        stream: Origin of the line (stdout, stderr or info)
        timestamp: Unix timestamp when the line was captured
    """

    line: str
    stream: str = "info"
    timestamp: float = field(default_factory=time.time)

    def format(self) -> str:
        clock = time.strftime("%H:%M:%S", time.localtime(self.timestamp))
        millis = int((self.timestamp % 1) * 1000)
        return f"[{clock}.{millis:03d}] [{self.stream}] {self.line}"


class BuildLog:
    """Thread-safe append-only list of LogEntry.

    Subprocess stdout and stderr are read on separate threads, so every
    mutation goes through the lock.
    """

    def __init__(self) -> None:
        self._entries: List[LogEntry] = []
        self._lock = threading.Lock()

    def add(self, line: str, stream: str = "info") -> LogEntry:
        entry = LogEntry(line=line.rstrip("\r\n"), stream=stream)
        with self._lock:
            self._entries.append(entry)
        return entry

    def entries(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    def get_logs(self) -> List[str]:
        """Formatted log lines in capture order."""
        return [entry.format() for entry in self.entries()]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
