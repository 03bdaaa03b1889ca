"""
Build system components for plugforge.

This module provides the local build implementation including:
- Toolchain command execution with timeouts and process-tree cleanup
- Timestamped build logs
- Build orchestration (workspace, go build, WASM-to-native retry, publish)
"""

from .build_executor import BuildCommandError, BuildExecutor, CommandResult, kill_process_tree
from .build_log import BuildLog, LogEntry
from .orchestrator import BuildOrchestrator, WorkspaceError, artifact_filename

__all__ = [
    "BuildCommandError",
    "BuildExecutor",
    "CommandResult",
    "kill_process_tree",
    "BuildLog",
    "LogEntry",
    "BuildOrchestrator",
    "WorkspaceError",
    "artifact_filename",
]
