"""Local-then-remote compilation pipeline."""

from .pipeline import CompilationPipeline, CompilationResult
from .progress import (
    CallbackProgressNotifier,
    CompositeProgressNotifier,
    HttpProgressNotifier,
    LoggingProgressNotifier,
    ProgressEvent,
    ProgressNotifier,
    ProgressStatus,
    SafeProgressReporter,
)
from .strategies import FallbackCoordinator, LocalStrategy, RemoteStrategy

__all__ = [
    "CompilationPipeline",
    "CompilationResult",
    "CallbackProgressNotifier",
    "CompositeProgressNotifier",
    "HttpProgressNotifier",
    "LoggingProgressNotifier",
    "ProgressEvent",
    "ProgressNotifier",
    "ProgressStatus",
    "SafeProgressReporter",
    "FallbackCoordinator",
    "LocalStrategy",
    "RemoteStrategy",
]
