"""Manifest sync workflow: diff model, tree, exclusions, events and session."""

from .diff import DiffFile, FileStatus, count_by_status
from .events import (
    DownloadProgress,
    EventBus,
    EventName,
    Subscription,
    SyncEvent,
)
from .exclusions import ExclusionStore
from .orchestrator import SyncOrchestrator, SyncPhase, SyncSession
from .progress import LogEntry, LogLevel, ProgressSink
from .tree import TreeNode, build_tree, iter_leaves

__all__ = [
    "DiffFile",
    "FileStatus",
    "count_by_status",
    "DownloadProgress",
    "EventBus",
    "EventName",
    "Subscription",
    "SyncEvent",
    "ExclusionStore",
    "SyncOrchestrator",
    "SyncPhase",
    "SyncSession",
    "LogEntry",
    "LogLevel",
    "ProgressSink",
    "TreeNode",
    "build_tree",
    "iter_leaves",
]
