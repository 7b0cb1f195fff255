"""PackSync - synchronize a local directory against a remote package manifest."""

from .backend import LocalBackend, SyncBackend, SyncRequest
from .exceptions import (
    BackendError,
    ConfigError,
    DiffError,
    DownloadError,
    ExclusionStoreError,
    InvalidFieldError,
    MalformedPayloadError,
    ManifestError,
    ManifestFetchError,
    MissingFieldError,
    NetworkError,
    PackageError,
    PackSyncError,
    SyncStateError,
)
from .manifest import FileType, Manifest, ManifestFile, parse_manifest
from .sync import (
    DiffFile,
    ExclusionStore,
    FileStatus,
    SyncOrchestrator,
    SyncPhase,
    SyncSession,
    TreeNode,
    build_tree,
)

__all__ = [
    "LocalBackend",
    "SyncBackend",
    "SyncRequest",
    "BackendError",
    "ConfigError",
    "DiffError",
    "DownloadError",
    "ExclusionStoreError",
    "InvalidFieldError",
    "MalformedPayloadError",
    "ManifestError",
    "ManifestFetchError",
    "MissingFieldError",
    "NetworkError",
    "PackageError",
    "PackSyncError",
    "SyncStateError",
    "FileType",
    "Manifest",
    "ManifestFile",
    "parse_manifest",
    "DiffFile",
    "ExclusionStore",
    "FileStatus",
    "SyncOrchestrator",
    "SyncPhase",
    "SyncSession",
    "TreeNode",
    "build_tree",
]
