"""Exceptions raised by packsync."""

from typing import Optional


class PackSyncError(Exception):
    """Base exception for all packsync errors."""


# =============================================================================
# Manifest validation errors
# =============================================================================


class ManifestError(PackSyncError):
    """Raised when a manifest payload cannot be turned into a Manifest."""


class MalformedPayloadError(ManifestError):
    """Raised when the manifest payload is not parseable structured data."""


class MissingFieldError(ManifestError):
    """Raised when no accepted key for a required field yields a value.

    Attributes:
        field: Canonical name of the missing field
        file_name: Name of the offending file entry, or None for
            top-level fields
    """

    def __init__(self, field: str, file_name: Optional[str] = None):
        self.field = field
        self.file_name = file_name
        if file_name is None:
            message = f"Manifest is missing required field '{field}'"
        else:
            message = f"File '{file_name}' is missing required field '{field}'"
        super().__init__(message)


class InvalidFieldError(ManifestError):
    """Raised when a field is present but its value is not acceptable."""

    def __init__(self, field: str, reason: str, file_name: Optional[str] = None):
        self.field = field
        self.reason = reason
        self.file_name = file_name
        if file_name is None:
            message = f"Manifest field '{field}' is invalid: {reason}"
        else:
            message = f"File '{file_name}' has invalid field '{field}': {reason}"
        super().__init__(message)


# =============================================================================
# Backend (collaborator) errors
# =============================================================================


class BackendError(PackSyncError):
    """Raised when a backend operation fails."""


class NetworkError(BackendError):
    """Raised when a network request cannot be completed."""


class ManifestFetchError(BackendError):
    """Raised when the manifest server answers with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class DiffError(BackendError):
    """Raised when a diff cannot be calculated."""


class DownloadError(BackendError):
    """Raised when a download pass cannot be started or completed."""


class ExclusionStoreError(BackendError):
    """Raised when an exclusion list cannot be loaded or saved."""


class PackageError(BackendError):
    """Raised when a local package archive cannot be read."""


# =============================================================================
# Session and configuration errors
# =============================================================================


class SyncStateError(PackSyncError):
    """Raised when an operation is not allowed in the current session phase."""


class ConfigError(PackSyncError):
    """Raised when the settings file cannot be read or written."""


__all__ = [
    "PackSyncError",
    "ManifestError",
    "MalformedPayloadError",
    "MissingFieldError",
    "InvalidFieldError",
    "BackendError",
    "NetworkError",
    "ManifestFetchError",
    "DiffError",
    "DownloadError",
    "ExclusionStoreError",
    "PackageError",
    "SyncStateError",
    "ConfigError",
]
