"""Utility functions for packsync."""

import hashlib
from pathlib import Path, PurePosixPath

# =============================================================================
# Constants for sync operations
# =============================================================================

# Name of the per-directory exclusion list written by the local backend
EXCLUSION_FILE_NAME: str = ".sync_exclude.json"

# Hash value used by manifests whose hashes were not computed at export time
DISABLED_HASH: str = "DISABLED"

# Chunk size for streamed downloads and hashing (64 KB)
DEFAULT_CHUNK_SIZE: int = 64 * 1024

# Retry configuration for transient download errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Number of concurrent downloads when no preference is stored
DEFAULT_THREAD_COUNT: int = 4

# Request timeout for manifest fetches and downloads
DEFAULT_TIMEOUT: float = 30.0  # seconds


# =============================================================================
# Path utilities
# =============================================================================


def normalize_relative_path(path: str) -> str:
    """Normalize a relative path to forward slashes.

    Args:
        path: Relative path as found in a manifest or exclusion list

    Returns:
        The path with backslashes converted to forward slashes

    Examples:
        >>> normalize_relative_path("mods\\\\a.jar")
        'mods/a.jar'
    """
    return path.replace("\\", "/")


def is_safe_relative_path(path: str) -> bool:
    """Check that a relative path stays inside the directory it is joined to.

    Args:
        path: Normalized relative path (forward slashes)

    Returns:
        False for absolute paths, drive-qualified paths and paths with ``..``
    """
    if not path or path.startswith("/"):
        return False
    pure = PurePosixPath(path)
    if ":" in pure.parts[0]:
        return False
    return ".." not in pure.parts


def top_level_component(path: str) -> str:
    """Return the first segment of a relative path."""
    return normalize_relative_path(path).split("/", 1)[0]


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Hash calculation utilities
# =============================================================================


def calculate_file_hash(file_path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Calculate the SHA-256 hex digest of a file.

    Args:
        file_path: File to hash
        chunk_size: Read size in bytes

    Returns:
        Lowercase hexadecimal digest
    """
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            hasher.update(chunk)
    return hasher.hexdigest()
