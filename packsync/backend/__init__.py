"""Backends performing the filesystem, hashing, network and archive work."""

from .base import SyncBackend, SyncRequest
from .downloader import DownloadResult, FileDownloader
from .local import LocalBackend

__all__ = [
    "SyncBackend",
    "SyncRequest",
    "DownloadResult",
    "FileDownloader",
    "LocalBackend",
]
