"""Diff model: per-path classification of local state against a manifest."""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable


class FileStatus(str, Enum):
    """Classification of a path in a diff."""

    UNCHANGED = "Unchanged"
    """Local file matches the manifest entry"""

    NEW = "New"
    """Manifest entry is missing locally"""

    MODIFIED = "Modified"
    """Local file differs from the manifest entry"""

    FORCE_UPDATE = "ForceUpdate"
    """Archive entry that is always re-applied"""

    EXTRA = "Extra"
    """Local file not present in the manifest"""

    EXCLUDED = "Excluded"
    """Path is in the exclusion set"""

    @property
    def needs_download(self) -> bool:
        return self in (FileStatus.NEW, FileStatus.MODIFIED, FileStatus.FORCE_UPDATE)


@dataclass(frozen=True)
class DiffFile:
    """A relative path with its diff status."""

    path: str
    """Relative path using forward slashes"""

    status: FileStatus
    """Computed status"""

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "status": self.status.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiffFile":
        return cls(path=str(data["path"]), status=FileStatus(data["status"]))


def count_by_status(diff_files: Iterable[DiffFile]) -> dict[FileStatus, int]:
    """Tally diff entries per status.

    Every status is present in the result, with zero for unused ones.
    """
    counts = Counter(f.status for f in diff_files)
    return {status: counts.get(status, 0) for status in FileStatus}
