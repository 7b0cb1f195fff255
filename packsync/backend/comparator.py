"""File comparison logic for diff calculation."""

from typing import Iterable, Optional

from ..manifest import Manifest, ManifestFile
from ..sync.diff import DiffFile, FileStatus
from ..utils import DISABLED_HASH, normalize_relative_path
from .scanner import LocalFile


class FileComparator:
    """Compares manifest entries with scanned local files."""

    def __init__(self, disable_hash_check: bool = False, disable_size_check: bool = False):
        """Initialize file comparator.

        Args:
            disable_hash_check: Compare by size (or existence) instead of hash
            disable_size_check: With hash check disabled, treat any existing
                file as unchanged
        """
        self.disable_hash_check = disable_hash_check
        self.disable_size_check = disable_size_check

    def compare(
        self,
        manifest: Manifest,
        local_files: dict[str, LocalFile],
        excluded: Iterable[str] = (),
    ) -> list[DiffFile]:
        """Classify every manifest entry and every extra local file.

        Args:
            manifest: Manifest to compare against
            local_files: Dictionary mapping relative_path to LocalFile
            excluded: Relative paths in the exclusion set

        Returns:
            Manifest entries in manifest order, followed by extra local
            files in path order
        """
        excluded_set = {normalize_relative_path(p) for p in excluded}
        decisions = [
            DiffFile(
                path=f.relative_path,
                status=self._compare_single_file(
                    f, local_files.get(f.relative_path), excluded_set
                ),
            )
            for f in manifest.files
        ]

        manifest_paths = {f.relative_path for f in manifest.files}
        for path in sorted(local_files):
            if path in manifest_paths or path in excluded_set:
                continue
            decisions.append(DiffFile(path=path, status=FileStatus.EXTRA))

        return decisions

    def _compare_single_file(
        self,
        manifest_file: ManifestFile,
        local_file: Optional[LocalFile],
        excluded: set[str],
    ) -> FileStatus:
        if manifest_file.relative_path in excluded:
            return FileStatus.EXCLUDED

        if manifest_file.is_archive:
            return FileStatus.FORCE_UPDATE

        if local_file is None:
            return FileStatus.NEW

        if not self.disable_hash_check and manifest_file.hash != DISABLED_HASH:
            if local_file.hash == manifest_file.hash:
                return FileStatus.UNCHANGED
            return FileStatus.MODIFIED

        # Hash comparison unavailable: fall back to size, unless disabled too
        if self.disable_size_check or local_file.size == manifest_file.size:
            return FileStatus.UNCHANGED
        return FileStatus.MODIFIED
