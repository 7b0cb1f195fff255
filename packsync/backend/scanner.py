"""Directory scanning for the local backend."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..manifest import Manifest
from ..utils import EXCLUSION_FILE_NAME, calculate_file_hash, top_level_component

logger = logging.getLogger(__name__)


@dataclass
class LocalFile:
    """Represents a local file with metadata."""

    path: Path
    """Absolute path to the file"""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    size: int
    """File size in bytes"""

    hash: Optional[str] = None
    """SHA-256 hex digest, None when hashing was skipped or failed"""

    @classmethod
    def from_path(
        cls, file_path: Path, base_path: Path, compute_hash: bool = True
    ) -> "LocalFile":
        """Create LocalFile from a path.

        Args:
            file_path: Absolute path to the file
            base_path: Base path for calculating relative paths
            compute_hash: Whether to hash the file contents

        Returns:
            LocalFile instance
        """
        stat = file_path.stat()
        relative_path = file_path.relative_to(base_path).as_posix()
        file_hash = calculate_file_hash(file_path) if compute_hash else None
        return cls(
            path=file_path,
            relative_path=relative_path,
            size=stat.st_size,
            hash=file_hash,
        )


class DirectoryScanner:
    """Scans the parts of a target directory a manifest can touch.

    Only the top-level directories named by manifest paths are walked,
    together with the root-level files the manifest names. Everything else
    in the target directory is left alone.

    Examples:
        >>> scanner = DirectoryScanner()
        >>> files = scanner.scan_for_manifest(Path("/games/pack"), manifest)
        >>> files["mods/a.jar"].hash
        'e3b0c442...'
    """

    def __init__(self, compute_hash: bool = True):
        """Initialize directory scanner.

        Args:
            compute_hash: Whether to hash scanned files
        """
        self.compute_hash = compute_hash

    def should_ignore(self, path: Path) -> bool:
        """The exclusion list file is never part of a scan."""
        return path.name == EXCLUSION_FILE_NAME

    def scan_local(
        self, directory: Path, base_path: Optional[Path] = None
    ) -> list[LocalFile]:
        """Recursively scan a local directory.

        Args:
            directory: Directory to scan
            base_path: Base path for calculating relative paths (defaults to directory)

        Returns:
            List of LocalFile objects
        """
        if base_path is None:
            base_path = directory

        files: list[LocalFile] = []

        try:
            for item in sorted(directory.iterdir()):
                if self.should_ignore(item):
                    continue

                if item.is_file():
                    try:
                        files.append(
                            LocalFile.from_path(item, base_path, self.compute_hash)
                        )
                    except OSError as e:
                        logger.warning(f"Skipping unreadable file {item}: {e}")
                        continue
                elif item.is_dir():
                    files.extend(self.scan_local(item, base_path))
        except PermissionError as e:
            logger.warning(f"Skipping unreadable directory {directory}: {e}")

        return files

    def scan_for_manifest(
        self, target_dir: Path, manifest: Manifest
    ) -> dict[str, LocalFile]:
        """Scan the manifest's footprint inside a target directory.

        Args:
            target_dir: Target directory
            manifest: Manifest whose top-level entries are scanned

        Returns:
            Dictionary mapping relative_path to LocalFile
        """
        result: dict[str, LocalFile] = {}
        if not target_dir.is_dir():
            logger.debug(f"Target directory {target_dir} does not exist yet")
            return result

        for dir_name in sorted(manifest.top_level_dirs()):
            scan_dir = target_dir / dir_name
            if not scan_dir.is_dir():
                continue
            for local_file in self.scan_local(scan_dir, target_dir):
                result[local_file.relative_path] = local_file

        for manifest_file in manifest.files:
            if "/" in manifest_file.relative_path:
                continue
            path = target_dir / top_level_component(manifest_file.relative_path)
            if path.is_file() and not self.should_ignore(path):
                try:
                    local_file = LocalFile.from_path(path, target_dir, self.compute_hash)
                except OSError as e:
                    logger.warning(f"Skipping unreadable file {path}: {e}")
                    continue
                result[local_file.relative_path] = local_file

        logger.debug(f"Scanned {len(result)} local files in {target_dir}")
        return result
