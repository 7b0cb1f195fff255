"""Local file operations used after a download pass."""

import logging
import os
from pathlib import Path
from typing import Iterable

import send2trash

from ..manifest import Manifest
from ..utils import EXCLUSION_FILE_NAME, normalize_relative_path

logger = logging.getLogger(__name__)


def delete_local(path: Path, use_trash: bool = True) -> None:
    """Delete a local file.

    Args:
        path: File to delete
        use_trash: If True, move to the system trash; otherwise delete
            permanently
    """
    if use_trash:
        send2trash.send2trash(str(path))
    else:
        path.unlink()


def cleanup_extra_files(
    target_dir: Path,
    manifest: Manifest,
    excluded: Iterable[str],
    use_trash: bool = False,
) -> list[str]:
    """Remove files the manifest no longer lists.

    Only the manifest's top-level directories are walked. Files that are
    neither in the manifest nor excluded are removed, then directories left
    empty are pruned. The exclusion list file is never touched.

    Args:
        target_dir: Target directory
        manifest: Manifest describing the wanted file set
        excluded: Relative paths to keep
        use_trash: Move removed files to the trash instead of deleting

    Returns:
        Relative paths of removed files
    """
    wanted = {f.relative_path for f in manifest.files}
    keep = {normalize_relative_path(p) for p in excluded}
    removed: list[str] = []

    for dir_name in sorted(manifest.top_level_dirs()):
        scan_dir = target_dir / dir_name
        if not scan_dir.is_dir():
            continue

        for root, dirs, files in os.walk(scan_dir, topdown=False):
            root_path = Path(root)
            for name in files:
                if name == EXCLUSION_FILE_NAME:
                    continue
                path = root_path / name
                rel = path.relative_to(target_dir).as_posix()
                if rel in wanted or rel in keep:
                    continue
                try:
                    delete_local(path, use_trash=use_trash)
                except OSError as e:
                    logger.warning(f"Failed to remove extra file {rel}: {e}")
                    continue
                removed.append(rel)
                logger.debug(f"Removed extra file {rel}")

            for name in dirs:
                path = root_path / name
                rel = path.relative_to(target_dir).as_posix()
                if rel in keep or path.is_symlink():
                    continue
                try:
                    if path.is_dir() and not any(path.iterdir()):
                        path.rmdir()
                        logger.debug(f"Removed empty directory {rel}")
                except OSError as e:
                    logger.warning(f"Failed to remove directory {rel}: {e}")

    return sorted(removed)
