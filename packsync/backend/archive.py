"""Zip archive handling: package manifests, extraction and package installs."""

import logging
import shutil
import zipfile
from pathlib import Path
from typing import Iterable

from ..exceptions import DownloadError, PackageError

logger = logging.getLogger(__name__)

# Name of the manifest stored at the root of a package archive
PACKAGE_MANIFEST_NAME = "manifest.json"


def read_manifest_from_package(zip_path: Path) -> str:
    """Read the manifest text stored inside a package archive.

    Args:
        zip_path: Path to the package archive

    Returns:
        Contents of manifest.json

    Raises:
        PackageError: If the archive cannot be opened or has no manifest
    """
    try:
        with zipfile.ZipFile(zip_path) as archive:
            with archive.open(PACKAGE_MANIFEST_NAME) as f:
                return f.read().decode("utf-8")
    except KeyError as e:
        raise PackageError(f"{zip_path} contains no {PACKAGE_MANIFEST_NAME}") from e
    except (OSError, zipfile.BadZipFile, UnicodeDecodeError) as e:
        raise PackageError(f"Failed to read package {zip_path}: {e}") from e


def copy_from_package(archive: zipfile.ZipFile, member: str, destination: Path) -> None:
    """Copy a single archive member to a destination file.

    Raises:
        PackageError: If the member is missing or cannot be written
    """
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with archive.open(member) as src, open(destination, "wb") as dst:
            shutil.copyfileobj(src, dst)
    except KeyError as e:
        raise PackageError(f"Package has no entry {member}") from e
    except OSError as e:
        raise PackageError(f"Failed to install {member}: {e}") from e


def _protected_paths(extract_dir: Path, target_dir: Path, excluded: Iterable[str]) -> set[Path]:
    """Excluded paths under extract_dir plus all of their parent directories."""
    protected: set[Path] = set()
    for rel in excluded:
        path = target_dir / rel
        if extract_dir not in path.parents:
            continue
        protected.add(path)
        parent = path.parent
        while parent != extract_dir:
            protected.add(parent)
            parent = parent.parent
    return protected


def clear_directory(extract_dir: Path, target_dir: Path, excluded: Iterable[str]) -> None:
    """Remove everything in extract_dir except excluded paths.

    Excluded files and the directories leading to them are kept.

    Args:
        extract_dir: Directory to clear
        target_dir: Target directory excluded paths are relative to
        excluded: Relative paths to keep
    """
    if not extract_dir.is_dir():
        return

    protected = _protected_paths(extract_dir, target_dir, excluded)
    # Deepest entries first so directories are empty when reached
    entries = sorted(extract_dir.rglob("*"), key=lambda p: len(p.parts), reverse=True)
    for entry in entries:
        if entry in protected:
            continue
        if entry.is_dir() and not entry.is_symlink():
            if not any(entry.iterdir()):
                entry.rmdir()
        else:
            entry.unlink()


def extract_archive(archive_path: Path, target_dir: Path, excluded: Iterable[str]) -> Path:
    """Extract a downloaded archive next to its manifest location.

    The archive is extracted into ``<target_dir>/<archive stem>`` after
    clearing the non-excluded contents of that directory, then deleted.

    Args:
        archive_path: Downloaded archive
        target_dir: Target directory of the sync
        excluded: Relative paths that must survive the extraction

    Returns:
        Directory the archive was extracted into

    Raises:
        DownloadError: If the archive cannot be extracted
    """
    extract_dir = target_dir / (archive_path.stem or "archive")
    try:
        clear_directory(extract_dir, target_dir, excluded)
        extract_dir.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path) as archive:
            archive.extractall(extract_dir)
        archive_path.unlink()
    except (OSError, zipfile.BadZipFile) as e:
        raise DownloadError(f"Failed to extract {archive_path.name}: {e}") from e

    logger.debug(f"Extracted {archive_path.name} into {extract_dir}")
    return extract_dir
