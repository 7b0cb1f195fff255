"""Backend working against the local filesystem and plain HTTP."""

import asyncio
import json
import logging
import zipfile
from pathlib import Path
from typing import Optional

from ..config import Config
from ..exceptions import (
    DiffError,
    DownloadError,
    ExclusionStoreError,
    PackageError,
    PackSyncError,
)
from ..manifest import Manifest, ManifestFile, parse_manifest
from ..sync.diff import DiffFile, FileStatus
from ..sync.events import (
    DownloadProgress,
    EventBus,
    EventName,
    EventPayload,
    Listener,
    Subscription,
)
from ..utils import (
    DEFAULT_THREAD_COUNT,
    DISABLED_HASH,
    EXCLUSION_FILE_NAME,
    calculate_file_hash,
)
from .archive import copy_from_package, extract_archive, read_manifest_from_package
from .base import SyncRequest
from .comparator import FileComparator
from .downloader import FileDownloader
from .operations import cleanup_extra_files
from .scanner import DirectoryScanner

logger = logging.getLogger(__name__)


class LocalBackend:
    """Sync backend for a target directory on this machine.

    Hashing, extraction and deletion run in worker threads; events are
    always emitted from the event loop. Downloads run concurrently, bounded
    by ``thread_count``.

    Examples:
        >>> backend = LocalBackend(thread_count=8)
        >>> text = await backend.fetch_manifest_text("https://example.com/pack.json")
    """

    def __init__(
        self,
        downloader: Optional[FileDownloader] = None,
        thread_count: int = DEFAULT_THREAD_COUNT,
        use_trash: bool = False,
    ):
        """Initialize the backend.

        Args:
            downloader: HTTP downloader (a default one is created if omitted)
            thread_count: Maximum number of concurrent downloads
            use_trash: Move removed extra files to the system trash
        """
        self.downloader = downloader or FileDownloader()
        self.thread_count = max(1, thread_count)
        self.use_trash = use_trash
        self.events = EventBus()

    @classmethod
    def from_config(cls, config: Config) -> "LocalBackend":
        """Create a backend using stored settings."""
        return cls(
            downloader=FileDownloader(timeout=config.timeout),
            thread_count=config.thread_count,
            use_trash=config.use_trash,
        )

    async def close(self) -> None:
        await self.downloader.close()

    # =========================================================================
    # Events
    # =========================================================================

    def subscribe(self, listener: Listener) -> Subscription:
        return self.events.listen(listener)

    def _emit(self, name: EventName, payload: EventPayload) -> None:
        self.events.emit(name, payload)

    # =========================================================================
    # Manifest and diff
    # =========================================================================

    async def fetch_manifest_text(self, url: str) -> str:
        logger.debug(f"Fetching manifest from {url}")
        return await self.downloader.fetch_text(url)

    def _calculate_diff_sync(self, request: SyncRequest) -> list[DiffFile]:
        scanner = DirectoryScanner(compute_hash=not request.disable_hash_check)
        local_files = scanner.scan_for_manifest(
            Path(request.target_directory), request.manifest
        )
        comparator = FileComparator(
            disable_hash_check=request.disable_hash_check,
            disable_size_check=request.disable_size_check,
        )
        return comparator.compare(request.manifest, local_files, request.excluded_files)

    async def calculate_diff(self, request: SyncRequest) -> list[DiffFile]:
        """Compare the target directory against the manifest.

        Raises:
            DiffError: If the target directory cannot be scanned
        """
        try:
            return await asyncio.to_thread(self._calculate_diff_sync, request)
        except OSError as e:
            raise DiffError(f"Failed to scan {request.target_directory}: {e}") from e

    # =========================================================================
    # Exclusion list persistence
    # =========================================================================

    @staticmethod
    def exclusion_file(target_dir: str) -> Path:
        return Path(target_dir) / EXCLUSION_FILE_NAME

    def _read_exclusions(self, target_dir: str) -> list[str]:
        path = self.exclusion_file(target_dir)
        if not path.exists():
            return []
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ExclusionStoreError(f"Failed to read {path}: {e}") from e
        if not isinstance(data, list) or not all(isinstance(p, str) for p in data):
            raise ExclusionStoreError(f"{path} must contain a list of paths")
        return data

    def _write_exclusions(self, target_dir: str, excluded: list[str]) -> None:
        path = self.exclusion_file(target_dir)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(list(excluded), f, indent=2)
        except OSError as e:
            raise ExclusionStoreError(f"Failed to write {path}: {e}") from e

    async def load_exclusion_list(self, target_dir: str) -> list[str]:
        return await asyncio.to_thread(self._read_exclusions, target_dir)

    async def save_exclusion_list(self, target_dir: str, excluded: list[str]) -> None:
        await asyncio.to_thread(self._write_exclusions, target_dir, excluded)
        logger.debug(f"Saved {len(excluded)} exclusions to {target_dir}")

    # =========================================================================
    # Download pass
    # =========================================================================

    def _progress_callback(self, file: ManifestFile):
        def callback(downloaded: int, total: int) -> None:
            progress = (downloaded / total * 100.0) if total > 0 else 0.0
            self._emit(
                EventName.DOWNLOAD_PROGRESS,
                DownloadProgress(
                    file=file.name, downloaded=downloaded, total=total, progress=progress
                ),
            )

        return callback

    async def _verify(self, file: ManifestFile, path: Path, request: SyncRequest) -> None:
        if request.disable_hash_check or file.hash == DISABLED_HASH:
            return
        try:
            actual = await asyncio.to_thread(calculate_file_hash, path)
        except OSError as e:
            raise DownloadError(f"Failed to verify {file.name}: {e}") from e
        if actual != file.hash:
            raise DownloadError(
                f"Hash mismatch for {file.name}: expected {file.hash}, got {actual}"
            )

    async def _process_file(self, file: ManifestFile, request: SyncRequest) -> None:
        target_dir = Path(request.target_directory)
        destination = target_dir / file.relative_path
        await self.downloader.download(
            file, destination, progress_callback=self._progress_callback(file)
        )

        if file.is_archive and file.auto_extract:
            await asyncio.to_thread(
                extract_archive, destination, target_dir, request.excluded_files
            )
        else:
            await self._verify(file, destination, request)

    async def _run_pass(
        self,
        files: list[ManifestFile],
        worker,
        concurrency: int,
    ) -> int:
        """Run worker for every file and emit outcome events.

        Returns:
            Number of files that failed
        """
        total = len(files)
        semaphore = asyncio.Semaphore(concurrency)
        completed = 0
        failed = 0

        async def run(file: ManifestFile) -> None:
            nonlocal completed, failed
            async with semaphore:
                try:
                    await worker(file)
                except PackSyncError as e:
                    failed += 1
                    logger.warning(str(e))
                    self._emit(EventName.DOWNLOAD_ERROR, str(e))
                    return
            completed += 1
            self._emit(EventName.DOWNLOAD_SUCCESS, file.name)
            self._emit(EventName.OVERALL_PROGRESS, completed / total * 100.0)

        await asyncio.gather(*(run(f) for f in files))
        return failed

    async def _cleanup(self, request: SyncRequest) -> list[str]:
        removed = await asyncio.to_thread(
            cleanup_extra_files,
            Path(request.target_directory),
            request.manifest,
            request.excluded_files,
            self.use_trash,
        )
        if removed:
            logger.info(f"Removed {len(removed)} extra files")
        return removed

    async def start_download(self, request: SyncRequest) -> None:
        """Download everything the diff marks New, Modified or ForceUpdate.

        Per-file failures are reported as DOWNLOAD_ERROR events and do not
        abort the pass. Extra files are cleaned up once every file succeeded.

        Raises:
            DiffError: If the target directory cannot be scanned
        """
        diff = await self.calculate_diff(request)
        statuses = {d.path: d.status for d in diff}
        to_download = [
            f
            for f in request.manifest.files
            if statuses.get(f.relative_path, FileStatus.NEW).needs_download
        ]
        logger.info(
            f"Downloading {len(to_download)} of {len(request.manifest.files)} files"
        )

        if not to_download:
            await self._cleanup(request)
            self._emit(EventName.OVERALL_PROGRESS, 100.0)
            return

        async def worker(file: ManifestFile) -> None:
            await self._process_file(file, request)

        failed = await self._run_pass(to_download, worker, self.thread_count)
        if failed == 0:
            await self._cleanup(request)
        else:
            logger.warning(f"{failed} files failed, skipping cleanup of extra files")

    # =========================================================================
    # Local package install
    # =========================================================================

    async def read_manifest_from_package(self, zip_path: Path) -> str:
        return await asyncio.to_thread(read_manifest_from_package, zip_path)

    async def install_from_package(
        self,
        zip_path: Path,
        target_dir: str,
        excluded: Optional[list[str]] = None,
    ) -> Manifest:
        """Install missing manifest files from a local package archive.

        Files that already exist or are excluded are left alone. Emits the
        same events as a download pass, then removes extra files.

        Args:
            zip_path: Package archive containing manifest.json and the files
            target_dir: Target directory
            excluded: Relative paths left untouched

        Returns:
            The package manifest

        Raises:
            PackageError: If the package cannot be opened
            ManifestError: If the package manifest is invalid
        """
        manifest = parse_manifest(await self.read_manifest_from_package(zip_path))
        request = SyncRequest(
            manifest=manifest,
            target_directory=target_dir,
            excluded_files=tuple(excluded or ()),
        )
        target = Path(target_dir)
        excluded_set = set(request.excluded_files)
        to_install = [
            f
            for f in manifest.files
            if f.relative_path not in excluded_set
            and not (target / f.relative_path).exists()
        ]
        logger.info(f"Installing {len(to_install)} files from {zip_path}")

        if not to_install:
            await self._cleanup(request)
            self._emit(EventName.OVERALL_PROGRESS, 100.0)
            return manifest

        try:
            archive = zipfile.ZipFile(zip_path)
        except (OSError, zipfile.BadZipFile) as e:
            raise PackageError(f"Failed to open package {zip_path}: {e}") from e

        with archive:

            async def worker(file: ManifestFile) -> None:
                await asyncio.to_thread(
                    copy_from_package, archive, file.relative_path, target / file.relative_path
                )

            # One archive handle, one reader at a time
            failed = await self._run_pass(to_install, worker, 1)

        if failed == 0:
            await self._cleanup(request)
        return manifest
