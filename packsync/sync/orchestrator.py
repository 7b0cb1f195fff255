"""State machine driving a manifest sync session.

A session goes through these phases::

    ACQUIRING_MANIFEST -> AWAITING_DIRECTORY -> COMPUTING_DIFF
        -> REVIEWING_PLAN <-> EDITING_EXCLUSIONS
        -> DOWNLOADING -> COMPLETED | FAILED

The orchestrator owns the manifest and the exclusion set. Every change to
the target directory, the manifest or the exclusions triggers a new diff
request. Diff requests carry increasing ids and only the result of the
latest one is shown, so a slow earlier request can never overwrite a newer
plan. Failures of the backend are turned into session state instead of
being raised to the caller.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from ..backend.base import SyncBackend, SyncRequest
from ..config import SettingsStore, remember_directory
from ..exceptions import ConfigError, ExclusionStoreError, SyncStateError
from ..manifest import Manifest, parse_manifest
from .diff import DiffFile
from .events import DownloadProgress, SyncEvent, Subscription
from .exclusions import ExclusionStore
from .progress import LogEntry, ProgressSink
from .tree import TreeNode, build_tree

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    """Phases of a sync session."""

    ACQUIRING_MANIFEST = "acquiring_manifest"
    AWAITING_DIRECTORY = "awaiting_directory"
    COMPUTING_DIFF = "computing_diff"
    REVIEWING_PLAN = "reviewing_plan"
    EDITING_EXCLUSIONS = "editing_exclusions"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SyncSession:
    """Observable state of one sync session. Never persisted."""

    manifest_url: Optional[str] = None
    manifest: Optional[Manifest] = None
    target_directory: Optional[str] = None
    exclusions: frozenset[str] = field(default_factory=frozenset)
    diff: list[DiffFile] = field(default_factory=list)
    tree: list[TreeNode] = field(default_factory=list)
    phase: SyncPhase = SyncPhase.ACQUIRING_MANIFEST
    progress: ProgressSink = field(default_factory=ProgressSink)
    error: Optional[str] = None
    """Terminal error text, set when phase is FAILED"""

    notice: Optional[str] = None
    """Recoverable problem shown to the user, e.g. unreadable exclusions"""

    @property
    def overall_progress(self) -> float:
        return self.progress.overall_progress

    @property
    def per_file_progress(self) -> dict[str, DownloadProgress]:
        return self.progress.per_file

    @property
    def log(self) -> list[LogEntry]:
        return self.progress.log


Observer = Callable[[SyncSession], None]

_EXCLUSION_EDIT_PHASES = (
    SyncPhase.COMPUTING_DIFF,
    SyncPhase.REVIEWING_PLAN,
    SyncPhase.EDITING_EXCLUSIONS,
)

_SETTLED_PHASES = (SyncPhase.DOWNLOADING, SyncPhase.COMPLETED, SyncPhase.FAILED)


class SyncOrchestrator:
    """Sequences manifest acquisition, diffing, exclusion edits and download.

    Examples:
        >>> orchestrator = SyncOrchestrator(LocalBackend())
        >>> await orchestrator.load_manifest("https://example.com/pack.json")
        >>> await orchestrator.select_directory("/games/pack")
        >>> await orchestrator.start_download()
        >>> orchestrator.session.phase
        <SyncPhase.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        backend: SyncBackend,
        settings: Optional[SettingsStore] = None,
        hash_check_override: Optional[bool] = None,
        size_check_override: Optional[bool] = None,
    ):
        """Initialize the orchestrator.

        Args:
            backend: Collaborator doing the actual work
            settings: Settings store for recent directories and check defaults
            hash_check_override: Disable hash checks; defaults to the
                ``disable_hash_check`` setting
            size_check_override: Disable size checks; defaults to the
                ``disable_size_check`` setting
        """
        self.backend = backend
        self.settings = settings
        if hash_check_override is None:
            hash_check_override = bool(self._setting("disable_hash_check", False))
        if size_check_override is None:
            size_check_override = bool(self._setting("disable_size_check", False))
        self.hash_check_override = hash_check_override
        self.size_check_override = size_check_override

        self.exclusions = ExclusionStore(backend)
        self.session = SyncSession()
        self._observers: list[Observer] = []
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._diff_request_id = 0
        self._directory_token = 0
        self._loaded_directory_token = 0

    # =========================================================================
    # Observers
    # =========================================================================

    def add_observer(self, callback: Observer) -> Callable[[], None]:
        """Register a callback invoked with the session after every change.

        Returns:
            Function removing the callback again
        """
        self._observers.append(callback)

        def remove() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return remove

    def _notify(self) -> None:
        for observer in list(self._observers):
            try:
                observer(self.session)
            except Exception as e:
                logger.error(f"Session observer failed: {e}")

    def _set_phase(self, phase: SyncPhase) -> None:
        if self.session.phase != phase:
            logger.debug(f"Phase {self.session.phase.value} -> {phase.value}")
        self.session.phase = phase
        self._notify()

    def _fail(self, message: str) -> None:
        logger.error(f"Sync failed: {message}")
        self.session.error = message
        self._set_phase(SyncPhase.FAILED)

    def _setting(self, key: str, default):
        if self.settings is None:
            return default
        value = self.settings.get(key, default)
        return default if value is None else value

    # =========================================================================
    # Manifest acquisition
    # =========================================================================

    async def load_manifest(self, url: str) -> None:
        """Start a new session for a manifest URL.

        On transport or validation failure the session enters FAILED with
        the error text verbatim.
        """
        self._ensure_not_downloading("load a manifest")
        self._start_new_session()
        generation = self._generation
        self.session.manifest_url = url
        self._set_phase(SyncPhase.ACQUIRING_MANIFEST)

        try:
            text = await self.backend.fetch_manifest_text(url)
            manifest = parse_manifest(text)
        except Exception as e:
            if generation != self._generation:
                return
            self._fail(str(e))
            return

        if generation != self._generation:
            logger.debug(f"Discarding manifest for {url}: session was reset")
            return

        logger.info(
            f"Loaded manifest {manifest.package_name} {manifest.version} "
            f"with {len(manifest.files)} files"
        )
        self.session.manifest = manifest
        self._set_phase(SyncPhase.AWAITING_DIRECTORY)

    # =========================================================================
    # Directory selection and diffing
    # =========================================================================

    async def select_directory(self, path: str) -> None:
        """Choose the target directory and compute the plan for it.

        The exclusion set of the directory is loaded first; a failed load is
        recorded as a notice and the diff proceeds with no exclusions. Diffs
        still running for a previous directory are invalidated right away,
        and exclusion edits are rejected until the new set has been loaded.
        """
        if self.session.manifest is None:
            raise SyncStateError("A manifest must be loaded before selecting a directory")
        self._ensure_not_downloading("change the target directory")

        self._directory_token += 1
        token = self._directory_token
        generation = self._generation
        self._diff_request_id += 1

        self.session.target_directory = path
        self.session.error = None
        self.session.notice = None
        self.session.exclusions = frozenset()
        self.session.diff = []
        self.session.tree = []
        self._remember(path)
        self._set_phase(SyncPhase.COMPUTING_DIFF)

        await self.exclusions.load(path)
        if token != self._directory_token or generation != self._generation:
            logger.debug(f"Discarding exclusion load for superseded directory {path}")
            return
        if self.session.phase in _SETTLED_PHASES:
            logger.debug(f"Ignoring exclusion load for {path} while {self.session.phase.value}")
            return
        self._loaded_directory_token = token

        if self.exclusions.last_error:
            self._add_notice(f"Could not load exclusions: {self.exclusions.last_error}")
        self.session.exclusions = self.exclusions.excluded

        await self._refresh_diff()

    def _remember(self, path: str) -> None:
        if self.settings is None:
            return
        try:
            remember_directory(self.settings, path)
        except ConfigError as e:
            logger.warning(f"Failed to remember directory {path}: {e}")
            self._add_notice(f"Could not remember directory: {e}")

    def _add_notice(self, message: str) -> None:
        if self.session.notice:
            self.session.notice = f"{self.session.notice}; {message}"
        else:
            self.session.notice = message

    def _build_request(self) -> SyncRequest:
        if self.session.manifest is None or self.session.target_directory is None:
            raise SyncStateError("Manifest and target directory are required")
        return SyncRequest(
            manifest=self.session.manifest,
            target_directory=self.session.target_directory,
            excluded_files=tuple(self.exclusions.sorted()),
            hash_check_override=self.hash_check_override,
            size_check_override=self.size_check_override,
        )

    async def _refresh_diff(self) -> None:
        self._diff_request_id += 1
        request_id = self._diff_request_id
        generation = self._generation
        request = self._build_request()
        self._set_phase(SyncPhase.COMPUTING_DIFF)

        try:
            diff = await self.backend.calculate_diff(request)
        except Exception as e:
            if request_id != self._diff_request_id or generation != self._generation:
                logger.debug(f"Ignoring failure of stale diff request {request_id}: {e}")
                return
            self._fail(str(e))
            return

        if request_id != self._diff_request_id or generation != self._generation:
            logger.debug(
                f"Discarding stale diff result {request_id} "
                f"(latest is {self._diff_request_id})"
            )
            return

        self.session.diff = list(diff)
        self.session.tree = build_tree(self.session.diff)
        logger.debug(f"Diff {request_id} produced {len(self.session.diff)} entries")
        self._set_phase(SyncPhase.REVIEWING_PLAN)

    # =========================================================================
    # Exclusion editing
    # =========================================================================

    def _begin_exclusion_edit(self) -> None:
        if self.session.target_directory is None:
            raise SyncStateError("Select a target directory before editing exclusions")
        if self.session.phase not in _EXCLUSION_EDIT_PHASES:
            raise SyncStateError(
                f"Exclusions cannot be edited while {self.session.phase.value}"
            )
        if self._loaded_directory_token != self._directory_token:
            raise SyncStateError("Exclusions are still loading for this directory")
        self._set_phase(SyncPhase.EDITING_EXCLUSIONS)

    async def _finish_exclusion_edit(self) -> None:
        self.session.exclusions = self.exclusions.excluded
        await self._refresh_diff()

    async def toggle_exclusion(self, path: str) -> None:
        self._begin_exclusion_edit()
        self.exclusions.toggle(path)
        await self._finish_exclusion_edit()

    async def add_exclusions(self, paths: list[str]) -> None:
        self._begin_exclusion_edit()
        self.exclusions.add(paths)
        await self._finish_exclusion_edit()

    async def remove_exclusion(self, path: str) -> None:
        self._begin_exclusion_edit()
        self.exclusions.remove(path)
        await self._finish_exclusion_edit()

    # =========================================================================
    # Download
    # =========================================================================

    async def start_download(self) -> None:
        """Persist exclusions and run the download pass.

        Per-file errors are logged in the session and do not abort the
        pass. The session ends COMPLETED when the backend resolves and
        FAILED when it raises or the exclusions cannot be saved.

        Raises:
            SyncStateError: If no reviewed plan is available
        """
        if self.session.phase != SyncPhase.REVIEWING_PLAN:
            raise SyncStateError(
                f"Download can only start from a reviewed plan, "
                f"not while {self.session.phase.value}"
            )
        target = self.session.target_directory
        if target is None:
            raise SyncStateError("No target directory selected")
        if self._loaded_directory_token != self._directory_token:
            raise SyncStateError("The plan for this directory is not ready yet")

        generation = self._generation
        request = self._build_request()

        try:
            await self.exclusions.save(target)
        except ExclusionStoreError as e:
            if generation == self._generation:
                self._fail(str(e))
            return
        if generation != self._generation:
            return

        self.session.progress.reset_progress()
        self.session.progress.clear_log()

        subscription = self.backend.subscribe(self._on_event)
        self._subscription = subscription
        self._set_phase(SyncPhase.DOWNLOADING)
        logger.info(f"Starting download into {target}")

        try:
            await self.backend.start_download(request)
        except Exception as e:
            subscription.unsubscribe()
            if generation == self._generation:
                self._subscription = None
                self._fail(str(e))
            return

        subscription.unsubscribe()
        if generation != self._generation:
            return
        self._subscription = None
        logger.info(
            f"Download finished with {self.session.progress.error_count} errors"
        )
        self._set_phase(SyncPhase.COMPLETED)

    def _on_event(self, event: SyncEvent) -> None:
        if self.session.phase != SyncPhase.DOWNLOADING:
            return
        if self.session.progress.handle(event):
            self._notify()

    # =========================================================================
    # Navigation
    # =========================================================================

    def reset(self) -> None:
        """Abandon the current session and return to a fresh state."""
        self._start_new_session()
        self._notify()

    def _start_new_session(self) -> None:
        self._generation += 1
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self.exclusions.clear()
        self.session = SyncSession()

    def _ensure_not_downloading(self, action: str) -> None:
        if self.session.phase == SyncPhase.DOWNLOADING:
            raise SyncStateError(f"Cannot {action} while a download is running")
