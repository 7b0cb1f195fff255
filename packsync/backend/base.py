"""Contract between the sync workflow and the service doing the actual work."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from ..manifest import Manifest

if TYPE_CHECKING:
    from ..sync.diff import DiffFile
    from ..sync.events import Listener, Subscription


@dataclass(frozen=True)
class SyncRequest:
    """Parameters shared by diff calculation and download."""

    manifest: Manifest
    """Manifest to sync against"""

    target_directory: str
    """Local directory the sync operates on"""

    excluded_files: tuple[str, ...] = field(default_factory=tuple)
    """Relative paths left untouched"""

    hash_check_override: bool = False
    """Disable hash comparison regardless of the manifest setting"""

    size_check_override: bool = False
    """Disable size comparison regardless of the manifest setting"""

    @property
    def disable_hash_check(self) -> bool:
        return self.hash_check_override or bool(self.manifest.disable_hash_check)

    @property
    def disable_size_check(self) -> bool:
        return self.size_check_override or bool(self.manifest.disable_size_check)


class SyncBackend(Protocol):
    """Collaborator performing network, filesystem and archive work.

    All operations are coroutines. ``start_download`` reports progress by
    pushing events to listeners registered through ``subscribe`` and
    returns once every file has finished or failed.
    """

    async def fetch_manifest_text(self, url: str) -> str: ...

    async def calculate_diff(self, request: SyncRequest) -> list[DiffFile]: ...

    async def load_exclusion_list(self, target_dir: str) -> list[str]: ...

    async def save_exclusion_list(self, target_dir: str, excluded: list[str]) -> None: ...

    def subscribe(self, listener: Listener) -> Subscription: ...

    async def start_download(self, request: SyncRequest) -> None: ...
