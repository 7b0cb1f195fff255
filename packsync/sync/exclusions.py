"""Exclusion set management for a target directory."""

import logging
from typing import TYPE_CHECKING, Iterable, Optional

from ..exceptions import ExclusionStoreError
from ..utils import normalize_relative_path

if TYPE_CHECKING:
    from ..backend.base import SyncBackend

logger = logging.getLogger(__name__)


class ExclusionStore:
    """Holds the exclusion set of the current target directory.

    Mutations are in-memory only. The set is read from and written to the
    backend through :meth:`load` and :meth:`save`.
    """

    def __init__(self, backend: "SyncBackend"):
        """Initialize the store.

        Args:
            backend: Collaborator providing load/save of exclusion lists
        """
        self.backend = backend
        self._excluded: set[str] = set()
        self._load_token = 0
        self.last_error: Optional[str] = None
        """Message of the last failed load, cleared on a successful one"""

    @property
    def excluded(self) -> frozenset[str]:
        return frozenset(self._excluded)

    def sorted(self) -> list[str]:
        return sorted(self._excluded)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and normalize_relative_path(path) in self._excluded

    def __len__(self) -> int:
        return len(self._excluded)

    async def load(self, target_dir: str) -> set[str]:
        """Load the persisted exclusion set of a directory.

        A failed load is not fatal: the set falls back to empty and the
        error message is kept in ``last_error``.

        When loads overlap, only the most recently started one updates the
        store; earlier ones still return their own result.

        Args:
            target_dir: Target directory

        Returns:
            The set loaded for target_dir
        """
        self._load_token += 1
        token = self._load_token
        try:
            paths = await self.backend.load_exclusion_list(target_dir)
        except Exception as e:
            logger.warning(f"Failed to load exclusions for {target_dir}: {e}")
            if token == self._load_token:
                self.last_error = str(e)
                self._excluded = set()
            return set()

        loaded = {normalize_relative_path(p) for p in paths}
        if token != self._load_token:
            logger.debug(f"Ignoring superseded exclusion load for {target_dir}")
            return loaded

        self.last_error = None
        self._excluded = set(loaded)
        logger.debug(f"Loaded {len(loaded)} exclusions for {target_dir}")
        return loaded

    async def save(self, target_dir: str) -> None:
        """Persist the current set.

        Raises:
            ExclusionStoreError: If the backend fails to save
        """
        try:
            await self.backend.save_exclusion_list(target_dir, self.sorted())
        except ExclusionStoreError:
            raise
        except Exception as e:
            raise ExclusionStoreError(f"Failed to save exclusion list: {e}") from e
        logger.debug(f"Saved {len(self._excluded)} exclusions for {target_dir}")

    def toggle(self, path: str) -> bool:
        """Flip membership of a path.

        Returns:
            True if the path is excluded afterwards
        """
        path = normalize_relative_path(path)
        if path in self._excluded:
            self._excluded.discard(path)
            return False
        self._excluded.add(path)
        return True

    def add(self, paths: Iterable[str]) -> None:
        self._excluded.update(normalize_relative_path(p) for p in paths)

    def remove(self, path: str) -> None:
        self._excluded.discard(normalize_relative_path(path))

    def clear(self) -> None:
        """Empty the set and invalidate loads still in flight."""
        self._load_token += 1
        self._excluded.clear()
        self.last_error = None
