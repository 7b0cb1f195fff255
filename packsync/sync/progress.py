"""Accumulates download events into observable progress and log state."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .events import DownloadProgress, EventName, SyncEvent

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    """Outcome of a single file, in arrival order."""

    level: LogLevel
    message: str
    sequence: int = 0

    @property
    def is_error(self) -> bool:
        return self.level == LogLevel.ERROR


def _clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


@dataclass
class ProgressSink:
    """Passive accumulator for download events.

    Overall progress is last-write-wins by event sequence and clamped to
    0-100. Log entries are appended in arrival order and never reordered or
    deduplicated. Per-file progress keeps the latest update per file name.
    """

    overall_progress: float = 0.0
    per_file: dict[str, DownloadProgress] = field(default_factory=dict)
    log: list[LogEntry] = field(default_factory=list)
    stale_updates: int = 0
    """Overall-progress events dropped because a newer one was applied"""

    _last_overall_sequence: int = field(default=0, repr=False)

    @property
    def error_count(self) -> int:
        return sum(1 for entry in self.log if entry.is_error)

    @property
    def success_count(self) -> int:
        return sum(1 for entry in self.log if not entry.is_error)

    def reset(self) -> None:
        """Clear progress, per-file state and the log."""
        self.reset_progress()
        self.clear_log()

    def reset_progress(self) -> None:
        self.overall_progress = 0.0
        self.per_file.clear()
        self.stale_updates = 0
        self._last_overall_sequence = 0

    def clear_log(self) -> None:
        self.log.clear()

    def handle(self, event: SyncEvent) -> bool:
        """Fold an event into the sink.

        Args:
            event: Event pushed by the backend

        Returns:
            True if the event changed the sink state
        """
        if event.name == EventName.OVERALL_PROGRESS:
            return self._apply_overall(event)

        if event.name == EventName.DOWNLOAD_PROGRESS:
            payload = event.payload
            if not isinstance(payload, DownloadProgress):
                logger.warning(f"Ignoring malformed progress payload: {payload!r}")
                return False
            self.per_file[payload.file] = payload
            return True

        if event.name == EventName.DOWNLOAD_SUCCESS:
            self.log.append(LogEntry(LogLevel.SUCCESS, str(event.payload), event.sequence))
            return True

        if event.name == EventName.DOWNLOAD_ERROR:
            self.log.append(LogEntry(LogLevel.ERROR, str(event.payload), event.sequence))
            return True

        return False

    def _apply_overall(self, event: SyncEvent) -> bool:
        try:
            value = float(event.payload)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed overall progress: {event.payload!r}")
            return False

        if event.sequence and event.sequence < self._last_overall_sequence:
            self.stale_updates += 1
            logger.debug(
                f"Dropping stale overall progress {value} "
                f"(seq {event.sequence} < {self._last_overall_sequence})"
            )
            return False

        self._last_overall_sequence = event.sequence
        self.overall_progress = _clamp_percent(value)
        return True

    def latest_file(self) -> Optional[DownloadProgress]:
        if not self.per_file:
            return None
        return next(reversed(list(self.per_file.values())))
