"""Events pushed by a backend during a download pass."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)


class EventName(str, Enum):
    """Names of pushed events."""

    OVERALL_PROGRESS = "OVERALL_PROGRESS"
    """Payload: float percentage of files finished"""

    DOWNLOAD_PROGRESS = "DOWNLOAD_PROGRESS"
    """Payload: DownloadProgress for one file"""

    DOWNLOAD_SUCCESS = "DOWNLOAD_SUCCESS"
    """Payload: name of the finished file"""

    DOWNLOAD_ERROR = "DOWNLOAD_ERROR"
    """Payload: error message"""


@dataclass(frozen=True)
class DownloadProgress:
    """Byte progress of a single file."""

    file: str
    downloaded: int
    total: int
    progress: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "downloaded": self.downloaded,
            "total": self.total,
            "progress": self.progress,
        }


EventPayload = Union[float, str, DownloadProgress]


@dataclass(frozen=True)
class SyncEvent:
    """A pushed event with its bus sequence number."""

    name: EventName
    payload: EventPayload
    sequence: int = 0


Listener = Callable[[SyncEvent], None]


class Subscription:
    """Handle returned by :meth:`EventBus.listen`.

    ``unsubscribe`` detaches the listener the first time it is called and
    does nothing afterwards.
    """

    def __init__(self, detach: Callable[[], None]):
        self._detach: Optional[Callable[[], None]] = detach

    @property
    def active(self) -> bool:
        return self._detach is not None

    def unsubscribe(self) -> None:
        detach, self._detach = self._detach, None
        if detach is not None:
            detach()


class EventBus:
    """Dispatches events to listeners in registration order.

    Every emitted event is stamped with a monotonically increasing sequence
    number.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._sequence = 0

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def listen(self, listener: Listener) -> Subscription:
        self._listeners.append(listener)

        def detach() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(detach)

    def emit(self, name: EventName, payload: EventPayload) -> SyncEvent:
        self._sequence += 1
        event = SyncEvent(name=name, payload=payload, sequence=self._sequence)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Listener failed on {name.value}: {e}")
        return event
