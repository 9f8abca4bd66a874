"""
Upload progress events.

Listeners register explicitly and receive every UploadEvent in publish
order. A failing listener is logged and never affects the job or the
other listeners.
"""

import itertools
import threading
from typing import Any, Callable, Optional

import structlog

from models.upload_job import UploadEvent, UploadStatus

logger = structlog.get_logger(__name__)

Listener = Callable[[UploadEvent], None]


class UploadEventBus:
    """Synchronous observer registry with per-bus sequence numbers."""

    def __init__(self):
        self._listeners: list[Listener] = []
        self._sequence = itertools.count(1)
        # Held while delivering so listeners see events in sequence order
        self._lock = threading.RLock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            Function that removes the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(
        self,
        upload_id: str,
        status: UploadStatus,
        progress: int = 0,
        message: str = "",
        detail: Optional[dict[str, Any]] = None
    ) -> UploadEvent:
        with self._lock:
            event = UploadEvent(
                sequence=next(self._sequence),
                upload_id=upload_id,
                status=status,
                progress=progress,
                message=message,
                detail=detail or {}
            )
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception as e:
                    logger.error(
                        "upload_event_listener_failed",
                        upload_id=upload_id,
                        sequence=event.sequence,
                        error=str(e),
                        error_type=type(e).__name__
                    )
        return event

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
