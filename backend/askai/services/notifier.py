"""Transient toast notifications for the widget UI.

``Notifier.notify`` is fire-and-forget: it never awaits and never raises.
Each widget owns a bounded ``ToastChannel`` that the HTTP layer drains and
hands back to the browser.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ANSWER_TOAST_MS = 10_000
ERROR_TOAST_MS = 5_000
DEFAULT_TOAST_MS = 5_000
MAX_PENDING_TOASTS = 20


class NotificationKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: str  # default | destructive
    duration_ms: int

    def to_dict(self) -> dict:
        return asdict(self)


NotificationSink = Callable[[Notification], None]

_DEFAULT_TITLES = {
    NotificationKind.SUCCESS: "Success",
    NotificationKind.ERROR: "Error",
}


class ToastChannel:
    """Bounded FIFO of notifications waiting to be shown; oldest dropped first."""

    def __init__(self, maxlen: int = MAX_PENDING_TOASTS) -> None:
        self._items: deque[Notification] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def __call__(self, notification: Notification) -> None:
        with self._lock:
            self._items.append(notification)

    def __len__(self) -> int:
        return len(self._items)

    def drain(self) -> list[Notification]:
        with self._lock:
            items = list(self._items)
            self._items.clear()
        return items


class Notifier:
    def __init__(self, *sinks: NotificationSink) -> None:
        self._sinks: list[NotificationSink] = list(sinks)

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    def notify(
        self,
        kind: NotificationKind,
        message: str,
        duration_ms: int = DEFAULT_TOAST_MS,
        *,
        title: Optional[str] = None,
    ) -> None:
        try:
            notification = Notification(
                title=title or _DEFAULT_TITLES.get(kind, "Notice"),
                description=str(message),
                variant="destructive" if kind == NotificationKind.ERROR else "default",
                duration_ms=int(duration_ms),
            )
        except Exception:
            logger.warning("Could not build notification", exc_info=True)
            return

        for sink in self._sinks:
            try:
                sink(notification)
            except Exception:
                logger.warning("Notification sink %r failed", sink, exc_info=True)
