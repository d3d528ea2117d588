"""Keeps one orchestrator (and its toast channel) per widget instance."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from askai.services.notifier import Notification, Notifier, ToastChannel

from .contracts import FlowVariant
from .service import QueryOrchestrator

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[FlowVariant, Notifier], QueryOrchestrator]


@dataclass
class WidgetSlot:
    orchestrator: QueryOrchestrator
    toasts: ToastChannel


def _log_notification(notification: Notification) -> None:
    logger.info(
        "Notify [%s] %s: %s",
        notification.variant,
        notification.title,
        notification.description[:120],
    )


class OrchestratorRegistry:
    def __init__(self, factory: OrchestratorFactory, *, max_widgets: int = 1000) -> None:
        self._factory = factory
        self._max_widgets = max(1, int(max_widgets))
        self._slots: OrderedDict[tuple[FlowVariant, str], WidgetSlot] = OrderedDict()

    def __len__(self) -> int:
        return len(self._slots)

    def peek(self, variant: FlowVariant, widget_id: str) -> WidgetSlot | None:
        return self._slots.get((variant, widget_id))

    def get(self, variant: FlowVariant, widget_id: str) -> WidgetSlot:
        key = (variant, widget_id)
        slot = self._slots.get(key)
        if slot is not None:
            self._slots.move_to_end(key)
            return slot

        toasts = ToastChannel()
        notifier = Notifier(toasts, _log_notification)
        slot = WidgetSlot(orchestrator=self._factory(variant, notifier), toasts=toasts)
        self._slots[key] = slot
        self._evict(keep=key)
        return slot

    def _evict(self, *, keep: tuple[FlowVariant, str]) -> None:
        # Busy widgets are never evicted.
        while len(self._slots) > self._max_widgets:
            victim = next(
                (key for key, slot in self._slots.items() if key != keep and not slot.orchestrator.busy),
                None,
            )
            if victim is None:
                return
            del self._slots[victim]
            logger.debug("Evicted idle widget %s/%s", victim[0].value, victim[1])
