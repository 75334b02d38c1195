"""
The only way business logic talks to the real-time layer.

Services hand committed orders to a :class:`Notifier`; which topics an event
goes to is decided here by :func:`route`, and how it is delivered is up to
the implementation. ``get_notifier()`` returns the one selected by the
``ORDER_NOTIFIER`` setting.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

from django.conf import settings

from . import topics

logger = logging.getLogger(__name__)

ORDER_CREATED = "order.created"
ORDER_ACCEPTED = "order.accepted"
ORDER_REJECTED = "order.rejected"
ORDER_STATUS_CHANGED = "order.status_changed"

EVENT_ROLES = {
    ORDER_CREATED: ("waiter", "kitchen", "admin", "super_admin"),
    ORDER_ACCEPTED: ("kitchen", "admin"),
    ORDER_REJECTED: (),
    ORDER_STATUS_CHANGED: ("waiter", "kitchen", "admin"),
}

# Events the order owner receives on their personal topic
OWNER_EVENTS = {ORDER_ACCEPTED, ORDER_REJECTED, ORDER_STATUS_CHANGED}

# Events also mirrored to the explicit table/order topics clients can join
SCOPED_EVENTS = {ORDER_CREATED, ORDER_ACCEPTED, ORDER_STATUS_CHANGED}


def route(event: str, order) -> List[str]:
    """Topics that should receive ``event`` for ``order``, without duplicates."""
    targets = [topics.role_topic(role) for role in EVENT_ROLES[event]]

    if event in OWNER_EVENTS:
        owner = topics.owner_topic(order)
        if owner:
            targets.append(owner)

    if event in SCOPED_EVENTS:
        if order.table_id:
            targets.append(topics.table_topic(order.table_id))
        targets.append(topics.order_topic(order.pk))

    return list(dict.fromkeys(targets))


def order_payload(order) -> dict:
    return {
        "id": str(order.pk),
        "status": order.status,
        "table_id": order.table_id,
        "total_amount": str(order.total_amount),
        "user_id": order.user_id,
        "session_id": order.session_id,
        "rejection_reason": order.rejection_reason,
        "can_cancel": order.can_cancel,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }


class Notifier(ABC):
    @abstractmethod
    def order_created(self, order) -> None: ...

    @abstractmethod
    def order_accepted(self, order) -> None: ...

    @abstractmethod
    def order_rejected(self, order) -> None: ...

    @abstractmethod
    def order_status_changed(self, order, previous_status: str) -> None: ...


class ChannelsNotifier(Notifier):
    """Delivers events through the connection registry to live WebSocket clients."""

    def __init__(self, registry=None):
        if registry is None:
            from .registry import connection_registry

            registry = connection_registry
        self.registry = registry

    def _send(self, event, order, previous_status=None):
        payload = {"order": order_payload(order), "previous_status": previous_status}
        for topic in route(event, order):
            self.registry.broadcast(topic, event, payload)
        logger.info(f"Published {event} for order {order.pk}")

    def order_created(self, order):
        self._send(ORDER_CREATED, order)

    def order_accepted(self, order):
        self._send(ORDER_ACCEPTED, order)

    def order_rejected(self, order):
        self._send(ORDER_REJECTED, order)

    def order_status_changed(self, order, previous_status):
        self._send(ORDER_STATUS_CHANGED, order, previous_status)


@dataclass(frozen=True)
class NotificationRecord:
    event: str
    order_id: str
    status: str
    previous_status: Optional[str]
    topics: Tuple[str, ...]


class RecordingNotifier(Notifier):
    """Keeps every event in memory. Used by the test suite and local development."""

    def __init__(self):
        self.records: List[NotificationRecord] = []
        self._lock = threading.Lock()

    def _record(self, event, order, previous_status=None):
        record = NotificationRecord(
            event=event,
            order_id=str(order.pk),
            status=order.status,
            previous_status=previous_status,
            topics=tuple(route(event, order)),
        )
        with self._lock:
            self.records.append(record)

    def order_created(self, order):
        self._record(ORDER_CREATED, order)

    def order_accepted(self, order):
        self._record(ORDER_ACCEPTED, order)

    def order_rejected(self, order):
        self._record(ORDER_REJECTED, order)

    def order_status_changed(self, order, previous_status):
        self._record(ORDER_STATUS_CHANGED, order, previous_status)

    def events(self, event=None):
        if event is None:
            return list(self.records)
        return [r for r in self.records if r.event == event]

    def clear(self):
        with self._lock:
            self.records.clear()


NOTIFIER_BACKENDS = {
    "channels": ChannelsNotifier,
    "recording": RecordingNotifier,
}

_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        backend = getattr(settings, "ORDER_NOTIFIER", "channels")
        try:
            _notifier = NOTIFIER_BACKENDS[backend]()
        except KeyError:
            raise ValueError(f"Unknown ORDER_NOTIFIER backend: {backend!r}")
    return _notifier


def set_notifier(notifier: Notifier) -> None:
    global _notifier
    _notifier = notifier


def reset_notifier() -> None:
    global _notifier
    _notifier = None
