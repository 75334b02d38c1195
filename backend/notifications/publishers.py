import logging

from django.db import transaction

from .notifier import get_notifier

logger = logging.getLogger(__name__)


def publish_after_commit(callback, description="notification"):
    """
    Run ``callback`` once the current transaction commits.

    Outside an atomic block Django runs it immediately. If the transaction
    rolls back it never runs. A failing callback is logged and dropped:
    notifications never undo or retry the state change that caused them.
    """

    def _send():
        try:
            callback()
        except Exception as e:
            logger.error(f"Error sending {description}: {e}", exc_info=True)

    transaction.on_commit(_send)


class OrderEventPublisher:
    """Centralized event publishing for order lifecycle events"""

    @staticmethod
    def order_created(order):
        logger.info(f"Publishing order.created for order {order.pk}")
        publish_after_commit(
            lambda: get_notifier().order_created(order), "order.created"
        )

    @staticmethod
    def order_accepted(order):
        logger.info(f"Publishing order.accepted for order {order.pk}")
        publish_after_commit(
            lambda: get_notifier().order_accepted(order), "order.accepted"
        )

    @staticmethod
    def order_rejected(order):
        logger.info(f"Publishing order.rejected for order {order.pk}")
        publish_after_commit(
            lambda: get_notifier().order_rejected(order), "order.rejected"
        )

    @staticmethod
    def order_status_changed(order, previous_status):
        logger.info(
            f"Publishing order.status_changed for order {order.pk}: {previous_status} -> {order.status}"
        )
        publish_after_commit(
            lambda: get_notifier().order_status_changed(order, previous_status),
            "order.status_changed",
        )
