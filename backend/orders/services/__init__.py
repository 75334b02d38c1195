"""
Orders services package.

- OrderService: order lifecycle (create, status transitions, completion on settlement)
"""

from .order_service import OrderService, DEFAULT_REJECTION_REASON

__all__ = [
    'OrderService',
    'DEFAULT_REJECTION_REASON',
]
