from .order_serializers import (
    OrderCreateSerializer,
    OrderItemInputSerializer,
    OrderItemModifierSerializer,
    OrderItemSerializer,
    OrderListSerializer,
    OrderSerializer,
)
from .status_serializers import RejectOrderSerializer, UpdateOrderStatusSerializer

__all__ = [
    'OrderCreateSerializer',
    'OrderItemInputSerializer',
    'OrderItemModifierSerializer',
    'OrderItemSerializer',
    'OrderListSerializer',
    'OrderSerializer',
    'RejectOrderSerializer',
    'UpdateOrderStatusSerializer',
]
