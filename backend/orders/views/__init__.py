from .order_viewset import OrderItemViewSet, OrderViewSet

__all__ = ['OrderViewSet', 'OrderItemViewSet']
