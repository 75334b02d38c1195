from rest_framework import serializers

from orders.models import Order


class UpdateOrderStatusSerializer(serializers.Serializer):
    """
    Serializer specifically for validating an order status change request.
    Transition rules are enforced by OrderService.
    """

    status = serializers.ChoiceField(choices=Order.OrderStatus.choices)


class RejectOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
