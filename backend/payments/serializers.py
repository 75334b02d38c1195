from rest_framework import serializers

from orders.models import Order
from .models import Payment, PaymentOrderLink


class BillableOrderSerializer(serializers.ModelSerializer):
    """A served order awaiting payment; ``open_payment_id`` is set by the billing query."""

    open_payment_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "table_id",
            "status",
            "total_amount",
            "open_payment_id",
            "created_at",
        ]
        read_only_fields = fields


class BillingInfoSerializer(serializers.Serializer):
    orders = BillableOrderSerializer(many=True, read_only=True)
    order_count = serializers.IntegerField(read_only=True)
    total_amount = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)


class PaymentOrderLinkSerializer(serializers.ModelSerializer):
    order_status = serializers.CharField(source="order.status", read_only=True)

    class Meta:
        model = PaymentOrderLink
        fields = ["order", "order_status", "amount", "settled"]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    orders = PaymentOrderLinkSerializer(source="order_links", many=True, read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "table_id",
            "total_amount",
            "method",
            "status",
            "processor_intent_id",
            "failure_reason",
            "settled_by",
            "notes",
            "orders",
            "created_at",
            "updated_at",
            "completed_at",
        ]
        read_only_fields = fields


class CreatePaymentSerializer(serializers.Serializer):
    order_ids = serializers.ListField(
        child=serializers.CharField(max_length=64), allow_empty=False
    )
    method = serializers.ChoiceField(choices=Payment.PaymentMethod.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ConfirmPaymentSerializer(serializers.Serializer):
    intent_id = serializers.CharField(max_length=255)


class ChargeSavedInstrumentSerializer(serializers.Serializer):
    instrument_id = serializers.CharField(max_length=255)


class CashPaymentSerializer(serializers.Serializer):
    payment_id = serializers.UUIDField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")
