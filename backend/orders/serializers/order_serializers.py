from rest_framework import serializers

from orders.models import Order, OrderItem, OrderItemModifier


class OrderItemModifierSerializer(serializers.ModelSerializer):
    option_name = serializers.CharField(source="modifier_option.name", read_only=True)

    class Meta:
        model = OrderItemModifier
        fields = ["id", "modifier_group", "modifier_option", "option_name", "price_adjustment"]
        read_only_fields = fields


class OrderItemSerializer(serializers.ModelSerializer):
    menu_item_name = serializers.CharField(source="menu_item.name", read_only=True)
    modifiers = OrderItemModifierSerializer(many=True, read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "menu_item",
            "menu_item_name",
            "quantity",
            "unit_price",
            "total_price",
            "special_instructions",
            "modifiers",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Compact representation for order lists; expects an ``item_count`` annotation."""

    item_count = serializers.IntegerField(read_only=True)
    can_cancel = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "table_id",
            "status",
            "total_amount",
            "item_count",
            "can_cancel",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    can_cancel = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "user",
            "session_id",
            "table_id",
            "status",
            "total_amount",
            "special_instructions",
            "rejection_reason",
            "accepted_by",
            "can_cancel",
            "items",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OrderItemInputSerializer(serializers.Serializer):
    menu_item_id = serializers.IntegerField()
    quantity = serializers.IntegerField(
        min_value=1, max_value=OrderItem.MAX_QUANTITY, default=1
    )
    modifier_option_ids = serializers.ListField(
        child=serializers.IntegerField(), required=False, default=list
    )
    special_instructions = serializers.CharField(
        required=False, allow_blank=True, default=""
    )


class OrderCreateSerializer(serializers.Serializer):
    table_id = serializers.CharField(required=False, allow_blank=True, max_length=64)
    items = OrderItemInputSerializer(many=True, allow_empty=False)
    special_instructions = serializers.CharField(
        required=False, allow_blank=True, default=""
    )
