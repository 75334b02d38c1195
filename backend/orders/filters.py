import django_filters

from .models import Order


class OrderFilter(django_filters.FilterSet):
    """
    Extra filters for the staff order board.

    ``status`` is handled by OrderService.list_all_orders because "all" is a
    valid value there.
    """

    table_id = django_filters.CharFilter(field_name="table_id")
    created_at__gte = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_at__lte = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = ["table_id"]
