import logging

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from orders.filters import OrderFilter
from orders.serializers import (
    OrderCreateSerializer,
    OrderItemSerializer,
    OrderListSerializer,
    OrderSerializer,
    RejectOrderSerializer,
    UpdateOrderStatusSerializer,
)
from orders.services import OrderService
from users.permissions import Capability, CapabilityPermission

logger = logging.getLogger(__name__)


class OrderViewSet(viewsets.GenericViewSet):
    """
    Orders for the actor making the request, plus the staff actions that
    move them through the kitchen. All business rules live in OrderService;
    its exceptions are rendered by the project exception handler.
    """

    permission_classes = [CapabilityPermission]
    serializer_class = OrderSerializer
    action_capabilities = {
        "create": Capability.PLACE_ORDER,
        "accept": Capability.TRIAGE_ORDERS,
        "reject": Capability.TRIAGE_ORDERS,
        "all_orders": Capability.VIEW_ALL_ORDERS,
    }

    def get_serializer_class(self):
        if self.action == "create":
            return OrderCreateSerializer
        if self.action in ("list", "all_orders"):
            return OrderListSerializer
        if self.action == "update_status":
            return UpdateOrderStatusSerializer
        if self.action == "reject":
            return RejectOrderSerializer
        return OrderSerializer

    def create(self, request: Request) -> Response:
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = OrderService.create_order(
            actor=request.user,
            table_id=data.get("table_id"),
            items=data["items"],
            special_instructions=data.get("special_instructions"),
        )
        order = OrderService.get_order_for_actor(order.id, request.user)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    def list(self, request: Request) -> Response:
        orders = OrderService.list_orders_for_actor(request.user)
        return Response(OrderListSerializer(orders, many=True).data)

    def retrieve(self, request: Request, pk=None) -> Response:
        order = OrderService.get_order_for_actor(pk, request.user)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["patch"], url_path="status")
    def update_status(self, request: Request, pk=None) -> Response:
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order, previous_status = OrderService.update_status(
            pk, serializer.validated_data["status"], request.user
        )
        return self._status_response(order, previous_status)

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request: Request, pk=None) -> Response:
        order, previous_status = OrderService.cancel_order(pk, request.user)
        return self._status_response(order, previous_status)

    @action(detail=True, methods=["post"], url_path="accept")
    def accept(self, request: Request, pk=None) -> Response:
        order, previous_status = OrderService.accept_order(pk, request.user)
        return self._status_response(order, previous_status)

    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request: Request, pk=None) -> Response:
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderService.reject_order(
            pk, request.user, reason=serializer.validated_data.get("reason")
        )
        return self._status_response(order, "pending")

    @action(detail=False, methods=["get"], url_path="all")
    def all_orders(self, request: Request) -> Response:
        orders = OrderService.list_all_orders(request.query_params.get("status"))
        orders = OrderFilter(request.query_params, queryset=orders).qs
        return Response(OrderListSerializer(orders, many=True).data)

    def _status_response(self, order, previous_status) -> Response:
        order = OrderService.get_order_for_actor(order.id, self.request.user)
        data = OrderSerializer(order).data
        data["previous_status"] = previous_status
        return Response(data, status=status.HTTP_200_OK)


class OrderItemViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """Read-only items of an order the actor can see."""

    permission_classes = [CapabilityPermission]
    serializer_class = OrderItemSerializer

    def get_queryset(self):
        order = OrderService.get_order_for_actor(self.kwargs["order_pk"], self.request.user)
        return order.items.select_related("menu_item").prefetch_related(
            "modifiers__modifier_option"
        )
