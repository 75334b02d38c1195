import logging
import uuid
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from core_backend.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from menu.catalog import CatalogService
from notifications.publishers import OrderEventPublisher
from orders.models import Order, OrderItem, OrderItemModifier
from payments.money import ensure_storable, line_total, quantize, sum_amounts
from users.permissions import Capability, authorize, has_capability

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "No reason provided"


class OrderService:
    """Order lifecycle - placing orders and moving them through the kitchen pipeline."""

    # Valid status transitions for order state machine
    VALID_STATUS_TRANSITIONS = {
        Order.OrderStatus.PENDING: [
            Order.OrderStatus.ACCEPTED,
            Order.OrderStatus.REJECTED,
            Order.OrderStatus.CANCELLED,
        ],
        Order.OrderStatus.ACCEPTED: [
            Order.OrderStatus.PREPARING,
            Order.OrderStatus.CANCELLED,
        ],
        Order.OrderStatus.PREPARING: [Order.OrderStatus.READY],
        Order.OrderStatus.READY: [Order.OrderStatus.SERVED],
        # Only reachable through payment settlement (mark_completed)
        Order.OrderStatus.SERVED: [Order.OrderStatus.COMPLETED],
        Order.OrderStatus.REJECTED: [],
        Order.OrderStatus.CANCELLED: [],
        Order.OrderStatus.COMPLETED: [],
    }

    # ------------------------------------------------------------------
    # Placing orders
    # ------------------------------------------------------------------

    @staticmethod
    def create_order(actor, table_id, items, special_instructions=None) -> Order:
        """
        Validates the requested items against the menu, prices them and
        persists the order with its items and modifiers in one transaction.

        Each entry of ``items`` is a mapping with ``menu_item_id``,
        ``quantity`` and optionally ``modifier_option_ids`` and
        ``special_instructions``.

        Raises:
            ValidationError: unknown or unavailable item or modifier, bad quantity,
                empty order, or no table.
        """
        authorize(actor, Capability.PLACE_ORDER)

        table_id = table_id or actor.table_id
        if not table_id:
            raise ValidationError("A table is required to place an order.")

        if not items:
            raise ValidationError("An order must contain at least one item.")

        priced_lines = [OrderService._price_line(line) for line in items]
        total = ensure_storable(
            sum_amounts(line["total_price"] for line in priced_lines), "Order total"
        )

        order = OrderService._persist_order(
            actor, str(table_id), priced_lines, total, special_instructions or ""
        )

        logger.info(
            f"Order {order.id} created for table {order.table_id}: {len(priced_lines)} lines, total {order.total_amount}"
        )
        return order

    @staticmethod
    def _price_line(line) -> dict:
        menu_item_id = line.get("menu_item_id")
        quantity = line.get("quantity", 1)

        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError("Quantity must be a whole number of at least 1.")
        if quantity > OrderItem.MAX_QUANTITY:
            raise ValidationError(f"At most {OrderItem.MAX_QUANTITY} of one item per order line.")

        menu_item = CatalogService.get_menu_item(menu_item_id)
        if menu_item is None:
            raise ValidationError(f"Menu item {menu_item_id} does not exist.")
        if not menu_item.is_available:
            raise ValidationError(f"{menu_item.name} is not available.")

        modifiers = []
        option_ids = line.get("modifier_option_ids") or []
        if len(set(option_ids)) != len(option_ids):
            raise ValidationError("A modifier option may only be chosen once per item.")

        for option_id in option_ids:
            option = CatalogService.get_modifier_option(option_id)
            if option is None:
                raise ValidationError(f"Modifier option {option_id} does not exist.")
            if option.menu_item_id != menu_item.id:
                raise ValidationError(
                    f"Modifier {option.name} does not apply to {menu_item.name}."
                )
            if not option.is_available:
                raise ValidationError(f"Modifier {option.name} is not available.")
            modifiers.append(option)

        unit_price = ensure_storable(
            quantize(menu_item.price + sum((m.price_adjustment for m in modifiers), Decimal("0"))),
            "Item price",
        )

        return {
            "menu_item_id": menu_item.id,
            "quantity": quantity,
            "unit_price": unit_price,
            "total_price": ensure_storable(line_total(unit_price, quantity), "Line total"),
            "special_instructions": line.get("special_instructions") or "",
            "modifiers": modifiers,
        }

    @staticmethod
    @transaction.atomic
    def _persist_order(actor, table_id, priced_lines, total, special_instructions) -> Order:
        order = Order.objects.create(
            table_id=table_id,
            status=Order.OrderStatus.PENDING,
            total_amount=total,
            special_instructions=special_instructions,
            **actor.owner_fields(),
        )

        for line in priced_lines:
            order_item = OrderItem.objects.create(
                order=order,
                menu_item_id=line["menu_item_id"],
                quantity=line["quantity"],
                unit_price=line["unit_price"],
                total_price=line["total_price"],
                special_instructions=line["special_instructions"],
            )
            OrderItemModifier.objects.bulk_create(
                [
                    OrderItemModifier(
                        order_item=order_item,
                        modifier_group_id=option.group_id,
                        modifier_option_id=option.id,
                        price_adjustment=option.price_adjustment,
                    )
                    for option in line["modifiers"]
                ]
            )

        OrderEventPublisher.order_created(order)
        return order

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    @staticmethod
    def _transition(order: Order, new_status: str, **fields) -> str:
        """
        Move ``order`` to ``new_status`` with a compare-and-swap write.

        The UPDATE only matches while the row still has the status that was
        read, so a concurrent writer that got there first makes this one fail
        instead of being silently overwritten. Returns the previous status.
        """
        previous_status = order.status

        if new_status not in OrderService.VALID_STATUS_TRANSITIONS.get(previous_status, []):
            raise StateConflictError(
                f"Cannot transition order from {previous_status} to {new_status}."
            )

        now = timezone.now()
        updated = Order.objects.filter(pk=order.pk, status=previous_status).update(
            status=new_status, updated_at=now, **fields
        )
        if updated == 0:
            logger.warning(
                f"Lost status race on order {order.pk}: expected {previous_status}, wanted {new_status}"
            )
            raise StateConflictError(
                "The order was changed by someone else. Reload it and try again."
            )

        order.status = new_status
        order.updated_at = now
        for name, value in fields.items():
            setattr(order, name, value)

        logger.info(f"Order {order.pk}: {previous_status} -> {new_status}")
        return previous_status

    @staticmethod
    @transaction.atomic
    def update_status(order_id, new_status, actor) -> Tuple[Order, str]:
        """
        Generic status change used by the kitchen and floor staff.

        Customers may only use it to cancel their own orders. ``completed``
        is never accepted here; orders complete when their payment settles.
        Returns the order and its previous status.
        """
        if new_status not in Order.OrderStatus.values:
            raise ValidationError(f"'{new_status}' is not a valid order status.")

        if new_status == Order.OrderStatus.COMPLETED:
            raise StateConflictError("Orders are completed by settling their payment.")

        is_staff = has_capability(actor, Capability.MANAGE_ANY_ORDER)
        order = OrderService._get_order(order_id, actor, allow_staff=is_staff)

        if not is_staff and new_status != Order.OrderStatus.CANCELLED:
            raise AuthorizationError("Customers can only cancel their orders.")

        previous_status = OrderService._transition(order, new_status)
        OrderEventPublisher.order_status_changed(order, previous_status)
        return order, previous_status

    @staticmethod
    @transaction.atomic
    def accept_order(order_id, staff) -> Tuple[Order, str]:
        authorize(staff, Capability.TRIAGE_ORDERS)
        order = OrderService._get_order(order_id, staff, allow_staff=True)

        if order.status != Order.OrderStatus.PENDING:
            raise StateConflictError(f"Only pending orders can be accepted (order is {order.status}).")

        previous_status = OrderService._transition(
            order, Order.OrderStatus.ACCEPTED, accepted_by_id=staff.id
        )
        OrderEventPublisher.order_accepted(order)
        OrderEventPublisher.order_status_changed(order, previous_status)
        return order, previous_status

    @staticmethod
    @transaction.atomic
    def reject_order(order_id, staff, reason=None) -> Order:
        authorize(staff, Capability.TRIAGE_ORDERS)
        order = OrderService._get_order(order_id, staff, allow_staff=True)

        if order.status != Order.OrderStatus.PENDING:
            raise StateConflictError(f"Only pending orders can be rejected (order is {order.status}).")

        OrderService._transition(
            order,
            Order.OrderStatus.REJECTED,
            rejection_reason=reason or DEFAULT_REJECTION_REASON,
        )
        OrderEventPublisher.order_rejected(order)
        return order

    @staticmethod
    @transaction.atomic
    def cancel_order(order_id, actor) -> Tuple[Order, str]:
        """Owner-only cancellation, allowed while the order is pending or accepted."""
        order = OrderService._get_order(order_id, actor, allow_staff=False)
        previous_status = OrderService._transition(order, Order.OrderStatus.CANCELLED)
        OrderEventPublisher.order_status_changed(order, previous_status)
        return order, previous_status

    @staticmethod
    @transaction.atomic
    def mark_completed(order_ids: Iterable) -> List[Tuple[Order, str]]:
        """
        Move served orders to completed as part of a payment settlement.

        Must run inside the settlement transaction. The rows are locked in
        primary key order so concurrent settlements cannot deadlock.
        Notification is left to the caller, after its commit.
        """
        order_ids = list(order_ids)
        orders = list(
            Order.objects.select_for_update().filter(pk__in=order_ids).order_by("pk")
        )
        if len(orders) != len(set(order_ids)):
            raise NotFoundError("One or more orders no longer exist.")

        results = []
        for order in orders:
            if order.status != Order.OrderStatus.SERVED:
                raise StateConflictError(
                    f"Order {order.pk} is {order.status}, only served orders can be completed."
                )
            previous_status = OrderService._transition(order, Order.OrderStatus.COMPLETED)
            results.append((order, previous_status))
        return results

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def list_orders_for_actor(actor):
        return (
            Order.objects.filter(**actor.owner_filter())
            .annotate(item_count=Count("items"))
            .order_by("-created_at")
        )

    @staticmethod
    def get_order_for_actor(order_id, actor) -> Order:
        return OrderService._get_order(
            order_id,
            actor,
            allow_staff=has_capability(actor, Capability.VIEW_ALL_ORDERS),
            queryset=Order.objects.prefetch_related(
                "items__menu_item", "items__modifiers__modifier_option"
            ),
        )

    @staticmethod
    def list_all_orders(status: Optional[str] = None):
        queryset = Order.objects.annotate(item_count=Count("items")).order_by("-created_at")
        if status and status != "all":
            if status not in Order.OrderStatus.values:
                raise ValidationError(f"'{status}' is not a valid order status.")
            queryset = queryset.filter(status=status)
        return queryset

    @staticmethod
    def _get_order(order_id, actor, allow_staff, queryset=None) -> Order:
        """
        Load an order the actor may see. Orders owned by someone else are
        reported as missing so their existence is not disclosed.
        """
        try:
            order_id = uuid.UUID(str(order_id))
        except ValueError:
            raise NotFoundError("Order not found.")

        queryset = queryset if queryset is not None else Order.objects.all()
        if not allow_staff:
            queryset = queryset.filter(**actor.owner_filter())

        order = queryset.filter(pk=order_id).first()
        if order is None:
            raise NotFoundError("Order not found.")
        return order
