import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _

from menu.models import MenuItem, ModifierGroup, ModifierOption


class Order(models.Model):
    """
    A submitted cart tracked through the kitchen pipeline.

    The owner is either a registered user or an anonymous table session,
    never both. Status only changes through OrderService, which writes it
    with a conditional update keyed on the previously read status.
    """

    class OrderStatus(models.TextChoices):
        PENDING = "pending", _("Pending")
        ACCEPTED = "accepted", _("Accepted")
        REJECTED = "rejected", _("Rejected")
        PREPARING = "preparing", _("Preparing")
        READY = "ready", _("Ready")
        SERVED = "served", _("Served")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
        help_text=_("Registered customer who placed the order."),
    )
    session_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        db_index=True,
        help_text=_("Guest session that placed the order."),
    )
    table_id = models.CharField(max_length=64, blank=True, default="", db_index=True)

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        db_index=True,
    )
    total_amount = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    special_instructions = models.TextField(blank=True, default="")
    rejection_reason = models.TextField(blank=True, null=True)

    accepted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="accepted_orders",
        help_text=_("Staff member who accepted the order."),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(user__isnull=False, session_id__isnull=True)
                    | Q(user__isnull=True, session_id__isnull=False)
                ),
                name="order_single_owner",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
        ]

    def __str__(self):
        return f"Order {self.id} ({self.status})"

    @property
    def can_cancel(self):
        return self.status in (self.OrderStatus.PENDING, self.OrderStatus.ACCEPTED)


class OrderItem(models.Model):
    MAX_QUANTITY = 999

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    menu_item = models.ForeignKey(
        MenuItem, on_delete=models.PROTECT, related_name="order_items"
    )
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text=_("Base price plus modifier adjustments at order time."),
    )
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    special_instructions = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gte=1), name="order_item_quantity_positive"
            ),
        ]

    def __str__(self):
        return f"{self.quantity} x {self.menu_item_id} in order {self.order_id}"


class OrderItemModifier(models.Model):
    order_item = models.ForeignKey(
        OrderItem, on_delete=models.CASCADE, related_name="modifiers"
    )
    modifier_group = models.ForeignKey(ModifierGroup, on_delete=models.PROTECT)
    modifier_option = models.ForeignKey(ModifierOption, on_delete=models.PROTECT)
    price_adjustment = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text=_("Adjustment captured at order time; never re-read from the menu."),
    )

    def __str__(self):
        return f"{self.modifier_option_id} (+{self.price_adjustment})"
