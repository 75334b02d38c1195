import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _


class Payment(models.Model):
    """
    A settlement record covering one or more served orders.

    ``total_amount`` is the sum of the linked orders' totals captured when the
    payment was created (see PaymentOrderLink.amount) and is never recomputed.
    A payment moves pending -> completed exactly once; a declined charge moves
    it to failed, from where it may be charged again.
    """

    class PaymentMethod(models.TextChoices):
        CASH = "cash", _("Cash")
        CARD = "card", _("Card")
        ONLINE = "online", _("Online")

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", _("Pending")
        COMPLETED = "completed", _("Completed")
        FAILED = "failed", _("Failed")
        REFUNDED = "refunded", _("Refunded")

    class FailureReason(models.TextChoices):
        INSUFFICIENT_FUNDS = "insufficient_funds", _("Insufficient funds")
        EXPIRED_CARD = "expired_card", _("Expired card")
        INCORRECT_CVC = "incorrect_cvc", _("Incorrect CVC")
        GENERIC_DECLINE = "generic_decline", _("Declined")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
        help_text=_("Registered payer. Null for guest payments."),
    )
    session_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        db_index=True,
        help_text=_("Guest session that created the payment."),
    )
    table_id = models.CharField(max_length=64, blank=True, default="")

    total_amount = models.DecimalField(max_digits=10, decimal_places=2)
    method = models.CharField(max_length=10, choices=PaymentMethod.choices)
    status = models.CharField(
        max_length=10,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
    )

    processor_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text=_("Payment intent id at the processor (e.g. Stripe pi_...)."),
    )
    processor_instrument_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text=_("Saved payment method used for an off-session charge."),
    )
    failure_reason = models.CharField(
        max_length=32, choices=FailureReason.choices, null=True, blank=True
    )

    settled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="settled_payments",
        help_text=_("Staff member who took a cash payment."),
    )
    notes = models.TextField(blank=True, default="")

    orders = models.ManyToManyField(
        "orders.Order", through="PaymentOrderLink", related_name="payments"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = _("Payment")
        verbose_name_plural = _("Payments")

    def __str__(self):
        return f"Payment {self.id} ({self.method}, {self.status}, {self.total_amount})"

    @property
    def is_processor_method(self):
        return self.method in (self.PaymentMethod.CARD, self.PaymentMethod.ONLINE)


class PaymentOrderLink(models.Model):
    """
    Ties an order to a payment.

    ``settled`` is flipped to True only when the payment completes. The
    partial unique constraint on ``order`` for settled links is what makes
    "an order is paid at most once" hold even under concurrent settlements.
    """

    payment = models.ForeignKey(
        Payment, on_delete=models.CASCADE, related_name="order_links"
    )
    order = models.ForeignKey(
        "orders.Order", on_delete=models.PROTECT, related_name="payment_links"
    )
    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text=_("The order total captured when the link was created."),
    )
    settled = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["payment", "order"], name="unique_payment_order_link"
            ),
            models.UniqueConstraint(
                fields=["order"],
                condition=Q(settled=True),
                name="unique_settled_order_link",
            ),
        ]

    def __str__(self):
        return f"{self.order_id} -> {self.payment_id} ({self.amount})"
