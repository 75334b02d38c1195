"""
Payment reconciliation - billing served orders and settling them exactly once.

Every settlement path (cash, processor confirmation, saved card, webhook,
reconciliation sweep) ends in ``_complete_payment``, which locks the payment
and its orders, refuses an order that another payment already settled, and
completes payment and orders in one transaction. Processor calls are made
outside database transactions so a slow or failing processor never holds
row locks and never leaves a payment half-updated.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, Prefetch, Q
from django.utils import timezone

from core_backend.exceptions import (
    AuthorizationError,
    BillingValidationError,
    DomainError,
    DuplicateSettlementError,
    NotFoundError,
    PaymentDeclinedError,
    StateConflictError,
    ValidationError,
)
from notifications.publishers import OrderEventPublisher
from orders.models import Order
from orders.services import OrderService
from payments.gateway import get_processor
from payments.gateway.port import EVENT_INTENT_FAILED, EVENT_INTENT_SUCCEEDED
from payments.models import Payment, PaymentOrderLink
from payments.money import default_currency, ensure_storable, sum_amounts, to_minor
from users.models import User
from users.permissions import Capability, authorize, has_capability

logger = logging.getLogger(__name__)

# A pending payment whose orders are all completed or cancelled is moot
LIVE_ORDER_STATUSES = [
    s
    for s in Order.OrderStatus.values
    if s not in (Order.OrderStatus.COMPLETED, Order.OrderStatus.CANCELLED)
]


@dataclass
class BillingInfo:
    orders: list
    total_amount: Decimal

    @property
    def order_count(self):
        return len(self.orders)


@dataclass
class ReconciliationReport:
    checked: int = 0
    completed: List[str] = field(default_factory=list)
    would_complete: List[str] = field(default_factory=list)
    still_pending: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class PaymentReconciliationService:

    # ------------------------------------------------------------------
    # Billing
    # ------------------------------------------------------------------

    @staticmethod
    def get_billing_info(payer) -> BillingInfo:
        """
        Served orders of ``payer`` that no completed payment covers yet.

        Each order carries ``open_payment_id``: the pending payment it is
        already linked to, if any. Such orders must be paid through that
        payment rather than billed again.
        """
        orders = list(
            Order.objects.filter(status=Order.OrderStatus.SERVED, **payer.owner_filter())
            .exclude(payment_links__settled=True)
            .prefetch_related(
                Prefetch(
                    "payment_links",
                    queryset=PaymentOrderLink.objects.filter(
                        payment__status=Payment.PaymentStatus.PENDING
                    ),
                    to_attr="pending_links",
                )
            )
            .order_by("created_at")
        )

        for order in orders:
            order.open_payment_id = order.pending_links[0].payment_id if order.pending_links else None

        return BillingInfo(
            orders=orders,
            total_amount=sum_amounts(o.total_amount for o in orders),
        )

    @staticmethod
    def create_payment(payer, order_ids, method, notes=None) -> Payment:
        """
        Bill a set of served orders in a single payment, all or nothing.

        The requested orders are locked for the duration of the check and the
        link writes, and the links are read back before committing, so two
        concurrent attempts on the same order cannot both pass: the later one
        sees the earlier one's pending link.

        Raises:
            ValidationError: empty or duplicate order ids, unknown method.
            BillingValidationError: any order not owned by the payer, not
                served, already paid, or linked to another pending payment.
        """
        authorize(payer, Capability.PAY_OWN_ORDERS)

        if method not in Payment.PaymentMethod.values:
            raise ValidationError(f"'{method}' is not a valid payment method.")
        if not order_ids:
            raise ValidationError("At least one order is required.")
        if len(set(map(str, order_ids))) != len(order_ids):
            raise ValidationError("Each order may only be listed once.")

        parsed_ids, invalid = [], []
        for raw_id in order_ids:
            try:
                parsed_ids.append(uuid.UUID(str(raw_id)))
            except ValueError:
                invalid.append(str(raw_id))

        with transaction.atomic():
            orders = {
                o.pk: o
                for o in Order.objects.select_for_update()
                .filter(pk__in=parsed_ids)
                .order_by("pk")
            }

            for order_id in parsed_ids:
                order = orders.get(order_id)
                if order is None or not payer.owns(order) or order.status != Order.OrderStatus.SERVED:
                    invalid.append(str(order_id))

            blocked = PaymentReconciliationService._open_links(parsed_ids).values_list(
                "order_id", flat=True
            )
            invalid.extend(str(order_id) for order_id in blocked)

            if invalid:
                invalid = sorted(set(invalid))
                logger.warning(f"Billing rejected for {len(invalid)} order(s): {invalid}")
                raise BillingValidationError(invalid_order_ids=invalid)

            billed = [orders[order_id] for order_id in parsed_ids]
            total = ensure_storable(sum_amounts(o.total_amount for o in billed), "Payment total")
            payment = Payment.objects.create(
                table_id=billed[0].table_id,
                total_amount=total,
                method=method,
                status=Payment.PaymentStatus.PENDING,
                notes=notes or "",
                **payer.owner_fields(),
            )
            PaymentOrderLink.objects.bulk_create(
                [
                    PaymentOrderLink(payment=payment, order=o, amount=o.total_amount)
                    for o in billed
                ]
            )

            # Row locks are not available everywhere; a payment that got past the
            # check above before these writes is visible now, and this one backs out.
            contested = sorted(
                str(order_id)
                for order_id in PaymentReconciliationService._open_links(parsed_ids)
                .exclude(payment=payment)
                .values_list("order_id", flat=True)
            )
            if contested:
                logger.warning(f"Billing lost a race for {len(contested)} order(s): {contested}")
                raise BillingValidationError(invalid_order_ids=contested)

        logger.info(
            f"Payment {payment.id} created: {method}, {len(billed)} order(s), total {payment.total_amount}"
        )
        return payment

    # ------------------------------------------------------------------
    # Processor-backed settlement
    # ------------------------------------------------------------------

    @staticmethod
    def create_external_payment_intent(payer, payment_id) -> dict:
        """
        Ask the processor for an intent covering the payment's amount.

        Repeated calls return the intent already stored on the payment
        instead of opening another one.
        """
        payment = PaymentReconciliationService._get_payment(payment_id, payer, allow_staff=False)
        PaymentReconciliationService._require_processor_payment(payment)

        processor = get_processor()

        if payment.processor_intent_id:
            intent = processor.retrieve_intent(payment.processor_intent_id)
            return PaymentReconciliationService._intent_response(payment, intent)

        intent = processor.create_intent(
            to_minor(payment.total_amount),
            default_currency(),
            PaymentReconciliationService._metadata(payment),
        )

        with transaction.atomic():
            locked = Payment.objects.select_for_update().get(pk=payment.pk)
            if locked.status != Payment.PaymentStatus.PENDING:
                raise StateConflictError(f"Payment is {locked.status}, not pending.")
            if locked.processor_intent_id:
                # Another request stored an intent first; use that one
                logger.warning(
                    f"Discarding intent {intent.id} for payment {payment.pk}; {locked.processor_intent_id} already stored"
                )
                intent = processor.retrieve_intent(locked.processor_intent_id)
            else:
                locked.processor_intent_id = intent.id
                locked.save(update_fields=["processor_intent_id", "updated_at"])

        logger.info(f"Intent {intent.id} created for payment {payment.pk}")
        return PaymentReconciliationService._intent_response(locked, intent)

    @staticmethod
    def confirm_external_payment(intent_id) -> dict:
        """
        Settle the payment behind ``intent_id`` if the processor says it succeeded.

        Idempotent: confirming an already completed payment changes nothing.
        Any other intent status is reported back without touching local state.
        """
        payment = Payment.objects.filter(processor_intent_id=intent_id).first()
        if payment is None:
            raise NotFoundError("No payment matches this intent.")

        if payment.status == Payment.PaymentStatus.COMPLETED:
            logger.info(f"Intent {intent_id} already settled (payment {payment.pk})")
            return {"success": True, "status": payment.status, "payment": payment}

        intent = get_processor().retrieve_intent(intent_id)
        if not intent.succeeded:
            return {"success": False, "status": intent.status, "payment": payment}

        expected = to_minor(payment.total_amount)
        if intent.amount is not None and intent.amount != expected:
            logger.error(
                f"Intent {intent_id} amount {intent.amount} does not match payment {payment.pk} ({expected})"
            )
            raise StateConflictError("The processor amount does not match this payment.")

        payment = PaymentReconciliationService._complete_payment(payment.pk, intent_id=intent_id)
        return {"success": True, "status": payment.status, "payment": payment}

    @staticmethod
    def charge_saved_instrument(payer, payment_id, instrument_id) -> Payment:
        """
        Charge a saved card off-session.

        The payer's processor customer is created on first use and stored on
        the user. A decline marks the payment failed with a typed reason and
        raises PaymentDeclinedError; the payment can be charged again. A
        charge the processor is still working on leaves the payment pending
        with its intent stored, for the webhook or the reconciliation sweep
        to settle. A processor outage raises ExternalProcessorError and
        leaves the payment as it was.
        """
        if payer.is_guest or payer.id is None:
            raise AuthorizationError("Sign in to pay with a saved card.")
        if not instrument_id:
            raise ValidationError("A saved payment method is required.")

        payment = PaymentReconciliationService._get_payment(payment_id, payer, allow_staff=False)
        PaymentReconciliationService._require_processor_payment(
            payment, allowed=(Payment.PaymentStatus.PENDING, Payment.PaymentStatus.FAILED)
        )
        if payment.status == Payment.PaymentStatus.FAILED:
            # The orders may have been billed again since the decline
            taken = PaymentReconciliationService._open_links(
                payment.order_links.values("order_id")
            ).exclude(payment=payment)
            if taken.exists():
                raise StateConflictError("These orders are being paid by another payment.")

        processor = get_processor()

        if payment.status == Payment.PaymentStatus.PENDING and payment.processor_intent_id:
            # An earlier charge may still settle this payment; never charge twice
            intent = processor.retrieve_intent(payment.processor_intent_id)
            if intent.succeeded:
                return PaymentReconciliationService.confirm_external_payment(intent.id)["payment"]
            if intent.pending:
                raise StateConflictError("A charge for this payment is still being processed.")

        customer_id = PaymentReconciliationService._ensure_processor_customer(payer.id)

        try:
            processor.attach_instrument(instrument_id, customer_id)
        except PaymentDeclinedError as e:
            PaymentReconciliationService._mark_failed(payment.pk, e.reason)
            raise

        # Same payment state -> same key, so concurrent requests charge once
        idempotency_key = f"charge-{payment.pk}-{payment.updated_at.timestamp()}"
        result = processor.charge_instrument(
            to_minor(payment.total_amount),
            default_currency(),
            customer_id,
            instrument_id,
            PaymentReconciliationService._metadata(payment),
            idempotency_key=idempotency_key,
        )

        if result.pending:
            return PaymentReconciliationService._hold_pending_charge(
                payment.pk, result.intent_id, instrument_id
            )
        if not result.success:
            PaymentReconciliationService._mark_failed(
                payment.pk,
                result.failure_reason,
                instrument_id=instrument_id,
                intent_id=result.intent_id,
            )
            raise PaymentDeclinedError(result.failure_reason)

        return PaymentReconciliationService._complete_payment(
            payment.pk, intent_id=result.intent_id, instrument_id=instrument_id
        )

    @staticmethod
    def _ensure_processor_customer(user_id) -> str:
        user = User.objects.get(pk=user_id)
        if user.processor_customer_id:
            return user.processor_customer_id

        customer_id = get_processor().create_customer(user.email, {"user_id": str(user.pk)})
        updated = User.objects.filter(pk=user.pk, processor_customer_id__isnull=True).update(
            processor_customer_id=customer_id
        )
        if updated == 0:
            # A concurrent request provisioned one first; keep the stored mapping
            user.refresh_from_db(fields=["processor_customer_id"])
            logger.warning(
                f"Orphaned processor customer {customer_id} for user {user.pk}; using {user.processor_customer_id}"
            )
            return user.processor_customer_id

        logger.info(f"Provisioned processor customer {customer_id} for user {user.pk}")
        return customer_id

    # ------------------------------------------------------------------
    # Cash
    # ------------------------------------------------------------------

    @staticmethod
    def process_cash_payment(staff, payment_id, notes=None) -> Payment:
        authorize(staff, Capability.SETTLE_CASH)
        payment = PaymentReconciliationService._get_payment(payment_id, staff, allow_staff=True)

        if payment.method != Payment.PaymentMethod.CASH:
            raise StateConflictError("Only cash payments can be settled at the table.")
        if payment.status != Payment.PaymentStatus.PENDING:
            raise StateConflictError(f"Payment is {payment.status}, not pending.")

        return PaymentReconciliationService._complete_payment(
            payment.pk,
            settled_by_id=staff.id,
            notes=notes,
            allowed=(Payment.PaymentStatus.PENDING,),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def get_pending_payments():
        """Pending payments that still have at least one live order."""
        return (
            Payment.objects.filter(status=Payment.PaymentStatus.PENDING)
            .annotate(
                live_orders=Count(
                    "order_links",
                    filter=Q(order_links__order__status__in=LIVE_ORDER_STATUSES),
                )
            )
            .filter(live_orders__gt=0)
            .prefetch_related("order_links__order")
            .order_by("created_at")
        )

    @staticmethod
    def get_payment_details(payment_id, actor) -> Payment:
        return PaymentReconciliationService._get_payment(
            payment_id,
            actor,
            allow_staff=has_capability(actor, Capability.VIEW_ALL_PAYMENTS),
        )

    # ------------------------------------------------------------------
    # Processor callbacks and the reconciliation sweep
    # ------------------------------------------------------------------

    @staticmethod
    def handle_processor_event(payload, signature) -> dict:
        """
        Apply a processor webhook. Replays are harmless: confirmation is
        idempotent and a failure never overwrites a completed payment.
        """
        event = get_processor().parse_event(payload, signature)

        if event.type == EVENT_INTENT_SUCCEEDED and event.intent_id:
            try:
                result = PaymentReconciliationService.confirm_external_payment(event.intent_id)
            except NotFoundError:
                logger.info(f"Webhook for unknown intent {event.intent_id}, ignoring")
                return {"event": event.type, "handled": False}
            except StateConflictError as e:
                # Retrying will not help; needs staff attention
                logger.error(f"Webhook could not settle intent {event.intent_id}: {e.message}")
                return {"event": event.type, "handled": False, "error": e.code}
            return {"event": event.type, "handled": result["success"]}

        if event.type == EVENT_INTENT_FAILED and event.intent_id:
            payment = Payment.objects.filter(processor_intent_id=event.intent_id).first()
            if payment is None:
                return {"event": event.type, "handled": False}
            PaymentReconciliationService._mark_failed(payment.pk, event.failure_reason)
            return {"event": event.type, "handled": True}

        logger.info(f"Unhandled processor event {event.type}")
        return {"event": event.type, "handled": False}

    @staticmethod
    def reconcile_pending_intents(max_age: Optional[timedelta] = None, dry_run=False) -> ReconciliationReport:
        """
        Complete pending payments whose processor intent already succeeded.

        Covers the case where the processor took the money but the local
        confirmation never committed (crash, timeout, lost webhook).
        ``max_age`` limits the sweep to payments created within that window.
        """
        report = ReconciliationReport()
        payments = Payment.objects.filter(
            status=Payment.PaymentStatus.PENDING, processor_intent_id__isnull=False
        ).order_by("created_at")
        if max_age is not None:
            payments = payments.filter(created_at__gte=timezone.now() - max_age)

        processor = get_processor()
        for payment in payments:
            report.checked += 1
            try:
                intent = processor.retrieve_intent(payment.processor_intent_id)
                if not intent.succeeded:
                    report.still_pending.append(str(payment.pk))
                    continue
                if dry_run:
                    report.would_complete.append(str(payment.pk))
                    continue
                PaymentReconciliationService._complete_payment(
                    payment.pk, intent_id=payment.processor_intent_id
                )
                report.completed.append(str(payment.pk))
            except DomainError as e:
                logger.error(f"Reconciliation failed for payment {payment.pk}: {e.message}")
                report.errors.append(str(payment.pk))

        logger.info(
            f"Reconciliation sweep: checked={report.checked} completed={len(report.completed)} "
            f"would_complete={len(report.would_complete)} errors={len(report.errors)}"
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _complete_payment(
        payment_id,
        intent_id=None,
        instrument_id=None,
        settled_by_id=None,
        notes=None,
        allowed=(Payment.PaymentStatus.PENDING, Payment.PaymentStatus.FAILED),
    ) -> Payment:
        """
        The single completion path. Locks the payment, then its orders, and
        completes both; order notifications go out after commit.
        """
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment_id)

            if payment.status == Payment.PaymentStatus.COMPLETED:
                logger.info(f"Payment {payment.pk} already completed, nothing to do")
                return payment
            if payment.status not in allowed:
                raise StateConflictError(f"Payment is {payment.status} and cannot be completed.")

            order_ids = list(payment.order_links.values_list("order_id", flat=True))
            list(Order.objects.select_for_update().filter(pk__in=order_ids).order_by("pk"))

            already_settled = list(
                PaymentOrderLink.objects.filter(order_id__in=order_ids, settled=True)
                .exclude(payment=payment)
                .values_list("order_id", flat=True)
            )
            if already_settled:
                logger.error(
                    f"Payment {payment.pk} covers orders settled by another payment: {already_settled}"
                )
                raise DuplicateSettlementError(
                    order_ids=[str(order_id) for order_id in already_settled]
                )

            completed_orders = OrderService.mark_completed(order_ids)

            try:
                with transaction.atomic():
                    payment.order_links.update(settled=True)
            except IntegrityError as e:
                raise DuplicateSettlementError() from e

            payment.status = Payment.PaymentStatus.COMPLETED
            payment.completed_at = timezone.now()
            payment.failure_reason = None
            update_fields = ["status", "completed_at", "failure_reason", "updated_at"]
            if intent_id:
                payment.processor_intent_id = intent_id
                update_fields.append("processor_intent_id")
            if instrument_id:
                payment.processor_instrument_id = instrument_id
                update_fields.append("processor_instrument_id")
            if settled_by_id:
                payment.settled_by_id = settled_by_id
                update_fields.append("settled_by")
            if notes:
                payment.notes = notes
                update_fields.append("notes")
            payment.save(update_fields=update_fields)

            for order, previous_status in completed_orders:
                OrderEventPublisher.order_status_changed(order, previous_status)

        logger.info(
            f"Payment {payment.pk} completed ({payment.method}); {len(completed_orders)} order(s) completed"
        )
        return payment

    @staticmethod
    def _mark_failed(payment_id, reason, instrument_id=None, intent_id=None) -> None:
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment_id)
            if payment.status not in (Payment.PaymentStatus.PENDING, Payment.PaymentStatus.FAILED):
                logger.info(f"Not marking payment {payment.pk} failed; it is {payment.status}")
                return
            payment.status = Payment.PaymentStatus.FAILED
            payment.failure_reason = reason or Payment.FailureReason.GENERIC_DECLINE
            update_fields = ["status", "failure_reason", "updated_at"]
            if instrument_id:
                payment.processor_instrument_id = instrument_id
                update_fields.append("processor_instrument_id")
            if intent_id:
                # Kept so a late webhook for this intent still finds the payment
                payment.processor_intent_id = intent_id
                update_fields.append("processor_intent_id")
            payment.save(update_fields=update_fields)
        logger.warning(f"Payment {payment_id} failed: {reason}")

    @staticmethod
    def _hold_pending_charge(payment_id, intent_id, instrument_id) -> Payment:
        """Leave the payment pending on an intent the processor has not finished."""
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment_id)
            if payment.status not in (Payment.PaymentStatus.PENDING, Payment.PaymentStatus.FAILED):
                return payment
            payment.status = Payment.PaymentStatus.PENDING
            payment.failure_reason = None
            payment.processor_intent_id = intent_id
            payment.processor_instrument_id = instrument_id
            payment.save(
                update_fields=[
                    "status",
                    "failure_reason",
                    "processor_intent_id",
                    "processor_instrument_id",
                    "updated_at",
                ]
            )
        logger.info(f"Payment {payment_id} waiting on processor intent {intent_id}")
        return payment

    @staticmethod
    def _open_links(order_ids):
        """Links holding any of ``order_ids``: settled, or on a pending payment."""
        return PaymentOrderLink.objects.filter(order_id__in=order_ids).filter(
            Q(settled=True) | Q(payment__status=Payment.PaymentStatus.PENDING)
        )

    @staticmethod
    def _get_payment(payment_id, actor, allow_staff) -> Payment:
        try:
            payment_id = uuid.UUID(str(payment_id))
        except ValueError:
            raise NotFoundError("Payment not found.")

        queryset = Payment.objects.prefetch_related("order_links__order")
        if not allow_staff:
            queryset = queryset.filter(**actor.owner_filter())

        payment = queryset.filter(pk=payment_id).first()
        if payment is None:
            raise NotFoundError("Payment not found.")
        return payment

    @staticmethod
    def _require_processor_payment(payment, allowed=(Payment.PaymentStatus.PENDING,)):
        if not payment.is_processor_method:
            raise StateConflictError("Only card and online payments go through the processor.")
        if payment.status not in allowed:
            raise StateConflictError(f"Payment is {payment.status}, not pending.")

    @staticmethod
    def _metadata(payment) -> dict:
        return {
            "payment_id": str(payment.pk),
            "order_ids": ",".join(str(link.order_id) for link in payment.order_links.all()),
            "table_id": payment.table_id,
        }

    @staticmethod
    def _intent_response(payment, intent) -> dict:
        return {
            "payment_id": str(payment.pk),
            "intent_id": intent.id,
            "client_secret": intent.client_secret,
            "status": intent.status,
            "amount": str(payment.total_amount),
            "currency": default_currency(),
        }
