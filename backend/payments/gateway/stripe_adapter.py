"""Stripe implementation of the payment processor port."""

import logging

import stripe
from django.conf import settings

from core_backend.exceptions import (
    ExternalProcessorError,
    PaymentDeclinedError,
    ValidationError,
)
from payments.gateway.port import (
    EVENT_INTENT_FAILED,
    INTENT_PENDING_STATUSES,
    INTENT_SUCCEEDED,
    ChargeResult,
    IntentResult,
    PaymentProcessor,
    ProcessorEvent,
    map_decline_reason,
)

logger = logging.getLogger(__name__)


def _decline_from_card_error(e) -> str:
    error = getattr(e, "error", None)
    decline_code = getattr(error, "decline_code", None) if error else None
    if decline_code is None and isinstance(getattr(e, "json_body", None), dict):
        decline_code = e.json_body.get("error", {}).get("decline_code")
    return map_decline_reason(getattr(e, "code", None), decline_code)


def _intent_id_from_card_error(e):
    error = getattr(e, "error", None)
    intent = getattr(error, "payment_intent", None) if error else None
    if intent is None:
        return None
    return intent.get("id") if isinstance(intent, dict) else getattr(intent, "id", None)


def _to_intent_result(intent) -> IntentResult:
    return IntentResult(
        id=intent.id,
        status=intent.status,
        client_secret=getattr(intent, "client_secret", None),
        amount=getattr(intent, "amount", None),
        currency=getattr(intent, "currency", None),
    )


class StripeProcessor(PaymentProcessor):
    """
    Talks to Stripe through the module-level SDK.

    Every call sets the API key from settings, so key rotation only needs a
    settings change.
    """

    def _configure(self):
        stripe.api_key = settings.STRIPE_SECRET_KEY

    def create_intent(self, amount, currency, metadata):
        self._configure()
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent: {e}", exc_info=True)
            raise ExternalProcessorError() from e
        return _to_intent_result(intent)

    def retrieve_intent(self, intent_id):
        self._configure()
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving payment intent {intent_id}: {e}", exc_info=True)
            raise ExternalProcessorError() from e
        return _to_intent_result(intent)

    def create_customer(self, email, metadata):
        self._configure()
        try:
            customer = stripe.Customer.create(email=email, metadata=metadata)
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating customer: {e}", exc_info=True)
            raise ExternalProcessorError() from e
        return customer.id

    def attach_instrument(self, instrument_id, customer_id):
        self._configure()
        try:
            payment_method = stripe.PaymentMethod.retrieve(instrument_id)
            if payment_method.customer == customer_id:
                return False
            stripe.PaymentMethod.attach(instrument_id, customer=customer_id)
        except stripe.CardError as e:
            reason = _decline_from_card_error(e)
            logger.warning(f"Stripe declined attaching payment method to {customer_id}: {reason}")
            raise PaymentDeclinedError(reason) from e
        except stripe.StripeError as e:
            logger.error(
                f"Stripe error attaching payment method to customer {customer_id}: {e}",
                exc_info=True,
            )
            raise ExternalProcessorError() from e
        return True

    def charge_instrument(
        self, amount, currency, customer_id, instrument_id, metadata, idempotency_key=None
    ):
        self._configure()
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                customer=customer_id,
                payment_method=instrument_id,
                off_session=True,
                confirm=True,
                metadata=metadata,
                idempotency_key=idempotency_key,
            )
        except stripe.CardError as e:
            reason = _decline_from_card_error(e)
            logger.warning(f"Stripe declined off-session charge for {customer_id}: {reason}")
            return ChargeResult(
                success=False,
                intent_id=_intent_id_from_card_error(e),
                status="declined",
                failure_reason=reason,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error charging saved payment method: {e}", exc_info=True)
            raise ExternalProcessorError() from e

        if intent.status == INTENT_SUCCEEDED:
            return ChargeResult(success=True, intent_id=intent.id, status=intent.status)
        if intent.status in INTENT_PENDING_STATUSES:
            logger.info(f"Off-session charge {intent.id} is {intent.status}; settling later")
            return ChargeResult(success=False, intent_id=intent.id, status=intent.status)
        return ChargeResult(
            success=False,
            intent_id=intent.id,
            status=intent.status,
            failure_reason="generic_decline",
        )

    def parse_event(self, payload, signature):
        try:
            event = stripe.Webhook.construct_event(
                payload, signature, settings.STRIPE_WEBHOOK_SECRET
            )
        except ValueError as e:
            logger.error(f"Stripe webhook: Invalid payload - {e}")
            raise ValidationError("Invalid webhook payload.")
        except stripe.SignatureVerificationError as e:
            logger.error(f"Stripe webhook: Invalid signature - {e}")
            raise ValidationError("Invalid webhook signature.")

        obj = event["data"]["object"]
        failure_reason = None
        if event["type"] == EVENT_INTENT_FAILED:
            last_error = obj.get("last_payment_error") or {}
            failure_reason = map_decline_reason(
                last_error.get("code"), last_error.get("decline_code")
            )

        intent_id = obj.get("id") if str(event["type"]).startswith("payment_intent.") else None
        return ProcessorEvent(
            type=event["type"],
            intent_id=intent_id,
            failure_reason=failure_reason,
            raw=dict(event),
        )
