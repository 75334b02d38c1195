"""Configurable in-memory payment processor for development and testing.

Simulates intents, customers and saved instruments without any network
calls. Tests drive it directly: ``succeed_intent()`` plays the part of the
customer finishing a card payment, ``decline_next_charge()`` makes the next
off-session charge fail, ``hold_next_charge()`` leaves it processing, and
``outage`` makes every call raise.
"""

import json
from uuid import uuid4

from core_backend.exceptions import ExternalProcessorError, ValidationError
from payments.gateway.port import (
    EVENT_INTENT_FAILED,
    INTENT_PROCESSING,
    INTENT_SUCCEEDED,
    ChargeResult,
    IntentResult,
    PaymentProcessor,
    ProcessorEvent,
)

TEST_SIGNATURE = "test-signature"


class FakeProcessor(PaymentProcessor):
    """Configurable fake payment processor."""

    def __init__(self) -> None:
        self.intents = {}
        self.customers = {}
        self.attachments = {}
        self.calls = []
        self.outage = False
        self.charges_by_key = {}
        self._next_decline = None
        self._next_hold = None

    def _record(self, method, **kwargs):
        self.calls.append({"method": method, **kwargs})
        if self.outage:
            raise ExternalProcessorError()

    def calls_to(self, method):
        return [c for c in self.calls if c["method"] == method]

    # Test controls

    def succeed_intent(self, intent_id):
        self.intents[intent_id]["status"] = INTENT_SUCCEEDED

    def set_intent_status(self, intent_id, status):
        self.intents[intent_id]["status"] = status

    def decline_next_charge(self, reason="generic_decline"):
        self._next_decline = reason

    def hold_next_charge(self, status=INTENT_PROCESSING):
        self._next_hold = status

    # Port implementation

    def _result(self, intent_id):
        intent = self.intents[intent_id]
        return IntentResult(
            id=intent_id,
            status=intent["status"],
            client_secret=intent["client_secret"],
            amount=intent["amount"],
            currency=intent["currency"],
        )

    def create_intent(self, amount, currency, metadata):
        self._record("create_intent", amount=amount, currency=currency, metadata=metadata)
        intent_id = f"pi_fake_{uuid4().hex[:16]}"
        self.intents[intent_id] = {
            "status": "requires_payment_method",
            "client_secret": f"{intent_id}_secret_{uuid4().hex[:8]}",
            "amount": amount,
            "currency": currency,
            "metadata": dict(metadata),
        }
        return self._result(intent_id)

    def retrieve_intent(self, intent_id):
        self._record("retrieve_intent", intent_id=intent_id)
        if intent_id not in self.intents:
            raise ExternalProcessorError()
        return self._result(intent_id)

    def create_customer(self, email, metadata):
        self._record("create_customer", email=email, metadata=metadata)
        customer_id = f"cus_fake_{uuid4().hex[:12]}"
        self.customers[customer_id] = {"email": email, "metadata": dict(metadata)}
        return customer_id

    def attach_instrument(self, instrument_id, customer_id):
        self._record("attach_instrument", instrument_id=instrument_id, customer_id=customer_id)
        if self.attachments.get(instrument_id) == customer_id:
            return False
        self.attachments[instrument_id] = customer_id
        return True

    def charge_instrument(
        self, amount, currency, customer_id, instrument_id, metadata, idempotency_key=None
    ):
        if idempotency_key and idempotency_key in self.charges_by_key:
            return self.charges_by_key[idempotency_key]
        self._record(
            "charge_instrument",
            idempotency_key=idempotency_key,
            amount=amount,
            currency=currency,
            customer_id=customer_id,
            instrument_id=instrument_id,
            metadata=metadata,
        )
        intent = self.create_intent(amount, currency, metadata)

        if self._next_decline:
            reason, self._next_decline = self._next_decline, None
            result = ChargeResult(
                success=False, intent_id=intent.id, status="declined", failure_reason=reason
            )
        elif self._next_hold:
            status, self._next_hold = self._next_hold, None
            self.set_intent_status(intent.id, status)
            result = ChargeResult(success=False, intent_id=intent.id, status=status)
        else:
            self.succeed_intent(intent.id)
            result = ChargeResult(success=True, intent_id=intent.id, status=INTENT_SUCCEEDED)

        if idempotency_key:
            self.charges_by_key[idempotency_key] = result
        return result

    def parse_event(self, payload, signature):
        if signature != TEST_SIGNATURE:
            raise ValidationError("Invalid webhook signature.")
        try:
            event = json.loads(payload)
        except (TypeError, ValueError):
            raise ValidationError("Invalid webhook payload.")

        obj = event.get("data", {}).get("object", {})
        failure_reason = None
        if event.get("type") == EVENT_INTENT_FAILED:
            failure_reason = (obj.get("last_payment_error") or {}).get(
                "decline_code", "generic_decline"
            )
        return ProcessorEvent(
            type=event.get("type"),
            intent_id=obj.get("id"),
            failure_reason=failure_reason,
            raw=event,
        )
