"""
Payment processor adapters.

The Stripe adapter is exercised with the SDK patched out; what matters is
that SDK errors never escape and declines come back as typed reasons.
"""
import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from core_backend.exceptions import ExternalProcessorError, PaymentDeclinedError, ValidationError
from payments.gateway import get_processor, reset_processor
from payments.gateway.fake_adapter import TEST_SIGNATURE, FakeProcessor
from payments.gateway.port import (
    EVENT_INTENT_FAILED,
    EVENT_INTENT_SUCCEEDED,
    map_decline_reason,
)
from payments.gateway.stripe_adapter import StripeProcessor


class TestDeclineMapping:
    @pytest.mark.parametrize(
        "code,decline_code,expected",
        [
            ("card_declined", "insufficient_funds", "insufficient_funds"),
            ("expired_card", None, "expired_card"),
            ("incorrect_cvc", None, "incorrect_cvc"),
            ("card_declined", "expired_card", "expired_card"),
            ("card_declined", "do_not_honor", "generic_decline"),
            (None, None, "generic_decline"),
        ],
    )
    def test_map_decline_reason(self, code, decline_code, expected):
        assert map_decline_reason(code, decline_code) == expected


class TestProcessorSelection:
    def test_setting_selects_implementation(self, settings):
        settings.PAYMENT_PROCESSOR = "fake"
        reset_processor()
        assert isinstance(get_processor(), FakeProcessor)

        settings.PAYMENT_PROCESSOR = "stripe"
        reset_processor()
        assert isinstance(get_processor(), StripeProcessor)

    def test_unknown_processor(self, settings):
        settings.PAYMENT_PROCESSOR = "barter"
        reset_processor()

        with pytest.raises(ValueError):
            get_processor()


class TestFakeProcessor:
    def test_intent_lifecycle(self):
        fake = FakeProcessor()

        intent = fake.create_intent(2550, "usd", {"payment_id": "p1"})
        assert not intent.succeeded
        assert intent.client_secret.startswith(intent.id)

        fake.succeed_intent(intent.id)
        assert fake.retrieve_intent(intent.id).succeeded

    def test_idempotent_charge_happens_once(self):
        fake = FakeProcessor()

        first = fake.charge_instrument(1000, "usd", "cus_1", "pm_1", {}, idempotency_key="k1")
        second = fake.charge_instrument(1000, "usd", "cus_1", "pm_1", {}, idempotency_key="k1")

        assert first == second
        assert len(fake.calls_to("charge_instrument")) == 1

    def test_decline_next_charge(self):
        fake = FakeProcessor()
        fake.decline_next_charge("insufficient_funds")

        declined = fake.charge_instrument(1000, "usd", "cus_1", "pm_1", {})
        approved = fake.charge_instrument(1000, "usd", "cus_1", "pm_1", {})

        assert declined.success is False
        assert declined.failure_reason == "insufficient_funds"
        assert approved.success is True

    def test_hold_next_charge(self):
        fake = FakeProcessor()
        fake.hold_next_charge()

        held = fake.charge_instrument(1000, "usd", "cus_1", "pm_1", {})

        assert held.pending
        assert fake.retrieve_intent(held.intent_id).pending

    def test_outage(self):
        fake = FakeProcessor()
        fake.outage = True

        with pytest.raises(ExternalProcessorError):
            fake.create_intent(100, "usd", {})

    def test_parse_event_checks_signature(self):
        fake = FakeProcessor()
        payload = json.dumps(
            {
                "type": EVENT_INTENT_FAILED,
                "data": {"object": {"id": "pi_1", "last_payment_error": {"decline_code": "expired_card"}}},
            }
        )

        event = fake.parse_event(payload, TEST_SIGNATURE)
        assert event.intent_id == "pi_1"
        assert event.failure_reason == "expired_card"

        with pytest.raises(ValidationError):
            fake.parse_event(payload, "forged")


def card_error(code, decline_code=None, intent_id=None):
    error = stripe.CardError("Your card was declined.", param=None, code=code)
    error.error = SimpleNamespace(
        decline_code=decline_code,
        payment_intent={"id": intent_id} if intent_id else None,
    )
    return error


class TestStripeProcessor:
    def test_create_intent_passes_minor_units(self, settings):
        settings.STRIPE_SECRET_KEY = "sk_test_123"
        intent = SimpleNamespace(
            id="pi_1", status="requires_payment_method", client_secret="sec", amount=2550, currency="usd"
        )

        with patch("stripe.PaymentIntent.create", return_value=intent) as create:
            result = StripeProcessor().create_intent(2550, "usd", {"payment_id": "p1"})

        assert create.call_args.kwargs["amount"] == 2550
        assert result.id == "pi_1"
        assert result.client_secret == "sec"
        assert stripe.api_key == "sk_test_123"

    def test_sdk_error_is_sanitized(self):
        with patch(
            "stripe.PaymentIntent.retrieve",
            side_effect=stripe.APIConnectionError("network down at 10.0.0.1"),
        ):
            with pytest.raises(ExternalProcessorError) as exc_info:
                StripeProcessor().retrieve_intent("pi_1")

        assert "10.0.0.1" not in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, stripe.StripeError)

    def test_charge_decline_becomes_result(self):
        with patch(
            "stripe.PaymentIntent.create",
            side_effect=card_error("card_declined", "insufficient_funds", intent_id="pi_9"),
        ):
            result = StripeProcessor().charge_instrument(
                1000, "usd", "cus_1", "pm_1", {}, idempotency_key="charge-1"
            )

        assert result.success is False
        assert result.failure_reason == "insufficient_funds"
        assert result.intent_id == "pi_9"

    def test_charge_passes_idempotency_key(self):
        intent = SimpleNamespace(id="pi_2", status="succeeded")

        with patch("stripe.PaymentIntent.create", return_value=intent) as create:
            result = StripeProcessor().charge_instrument(
                1000, "usd", "cus_1", "pm_1", {}, idempotency_key="charge-1"
            )

        assert result.success is True
        assert create.call_args.kwargs["idempotency_key"] == "charge-1"
        assert create.call_args.kwargs["off_session"] is True

    @pytest.mark.parametrize("intent_status", ["processing", "requires_action"])
    def test_unfinished_charge_is_pending_not_declined(self, intent_status):
        intent = SimpleNamespace(id="pi_3", status=intent_status)

        with patch("stripe.PaymentIntent.create", return_value=intent):
            result = StripeProcessor().charge_instrument(1000, "usd", "cus_1", "pm_1", {})

        assert result.success is False
        assert result.pending is True
        assert result.failure_reason is None
        assert result.intent_id == "pi_3"

    def test_canceled_charge_is_a_decline(self):
        intent = SimpleNamespace(id="pi_4", status="canceled")

        with patch("stripe.PaymentIntent.create", return_value=intent):
            result = StripeProcessor().charge_instrument(1000, "usd", "cus_1", "pm_1", {})

        assert result.pending is False
        assert result.failure_reason == "generic_decline"
        assert result.intent_id == "pi_4"

    def test_attach_skips_already_attached_instrument(self):
        with patch(
            "stripe.PaymentMethod.retrieve", return_value=SimpleNamespace(customer="cus_1")
        ), patch("stripe.PaymentMethod.attach") as attach:
            assert StripeProcessor().attach_instrument("pm_1", "cus_1") is False

        attach.assert_not_called()

    def test_attach_decline_raises_typed_error(self):
        with patch(
            "stripe.PaymentMethod.retrieve", return_value=SimpleNamespace(customer=None)
        ), patch("stripe.PaymentMethod.attach", side_effect=card_error("expired_card")):
            with pytest.raises(PaymentDeclinedError) as exc_info:
                StripeProcessor().attach_instrument("pm_1", "cus_1")

        assert exc_info.value.reason == "expired_card"

    def test_parse_event_rejects_bad_signature(self, settings):
        settings.STRIPE_WEBHOOK_SECRET = "whsec_test"

        with patch(
            "stripe.Webhook.construct_event",
            side_effect=stripe.SignatureVerificationError("bad sig", "sig"),
        ):
            with pytest.raises(ValidationError):
                StripeProcessor().parse_event(b"{}", "sig")

    def test_parse_event_extracts_intent(self):
        event = {
            "type": EVENT_INTENT_SUCCEEDED,
            "data": {"object": {"id": "pi_7"}},
        }

        with patch("stripe.Webhook.construct_event", return_value=event):
            parsed = StripeProcessor().parse_event(b"{}", "sig")

        assert parsed.type == EVENT_INTENT_SUCCEEDED
        assert parsed.intent_id == "pi_7"
        assert parsed.failure_reason is None
