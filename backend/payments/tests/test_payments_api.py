"""
Payments API Integration Tests

Request/response cycle for the payer, staff and webhook endpoints, plus the
reconcile_payments management command.
"""
import json
import uuid
from io import StringIO

import pytest
from django.core.management import call_command
from rest_framework import status
from rest_framework.test import APIClient

from orders.models import Order
from payments.gateway.fake_adapter import TEST_SIGNATURE
from payments.models import Payment
from payments.services import PaymentReconciliationService

S = Order.OrderStatus


@pytest.fixture
def served_pair(customer, make_order):
    return (
        make_order(customer, status=S.SERVED, total="10.00"),
        make_order(customer, status=S.SERVED, total="15.50"),
    )


def create(client, orders, method="cash"):
    return client.post(
        "/api/payments/",
        {"order_ids": [str(o.id) for o in orders], "method": method},
        format="json",
    )


@pytest.mark.django_db
class TestBillingAndCreateAPI:
    def test_billing_info(self, customer_client, served_pair):
        response = customer_client.get("/api/payments/billing/")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["order_count"] == 2
        assert data["total_amount"] == "25.50"
        assert all(o["open_payment_id"] is None for o in data["orders"])

    def test_create_payment(self, customer_client, served_pair):
        response = create(customer_client, served_pair)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["status"] == "pending"
        assert data["total_amount"] == "25.50"
        assert {o["order"] for o in data["orders"]} == {str(o.id) for o in served_pair}

    def test_invalid_orders_are_listed(self, customer_client, customer, make_order):
        preparing = make_order(customer, status=S.PREPARING)

        response = create(customer_client, [preparing])

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["code"] == "billing_validation_error"
        assert response.json()["invalid_order_ids"] == [str(preparing.id)]

    def test_empty_order_list_is_a_400(self, customer_client):
        response = customer_client.post(
            "/api/payments/", {"order_ids": [], "method": "cash"}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unauthenticated_is_401(self, api_client):
        assert api_client.get("/api/payments/billing/").status_code == status.HTTP_401_UNAUTHORIZED

    def test_guest_flow(self, guest_client, guest, make_order):
        order = make_order(guest, status=S.SERVED, total="7.25")

        response = create(guest_client, [order], method="online")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["total_amount"] == "7.25"


@pytest.mark.django_db
class TestProcessorAPI:
    def test_intent_then_confirm(self, customer_client, served_pair, processor):
        payment_id = create(customer_client, served_pair, method="card").json()["id"]

        intent = customer_client.post(f"/api/payments/{payment_id}/intent/")
        assert intent.status_code == status.HTTP_200_OK
        assert intent.json()["amount"] == "25.50"
        intent_id = intent.json()["intent_id"]

        pending = customer_client.post(
            "/api/payments/confirm/", {"intent_id": intent_id}, format="json"
        )
        assert pending.json()["success"] is False

        processor.succeed_intent(intent_id)
        confirmed = customer_client.post(
            "/api/payments/confirm/", {"intent_id": intent_id}, format="json"
        )
        assert confirmed.status_code == status.HTTP_200_OK
        assert confirmed.json()["success"] is True
        assert confirmed.json()["payment"]["status"] == "completed"

    def test_decline_is_a_402_with_reason(self, customer_client, served_pair, processor):
        payment_id = create(customer_client, served_pair, method="card").json()["id"]
        processor.decline_next_charge("insufficient_funds")

        response = customer_client.post(
            f"/api/payments/{payment_id}/charge-saved/", {"instrument_id": "pm_visa"}, format="json"
        )

        assert response.status_code == status.HTTP_402_PAYMENT_REQUIRED
        assert response.json()["code"] == "payment_declined"
        assert response.json()["reason"] == "insufficient_funds"

    def test_processing_charge_is_a_202(self, customer_client, served_pair, processor):
        payment_id = create(customer_client, served_pair, method="card").json()["id"]
        processor.hold_next_charge()

        response = customer_client.post(
            f"/api/payments/{payment_id}/charge-saved/", {"instrument_id": "pm_visa"}, format="json"
        )

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json()["status"] == "pending"
        assert response.json()["processor_intent_id"]

    def test_processor_outage_is_a_502(self, customer_client, served_pair, processor):
        payment_id = create(customer_client, served_pair, method="card").json()["id"]
        processor.outage = True

        response = customer_client.post(f"/api/payments/{payment_id}/intent/")

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["code"] == "processor_error"

    def test_guest_cannot_charge_saved_card(self, guest_client, guest, make_order):
        order = make_order(guest, status=S.SERVED)
        payment_id = create(guest_client, [order], method="card").json()["id"]

        response = guest_client.post(
            f"/api/payments/{payment_id}/charge-saved/", {"instrument_id": "pm_visa"}, format="json"
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestStaffAPI:
    def test_waiter_takes_cash(self, customer_client, waiter_client, served_pair):
        payment_id = create(customer_client, served_pair).json()["id"]

        response = waiter_client.post(
            "/api/payments/cash/", {"payment_id": payment_id}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "completed"
        assert {o["order_status"] for o in response.json()["orders"]} == {"completed"}

    def test_customer_cannot_take_cash(self, customer_client, served_pair):
        payment_id = create(customer_client, served_pair).json()["id"]

        response = customer_client.post(
            "/api/payments/cash/", {"payment_id": payment_id}, format="json"
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_pending_list_is_staff_only(self, customer_client, waiter_client, kitchen_client, served_pair):
        payment_id = create(customer_client, served_pair).json()["id"]

        assert customer_client.get("/api/payments/pending/").status_code == status.HTTP_403_FORBIDDEN
        assert kitchen_client.get("/api/payments/pending/").status_code == status.HTTP_403_FORBIDDEN

        response = waiter_client.get("/api/payments/pending/")
        assert [p["id"] for p in response.json()] == [payment_id]

    def test_payment_detail_scoping(
        self, customer_client, other_customer_client, waiter_client, served_pair
    ):
        payment_id = create(customer_client, served_pair).json()["id"]

        assert customer_client.get(f"/api/payments/{payment_id}/").status_code == 200
        assert waiter_client.get(f"/api/payments/{payment_id}/").status_code == 200
        assert other_customer_client.get(f"/api/payments/{payment_id}/").status_code == 404
        assert customer_client.get(f"/api/payments/{uuid.uuid4()}/").status_code == 404


@pytest.mark.django_db
class TestStripeWebhook:
    @pytest.fixture
    def intent(self, customer, served_pair):
        payment = PaymentReconciliationService.create_payment(
            customer, [o.id for o in served_pair], "card"
        )
        intent_id = PaymentReconciliationService.create_external_payment_intent(
            customer, payment.id
        )["intent_id"]
        return payment, intent_id

    def post_event(self, event_type, intent_id, signature=TEST_SIGNATURE):
        payload = json.dumps({"type": event_type, "data": {"object": {"id": intent_id}}})
        return APIClient().post(
            "/api/payments/webhook/stripe/",
            payload,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature,
        )

    def test_replayed_success_settles_once(self, intent, processor, notifier,
                                           django_capture_on_commit_callbacks):
        payment, intent_id = intent
        processor.succeed_intent(intent_id)

        with django_capture_on_commit_callbacks(execute=True):
            first = self.post_event("payment_intent.succeeded", intent_id)
            replay = self.post_event("payment_intent.succeeded", intent_id)

        assert first.status_code == replay.status_code == 200
        payment.refresh_from_db()
        assert payment.status == Payment.PaymentStatus.COMPLETED
        assert len(notifier.events()) == 2

    def test_bad_signature_is_a_400(self, intent):
        _, intent_id = intent

        response = self.post_event("payment_intent.succeeded", intent_id, signature="forged")

        assert response.status_code == 400

    def test_unknown_event_is_acknowledged(self, db):
        assert self.post_event("customer.created", "cus_1").status_code == 200

    def test_processor_outage_asks_for_a_retry(self, intent, processor):
        _, intent_id = intent
        processor.outage = True

        response = self.post_event("payment_intent.succeeded", intent_id)

        assert response.status_code == 503


@pytest.mark.django_db
class TestReconcileCommand:
    @pytest.fixture
    def succeeded_payment(self, customer, served_pair, processor):
        payment = PaymentReconciliationService.create_payment(
            customer, [o.id for o in served_pair], "card"
        )
        intent_id = PaymentReconciliationService.create_external_payment_intent(
            customer, payment.id
        )["intent_id"]
        processor.succeed_intent(intent_id)
        return payment

    def test_dry_run(self, succeeded_payment):
        out = StringIO()

        call_command("reconcile_payments", "--dry-run", stdout=out)

        output = out.getvalue()
        assert "DRY RUN" in output
        assert f"would complete {succeeded_payment.id}" in output
        succeeded_payment.refresh_from_db()
        assert succeeded_payment.status == Payment.PaymentStatus.PENDING

    def test_completes_payments(self, succeeded_payment):
        out = StringIO()

        call_command("reconcile_payments", "--max-age-hours", "24", stdout=out)

        assert "Reconciled 1 payment(s)." in out.getvalue()
        succeeded_payment.refresh_from_db()
        assert succeeded_payment.status == Payment.PaymentStatus.COMPLETED
