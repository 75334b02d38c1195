"""
Payer-facing payment views.

Registered customers and guest sessions both arrive here as authenticated
actors; ownership checks happen in PaymentReconciliationService, which also
raises the domain errors rendered by the project exception handler.
"""

import logging

from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from users.permissions import Capability, CapabilityPermission
from ..serializers import (
    BillingInfoSerializer,
    ChargeSavedInstrumentSerializer,
    ConfirmPaymentSerializer,
    CreatePaymentSerializer,
    PaymentSerializer,
)
from ..services import PaymentReconciliationService

logger = logging.getLogger(__name__)


class BillingInfoView(APIView):
    """Served, unpaid orders of the caller and their grand total."""

    permission_classes = [CapabilityPermission]
    required_capability = Capability.PAY_OWN_ORDERS

    def get(self, request: Request) -> Response:
        billing = PaymentReconciliationService.get_billing_info(request.user)
        return Response(BillingInfoSerializer(billing).data)


class CreatePaymentView(APIView):
    permission_classes = [CapabilityPermission]
    required_capability = Capability.PAY_OWN_ORDERS

    def post(self, request: Request) -> Response:
        serializer = CreatePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payment = PaymentReconciliationService.create_payment(
            request.user,
            data["order_ids"],
            data["method"],
            notes=data.get("notes"),
        )
        payment = PaymentReconciliationService.get_payment_details(payment.id, request.user)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


class CreatePaymentIntentView(APIView):
    """
    Opens (or returns the existing) processor intent for a card/online payment.
    The client finishes the payment with the returned ``client_secret``.
    """

    permission_classes = [CapabilityPermission]
    required_capability = Capability.PAY_OWN_ORDERS

    def post(self, request: Request, payment_id) -> Response:
        intent = PaymentReconciliationService.create_external_payment_intent(
            request.user, payment_id
        )
        return Response(intent, status=status.HTTP_200_OK)


class ConfirmPaymentView(APIView):
    permission_classes = [CapabilityPermission]

    def post(self, request: Request) -> Response:
        serializer = ConfirmPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PaymentReconciliationService.confirm_external_payment(
            serializer.validated_data["intent_id"]
        )
        return Response(
            {
                "success": result["success"],
                "status": result["status"],
                "payment": PaymentSerializer(result["payment"]).data,
            }
        )


class ChargeSavedInstrumentView(APIView):
    permission_classes = [CapabilityPermission]
    required_capability = Capability.PAY_OWN_ORDERS

    def post(self, request: Request, payment_id) -> Response:
        serializer = ChargeSavedInstrumentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payment = PaymentReconciliationService.charge_saved_instrument(
            request.user, payment_id, serializer.validated_data["instrument_id"]
        )
        # Still pending means the processor accepted the charge but has not settled it
        code = status.HTTP_202_ACCEPTED if payment.status == payment.PaymentStatus.PENDING else status.HTTP_200_OK
        return Response(PaymentSerializer(payment).data, status=code)


class PaymentDetailView(APIView):
    """Owners see their own payments; staff with payment visibility see any."""

    permission_classes = [CapabilityPermission]

    def get(self, request: Request, payment_id) -> Response:
        payment = PaymentReconciliationService.get_payment_details(payment_id, request.user)
        return Response(PaymentSerializer(payment).data)
