"""Staff payment views: taking cash at the table and watching open bills."""

import logging

from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from users.permissions import Capability, CapabilityPermission
from ..serializers import CashPaymentSerializer, PaymentSerializer
from ..services import PaymentReconciliationService

logger = logging.getLogger(__name__)


class CashPaymentView(APIView):
    permission_classes = [CapabilityPermission]
    required_capability = Capability.SETTLE_CASH

    def post(self, request: Request) -> Response:
        serializer = CashPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payment = PaymentReconciliationService.process_cash_payment(
            request.user, data["payment_id"], notes=data.get("notes")
        )
        logger.info(f"Cash payment {payment.id} taken by user {request.user.id}")
        return Response(PaymentSerializer(payment).data)


class PendingPaymentsView(APIView):
    permission_classes = [CapabilityPermission]
    required_capability = Capability.VIEW_ALL_PAYMENTS

    def get(self, request: Request) -> Response:
        payments = PaymentReconciliationService.get_pending_payments()
        return Response(PaymentSerializer(payments, many=True).data)
