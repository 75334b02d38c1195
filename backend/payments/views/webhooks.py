"""
Webhook views for payment providers.

Stripe calls this endpoint with payment intent events. Verification and
event handling live in PaymentReconciliationService; this view only maps
the outcome to the status codes Stripe understands (2xx stops retries).
"""

import logging

from django.http import HttpResponse
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework.permissions import AllowAny
from rest_framework.views import APIView

from core_backend.exceptions import ExternalProcessorError, ValidationError
from ..services import PaymentReconciliationService

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class StripeWebhookView(APIView):
    """
    Stripe webhook view to handle asynchronous events.

    Replays are safe: confirmation is idempotent and failures never
    overwrite a completed payment.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        payload = request.body
        sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")

        try:
            result = PaymentReconciliationService.handle_processor_event(payload, sig_header)
        except ValidationError as e:
            logger.error(f"Stripe webhook rejected: {e.message}")
            return HttpResponse(status=400)
        except ExternalProcessorError:
            # Stripe retries on 5xx
            logger.error("Stripe webhook: processor unavailable while handling event", exc_info=True)
            return HttpResponse(status=503)

        logger.info(f"Stripe webhook {result['event']} handled={result['handled']}")
        return HttpResponse(status=200)
