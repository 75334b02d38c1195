"""
Payment views package.

- authenticated.py: payer flows (billing, payment creation, intents, saved cards)
- staff.py: cash settlement and the open-bills list
- webhooks.py: processor webhook handler
"""

from .authenticated import (
    BillingInfoView,
    ChargeSavedInstrumentView,
    ConfirmPaymentView,
    CreatePaymentIntentView,
    CreatePaymentView,
    PaymentDetailView,
)
from .staff import CashPaymentView, PendingPaymentsView
from .webhooks import StripeWebhookView

__all__ = [
    "BillingInfoView",
    "CreatePaymentView",
    "CreatePaymentIntentView",
    "ConfirmPaymentView",
    "ChargeSavedInstrumentView",
    "PaymentDetailView",
    "CashPaymentView",
    "PendingPaymentsView",
    "StripeWebhookView",
]
