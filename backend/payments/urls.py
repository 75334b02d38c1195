from django.urls import path

from .views import (
    BillingInfoView,
    CashPaymentView,
    ChargeSavedInstrumentView,
    ConfirmPaymentView,
    CreatePaymentIntentView,
    CreatePaymentView,
    PaymentDetailView,
    PendingPaymentsView,
    StripeWebhookView,
)

app_name = "payments"

urlpatterns = [
    path("webhook/stripe/", StripeWebhookView.as_view(), name="stripe-webhook"),
    path("", CreatePaymentView.as_view(), name="payment-create"),
    path("billing/", BillingInfoView.as_view(), name="billing-info"),
    path("confirm/", ConfirmPaymentView.as_view(), name="payment-confirm"),
    # Staff endpoints
    path("cash/", CashPaymentView.as_view(), name="cash-payment"),
    path("pending/", PendingPaymentsView.as_view(), name="pending-payments"),
    # Single payment endpoints last so the fixed paths above take precedence
    path(
        "<str:payment_id>/intent/",
        CreatePaymentIntentView.as_view(),
        name="payment-intent",
    ),
    path(
        "<str:payment_id>/charge-saved/",
        ChargeSavedInstrumentView.as_view(),
        name="payment-charge-saved",
    ),
    path("<str:payment_id>/", PaymentDetailView.as_view(), name="payment-detail"),
]
