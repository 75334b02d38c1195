"""Payment processor factory.

Provides get_processor() / set_processor() to swap implementations:
- StripeProcessor for production (PAYMENT_PROCESSOR = "stripe")
- FakeProcessor for development and testing (PAYMENT_PROCESSOR = "fake")
"""

from django.conf import settings

from payments.gateway.fake_adapter import FakeProcessor
from payments.gateway.port import PaymentProcessor
from payments.gateway.stripe_adapter import StripeProcessor

PROCESSORS = {
    "stripe": StripeProcessor,
    "fake": FakeProcessor,
}

_current_processor = None


def get_processor() -> PaymentProcessor:
    """Return the active payment processor, built from settings on first use."""
    global _current_processor
    if _current_processor is None:
        name = getattr(settings, "PAYMENT_PROCESSOR", "stripe")
        try:
            _current_processor = PROCESSORS[name]()
        except KeyError:
            raise ValueError(f"Unknown PAYMENT_PROCESSOR: {name!r}")
    return _current_processor


def set_processor(processor: PaymentProcessor) -> None:
    """Override the active payment processor (useful for tests)."""
    global _current_processor
    _current_processor = processor


def reset_processor() -> None:
    """Reset so the next get_processor() rebuilds from settings."""
    global _current_processor
    _current_processor = None
