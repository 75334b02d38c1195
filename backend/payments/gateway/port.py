"""Payment processor port (abstract interface).

Defines the contract every processor adapter implements so the
reconciliation service never imports a processor SDK. Amounts always cross
this boundary as integers in minor units (see payments.money.to_minor).

Adapters never let SDK exceptions escape: outages and malformed requests
become ExternalProcessorError, card declines become a ChargeResult with a
typed failure reason, and a charge the processor has not finished yet
becomes a pending ChargeResult that still carries its intent id.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

# Processor intent statuses the service cares about
INTENT_SUCCEEDED = "succeeded"
INTENT_PROCESSING = "processing"
INTENT_REQUIRES_ACTION = "requires_action"

# Charge outcomes that are neither paid nor declined yet; a webhook or the
# reconciliation sweep settles them later
INTENT_PENDING_STATUSES = (INTENT_PROCESSING, INTENT_REQUIRES_ACTION)

EVENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_INTENT_FAILED = "payment_intent.payment_failed"

DECLINE_REASONS = ("insufficient_funds", "expired_card", "incorrect_cvc", "generic_decline")


def map_decline_reason(code: Optional[str], decline_code: Optional[str] = None) -> str:
    """
    Collapse processor error/decline codes into the typed reasons we expose.

    >>> map_decline_reason("card_declined", "insufficient_funds")
    'insufficient_funds'
    >>> map_decline_reason("expired_card")
    'expired_card'
    """
    if decline_code in DECLINE_REASONS:
        return decline_code
    if code in ("expired_card", "incorrect_cvc"):
        return code
    if code == "card_declined" and decline_code in ("expired_card", "incorrect_cvc"):
        return decline_code
    return "generic_decline"


@dataclass(frozen=True)
class IntentResult:
    id: str
    status: str
    client_secret: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == INTENT_SUCCEEDED

    @property
    def pending(self) -> bool:
        return self.status in INTENT_PENDING_STATUSES


@dataclass(frozen=True)
class ChargeResult:
    """Result of an off-session charge attempt."""

    success: bool
    intent_id: Optional[str] = None
    status: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def pending(self) -> bool:
        return not self.success and self.status in INTENT_PENDING_STATUSES


@dataclass(frozen=True)
class ProcessorEvent:
    """A verified webhook event, reduced to what reconciliation needs."""

    type: str
    intent_id: Optional[str] = None
    failure_reason: Optional[str] = None
    raw: dict = field(default_factory=dict, repr=False, compare=False)


class PaymentProcessor(ABC):
    """Abstract payment processor interface."""

    @abstractmethod
    def create_intent(self, amount: int, currency: str, metadata: dict) -> IntentResult:
        ...

    @abstractmethod
    def retrieve_intent(self, intent_id: str) -> IntentResult:
        ...

    @abstractmethod
    def create_customer(self, email: str, metadata: dict) -> str:
        """Create a customer and return its processor id."""
        ...

    @abstractmethod
    def attach_instrument(self, instrument_id: str, customer_id: str) -> bool:
        """Attach a saved instrument to a customer unless it already is. Returns True if attached now."""
        ...

    @abstractmethod
    def charge_instrument(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        instrument_id: str,
        metadata: dict,
        idempotency_key: Optional[str] = None,
    ) -> ChargeResult:
        """Off-session charge. Repeating a call with the same idempotency key charges once."""
        ...

    @abstractmethod
    def parse_event(self, payload: bytes, signature: str) -> ProcessorEvent:
        """Verify a webhook payload and return the event it carries."""
        ...
