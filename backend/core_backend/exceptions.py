"""
Domain exceptions shared by the ordering and payment apps.

Services raise these instead of returning error dicts;
core_backend.exception_handler turns them into JSON responses, so views only
need to call the service and serialize the result.

This module is imported by the authentication classes DRF loads from its
settings, so it must not import rest_framework.views.
"""
from rest_framework import status


class DomainError(Exception):
    """Base class for all business-rule failures."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "domain_error"
    default_message = "The request could not be completed."

    def __init__(self, message=None, **extra):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def as_dict(self):
        data = {"error": self.message, "code": self.code}
        data.update(self.extra)
        return data


class ValidationError(DomainError):
    """Unknown or unavailable menu item/modifier, or malformed input."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_message = "Invalid input."


class NotFoundError(DomainError):
    """The order or payment does not exist or is not visible to the actor."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found."


class StateConflictError(DomainError):
    """Illegal status transition, or a record is not in the expected status."""

    status_code = status.HTTP_409_CONFLICT
    code = "state_conflict"
    default_message = "The record is not in a state that allows this operation."


class BillingValidationError(StateConflictError):
    """One or more orders cannot be billed; the whole request is rejected."""

    code = "billing_validation_error"
    default_message = "Some orders are invalid, do not belong to you, or are not billable."


class DuplicateSettlementError(StateConflictError):
    """An order is already settled by another completed payment."""

    code = "duplicate_settlement"
    default_message = "One or more orders have already been paid."


class AuthenticationError(DomainError):
    """The bearer credential is missing, expired, or names an unknown actor."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "not_authenticated"
    default_message = "Authentication credentials were not provided or are invalid."


class AuthorizationError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "You do not have permission to perform this action."


class ExternalProcessorError(DomainError):
    """
    Sanitized failure from the payment processor.

    Never carries the raw SDK exception text; the original exception is
    chained (``raise ... from exc``) so it still reaches the logs.
    """

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "processor_error"
    default_message = "The payment processor could not complete the request. Please try again."


class PaymentDeclinedError(ExternalProcessorError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "payment_declined"
    default_message = "Your card was declined."

    def __init__(self, reason, message=None, **extra):
        self.reason = reason
        super().__init__(message, reason=reason, **extra)

