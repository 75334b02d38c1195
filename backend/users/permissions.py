"""
Role and capability checks.

Every role-based decision in the project goes through :func:`has_capability`
/ :func:`authorize`. Views declare the capability they need and
:class:`CapabilityPermission` applies the same check at the DRF layer.
"""
import logging
from enum import Enum

from rest_framework import permissions

from core_backend.exceptions import AuthorizationError
from .models import User

logger = logging.getLogger(__name__)

Role = User.Role


class Capability(str, Enum):
    PLACE_ORDER = "place_order"
    VIEW_ALL_ORDERS = "view_all_orders"
    MANAGE_ANY_ORDER = "manage_any_order"
    TRIAGE_ORDERS = "triage_orders"  # accept / reject
    PAY_OWN_ORDERS = "pay_own_orders"
    SETTLE_CASH = "settle_cash"
    VIEW_ALL_PAYMENTS = "view_all_payments"


CAPABILITIES = {
    Role.CUSTOMER: {
        Capability.PLACE_ORDER,
        Capability.PAY_OWN_ORDERS,
    },
    Role.WAITER: {
        Capability.PLACE_ORDER,
        Capability.PAY_OWN_ORDERS,
        Capability.VIEW_ALL_ORDERS,
        Capability.MANAGE_ANY_ORDER,
        Capability.TRIAGE_ORDERS,
        Capability.SETTLE_CASH,
        Capability.VIEW_ALL_PAYMENTS,
    },
    Role.KITCHEN: {
        Capability.VIEW_ALL_ORDERS,
        Capability.MANAGE_ANY_ORDER,
    },
    Role.ADMIN: set(Capability),
    Role.SUPER_ADMIN: set(Capability),
}


def has_capability(actor, capability: Capability) -> bool:
    if actor is None or not getattr(actor, "is_authenticated", False):
        return False
    role = getattr(actor, "role", None)
    return capability in CAPABILITIES.get(role, set())


def authorize(actor, capability: Capability) -> None:
    """Raise AuthorizationError unless ``actor`` holds ``capability``."""
    if not has_capability(actor, capability):
        logger.warning(
            f"Authorization denied: role={getattr(actor, 'role', None)} capability={capability.value}"
        )
        raise AuthorizationError()


class CapabilityPermission(permissions.BasePermission):
    """
    DRF permission driven by the view.

    Views set either ``required_capability`` or ``action_capabilities``
    (a mapping of viewset action name to capability). Actions with no entry
    only require an authenticated actor.
    """

    def has_permission(self, request, view):
        actor = request.user
        if not (actor and actor.is_authenticated):
            return False

        capability = getattr(view, "action_capabilities", {}).get(
            getattr(view, "action", None)
        ) or getattr(view, "required_capability", None)

        if capability is None:
            return True
        return has_capability(actor, capability)
