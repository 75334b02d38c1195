"""
Shared test fixtures for all backend tests.

This module provides reusable pytest fixtures for common test objects
like users, actors, menu items, orders and authenticated API clients.
"""
from decimal import Decimal

import pytest

from menu.models import MenuItem, ModifierGroup, ModifierOption
from orders.models import Order
from users.identity import ActorContext
from users.models import User
from users.tokens import issue_access_token, issue_guest_token


# ============================================================================
# USER FIXTURES
# ============================================================================

@pytest.fixture
def customer_user(db):
    """Create a registered customer"""
    return User.objects.create_user(
        email="diner@example.com",
        password="password123",
        name="Dana Diner",
        role=User.Role.CUSTOMER,
    )


@pytest.fixture
def other_customer_user(db):
    """Create a second customer, used to check ownership boundaries"""
    return User.objects.create_user(
        email="other@example.com",
        password="password123",
        role=User.Role.CUSTOMER,
    )


@pytest.fixture
def waiter_user(db):
    return User.objects.create_user(
        email="waiter@example.com",
        password="password123",
        role=User.Role.WAITER,
    )


@pytest.fixture
def kitchen_user(db):
    return User.objects.create_user(
        email="kitchen@example.com",
        password="password123",
        role=User.Role.KITCHEN,
    )


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        email="admin@example.com",
        password="password123",
        role=User.Role.ADMIN,
    )


# ============================================================================
# ACTOR FIXTURES
# ============================================================================

@pytest.fixture
def customer(customer_user):
    """The registered customer as the services see them, seated at table T1"""
    return ActorContext.for_user(customer_user, table_id="T1")


@pytest.fixture
def other_customer(other_customer_user):
    return ActorContext.for_user(other_customer_user, table_id="T1")


@pytest.fixture
def guest():
    """An anonymous table session at table T2"""
    return ActorContext(
        id=None,
        role=User.Role.CUSTOMER,
        is_guest=True,
        session_id="guest-session-1",
        table_id="T2",
    )


@pytest.fixture
def waiter(waiter_user):
    return ActorContext.for_user(waiter_user)


@pytest.fixture
def kitchen(kitchen_user):
    return ActorContext.for_user(kitchen_user)


@pytest.fixture
def admin(admin_user):
    return ActorContext.for_user(admin_user)


# ============================================================================
# MENU FIXTURES
# ============================================================================

@pytest.fixture
def salmon(db):
    """Menu item priced at 24.99"""
    return MenuItem.objects.create(name="Grilled Salmon", price=Decimal("24.99"))


@pytest.fixture
def coke(db):
    """Menu item priced at 2.99"""
    return MenuItem.objects.create(name="Coke", price=Decimal("2.99"))


@pytest.fixture
def sold_out_item(db):
    return MenuItem.objects.create(
        name="Lobster", price=Decimal("39.00"), status=MenuItem.Status.UNAVAILABLE
    )


@pytest.fixture
def salmon_sides(salmon):
    """Side options for the salmon: rice (+0.00), fries (+1.50), truffle mash (unavailable)"""
    group = ModifierGroup.objects.create(menu_item=salmon, name="Choose a side")
    return {
        "rice": ModifierOption.objects.create(group=group, name="Rice"),
        "fries": ModifierOption.objects.create(
            group=group, name="Fries", price_adjustment=Decimal("1.50")
        ),
        "mash": ModifierOption.objects.create(
            group=group,
            name="Truffle mash",
            price_adjustment=Decimal("3.00"),
            is_available=False,
        ),
    }


# ============================================================================
# ORDER FIXTURES
# ============================================================================

@pytest.fixture
def make_order(db):
    """
    Factory writing an order straight to the store, bypassing the lifecycle.

    Usage:
        order = make_order(customer, status=Order.OrderStatus.SERVED, total="10.00")
    """

    def _make_order(actor, status=Order.OrderStatus.PENDING, total="10.00", table_id=None):
        return Order.objects.create(
            table_id=table_id or actor.table_id or "T1",
            status=status,
            total_amount=Decimal(total),
            **actor.owner_fields(),
        )

    return _make_order


# ============================================================================
# API CLIENT FIXTURES
# ============================================================================

def _bearer_client(token):
    from rest_framework.test import APIClient

    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
    return client


@pytest.fixture
def customer_client(customer_user):
    return _bearer_client(issue_access_token(customer_user, table_id="T1"))


@pytest.fixture
def other_customer_client(other_customer_user):
    return _bearer_client(issue_access_token(other_customer_user, table_id="T1"))


@pytest.fixture
def guest_client(guest):
    token, _ = issue_guest_token(session_id=guest.session_id, table_id=guest.table_id)
    return _bearer_client(token)


@pytest.fixture
def waiter_client(waiter_user):
    return _bearer_client(issue_access_token(waiter_user))


@pytest.fixture
def kitchen_client(kitchen_user):
    return _bearer_client(issue_access_token(kitchen_user))
