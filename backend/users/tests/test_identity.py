"""
Identity resolution tests.

Every request and WebSocket handshake goes through authenticate_credential,
so these tests pin down which credentials resolve to which actor and which
are refused.
"""
from datetime import timedelta

import jwt
import pytest
from django.conf import settings
from rest_framework_simplejwt.tokens import AccessToken, RefreshToken

from core_backend.exceptions import AuthenticationError
from users.identity import ActorContext, authenticate_credential
from users.models import User
from users.tokens import issue_access_token, issue_guest_token


@pytest.mark.django_db
class TestAuthenticateCredential:
    """Bearer credentials resolve to ActorContext"""

    def test_registered_user_resolves_with_role_and_table(self, customer_user):
        token = issue_access_token(customer_user, table_id="T7")

        actor = authenticate_credential(token)

        assert actor.id == customer_user.id
        assert actor.role == User.Role.CUSTOMER
        assert actor.is_guest is False
        assert actor.table_id == "T7"
        assert actor.user == customer_user

    def test_guest_token_resolves_to_session_actor(self):
        token, session_id = issue_guest_token(table_id="T3")

        actor = authenticate_credential(token)

        assert actor.id is None
        assert actor.is_guest is True
        assert actor.session_id == session_id
        assert actor.table_id == "T3"
        assert actor.role == User.Role.CUSTOMER

    def test_staff_role_comes_from_the_user_row(self, waiter_user):
        actor = authenticate_credential(issue_access_token(waiter_user))

        assert actor.role == User.Role.WAITER

    def test_missing_credential_is_refused(self):
        with pytest.raises(AuthenticationError):
            authenticate_credential("")

    def test_garbage_credential_is_refused(self):
        with pytest.raises(AuthenticationError):
            authenticate_credential("not-a-jwt")

    def test_wrong_signature_is_refused(self, customer_user):
        forged = jwt.encode(
            {"user_id": customer_user.id, "token_type": "access"},
            "some-other-key",
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationError):
            authenticate_credential(forged)

    def test_expired_token_is_refused(self, customer_user):
        token = AccessToken.for_user(customer_user)
        token.set_exp(lifetime=-timedelta(minutes=1))

        with pytest.raises(AuthenticationError) as exc_info:
            authenticate_credential(str(token))

        assert "expired" in exc_info.value.message.lower()

    def test_refresh_token_is_not_an_access_token(self, customer_user):
        refresh = RefreshToken.for_user(customer_user)

        with pytest.raises(AuthenticationError):
            authenticate_credential(str(refresh))

    def test_inactive_user_is_refused(self, customer_user):
        token = issue_access_token(customer_user)
        customer_user.is_active = False
        customer_user.save()

        with pytest.raises(AuthenticationError):
            authenticate_credential(token)

    def test_deleted_user_is_refused(self, customer_user):
        token = issue_access_token(customer_user)
        customer_user.delete()

        with pytest.raises(AuthenticationError):
            authenticate_credential(token)

    def test_guest_token_without_session_is_refused(self):
        payload = {"is_guest": True, "token_type": "access"}
        token = jwt.encode(
            payload,
            settings.SIMPLE_JWT["SIGNING_KEY"],
            algorithm=settings.SIMPLE_JWT["ALGORITHM"],
        )
        with pytest.raises(AuthenticationError):
            authenticate_credential(token)


class TestActorContextOwnership:
    """Owner filters and stamps used by every owner-scoped query"""

    def test_registered_actor_owns_through_user(self):
        actor = ActorContext(id=5, role=User.Role.CUSTOMER)

        assert actor.owner_filter() == {"user_id": 5}
        assert actor.owner_filter("order__") == {"order__user_id": 5}
        assert actor.owner_fields() == {"user_id": 5, "session_id": None}

    def test_guest_actor_owns_through_session(self):
        actor = ActorContext(id=None, role=User.Role.CUSTOMER, is_guest=True, session_id="abc")

        assert actor.owner_filter() == {"session_id": "abc"}
        assert actor.owner_fields() == {"user": None, "session_id": "abc"}

    def test_owns_compares_the_right_field(self):
        class Record:
            def __init__(self, user_id=None, session_id=None):
                self.user_id = user_id
                self.session_id = session_id

        registered = ActorContext(id=5, role=User.Role.CUSTOMER)
        guest = ActorContext(id=None, role=User.Role.CUSTOMER, is_guest=True, session_id="abc")

        assert registered.owns(Record(user_id=5))
        assert not registered.owns(Record(user_id=6))
        assert guest.owns(Record(session_id="abc"))
        assert not guest.owns(Record(session_id="xyz"))
        # A guest without a session owns nothing, not every session-less record
        assert not ActorContext(id=None, role=User.Role.CUSTOMER, is_guest=True).owns(Record())

    def test_actor_is_authenticated_for_drf_and_channels(self):
        actor = ActorContext(id=1, role=User.Role.WAITER)

        assert actor.is_authenticated is True
        assert actor.is_anonymous is False
        assert actor.pk == 1
