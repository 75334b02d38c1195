"""
Identity resolution for HTTP requests and WebSocket handshakes.

A bearer credential is a SimpleJWT access token. Registered users carry the
usual ``user_id`` claim; guests carry ``is_guest``, ``session_id`` and
``table_id`` and have no user row. Both end up as an :class:`ActorContext`,
which is what the services work with.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import jwt
from django.conf import settings

from core_backend.exceptions import AuthenticationError
from .models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActorContext:
    id: Optional[int]
    role: str
    is_guest: bool = False
    session_id: Optional[str] = None
    table_id: Optional[str] = None
    user: Any = field(default=None, repr=False, compare=False)

    # DRF and Channels both check this attribute on request.user / scope["user"]
    is_authenticated = True
    is_anonymous = False

    @property
    def pk(self):
        return self.id

    def owner_filter(self, prefix=""):
        """
        ORM lookup selecting records owned by this actor.

        Guests own records through their session id, everyone else through
        the user foreign key.
        """
        if self.is_guest or self.id is None:
            return {f"{prefix}session_id": self.session_id}
        return {f"{prefix}user_id": self.id}

    def owner_fields(self):
        """Field values stamping a new record as owned by this actor."""
        if self.is_guest or self.id is None:
            return {"user": None, "session_id": self.session_id}
        return {"user_id": self.id, "session_id": None}

    def owns(self, record) -> bool:
        if self.is_guest or self.id is None:
            return bool(self.session_id) and record.session_id == self.session_id
        return record.user_id == self.id

    @classmethod
    def for_user(cls, user, table_id=None):
        return cls(
            id=user.pk,
            role=user.role,
            is_guest=user.is_guest,
            table_id=table_id,
            user=user,
        )


def _decode(raw_token):
    jwt_config = settings.SIMPLE_JWT
    try:
        return jwt.decode(
            raw_token,
            jwt_config.get("SIGNING_KEY", settings.SECRET_KEY),
            algorithms=[jwt_config.get("ALGORITHM", "HS256")],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Expired bearer credential")
        raise AuthenticationError("Token has expired.")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid bearer credential: {e}")
        raise AuthenticationError("Token is invalid.")


def authenticate_credential(raw_token) -> ActorContext:
    """
    Validate ``raw_token`` and return the actor it identifies.

    Raises AuthenticationError for anything that is not a valid access
    token for an active user or a well-formed guest session.
    """
    if not raw_token:
        raise AuthenticationError()

    payload = _decode(raw_token)

    if payload.get("token_type", "access") != "access":
        raise AuthenticationError("Token is not an access token.")

    table_id = payload.get("table_id")

    if payload.get("is_guest"):
        session_id = payload.get("session_id")
        if not session_id:
            logger.warning("Guest token without session_id")
            raise AuthenticationError("Guest token has no session.")
        return ActorContext(
            id=None,
            role=User.Role.CUSTOMER,
            is_guest=True,
            session_id=session_id,
            table_id=table_id,
        )

    user_id_claim = settings.SIMPLE_JWT.get("USER_ID_CLAIM", "user_id")
    user_id = payload.get(user_id_claim) or payload.get("sub")
    if not user_id:
        logger.warning("Bearer credential missing user id")
        raise AuthenticationError("Token contained no recognizable user identification.")

    try:
        user = User.objects.get(pk=user_id, is_active=True)
    except (User.DoesNotExist, ValueError):
        logger.warning(f"User {user_id} from bearer credential not found or inactive")
        raise AuthenticationError("User not found.")

    return ActorContext.for_user(user, table_id=table_id)
