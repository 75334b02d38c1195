"""
Bearer credential authentication for Django Channels.

Resolves the credential a WebSocket client presents into an ActorContext on
``scope["user"]``, the same identity HTTP views get from
BearerActorAuthentication. The credential is taken from, in order:

1. the ``Authorization: Bearer <token>`` header,
2. the ``token`` query parameter,
3. the subprotocol list ``["bearer", "<token>"]`` (browsers cannot set headers).

Failures leave an AnonymousUser and the reason in ``scope["auth_error"]``;
the consumer decides how to refuse the connection.
"""
import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser

from core_backend.exceptions import AuthenticationError
from users.identity import authenticate_credential

logger = logging.getLogger(__name__)

BEARER_SUBPROTOCOL = "bearer"


def extract_credential(scope):
    """Return ``(token, source)`` for the first credential found, or ``(None, None)``."""
    headers = dict(scope.get("headers", []))
    auth_header = headers.get(b"authorization", b"").decode("latin-1")
    if auth_header:
        parts = auth_header.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1], "header"

    query_string = scope.get("query_string", b"").decode()
    token = parse_qs(query_string).get("token", [None])[0]
    if token:
        return token, "query"

    subprotocols = scope.get("subprotocols") or []
    if len(subprotocols) >= 2 and subprotocols[0] == BEARER_SUBPROTOCOL:
        return subprotocols[1], "subprotocol"

    return None, None


class BearerAuthMiddleware(BaseMiddleware):
    async def __call__(self, scope, receive, send):
        if scope["type"] != "websocket":
            return await super().__call__(scope, receive, send)

        scope = dict(scope)
        token, source = extract_credential(scope)
        scope["credential_source"] = source
        scope["auth_error"] = None

        if not token:
            logger.debug("No bearer credential on WebSocket connection")
            scope["user"] = AnonymousUser()
            scope["auth_error"] = "Authentication credentials were not provided."
        else:
            try:
                scope["user"] = await database_sync_to_async(authenticate_credential)(token)
            except AuthenticationError as e:
                scope["user"] = AnonymousUser()
                scope["auth_error"] = e.message

        return await super().__call__(scope, receive, send)
