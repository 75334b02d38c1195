from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication, get_authorization_header

from core_backend.exceptions import AuthenticationError
from .identity import authenticate_credential

AUTH_HEADER_TYPES = ("Bearer",)


class BearerActorAuthentication(BaseAuthentication):
    """
    Resolves ``Authorization: Bearer <token>`` to an ActorContext.

    ``request.user`` is the ActorContext (guests included), so views and
    services never branch on whether a user row exists.
    """

    www_authenticate_realm = "api"

    def authenticate(self, request):
        header = get_authorization_header(request).split()
        if not header:
            return None

        if header[0].decode("latin-1") not in AUTH_HEADER_TYPES:
            return None

        if len(header) != 2:
            raise exceptions.AuthenticationFailed(
                "Authorization header must contain exactly two space-delimited values."
            )

        raw_token = header[1].decode("latin-1")
        try:
            actor = authenticate_credential(raw_token)
        except AuthenticationError as e:
            raise exceptions.AuthenticationFailed(e.message)

        return actor, raw_token

    def authenticate_header(self, request):
        return f'{AUTH_HEADER_TYPES[0]} realm="{self.www_authenticate_realm}"'
