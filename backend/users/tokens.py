import uuid

from rest_framework_simplejwt.tokens import AccessToken


def issue_access_token(user, table_id=None):
    """Access token for a registered user, carrying the claims the identity layer reads."""
    token = AccessToken.for_user(user)
    token["role"] = user.role
    token["email"] = user.email
    token["is_guest"] = user.is_guest
    if table_id:
        token["table_id"] = str(table_id)
    return str(token)


def issue_guest_token(session_id=None, table_id=None):
    """
    Access token for an anonymous table session.

    A fresh session id is generated when none is given. Returns
    ``(token, session_id)``.
    """
    session_id = session_id or uuid.uuid4().hex
    token = AccessToken()
    token["is_guest"] = True
    token["role"] = "customer"
    token["session_id"] = session_id
    if table_id:
        token["table_id"] = str(table_id)
    return str(token), session_id
