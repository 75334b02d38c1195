"""
Topic names for the order event fan-out.

Topics map one-to-one onto Channels groups, so every name must use only the
characters a group name may contain and stay under the 100 character limit.
Parts are escaped rather than squashed: ASCII letters, digits and hyphens
pass through, every other character becomes ``_xx`` per UTF-8 byte. Distinct
ids therefore never share a group ("T 1" is ``table.T_201``, "T_1" is
``table.T_5f1``). A name that would still be too long is replaced by a
digest of itself.
"""
import hashlib
import string

_MAX_GROUP_NAME = 99
_PLAIN = frozenset(string.ascii_letters + string.digits + "-")


def _escape(value) -> str:
    out = []
    for char in str(value):
        if char in _PLAIN:
            out.append(char)
        else:
            out.extend(f"_{byte:02x}" for byte in char.encode("utf-8"))
    return "".join(out)


def _topic(kind, *parts) -> str:
    name = ".".join(_escape(p) for p in (kind, *parts))
    if len(name) > _MAX_GROUP_NAME:
        # Plain names have two parts or a "user"/"session" middle part, so this
        # three part form never clashes with one.
        name = f"{kind}.h.{hashlib.sha256(name.encode('ascii')).hexdigest()}"
    return name


def role_topic(role) -> str:
    return _topic("role", role)


def user_topic(user_id) -> str:
    return _topic("actor", "user", user_id)


def session_topic(session_id) -> str:
    return _topic("actor", "session", session_id)


def table_topic(table_id) -> str:
    return _topic("table", table_id)


def order_topic(order_id) -> str:
    return _topic("order", order_id)


def actor_topic(actor) -> str:
    """Personal topic of a connected actor (user id, or session id for guests)."""
    if actor.is_guest or actor.id is None:
        return session_topic(actor.session_id)
    return user_topic(actor.id)


def owner_topic(order):
    """Personal topic of the actor who placed ``order``; None if it has no owner."""
    if order.user_id is not None:
        return user_topic(order.user_id)
    if order.session_id:
        return session_topic(order.session_id)
    return None
