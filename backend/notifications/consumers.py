import json
import logging
import uuid
from datetime import datetime

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from core_backend.jwt_websocket_middleware import BEARER_SUBPROTOCOL
from users.permissions import Capability, has_capability
from . import topics
from .registry import connection_registry

logger = logging.getLogger(__name__)

# Close code for a refused handshake (mirrors HTTP 401)
CLOSE_UNAUTHENTICATED = 4401


class OrderEventsConsumer(AsyncWebsocketConsumer):
    """
    Real-time order events for customers, waiters, kitchen and admins.

    On connect the actor is subscribed to its role topic and its personal
    topic. Clients may join table and order topics explicitly. Delivery is
    fire-and-forget; clients re-read state over HTTP after reconnecting.
    """

    registry = connection_registry

    async def connect(self):
        actor = self.scope.get("user")

        if actor is None or not actor.is_authenticated:
            logger.warning(
                f"OrderEventsConsumer: refusing connection: {self.scope.get('auth_error')}"
            )
            await self.close(code=CLOSE_UNAUTHENTICATED)
            return

        self.actor = actor
        self.personal_topic = topics.actor_topic(actor)

        await self.registry.add(self.channel_name, topics.role_topic(actor.role))
        await self.registry.add(self.channel_name, self.personal_topic)

        if self.scope.get("credential_source") == "subprotocol":
            await self.accept(subprotocol=BEARER_SUBPROTOCOL)
        else:
            await self.accept()

        logger.info(
            f"OrderEventsConsumer: {actor.role} connected on {self.personal_topic}"
        )

        await self.send_json(
            {
                "type": "connection.established",
                "role": actor.role,
                "is_guest": actor.is_guest,
                "topics": sorted(self.registry.topics_for(self.channel_name)),
                "timestamp": self.get_timestamp(),
            }
        )

    async def disconnect(self, close_code):
        await self.registry.remove_connection(self.channel_name)
        if hasattr(self, "personal_topic"):
            logger.info(
                f"OrderEventsConsumer: {self.personal_topic} disconnected ({close_code})"
            )

    async def receive(self, text_data=None, bytes_data=None):
        try:
            data = json.loads(text_data or "")
        except json.JSONDecodeError:
            await self.send_error("Invalid JSON.")
            return

        if not isinstance(data, dict):
            await self.send_error("Messages must be JSON objects.")
            return

        message_type = data.get("type")

        if message_type == "ping":
            await self.send_json({"type": "pong", "timestamp": self.get_timestamp()})
        elif message_type == "join.table":
            await self.join_scoped(topics.table_topic, data.get("table_id"), self.can_join_table)
        elif message_type == "leave.table":
            await self.leave_scoped(topics.table_topic, data.get("table_id"))
        elif message_type == "join.order":
            await self.join_scoped(topics.order_topic, data.get("order_id"), self.can_join_order)
        elif message_type == "leave.order":
            await self.leave_scoped(topics.order_topic, data.get("order_id"))
        else:
            logger.warning(f"Unknown message type from {self.personal_topic}: {message_type}")
            await self.send_error(f"Unknown message type: {message_type}")

    async def join_scoped(self, topic_for, scope_id, can_join):
        if not scope_id:
            await self.send_error("An id is required to join.")
            return
        if not await can_join(scope_id):
            await self.send_error("You cannot subscribe to this topic.")
            return
        topic = topic_for(scope_id)
        await self.registry.add(self.channel_name, topic)
        await self.send_json({"type": "joined", "topic": topic})

    async def leave_scoped(self, topic_for, scope_id):
        if not scope_id:
            await self.send_error("An id is required to leave.")
            return
        topic = topic_for(scope_id)
        await self.registry.remove(self.channel_name, topic)
        await self.send_json({"type": "left", "topic": topic})

    async def can_join_table(self, table_id):
        if has_capability(self.actor, Capability.VIEW_ALL_ORDERS):
            return True
        return self.actor.table_id is not None and str(self.actor.table_id) == str(table_id)

    async def can_join_order(self, order_id):
        if has_capability(self.actor, Capability.VIEW_ALL_ORDERS):
            return True
        return await self._owns_order(order_id)

    @database_sync_to_async
    def _owns_order(self, order_id):
        from orders.models import Order

        try:
            order_id = uuid.UUID(str(order_id))
        except ValueError:
            return False
        return Order.objects.filter(pk=order_id, **self.actor.owner_filter()).exists()

    # Channel layer handlers

    async def order_event(self, event):
        """Forward an order event from the channel layer to the client."""
        await self.send_json(
            {
                "type": event["event"],
                "topic": event["topic"],
                **event["payload"],
            }
        )

    async def send_json(self, content):
        await self.send(text_data=json.dumps(content, default=str))

    async def send_error(self, message):
        await self.send_json({"type": "error", "message": message})

    def get_timestamp(self):
        return datetime.now().isoformat()
