import logging
from collections import defaultdict
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

# Channels dispatches "order.event" to the consumer's order_event() handler
EVENT_MESSAGE_TYPE = "order.event"


class ConnectionRegistry:
    """
    Tracks which live connections listen on which topics.

    Group membership itself lives in the channel layer, so broadcasts reach
    connections served by any process. The membership map is local to this
    process and only covers the connections it serves; it is what lets a
    disconnect drop every topic in one call.
    """

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer
        self._memberships = defaultdict(set)

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    async def add(self, channel_name: str, topic: str) -> None:
        await self.channel_layer.group_add(topic, channel_name)
        self._memberships[channel_name].add(topic)
        logger.debug(f"{channel_name} joined {topic}")

    async def remove(self, channel_name: str, topic: str) -> None:
        await self.channel_layer.group_discard(topic, channel_name)
        topics = self._memberships.get(channel_name)
        if topics is not None:
            topics.discard(topic)
            if not topics:
                del self._memberships[channel_name]
        logger.debug(f"{channel_name} left {topic}")

    async def remove_connection(self, channel_name: str) -> None:
        topics = self._memberships.pop(channel_name, set())
        for topic in topics:
            await self.channel_layer.group_discard(topic, channel_name)
        if topics:
            logger.info(f"Dropped {len(topics)} topic memberships for {channel_name}")

    def topics_for(self, channel_name: str) -> frozenset:
        return frozenset(self._memberships.get(channel_name, ()))

    async def abroadcast(self, topic: str, event: str, payload: Dict[str, Any]) -> None:
        """
        Send ``event`` to every connection on ``topic``.

        Nobody listening is not an error: the layer drops the message.
        """
        if self.channel_layer is None:
            logger.warning(f"No channel layer configured, dropping {event} for {topic}")
            return
        await self.channel_layer.group_send(
            topic,
            {
                "type": EVENT_MESSAGE_TYPE,
                "event": event,
                "topic": topic,
                "payload": payload,
            },
        )

    def broadcast(self, topic: str, event: str, payload: Dict[str, Any]) -> None:
        async_to_sync(self.abroadcast)(topic, event, payload)


connection_registry = ConnectionRegistry()
