"""
Connection registry against a private in-memory channel layer.
"""
import pytest
from channels.layers import InMemoryChannelLayer

from notifications.registry import EVENT_MESSAGE_TYPE, ConnectionRegistry


@pytest.fixture
def layer():
    return InMemoryChannelLayer()


@pytest.fixture
def registry(layer):
    return ConnectionRegistry(channel_layer=layer)


@pytest.mark.asyncio
class TestConnectionRegistry:
    async def test_broadcast_reaches_members_only(self, layer, registry):
        member = await layer.new_channel()
        bystander = await layer.new_channel()
        await registry.add(member, "role.kitchen")
        await registry.add(bystander, "role.waiter")

        await registry.abroadcast("role.kitchen", "order.created", {"order": {"id": "1"}})

        message = await layer.receive(member)
        assert message["type"] == EVENT_MESSAGE_TYPE
        assert message["event"] == "order.created"
        assert message["topic"] == "role.kitchen"
        assert message["payload"] == {"order": {"id": "1"}}
        assert layer.channels.get(bystander) is None or layer.channels[bystander].empty()

    async def test_membership_tracking(self, layer, registry):
        channel = await layer.new_channel()
        await registry.add(channel, "role.kitchen")
        await registry.add(channel, "table.T1")

        assert registry.topics_for(channel) == {"role.kitchen", "table.T1"}

        await registry.remove(channel, "table.T1")
        assert registry.topics_for(channel) == {"role.kitchen"}

    async def test_remove_connection_drops_every_topic(self, layer, registry):
        channel = await layer.new_channel()
        await registry.add(channel, "role.kitchen")
        await registry.add(channel, "order.abc")

        await registry.remove_connection(channel)

        assert registry.topics_for(channel) == frozenset()
        assert "role.kitchen" not in layer.groups or channel not in layer.groups["role.kitchen"]

    async def test_broadcast_to_empty_topic_is_not_an_error(self, registry):
        await registry.abroadcast("table.nobody", "order.created", {})
