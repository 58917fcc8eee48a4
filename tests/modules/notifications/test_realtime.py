"""
Unit tests for the realtime connection registry.
"""

from uuid import uuid4

import pytest

from placement_api.modules.notifications.realtime import ConnectionRegistry


class FakeConnection:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []

    async def send_json(self, data):
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(data)


class TestConnectionRegistry:
    @pytest.mark.asyncio
    async def test_send_to_every_connection(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        tab, phone = FakeConnection(), FakeConnection()
        registry.register(user_id, tab)
        registry.register(user_id, phone)

        delivered = await registry.send(user_id, {"event": "payment.verified"})

        assert delivered == 2
        assert tab.sent == [{"event": "payment.verified"}]
        assert phone.sent == [{"event": "payment.verified"}]

    @pytest.mark.asyncio
    async def test_offline_user_is_not_an_error(self):
        registry = ConnectionRegistry()

        assert await registry.send(uuid4(), {"event": "payment.verified"}) == 0

    @pytest.mark.asyncio
    async def test_broken_connection_is_dropped(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        good, broken = FakeConnection(), FakeConnection(fail=True)
        registry.register(user_id, good)
        registry.register(user_id, broken)

        delivered = await registry.send(user_id, {"event": "payment.rejected"})

        assert delivered == 1
        assert registry.count(user_id) == 1

    def test_unregister_one_or_all(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        first, second = FakeConnection(), FakeConnection()
        registry.register(user_id, first)
        registry.register(user_id, second)

        registry.unregister(user_id, first)
        assert registry.count(user_id) == 1

        registry.unregister(user_id)
        assert registry.is_connected(user_id) is False

    def test_unregister_unknown_user(self):
        registry = ConnectionRegistry()
        registry.unregister(uuid4())
