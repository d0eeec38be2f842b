"""Tests for the connection hub: groups and delivery."""
import pytest

from huddle.session.hub import ConnectionHub


class BrokenConnection:

    def __init__(self, handle):
        self.handle = handle

    async def send_json(self, data):
        raise ConnectionError("socket gone")


@pytest.fixture
def hub():
    return ConnectionHub()


def test_groups_track_subscriptions(hub, make_connection):
    hub.register(make_connection("a"))
    hub.register(make_connection("b"))
    hub.subscribe("a", "ROOM1")
    hub.subscribe("b", "ROOM1")
    hub.subscribe("a", "ROOM2")

    assert hub.members("ROOM1") == ["a", "b"]
    hub.unsubscribe("a", "ROOM1")
    assert hub.members("ROOM1") == ["b"]
    assert hub.members("ROOM2") == ["a"]


def test_unregister_drops_all_subscriptions(hub, make_connection):
    conn = make_connection("a")
    hub.register(conn)
    hub.subscribe("a", "ROOM1")

    assert hub.unregister("a") is conn
    assert hub.members("ROOM1") == []
    assert "ROOM1" not in hub.groups
    assert hub.is_connected("a") is False


def test_subscriptions_lists_groups_of_handle(hub, make_connection):
    hub.register(make_connection("a"))
    hub.subscribe("a", "ROOM1")
    hub.subscribe("a", "ROOM2")
    hub.subscribe("b", "ROOM2")

    assert hub.subscriptions("a") == ["ROOM1", "ROOM2"]
    hub.unsubscribe("a", "ROOM1")
    assert hub.subscriptions("a") == ["ROOM2"]
    assert hub.subscriptions("ghost") == []


@pytest.mark.asyncio
async def test_send_to_unknown_handle_is_silent(hub):
    assert await hub.send("ghost", {"type": "pong"}) is False


@pytest.mark.asyncio
async def test_broadcast_excludes_sender(hub, make_connection):
    a, b = make_connection("a"), make_connection("b")
    for conn in (a, b):
        hub.register(conn)
        hub.subscribe(conn.handle, "ROOM1")

    await hub.broadcast({"type": "user-left"}, "ROOM1", exclude="a")
    assert a.sent == []
    assert b.sent == [{"type": "user-left"}]


@pytest.mark.asyncio
async def test_failed_send_drops_connection(hub, make_connection):
    good, bad = make_connection("good"), BrokenConnection("bad")
    for conn in (good, bad):
        hub.register(conn)
        hub.subscribe(conn.handle, "ROOM1")

    await hub.broadcast({"type": "participants-update"}, "ROOM1")
    assert good.sent == [{"type": "participants-update"}]
    assert hub.is_connected("bad") is False
    assert hub.members("ROOM1") == ["good"]

    hub.register(bad)
    assert await hub.send("bad", {"type": "pong"}) is False
    assert hub.is_connected("bad") is False
