"""End-to-end tests for the /ws session endpoint."""
import pytest
from fastapi.websockets import WebSocketDisconnect

from huddle.session.connection import CLOSE_SUPERSEDED

ALICE = "alice@example.com"
BOB = "bob@example.com"


def receive_connected(ws):
    """Helper to receive the server-assigned connection handle."""
    connected = ws.receive_json()
    assert connected["type"] == "connected"
    assert connected["connHandle"]
    return connected["connHandle"]


def join(ws, identity, room="ROOM1"):
    ws.send_json({"type": "join-room", "roomCode": room, "identity": identity})


def receive_until(ws, event_type):
    """Read frames until one of *event_type* arrives; return it."""
    while True:
        message = ws.receive_json()
        if message["type"] == event_type:
            return message


def test_connect_announces_handle(api_client):
    with api_client.websocket_connect("/ws") as ws:
        assert receive_connected(ws)


def test_join_order_and_ready_announcement(api_client):
    with api_client.websocket_connect("/ws") as ws1, \
         api_client.websocket_connect("/ws") as ws2:
        h1 = receive_connected(ws1)
        h2 = receive_connected(ws2)

        join(ws1, ALICE)
        update = ws1.receive_json()
        assert update["type"] == "participants-update"
        assert update["count"] == 1
        assert ws1.receive_json() == {"type": "room-participants", "participants": []}

        join(ws2, BOB)
        update = ws2.receive_json()
        assert update["type"] == "participants-update"
        assert update["count"] == 2
        roster = ws2.receive_json()
        assert roster == {
            "type": "room-participants",
            "participants": [{"connHandle": h1, "identity": ALICE}],
        }
        assert ws1.receive_json()["count"] == 2

        ws2.send_json({"type": "ready"})
        assert ws1.receive_json() == {"type": "user-joined", "connHandle": h2, "identity": BOB}


def test_chat_round_trip(api_client):
    with api_client.websocket_connect("/ws") as ws1, \
         api_client.websocket_connect("/ws") as ws2:
        receive_connected(ws1)
        receive_connected(ws2)
        join(ws1, ALICE)
        receive_until(ws1, "room-participants")
        join(ws2, BOB)
        receive_until(ws2, "room-participants")

        ws1.send_json({"type": "chat-message", "body": "hello there"})
        received = receive_until(ws2, "chat-message")
        echoed = receive_until(ws1, "chat-message")
        assert received == echoed
        assert received["senderIdentity"] == ALICE
        assert received["roomCode"] == "ROOM1"


def test_errors_do_not_close_the_connection(api_client):
    with api_client.websocket_connect("/ws") as ws:
        receive_connected(ws)

        ws.send_text("not json")
        assert ws.receive_json()["code"] == "invalid_payload"

        ws.send_json({"type": "chat-message", "body": "hi"})
        assert ws.receive_json()["code"] == "not_joined"

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_departure_announced_after_grace_period(app, api_client):
    with api_client.websocket_connect("/ws") as ws1:
        h1 = receive_connected(ws1)
        join(ws1, ALICE)
        receive_until(ws1, "room-participants")

        with api_client.websocket_connect("/ws") as ws2:
            h2 = receive_connected(ws2)
            join(ws2, BOB)
            receive_until(ws2, "room-participants")

        left = receive_until(ws1, "user-left")
        assert left == {"type": "user-left", "connHandle": h2, "identity": BOB}
        update = ws1.receive_json()
        assert update["type"] == "participants-update"
        assert update["participants"] == [{"connHandle": h1, "identity": ALICE}]


def test_second_connection_supersedes_first(app, api_client):
    with api_client.websocket_connect("/ws") as old:
        receive_connected(old)
        join(old, BOB)
        receive_until(old, "room-participants")

        with api_client.websocket_connect("/ws") as new:
            h_new = receive_connected(new)
            join(new, BOB)
            update = receive_until(new, "participants-update")
            assert update["participants"] == [{"connHandle": h_new, "identity": BOB}]

            with pytest.raises(WebSocketDisconnect) as exc_info:
                old.receive_json()
            assert exc_info.value.code == CLOSE_SUPERSEDED

            room = app.state.coordinator.registry.get("ROOM1")
            assert [p.connHandle for p in room.participants()] == [h_new]
