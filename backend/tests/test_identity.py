"""Tests for the connection <-> identity mapping."""
import pytest

from huddle.session.identity import Binding, IdentityMap


@pytest.fixture
def identities():
    return IdentityMap()


def test_bind_and_resolve_both_directions(identities):
    assert identities.bind("c1", "alice@example.com", "ROOM1") is None
    assert identities.resolve_identity("c1") == Binding("alice@example.com", "ROOM1")
    assert identities.resolve_connection("alice@example.com") == "c1"
    assert "alice@example.com" in identities
    assert len(identities) == 1


def test_rebinding_identity_supersedes_old_connection(identities):
    identities.bind("c1", "alice@example.com", "ROOM1")
    superseded = identities.bind("c2", "alice@example.com", "ROOM1")

    assert superseded == "c1"
    assert identities.resolve_identity("c1") is None
    assert identities.resolve_connection("alice@example.com") == "c2"
    assert len(identities) == 1


def test_rebinding_same_connection_is_not_a_supersede(identities):
    identities.bind("c1", "alice@example.com", "ROOM1")
    assert identities.bind("c1", "alice@example.com", "ROOM2") is None
    assert identities.resolve_identity("c1").room_code == "ROOM2"


def test_connection_switching_identity_drops_old_identity(identities):
    identities.bind("c1", "alice@example.com", "ROOM1")
    identities.touch("alice@example.com")
    identities.bind("c1", "bob@example.com", "ROOM1")

    assert identities.resolve_connection("alice@example.com") is None
    assert identities.last_activity("alice@example.com") is None
    assert identities.resolve_connection("bob@example.com") == "c1"


def test_unbind_removes_everything(identities):
    identities.bind("c1", "alice@example.com", "ROOM1")
    identities.touch("alice@example.com", now=42.0)

    assert identities.unbind("c1", "alice@example.com") is True
    assert identities.resolve_identity("c1") is None
    assert identities.resolve_connection("alice@example.com") is None
    assert identities.last_activity("alice@example.com") is None


def test_unbind_leaves_newer_binding_alone(identities):
    identities.bind("c1", "alice@example.com", "ROOM1")
    identities.bind("c2", "alice@example.com", "ROOM1")

    assert identities.unbind("c1", "alice@example.com") is False
    assert identities.resolve_connection("alice@example.com") == "c2"
    assert identities.resolve_identity("c2") is not None


def test_touch_records_activity(identities):
    identities.touch("alice@example.com", now=10.0)
    assert identities.last_activity("alice@example.com") == 10.0
    identities.touch("alice@example.com")
    assert identities.last_activity("alice@example.com") > 10.0
