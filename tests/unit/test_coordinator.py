"""Unit tests for SessionCoordinator."""

import pytest

from clearcast.models.events import SignalEnvelope
from clearcast.models.session import JoinStatus
from clearcast.signaling.coordinator import SessionCoordinator
from clearcast.signaling.registry import SessionRegistry

from conftest import message_types


@pytest.mark.unit
class TestPairing:

    def test_lone_joiner_awaits_peer(self, coordinator, port):
        coordinator.on_join("a", "room1")

        messages = port.drain("a")
        assert [m.type for m in messages] == ["awaiting-peer"]
        assert messages[0].to_wire() == {"type": "awaiting-peer", "sessionKey": "room1"}

    def test_second_joiner_told_to_initiate(self, coordinator, port):
        coordinator.on_join("a", "room1")
        port.drain("a")

        coordinator.on_join("b", "room1")

        to_b = port.drain("b")
        to_a = port.drain("a")
        assert [m.to_wire() for m in to_b] == [{"type": "peer-already-present", "peerId": "a"}]
        assert [m.to_wire() for m in to_a] == [{"type": "new-peer-joined", "peerId": "b"}]

    def test_third_joiner_gets_room_full(self, coordinator, port, scheduler):
        coordinator.on_join("a", "room1")
        coordinator.on_join("b", "room1")
        port.drain("a")
        port.drain("b")

        result = coordinator.on_join("c", "room1")

        assert result.status == JoinStatus.ROOM_FULL
        assert message_types(port, "c") == ["room-full"]
        assert port.drain("a") == []
        assert port.drain("b") == []
        assert scheduler.scheduled == []

    def test_rejoin_sends_nothing(self, coordinator, port):
        coordinator.on_join("a", "room1")
        port.drain("a")

        result = coordinator.on_join("a", "room1")

        assert result.status == JoinStatus.ALREADY_JOINED
        assert port.drain("a") == []

    def test_join_elsewhere_handled_as_departure(self, coordinator, port, scheduler):
        coordinator.on_join("a", "room1")
        coordinator.on_join("b", "room1")
        port.drain("a")
        port.drain("b")

        coordinator.on_join("b", "room2")

        assert message_types(port, "a") == ["stop-recording"]
        assert message_types(port, "b") == ["awaiting-peer"]
        assert scheduler.scheduled == ["room1"]


@pytest.mark.unit
class TestRelay:

    def _paired(self, coordinator, port):
        coordinator.on_join("a", "room1")
        coordinator.on_join("b", "room1")
        port.drain("a")
        port.drain("b")

    def test_payload_relayed_unchanged(self, coordinator, port):
        self._paired(coordinator, port)
        payload = {"sdp": "v=0\r\no=- 1 2 IN IP4 127.0.0.1", "nested": [1, {"x": None}]}

        assert coordinator.relay(SignalEnvelope("b", "a", payload))

        messages = port.drain("a")
        assert len(messages) == 1
        assert messages[0].to_wire() == {"type": "signal", "from": "b", "payload": payload}
        assert messages[0].payload is payload

    def test_signal_to_stranger_dropped(self, coordinator, port):
        self._paired(coordinator, port)
        coordinator.on_join("c", "room2")
        port.drain("c")

        assert not coordinator.relay(SignalEnvelope("a", "c", {"candidate": "x"}))
        assert port.drain("c") == []

    def test_signal_to_unknown_dropped(self, coordinator, port):
        self._paired(coordinator, port)

        assert not coordinator.on_signal("a", "ghost", "payload")
        assert port.drain("ghost") == []

    def test_claimed_sender_ignored(self, coordinator, port):
        self._paired(coordinator, port)

        coordinator.on_signal("a", "b", "offer", claimed_from="someone-else")

        messages = port.drain("b")
        assert messages[0].from_id == "a"


@pytest.mark.unit
class TestRecordingLifecycle:

    def test_disconnect_stops_peer_and_schedules_one_merge(self, coordinator, port, scheduler):
        coordinator.on_join("a", "room1")
        coordinator.on_join("b", "room1")
        port.drain("a")
        port.drain("b")

        assert coordinator.on_disconnect("a") == "room1"

        assert message_types(port, "b") == ["stop-recording"]
        assert port.drain("a") == []
        assert scheduler.scheduled == ["room1"]

    def test_each_disconnect_schedules_its_own_merge(self, coordinator, port, scheduler):
        coordinator.on_join("a", "room1")
        coordinator.on_join("b", "room1")

        coordinator.on_disconnect("a")
        coordinator.on_disconnect("b")

        assert scheduler.scheduled == ["room1", "room1"]

    def test_lone_member_disconnect_still_schedules_merge(self, coordinator, port, scheduler):
        coordinator.on_join("a", "room1")

        coordinator.on_disconnect("a")

        assert scheduler.scheduled == ["room1"]

    def test_disconnect_without_session(self, coordinator, scheduler):
        assert coordinator.on_disconnect("nobody") is None
        assert scheduler.scheduled == []

    def test_end_session_broadcasts_stop(self, coordinator, port, scheduler):
        coordinator.on_join("a", "room1")
        coordinator.on_join("b", "room1")
        port.drain("a")
        port.drain("b")

        assert coordinator.on_end_session("a", "room1")

        assert message_types(port, "a") == ["stop-recording"]
        assert message_types(port, "b") == ["stop-recording"]
        assert scheduler.scheduled == []

    def test_end_unknown_session_ignored(self, coordinator, port):
        assert not coordinator.on_end_session("a", "missing")
        assert port.drain("a") == []

    def test_works_without_scheduler(self, port):
        coordinator = SessionCoordinator(SessionRegistry(), port)
        coordinator.on_join("a", "room1")

        assert coordinator.on_disconnect("a") == "room1"
