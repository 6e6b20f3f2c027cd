"""Unit tests for signaling ports, outbound messages and inbound parsing."""

import json

import pytest
from pubsub import pub
from pydantic import ValidationError

from clearcast.models.events import (
    Connected,
    ErrorMessage,
    SignalMessage,
    StopRecording,
)
from clearcast.signaling.port import PubSubSignalingPort, QueueSignalingPort
from clearcast.signaling.wire import (
    EndSessionRequest,
    JoinRoomRequest,
    SignalRequest,
    parse_inbound,
)


class Collector:
    """Pubsub listener; held strongly by the test since pubsub keeps weak refs."""

    def __init__(self):
        self.received = []

    def __call__(self, connection_id, message):
        self.received.append((connection_id, message))


@pytest.mark.unit
class TestPorts:

    def test_pubsub_port_publishes(self):
        collector = Collector()
        pub.subscribe(collector, "test.signaling.outbound")
        try:
            port = PubSubSignalingPort("test.signaling.outbound")
            port.send("a", StopRecording())

            assert len(collector.received) == 1
            connection_id, message = collector.received[0]
            assert connection_id == "a"
            assert message.to_wire() == {"type": "stop-recording"}
        finally:
            pub.unsubscribe(collector, "test.signaling.outbound")

    def test_queue_port_per_connection_order(self):
        port = QueueSignalingPort()
        port.send("a", Connected("a"))
        port.send("b", StopRecording())
        port.send("a", StopRecording())

        assert [m.type for m in port.drain("a")] == ["connected", "stop-recording"]
        assert [m.type for m in port.drain("b")] == ["stop-recording"]
        assert port.receive("a") is None

    def test_queue_port_receive_timeout(self):
        port = QueueSignalingPort()

        assert port.receive("a", timeout=0.01) is None


@pytest.mark.unit
class TestWireFormat:

    def test_outbound_wire(self):
        assert Connected("x").to_wire() == {"type": "connected", "connectionId": "x"}
        assert ErrorMessage("bad").to_wire() == {"type": "error", "message": "bad"}
        assert SignalMessage("a", [1, 2]).to_wire() == {"type": "signal", "from": "a", "payload": [1, 2]}

    def test_parse_join(self):
        message = parse_inbound(json.dumps({"type": "join-room", "sessionKey": "room1", "displayName": "Al"}))

        assert isinstance(message, JoinRoomRequest)
        assert message.session_key == "room1"
        assert message.display_name == "Al"

    def test_parse_signal_keeps_payload(self):
        payload = {"candidate": "candidate:1 1 udp 2122260223 10.0.0.1 54400 typ host", "sdpMLineIndex": 0}
        message = parse_inbound(json.dumps({"type": "signal", "to": "b", "from": "a", "payload": payload}))

        assert isinstance(message, SignalRequest)
        assert message.to == "b"
        assert message.from_id == "a"
        assert message.payload == payload

    def test_parse_end_session(self):
        message = parse_inbound('{"type": "end-session", "sessionKey": "room1"}')

        assert isinstance(message, EndSessionRequest)
        assert message.session_key == "room1"

    @pytest.mark.parametrize("raw", [
        "not json",
        '{"type": "dance"}',
        '{"type": "join-room"}',
        '{"type": "join-room", "sessionKey": ""}',
        '{"type": "signal", "payload": 1}',
        '{"sessionKey": "room1"}',
    ])
    def test_malformed_rejected(self, raw):
        with pytest.raises(ValidationError):
            parse_inbound(raw)
