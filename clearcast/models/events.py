"""Signaling messages exchanged between the coordinator and participants."""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class SignalEnvelope:
    """Opaque negotiation payload addressed from one participant to another.

    The payload is relayed as-is and never inspected.
    """
    from_id: str
    to_id: str
    payload: Any


@dataclass
class OutboundMessage:
    """Base class for coordinator -> participant messages."""
    type = "message"

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type}


@dataclass
class Connected(OutboundMessage):
    """Tells a freshly connected client its connection id."""
    connection_id: str
    type = "connected"

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type, "connectionId": self.connection_id}


@dataclass
class PeerAlreadyPresent(OutboundMessage):
    """Sent to the newcomer: a peer is waiting, initiate toward it."""
    peer_id: str
    type = "peer-already-present"

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type, "peerId": self.peer_id}


@dataclass
class AwaitingPeer(OutboundMessage):
    """Sent to a lone joiner."""
    session_key: str
    type = "awaiting-peer"

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type, "sessionKey": self.session_key}


@dataclass
class NewPeerJoined(OutboundMessage):
    """Sent to the existing member: expect an incoming negotiation."""
    peer_id: str
    type = "new-peer-joined"

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type, "peerId": self.peer_id}


@dataclass
class RoomFull(OutboundMessage):
    session_key: str
    type = "room-full"

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type, "sessionKey": self.session_key}


@dataclass
class SignalMessage(OutboundMessage):
    """A relayed envelope as delivered to its recipient."""
    from_id: str
    payload: Any
    type = "signal"

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type, "from": self.from_id, "payload": self.payload}


@dataclass
class StopRecording(OutboundMessage):
    type = "stop-recording"


@dataclass
class ErrorMessage(OutboundMessage):
    message: str
    type = "error"

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message}
