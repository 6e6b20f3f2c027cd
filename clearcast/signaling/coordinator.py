"""Session coordinator: pairing, signal relay and stop/merge on departure."""

import logging
from typing import Any, Optional

from ..models.events import (
    AwaitingPeer,
    NewPeerJoined,
    PeerAlreadyPresent,
    RoomFull,
    SignalEnvelope,
    SignalMessage,
    StopRecording,
)
from ..models.session import Departure, JoinResult, JoinStatus
from .port import SignalingPort
from .registry import SessionRegistry

logger = logging.getLogger(__name__)


class SessionCoordinator:
    """Handles participant events coming in from a signaling transport.

    On the second join the newcomer is told to initiate the peer
    negotiation and the existing member is told to expect it. When a
    member leaves, whoever remains is told to stop recording and a merge
    is scheduled for the session.
    """

    def __init__(self, registry: SessionRegistry, port: SignalingPort, merge_scheduler=None):
        """Initialize coordinator.

        Args:
            registry: Session membership table
            port: Outbound channel to participants
            merge_scheduler: Object with schedule(session_key); None disables merging
        """
        self.registry = registry
        self.port = port
        self.merge_scheduler = merge_scheduler

    def on_join(self, connection_id: str, session_key: str,
                display_name: Optional[str] = None) -> JoinResult:
        """Handle a join-room request."""
        result = self.registry.join(connection_id, session_key, display_name)

        if result.status == JoinStatus.ROOM_FULL:
            self.port.send(connection_id, RoomFull(session_key))
            return result

        if result.previous_session_key:
            self._handle_departure(Departure(
                session_key=result.previous_session_key,
                connection_id=connection_id,
                remaining=result.left_behind,
            ))

        if result.status == JoinStatus.ALREADY_JOINED:
            return result

        if result.peer_id:
            logger.info(f"Pairing {result.peer_id} <-> {connection_id} in {session_key}")
            self.port.send(connection_id, PeerAlreadyPresent(result.peer_id))
            self.port.send(result.peer_id, NewPeerJoined(connection_id))
        else:
            self.port.send(connection_id, AwaitingPeer(session_key))

        return result

    def relay(self, envelope: SignalEnvelope) -> bool:
        """Forward an opaque signal payload to its recipient.

        Returns:
            True if delivered, False if dropped
        """
        session_key = self.registry.shared_session(envelope.from_id, envelope.to_id)
        if session_key is None:
            logger.warning(
                f"Dropping signal from {envelope.from_id} to {envelope.to_id}: "
                f"recipient is not in the sender's session")
            return False

        self.port.send(envelope.to_id, SignalMessage(envelope.from_id, envelope.payload))
        logger.debug(f"Signal relayed from {envelope.from_id} to {envelope.to_id} in {session_key}")
        return True

    def on_signal(self, connection_id: str, to_id: str, payload: Any,
                  claimed_from: Optional[str] = None) -> bool:
        """Relay a signal sent by a connection; the connection is the sender."""
        if claimed_from and claimed_from != connection_id:
            logger.debug(f"Ignoring claimed sender {claimed_from} on signal from {connection_id}")
        return self.relay(SignalEnvelope(from_id=connection_id, to_id=to_id, payload=payload))

    def on_end_session(self, connection_id: str, session_key: str) -> bool:
        """Broadcast stop-recording to every member of a session.

        Returns:
            False if the session does not exist
        """
        members = self.registry.mark_ended(session_key)
        if members is None:
            logger.warning(f"end-session from {connection_id} for unknown session {session_key}")
            return False

        logger.info(f"Ending session {session_key} on request of {connection_id}")
        for member in members:
            self.port.send(member, StopRecording())
        return True

    def on_disconnect(self, connection_id: str) -> Optional[str]:
        """Handle a dropped connection.

        Returns:
            Key of the session the connection was in, or None
        """
        departure = self.registry.depart(connection_id)
        if departure is None:
            logger.debug(f"Disconnect of {connection_id}: not in a session")
            return None

        self._handle_departure(departure)
        return departure.session_key

    def _handle_departure(self, departure: Departure) -> None:
        for member in departure.remaining:
            self.port.send(member, StopRecording())
        logger.info(
            f"{departure.connection_id} left {departure.session_key}; "
            f"stop-recording sent to {len(departure.remaining)} member(s)")

        if self.merge_scheduler is not None:
            self.merge_scheduler.schedule(departure.session_key)
