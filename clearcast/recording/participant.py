"""Client side of a call: join, role assignment and recording hand-off."""

import logging
from typing import Any, Callable, Dict, Optional

from ..models.session import Role
from .lifecycle import ChunkSource, MediaAccessError, ParticipantRecorder, PeerEvent

logger = logging.getLogger(__name__)


class CallParticipant:
    """One participant's view of a session.

    Messages from the coordinator are fed to handle_message(); outgoing
    messages go through the send callable as wire dicts. The peer media
    channel itself lives outside this class and reports back through
    on_peer_connected() / on_peer_closed().
    """

    def __init__(
        self,
        send: Callable[[Dict[str, Any]], None],
        media_source: ChunkSource,
        recorder_factory: Callable[[ChunkSource], ParticipantRecorder],
        on_signal: Optional[Callable[[str, Any], None]] = None,
        on_role: Optional[Callable[[Role, str], None]] = None,
    ):
        """Initialize participant.

        Args:
            send: Delivers a message dict to the coordinator
            media_source: Local audio source, opened on join
            recorder_factory: Builds the recorder once media is available
            on_signal: Called with (from_id, payload) for each relayed signal
            on_role: Called with (role, peer_id) once the pairing is known
        """
        self.send = send
        self.media_source = media_source
        self.recorder_factory = recorder_factory
        self.on_signal = on_signal
        self.on_role = on_role

        self.connection_id: Optional[str] = None
        self.session_key: Optional[str] = None
        self.joined = False
        self.role = Role.AWAITING
        self.peer_id: Optional[str] = None
        self.recorder: Optional[ParticipantRecorder] = None

    def join(self, session_key: str, display_name: Optional[str] = None) -> bool:
        """Acquire local media, then ask the coordinator to join a session.

        Raises:
            MediaAccessError: media could not be opened; the participant
                stays not-joined
        """
        if self.joined:
            logger.warning(f"Already joined {self.session_key}, ignoring join to {session_key}")
            return False

        self.joined = True
        try:
            self.media_source.open()
        except MediaAccessError as e:
            logger.error(f"Media access failed, join to {session_key} rolled back: {e}")
            self.joined = False
            raise

        self.session_key = session_key
        self.recorder = self.recorder_factory(self.media_source)

        message = {"type": "join-room", "sessionKey": session_key}
        if display_name:
            message["displayName"] = display_name
        self.send(message)
        return True

    def handle_message(self, message: Dict[str, Any]) -> None:
        """Dispatch one message received from the coordinator."""
        msg_type = message.get("type")

        if msg_type == "connected":
            self.connection_id = message.get("connectionId")
            logger.info(f"Connected as {self.connection_id}")
        elif msg_type == "peer-already-present":
            self._assign_role(Role.INITIATOR, message["peerId"])
        elif msg_type == "new-peer-joined":
            self._assign_role(Role.RECEIVER, message["peerId"])
        elif msg_type == "awaiting-peer":
            logger.info(f"Waiting for a peer in {message.get('sessionKey')}")
        elif msg_type == "signal":
            self._on_signal(message.get("from"), message.get("payload"))
        elif msg_type == "stop-recording":
            if self.recorder is not None:
                self.recorder.on_stop_signal()
        elif msg_type == "room-full":
            logger.warning(f"Session {message.get('sessionKey')} is full")
            self._reset()
        elif msg_type == "error":
            logger.error(f"Coordinator error: {message.get('message')}")
        else:
            logger.warning(f"Unknown message type: {msg_type}")

    def _assign_role(self, role: Role, peer_id: str) -> None:
        self.role = role
        self.peer_id = peer_id
        logger.info(f"Role {role.value}, peer {peer_id}")
        if self.on_role is not None:
            self.on_role(role, peer_id)

    def _on_signal(self, from_id: Optional[str], payload: Any) -> None:
        if from_id != self.peer_id:
            logger.warning(f"Ignoring signal from {from_id}: not the current peer")
            return
        if self.on_signal is not None:
            self.on_signal(from_id, payload)

    def send_signal(self, payload: Any) -> bool:
        """Send an opaque negotiation payload to the peer."""
        if self.peer_id is None:
            logger.warning("No peer to signal")
            return False
        self.send({"type": "signal", "to": self.peer_id, "payload": payload})
        return True

    def on_peer_connected(self) -> None:
        """The direct media channel is up: start recording."""
        if self.recorder is not None:
            self.recorder.on_peer_event(PeerEvent.CONNECTED)

    def on_peer_closed(self) -> None:
        if self.recorder is not None:
            self.recorder.on_peer_event(PeerEvent.CLOSED)

    def end_session(self) -> None:
        """Ask the coordinator to stop recording for everyone in the session."""
        if self.session_key is None:
            logger.warning("Not in a session")
            return
        self.send({"type": "end-session", "sessionKey": self.session_key})

    def leave(self) -> None:
        """Stop recording locally and forget the session."""
        if self.recorder is not None and self.recorder.is_recording:
            self.recorder.stop()
        self._reset()

    def _reset(self) -> None:
        if self.recorder is None or self.recorder.recording_thread is None:
            # The recorder never ran, so the source is still ours to close
            self.media_source.close()
        self.joined = False
        self.session_key = None
        self.role = Role.AWAITING
        self.peer_id = None
        self.recorder = None
