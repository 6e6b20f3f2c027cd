"""Data models for the ClearCast application."""

from .session import Departure, JoinResult, JoinStatus, Participant, Role, Session
from .events import (
    AwaitingPeer,
    Connected,
    ErrorMessage,
    NewPeerJoined,
    OutboundMessage,
    PeerAlreadyPresent,
    RoomFull,
    SignalEnvelope,
    SignalMessage,
    StopRecording,
)
from .recording import (
    ChunkUploadResult,
    MergeResult,
    ParticipantTrack,
    RecordingChunk,
    RecordingState,
)

__all__ = [
    "Departure",
    "JoinResult",
    "JoinStatus",
    "Participant",
    "Role",
    "Session",
    # Signaling messages
    "AwaitingPeer",
    "Connected",
    "ErrorMessage",
    "NewPeerJoined",
    "OutboundMessage",
    "PeerAlreadyPresent",
    "RoomFull",
    "SignalEnvelope",
    "SignalMessage",
    "StopRecording",
    # Recording and merge
    "ChunkUploadResult",
    "MergeResult",
    "ParticipantTrack",
    "RecordingChunk",
    "RecordingState",
]
