"""Session membership, pairing and signal relay."""

from .registry import SessionRegistry
from .coordinator import SessionCoordinator
from .port import SignalingPort, PubSubSignalingPort, QueueSignalingPort

__all__ = [
    'SessionRegistry',
    'SessionCoordinator',
    'SignalingPort',
    'PubSubSignalingPort',
    'QueueSignalingPort',
]
